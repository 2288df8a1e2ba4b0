"""Token usage aggregation per session and per agent."""

from __future__ import annotations

import threading

from strand.protocols import UsageReport


class UsageTracker:
    """Thread-safe usage accounting.

    Usage::

        tracker = UsageTracker()
        tracker.record_request("session-1", "agent-1", 100, 50)
        tracker.get_session_usage("session-1").total_tokens  # 150
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, UsageReport] = {}
        self._agents: dict[str, UsageReport] = {}

    def record_request(
        self,
        session_key: str,
        agent_id: str | None,
        input_tokens: int,
        output_tokens: int,
    ) -> None:
        with self._lock:
            self._sessions.setdefault(session_key, UsageReport()).add(input_tokens, output_tokens)
            if agent_id is not None:
                self._agents.setdefault(agent_id, UsageReport()).add(input_tokens, output_tokens)

    def record(self, session_key: str, agent_id: str | None, usage: UsageReport) -> None:
        self.record_request(session_key, agent_id, usage.input_tokens, usage.output_tokens)

    def get_session_usage(self, session_key: str) -> UsageReport | None:
        """Copy of the session's cumulative usage, or None if unseen."""
        with self._lock:
            report = self._sessions.get(session_key)
            return None if report is None else UsageReport(report.input_tokens, report.output_tokens)

    def get_agent_usage(self, agent_id: str) -> UsageReport | None:
        with self._lock:
            report = self._agents.get(agent_id)
            return None if report is None else UsageReport(report.input_tokens, report.output_tokens)

    def reset_session(self, session_key: str) -> None:
        with self._lock:
            self._sessions.pop(session_key, None)

    def session_keys(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def agent_keys(self) -> list[str]:
        with self._lock:
            return list(self._agents)
