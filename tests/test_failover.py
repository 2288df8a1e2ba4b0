"""Tests for FailoverController error classification and chain walking."""

from __future__ import annotations

import pytest

from strand.exceptions import AllModelsExhaustedError, ConfigError
from strand.failover import (
    Abort,
    CompactAndRetry,
    FailoverController,
    FailoverState,
    FailoverToNext,
    RetryWithNextAuth,
    WaitAndRetry,
)
from strand.llm.errors import (
    AuthenticationFailedError,
    ContextOverflowError,
    ModelNotFoundError,
    ProviderNetworkError,
    ProviderResponseError,
    ProviderServerError,
    ProviderTimeoutError,
    RateLimitedError,
)
from strand.models.config import ModelChain


def _controller(models=("A", "B", "C"), credentials=None, **kwargs) -> FailoverController:
    return FailoverController(list(models), credentials, **kwargs)


# ---------------------------------------------------------------------------
# Chain walking
# ---------------------------------------------------------------------------

class TestAdvance:
    def test_walks_chain_then_exhausts(self):
        fc = _controller()
        assert fc.current_model() == "A"
        assert fc.advance() == "B"
        assert fc.advance() == "C"
        assert fc.advance() is None
        assert fc.state.exhausted

    def test_max_attempts_caps_chain(self):
        fc = _controller(max_attempts=2)
        assert fc.advance() == "B"
        assert fc.advance() is None

    def test_max_attempts_never_exceeds_chain(self):
        fc = _controller(models=("A",), max_attempts=5)
        assert fc.state.max_attempts == 1
        assert fc.advance() is None

    def test_state_index_never_reports_past_chain(self):
        state = FailoverState(models=["A", "B"], max_attempts=2)
        for _ in range(5):
            state.advance()
        assert state.current_model() == "B"

    def test_accepts_model_chain(self):
        chain = ModelChain(primary="A", fallbacks=["B", "A"])
        fc = FailoverController(chain)
        assert fc.state.models == ["A", "B"]

    def test_empty_chain_rejected(self):
        with pytest.raises(ConfigError):
            FailoverController([])

    def test_advance_resets_credential_index(self):
        fc = _controller(credentials={"A": ["k1", "k2"], "B": ["k3"]})
        fc.rotate_credential()
        assert fc.current_credential() == "k2"
        fc.advance()
        assert fc.credential_index == 0
        assert fc.current_credential() == "k3"


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

class TestClassifyAuth:
    def test_rotates_when_more_credentials(self):
        fc = _controller(credentials={"A": ["k1", "k2"]})
        action = fc.classify_error(AuthenticationFailedError("401"))
        assert action == RetryWithNextAuth()

    def test_fails_over_on_last_credential(self):
        fc = _controller(credentials={"A": ["k1", "k2"]})
        fc.rotate_credential()
        assert fc.classify_error(AuthenticationFailedError("401")) == FailoverToNext()

    def test_fails_over_without_credentials(self):
        fc = _controller()
        assert fc.current_credential() is None
        assert fc.classify_error(AuthenticationFailedError("401")) == FailoverToNext()


class TestClassifyRateLimit:
    def test_waits_exact_retry_after(self):
        fc = _controller()
        action = fc.classify_error(RateLimitedError("429", retry_after=2.5))
        assert action == WaitAndRetry(delay=2.5)

    def test_without_retry_after_fails_over(self):
        fc = _controller()
        assert fc.classify_error(RateLimitedError("429")) == FailoverToNext()

    def test_wait_cap_per_model(self):
        fc = _controller(max_waits_per_model=2)
        error = RateLimitedError("429", retry_after=1.0)
        fc.note_wait()
        fc.note_wait()
        assert fc.classify_error(error) == FailoverToNext()
        fc.advance()
        assert fc.classify_error(error) == WaitAndRetry(delay=1.0)


class TestClassifyOverflow:
    def test_compacts_first(self):
        fc = _controller()
        assert fc.classify_error(ContextOverflowError("too long")) == CompactAndRetry()

    def test_fails_over_after_compaction_exhausted(self):
        fc = _controller()
        fc.mark_compaction_exhausted()
        assert fc.classify_error(ContextOverflowError("too long")) == FailoverToNext()

    def test_compaction_cap(self):
        fc = _controller(max_compactions_per_model=1)
        fc.note_compaction()
        assert fc.classify_error(ContextOverflowError("too long")) == FailoverToNext()

    def test_success_resets_compaction_counter(self):
        fc = _controller(max_compactions_per_model=1)
        fc.note_compaction()
        fc.record_success(0.1)
        assert fc.classify_error(ContextOverflowError("too long")) == CompactAndRetry()


class TestClassifyOther:
    @pytest.mark.parametrize(
        "error",
        [
            ProviderTimeoutError("timeout"),
            ProviderNetworkError("reset"),
            ProviderServerError("502", status_code=502),
            ModelNotFoundError("404"),
        ],
    )
    def test_transient_errors_fail_over(self, error):
        assert _controller().classify_error(error) == FailoverToNext()

    def test_unrecoverable_provider_error_aborts(self):
        error = ProviderResponseError("bad request")
        action = _controller().classify_error(error)
        assert isinstance(action, Abort)
        assert action.error is error

    def test_unknown_exception_aborts(self):
        error = ValueError("boom")
        action = _controller().classify_error(error)
        assert action == Abort(error=error)


# ---------------------------------------------------------------------------
# Attempt log
# ---------------------------------------------------------------------------

class TestAttemptLog:
    def test_record_attempt_and_success(self):
        fc = _controller(credentials={"A": ["k1", "k2"]})
        error = AuthenticationFailedError("bad key")
        fc.record_attempt(error, fc.classify_error(error), 0.2)
        fc.rotate_credential()
        fc.record_success(0.3)

        first, second = fc.attempts
        assert first.model_id == "A"
        assert first.error == "bad key"
        assert first.action == "retry_with_next_auth"
        assert first.credential_index == 0
        assert not first.succeeded
        assert second.succeeded
        assert second.credential_index == 1
        assert fc.current_model() == "A"

    def test_exhausted_error_lists_distinct_models(self):
        fc = _controller(models=("A", "B"))
        for _ in range(2):
            error = ProviderServerError("500", status_code=500)
            fc.record_attempt(error, FailoverToNext(), 0.0)
            fc.advance()
        fc.state.attempts.insert(1, fc.attempts[0])

        exc = fc.exhausted_error(ProviderServerError("500"))
        assert isinstance(exc, AllModelsExhaustedError)
        assert exc.attempted_models == ("A", "B")
        assert "A, B" in str(exc)

    def test_action_names(self):
        assert WaitAndRetry(1.0).name == "wait_and_retry"
        assert CompactAndRetry().name == "compact_and_retry"
        assert FailoverToNext().name == "failover_to_next"
        assert Abort(ValueError()).name == "abort"
