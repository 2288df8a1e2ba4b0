"""Model failover for Strand.

The FailoverController walks a resolved model chain (primary + fallbacks)
and each model's credential list. It classifies provider errors into
actions; the pipeline records the attempt, then applies the action:

- RetryWithNextAuth: same model, next credential.
- WaitAndRetry: sleep ``delay`` seconds, same model.
- CompactAndRetry: compact the transcript, same model.
- FailoverToNext: advance to the next model.
- Abort: give up with the original error.

One FailoverState is created per run and owned by that run alone.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Union

from strand.exceptions import AllModelsExhaustedError, ConfigError
from strand.llm.errors import (
    AuthenticationFailedError,
    ContextOverflowError,
    ModelNotFoundError,
    ProviderNetworkError,
    ProviderServerError,
    ProviderTimeoutError,
    RateLimitedError,
)
from strand.models.config import ModelChain

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetryWithNextAuth:
    name = "retry_with_next_auth"


@dataclass(frozen=True)
class WaitAndRetry:
    delay: float
    name = "wait_and_retry"


@dataclass(frozen=True)
class CompactAndRetry:
    name = "compact_and_retry"


@dataclass(frozen=True)
class FailoverToNext:
    name = "failover_to_next"


@dataclass(frozen=True)
class Abort:
    error: BaseException
    name = "abort"


FailoverAction = Union[RetryWithNextAuth, WaitAndRetry, CompactAndRetry, FailoverToNext, Abort]


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelAttempt:
    """One entry of the append-only attempt log.

    ``error`` and ``action`` are None for a successful call.
    """

    model_id: str
    error: str | None = None
    duration: float = 0.0
    action: str | None = None
    credential_index: int = 0

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class FailoverState:
    """Position in the model chain plus the attempt log."""

    models: list[str]
    max_attempts: int
    attempts: list[ModelAttempt] = field(default_factory=list)
    current_index: int = 0

    @property
    def exhausted(self) -> bool:
        return self.current_index >= self.max_attempts

    def current_model(self) -> str:
        # Past the end we keep reporting the last model tried.
        return self.models[min(self.current_index, self.max_attempts - 1)]

    def advance(self) -> str | None:
        """Move to the next model; None once ``max_attempts`` is reached."""
        self.current_index += 1
        if self.exhausted:
            return None
        return self.models[self.current_index]


class FailoverController:
    """Error classification and model/credential selection for one run.

    Args:
        chain: Model chain, or a plain ordered list of model ids.
        credentials: Per-model credential lists. Models without an entry
            are called with ``credential=None`` (backend default).
        max_attempts: Cap on how many chain entries may be tried. Defaults
            to the chain length.
        max_waits_per_model: Rate-limit waits allowed on one model before
            moving on.
        max_compactions_per_model: Compactions allowed on one model before
            moving on.
    """

    def __init__(
        self,
        chain: ModelChain | Sequence[str],
        credentials: Mapping[str, Sequence[str]] | None = None,
        *,
        max_attempts: int | None = None,
        max_waits_per_model: int = 3,
        max_compactions_per_model: int = 2,
    ) -> None:
        models = list(chain.models if isinstance(chain, ModelChain) else chain)
        if not models:
            raise ConfigError("Model chain must contain at least one model")
        limit = len(models) if max_attempts is None else max(1, min(max_attempts, len(models)))

        self.state = FailoverState(models=models, max_attempts=limit)
        self._credentials = {m: list(c) for m, c in (credentials or {}).items()}
        self._max_waits = max_waits_per_model
        self._max_compactions = max_compactions_per_model
        self._reset_model_counters()

    def _reset_model_counters(self) -> None:
        self._credential_index = 0
        self._waits = 0
        self._compactions = 0
        self._compaction_exhausted = False

    # -- selection ----------------------------------------------------------

    @property
    def attempts(self) -> list[ModelAttempt]:
        return self.state.attempts

    @property
    def credential_index(self) -> int:
        return self._credential_index

    def current_model(self) -> str:
        return self.state.current_model()

    def current_credential(self) -> str | None:
        creds = self._credentials.get(self.current_model(), [])
        if self._credential_index < len(creds):
            return creds[self._credential_index]
        return None

    def has_next_credential(self) -> bool:
        creds = self._credentials.get(self.current_model(), [])
        return self._credential_index + 1 < len(creds)

    def rotate_credential(self) -> str | None:
        """Apply RetryWithNextAuth: switch to the model's next credential."""
        self._credential_index += 1
        logger.debug(
            "Rotating credential for %s to index %d",
            self.current_model(), self._credential_index,
        )
        return self.current_credential()

    def advance(self) -> str | None:
        """Apply FailoverToNext. Returns the new model, or None if exhausted."""
        previous = self.current_model()
        nxt = self.state.advance()
        self._reset_model_counters()
        if nxt is None:
            logger.warning("Model chain exhausted after %s", previous)
        else:
            logger.info("Failing over from %s to %s", previous, nxt)
        return nxt

    # -- classification -----------------------------------------------------

    def classify_error(self, error: BaseException) -> FailoverAction:
        """Map an error raised by a model call to the action to take."""
        if isinstance(error, AuthenticationFailedError):
            if self.has_next_credential():
                return RetryWithNextAuth()
            return FailoverToNext()
        if isinstance(error, RateLimitedError):
            if error.retry_after is not None and self._waits < self._max_waits:
                return WaitAndRetry(delay=error.retry_after)
            return FailoverToNext()
        if isinstance(error, ContextOverflowError):
            if self._compaction_exhausted or self._compactions >= self._max_compactions:
                return FailoverToNext()
            return CompactAndRetry()
        if isinstance(
            error,
            (ProviderTimeoutError, ProviderNetworkError, ProviderServerError, ModelNotFoundError),
        ):
            return FailoverToNext()
        return Abort(error=error)

    # -- bookkeeping --------------------------------------------------------

    def record_attempt(
        self, error: BaseException, action: FailoverAction, duration: float
    ) -> ModelAttempt:
        """Log a failed attempt. Called before the action is applied."""
        attempt = ModelAttempt(
            model_id=self.current_model(),
            error=str(error) or type(error).__name__,
            duration=duration,
            action=action.name,
            credential_index=self._credential_index,
        )
        self.state.attempts.append(attempt)
        logger.debug(
            "Attempt on %s failed (%s): %s -> %s",
            attempt.model_id, type(error).__name__, attempt.error, attempt.action,
        )
        return attempt

    def record_success(self, duration: float) -> ModelAttempt:
        """Log a successful call. Leaves the chain position unchanged."""
        attempt = ModelAttempt(
            model_id=self.current_model(),
            duration=duration,
            credential_index=self._credential_index,
        )
        self.state.attempts.append(attempt)
        self._waits = 0
        self._compactions = 0
        self._compaction_exhausted = False
        return attempt

    def note_wait(self) -> None:
        self._waits += 1

    def note_compaction(self) -> None:
        self._compactions += 1

    def mark_compaction_exhausted(self) -> None:
        """Compaction could not shrink the transcript; stop asking for it."""
        self._compaction_exhausted = True

    def exhausted_error(self, last_error: BaseException | None = None) -> AllModelsExhaustedError:
        return AllModelsExhaustedError(self.state.attempts, last_error)
