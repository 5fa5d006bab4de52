import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from .circuit import CircuitBreaker
from .config import Settings
from .heuristics import score_submission
from .normalizer import normalize_result
from .parser import parse_response
from .prompt import build_payload
from .provider import ErrorKind, ProviderClient, ProviderError
from .schemas import AnalysisResult, Source, Submission

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class AttemptState(str, Enum):
    ATTEMPTING = "attempting"
    BACKOFF = "backoff"
    FATAL_ABORT = "fatal_abort"
    EXHAUSTED = "exhausted"
    SUCCEEDED = "succeeded"


@dataclass(frozen=True)
class Transition:
    state: AttemptState
    delay: float = 0.0


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_multiplier: float = 2.0

    def backoff_delay(self, attempt: int) -> float:
        return self.backoff_base * attempt * self.backoff_multiplier

    def transition(self, kind: ErrorKind, attempt: int) -> Transition:
        """Decide what follows failed attempt number ``attempt`` (1-based)."""
        if kind is ErrorKind.AUTH:
            return Transition(AttemptState.FATAL_ABORT)
        if attempt >= self.max_attempts:
            return Transition(AttemptState.EXHAUSTED)
        if kind is ErrorKind.RATE_LIMITED:
            return Transition(AttemptState.BACKOFF, self.backoff_delay(attempt))
        return Transition(AttemptState.BACKOFF)


class AnalysisService:
    """Scores submissions with the provider, falling back to local rules.

    ``analyze`` always returns a normalized ``AnalysisResult``. The circuit
    breaker is owned by the caller that builds the service, normally once per
    process, and shared by every ``analyze`` call made through it.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        provider: Optional[ProviderClient] = None,
        circuit: Optional[CircuitBreaker] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.settings = settings
        if provider is None and settings.provider_configured:
            provider = ProviderClient(
                settings.api_key,
                timeout=settings.provider_timeout,
                base_url=settings.provider_base_url,
            )
        self.provider = provider
        self.circuit = circuit or CircuitBreaker(cooldown=settings.circuit_cooldown)
        self.policy = RetryPolicy(
            max_attempts=settings.max_attempts,
            backoff_base=settings.backoff_base,
            backoff_multiplier=settings.backoff_multiplier,
        )
        self._sleep = sleep

    def local_result(self, submission: Submission) -> AnalysisResult:
        return normalize_result(score_submission(submission), source=Source.LOCAL)

    async def analyze(
        self,
        submission: Submission,
        reference_text: str = "",
        *,
        deadline: Optional[float] = None,
    ) -> AnalysisResult:
        if self.provider is None:
            logger.warning("No provider credential configured, using local analysis")
            return self.local_result(submission)

        if not self.circuit.allow_request():
            logger.warning("Circuit open, using local analysis")
            return self.local_result(submission)

        timeout = deadline if deadline is not None else self.settings.analysis_deadline
        try:
            result = await asyncio.wait_for(
                self._attempt_provider(submission, reference_text), timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Provider phase exceeded its %.1fs deadline", timeout)
            result = None
        except Exception:
            logger.exception("Unexpected error during provider analysis")
            result = None

        if result is None:
            logger.warning("Provider analysis unavailable, using local analysis")
            return self.local_result(submission)
        return result

    async def _attempt_provider(
        self, submission: Submission, reference_text: str
    ) -> Optional[AnalysisResult]:
        payload = build_payload(
            submission,
            reference_text,
            model=self.settings.model,
            max_tokens=self.settings.max_tokens,
            temperature=self.settings.temperature,
        )
        attempt = 1
        step = Transition(AttemptState.ATTEMPTING)
        result = None

        while True:
            if step.state is AttemptState.ATTEMPTING:
                logger.info("Provider attempt %d/%d", attempt, self.policy.max_attempts)
                try:
                    raw_text = await self.provider.complete(payload)
                except ProviderError as exc:
                    self.circuit.record_failure(opens=exc.kind is ErrorKind.SERVER)
                    step = self.policy.transition(exc.kind, attempt)
                    log = logger.error if exc.kind is ErrorKind.AUTH else logger.warning
                    log(
                        "Provider attempt %d failed (%s): %s",
                        attempt,
                        exc.kind.value,
                        exc.message,
                    )
                else:
                    self.circuit.record_success()
                    parsed = parse_response(raw_text)
                    parsed.update(source=Source.PROVIDER.value, enhanced=True)
                    result = normalize_result(parsed)
                    step = Transition(AttemptState.SUCCEEDED)

            elif step.state is AttemptState.BACKOFF:
                if step.delay > 0:
                    logger.info("Backing off %.1fs before retrying", step.delay)
                    await self._sleep(step.delay)
                attempt += 1
                step = Transition(AttemptState.ATTEMPTING)

            elif step.state is AttemptState.SUCCEEDED:
                return result

            elif step.state is AttemptState.FATAL_ABORT:
                logger.error("Provider rejected the credential, not retrying")
                return None

            else:
                logger.warning("All %d provider attempts failed", self.policy.max_attempts)
                return None
