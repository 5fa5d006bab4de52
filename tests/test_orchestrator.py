import asyncio

import httpx
import pytest

from regtrainer.circuit import CircuitBreaker
from regtrainer.config import Settings
from regtrainer.orchestrator import AnalysisService, AttemptState, RetryPolicy, Transition
from regtrainer.provider import ErrorKind, ProviderClient
from regtrainer.schemas import FeedbackKind, Source

SETTINGS = Settings(api_key="test-key", max_attempts=3, backoff_base=1.0, backoff_multiplier=2.0)


def make_service(provider, sleep, settings=SETTINGS, circuit=None):
    return AnalysisService(settings, provider=provider, sleep=sleep, circuit=circuit)


class TestRetryPolicy:
    def test_rate_limit_backs_off_with_growing_delay(self):
        policy = RetryPolicy(max_attempts=3)
        assert policy.transition(ErrorKind.RATE_LIMITED, 1) == Transition(AttemptState.BACKOFF, 2.0)
        assert policy.transition(ErrorKind.RATE_LIMITED, 2) == Transition(AttemptState.BACKOFF, 4.0)

    def test_last_attempt_is_exhausted_without_sleep(self):
        policy = RetryPolicy(max_attempts=3)
        assert policy.transition(ErrorKind.RATE_LIMITED, 3) == Transition(AttemptState.EXHAUSTED)

    def test_auth_aborts_immediately(self):
        assert RetryPolicy().transition(ErrorKind.AUTH, 1).state is AttemptState.FATAL_ABORT

    @pytest.mark.parametrize("kind", [ErrorKind.SERVER, ErrorKind.TIMEOUT, ErrorKind.OTHER])
    def test_transient_errors_retry_without_delay(self, kind):
        assert RetryPolicy().transition(kind, 1) == Transition(AttemptState.BACKOFF, 0.0)


@pytest.mark.asyncio
async def test_no_credential_goes_straight_to_local(strong_submission, sleep):
    service = AnalysisService(Settings(api_key=""), sleep=sleep)

    result = await service.analyze(strong_submission, "doc")

    assert service.provider is None
    assert result.source is Source.LOCAL
    assert result.score == 90
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_degenerate_submission_without_provider(degenerate_submission):
    result = await AnalysisService(Settings()).analyze(degenerate_submission)

    assert result.score == 10
    assert [i.kind for i in result.feedback.items] == [FeedbackKind.ERROR]
    assert result.source is Source.LOCAL


@pytest.mark.asyncio
async def test_provider_success(strong_submission, fake_provider, sleep, good_reply):
    provider = fake_provider(good_reply)
    service = make_service(provider, sleep)

    result = await service.analyze(strong_submission, "doc")

    assert result.source is Source.PROVIDER
    assert result.enhanced is True
    assert result.score == 82
    assert provider.calls == 1
    assert "Executive Summary (45 words)" in provider.payloads[0]["messages"][0]["content"]


@pytest.mark.asyncio
async def test_rate_limited_twice_then_success(strong_submission, fake_provider, sleep, errors, good_reply):
    provider = fake_provider(errors["rate_limited"](), errors["rate_limited"](), good_reply)
    service = make_service(provider, sleep)

    result = await service.analyze(strong_submission)

    assert provider.calls == 3
    assert len(sleep.delays) == 2
    assert sleep.delays[1] > sleep.delays[0]
    assert result.source is Source.PROVIDER


@pytest.mark.asyncio
async def test_auth_error_is_not_retried(strong_submission, fake_provider, sleep, errors):
    provider = fake_provider(errors["auth"]())
    service = make_service(provider, sleep)

    result = await service.analyze(strong_submission)

    assert provider.calls == 1
    assert result.source is Source.LOCAL
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_rate_limit_exhaustion_falls_back(strong_submission, fake_provider, sleep, errors):
    provider = fake_provider(errors["rate_limited"]())
    service = make_service(provider, sleep)

    result = await service.analyze(strong_submission)

    assert provider.calls == 3
    assert sleep.delays == [2.0, 4.0]
    assert result.source is Source.LOCAL
    assert result.score == 90


@pytest.mark.asyncio
async def test_server_error_opens_circuit_but_call_keeps_retrying(
    strong_submission, fake_provider, sleep, errors, good_reply
):
    provider = fake_provider(errors["server"](), good_reply)
    service = make_service(provider, sleep)

    result = await service.analyze(strong_submission)

    assert provider.calls == 2
    assert result.source is Source.PROVIDER
    assert not service.circuit.snapshot().open


@pytest.mark.asyncio
async def test_open_circuit_short_circuits_later_calls(strong_submission, fake_provider, sleep, errors):
    now = [0.0]
    circuit = CircuitBreaker(cooldown=30.0, clock=lambda: now[0])
    provider = fake_provider(errors["server"]())
    service = make_service(provider, sleep, circuit=circuit)

    first = await service.analyze(strong_submission)
    assert first.source is Source.LOCAL
    assert provider.calls == 3
    assert circuit.snapshot().open
    assert circuit.snapshot().consecutive_failures == 3

    second = await service.analyze(strong_submission)
    assert second.source is Source.LOCAL
    assert provider.calls == 3

    # After the cooldown one probe call is let through.
    now[0] += 30.0
    await service.analyze(strong_submission)
    assert provider.calls == 6


@pytest.mark.asyncio
async def test_timeouts_are_retried(strong_submission, fake_provider, sleep, errors, good_reply):
    provider = fake_provider(errors["timeout"](), good_reply)
    result = await make_service(provider, sleep).analyze(strong_submission)

    assert provider.calls == 2
    assert sleep.delays == []
    assert result.source is Source.PROVIDER


@pytest.mark.asyncio
async def test_malformed_reply_degrades_but_stays_provider_sourced(
    strong_submission, fake_provider, sleep
):
    provider = fake_provider("I would rate this. Score: 72. Nice work.")
    result = await make_service(provider, sleep).analyze(strong_submission)

    assert result.source is Source.PROVIDER
    assert result.score == 72
    assert result.professional_example.impact_analysis.strip()


@pytest.mark.asyncio
async def test_unexpected_exception_falls_back(strong_submission, fake_provider, sleep):
    provider = fake_provider(RuntimeError("bug in client"))
    result = await make_service(provider, sleep).analyze(strong_submission)

    assert result.source is Source.LOCAL
    assert provider.calls == 1


@pytest.mark.asyncio
async def test_deadline_cancels_slow_provider(strong_submission, sleep):
    class SlowProvider:
        async def complete(self, payload):
            await asyncio.sleep(10)
            return "{}"

    service = make_service(SlowProvider(), sleep)
    result = await service.analyze(strong_submission, deadline=0.05)

    assert result.source is Source.LOCAL
    assert result.score == 90


@pytest.mark.asyncio
async def test_caller_cancellation_propagates(strong_submission):
    started = asyncio.Event()

    class HangingProvider:
        async def complete(self, payload):
            started.set()
            await asyncio.sleep(10)

    service = make_service(HangingProvider(), asyncio.sleep)
    task = asyncio.create_task(service.analyze(strong_submission))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_concurrent_calls_share_one_circuit(strong_submission, fake_provider, sleep, errors):
    provider = fake_provider(errors["server"]())
    service = make_service(provider, sleep)

    results = await asyncio.gather(*(service.analyze(strong_submission) for _ in range(5)))

    assert all(r.source is Source.LOCAL for r in results)
    snapshot = service.circuit.snapshot()
    assert snapshot.open
    assert snapshot.consecutive_failures == provider.calls


@pytest.mark.asyncio
async def test_empty_envelope_is_retried_then_falls_back(strong_submission, sleep):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"type": "message", "content": []})

    provider = ProviderClient(
        "test-key", base_url="https://provider.test", transport=httpx.MockTransport(handler)
    )
    service = make_service(provider, sleep)

    result = await service.analyze(strong_submission)

    assert len(calls) == 3
    assert result.source is Source.LOCAL
    assert result.score == 90
    snapshot = service.circuit.snapshot()
    assert snapshot.consecutive_failures == 3
    assert not snapshot.open


@pytest.mark.asyncio
async def test_deadline_cancels_pending_backoff(strong_submission, fake_provider, errors):
    provider = fake_provider(errors["rate_limited"]())
    settings = Settings(api_key="test-key", max_attempts=3, backoff_base=5.0)
    service = make_service(provider, asyncio.sleep, settings=settings)

    loop = asyncio.get_running_loop()
    started = loop.time()
    result = await service.analyze(strong_submission, deadline=0.1)
    elapsed = loop.time() - started

    assert result.source is Source.LOCAL
    assert provider.calls == 1
    assert elapsed < 2.0
