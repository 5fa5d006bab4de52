"""Shared fixtures for regtrainer tests."""

import pytest

from regtrainer.provider import ErrorKind, ProviderError
from regtrainer.schemas import Submission

GOOD_REPLY = """\
{
  "score": 82,
  "feedback": {
    "items": [
      {"type": "good", "text": "Clear identification of capital impacts"},
      {"type": "warning", "text": "Timeline could be more specific"}
    ],
    "improvements": ["Quantify the cost of the reporting changes"]
  },
  "professionalExample": {
    "impactAnalysis": "Banks must raise CET1 buffers by 50bp before Q3 2025."
  }
}
"""


class FakeProvider:
    """Replays scripted outcomes; the last one repeats once the script runs out."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0
        self.payloads = []

    async def complete(self, payload):
        self.calls += 1
        self.payloads.append(payload)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def provider_error(kind, status_code=None):
    return ProviderError(kind, f"simulated {kind.value}", status_code=status_code)


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def errors():
    """Factory for classified provider errors."""
    return {
        "rate_limited": lambda: provider_error(ErrorKind.RATE_LIMITED, 429),
        "server": lambda: provider_error(ErrorKind.SERVER, 500),
        "auth": lambda: provider_error(ErrorKind.AUTH, 401),
        "timeout": lambda: provider_error(ErrorKind.TIMEOUT),
    }


@pytest.fixture
def good_reply():
    return GOOD_REPLY


@pytest.fixture
def strong_submission():
    """45-word summary, 150-char impacts, 60-char structure."""
    words = (
        "The revised capital rule requires banks to hold additional buffers "
        "against trading book exposures and to report liquidity positions "
        "monthly to the supervisor"
    ).split()
    summary = " ".join((words * 3)[:45])
    impacts = ("Banks face higher capital costs and new reporting timelines. " * 4)[:150]
    structure = ("Summary, Key changes, Impacts, Timeline. " * 3)[:60]
    return Submission(summary=summary, impacts=impacts, structure=structure)


@pytest.fixture
def degenerate_submission():
    return Submission(summary="aaaa", impacts="x", structure="y")
