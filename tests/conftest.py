"""Shared fakes for query_router tests."""

import asyncio

import pytest

from query_router.models import LLMProvider, LLMResponse


class FakeProvider(LLMProvider):
    """Scripted backend that counts calls."""

    def __init__(self, replies=None, *, error=None, delay=0.0, available=True):
        super().__init__()
        self.replies = list(replies or [])
        self.error = error
        self.delay = delay
        self._available = available
        self.calls = 0
        self.last_messages = None
        self.last_kwargs = None

    @property
    def available(self):
        return self._available

    async def chat(self, messages, model=None, max_tokens=150, temperature=0.0):
        self.calls += 1
        self.last_messages = messages
        self.last_kwargs = {"model": model, "max_tokens": max_tokens, "temperature": temperature}
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        reply = self.replies[min(self.calls - 1, len(self.replies) - 1)] if self.replies else ""
        return LLMResponse(content=reply, model_used=model or "")


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


LOCAL_REPLY = (
    '```json\n{"complexity":"simple","category":"crm-read","confidence":0.92,'
    '"requiresTools":true,"suggestedTools":["search_leads"],"reasoning":"lookup"}\n```'
)
REMOTE_REPLY = (
    '{"complexity":"complex","category":"research","confidence":0.8,'
    '"requiresTools":true,"reasoning":"needs the web"}'
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def local_provider():
    return FakeProvider([LOCAL_REPLY])


@pytest.fixture
def remote_provider():
    return FakeProvider([REMOTE_REPLY])


@pytest.fixture
def make_provider():
    return FakeProvider
