"""Tests for the model-backed classifier."""

import asyncio
import json

import httpx
import pytest

from query_router.backends import LocalSLMProvider
from query_router.cache import ClassificationCache
from query_router.classifier import SAFE_DEFAULT, ModelClassifier, parse_classification
from query_router.errors import ClassificationParseError
from query_router.failover import ProviderTier

LOOKUP_REPLY = '{"complexity":"simple","category":"crm-read","confidence":0.92,"reasoning":"lookup"}'

# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def test_parse_plain_json():
    qc = parse_classification(
        '{"complexity":"moderate","category":"email","confidence":0.8,'
        '"requiresTools":true,"suggestedTools":["send_email"],"reasoning":"email"}'
    )
    assert qc.complexity == "moderate"
    assert qc.category == "email"
    assert qc.confidence == 0.8
    assert qc.suggested_tools == ("send_email",)
    assert qc.reasoning == "email"


def test_parse_strips_fences_and_prose():
    text = 'Sure!\n```json\n{"complexity":"simple","category":"greeting","confidence":1}\n```\nDone {x}'
    qc = parse_classification(text)
    assert qc.category == "greeting"
    assert qc.confidence == 1.0


def test_parse_takes_first_balanced_object():
    text = '{"complexity":"complex","category":"research","reasoning":"a {nested} brace"} {"category":"greeting"}'
    qc = parse_classification(text)
    assert qc.category == "research"
    assert qc.reasoning == "a {nested} brace"


def test_parse_normalizes_unknown_values():
    qc = parse_classification('{"complexity":"huge","category":"weather","confidence":7}')
    assert qc.complexity == SAFE_DEFAULT.complexity
    assert qc.category == SAFE_DEFAULT.category
    assert qc.confidence == 1.0
    assert qc.requires_tools is True


def test_parse_maps_legacy_admin_category():
    assert parse_classification('{"category":"sf-admin","complexity":"moderate"}').category == "admin"


def test_parse_missing_confidence_uses_default():
    assert parse_classification('{"category":"email"}').confidence == SAFE_DEFAULT.confidence


@pytest.mark.parametrize("text", ["", "no json here", "{not json}", "[1, 2]", "{\"a\": "])
def test_parse_failures_raise(text):
    with pytest.raises(ClassificationParseError):
        parse_classification(text)


# ---------------------------------------------------------------------------
# Classify
# ---------------------------------------------------------------------------


def _classifier(local, remote, clock, **kwargs):
    tiers = [
        ProviderTier("local", local, "granite-3.1-3b"),
        ProviderTier("remote", remote, "gpt-4o-mini"),
    ]
    cache = ClassificationCache(ttl_s=60, clock=clock)
    return ModelClassifier(tiers, cache, **kwargs), cache


@pytest.mark.asyncio
async def test_local_backend_answers_first(local_provider, remote_provider, clock):
    classifier, _ = _classifier(local_provider, remote_provider, clock)
    qc = await classifier.classify("who owns the Acme renewal")
    assert qc.category == "crm-read"
    assert qc.reasoning == "local: lookup"
    assert local_provider.calls == 1
    assert remote_provider.calls == 0
    assert local_provider.last_kwargs["temperature"] == 0.0
    assert local_provider.last_kwargs["max_tokens"] == 150


@pytest.mark.asyncio
async def test_prompt_contract(local_provider, remote_provider, clock):
    classifier, _ = _classifier(local_provider, remote_provider, clock)
    await classifier.classify("  who owns the Acme renewal ")
    system, user = local_provider.last_messages
    assert system["role"] == "system"
    assert "general-qa" in system["content"]
    assert user["content"].startswith('Classify: "who owns the Acme renewal"')
    assert "suggestedTools" in user["content"]


@pytest.mark.asyncio
async def test_local_error_falls_back_to_remote(make_provider, remote_provider, clock):
    local = make_provider(error=httpx.ConnectError("refused"))
    classifier, _ = _classifier(local, remote_provider, clock)
    qc = await classifier.classify("who owns the Acme renewal")
    assert qc.category == "research"
    assert qc.reasoning == "remote: needs the web"
    assert local.calls == 1
    assert remote_provider.calls == 1


@pytest.mark.asyncio
async def test_local_garbage_falls_back_to_remote(make_provider, remote_provider, clock):
    local = make_provider(["I think this is a CRM question."])
    classifier, _ = _classifier(local, remote_provider, clock)
    assert (await classifier.classify("q")).category == "research"


@pytest.mark.asyncio
async def test_unavailable_local_is_skipped(make_provider, remote_provider, clock):
    local = make_provider(available=False)
    classifier, _ = _classifier(local, remote_provider, clock)
    await classifier.classify("q")
    assert local.calls == 0
    assert remote_provider.calls == 1


@pytest.mark.asyncio
async def test_both_failing_returns_safe_default(make_provider, clock):
    local = make_provider(error=RuntimeError("boom"))
    remote = make_provider(["not json"])
    classifier, cache = _classifier(local, remote, clock)
    qc = await classifier.classify("q")
    assert qc == SAFE_DEFAULT
    assert qc.reasoning == "fallback-default"
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_timeout_returns_safe_default(make_provider, clock):
    slow = make_provider(['{"category":"email"}'], delay=1.0)
    remote = make_provider(['{"category":"email"}'], delay=1.0)
    classifier, cache = _classifier(slow, remote, clock, timeout_s=0.05)
    assert await classifier.classify("q") == SAFE_DEFAULT
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_same_query_within_ttl_calls_model_once(local_provider, remote_provider, clock):
    classifier, _ = _classifier(local_provider, remote_provider, clock)
    first = await classifier.classify("Who owns the Acme renewal")
    clock.advance(30)
    second = await classifier.classify("who owns the acme renewal  ")
    assert first == second
    assert local_provider.calls + remote_provider.calls == 1


@pytest.mark.asyncio
async def test_expired_entry_triggers_one_fresh_call(local_provider, remote_provider, clock):
    classifier, _ = _classifier(local_provider, remote_provider, clock)
    await classifier.classify("who owns the Acme renewal")
    clock.advance(61)
    await classifier.classify("who owns the Acme renewal")
    await classifier.classify("who owns the Acme renewal")
    assert local_provider.calls == 2


@pytest.mark.asyncio
async def test_concurrent_classifications_never_raise(make_provider, clock):
    local = make_provider(error=ValueError("bad"))
    remote = make_provider(['{"complexity":"simple","category":"greeting","confidence":0.9}'])
    classifier, _ = _classifier(local, remote, clock)
    results = await asyncio.gather(*(classifier.classify(f"q{i}") for i in range(10)))
    assert {r.category for r in results} == {"greeting"}


@pytest.mark.asyncio
async def test_local_used_again_after_transient_error(remote_provider, clock):
    chat_calls = []

    def handler(request):
        body = json.loads(request.content)
        if "model" in body:
            chat_calls.append(body)
            if len(chat_calls) == 1:
                raise httpx.ConnectError("reset", request=request)
        return httpx.Response(200, json={"choices": [{"message": {"content": LOOKUP_REPLY}}]})

    local = LocalSLMProvider("http://slm.local/v1/chat/completions", transport=httpx.MockTransport(handler))
    await local.check_health()
    classifier, _ = _classifier(local, remote_provider, clock)

    first = await classifier.classify("who owns the Acme renewal")
    assert first.reasoning.startswith("remote:")
    for i in range(5):
        qc = await classifier.classify(f"who owns renewal {i}")
        assert qc.reasoning == "local: lookup"
    assert len(chat_calls) == 6
    assert remote_provider.calls == 1
    await local.aclose()


@pytest.mark.asyncio
async def test_slow_local_falls_through_to_remote(make_provider, remote_provider, clock):
    slow = make_provider([LOOKUP_REPLY], delay=1.0)
    tiers = [
        ProviderTier("local", slow, "granite-3.1-3b", timeout_s=0.05),
        ProviderTier("remote", remote_provider, "gpt-4o-mini"),
    ]
    classifier = ModelClassifier(tiers, ClassificationCache(clock=clock), timeout_s=0.5)
    qc = await classifier.classify("who owns the Acme renewal")
    assert qc.reasoning == "remote: needs the web"
    assert slow.calls == 1
    assert remote_provider.calls == 1
