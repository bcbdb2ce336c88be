"""Basic structure tests for query_router."""

import dataclasses

import pytest


def test_imports():
    from query_router import (  # noqa: F401
        CircuitBreaker,
        ClassificationCache,
        FailoverChain,
        LLMProvider,
        QueryClassification,
        QueryRouter,
        RoutingDecision,
    )


def test_routing_decision():
    from query_router import RoutingDecision
    rd = RoutingDecision(
        use_small_model=False, model_id="gpt-4o", tool_subset=None,
        system_prompt_key="full", skip_metadata_extraction=False,
    )
    assert rd.model_id == "gpt-4o"
    assert rd.tool_subset is None


def test_classification_is_immutable():
    from query_router import QueryClassification
    qc = QueryClassification("simple", "greeting", 0.95, False)
    assert qc.suggested_tools == ()
    with pytest.raises(dataclasses.FrozenInstanceError):
        qc.category = "crm-read"


def test_llm_response():
    from query_router import LLMResponse
    r = LLMResponse(content="hello")
    assert r.finish_reason == "stop"
    assert r.content == "hello"


def test_tool_descriptor_equality_ignores_schema():
    from query_router import ToolDescriptor
    assert ToolDescriptor("search_leads", {"a": 1}) == ToolDescriptor("search_leads", {})


def test_circuit_breaker_starts_closed():
    from query_router import CircuitBreaker
    cb = CircuitBreaker(failure_threshold=3, cooldown_s=60)
    assert not cb.is_open("local")
