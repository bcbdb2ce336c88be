"""query-router: pattern + small-model query classification and model/tool routing."""

from query_router.cache import ClassificationCache
from query_router.classifier import SAFE_DEFAULT, ModelClassifier, parse_classification
from query_router.config import RouterSettings
from query_router.decision import make_routing_decision
from query_router.failover import CircuitBreaker, FailoverChain, ProviderTier
from query_router.models import (
    ConversationContext,
    LLMProvider,
    LLMResponse,
    QueryClassification,
    RoutingDecision,
    ToolDescriptor,
)
from query_router.patterns import fast_classify
from query_router.router import QueryRouter
from query_router.tools import TOOL_GROUPS, ToolGroup, filter_tools

__all__ = [
    "ClassificationCache",
    "CircuitBreaker",
    "ConversationContext",
    "FailoverChain",
    "LLMProvider",
    "LLMResponse",
    "ModelClassifier",
    "ProviderTier",
    "QueryClassification",
    "QueryRouter",
    "RouterSettings",
    "RoutingDecision",
    "SAFE_DEFAULT",
    "TOOL_GROUPS",
    "ToolDescriptor",
    "ToolGroup",
    "fast_classify",
    "filter_tools",
    "make_routing_decision",
    "parse_classification",
]
