"""Routing decision table: classification in, model/tools/prompt out.

Pure and deterministic. Rules are checked top to bottom; the greeting and
simple CRM-read rules refine the moderate rule, and the research and CRM
analysis rules refine the catch-all.
"""

from query_router.models import ConversationContext, QueryClassification, RoutingDecision
from query_router.tools import ADMIN, EMAIL, MEETING, QUOTES, READ, RESEARCH, WRITE

SMALL_MODEL_MIN_CONFIDENCE = 0.8

NO_TOOLS: frozenset[str] = frozenset()

# Moderate-complexity tool sets by category; absent categories get all tools.
MODERATE_TOOLSETS: dict[str, frozenset[str]] = {
    "crm-read": READ,
    "crm-write": READ | WRITE,
    "email": EMAIL | READ,
    "meeting": MEETING | READ,
    "admin": ADMIN | READ,
}


def disabled_decision(large_model: str) -> RoutingDecision:
    """Fail-open decision used when routing is switched off."""
    return RoutingDecision(
        use_small_model=False,
        model_id=large_model,
        tool_subset=None,
        system_prompt_key="full",
        skip_metadata_extraction=False,
    )


def make_routing_decision(
    classification: QueryClassification,
    context: ConversationContext | None = None,
    *,
    small_model: str,
    large_model: str,
) -> RoutingDecision:
    """Map a classification to a routing decision.

    ``context`` is accepted so callers can pass the conversation shape, but
    no rule currently depends on it.
    """
    complexity = classification.complexity
    category = classification.category
    confident = classification.confidence >= SMALL_MODEL_MIN_CONFIDENCE

    if complexity == "simple" and confident:
        if category == "greeting":
            return RoutingDecision(
                use_small_model=True,
                model_id=small_model,
                tool_subset=NO_TOOLS,
                system_prompt_key="minimal",
                skip_metadata_extraction=True,
            )
        if category == "crm-read":
            return RoutingDecision(
                use_small_model=True,
                model_id=small_model,
                tool_subset=READ,
                system_prompt_key="crm-only",
                skip_metadata_extraction=True,
            )

    if complexity == "moderate":
        return RoutingDecision(
            use_small_model=False,
            model_id=large_model,
            tool_subset=MODERATE_TOOLSETS.get(category),
            system_prompt_key="full",
            skip_metadata_extraction=category in ("crm-read", "crm-write"),
        )

    if complexity == "complex" and category == "research":
        return RoutingDecision(
            use_small_model=False,
            model_id=large_model,
            tool_subset=RESEARCH | READ,
            system_prompt_key="research-only",
            skip_metadata_extraction=False,
        )

    if complexity == "complex" and category == "crm-analysis":
        return RoutingDecision(
            use_small_model=False,
            model_id=large_model,
            tool_subset=READ | WRITE | QUOTES,
            system_prompt_key="full",
            skip_metadata_extraction=False,
        )

    return RoutingDecision(
        use_small_model=False,
        model_id=large_model,
        tool_subset=None,
        system_prompt_key="full",
        skip_metadata_extraction=False,
    )
