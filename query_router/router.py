"""QueryRouter: pattern fast path, model-backed slow path, routing decision."""

import time
from collections.abc import Sequence
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from query_router.backends import LocalSLMProvider, RemoteChatProvider
from query_router.cache import ClassificationCache
from query_router.classifier import SAFE_DEFAULT, ModelClassifier
from query_router.config import RouterSettings
from query_router.decision import disabled_decision, make_routing_decision
from query_router.failover import FailoverChain, ProviderTier
from query_router.models import ConversationContext, QueryClassification, RoutingDecision
from query_router.patterns import fast_classify
from query_router.tools import filter_tools


class _ContextPayload(BaseModel):
    """Conversation shape as sent by callers (camelCase or snake_case keys)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    message_count: int = Field(default=0, ge=0, alias="messageCount")
    has_tool_calls: bool = Field(default=False, alias="hasToolCalls")


def _context_from_dict(raw: dict[str, Any]) -> ConversationContext:
    try:
        payload = _ContextPayload.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed conversation context {raw!r}: {e.error_count()} error(s)")
        return ConversationContext()
    return ConversationContext(message_count=payload.message_count, has_tool_calls=payload.has_tool_calls)


class QueryRouter:
    """Decides model tier, tool subset and prompt variant for each user turn.

    Routing order for one message:
      1. Router disabled → large model, all tools, full prompt
      2. Pattern rules (no model call)
      3. Classification cache, then local SLM, then remote small model
      4. Safe default if every backend failed or timed out

    ``route_query`` never raises on backend, parse or timeout failures; the
    caller always gets a usable decision.
    """

    def __init__(
        self,
        tiers: list[ProviderTier],
        *,
        small_model: str = "gpt-4o-mini",
        large_model: str = "gpt-4o",
        enabled: bool = True,
        cache: ClassificationCache | None = None,
        failover: FailoverChain | None = None,
        classification_timeout_s: float = 8.0,
        classifier_max_tokens: int = 150,
    ):
        self._small_model = small_model
        self._large_model = large_model
        self._enabled = enabled
        self._cache = cache or ClassificationCache()
        self._classifier = ModelClassifier(
            tiers,
            self._cache,
            failover=failover,
            timeout_s=classification_timeout_s,
            max_tokens=classifier_max_tokens,
        )
        self._last_classification: QueryClassification | None = None

        logger.info(
            f"Query router initialized - small: {small_model}, large: {large_model}, "
            f"enabled: {enabled}, tiers: {[t.name for t in tiers]}"
        )

    @classmethod
    def from_settings(cls, settings: RouterSettings | None = None) -> "QueryRouter":
        """Build the router and its backends from process configuration."""
        settings = settings or RouterSettings()
        tiers: list[ProviderTier] = []

        if settings.USE_LOCAL_SLM_ROUTER:
            local = LocalSLMProvider(
                endpoint=settings.LOCAL_SLM_ENDPOINT,
                api_key=settings.LOCAL_SLM_API_KEY,
                model=settings.LOCAL_SLM_MODEL,
                health_interval_s=settings.LOCAL_SLM_HEALTH_INTERVAL_S,
                timeout_s=settings.LOCAL_SLM_TIMEOUT_S,
            )
            tiers.append(
                ProviderTier("local", local, settings.LOCAL_SLM_MODEL, timeout_s=settings.LOCAL_SLM_TIMEOUT_S)
            )

        remote = RemoteChatProvider(
            api_key=settings.AZURE_OPENAI_API_KEY if settings.remote_configured else None,
            api_base=settings.AZURE_OPENAI_ENDPOINT,
            api_version=settings.AZURE_OPENAI_API_VERSION,
            default_model=settings.SMALL_MODEL_ID,
            timeout_s=settings.CLASSIFICATION_TIMEOUT_S,
        )
        tiers.append(ProviderTier("remote", remote, settings.SMALL_MODEL_ID))

        cache = ClassificationCache(
            ttl_s=settings.CLASSIFICATION_CACHE_TTL_S,
            key_prefix_length=settings.CACHE_KEY_PREFIX_LENGTH,
            max_entries=settings.CLASSIFICATION_CACHE_MAX_ENTRIES,
        )
        return cls(
            tiers,
            small_model=settings.SMALL_MODEL_ID,
            large_model=settings.AZURE_OPENAI_DEPLOYMENT_NAME,
            enabled=settings.ENABLE_QUERY_ROUTER,
            cache=cache,
            classification_timeout_s=settings.CLASSIFICATION_TIMEOUT_S,
            classifier_max_tokens=settings.CLASSIFIER_MAX_TOKENS,
        )

    # --- Lifecycle ---

    async def startup(self, sweep_interval_s: float | None = None) -> None:
        """Check the local backend, keep re-checking it, and start the cache sweeper."""
        for tier in self._classifier.tiers:
            if isinstance(tier.provider, LocalSLMProvider):
                if await tier.provider.check_health():
                    logger.info(f"Local SLM connected: {tier.provider.api_base} ({tier.model})")
                else:
                    logger.warning(f"Local SLM not available at {tier.provider.api_base}")
                tier.provider.start_health_checks()
        self._cache.start_sweeper(sweep_interval_s)

    async def aclose(self) -> None:
        await self._cache.stop_sweeper()
        for tier in self._classifier.tiers:
            await tier.provider.aclose()

    # --- Routing ---

    async def classify(self, message: str) -> QueryClassification:
        """Fast path first, model-backed classifier on a miss."""
        classification = fast_classify(message)
        if classification is not None:
            logger.debug(f"Fast path hit: {classification.reasoning}")
            return classification
        try:
            return await self._classifier.classify(message)
        except Exception as e:
            logger.error(f"Unexpected classification error: {e}")
            return SAFE_DEFAULT

    async def route_query(
        self,
        message: str,
        context: ConversationContext | dict[str, Any] | None = None,
    ) -> RoutingDecision:
        """Classify ``message`` and return the routing decision for this turn."""
        if not self._enabled:
            return disabled_decision(self._large_model)

        if isinstance(context, dict):
            context = _context_from_dict(context)

        start = time.monotonic()
        classification = await self.classify(message)
        self._last_classification = classification
        logger.debug(
            f"Query classified in {int((time.monotonic() - start) * 1000)}ms: "
            f"{classification.category}/{classification.complexity} "
            f"({classification.confidence:.2f}, {classification.reasoning})"
        )

        return make_routing_decision(
            classification,
            context,
            small_model=self._small_model,
            large_model=self._large_model,
        )

    def get_filtered_tools(self, all_tools: Sequence[Any], decision: RoutingDecision) -> list[Any]:
        """Apply ``decision.tool_subset`` to the full tool catalog."""
        return filter_tools(all_tools, decision.tool_subset)

    # --- Accessors ---

    @property
    def last_classification(self) -> QueryClassification | None:
        return self._last_classification

    @property
    def cache(self) -> ClassificationCache:
        return self._cache

    def is_enabled(self) -> bool:
        return self._enabled

    def model_ids(self) -> dict[str, str]:
        return {"small": self._small_model, "large": self._large_model}

    def clear_cache(self) -> None:
        self._cache.clear()
