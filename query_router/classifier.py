"""Model-backed classification for queries the pattern rules miss."""

import asyncio
import json
import re
from dataclasses import replace
from typing import Any

from loguru import logger

from query_router.cache import ClassificationCache
from query_router.errors import AllProvidersFailedError, ClassificationParseError
from query_router.failover import FailoverChain, ProviderTier
from query_router.models import CATEGORIES, COMPLEXITIES, QueryClassification

SYSTEM_PROMPT = (
    "You classify user queries for a Sales CRM AI assistant. Return ONLY valid JSON.\n"
    "Categories: greeting, crm-read, crm-write, crm-analysis, research, document, email, "
    "meeting, admin, general-qa, multi-step\n"
    "admin: CRM admin tasks like validation rules, workflow rules, page layouts, approval "
    "processes, Apex code, components, reports, fields\n"
    "Complexity: simple (single tool, basic query), moderate (2-3 tools), "
    "complex (research, analysis, multi-step)"
)

USER_PROMPT = (
    'Classify: "{query}"\n'
    'Return JSON: {{"complexity":"simple|moderate|complex","category":"category",'
    '"confidence":0.0-1.0,"requiresTools":bool,"suggestedTools":["tool_name"],'
    '"reasoning":"brief"}}'
)

# Used whenever no backend produced a usable answer.
SAFE_DEFAULT = QueryClassification(
    complexity="moderate",
    category="general-qa",
    confidence=0.5,
    requires_tools=True,
    suggested_tools=(),
    reasoning="fallback-default",
)

_CATEGORY_ALIASES = {"sf-admin": "admin", "salesforce-admin": "admin"}
_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


def _first_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` span, honouring JSON strings."""
    start = text.find("{")
    if start < 0:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return default


def _as_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return SAFE_DEFAULT.confidence
    if confidence != confidence:  # NaN
        return SAFE_DEFAULT.confidence
    return min(1.0, max(0.0, confidence))


def parse_classification(text: str) -> QueryClassification:
    """Parse a model completion into a classification.

    Strips Markdown code fences, takes the first balanced JSON object and
    normalises it: unknown values fall back to the safe default's.

    Raises:
        ClassificationParseError: If no JSON object can be decoded.
    """
    cleaned = _FENCE_RE.sub("", text or "").replace("```", "").strip()
    span = _first_json_object(cleaned)
    if span is None:
        raise ClassificationParseError(f"no JSON object in response: {cleaned[:80]!r}")
    try:
        data = json.loads(span)
    except json.JSONDecodeError as e:
        raise ClassificationParseError(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ClassificationParseError("classification is not a JSON object")

    complexity = str(data.get("complexity", "")).strip().lower()
    if complexity not in COMPLEXITIES:
        complexity = SAFE_DEFAULT.complexity

    category = str(data.get("category", "")).strip().lower()
    category = _CATEGORY_ALIASES.get(category, category)
    if category not in CATEGORIES:
        category = SAFE_DEFAULT.category

    tools = data.get("suggestedTools") or []
    if not isinstance(tools, list):
        tools = []

    reasoning = str(data.get("reasoning") or "classified")
    return QueryClassification(
        complexity=complexity,
        category=category,
        confidence=_as_confidence(data.get("confidence", SAFE_DEFAULT.confidence)),
        requires_tools=_as_bool(data.get("requiresTools"), SAFE_DEFAULT.requires_tools),
        suggested_tools=tuple(str(t) for t in tools if isinstance(t, str)),
        reasoning=reasoning,
    )


class ModelClassifier:
    """Slow path: cache, then each backend tier in order, then the safe default.

    ``classify`` never raises; timeouts and backend or parse failures all
    resolve to ``SAFE_DEFAULT``. Only successful parses are cached.
    """

    def __init__(
        self,
        tiers: list[ProviderTier],
        cache: ClassificationCache,
        *,
        failover: FailoverChain | None = None,
        timeout_s: float = 8.0,
        max_tokens: int = 150,
    ):
        self._tiers = tiers
        self._cache = cache
        self._failover = failover or FailoverChain()
        self._timeout_s = timeout_s
        self._max_tokens = max_tokens

    @property
    def tiers(self) -> list[ProviderTier]:
        return self._tiers

    @staticmethod
    def build_messages(query: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": USER_PROMPT.format(query=query.strip())},
        ]

    async def classify(self, query: str) -> QueryClassification:
        cached = self._cache.get(query)
        if cached is not None:
            logger.debug(f"Classification cache hit for: {self._cache.key_for(query)[:30]}...")
            return cached

        try:
            result, tier, latency_ms = await asyncio.wait_for(
                self._failover.try_providers(
                    self._tiers,
                    self.build_messages(query),
                    parse=parse_classification,
                    max_tokens=self._max_tokens,
                    temperature=0.0,
                ),
                timeout=self._timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Model classification timed out after {self._timeout_s}s, using defaults")
            return SAFE_DEFAULT
        except AllProvidersFailedError as e:
            logger.warning(f"Model classification failed: {e}, using defaults")
            return SAFE_DEFAULT

        result = replace(result, reasoning=f"{tier.name}: {result.reasoning}")
        self._cache.set(query, result)
        logger.debug(f"Classified via {tier.name} in {latency_ms}ms: {result.category}/{result.complexity}")
        return result
