"""Core data models for query-router."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal

Complexity = Literal["simple", "moderate", "complex"]
Category = Literal[
    "greeting",
    "crm-read",
    "crm-write",
    "crm-analysis",
    "research",
    "document",
    "email",
    "meeting",
    "admin",
    "general-qa",
    "multi-step",
]
PromptKey = Literal["full", "minimal", "crm-only", "research-only"]

COMPLEXITIES: frozenset[str] = frozenset({"simple", "moderate", "complex"})
CATEGORIES: frozenset[str] = frozenset({
    "greeting", "crm-read", "crm-write", "crm-analysis", "research", "document",
    "email", "meeting", "admin", "general-qa", "multi-step",
})


@dataclass(frozen=True)
class QueryClassification:
    """Intent and complexity of one user query."""
    complexity: Complexity
    category: Category
    confidence: float
    requires_tools: bool
    suggested_tools: tuple[str, ...] = ()  # hint only
    reasoning: str = ""


@dataclass(frozen=True)
class RoutingDecision:
    """Model tier, tool allow-list and prompt variant for one turn.

    ``tool_subset`` is ``None`` for "all tools", an empty frozenset for
    "no tools", otherwise an allow-list of tool names.
    """
    use_small_model: bool
    model_id: str
    tool_subset: frozenset[str] | None
    system_prompt_key: PromptKey
    skip_metadata_extraction: bool


@dataclass(frozen=True)
class ConversationContext:
    """Shape of the ongoing conversation, as reported by the caller."""
    message_count: int = 0
    has_tool_calls: bool = False


@dataclass(frozen=True)
class ToolDescriptor:
    """A callable tool as exposed to the answering model."""
    name: str
    schema: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


@dataclass
class LLMResponse:
    """Response from a classifier backend."""
    content: str | None
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)
    model_used: str = ""


class LLMProvider(ABC):
    """Abstract base class for model backends used by the classifier."""

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 150,
        temperature: float = 0.0,
    ) -> LLMResponse:
        """Send a chat completion request."""
        ...

    @property
    def available(self) -> bool:
        """Whether the backend is worth calling at all."""
        return True

    async def aclose(self) -> None:
        """Release network resources held by the backend."""
        return None

    @property
    def name(self) -> str:
        return self.__class__.__name__
