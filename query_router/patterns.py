"""
Pattern Classifier

Deterministic fast path: classifies a query with an ordered list of regex
rules before any model is consulted. The first matching rule wins, so more
specific rules must sit above the rules they refine.
"""

import re
from dataclasses import dataclass
from typing import Optional

from query_router.models import Category, Complexity, QueryClassification

_I = re.IGNORECASE


@dataclass(frozen=True)
class PatternRule:
    """One ``(matcher, classification)`` entry of the fast-path cascade."""

    name: str
    pattern: re.Pattern
    complexity: Complexity
    category: Category
    confidence: float
    suggested_tools: tuple[str, ...] = ()
    requires_tools: bool = True

    def match(self, query: str) -> Optional[QueryClassification]:
        if not self.pattern.search(query):
            return None
        return QueryClassification(
            complexity=self.complexity,
            category=self.category,
            confidence=self.confidence,
            requires_tools=self.requires_tools,
            suggested_tools=self.suggested_tools,
            reasoning=f"pattern:{self.name}",
        )


def _rule(name, regex, complexity, category, confidence, tools=(), requires_tools=True):
    return PatternRule(
        name=name,
        pattern=re.compile(regex, _I),
        complexity=complexity,
        category=category,
        confidence=confidence,
        suggested_tools=tuple(tools),
        requires_tools=requires_tools,
    )


# ═══════════════════════════════════════════════════════════════════════════
# GREETINGS
# ═══════════════════════════════════════════════════════════════════════════

GREETING_RULES = [
    _rule(
        "greeting",
        r"^(?:hi|hello|hey|good\s*(?:morning|afternoon|evening)|howdy|greetings"
        r"|thanks|thank\s*you|bye|goodbye)\b",
        "simple", "greeting", 0.95, requires_tools=False,
    ),
]


# ═══════════════════════════════════════════════════════════════════════════
# CRM READS
# ═══════════════════════════════════════════════════════════════════════════

_SHOW = r"^(?:show|list|get|display|find|view)\s+(?:me\s+)?(?:my\s+)?(?:all\s+)?"

CRM_READ_RULES = [
    _rule("show_leads", _SHOW + r"(?:top\s+)?(?:recent\s+)?(?:leads?|prospects?)\b",
          "simple", "crm-read", 0.9, ["search_leads", "get_top_leads"]),
    _rule("show_opportunities",
          _SHOW + r"(?:open\s+)?(?:deals?|opportunit(?:y|ies)|pipeline)\b",
          "simple", "crm-read", 0.9, ["search_opportunities", "get_pipeline_stats"]),
    _rule("show_tasks",
          r"^(?:show|list|get|what\s+are|view)\s+(?:me\s+)?(?:my\s+)?(?:open\s+)?(?:overdue\s+)?"
          r"(?:tasks?|to-?dos?|action\s+items?)\b",
          "simple", "crm-read", 0.9, ["get_my_tasks"]),
    _rule("show_accounts",
          _SHOW + r"(?:accounts?|customers?|clients?|compan(?:y|ies))\b",
          "simple", "crm-read", 0.9, ["search_accounts", "get_account_details"]),
    _rule("show_contacts", _SHOW + r"(?:contacts?|people)\b",
          "simple", "crm-read", 0.9, ["search_contacts", "get_contact_details"]),
    _rule("show_activities",
          r"^(?:show|list|get|display|view)\s+(?:me\s+)?(?:my\s+)?(?:recent\s+)?"
          r"(?:activit(?:y|ies)|timeline|history)\b",
          "simple", "crm-read", 0.9, ["get_activity_timeline"]),
    _rule("show_signals",
          r"^(?:show|list|get|display|view|what)\s+(?:me\s+)?(?:are\s+)?(?:my\s+)?(?:all\s+)?"
          r"(?:account\s+)?(?:signals?|alerts?|insights?|notifications?)\b",
          "simple", "crm-read", 0.95, ["get_account_signals"]),
    _rule("pipeline_stats",
          r"^(?:how|what|show)\b.*\b(?:pipeline|deals?|opportunit(?:y|ies))'?s?\s+(?:is\s+)?"
          r"(?:look(?:ing|s)?|doing|status|stats|health|summary)\b",
          "simple", "crm-read", 0.85, ["get_pipeline_stats", "get_forecast"]),
    _rule("forecast",
          r"^(?:what|show|get)(?:'s|\s+is|\s+me)?\s+(?:the\s+|my\s+)?(?:forecast|revenue|projections?)\b",
          "simple", "crm-read", 0.85, ["get_forecast", "get_pipeline_stats"]),
    _rule("get_details",
          r"^(?:get|show|what\s+(?:is|are)|tell\s+me\s+about)\s+(?:the\s+)?(?:details?|info|information)"
          r"\s+(?:for|about|on)\b",
          "simple", "crm-read", 0.85,
          ["get_lead_details", "get_opportunity_details", "get_account_details"]),
    _rule("what_to_do",
          r"^(?:what\s+should\s+i|what\s+do\s+i\s+need\s+to|what'?s\s+next|what\s+are\s+my\s+priorities)",
          "simple", "crm-read", 0.85,
          ["get_recommended_actions", "get_my_tasks", "get_at_risk_opportunities"]),
]


# ═══════════════════════════════════════════════════════════════════════════
# CRM WRITES
# ═══════════════════════════════════════════════════════════════════════════

CRM_WRITE_RULES = [
    _rule("create_lead", r"^(?:create|add|new|make)\s+(?:a\s+)?(?:new\s+)?(?:lead|prospect)\b",
          "moderate", "crm-write", 0.9, ["create_lead"]),
    _rule("create_task",
          r"^(?:create|add|new|make|schedule)\s+(?:a\s+)?(?:new\s+)?(?:task|reminder|to-?do)\b",
          "moderate", "crm-write", 0.9, ["create_task"]),
    _rule("create_opportunity",
          r"^(?:create|add|new|make)\s+(?:an?\s+)?(?:new\s+)?(?:opportunity|deal)\b",
          "moderate", "crm-write", 0.9, ["create_opportunity"]),
    _rule("update_record",
          r"^(?:update|change|modify|edit|set)\s+(?:the\s+|this\s+|my\s+)?"
          r"(?:lead|opportunity|deal|account|contact|task)\b",
          "moderate", "crm-write", 0.85,
          ["update_lead", "update_opportunity", "update_account", "update_contact"]),
]


# ═══════════════════════════════════════════════════════════════════════════
# EMAIL / MEETINGS
# ═══════════════════════════════════════════════════════════════════════════

EMAIL_RULES = [
    _rule("send_email",
          r"^(?:send|compose|draft|write)\s+(?:an?\s+)?(?:(?:quick|follow-?up)\s+)?(?:e-?mail|message|mail)\b",
          "moderate", "email", 0.9, ["send_email"]),
    _rule("check_emails",
          r"^(?:show|check|get|what)\s+(?:me\s+)?(?:are\s+)?(?:all\s+)?(?:my\s+)?(?:the\s+)?"
          r"(?:e-?mails?|inbox|messages?|awaiting|pending|waiting|overdue|follow-?ups?)\b",
          "simple", "email", 0.9, ["get_email_threads", "get_awaiting_responses"]),
]

MEETING_RULES = [
    _rule("schedule_meeting",
          r"^(?:schedule|book|create|set\s+up)\s+(?:an?\s+)?(?:meeting|call|zoom|teams)\b",
          "moderate", "meeting", 0.9, ["schedule_meeting"]),
    _rule("meeting_rsvp",
          r"^(?:show|get|check|what)\s+(?:is\s+|are\s+)?(?:the\s+)?(?:rsvps?|responses?)\b",
          "simple", "meeting", 0.9,
          ["get_meeting_rsvp_status", "list_meetings", "get_meeting_participants"]),
    _rule("meeting_participants",
          r"^(?:who|list|show|get)\s+(?:is\s+|are\s+)?(?:the\s+)?(?:invited|attending|participants?|attendees?)\b",
          "simple", "meeting", 0.9,
          ["get_meeting_participants", "list_meetings", "get_meeting_rsvp_status"]),
    _rule("cancel_meeting",
          r"\b(?:cancel|delete|remove)\s+(?:(?:the|my|all|these)\s+)*(?:meetings?|calls?|events?)\b",
          "moderate", "meeting", 0.9, ["cancel_meeting", "list_meetings"]),
    _rule("list_meetings",
          r"\b(?:list|show|get)\s+(?:me\s+)?(?:(?:my|all|the|upcoming)\s+)*(?:meetings?|scheduled\s+calls?)\b",
          "simple", "meeting", 0.9, ["list_meetings", "get_upcoming_meetings"]),
]


# ═══════════════════════════════════════════════════════════════════════════
# ADMIN / METADATA
# ═══════════════════════════════════════════════════════════════════════════

_ADMIN_FILLER = r"\s+(?:(?:a|an|the|all|my|new|existing|salesforce)\s+)*"
_ADMIN_LIST_VERBS = r"(?:list|show|describe|view)"
_ADMIN_WRITE_VERBS = (
    r"(?:create|add|make|update|change|delete|remove|toggle|activate|deactivate"
    r"|deploy|assign|submit|approve|reject|run|test|refresh)"
)


def _admin_rules(name, noun, read_tools, write_tools):
    """A listing rule (simple) and a write rule (moderate) for one metadata kind."""
    return [
        _rule(f"admin_list_{name}", rf"\b{_ADMIN_LIST_VERBS}{_ADMIN_FILLER}{noun}\b",
              "simple", "admin", 0.9, read_tools),
        _rule(f"admin_{name}", rf"\b{_ADMIN_WRITE_VERBS}{_ADMIN_FILLER}{noun}\b",
              "moderate", "admin", 0.9, write_tools),
    ]


ADMIN_RULES = [
    *_admin_rules(
        "validation_rule", r"validation\s+rules?",
        ["sf_list_validation_rules"],
        ["sf_create_validation_rule", "sf_list_validation_rules", "sf_update_validation_rule"],
    ),
    # "Require a close date on Opportunity" is a validation rule in disguise.
    _rule("admin_metadata_constraint",
          r"\b(?:prevent|require|enforce|validate)\s+.*\b(?:on|for)\s+"
          r"(?:opportunit(?:y|ies)|leads?|accounts?|contacts?|cases?|tasks?)\b",
          "moderate", "admin", 0.9,
          ["sf_create_validation_rule", "sf_list_validation_rules", "sf_update_validation_rule"]),
    *_admin_rules(
        "workflow_rule", r"workflow(?:\s+rules?)?",
        ["sf_list_workflow_rules"],
        ["sf_create_workflow_rule", "sf_list_workflow_rules"],
    ),
    *_admin_rules(
        "approval_process", r"approvals?(?:\s+process(?:es)?)?",
        ["sf_list_approval_processes"],
        ["sf_create_approval_process", "sf_list_approval_processes", "sf_submit_for_approval"],
    ),
    *_admin_rules(
        "page_layout", r"(?:page\s+)?layouts?",
        ["sf_list_page_layouts"],
        ["sf_create_page_layout", "sf_list_page_layouts", "sf_assign_page_layout"],
    ),
    *_admin_rules(
        "apex", r"apex(?:\s+(?:class(?:es)?|triggers?|code))?",
        ["sf_get_apex_class"],
        ["sf_deploy_apex_class", "sf_deploy_apex_trigger", "sf_run_apex_tests"],
    ),
    *_admin_rules(
        "component", r"(?:lwc|lightning(?:\s+web)?\s+components?)",
        ["sf_list_lwc_components"],
        ["sf_deploy_lwc", "sf_list_lwc_components"],
    ),
    *_admin_rules(
        "report", r"(?:reports?|dashboards?)",
        ["sf_list_reports", "sf_list_dashboards"],
        ["sf_create_report", "sf_run_report", "sf_list_reports", "sf_list_dashboards"],
    ),
    *_admin_rules(
        "field", r"(?:custom\s+)?(?:fields?|picklists?|objects?)",
        ["sf_list_fields", "sf_describe_field", "sf_list_objects"],
        ["sf_create_field", "sf_list_fields", "sf_describe_field"],
    ),
]


# ═══════════════════════════════════════════════════════════════════════════
# COMPLEX INTENTS (order matters)
# ═══════════════════════════════════════════════════════════════════════════

_RESEARCH_TOOLS = ("research_company", "web_search", "search_company_news")
_ANALYSIS_VERBS = r"\b(?:analy[sz]e|compare|evaluate|assess|forecast|predict|recommend|suggest\s+(?:a\s+)?strategy)\b"

COMPLEX_RULES = [
    _rule("research_subject", r"^research\s+\S.*",
          "complex", "research", 0.85, _RESEARCH_TOOLS),
    _rule("research_keywords",
          r"\b(?:investigate|deep\s*dive|comprehensive\s+report|detailed\s+report)\s+(?:on|about|for|into)\s+",
          "complex", "research", 0.85, _RESEARCH_TOOLS),
    # Must precede the CRM analysis rules: "Analyze Amex's quarterly revenue"
    # is web research, "Analyze our quarterly revenue" is not.
    _rule("company_financial_analysis",
          r"\b(?:analy[sz]e|analysis\s+of|assess)\s+(?!(?:my|our)\b).{0,50}?"
          r"\b(?:financials?|stock|revenue|earnings|market\s+(?:cap|share|position)"
          r"|business\s+performance|quarterly|annual|q[1-4]|fy\d{2,4})\b",
          "complex", "research", 0.9, _RESEARCH_TOOLS),
    _rule("multi_step",
          r"\b(?:and\s+then|after\s+that|additionally|furthermore)\b"
          r"|\bcreate\b.*\band\b.*\bsend\b|\bfind\b.*\band\b.*\bupdate\b",
          "complex", "multi-step", 0.8),
    _rule("crm_analysis",
          _ANALYSIS_VERBS + r".*\b(?:pipeline|deals?|opportunit(?:y|ies)|leads?|accounts?|contacts?|my|our)\b",
          "complex", "crm-analysis", 0.85,
          ["analyze_opportunity", "get_at_risk_opportunities", "get_recommended_actions",
           "get_pipeline_stats"]),
    _rule("generic_analysis", _ANALYSIS_VERBS,
          "complex", "crm-analysis", 0.7,
          ["analyze_opportunity", "get_at_risk_opportunities", "get_recommended_actions"]),
]


# Ordered by priority (most specific first)
PATTERN_RULES: list[PatternRule] = [
    *GREETING_RULES,
    *CRM_READ_RULES,
    *CRM_WRITE_RULES,
    *EMAIL_RULES,
    *MEETING_RULES,
    *ADMIN_RULES,
    *COMPLEX_RULES,
]


def fast_classify(query: str, rules: Optional[list[PatternRule]] = None) -> Optional[QueryClassification]:
    """
    Try every rule in priority order.

    Args:
        query: Raw user message
        rules: Rule list to use instead of ``PATTERN_RULES``

    Returns:
        Classification of the first matching rule, or None when the query
        must be escalated to the model-backed classifier
    """
    text = (query or "").strip()
    if not text:
        return None

    for rule in PATTERN_RULES if rules is None else rules:
        result = rule.match(text)
        if result is not None:
            return result

    return None
