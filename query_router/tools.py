"""Tool groups and the per-turn tool filter."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any


class ToolGroup(frozenset):
    """Immutable named set of tool names. ``a | b`` yields a new group."""

    def __new__(cls, name: str, tools: Iterable[str] = ()):
        group = super().__new__(cls, tools)
        group.name = name
        return group

    def __or__(self, other):  # type: ignore[override]
        other_name = getattr(other, "name", "set")
        return ToolGroup(f"{self.name}+{other_name}", frozenset.__or__(self, frozenset(other)))

    def __repr__(self) -> str:
        return f"ToolGroup({self.name!r}, {len(self)} tools)"


READ = ToolGroup("read", [
    "search_leads", "get_lead_details", "get_top_leads",
    "search_opportunities", "get_opportunity_details", "get_pipeline_stats",
    "search_accounts", "get_account_details",
    "search_contacts", "get_contact_details",
    "search_quotes", "get_quote_details",
    "search_contracts", "get_contract_details",
    "get_my_tasks", "get_activity_timeline",
    "get_forecast", "get_at_risk_opportunities", "get_recommended_actions",
    "get_account_signals", "get_my_ai_insights",
])

WRITE = ToolGroup("write", [
    "create_lead", "update_lead", "delete_lead", "qualify_lead", "convert_lead",
    "create_opportunity", "update_opportunity", "delete_opportunity",
    "close_opportunity", "analyze_opportunity",
    "create_account", "update_account", "delete_account",
    "create_contact", "update_contact", "delete_contact",
    "create_task", "update_task", "complete_task", "delete_task",
    "log_activity", "create_note", "get_notes", "delete_note",
])

QUOTES = ToolGroup("quotes", [
    "search_quotes", "get_quote_details", "create_quote", "update_quote", "delete_quote",
    "search_contracts", "get_contract_details", "create_contract", "update_contract",
    "search_campaigns", "get_campaign_details", "get_campaign_roi",
])

RESEARCH = ToolGroup("research", [
    "web_search", "research_company", "search_company_news",
    "search_leadership", "search_competitors",
])

DOCUMENT = ToolGroup("document", [
    "list_indexed_documents", "search_document", "get_document_summary",
])

EMAIL = ToolGroup("email", [
    "send_email", "get_email_threads", "get_awaiting_responses",
    "get_thread_messages", "get_email_drafts", "send_email_draft",
])

MEETING = ToolGroup("meeting", [
    "schedule_meeting", "get_upcoming_meetings", "list_meetings", "get_meeting_details",
    "get_meeting_rsvp_status", "get_meeting_participants", "update_meeting_rsvp",
    "cancel_meeting", "get_meeting_response_history", "resend_meeting_invite",
    "check_meeting_availability",
])

ADMIN = ToolGroup("admin", [
    # Validation rules
    "sf_list_validation_rules", "sf_create_validation_rule", "sf_update_validation_rule",
    "sf_delete_validation_rule", "sf_toggle_validation_rule",
    # Page layouts
    "sf_list_page_layouts", "sf_create_page_layout", "sf_update_page_layout",
    "sf_assign_page_layout",
    # Workflow rules
    "sf_list_workflow_rules", "sf_create_workflow_rule", "sf_delete_workflow_rule",
    # Apex
    "sf_deploy_apex_class", "sf_deploy_apex_trigger", "sf_get_apex_class",
    "sf_run_apex_tests", "sf_delete_apex_class",
    # Lightning web components
    "sf_deploy_lwc", "sf_list_lwc_components", "sf_delete_lwc",
    # Approval processes
    "sf_list_approval_processes", "sf_create_approval_process", "sf_toggle_approval_process",
    "sf_submit_for_approval", "sf_process_approval",
    # Reports and dashboards
    "sf_list_reports", "sf_create_report", "sf_run_report", "sf_update_report",
    "sf_delete_report", "sf_list_report_folders", "sf_get_report_types",
    "sf_list_dashboards", "sf_get_dashboard_metadata", "sf_refresh_dashboard",
    "sf_delete_dashboard",
    # Fields and objects
    "sf_list_fields", "sf_describe_field", "sf_create_field", "sf_update_field",
    "sf_delete_field", "sf_list_objects", "sf_describe_object",
])

TOOL_GROUPS: dict[str, ToolGroup] = {
    group.name: group
    for group in (READ, WRITE, RESEARCH, DOCUMENT, EMAIL, MEETING, ADMIN, QUOTES)
}


def _tool_name(tool: Any) -> str | None:
    if isinstance(tool, dict):
        return tool.get("name")
    return getattr(tool, "name", None)


def filter_tools(catalog: Sequence[Any], tool_subset: Iterable[str] | None) -> list[Any]:
    """Restrict ``catalog`` to the names in ``tool_subset``.

    ``None`` keeps every tool, an empty subset yields no tools. Catalog order
    is preserved; names missing from the catalog are ignored. Entries may be
    ``ToolDescriptor`` objects or plain ``{"name": ...}`` dicts.
    """
    if tool_subset is None:
        return list(catalog)
    allowed = frozenset(tool_subset)
    if not allowed:
        return []
    return [tool for tool in catalog if _tool_name(tool) in allowed]
