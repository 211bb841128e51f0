"""
Visibility Filter Tests
-----------------------
Tests that the agent is shown exactly the tools it could execute.
"""

import logging
import pytest
from datetime import timedelta

from tools.authority import ToolAuthority
from tools.catalog import PermissionLevel, ToolDefinition
from tools.definitions import default_tools
from tools.visibility import VisibilityFilter

from conftest import FIXED_NOW


ALL_NAMES = [t.qualified_name for t in default_tools()]

LEGACY_EXPORT = ToolDefinition(
    provider="system",
    category="export",
    short_name="legacy_export",
    required_tier=PermissionLevel.CREATE,
)


@pytest.fixture
def authority(temp_db, clock):
    return ToolAuthority.from_tools(temp_db, default_tools(), clock=clock)


@pytest.fixture
def visibility(authority):
    return VisibilityFilter(authority)


class TestVisibleTools:
    """Tier filtering of candidate names."""

    def test_mixed_connector_tiers(self, authority, visibility):
        """Sheets tier 1 and Xero tier 0 show only what each grants."""
        authority.set_connector_permission("user-1", "google_sheets", 1)
        authority.set_connector_permission("user-1", "xero", 0)

        candidates = [
            "xero:get_invoices",
            "xero:approve_invoice",
            "google_sheets:write_sheet_range",
            "google_sheets:delete_sheet",
            "get_pip_guide",
        ]
        visible = visibility.get_visible_tools("user-1", candidates)

        assert visible == ["xero:get_invoices", "google_sheets:write_sheet_range", "get_pip_guide"]

    def test_preserves_input_order(self, visibility):
        candidates = ["get_pip_guide", "gmail:search_gmail", "xero:get_invoices"]
        assert visibility.get_visible_tools("user-1", candidates) == candidates

    def test_unknown_names_pass_through(self, visibility):
        """Tools with no known tier are never hidden."""
        assert visibility.get_visible_tools("user-1", ["mystery_tool"]) == ["mystery_tool"]

    def test_vacation_hides_writes(self, authority, visibility):
        authority.set_connector_permission("user-1", "xero", 3)
        authority.set_vacation_mode("user-1", FIXED_NOW + timedelta(days=1))

        visible = visibility.get_visible_tools("user-1", ALL_NAMES)

        assert "xero:get_invoices" in visible
        assert "create_entities" in visible
        assert "xero:create_invoice_draft" not in visible
        assert "xero:void_invoice" not in visible

    def test_global_level_fallback(self, temp_db, visibility):
        temp_db.upsert_user_settings("user-1", permission_level=2)
        visible = visibility.get_visible_tools("user-1", ALL_NAMES)

        assert "gmail:search_gmail" in visible
        assert "xero:approve_invoice" in visible
        assert "google_sheets:delete_sheet" in visible
        assert "xero:void_invoice" not in visible

    def test_settings_change_between_calls(self, authority, visibility):
        """Nothing is cached across calls."""
        assert "xero:approve_invoice" not in visibility.get_visible_tools("user-1", ALL_NAMES)

        authority.set_connector_permission("user-1", "xero", 2)

        assert "xero:approve_invoice" in visibility.get_visible_tools("user-1", ALL_NAMES)

    def test_unmapped_uses_global_level(self, temp_db, clock):
        visibility = VisibilityFilter(ToolAuthority.from_tools(temp_db, [LEGACY_EXPORT], clock=clock))

        assert visibility.get_visible_tools("user-1", ["legacy_export"]) == []

        temp_db.upsert_user_settings("user-1", permission_level=1)
        assert visibility.get_visible_tools("user-1", ["legacy_export"]) == ["legacy_export"]

    def test_unmapped_gap_is_logged(self, temp_db, clock, caplog):
        visibility = VisibilityFilter(ToolAuthority.from_tools(temp_db, [LEGACY_EXPORT], clock=clock))

        with caplog.at_level(logging.WARNING, logger="toolgate.tools.authority"):
            visibility.get_visible_tools("user-1", ["legacy_export"])

        assert any("UNMAPPED_CONNECTOR" in r.getMessage() for r in caplog.records)

    def test_does_not_create_rows(self, temp_db, visibility):
        visibility.get_visible_tools("user-1", ALL_NAMES)

        assert temp_db.get_user_settings("user-1") is None
        assert temp_db.list_connector_permissions("user-1") == []


class TestAgreementWithChecks:
    """Visibility and execution-time checks never disagree."""

    @pytest.mark.parametrize("grants,global_level,vacation", [
        ({}, None, False),
        ({"xero": 1}, None, False),
        ({"xero": 3, "google_sheets": 2}, None, False),
        ({"gmail": 0}, 2, False),
        ({"xero": 3}, 1, True),
        ({}, 3, False),
    ])
    def test_visible_iff_allowed(self, authority, visibility, temp_db, grants, global_level, vacation):
        for connector, tier in grants.items():
            authority.set_connector_permission("user-1", connector, tier)
        if global_level is not None:
            temp_db.upsert_user_settings("user-1", permission_level=global_level)
        if vacation:
            authority.set_vacation_mode("user-1", FIXED_NOW + timedelta(hours=1))

        visible = visibility.get_visible_tools("user-1", ALL_NAMES)

        assert set(visible) <= set(ALL_NAMES)
        for name in ALL_NAMES:
            allowed = authority.check_tool_permission("user-1", name).allowed
            assert (name in visible) == allowed, name


class TestAgentTools:
    """Connection filter followed by tier filter."""

    def test_connection_then_tiers(self, authority, visibility):
        authority.set_connector_permission("user-1", "xero", 1)

        tools = visibility.get_agent_tools("user-1", default_tools(), connected_providers=["xero"])
        names = {t.qualified_name for t in tools}

        assert "xero:create_invoice_draft" in names
        assert "xero:approve_invoice" not in names
        assert "get_pip_guide" in names
        assert not any(n.startswith("gmail:") for n in names)

    def test_without_connection_filter(self, visibility):
        tools = visibility.get_agent_tools("user-1", default_tools())
        assert any(t.provider == "gmail" for t in tools)

    def test_returns_definitions_in_order(self, visibility):
        tools = default_tools()
        result = visibility.get_agent_tools("user-1", tools, connected_providers=["gmail"])

        assert result == [t for t in tools if t.provider in ("system", "gmail")]
