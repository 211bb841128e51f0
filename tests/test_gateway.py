"""
Tool Gateway Tests
------------------
End-to-end flows over a real settings store: what the agent sees at turn
start, and the resolve-then-check path for a named tool.
"""

import pytest
from datetime import timedelta

from core.errors import ErrorCategory
from core.gateway import build_gateway
from providers.registry import Provider, ProviderType
from tools.catalog import DuplicateToolError, PermissionLevel, ToolDefinition
from tools.definitions import default_tools
from tools.resolver import Ambiguous, NotConnected, Resolved

from conftest import FIXED_NOW


MYOB_TOOLS = [
    ToolDefinition(
        provider="myob",
        category="invoices",
        short_name="get_invoices",
        required_tier=PermissionLevel.READ_ONLY,
        connector="myob",
        provider_type=ProviderType.ACCOUNTING,
    ),
]

TWO_LEDGERS = {
    "xero": Provider("xero", ProviderType.ACCOUNTING, "Xero", "xero", implemented=True),
    "myob": Provider("myob", ProviderType.ACCOUNTING, "MYOB", "myob", implemented=True),
}


@pytest.fixture
def gateway(temp_db, clock):
    return build_gateway(temp_db, clock=clock)


@pytest.fixture
def ledger_gateway(temp_db, clock):
    """Xero and MYOB both implemented and both exposing get_invoices."""
    return build_gateway(temp_db, tools=default_tools() + MYOB_TOOLS, providers=TWO_LEDGERS, clock=clock)


class TestPrepareTurn:
    """Tools shown to the agent."""

    def test_nothing_connected(self, gateway):
        """Only system tools are offered before any connection."""
        tools = gateway.prepare_turn("user-1")
        assert tools
        assert all(t.is_system for t in tools)

    def test_connected_read_only(self, gateway, connect):
        connect("user-1", "xero")
        names = {t.qualified_name for t in gateway.prepare_turn("user-1")}

        assert "xero:get_invoices" in names
        assert "xero:create_invoice_draft" not in names
        assert "gmail:search_gmail" not in names

    def test_mixed_tiers(self, gateway, connect):
        connect("user-1", "xero", "google_sheets")
        gateway.authority.set_connector_permission("user-1", "google_sheets", 1)
        gateway.authority.set_connector_permission("user-1", "xero", 0)

        names = {t.qualified_name for t in gateway.prepare_turn("user-1")}

        assert {"xero:get_invoices", "google_sheets:write_sheet_range", "get_pip_guide"} <= names
        assert "xero:approve_invoice" not in names
        assert "google_sheets:delete_sheet" not in names

    def test_categories(self, gateway, connect):
        connect("user-1", "gmail")
        categories = {c["category"] for c in gateway.list_categories("user-1")}

        assert "gmail:search" in categories
        assert "help" in categories
        assert not any(c.startswith("xero:") for c in categories)


class TestAuthorize:
    """Resolve, then re-check permission."""

    def test_allowed(self, gateway, connect):
        connect("user-1", "xero")
        decision = gateway.authorize("user-1", "get_invoices")

        assert decision.allowed
        assert decision.tool.qualified_name == "xero:get_invoices"
        assert decision.error is None

    def test_denied_by_tier(self, gateway, connect):
        connect("user-1", "xero")
        decision = gateway.authorize("user-1", "xero:approve_invoice")

        assert not decision.allowed
        assert decision.permission.required_level == 2
        assert decision.permission.current_level == 0
        assert decision.error.category == ErrorCategory.PERMISSION_DENIED

    def test_vacation_blocks_void(self, gateway, connect):
        connect("user-1", "xero")
        gateway.authority.set_connector_permission("user-1", "xero", 3)
        gateway.authority.set_vacation_mode("user-1", FIXED_NOW + timedelta(days=1))

        decision = gateway.authorize("user-1", "xero:void_invoice")

        assert not decision.allowed
        assert decision.permission.is_vacation_mode
        assert decision.to_payload()["permission"]["isVacationMode"] is True

    def test_not_connected_skips_permission(self, gateway):
        decision = gateway.authorize("user-1", "xero:get_invoices")

        assert isinstance(decision.resolution, NotConnected)
        assert decision.permission is None
        assert decision.error.category == ErrorCategory.PROVIDER_NOT_CONNECTED
        assert decision.to_payload()["allowed"] is False

    def test_system_tool_always_allowed(self, gateway):
        assert gateway.authorize("user-1", "get_pip_guide").allowed

    def test_payload_shape(self, gateway, connect):
        connect("user-1", "xero")
        payload = gateway.authorize("user-1", "xero:get_invoices").to_payload()

        assert payload["resolved"] is True
        assert payload["allowed"] is True
        assert payload["tool"]["name"] == "xero:get_invoices"
        assert payload["permission"]["allowed"] is True


class TestMultipleLedgers:
    """Shorthand across two accounting providers."""

    def test_ambiguous_when_both_connected(self, ledger_gateway, connect):
        connect("user-1", "xero", "myob")
        resolution = ledger_gateway.resolve("user-1", "get_invoices")

        assert isinstance(resolution, Ambiguous)
        assert len(resolution.candidates) == 2
        assert "- myob:get_invoices (MYOB)" in resolution.error

    def test_resolves_to_the_connected_one(self, ledger_gateway, connect):
        connect("user-1", "xero")
        resolution = ledger_gateway.resolve("user-1", "get_invoices")

        assert isinstance(resolution, Resolved)
        assert resolution.tool.qualified_name == "xero:get_invoices"

    def test_qualified_name_disambiguates(self, ledger_gateway, connect):
        connect("user-1", "xero", "myob")
        decision = ledger_gateway.authorize("user-1", "myob:get_invoices")

        assert decision.allowed
        assert decision.permission.connector == "myob"
        assert decision.permission.tier_source.value == "default"


class TestBuildGateway:
    """Startup wiring."""

    def test_duplicate_definitions_fail_startup(self, temp_db):
        with pytest.raises(DuplicateToolError):
            build_gateway(temp_db, tools=default_tools() + default_tools()[:1])

    def test_extra_definition_files(self, temp_db, tmp_path, connect):
        path = tmp_path / "extra.yaml"
        path.write_text(
            "tools:\n"
            "  - provider: xero\n"
            "    category: reports\n"
            "    short_name: get_trial_balance\n"
            "    required_tier: 0\n"
            "    connector: xero\n"
            "    provider_type: accounting\n"
        )
        gateway = build_gateway(temp_db, extra_definition_files=[str(path)])
        connect("user-1", "xero")

        assert "xero:get_trial_balance" in gateway.catalog
        assert gateway.authorize("user-1", "get_trial_balance").allowed

    def test_replaced_catalog_is_enforced(self, gateway, connect):
        """Tools added after startup are checked at their declared tier."""
        connect("user-1", "xero")
        gateway.catalog.replace(default_tools() + [
            ToolDefinition(
                provider="xero",
                category="ledger",
                short_name="purge_ledger",
                required_tier=PermissionLevel.DESTRUCTIVE,
                connector="xero",
            ),
        ])

        decision = gateway.authorize("user-1", "xero:purge_ledger")

        assert decision.resolution.resolved
        assert not decision.allowed
        assert decision.permission.required_level == 3
        assert decision.permission.connector == "xero"
        assert "xero:purge_ledger" not in {t.qualified_name for t in gateway.prepare_turn("user-1")}

    def test_yaml_loaded_after_startup_is_enforced(self, gateway, connect, tmp_path):
        path = tmp_path / "late.yaml"
        path.write_text(
            "tools:\n"
            "  - provider: xero\n"
            "    category: ledger\n"
            "    short_name: purge_ledger\n"
            "    required_tier: 3\n"
            "    connector: xero\n"
        )
        connect("user-1", "xero")
        gateway.catalog.load_from_yaml(str(path))

        decision = gateway.authorize("user-1", "purge_ledger")

        assert not decision.allowed
        assert decision.error.category == ErrorCategory.PERMISSION_DENIED

        gateway.authority.set_connector_permission("user-1", "xero", 3)
        assert gateway.authorize("user-1", "purge_ledger").allowed

    def test_catalog_shared_with_authority(self, gateway):
        assert gateway.catalog is gateway.authority.catalog
