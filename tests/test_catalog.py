"""
Tool Catalog Tests
------------------
Tests for tool naming, the lookup index and YAML-loaded definitions.
"""

import dataclasses

import pytest

from providers.registry import ProviderRegistry, ProviderType
from tools.catalog import (
    DuplicateToolError,
    PermissionLevel,
    ToolCatalog,
    ToolDefinition,
    build_tool_index,
    filter_tools_by_connection,
    get_categories,
    make_tool_name,
    parse_tool_name,
)
from tools.definitions import default_tools, tier_name


def _tool(provider, short_name, category="invoices", tier=0):
    return ToolDefinition(
        provider=provider,
        category=category,
        short_name=short_name,
        required_tier=None if tier is None else PermissionLevel(tier),
        connector=None if provider == "system" else provider,
    )


class TestNaming:
    """Qualified name construction and parsing."""

    def test_provider_tools_are_namespaced(self):
        assert make_tool_name("xero", "get_invoices") == "xero:get_invoices"

    def test_system_tools_are_bare(self):
        assert make_tool_name("system", "get_pip_guide") == "get_pip_guide"

    def test_parse_qualified(self):
        assert parse_tool_name("xero:get_invoices") == ("xero", "get_invoices")

    def test_parse_bare(self):
        assert parse_tool_name("get_invoices") == (None, "get_invoices")

    def test_parse_splits_on_first_colon(self):
        """Only the first colon separates provider from short name."""
        assert parse_tool_name("a:b:c") == ("a", "b:c")

    def test_qualified_name_roundtrip(self):
        """Every built-in qualified name parses back to its parts."""
        for tool in build_tool_index(default_tools()).tools:
            provider, short_name = parse_tool_name(tool.qualified_name)
            if tool.is_system:
                assert provider is None
            else:
                assert provider == tool.provider
            assert short_name == tool.short_name


class TestToolIndex:
    """Lookup maps built from a flat tool list."""

    def test_lookups(self):
        """All four maps are populated in one pass."""
        tools = [
            _tool("xero", "get_invoices"),
            _tool("myob", "get_invoices"),
            _tool("xero", "get_contacts", category="contacts"),
            _tool("system", "get_pip_guide", category="help", tier=None),
        ]
        index = build_tool_index(tools)

        assert len(index) == 4
        assert index.by_qualified_name["myob:get_invoices"].provider == "myob"
        assert [t.provider for t in index.by_short_name["get_invoices"]] == ["xero", "myob"]
        assert len(index.by_provider["xero"]) == 2
        assert [t.short_name for t in index.by_category["xero:invoices"]] == ["get_invoices"]
        assert "help" in index.by_category

    def test_short_name_groups_preserve_order(self):
        """Groups keep the order tools were supplied in."""
        tools = [_tool("myob", "get_invoices"), _tool("xero", "get_invoices")]
        index = build_tool_index(tools)

        assert [t.provider for t in index.by_short_name["get_invoices"]] == ["myob", "xero"]

    def test_duplicate_qualified_name_rejected(self):
        """Two tools with the same qualified name are a startup error."""
        with pytest.raises(DuplicateToolError):
            build_tool_index([_tool("xero", "get_invoices"), _tool("xero", "get_invoices")])

    def test_index_is_read_only(self):
        index = build_tool_index([_tool("xero", "get_invoices")])
        with pytest.raises(dataclasses.FrozenInstanceError):
            index.by_provider = {}
        with pytest.raises(TypeError):
            index.by_qualified_name["xero:x"] = None

    def test_builtin_catalog_has_no_duplicates(self):
        """The built-in definitions build cleanly."""
        index = build_tool_index(default_tools())
        assert len(index) == len(default_tools())

    def test_builtin_tiers(self):
        """Spot-check built-in tier assignments."""
        index = build_tool_index(default_tools())

        assert index.by_qualified_name["xero:get_invoices"].required_tier == PermissionLevel.READ_ONLY
        assert index.by_qualified_name["xero:approve_invoice"].required_tier == PermissionLevel.UPDATE
        assert index.by_qualified_name["xero:void_invoice"].required_tier == PermissionLevel.DESTRUCTIVE
        assert index.by_qualified_name["google_sheets:write_sheet_range"].required_tier == PermissionLevel.CREATE
        assert index.by_qualified_name["get_pip_guide"].required_tier is None


class TestFiltering:
    """Connection filter and category summaries."""

    def test_filter_by_connection(self):
        """Disconnected providers drop out; system tools stay."""
        tools = default_tools()
        kept = filter_tools_by_connection(tools, ["gmail"])

        providers = {t.provider for t in kept}
        assert providers == {"system", "gmail"}

    def test_filter_keeps_input_order(self):
        tools = default_tools()
        kept = filter_tools_by_connection(tools, ["xero", "gmail", "google_sheets"])
        assert kept == tools

    def test_categories(self, temp_db):
        """Categories carry display names and counts."""
        registry = ProviderRegistry(temp_db)
        tools = [
            _tool("xero", "get_invoices"),
            _tool("xero", "create_invoice_draft", tier=1),
            _tool("system", "get_pip_guide", category="help", tier=None),
        ]
        categories = {c["category"]: c for c in get_categories(tools, registry)}

        assert categories["xero:invoices"]["displayName"] == "Xero invoices"
        assert categories["xero:invoices"]["toolCount"] == 2
        assert categories["help"]["displayName"] == "Help"
        assert categories["help"]["provider"] is None


class TestToolDefinition:
    """Definition serialization helpers."""

    def test_llm_function_uses_qualified_name(self):
        fn = _tool("xero", "get_invoices").to_llm_function()
        assert fn["type"] == "function"
        assert fn["function"]["name"] == "xero:get_invoices"

    def test_to_dict(self):
        data = _tool("xero", "approve_invoice", tier=2).to_dict()
        assert data["name"] == "xero:approve_invoice"
        assert data["shortName"] == "approve_invoice"
        assert data["requiredTier"] == 2
        assert data["providerType"] == "accounting"

    def test_provider_type_derived_from_provider(self):
        assert _tool("xero", "get_invoices").provider_type == ProviderType.ACCOUNTING
        assert _tool("todoist", "get_tasks").provider_type == ProviderType.TASKS
        assert _tool("system", "get_pip_guide", tier=None).provider_type == ProviderType.SYSTEM

    def test_explicit_provider_type_kept(self):
        tool = ToolDefinition(provider="acme", category="crm", short_name="get_leads",
                              provider_type=ProviderType.TASKS)
        assert tool.provider_type == ProviderType.TASKS

    def test_unknown_provider_needs_type(self):
        with pytest.raises(ValueError):
            ToolDefinition(provider="acme", category="crm", short_name="get_leads")

    def test_tier_names(self):
        """Tier wording is connector-specific where defined."""
        assert tier_name(2, "xero") == "Approve & update"
        assert tier_name(2, "gmail") == "Send & organize"
        assert tier_name(1, "google_sheets") == "Write & create"
        assert tier_name(3) == "Delete & void"
        assert tier_name(3, "todoist") == "Delete & void"


class TestToolCatalog:
    """Catalog wrapper with rebuild and YAML loading."""

    def test_replace_rebuilds_index(self):
        """Old index snapshots are unaffected by replace()."""
        catalog = ToolCatalog([_tool("xero", "get_invoices")])
        old_index = catalog.index

        catalog.replace([_tool("xero", "get_invoices"), _tool("xero", "get_contacts")])

        assert len(old_index) == 1
        assert len(catalog) == 2
        assert "xero:get_contacts" in catalog

    def test_load_from_yaml(self, tmp_path):
        """Valid entries are appended to the catalog."""
        path = tmp_path / "tools.yaml"
        path.write_text(
            "tools:\n"
            "  - provider: todoist\n"
            "    category: tasks\n"
            "    short_name: get_tasks\n"
            "    required_tier: 0\n"
            "    connector: todoist\n"
            "    provider_type: tasks\n"
            "  - provider: todoist\n"
            "    category: tasks\n"
            "    short_name: close_task\n"
            "    name: todoist:close_task\n"
            "    required_tier: 2\n"
            "    connector: todoist\n"
            "    provider_type: tasks\n"
        )
        catalog = ToolCatalog(default_tools())
        before = len(catalog)

        assert catalog.load_from_yaml(str(path)) == 2
        assert len(catalog) == before + 2

        tool = catalog.get("todoist:close_task")
        assert tool.required_tier == PermissionLevel.UPDATE
        assert tool.provider_type == ProviderType.TASKS

    def test_load_from_yaml_skips_bad_entries(self, tmp_path):
        """Invalid and duplicate entries are skipped, not fatal."""
        path = tmp_path / "tools.yaml"
        path.write_text(
            "tools:\n"
            "  - provider: xero\n"
            "    category: invoices\n"
            "    short_name: get_invoices\n"
            "  - provider: 'bad provider'\n"
            "    category: x\n"
            "    short_name: y\n"
            "  - provider: todoist\n"
            "    category: tasks\n"
            "    short_name: get_tasks\n"
            "    required_tier: 7\n"
            "  - provider: todoist\n"
            "    category: tasks\n"
            "    short_name: get_tasks\n"
            "    name: todoist:other\n"
        )
        catalog = ToolCatalog(default_tools())
        before = len(catalog)

        assert catalog.load_from_yaml(str(path)) == 0
        assert len(catalog) == before

    def test_load_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        catalog = ToolCatalog()
        assert catalog.load_from_yaml(str(path)) == 0
        assert len(catalog) == 0

    def test_yaml_provider_type_derived(self, tmp_path):
        """Omitted provider_type follows the provider, not the system default."""
        path = tmp_path / "tools.yaml"
        path.write_text(
            "tools:\n"
            "  - provider: xero\n"
            "    category: reports\n"
            "    short_name: get_trial_balance\n"
            "    required_tier: 0\n"
            "    connector: xero\n"
        )
        catalog = ToolCatalog()

        assert catalog.load_from_yaml(str(path)) == 1
        tool = catalog.get("xero:get_trial_balance")
        assert tool.provider_type == ProviderType.ACCOUNTING
        assert tool.to_dict()["providerType"] == "accounting"

    def test_yaml_unknown_provider_without_type_skipped(self, tmp_path):
        path = tmp_path / "tools.yaml"
        path.write_text(
            "tools:\n"
            "  - provider: acme\n"
            "    category: crm\n"
            "    short_name: get_leads\n"
            "  - provider: acme\n"
            "    category: crm\n"
            "    short_name: get_accounts\n"
            "    provider_type: tasks\n"
        )
        catalog = ToolCatalog()

        assert catalog.load_from_yaml(str(path)) == 1
        assert "acme:get_leads" not in catalog
        assert catalog.get("acme:get_accounts").provider_type == ProviderType.TASKS
