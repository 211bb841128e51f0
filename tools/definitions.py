"""
Built-in Tool Definitions
-------------------------
Tool definitions for the implemented connectors plus system tools, and the
human-readable tier names used in permission messages.

Tier guide:
- 0 read-only: get_*, search_*, read_*, list_*
- 1 create: create_*, write_*, append_* (drafts, reversible)
- 2 update: approve_*, update_*, record_*, recoverable deletes
- 3 destructive: void_*, permanent deletes (Xero only)
"""

from typing import Dict, List, Optional, Tuple

from providers.registry import ProviderType, SYSTEM_PROVIDER_ID
from .catalog import PermissionLevel, ToolDefinition


PERMISSION_LEVEL_NAMES: Dict[PermissionLevel, str] = {
    PermissionLevel.READ_ONLY: "Read-only",
    PermissionLevel.CREATE: "Create drafts",
    PermissionLevel.UPDATE: "Approve & update",
    PermissionLevel.DESTRUCTIVE: "Delete & void",
}

# Per-connector wording; connectors not listed use PERMISSION_LEVEL_NAMES
CONNECTOR_PERMISSION_NAMES: Dict[str, Dict[PermissionLevel, str]] = {
    "xero": {
        PermissionLevel.READ_ONLY: "Read-only",
        PermissionLevel.CREATE: "Create drafts",
        PermissionLevel.UPDATE: "Approve & update",
        PermissionLevel.DESTRUCTIVE: "Delete & void",
    },
    "gmail": {
        PermissionLevel.READ_ONLY: "Read-only",
        PermissionLevel.CREATE: "Create drafts",
        PermissionLevel.UPDATE: "Send & organize",
        PermissionLevel.DESTRUCTIVE: "Delete",
    },
    "google_sheets": {
        PermissionLevel.READ_ONLY: "Read-only",
        PermissionLevel.CREATE: "Write & create",
        PermissionLevel.UPDATE: "Delete sheets & rows",
        PermissionLevel.DESTRUCTIVE: "Permanent delete",
    },
}

# Connectors with a per-connector permission setting
PERMISSION_CONNECTORS: Tuple[str, ...] = ("xero", "gmail", "google_sheets")


def tier_name(tier: int, connector: Optional[str] = None) -> str:
    level = PermissionLevel(tier)
    names = CONNECTOR_PERMISSION_NAMES.get(connector or "", PERMISSION_LEVEL_NAMES)
    return names[level]


def _provider_tools(
    provider: str,
    provider_type: ProviderType,
    specs: List[Tuple[str, str, int, str]]
) -> List[ToolDefinition]:
    """specs: (short_name, category, tier, description)"""
    return [
        ToolDefinition(
            provider=provider,
            category=category,
            short_name=short_name,
            description=description,
            required_tier=PermissionLevel(tier),
            connector=provider,
            provider_type=provider_type,
        )
        for short_name, category, tier, description in specs
    ]


XERO_TOOLS = _provider_tools("xero", ProviderType.ACCOUNTING, [
    ("get_invoices", "invoices", 0, "Get invoices from Xero. Use status 'AUTHORISED' for unpaid, 'PAID' for paid."),
    ("get_aged_receivables", "invoices", 0, "Get aged receivables - who owes you money and how overdue"),
    ("get_aged_payables", "invoices", 0, "Get aged payables - who you owe money to and how overdue"),
    ("get_profit_and_loss", "reports", 0, "Get profit & loss report for a date range"),
    ("get_balance_sheet", "reports", 0, "Get balance sheet as of a specific date"),
    ("get_bank_accounts", "banking", 0, "Get bank accounts and their current balances"),
    ("get_bank_transactions", "banking", 0, "Get recent bank transactions"),
    ("get_contacts", "contacts", 0, "Get customers and suppliers"),
    ("search_contacts", "contacts", 0, "Search for a customer or supplier by name"),
    ("get_organisation", "organisation", 0, "Get company details from Xero"),
    ("list_accounts", "accounts", 0, "List the chart of accounts"),
    ("create_invoice_draft", "invoices", 1, "Create a draft invoice"),
    ("create_contact", "contacts", 1, "Create a customer or supplier"),
    ("create_credit_note_draft", "invoices", 1, "Create a draft credit note"),
    ("approve_invoice", "invoices", 2, "Approve a draft invoice"),
    ("update_invoice", "invoices", 2, "Update an invoice"),
    ("update_contact", "contacts", 2, "Update a contact"),
    ("record_payment", "payments", 2, "Record a payment against an invoice"),
    ("void_invoice", "invoices", 3, "Void an approved invoice (irreversible)"),
    ("delete_draft_invoice", "invoices", 3, "Delete a draft invoice (irreversible)"),
    ("delete_contact", "contacts", 3, "Archive a contact (irreversible)"),
])

GMAIL_TOOLS = _provider_tools("gmail", ProviderType.EMAIL, [
    ("search_gmail", "search", 0, "Search emails using Gmail query syntax"),
    ("get_email_content", "search", 0, "Get the full content of an email"),
    ("download_attachment", "attachments", 0, "Download an email attachment"),
    ("list_email_attachments", "attachments", 0, "List attachments across matching emails"),
])

GOOGLE_SHEETS_TOOLS = _provider_tools("google_sheets", ProviderType.SPREADSHEET, [
    ("read_sheet_range", "data", 0, "Read values from a sheet range"),
    ("get_sheet_metadata", "data", 0, "Get spreadsheet metadata"),
    ("search_spreadsheets", "files", 0, "Search spreadsheets by name"),
    ("list_sheets", "data", 0, "List sheets in a spreadsheet"),
    ("get_spreadsheet_revisions", "files", 0, "List revision history"),
    ("write_sheet_range", "data", 1, "Write values to a sheet range"),
    ("append_sheet_rows", "data", 1, "Append rows to a sheet"),
    ("update_cell", "data", 1, "Update a single cell"),
    ("create_spreadsheet", "files", 1, "Create a new spreadsheet"),
    ("add_sheet", "data", 1, "Add a sheet to a spreadsheet"),
    ("clear_range", "data", 1, "Clear values in a range"),
    ("delete_sheet", "data", 2, "Delete a sheet"),
    ("delete_rows", "data", 2, "Delete rows"),
    ("delete_columns", "data", 2, "Delete columns"),
    ("trash_spreadsheet", "files", 2, "Move a spreadsheet to trash"),
])

# Meta-tools: no tier, always allowed
SYSTEM_TOOLS = [
    ToolDefinition(
        provider=SYSTEM_PROVIDER_ID,
        category="help",
        short_name="get_pip_guide",
        description="Get instructions on how the assistant works, its settings, connectors and permissions.",
        input_schema={
            "type": "object",
            "properties": {
                "topic": {
                    "type": "string",
                    "enum": ["overview", "settings", "connectors", "permissions", "memory", "troubleshooting"],
                    "description": "The topic to get help on. Omit to see all available topics.",
                }
            },
        },
    ),
] + [
    ToolDefinition(
        provider=SYSTEM_PROVIDER_ID,
        category="memory",
        short_name=short_name,
        description=description,
    )
    for short_name, description in [
        ("create_entities", "Remember new people, businesses or concepts"),
        ("create_relations", "Record how remembered entities relate"),
        ("add_observations", "Add facts to remembered entities"),
        ("delete_entities", "Forget entities"),
        ("delete_observations", "Forget specific facts"),
        ("delete_relations", "Forget relations between entities"),
    ]
]


def default_tools() -> List[ToolDefinition]:
    """All built-in tool definitions."""
    return SYSTEM_TOOLS + XERO_TOOLS + GMAIL_TOOLS + GOOGLE_SHEETS_TOOLS
