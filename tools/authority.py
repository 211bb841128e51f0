"""
Tool Authority
--------------
Tiered, per-connector permission enforcement for tool execution.

Rules:
- Tools with no known tier (meta-tools) are always allowed
- A tool's connector tier must be >= the tool's required tier
- Connector tier falls back to the legacy global permission level, then 0
- Vacation mode forces every tier-positive operation to be denied,
  whatever the stored grants say
- Tools with a tier but no connector mapping are checked against the global
  level and flagged as unmapped
- Checks return a PermissionResult; they never raise for policy reasons.
  Only settings store failures propagate.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
import logging

from core.errors import ErrorCategory, GateError
from .catalog import PermissionLevel, ToolCatalog, ToolDefinition
from .definitions import PERMISSION_CONNECTORS, tier_name

ToolRef = Union[str, ToolDefinition]


class TierSource(Enum):
    """Which layer of the fallback chain answered an effective-tier lookup."""
    CONNECTOR = "connector"  # Per-connector row exists
    GLOBAL = "global"        # Legacy UserSettings.permission_level
    DEFAULT = "default"      # No data at all


@dataclass(frozen=True)
class TierLookup:
    tier: int
    source: TierSource


@dataclass
class PermissionResult:
    """
    Result of a permission check.

    unmapped_connector marks a tiered tool that had no connector mapping and
    was therefore judged against the global level.
    """
    allowed: bool
    tool_name: str = ""
    reason: Optional[str] = None
    required_level: Optional[int] = None
    current_level: Optional[int] = None
    connector: Optional[str] = None
    is_vacation_mode: bool = False
    tier_source: Optional[TierSource] = None
    unmapped_connector: bool = False

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"allowed": self.allowed}
        optional = {
            "reason": self.reason,
            "requiredLevel": self.required_level,
            "currentLevel": self.current_level,
            "connector": self.connector,
            "tierSource": self.tier_source.value if self.tier_source else None,
        }
        payload.update({k: v for k, v in optional.items() if v is not None})
        if self.is_vacation_mode:
            payload["isVacationMode"] = True
        if self.unmapped_connector:
            payload["unmappedConnector"] = True
        return payload

    def to_error(self) -> Optional[GateError]:
        if self.allowed:
            return None
        category = (
            ErrorCategory.VACATION_MODE_ACTIVE if self.is_vacation_mode
            else ErrorCategory.PERMISSION_DENIED
        )
        return GateError(
            category=category,
            message=self.reason or "Permission denied for this operation.",
            details={
                "tool": self.tool_name,
                "connector": self.connector,
                "required_level": self.required_level,
                "current_level": self.current_level,
            },
        )

    def to_gap_error(self) -> Optional[GateError]:
        """UNMAPPED_CONNECTOR report for a tiered tool checked without a connector."""
        if not self.unmapped_connector:
            return None
        return GateError(
            category=ErrorCategory.UNMAPPED_CONNECTOR,
            message=f"{self.tool_name} has no connector mapping; checked against the global permission level",
            details={"tool": self.tool_name, "required_level": self.required_level},
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ToolAuthority:
    """
    Central authority for tool permissions.

    `store` must provide get_user_settings, upsert_user_settings,
    get_connector_permission and upsert_connector_permission (see
    infra.database.DatabaseManager). Tiers and connectors are read from the
    catalog's current index on every lookup, so a rebuilt catalog is
    enforced immediately.
    """

    def __init__(
        self,
        store,
        catalog: ToolCatalog,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._catalog = catalog
        self._clock = clock or _utcnow
        self._logger = logging.getLogger("toolgate.tools.authority")

    @classmethod
    def from_tools(
        cls,
        store,
        tools: Iterable[ToolDefinition],
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "ToolAuthority":
        """Authority over a private catalog of `tools`."""
        return cls(store, ToolCatalog(tools), clock=clock)

    @property
    def store(self):
        return self._store

    @property
    def catalog(self) -> ToolCatalog:
        return self._catalog

    @property
    def connectors(self) -> List[str]:
        """Every connector with a permission setting, built-in ones first."""
        mapped = {t.connector for t in self._catalog.list_tools() if t.connector is not None}
        return list(PERMISSION_CONNECTORS) + sorted(mapped - set(PERMISSION_CONNECTORS))

    # ===== Static lookups (no I/O) =====

    def _definition(self, tool: ToolRef) -> Optional[ToolDefinition]:
        """Current catalog entry; a definition outside the catalog speaks for itself."""
        if isinstance(tool, ToolDefinition):
            return self._catalog.get(tool.qualified_name) or tool
        return self._catalog.get(tool)

    def required_tier(self, tool: ToolRef) -> Optional[PermissionLevel]:
        definition = self._definition(tool)
        if definition is None or definition.required_tier is None:
            return None
        return PermissionLevel(definition.required_tier)

    def connector_for(self, tool: ToolRef) -> Optional[str]:
        definition = self._definition(tool)
        return definition.connector if definition else None

    def is_write_operation(self, tool: ToolRef) -> bool:
        """Tier 1+."""
        tier = self.required_tier(tool)
        return tier is not None and tier > PermissionLevel.READ_ONLY

    def requires_confirmation(self, tool: ToolRef) -> bool:
        """Tier 2+."""
        tier = self.required_tier(tool)
        return tier is not None and tier >= PermissionLevel.UPDATE

    def is_destructive_operation(self, tool: ToolRef) -> bool:
        """Tier 3."""
        tier = self.required_tier(tool)
        return tier is not None and tier >= PermissionLevel.DESTRUCTIVE

    # ===== Settings reads =====

    def is_vacation_mode_active(self, settings) -> bool:
        if settings is None or settings.vacation_mode_until is None:
            return False
        return settings.vacation_mode_until > self._clock()

    def effective_tier(self, user_id: str, connector: str) -> TierLookup:
        """
        Connector row, else legacy global level, else 0.

        Read-only: no rows are created.
        """
        return self.tier_with_settings(user_id, connector, self._store.get_user_settings(user_id))

    def tier_with_settings(self, user_id: str, connector: str, settings) -> TierLookup:
        permission = self._store.get_connector_permission(user_id, connector)
        if permission is not None:
            return TierLookup(int(permission.tier), TierSource.CONNECTOR)
        return self.global_tier(settings)

    @staticmethod
    def global_tier(settings) -> TierLookup:
        if settings is not None:
            return TierLookup(int(settings.permission_level), TierSource.GLOBAL)
        return TierLookup(0, TierSource.DEFAULT)

    # ===== Checks =====

    def check_tool_permission(self, user_id: str, tool: ToolRef) -> PermissionResult:
        """
        Decide whether `user_id` may execute `tool` right now.

        This is the execution-time check; it must agree with
        VisibilityFilter.get_visible_tools.
        """
        name = _tool_name(tool)
        required = self.required_tier(tool)

        # Unknown tier: meta-tools, memory tools
        if required is None:
            return PermissionResult(allowed=True, tool_name=name)

        connector = self.connector_for(tool)
        settings = self._store.get_user_settings(user_id)

        if connector is None:
            self.report_unmapped(name, required)

        if required > PermissionLevel.READ_ONLY and self.is_vacation_mode_active(settings):
            vacation_end = settings.vacation_mode_until.strftime("%d/%m/%Y")
            return self._decide(PermissionResult(
                allowed=False,
                tool_name=name,
                reason=f"Vacation mode is active until {vacation_end}. Only read-only operations are allowed.",
                required_level=int(required),
                current_level=0,
                connector=connector,
                is_vacation_mode=True,
                unmapped_connector=connector is None,
            ), user_id)

        if connector is None:
            lookup = self.global_tier(settings)
        else:
            lookup = self.tier_with_settings(user_id, connector, settings)

        if lookup.tier < required:
            return self._decide(PermissionResult(
                allowed=False,
                tool_name=name,
                reason=self._denial_reason(connector, required, lookup.tier),
                required_level=int(required),
                current_level=lookup.tier,
                connector=connector,
                tier_source=lookup.source,
                unmapped_connector=connector is None,
            ), user_id)

        return self._decide(PermissionResult(
            allowed=True,
            tool_name=name,
            required_level=int(required),
            current_level=lookup.tier,
            connector=connector,
            tier_source=lookup.source,
            unmapped_connector=connector is None,
        ), user_id)

    @staticmethod
    def _denial_reason(connector: Optional[str], required: int, current: int) -> str:
        if connector is None:
            return (
                f'This operation requires "{tier_name(required)}" permission. '
                f'Your current level is "{tier_name(current)}". '
                f"Enable higher permissions in settings if you want to allow this."
            )
        label = connector.replace("_", " ")
        return (
            f'This {label} operation requires "{tier_name(required, connector)}" permission. '
            f'Your current {label} level is "{tier_name(current, connector)}". '
            f"Enable higher permissions in settings if you want to allow this."
        )

    def report_unmapped(self, name: str, required: int) -> None:
        self._logger.warning(
            f"UNMAPPED_CONNECTOR: {name} has tier {int(required)} but no connector; "
            f"using global permission level",
            extra={"tool_name": name, "required_level": int(required)},
        )

    def _decide(self, result: PermissionResult, user_id: str) -> PermissionResult:
        level = logging.DEBUG if result.allowed else logging.WARNING
        self._logger.log(
            level,
            f"Permission decision: {'ALLOWED' if result.allowed else 'DENIED'} | "
            f"tool={result.tool_name} | connector={result.connector or '-'} | "
            f"required={result.required_level} | current={result.current_level} | "
            f"vacation={result.is_vacation_mode}",
            extra={
                "user_id": user_id,
                "tool_name": result.tool_name,
                "connector": result.connector,
                "required_level": result.required_level,
                "current_level": result.current_level,
            },
        )
        return result

    # ===== Settings writes (explicit user actions only) =====

    def get_or_create_user_settings(self, user_id: str):
        """
        Return the user's settings, creating the read-only defaults if absent.

        Idempotent: a second call returns the stored row unchanged.
        """
        settings = self._store.get_user_settings(user_id)
        if settings is not None:
            return settings

        self._logger.info(f"Creating default settings for {user_id}")
        return self._store.upsert_user_settings(user_id, permission_level=0)

    def get_or_create_connector_permission(self, user_id: str, connector: str):
        """
        Return the (user, connector) tier row, creating it at tier 0 if absent.

        Idempotent. Note that creating the row pins the connector to tier 0,
        overriding any global-level fallback from then on.
        """
        permission = self._store.get_connector_permission(user_id, connector)
        if permission is not None:
            return permission

        self._logger.info(f"Creating default {connector} permission for {user_id}")
        return self._store.upsert_connector_permission(user_id, connector, 0)

    def set_connector_permission(self, user_id: str, connector: str, tier: int):
        """Grant a connector tier. Raises ValueError for an unknown connector or tier."""
        if connector not in self.connectors:
            raise ValueError(f"Unknown connector: {connector}")
        level = PermissionLevel(tier)

        permission = self._store.upsert_connector_permission(user_id, connector, int(level))
        self._logger.info(f"Set {connector} permission for {user_id} to {int(level)} ({tier_name(level, connector)})")
        return permission

    def set_vacation_mode(self, user_id: str, until: Optional[datetime]):
        """Start vacation mode until `until`, or clear it with None."""
        if until is not None and until.tzinfo is None:
            until = until.replace(tzinfo=timezone.utc)

        self.get_or_create_user_settings(user_id)
        settings = self._store.upsert_user_settings(user_id, vacation_mode_until=until)

        if until is None:
            self._logger.info(f"Vacation mode cleared for {user_id}")
        else:
            self._logger.info(f"Vacation mode for {user_id} until {until.isoformat()}")
        return settings

    # ===== Reporting =====

    def get_all_connector_permissions(self, user_id: str) -> Dict[str, TierLookup]:
        settings = self._store.get_user_settings(user_id)
        return {
            connector: self.tier_with_settings(user_id, connector, settings)
            for connector in self.connectors
        }

    @staticmethod
    def format_permission_error(result: PermissionResult) -> str:
        if result.is_vacation_mode:
            return result.reason or "Vacation mode is active. Only read-only operations are allowed."
        return result.reason or "Permission denied for this operation."

    def get_safety_rules_for_prompt(self, user_id: str) -> str:
        """Safety rules block for the agent's system prompt."""
        settings = self._store.get_user_settings(user_id)
        permissions = self.get_all_connector_permissions(user_id)

        rules = ["SAFETY RULES:"]
        for connector, lookup in permissions.items():
            rules.append(f"- {connector.replace('_', ' ').upper()}: {tier_name(lookup.tier, connector)}")

        if not any(lookup.tier > 0 for lookup in permissions.values()):
            rules.append("- You CANNOT modify any data in connected services")
            rules.append(
                "- If user asks you to make changes, explain they need to enable "
                "write permissions in settings first"
            )
        else:
            rules.append("- Check permission level for each connector before attempting write operations")
            rules.append("- Each modification may require user confirmation depending on the connector")

        if self.is_vacation_mode_active(settings):
            vacation_end = settings.vacation_mode_until.strftime("%d/%m/%Y")
            rules.append(f"- VACATION MODE ACTIVE until {vacation_end} - READ-ONLY only for ALL connectors")

        return "\n".join(rules)


def _tool_name(tool: ToolRef) -> str:
    if isinstance(tool, ToolDefinition):
        return tool.qualified_name
    return tool
