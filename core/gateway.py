"""
Tool Gateway
------------
Single entry point that wires provider connections, the tool catalog, name
resolution and permission checks into the two per-turn flows:

1. prepare_turn: which tools to show the agent (connection + tier filter)
2. authorize: agent named a tool; resolve it and re-check permission before
   dispatch, even for tools that were visible at turn start
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging

from core.errors import GateError
from providers.registry import ProviderRegistry
from tools.authority import PermissionResult, ToolAuthority
from tools.catalog import ToolCatalog, ToolDefinition, get_categories
from tools.definitions import default_tools
from tools.resolver import Resolution, resolve_tool_name
from tools.visibility import VisibilityFilter


@dataclass
class GatewayDecision:
    """Outcome of authorize(): resolution, and permission if it resolved."""
    resolution: Resolution
    permission: Optional[PermissionResult] = None

    @property
    def allowed(self) -> bool:
        return self.resolution.resolved and self.permission is not None and self.permission.allowed

    @property
    def tool(self) -> Optional[ToolDefinition]:
        return self.resolution.tool

    @property
    def error(self) -> Optional[GateError]:
        if not self.resolution.resolved:
            return self.resolution.to_error()
        if self.permission is not None:
            return self.permission.to_error()
        return None

    @property
    def gap_error(self) -> Optional[GateError]:
        """Configuration gap met while checking, reported even when allowed."""
        if self.permission is None:
            return None
        return self.permission.to_gap_error()

    def to_payload(self) -> Dict[str, Any]:
        payload = self.resolution.to_payload()
        if self.permission is not None:
            payload["permission"] = self.permission.to_payload()
        payload["allowed"] = self.allowed
        return payload


class ToolGateway:
    """
    Coordinates the registry, catalog and authority for one process.

    Holds no per-user state; every call reads connections and settings
    fresh from the store.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        authority: ToolAuthority,
    ):
        self.registry = registry
        self.authority = authority
        # Shared with the authority so catalog reloads reach permission checks
        self.catalog: ToolCatalog = authority.catalog
        self.visibility = VisibilityFilter(authority)
        self._logger = logging.getLogger("toolgate.core.gateway")

    def prepare_turn(self, user_id: str) -> List[ToolDefinition]:
        """Tools the agent may see for this turn."""
        connected = self.registry.get_connected_providers(user_id)
        tools = self.visibility.get_agent_tools(user_id, self.catalog.list_tools(), connected)
        self._logger.debug(f"Turn tools for {user_id}: {len(tools)} of {len(self.catalog)}")
        return tools

    def list_categories(self, user_id: str) -> List[Dict[str, Any]]:
        return get_categories(self.prepare_turn(user_id), self.registry)

    def resolve(self, user_id: str, name: str) -> Resolution:
        connected = self.registry.get_connected_providers(user_id)
        return resolve_tool_name(name, self.catalog.index, connected, self.registry)

    def authorize(self, user_id: str, name: str) -> GatewayDecision:
        """Resolve `name`, then check permission on the resolved tool."""
        resolution = self.resolve(user_id, name)
        if not resolution.resolved:
            return GatewayDecision(resolution=resolution)

        permission = self.authority.check_tool_permission(user_id, resolution.tool)
        return GatewayDecision(resolution=resolution, permission=permission)


def build_gateway(
    store,
    tools: Optional[List[ToolDefinition]] = None,
    extra_definition_files: Optional[List[str]] = None,
    providers=None,
    clock=None,
) -> ToolGateway:
    """
    Wire a gateway over `store` with the built-in tools (or `tools`) plus
    any YAML definition files.
    """
    catalog = ToolCatalog(default_tools() if tools is None else tools)
    for path in extra_definition_files or []:
        catalog.load_from_yaml(path)

    registry = ProviderRegistry(store, providers)
    authority = ToolAuthority(store, catalog, clock=clock)
    return ToolGateway(registry, authority)
