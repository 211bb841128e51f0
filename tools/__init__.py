# Tools module - provider-aware tool catalog, name resolution and permissions
# A tool is exposed or executed only when its provider is connected, the
# connector tier is high enough, and vacation mode is not active

from .catalog import (
    ToolCatalog, ToolDefinition, ToolIndex, PermissionLevel,
    DuplicateToolError, build_tool_index, make_tool_name, parse_tool_name,
    filter_tools_by_connection, get_categories
)
from .resolver import (
    Resolution, Resolved, Ambiguous, NotFound, NotConnected,
    resolve_tool_name, format_candidate_tools
)
from .authority import ToolAuthority, PermissionResult, TierLookup, TierSource
from .visibility import VisibilityFilter
from .definitions import default_tools

__all__ = [
    "ToolCatalog",
    "ToolDefinition",
    "ToolIndex",
    "PermissionLevel",
    "DuplicateToolError",
    "build_tool_index",
    "make_tool_name",
    "parse_tool_name",
    "filter_tools_by_connection",
    "get_categories",
    "Resolution",
    "Resolved",
    "Ambiguous",
    "NotFound",
    "NotConnected",
    "resolve_tool_name",
    "format_candidate_tools",
    "ToolAuthority",
    "PermissionResult",
    "TierLookup",
    "TierSource",
    "VisibilityFilter",
    "default_tools",
]
