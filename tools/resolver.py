"""
Tool Name Resolver
------------------
Turns a possibly-unqualified tool name into exactly one tool, an explicit
disambiguation request, or a typed failure.

Shorthand ("get_invoices") resolves only when exactly one tool with that
short name belongs to the system or to a connected provider. Two or more
connected candidates always produce Ambiguous; the resolver never guesses.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union
import logging

from core.errors import ErrorCategory, GateError
from providers.registry import SYSTEM_PROVIDER_ID
from .catalog import ToolDefinition, ToolIndex, build_tool_index, make_tool_name, parse_tool_name

logger = logging.getLogger("toolgate.tools.resolver")


@dataclass(frozen=True)
class Resolution:
    """Base of the resolution outcomes. Check `resolved` or match on type."""
    name: str

    resolved = False

    @property
    def tool(self) -> Optional[ToolDefinition]:
        return None

    @property
    def error(self) -> Optional[str]:
        return None

    @property
    def candidates(self) -> List[ToolDefinition]:
        return []

    def to_payload(self) -> Dict[str, Any]:
        if self.resolved:
            return {"resolved": True, "tool": self.tool.to_dict()}

        payload: Dict[str, Any] = {"resolved": False, "error": self.error}
        if self.candidates:
            payload["candidates"] = [c.to_dict() for c in self.candidates]
        return payload

    def to_error(self) -> Optional[GateError]:
        return None


@dataclass(frozen=True)
class Resolved(Resolution):
    """Exactly one tool matched."""
    match: ToolDefinition

    resolved = True

    def __post_init__(self):
        if self.match is None:
            raise ValueError(f"Resolved({self.name!r}) needs a matched tool")

    @property
    def tool(self) -> ToolDefinition:
        return self.match


@dataclass(frozen=True)
class NotFound(Resolution):
    """The name matches no tool from any provider."""
    message: str = ""

    @property
    def error(self) -> str:
        return self.message

    def to_error(self) -> GateError:
        return GateError(
            category=ErrorCategory.TOOL_NOT_FOUND,
            message=self.message,
            details={"name": self.name},
        )


@dataclass(frozen=True)
class NotConnected(Resolution):
    """The name is valid but every owning provider lacks credentials."""
    providers: Sequence[str] = ()       # provider IDs
    display_names: Sequence[str] = ()
    message: str = ""

    @property
    def error(self) -> str:
        return self.message

    def to_error(self) -> GateError:
        return GateError(
            category=ErrorCategory.PROVIDER_NOT_CONNECTED,
            message=self.message,
            details={"name": self.name, "providers": list(self.providers)},
        )


@dataclass(frozen=True)
class Ambiguous(Resolution):
    """Two or more connected providers share the short name."""
    options: Sequence[ToolDefinition] = field(default_factory=tuple)
    message: str = ""

    @property
    def error(self) -> str:
        return self.message

    @property
    def candidates(self) -> List[ToolDefinition]:
        return list(self.options)

    def to_error(self) -> GateError:
        return GateError(
            category=ErrorCategory.AMBIGUOUS_TOOL_NAME,
            message=self.message,
            details={"name": self.name, "candidates": [c.qualified_name for c in self.options]},
        )


def _display_name(registry, provider_id: str) -> str:
    if registry is None:
        return provider_id
    return registry.display_name(provider_id)


def format_candidate_tools(candidates: Iterable[ToolDefinition], registry=None) -> str:
    """One line per candidate: '- xero:get_invoices (Xero)'."""
    return "\n".join(
        f"- {c.qualified_name} ({_display_name(registry, c.provider)})"
        for c in candidates
    )


def resolve_tool_name(
    name: str,
    tools: Union[ToolIndex, Iterable[ToolDefinition]],
    connected_providers: Iterable[str],
    registry=None,
) -> Resolution:
    """
    Resolve a tool name against the catalog and the caller's connections.

    Args:
        name: "provider:short_name" or a bare short name
        tools: a prebuilt ToolIndex, or a tool list to index
        connected_providers: provider IDs with stored credentials
        registry: ProviderRegistry used for display names (optional)
    """
    index = tools if isinstance(tools, ToolIndex) else build_tool_index(tools)
    connected = set(connected_providers)

    if not name:
        return NotFound(name=name, message="Unknown tool: (empty name)")

    provider, short_name = parse_tool_name(name)

    # Qualified: exact match only
    if provider is not None:
        full_name = make_tool_name(provider, short_name)
        tool = index.by_qualified_name.get(full_name)

        if tool is None or tool.provider != provider:
            return NotFound(name=name, message=f"Tool not found: {name}")

        if not tool.is_system and tool.provider not in connected:
            display = _display_name(registry, tool.provider)
            return NotConnected(
                name=name,
                providers=(tool.provider,),
                display_names=(display,),
                message=f"{display} is not connected. Connect it in Settings → Connectors.",
            )

        return Resolved(name=name, match=tool)

    # Bare name: system tools are never namespaced
    system_tool = index.by_qualified_name.get(short_name)
    if system_tool is not None and system_tool.is_system:
        return Resolved(name=name, match=system_tool)

    all_candidates = index.by_short_name.get(short_name, ())
    candidates = [
        t for t in all_candidates
        if t.provider == SYSTEM_PROVIDER_ID or t.provider in connected
    ]

    if not candidates:
        if all_candidates:
            providers = tuple(dict.fromkeys(t.provider for t in all_candidates))
            displays = tuple(_display_name(registry, p) for p in providers)
            return NotConnected(
                name=name,
                providers=providers,
                display_names=displays,
                message=f'Tool "{short_name}" requires connecting: {" or ".join(displays)}',
            )
        return NotFound(name=name, message=f"Unknown tool: {short_name}")

    if len(candidates) == 1:
        return Resolved(name=name, match=candidates[0])

    logger.debug(f"Ambiguous tool name {short_name!r}: {[c.qualified_name for c in candidates]}")
    return Ambiguous(
        name=name,
        options=tuple(candidates),
        message=(
            f'Ambiguous tool name "{short_name}". Please specify provider:\n'
            f"{format_candidate_tools(candidates, registry)}"
        ),
    )
