"""
Tool Catalog
------------
Provider-aware tool definitions and their lookup index.

Naming:
- Provider tools are namespaced: "xero:get_invoices"
- System tools use the bare short name: "get_pip_guide"
- Short names may repeat across providers; qualified names may not

The index is built in one pass and treated as an immutable snapshot. When the
upstream tool list changes the whole index is rebuilt, never patched.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
import logging
import re

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from providers.registry import DEFAULT_PROVIDERS, SYSTEM_PROVIDER_ID, ProviderType


class PermissionLevel(IntEnum):
    """Ordinal permission tiers. A grant of tier T covers every tier <= T."""
    READ_ONLY = 0     # get_*, search_*, read_*
    CREATE = 1        # create_*, write_*, append_*
    UPDATE = 2        # approve_*, update_*, delete_* (recoverable)
    DESTRUCTIVE = 3   # void_*, permanent deletes


def _empty_schema() -> Dict[str, Any]:
    return {"type": "object", "properties": {}}


def make_tool_name(provider: str, short_name: str) -> str:
    """Qualified name for a tool; system tools are not namespaced."""
    if provider == SYSTEM_PROVIDER_ID:
        return short_name
    return f"{provider}:{short_name}"


def parse_tool_name(name: str) -> Tuple[Optional[str], str]:
    """Split on the first ':' into (provider, short_name)."""
    provider, sep, short_name = name.partition(":")
    if not sep:
        return None, name
    return provider, short_name


def default_provider_type(provider: str) -> Optional[ProviderType]:
    """Type of a known provider, or None when it cannot be derived."""
    if provider == SYSTEM_PROVIDER_ID:
        return ProviderType.SYSTEM
    known = DEFAULT_PROVIDERS.get(provider)
    return known.type if known is not None else None


@dataclass(frozen=True)
class ToolDefinition:
    """
    A tool as supplied by an upstream feature module.

    required_tier is None for meta-tools whose tier is unknown; those are
    always allowed. connector is the permission connector key; None means
    the tool has no connector mapping and is checked against the global
    permission level.
    """
    provider: str
    category: str
    short_name: str
    description: str = ""
    required_tier: Optional[PermissionLevel] = None
    connector: Optional[str] = None
    provider_type: Optional[ProviderType] = None
    input_schema: Dict[str, Any] = field(default_factory=_empty_schema, compare=False, hash=False)

    def __post_init__(self):
        if self.provider_type is None:
            derived = default_provider_type(self.provider)
            if derived is None:
                raise ValueError(f"provider_type is required for unknown provider {self.provider!r}")
            object.__setattr__(self, "provider_type", derived)

    @property
    def qualified_name(self) -> str:
        return make_tool_name(self.provider, self.short_name)

    @property
    def is_system(self) -> bool:
        return self.provider == SYSTEM_PROVIDER_ID

    @property
    def category_key(self) -> str:
        """Namespaced category ("xero:invoices"); system categories are bare."""
        if self.is_system:
            return self.category
        return f"{self.provider}:{self.category}"

    def to_llm_function(self) -> Dict[str, Any]:
        """Convert to OpenAI function calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.qualified_name,
                "description": self.description,
                "parameters": self.input_schema,
            }
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.qualified_name,
            "provider": self.provider,
            "providerType": self.provider_type.value,
            "category": self.category,
            "shortName": self.short_name,
            "description": self.description,
            "requiredTier": None if self.required_tier is None else int(self.required_tier),
        }

    def __repr__(self) -> str:
        return f"ToolDefinition({self.qualified_name})"


class DuplicateToolError(ValueError):
    """Two definitions share a qualified name."""
    pass


@dataclass(frozen=True)
class ToolIndex:
    """Read-only lookup snapshot over a tool list."""
    by_qualified_name: Mapping[str, ToolDefinition]
    by_short_name: Mapping[str, Tuple[ToolDefinition, ...]]
    by_provider: Mapping[str, Tuple[ToolDefinition, ...]]
    by_category: Mapping[str, Tuple[ToolDefinition, ...]]

    @property
    def tools(self) -> List[ToolDefinition]:
        return list(self.by_qualified_name.values())

    def __len__(self) -> int:
        return len(self.by_qualified_name)


def build_tool_index(tools: Iterable[ToolDefinition]) -> ToolIndex:
    """
    Build all four lookup maps in a single pass.

    Raises DuplicateToolError if two tools share a qualified name.
    """
    by_qualified: Dict[str, ToolDefinition] = {}
    by_short: Dict[str, List[ToolDefinition]] = {}
    by_provider: Dict[str, List[ToolDefinition]] = {}
    by_category: Dict[str, List[ToolDefinition]] = {}

    for tool in tools:
        name = tool.qualified_name
        if name in by_qualified:
            raise DuplicateToolError(f"Duplicate tool name: {name}")

        by_qualified[name] = tool
        by_short.setdefault(tool.short_name, []).append(tool)
        by_provider.setdefault(tool.provider, []).append(tool)
        by_category.setdefault(tool.category_key, []).append(tool)

    return ToolIndex(
        by_qualified_name=MappingProxyType(by_qualified),
        by_short_name=_freeze(by_short),
        by_provider=_freeze(by_provider),
        by_category=_freeze(by_category),
    )


def _freeze(groups: Dict[str, List[ToolDefinition]]) -> Mapping[str, Tuple[ToolDefinition, ...]]:
    return MappingProxyType({key: tuple(value) for key, value in groups.items()})


def filter_tools_by_connection(
    tools: Iterable[ToolDefinition],
    connected_providers: Iterable[str]
) -> List[ToolDefinition]:
    """Keep tools from connected providers. System tools are always kept."""
    connected = set(connected_providers)
    return [t for t in tools if t.is_system or t.provider in connected]


def get_categories(tools: Iterable[ToolDefinition], registry) -> List[Dict[str, Any]]:
    """
    Summarize categories with display names and tool counts.

    Provider categories read "Xero invoices"; system categories are
    capitalized ("Help").
    """
    summary: Dict[str, Dict[str, Any]] = {}

    for tool in tools:
        key = tool.category_key
        if key not in summary:
            if tool.is_system:
                display_name = tool.category[:1].upper() + tool.category[1:]
            else:
                display_name = f"{registry.display_name(tool.provider)} {tool.category}"
            summary[key] = {
                "category": key,
                "provider": None if tool.is_system else tool.provider,
                "displayName": display_name,
                "toolCount": 0,
            }
        summary[key]["toolCount"] += 1

    return list(summary.values())


_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")


class ToolDefinitionModel(BaseModel):
    """Validation model for tool definitions loaded from YAML."""
    provider: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    short_name: str = Field(..., min_length=1)
    name: Optional[str] = None
    description: str = ""
    required_tier: Optional[int] = Field(None, ge=0, le=3)
    connector: Optional[str] = None
    provider_type: Optional[ProviderType] = None
    input_schema: Dict[str, Any] = Field(default_factory=_empty_schema)

    @model_validator(mode="after")
    def _check_names(self) -> "ToolDefinitionModel":
        for value in (self.provider, self.short_name):
            if not _NAME_PATTERN.match(value):
                raise ValueError(f"Invalid identifier: {value!r}")
        expected = make_tool_name(self.provider, self.short_name)
        if self.name is not None and self.name != expected:
            raise ValueError(f"name {self.name!r} does not match {expected!r}")
        if self.provider_type is None:
            self.provider_type = default_provider_type(self.provider)
            if self.provider_type is None:
                raise ValueError(f"provider_type is required for unknown provider {self.provider!r}")
        return self

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(
            provider=self.provider,
            category=self.category,
            short_name=self.short_name,
            description=self.description,
            required_tier=None if self.required_tier is None else PermissionLevel(self.required_tier),
            connector=self.connector,
            provider_type=self.provider_type,
            input_schema=self.input_schema,
        )


class ToolCatalog:
    """
    The current tool list and its index.

    replace() swaps in a freshly built index; readers holding the previous
    index keep a consistent snapshot.
    """

    def __init__(self, tools: Optional[Iterable[ToolDefinition]] = None):
        self._logger = logging.getLogger("toolgate.tools.catalog")
        self._index = build_tool_index(tools or [])

    @property
    def index(self) -> ToolIndex:
        return self._index

    def replace(self, tools: Iterable[ToolDefinition]) -> ToolIndex:
        """Rebuild the index from a new tool list."""
        self._index = build_tool_index(tools)
        self._logger.info(f"Tool index rebuilt: {len(self._index)} tools")
        return self._index

    def get(self, qualified_name: str) -> Optional[ToolDefinition]:
        return self._index.by_qualified_name.get(qualified_name)

    def list_tools(self) -> List[ToolDefinition]:
        return self._index.tools

    def load_from_yaml(self, path: str) -> int:
        """
        Load extra tool definitions from a YAML file.
        Invalid or duplicate entries are logged and skipped.
        Returns number of tools loaded.
        """
        with open(Path(path), 'r') as f:
            data = yaml.safe_load(f) or {}

        tools = self.list_tools()
        known = {t.qualified_name for t in tools}
        count = 0

        for tool_data in data.get("tools", []):
            try:
                tool = ToolDefinitionModel.model_validate(tool_data).to_definition()
            except ValidationError as e:
                self._logger.error(f"Failed to load tool definition: {e}")
                continue

            if tool.qualified_name in known:
                self._logger.warning(f"Skipping duplicate tool: {tool.qualified_name}")
                continue

            known.add(tool.qualified_name)
            tools.append(tool)
            count += 1

        self.replace(tools)
        return count

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, qualified_name: str) -> bool:
        return qualified_name in self._index.by_qualified_name
