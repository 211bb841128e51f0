"""
Tool Visibility
---------------
Precomputes which tools a user may currently attempt, so the agent is only
shown tools that would not be denied at execution time.

Every exclusion here corresponds to a denial from
ToolAuthority.check_tool_permission on the same name.
"""

from typing import Dict, Iterable, List, Optional

from .authority import TierLookup, ToolAuthority
from .catalog import PermissionLevel, ToolDefinition, filter_tools_by_connection


class VisibilityFilter:
    """Tier-based filtering of candidate tool lists."""

    def __init__(self, authority: ToolAuthority):
        self._authority = authority

    def get_visible_tools(self, user_id: str, candidate_names: Iterable[str]) -> List[str]:
        """
        Subset of `candidate_names` the user may currently attempt, in input order.

        Connector tiers are cached for this call only; settings may change
        between turns.
        """
        authority = self._authority
        settings = authority.store.get_user_settings(user_id)
        vacation = authority.is_vacation_mode_active(settings)
        global_tier = authority.global_tier(settings)

        connector_tiers: Dict[str, TierLookup] = {}
        visible: List[str] = []

        for name in candidate_names:
            required = authority.required_tier(name)

            # Unknown tier: always visible
            if required is None:
                visible.append(name)
                continue

            if vacation and required > PermissionLevel.READ_ONLY:
                continue

            connector = authority.connector_for(name)
            if connector is None:
                authority.report_unmapped(name, required)
                lookup = global_tier
            else:
                lookup = connector_tiers.get(connector)
                if lookup is None:
                    lookup = authority.tier_with_settings(user_id, connector, settings)
                    connector_tiers[connector] = lookup

            if lookup.tier >= required:
                visible.append(name)

        return visible

    def get_agent_tools(
        self,
        user_id: str,
        tools: Iterable[ToolDefinition],
        connected_providers: Optional[Iterable[str]] = None,
    ) -> List[ToolDefinition]:
        """
        Tools to present at turn start: connected providers first, then tiers.

        With connected_providers=None only the tier filter applies.
        """
        candidates = list(tools)
        if connected_providers is not None:
            candidates = filter_tools_by_connection(candidates, connected_providers)

        by_name = {t.qualified_name: t for t in candidates}
        visible = self.get_visible_tools(user_id, by_name.keys())
        return [by_name[name] for name in visible]
