"""
Provider Registry
-----------------
Static catalog of external service providers plus per-user connection
probing.

A provider is connected for a user when a credential record exists for
(user_id, connector_key). Token freshness is the connector client's problem,
not ours. Unknown providers and missing credentials yield False/None, never
an exception.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional
import logging


SYSTEM_PROVIDER_ID = "system"


class ProviderType(str, Enum):
    """Groups similar services (e.g. Xero and MYOB are both accounting)."""
    ACCOUNTING = "accounting"
    SPREADSHEET = "spreadsheet"
    EMAIL = "email"
    TASKS = "tasks"
    SYSTEM = "system"


@dataclass(frozen=True)
class Provider:
    """An external service integration."""
    id: str
    type: ProviderType
    display_name: str
    connector_key: str  # Key used in the credential store
    implemented: bool = False


SYSTEM_PROVIDER = Provider(
    id=SYSTEM_PROVIDER_ID,
    type=ProviderType.SYSTEM,
    display_name="System",
    connector_key=SYSTEM_PROVIDER_ID,
    implemented=True,
)


def _catalog(*providers: Provider) -> Mapping[str, Provider]:
    return MappingProxyType({p.id: p for p in providers})


# Add new providers here as they're implemented
DEFAULT_PROVIDERS: Mapping[str, Provider] = _catalog(
    # Accounting
    Provider("xero", ProviderType.ACCOUNTING, "Xero", "xero", implemented=True),
    Provider("myob", ProviderType.ACCOUNTING, "MYOB", "myob"),
    Provider("quickbooks", ProviderType.ACCOUNTING, "QuickBooks", "quickbooks"),
    # Spreadsheets
    Provider("google_sheets", ProviderType.SPREADSHEET, "Google Sheets", "google_sheets", implemented=True),
    Provider("nextcloud", ProviderType.SPREADSHEET, "Nextcloud", "nextcloud"),
    # Email
    Provider("gmail", ProviderType.EMAIL, "Gmail", "gmail", implemented=True),
    Provider("outlook", ProviderType.EMAIL, "Outlook", "outlook"),
    # Tasks
    Provider("todoist", ProviderType.TASKS, "Todoist", "todoist"),
    Provider("joplin", ProviderType.TASKS, "Joplin", "joplin"),
)


class ProviderRegistry:
    """
    Read-only provider table with connection probing.

    The table is injected at construction (default: DEFAULT_PROVIDERS) and
    never mutated afterwards. `credentials` is anything with
    `has_credential(user_id, connector_key) -> bool`.
    """

    def __init__(self, credentials, providers: Optional[Mapping[str, Provider]] = None):
        source = DEFAULT_PROVIDERS if providers is None else providers
        if SYSTEM_PROVIDER_ID in source:
            raise ValueError(f"'{SYSTEM_PROVIDER_ID}' is reserved for the built-in system provider")

        self._providers: Mapping[str, Provider] = MappingProxyType(dict(source))
        self._credentials = credentials
        self._logger = logging.getLogger("toolgate.providers.registry")

    @property
    def providers(self) -> Mapping[str, Provider]:
        return self._providers

    def get_implemented_providers(self) -> List[Provider]:
        return [p for p in self._providers.values() if p.implemented]

    def get_providers_by_type(self, provider_type: ProviderType) -> List[Provider]:
        return [p for p in self._providers.values() if p.type == provider_type]

    def get_connected_providers(self, user_id: str) -> List[str]:
        """
        Provider IDs with a stored credential for this user.

        Only implemented providers are probed. The system provider is not
        listed; callers treat it as always connected.
        """
        connected = [
            provider.id
            for provider in self.get_implemented_providers()
            if self._credentials.has_credential(user_id, provider.connector_key)
        ]
        self._logger.debug(f"Connected providers for {user_id}: {connected}")
        return connected

    def is_provider_connected(self, user_id: str, provider_id: str) -> bool:
        if provider_id == SYSTEM_PROVIDER_ID:
            return True

        provider = self._providers.get(provider_id)
        if provider is None or not provider.implemented:
            return False

        return bool(self._credentials.has_credential(user_id, provider.connector_key))

    def get_provider_info(self, provider_id: str) -> Optional[Provider]:
        if provider_id == SYSTEM_PROVIDER_ID:
            return SYSTEM_PROVIDER
        return self._providers.get(provider_id)

    def display_name(self, provider_id: str) -> str:
        """Human-readable provider name, or the raw ID if unknown."""
        info = self.get_provider_info(provider_id)
        return info.display_name if info else provider_id

    def connector_key(self, provider_id: str) -> Optional[str]:
        """Connector key for a provider; None for system and unknown providers."""
        if provider_id == SYSTEM_PROVIDER_ID:
            return None
        info = self._providers.get(provider_id)
        return info.connector_key if info else None

    def __contains__(self, provider_id: str) -> bool:
        return provider_id == SYSTEM_PROVIDER_ID or provider_id in self._providers

    def __len__(self) -> int:
        return len(self._providers)
