# Infrastructure module - settings store, logging, config and service bus
# FastAPI for internal communication, SQLite for settings and credentials

from .logging import (
    get_logger, configure_logging, RequestContext,
    get_request_id, generate_request_id
)
from .config import ConfigManager
from .database import (
    DatabaseManager, UserSettings, ConnectorPermission, CredentialRecord,
    DatabaseError, SchemaMismatchError, MigrationFailedError,
    SCHEMA_VERSION
)

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "RequestContext",
    "get_request_id",
    "generate_request_id",
    # Config
    "ConfigManager",
    # Database
    "DatabaseManager",
    "UserSettings",
    "ConnectorPermission",
    "CredentialRecord",
    "DatabaseError",
    "SchemaMismatchError",
    "MigrationFailedError",
    "SCHEMA_VERSION",
]
