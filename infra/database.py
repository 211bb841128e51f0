"""
toolgate Settings Store
-----------------------
SQLite-based persistence for user settings, per-connector permission tiers
and connector credentials.

Design:
- Schema version table for migrations
- Hard fail on downgrade (db.version > code.version)
- Auto-migrate forward (db.version < code.version)
- Rows are upserted on demand and never deleted by the permission layer
- Store failures propagate to the caller

Usage:
    from infra.database import DatabaseManager

    db = DatabaseManager("toolgate.db")
    db.initialize()

    db.upsert_connector_permission("user-1", "xero", 2)
    db.get_connector_permission("user-1", "xero").tier  # 2
"""

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

from infra.logging import get_logger

# Current schema version - increment on any schema change
SCHEMA_VERSION = 1

MIN_TIER = 0
MAX_TIER = 3


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class UserSettings:
    """Per-user settings row. permission_level is the legacy global tier."""
    user_id: str
    permission_level: int = 0
    vacation_mode_until: Optional[datetime] = None
    require_confirmation: bool = True
    daily_email_summary: bool = True
    require_2fa: bool = False
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass
class ConnectorPermission:
    """Per-(user, connector) permission tier."""
    user_id: str
    connector: str
    tier: int = 0
    updated_at: datetime = field(default_factory=_now)


@dataclass
class CredentialRecord:
    """A stored connector credential. Only its existence matters here."""
    user_id: str
    connector_key: str
    access_token: str = ""
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_now)


class DatabaseError(Exception):
    """Database-specific errors."""
    pass


class SchemaMismatchError(DatabaseError):
    """Schema version mismatch (downgrade attempted)."""
    pass


class MigrationFailedError(DatabaseError):
    """Migration failed mid-way."""
    pass


# Columns of user_settings that upsert_user_settings may change
_SETTINGS_FIELDS = (
    "permission_level",
    "vacation_mode_until",
    "require_confirmation",
    "daily_email_summary",
    "require_2fa",
)


class DatabaseManager:
    """
    SQLite settings store with schema versioning.

    Thread-safe for reads. Multi-statement writes should use transaction().
    """

    def __init__(self, db_path: str = "toolgate.db"):
        self._db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._logger = get_logger("infra.database")
        self._initialized = False
        self._in_transaction = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    def initialize(self) -> None:
        """
        Initialize the database.

        - Creates database if not exists
        - Checks schema version
        - Runs migrations if needed (forward only)
        - Hard fails on downgrade
        """
        self._logger.info(f"Initializing settings store at {self._db_path}")

        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        db_version = self._get_schema_version()

        if db_version is None:
            self._logger.info("Creating new settings schema")
            self._create_schema()
            self._set_schema_version(SCHEMA_VERSION)
        elif db_version < SCHEMA_VERSION:
            self._logger.info(f"Migrating settings store from v{db_version} to v{SCHEMA_VERSION}")
            self._migrate(db_version, SCHEMA_VERSION)
        elif db_version > SCHEMA_VERSION:
            raise SchemaMismatchError(
                f"Database schema version ({db_version}) is newer than code version ({SCHEMA_VERSION}). "
                f"Downgrade is not supported."
            )
        else:
            self._logger.info(f"Settings schema is up to date (v{db_version})")

        self._verify_integrity()

        self._initialized = True

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            self._initialized = False

    def _get_schema_version(self) -> Optional[int]:
        try:
            cursor = self._conn.execute(
                "SELECT version FROM schema_version ORDER BY id DESC LIMIT 1"
            )
            row = cursor.fetchone()
            return row["version"] if row else None
        except sqlite3.OperationalError:
            # Table doesn't exist
            return None

    def _set_schema_version(self, version: int) -> None:
        self._conn.execute(
            "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
            (version, _now().isoformat())
        )
        self._conn.commit()

    def _create_schema(self) -> None:
        """Create the initial database schema (v1)."""
        schema_sql = """
        CREATE TABLE IF NOT EXISTS schema_version (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            version INTEGER NOT NULL,
            applied_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS user_settings (
            user_id TEXT PRIMARY KEY,
            permission_level INTEGER NOT NULL DEFAULT 0
                CHECK(permission_level BETWEEN 0 AND 3),
            vacation_mode_until TEXT,
            require_confirmation INTEGER NOT NULL DEFAULT 1,
            daily_email_summary INTEGER NOT NULL DEFAULT 1,
            require_2fa INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS connector_permissions (
            user_id TEXT NOT NULL,
            connector TEXT NOT NULL,
            tier INTEGER NOT NULL DEFAULT 0 CHECK(tier BETWEEN 0 AND 3),
            updated_at TEXT NOT NULL,
            PRIMARY KEY (user_id, connector)
        );

        CREATE TABLE IF NOT EXISTS oauth_tokens (
            user_id TEXT NOT NULL,
            connector_key TEXT NOT NULL,
            access_token TEXT NOT NULL,
            refresh_token TEXT,
            expires_at TEXT,
            created_at TEXT NOT NULL,
            PRIMARY KEY (user_id, connector_key)
        );
        """

        self._conn.executescript(schema_sql)
        self._conn.commit()

    def _migrate(self, from_version: int, to_version: int) -> None:
        """
        Run migrations from one version to another.

        Each migration is atomic. If any migration fails, the database is
        left at the last successful version.
        """
        migrations: Dict[int, str] = {}

        for version in range(from_version + 1, to_version + 1):
            if version in migrations:
                self._logger.info(f"Applying migration to v{version}")
                try:
                    self._conn.executescript(migrations[version])
                    self._set_schema_version(version)
                except sqlite3.Error as e:
                    raise MigrationFailedError(
                        f"Migration to v{version} failed: {e}. "
                        f"Database is at v{version - 1}. Manual intervention required."
                    )
            else:
                self._set_schema_version(version)

    def _verify_integrity(self) -> None:
        cursor = self._conn.execute("PRAGMA integrity_check")
        result = cursor.fetchone()[0]

        if result != "ok":
            raise DatabaseError(f"Database integrity check failed: {result}")

    def _require_connection(self) -> sqlite3.Connection:
        if not self._initialized or self._conn is None:
            raise DatabaseError("Database not initialized. Call initialize() first.")
        return self._conn

    def _commit(self) -> None:
        if not self._in_transaction:
            self._conn.commit()

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """
        Context manager for explicit transactions.

        Inner transactions are no-ops if already in transaction.
        """
        self._require_connection()

        if self._in_transaction:
            yield
            return

        self._in_transaction = True
        try:
            yield
            self._conn.commit()
        except Exception as e:
            self._conn.rollback()
            self._logger.error(f"Transaction rolled back: {e}")
            raise
        finally:
            self._in_transaction = False

    # ===== User Settings =====

    def get_user_settings(self, user_id: str) -> Optional[UserSettings]:
        """Get a user's settings row, or None if it was never created."""
        conn = self._require_connection()
        row = conn.execute(
            "SELECT * FROM user_settings WHERE user_id = ?",
            (user_id,)
        ).fetchone()

        if not row:
            return None

        return UserSettings(
            user_id=row["user_id"],
            permission_level=row["permission_level"],
            vacation_mode_until=_parse_ts(row["vacation_mode_until"]),
            require_confirmation=bool(row["require_confirmation"]),
            daily_email_summary=bool(row["daily_email_summary"]),
            require_2fa=bool(row["require_2fa"]),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    def upsert_user_settings(self, user_id: str, **changes: Any) -> UserSettings:
        """
        Create or update a user's settings row.

        Only the given fields change; a new row starts from the defaults.
        Returns the stored row.
        """
        unknown = set(changes) - set(_SETTINGS_FIELDS)
        if unknown:
            raise ValueError(f"Unknown settings fields: {sorted(unknown)}")
        if "permission_level" in changes:
            _check_tier(changes["permission_level"])

        settings = self.get_user_settings(user_id) or UserSettings(user_id=user_id)
        for name, value in changes.items():
            setattr(settings, name, value)
        settings.updated_at = _now()

        conn = self._require_connection()
        conn.execute("""
            INSERT INTO user_settings (
                user_id, permission_level, vacation_mode_until, require_confirmation,
                daily_email_summary, require_2fa, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                permission_level = excluded.permission_level,
                vacation_mode_until = excluded.vacation_mode_until,
                require_confirmation = excluded.require_confirmation,
                daily_email_summary = excluded.daily_email_summary,
                require_2fa = excluded.require_2fa,
                updated_at = excluded.updated_at
        """, (
            settings.user_id,
            int(settings.permission_level),
            settings.vacation_mode_until.isoformat() if settings.vacation_mode_until else None,
            int(settings.require_confirmation),
            int(settings.daily_email_summary),
            int(settings.require_2fa),
            settings.created_at.isoformat(),
            settings.updated_at.isoformat(),
        ))
        self._commit()
        return settings

    # ===== Connector Permissions =====

    def get_connector_permission(self, user_id: str, connector: str) -> Optional[ConnectorPermission]:
        """Get the tier row for (user, connector), or None if never set."""
        conn = self._require_connection()
        row = conn.execute(
            "SELECT * FROM connector_permissions WHERE user_id = ? AND connector = ?",
            (user_id, connector)
        ).fetchone()

        if not row:
            return None

        return ConnectorPermission(
            user_id=row["user_id"],
            connector=row["connector"],
            tier=row["tier"],
            updated_at=_parse_ts(row["updated_at"]),
        )

    def upsert_connector_permission(self, user_id: str, connector: str, tier: int) -> ConnectorPermission:
        """Create or replace the tier row for (user, connector)."""
        _check_tier(tier)
        permission = ConnectorPermission(user_id=user_id, connector=connector, tier=int(tier))

        conn = self._require_connection()
        conn.execute("""
            INSERT INTO connector_permissions (user_id, connector, tier, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id, connector) DO UPDATE SET
                tier = excluded.tier,
                updated_at = excluded.updated_at
        """, (user_id, connector, permission.tier, permission.updated_at.isoformat()))
        self._commit()
        return permission

    def list_connector_permissions(self, user_id: str) -> List[ConnectorPermission]:
        conn = self._require_connection()
        cursor = conn.execute(
            "SELECT * FROM connector_permissions WHERE user_id = ? ORDER BY connector",
            (user_id,)
        )
        return [
            ConnectorPermission(
                user_id=row["user_id"],
                connector=row["connector"],
                tier=row["tier"],
                updated_at=_parse_ts(row["updated_at"]),
            )
            for row in cursor.fetchall()
        ]

    # ===== Credentials =====

    def save_credential(self, record: CredentialRecord) -> None:
        """Save or replace a connector credential."""
        conn = self._require_connection()
        conn.execute("""
            INSERT OR REPLACE INTO oauth_tokens
                (user_id, connector_key, access_token, refresh_token, expires_at, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            record.user_id,
            record.connector_key,
            record.access_token,
            record.refresh_token,
            record.expires_at.isoformat() if record.expires_at else None,
            record.created_at.isoformat(),
        ))
        self._commit()

    def has_credential(self, user_id: str, connector_key: str) -> bool:
        """True iff a credential row exists. Expiry is not checked."""
        conn = self._require_connection()
        row = conn.execute(
            "SELECT 1 FROM oauth_tokens WHERE user_id = ? AND connector_key = ?",
            (user_id, connector_key)
        ).fetchone()
        return row is not None

    def delete_credential(self, user_id: str, connector_key: str) -> bool:
        conn = self._require_connection()
        cursor = conn.execute(
            "DELETE FROM oauth_tokens WHERE user_id = ? AND connector_key = ?",
            (user_id, connector_key)
        )
        self._commit()
        return cursor.rowcount > 0


def _check_tier(tier: Any) -> None:
    if isinstance(tier, bool) or not isinstance(tier, int) or not MIN_TIER <= tier <= MAX_TIER:
        raise ValueError(f"Permission tier must be an integer {MIN_TIER}-{MAX_TIER}, got {tier!r}")
