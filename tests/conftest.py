"""
toolgate Test Configuration
---------------------------
Shared fixtures and configuration for all tests.
"""

import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from infra.database import CredentialRecord, DatabaseManager


FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root path."""
    return PROJECT_ROOT


@pytest.fixture
def temp_db():
    """Create a temporary settings store for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    db = DatabaseManager(db_path)
    db.initialize()

    yield db

    db.close()
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
def clock():
    """Fixed clock so vacation-mode checks are deterministic."""
    return lambda: FIXED_NOW


@pytest.fixture
def connect(temp_db):
    """Store a credential so the provider counts as connected."""
    def _connect(user_id: str, *connector_keys: str) -> None:
        for key in connector_keys:
            temp_db.save_credential(CredentialRecord(user_id=user_id, connector_key=key, access_token="token"))
    return _connect
