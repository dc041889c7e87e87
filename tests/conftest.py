"""Shared test fixtures for BlockPilot.

Provides settings and in-memory collaborators used across the unit tests.
"""

import pytest
from pydantic import SecretStr

from src.settings import Settings
from tests.helpers.fakes import InMemoryConfigStore, RecordingSleep


# =============================================================================
# SETTINGS
# =============================================================================


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Provide test settings with safe defaults."""
    return Settings(
        environment="testing",
        debug=True,
        api_base_url="http://builder.test",
        api_token=SecretStr("test-token"),
        device_code_url="https://auth.test/oauth/device/code",
        token_url="https://auth.test/oauth/token",
        device_verification_url="https://auth.test/device",
        oauth_client_id="test-client",
        config_backend="local",
        config_dir=tmp_path / "config",
        codex_home=tmp_path / "codex",
    )


# =============================================================================
# COLLABORATORS
# =============================================================================


@pytest.fixture
def config_store() -> InMemoryConfigStore:
    """In-memory credential store."""
    return InMemoryConfigStore()


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    """Sleep replacement that records delays and drives a fake clock."""
    return RecordingSleep()
