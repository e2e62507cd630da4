"""Tests for Settings and the KeychainSettingsSource in config.py."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from config import KeychainSettingsSource, Settings
from services.credential_manager import CREDENTIAL_KEYS

# Environment variables that would interfere with Settings defaults if
# set in the test runner's shell.  We clear them for isolation.
_ENV_VARS_TO_CLEAR = {
    "DATABASE_URL",
    "ENVIRONMENT",
    "DEBUG",
    "LOG_LEVEL",
    "PLAID_ENVIRONMENT",
    "BALANCE_LEDGER_FAILURE_POLICY",
    *CREDENTIAL_KEYS,
}


def _clean_env():
    """Return a dict suitable for ``os.environ`` patching that removes
    any variables the Settings class reads."""
    return {k: v for k, v in os.environ.items() if k not in _ENV_VARS_TO_CLEAR}


class TestKeychainSettingsSource:
    def test_keychain_value_overrides_default(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.side_effect = lambda key: "keychain-secret" if key == "PLAID_SECRET" else None
            s = Settings(_env_file=None)
            assert s.PLAID_SECRET == "keychain-secret"
            assert s.PLAID_CLIENT_ID == ""

    def test_keychain_overrides_env_var(self):
        env = _clean_env()
        env["TATUM_API_KEY"] = "from-env"
        with (
            patch.dict(os.environ, env, clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.side_effect = lambda key: "from-keychain" if key == "TATUM_API_KEY" else None
            s = Settings(_env_file=None)
            assert s.TATUM_API_KEY == "from-keychain"

    def test_init_value_overrides_keychain(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential", return_value="keychain-value"),
        ):
            s = Settings(_env_file=None, PLAID_CLIENT_ID="init-value")
            assert s.PLAID_CLIENT_ID == "init-value"

    def test_non_credential_fields_skip_keychain(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.return_value = None
            s = Settings(_env_file=None)
            assert s.DATABASE_URL == "sqlite:///./banklink.db"
            called_keys = {call.args[0] for call in mock_get.call_args_list}
            assert called_keys == set(CREDENTIAL_KEYS)

    def test_source_is_second_in_priority_chain(self):
        sources = Settings.settings_customise_sources(
            Settings,
            init_settings=object(),
            env_settings=object(),
            dotenv_settings=object(),
            file_secret_settings=object(),
        )
        assert isinstance(sources[1], KeychainSettingsSource)


class TestValidators:
    def test_plaid_environment_normalized(self):
        with patch.dict(os.environ, _clean_env(), clear=True), patch(
            "config.get_credential", return_value=None
        ):
            assert Settings(_env_file=None, PLAID_ENVIRONMENT="Production").PLAID_ENVIRONMENT == "production"

    def test_plaid_development_rejected(self):
        with patch.dict(os.environ, _clean_env(), clear=True), patch(
            "config.get_credential", return_value=None
        ):
            with pytest.raises(ValidationError, match="PLAID_ENVIRONMENT"):
                Settings(_env_file=None, PLAID_ENVIRONMENT="development")

    def test_failure_policy_validated(self):
        with patch.dict(os.environ, _clean_env(), clear=True), patch(
            "config.get_credential", return_value=None
        ):
            assert Settings(_env_file=None, BALANCE_LEDGER_FAILURE_POLICY="RETRY").BALANCE_LEDGER_FAILURE_POLICY == "retry"
            with pytest.raises(ValidationError):
                Settings(_env_file=None, BALANCE_LEDGER_FAILURE_POLICY="ignore")

    def test_defaults(self):
        with patch.dict(os.environ, _clean_env(), clear=True), patch(
            "config.get_credential", return_value=None
        ):
            s = Settings(_env_file=None)
        assert s.WEBHOOK_DEDUP_WINDOW_SECONDS == 300
        assert s.BALANCE_LEDGER_FAILURE_POLICY == "swallow"
        assert s.DEFAULT_TIMEZONE == "UTC"
