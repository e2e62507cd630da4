"""Tests for services.credential_manager and the credentials script."""

from unittest.mock import MagicMock, patch

import pytest

from scripts import manage_credentials
from services.credential_manager import (
    CREDENTIAL_KEYS,
    SERVICE_NAME,
    delete_credential,
    get_credential,
    list_credentials,
    set_credential,
)


@pytest.fixture
def mock_keyring():
    with patch("services.credential_manager.keyring") as mocked:
        yield mocked


# ---------------------------------------------------------------------------
# get_credential
# ---------------------------------------------------------------------------


class TestGetCredential:
    def test_returns_value(self, mock_keyring):
        mock_keyring.get_password.return_value = "secret123"
        assert get_credential("PLAID_SECRET") == "secret123"
        mock_keyring.get_password.assert_called_once_with(SERVICE_NAME, "PLAID_SECRET")

    def test_returns_none_when_not_found(self, mock_keyring):
        mock_keyring.get_password.return_value = None
        assert get_credential("PLAID_SECRET") is None

    def test_returns_none_on_backend_error(self, mock_keyring):
        mock_keyring.get_password.side_effect = Exception("no backend")
        assert get_credential("PLAID_SECRET") is None


# ---------------------------------------------------------------------------
# set_credential / delete_credential
# ---------------------------------------------------------------------------


class TestSetCredential:
    def test_stores_value(self, mock_keyring):
        assert set_credential("TATUM_API_KEY", "t-123") is True
        mock_keyring.set_password.assert_called_once_with(SERVICE_NAME, "TATUM_API_KEY", "t-123")

    def test_rejects_non_credential_key(self, mock_keyring):
        assert set_credential("DATABASE_URL", "sqlite://") is False
        mock_keyring.set_password.assert_not_called()

    def test_rejects_blank_value(self, mock_keyring):
        assert set_credential("PLAID_SECRET", "   ") is False
        mock_keyring.set_password.assert_not_called()

    def test_returns_false_on_backend_error(self, mock_keyring):
        mock_keyring.set_password.side_effect = Exception("locked")
        assert set_credential("PLAID_SECRET", "s") is False


class TestDeleteCredential:
    def test_deletes_value(self, mock_keyring):
        assert delete_credential("PLAID_SECRET") is True
        mock_keyring.delete_password.assert_called_once_with(SERVICE_NAME, "PLAID_SECRET")

    def test_rejects_non_credential_key(self, mock_keyring):
        assert delete_credential("LOG_LEVEL") is False
        mock_keyring.delete_password.assert_not_called()

    def test_returns_false_when_missing(self, mock_keyring):
        mock_keyring.delete_password.side_effect = Exception("not found")
        assert delete_credential("PLAID_SECRET") is False


def test_list_credentials(mock_keyring):
    mock_keyring.get_password.side_effect = lambda service, key: {"PLAID_SECRET": "s"}.get(key)
    assert list_credentials() == {"PLAID_SECRET": "s"}


def test_credential_keys():
    assert CREDENTIAL_KEYS == {"PLAID_CLIENT_ID", "PLAID_SECRET", "TATUM_API_KEY"}
    assert "DATABASE_URL" not in CREDENTIAL_KEYS


# ---------------------------------------------------------------------------
# scripts/manage_credentials.py
# ---------------------------------------------------------------------------


class TestManageCredentialsScript:
    def test_migrate_groups_keys_and_cleans_env(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# provider keys\nPLAID_CLIENT_ID=cid\nPLAID_SECRET=sec\nLOG_LEVEL=DEBUG\n"
        )
        stored = {"PLAID_CLIENT_ID": "cid"}

        with (
            patch.object(manage_credentials, "get_credential", side_effect=stored.get),
            patch.object(manage_credentials, "set_credential", return_value=True) as mock_set,
        ):
            outcome = manage_credentials.migrate(env_file, clean=True)

        assert outcome == {
            "stored": ["PLAID_SECRET"],
            "unchanged": ["PLAID_CLIENT_ID"],
            "missing": ["TATUM_API_KEY"],
            "failed": [],
        }
        mock_set.assert_called_once_with("PLAID_SECRET", "sec")
        assert env_file.read_text() == "# provider keys\nLOG_LEVEL=DEBUG\n"

    def test_migrate_without_clean_leaves_env(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("TATUM_API_KEY=t\n")

        with (
            patch.object(manage_credentials, "get_credential", return_value=None),
            patch.object(manage_credentials, "set_credential", return_value=False),
        ):
            outcome = manage_credentials.migrate(env_file)

        assert outcome["failed"] == ["TATUM_API_KEY"]
        assert env_file.read_text() == "TATUM_API_KEY=t\n"

    def test_main_migrate_missing_env_file(self, tmp_path, capsys):
        code = manage_credentials.main(["migrate", "--env-file", str(tmp_path / "nope")])
        assert code == 1
        assert "No .env file found" in capsys.readouterr().out

    def test_main_list_masks_values(self, capsys):
        with patch.object(
            manage_credentials, "list_credentials", return_value={"PLAID_SECRET": "abcdef123"}
        ):
            assert manage_credentials.main(["list"]) == 0
        assert capsys.readouterr().out.strip() == "PLAID_SECRET: ****f123"

    def test_main_delete(self):
        with patch.object(manage_credentials, "delete_credential", return_value=True) as mock_delete:
            assert manage_credentials.main(["delete", "TATUM_API_KEY"]) == 0
        mock_delete.assert_called_once_with("TATUM_API_KEY")
