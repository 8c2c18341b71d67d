"""
Tests for hosted/local mode resolution.
"""
import os
import sys
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from krocli.credential_store import Credentials, CredentialStore
from krocli.mode import AuthMode, is_hosted_mode, resolve_mode


class TestIsHostedMode:
    def test_hosted_when_directory_missing(self, config_dir):
        assert is_hosted_mode(config_dir) is True

    def test_check_does_not_create_directory(self, config_dir):
        is_hosted_mode(config_dir)
        assert not config_dir.exists()

    def test_hosted_when_directory_exists_without_file(self, config_dir):
        config_dir.mkdir(parents=True)
        assert is_hosted_mode(config_dir) is True

    def test_local_when_credentials_file_exists(self, config_dir):
        CredentialStore(config_dir).save(Credentials("test-id", "test-secret"))
        assert is_hosted_mode(config_dir) is False

    def test_local_even_when_file_is_malformed(self, config_dir):
        config_dir.mkdir(parents=True)
        (config_dir / "credentials.json").write_text("{not json")
        assert is_hosted_mode(config_dir) is False

    def test_hosted_when_parent_is_a_file(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        assert is_hosted_mode(blocker) is True

    def test_permission_error_counts_as_local(self, config_dir):
        with patch("krocli.mode.os.stat", side_effect=PermissionError("denied")):
            assert is_hosted_mode(config_dir) is False

    def test_recomputed_on_every_call(self, config_dir):
        store = CredentialStore(config_dir)
        assert is_hosted_mode(config_dir) is True
        store.save(Credentials("test-id", "test-secret"))
        assert is_hosted_mode(config_dir) is False
        store.path.unlink()
        assert is_hosted_mode(config_dir) is True


class TestResolveMode:
    def test_values(self, config_dir):
        assert resolve_mode(config_dir) is AuthMode.HOSTED
        CredentialStore(config_dir).save(Credentials("test-id", "test-secret"))
        assert resolve_mode(config_dir) is AuthMode.LOCAL
