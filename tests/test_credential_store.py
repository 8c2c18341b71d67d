"""
Tests for credential persistence, validation and import.
"""
import json
import os
import stat
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from krocli.credential_store import Credentials, CredentialStore
from krocli.error_handler import (
    ConfigIOError,
    CredentialsNotFoundError,
    InvalidCredentialsError,
    InvalidError,
    MissingFieldsError,
)


class TestSaveAndLoad:
    @pytest.mark.parametrize(
        "client_id,client_secret",
        [
            ("test-id", "test-secret"),
            ("a", "b"),
            ("id with spaces", "s3cr3t/+=="),
            ("ünïcødé-id", "秘密"),
        ],
    )
    def test_round_trip(self, config_dir, client_id, client_secret):
        store = CredentialStore(config_dir)
        store.save(Credentials(client_id, client_secret))

        loaded = store.load()
        assert loaded.client_id == client_id
        assert loaded.client_secret == client_secret

    def test_save_creates_directory_owner_only(self, config_dir):
        store = CredentialStore(config_dir)
        store.save(Credentials("test-id", "test-secret"))

        assert config_dir.is_dir()
        if os.name == "posix":
            assert stat.S_IMODE(config_dir.stat().st_mode) == 0o700
            assert stat.S_IMODE(store.path.stat().st_mode) == 0o600

    def test_save_overwrites_instead_of_merging(self, config_dir):
        store = CredentialStore(config_dir)
        store.save(Credentials("first-id", "first-secret"))
        store.save(Credentials("second-id", "second-secret"))

        document = json.loads(store.path.read_text())
        assert document == {"client_id": "second-id", "client_secret": "second-secret"}

    def test_save_is_idempotent(self, config_dir):
        store = CredentialStore(config_dir)
        creds = Credentials("test-id", "test-secret")
        store.save(creds)
        store.save(creds)
        assert store.load() == creds

    @pytest.mark.parametrize("creds", [Credentials("", "secret"), Credentials("id", "")])
    def test_save_rejects_empty_fields(self, config_dir, creds):
        store = CredentialStore(config_dir)
        with pytest.raises(MissingFieldsError):
            store.save(creds)
        assert not store.path.exists()

    def test_repr_hides_secret(self):
        assert "test-secret" not in repr(Credentials("test-id", "test-secret"))


class TestLoad:
    def test_not_found(self, config_dir):
        with pytest.raises(CredentialsNotFoundError):
            CredentialStore(config_dir).load()

    def test_invalid_json(self, config_dir, write_json):
        write_json(config_dir / "credentials.json", "{not json")
        with pytest.raises(InvalidCredentialsError):
            CredentialStore(config_dir).load()

    def test_missing_secret(self, config_dir, write_json):
        write_json(config_dir / "credentials.json", {"client_id": "id-only"})
        with pytest.raises(InvalidError):
            CredentialStore(config_dir).load()

    def test_non_object_document(self, config_dir, write_json):
        write_json(config_dir / "credentials.json", ["test-id", "test-secret"])
        with pytest.raises(InvalidCredentialsError):
            CredentialStore(config_dir).load()

    def test_unreadable_path_is_io_error(self, config_dir):
        # A directory where the file should be cannot be read as a document
        (config_dir / "credentials.json").mkdir(parents=True)
        with pytest.raises(ConfigIOError):
            CredentialStore(config_dir).load()


class TestImport:
    def test_import_persists_values(self, tmp_path, config_dir, write_json):
        source = write_json(
            tmp_path / "creds.json", {"client_id": "test-id", "client_secret": "test-secret"}
        )
        store = CredentialStore(config_dir)

        store.import_from(source)

        loaded = store.load()
        assert (loaded.client_id, loaded.client_secret) == ("test-id", "test-secret")
        saved = json.loads((config_dir / "credentials.json").read_text())
        assert saved["client_id"] == "test-id"

    @pytest.mark.parametrize(
        "document",
        [
            {"client_id": "only-id"},
            {"client_secret": "only-secret"},
            {"client_id": "", "client_secret": "secret"},
            {},
        ],
    )
    def test_missing_fields_rejected(self, tmp_path, config_dir, write_json, document):
        source = write_json(tmp_path / "creds.json", document)
        with pytest.raises(MissingFieldsError) as exc_info:
            CredentialStore(config_dir).import_from(source)
        assert "client_id" in str(exc_info.value)
        assert "client_secret" in str(exc_info.value)

    def test_failed_import_leaves_store_untouched(self, tmp_path, config_dir, write_json):
        store = CredentialStore(config_dir)
        store.save(Credentials("kept-id", "kept-secret"))
        source = write_json(tmp_path / "creds.json", {"client_id": "new-id"})

        with pytest.raises(MissingFieldsError):
            store.import_from(source)

        assert store.load() == Credentials("kept-id", "kept-secret")

    def test_nonexistent_path_is_io_error(self, config_dir):
        with pytest.raises(ConfigIOError) as exc_info:
            CredentialStore(config_dir).import_from("/nonexistent/creds.json")
        assert not isinstance(exc_info.value, InvalidError)
        assert isinstance(exc_info.value.cause, FileNotFoundError)

    def test_malformed_json_is_invalid(self, tmp_path, config_dir, write_json):
        source = write_json(tmp_path / "creds.json", "{client_id: nope")
        with pytest.raises(InvalidCredentialsError):
            CredentialStore(config_dir).import_from(source)
        assert not (config_dir / "credentials.json").exists()
