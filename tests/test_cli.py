"""
End-to-end tests for the auth commands, driven through main().
"""
import io
import json
import logging
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
from rich.console import Console

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from krocli.cli import build_orchestrator, build_parser, main
from krocli.credential_store import Credentials, CredentialStore
from krocli.error_handler import InvalidError
from krocli.notifications import DeliveryPolicy
from krocli.settings import Settings
from krocli.token_vault import (
    CLIENT_TOKEN,
    USER_TOKEN,
    EncryptedFileBackend,
    TokenData,
    TokenVault,
    token_key,
)


@pytest.fixture(autouse=True)
def restore_logger():
    logger = logging.getLogger("krocli")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def env(config_dir):
    return {
        "KROCLI_CONFIG_DIR": str(config_dir),
        "KROCLI_VAULT_BACKEND": "encrypted-file",
        "KROCLI_VAULT_PASSPHRASE": "correct horse",
    }


@pytest.fixture
def run(env):
    """Run main() and return (exit_code, stdout_text, stderr_text)."""

    def _run(*argv, **overrides):
        out = Console(file=io.StringIO(), width=200)
        err = Console(file=io.StringIO(), width=200)
        code = main(
            list(argv),
            env=dict(env, **overrides),
            console=out,
            err_console=err,
            input_stream=io.StringIO(""),
        )
        return code, out.file.getvalue(), err.file.getvalue()

    return _run


def _seed_vault(config_dir, credentials=None):
    backend = EncryptedFileBackend(config_dir / "tokens.enc.json", "correct horse", iterations=1000)
    vault = TokenVault(backend)
    token = TokenData(
        access_token="tok",
        token_type="bearer",
        expiry=datetime.now(timezone.utc) + timedelta(minutes=30),
    )
    vault.store(token_key(USER_TOKEN, credentials), token)
    vault.store(token_key(CLIENT_TOKEN, credentials), token)
    return backend


class TestCredentialsSet:
    def test_imports_file(self, run, tmp_path, config_dir):
        source = tmp_path / "creds.json"
        source.write_text(json.dumps({"client_id": "my-client", "client_secret": "my-secret"}))

        code, out, _ = run("auth", "credentials", "set", str(source))

        assert code == 0
        assert "Credentials saved." in out
        assert CredentialStore(config_dir).load() == Credentials("my-client", "my-secret")

    def test_missing_fields(self, run, tmp_path, config_dir):
        source = tmp_path / "creds.json"
        source.write_text(json.dumps({"client_id": "only-id"}))

        code, _, err = run("auth", "credentials", "set", str(source))

        assert code == 1
        assert "client_id and client_secret" in err
        assert not (config_dir / "credentials.json").exists()

    def test_nonexistent_source(self, run, tmp_path):
        code, _, err = run("auth", "credentials", "set", str(tmp_path / "nope.json"))
        assert code == 1
        assert "Error:" in err


class TestStatus:
    def test_hosted_without_tokens(self, run, config_dir):
        code, out, _ = run("auth", "status")

        assert code == 0
        assert "Mode: hosted" in out
        assert "Client token: not available" in out
        assert "User token: not available" in out
        assert not config_dir.exists()

    def test_hosted_with_tokens(self, run, config_dir):
        _seed_vault(config_dir)

        code, out, _ = run("auth", "status")

        assert code == 0
        assert "Client token: valid" in out
        assert "User token: valid" in out

    def test_local_mode_after_import(self, run, tmp_path, config_dir):
        source = tmp_path / "creds.json"
        source.write_text(json.dumps({"client_id": "my-client", "client_secret": "my-secret"}))
        run("auth", "credentials", "set", str(source))
        # Hosted tokens do not count for the local identity
        _seed_vault(config_dir)

        code, out, _ = run("auth", "status")

        assert code == 0
        assert "Mode: local" in out
        assert "User token: not available" in out

    def test_vault_without_passphrase(self, run):
        code, _, err = run("auth", "status", KROCLI_VAULT_PASSPHRASE="")
        # Nothing stored yet, so the passphrase is never needed
        assert code == 0
        assert err == ""

    def test_unknown_vault_backend(self, run):
        code, _, err = run("auth", "status", KROCLI_VAULT_BACKEND="floppy")
        assert code == 1
        assert "unknown vault backend" in err

    def test_ignores_delivery_policy(self, run):
        code, out, _ = run("auth", "status", KROCLI_DELIVERY="email")
        assert code == 0
        assert "Mode: hosted" in out


class TestLogout:
    def test_removes_tokens(self, run, config_dir):
        backend = _seed_vault(config_dir)

        code, out, _ = run("auth", "logout")

        assert code == 0
        assert "Removed 2 stored token(s)." in out
        assert json.loads(backend.path.read_text())["entries"] == {}

    def test_nothing_to_remove(self, run):
        code, out, _ = run("auth", "logout")
        assert code == 0
        assert "No stored tokens to remove." in out


class TestParser:
    def test_rejects_unknown_delivery(self):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["auth", "login", "--delivery", "fax"])
        assert exc_info.value.code == 2

    def test_requires_subcommand(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["auth"])


class TestBuildOrchestrator:
    def test_delivery_override(self, env, console):
        settings = Settings.from_env(env)
        orchestrator = build_orchestrator(
            settings, console, delivery="telegram", provider=object()
        )
        selector = orchestrator.deliver_url.__self__
        assert selector.policy is DeliveryPolicy.TELEGRAM

    def test_delivery_from_settings(self, env, console):
        settings = Settings.from_env(dict(env, KROCLI_DELIVERY="browser"))
        orchestrator = build_orchestrator(settings, console, provider=object())
        assert orchestrator.deliver_url.__self__.policy is DeliveryPolicy.BROWSER

    def test_invalid_delivery_policy_fails_login(self, env, console):
        settings = Settings.from_env(dict(env, KROCLI_DELIVERY="email"))
        with pytest.raises(InvalidError, match="unknown delivery policy"):
            build_orchestrator(settings, console, provider=object())

    def test_agent_source_when_host_injects_telegram(self, env, console):
        settings = Settings.from_env(
            dict(env, TELEGRAM_BOT_TOKEN="tok", TELEGRAM_CHAT_ID="1")
        )
        orchestrator = build_orchestrator(settings, console)
        assert orchestrator.provider.source == "agent"

    def test_cli_source_by_default(self, env, console):
        orchestrator = build_orchestrator(Settings.from_env(env), console)
        assert orchestrator.provider.source == "cli"
