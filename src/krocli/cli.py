# src/krocli/cli.py
"""
Command-line entry point for the auth commands.

    krocli auth login [--delivery auto|browser|telegram]
    krocli auth status
    krocli auth logout
    krocli auth credentials set <path>
"""

import argparse
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Mapping, Optional, TextIO

import colorlog
import httpx
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape as rich_escape

from . import __version__
from .credential_store import CredentialStore
from .error_handler import KrocliError, TokenNotFoundError
from .login import LoginOrchestrator
from .mode import AuthMode, resolve_mode
from .notifications import (
    BrowserLauncher,
    DeliveryPolicy,
    HostEnvironmentResolver,
    NotificationChannelSelector,
    TelegramClient,
    TelegramConfigStore,
    default_resolvers,
)
from .providers import KrogerOAuthProvider
from .settings import Settings
from .token_vault import CLIENT_TOKEN, USER_TOKEN, open_vault, token_key
from .utils.headless_detection import is_headless_environment

lib_logger = logging.getLogger("krocli")


def configure_logging(verbosity: int = 0, log_file: Optional[str] = None) -> None:
    """
    Console logging on stderr (WARNING, INFO with -v, DEBUG with -vv) and an
    optional rotating debug log file.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    console_handler = colorlog.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s%(message)s",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
    )

    logger = logging.getLogger("krocli")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    # Clear existing handlers to prevent duplicates when main() runs twice
    logger.handlers.clear()
    logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = RotatingFileHandler(
                log_file, maxBytes=1024 * 1024, backupCount=2, encoding="utf-8"
            )
        except OSError as e:
            logger.warning(f"Cannot open log file {log_file}: {e}")
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
            logger.addHandler(file_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="krocli", description="Kroger API command-line client")
    parser.add_argument("--version", action="version", version=f"krocli {__version__}")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="Increase log output (-vv for debug)."
    )
    commands = parser.add_subparsers(dest="command", required=True)

    auth = commands.add_parser("auth", help="Manage authentication.")
    auth_commands = auth.add_subparsers(dest="auth_command", required=True)

    login = auth_commands.add_parser("login", help="Log in via the OAuth flow.")
    login.add_argument(
        "--delivery",
        choices=[p.value for p in DeliveryPolicy],
        default=None,
        help="How to deliver the login link (default: KROCLI_DELIVERY or auto).",
    )
    login.set_defaults(handler=_cmd_login)

    status = auth_commands.add_parser("status", help="Show current auth state.")
    status.set_defaults(handler=_cmd_status)

    logout = auth_commands.add_parser("logout", help="Remove stored tokens for the current mode.")
    logout.set_defaults(handler=_cmd_logout)

    credentials = auth_commands.add_parser("credentials", help="Manage API credentials.")
    credentials_commands = credentials.add_subparsers(dest="credentials_command", required=True)
    set_cmd = credentials_commands.add_parser(
        "set", help="Import credentials from a JSON file."
    )
    set_cmd.add_argument("path", help="Path to JSON file with client_id and client_secret.")
    set_cmd.set_defaults(handler=_cmd_credentials_set)

    return parser


class _Context:
    """What a command handler needs; built once per invocation."""

    def __init__(
        self,
        args: argparse.Namespace,
        settings: Settings,
        console: Console,
        err_console: Console,
        input_stream: Optional[TextIO] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        self.args = args
        self.settings = settings
        self.console = console
        self.err_console = err_console
        self.input_stream = input_stream
        self.http_client = http_client

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {rich_escape(message)}")

    def info(self, message: str) -> None:
        self.console.print(rich_escape(message))

    def warn(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {rich_escape(message)}")


def build_provider(settings: Settings, console: Console) -> KrogerOAuthProvider:
    # A bot host that injects Telegram credentials is driving us as an agent
    injected = HostEnvironmentResolver(settings.env).resolve() is not None
    return KrogerOAuthProvider(
        vault=open_vault(settings),
        proxy_url=settings.proxy_url,
        api_base=settings.api_base,
        callback_port=settings.oauth_port,
        source="agent" if injected else "cli",
        timeout=settings.timeout,
        console=console,
    )


def build_orchestrator(
    settings: Settings,
    console: Console,
    delivery: Optional[str] = None,
    input_stream: Optional[TextIO] = None,
    http_client: Optional[httpx.Client] = None,
    provider=None,
) -> LoginOrchestrator:
    """Wire the login collaborators from settings."""
    policy = DeliveryPolicy.parse(delivery or settings.delivery)
    telegram_store = TelegramConfigStore(settings.config_dir)
    selector = NotificationChannelSelector(
        resolvers=default_resolvers(
            telegram_store, settings.env, console=console, input_stream=input_stream
        ),
        telegram_client=TelegramClient(http_client, base_url=settings.telegram_api_base),
        browser_launcher=BrowserLauncher(),
        policy=policy,
        headless_check=lambda: is_headless_environment(settings.env),
        console=console,
    )

    return LoginOrchestrator(
        credential_store=CredentialStore(settings.config_dir),
        provider=provider or build_provider(settings, console),
        deliver_url=selector.deliver,
    )


def _cmd_login(ctx: _Context) -> int:
    orchestrator = build_orchestrator(
        ctx.settings,
        ctx.console,
        delivery=ctx.args.delivery,
        input_stream=ctx.input_stream,
        http_client=ctx.http_client,
    )
    result = orchestrator.login()
    ctx.success(f"Logged in ({result.mode.value} mode).")
    return 0


def _cmd_status(ctx: _Context) -> int:
    # Status never delivers a URL, so the delivery policy is not consulted
    orchestrator = LoginOrchestrator(
        credential_store=CredentialStore(ctx.settings.config_dir),
        provider=build_provider(ctx.settings, ctx.console),
    )
    status = orchestrator.status()
    ctx.info(f"Mode: {status.mode.value}")
    if status.client_token_valid:
        ctx.success("Client token: valid")
    else:
        ctx.warn("Client token: not available")
    if status.user_token_valid:
        ctx.success("User token: valid")
    else:
        ctx.warn("User token: not available (run: krocli auth login)")
    return 0


def _cmd_logout(ctx: _Context) -> int:
    settings = ctx.settings
    credentials = None
    if resolve_mode(settings.config_dir) is AuthMode.LOCAL:
        credentials = CredentialStore(settings.config_dir).load()
    vault = open_vault(settings)
    removed = 0
    for purpose in (USER_TOKEN, CLIENT_TOKEN):
        try:
            vault.delete(token_key(purpose, credentials))
            removed += 1
        except TokenNotFoundError:
            lib_logger.debug(f"No {purpose} token to remove")
    if removed:
        ctx.success(f"Removed {removed} stored token(s).")
    else:
        ctx.warn("No stored tokens to remove.")
    return 0


def _cmd_credentials_set(ctx: _Context) -> int:
    store = CredentialStore(ctx.settings.config_dir)
    store.import_from(ctx.args.path)
    ctx.success("Credentials saved.")
    return 0


def main(
    argv=None,
    env: Optional[Mapping[str, str]] = None,
    console: Optional[Console] = None,
    err_console: Optional[Console] = None,
    input_stream: Optional[TextIO] = None,
) -> int:
    """
    Run the CLI and return the process exit code.

    Args:
        argv: Arguments (without program name). If None, uses sys.argv.
        env: Environment mapping. If None, loads ./.env (without overriding
             variables already set) and uses os.environ.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if env is None:
        load_dotenv(Path.cwd() / ".env", override=False)
    settings = Settings.from_env(env)
    configure_logging(args.verbose, settings.log_file)

    console = console or Console()
    err_console = err_console or Console(stderr=True)

    try:
        with httpx.Client(timeout=settings.timeout) as http_client:
            ctx = _Context(args, settings, console, err_console, input_stream, http_client)
            return args.handler(ctx)
    except KrocliError as e:
        err_console.print(f"[bold red]Error:[/bold red] {rich_escape(str(e))}")
        return 1
    except KeyboardInterrupt:
        err_console.print("[yellow]Interrupted.[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
