# src/krocli/notifications/channel_selector.py
"""
Delivery of an OAuth authorization URL to the user.

Two channels exist: a local browser process, and a Telegram bot message for
sessions without a usable display (SSH, containers, agents driven by a bot
host). The Telegram configuration is found by walking an ordered list of
resolvers, stopping at the first that produces one:

    1. SavedConfigResolver       - telegram.json in the config directory
    2. HostEnvironmentResolver   - TELEGRAM_BOT_TOKEN + TELEGRAM_CHAT_ID (never persisted)
    3. InteractivePromptResolver - asks on stdin and persists the answer

Which channel is tried first is decided by choose_channel() from the
configured DeliveryPolicy.
"""

import logging
import subprocess
import sys
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, List, Mapping, Optional, Sequence, TextIO

from rich.console import Console
from rich.markup import escape as rich_escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.text import Text

from ..error_handler import (
    ChannelConfigNotFoundError,
    EmptyInputError,
    InvalidChannelConfigError,
    InvalidError,
)
from ..settings import HOST_BOT_TOKEN_ENV, HOST_CHAT_ID_ENV
from .telegram import TelegramClient, TelegramConfig, TelegramConfigStore

lib_logger = logging.getLogger("krocli")

MESSAGE_TEMPLATE = (
    "krocli login: open this link to authorize access to your Kroger account.\n\n{url}"
)


class DeliveryPolicy(str, Enum):
    AUTO = "auto"
    BROWSER = "browser"
    TELEGRAM = "telegram"

    @classmethod
    def parse(cls, value: str) -> "DeliveryPolicy":
        try:
            return cls(value.strip().lower())
        except ValueError:
            choices = ", ".join(p.value for p in cls)
            raise InvalidError(f"unknown delivery policy '{value}' (expected one of: {choices})")


class Channel(str, Enum):
    BROWSER = "browser"
    TELEGRAM = "telegram"


def choose_channel(policy: DeliveryPolicy, configured: bool, headless: bool) -> Channel:
    """
    Pick the primary delivery channel.

    Args:
        policy: The configured delivery policy
        configured: A Telegram config resolves without prompting
        headless: No local display is available

    Returns:
        BROWSER or TELEGRAM. An explicit policy always wins; AUTO prefers
        Telegram when it is already set up or when there is no display.
    """
    if policy is DeliveryPolicy.BROWSER:
        return Channel.BROWSER
    if policy is DeliveryPolicy.TELEGRAM:
        return Channel.TELEGRAM
    if configured or headless:
        return Channel.TELEGRAM
    return Channel.BROWSER


# =============================================================================
# CONFIGURATION RESOLVERS
# =============================================================================


class ChannelConfigResolver(ABC):
    """One source of Telegram configuration."""

    name: str = "abstract"
    # Interactive resolvers block on the user and only run when Telegram is required
    interactive: bool = False

    @abstractmethod
    def resolve(self) -> Optional[TelegramConfig]:
        """Return a complete config, or None when this source does not apply."""


class SavedConfigResolver(ChannelConfigResolver):
    name = "saved"

    def __init__(self, store: TelegramConfigStore):
        self.store = store

    def resolve(self) -> Optional[TelegramConfig]:
        try:
            return self.store.load()
        except ChannelConfigNotFoundError:
            return None
        except InvalidChannelConfigError as e:
            lib_logger.warning(f"Ignoring saved Telegram config: {e}")
            return None


class HostEnvironmentResolver(ChannelConfigResolver):
    """Credentials injected by a bot host. The host owns them; they are never saved."""

    name = "host-env"

    def __init__(
        self,
        env: Mapping[str, str],
        token_var: str = HOST_BOT_TOKEN_ENV,
        chat_var: str = HOST_CHAT_ID_ENV,
    ):
        self.env = env
        self.token_var = token_var
        self.chat_var = chat_var

    def resolve(self) -> Optional[TelegramConfig]:
        bot_token = (self.env.get(self.token_var) or "").strip()
        chat_id = (self.env.get(self.chat_var) or "").strip()
        if not (bot_token and chat_id):
            return None
        lib_logger.debug(f"Using Telegram config injected via {self.token_var}/{self.chat_var}")
        return TelegramConfig(bot_token=bot_token, chat_id=chat_id, transient=True)


class InteractivePromptResolver(ChannelConfigResolver):
    """
    First-run setup: asks for a bot token and chat id on the input stream.

    Blocks until a line is read; there is no timeout. A blank answer to
    either question fails with EmptyInputError and nothing is saved.
    """

    name = "prompt"
    interactive = True

    def __init__(
        self,
        store: TelegramConfigStore,
        console: Optional[Console] = None,
        input_stream: Optional[TextIO] = None,
    ):
        self.store = store
        self.console = console or Console(stderr=True)
        self.input_stream = input_stream

    def _ask(self, label: str) -> str:
        # Prompt.ask reads from input_stream when given, else from the terminal
        answer = Prompt.ask(
            f"[bold]{label}[/bold]", console=self.console, stream=self.input_stream
        )
        return (answer or "").strip()

    def resolve(self) -> Optional[TelegramConfig]:
        self.console.print(
            Panel(
                Text.from_markup(
                    "No Telegram configuration found.\n"
                    "1. Create a bot with [bold]@BotFather[/bold] and copy its token.\n"
                    "2. Send your bot a message, then look up your chat id.\n"
                    f"The answers are saved to [bold]{rich_escape(str(self.store.path))}[/bold]."
                ),
                title="Telegram Setup",
                style="bold blue",
            )
        )
        bot_token = self._ask("Telegram bot token")
        if not bot_token:
            raise EmptyInputError("bot token")
        chat_id = self._ask("Telegram chat ID")
        if not chat_id:
            raise EmptyInputError("chat ID")

        config = TelegramConfig(bot_token=bot_token, chat_id=chat_id)
        self.store.save(config)
        return config


def default_resolvers(
    store: TelegramConfigStore,
    env: Mapping[str, str],
    console: Optional[Console] = None,
    input_stream: Optional[TextIO] = None,
) -> List[ChannelConfigResolver]:
    return [
        SavedConfigResolver(store),
        HostEnvironmentResolver(env),
        InteractivePromptResolver(store, console=console, input_stream=input_stream),
    ]


def first_resolved(resolvers: Sequence[ChannelConfigResolver]) -> Optional[TelegramConfig]:
    for resolver in resolvers:
        config = resolver.resolve()
        if config is not None:
            lib_logger.debug(f"Telegram config resolved by '{resolver.name}' resolver")
            return config
    return None


# =============================================================================
# BROWSER
# =============================================================================


class BrowserLauncher:
    """Opens a URL with the platform's launcher, without waiting for it."""

    def __init__(
        self,
        platform: Optional[str] = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        self.platform = platform or sys.platform
        self._popen = popen

    def command_for(self, url: str) -> List[str]:
        if self.platform == "darwin":
            return ["open", url]
        if self.platform.startswith("win") or self.platform == "cygwin":
            return ["rundll32", "url.dll,FileProtocolHandler", url]
        return ["xdg-open", url]

    def open(self, url: str) -> None:
        """
        Raises:
            OSError: The launcher process could not be started
        """
        command = self.command_for(url)
        self._popen(
            command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        lib_logger.info(f"Started browser launcher '{command[0]}'")


# =============================================================================
# SELECTOR
# =============================================================================


class NotificationChannelSelector:
    """
    Delivers an authorization URL and returns once delivery is dispatched.

    The browser path is fire-and-forget. The Telegram path waits for the
    API's answer and raises ChannelAPIError when it reports a failure.
    """

    def __init__(
        self,
        resolvers: Sequence[ChannelConfigResolver],
        telegram_client: TelegramClient,
        browser_launcher: Optional[BrowserLauncher] = None,
        policy: DeliveryPolicy = DeliveryPolicy.AUTO,
        headless_check: Optional[Callable[[], bool]] = None,
        console: Optional[Console] = None,
    ):
        self.resolvers = list(resolvers)
        self.telegram_client = telegram_client
        self.browser_launcher = browser_launcher or BrowserLauncher()
        self.policy = policy
        self.headless_check = headless_check or (lambda: False)
        self.console = console or Console(stderr=True)

    def _resolve_without_prompt(self) -> Optional[TelegramConfig]:
        return first_resolved([r for r in self.resolvers if not r.interactive])

    def _resolve_with_prompt(self) -> Optional[TelegramConfig]:
        return first_resolved([r for r in self.resolvers if r.interactive])

    def deliver(self, url: str) -> Channel:
        """
        Present url to the user on the channel picked by the policy.

        Returns:
            The channel that was used
        """
        self.console.print(
            f"[bold]URL:[/bold] [link={url}]{rich_escape(url)}[/link]\n"
        )

        config = self._resolve_without_prompt()
        headless = self.policy is DeliveryPolicy.AUTO and self.headless_check()
        channel = choose_channel(self.policy, config is not None, headless)
        lib_logger.debug(
            f"Delivery policy '{self.policy.value}' selected {channel.value} "
            f"(configured={config is not None}, headless={headless})"
        )

        if channel is Channel.BROWSER:
            try:
                self.browser_launcher.open(url)
                self.console.print(
                    "[green]Opened your browser. If nothing appeared, open the URL above manually.[/green]"
                )
                return Channel.BROWSER
            except OSError as e:
                if self.policy is DeliveryPolicy.BROWSER:
                    lib_logger.warning(
                        f"Failed to open browser automatically: {e}. Please open the URL manually."
                    )
                    return Channel.BROWSER
                lib_logger.warning(
                    f"Failed to open browser automatically: {e}. Falling back to Telegram."
                )

        self.send_via_telegram(url, config)
        return Channel.TELEGRAM

    def send_via_telegram(self, url: str, config: Optional[TelegramConfig] = None) -> None:
        """
        Send url through Telegram, running first-run setup if nothing is configured.

        Raises:
            EmptyInputError: A setup prompt was answered with a blank value
            ChannelConfigNotFoundError: No resolver produced a configuration
            ChannelAPIError: The Bot API reported a failure
        """
        if config is None:
            config = self._resolve_without_prompt() or self._resolve_with_prompt()
        if config is None:
            raise ChannelConfigNotFoundError(
                "no Telegram configuration available; "
                f"set {HOST_BOT_TOKEN_ENV} and {HOST_CHAT_ID_ENV} or run login interactively"
            )

        self.telegram_client.send_message(config, MESSAGE_TEMPLATE.format(url=url))
        self.console.print("[green]Login link sent via Telegram.[/green]")
