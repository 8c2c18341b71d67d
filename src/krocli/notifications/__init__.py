from .channel_selector import (
    BrowserLauncher,
    Channel,
    ChannelConfigResolver,
    DeliveryPolicy,
    HostEnvironmentResolver,
    InteractivePromptResolver,
    NotificationChannelSelector,
    SavedConfigResolver,
    choose_channel,
    default_resolvers,
)
from .telegram import TelegramClient, TelegramConfig, TelegramConfigStore

__all__ = [
    "BrowserLauncher",
    "Channel",
    "ChannelConfigResolver",
    "DeliveryPolicy",
    "HostEnvironmentResolver",
    "InteractivePromptResolver",
    "NotificationChannelSelector",
    "SavedConfigResolver",
    "choose_channel",
    "default_resolvers",
    "TelegramClient",
    "TelegramConfig",
    "TelegramConfigStore",
]
