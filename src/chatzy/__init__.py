"""Chatzy conversation core: message state, persistence and replies."""

from .completion import GeminiClient  # noqa: F401
from .config import (  # noqa: F401
    CompletionConfig,
    Config,
    MessageStoreConfig,
    configure,
    get_config,
    reset_config,
)
from .conversation import ConversationStore  # noqa: F401
from .identity import StaticIdentityProvider  # noqa: F401
from .models import Message, SyncStatus  # noqa: F401

__version__ = "0.1.0"

__all__ = [
    "CompletionConfig",
    "Config",
    "ConversationStore",
    "GeminiClient",
    "Message",
    "MessageStoreConfig",
    "StaticIdentityProvider",
    "SyncStatus",
    "configure",
    "get_config",
    "reset_config",
]
