from .locking import InMemoryLockStrategy
from .sender import InMemoryNotificationSender, SentMessage
from .store import InMemoryAuthenticatorStore

__all__ = [
    "InMemoryAuthenticatorStore",
    "InMemoryLockStrategy",
    "InMemoryNotificationSender",
    "SentMessage",
]
