"""
Core module for PrintDispatch.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy
- keyed_lock: FIFO-fair per-key mutual exclusion
- message_bus: Publish/subscribe gateway (Redis and in-process)
"""

from .exceptions import (
    PrintDispatchError,
    InvalidRequestError,
    InvalidAmountError,
    InvalidStatusError,
    NotFoundError,
    JobNotFoundError,
    UploadNotFoundError,
    InvalidTransitionError,
    MessageBusError,
    TransportUnavailableError,
)
from .keyed_lock import KeyedLock
from .message_bus import MessageBusGateway, RedisMessageBus, LocalMessageBus

__all__ = [
    "PrintDispatchError",
    "InvalidRequestError",
    "InvalidAmountError",
    "InvalidStatusError",
    "NotFoundError",
    "JobNotFoundError",
    "UploadNotFoundError",
    "InvalidTransitionError",
    "MessageBusError",
    "TransportUnavailableError",
    "KeyedLock",
    "MessageBusGateway",
    "RedisMessageBus",
    "LocalMessageBus",
]
