from __future__ import annotations


class FriendCRMError(Exception):
    """Base class for errors raised by friendcrm."""


class ConfigError(FriendCRMError, ValueError):
    pass


class StoreError(FriendCRMError):
    """A read or write against the entity store failed."""


class DeliveryError(FriendCRMError):
    """The delivery collaborator rejected a notification."""
