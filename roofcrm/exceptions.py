"""
Exceptions raised by external service adapters.

Adapters raise; domain services catch them and turn them into result
objects, so routes never see a raw SaaS error.
"""


class StorageBackendError(Exception):
    """A storage backend rejected an upload, download or delete.

    Args:
        backend: "blob" or "drive".
        message: Backend-provided error text, kept for diagnostics.
    """

    def __init__(self, backend: str, message: str) -> None:
        self.backend = backend
        self.message = message
        super().__init__(f"{backend}: {message}")


class StorageObjectNotFound(StorageBackendError):
    """The remote object does not exist. Deletes treat this as already done."""


class NotificationDeliveryError(Exception):
    """A single message could not be delivered on a single channel"""

    def __init__(self, channel: str, recipient: str, message: str) -> None:
        self.channel = channel
        self.recipient = recipient
        super().__init__(f"{channel} delivery to {recipient} failed: {message}")
