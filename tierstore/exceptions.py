"""Exception classes for the storage engine."""


class StorageError(Exception):
    """Base exception for storage errors."""

    code = "STORAGE_ERROR"

    def __init__(self, message: str, code: str | None = None):
        """Initialize with message and optional error code."""
        super().__init__(message)
        if code is not None:
            self.code = code


class QuotaExceededError(StorageError):
    """Raised when a backend runs out of space."""

    code = "QUOTA_EXCEEDED"

    def __init__(self, message: str = "Storage quota exceeded"):
        """Initialize with message."""
        super().__init__(message)


class TransientStorageError(StorageError):
    """Raised for failures that may succeed when retried."""

    code = "TRANSIENT"


class MigrationError(StorageError):
    """Raised when a migration run fails part way through."""

    code = "MIGRATION_ERROR"

    def __init__(self, message: str, migrated: int = 0):
        """Initialize with message and the number of entries already migrated."""
        self.migrated = migrated
        super().__init__(f"{message} ({migrated} migrated before failure)")


class SerializationError(StorageError):
    """Raised for unknown strategies or payloads that cannot be decoded."""

    code = "SERIALIZATION_ERROR"


class DecryptionError(StorageError):
    """Raised when the decryption step of the pipeline fails."""

    code = "DECRYPTION_ERROR"


class NotFoundError(StorageError, KeyError):
    """Raised when a snapshot or migration step is not registered."""

    code = "NOT_FOUND"

    def __init__(self, kind: str, name: str):
        """Initialize with the kind of object and its name."""
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} not found: {name}")

    def __str__(self) -> str:
        return self.args[0]


class ValidationError(StorageError, ValueError):
    """Raised when safe-mode validation rejects a write."""

    code = "VALIDATION_ERROR"

    def __init__(self, key: str, message: str):
        """Initialize with key and message."""
        self.key = key
        super().__init__(f"Validation failed for {key!r}: {message}")
