class BackyError(Exception):
    """Base class for backy-specific errors."""


# I/O
class StorageIOError(BackyError):
    """Reading or writing a blob, index, or source file failed."""

    def __init__(self, operation: str, path, cause: Exception | None = None):
        self.operation = operation
        self.path = str(path)
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation} failed for {self.path}{detail}")


class BlobNotFoundError(StorageIOError):
    pass


# Serialization
class IndexCorruptError(BackyError):
    """The index file exists but cannot be parsed."""

    def __init__(self, path, reason: str):
        self.path = str(path)
        super().__init__(f"index {self.path} is corrupt: {reason}")


# Crypto
class CryptoError(BackyError):
    pass


class KeyDerivationError(CryptoError):
    pass


class AuthenticationError(CryptoError):
    """Wrong password or corrupted data."""


# Configuration
class ConfigurationError(BackyError):
    pass


# External snapshot tool
class SnapshotError(BackyError):
    pass
