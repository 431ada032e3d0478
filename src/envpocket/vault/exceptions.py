"""
envpocket Exception Classes
"""


class EnvPocketError(Exception):
    """Base exception for envpocket operations"""
    pass


class StoreError(EnvPocketError):
    """Raised when the attribute store reports a failure"""
    pass


class KeyNotFoundError(StoreError):
    """Raised when a key (or a pattern) matches nothing in the store"""

    def __init__(self, key: str, message: str = ""):
        self.key = key
        super().__init__(message or f"Key '{key}' not found")


class ContainerFormatError(EnvPocketError):
    """Raised when an export container is malformed or truncated"""
    pass


class DecryptionError(EnvPocketError):
    """Raised when an export container cannot be decrypted.

    Wrong passwords and corrupted containers produce the same error.
    """

    def __init__(self, message: str = "Decryption failed: wrong password or corrupted data"):
        super().__init__(message)


class ValidationError(EnvPocketError):
    """Raised when caller input is invalid"""
    pass


class InvalidKeyError(ValidationError):
    """Raised when a key is empty or contains wildcard characters"""
    pass


class HistoryIndexError(ValidationError):
    """Raised when a history version index is out of range"""

    def __init__(self, key: str, index: int, available: int):
        self.key = key
        self.index = index
        self.available = available
        super().__init__(
            f"Invalid version index {index} for '{key}' ({available} available). "
            f"Use 'envpocket history {key}' to see available versions."
        )
