"""Error taxonomy for the synchronization system."""


class MWSyncError(Exception):
    """Base class for all mwsync errors."""

    pass


class ConfigurationError(MWSyncError):
    """Raised when configuration is invalid or missing."""

    pass


class AuthError(MWSyncError):
    """Raised when logging in to the source or target wiki fails."""

    pass


class WikiAPIError(MWSyncError):
    """Raised when a wiki API call fails or returns an error payload."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class ResolutionError(MWSyncError):
    """Raised when the set of changed pages cannot be obtained for a pass."""

    pass


class ItemError(MWSyncError):
    """Raised when fetching, transforming or writing a single page fails."""

    def __init__(self, title: str, message: str):
        super().__init__(message)
        self.title = title


class PersistenceError(MWSyncError):
    """Raised when the checkpoint cannot be read or written."""

    pass
