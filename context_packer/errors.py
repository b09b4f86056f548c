"""Common errors for context packing."""


class ContextPackerError(Exception):
    """Base class for errors raised by context_packer."""


class ConfigError(ContextPackerError):
    """Raised when a configuration document cannot be loaded."""

    def __init__(self, source: str, message: str):
        super().__init__(f"Invalid configuration in '{source}': {message}")
        self.source = source


class BundlerError(ContextPackerError):
    """Raised when the external bundler fails to produce packs."""

    def __init__(self, cause: Exception):
        message = str(cause) or type(cause).__name__
        super().__init__(message)
        self.cause = cause
