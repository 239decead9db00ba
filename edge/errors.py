"""Exceptions raised by the edge server itself."""


class EdgeError(Exception):
    """Base exception for edge server errors."""
    pass


class ConfigError(EdgeError):
    """Configuration is invalid; the server must not start."""
    pass
