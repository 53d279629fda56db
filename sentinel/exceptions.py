"""Sentinel error hierarchy."""


class SentinelError(Exception):
    """Base class for errors that abort the sentinel."""


class EnumerationError(SentinelError):
    """The cgroup namespace root could not be listed."""


class ConfigError(SentinelError):
    """A configuration value is missing or invalid."""


class SentinelConnectionError(SentinelError):
    """Custom exception for Redis connection failures."""
