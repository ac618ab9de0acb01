"""Exception hierarchy."""


class SpotdiffError(Exception):
    """Base class for all errors raised by this package."""


class SessionError(SpotdiffError):
    """Illegal game session lifecycle call (e.g. starting a session that is already running)."""


class TransportError(SpotdiffError):
    """Network failure talking to the identity server (timeout, refused, DNS)."""


class ConfigError(SpotdiffError):
    """Configuration file exists but cannot be used."""
