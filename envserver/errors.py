"""Exception types shared across the server."""


class ConfigError(ValueError):
    """Raised when the configuration cannot be loaded or is invalid."""


class ServerInitError(Exception):
    """Base class for startup failures. Each subclass carries a distinct code."""

    code = -1


class InvalidPortError(ServerInitError):
    code = -3


class BindError(ServerInitError):
    code = -2


class ListenError(ServerInitError):
    code = -2


class StartError(ServerInitError):
    code = -1


class ProtocolError(ValueError):
    """Raised when a request message cannot be parsed, validated or answered."""


class ProviderError(RuntimeError):
    """Raised by an environmental data provider that failed to compute a value."""
