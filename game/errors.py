"""Exceptions surfaced to callers of the simulation and session layers."""


class ValidationError(ValueError):
    """Malformed input (room code, character id, arena key); nothing changed."""


class NotConnectedError(RuntimeError):
    """A network operation was attempted while the session is disconnected."""


class SessionError(RuntimeError):
    """The relay rejected a request, e.g. joining a second room."""
