"""
Error taxonomy shared by the client and the server.

None of these are fatal: callers either recover locally (fallback cache,
skipped broadcast) or turn them into an explicit failure response.
"""


class PetSimError(Exception):
    """Base class for all Pet Simulator errors."""


class TransientNetworkFailure(PetSimError):
    """The remote side could not be reached (refused, timed out, DNS)."""


class NotFound(PetSimError):
    """An unknown player, clan or trade was requested."""


class ValidationFailure(PetSimError, ValueError):
    """Input was rejected before any state was mutated."""


class MalformedMessage(PetSimError):
    """A WebSocket frame could not be decoded into an envelope."""


class ApiError(PetSimError):
    """The server answered with an unexpected HTTP error status."""

    def __init__(self, status_code: int, message: str = ""):
        super().__init__(f"HTTP {status_code}: {message}" if message else f"HTTP {status_code}")
        self.status_code = status_code
        self.message = message
