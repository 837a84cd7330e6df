"""
Exception taxonomy for call stream sessions.

Provider layers translate vendor exceptions into these types so that the
controller can decide, per class, whether a failure is reported, retried,
spoken over, or ends the call.
"""


class CallStreamError(Exception):
    """Base class for every error raised by the session manager."""


class CapacityExceeded(CallStreamError):
    """The live-session ceiling has been reached; the connection is refused."""


class CallIdValidationError(CallStreamError):
    """The connection did not carry a usable call identifier."""


class RecognitionTransientError(CallStreamError):
    """Speech recognition kept failing after the stream was recreated."""


class GenerationError(CallStreamError):
    """The generative backend failed while producing a reply."""


class InitializationError(CallStreamError):
    """A provider stream could not be created (unreachable or misconfigured)."""


class TransportError(CallStreamError):
    """The duplex audio connection failed."""


class TransportClosed(TransportError):
    """The duplex audio connection was closed by the peer."""
