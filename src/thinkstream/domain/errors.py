from __future__ import annotations


class SinkClosedError(RuntimeError):
    """Raised by a frame sink that has already been closed or detached."""


class UpstreamUnavailable(RuntimeError):
    """The upstream text generator failed its availability probe."""


class UpstreamStreamFailure(RuntimeError):
    """The upstream token stream raised while being consumed."""


class MalformedSuggestionPayload(ValueError):
    """The generative suggestion output could not be parsed into suggestions."""


class StreamTransportError(RuntimeError):
    """Client-side failure while reading a streaming channel."""
