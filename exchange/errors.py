"""
Stream client errors.
"""


class StreamError(Exception):
    """Base class for all streaming client errors."""


class ConnectionFailed(StreamError):
    """The socket could not be created or connected. Never retried."""


class MissingListenKey(StreamError):
    """A user stream was requested without a listen key."""


class DecodeFailed(StreamError):
    """An inbound payload did not match the expected shape."""
