"""Exception hierarchy shared by the serial and register transports."""
from __future__ import annotations


class IoToolboxError(RuntimeError):
    """Base class for every error raised by iotbox."""


class ConfigError(IoToolboxError, ValueError):
    """Raised when configuration values are missing or out of range."""


class EndpointError(IoToolboxError, ValueError):
    """Raised when an endpoint string cannot be parsed; no I/O has happened yet."""


class TransportFailure(IoToolboxError):
    """A single exchange with an instrument failed.

    Callers that only need to know *that* an exchange failed catch this class;
    the subclasses exist for logging and for the serial reader, which treats
    I/O errors as fatal.
    """


class TransportConnectError(TransportFailure):
    """The transport could not be opened (port busy, connection refused, ...)."""


class TransportIOError(TransportFailure):
    """A read or write failed on an already open transport."""


class ProtocolError(TransportFailure):
    """The device answered with an exception or a malformed/short response."""


__all__ = [
    "ConfigError",
    "EndpointError",
    "IoToolboxError",
    "ProtocolError",
    "TransportConnectError",
    "TransportFailure",
    "TransportIOError",
]
