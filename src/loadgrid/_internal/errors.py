"""Custom exception hierarchy for LoadGrid."""

from __future__ import annotations


class LoadGridError(Exception):
    """Base exception for all LoadGrid errors.

    All custom exceptions in the LoadGrid client inherit from this class,
    making it easy to catch any LoadGrid-specific error with a single
    except clause.
    """


class ConfigError(LoadGridError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Required environment variable has an invalid value.
        - Configuration value is out of acceptable range.
    """


class ValidationError(LoadGridError):
    """Raised when a caller-constructed run plan fails local sanity checks.

    Raised synchronously by the command API before anything is sent over
    the wire.

    Examples:
        - The plan name is empty.
        - A target port, block size, ramp step duration or sustain
          duration is not positive.
    """


class DecodeError(LoadGridError):
    """Raised when an inbound envelope is malformed or unrecognized.

    The codec raises this per element and catches it at the element
    boundary: the offending element is logged and dropped, the rest of the
    frame is still decoded.
    """


class ConnectionLostError(LoadGridError):
    """Raised when the coordinator connection drops.

    Never fatal: the transport channel handles it by reconnecting.
    """
