#!/usr/bin/env python3
"""
Error types for the HEP capture agent.

Encoding, compression and transport layers raise these exceptions. The
agent catches them at its send boundary and reduces them to a boolean plus
counters, so callers that need per-failure detail can use
``HEPCaptureAgent.send_detailed`` instead.
"""

__version__ = '1.0.0'
__all__ = [
    'HEPError', 'EncodeError', 'UnsupportedVersionError', 'InvalidAddressError',
    'UnsupportedFamilyError', 'FieldRangeError', 'FrameTooLargeError',
    'CompressionError', 'TransportError', 'ConnectionFailureError',
    'ConnectionTimeoutError', 'SendFailureError'
]


class HEPError(Exception):
    """Base class for all capture agent errors."""
    pass


class EncodeError(HEPError):
    """A frame could not be built. No partial frame is ever produced."""
    pass


class UnsupportedVersionError(EncodeError):
    """The configured HEP version is not 1, 2 or 3."""

    def __init__(self, version):
        super().__init__(f"Unsupported HEP version [{version}]")
        self.version = version


class InvalidAddressError(EncodeError):
    """An address string does not parse under its declared family."""

    def __init__(self, address, family):
        super().__init__(f"Invalid address {address!r} for family {family}")
        self.address = address
        self.family = family


class UnsupportedFamilyError(EncodeError):
    """The IP family code is neither IPv4 (2) nor IPv6 (30)."""

    def __init__(self, family):
        super().__init__(f"Unsupported IP family code: {family}")
        self.family = family


class FieldRangeError(EncodeError):
    """An integer field does not fit its wire width."""
    pass


class FrameTooLargeError(EncodeError):
    """A v3 chunk or frame length exceeds the 16-bit length field."""
    pass


class CompressionError(HEPError):
    """Payload compression or decompression failed."""
    pass


class TransportError(HEPError):
    """Base class for connection and send failures."""
    pass


class ConnectionFailureError(TransportError):
    """Connection establishment failed (socket, DNS, route or TLS error)."""
    pass


class ConnectionTimeoutError(ConnectionFailureError):
    """Connection establishment did not complete within the timeout."""
    pass


class SendFailureError(TransportError):
    """An established connection rejected the frame."""
    pass
