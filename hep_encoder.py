#!/usr/bin/env python3
"""
HEP frame encoder.

Builds complete HEP v3 (chunked) and HEP v1/v2 (legacy fixed header) frames
from a connection-info record, a payload, and the agent configuration.

HEP v3 frame:
┌────────┬──────────────┬───────────────────────────────────────────────┐
│ "HEP3" │ total length │ chunk, chunk, ...                             │
│ (4 B)  │ (uint16)     │ vendor(u16) type(u16) length(u16) payload     │
└────────┴──────────────┴───────────────────────────────────────────────┘

HEP v1/v2 frame:
┌─────────┬─────────┬────────┬───────┬──────────┬──────────┬───────────┬──────────────────┬─────────┐
│ version │ hdr len │ family │ proto │ src port │ dst port │ addresses │ time trailer(v2) │ payload │
│ (1 B)   │ (1 B)   │ (1 B)  │ (1 B) │ (2 B)    │ (2 B)    │ (8/32 B)  │ (10 B)           │         │
└─────────┴─────────┴────────┴───────┴──────────┴──────────┴───────────┴──────────────────┴─────────┘

All integers wider than one byte are big-endian. Encoding is all-or-nothing:
every error is raised before any bytes are returned.

Typical usage:
    from hep_encoder import HEPEncoder

    frame = HEPEncoder.encode(config, connection_info, b"INVITE sip:a@b SIP/2.0\\r\\n")
"""

import logging
import struct
from typing import List, Optional

from address_codec import address_width, encode_address_pair
from hep_errors import EncodeError, FieldRangeError, FrameTooLargeError
from hep_types import (AF_INET6, CHUNK_HEADER_SIZE, HEP2_HEADER_SIZE, HEP3_HEADER_SIZE,
                       HEP3_MAGIC, MAX_LENGTH, ChunkType, ConnectionInfo)
from protocol_version import ProtocolVersion

__version__ = '1.0.0'
__all__ = ['Chunk', 'HEPEncoder']

logger = logging.getLogger("HEPCapture.Encoder")

_CHUNK_HEADER = struct.Struct('!HHH')
_HEP3_HEADER = struct.Struct('!4sH')
_HEP2_HEADER = struct.Struct('!BBBBHH')
_HEP2_TRAILER = struct.Struct('!IIH')


def _check_range(name: str, value: int, bits: int) -> int:
    """Validate that value fits in an unsigned field of the given width."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise FieldRangeError(f"{name} must be an integer, got {value!r}")
    if not 0 <= value < (1 << bits):
        raise FieldRangeError(f"{name} out of range for uint{bits}: {value}")
    return value


class Chunk:
    """A single HEP v3 chunk: vendor id, type id and payload."""

    def __init__(self, type_id: int, payload: bytes, vendor_id: int = 0):
        self.vendor_id = vendor_id
        self.type_id = type_id
        self.payload = bytes(payload)

    @classmethod
    def uint8(cls, type_id: int, value: int, name: str) -> 'Chunk':
        return cls(type_id, struct.pack('!B', _check_range(name, value, 8)))

    @classmethod
    def uint16(cls, type_id: int, value: int, name: str) -> 'Chunk':
        return cls(type_id, struct.pack('!H', _check_range(name, value, 16)))

    @classmethod
    def uint32(cls, type_id: int, value: int, name: str) -> 'Chunk':
        return cls(type_id, struct.pack('!I', _check_range(name, value, 32)))

    @property
    def length(self) -> int:
        """Declared chunk length: header plus payload."""
        return CHUNK_HEADER_SIZE + len(self.payload)

    def to_bytes(self) -> bytes:
        """
        Serialize the chunk.

        Raises:
            FrameTooLargeError: If the chunk length does not fit in 16 bits
        """
        if self.length > MAX_LENGTH:
            raise FrameTooLargeError(
                f"Chunk 0x{self.type_id:04x} too large: {self.length} bytes (max {MAX_LENGTH})"
            )
        return _CHUNK_HEADER.pack(self.vendor_id, self.type_id, self.length) + self.payload

    def __repr__(self) -> str:
        return f"Chunk(type=0x{self.type_id:04x}, length={self.length})"


class HEPEncoder:
    """Stateless HEP frame builder. All methods are reentrant."""

    @staticmethod
    def encode(config, info: ConnectionInfo, payload: bytes,
               is_compressed: bool = False) -> bytes:
        """
        Build a complete frame for the configured HEP version.

        Args:
            config (AgentConfig): Supplies version, capture_id and password
            info (ConnectionInfo): Connection metadata of the event
            payload (bytes): Payload bytes, already compressed if is_compressed
            is_compressed (bool): Mark the v3 payload chunk as compressed

        Returns:
            bytes: The frame

        Raises:
            UnsupportedVersionError: If the version is not 1, 2 or 3
            UnsupportedFamilyError: If info.ip_family is not IPv4 or IPv6
            InvalidAddressError: If an address does not parse under its family
            FieldRangeError: If an integer field does not fit its wire width
            FrameTooLargeError: If a v3 length field would overflow
            EncodeError: If the v3 password is not a UTF-8 encodable string
        """
        version = ProtocolVersion.from_number(config.version)

        if version.supports_feature("chunks"):
            return HEPEncoder.encode_v3(info, payload, config.capture_id,
                                        config.password, is_compressed)

        return HEPEncoder.encode_legacy(version, info, payload, config.capture_id)

    @staticmethod
    def build_chunks(info: ConnectionInfo, payload: bytes, capture_id: int,
                     password: Optional[str] = None,
                     is_compressed: bool = False) -> List[Chunk]:
        """
        Build the v3 chunk list in wire order.

        Returns:
            list: Chunks from ip_family through the payload chunk
        """
        src_addr, dst_addr = encode_address_pair(info.ip_family, info.src_ip, info.dst_ip)
        if info.ip_family == AF_INET6:
            src_type, dst_type = ChunkType.SRC_IP6, ChunkType.DST_IP6
        else:
            src_type, dst_type = ChunkType.SRC_IP4, ChunkType.DST_IP4

        chunks = [
            Chunk.uint8(ChunkType.IP_FAMILY, info.ip_family, "ip_family"),
            Chunk.uint8(ChunkType.IP_PROTO, info.ip_proto, "ip_proto"),
            Chunk(src_type, src_addr),
            Chunk(dst_type, dst_addr),
            Chunk.uint16(ChunkType.SRC_PORT, info.src_port, "src_port"),
            Chunk.uint16(ChunkType.DST_PORT, info.dst_port, "dst_port"),
            Chunk.uint32(ChunkType.TIME_SEC, info.time_sec, "time_sec"),
            Chunk.uint32(ChunkType.TIME_USEC, info.time_usec, "time_usec"),
            Chunk.uint8(ChunkType.PROTO_TYPE, info.proto_type, "proto_type"),
            Chunk.uint32(ChunkType.CAPTURE_ID, capture_id, "capture_id"),
        ]

        # Auth key sits immediately before the payload
        if password is not None:
            if not isinstance(password, str):
                raise EncodeError(f"Password must be a string, got {type(password).__name__}")
            try:
                auth_key = password.encode('utf-8')
            except UnicodeEncodeError as e:
                raise EncodeError(f"Password is not encodable as UTF-8: {e.reason}") from e
            chunks.append(Chunk(ChunkType.AUTH_KEY, auth_key))

        payload_type = ChunkType.COMPRESSED_PAYLOAD if is_compressed else ChunkType.PAYLOAD
        chunks.append(Chunk(payload_type, payload))
        return chunks

    @staticmethod
    def encode_v3(info: ConnectionInfo, payload: bytes, capture_id: int,
                  password: Optional[str] = None, is_compressed: bool = False) -> bytes:
        """
        Build a HEP v3 frame.

        Returns:
            bytes: "HEP3" + total length + chunks
        """
        chunks = HEPEncoder.build_chunks(info, payload, capture_id, password, is_compressed)

        total_length = HEP3_HEADER_SIZE + sum(chunk.length for chunk in chunks)
        if total_length > MAX_LENGTH:
            raise FrameTooLargeError(
                f"HEP3 frame too large: {total_length} bytes (max {MAX_LENGTH})"
            )

        body = b''.join(chunk.to_bytes() for chunk in chunks)
        frame = _HEP3_HEADER.pack(HEP3_MAGIC, total_length) + body

        logger.debug(f"Encoded HEP3 frame: {len(chunks)} chunks, {total_length} bytes")
        return frame

    @staticmethod
    def encode_legacy(version: ProtocolVersion, info: ConnectionInfo, payload: bytes,
                      capture_id: int) -> bytes:
        """
        Build a HEP v1 or v2 frame.

        The timestamp trailer is only written for v2, and carries the capture
        id truncated to 16 bits. The payload is appended verbatim.
        """
        src_addr, dst_addr = encode_address_pair(info.ip_family, info.src_ip, info.dst_ip)
        header_length = HEP2_HEADER_SIZE + 2 * address_width(info.ip_family)

        header = _HEP2_HEADER.pack(
            version.number,
            header_length,
            _check_range("ip_family", info.ip_family, 8),
            _check_range("ip_proto", info.ip_proto, 8),
            _check_range("src_port", info.src_port, 16),
            _check_range("dst_port", info.dst_port, 16)
        )

        parts = [header, src_addr, dst_addr]

        if version.supports_feature("timestamp"):
            _check_range("capture_id", capture_id, 32)
            parts.append(_HEP2_TRAILER.pack(
                _check_range("time_sec", info.time_sec, 32),
                _check_range("time_usec", info.time_usec, 32),
                capture_id & 0xFFFF
            ))

        parts.append(bytes(payload))
        frame = b''.join(parts)

        logger.debug(f"Encoded HEPv{version.number} frame: {len(frame)} bytes")
        return frame
