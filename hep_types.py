#!/usr/bin/env python3
"""
Wire constants and per-event input types for the HEP capture agent.

All multi-byte integers on the wire use big-endian (network byte order).
"""

import ipaddress
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

__version__ = '1.0.0'
__all__ = [
    'AF_INET', 'AF_INET6', 'IPPROTO_TCP', 'IPPROTO_UDP', 'HEP3_MAGIC',
    'CHUNK_HEADER_SIZE', 'HEP3_HEADER_SIZE', 'HEP2_HEADER_SIZE', 'HEP2_TRAILER_SIZE',
    'ChunkType', 'PayloadType', 'ConnectionInfo'
]

# Address family codes carried in the ip_family field
AF_INET = 2
AF_INET6 = 30

# IP protocol codes
IPPROTO_TCP = 6
IPPROTO_UDP = 17

HEP3_MAGIC = b'HEP3'
HEP3_HEADER_SIZE = 6      # magic + total length
CHUNK_HEADER_SIZE = 6     # vendor id + type id + length
HEP2_HEADER_SIZE = 8      # version, length, family, proto, src port, dst port
HEP2_TRAILER_SIZE = 10    # time sec + time usec + 16-bit capture id

MAX_LENGTH = 0xFFFF


class ChunkType(IntEnum):
    """Standard (vendor 0) HEP v3 chunk type identifiers."""
    IP_FAMILY = 0x0001
    IP_PROTO = 0x0002
    SRC_IP4 = 0x0003
    DST_IP4 = 0x0004
    SRC_IP6 = 0x0005
    DST_IP6 = 0x0006
    SRC_PORT = 0x0007
    DST_PORT = 0x0008
    TIME_SEC = 0x0009
    TIME_USEC = 0x000a
    PROTO_TYPE = 0x000b
    CAPTURE_ID = 0x000c
    AUTH_KEY = 0x000e
    PAYLOAD = 0x000f
    COMPRESSED_PAYLOAD = 0x0010


class PayloadType(IntEnum):
    """
    Common values for the proto_type field.

    The field is an open enumeration; the encoder accepts any byte value.
    """
    SIP = 1
    RTCP = 5
    RTP = 10


@dataclass(frozen=True)
class ConnectionInfo:
    """
    Connection metadata of one captured event.

    Attributes:
        ip_family: AF_INET (2) or AF_INET6 (30)
        ip_proto: IP protocol code, e.g. IPPROTO_UDP (17)
        src_ip: Literal source address
        dst_ip: Literal destination address
        src_port: Source port (0-65535)
        dst_port: Destination port (0-65535)
        time_sec: Capture time, seconds part
        time_usec: Capture time, microseconds part
        proto_type: Payload type tag, e.g. PayloadType.SIP
    """
    ip_family: int
    ip_proto: int
    src_ip: str
    dst_ip: str
    src_port: int
    dst_port: int
    time_sec: int
    time_usec: int
    proto_type: int

    @classmethod
    def create(cls, src_ip: str, src_port: int, dst_ip: str, dst_port: int,
               ip_proto: int = IPPROTO_UDP, proto_type: int = PayloadType.SIP,
               ip_family: Optional[int] = None,
               timestamp: Optional[float] = None) -> 'ConnectionInfo':
        """
        Build a ConnectionInfo from literal addresses.

        The family is taken from the source address when not given, and the
        capture time defaults to now.

        Raises:
            ValueError: If ip_family is None and src_ip is not an IP literal
        """
        if ip_family is None:
            parsed = ipaddress.ip_address(src_ip)
            ip_family = AF_INET if parsed.version == 4 else AF_INET6

        if timestamp is None:
            timestamp = time.time()
        time_sec, time_usec = divmod(round(timestamp * 1_000_000), 1_000_000)

        return cls(
            ip_family=int(ip_family),
            ip_proto=int(ip_proto),
            src_ip=src_ip,
            dst_ip=dst_ip,
            src_port=src_port,
            dst_port=dst_port,
            time_sec=time_sec,
            time_usec=time_usec,
            proto_type=int(proto_type)
        )

    @property
    def is_ipv6(self) -> bool:
        return self.ip_family == AF_INET6
