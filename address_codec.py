#!/usr/bin/env python3
"""
Address codec for the HEP capture agent.

Converts literal IPv4/IPv6 addresses to their fixed-width network byte order
form. Only literals are accepted; no name resolution is ever performed.

Typical usage:
    from address_codec import encode_address
    from hep_types import AF_INET

    raw = encode_address(AF_INET, "192.168.1.1")   # b'\\xc0\\xa8\\x01\\x01'
"""

import logging
import socket
from typing import Tuple

from hep_errors import InvalidAddressError, UnsupportedFamilyError
from hep_types import AF_INET, AF_INET6

__version__ = '1.0.0'
__all__ = ['encode_address', 'encode_address_pair', 'address_width']

logger = logging.getLogger("HEPCapture.AddressCodec")

# HEP family code -> (socket family, packed width)
_FAMILIES = {
    AF_INET: (socket.AF_INET, 4),
    AF_INET6: (socket.AF_INET6, 16),
}


def address_width(family: int) -> int:
    """
    Get the packed width of one address of the given family.

    Raises:
        UnsupportedFamilyError: If family is not AF_INET or AF_INET6
    """
    try:
        return _FAMILIES[family][1]
    except KeyError:
        raise UnsupportedFamilyError(family) from None


def encode_address(family: int, address: str) -> bytes:
    """
    Pack a literal address of the given family.

    Args:
        family (int): AF_INET (2) or AF_INET6 (30)
        address (str): Dotted-decimal IPv4 or textual IPv6 address

    Returns:
        bytes: 4 bytes for IPv4, 16 bytes for IPv6

    Raises:
        UnsupportedFamilyError: If family is not supported
        InvalidAddressError: If address does not parse under family
    """
    if family not in _FAMILIES:
        raise UnsupportedFamilyError(family)
    sock_family, width = _FAMILIES[family]

    if not isinstance(address, str):
        raise InvalidAddressError(address, family)

    try:
        packed = socket.inet_pton(sock_family, address)
    except (OSError, ValueError):
        logger.debug(f"Cannot parse {address!r} as family {family}")
        raise InvalidAddressError(address, family) from None

    if len(packed) != width:
        raise InvalidAddressError(address, family)
    return packed


def encode_address_pair(family: int, src: str, dst: str) -> Tuple[bytes, bytes]:
    """Pack a source/destination pair; both must parse under family."""
    return encode_address(family, src), encode_address(family, dst)
