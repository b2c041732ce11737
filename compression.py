#!/usr/bin/env python3
"""
Compression module for the HEP capture agent.

This module compresses captured payloads with a deflate-family algorithm
(zlib, gzip or raw deflate) before they are placed into a HEP v3 compressed
payload chunk. Compression failure is never fatal: ``compress`` returns None
and the caller sends the original bytes in a raw payload chunk instead.

Typical usage:
    from compression import Compression, CompressionType

    compressed = Compression.compress(data, CompressionType.ZLIB)
    if compressed is None:
        compressed = data  # fall back to the raw payload

    original = Compression.decompress(compressed, CompressionType.ZLIB)
"""

import gzip
import logging
import threading
import zlib
from typing import Any, Dict, List, Optional

from hep_errors import CompressionError

__version__ = '1.0.0'
__all__ = ['CompressionType', 'Compression']

logger = logging.getLogger("HEPCapture.Compression")

# Raw deflate stream, no zlib header or checksum
_RAW_DEFLATE_WBITS = -15


class CompressionType:
    """Supported deflate-family algorithms."""
    ZLIB = 'zlib'
    GZIP = 'gzip'
    DEFLATE = 'deflate'

    @classmethod
    def is_valid(cls, compression_type: str) -> bool:
        """Return True if compression_type names a supported algorithm."""
        return compression_type in [cls.ZLIB, cls.GZIP, cls.DEFLATE]


class Compression:
    """Compresses payloads for HEP v3 frames and tracks statistics."""

    def __init__(self, compression_type: str = CompressionType.ZLIB,
                 compression_level: int = 6):
        """
        Initialize the codec with its algorithm and level.

        Args:
            compression_type (str): Algorithm used by compress_data
            compression_level (int): 1 (fastest) to 9 (smallest)
        """
        self.compression_type = compression_type
        self.compression_level = compression_level

        self.bytes_before_compression = 0
        self.bytes_after_compression = 0
        self.compression_operations = 0
        self.compression_failures = 0

        # Guards the counters; compression itself runs outside the lock
        self.lock = threading.Lock()

    def compress_data(self, data: bytes) -> Optional[bytes]:
        """
        Compress a payload with this instance's settings and track statistics.

        Args:
            data (bytes): Payload to compress

        Returns:
            bytes or None: Compressed payload, or None if compression failed
        """
        compressed = self.compress(data, self.compression_type, self.compression_level)

        with self.lock:
            if compressed is None:
                self.compression_failures += 1
                return None

            self.bytes_before_compression += len(data)
            self.bytes_after_compression += len(compressed)
            self.compression_operations += 1
        return compressed

    def get_stats(self) -> Dict[str, Any]:
        """
        Get the statistics of compress_data calls on this instance.

        Returns:
            dict: Byte totals, operation and failure counts, ratio and bytes saved
        """
        with self.lock:
            before = self.bytes_before_compression
            after = self.bytes_after_compression
            operations = self.compression_operations
            failures = self.compression_failures

        compression_ratio = 0.0
        if before > 0:
            compression_ratio = after / before

        return {
            "compression_type": self.compression_type,
            "bytes_before_compression": before,
            "bytes_after_compression": after,
            "compression_operations": operations,
            "compression_failures": failures,
            "compression_ratio": compression_ratio,
            "bytes_saved": before - after
        }

    @staticmethod
    def compress(data: bytes, compression_type: str = CompressionType.ZLIB,
                 compression_level: int = 6) -> Optional[bytes]:
        """
        Compress a payload with one of the deflate-family algorithms.

        No size check is applied: small or incompressible inputs may come
        back as large as or larger than the original.

        Args:
            data (bytes): Payload to compress
            compression_type (str): 'zlib', 'gzip' or 'deflate'
            compression_level (int): 1 (fastest) to 9 (smallest)

        Returns:
            bytes or None: Compressed data, or None on any failure
        """
        try:
            if compression_type == CompressionType.ZLIB:
                return zlib.compress(data, compression_level)

            elif compression_type == CompressionType.GZIP:
                return gzip.compress(data, compresslevel=compression_level)

            elif compression_type == CompressionType.DEFLATE:
                compressor = zlib.compressobj(compression_level, zlib.DEFLATED,
                                              _RAW_DEFLATE_WBITS)
                return compressor.compress(data) + compressor.flush()

            else:
                logger.error(f"Unknown compression type: {compression_type}")
                return None

        except Exception as e:
            logger.error(f"Compression error: {e}")
            return None

    @staticmethod
    def decompress(data: bytes, compression_type: str = CompressionType.ZLIB) -> bytes:
        """
        Reverse compress.

        Args:
            data (bytes): Compressed payload
            compression_type (str): Algorithm the payload was compressed with

        Returns:
            bytes: The original payload

        Raises:
            CompressionError: If the type is unknown or the data is corrupt
        """
        try:
            if compression_type == CompressionType.ZLIB:
                return zlib.decompress(data)

            elif compression_type == CompressionType.GZIP:
                return gzip.decompress(data)

            elif compression_type == CompressionType.DEFLATE:
                return zlib.decompress(data, _RAW_DEFLATE_WBITS)

        except (zlib.error, OSError, EOFError) as e:
            logger.error(f"Decompression error: {e}")
            raise CompressionError(f"Cannot decompress {compression_type} payload: {e}") from e

        raise CompressionError(f"Unknown compression type: {compression_type}")

    @staticmethod
    def get_available_types() -> List[str]:
        """List the algorithm names accepted by compress and decompress."""
        return [CompressionType.ZLIB, CompressionType.GZIP, CompressionType.DEFLATE]
