#!/usr/bin/env python3
"""
TLS module for the HEP capture agent.

This module builds client-side SSL/TLS contexts for collector connections,
inspects the collector certificate with ``cryptography``, and optionally pins
it by SHA-256 fingerprint. Pinning is useful for collectors with self-signed
certificates, where chain verification is usually turned off.

Typical usage:
    from tls import SSLWrapper

    context = SSLWrapper.create_ssl_context(ca_file="collector-ca.pem")
    tls_sock = SSLWrapper.wrap_socket(sock, context, hostname="homer.example.com")
    SSLWrapper.verify_fingerprint(tls_sock, "9f86d081884c7d65...")
"""

import hmac
import logging
import socket
import ssl
from typing import Any, Dict, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes

__version__ = '1.0.0'
__all__ = ['SSLWrapper', 'FingerprintMismatchError']

logger = logging.getLogger("HEPCapture.TLS")


class FingerprintMismatchError(ssl.SSLError):
    """The collector certificate does not match the pinned fingerprint."""
    pass


class SSLWrapper:
    """Client-side SSL/TLS helpers for collector connections."""

    DEFAULT_CIPHERS = (
        'ECDHE-ECDSA-AES256-GCM-SHA384:ECDHE-RSA-AES256-GCM-SHA384:'
        'ECDHE-ECDSA-CHACHA20-POLY1305:ECDHE-RSA-CHACHA20-POLY1305:'
        'ECDHE-ECDSA-AES128-GCM-SHA256:ECDHE-RSA-AES128-GCM-SHA256:'
        'DHE-RSA-AES256-GCM-SHA384:DHE-RSA-AES128-GCM-SHA256'
    )

    @staticmethod
    def create_ssl_context(ca_file: Optional[str] = None,
                           cert_file: Optional[str] = None,
                           key_file: Optional[str] = None,
                           verify_peer: bool = True) -> ssl.SSLContext:
        """
        Create a client SSL context for a collector connection.

        Args:
            ca_file (str, optional): Path to the CA certificate file
            cert_file (str, optional): Path to the client certificate file
            key_file (str, optional): Path to the client private key file
            verify_peer (bool): Whether to verify the collector certificate

        Returns:
            ssl.SSLContext: Configured SSL context
        """
        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)

        # Set secure cipher suite
        context.set_ciphers(SSLWrapper.DEFAULT_CIPHERS)

        # Protocol selection (TLS 1.2+)
        context.minimum_version = ssl.TLSVersion.TLSv1_2

        if not verify_peer:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        if ca_file:
            context.load_verify_locations(cafile=ca_file)

        if cert_file:
            context.load_cert_chain(certfile=cert_file, keyfile=key_file)

        return context

    @staticmethod
    def wrap_socket(sock: socket.socket, context: ssl.SSLContext,
                    hostname: Optional[str] = None) -> ssl.SSLSocket:
        """
        Wrap a connected socket and run the client handshake.

        The handshake runs under the socket's current timeout.

        Args:
            sock (socket.socket): Connected TCP socket
            context (ssl.SSLContext): SSL context
            hostname (str, optional): Name for SNI and verification

        Returns:
            ssl.SSLSocket: SSL-wrapped socket

        Raises:
            ssl.SSLError: If SSL negotiation fails
            socket.timeout: If the handshake does not finish in time
        """
        return context.wrap_socket(sock, server_hostname=hostname)

    @staticmethod
    def certificate_fingerprint(ssl_socket: ssl.SSLSocket) -> Optional[str]:
        """
        Get the SHA-256 fingerprint of the peer certificate.

        Returns:
            str: Lower-case hex digest, or None if the peer sent no certificate
        """
        der = ssl_socket.getpeercert(binary_form=True)
        if not der:
            return None

        certificate = x509.load_der_x509_certificate(der)
        return certificate.fingerprint(hashes.SHA256()).hex()

    @staticmethod
    def verify_fingerprint(ssl_socket: ssl.SSLSocket, expected: str) -> None:
        """
        Check the peer certificate against a pinned SHA-256 fingerprint.

        Args:
            ssl_socket (ssl.SSLSocket): Socket after a completed handshake
            expected (str): Hex fingerprint; colons and case are ignored

        Raises:
            FingerprintMismatchError: If the fingerprint differs, is missing or is not hex
        """
        try:
            expected_digest = bytes.fromhex(expected.replace(':', '').strip())
        except (AttributeError, ValueError):
            logger.error(f"Pinned fingerprint is not a hex string: {expected!r}")
            raise FingerprintMismatchError("Pinned fingerprint is not a hex string") from None

        actual = SSLWrapper.certificate_fingerprint(ssl_socket)

        if actual is None or not hmac.compare_digest(bytes.fromhex(actual), expected_digest):
            logger.error(f"Collector certificate fingerprint mismatch: got {actual}")
            raise FingerprintMismatchError("Collector certificate fingerprint mismatch")

    @staticmethod
    def get_certificate_info(ssl_socket: ssl.SSLSocket) -> Dict[str, Any]:
        """
        Get information about the peer's certificate.

        Works with and without chain verification, since the certificate is
        parsed from its DER form.

        Args:
            ssl_socket (ssl.SSLSocket): The SSL socket connection

        Returns:
            dict: Certificate information, {'has_cert': False} if there is none
        """
        der = ssl_socket.getpeercert(binary_form=True)
        if not der:
            return {'has_cert': False}

        certificate = x509.load_der_x509_certificate(der)

        return {
            'has_cert': True,
            'subject': certificate.subject.rfc4514_string(),
            'issuer': certificate.issuer.rfc4514_string(),
            'serial_number': certificate.serial_number,
            'not_before': certificate.not_valid_before_utc.isoformat(),
            'not_after': certificate.not_valid_after_utc.isoformat(),
            'fingerprint_sha256': certificate.fingerprint(hashes.SHA256()).hex(),
            'tls_version': ssl_socket.version(),
            'cipher': ssl_socket.cipher()[0] if ssl_socket.cipher() else None
        }
