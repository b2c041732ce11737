#!/usr/bin/env python3
"""
Transport session module for the HEP capture agent.

This module owns the single outbound connection to the collector. It
connects on demand, over UDP or TCP and optionally wrapped in TLS, and offers
a blocking whole-frame send. Connect, send and teardown are serialized by one
lock, so at most one connection exists and state transitions never interleave.

State machine:
    UNCONNECTED -> CONNECTING -> READY
    CONNECTING  -> FAILED     -> UNCONNECTED   (socket, DNS or TLS error)
    CONNECTING  -> CANCELLED  -> UNCONNECTED   (connect timeout, handle torn down)
    READY       -> CANCELLED  -> UNCONNECTED   (disconnect)

There is no automatic retry and no background reconnection: every send that
finds the session not READY makes exactly one fresh connection attempt.

Typical usage:
    from config import AgentConfig
    from transport import TransportSession

    session = TransportSession(AgentConfig(host="10.0.0.1", port=9060))
    session.send(frame)      # connects on first use
    session.disconnect()
"""

import logging
import socket
import ssl
import threading
import time
from enum import Enum, auto
from typing import Any, Callable, Dict, Optional

from config import AgentConfig
from hep_errors import ConnectionFailureError, ConnectionTimeoutError, SendFailureError
from metrics import MetricsManager
from tls import SSLWrapper

__version__ = '1.0.0'
__all__ = ['TransportSession', 'TransportType', 'SessionState']

logger = logging.getLogger("HEPCapture.Transport")


class TransportType(Enum):
    """Enum for the transport protocols available."""
    UDP = auto()
    TCP = auto()


class SessionState(Enum):
    """Connection states of a transport session."""
    UNCONNECTED = auto()
    CONNECTING = auto()
    READY = auto()
    FAILED = auto()
    CANCELLED = auto()


class TransportSession:
    """
    A single outbound connection to a HEP collector.

    TLS always runs over TCP. Connection establishment, including the TLS
    handshake, is bounded by ``config.connect_timeout``.
    """

    def __init__(self, config: AgentConfig, metrics: Optional[MetricsManager] = None):
        """
        Initialize the session. No connection is made until the first send.

        Args:
            config (AgentConfig): Collector address, transport and TLS settings
            metrics (MetricsManager, optional): Shared counters; a private
                                                manager is created if omitted
        """
        self.config = config
        self.metrics = metrics if metrics is not None else MetricsManager()

        if config.effective_transport == 'tcp':
            self.transport_type = TransportType.TCP
        else:
            self.transport_type = TransportType.UDP

        if config.use_ssl and config.transport.lower() != 'tcp':
            logger.info("TLS requested, using TCP transport")

        self.sock: Optional[socket.socket] = None
        self.state = SessionState.UNCONNECTED
        self.connected_since: Optional[float] = None
        self.last_error: Optional[BaseException] = None

        # Lock for thread safety
        self.lock = threading.Lock()

        self.ssl_context: Optional[ssl.SSLContext] = None
        self.state_changed_callback: Optional[Callable[[SessionState, SessionState], None]] = None

    def set_callbacks(self, state_changed: Optional[Callable[[SessionState, SessionState], None]] = None) -> None:
        """
        Set callback functions for session events.

        Args:
            state_changed: Called with (old_state, new_state) on every transition
        """
        self.state_changed_callback = state_changed

    @property
    def is_connected(self) -> bool:
        return self.state == SessionState.READY and self.sock is not None

    def _set_state(self, new_state: SessionState) -> None:
        old_state = self.state
        self.state = new_state
        logger.debug(f"Session {self.config.collector_addr}: {old_state.name} -> {new_state.name}")

        if self.state_changed_callback:
            try:
                self.state_changed_callback(old_state, new_state)
            except Exception as e:
                logger.error(f"Error in state change callback: {e}")

    def ensure_connected(self) -> None:
        """
        Connect to the collector unless the session is already READY.

        Raises:
            ConnectionTimeoutError: If establishment exceeded the timeout
            ConnectionFailureError: If the socket, DNS lookup or TLS handshake failed
        """
        with self.lock:
            self._ensure_connected_locked()

    def _ensure_connected_locked(self) -> None:
        if self.is_connected:
            return
        self._connect()

    def _resolve_port(self) -> int:
        try:
            port = int(self.config.port)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid port: {self.config.port}") from None

        if not 0 < port <= 0xFFFF:
            raise ValueError(f"Invalid port: {self.config.port}")
        return port

    def _open_socket(self, port: int, timeout: float) -> socket.socket:
        """Create and connect a plain UDP or TCP socket."""
        if self.transport_type == TransportType.TCP:
            return socket.create_connection((self.config.host, port), timeout=timeout)

        family, socktype, proto, _, addr = socket.getaddrinfo(
            self.config.host, port, 0, socket.SOCK_DGRAM)[0]
        sock = socket.socket(family, socktype, proto)
        sock.settimeout(timeout)
        try:
            sock.connect(addr)
        except OSError:
            sock.close()
            raise
        return sock

    def _get_ssl_context(self) -> ssl.SSLContext:
        if self.ssl_context is None:
            self.ssl_context = SSLWrapper.create_ssl_context(
                ca_file=self.config.tls_ca_file,
                cert_file=self.config.tls_cert_file,
                key_file=self.config.tls_key_file,
                verify_peer=self.config.tls_verify
            )
        return self.ssl_context

    def _connect(self) -> None:
        """
        Establish a fresh connection. Caller must hold the lock.

        On any failure the half-open socket is closed and the session is left
        UNCONNECTED, so the next call starts clean.
        """
        self._set_state(SessionState.CONNECTING)
        self.metrics.record_connection_attempt()

        timeout = self.config.connect_timeout
        deadline = time.monotonic() + timeout
        sock: Optional[socket.socket] = None

        try:
            port = self._resolve_port()
            sock = self._open_socket(port, timeout)

            if self.config.use_ssl:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise socket.timeout("Connection timeout before TLS handshake")
                sock.settimeout(remaining)
                sock = SSLWrapper.wrap_socket(
                    sock,
                    self._get_ssl_context(),
                    hostname=self.config.tls_server_hostname or self.config.host
                )

                if self.config.tls_fingerprint:
                    SSLWrapper.verify_fingerprint(sock, self.config.tls_fingerprint)

            sock.settimeout(self.config.send_timeout)

        except socket.timeout as e:
            self._close_socket(sock)
            self.last_error = e
            self._set_state(SessionState.CANCELLED)
            self._set_state(SessionState.UNCONNECTED)
            self.metrics.record_connection_failure(timed_out=True)
            logger.error(f"Connection timeout to {self.config.collector_addr} after {timeout}s")
            raise ConnectionTimeoutError(
                f"Connection to {self.config.collector_addr} timed out after {timeout}s") from e

        except Exception as e:
            self._close_socket(sock)
            self.last_error = e
            self._set_state(SessionState.FAILED)
            self._set_state(SessionState.UNCONNECTED)
            self.metrics.record_connection_failure()
            logger.error(f"Connection failed to {self.config.collector_addr}: {e}")
            raise ConnectionFailureError(
                f"Failed to connect to {self.config.collector_addr}: {e}") from e

        self.sock = sock
        self.connected_since = time.time()
        self.last_error = None
        self._set_state(SessionState.READY)
        self.metrics.record_connection_established()

        logger.info(f"Connected to collector {self.config.collector_addr} "
                    f"({self.transport_type.name}{'/TLS' if self.config.use_ssl else ''})")

    @staticmethod
    def _close_socket(sock: Optional[socket.socket]) -> None:
        if sock is None:
            return
        try:
            sock.close()
        except OSError as e:
            logger.debug(f"Error closing socket: {e}")

    def send(self, frame: bytes) -> None:
        """
        Send one frame, connecting first if needed.

        Blocks until the transport has accepted the whole frame. Nothing is
        retried; on a send failure the connection is left as it is.

        Args:
            frame (bytes): Complete HEP frame

        Raises:
            ConnectionFailureError: If the on-demand connection failed
            ConnectionTimeoutError: If the on-demand connection timed out
            SendFailureError: If the frame was not fully accepted
        """
        with self.lock:
            self._ensure_connected_locked()

            error: Optional[BaseException] = None
            try:
                if self.transport_type == TransportType.TCP:
                    self.sock.sendall(frame)
                else:
                    sent = self.sock.send(frame)
                    if sent != len(frame):
                        error = OSError(f"Short datagram send: {sent}/{len(frame)} bytes")
            except OSError as e:
                error = e

            if error is not None:
                self.last_error = error
                self.metrics.record_send_error()
                logger.error(f"Send error to {self.config.collector_addr}: {error}")
                raise SendFailureError(f"Send to {self.config.collector_addr} failed: {error}") from error

            self.metrics.record_packet_sent(self.transport_type.name, len(frame))
            logger.debug(f"Sent {len(frame)} bytes to {self.config.collector_addr}")

    def disconnect(self) -> None:
        """
        Tear down the connection. Safe to call when already unconnected.
        """
        with self.lock:
            if self.sock is None and self.state == SessionState.UNCONNECTED:
                return

            self._close_socket(self.sock)
            self.sock = None
            self.connected_since = None
            self._set_state(SessionState.CANCELLED)
            self._set_state(SessionState.UNCONNECTED)
            logger.info(f"Disconnected from collector {self.config.collector_addr}")

    close = disconnect

    def get_peer_certificate_info(self) -> Dict[str, Any]:
        """
        Get the collector certificate of the current TLS connection.

        Returns:
            dict: Certificate information, {'has_cert': False} without TLS
        """
        with self.lock:
            if isinstance(self.sock, ssl.SSLSocket):
                return SSLWrapper.get_certificate_info(self.sock)
        return {'has_cert': False}

    def get_session_info(self) -> Dict[str, Any]:
        """
        Get a snapshot of the session.

        Returns:
            dict: Collector address, transport, TLS flag, state and error
        """
        with self.lock:
            return {
                'collector': self.config.collector_addr,
                'transport': self.transport_type.name.lower(),
                'tls': self.config.use_ssl,
                'state': self.state.name,
                'connected_since': self.connected_since,
                'last_error': str(self.last_error) if self.last_error else None
            }

    def __enter__(self) -> 'TransportSession':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()
