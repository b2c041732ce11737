#!/usr/bin/env python3
"""
Metrics collection module for the HEP capture agent.

This module tracks what the agent did across its lifetime:
- Packet metrics (frames and bytes sent, per transport)
- Connection metrics (attempts, failures, timeouts)
- Error metrics (send errors, encode errors)
- Compression metrics (compressed payloads, fallbacks, bytes saved)

Counters only ever increase until ``reset`` is called. There is no
background collection thread; snapshots are taken on demand.

Typical usage:
    from metrics import MetricsManager

    metrics = MetricsManager()
    metrics.record_packet_sent('udp', 512)
    metrics.record_connection_failure()

    print(metrics.get_statistics())
    metrics.export_metrics("/var/run/hep/metrics.json")
"""

import json
import logging
import threading
import time
from datetime import datetime
from typing import Any, Dict

__version__ = '1.0.0'
__all__ = ['MetricsManager']

logger = logging.getLogger("HEPCapture.Metrics")


class MetricsManager:
    """
    Collects counters for the capture agent.

    All updates are guarded by a lock so the manager can be shared between
    the agent and its transport session.
    """

    def __init__(self, enabled: bool = True):
        """
        Initialize the metrics manager.

        Args:
            enabled (bool): Whether metrics collection is enabled
        """
        self.enabled = enabled
        self.lock = threading.Lock()
        self.started_at = time.time()
        self.metrics: Dict[str, int] = self._empty_metrics()

    @staticmethod
    def _empty_metrics() -> Dict[str, int]:
        return {
            # Packet metrics
            'packets_sent_udp': 0,
            'packets_sent_tcp': 0,
            'bytes_sent_udp': 0,
            'bytes_sent_tcp': 0,

            # Connection metrics
            'connection_attempts': 0,
            'connections_established': 0,
            'connection_failures': 0,
            'connection_timeouts': 0,

            # Error metrics
            'send_errors': 0,
            'encode_errors': 0,

            # Compression metrics
            'compressed_payloads': 0,
            'compression_failures': 0,
            'compression_bytes_saved': 0,
        }

    def _increment(self, key: str, count: int = 1) -> None:
        if not self.enabled:
            return

        with self.lock:
            self.metrics[key] += count

    def record_packet_sent(self, transport: str, size_bytes: int) -> None:
        """
        Record a frame accepted by the transport.

        Args:
            transport (str): 'udp' or 'tcp'
            size_bytes (int): Size of the frame in bytes
        """
        if not self.enabled:
            return

        suffix = 'tcp' if transport.lower() == 'tcp' else 'udp'
        with self.lock:
            self.metrics[f'packets_sent_{suffix}'] += 1
            self.metrics[f'bytes_sent_{suffix}'] += size_bytes

    def record_connection_attempt(self) -> None:
        self._increment('connection_attempts')

    def record_connection_established(self) -> None:
        self._increment('connections_established')

    def record_connection_failure(self, timed_out: bool = False) -> None:
        """
        Record a failed connection establishment.

        Args:
            timed_out (bool): Whether the failure was the connect timeout
        """
        if not self.enabled:
            return

        with self.lock:
            self.metrics['connection_failures'] += 1
            if timed_out:
                self.metrics['connection_timeouts'] += 1

    def record_send_error(self) -> None:
        self._increment('send_errors')

    def record_encode_error(self) -> None:
        self._increment('encode_errors')

    def record_compression(self, original_size: int, compressed_size: int) -> None:
        """
        Record a payload sent compressed.

        Args:
            original_size (int): Payload size before compression
            compressed_size (int): Payload size after compression
        """
        if not self.enabled:
            return

        with self.lock:
            self.metrics['compressed_payloads'] += 1
            self.metrics['compression_bytes_saved'] += original_size - compressed_size

    def record_compression_failure(self) -> None:
        self._increment('compression_failures')

    @property
    def packets_sent(self) -> int:
        with self.lock:
            return self.metrics['packets_sent_udp'] + self.metrics['packets_sent_tcp']

    @property
    def connection_failures(self) -> int:
        with self.lock:
            return self.metrics['connection_failures']

    def get_current_metrics(self) -> Dict[str, Any]:
        """
        Get the current metrics.

        Returns a dictionary with all counters plus derived totals.

        Returns:
            dict: Current metrics
        """
        if not self.enabled:
            return {}

        with self.lock:
            metrics: Dict[str, Any] = dict(self.metrics)

        metrics['packets_sent'] = metrics['packets_sent_udp'] + metrics['packets_sent_tcp']
        metrics['bytes_sent'] = metrics['bytes_sent_udp'] + metrics['bytes_sent_tcp']
        metrics['uptime_seconds'] = time.time() - self.started_at
        return metrics

    def get_statistics(self) -> str:
        """
        Get the short statistics text of the agent.

        Returns:
            str: Sent packet and init failure counts
        """
        return (
            "HEP Capture Agent Statistics:\n"
            f"Sent packets: {self.packets_sent}\n"
            f"Init failures: {self.connection_failures}"
        )

    def reset(self) -> None:
        """Set every counter back to zero."""
        with self.lock:
            self.metrics = self._empty_metrics()
            self.started_at = time.time()

    def export_metrics(self, path: str) -> None:
        """
        Write the current metrics to a JSON file.

        Args:
            path (str): Destination file
        """
        current_metrics = self.get_current_metrics()
        current_metrics['timestamp'] = time.time()
        current_metrics['datetime'] = datetime.now().isoformat()

        with open(path, 'w') as f:
            json.dump(current_metrics, f, indent=2)

        logger.debug(f"Metrics exported to {path}")

    def log_metrics_summary(self) -> None:
        """
        Log a summary of the current metrics.

        This method logs a concise summary of the most important metrics
        to the logger for quick diagnostics.
        """
        if not self.enabled:
            return

        metrics = self.get_current_metrics()

        summary = []
        summary.append(f"Packets - UDP: {metrics['packets_sent_udp']} ({metrics['bytes_sent_udp']} bytes)")
        summary.append(f"Packets - TCP: {metrics['packets_sent_tcp']} ({metrics['bytes_sent_tcp']} bytes)")
        summary.append(f"Connections: {metrics['connections_established']} established, "
                       f"{metrics['connection_failures']} failed ({metrics['connection_timeouts']} timeouts)")
        summary.append(f"Errors: {metrics['send_errors']} send, {metrics['encode_errors']} encode")
        summary.append(f"Compression: {metrics['compressed_payloads']} payloads, "
                       f"{metrics['compression_failures']} fallbacks, "
                       f"{metrics['compression_bytes_saved']} bytes saved")

        logger.info("Metrics Summary:\n" + "\n".join(summary))
