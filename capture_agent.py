#!/usr/bin/env python3
"""
HEP capture agent.

Forwards captured network-protocol events (SIP, RTCP, ...) to a Homer
collector as HEP v1, v2 or v3 frames, with:
- UDP or TCP transport, optionally wrapped in TLS
- Payload compression for HEP v3, falling back to the raw payload on failure
- Shared-secret authentication chunk for HEP v3
- Connect-on-demand with a bounded connection timeout
- Counters for sent packets, connection failures and errors

The agent never raises from a send. Each call returns a boolean, and the
failure detail goes to the log and the metrics. ``send_detailed`` also returns
the error itself for callers that need it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from compression import Compression
from config import AgentConfig
from hep_encoder import HEPEncoder
from hep_errors import EncodeError, HEPError, TransportError
from hep_types import ConnectionInfo
from metrics import MetricsManager
from protocol_version import ProtocolVersion
from transport import TransportSession

__version__ = '1.0.0'
__all__ = ['HEPCaptureAgent', 'SendResult']

logger = logging.getLogger("HEPCapture")


@dataclass(frozen=True)
class SendResult:
    """
    Outcome of one send call.

    Attributes:
        success (bool): Whether the collector transport accepted the frame
        error (HEPError, optional): The failure, when success is False
        frame_size (int): Bytes handed to the transport
        compressed (bool): Whether the payload went out compressed
    """
    success: bool
    error: Optional[HEPError] = None
    frame_size: int = 0
    compressed: bool = False

    def __bool__(self) -> bool:
        return self.success


class HEPCaptureAgent:
    """
    Composition root of the capture agent.

    Holds the configuration, the counters and the transport session, and
    runs compression, encoding and transmission for each event.
    """

    def __init__(self, config: Optional[AgentConfig] = None, **overrides: Any):
        """
        Initialize the capture agent.

        Args:
            config (AgentConfig, optional): Base configuration, defaults used if None
            **overrides: AgentConfig fields to change, e.g. host="10.0.0.1",
                         port="9060", capture_id=101, version=3, use_ssl=False,
                         compress=False, password=None
        """
        config = config or AgentConfig()
        if overrides:
            config = config.replace(**overrides)
        self.config = config

        self.metrics_manager = MetricsManager()
        self.compression = Compression(config.compression_type, config.compression_level)
        self.transport = TransportSession(config, metrics=self.metrics_manager)

        logger.debug(f"Capture agent configured: {config.to_dict()}")

    def send_hep(self, info: ConnectionInfo, payload: bytes) -> bool:
        """
        Encode and send one captured event.

        Args:
            info (ConnectionInfo): Connection metadata of the event
            payload (bytes): The captured message, e.g. a SIP datagram

        Returns:
            bool: True if the frame was handed to the transport
        """
        return self.send_detailed(info, payload).success

    def send_detailed(self, info: ConnectionInfo, payload: bytes) -> SendResult:
        """
        Encode and send one captured event, returning the failure detail.

        Args:
            info (ConnectionInfo): Connection metadata of the event
            payload (bytes): The captured message

        Returns:
            SendResult: Success flag plus error, frame size and compression flag
        """
        try:
            version = ProtocolVersion.from_number(self.config.version)
        except EncodeError as e:
            logger.error(str(e))
            self.metrics_manager.record_encode_error()
            return SendResult(False, e)

        # Buffers only; bytes(n) on an int would zero-fill
        if isinstance(payload, (bytes, bytearray, memoryview)):
            data = bytes(payload)
        else:
            error = EncodeError(f"Payload must be bytes-like, got {type(payload).__name__}")
            logger.error(str(error))
            self.metrics_manager.record_encode_error()
            return SendResult(False, error)

        is_compressed = False

        if self.config.compress and version.supports_feature("compression"):
            compressed = self.compression.compress_data(data)
            if compressed is None:
                logger.warning("Payload compression failed, sending uncompressed")
                self.metrics_manager.record_compression_failure()
            else:
                self.metrics_manager.record_compression(len(data), len(compressed))
                data = compressed
                is_compressed = True

        try:
            frame = HEPEncoder.encode(self.config, info, data, is_compressed)
        except EncodeError as e:
            logger.error(f"Cannot encode HEP frame: {e}")
            self.metrics_manager.record_encode_error()
            return SendResult(False, e)

        try:
            self.transport.send(frame)
        except TransportError as e:
            # Already logged and counted by the transport session
            return SendResult(False, e)

        return SendResult(True, None, len(frame), is_compressed)

    def get_statistics(self) -> str:
        """
        Get the agent statistics text.

        Returns:
            str: "HEP Capture Agent Statistics:" with sent packets and init failures
        """
        return self.metrics_manager.get_statistics()

    def get_current_metrics(self) -> Dict[str, Any]:
        """
        Get all counters plus compression and session details.

        Returns:
            dict: Metrics snapshot
        """
        metrics = self.metrics_manager.get_current_metrics()
        metrics['compression'] = self.compression.get_stats()
        metrics['session'] = self.transport.get_session_info()
        return metrics

    @property
    def sent_packets(self) -> int:
        return self.metrics_manager.packets_sent

    @property
    def init_failures(self) -> int:
        return self.metrics_manager.connection_failures

    def disconnect(self) -> None:
        """Close the collector connection; the next send reconnects."""
        self.transport.disconnect()

    def __enter__(self) -> 'HEPCaptureAgent':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()


# Example usage
if __name__ == "__main__":
    import time

    from hep_types import AF_INET, IPPROTO_UDP, PayloadType

    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    agent = HEPCaptureAgent(host="127.0.0.1", port="9060", capture_id=101, version=3)

    now = time.time()
    rc_info = ConnectionInfo(
        ip_family=AF_INET,
        ip_proto=IPPROTO_UDP,
        src_ip="192.168.1.1",
        dst_ip="192.168.1.2",
        src_port=5060,
        dst_port=5060,
        time_sec=int(now),
        time_usec=int((now % 1) * 1_000_000),
        proto_type=PayloadType.SIP
    )

    sip_message = b"INVITE sip:user@example.com SIP/2.0\r\n"
    success = agent.send_hep(rc_info, sip_message)
    print(f"Message sent: {success}")
    print(agent.get_statistics())

    agent.metrics_manager.log_metrics_summary()
    agent.disconnect()
