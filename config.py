#!/usr/bin/env python3
"""
Agent configuration for the HEP capture agent.

The configuration is built once and shared by every send call. It is not
validated on construction: an unsupported HEP version surfaces as a failed
send, the same as any other per-call error.

Typical usage:
    from config import AgentConfig

    config = AgentConfig(host="10.0.0.1", port=9060, capture_id=2001, password="secret")
    config = AgentConfig.from_dict({"host": "10.0.0.1", "compress": True})
"""

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

__version__ = '1.0.0'
__all__ = ['AgentConfig', 'DEFAULT_CONNECT_TIMEOUT']

DEFAULT_CONNECT_TIMEOUT = 5.0


@dataclass(frozen=True)
class AgentConfig:
    """
    Immutable settings of one capture agent.

    Attributes:
        host (str): Collector host name or address
        port (str or int): Collector port
        capture_id (int): Capture node identifier (uint32)
        version (int): HEP version, 1, 2 or 3
        use_ssl (bool): Wrap the connection in TLS (forces TCP)
        compress (bool): Compress payloads (HEP v3 only)
        password (str, optional): Authentication key sent in every v3 frame
        transport (str): 'udp' or 'tcp'
        connect_timeout (float): Bound on connection establishment in seconds
        send_timeout (float, optional): Socket timeout for sends, None blocks
        compression_type (str): 'zlib', 'gzip' or 'deflate'
        compression_level (int): Compression level 1-9
        tls_verify (bool): Verify the collector certificate chain
        tls_ca_file (str, optional): CA bundle for verification
        tls_cert_file (str, optional): Client certificate
        tls_key_file (str, optional): Client private key
        tls_server_hostname (str, optional): SNI / verification name, defaults to host
        tls_fingerprint (str, optional): Hex SHA-256 pin of the collector certificate
    """
    host: str = "10.0.0.1"
    port: Union[str, int] = "9060"
    capture_id: int = 101
    version: int = 3
    use_ssl: bool = False
    compress: bool = False
    password: Optional[str] = None
    transport: str = "udp"
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    send_timeout: Optional[float] = None
    compression_type: str = "zlib"
    compression_level: int = 6
    tls_verify: bool = True
    tls_ca_file: Optional[str] = None
    tls_cert_file: Optional[str] = None
    tls_key_file: Optional[str] = None
    tls_server_hostname: Optional[str] = None
    tls_fingerprint: Optional[str] = None

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> 'AgentConfig':
        """
        Build a configuration from a mapping of field names to values.

        Raises:
            ValueError: If the mapping holds an unknown key
        """
        known = {field.name for field in dataclasses.fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(**dict(values))

    def to_dict(self) -> Dict[str, Any]:
        """Return the configuration as a dict with the password masked."""
        values = dataclasses.asdict(self)
        if values['password'] is not None:
            values['password'] = '***'
        return values

    def replace(self, **changes: Any) -> 'AgentConfig':
        """Return a copy with the given fields changed."""
        return dataclasses.replace(self, **changes)

    @property
    def effective_transport(self) -> str:
        """Transport actually used: TLS always runs over TCP."""
        if self.use_ssl:
            return "tcp"
        return self.transport.lower()

    @property
    def collector_addr(self) -> str:
        return f"{self.host}:{self.port}"
