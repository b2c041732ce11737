#!/usr/bin/env python3
"""
Protocol Version Module for the HEP capture agent

Maps the configured HEP version number to a semantic version and the set of
wire features it carries. Features accumulate: every version supports the
features of all lower versions.

- 1.0.0: fixed header with the raw address pair
- 2.0.0: adds the timestamp / capture-id trailer
- 3.0.0: self-describing chunks, compressed payloads, authentication key

Version: 1.0.0
"""

import logging
from typing import Any, Dict, List, Set

import semver

from hep_errors import UnsupportedVersionError

__version__ = "1.0.0"
__all__ = ["ProtocolVersion"]

logger = logging.getLogger("HEPCapture.Versioning")


class ProtocolVersion:
    """
    Feature detection for one HEP protocol version.

    The encoder and the agent ask ``supports_feature`` instead of comparing
    version numbers directly.
    """

    # Features by version
    FEATURES: Dict[str, List[str]] = {
        "1.0.0": [
            "address_pair"
        ],
        "2.0.0": [
            "timestamp",
            "capture_id"
        ],
        "3.0.0": [
            "chunks",
            "compression",
            "authentication"
        ]
    }

    def __init__(self, version: str):
        """
        Initialize with a semantic version string.

        Args:
            version: One of the versions listed in FEATURES

        Raises:
            UnsupportedVersionError: If the version is unknown
        """
        if version not in self.FEATURES:
            raise UnsupportedVersionError(version)
        self.version: str = version
        self._parsed = semver.Version.parse(version)
        self._features = self.get_supported_features(version)

    @classmethod
    def from_number(cls, number: Any) -> 'ProtocolVersion':
        """
        Create from the HEP version number used in configuration (1, 2 or 3).

        Raises:
            UnsupportedVersionError: If number is not a supported HEP version
        """
        if isinstance(number, bool) or not isinstance(number, int):
            raise UnsupportedVersionError(number)
        version = f"{number}.0.0"
        if version not in cls.FEATURES:
            raise UnsupportedVersionError(number)
        return cls(version)

    @classmethod
    def get_supported_features(cls, version: str) -> Set[str]:
        """
        Get the features supported by a specific version.

        Args:
            version: Version to check

        Returns:
            Set of supported feature names
        """
        features: Set[str] = set()

        # Add features from all lower or equal versions
        for ver, ver_features in cls.FEATURES.items():
            if semver.Version.parse(ver).compare(version) <= 0:
                features.update(ver_features)

        return features

    @property
    def number(self) -> int:
        """The value written to the version byte of legacy frames."""
        return self._parsed.major

    def supports_feature(self, feature: str) -> bool:
        """
        Check if a specific feature is supported.

        Args:
            feature: Feature name to check

        Returns:
            True if the feature is supported
        """
        return feature in self._features

    def get_version_info(self) -> Dict[str, Any]:
        """
        Get information about this protocol version.

        Returns:
            Dictionary containing version information and supported features
        """
        return {
            "version": self.version,
            "number": self.number,
            "features": sorted(self._features)
        }

    def __repr__(self) -> str:
        return f"ProtocolVersion({self.version!r})"
