"""
Content fingerprinting: stable SHA-256 over normalized review text.

Used to detect edited reviews without comparing full texts on every sync.
Normalization (trim, lowercase, collapse whitespace) keeps cosmetic edits
from triggering a reanalysis.
"""

from __future__ import annotations

import hashlib
import re

_WHITESPACE = re.compile(r"\s+")


class ContentFingerprinter:
    """Computes and compares review content fingerprints."""

    @staticmethod
    def normalize(text: str | None) -> str:
        if not text:
            return ""
        return _WHITESPACE.sub(" ", text.strip().lower())

    def fingerprint(self, text: str | None) -> str:
        """Hex SHA-256 of the normalized text (64 chars)."""
        return hashlib.sha256(self.normalize(text).encode("utf-8")).hexdigest()

    def matches(self, text: str | None, fingerprint: str | None) -> bool:
        if fingerprint is None:
            return False
        return self.fingerprint(text) == fingerprint
