"""Cryptographic utilities for eHealthWave.

Secrets handed out as emergency PINs and sharing tokens come from the
operating system CSPRNG via :mod:`secrets`. Ledger digests are SHA-256 over a
canonical JSON rendering.
"""

import hashlib
import json
import secrets
import string
from abc import ABC, abstractmethod
from typing import Any

from ehealthwave.models.grant import GrantKind

PIN_MIN = 100000
PIN_MAX = 999999
TOKEN_ALPHABET = string.ascii_uppercase + string.digits


class RandomSource(ABC):
    """Produces candidate secrets for new grants."""

    @abstractmethod
    def secret(self, kind: GrantKind) -> str:
        """Return a fresh candidate secret for a grant of ``kind``."""


class SecureRandomSource(RandomSource):
    """CSPRNG-backed secret source."""

    def __init__(self, token_length: int = 12):
        """Initialize the secret source.

        Args:
            token_length: Number of characters in a sharing token
        """
        self.token_length = token_length

    def secret(self, kind: GrantKind) -> str:
        """Generate a PIN or token.

        PINs are uniform over 100000..999999. Tokens draw each character
        uniformly from ``A-Z0-9``.
        """
        if kind is GrantKind.EMERGENCY_PIN:
            return str(PIN_MIN + secrets.randbelow(PIN_MAX - PIN_MIN + 1))
        return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(self.token_length))


def canonical_json(data: Any) -> str:
    """Serialize data deterministically."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def sha256_hex(data: Any) -> str:
    """Create a SHA-256 hex digest of the canonical JSON form of ``data``."""
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()
