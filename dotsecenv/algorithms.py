"""Algorithm naming helpers and allow-list validation."""

from __future__ import annotations

import re
from collections.abc import Iterable

FIPS_KEY_ALGORITHM_ECC_P521 = "ECC-P521"
FIPS_KEY_ALGORITHM_RSA4096 = "RSA-4096"
FIPS_CIPHER_ALGORITHM = "AES-256-GCM"
FIPS_HASHING_ALGORITHM = "SHA-512"
FIPS_MAC_ALGORITHM = "HMAC-SHA-512"
FIPS_SIGNATURE_ALGORITHM = "ECDSA"

_FIPS_APPROVED = frozenset(
    {
        FIPS_KEY_ALGORITHM_ECC_P521,
        FIPS_KEY_ALGORITHM_RSA4096,
        FIPS_CIPHER_ALGORITHM,
        FIPS_HASHING_ALGORITHM,
        FIPS_MAC_ALGORITHM,
        FIPS_SIGNATURE_ALGORITHM,
    }
)

_BIT_LENGTH_RE = re.compile(r"(?:[-\s])?(\d+)(?:[-\s])?(?:$|-)", re.ASCII)
_NAME_SEPARATORS = "- /"
_MAX_INT64 = 2**63 - 1


class AlgorithmNotAllowedError(ValueError):
    """Raised when an algorithm is rejected by a policy."""


class AlgorithmValidator:
    """Validates algorithm names against sets of allowed values."""

    def __init__(
        self,
        ciphers: Iterable[str],
        hashing: Iterable[str],
        mac: Iterable[str],
        asymmetric: Iterable[str],
        signature: Iterable[str],
    ) -> None:
        self.allowed_ciphers = frozenset(ciphers)
        self.allowed_hashing = frozenset(hashing)
        self.allowed_mac = frozenset(mac)
        self.allowed_asymmetric = frozenset(asymmetric)
        self.allowed_signature = frozenset(signature)

    def validate_asymmetric(self, algo: str) -> None:
        """Raise AlgorithmNotAllowedError unless ``algo`` is an allowed asymmetric algorithm."""
        if algo not in self.allowed_asymmetric:
            raise AlgorithmNotAllowedError(f"asymmetric algorithm not allowed: {algo}")


def validate_fips186_5_compliance(algo: str) -> None:
    """Raise AlgorithmNotAllowedError unless ``algo`` is FIPS 186-5 approved."""
    if algo not in _FIPS_APPROVED:
        raise AlgorithmNotAllowedError(f"algorithm not FIPS 186-5 approved: {algo}")


def extract_bit_length(algorithm: str) -> int:
    """Return the bit length named in an algorithm string, or 0 if there is none."""
    match = _BIT_LENGTH_RE.search(algorithm)
    if match is None:
        return 0
    bits = int(match.group(1))
    return bits if bits <= _MAX_INT64 else 0


def extract_algorithm_name(algorithm: str) -> str:
    """Return the base algorithm name, e.g. ``RSA`` from ``RSA-4096``."""
    for position, char in enumerate(algorithm):
        if char in _NAME_SEPARATORS:
            return algorithm[:position]
    return algorithm


def get_algorithm_details(algorithm: str) -> tuple[str, int]:
    """Return the base name and bit length of an algorithm string."""
    return extract_algorithm_name(algorithm), extract_bit_length(algorithm)


def new_fips_validator() -> AlgorithmValidator:
    """Return a validator that enforces the FIPS 186-5 algorithm set."""
    return AlgorithmValidator(
        [FIPS_CIPHER_ALGORITHM],
        [FIPS_HASHING_ALGORITHM],
        [FIPS_MAC_ALGORITHM],
        [FIPS_KEY_ALGORITHM_ECC_P521, FIPS_KEY_ALGORITHM_RSA4096],
        [FIPS_SIGNATURE_ALGORITHM],
    )