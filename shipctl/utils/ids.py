"""Identifier and secret generation for cluster credentials."""
import secrets
import time
from typing import Callable, Optional

from shipctl.errors import CryptoError

BASE62 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
BOOTSTRAP_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"

# KSUID epoch (2014-05-13T16:53:20Z)
KSUID_EPOCH = 1400000000
KSUID_PAYLOAD_BYTES = 16
KSUID_LENGTH = 27

CERTIFICATE_KEY_BYTES = 32


class IdGenerator:
    """Generates tokens from an injectable random source and clock.

    Args:
        rand_bytes: Callable returning ``n`` random bytes (default: secrets.token_bytes)
        now: Callable returning the current UNIX time in seconds
    """

    def __init__(self, rand_bytes: Optional[Callable[[int], bytes]] = None,
                 now: Optional[Callable[[], float]] = None):
        self._rand_bytes = rand_bytes or secrets.token_bytes
        self._now = now or time.time

    def _random(self, n: int) -> bytes:
        try:
            data = self._rand_bytes(n)
        except Exception as e:
            raise CryptoError(f"random source failed: {e}") from e
        if len(data) != n:
            raise CryptoError(f"random source returned {len(data)} bytes, expected {n}")
        return data

    def token(self) -> str:
        """K-sortable unique id: 4-byte timestamp plus 16 random bytes, base62."""
        timestamp = int(self._now()) - KSUID_EPOCH
        if timestamp < 0 or timestamp >= 2 ** 32:
            raise CryptoError(f"clock out of range for token generation: {timestamp}")
        raw = timestamp.to_bytes(4, "big") + self._random(KSUID_PAYLOAD_BYTES)
        value = int.from_bytes(raw, "big")
        chars = []
        while value:
            value, rem = divmod(value, 62)
            chars.append(BASE62[rem])
        return "".join(reversed(chars)).rjust(KSUID_LENGTH, "0")

    def _alphanumeric(self, length: int) -> str:
        # Rejection sampling keeps the distribution uniform over 36 symbols.
        limit = 256 - (256 % len(BOOTSTRAP_ALPHABET))
        out = []
        while len(out) < length:
            for b in self._random(length):
                if b < limit:
                    out.append(BOOTSTRAP_ALPHABET[b % len(BOOTSTRAP_ALPHABET)])
                    if len(out) == length:
                        break
        return "".join(out)

    def bootstrap_token(self) -> str:
        """kubeadm bootstrap token in ``[a-z0-9]{6}.[a-z0-9]{16}`` form."""
        return f"{self._alphanumeric(6)}.{self._alphanumeric(16)}"

    def certificate_key(self) -> str:
        """Hex-encoded 32-byte key protecting uploaded control-plane certificates."""
        return self._random(CERTIFICATE_KEY_BYTES).hex()


default_generator = IdGenerator()
