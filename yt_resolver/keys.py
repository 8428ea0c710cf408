import hmac
import logging
import secrets
import threading

from .errors import Forbidden

logger = logging.getLogger(__name__)


def generate_key():
    """32 random bytes, hex encoded."""
    return secrets.token_hex(32)


class KeyRegistry:
    """In-memory set of valid API keys plus the master key.

    Nothing is persisted: issued keys are gone after a restart, only a
    configured master key survives it.
    """

    def __init__(self, master_key=None, seed_keys=()):
        self.generated_master = not master_key
        self._master = master_key or generate_key()
        self._keys = set(seed_keys)
        self._keys.add(self._master)
        self._lock = threading.Lock()
        logger.info(
            "API keys initialized (%d valid). Master key length: %d",
            len(self._keys), len(self._master),
        )

    @property
    def master_key(self):
        return self._master

    def is_master(self, key):
        if not key:
            return False
        return hmac.compare_digest(key.encode(), self._master.encode())

    def is_valid(self, key):
        if not key:
            return False
        with self._lock:
            return key in self._keys

    def issue_key(self, requested_by):
        if not self.is_master(requested_by):
            raise Forbidden("Invalid master key", "The provided master key is not valid")
        key = generate_key()
        with self._lock:
            self._keys.add(key)
            total = len(self._keys)
        logger.info("[KEY ISSUED] %s... (%d valid)", key[:8], total)
        return key

    def __len__(self):
        with self._lock:
            return len(self._keys)
