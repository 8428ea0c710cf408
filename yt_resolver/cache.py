import logging
import threading
import time

logger = logging.getLogger(__name__)


def fingerprint(kind, url):
    """Cache key for one operation on one exact URL string."""
    return f"{kind}:{url}"


class ResultCache:
    """Process-local TTL cache of extraction results."""

    def __init__(self, ttl=300, check_period=60, clock=time.monotonic):
        self.ttl = ttl
        self.check_period = check_period
        self._clock = clock
        self._entries = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._stop = threading.Event()
        self._sweeper = None

    def get(self, key):
        """Returns the cached payload, unless it is missing or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry["expires"] <= now:
                del self._entries[key]
                entry = None
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            payload = dict(entry["payload"])
        logger.info("[CACHE HIT] %s", key)
        return payload

    def put(self, key, payload):
        """Stores the payload; the TTL starts over from now."""
        with self._lock:
            self._entries[key] = {
                "payload": dict(payload),
                "expires": self._clock() + self.ttl,
            }
        logger.info("[CACHE SET] %s", key)

    def sweep(self):
        """Drops expired entries, returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e["expires"] <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("[CACHE SWEEP] removed %d expired entries", len(expired))
        return len(expired)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def stats(self):
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "ttl": self.ttl,
            }

    def __len__(self):
        with self._lock:
            return len(self._entries)

    # ===== background sweep =====

    def start_sweeper(self):
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="CacheSweeper", daemon=True
        )
        self._sweeper.start()

    def stop_sweeper(self):
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None

    def _sweep_loop(self):
        while not self._stop.wait(self.check_period):
            try:
                self.sweep()
            except Exception:
                logger.exception("Cache sweep failed")
