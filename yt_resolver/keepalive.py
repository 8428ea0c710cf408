import logging
import threading
from datetime import datetime, timezone

import requests

logger = logging.getLogger(__name__)


class KeepAlive:
    """Pings our own /health every `interval` seconds so idle hosts don't sleep."""

    def __init__(self, url, interval=180, timeout=5, session=None):
        self.url = url
        self.interval = interval
        self.timeout = timeout
        self.session = session or requests.Session()
        self._stop = threading.Event()
        self._thread = None

    def ping(self):
        try:
            r = self.session.get(self.url, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Keep-alive ping failed: %s", e)
            return None
        logger.info(
            "[%s] Keep-alive ping: %s",
            datetime.now(timezone.utc).isoformat(), r.status_code,
        )
        return r.status_code

    def start(self):
        if self.interval <= 0 or (self._thread and self._thread.is_alive()):
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="KeepAlive", daemon=True)
        self._thread.start()

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.timeout + 1)
            self._thread = None

    def _loop(self):
        while not self._stop.wait(self.interval):
            self.ping()
