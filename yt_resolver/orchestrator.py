import logging
from urllib.parse import urlparse

from .cache import fingerprint
from .errors import EmptyOutput, InvalidInput, SpawnFailure, TimedOut, ToolError
from .runner import OperationKind, Outcome

logger = logging.getLogger(__name__)

# Client-facing messages per operation, and how much stderr goes along.
MESSAGES = {
    OperationKind.METADATA: {
        "tool_error": "Failed to fetch video info",
        "empty_output": "Failed to parse video info",
        "timeout": "Request timeout",
        "details_limit": 200,
    },
    OperationKind.AUDIO: {
        "tool_error": "Failed to retrieve audio URL",
        "empty_output": "No audio URL returned",
        "timeout": "Request timeout - try again later",
        "details_limit": 150,
    },
    OperationKind.VIDEO: {
        "tool_error": "Failed to retrieve video URL",
        "empty_output": "No video URL returned",
        "timeout": "Request timeout - try again later",
        "details_limit": 150,
    },
}


def validate_url(raw_url):
    """Returns the URL if it is a well-formed absolute URL, else raises InvalidInput."""
    if not raw_url:
        raise InvalidInput("Missing YouTube URL parameter.")
    if any(c.isspace() or ord(c) < 32 or ord(c) == 127 for c in raw_url):
        raise InvalidInput("Invalid URL format.")
    try:
        parsed = urlparse(raw_url)
        # port is parsed lazily and raises on junk like "host:abc"
        parsed.port
    except ValueError:
        raise InvalidInput("Invalid URL format.")
    if not parsed.scheme or not parsed.netloc or not parsed.hostname:
        raise InvalidInput("Invalid URL format.")
    return raw_url


def normalize(kind, payload):
    if kind is OperationKind.METADATA:
        formats = payload.get("formats")
        return {
            "id": payload.get("id"),
            "title": payload.get("title"),
            "duration": payload.get("duration"),
            "uploader": payload.get("uploader"),
            "formats": len(formats) if isinstance(formats, list) else 0,
        }
    if kind is OperationKind.AUDIO:
        return {"audio_url": payload}
    return {"video_url": payload}


class Orchestrator:
    """Cache-first resolution of one request.

    Identical requests that miss the cache at the same time are not merged:
    each of them starts its own yt-dlp process.
    """

    def __init__(self, cache, runner, timeouts=None):
        self.cache = cache
        self.runner = runner
        self.timeouts = timeouts or dict(runner.timeouts)

    def handle(self, kind, raw_url):
        kind = OperationKind(kind)
        url = validate_url(raw_url)

        key = fingerprint(kind.value, url)
        cached = self.cache.get(key)
        if cached is not None:
            cached["cached"] = True
            return cached

        result = self.runner.run(kind, url, timeout=self.timeouts[kind])
        if not result.ok:
            raise self._failure(kind, result)

        response = normalize(kind, result.payload)
        response["cached"] = False
        self.cache.put(key, response)
        return response

    def _failure(self, kind, result):
        messages = MESSAGES[kind]
        details = (result.detail or "")[: messages["details_limit"]] or None

        if result.outcome is Outcome.TIMED_OUT:
            return TimedOut(messages["timeout"])
        if result.outcome is Outcome.SPAWN_FAILURE:
            return SpawnFailure("yt-dlp execution failed", details)
        if result.outcome is Outcome.EMPTY_OUTPUT:
            return EmptyOutput(messages["empty_output"], details)
        return ToolError(messages["tool_error"], details)
