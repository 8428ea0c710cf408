"""
Runs yt-dlp as a child process, one process per call.

Output is drained on reader threads into capped buffers while the calling
thread waits for exit or for the deadline, whichever comes first. Every
subprocess failure is turned into an ExtractionResult here; nothing from
the subprocess layer is raised to the caller.
"""

import enum
import json
import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192
STDERR_CAP = 64 * 1024
STDOUT_CAPS = {
    "info": 2 * 1024 * 1024,
    "audio": 512 * 1024,
    "video": 512 * 1024,
}


class OperationKind(str, enum.Enum):
    METADATA = "info"
    AUDIO = "audio"
    VIDEO = "video"


class Outcome(enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"
    TOOL_ERROR = "tool_error"
    EMPTY_OUTPUT = "empty_output"
    SPAWN_FAILURE = "spawn_failure"


@dataclass
class ExtractionResult:
    outcome: Outcome
    payload: Any = None
    detail: str = ""

    @property
    def ok(self):
        return self.outcome is Outcome.SUCCEEDED


@dataclass
class CappedBuffer:
    """Keeps the first `cap` bytes written to it and counts the rest."""

    cap: int
    data: bytearray = field(default_factory=bytearray)
    dropped: int = 0

    def write(self, chunk):
        room = self.cap - len(self.data)
        if room > 0:
            self.data += chunk[:room]
        self.dropped += max(0, len(chunk) - max(room, 0))

    def text(self):
        return self.data.decode("utf-8", errors="replace")

    def clear(self):
        self.data = bytearray()


@dataclass
class ProcessInvocation:
    """State of a single child process, owned by one run() call."""

    argv: List[str]
    timeout: float
    stdout: CappedBuffer
    stderr: CappedBuffer
    started_at: float = 0.0
    deadline: float = 0.0
    returncode: Optional[int] = None
    cause: Optional[str] = None  # exited, timeout, spawn_failure
    state: Outcome = Outcome.PENDING

    def finish(self, outcome, payload=None, detail=""):
        if self.state is not Outcome.PENDING:
            raise RuntimeError(f"invocation already finished as {self.state.value}")
        self.state = outcome
        return ExtractionResult(outcome, payload, detail)


def _drain(stream, buffer):
    try:
        for chunk in iter(lambda: stream.read(CHUNK_SIZE), b""):
            buffer.write(chunk)
    except (OSError, ValueError):
        # pipe closed under us after a kill
        pass


def _kill_group(proc):
    """Kills the child and everything it started in its session."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        proc.kill()


class ExtractionRunner:
    def __init__(self, settings):
        self.settings = settings
        self.timeouts = {
            OperationKind.METADATA: settings.info_timeout,
            OperationKind.AUDIO: settings.audio_timeout,
            OperationKind.VIDEO: settings.video_timeout,
        }

    def build_args(self, kind, url):
        kind = OperationKind(kind)
        if kind is OperationKind.METADATA:
            args = ["-j", "--no-warnings", "--skip-download"]
        else:
            fmt = "bestaudio" if kind is OperationKind.AUDIO else "bestvideo+bestaudio"
            args = ["-f", fmt, "--get-url", "--no-warnings", "--socket-timeout", "30"]

        args += ["--user-agent", self.settings.user_agent]
        cookies = self.settings.cookies_file
        if cookies and os.path.isfile(cookies):
            args += ["--cookies", cookies]
        if self.settings.proxy_url:
            args = ["--proxy", self.settings.proxy_url] + args

        return list(self.settings.ytdlp_command) + args + [url]

    def run(self, kind, url, timeout=None):
        kind = OperationKind(kind)
        if timeout is None:
            timeout = self.timeouts[kind]

        inv = ProcessInvocation(
            argv=self.build_args(kind, url),
            timeout=timeout,
            stdout=CappedBuffer(STDOUT_CAPS[kind.value]),
            stderr=CappedBuffer(STDERR_CAP),
        )
        inv.started_at = time.monotonic()
        inv.deadline = inv.started_at + timeout
        logger.info("[YT-DLP %s] %s (timeout %ss)", kind.value, url, timeout)

        try:
            proc = subprocess.Popen(
                inv.argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            inv.cause = "spawn_failure"
            logger.error("yt-dlp could not be started: %s", e)
            return inv.finish(Outcome.SPAWN_FAILURE, detail=str(e))

        readers = [
            threading.Thread(target=_drain, args=(proc.stdout, inv.stdout), daemon=True),
            threading.Thread(target=_drain, args=(proc.stderr, inv.stderr), daemon=True),
        ]
        for t in readers:
            t.start()

        try:
            inv.returncode = proc.wait(timeout=timeout)
            inv.cause = "exited"
        except subprocess.TimeoutExpired:
            _kill_group(proc)
            inv.returncode = proc.wait()
            inv.cause = "timeout"
        finally:
            for t in readers:
                t.join(timeout=2)
            if any(t.is_alive() for t in readers):
                # a descendant still holds the pipes open
                _kill_group(proc)
                for t in readers:
                    t.join(timeout=2)
            if not any(t.is_alive() for t in readers):
                proc.stdout.close()
                proc.stderr.close()

        elapsed = time.monotonic() - inv.started_at
        if inv.cause == "timeout":
            # partial output is never reported
            inv.stdout.clear()
            inv.stderr.clear()
            logger.warning("[YT-DLP %s] killed after %.1fs: %s", kind.value, elapsed, url)
            return inv.finish(Outcome.TIMED_OUT, detail=f"no result within {timeout}s")

        return self._interpret(kind, inv, elapsed)

    def _interpret(self, kind, inv, elapsed):
        if inv.stdout.dropped:
            logger.warning(
                "[YT-DLP %s] stdout exceeded %d bytes, %d dropped",
                kind.value, inv.stdout.cap, inv.stdout.dropped,
            )

        if inv.returncode != 0:
            stderr = inv.stderr.text().strip()
            logger.error("yt-dlp exited with %s: %s", inv.returncode, stderr[:500])
            return inv.finish(Outcome.TOOL_ERROR, detail=stderr)

        out = inv.stdout.text().strip()
        if not out:
            return inv.finish(Outcome.EMPTY_OUTPUT, detail="no output")

        if kind is OperationKind.METADATA:
            try:
                data = json.loads(out)
            except ValueError as e:
                return inv.finish(Outcome.EMPTY_OUTPUT, detail=f"invalid JSON: {e}")
            if not isinstance(data, dict):
                return inv.finish(Outcome.EMPTY_OUTPUT, detail="expected a JSON object")
            payload = data
        else:
            payload = next(line.strip() for line in out.splitlines() if line.strip())

        logger.info("[YT-DLP %s] done in %.1fs", kind.value, elapsed)
        return inv.finish(Outcome.SUCCEEDED, payload=payload)
