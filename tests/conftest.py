"""Shared fixtures: settings, a stand-in yt-dlp script, fake runner and clock."""

import sys
import textwrap

import pytest

from yt_resolver.config import Settings
from yt_resolver.runner import ExtractionResult, OperationKind, Outcome

MASTER = "m" * 64
VALID = "v" * 64

INFO_JSON = (
    '{"id": "abc", "title": "T", "duration": 125, "uploader": "U", '
    '"formats": [{"format_id": "1"}, {"format_id": "2"}, {"format_id": "3"}]}'
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeRunner:
    """Returns queued results and records every call."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []
        self.timeouts = {
            OperationKind.METADATA: 30,
            OperationKind.AUDIO: 45,
            OperationKind.VIDEO: 60,
        }

    def run(self, kind, url, timeout=None):
        self.calls.append((kind, url, timeout))
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


def succeeded(payload):
    return ExtractionResult(Outcome.SUCCEEDED, payload)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        master_key=MASTER,
        api_keys=(VALID,),
        cookies_file=None,
        keep_alive_interval=0,
    )


@pytest.fixture
def make_tool(tmp_path):
    """Writes a Python script that stands in for yt-dlp, returns Settings using it."""
    counter = {"n": 0}

    def _make(body, **overrides):
        counter["n"] += 1
        script = tmp_path / f"fake_ytdlp_{counter['n']}.py"
        script.write_text("import sys, time\n" + textwrap.dedent(body))
        opts = dict(
            master_key=MASTER,
            api_keys=(VALID,),
            cookies_file=None,
            keep_alive_interval=0,
            ytdlp_command=(sys.executable, str(script)),
        )
        opts.update(overrides)
        return Settings(**opts)

    return _make
