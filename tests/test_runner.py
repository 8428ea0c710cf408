import os
import time

import pytest

from yt_resolver import runner as runner_module
from yt_resolver.config import Settings
from yt_resolver.runner import (
    CappedBuffer,
    ExtractionRunner,
    OperationKind,
    Outcome,
)

from conftest import INFO_JSON


class TestBuildArgs:
    def test_metadata(self):
        runner = ExtractionRunner(Settings(cookies_file=None, user_agent="UA"))
        argv = runner.build_args(OperationKind.METADATA, "https://youtu.be/abc")
        assert argv == [
            "yt-dlp", "-j", "--no-warnings", "--skip-download",
            "--user-agent", "UA", "https://youtu.be/abc",
        ]

    def test_audio(self):
        runner = ExtractionRunner(Settings(cookies_file=None, user_agent="UA"))
        argv = runner.build_args("audio", "https://youtu.be/abc")
        assert argv[1:3] == ["-f", "bestaudio"]
        assert "--get-url" in argv
        assert "--skip-download" not in argv
        assert argv[-1] == "https://youtu.be/abc"

    def test_video(self):
        runner = ExtractionRunner(Settings(cookies_file=None))
        argv = runner.build_args(OperationKind.VIDEO, "u")
        assert argv[1:3] == ["-f", "bestvideo+bestaudio"]
        assert argv[argv.index("--socket-timeout") + 1] == "30"

    def test_proxy_goes_first(self):
        runner = ExtractionRunner(Settings(cookies_file=None, proxy_url="http://proxy:3128"))
        argv = runner.build_args(OperationKind.AUDIO, "u")
        assert argv[:3] == ["yt-dlp", "--proxy", "http://proxy:3128"]

    def test_cookies_only_when_file_exists(self, tmp_path):
        cookies = tmp_path / "cookies.txt"
        missing = ExtractionRunner(Settings(cookies_file=str(cookies)))
        assert "--cookies" not in missing.build_args(OperationKind.AUDIO, "u")

        cookies.write_text("# Netscape HTTP Cookie File\n")
        present = ExtractionRunner(Settings(cookies_file=str(cookies)))
        argv = present.build_args(OperationKind.AUDIO, "u")
        assert argv[argv.index("--cookies") + 1] == str(cookies)

    def test_command_prefix(self):
        runner = ExtractionRunner(Settings(cookies_file=None, ytdlp_command=("python", "-m", "yt_dlp")))
        assert runner.build_args(OperationKind.AUDIO, "u")[:3] == ["python", "-m", "yt_dlp"]


class TestCappedBuffer:
    def test_keeps_up_to_cap(self):
        buf = CappedBuffer(5)
        buf.write(b"abc")
        buf.write(b"defg")
        assert bytes(buf.data) == b"abcde"
        assert buf.dropped == 2

    def test_drops_everything_once_full(self):
        buf = CappedBuffer(2)
        buf.write(b"ab")
        buf.write(b"cd")
        assert bytes(buf.data) == b"ab"
        assert buf.dropped == 2


class TestRun:
    def test_metadata_success(self, make_tool):
        settings = make_tool(f"sys.stdout.write({INFO_JSON!r})\n")
        result = ExtractionRunner(settings).run(OperationKind.METADATA, "https://youtu.be/abc")
        assert result.outcome is Outcome.SUCCEEDED
        assert result.payload["id"] == "abc"
        assert len(result.payload["formats"]) == 3

    def test_audio_success_is_trimmed(self, make_tool):
        settings = make_tool("print('  https://cdn.example/audio.m4a  ')\n")
        result = ExtractionRunner(settings).run(OperationKind.AUDIO, "https://youtu.be/abc")
        assert result.ok
        assert result.payload == "https://cdn.example/audio.m4a"

    def test_video_takes_first_url(self, make_tool):
        settings = make_tool("print('https://cdn/v.mp4')\nprint('https://cdn/a.m4a')\n")
        result = ExtractionRunner(settings).run(OperationKind.VIDEO, "https://youtu.be/abc")
        assert result.payload == "https://cdn/v.mp4"

    def test_url_is_passed_last(self, make_tool):
        settings = make_tool("print(sys.argv[-1])\n")
        result = ExtractionRunner(settings).run(OperationKind.AUDIO, "https://youtu.be/xyz")
        assert result.payload == "https://youtu.be/xyz"

    def test_nonzero_exit_is_tool_error(self, make_tool):
        settings = make_tool(
            "sys.stderr.write('ERROR: Video unavailable')\nsys.exit(1)\n"
        )
        result = ExtractionRunner(settings).run(OperationKind.AUDIO, "https://youtu.be/abc")
        assert result.outcome is Outcome.TOOL_ERROR
        assert "Video unavailable" in result.detail
        assert result.payload is None

    def test_nonzero_exit_with_stdout_is_still_tool_error(self, make_tool):
        settings = make_tool("print('https://cdn/a')\nsys.exit(2)\n")
        result = ExtractionRunner(settings).run(OperationKind.AUDIO, "u://x")
        assert result.outcome is Outcome.TOOL_ERROR

    def test_empty_output(self, make_tool):
        settings = make_tool("print('   ')\n")
        result = ExtractionRunner(settings).run(OperationKind.AUDIO, "https://youtu.be/abc")
        assert result.outcome is Outcome.EMPTY_OUTPUT

    def test_unparseable_metadata(self, make_tool):
        settings = make_tool("print('not json')\n")
        result = ExtractionRunner(settings).run(OperationKind.METADATA, "https://youtu.be/abc")
        assert result.outcome is Outcome.EMPTY_OUTPUT

    def test_metadata_must_be_an_object(self, make_tool):
        settings = make_tool("print('[1, 2]')\n")
        result = ExtractionRunner(settings).run(OperationKind.METADATA, "https://youtu.be/abc")
        assert result.outcome is Outcome.EMPTY_OUTPUT

    def test_oversized_output_is_capped(self, make_tool, monkeypatch):
        monkeypatch.setitem(runner_module.STDOUT_CAPS, "audio", 16)
        settings = make_tool("sys.stdout.write('x' * 100000)\n")
        result = ExtractionRunner(settings).run(OperationKind.AUDIO, "https://youtu.be/abc")
        assert result.ok
        assert result.payload == "x" * 16

    def test_timeout_discards_partial_output(self, make_tool, tmp_path):
        pid_file = tmp_path / "pid"
        settings = make_tool(
            f"""
            import os
            open({str(pid_file)!r}, "w").write(str(os.getpid()))
            print("https://cdn/partial", flush=True)
            time.sleep(30)
            """
        )
        result = ExtractionRunner(settings).run(
            OperationKind.AUDIO, "https://youtu.be/abc", timeout=1
        )
        assert result.outcome is Outcome.TIMED_OUT
        assert not result.ok
        assert result.payload is None

        pid = int(pid_file.read_text())
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)

    def test_default_timeout_per_kind(self, make_tool):
        settings = make_tool("time.sleep(30)\n", audio_timeout=0.5)
        runner = ExtractionRunner(settings)
        assert runner.timeouts[OperationKind.AUDIO] == 0.5
        assert runner.run(OperationKind.AUDIO, "https://youtu.be/abc").outcome is Outcome.TIMED_OUT

    def test_missing_executable_is_spawn_failure(self, tmp_path):
        settings = Settings(cookies_file=None, ytdlp_command=(str(tmp_path / "no-such-yt-dlp"),))
        result = ExtractionRunner(settings).run(OperationKind.METADATA, "https://youtu.be/abc")
        assert result.outcome is Outcome.SPAWN_FAILURE
        assert result.detail

    def test_not_executable_is_spawn_failure(self, tmp_path):
        tool = tmp_path / "yt-dlp"
        tool.write_text("#!/bin/sh\necho hi\n")
        tool.chmod(0o644)
        settings = Settings(cookies_file=None, ytdlp_command=(str(tool),))
        result = ExtractionRunner(settings).run(OperationKind.AUDIO, "https://youtu.be/abc")
        assert result.outcome is Outcome.SPAWN_FAILURE

    def test_null_byte_in_url_is_spawn_failure(self, make_tool):
        settings = make_tool("print('https://cdn/a')\n")
        result = ExtractionRunner(settings).run(OperationKind.AUDIO, "https://youtu.be/a\x00b")
        assert result.outcome is Outcome.SPAWN_FAILURE
        assert "null" in result.detail

    def test_timeout_kills_grandchildren(self):
        # sh forks sleep as its own child; that child inherits the pipes
        script = "sleep 30; echo https://cdn/late"
        settings = Settings(cookies_file=None, ytdlp_command=("sh", "-c", script, "sh"))

        started = time.monotonic()
        result = ExtractionRunner(settings).run(OperationKind.AUDIO, "https://youtu.be/abc", timeout=1)
        elapsed = time.monotonic() - started

        assert result.outcome is Outcome.TIMED_OUT
        assert elapsed < 5

    def test_exited_wrapper_with_lingering_grandchild(self):
        # the wrapper exits at once but leaves a child holding stdout open
        script = "echo https://cdn/a; (sleep 30 &) ; exit 0"
        settings = Settings(cookies_file=None, ytdlp_command=("sh", "-c", script, "sh"))

        started = time.monotonic()
        result = ExtractionRunner(settings).run(OperationKind.AUDIO, "https://youtu.be/abc", timeout=10)
        assert time.monotonic() - started < 8
        assert result.ok
        assert result.payload == "https://cdn/a"
