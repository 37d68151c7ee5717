"""
Tests for ffmpeg command building, probing and scratch storage.
"""

import logging
import subprocess
from datetime import timedelta

import pytest
from pydub import AudioSegment
from pydub.exceptions import CouldntEncodeError

from src.vttdub import backend as backend_mod
from src.vttdub import io_ffmpeg
from src.vttdub.backend import FfmpegBackend, PydubBackend
from src.vttdub.exceptions import (
    CommandError,
    CompositionError,
    ConfigurationError,
    DurationProbeError,
    RenderError,
    ResourceError,
)
from src.vttdub.timeline import compose_timeline

STATS = "Duration: 00:00:00.42, start: 0.0\nsize=N/A time=00:00:00.20 bitrate=N/A\nsize=N/A time={t} bitrate=N/A speed=90x\n"


class FakeRun:
    """Stands in for io_ffmpeg.run: answers probes, records other commands."""

    def __init__(self, durations: dict[str, str] | None = None, fail: str | None = None):
        self.durations = durations or {}
        self.fail = fail
        self.commands: list[list[str]] = []

    def __call__(self, cmd, *, check=True, timeout=None):
        self.commands.append(cmd)
        if self.fail and self.fail in cmd:
            raise CommandError("Command failed with code 1", returncode=1, output="Invalid data found")
        if "null" in cmd:
            return STATS.format(t=self.durations[cmd[cmd.index("-i") + 1]])
        return ""


def test_probe_duration_ms_uses_last_time(monkeypatch):
    """Test that the decoded position, not the header duration, is reported."""
    monkeypatch.setattr(io_ffmpeg, "run", FakeRun({"a.mp3": "00:00:01.25"}))
    assert io_ffmpeg.probe_duration_ms("a.mp3") == 1250


def test_probe_duration_ms_without_stats(monkeypatch):
    """Test that unreadable probe output is an error."""
    monkeypatch.setattr(io_ffmpeg, "run", lambda cmd, **kw: "a.mp3: Invalid data found")
    with pytest.raises(CommandError):
        io_ffmpeg.probe_duration_ms("a.mp3")


def test_ffmpeg_filter_graph(monkeypatch, tmp_path):
    """Test the delay + binary amix chain + aformat graph for three clips."""
    fake = FakeRun({"a.mp3": "00:00:00.40", "b.mp3": "00:00:00.30", "c.mp3": "00:00:00.25"})
    monkeypatch.setattr(io_ffmpeg, "run", fake)
    monkeypatch.setattr(backend_mod, "run", fake)
    offsets = [timedelta(0), timedelta(milliseconds=500), timedelta(milliseconds=1200)]

    composite = compose_timeline(["a.mp3", "b.mp3", "c.mp3"], offsets, FfmpegBackend(), tmp_path / "out.mp3")

    assert composite.duration == timedelta(milliseconds=1450)
    cmd = fake.commands[-1]
    graph = cmd[cmd.index("-filter_complex") + 1]
    assert graph == (
        "[0]adelay=0:all=1[d0]; "
        "[1]adelay=500:all=1[d1]; "
        "[2]adelay=1200:all=1[d2]; "
        "[d0][d1]amix=inputs=2:dropout_transition=0:normalize=0[m3]; "
        "[m3][d2]amix=inputs=2:dropout_transition=0:normalize=0[m4]; "
        "[m4]aformat=sample_fmts=fltp:sample_rates=44100:channel_layouts=stereo[n5]"
    )
    assert cmd[:8] == ["ffmpeg", "-y", "-i", "a.mp3", "-i", "b.mp3", "-i", "c.mp3"]
    assert cmd[cmd.index("-map") + 1] == "[n5]"
    assert cmd[cmd.index("-c:a") + 1] == "libmp3lame"
    assert cmd[cmd.index("-q:a") + 1] == "0"
    assert cmd[-1] == str(tmp_path / "out.mp3")


def test_ffmpeg_single_clip_skips_mix(monkeypatch, tmp_path):
    """Test that one clip is only delayed and reformatted."""
    fake = FakeRun({"a.mp3": "00:00:00.40"})
    monkeypatch.setattr(io_ffmpeg, "run", fake)
    monkeypatch.setattr(backend_mod, "run", fake)

    compose_timeline(["a.mp3"], [timedelta(0)], FfmpegBackend(), tmp_path / "out.mp3")

    cmd = fake.commands[-1]
    graph = cmd[cmd.index("-filter_complex") + 1]
    assert "amix" not in graph
    assert graph == (
        "[0]adelay=0:all=1[d0]; "
        "[d0]aformat=sample_fmts=fltp:sample_rates=44100:channel_layouts=stereo[n1]"
    )


def test_ffmpeg_probe_failure(monkeypatch, tmp_path):
    """Test that a failed probe aborts before mixing."""
    fake = FakeRun(fail="b.mp3")
    fake.durations = {"a.mp3": "00:00:00.40"}
    monkeypatch.setattr(io_ffmpeg, "run", fake)
    monkeypatch.setattr(backend_mod, "run", fake)

    with pytest.raises(DurationProbeError):
        compose_timeline(["a.mp3", "b.mp3"], [timedelta(0), timedelta(0)], FfmpegBackend(), tmp_path / "o.mp3")
    assert not any("-filter_complex" in c for c in fake.commands)


def test_ffmpeg_encode_failure(monkeypatch, tmp_path):
    """Test that a failed mix surfaces as a composition error."""
    fake = FakeRun({"a.mp3": "00:00:00.40"}, fail="-filter_complex")
    monkeypatch.setattr(io_ffmpeg, "run", fake)
    monkeypatch.setattr(backend_mod, "run", fake)

    with pytest.raises(CompositionError, match="Invalid data found"):
        compose_timeline(["a.mp3"], [timedelta(0)], FfmpegBackend(), tmp_path / "o.mp3")


def test_render_video_command(monkeypatch):
    """Test background, overlays and -shortest in the render command."""
    fake = FakeRun()
    monkeypatch.setattr(io_ffmpeg, "run", fake)

    FfmpegBackend().render_composite("audio.mp3", "subs.vtt", "out.mp4")

    cmd = fake.commands[-1]
    assert cmd[cmd.index("lavfi") + 2] == "color=c=black:s=1280x720:r=30"
    vf = cmd[cmd.index("-vf") + 1]
    assert vf.startswith("subtitles=subs.vtt:force_style='Alignment=6,FontSize=24',drawtext=")
    assert "x=(w-text_w)/2:y=(h-text_h)/2" in vf
    assert "mod(floor(t*10),10)" in vf
    assert "-shortest" in cmd
    assert cmd[-1] == "out.mp4"


def test_render_failure_includes_output(monkeypatch):
    """Test that backend diagnostics are kept verbatim in the render error."""
    monkeypatch.setattr(io_ffmpeg, "run", FakeRun(fail="-shortest"))
    with pytest.raises(RenderError, match="Invalid data found"):
        FfmpegBackend().render_composite("audio.mp3", "subs.vtt", "out.mp4")


def test_run_timeout(monkeypatch):
    """Test that a hung command is turned into a CommandError."""

    def hang(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"), output="partial")

    monkeypatch.setattr(io_ffmpeg.subprocess, "run", hang)
    with pytest.raises(CommandError, match="timed out") as exc:
        io_ffmpeg.run(["ffmpeg", "-i", "x"], timeout=1.0)
    assert exc.value.output == "partial"


def test_run_failure(monkeypatch):
    """Test non-zero exit handling with and without check."""
    proc = subprocess.CompletedProcess(["ffmpeg"], 1, stdout="boom")
    monkeypatch.setattr(io_ffmpeg.subprocess, "run", lambda *a, **kw: proc)

    with pytest.raises(CommandError) as exc:
        io_ffmpeg.run(["ffmpeg"])
    assert exc.value.returncode == 1
    assert exc.value.output == "boom"
    assert io_ffmpeg.run(["ffmpeg"], check=False) == "boom"


def test_scratch_dir_removed(tmp_path):
    """Test that scratch directories are unique and removed on error."""
    with io_ffmpeg.scratch_dir(parent=str(tmp_path)) as first, io_ffmpeg.scratch_dir(parent=str(tmp_path)) as second:
        assert first != second
        assert first.name.startswith("vttdub_")

    with pytest.raises(ValueError):
        with io_ffmpeg.scratch_dir(parent=str(tmp_path)) as scratch:
            (scratch / "clip_0000.mp3").write_bytes(b"x")
            raise ValueError("boom")
    assert list(tmp_path.iterdir()) == []


def test_scratch_dir_create_failure(monkeypatch):
    """Test that failing to create scratch space is a ResourceError."""

    def refuse(*args, **kwargs):
        raise PermissionError("denied")

    monkeypatch.setattr(io_ffmpeg.tempfile, "mkdtemp", refuse)
    with pytest.raises(ResourceError):
        with io_ffmpeg.scratch_dir():
            pass


def test_scratch_dir_remove_failure_is_logged(monkeypatch, tmp_path, caplog):
    """Test that a failed cleanup is only a warning."""

    def refuse(path):
        raise OSError("busy")

    monkeypatch.setattr(io_ffmpeg.shutil, "rmtree", refuse)
    with caplog.at_level(logging.WARNING, logger="vttdub"):
        with io_ffmpeg.scratch_dir(parent=str(tmp_path)):
            pass
    assert "Failed to remove scratch directory" in caplog.text


def test_check_ffmpeg_needs_only_ffmpeg(monkeypatch):
    """Test that ffprobe is not required."""
    monkeypatch.setattr(io_ffmpeg.shutil, "which", lambda tool: None if tool == "ffprobe" else f"/usr/bin/{tool}")
    io_ffmpeg.check_ffmpeg()

    monkeypatch.setattr(io_ffmpeg.shutil, "which", lambda tool: None)
    with pytest.raises(ConfigurationError, match="ffmpeg"):
        io_ffmpeg.check_ffmpeg()


def test_escape_filter_path():
    """Test option and graph level escaping of the subtitle path."""
    assert io_ffmpeg.escape_filter_path("/tmp/run/subtitles.vtt") == "/tmp/run/subtitles.vtt"
    assert io_ffmpeg.escape_filter_path("/tmp/a:b,c'd/subs.vtt") == r"/tmp/a\\:b\,c\\\'d/subs.vtt"
    assert io_ffmpeg.escape_filter_path(r"C:\subs[1].vtt") == r"C\\:\\\\subs\[1\].vtt"


def test_render_video_escapes_subtitle_path(monkeypatch):
    """Test that a scratch path with filter metacharacters stays one option."""
    fake = FakeRun()
    monkeypatch.setattr(io_ffmpeg, "run", fake)

    FfmpegBackend().render_composite("audio.mp3", "/scratch/a:b,c/subtitles.vtt", "out.mp4")

    vf = fake.commands[-1][fake.commands[-1].index("-vf") + 1]
    assert vf.startswith(r"subtitles=/scratch/a\\:b\,c/subtitles.vtt:force_style=")


def test_pydub_render_uses_timeout(monkeypatch):
    """Test that the in-process backend still bounds the video render."""
    seen = {}

    def fake_run(cmd, *, check=True, timeout=None):
        seen["timeout"] = timeout
        return ""

    monkeypatch.setattr(io_ffmpeg, "run", fake_run)
    PydubBackend(timeout=7.5).render_composite("audio.mp3", "subs.vtt", "out.mp4")
    assert seen["timeout"] == 7.5


def test_pydub_encode_failure(monkeypatch, tmp_path):
    """Test that a failed pydub export surfaces as a composition error."""

    def refuse(self, *args, **kwargs):
        raise CouldntEncodeError("Encoding failed. ffmpeg returned error code: 1")

    monkeypatch.setattr(AudioSegment, "export", refuse)
    with pytest.raises(CompositionError, match="Encoding failed"):
        PydubBackend(export_format="mp3").encode(AudioSegment.silent(duration=100), tmp_path / "o.mp3")


def test_pydub_load_failure(tmp_path):
    """Test that unreadable clips surface as a composition error."""
    with pytest.raises(CompositionError):
        PydubBackend().load([tmp_path / "missing.wav"])
