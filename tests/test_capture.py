import os
import stat
import sys
import time

import cv2
import numpy as np
import pytest

from capture.ffmpeg_source import FfmpegFrameSource
from workers.errors import TransientFrameError


def fake_ffmpeg(tmp_path, body):
    script = tmp_path / "ffmpeg"
    script.write_text("#!/bin/sh\n" + body + "\n")
    script.chmod(script.stat().st_mode | stat.S_IEXEC)
    return str(script)


def test_command_line_for_rtsp():
    src = FfmpegFrameSource("rtsp://cam/1", "/tmp/f.jpg")
    cmd = src.build_cmd("ffmpeg")
    assert cmd[cmd.index("-rtsp_transport") + 1] == "tcp"
    assert cmd[cmd.index("-i") + 1] == "rtsp://cam/1"
    assert cmd[cmd.index("-vf") + 1] == "fps=1"
    assert cmd[cmd.index("-update") + 1] == "1"
    assert cmd[-1] == "/tmp/f.jpg"


def test_command_line_for_http_has_no_rtsp_option():
    cmd = FfmpegFrameSource("http://cam/mjpeg", "/tmp/f.jpg").build_cmd("ffmpeg")
    assert "-rtsp_transport" not in cmd


def test_read_before_first_frame(tmp_path):
    assert FfmpegFrameSource("rtsp://c", tmp_path / "f.jpg").read() is None


def test_read_corrupt_frame(tmp_path):
    path = tmp_path / "f.jpg"
    path.write_bytes(b"\xff\xd8\xff\xe0 truncated")
    with pytest.raises(TransientFrameError):
        FfmpegFrameSource("rtsp://c", path).read()


def test_read_valid_frame(tmp_path):
    path = tmp_path / "f.jpg"
    assert cv2.imwrite(str(path), np.full((36, 64, 3), 128, np.uint8))
    frame = FfmpegFrameSource("rtsp://c", path).read()
    assert frame.shape == (36, 64, 3)


def test_missing_executable_does_not_raise(tmp_path):
    src = FfmpegFrameSource("rtsp://c", tmp_path / "f.jpg", ffmpeg_exe=str(tmp_path / "nope"))
    src.start()
    assert src.proc is None
    assert src.poll() is False
    src.stop()


def test_stop_without_frames_is_clean(tmp_path):
    src = FfmpegFrameSource("rtsp://c", tmp_path / "sub" / "f.jpg")
    src.stop()
    src.stop()


@pytest.mark.skipif(sys.platform == "win32", reason="shell script stand-in for ffmpeg")
def test_stop_kills_process_and_removes_frame(tmp_path):
    exe = fake_ffmpeg(tmp_path, "exec sleep 30")
    path = tmp_path / "frames" / "f.jpg"
    src = FfmpegFrameSource("rtsp://c", path, ffmpeg_exe=exe)
    src.start()
    proc = src.proc
    assert src.poll() is True
    path.write_bytes(b"x")
    src.stop()
    assert proc.poll() is not None
    assert not path.exists()


@pytest.mark.skipif(sys.platform == "win32", reason="shell script stand-in for ffmpeg")
def test_poll_reports_exit(tmp_path):
    exe = fake_ffmpeg(tmp_path, "exit 1")
    src = FfmpegFrameSource("rtsp://c", tmp_path / "f.jpg", ffmpeg_exe=exe)
    src.start()
    deadline = time.monotonic() + 5
    while src.poll() and time.monotonic() < deadline:
        time.sleep(0.02)
    assert src.poll() is False
    src.stop()
    assert not os.path.exists(tmp_path / "f.jpg")
