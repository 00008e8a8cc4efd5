# monitor-worker/capture/ffmpeg_source.py
import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional

import numpy as np

try:
    import cv2
except Exception as e:
    raise RuntimeError("OpenCV (cv2) is required. pip install opencv-python") from e

from workers.errors import CaptureProcessFailure, TransientFrameError

logger = logging.getLogger(__name__)


def resolve_ffmpeg(ffmpeg_exe: Optional[str] = None) -> str:
    if ffmpeg_exe:
        return ffmpeg_exe
    try:
        import imageio_ffmpeg
        return imageio_ffmpeg.get_ffmpeg_exe()
    except Exception as e:
        raise CaptureProcessFailure(f"ffmpeg executable not available: {e}") from e


class FfmpegFrameSource:
    """
    Keeps a single JPEG at frame_path overwritten with the latest camera frame:
      ffmpeg -i <url> -vf fps=1 -update 1 <frame_path>
    The file may be missing (no frame yet) or half written; read() reports
    the first as None and the second as TransientFrameError.
    """
    def __init__(self, url: str, frame_path, ffmpeg_exe: Optional[str] = None, fps: int = 1,
                 rtsp_transport: Optional[str] = "tcp", kill_timeout: float = 2.0):
        self.url = url
        self.frame_path = Path(frame_path)
        self.ffmpeg_exe = ffmpeg_exe
        self.fps = int(fps)
        self.rtsp_transport = rtsp_transport
        self.kill_timeout = float(kill_timeout)
        self.proc: Optional[subprocess.Popen] = None
        self._exit_reported = False

    def build_cmd(self, exe: str) -> List[str]:
        cmd = [exe, "-hide_banner", "-loglevel", "error"]
        if self.rtsp_transport and self.url.lower().startswith("rtsp://"):
            cmd += ["-rtsp_transport", self.rtsp_transport]
        cmd += [
            "-i", self.url,
            "-vf", f"fps={self.fps}",
            "-qscale:v", "2",
            "-update", "1",
            "-y",
            str(self.frame_path),
        ]
        return cmd

    def start(self):
        if self.proc is not None:
            return
        self.frame_path.parent.mkdir(parents=True, exist_ok=True)
        self._exit_reported = False
        try:
            cmd = self.build_cmd(resolve_ffmpeg(self.ffmpeg_exe))
            logger.info("[capture] spawn: %s", " ".join(cmd))
            self.proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except (OSError, CaptureProcessFailure) as e:
            # keep the monitor alive; it will just see no frames
            self.proc = None
            self._exit_reported = True
            logger.error("[capture] could not start ffmpeg for %s: %s", self.url, e)

    def poll(self) -> bool:
        if self.proc is None:
            return False
        code = self.proc.poll()
        if code is None:
            return True
        if not self._exit_reported:
            self._exit_reported = True
            logger.warning("[capture] ffmpeg exited with code %s for %s", code, self.url)
        return False

    def read(self) -> Optional[np.ndarray]:
        if not self.frame_path.exists():
            return None
        frame = cv2.imread(str(self.frame_path), cv2.IMREAD_COLOR)
        if frame is None:
            raise TransientFrameError(f"could not decode {self.frame_path}")
        return frame

    def stop(self):
        proc, self.proc = self.proc, None
        try:
            if proc is not None and proc.poll() is None:
                proc.kill()
                try:
                    proc.wait(timeout=self.kill_timeout)
                except subprocess.TimeoutExpired:
                    logger.warning("[capture] ffmpeg pid %s did not exit after kill", proc.pid)
        finally:
            try:
                os.remove(self.frame_path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("[capture] could not remove %s: %s", self.frame_path, e)
