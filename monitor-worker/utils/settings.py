# monitor-worker/utils/settings.py
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from features.fall import FallTunables

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


@dataclass(frozen=True)
class MonitorSettings:
    sample_period: float = 1.0
    motionless_check_period: float = 60.0
    frame_width: int = 64
    frame_height: int = 36
    movement_threshold: float = 0.02
    score_window: int = 10


def load_config(path: Optional[str] = None) -> dict:
    path = Path(path or os.environ.get("MONITOR_CONFIG") or DEFAULT_CONFIG_PATH)
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def monitor_settings(cfg: dict) -> MonitorSettings:
    m = cfg.get("monitor") or {}
    return MonitorSettings(
        sample_period=float(m.get("sample_period", 1.0)),
        motionless_check_period=float(m.get("motionless_check_period", 60.0)),
        frame_width=int(m.get("frame_width", 64)),
        frame_height=int(m.get("frame_height", 36)),
        movement_threshold=float(m.get("movement_threshold", 0.02)),
        score_window=int(m.get("score_window", 10)),
    )


def fall_tunables(cfg: dict) -> FallTunables:
    f = cfg.get("fall") or {}
    return FallTunables(
        spike_threshold=float(f.get("spike_threshold", 0.25)),
        low_motion_threshold=float(f.get("low_motion_threshold", 0.02)),
        confirmation_count=int(f.get("confirmation_count", 3)),
        pending_timeout=float(f.get("pending_timeout", 15.0)),
    )


def capture_settings(cfg: dict) -> dict:
    c = cfg.get("capture") or {}
    return {
        "frames_dir": c.get("frames_dir") or os.path.join(tempfile.gettempdir(), "monitor_frames"),
        "ffmpeg_exe": c.get("ffmpeg"),
        "fps": int(c.get("fps", 1)),
        "rtsp_transport": c.get("rtsp_transport", "tcp"),
        "kill_timeout": float(c.get("kill_timeout", 2.0)),
    }


def bus_settings(cfg: dict) -> dict:
    b = cfg.get("bus") or {}
    return {"api_url": b.get("api_url"), "timeout": float(b.get("timeout", 2.5))}
