# monitor-worker/workers/registry.py
import logging
import os
import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, List, Optional

from capture.ffmpeg_source import FfmpegFrameSource
from features.fall import FallTunables
from utils.bus import EventBus
from utils.settings import MonitorSettings, capture_settings, fall_tunables, monitor_settings
from workers.errors import InvalidInput, NotFound
from workers.monitor import CameraRef, Monitor, MonitorConfig

logger = logging.getLogger(__name__)

RETIRED_IDS_KEPT = 1024


def ffmpeg_source_factory(frames_dir: str, ffmpeg_exe: Optional[str] = None, fps: int = 1,
                          rtsp_transport: Optional[str] = "tcp", kill_timeout: float = 2.0):
    def make(monitor: Monitor) -> FfmpegFrameSource:
        return FfmpegFrameSource(
            url=monitor.camera.url,
            frame_path=os.path.join(frames_dir, f"monitor_{monitor.id}.jpg"),
            ffmpeg_exe=ffmpeg_exe,
            fps=fps,
            rtsp_transport=rtsp_transport,
            kill_timeout=kill_timeout,
        )
    return make


class MonitorRegistry:
    """
    monitorId -> Monitor. The dict is the only state shared between
    callers; the lock covers insert/remove/lookup only, never a monitor's
    own start/stop work.
    """

    def __init__(
        self,
        bus: EventBus,
        settings: Optional[MonitorSettings] = None,
        tunables: Optional[FallTunables] = None,
        source_factory: Optional[Callable[[Monitor], object]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.bus = bus
        self.settings = settings or MonitorSettings()
        self.tunables = tunables or FallTunables()
        self.source_factory = source_factory or ffmpeg_source_factory(**capture_settings({}))
        self.clock = clock
        self._monitors: Dict[str, Monitor] = {}
        self._retired: "OrderedDict[str, None]" = OrderedDict()
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, cfg: dict, bus: EventBus) -> "MonitorRegistry":
        return cls(
            bus,
            settings=monitor_settings(cfg),
            tunables=fall_tunables(cfg),
            source_factory=ffmpeg_source_factory(**capture_settings(cfg)),
        )

    def start(self, user_id: str, camera, fall_enabled=True, motionless_hours=0) -> str:
        if not user_id:
            raise InvalidInput("userId required")
        cam = CameraRef.from_value(camera)
        config = MonitorConfig.build(fall_enabled, motionless_hours)

        mon = Monitor(
            user_id=str(user_id),
            camera=cam,
            config=config,
            bus=self.bus,
            source_factory=self.source_factory,
            settings=self.settings,
            tunables=self.tunables,
            clock=self.clock,
        )
        # a failed start releases its own capture resource and is never registered
        mon.start()
        with self._lock:
            self._monitors[mon.id] = mon
        logger.info("[registry] %s started (%d active)", mon.id, len(self._monitors))
        return mon.id

    def get(self, monitor_id: str) -> Monitor:
        with self._lock:
            mon = self._monitors.get(monitor_id)
        if mon is None:
            raise NotFound(f"unknown monitorId: {monitor_id}")
        return mon

    def stop(self, monitor_id: str):
        with self._lock:
            mon = self._monitors.pop(monitor_id, None)
            if mon is None:
                if monitor_id in self._retired:
                    logger.debug("[registry] %s already stopped", monitor_id)
                    return
                raise NotFound(f"unknown monitorId: {monitor_id}")
            self._retired[monitor_id] = None
            while len(self._retired) > RETIRED_IDS_KEPT:
                self._retired.popitem(last=False)
        mon.stop()
        logger.info("[registry] %s stopped", monitor_id)

    def update(self, monitor_id: str, fall_enabled=None, motionless_hours=None):
        return self.get(monitor_id).update(fall_enabled, motionless_hours)

    def list(self) -> List[dict]:
        with self._lock:
            monitors = list(self._monitors.values())
        return [m.summary() for m in monitors]

    def __len__(self):
        with self._lock:
            return len(self._monitors)

    def stop_all(self):
        with self._lock:
            ids = list(self._monitors.keys())
        for mid in ids:
            try:
                self.stop(mid)
            except NotFound:
                pass
