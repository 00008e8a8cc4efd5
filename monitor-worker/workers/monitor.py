# monitor-worker/workers/monitor.py
import enum
import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from features.fall import FallDetector, FallTunables
from features.motion import MotionAnalyzer
from features.motionless import MotionlessDetector
from utils import events
from utils.bus import EventBus
from utils.ringbuffer import RingBuffer
from utils.settings import MonitorSettings
from workers.errors import InvalidInput, TransientFrameError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CameraRef:
    name: str
    url: str

    @classmethod
    def from_value(cls, value) -> "CameraRef":
        if isinstance(value, CameraRef):
            cam = value
        elif isinstance(value, dict):
            cam = cls(name=str(value.get("name") or ""), url=str(value.get("url") or "").strip())
        else:
            raise InvalidInput("camera must be an object with name and url")
        if not cam.url:
            raise InvalidInput("camera.url required")
        return cam

    def to_dict(self) -> dict:
        return {"name": self.name, "url": self.url}


@dataclass(frozen=True)
class MonitorConfig:
    fall_enabled: bool = True
    motionless_hours: float = 0.0

    @classmethod
    def build(cls, fall_enabled=True, motionless_hours=0) -> "MonitorConfig":
        try:
            hours = float(motionless_hours or 0)
        except (TypeError, ValueError):
            raise InvalidInput(f"motionlessHours must be a number, got {motionless_hours!r}")
        if hours < 0:
            raise InvalidInput("motionlessHours must be >= 0")
        return cls(fall_enabled=bool(fall_enabled), motionless_hours=hours)


class MonitorState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class Monitor(threading.Thread):
    """
    One camera session. A single worker thread owns both schedules
    (frame sampling and the motionless check), so ticks never overlap.
    update()/summary() come from other threads and share the state lock.
    """

    def __init__(
        self,
        user_id: str,
        camera: CameraRef,
        config: MonitorConfig,
        bus: EventBus,
        source_factory: Callable[["Monitor"], object],
        settings: Optional[MonitorSettings] = None,
        tunables: Optional[FallTunables] = None,
        clock: Callable[[], float] = time.time,
        monitor_id: Optional[str] = None,
    ):
        super().__init__(daemon=True)
        self.id = monitor_id or str(uuid.uuid4())
        self.name = f"monitor-{self.id[:8]}"
        self.user_id = user_id
        self.camera = camera
        self.config = config
        self.bus = bus
        self.settings = settings or MonitorSettings()
        self.clock = clock

        self.state = MonitorState.IDLE
        self._state_lock = threading.RLock()
        self._stop_evt = threading.Event()

        self.analyzer = MotionAnalyzer(self.settings.frame_width, self.settings.frame_height)
        self.fall = FallDetector(tunables)
        self.motionless = MotionlessDetector()
        self.window = RingBuffer(self.settings.score_window)
        self.last_movement = self.clock()

        self.source = source_factory(self)

    # ---------- lifecycle ----------
    def start(self):
        with self._state_lock:
            if self.state is not MonitorState.IDLE:
                return
            self.state = MonitorState.RUNNING
        try:
            self.source.start()
            super().start()
        except Exception:
            with self._state_lock:
                self.state = MonitorState.STOPPED
                self._stop_evt.set()
            self._release()
            raise
        self.bus.publish(self.user_id, events.MONITOR_STATUS, events.monitor_status(self.id, events.STATUS_STARTED))
        logger.info("[monitor %s] started for %s", self.id, self.camera.url)

    def stop(self, join_timeout: float = 2.0) -> bool:
        """Returns False when the monitor was already stopped."""
        with self._state_lock:
            if self.state is MonitorState.STOPPED:
                return False
            was_running = self.state is MonitorState.RUNNING
            self.state = MonitorState.STOPPED
            self._stop_evt.set()
        self._release()
        if self.is_alive() and threading.current_thread() is not self:
            self.join(join_timeout)
        if was_running:
            self.bus.publish(self.user_id, events.MONITOR_STATUS, events.monitor_status(self.id, events.STATUS_STOPPED))
        logger.info("[monitor %s] stopped", self.id)
        return True

    def _release(self):
        try:
            self.source.stop()
        except Exception:
            logger.exception("[monitor %s] capture cleanup failed", self.id)

    def update(self, fall_enabled=None, motionless_hours=None) -> MonitorConfig:
        # omitted values keep their current setting
        with self._state_lock:
            current = self.config
            config = MonitorConfig.build(
                current.fall_enabled if fall_enabled is None else fall_enabled,
                current.motionless_hours if motionless_hours is None else motionless_hours,
            )
            if not config.fall_enabled:
                self.fall.reset()
            self.config = config
        logger.info("[monitor %s] config updated: fall=%s motionless_hours=%s",
                    self.id, config.fall_enabled, config.motionless_hours)
        return config

    def summary(self) -> dict:
        with self._state_lock:
            return {
                "monitorId": self.id,
                "userId": self.user_id,
                "camera": self.camera.to_dict(),
                "fallEnabled": self.config.fall_enabled,
                "motionlessHours": self.config.motionless_hours,
                "status": self.state.value,
                "recentScores": [round(s, 4) for s in self.window.dump()],
            }

    # ---------- worker loop ----------
    def run(self):
        sample_period = self.settings.sample_period
        check_period = self.settings.motionless_check_period
        next_sample = time.monotonic() + sample_period
        next_check = time.monotonic() + check_period

        while True:
            timeout = max(0.0, min(next_sample, next_check) - time.monotonic())
            if self._stop_evt.wait(timeout):
                break
            now = time.monotonic()
            if now >= next_sample:
                self._guarded(self.sample_tick)
                # a late tick runs once; missed periods are not replayed
                next_sample = max(next_sample + sample_period, time.monotonic())
            if now >= next_check:
                self._guarded(self.motionless_tick)
                next_check = max(next_check + check_period, time.monotonic())

    def _guarded(self, tick):
        try:
            tick()
        except Exception:
            logger.exception("[monitor %s] tick failed", self.id)

    def _flush(self, outbox):
        # outbox holds groups published together (detection + its sos)
        for group in outbox:
            if self._stop_evt.is_set():
                return
            for event, payload in group:
                self.bus.publish(self.user_id, event, payload)

    # ---------- ticks ----------
    def sample_tick(self) -> Optional[float]:
        """Read the latest frame, score it, and run the detectors. Returns the score."""
        if self._stop_evt.is_set():
            return None
        self.source.poll()
        try:
            frame = self.source.read()
        except TransientFrameError as e:
            logger.debug("[monitor %s] frame skipped: %s", self.id, e)
            return None
        if frame is None:
            return None

        with self._state_lock:
            if self._stop_evt.is_set():
                return None
            score = self.analyzer.step_frame(frame)
        if score is None:
            return None
        self.handle_score(score)
        return score

    def handle_score(self, score: float):
        now = self.clock()
        outbox = []
        with self._state_lock:
            if self._stop_evt.is_set():
                return
            self.window.push(score)
            logger.debug("[monitor %s] score %.4f", self.id, score)
            cam = self.camera.to_dict()

            if score > self.settings.movement_threshold:
                self.last_movement = now
                outbox.append([(events.MOVEMENT, events.movement(cam, now, score))])

            confirmed = self.fall.step(score, now) if self.config.fall_enabled else None
            if confirmed is not None:
                logger.warning("[monitor %s] fall detected (spike=%.3f)", self.id, confirmed.spike_score)
                outbox.append([
                    (events.DETECTION, events.detection(events.KIND_FALL, cam, now, self.id,
                                                        spikeScore=round(confirmed.spike_score, 4))),
                    (events.SOS, events.sos(events.KIND_FALL, cam, now)),
                ])
                # the stillness after a fall must not also count as inactivity
                self.last_movement = now
        self._flush(outbox)

    def motionless_tick(self) -> bool:
        """Returns True when an inactivity alert fired."""
        if self._stop_evt.is_set():
            return False
        now = self.clock()
        with self._state_lock:
            hours = self.config.motionless_hours
            if not self.motionless.is_due(self.last_movement, now, hours):
                return False
            cam = self.camera.to_dict()
            logger.warning("[monitor %s] no movement for %.2fh", self.id,
                           self.motionless.elapsed_hours(self.last_movement, now))
            alert = [
                (events.DETECTION, events.detection(events.KIND_MOTIONLESS, cam, now, self.id, hours=hours)),
                (events.SOS, events.sos(events.motionless_reason(hours), cam, now)),
            ]
            # next alert only after another full window
            self.last_movement = now
        self._flush([alert])
        return not self._stop_evt.is_set()
