import numpy as np
import pytest

from utils.bus import EventBus
from workers.errors import TransientFrameError


def gray_frame(value, width=128, height=72):
    # 3-channel so the BGR->gray path is exercised; uniform frames keep scores exact
    return np.full((height, width, 3), int(value), dtype=np.uint8)


class FakeClock:
    def __init__(self, start=1_700_000_000.0):
        self.now = float(start)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeSource:
    """Hands out queued frames; None means 'no frame yet', an exception is raised as-is."""

    def __init__(self, frames=None):
        self.frames = list(frames or [])
        self.started = 0
        self.stopped = 0
        self.alive = True

    def push(self, *frames):
        self.frames.extend(frames)

    def start(self):
        self.started += 1

    def poll(self):
        return self.alive

    def read(self):
        if not self.frames:
            return None
        item = self.frames.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def stop(self):
        self.stopped += 1


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, event, payload):
        self.events.append((event, payload))

    def named(self, name):
        return [p for e, p in self.events if e == name]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def recorder(bus):
    rec = Recorder()
    bus.subscribe("user-1", rec)
    return rec


@pytest.fixture
def sources():
    made = []

    def factory(monitor):
        src = FakeSource()
        made.append(src)
        return src

    factory.made = made
    return factory


@pytest.fixture
def corrupt():
    return TransientFrameError("half written")
