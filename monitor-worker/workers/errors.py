# monitor-worker/workers/errors.py


class MonitorError(Exception):
    pass


class InvalidInput(MonitorError, ValueError):
    pass


class NotFound(MonitorError, KeyError):
    def __str__(self):
        # KeyError would repr() the message
        return str(self.args[0]) if self.args else "not found"


class TransientFrameError(MonitorError):
    pass


class CaptureProcessFailure(MonitorError):
    pass
