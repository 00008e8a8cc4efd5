# monitor-worker/utils/events.py
"""
Event contract between a Monitor and the user's channel.

Every builder returns a plain dict ready for JSON. Timestamps are epoch
floats on the way in and ISO-8601 UTC strings on the way out.
"""
from utils.timefmt import iso_utc

MONITOR_STATUS = "monitor_status"
MOVEMENT = "movement"
DETECTION = "detection"
SOS = "sos"

KIND_FALL = "fall"
KIND_MOTIONLESS = "motionless"

STATUS_STARTED = "started"
STATUS_STOPPED = "stopped"


def format_hours(hours) -> str:
    return "{:g}".format(float(hours))


def monitor_status(monitor_id: str, status: str) -> dict:
    return {"monitorId": monitor_id, "status": status}


def movement(camera: dict, ts, score: float) -> dict:
    return {"camera": camera, "timestamp": iso_utc(ts), "motionScore": round(float(score), 4)}


def detection(kind: str, camera: dict, ts, monitor_id: str, **extra) -> dict:
    # "type" mirrors "kind" for clients still reading the old key
    ev = {
        "kind": kind,
        "type": kind,
        "camera": camera,
        "timestamp": iso_utc(ts),
        "monitorId": monitor_id,
    }
    ev.update(extra)
    return ev


def sos(reason: str, camera: dict, ts) -> dict:
    return {"reason": reason, "camera": camera, "timestamp": iso_utc(ts)}


def motionless_reason(hours) -> str:
    return f"motionless_{format_hours(hours)}h"
