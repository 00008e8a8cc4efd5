from datetime import datetime, timezone

def iso_utc(ts=None):
    if isinstance(ts, (int, float)):
        return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00","Z")
    if isinstance(ts, str):
        return ts
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00","Z")
