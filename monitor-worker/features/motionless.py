# monitor-worker/features/motionless.py
SECONDS_PER_HOUR = 3600.0


class MotionlessDetector:
    """Inactivity check: has the configured number of hours passed since the last movement?"""

    def elapsed_hours(self, last_movement: float, now: float) -> float:
        return max(0.0, now - last_movement) / SECONDS_PER_HOUR

    def is_due(self, last_movement: float, now: float, hours: float) -> bool:
        # hours <= 0 disables the check
        if not hours or hours <= 0:
            return False
        return self.elapsed_hours(last_movement, now) >= hours
