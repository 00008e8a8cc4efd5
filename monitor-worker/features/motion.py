# monitor-worker/features/motion.py
from typing import Optional

import cv2
import numpy as np


def to_small_gray(frame: np.ndarray, width: int = 64, height: int = 36) -> np.ndarray:
    small = cv2.resize(frame, (width, height), interpolation=cv2.INTER_AREA)
    if small.ndim == 2:
        return small.astype(np.uint8, copy=False)
    if small.shape[2] == 4:
        return cv2.cvtColor(small, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(small, cv2.COLOR_BGR2GRAY)


def motion_score(prev_gray: np.ndarray, curr_gray: np.ndarray) -> float:
    """Mean absolute intensity change, normalized to [0, 1]."""
    if prev_gray.shape != curr_gray.shape:
        raise ValueError(f"frame shapes differ: {prev_gray.shape} vs {curr_gray.shape}")
    h, w = curr_gray.shape[:2]
    diff = cv2.absdiff(prev_gray, curr_gray)
    total = float(np.sum(diff, dtype=np.uint64))
    return total / (w * h * 255.0)


class MotionAnalyzer:
    def __init__(self, width=64, height=36):
        self.width = int(width)
        self.height = int(height)
        self.prev: Optional[np.ndarray] = None

    def step_frame(self, frame: np.ndarray) -> Optional[float]:
        # first frame only sets the baseline
        curr = to_small_gray(frame, self.width, self.height)
        prev, self.prev = self.prev, curr
        if prev is None:
            return None
        return motion_score(prev, curr)
