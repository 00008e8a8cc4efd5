from collections import deque
from typing import Deque, List

# Stores the most recent motion scores, oldest evicted first
class RingBuffer:
    def __init__(self, capacity: int = 10):
        self.capacity = max(1, int(capacity))
        self.buf: Deque[float] = deque(maxlen=self.capacity)

    def push(self, value: float):
        self.buf.append(float(value))

    def __len__(self):
        return len(self.buf)

    # return a copy (list) so readers on other threads never see it mutate
    def dump(self) -> List[float]:
        return list(self.buf)
