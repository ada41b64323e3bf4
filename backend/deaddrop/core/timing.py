import time
from contextlib import contextmanager
from typing import Dict, Iterator


class Timings:
    """Accumulates per-backend durations for the Server-Timing header."""

    def __init__(self):
        self.durations: Dict[str, float] = {}

    @contextmanager
    def measure(self, label: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self.durations[label] = self.durations.get(label, 0.0) + elapsed_ms

    def header(self) -> str:
        return ", ".join(f"{label};dur={ms:.1f}" for label, ms in self.durations.items())
