"""Per-stage timing for the bootstrap sequence.

Enabled with PODBOOT_TIMING=1 or `podboot --time`; prints a summary
before the main application log is followed.
"""

import time
from contextlib import contextmanager


class StartupTimer:
    """Collects timing data for bootstrap stages."""

    def __init__(self, enabled: bool = False):
        self.enabled = enabled
        self.timings: list[tuple[str, float]] = []
        self.start_time: float = time.perf_counter()

    @contextmanager
    def phase(self, name: str):
        """Context manager for timing a stage. Failed stages are recorded too."""
        if not self.enabled:
            yield
            return

        phase_start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = (time.perf_counter() - phase_start) * 1000  # ms
            self.timings.append((name, elapsed))

    def summary(self) -> str:
        """Render the timing table, or an empty string when disabled."""
        if not self.enabled or not self.timings:
            return ""

        total_time = (time.perf_counter() - self.start_time) * 1000

        lines = [
            "=" * 60,
            "BOOTSTRAP TIMING SUMMARY",
            "=" * 60,
            f"{'Stage':<35} {'Time (ms)':>10} {'%':>6}",
            "-" * 60,
        ]
        for name, elapsed in self.timings:
            pct = (elapsed / total_time) * 100 if total_time > 0 else 0
            bar = "█" * int(pct / 5)
            lines.append(f"{name:<35} {elapsed:>10.1f} {pct:>5.1f}% {bar}")
        lines.append("-" * 60)
        lines.append(f"{'TOTAL':<35} {total_time:>10.1f}")
        lines.append("=" * 60)
        return "\n".join(lines)

    def print_summary(self) -> None:
        """Print timing summary."""
        text = self.summary()
        if text:
            print("\n" + text + "\n")
