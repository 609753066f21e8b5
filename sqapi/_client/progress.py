"""Progress reporters for export polling."""

from __future__ import annotations

from tqdm import tqdm


class TqdmProgressReporter:
    """Render export progress as a 0-100 tqdm bar.

    The bar is created lazily on the first report so that a job that
    completes immediately prints nothing but the final 100%.
    """

    def __init__(self, desc: str = "Export", *, leave: bool = True) -> None:
        """Store bar settings; no bar is drawn yet."""
        self._desc = desc
        self._leave = leave
        self._bar: tqdm | None = None

    def report(self, percent: float) -> None:
        """Move the bar to *percent* (clamped to 0-100)."""
        if self._bar is None:
            self._bar = tqdm(
                total=100,
                desc=self._desc,
                unit="%",
                leave=self._leave,
                bar_format="{l_bar}{bar}| {n:.1f}/{total}%",
            )
        self._bar.n = min(max(percent, 0.0), 100.0)
        self._bar.refresh()

    def close(self) -> None:
        """Close the bar if one was drawn."""
        if self._bar is not None:
            self._bar.close()
            self._bar = None


class NullProgressReporter:
    """Reporter that discards progress updates."""

    def report(self, percent: float) -> None:  # noqa: ARG002
        """Ignore the update."""

    def close(self) -> None:
        """Nothing to close."""
