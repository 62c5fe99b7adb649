"""Drawdown tracking — pure math, no I/O.

Tracks the equity high-water mark and the deepest peak-to-trough
decline seen so far.
"""


class DrawdownTracker:
    """Tracks equity peaks and computes drawdown metrics.

    Args:
        initial_equity: Starting account equity (the first peak).
    """

    def __init__(self, initial_equity: float) -> None:
        if initial_equity <= 0:
            raise ValueError(
                f"initial_equity must be positive, got {initial_equity}"
            )
        self._peak_equity: float = initial_equity
        self._current_equity: float = initial_equity
        self._max_drawdown: float = 0.0

    # ── Mutation ─────────────────────────────────────────────────────────

    def update(self, equity: float) -> None:
        """Record the latest equity value.

        A new high raises the peak; anything below it is measured as
        ``(peak - equity) / peak`` against the running maximum.
        """
        self._current_equity = equity
        if equity > self._peak_equity:
            self._peak_equity = equity
            return
        drawdown = (self._peak_equity - equity) / self._peak_equity
        if drawdown > self._max_drawdown:
            self._max_drawdown = drawdown

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def peak_equity(self) -> float:
        """Highest equity recorded."""
        return self._peak_equity

    @property
    def current_equity(self) -> float:
        """Most recently recorded equity."""
        return self._current_equity

    @property
    def drawdown(self) -> float:
        """Current drawdown as a fraction of peak equity."""
        return (self._peak_equity - self._current_equity) / self._peak_equity

    @property
    def max_drawdown(self) -> float:
        """Deepest drawdown recorded, as a fraction of the peak at the time."""
        return self._max_drawdown
