"""
Interface throughput from byte-counter deltas, smoothed with an EMA.
"""

from dataclasses import dataclass

EMA_ALPHA = 0.4


@dataclass
class _Sample:
    rx_bytes: int
    tx_bytes: int
    timestamp: float
    rx_rate: float = 0.0
    tx_rate: float = 0.0


class RateTracker:
    """
    rate = max(0, Δbytes / Δt); smoothed = α·rate + (1-α)·previous_smoothed.
    The first sample of an interface reports 0.
    """

    def __init__(self, alpha: float = EMA_ALPHA):
        self.alpha = alpha
        self._samples: dict[str, _Sample] = {}

    def update(self, name: str, rx_bytes: int, tx_bytes: int, timestamp: float) -> tuple[float, float]:
        previous = self._samples.get(name)
        rx_rate = tx_rate = 0.0

        if previous is not None:
            elapsed = timestamp - previous.timestamp
            if elapsed > 0:
                raw_rx = max(0.0, (rx_bytes - previous.rx_bytes) / elapsed)
                raw_tx = max(0.0, (tx_bytes - previous.tx_bytes) / elapsed)
                rx_rate = self.alpha * raw_rx + (1 - self.alpha) * previous.rx_rate
                tx_rate = self.alpha * raw_tx + (1 - self.alpha) * previous.tx_rate
            else:
                rx_rate, tx_rate = previous.rx_rate, previous.tx_rate

        self._samples[name] = _Sample(rx_bytes, tx_bytes, timestamp, rx_rate, tx_rate)
        return rx_rate, tx_rate

    def retain(self, names) -> None:
        """Drop history for interfaces no longer present (removed, renamed)."""
        keep = set(names)
        for name in list(self._samples):
            if name not in keep:
                del self._samples[name]

    def __len__(self) -> int:
        return len(self._samples)
