"""Tests for EMA-smoothed interface rates."""

import pytest

from core.traffic import EMA_ALPHA, RateTracker


class TestRateTracker:
    def test_first_sample_is_zero(self) -> None:
        tracker = RateTracker()
        assert tracker.update("ether1", 1000, 2000, 10.0) == (0.0, 0.0)

    def test_smoothing(self) -> None:
        tracker = RateTracker()
        tracker.update("ether1", 0, 0, 0.0)

        rx, tx = tracker.update("ether1", 1000, 500, 1.0)
        assert rx == pytest.approx(EMA_ALPHA * 1000)
        assert tx == pytest.approx(EMA_ALPHA * 500)

        rx, _ = tracker.update("ether1", 2000, 1000, 2.0)
        assert rx == pytest.approx(0.4 * 1000 + 0.6 * 400)

    def test_counter_reset_never_goes_negative(self) -> None:
        tracker = RateTracker()
        tracker.update("ether1", 5000, 5000, 0.0)

        rx, tx = tracker.update("ether1", 100, 100, 1.0)

        assert rx == 0.0 and tx == 0.0

    def test_same_timestamp_keeps_previous_rate(self) -> None:
        tracker = RateTracker()
        tracker.update("ether1", 0, 0, 0.0)
        first = tracker.update("ether1", 1000, 1000, 1.0)

        assert tracker.update("ether1", 3000, 3000, 1.0) == first

    def test_interfaces_are_independent(self) -> None:
        tracker = RateTracker()
        tracker.update("ether1", 0, 0, 0.0)

        assert tracker.update("ether2", 1000, 1000, 1.0) == (0.0, 0.0)

    def test_retain_drops_missing_interfaces(self) -> None:
        tracker = RateTracker()
        tracker.update("ether1", 0, 0, 0.0)
        tracker.update("vlan10", 0, 0, 0.0)

        tracker.retain(["ether1"])

        assert len(tracker) == 1
        # vlan10 starts over if it comes back
        assert tracker.update("vlan10", 1000, 1000, 1.0) == (0.0, 0.0)
        assert tracker.update("ether1", 1000, 1000, 1.0) != (0.0, 0.0)
