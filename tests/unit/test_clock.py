"""Test WallClock and SimClock."""

from datetime import datetime, timedelta, timezone

import pytest

from swarm_oracle.core.clock import SimClock, WallClock


class TestWallClock:
    def test_now_returns_utc(self):
        now = WallClock().now()
        assert now.tzinfo == timezone.utc

    def test_now_is_recent(self):
        diff = abs((datetime.now(timezone.utc) - WallClock().now()).total_seconds())
        assert diff < 1.0


class TestSimClock:
    def test_default_start(self):
        assert SimClock().now() == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_set_time_cannot_go_backwards(self, sim_clock):
        earlier = sim_clock.now() - timedelta(seconds=1)
        with pytest.raises(ValueError, match="cannot go backwards"):
            sim_clock.set_time(earlier)

    def test_set_time_same_time_ok(self, sim_clock):
        same = sim_clock.now()
        sim_clock.set_time(same)
        assert sim_clock.now() == same

    def test_advance_accumulates(self, sim_clock):
        start = sim_clock.now()
        sim_clock.advance(1)
        sim_clock.advance(2.5)
        assert (sim_clock.now() - start).total_seconds() == pytest.approx(3.5)
