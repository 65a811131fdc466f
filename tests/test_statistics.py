"""
tests/test_statistics.py

Pytest unit tests for progress counters, the statistics publisher and the
message channel they publish to.
"""

from __future__ import annotations

import asyncio

import pytest

from orderhistory.schemas.messages import Notification
from orderhistory.scraping.channel import LatestMessageChannel
from orderhistory.scraping.errors import ChannelClosedError
from orderhistory.scraping.statistics import StatisticName, Statistics, StatisticsPublisher


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


class TestStatistics:
    def test_all_counters_start_at_zero(self) -> None:
        assert Statistics().snapshot() == {name: 0 for name in StatisticName.ALL}

    def test_decrement_never_goes_negative(self) -> None:
        statistics = Statistics()
        statistics.decrement(StatisticName.RUNNING_COUNT)
        assert statistics.get(StatisticName.RUNNING_COUNT) == 0

    def test_clear_resets_counters(self) -> None:
        statistics = Statistics()
        statistics.increment(StatisticName.SUCCEEDED_COUNT)
        statistics.set(StatisticName.QUEUED_COUNT, 4)
        statistics.clear()
        assert set(statistics.snapshot().values()) == {0}

    def test_snapshot_is_a_copy(self) -> None:
        statistics = Statistics()
        snapshot = statistics.snapshot()
        statistics.increment(StatisticName.FAILED_COUNT)
        assert snapshot[StatisticName.FAILED_COUNT] == 0


class TestPublish:
    def test_publish_without_channel_is_a_no_op(self) -> None:
        assert Statistics().publish(None, "2024") is False

    def test_publish_to_closed_channel_is_a_no_op(self) -> None:
        channel = LatestMessageChannel()
        channel.close()
        assert Statistics().publish(channel, "2024") is False
        assert channel.messages() == []

    def test_publish_posts_snapshot_and_purpose(self) -> None:
        channel = LatestMessageChannel()
        statistics = Statistics()
        statistics.increment(StatisticName.CACHE_HIT_COUNT)

        assert statistics.publish(channel, "2023, 2024") is True

        message = channel.latest("statistics_update")
        assert message["purpose"] == "2023, 2024"
        assert message["statistics"][StatisticName.CACHE_HIT_COUNT] == 1


# ---------------------------------------------------------------------------
# StatisticsPublisher
# ---------------------------------------------------------------------------


class TestStatisticsPublisher:
    def test_interval_job_publishes_until_stopped(self) -> None:
        channel = LatestMessageChannel()
        publisher = StatisticsPublisher(
            statistics=Statistics(),
            purpose_supplier=lambda: "transactions",
            channel_supplier=lambda: channel,
            interval_seconds=0.1,
        )

        async def scenario() -> int:
            publisher.start()
            assert publisher.running
            await asyncio.sleep(0.45)
            publisher.stop()
            await asyncio.sleep(0)
            published = len(channel.messages(action="statistics_update"))
            await asyncio.sleep(0.25)
            assert len(channel.messages(action="statistics_update")) == published
            return published

        assert asyncio.run(scenario()) >= 1
        assert not publisher.running

    def test_start_twice_keeps_a_single_scheduler(self) -> None:
        publisher = StatisticsPublisher(
            statistics=Statistics(),
            purpose_supplier=lambda: "p",
            channel_supplier=lambda: None,
            interval_seconds=30,
        )

        async def scenario() -> None:
            publisher.start()
            first = publisher._scheduler
            publisher.start()
            assert publisher._scheduler is first
            assert len(first.get_jobs()) == 1
            publisher.stop()

        asyncio.run(scenario())

    def test_publish_now_uses_current_purpose(self) -> None:
        channel = LatestMessageChannel()
        purpose = {"value": "first"}
        publisher = StatisticsPublisher(
            statistics=Statistics(),
            purpose_supplier=lambda: purpose["value"],
            channel_supplier=lambda: channel,
        )
        purpose["value"] = "second"
        assert publisher.publish_now() is True
        assert channel.latest("statistics_update")["purpose"] == "second"


# ---------------------------------------------------------------------------
# LatestMessageChannel
# ---------------------------------------------------------------------------


class TestLatestMessageChannel:
    def test_latest_per_action_and_history(self) -> None:
        channel = LatestMessageChannel()
        channel.post(Notification(text="one"))
        channel.post(Notification(text="two"))

        assert channel.latest("notification") == {"action": "notification", "text": "two"}
        assert [item["text"] for item in channel.messages(action="notification")] == ["one", "two"]
        assert channel.latest("orders_ready") is None

    def test_history_is_bounded(self) -> None:
        channel = LatestMessageChannel(history_size=3)
        for index in range(5):
            channel.post(Notification(text=str(index)))
        assert [item["text"] for item in channel.messages()] == ["2", "3", "4"]

    def test_post_after_close_raises(self) -> None:
        channel = LatestMessageChannel()
        channel.close()
        assert channel.closed
        with pytest.raises(ChannelClosedError):
            channel.post(Notification(text="late"))
