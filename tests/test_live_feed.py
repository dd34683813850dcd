"""
Tests for the change feed, subscriptions and follow_match.

Subscribers get the snapshot first, then changes in commit order, without
duplicates; a dropped subscription surfaces as FeedConnectionError.
"""
import threading

import pytest

from matchday.exceptions import FeedConnectionError, NotFoundError
from matchday.live_match import (
    ChangeFeed,
    EventKind,
    EventSelection,
    MatchChange,
    Score,
    TeamSide,
    follow_match,
)


def info(services, match_id, text):
    return services.updates.post_event(match_id, EventSelection(kind=EventKind.INFO, text=text))


# =============================================================================
# ChangeFeed
# =============================================================================

class TestChangeFeed:

    def test_lagging_channel_is_dropped(self, live_match):
        feed = ChangeFeed(queue_size=2)
        channel = feed.open_channel(live_match.id)

        for _ in range(3):
            feed.publish(MatchChange(match=live_match))

        with pytest.raises(FeedConnectionError):
            channel.get(timeout=0)
        assert feed.subscriber_count(live_match.id) == 0

    def test_listener_failure_does_not_block_delivery(self, live_match):
        feed = ChangeFeed()
        channel = feed.open_channel(live_match.id)
        seen = []

        def broken(change):
            raise RuntimeError("listener down")

        feed.add_listener(broken)
        feed.add_listener(seen.append)
        feed.publish(MatchChange(match=live_match))

        assert channel.get(timeout=0) is not None
        assert len(seen) == 1

    def test_shutdown_refuses_new_channels(self, live_match):
        feed = ChangeFeed()
        channel = feed.open_channel(live_match.id)
        feed.shutdown()

        assert channel.closed
        assert channel.get(timeout=0) is None
        with pytest.raises(FeedConnectionError):
            feed.open_channel(live_match.id)

    def test_other_matches_are_not_delivered(self, live_match):
        feed = ChangeFeed()
        channel = feed.open_channel(live_match.id + 1)
        feed.publish(MatchChange(match=live_match))

        assert channel.get(timeout=0) is None


# =============================================================================
# Subscriptions
# =============================================================================

class TestSubscription:

    def test_snapshot_first_then_changes_in_commit_order(self, services, live_match):
        with services.reader.subscribe(live_match.id) as subscription:
            initial = subscription.next(timeout=0)
            assert initial.match.version == live_match.version
            assert [e.kind for e in initial.events] == [EventKind.MATCH_START]

            info(services, live_match.id, "one")
            info(services, live_match.id, "two")

            first = subscription.next(timeout=1)
            second = subscription.next(timeout=1)

        assert first.latest_event.text == "one"
        assert [e.text for e in second.events] == ["two", "one", initial.events[0].text]
        assert second.match.version == live_match.version + 2

    def test_goal_updates_score_and_log_together(self, services, squad, live_match):
        with services.reader.subscribe(live_match.id) as subscription:
            subscription.next()
            services.updates.post_event(
                live_match.id,
                EventSelection(kind=EventKind.GOAL, team=TeamSide.HOME, scorer_id=squad["starters"][8].id),
            )
            snapshot = subscription.next(timeout=1)

        assert snapshot.match.score == Score(1, 0)
        assert snapshot.latest_event.kind is EventKind.GOAL
        assert snapshot.latest_event.score == Score(1, 0)

    def test_duplicate_delivery_is_ignored(self, services, live_match):
        with services.reader.subscribe(live_match.id) as subscription:
            subscription.next()
            result = info(services, live_match.id, "once")
            services.feed.publish(MatchChange(match=result.match, event=result.event))

            snapshot = subscription.next(timeout=1)
            assert subscription.next(timeout=0.05) is None

        assert [e.text for e in snapshot.events].count("once") == 1

    def test_next_times_out_with_none(self, services, live_match):
        with services.reader.subscribe(live_match.id) as subscription:
            subscription.next()
            assert subscription.next(timeout=0.01) is None

    def test_close_releases_channel(self, services, live_match):
        subscription = services.reader.subscribe(live_match.id)
        assert services.feed.subscriber_count(live_match.id) == 1

        subscription.close()

        assert services.feed.subscriber_count(live_match.id) == 0
        assert subscription.closed

    def test_disconnect_raises_connection_error(self, services, live_match):
        with services.reader.subscribe(live_match.id) as subscription:
            subscription.next()
            services.feed.disconnect(live_match.id, reason="network lost")

            with pytest.raises(FeedConnectionError):
                subscription.next(timeout=1)

    def test_deleting_match_ends_subscription(self, services, live_match):
        with services.reader.subscribe(live_match.id) as subscription:
            subscription.next()
            services.updates.delete_match(live_match.id)

            assert subscription.next(timeout=1) is None
            assert subscription.closed

        with pytest.raises(NotFoundError):
            services.reader.snapshot(live_match.id)

    def test_subscribe_to_unknown_match(self, services):
        with pytest.raises(NotFoundError):
            services.reader.subscribe(404)
        assert services.feed.subscriber_count() == 0

    def test_many_viewers_see_the_same_change(self, services, live_match):
        subscriptions = [services.reader.subscribe(live_match.id) for _ in range(5)]
        for subscription in subscriptions:
            subscription.next()

        info(services, live_match.id, "for everyone")

        texts = [s.next(timeout=1).latest_event.text for s in subscriptions]
        for subscription in subscriptions:
            subscription.close()
        assert texts == ["for everyone"] * 5

    def test_change_from_another_thread_wakes_viewer(self, services, live_match):
        with services.reader.subscribe(live_match.id) as subscription:
            subscription.next()
            writer = threading.Timer(0.05, info, args=(services, live_match.id, "from the stands"))
            writer.start()
            snapshot = subscription.next(timeout=2)
            writer.join()

        assert snapshot.latest_event.text == "from the stands"


# =============================================================================
# follow_match
# =============================================================================

class TestFollowMatch:

    def test_yields_snapshot_then_heartbeats(self, services, live_match):
        frames = follow_match(services.reader, live_match.id, heartbeat_seconds=0.01, max_attempts=2)

        initial = next(frames)
        heartbeat = next(frames)
        frames.close()

        assert initial.match.id == live_match.id
        assert heartbeat is None
        assert services.feed.subscriber_count(live_match.id) == 0

    def test_resubscribes_after_drop(self, services, live_match):
        frames = follow_match(services.reader, live_match.id, heartbeat_seconds=0.01, max_attempts=3)
        next(frames)

        services.feed.disconnect(live_match.id)
        info(services, live_match.id, "after reconnect")

        snapshot = next(frames)
        frames.close()

        # A fresh snapshot after resubscribing already includes the change
        assert snapshot.latest_event.text == "after reconnect"

    def test_gives_up_after_repeated_drops(self, services, live_match):
        frames = follow_match(services.reader, live_match.id, heartbeat_seconds=0.01, max_attempts=2)
        next(frames)
        services.feed.disconnect(live_match.id)
        next(frames)
        services.feed.disconnect(live_match.id)

        with pytest.raises(FeedConnectionError):
            next(frames)

    def test_ends_when_match_deleted(self, services, live_match):
        frames = follow_match(services.reader, live_match.id, heartbeat_seconds=0.01, max_attempts=2)
        next(frames)
        services.updates.delete_match(live_match.id)

        remaining = list(frames)
        assert all(frame is None for frame in remaining)
