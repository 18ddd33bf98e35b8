"""Tests for the replay/speed control state machine."""

import logging

from pushfeed.feed import Feed
from pushfeed.state import ReplayMode


class TestReplayControl:
    """Local state updates and the remote commands they send."""

    def test_replay(self, connected_feed, transport):
        """replay() updates state and sends the replay command."""
        connected_feed.replay(1000, 2)
        state = connected_feed.state
        assert (state.replay, state.clear, state.time, state.speed) == (True, False, 1000, 2)
        assert state.mode is ReplayMode.REPLAYING
        assert transport.messages("control") == [{"op": "replay", "args": [1000, 2]}]

    def test_replay_default_speed(self, connected_feed, transport):
        """Speed defaults to real time."""
        connected_feed.replay("2024-01-01T00:00:00Z")
        assert transport.messages("control") == [{"op": "replay", "args": [1704067200000, 1]}]

    def test_pause_and_speed(self, connected_feed, transport):
        """pause() is setSpeed(0)."""
        connected_feed.replay(1000)
        connected_feed.pause()
        assert connected_feed.state.mode is ReplayMode.PAUSED
        connected_feed.set_speed(4)
        assert connected_feed.state.mode is ReplayMode.REPLAYING
        assert transport.messages("control")[1:] == [
            {"op": "setSpeed", "args": [0]},
            {"op": "setSpeed", "args": [4]},
        ]

    def test_stop_and_clear_then_resume(self, connected_feed, transport):
        """stopAndClear and stopAndResume are sent and reflected in mode."""
        connected_feed.stop_and_clear()
        assert connected_feed.state.mode is ReplayMode.CLEARED
        connected_feed.stop_and_resume()
        assert connected_feed.state.mode is ReplayMode.LIVE
        assert transport.messages("control") == [
            {"op": "stopAndClear", "args": []},
            {"op": "stopAndResume", "args": []},
        ]

    def test_invalid_replay_time_ignored(self, connected_feed, transport, caplog):
        """An unparseable replay time changes nothing."""
        with caplog.at_level(logging.WARNING, logger="pushfeed"):
            connected_feed.replay("yesterday-ish")
        assert connected_feed.state.mode is ReplayMode.LIVE
        assert transport.messages("control") == []
        assert "invalid time" in caplog.text

    def test_observers_notified(self, connected_feed):
        """on_change and listeners receive each patch."""
        seen = []
        connected_feed.state.on_change = seen.append
        connected_feed.state.add_listener(lambda patch: seen.append(("listener", patch)))
        connected_feed.set_speed(3)
        patch = {"replay": True, "clear": False, "speed": 3}
        assert seen == [patch, ("listener", patch)]


class TestReconnectRestore:
    """Last intended control state is reissued after reconnect."""

    def test_initial_connect_sends_no_resume(self, feed, transport, scheduler):
        """The implicit live state is not announced on first connect."""
        feed.connect()
        scheduler.run_until_idle()
        assert transport.messages("control") == []
        assert transport.messages() == [{"reset": True}]

    def test_replay_reissued_before_reset(self, connected_feed, transport, scheduler):
        """A replay in progress is resent ahead of the subscription reset."""
        connected_feed.replay(1000, 2)
        transport.drop()
        transport.sent.clear()

        transport.go_online()
        scheduler.run_until_idle()
        assert transport.sent == [
            ("control", {"op": "replay", "args": [1000, 2]}),
            ("sub", {"reset": True}),
        ]

    def test_clear_reissued(self, connected_feed, transport, scheduler):
        """A cleared feed stays cleared after reconnect."""
        connected_feed.stop_and_clear()
        transport.drop()
        transport.sent.clear()
        transport.go_online()
        scheduler.run_until_idle()
        assert transport.messages("control") == [{"op": "stopAndClear", "args": []}]

    def test_resume_not_reissued(self, connected_feed, transport, scheduler):
        """After stopAndResume a reconnect sends no control command."""
        connected_feed.replay(1000)
        connected_feed.stop_and_resume()
        transport.drop()
        transport.sent.clear()
        transport.go_online()
        scheduler.run_until_idle()
        assert transport.messages("control") == []

    def test_control_while_offline_deferred(self, lazy_transport, scheduler):
        """Commands issued before the connection exists are sent on connect."""
        feed = Feed(lazy_transport, scheduler)
        feed.replay(5000, 1)
        assert lazy_transport.sent == []
        assert feed.state.mode is ReplayMode.REPLAYING

        lazy_transport.go_online()
        scheduler.run_until_idle()
        assert lazy_transport.messages("control") == [{"op": "replay", "args": [5000, 1]}]
