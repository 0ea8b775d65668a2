"""Tests for typing and thinking presence."""

import asyncio

from chatdesk.presence import Party, PresenceState, PresenceTracker


class TestTyping:
    """Tests for typing flags and their expiry timers."""

    async def test_set_typing_reports_changes(self):
        tracker = PresenceTracker(typing_timeout=5.0)

        assert tracker.set_typing("s1", Party.VISITOR, True) is True
        assert tracker.set_typing("s1", Party.VISITOR, True) is False
        assert tracker.is_typing("s1", Party.VISITOR) is True
        assert tracker.set_typing("s1", Party.VISITOR, False) is True
        assert tracker.set_typing("s1", Party.VISITOR, False) is False
        tracker.close()

    async def test_parties_are_independent(self):
        tracker = PresenceTracker(typing_timeout=5.0)
        tracker.set_typing("s1", Party.VISITOR, True)

        assert tracker.is_typing("s1", Party.OPERATOR) is False
        assert tracker.is_typing("s2", Party.VISITOR) is False
        tracker.close()

    async def test_typing_expires(self):
        expired = []
        tracker = PresenceTracker(typing_timeout=0.05, on_expire=lambda *key: expired.append(key))

        tracker.set_typing("s1", Party.VISITOR, True)
        await asyncio.sleep(0.15)

        assert tracker.is_typing("s1", Party.VISITOR) is False
        assert expired == [("s1", Party.VISITOR)]

    async def test_refresh_restarts_window(self):
        """A refreshed flag outlives the original window and expires once."""
        expired = []
        tracker = PresenceTracker(typing_timeout=0.2, on_expire=lambda *key: expired.append(key))

        tracker.set_typing("s1", Party.VISITOR, True)
        await asyncio.sleep(0.12)
        tracker.set_typing("s1", Party.VISITOR, True)
        await asyncio.sleep(0.12)

        assert tracker.is_typing("s1", Party.VISITOR) is True
        assert expired == []

        await asyncio.sleep(0.2)
        assert tracker.is_typing("s1", Party.VISITOR) is False
        assert expired == [("s1", Party.VISITOR)]

    async def test_explicit_stop_cancels_expiry(self):
        expired = []
        tracker = PresenceTracker(typing_timeout=0.05, on_expire=lambda *key: expired.append(key))

        tracker.set_typing("s1", Party.OPERATOR, True)
        tracker.set_typing("s1", Party.OPERATOR, False)
        await asyncio.sleep(0.1)

        assert expired == []

    async def test_callback_error_is_contained(self):
        def explode(session_id, party):
            raise RuntimeError("callback failed")

        tracker = PresenceTracker(typing_timeout=0.02, on_expire=explode)
        tracker.set_typing("s1", Party.VISITOR, True)
        await asyncio.sleep(0.08)

        assert tracker.is_typing("s1", Party.VISITOR) is False

    async def test_close_cancels_timers(self):
        expired = []
        tracker = PresenceTracker(typing_timeout=0.02, on_expire=lambda *key: expired.append(key))
        tracker.set_typing("s1", Party.VISITOR, True)

        tracker.close()
        await asyncio.sleep(0.05)

        assert expired == []
        assert tracker.is_typing("s1", Party.VISITOR) is False


class TestThinking:
    """Tests for the assistant thinking counter."""

    def test_thinking_counts_generations(self):
        """Thinking stays on until every outstanding generation has finished."""
        tracker = PresenceTracker()

        assert tracker.set_thinking("s1", True) is True
        assert tracker.set_thinking("s1", True) is False
        assert tracker.set_thinking("s1", False) is False
        assert tracker.is_thinking("s1") is True
        assert tracker.set_thinking("s1", False) is True
        assert tracker.is_thinking("s1") is False

    def test_extra_stop_is_ignored(self):
        tracker = PresenceTracker()

        assert tracker.set_thinking("s1", False) is False
        assert tracker.set_thinking("s1", True) is True

    async def test_snapshot(self):
        tracker = PresenceTracker(typing_timeout=5.0)
        tracker.set_typing("s1", Party.VISITOR, True)
        tracker.set_thinking("s1", True)

        assert tracker.snapshot("s1") == PresenceState(
            visitor_typing=True,
            operator_typing=False,
            assistant_thinking=True,
        )
        assert tracker.snapshot("s2") == PresenceState()
        tracker.close()
