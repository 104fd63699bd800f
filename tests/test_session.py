"""Tests for the inactivity session manager."""

import asyncio

import pytest

from finance_tracker.session import SessionManager


class Recorder:
    """Collects callback invocations."""

    def __init__(self):
        self.warnings = []
        self.expired = 0

    async def on_warning(self, seconds_left):
        self.warnings.append(seconds_left)

    async def on_expired(self):
        self.expired += 1


def make_manager(recorder, timeout=0.3, warning=0.1):
    return SessionManager(
        on_expired=recorder.on_expired,
        on_warning=recorder.on_warning,
        timeout_seconds=timeout,
        warning_seconds=warning,
    )


class TestSessionManager:
    """Timer behaviour."""

    def test_warns_then_expires(self):
        recorder = Recorder()

        async def scenario():
            manager = make_manager(recorder)
            manager.start()
            assert manager.active
            await asyncio.sleep(0.25)
            assert recorder.warnings == [0.1]
            assert recorder.expired == 0
            await asyncio.sleep(0.2)
            assert recorder.expired == 1
            assert not manager.active

        asyncio.run(scenario())

    def test_activity_postpones_expiry(self):
        recorder = Recorder()

        async def scenario():
            manager = make_manager(recorder)
            manager.start()
            await asyncio.sleep(0.1)
            manager.touch()
            await asyncio.sleep(0.15)
            manager.touch()
            await asyncio.sleep(0.15)
            assert recorder.expired == 0
            await asyncio.sleep(0.25)
            assert recorder.expired == 1

        asyncio.run(scenario())

    def test_stop_cancels(self):
        recorder = Recorder()

        async def scenario():
            manager = make_manager(recorder, timeout=0.1, warning=0.05)
            manager.start()
            manager.stop()
            await asyncio.sleep(0.2)
            assert recorder.expired == 0
            assert recorder.warnings == []
            assert not manager.active

        asyncio.run(scenario())

    def test_touch_ignored_when_inactive(self):
        recorder = Recorder()

        async def scenario():
            manager = make_manager(recorder, timeout=0.05, warning=0.0)
            manager.touch()
            await asyncio.sleep(0.1)
            assert recorder.expired == 0
            assert not manager.active

        asyncio.run(scenario())

    def test_expiry_callback_may_stop(self):
        """A logout inside the expiry callback calls stop() on the manager."""
        async def scenario():
            calls = []

            async def on_expired():
                manager.stop()
                calls.append("expired")

            manager = SessionManager(
                on_expired=on_expired,
                timeout_seconds=0.05,
                warning_seconds=0.0,
            )
            manager.start()
            await asyncio.sleep(0.15)
            assert calls == ["expired"]

        asyncio.run(scenario())

    def test_warning_longer_than_timeout_rejected(self):
        with pytest.raises(ValueError):
            SessionManager(timeout_seconds=10, warning_seconds=20)

    def test_defaults_from_settings(self):
        manager = SessionManager()
        assert manager.timeout_seconds == 120
