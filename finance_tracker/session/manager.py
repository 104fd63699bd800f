"""
Inactivity Session Manager

DESIGN DECISION: One cancellable asyncio task per session.
The task sleeps until the warning point, fires the warning callback
with the seconds left, sleeps out the rest and then fires the expiry
callback (which logs the user out). Any user activity cancels the task
and schedules a fresh one, so there is never more than one pending
timer.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from finance_tracker.config import get_settings


WarningCallback = Callable[[float], Awaitable[None]]
ExpiredCallback = Callable[[], Awaitable[None]]


class SessionManager:
    """
    Logs an idle user out after a period of inactivity.

    Must be started from inside a running event loop.
    """

    def __init__(
        self,
        on_expired: Optional[ExpiredCallback] = None,
        on_warning: Optional[WarningCallback] = None,
        timeout_seconds: Optional[float] = None,
        warning_seconds: Optional[float] = None,
    ):
        settings = get_settings().session
        self._timeout = (
            settings.timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self._warning = (
            settings.warning_seconds if warning_seconds is None else warning_seconds
        )
        if self._warning > self._timeout:
            raise ValueError("Warning period cannot be longer than the timeout")

        self._on_expired = on_expired
        self._on_warning = on_warning
        self._task: Optional[asyncio.Task] = None
        self._active = False
        self._logger = structlog.get_logger()

    @property
    def active(self) -> bool:
        return self._active

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def start(self) -> None:
        """Start (or restart) the inactivity timer."""
        self._active = True
        self._schedule()

    def touch(self) -> None:
        """Record user activity. Ignored when no session is running."""
        if self._active:
            self._schedule()

    def stop(self) -> None:
        """Cancel the timer without firing any callback."""
        self._active = False
        self._cancel()

    def _cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _schedule(self) -> None:
        self._cancel()
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        warn_after = self._timeout - self._warning
        await asyncio.sleep(warn_after)

        if self._on_warning is not None and self._warning > 0:
            await self._on_warning(self._warning)
        await asyncio.sleep(self._warning)

        # Detach before the callback so a logout inside it can call stop().
        self._active = False
        self._task = None
        self._logger.info("session_expired", timeout_seconds=self._timeout)
        if self._on_expired is not None:
            await self._on_expired()
