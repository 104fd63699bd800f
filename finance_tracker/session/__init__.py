"""Session inactivity handling."""

from finance_tracker.session.manager import SessionManager

__all__ = ["SessionManager"]
