"""
Visualization sessions: one domain and one playback controller each.
"""

from .manager import DEFAULT_DOMAINS, Session, SessionManager, normalize_domain, session_manager

__all__ = ["session_manager", "Session", "SessionManager", "DEFAULT_DOMAINS", "normalize_domain"]
