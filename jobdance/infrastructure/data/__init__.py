"""
Data management infrastructure for interview sessions and profiles.
"""

from .conversations import ConversationRecord
from .session_store import SessionStore, EphemeralReportStore
from .profile_store import ProfileStore

__all__ = [
    'ConversationRecord',
    'SessionStore',
    'EphemeralReportStore',
    'ProfileStore',
]
