"""Utility modules for the coaching data layer."""

from coaching_data.utils.session_type import (
    SessionType,
    SessionRule,
    SessionTypeClassifier,
    get_session_classifier,
    detect_session_type,
    DEFAULT_KEYWORD_GROUPS,
)

__all__ = [
    "SessionType",
    "SessionRule",
    "SessionTypeClassifier",
    "get_session_classifier",
    "detect_session_type",
    "DEFAULT_KEYWORD_GROUPS",
]
