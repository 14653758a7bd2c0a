"""Session type detection from meeting titles.

Titles are matched against an ordered table of rules; the first rule that
fires decides the label. Keyword groups come first, then the rules that
depend on whether a client was matched, then the name-shape heuristics.

The keyword lists reflect one coaching practice's naming habits and are
expected to grow. Pass a custom table to ``SessionTypeClassifier`` rather
than editing the defaults in place.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence


class SessionType(str, Enum):
    INTERNAL_MEETING = "internal_meeting"
    STAFF_1ON1 = "staff_1on1"
    TRAINING = "training"
    SALES_CALL = "sales_call"
    PERSONAL_DEVELOPMENT = "personal_development"
    INTERVIEW_360 = "360_interview"
    OTHER_COACH_SESSION = "other_coach_session"
    CLIENT_COACHING = "client_coaching"
    UNMATCHED_CLIENT = "unmatched_client"
    NETWORKING = "networking"
    UNTAGGED = "untagged"


# Evaluated in insertion order
DEFAULT_KEYWORD_GROUPS: Dict[str, List[str]] = {
    SessionType.INTERNAL_MEETING.value: [
        r"\bio\b",
        r"\bco-creation\b",
        r"\be7\b",
        r"\boppty\s+review\b",
        r"\bcoach\s+ai\b",
        r"\bretro\b",
        r"\bstrategic\s+framework\b",
        r"\bstrategy\b",
        r"\bsixtwentysix\b",
        r"\binside-out\s+leadership\b",
        r"\bcollab\s+chat\b",
        r"\ball[\s\-]?hands\b",
        r"\bteam\s+meeting\b",
    ],
    SessionType.STAFF_1ON1.value: [
        r"\bjem\b",
        r"\bharry\s*-\s*ryan\b",
        r"\bscott\s*-\s*ryan\b",
        r"\bpranab\b",
        r"\bcatch[\s\-]?up\s+with\b",
    ],
    SessionType.TRAINING.value: [
        r"\bhakomi\b",
        r"\bfacilitator\s+training\b",
        r"\btraining\b",
        r"\bworkshop\b",
        r"\boffice\s+hours\b",
        r"\bpef\b",
    ],
    SessionType.SALES_CALL.value: [
        r"\bfit\s+call\b",
        r"\bcoach\s+matching\b",
        r"\bdiscovery\s+call\b",
        r"\bintro\s+call\b",
    ],
    SessionType.PERSONAL_DEVELOPMENT.value: [
        r"\bifs\b",
        r"\btherapy\b",
    ],
    SessionType.INTERVIEW_360.value: [
        r"\b360\b",
    ],
    SessionType.OTHER_COACH_SESSION.value: [
        r"\bandrea\s*-\s*jason\b",
    ],
}

DEFAULT_COACH_NAMES: List[str] = ["ryan"]

COACHING_WORDS = re.compile(
    r"\b(session|coaching|call|sync|weekly|biweekly|meeting|check[\s\-]?in|review)\b"
)

_NAME = r"[a-z][a-z'.\-]*"
_PERSON = rf"{_NAME}(?:\s+{_NAME}){{1,2}}"
TWO_PEOPLE = re.compile(rf"^{_PERSON}\s*(?:and|&|_)\s*{_PERSON}$")


@dataclass(frozen=True)
class SessionRule:
    """A label and the predicate that selects it.

    Predicates receive the lower-cased, stripped title and whether the
    transcript was matched to a client.
    """
    label: str
    predicate: Callable[[str, bool], bool]


def keyword_rule(label: str, patterns: Iterable[str]) -> SessionRule:
    compiled = [re.compile(p, re.IGNORECASE) for p in patterns]
    return SessionRule(label, lambda title, _: any(p.search(title) for p in compiled))


def adjacency_patterns(coach_names: Sequence[str]) -> List[re.Pattern]:
    """``<Name> - <Coach>``, ``<Name> & <Coach>`` and ``<Coach> - <Name>`` at the start of a title."""
    patterns: List[re.Pattern] = []
    for coach in coach_names:
        coach = re.escape(coach.lower())
        patterns.extend([
            re.compile(rf"^[a-z]+\s*-\s*{coach}\b"),
            re.compile(rf"^[a-z]+\s*&\s*{coach}\b"),
            re.compile(rf"^{coach}\s*-\s*[a-z]+"),
        ])
    return patterns


def build_rules(
    keyword_groups: Optional[Dict[str, List[str]]] = None,
    coach_names: Optional[Sequence[str]] = None,
) -> List[SessionRule]:
    """Assemble the full ordered rule table."""
    groups = DEFAULT_KEYWORD_GROUPS if keyword_groups is None else keyword_groups
    adjacency = adjacency_patterns(DEFAULT_COACH_NAMES if coach_names is None else coach_names)

    rules = [keyword_rule(label, patterns) for label, patterns in groups.items()]
    rules.extend([
        SessionRule(
            SessionType.CLIENT_COACHING.value,
            lambda title, has_client: has_client,
        ),
        SessionRule(
            SessionType.UNMATCHED_CLIENT.value,
            lambda title, _: title.startswith("copy of") or any(p.search(title) for p in adjacency),
        ),
        SessionRule(
            SessionType.NETWORKING.value,
            lambda title, _: bool(TWO_PEOPLE.match(title)) and not COACHING_WORDS.search(title),
        ),
    ])
    return rules


def first_match(
    rules: Sequence[SessionRule],
    title: str,
    has_client_match: bool,
    default: str = SessionType.UNTAGGED.value,
) -> str:
    """Label of the first rule whose predicate holds, else ``default``."""
    return next((rule.label for rule in rules if rule.predicate(title, has_client_match)), default)


class SessionTypeClassifier:
    """Maps a meeting title to a session type label."""

    def __init__(
        self,
        keyword_groups: Optional[Dict[str, List[str]]] = None,
        coach_names: Optional[Sequence[str]] = None,
    ):
        self.rules = build_rules(keyword_groups, coach_names)

    def classify(self, title: Optional[str], has_client_match: bool = False) -> str:
        normalized = title.strip().lower() if isinstance(title, str) else ""
        return first_match(self.rules, normalized, bool(has_client_match))


_default_classifier: Optional[SessionTypeClassifier] = None


def get_session_classifier() -> SessionTypeClassifier:
    """Get or create the default classifier."""
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = SessionTypeClassifier()
    return _default_classifier


def detect_session_type(title: Optional[str], has_client_match: bool = False) -> str:
    """Classify a title with the default rule table."""
    return get_session_classifier().classify(title, has_client_match)
