"""
Identity resolution: who does a transcript belong to?

Emails are tried in a fixed order (organizer, host, attendees) against the
coach and client directories. When no coach email is present the resolver
falls back to the matched client's primary coach, and then to the coach who
owns the Fireflies credential the transcript was fetched with.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional

from coaching_data.core.exceptions import NotFoundError
from coaching_data.database.models.directory import Coach, Client
from coaching_data.repositories.directory_repository import DirectoryRepository
from coaching_data.schemas.transcript import FormattedTranscript

logger = logging.getLogger(__name__)


class MatchedVia(str, Enum):
    """Which rule produced the coach."""
    EMAIL = "email"
    PRIMARY_COACH = "primary_coach"
    CREDENTIAL_OWNER = "credential_owner"
    EXPLICIT_OVERRIDE = "explicit_override"


@dataclass
class MatchResult:
    coach: Optional[Coach] = None
    client: Optional[Client] = None
    organization_id: Optional[str] = None
    unmatched_emails: List[str] = field(default_factory=list)
    other_client_emails: List[str] = field(default_factory=list)
    candidate_emails: List[str] = field(default_factory=list)
    matched_via: Optional[MatchedVia] = None

    @property
    def resolved(self) -> bool:
        return self.coach is not None

    @property
    def coach_id(self) -> Optional[str]:
        return self.coach.id if self.coach else None

    @property
    def client_id(self) -> Optional[str]:
        return self.client.id if self.client else None


def candidate_emails(
    organizer_email: Optional[str],
    host_email: Optional[str],
    attendee_emails: Iterable[Optional[str]] = (),
) -> List[str]:
    """Organizer, host, then attendees; lower-cased, blanks dropped, first occurrence kept."""
    seen = set()
    ordered: List[str] = []
    for email in [organizer_email, host_email, *attendee_emails]:
        if not email:
            continue
        normalized = email.strip().lower()
        if normalized and normalized not in seen:
            seen.add(normalized)
            ordered.append(normalized)
    return ordered


class IdentityResolver:
    """Maps transcript participants onto the coach / client directory."""

    def __init__(self, directory: DirectoryRepository):
        self.directory = directory

    async def resolve(
        self,
        transcript: FormattedTranscript,
        attendee_emails: Optional[Iterable[str]] = None,
        fallback_coach_id: Optional[str] = None,
    ) -> MatchResult:
        """
        Best-effort ownership for a transcript.

        Args:
            transcript: Formatted transcript (organizer / host / attendees)
            attendee_emails: Overrides the transcript's own attendee list
            fallback_coach_id: Coach attributed to the fetching credential

        Only the first client email is linked. Emails of further known
        clients go to ``other_client_emails``, not ``unmatched_emails``, so
        they are never reported as unknown participants.

        Returns:
            MatchResult; ``resolved`` is False when no coach could be found
        """
        attendees = transcript.attendee_emails if attendee_emails is None else list(attendee_emails)
        result = MatchResult(
            candidate_emails=candidate_emails(
                transcript.organizer_email,
                transcript.host_email,
                attendees,
            )
        )

        for email in result.candidate_emails:
            coach = await self.directory.find_coach_by_email(email)
            if coach is not None:
                if result.coach is None:
                    result.coach = coach
                    result.matched_via = MatchedVia.EMAIL
                continue

            client = await self.directory.find_client_by_email(email)
            if client is not None:
                if result.client is None:
                    result.client = client
                    result.organization_id = client.client_organization_id
                else:
                    result.other_client_emails.append(email)
                continue

            result.unmatched_emails.append(email)

        if result.coach is None and result.client is not None and result.client.primary_coach_id:
            coach = await self.directory.find_coach_by_id(result.client.primary_coach_id)
            if coach is not None:
                result.coach = coach
                result.matched_via = MatchedVia.PRIMARY_COACH
            else:
                logger.warning(
                    f"Client {result.client.id} points at missing primary coach "
                    f"{result.client.primary_coach_id}"
                )

        if result.coach is None and fallback_coach_id:
            coach = await self.directory.find_coach_by_id(fallback_coach_id)
            if coach is not None:
                result.coach = coach
                result.matched_via = MatchedVia.CREDENTIAL_OWNER
            else:
                logger.warning(f"Credential owner coach {fallback_coach_id} not found in directory")

        logger.info(
            f"Resolved {transcript.external_id}: coach={result.coach_id} client={result.client_id} "
            f"via={result.matched_via.value if result.matched_via else None} "
            f"unmatched={len(result.unmatched_emails)}"
        )
        return result

    async def explicit(
        self,
        coach_id: str,
        client_id: Optional[str] = None,
        candidates: Iterable[str] = (),
        unmatched: Iterable[str] = (),
    ) -> MatchResult:
        """
        Operator-supplied ownership. Always wins over automatic resolution.

        Raises:
            NotFoundError: coach or client id does not exist
        """
        coach = await self.directory.find_coach_by_id(coach_id)
        if coach is None:
            raise NotFoundError("Coach", coach_id)

        client = None
        if client_id:
            client = await self.directory.find_client_by_id(client_id)
            if client is None:
                raise NotFoundError("Client", client_id)

        return MatchResult(
            coach=coach,
            client=client,
            organization_id=client.client_organization_id if client else None,
            unmatched_emails=list(unmatched),
            candidate_emails=list(candidates),
            matched_via=MatchedVia.EXPLICIT_OVERRIDE,
        )
