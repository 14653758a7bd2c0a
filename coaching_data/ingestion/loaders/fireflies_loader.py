from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any, Dict, List, Optional, Union

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from coaching_data.core.config import Credential, settings
from coaching_data.core.exceptions import ProviderError, ProviderRateLimitError
from coaching_data.schemas.transcript import RawTranscript

logger = logging.getLogger(__name__)

# Fireflies caps `transcripts(limit:)` at 50
MAX_PAGE_SIZE = 50

TRANSCRIPT_QUERY = """
query Transcript($transcriptId: String!) {
  transcript(id: $transcriptId) {
    id
    title
    date
    dateString
    duration
    host_email
    organizer_email
    participants
    transcript_url
    sentences {
      index
      speaker_id
      speaker_name
      text
      raw_text
      start_time
      end_time
    }
    speakers {
      id
      name
    }
    summary {
      keywords
      action_items
      outline
      shorthand_bullet
      overview
    }
    meeting_attendees {
      displayName
      email
      name
    }
  }
}
"""

LIST_TRANSCRIPTS_QUERY = """
query ListTranscripts($limit: Int!, $skip: Int!) {
  transcripts(limit: $limit, skip: $skip) {
    id
    title
    date
    organizer_email
  }
}
"""


class FirefliesLoader:
    """
    Low-level Fireflies GraphQL loader.

    Stateless with respect to credentials: every call names the API key it
    runs under, so one loader serves every configured account.
    """

    def __init__(self, base_url: Optional[str] = None) -> None:
        self.base_url = base_url or settings.FIREFLIES_BASE_URL
        self.timeout = httpx.Timeout(connect=5.0, read=30.0, write=10.0, pool=10.0)

        self.client = httpx.AsyncClient(
            timeout=self.timeout,
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )

    async def close(self) -> None:
        await self.client.aclose()

    @staticmethod
    def _headers(credential: Credential) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {credential.api_key}",
        }

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(ProviderRateLimitError),
        reraise=True,
    )
    async def _execute(
        self,
        query: str,
        credential: Credential,
        variables: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payload = {
            "query": query,
            "variables": variables or {},
        }

        try:
            response = await self.client.post(
                self.base_url,
                headers=self._headers(credential),
                json=payload,
            )
        except httpx.RequestError as e:
            raise ProviderError(f"Request to Fireflies failed: {e}") from e

        if response.status_code == 429:
            logger.warning(f"Fireflies rate limit hit for credential {credential.display_name}")
            raise ProviderRateLimitError(f"Rate limit exceeded: {response.text}")

        if response.status_code != 200:
            raise ProviderError(
                f"Fireflies API error (HTTP {response.status_code}): {response.text}",
                http_status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"Fireflies returned invalid JSON: {e}") from e

        if data.get("errors"):
            raise ProviderError(f"Fireflies GraphQL error: {data['errors']}")

        return data.get("data") or {}

    # -----------------------------
    # Connectivity / sanity check
    # -----------------------------

    async def test_connection(self, credential: Credential) -> Dict[str, Any]:
        query = """
        query TestConnection {
          user {
            user_id
            email
          }
        }
        """
        data = await self._execute(query, credential)
        return data.get("user") or {}

    # -----------------------------
    # Transcripts (LIST)
    # -----------------------------

    async def list_transcripts(
        self,
        credential: Credential,
        limit: int = MAX_PAGE_SIZE,
        skip: int = 0,
    ) -> List[Dict[str, Any]]:
        """
        List recent transcripts visible to ``credential``.

        Returns lightweight records: id, title, date and organizer_email.
        """
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        data = await self._execute(
            LIST_TRANSCRIPTS_QUERY,
            credential,
            {"limit": limit, "skip": skip},
        )

        transcripts = data.get("transcripts")
        if transcripts is None:
            raise ProviderError(f"No transcripts returned: {data}")

        return [
            {
                "id": t.get("id"),
                "title": t.get("title"),
                "date": t.get("date"),
                "organizer_email": t.get("organizer_email"),
            }
            for t in transcripts
            if t and t.get("id")
        ]

    # -----------------------------
    # Transcript detail
    # -----------------------------

    async def get_transcript(
        self,
        transcript_id: str,
        credential: Credential,
    ) -> RawTranscript:
        """Fetch a single transcript with sentences, speakers and attendees."""
        data = await self._execute(
            TRANSCRIPT_QUERY,
            credential,
            {"transcriptId": transcript_id},
        )

        transcript = data.get("transcript")
        if transcript is None:
            raise ProviderError(f"No transcript found for id={transcript_id}")

        return RawTranscript.model_validate(transcript)


def verify_webhook_signature(
    raw_body: Union[bytes, str],
    signature: Optional[str],
    secret: Optional[str],
) -> bool:
    """
    Check a Fireflies webhook signature.

    The signature is the hex HMAC-SHA256 of the raw request body, optionally
    prefixed with ``sha256=``. Returns False instead of raising on any
    missing or malformed input.
    """
    if not signature or not secret:
        return False

    try:
        body = raw_body.encode("utf-8") if isinstance(raw_body, str) else bytes(raw_body)
        provided = signature.strip()
        if provided.lower().startswith("sha256="):
            provided = provided[len("sha256="):]

        expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return hmac.compare_digest(provided.lower().encode("ascii"), expected.encode("ascii"))
    except (TypeError, ValueError, UnicodeError) as e:
        logger.warning(f"Malformed webhook signature: {e}")
        return False
