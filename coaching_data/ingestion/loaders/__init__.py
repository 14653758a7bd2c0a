"""
Transcript loaders.

Supports:
- Fireflies meeting transcripts via the GraphQL API
- Fireflies webhook signature verification
"""

from coaching_data.ingestion.loaders.fireflies_loader import FirefliesLoader, verify_webhook_signature

__all__ = [
    "FirefliesLoader",
    "verify_webhook_signature",
]
