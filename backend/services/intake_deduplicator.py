"""
Bank Correspondence Hub - Intake Deduplication

Guarantees at-most-once WorkItem creation per external message across
arbitrarily many repeated polls of the same upstream feed.

The deduplication window is the process-lifetime set of admitted ids, seeded
at startup from every known WorkItem id. Raw feed records are normalized here
as well, since the message id is derived from the payload.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Iterable, List

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

# Defaults for records with missing fields
DEFAULT_SUBJECT = "No Subject"
DEFAULT_BODY = "No content provided."
DEFAULT_SENDER = "webhook@external.source"
DEFAULT_BANK_NAME = "External Bank"


@dataclass
class IntakeMessage:
    """A normalized message ready for classification and dispatch."""
    id: str
    subject: str
    body: str
    sender: str
    bank_name: str
    received_at: datetime
    attachments: List[str] = field(default_factory=list)


class IntakeDeduplicator:
    """
    Tracks external message ids already admitted.

    should_accept() is a single check-and-record step guarded by a lock, so two
    concurrent intake calls can never both accept the same id.
    """

    def __init__(self, seen_ids: Optional[Iterable[str]] = None):
        self._seen = set(seen_ids or [])
        self._lock = threading.Lock()

    def should_accept(self, message_id: str) -> bool:
        """Return True exactly once per id; the id is recorded as seen on acceptance."""
        with self._lock:
            if message_id in self._seen:
                return False
            self._seen.add(message_id)
            return True

    def has_seen(self, message_id: str) -> bool:
        with self._lock:
            return message_id in self._seen

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)


# =============================================================================
# PAYLOAD NORMALIZATION
# =============================================================================

def _first_present(raw: Dict[str, Any], *keys: str):
    for key in keys:
        value = raw.get(key)
        if value:
            return value
    return None


def _parse_received_at(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif value:
        try:
            parsed = date_parser.parse(str(value))
        except (ValueError, OverflowError):
            logger.debug("Unparsable receivedAt %r, using current time", value)
            return datetime.now(timezone.utc)
    else:
        return datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def generate_message_id() -> str:
    return f"webhook-{uuid.uuid4().hex[:12]}"


def normalize_intake_payload(raw: Any) -> Optional[IntakeMessage]:
    """
    Normalize a raw feed record.

    Field fallbacks:
        id: id -> messageId -> generated
        subject: subject -> title -> "No Subject"
        body: body -> text -> content -> "No content provided."
        sender: sender -> from -> "webhook@external.source"
        bank_name: bankName -> bank -> "External Bank"

    Returns:
        IntakeMessage, or None when the record has neither subject nor body
        (or is not a mapping at all).
    """
    if not isinstance(raw, dict):
        return None

    subject = _first_present(raw, "subject", "title")
    body = _first_present(raw, "body", "text", "content")
    if not subject and not body:
        return None

    message_id = _first_present(raw, "id", "messageId")
    attachments = raw.get("attachments")

    return IntakeMessage(
        id=str(message_id) if message_id else generate_message_id(),
        subject=str(subject) if subject else DEFAULT_SUBJECT,
        body=str(body) if body else DEFAULT_BODY,
        sender=str(_first_present(raw, "sender", "from") or DEFAULT_SENDER),
        bank_name=str(_first_present(raw, "bankName", "bank") or DEFAULT_BANK_NAME),
        received_at=_parse_received_at(raw.get("receivedAt")),
        attachments=[str(a) for a in attachments] if isinstance(attachments, list) else [],
    )


def extract_records(data: Any) -> List[Any]:
    """A feed may return nothing, a single record, or an array of records."""
    if data is None:
        return []
    if isinstance(data, list):
        return data
    return [data]
