"""Content fingerprints for duplicate event detection."""
import hashlib
import json
import logging
import re
from typing import Optional

from processor.models import EventCandidate

logger = logging.getLogger(__name__)

_PUNCTUATION = re.compile(r'[.,!?;:"\']')
_WHITESPACE = re.compile(r'\s+')


def canonicalize(text: Optional[str]) -> str:
    """
    Normalize text for consistent hashing.

    Lowercases, removes the punctuation marks . , ! ? ; : and straight
    quotes, collapses whitespace runs to a single space and trims.

    Args:
        text: Text to normalize, may be None

    Returns:
        Canonical form, empty string for None
    """
    if not text:
        return ''

    text = _PUNCTUATION.sub('', text.lower())
    return _WHITESPACE.sub(' ', text).strip()


def is_degenerate(candidate: EventCandidate) -> bool:
    """True when every identity field is empty after canonicalization."""
    return not any(canonicalize(value) for value in candidate.identity_fields())


def generate_fingerprint(candidate: EventCandidate) -> str:
    """
    Generate a SHA256 fingerprint from an event's identity fields.

    Args:
        candidate: Event whose title, date, time and location identify it

    Returns:
        64 character hexadecimal digest
    """
    title, date_phrase, time_phrase, location = candidate.identity_fields()
    normalized = {
        'title': canonicalize(title),
        'date': canonicalize(date_phrase),
        'time': canonicalize(time_phrase),
        'location': canonicalize(location),
    }

    composite = json.dumps(normalized, ensure_ascii=False, separators=(',', ':'))
    return hashlib.sha256(composite.encode('utf-8')).hexdigest()
