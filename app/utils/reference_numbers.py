"""Helpers for procurement reference numbers and mail subjects."""

import re
from enum import Enum
from typing import Optional


class DocumentKind(str, Enum):
    SOLICITATION = "solicitation"
    ORDER = "order"


_PLACEHOLDERS = {"N/A", "NA", "NONE", "UNKNOWN", "NULL"}
_VALID_NUMBER = re.compile(r"^[A-Z0-9][A-Z0-9\-_/\. ]*[A-Z0-9]$")
_EDGE_PUNCTUATION = re.compile(r"^[^A-Za-z0-9]+|[^A-Za-z0-9]+$")

_SOLICITATION_SUBJECT = re.compile(r"request\s+for\s+quote\s*(\d+)", re.IGNORECASE)
_ORDER_SUBJECT = re.compile(r"purchase\s+order\s*(\d+)", re.IGNORECASE)

ORDER_KEYWORDS = ("purchase order", "po", "award")
SOLICITATION_KEYWORDS = (
    "rfq",
    "request for quote",
    "quotation",
    "quote request",
    "rfp",
    "solicitation",
    "bid",
)

NON_ORDER_ATTACHMENT_MARKERS = (
    "packinglist",
    "packing_list",
    "packing-list",
    "shipping",
    "invoice",
    "receipt",
    "confirmation",
)


def normalize_solicitation_number(value: Optional[str]) -> Optional[str]:
    """Normalize an extracted solicitation number for exact matching.

    Args:
        value: Raw reference as extracted from a document

    Returns:
        Upper-cased reference without edge punctuation, or None when the value
        is empty, a placeholder, or not shaped like a reference number
    """
    if not value:
        return None

    normalized = _EDGE_PUNCTUATION.sub("", value.strip()).upper()
    normalized = re.sub(r"\s+", " ", normalized)

    if normalized in _PLACEHOLDERS:
        return None
    if len(normalized) < 3 or len(normalized) > 100:
        return None
    if not any(ch.isdigit() for ch in normalized):
        return None
    if not _VALID_NUMBER.match(normalized):
        return None
    return normalized


def detect_document_kind(subject: Optional[str]) -> Optional[DocumentKind]:
    """Classify a mail subject as a solicitation or an order.

    Explicit ``Request For Quote <n>`` / ``Purchase Order <n>`` patterns win;
    otherwise keywords decide, order keywords first.
    """
    if not subject:
        return None

    if _SOLICITATION_SUBJECT.search(subject):
        return DocumentKind.SOLICITATION
    if _ORDER_SUBJECT.search(subject):
        return DocumentKind.ORDER

    lowered = subject.lower()
    words = set(re.findall(r"[a-z0-9]+", lowered))
    for keyword in ORDER_KEYWORDS:
        if (" " in keyword and keyword in lowered) or keyword in words:
            return DocumentKind.ORDER
    for keyword in SOLICITATION_KEYWORDS:
        if (" " in keyword and keyword in lowered) or keyword in words:
            return DocumentKind.SOLICITATION
    return None


def subject_reference(subject: Optional[str]) -> Optional[str]:
    """Reference number carried in the subject line, if any."""
    if not subject:
        return None
    match = _SOLICITATION_SUBJECT.search(subject) or _ORDER_SUBJECT.search(subject)
    return match.group(1) if match else None


def is_main_order_document(file_name: str) -> bool:
    """True for an order PDF that is not a packing list, invoice or similar."""
    lowered = file_name.lower()
    if not lowered.endswith(".pdf"):
        return False
    return not any(marker in lowered for marker in NON_ORDER_ATTACHMENT_MARKERS)
