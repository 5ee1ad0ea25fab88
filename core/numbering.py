"""
Document number sequencing.

Numbers look like PREFIX-#### (EST-1150, INV-0007). The next number is one
past the highest numeric suffix already issued, but never below the
configured floor. The floor lets an operator skip past legacy numbers
without seeding placeholder rows.
"""

import logging
import re

from core.store.base import BillingStore, DocumentKind

logger = logging.getLogger(__name__)

_MIN_DIGITS = 4


def parse_document_number(number: str | None, prefix: str) -> int | None:
    """
    Numeric suffix of a PREFIX-#### number.

    Returns None for other prefixes, missing suffixes and non-numeric suffixes.
    """
    if not number:
        return None
    match = re.fullmatch(rf"{re.escape(prefix)}-(\d+)", number.strip())
    if match is None:
        return None
    return int(match.group(1))


def format_document_number(prefix: str, sequence: int) -> str:
    return f"{prefix}-{sequence:0{_MIN_DIGITS}d}"


class DocumentNumberSequencer:
    """
    Issues the next number for a document kind.

    Must be called inside the store transaction that inserts the document:
    the store holds a per-prefix lock until that transaction ends, so two
    concurrent creations cannot read the same highest number.
    """

    def __init__(self, store: BillingStore):
        self.store = store

    def next(self, kind: DocumentKind, prefix: str, floor: int) -> str:
        """
        Next document number for a prefix.

        Args:
            kind: Which document table to scan
            prefix: Number prefix, e.g. "INV"
            floor: Lowest sequence number ever returned

        Returns:
            Formatted number, e.g. "INV-1151"
        """
        self.store.lock_numbering(prefix)
        highest = self.store.highest_number_suffix(kind, prefix)

        if highest is None:
            sequence = floor
        else:
            sequence = max(highest + 1, floor)

        number = format_document_number(prefix, sequence)
        logger.debug("Issued %s number %s (highest existing: %s)", kind.value, number, highest)
        return number
