"""Change detection between a package and its previous manifest."""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..models import FingerprintedEntry


class SyncAction(str, Enum):
    """Actions that can be taken for a package entry."""

    UPLOAD = "upload"
    """Upload entry to the destination"""

    SKIP = "skip"
    """Skip entry (content unchanged)"""


@dataclass
class SyncDecision:
    """Represents a decision about how to handle an entry."""

    action: SyncAction
    """Action to take"""

    reason: str
    """Human-readable reason for this decision"""

    entry: FingerprintedEntry
    """Entry the decision applies to"""

    previous_fingerprint: Optional[str] = None
    """Fingerprint recorded in the previous manifest (if any)"""


class EntryComparator:
    """Compares entries against a previous manifest."""

    def __init__(self, previous: Optional[Mapping[str, str]] = None):
        """Initialize entry comparator.

        Args:
            previous: Previous manifest; None or empty uploads every entry
        """
        self.previous = previous or {}

    def compare(self, entry: FingerprintedEntry) -> SyncDecision:
        """Decide whether an entry needs to be uploaded.

        Args:
            entry: Entry with its current fingerprint

        Returns:
            SyncDecision for this entry
        """
        previous = self.previous.get(entry.path)

        if previous is None:
            return SyncDecision(
                action=SyncAction.UPLOAD,
                reason="New entry",
                entry=entry,
            )

        if previous != entry.fingerprint:
            return SyncDecision(
                action=SyncAction.UPLOAD,
                reason="Content changed",
                entry=entry,
                previous_fingerprint=previous,
            )

        return SyncDecision(
            action=SyncAction.SKIP,
            reason="Unchanged",
            entry=entry,
            previous_fingerprint=previous,
        )


def stale_paths(previous: Mapping[str, str], current: Mapping[str, str]) -> list[str]:
    """Return paths of ``previous`` that are absent from ``current``.

    Paths are returned in the order of ``previous``.
    """
    return [path for path in previous if path not in current]
