# backend/dateplanner/services/ranking.py
"""
Ranking collaborator for open-slot search.

Scoring who to show first is outside the scheduling core. The
orchestrator groups open slots per owner and asks a ranker to order
the groups; the default ranker puts the earliest availability first.
"""

from datetime import datetime
from typing import List, Protocol, Sequence

from ..schemas.availability import AvailableUserMatch


class AvailabilityRanker(Protocol):
    def rank(
        self, requester_user_id: str, matches: Sequence[AvailableUserMatch]
    ) -> List[AvailableUserMatch]:
        """Return matches ordered best first, optionally with score set."""
        ...


class EarliestAvailabilityRanker:
    """Orders owners by their first open slot, then by how many slots they offer."""

    def rank(
        self, requester_user_id: str, matches: Sequence[AvailableUserMatch]
    ) -> List[AvailableUserMatch]:
        def first_start(match: AvailableUserMatch) -> datetime:
            first = match.slots[0]
            return datetime.combine(first.slot_date, first.start_time)

        ordered = sorted(matches, key=lambda m: (first_start(m), -len(m.slots), m.user_id))
        return [
            match.model_copy(update={"score": float(len(ordered) - index)})
            for index, match in enumerate(ordered)
        ]
