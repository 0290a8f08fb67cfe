from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional

from match_statistics.constants import (
    MATCH_ID_ATTR,
    TEAM_ATTR,
    OPPONENT_ATTR,
    TOTAL_GOALS_ATTR,
    APPLIED_IDS_ATTR,
)
from match_statistics.domain.records import EventRecord


class IncrementOutcome(Enum):
    APPLIED = 'applied'
    DUPLICATE = 'duplicate'     # the event id was already in the applied set
    MISSING = 'missing'         # no document for the match (yet)


@dataclass(frozen=True)
class MatchStatistics:
    """
    The aggregate document kept for a single match.

    team/opponent come from the first event merged for the match and are
    never re-validated. total_goals only ever grows, and always equals
    len(applied_ids): every increment adds the event id in the same write.
    """
    match_id: str
    team: Optional[str] = None
    opponent: Optional[str] = None
    total_goals: int = 0
    applied_ids: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def first_from(cls, record: EventRecord) -> 'MatchStatistics':
        """The document written when a match is seen for the first time."""
        return cls(
            match_id=record.match_id,
            team=record.team,
            opponent=record.opponent,
            total_goals=1,
            applied_ids=frozenset({record.id})
        )

    def has_applied(self, event_id: str) -> bool:
        return event_id in self.applied_ids

    def incremented(self, event_id: str) -> 'MatchStatistics':
        """Return the document as it looks after merging one more event."""
        return MatchStatistics(
            match_id=self.match_id,
            team=self.team,
            opponent=self.opponent,
            total_goals=self.total_goals + 1,
            applied_ids=self.applied_ids | {event_id}
        )

    def to_dict(self, include_applied_ids: bool = True) -> Dict:
        data = {
            MATCH_ID_ATTR: self.match_id,
            TEAM_ATTR: self.team,
            OPPONENT_ATTR: self.opponent,
            TOTAL_GOALS_ATTR: self.total_goals,
        }
        if include_applied_ids:
            data[APPLIED_IDS_ATTR] = sorted(self.applied_ids)
        return data

    @classmethod
    def from_dict(cls, data: Dict, key_name: str = MATCH_ID_ATTR) -> 'MatchStatistics':
        return cls(
            match_id=data[key_name],
            team=data.get(TEAM_ATTR),
            opponent=data.get(OPPONENT_ATTR),
            total_goals=int(data.get(TOTAL_GOALS_ATTR, 0)),
            applied_ids=frozenset(data.get(APPLIED_IDS_ATTR) or ())
        )

    def __repr__(self) -> str:
        return (f"MatchStatistics(match={self.match_id}, {self.team} vs {self.opponent}, "
                f"goals={self.total_goals})")
