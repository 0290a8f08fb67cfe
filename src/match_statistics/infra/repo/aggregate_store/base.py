from typing import Optional

from match_statistics.domain.aggregates.match_statistics import MatchStatistics, IncrementOutcome


class AggregateStore:
    """
    Interface/base class for the store holding one MatchStatistics per match.

    Implementations must make create and increment atomic on the store side;
    callers never lock. Driver errors are translated into TransientStoreError
    or PermanentStoreError.
    """
    def get(self, match_id: str) -> Optional[MatchStatistics]:
        """Point lookup by match id. Returns None when absent."""
        raise NotImplementedError

    def create(self, statistics: MatchStatistics) -> None:
        """
        Write a brand-new document, only if none exists for the match.
        Raises AggregateExistsError when a document is already there.
        """
        raise NotImplementedError

    def increment(self, match_id: str, event_id: str) -> IncrementOutcome:
        """
        In one atomic write: add 1 to total goals and add event_id to the
        applied ids, only if the document exists and event_id isn't applied yet.
        """
        raise NotImplementedError
