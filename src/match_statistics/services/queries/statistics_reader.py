from match_statistics.domain.aggregates.match_statistics import MatchStatistics
from match_statistics.domain.errors import AggregateNotFoundError
from match_statistics.infra.repo.aggregate_store.base import AggregateStore


class StatisticsReader:
    """
    Read side of the aggregate store. Totals are eventually consistent: a
    reader may briefly see fewer goals than will finally be counted, never more.
    """
    def __init__(self, store: AggregateStore):
        self.store = store

    def get(self, match_id: str) -> MatchStatistics:
        statistics = self.store.get(match_id)
        if statistics is None:
            raise AggregateNotFoundError(match_id)
        return statistics
