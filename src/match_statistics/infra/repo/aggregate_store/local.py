import os
import json
import threading
from typing import Dict, Optional

from match_statistics.domain.aggregates.match_statistics import MatchStatistics, IncrementOutcome
from match_statistics.domain.errors import AggregateExistsError
from match_statistics.infra.repo.aggregate_store.base import AggregateStore


class LocalAggregateStore(AggregateStore):
    """
    An in-memory aggregate store that can also persist to a local JSON file.
    A single lock stands in for the atomicity a real store gives each write;
    it is held only for the duration of one operation.

    Format on disk:
    {
      "match-123": {"matchId": "match-123", "team": "...", "opponent": "...",
                    "totalGoals": 2, "appliedIds": ["e1", "e2"]},
      ...
    }
    """
    def __init__(self, filename: Optional[str] = None):
        self.filename = filename
        self._storage: Dict[str, MatchStatistics] = {}
        self._lock = threading.Lock()
        self._load_from_file()

    def get(self, match_id: str) -> Optional[MatchStatistics]:
        with self._lock:
            return self._storage.get(match_id)

    def create(self, statistics: MatchStatistics) -> None:
        with self._lock:
            if statistics.match_id in self._storage:
                raise AggregateExistsError(statistics.match_id)
            self._put(statistics)

    def increment(self, match_id: str, event_id: str) -> IncrementOutcome:
        with self._lock:
            existing = self._storage.get(match_id)
            if existing is None:
                return IncrementOutcome.MISSING
            if existing.has_applied(event_id):
                return IncrementOutcome.DUPLICATE
            self._put(existing.incremented(event_id))
            return IncrementOutcome.APPLIED

    def all(self) -> Dict[str, MatchStatistics]:
        with self._lock:
            return dict(self._storage)

    # ------------- Internal JSON handling -------------
    def _load_from_file(self):
        if not self.filename or not os.path.exists(self.filename):
            self._storage = {}
            return
        with open(self.filename, "r", encoding="utf-8") as f:
            raw = json.load(f)
        self._storage = {
            match_id: MatchStatistics.from_dict(doc) for match_id, doc in raw.items()
        }

    def _put(self, statistics: MatchStatistics):
        # caller holds the lock; memory only changes once the file is written
        updated = dict(self._storage)
        updated[statistics.match_id] = statistics
        self._save_to_file(updated)
        self._storage = updated

    def _save_to_file(self, storage: Dict[str, MatchStatistics]):
        if not self.filename:
            return
        tmp_name = f"{self.filename}.tmp"
        with open(tmp_name, "w", encoding="utf-8") as f:
            json.dump(
                {match_id: doc.to_dict() for match_id, doc in storage.items()},
                f,
                indent=2
            )
        os.replace(tmp_name, self.filename)
