import logging
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.orm import Session

from match_statistics.domain.aggregates.match_statistics import MatchStatistics, IncrementOutcome
from match_statistics.domain.errors import (
    AggregateExistsError,
    PermanentStoreError,
    TransientStoreError,
)
from match_statistics.infra.models import AppliedEventModel, MatchStatisticsModel
from match_statistics.infra.repo.aggregate_store.base import AggregateStore


logger = logging.getLogger(__name__)


class SQLAggregateStore(AggregateStore):
    def __init__(self, session_factory: callable):
        """
        session_factory should be something like:
            session_factory = sessionmaker(bind=engine)
        so we can create new Sessions on demand. Every operation runs in its own
        session and transaction.
        """
        self.session_factory = session_factory

    def get(self, match_id: str) -> Optional[MatchStatistics]:
        session: Session = self.session_factory()
        try:
            row = session.get(MatchStatisticsModel, match_id)
            if row is None:
                return None
            return self._to_statistics(row)
        except SQLAlchemyError as e:
            raise self._translate(e, 'get', match_id) from e
        finally:
            session.close()

    def create(self, statistics: MatchStatistics) -> None:
        session: Session = self.session_factory()
        try:
            session.add(MatchStatisticsModel(
                match_id=statistics.match_id,
                team=statistics.team,
                opponent=statistics.opponent,
                total_goals=statistics.total_goals,
                applied_events=[
                    AppliedEventModel(match_id=statistics.match_id, event_id=event_id)
                    for event_id in sorted(statistics.applied_ids)
                ]
            ))
            session.commit()
        except IntegrityError as e:
            # primary key taken: someone else created the row first
            session.rollback()
            raise AggregateExistsError(statistics.match_id) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise self._translate(e, 'create', statistics.match_id) from e
        finally:
            session.close()

    def increment(self, match_id: str, event_id: str) -> IncrementOutcome:
        """
        Bump the counter with a single UPDATE and record the event id in the same
        transaction. A duplicate event id fails the insert and rolls the bump back.
        """
        session: Session = self.session_factory()
        try:
            result = session.execute(
                update(MatchStatisticsModel)
                .where(MatchStatisticsModel.match_id == match_id)
                .values(total_goals=MatchStatisticsModel.total_goals + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                session.rollback()
                return IncrementOutcome.MISSING

            session.add(AppliedEventModel(match_id=match_id, event_id=event_id))
            session.commit()
            return IncrementOutcome.APPLIED
        except IntegrityError:
            session.rollback()
            logger.debug(f"Event {event_id} already applied to match {match_id}")
            return IncrementOutcome.DUPLICATE
        except SQLAlchemyError as e:
            session.rollback()
            raise self._translate(e, 'increment', match_id) from e
        finally:
            session.close()

    # -------------- Internal helpers --------------

    def _to_statistics(self, row: MatchStatisticsModel) -> MatchStatistics:
        return MatchStatistics(
            match_id=row.match_id,
            team=row.team,
            opponent=row.opponent,
            total_goals=row.total_goals,
            applied_ids=frozenset(applied.event_id for applied in row.applied_events)
        )

    def _translate(self, error: SQLAlchemyError, operation: str, match_id: str):
        message = f"SQL {operation} for match {match_id} failed: {error}"
        if isinstance(error, (OperationalError, PoolTimeoutError, DisconnectionError)):
            return TransientStoreError(message)
        if isinstance(error, DBAPIError) and error.connection_invalidated:
            return TransientStoreError(message)
        return PermanentStoreError(message)
