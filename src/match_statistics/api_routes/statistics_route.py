import logging
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from match_statistics.config.settings import AggregatorConfig
from match_statistics.domain.errors import AggregateNotFoundError, StoreError
from match_statistics.infra.repo.aggregate_store.factory import build_store
from match_statistics.services.queries.statistics_reader import StatisticsReader

logger = logging.getLogger(__name__)

router = APIRouter()


class MatchStatisticsResponse(BaseModel):
    matchId: str
    team: Optional[str] = None
    opponent: Optional[str] = None
    totalGoals: int


@lru_cache(maxsize=1)
def get_statistics_reader() -> StatisticsReader:
    return StatisticsReader(build_store(AggregatorConfig.from_env()))


@router.get("/matches/{match_id}/statistics", response_model=MatchStatisticsResponse)
def get_match_statistics(
    match_id: str,
    reader: StatisticsReader = Depends(get_statistics_reader)
) -> MatchStatisticsResponse:
    """
    Return the running totals for a match. The applied event ids are an
    internal bookkeeping detail and are not exposed.
    """
    try:
        statistics = reader.get(match_id)
    except AggregateNotFoundError:
        raise HTTPException(
            status_code=404,
            detail={
                "message": f"No statistics found for match {match_id}",
                "error_code": "STATISTICS_NOT_FOUND",
            }
        )
    except StoreError as e:
        logger.error(f"Error reading statistics for match {match_id}: {e}")
        raise HTTPException(
            status_code=503,
            detail=f"Failed to retrieve statistics: {str(e)}"
        )

    return MatchStatisticsResponse(**statistics.to_dict(include_applied_ids=False))
