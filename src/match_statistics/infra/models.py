# Directory: src/match_statistics/infra/models.py
from sqlalchemy import Column, String, Integer, ForeignKey
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class MatchStatisticsModel(Base):
    """
    One row per match: the running totals the statistics reader serves.
    """
    __tablename__ = 'match_statistics'

    match_id = Column(String, primary_key=True)
    team = Column(String, nullable=True)
    opponent = Column(String, nullable=True)
    total_goals = Column(Integer, nullable=False, default=0)

    applied_events = relationship(
        "AppliedEventModel",
        back_populates="statistics",
        lazy='selectin',
        cascade="all, delete-orphan"
    )

    def __repr__(self):
        return (f"<MatchStatisticsModel(match_id='{self.match_id}', "
                f"total_goals={self.total_goals})>")


class AppliedEventModel(Base):
    """
    The applied-ids set of a match, one row per merged event record.
    The composite primary key is what rejects a redelivered event.
    """
    __tablename__ = 'applied_events'

    match_id = Column(String, ForeignKey('match_statistics.match_id'), primary_key=True)
    event_id = Column(String, primary_key=True)

    statistics = relationship("MatchStatisticsModel", back_populates="applied_events")

    def __repr__(self):
        return f"<AppliedEventModel(match_id='{self.match_id}', event_id='{self.event_id}')>"
