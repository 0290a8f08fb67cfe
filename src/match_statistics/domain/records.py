from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional


@dataclass(frozen=True)
class Player:
    name: Optional[str] = None
    position: Optional[str] = None
    number: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            'name': self.name,
            'position': self.position,
            'number': self.number
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> Optional['Player']:
        """Raises TypeError/ValueError when data doesn't look like a player."""
        if data is None:
            return None
        if not isinstance(data, dict):
            raise TypeError(f"expected a mapping, got {type(data).__name__}")
        if not data:
            return None
        number = data.get('number')
        return cls(
            name=_text(data.get('name')),
            position=_text(data.get('position')),
            number=int(number) if number is not None else None
        )


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError(f"expected a string, got {type(value).__name__}")
    return value


def _typed_or_extra(data: Dict, key: str, convert: Callable, extra: Dict) -> Any:
    """Convert data[key]; a value that doesn't fit is kept untouched in extra."""
    value = data.get(key)
    if value is None:
        return None
    try:
        return convert(value)
    except (TypeError, ValueError):
        extra[key] = value
        return None


@dataclass(frozen=True)
class EventDetails:
    """
    Nested details of a match event. The aggregator only counts events,
    so none of these fields influence the statistics; they are kept so the
    record round-trips intact. Decoding never fails: anything that doesn't
    fit a typed field stays in extra as the producer sent it.
    """
    player: Optional[Player] = None
    goal_type: Optional[str] = None
    minute: Optional[int] = None
    assist: Optional[Player] = None
    video_url: Optional[str] = None
    # any keys the producer sends that we don't model
    extra: Dict[str, Any] = field(default_factory=dict)

    KNOWN_KEYS = ('player', 'goal_type', 'minute', 'assist', 'video_url')

    def to_dict(self) -> Dict:
        typed = {
            'player': self.player.to_dict() if self.player else None,
            'goal_type': self.goal_type,
            'minute': self.minute,
        }
        if self.assist:
            typed['assist'] = self.assist.to_dict()
        if self.video_url:
            typed['video_url'] = self.video_url

        data = dict(self.extra)
        for key, value in typed.items():
            if value is not None or key not in data:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Any) -> 'EventDetails':
        if not data:
            return cls()
        if not isinstance(data, dict):
            return cls(extra={'value': data})
        extra = {k: v for k, v in data.items() if k not in cls.KNOWN_KEYS}
        return cls(
            player=_typed_or_extra(data, 'player', Player.from_dict, extra),
            goal_type=_typed_or_extra(data, 'goal_type', _text, extra),
            minute=_typed_or_extra(data, 'minute', int, extra),
            assist=_typed_or_extra(data, 'assist', Player.from_dict, extra),
            video_url=_typed_or_extra(data, 'video_url', _text, extra),
            extra=extra
        )


@dataclass(frozen=True)
class EventRecord:
    id: str             # generated by the record store at write time
    match_id: str
    team: Optional[str] = None
    opponent: Optional[str] = None
    event_type: Optional[str] = None
    event_details: EventDetails = field(default_factory=EventDetails)
    timestamp: Optional[str] = None     # e.g. "2024-03-20T19:02:15.000Z"

    def to_dict(self) -> Dict:
        """Convert EventRecord to the camelCase shape stored in the record store."""
        return {
            'id': self.id,
            'matchId': self.match_id,
            'team': self.team,
            'opponent': self.opponent,
            'eventType': self.event_type,
            'eventDetails': self.event_details.to_dict(),
            'timestamp': self.timestamp
        }

    def __repr__(self) -> str:
        return f"EventRecord(id={self.id}, match={self.match_id}, type={self.event_type})"
