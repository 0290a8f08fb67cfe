from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from match_statistics.constants import INSERT_EVENT_NAME


@dataclass(frozen=True)
class ChangeNotification:
    """
    One change-feed record: the new image of an inserted EventRecord plus
    delivery metadata. A redelivery carries the same new image but no
    delivery field is guaranteed to stay stable; deduplication relies on
    the record's own id.
    """
    new_image: Optional[Dict[str, Any]]
    event_id: Optional[str] = None          # feed record id, e.g. stream eventID
    event_name: str = INSERT_EVENT_NAME
    sequence_number: Optional[str] = None   # used to acknowledge partial batches
    source: Optional[str] = None            # e.g. the stream ARN or queue url
    # the image may arrive in DynamoDB's typed encoding ({"S": "..."}) or already plain
    typed_image: bool = True
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def reference(self) -> str:
        """A short handle for logs and acknowledgments."""
        return self.sequence_number or self.event_id or '<unknown>'

    @property
    def is_insert(self) -> bool:
        return self.event_name == INSERT_EVENT_NAME

    @classmethod
    def from_stream_record(cls, record: Dict[str, Any]) -> 'ChangeNotification':
        """
        Build a notification from a DynamoDB Streams record:
            {"eventID": ..., "eventName": "INSERT", "eventSourceARN": ...,
             "dynamodb": {"NewImage": {...}, "SequenceNumber": ...}}
        """
        stream_data = record.get('dynamodb') or {}
        return cls(
            new_image=stream_data.get('NewImage'),
            event_id=record.get('eventID'),
            event_name=record.get('eventName', INSERT_EVENT_NAME),
            sequence_number=stream_data.get('SequenceNumber'),
            source=record.get('eventSourceARN'),
            typed_image=True,
            raw=record
        )

    def __repr__(self) -> str:
        return f"ChangeNotification(ref={self.reference}, name={self.event_name})"
