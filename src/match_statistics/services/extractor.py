from decimal import Decimal
from typing import Any, Dict, Optional

from boto3.dynamodb.types import TypeDeserializer

from match_statistics.config.settings import AggregatorConfig
from match_statistics.constants import GOAL_EVENT_TYPE
from match_statistics.domain.errors import MalformedRecordError
from match_statistics.domain.events import ChangeNotification
from match_statistics.domain.records import EventDetails, EventRecord

# the record producer writes snake_case keys; readers of the store use camelCase
MATCH_ID_KEYS = ('matchId', 'match_id')
EVENT_TYPE_KEYS = ('eventType', 'event_type')
EVENT_DETAILS_KEYS = ('eventDetails', 'event_details')


class FieldExtractor:
    """
    Turns the new image carried by a ChangeNotification into an EventRecord.
    Anything that can't be decoded raises MalformedRecordError; no amount of
    retrying would fix it.
    """
    def __init__(self, config: AggregatorConfig):
        self.primary_key = config.primary_key
        self.record_attribute = config.record_attribute
        self._deserializer = TypeDeserializer()

    def extract(self, notification: ChangeNotification) -> EventRecord:
        image = self._decode_image(notification)

        # NOTE: the producer may store the record nested under a wrapper attribute,
        # next to the generated key: {"itemId": "...", "item": {...}}
        body = image
        if self.record_attribute:
            body = image.get(self.record_attribute)
            if not isinstance(body, dict):
                raise MalformedRecordError(
                    f"New image has no '{self.record_attribute}' mapping",
                    reference=notification.reference
                )

        record_id = _as_identifier(image.get(self.primary_key))
        if record_id is None and body is not image:
            record_id = _as_identifier(body.get(self.primary_key))
        if record_id is None:
            raise MalformedRecordError(
                f"New image is missing its '{self.primary_key}' identifier",
                reference=notification.reference
            )

        match_id = _as_identifier(_first_of(body, MATCH_ID_KEYS))
        if match_id is None:
            raise MalformedRecordError(
                f"Event record {record_id} is missing matchId",
                reference=notification.reference
            )

        # details are carried along, never counted; they can't make a record malformed
        event_details = EventDetails.from_dict(_first_of(body, EVENT_DETAILS_KEYS))

        # every record the producer writes is a goal unless it says otherwise
        event_type = _first_of(body, EVENT_TYPE_KEYS) or GOAL_EVENT_TYPE

        return EventRecord(
            id=record_id,
            match_id=match_id,
            team=_as_identifier(body.get('team')),
            opponent=_as_identifier(body.get('opponent')),
            event_type=str(event_type),
            event_details=event_details,
            timestamp=body.get('timestamp')
        )

    def _decode_image(self, notification: ChangeNotification) -> Dict[str, Any]:
        image = notification.new_image
        if not isinstance(image, dict) or not image:
            raise MalformedRecordError(
                "Notification carries no new image",
                reference=notification.reference
            )
        if not notification.typed_image:
            return image
        try:
            return {k: self._deserializer.deserialize(v) for k, v in image.items()}
        except (TypeError, ValueError, AttributeError) as e:
            raise MalformedRecordError(
                f"New image is not a valid attribute-value map: {e}",
                reference=notification.reference
            ) from e


def _first_of(data: Dict[str, Any], keys) -> Optional[Any]:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _as_identifier(value: Any) -> Optional[str]:
    """Identifiers and participant names are strings; numbers are accepted and stringified."""
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (str, int, Decimal)):
        return None
    value = str(value).strip()
    return value or None
