from typing import Optional


class AggregatorError(Exception):
    """Base exception for the statistics aggregator"""
    pass


class MalformedRecordError(AggregatorError):
    """
    The new image could not be decoded into an EventRecord.
    Retrying can never succeed, so the notification is skipped.
    """
    def __init__(self, message: str, reference: Optional[str] = None):
        super().__init__(message)
        self.reference = reference


class StoreError(AggregatorError):
    """Base exception for aggregate store operations"""
    pass


class TransientStoreError(StoreError):
    """Timeouts, throttling, temporary unavailability. Safe to retry."""
    pass


class PermanentStoreError(StoreError):
    """Schema/type mismatches and other failures that a retry cannot fix."""
    pass


class AggregateExistsError(AggregatorError):
    """A conditional create lost the race: a document for the match already exists."""
    def __init__(self, match_id: str):
        super().__init__(f"Aggregate for match {match_id} already exists")
        self.match_id = match_id


class AggregateNotFoundError(AggregatorError):
    def __init__(self, match_id: str):
        super().__init__(f"No statistics found for match {match_id}")
        self.match_id = match_id
