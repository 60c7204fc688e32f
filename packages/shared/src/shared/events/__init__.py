from shared.events.schema import MAX_COMMENT_LENGTH, EventDecodeError, RatingCreatedEvent

__all__ = [
    "EventDecodeError",
    "MAX_COMMENT_LENGTH",
    "RatingCreatedEvent",
]
