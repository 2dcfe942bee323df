"""
Centralized Input Validation Layer

Everything a caller hands the engine is checked here, before any store read
or mutation, and failures surface as src.exceptions.ValidationError.

Validation Categories:
1. Raw event documents - closed vocabulary, closed payload keys
2. Applied events - derived types, accuracy range, clock skew
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from src.exceptions import ValidationError
from src.models.gamification import DERIVED_EVENTS, DomainEvent
from src.utils.datetime_helpers import now_utc

logger = logging.getLogger(__name__)

# Events stamped further ahead than this are rejected
MAX_CLOCK_SKEW = timedelta(minutes=5)


def parse_domain_event(raw: dict[str, Any]) -> DomainEvent:
    """
    Build a DomainEvent from a string-keyed document

    Raises:
        ValidationError: unknown event type, unknown payload keys, bad values
    """
    try:
        return DomainEvent.model_validate(raw)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        raise ValidationError(
            message=first["msg"],
            field=field,
            value=first.get("input"),
            cause=e,
        )


def validate_event_for_apply(event: DomainEvent, now: Optional[datetime] = None) -> None:
    """
    Reject events the coordinator must never apply

    Raises:
        ValidationError: derived event type, accuracy outside [0, 1],
            timestamp in the future
    """
    if event.type in DERIVED_EVENTS:
        raise ValidationError(
            message=f"{event.type.value} events are emitted by the engine, not submitted",
            field="type",
            value=event.type.value,
        )

    accuracy = event.payload.accuracy
    if accuracy is not None and not 0.0 <= accuracy <= 1.0:
        raise ValidationError(
            message="Accuracy must be within [0, 1]",
            field="accuracy",
            value=accuracy,
        )

    now = now or now_utc()
    if event.occurred_at > now + MAX_CLOCK_SKEW:
        raise ValidationError(
            message="Event timestamp is in the future",
            field="occurred_at",
            value=event.occurred_at.isoformat(),
        )
