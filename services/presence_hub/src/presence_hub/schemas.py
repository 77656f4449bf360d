"""JSON Schema validation for inbound socket frames."""

from __future__ import annotations

from jsonschema import Draft7Validator, ValidationError

from .exceptions import InvalidFrameError
from .models import InboundFrame

# every username payload rejects "", which would otherwise bind a nameless session
_USERNAME = {"type": "string", "minLength": 1}

SCHEMAS = {
    "join": {
        "type": "object",
        "required": ["event", "data"],
        "properties": {
            "event": {"const": "join"},
            "data": _USERNAME,
        },
    },
    "message": {
        "type": "object",
        "required": ["event", "data"],
        "properties": {
            "event": {"const": "message"},
            "data": {
                "type": "object",
                "required": ["username", "text"],
                "properties": {
                    "username": _USERNAME,
                    "text": {"type": "string"},
                },
            },
        },
    },
    "leave": {
        "type": "object",
        "required": ["event", "data"],
        "properties": {
            "event": {"const": "leave"},
            "data": _USERNAME,
            "ackId": {"type": ["string", "integer"]},
        },
    },
    "delete_user_messages": {
        "type": "object",
        "required": ["event", "data"],
        "properties": {
            "event": {"const": "delete_user_messages"},
            "data": _USERNAME,
            "ackId": {"type": ["string", "integer"]},
        },
    },
    "delete_user_account": {
        "type": "object",
        "required": ["event", "data"],
        "properties": {
            "event": {"const": "delete_user_account"},
            "data": _USERNAME,
            "ackId": {"type": ["string", "integer"]},
        },
    },
}

_VALIDATORS = {name: Draft7Validator(schema) for name, schema in SCHEMAS.items()}


def validate_frame(frame: InboundFrame) -> None:
    """Validate an inbound frame against the schema of its event.

    Raises:
        InvalidFrameError: Unknown event or payload of the wrong shape.
    """

    validator = _VALIDATORS.get(frame.event)
    if validator is None:
        raise InvalidFrameError(f"Unsupported event {frame.event!r}")
    instance = frame.model_dump(by_alias=True, exclude_none=True)
    try:
        validator.validate(instance)
    except ValidationError as exc:
        raise InvalidFrameError(f"Invalid {frame.event} payload: {exc.message}", cause=exc) from exc
