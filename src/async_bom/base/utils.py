import logging
from dataclasses import is_dataclass, asdict
from typing import Any, Iterable, List

from bson import ObjectId
from bson.errors import InvalidId

from .exceptions import InvalidObjectIdException

logger = logging.getLogger(__name__)

# Zero-valued identifier handed out by the best-effort converters.
NIL_OBJECT_ID = ObjectId(b"\x00" * 12)


def parse_object_id(value: Any) -> ObjectId:
    """
    Parse a 24 character hex string (or an ObjectId) into an ObjectId.

    Args:
        value: The identifier to convert.

    Returns:
        The parsed ObjectId.

    Raises:
        InvalidObjectIdException: If the value is not a valid ObjectId.
    """
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str):
        raise InvalidObjectIdException(
            f"ObjectId must be a hex string, got {type(value).__name__}"
        )
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as e:
        raise InvalidObjectIdException(f"'{value}' is not a valid ObjectId") from e


def to_object_id(value: Any) -> ObjectId:
    """
    Best-effort variant of parse_object_id.

    Invalid input yields NIL_OBJECT_ID instead of raising, so a bad identifier
    silently turns into a filter that matches nothing. Use parse_object_id
    when the caller needs to know.
    """
    try:
        return parse_object_id(value)
    except InvalidObjectIdException as e:
        logger.warning(f"Falling back to nil ObjectId: {e}")
        return NIL_OBJECT_ID


def to_object_ids(values: Iterable[Any]) -> List[ObjectId]:
    """Convert many identifiers, skipping the ones that fail to parse."""
    object_ids = []
    for value in values:
        try:
            object_ids.append(parse_object_id(value))
        except InvalidObjectIdException as e:
            logger.warning(f"Skipping identifier: {e}")
    return object_ids


def prepare_for_storage(data: Any) -> Any:
    """
    Recursively convert Pydantic models and dataclasses to BSON-compatible values.

    It handles:
    - Pydantic BaseModel instances (dumped by alias, python mode so datetimes
      and ObjectIds reach the driver untouched)
    - Python dataclasses
    - Dictionaries (processing values recursively)
    - Lists, tuples and sets (processing each item)

    Args:
        data: The data to convert

    Returns:
        The converted data, ready for the driver
    """
    if data is None:
        return None

    # Handle dataclasses
    if is_dataclass(data) and not isinstance(data, type):
        return prepare_for_storage(asdict(data))

    # Handle Pydantic models
    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        return prepare_for_storage(data.model_dump(by_alias=True))

    if isinstance(data, dict):
        return {k: prepare_for_storage(v) for k, v in data.items()}

    if isinstance(data, list):
        return [prepare_for_storage(item) for item in data]

    # BSON has no tuple or set type
    if isinstance(data, (tuple, set)):
        return [prepare_for_storage(item) for item in data]

    return data
