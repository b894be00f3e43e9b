"""Project raw catalog records onto the fields the mirror keeps."""

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from chartmirror.domain.entities import REQUIRED_FIELDS, NormalizedRecord
from chartmirror.domain.exceptions import MalformedRecordError


def normalize_record(raw: dict[str, Any]) -> NormalizedRecord:
    """Normalize one raw catalog record.

    Fields outside the allow-list are dropped. The record must carry a
    groupId and a parseable modifiedTime; allow-listed fields must have
    sensible types.

    Args:
        raw: Catalog record as decoded from the search response

    Returns:
        Frozen NormalizedRecord

    Raises:
        MalformedRecordError: Identity fields missing or a field failed validation
    """
    chart_id = raw.get("chartId") if isinstance(raw, dict) else None

    if not isinstance(raw, dict):
        raise MalformedRecordError(
            f"Catalog record is not an object: {type(raw).__name__}",
            chart_id=chart_id,
        )

    missing = [name for name in REQUIRED_FIELDS if raw.get(name) is None]
    if missing:
        raise MalformedRecordError(
            f"Catalog record {chart_id} missing identity fields: {', '.join(missing)}",
            fields=missing,
            chart_id=chart_id,
        )

    try:
        return NormalizedRecord.model_validate(raw)
    except PydanticValidationError as e:
        fields = [".".join(str(part) for part in error["loc"]) for error in e.errors()]
        raise MalformedRecordError(
            f"Catalog record {chart_id} has invalid fields: {', '.join(fields)}",
            fields=fields,
            chart_id=chart_id,
        ) from e


def extract_chart_id(raw: dict[str, Any]) -> int | None:
    """Pagination key of a raw record, or None if it has no usable chartId."""
    chart_id = raw.get("chartId")
    # bool is an int subclass - a True chartId is garbage, not chart 1
    if isinstance(chart_id, bool):
        return None
    if isinstance(chart_id, int):
        return chart_id
    if isinstance(chart_id, str) and chart_id.strip().isdigit():
        return int(chart_id)
    return None
