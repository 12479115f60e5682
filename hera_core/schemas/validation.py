"""
Conversion of pydantic validation failures into engine ValidationErrors.
"""

from typing import Any, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ErrorCode, ValidationError

M = TypeVar("M", bound=BaseModel)


def _format_loc(prefix: Optional[str], loc) -> str:
    path = prefix or ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path = f"{path}.{part}" if path else str(part)
    return path or (prefix or "payload")


def parse_input(model: Type[M], data: Any, field_prefix: Optional[str] = None) -> M:
    """
    Validate ``data`` against ``model``.

    Raises:
        ValidationError: Naming the first offending field, e.g. ``lines[2].line_amount``
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = _format_loc(field_prefix, first.get("loc", ()))
        error_code = (
            ErrorCode.MISSING_REQUIRED if first.get("type") == "missing" else ErrorCode.INVALID_FORMAT
        )
        raise ValidationError(
            f"Invalid {field}: {first.get('msg')}",
            field=field,
            error_code=error_code,
            errors=[
                {"field": _format_loc(field_prefix, err.get("loc", ())), "message": err.get("msg")}
                for err in e.errors()
            ],
        ) from e
