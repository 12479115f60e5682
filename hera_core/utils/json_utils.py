import json
import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Union


class EnhancedJSONEncoder(json.JSONEncoder):
    """JSON encoder for ledger amounts, timestamps, ids and pydantic models."""

    def default(self, obj):
        # Amounts keep their exact scale
        if isinstance(obj, Decimal):
            return str(obj)
        elif isinstance(obj, (datetime, date)):
            return obj.isoformat()
        elif isinstance(obj, uuid.UUID):
            return str(obj)
        elif isinstance(obj, Enum):
            return obj.value
        elif hasattr(obj, "model_dump"):
            return obj.model_dump(mode="json")
        elif isinstance(obj, (set, frozenset)):
            return sorted(obj)
        return super().default(obj)


def dumps(obj: Any, **kwargs) -> str:
    """JSON dumps with Decimal and datetime support."""
    return json.dumps(obj, cls=EnhancedJSONEncoder, **kwargs)


def loads(s: Union[str, bytes, bytearray], **kwargs) -> Any:
    """Standard JSON loads function."""
    return json.loads(s, **kwargs)


def to_jsonable(obj: Any) -> Any:
    """Round-trip through the encoder so the value is plain JSON types."""
    return loads(dumps(obj))
