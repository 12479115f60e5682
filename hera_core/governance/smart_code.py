"""
Smart code parsing and validation.

A smart code is a dotted, versioned taxonomy string stamped on every record:
``HERA.<DOMAIN>.<MODULE>.<...>.<TYPE>.V<n>``. Validation is purely
structural; there is no lookup table of known codes.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from ..constants import SMART_CODE_PREFIX
from ..exceptions import ErrorCode, ValidationError

SMART_CODE_PATTERN = re.compile(r"^HERA\.[A-Z0-9]+(\.[A-Z0-9_]+){3,}\.V[0-9]+$")

_VERSION_TAG = re.compile(r"\.[vV]([0-9]+)$")


@dataclass(frozen=True)
class SmartCode:
    """A validated smart code split into its parts."""

    code: str
    segments: Tuple[str, ...]
    version: int

    @property
    def domain(self) -> str:
        return self.segments[1]

    @property
    def module(self) -> str:
        return self.segments[2]

    @property
    def family(self) -> str:
        """The code without its version tag; all versions of a family share it."""
        return ".".join(self.segments[:-1])

    def has_segment(self, segment: str) -> bool:
        return segment in self.segments[1:-1]

    def is_compatible_with(self, other: "SmartCode") -> bool:
        """
        True when a consumer of ``other`` can accept this code.

        Newer versions of the same family never break older consumers.
        """
        return self.family == other.family and self.version >= other.version

    def __str__(self) -> str:
        return self.code


def canonicalize(code: str) -> str:
    """Upper-case the version tag only (``.v2`` -> ``.V2``)."""
    return _VERSION_TAG.sub(lambda m: f".V{m.group(1)}", code.strip())


def validate_smart_code(code: Any, field: str = "smart_code", **context) -> SmartCode:
    """
    Validate a smart code and return its parsed form.

    Raises:
        ValidationError: If the code is missing, lacks the HERA prefix, has
            too few segments or a non-numeric version suffix
    """
    if not code or not isinstance(code, str):
        raise ValidationError(
            f"{field} is required",
            field=field,
            error_code=ErrorCode.MISSING_REQUIRED,
            **context,
        )

    canonical = canonicalize(code)
    if not SMART_CODE_PATTERN.match(canonical):
        raise ValidationError(
            f"Invalid smart code for {field}: {code!r}",
            field=field,
            error_code=ErrorCode.INVALID_FORMAT,
            value=code,
            reason=_explain(canonical),
            **context,
        )

    segments = tuple(canonical.split("."))
    return SmartCode(code=canonical, segments=segments, version=int(segments[-1][1:]))


def is_valid_smart_code(code: Any) -> bool:
    """Non-raising check; never logs."""
    if not code or not isinstance(code, str):
        return False
    return SMART_CODE_PATTERN.match(canonicalize(code)) is not None


def _explain(canonical: str) -> str:
    segments = canonical.split(".")
    if segments[0] != SMART_CODE_PREFIX:
        return f"must start with '{SMART_CODE_PREFIX}.'"
    if not re.fullmatch(r"V[0-9]+", segments[-1]):
        return "must end with a numeric version tag like 'V1'"
    if len(segments) < 6:
        return "needs at least five segments after the HERA prefix"
    return "segments may only contain A-Z, 0-9 and underscores"


def optional_smart_code(code: Optional[str], field: str = "smart_code") -> Optional[SmartCode]:
    """Validate ``code`` when given; None passes through."""
    if code is None:
        return None
    return validate_smart_code(code, field=field)
