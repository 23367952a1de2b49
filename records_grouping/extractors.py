"""Field extraction helpers for heterogeneous raw log entries.

The booking logs hold several historical shapes of the same event, so one
logical field can live under many nested paths. Each field is described as an
ordered list of extractors; the first extractor that yields a usable value
wins.

A FieldExtractor is any callable taking the parsed entry and returning the
value or None. Extractors compose with:

- ``path(*keys)``: walk nested mappings, None on any missing step
- ``coerce(extractor, converter)``: post-process, None if conversion fails
- ``first_match(*extractors)``: first non-None result wins
"""

from __future__ import annotations

import json
import math
from typing import Any, Callable, Mapping, Optional, TypeVar

T = TypeVar("T")

FieldExtractor = Callable[[Mapping[str, Any]], Optional[T]]


def path(*keys: str) -> FieldExtractor[Any]:
    """Build an extractor that walks nested mappings by key.

    Parameters
    ----------
    *keys : str
        Keys to follow from the entry root.

    Returns
    -------
    FieldExtractor
        Extractor returning the value at the path, or None when any step is
        missing or is not a mapping.

    Examples
    --------
    >>> path("data", "client", "id")({"data": {"client": {"id": 7}}})
    7
    """

    def extract(entry: Mapping[str, Any]) -> Any:
        current: Any = entry
        for key in keys:
            if not isinstance(current, Mapping):
                return None
            current = current.get(key)
            if current is None:
                return None
        return current

    return extract


def coerce(
    extractor: FieldExtractor[Any], converter: Callable[[Any], Optional[T]]
) -> FieldExtractor[T]:
    """Apply ``converter`` to an extractor's result; unusable values become None."""

    def extract(entry: Mapping[str, Any]) -> Optional[T]:
        value = extractor(entry)
        if value is None:
            return None
        return converter(value)

    return extract


def first_match(*extractors: FieldExtractor[T]) -> FieldExtractor[T]:
    """Combine extractors so the first non-None result wins.

    Parameters
    ----------
    *extractors : FieldExtractor
        Extractors tried in order.

    Returns
    -------
    FieldExtractor
        Extractor returning the first non-None result, or None.
    """

    def extract(entry: Mapping[str, Any]) -> Optional[T]:
        for extractor in extractors:
            value = extractor(entry)
            if value is not None:
                return value
        return None

    return extract


def to_number(value: Any) -> Optional[float]:
    """Convert numbers and numeric strings to a finite float."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip().replace(",", ".")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def to_positive_int(value: Any) -> Optional[int]:
    """Convert a value to a positive integer id, or None.

    Examples
    --------
    >>> to_positive_int("42")
    42
    >>> to_positive_int(0) is None
    True
    >>> to_positive_int(4.5) is None
    True
    """
    number = to_number(value)
    if number is None or number <= 0 or not number.is_integer():
        return None
    return int(number)


def to_text(value: Any) -> Optional[str]:
    """Convert scalars to stripped text; blanks and containers become None."""
    if value is None or isinstance(value, (bool, Mapping, list, tuple)):
        return None
    text = str(value).strip()
    return text or None


def to_attendance(value: Any) -> Optional[int]:
    """Convert attendance signals to 1, 0 or -1; anything else is None."""
    number = to_number(value)
    if number is None or not number.is_integer():
        return None
    code = int(number)
    return code if code in (1, 0, -1) else None


def to_list(value: Any) -> Optional[list]:
    """Accept a list, a JSON-encoded list, or a single mapping wrapped in a list."""
    if isinstance(value, list):
        return value
    if isinstance(value, Mapping):
        return [value]
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            return None
        if isinstance(decoded, list):
            return decoded
        if isinstance(decoded, Mapping):
            return [decoded]
    return None
