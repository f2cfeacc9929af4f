"""
Single numeric/date coercion layer shared by the calculator and the snapshot normalizers.
Accepts native numbers and pt-BR formatted strings ("R$ 1.234,56", "1,99%").
"""
import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")

_FORMATTED_NUMBER = re.compile(
    r"^(?P<sign>-)?\s*(?:R\$)?\s*(?P<body>-?\d[\d.,]*)\s*(?:%|x)?$", re.IGNORECASE
)


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    reason: str

    @property
    def ok(self) -> bool:
        return False


ParseResult = Union[Ok[T], Err]


def _normalize_decimal_string(raw: str) -> Optional[str]:
    match = _FORMATTED_NUMBER.match(raw)
    if match is None:
        return None
    body = match.group("body")
    if "," in body:
        # pt-BR: dots group thousands, comma is the decimal separator
        body = body.replace(".", "").replace(",", ".", 1).replace(",", "")
    elif body.count(".") > 1:
        head, _, tail = body.rpartition(".")
        body = head.replace(".", "") + "." + tail
    return (match.group("sign") or "") + body


def parse_number(value: Any) -> ParseResult[float]:
    """
    Coerces value into a finite float.
    Plain and scientific notation go straight through float(); otherwise only the
    pt-BR shapes ("R$ 1.234,56", "1,99%", "84x") are accepted. Other text is an error.
    """
    if isinstance(value, bool):
        return Err("boolean is not a number")
    if isinstance(value, (int, float)):
        number = float(value)
        if not math.isfinite(number):
            return Err("number is not finite")
        return Ok(number)
    if not isinstance(value, str):
        return Err(f"unsupported type {type(value).__name__}")

    text = value.strip()
    if not text:
        return Err("empty string")
    try:
        number = float(text)
    except ValueError:
        normalized = _normalize_decimal_string(text)
        if normalized is None:
            return Err(f"invalid number {value!r}")
        try:
            number = float(normalized)
        except ValueError:
            return Err(f"invalid number {value!r}")
    if not math.isfinite(number):
        return Err("number is not finite")
    return Ok(number)


def parse_integer(value: Any) -> ParseResult[int]:
    """Coerces value into an int, truncating fractional numbers."""
    if isinstance(value, bool):
        return Err("boolean is not an integer")
    if isinstance(value, int):
        return Ok(value)
    number = parse_number(value)
    if isinstance(number, Err):
        return number
    return Ok(int(number.value))


def parse_date(value: Any) -> ParseResult[date]:
    """Accepts date/datetime objects, ISO strings and dd/mm/yyyy strings."""
    if isinstance(value, datetime):
        return Ok(value.date())
    if isinstance(value, date):
        return Ok(value)
    if not isinstance(value, str) or not value.strip():
        return Err("missing date")

    text = value.strip()
    try:
        return Ok(datetime.fromisoformat(text.replace("Z", "+00:00")).date())
    except ValueError:
        pass
    try:
        return Ok(datetime.strptime(text, "%d/%m/%Y").date())
    except ValueError:
        return Err(f"invalid date {value!r}")


def number_or_none(value: Any) -> Optional[float]:
    result = parse_number(value)
    return result.value if isinstance(result, Ok) else None


def integer_or_none(value: Any) -> Optional[int]:
    result = parse_integer(value)
    return result.value if isinstance(result, Ok) else None


def date_or_none(value: Any) -> Optional[date]:
    result = parse_date(value)
    return result.value if isinstance(result, Ok) else None
