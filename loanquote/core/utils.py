"""
Display helpers shared by the snapshot summaries.
"""
import re
import unicodedata
from typing import Any

from loanquote.core.parsing import integer_or_none, number_or_none


def format_currency(value: Any, fallback: str = "--") -> str:
    """
    Formats a value as Brazilian currency.
    Example: 1234.5 -> R$ 1.234,50
    """
    number = number_or_none(value)
    if number is None:
        return fallback
    formatted = f"{abs(number):,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    sign = "-" if number < 0 else ""
    return f"{sign}R$ {formatted}"


def format_percent(value: Any, fallback: str = "--") -> str:
    """Formats a decimal rate as a percentage: 0.0199 -> 1,99%"""
    number = number_or_none(value)
    if number is None:
        return fallback
    return f"{number * 100:.2f}".replace(".", ",") + "%"


def format_term_label(value: Any, fallback: str = "--") -> str:
    term = integer_or_none(value)
    if term is None:
        return fallback
    return f"{term}x"


def slugify(value: Any, max_length: int = 48) -> str:
    """Lowercase ASCII slug used in generated file names."""
    text = value.strip() if isinstance(value, str) else ""
    text = unicodedata.normalize("NFD", text.lower())
    text = "".join(char for char in text if not unicodedata.combining(char))
    text = re.sub(r"[^a-z0-9]+", "-", text).strip("-")
    return text[:max_length]
