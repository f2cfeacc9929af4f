"""
Catalog queries: active window resolution and rate selection.
Both are pure lookups over an in-memory Agreement.
"""
from datetime import date
from typing import Dict, List, Optional, Sequence

from loanquote.catalog.schemas import Agreement, RateEntry, RateStatus, Window
from loanquote.core.config import settings
from loanquote.core.logger import logger

PRODUCT_LABELS: Dict[str, str] = {
    "emprestimo": "Empréstimo consignado",
    "consigned_credit": "Empréstimo consignado",
    "cartao_consignado": "Cartão consignado",
    "credit_card": "Cartão consignado",
    "cartao_beneficio": "Cartão benefício",
    "benefit_card": "Cartão benefício",
    "fgts": "Antecipação FGTS",
    "fgts_advance": "Antecipação FGTS",
    "payroll_portability": "Portabilidade de salário",
}


def find_overlapping_windows(agreement: Optional[Agreement], reference_date: Optional[date]) -> List[Window]:
    """Returns every window covering the date, in declaration order."""
    if agreement is None or reference_date is None:
        return []
    return [window for window in agreement.windows if window.start <= reference_date <= window.end]


def find_active_window(agreement: Optional[Agreement], reference_date: Optional[date]) -> Optional[Window]:
    """
    Picks the window covering the reference date.
    First match in declaration order wins; overlaps are reported but tolerated.
    None means quoting is blocked for that date.
    """
    matches = find_overlapping_windows(agreement, reference_date)
    if not matches:
        return None
    if len(matches) > 1:
        logger.warning(
            f"Ambiguous windows for agreement={agreement.id} date={reference_date}: "
            f"{[window.id for window in matches]}; using {matches[0].id}"
        )
    return matches[0]


def is_rate_active(rate: RateEntry, product_id: str, reference_date: date) -> bool:
    if rate.status != RateStatus.ACTIVE:
        return False
    if rate.product_id != product_id:
        return False
    if rate.valid_from is not None and reference_date < rate.valid_from:
        return False
    if rate.valid_until is not None and reference_date > rate.valid_until:
        return False
    return True


def get_active_rates(
    agreement: Optional[Agreement],
    product_id: Optional[str],
    reference_date: Optional[date]
) -> List[RateEntry]:
    """Filters rate entries that are active, match the product and are valid on the date. Never raises."""
    if agreement is None or not product_id or reference_date is None:
        return []
    return [rate for rate in agreement.rates if is_rate_active(rate, product_id, reference_date)]


def has_date_overlap(existing: Sequence[Window], candidate: Window) -> bool:
    """True when the candidate range intersects any existing range (inclusive bounds)."""
    return any(
        window.start <= candidate.end and window.end >= candidate.start
        for window in existing
        if window.id != candidate.id
    )


def compute_window_status(window: Window, today: date) -> str:
    if today < window.start:
        return "Futura"
    if today > window.end:
        return "Expirada"
    return "Ativa"


def available_term_options(rates: Sequence[RateEntry]) -> List[int]:
    """Union of the rates' allowed terms; falls back to the default pool when none are listed."""
    terms = {term for rate in rates for term in rate.terms}
    if not terms:
        terms = set(settings.DEFAULT_TERM_POOL)
    return sorted(terms)


def format_product_label(product_id: str) -> str:
    normalized = product_id.strip().lower()
    if not normalized:
        return ""
    if normalized in PRODUCT_LABELS:
        return PRODUCT_LABELS[normalized]
    words = normalized.replace("-", " ").replace("_", " ").split()
    return " ".join(word.capitalize() for word in words)


def list_agreement_products(agreement: Optional[Agreement]) -> List[Dict[str, str]]:
    """Unique product ids declared by the agreement or referenced by its rates."""
    if agreement is None:
        return []
    unique: Dict[str, Dict[str, str]] = {}
    for product_id in [*agreement.products, *(rate.product_id for rate in agreement.rates)]:
        value = product_id.strip()
        if value and value not in unique:
            unique[value] = {"value": value, "label": format_product_label(value)}
    return list(unique.values())
