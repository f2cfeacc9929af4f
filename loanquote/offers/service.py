"""
Offer aggregation: prices every (rate entry x term) pair and ranks the results.
Pure and deterministic; the caller re-runs it on every parameter change.
"""
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from loanquote.catalog.schemas import Agreement, RateEntry, Window
from loanquote.catalog.service import find_active_window, get_active_rates
from loanquote.core.config import settings
from loanquote.core.exceptions import CalculationError, ConfigurationError, InvalidParametersError
from loanquote.core.logger import logger
from loanquote.core.parsing import Ok, parse_number
from loanquote.offers.schemas import (
    IssueSeverity,
    Offer,
    QuoteIssue,
    QuoteParameters,
    QuoteParametersRecord,
    QuoteResult,
    Term,
)
from loanquote.pricing.schemas import BaseType, TermCalculation
from loanquote.pricing.service import simulate_convenio_deal


def parse_quote_parameters(raw: Mapping[str, Any]) -> QuoteParameters:
    """
    Validates a raw parameter payload (e.g. form input).
    Raises InvalidParametersError with one message per offending field.
    """
    payload = dict(raw)
    base_value = payload.get("base_value")
    if isinstance(base_value, str):
        parsed = parse_number(base_value)
        payload["base_value"] = parsed.value if isinstance(parsed, Ok) else base_value

    try:
        return QuoteParameters.model_validate(payload)
    except ValidationError as exc:
        errors: Dict[str, str] = {}
        for error in exc.errors():
            field = str(error["loc"][0]) if error["loc"] else "__root__"
            errors.setdefault(field, error["msg"])
        raise InvalidParametersError("Invalid quote parameters", errors=errors) from exc


def collect_parameter_errors(raw: Mapping[str, Any]) -> Dict[str, str]:
    """Per-field error messages for a parameter payload; empty when valid."""
    try:
        parse_quote_parameters(raw)
    except InvalidParametersError as exc:
        return exc.errors
    return {}


def offer_sort_key(offer: Offer) -> Tuple[int, str]:
    return (offer.rank, offer.bank_name)


def rank_offers(offers: Sequence[Offer]) -> List[Offer]:
    """Explicit rank first (declaration order by default), bank name breaks ties."""
    return sorted(offers, key=offer_sort_key)


def visible_offers(offers: Sequence[Offer], limit: Optional[int] = None) -> List[Offer]:
    """Top offers shown to the agent."""
    limit = settings.MAX_VISIBLE_OFFERS if limit is None else limit
    return rank_offers(offers)[:limit]


def _build_term(
    rate: RateEntry,
    term: int,
    parameters: QuoteParameters,
    window: Window,
    offer_id: str
) -> Term:
    base = {"margem": parameters.base_value} if parameters.base_type == BaseType.MARGIN else {
        "target_net_amount": parameters.base_value
    }
    result = simulate_convenio_deal(
        prazo_meses=term,
        data_simulacao=parameters.simulation_date,
        janela=window,
        taxa=rate,
        **base
    )
    details = result.details
    return Term(
        id=f"{offer_id}-{term}",
        term=term,
        installment=result.installment,
        net_amount=result.net_amount,
        total_amount=result.gross_amount,
        coefficient=result.coefficient,
        tac_value=result.tac_value,
        calculation=TermCalculation(
            base_type=parameters.base_type,
            base_value=parameters.base_value,
            simulation_date=parameters.simulation_date,
            window_id=window.id,
            window_label=window.label or None,
            rate_id=rate.id,
            modality=rate.modality or None,
            product=rate.product_id or None,
            monthly_rate=details.monthly_rate,
            daily_rate=details.daily_rate,
            grace_days=details.grace_days,
            present_value_unit=details.present_value_unit,
            tac_percent=details.tac_percent,
            tac_flat=details.tac_flat
        )
    )


def aggregate_offers(
    rates: Sequence[RateEntry],
    parameters: QuoteParameters,
    window: Optional[Window]
) -> QuoteResult:
    """
    Runs the calculator across rates x terms.
    Configuration problems become issues; nothing here raises for catalog data.
    """
    record = QuoteParametersRecord(
        base_type=parameters.base_type,
        base_value=parameters.base_value,
        simulation_date=parameters.simulation_date,
        window_id=window.id if window else None,
        window_label=(window.label or None) if window else None,
        term_options=list(parameters.terms),
        tax_ids=[rate.id for rate in rates]
    )

    if window is None:
        issue = QuoteIssue(
            type="no_active_window",
            severity=IssueSeverity.ERROR,
            message="Agreement has no contracting window for the simulation date",
            context=parameters.simulation_date.isoformat()
        )
        logger.warning(f"Quote blocked: {issue.message} ({issue.context})")
        return QuoteResult(offers=[], parameters=record, issues=[issue])

    if not rates:
        issue = QuoteIssue(
            type="no_active_rates",
            severity=IssueSeverity.ERROR,
            message="No active rate for this product on the simulation date",
            context=parameters.simulation_date.isoformat()
        )
        logger.warning(f"Quote blocked: {issue.message} ({issue.context})")
        return QuoteResult(offers=[], parameters=record, issues=[issue])

    issues: List[QuoteIssue] = []
    offers: List[Offer] = []
    priced_terms = set()

    for index, rate in enumerate(rates):
        offer_id = rate.id
        bank_name = rate.bank_name or f"Banco {index + 1}"
        terms: List[Term] = []

        for term in parameters.terms:
            try:
                terms.append(_build_term(rate, term, parameters, window, offer_id))
                priced_terms.add(term)
            except (ConfigurationError, CalculationError) as exc:
                issues.append(QuoteIssue(
                    type=exc.code,
                    severity=IssueSeverity.WARNING,
                    message=exc.message,
                    context=f"{bank_name} • {term} meses"
                ))
                logger.warning(f"Term skipped: rate={rate.id} term={term} reason={exc.code}")

        if not terms:
            continue

        offers.append(Offer(
            id=offer_id,
            bank_id=rate.bank_id or f"bank-{index + 1}",
            bank_name=bank_name,
            table=rate.table_name or rate.modality,
            table_id=rate.table_id,
            tax_id=rate.id,
            modality=rate.modality,
            rank=rate.rank if rate.rank is not None else index + 1,
            terms=terms
        ))

    for term in parameters.terms:
        if term not in priced_terms:
            issues.append(QuoteIssue(
                type="term_not_offered",
                severity=IssueSeverity.ERROR,
                message=f"No active rate offers a term of {term} months",
                context=f"{term} meses"
            ))

    ranked = rank_offers(offers)
    logger.info(
        f"Offers aggregated: rates={len(rates)} terms={len(parameters.terms)} "
        f"offers={len(ranked)} issues={len(issues)}"
    )
    return QuoteResult(offers=ranked, parameters=record, issues=issues)


def quote_agreement(
    agreement: Optional[Agreement],
    product_id: Optional[str],
    parameters: QuoteParameters
) -> QuoteResult:
    """Resolves window and rates from the catalog, then aggregates."""
    window = find_active_window(agreement, parameters.simulation_date)
    rates = get_active_rates(agreement, product_id, parameters.simulation_date)
    return aggregate_offers(rates, parameters, window)
