"""
Business logic for payroll-loan pricing.
Implements the daily-coefficient model: installments are discounted day by day from
the contract date, so the grace period before the first due date affects the price.
"""
import math
from datetime import date
from typing import Any, Optional, Tuple

from loanquote.catalog.schemas import RateEntry, Window
from loanquote.core.config import settings
from loanquote.core.exceptions import (
    CalculationError,
    InvalidParametersError,
    InvalidTacError,
    MissingRateError,
    NoActiveRatesError,
    NoActiveWindowError,
    TermNotOfferedError,
)
from loanquote.core.logger import logger
from loanquote.core.parsing import Err, parse_date, parse_integer, parse_number
from loanquote.pricing.schemas import BaseType, CalculationDetails, DealSimulationResult, TermCalculation


def monthly_to_daily_rate(monthly_rate: float) -> float:
    """Equivalent daily rate under the 30-day month convention: (1+i)^(1/30) - 1"""
    return (1 + monthly_rate) ** (1 / settings.DAYS_PER_MONTH) - 1


def present_value_unit(daily_rate: float, grace_days: int, months: int) -> float:
    """
    Present value of one unit of installment paid over `months` periods.
    Installment k (0-based) falls due grace_days + 30k days after the contract.

    Formula: PV = sum_k (1+d)^-(g + 30k)
    With g = 30 this equals the Price annuity factor [1 - (1+i)^-n] / i.
    """
    total = 0.0
    for installment in range(months):
        days_after_contract = grace_days + settings.DAYS_PER_MONTH * installment
        total += (1 + daily_rate) ** (-days_after_contract)
    return total


def resolve_grace_days(window: Window, simulation_date: date) -> Tuple[date, int]:
    """Clamps the simulation date into the window and counts days to the first due date."""
    contract_date = min(max(simulation_date, window.start), window.end)
    if window.first_due_date is None:
        return contract_date, settings.DEFAULT_GRACE_DAYS
    return contract_date, (window.first_due_date - contract_date).days


def _positive_amount(value: Any, field: str) -> Optional[float]:
    if value is None:
        return None
    parsed = parse_number(value)
    if isinstance(parsed, Err) or parsed.value <= 0:
        raise InvalidParametersError(f"{field} must be a positive amount", field=field)
    return parsed.value


def _validate_inputs(
    margem: Any,
    target_net_amount: Any,
    prazo_meses: Any
) -> Tuple[BaseType, float, int]:
    if margem is not None and target_net_amount is not None:
        raise InvalidParametersError(
            "Provide either margem or target_net_amount, not both",
            errors={
                "margem": "conflicts with target_net_amount",
                "target_net_amount": "conflicts with margem",
            }
        )
    if margem is None and target_net_amount is None:
        raise InvalidParametersError(
            "Provide the available margin or the desired net amount",
            errors={"margem": "required", "target_net_amount": "required"}
        )

    margin_value = _positive_amount(margem, "margem")
    net_value = _positive_amount(target_net_amount, "target_net_amount")

    term = parse_integer(prazo_meses)
    if isinstance(term, Err) or term.value <= 0:
        raise InvalidParametersError("prazo_meses must be a positive number of months", field="prazo_meses")

    if margin_value is not None:
        return BaseType.MARGIN, margin_value, term.value
    return BaseType.NET, net_value, term.value


def _validate_rate(taxa: Optional[RateEntry], term: int) -> float:
    if taxa is None:
        raise NoActiveRatesError("No rate configured for this product on this date")
    rate = taxa.monthly_rate
    if rate is None or not math.isfinite(rate) or rate <= 0:
        raise MissingRateError(f"Rate {taxa.id} has no usable monthly rate")
    if taxa.terms and term not in taxa.terms:
        raise TermNotOfferedError(f"Term of {term} months is not offered by rate {taxa.id}", field="prazo_meses")
    if taxa.tac_percent >= 1:
        raise InvalidTacError(f"Rate {taxa.id} has a percent TAC of 100% or more")
    return rate


def solve_amounts(
    base_type: BaseType,
    base_value: float,
    pv_unit: float,
    tac_percent: float,
    tac_flat: float
) -> Tuple[float, float, float, float, float]:
    """
    Solves installment, gross, TAC and net from one fixed side.

    Forward (margin): gross = margin * PV; tac = pct * gross + flat; net = gross - tac
    Reverse (net):    gross = (net + flat) / (1 - pct); installment = gross / PV

    Returns (installment, net, gross, coefficient, tac_value).
    """
    if not math.isfinite(pv_unit) or pv_unit <= 0:
        raise CalculationError("Could not compute the daily coefficient for this term")

    coefficient = 1 / pv_unit
    if base_type == BaseType.MARGIN:
        installment = base_value
        gross = installment * pv_unit
    else:
        gross = (base_value + tac_flat) / (1 - tac_percent)
        installment = gross * coefficient

    tac_value = tac_percent * gross + tac_flat
    net = gross - tac_value
    if not math.isfinite(net) or net <= 0:
        raise CalculationError("TAC consumes the whole financed amount")
    return installment, net, gross, coefficient, tac_value


def simulate_convenio_deal(
    prazo_meses: Any,
    data_simulacao: Any,
    janela: Optional[Window],
    taxa: Optional[RateEntry],
    margem: Any = None,
    target_net_amount: Any = None
) -> DealSimulationResult:
    """
    Prices one rate entry for one term.
    Exactly one of `margem` (installment ceiling) or `target_net_amount` must be given.

    Raises InvalidParametersError for caller mistakes and a ConfigurationError subclass
    when the window or rate entry does not allow quoting.
    """
    base_type, base_value, term = _validate_inputs(margem, target_net_amount, prazo_meses)

    simulation_date = parse_date(data_simulacao)
    if isinstance(simulation_date, Err):
        raise InvalidParametersError(simulation_date.reason, field="data_simulacao")

    if janela is None:
        raise NoActiveWindowError("Agreement has no contracting window for this date")

    monthly_rate = _validate_rate(taxa, term)

    contract_date, grace_days = resolve_grace_days(janela, simulation_date.value)
    daily_rate = monthly_to_daily_rate(monthly_rate)
    pv_unit = present_value_unit(daily_rate, grace_days, term)

    installment, net, gross, coefficient, tac_value = solve_amounts(
        base_type, base_value, pv_unit, taxa.tac_percent, taxa.tac_flat
    )

    logger.info(
        f"Deal simulated: rate={taxa.id} term={term} base={base_type.value}:{base_value} "
        f"installment={round(installment, 2)} net={round(net, 2)}"
    )

    return DealSimulationResult(
        installment=installment,
        net_amount=net,
        gross_amount=gross,
        coefficient=coefficient,
        tac_value=tac_value,
        details=CalculationDetails(
            base_type=base_type,
            base_value=base_value,
            monthly_rate=monthly_rate,
            daily_rate=daily_rate,
            grace_days=grace_days,
            present_value_unit=pv_unit,
            tac_percent=taxa.tac_percent,
            tac_flat=taxa.tac_flat,
            contract_date=contract_date,
            window_id=janela.id,
            window_label=janela.label or None,
            rate_id=taxa.id,
            modality=taxa.modality or None,
            product=taxa.product_id or None
        )
    )


def replay_calculation(calculation: TermCalculation, term: int) -> Tuple[float, float, float, float, float]:
    """
    Recomputes a stored term from its audit record alone (no catalog access).
    Returns (installment, net, gross, coefficient, tac_value).
    """
    required = {
        "base_type": calculation.base_type,
        "base_value": calculation.base_value,
        "monthly_rate": calculation.monthly_rate,
        "grace_days": calculation.grace_days,
    }
    missing = {field: "required" for field, value in required.items() if value is None}
    if missing:
        raise InvalidParametersError("Calculation record is incomplete", errors=missing)

    daily_rate = monthly_to_daily_rate(calculation.monthly_rate)
    pv_unit = present_value_unit(daily_rate, calculation.grace_days, term)
    return solve_amounts(
        calculation.base_type,
        calculation.base_value,
        pv_unit,
        calculation.tac_percent or 0.0,
        calculation.tac_flat or 0.0
    )
