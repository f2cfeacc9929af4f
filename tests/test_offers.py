"""
Unit tests for the offer aggregator.
Validates ranking, issue reporting and determinism.
"""
from datetime import date

import pytest

from loanquote.catalog.schemas import Agreement, RateEntry, Window
from loanquote.catalog.service import find_active_window
from loanquote.offers.schemas import IssueSeverity, QuoteParameters
from loanquote.offers.service import (
    aggregate_offers,
    collect_parameter_errors,
    parse_quote_parameters,
    quote_agreement,
    visible_offers,
)
from loanquote.pricing.schemas import BaseType


def test_inss_margin_scenario(inss_agreement: Agreement, margin_parameters: QuoteParameters):
    result = quote_agreement(inss_agreement, "emprestimo", margin_parameters)

    assert result.issues == []
    assert len(result.offers) == 1
    offer = result.offers[0]
    assert offer.bank_name == "Banco A"
    assert len(offer.terms) == 1

    term = offer.terms[0]
    assert term.id == "taxa-banco-a-72"
    assert term.installment == 350
    assert term.total_amount - term.net_amount == pytest.approx(50.0)
    assert term.coefficient == pytest.approx(0.0199 / (1 - 1.0199 ** -72), rel=1e-9)
    assert term.calculation.window_id == "janela-2024"
    assert term.calculation.rate_id == "taxa-banco-a"
    assert term.calculation.grace_days == 30
    assert result.parameters.tax_ids == ["taxa-banco-a"]


def test_date_after_window_blocks_quote(inss_agreement: Agreement):
    parameters = QuoteParameters(
        base_type=BaseType.MARGIN,
        base_value=350,
        simulation_date=date(2025, 1, 1),
        terms=[72]
    )

    assert find_active_window(inss_agreement, parameters.simulation_date) is None

    result = quote_agreement(inss_agreement, "emprestimo", parameters)

    assert result.offers == []
    assert len(result.blocking_issues) == 1
    assert result.blocking_issues[0].type == "no_active_window"
    assert result.can_submit is False


def test_no_active_rates_is_blocking(window_2024: Window, margin_parameters: QuoteParameters):
    result = aggregate_offers([], margin_parameters, window_2024)

    assert [issue.type for issue in result.issues] == ["no_active_rates"]
    assert result.issues[0].severity == IssueSeverity.ERROR


def test_unsupported_term_on_one_rate_is_a_warning(window_2024: Window, inss_rate: RateEntry):
    other = RateEntry(id="taxa-b", product_id="emprestimo", bank_name="Banco B", monthly_rate=0.018, terms=[96])
    parameters = QuoteParameters(
        base_type=BaseType.MARGIN, base_value=300, simulation_date=date(2024, 3, 1), terms=[72, 96]
    )

    result = aggregate_offers([inss_rate, other], parameters, window_2024)

    assert [offer.id for offer in result.offers] == ["taxa-banco-a", "taxa-b"]
    assert all(issue.severity == IssueSeverity.WARNING for issue in result.issues)
    assert {issue.context for issue in result.issues} == {"Banco A • 96 meses", "Banco B • 72 meses"}
    assert result.can_submit is True


def test_term_offered_by_no_rate_is_blocking(window_2024: Window, inss_rate: RateEntry):
    parameters = QuoteParameters(
        base_type=BaseType.MARGIN, base_value=300, simulation_date=date(2024, 3, 1), terms=[72, 120]
    )

    result = aggregate_offers([inss_rate], parameters, window_2024)

    assert len(result.offers) == 1
    assert [issue.type for issue in result.blocking_issues] == ["term_not_offered"]
    assert result.blocking_issues[0].context == "120 meses"


def test_rate_without_monthly_rate_does_not_abort_batch(window_2024: Window, inss_rate: RateEntry):
    broken = RateEntry(id="sem-taxa", product_id="emprestimo", bank_name="Banco Z", terms=[72])

    result = aggregate_offers([broken, inss_rate], QuoteParameters(
        base_type=BaseType.MARGIN, base_value=300, simulation_date=date(2024, 3, 1), terms=[72]
    ), window_2024)

    assert [offer.id for offer in result.offers] == ["taxa-banco-a"]
    assert [issue.type for issue in result.issues] == ["missing_rate"]


def test_ranking_uses_explicit_rank_then_bank_name(window_2024: Window, margin_parameters: QuoteParameters):
    rates = [
        RateEntry(id="c", product_id="emprestimo", bank_name="Caixa", monthly_rate=0.02, rank=2),
        RateEntry(id="b", product_id="emprestimo", bank_name="Bradesco", monthly_rate=0.021, rank=2),
        RateEntry(id="z", product_id="emprestimo", bank_name="Zeta", monthly_rate=0.019, rank=1),
        RateEntry(id="d", product_id="emprestimo", bank_name="Daycoval", monthly_rate=0.022),
    ]

    result = aggregate_offers(rates, margin_parameters, window_2024)

    # "d" has no explicit rank and falls back to its declaration position (4)
    assert [offer.id for offer in result.offers] == ["z", "b", "c", "d"]
    assert [offer.id for offer in visible_offers(result.offers)] == ["z", "b", "c"]


def test_aggregation_is_deterministic(inss_agreement: Agreement, margin_parameters: QuoteParameters):
    first = quote_agreement(inss_agreement, "emprestimo", margin_parameters)
    second = quote_agreement(inss_agreement, "emprestimo", margin_parameters)

    assert first == second


def test_net_mode_aggregation(inss_agreement: Agreement):
    parameters = QuoteParameters(
        base_type=BaseType.NET, base_value=12000, simulation_date=date(2024, 3, 1), terms=[72, 84]
    )

    result = quote_agreement(inss_agreement, "emprestimo", parameters)

    terms = result.offers[0].terms
    assert [term.term for term in terms] == [72, 84]
    assert all(term.net_amount == pytest.approx(12000) for term in terms)
    assert terms[1].installment < terms[0].installment


def test_parse_quote_parameters_accepts_formatted_amount():
    parameters = parse_quote_parameters({
        "base_type": "margin",
        "base_value": "R$ 1.350,00",
        "simulation_date": "2024-03-01",
        "terms": [84, 72, 84],
    })

    assert parameters.base_value == 1350.0
    assert parameters.terms == [84, 72]


def test_collect_parameter_errors_reports_each_field():
    errors = collect_parameter_errors({"base_type": "margin", "base_value": 0, "terms": []})

    assert set(errors) == {"base_value", "simulation_date", "terms"}
    assert collect_parameter_errors({
        "base_type": "net", "base_value": 1000, "simulation_date": "2024-03-01", "terms": [72]
    }) == {}
