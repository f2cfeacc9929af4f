"""
Shared catalog fixtures: the INSS agreement used across the quote engine tests.
"""
from datetime import date

import pytest

from loanquote.catalog.schemas import Agreement, RateEntry, Window
from loanquote.offers.schemas import QuoteParameters
from loanquote.pricing.schemas import BaseType


@pytest.fixture
def window_2024() -> Window:
    return Window(id="janela-2024", label="Calendário 2024", start=date(2024, 1, 1), end=date(2024, 12, 31))


@pytest.fixture
def inss_rate() -> RateEntry:
    return RateEntry(
        id="taxa-banco-a",
        product_id="emprestimo",
        bank_id="banco-a",
        bank_name="Banco A",
        table_id="tabela-normal",
        table_name="Normal",
        modality="novo",
        monthly_rate=0.0199,
        terms=[72, 84],
        tac_flat=50.0,
        valid_from=date(2024, 1, 1),
        valid_until=date(2024, 12, 31),
        status="ativa"
    )


@pytest.fixture
def inss_agreement(window_2024: Window, inss_rate: RateEntry) -> Agreement:
    return Agreement(id="INSS", label="INSS", windows=[window_2024], rates=[inss_rate])


@pytest.fixture
def margin_parameters() -> QuoteParameters:
    return QuoteParameters(
        base_type=BaseType.MARGIN,
        base_value=350.0,
        simulation_date=date(2024, 3, 1),
        terms=[72]
    )
