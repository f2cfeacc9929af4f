"""
Unit tests for snapshot builders, normalizers and summaries.
Validates idempotence, legacy-shape tolerance and selection filtering.
"""
import json
from datetime import date, datetime, timezone

import pytest

from loanquote.catalog.schemas import Agreement
from loanquote.core.exceptions import InvalidParametersError
from loanquote.offers.schemas import QuoteParameters
from loanquote.offers.service import quote_agreement
from loanquote.pricing.schemas import BaseType
from loanquote.snapshots.normalizer import (
    normalize_deal_snapshot,
    normalize_proposal_snapshot,
    normalize_simulation_snapshot,
)
from loanquote.snapshots.schemas import SelectedOffer, SimulationSnapshot
from loanquote.snapshots.service import (
    build_deal_snapshot,
    build_proposal_snapshot,
    build_simulation_snapshot,
    close_deal_from_proposal,
    default_pdf_file_name,
    normalize_snapshot,
    summarize_deal,
    summarize_proposal,
    summarize_simulation,
)

GENERATED_AT = datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)


@pytest.fixture
def simulation(inss_agreement: Agreement) -> SimulationSnapshot:
    parameters = QuoteParameters(
        base_type=BaseType.MARGIN, base_value=350, simulation_date=date(2024, 3, 1), terms=[72, 84]
    )
    result = quote_agreement(inss_agreement, "emprestimo", parameters)
    return build_simulation_snapshot(
        convenio=inss_agreement,
        product={"id": "emprestimo", "label": "Empréstimo consignado"},
        offers=result.offers,
        parameters=result.parameters,
        generated_at=GENERATED_AT
    )


def test_build_simulation_snapshot_shape(simulation: SimulationSnapshot):
    payload = simulation.to_payload()

    assert payload["kind"] == "simulation"
    assert payload["version"] == "2025-01"
    assert payload["convenio"] == {"id": "INSS", "label": "INSS"}
    assert payload["parameters"]["baseType"] == "margin"
    assert payload["parameters"]["termOptions"] == [72, 84]
    assert payload["parameters"]["taxIds"] == ["taxa-banco-a"]

    term = payload["offers"][0]["terms"][0]
    assert term["id"] == "taxa-banco-a-72"
    assert term["installment"] == 350
    assert term["calculation"]["windowId"] == "janela-2024"
    assert "selected" not in term


def test_simulation_normalization_is_idempotent(simulation: SimulationSnapshot):
    stored = json.loads(json.dumps(simulation.to_payload()))

    assert normalize_simulation_snapshot(stored) == simulation
    assert normalize_simulation_snapshot(simulation) == simulation


def test_build_strips_selected_flags(simulation: SimulationSnapshot):
    offers = [offer.to_payload() for offer in simulation.offers]
    offers[0]["terms"][0]["selected"] = True

    rebuilt = build_simulation_snapshot(simulation.convenio, simulation.product, offers, generated_at=GENERATED_AT)

    assert "selected" not in json.dumps(rebuilt.to_payload())


def test_normalize_legacy_simulation_shape():
    legacy = {
        "type": "simulation",
        "agreement": {"slug": "siape", "nome": "SIAPE"},
        "productType": "emprestimo",
        "banks": [
            {
                "bankId": "bmg",
                "bank": "BMG",
                "tabela": "Normal",
                "rank": "2",
                "prazos": [
                    {"prazo": "84", "valorParcela": "R$ 1.234,56", "valorLiquido": "45.000,10", "coeficiente": "0,0213"},
                    72,
                ],
            },
            "garbage",
        ],
    }

    snapshot = normalize_simulation_snapshot(legacy)

    assert snapshot.convenio.id == "siape"
    assert snapshot.convenio.label == "SIAPE"
    assert snapshot.product.id == "emprestimo"
    assert snapshot.parameters is None

    offer = snapshot.offers[0]
    assert offer.id == "bmg"
    assert offer.bank_name == "BMG"
    assert offer.rank == 2
    assert offer.terms[0].id == "bmg-84"
    assert offer.terms[0].term == 84
    assert offer.terms[0].installment == 1234.56
    assert offer.terms[0].net_amount == 45000.10
    assert offer.terms[0].coefficient == 0.0213
    assert offer.terms[1].term == 72

    # Unrecognizable offers degrade to placeholders instead of failing
    assert snapshot.offers[1].id == "offer-2"
    assert snapshot.offers[1].bank_name == "Banco 2"


@pytest.mark.parametrize("raw", [None, "snapshot", 42, [], {"convenio": "INSS"}, {"offers": "none"}])
def test_normalize_simulation_rejects_unrecognizable_input(raw):
    assert normalize_simulation_snapshot(raw) is None


def test_proposal_drops_stale_selection(simulation: SimulationSnapshot):
    selected = [
        {"offerId": "taxa-banco-a", "termId": "taxa-banco-a-72"},
        {"offerId": "taxa-banco-a", "termId": "taxa-banco-a-84"},
        {"offerId": "taxa-banco-a", "termId": "taxa-banco-a-999"},
    ]

    proposal = build_proposal_snapshot(simulation, selected, message="Olá!", generated_at=GENERATED_AT)

    assert len(proposal.selected_offers) == len(selected) - 1
    assert proposal.selected_offers == [
        SelectedOffer(offer_id="taxa-banco-a", term_id="taxa-banco-a-72"),
        SelectedOffer(offer_id="taxa-banco-a", term_id="taxa-banco-a-84"),
    ]
    assert proposal.pdf.file_name == "proposta-banco-a-72.pdf"
    assert proposal.pdf.status == "pending"


def test_proposal_normalization_is_idempotent(simulation: SimulationSnapshot):
    proposal = build_proposal_snapshot(
        simulation,
        [("taxa-banco-a", "taxa-banco-a-84")],
        message="Segue proposta",
        pdf={"fileName": "custom.pdf", "url": "https://files.example/custom.pdf", "status": "ready"},
        simulation_id="sim-1",
        proposal_id="prop-1",
        generated_at=GENERATED_AT
    )
    stored = json.loads(json.dumps(proposal.to_payload()))

    assert normalize_proposal_snapshot(stored) == proposal
    assert normalize_snapshot(stored) == proposal


def test_build_proposal_rejects_unrecognizable_simulation():
    with pytest.raises(InvalidParametersError):
        build_proposal_snapshot({"no": "offers"}, [])


def test_legacy_proposal_with_inline_selection():
    legacy = {
        "type": "proposal",
        "convenio": "INSS",
        "offers": [
            {"id": "o1", "bankName": "Banco A", "terms": [
                {"id": "t72", "term": 72, "installment": 350, "selected": True},
                {"id": "t84", "term": 84, "installment": 320},
            ]},
            {"id": "o2", "bankName": "Banco B", "terms": [{"term": 84, "installment": 310, "selected": True}]},
        ],
        "pdfFileName": "antiga.pdf",
    }

    proposal = normalize_proposal_snapshot(legacy)

    assert proposal.selected_offers == [
        SelectedOffer(offer_id="o1", term_id="t72"),
        SelectedOffer(offer_id="o2", term_id="o2-84"),
    ]
    assert proposal.pdf.file_name == "antiga.pdf"
    assert proposal.pdf.status == "pending"
    assert proposal.simulation.convenio.id == "INSS"


def test_legacy_selected_offers_by_term_length():
    """Old selection lists stored the term length instead of the term id."""
    legacy = {
        "simulation": {"offers": [{"id": "o1", "terms": [{"id": "x", "term": 72}, {"id": "y", "term": 84}]}]},
        "selectedOffers": [{"offerId": "o1", "bankName": "Banco A", "term": 84}, {"offerId": "gone", "term": 72}],
    }

    proposal = normalize_proposal_snapshot(legacy)

    assert proposal.selected_offers == [SelectedOffer(offer_id="o1", term_id="y")]


def test_deal_snapshot_from_proposal(simulation: SimulationSnapshot):
    proposal = build_proposal_snapshot(simulation, [("taxa-banco-a", "taxa-banco-a-72")], proposal_id="prop-9")
    closed_at = datetime(2024, 3, 5, 15, 0, tzinfo=timezone.utc)

    deal = close_deal_from_proposal(proposal, "taxa-banco-a", "taxa-banco-a-72", closed_at=closed_at)

    assert deal.kind == "deal"
    assert deal.proposal_id == "prop-9"
    assert deal.bank.label == "Banco A"
    assert deal.term == 72
    assert deal.installment == 350
    assert deal.closed_at == closed_at
    assert deal.convenio.id == "INSS"
    assert normalize_deal_snapshot(json.loads(json.dumps(deal.to_payload()))) == deal


def test_close_deal_rejects_unknown_pair(simulation: SimulationSnapshot):
    proposal = build_proposal_snapshot(simulation, [])

    with pytest.raises(InvalidParametersError):
        close_deal_from_proposal(proposal, "taxa-banco-a", "nope")


def test_build_deal_coerces_strings():
    deal = build_deal_snapshot(
        bank={"id": "bmg", "name": "BMG"},
        term="84x",
        installment="R$ 350,00",
        net_amount="15.000,00",
        total_amount=None,
        convenio="INSS",
        generated_at=GENERATED_AT
    )

    assert deal.term == 84
    assert deal.installment == 350.0
    assert deal.net_amount == 15000.0
    assert deal.total_amount is None
    assert deal.closed_at == GENERATED_AT


def test_summaries_do_not_mutate(simulation: SimulationSnapshot):
    before = simulation.to_payload()

    summary = summarize_simulation(simulation)

    assert simulation.to_payload() == before
    term = summary["offers"][0]["terms"][0]
    assert term["termLabel"] == "72x"
    assert term["installment"] == {"value": 350, "label": "R$ 350,00"}
    assert term["monthlyRate"] == {"value": 0.0199, "label": "1,99%"}


def test_summaries_tolerate_partial_snapshots():
    simulation_summary = summarize_simulation({"offers": [{"terms": [{}]}]})
    term = simulation_summary["offers"][0]["terms"][0]
    assert term["term"] is None
    assert term["termLabel"] == "--"
    assert term["installment"] == {"value": None, "label": "--"}
    assert simulation_summary["convenio"] == {"id": None, "label": None}

    proposal_summary = summarize_proposal({"offers": []})
    assert proposal_summary["selected"] == []
    assert proposal_summary["message"] is None

    deal_summary = summarize_deal({})
    assert deal_summary["bank"] == {"id": None, "label": None}
    assert deal_summary["closedAt"] is None

    assert summarize_simulation("not a snapshot") is None
    assert summarize_proposal(None) is None
    assert summarize_deal([]) is None


def test_summarize_proposal_lists_selected_terms(simulation: SimulationSnapshot):
    proposal = build_proposal_snapshot(simulation, [("taxa-banco-a", "taxa-banco-a-84")], message="Oi")

    summary = summarize_proposal(proposal.to_payload())

    assert [entry["termId"] for entry in summary["selected"]] == ["taxa-banco-a-84"]
    assert summary["selected"][0]["bankName"] == "Banco A"
    assert summary["message"] == "Oi"


@pytest.mark.parametrize("term_id", ["old72", "72abc", "taxa-banco-a-72-v1", "7 2"])
def test_term_id_with_digits_is_not_read_as_months(simulation: SimulationSnapshot, term_id: str):
    proposal = build_proposal_snapshot(simulation, [{"offerId": "taxa-banco-a", "termId": term_id}])

    assert proposal.selected_offers == []


def test_plain_month_count_still_matches_legacy_entry(simulation: SimulationSnapshot):
    proposal = build_proposal_snapshot(simulation, [{"offerId": "taxa-banco-a", "termId": " 84 "}])

    assert proposal.selected_offers == [SelectedOffer(offer_id="taxa-banco-a", term_id="taxa-banco-a-84")]


def test_default_pdf_file_name(simulation: SimulationSnapshot):
    first = SelectedOffer(offer_id="taxa-banco-a", term_id="taxa-banco-a-84")
    unknown_term = SelectedOffer(offer_id="taxa-banco-a", term_id="gone")
    unknown_offer = SelectedOffer(offer_id="nope", term_id="taxa-banco-a-84")

    assert default_pdf_file_name(simulation, [first]) == "proposta-banco-a-84.pdf"
    assert default_pdf_file_name(simulation, [unknown_offer, first]) == "proposta-banco-a-84.pdf"
    assert default_pdf_file_name(simulation, [unknown_term]) == "proposta-banco-a-prazo.pdf"
    assert default_pdf_file_name(simulation, []) == "proposta.pdf"
