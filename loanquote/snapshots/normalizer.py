"""
Legacy-tolerant coercion of stored snapshots into the canonical shapes.
All shape guessing lives here; builders and summaries only see canonical models.
Normalizers never raise on malformed input: they return None or a best-effort object.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel

from loanquote.core.config import settings
from loanquote.core.parsing import date_or_none, integer_or_none, number_or_none
from loanquote.pricing.schemas import BaseType, TermCalculation
from loanquote.snapshots.schemas import (
    DealSnapshot,
    Entity,
    PdfMetadata,
    ProposalSnapshot,
    SelectedOffer,
    SimulationParameters,
    SimulationSnapshot,
    SnapshotModel,
    SnapshotOffer,
    SnapshotTerm,
)

ENTITY_ID_KEYS = ("id", "identifier", "value", "slug", "code")
ENTITY_LABEL_KEYS = ("label", "name", "nome", "title", "description")

_BASE_TYPE_ALIASES = {
    "margin": BaseType.MARGIN,
    "margem": BaseType.MARGIN,
    "installment": BaseType.MARGIN,
    "net": BaseType.NET,
    "liquido": BaseType.NET,
    "netamount": BaseType.NET,
    "net_value": BaseType.NET,
}


def as_record(value: Any) -> Optional[Dict[str, Any]]:
    if isinstance(value, SnapshotModel):
        return value.to_payload()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, Mapping):
        return dict(value)
    return None


def as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def to_text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    return ""


def pick(record: Mapping[str, Any], *keys: str) -> Any:
    """First non-None value among the given keys."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def to_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def to_entity(value: Any) -> Entity:
    """Accepts {id,label}-like records, bare ids, or None."""
    record = as_record(value)
    if record is None:
        text = to_text(value)
        return Entity(id=text, label=text)

    entity_id = ""
    for key in ENTITY_ID_KEYS:
        candidate = record.get(key)
        if isinstance(candidate, str) and candidate.strip():
            entity_id = candidate.strip()
            break
        if isinstance(candidate, int) and not isinstance(candidate, bool):
            entity_id = str(candidate)
            break

    label = ""
    for key in ENTITY_LABEL_KEYS:
        candidate = record.get(key)
        if isinstance(candidate, str) and candidate.strip():
            label = candidate.strip()
            break

    return Entity(id=entity_id, label=label or entity_id)


def normalize_base_type(value: Any) -> Optional[BaseType]:
    return _BASE_TYPE_ALIASES.get(to_text(value).lower())


def _texts(values: Iterable[Any]) -> List[str]:
    return [text for text in (to_text(value) for value in values) if text]


def _integers(values: Iterable[Any]) -> List[int]:
    return [number for number in (integer_or_none(value) for value in values) if number is not None]


def normalize_parameters(value: Any) -> Optional[SimulationParameters]:
    record = as_record(value)
    if record is None:
        return None
    return SimulationParameters(
        base_type=normalize_base_type(pick(record, "baseType", "base_type", "mode", "tipoBase")),
        base_value=number_or_none(pick(record, "baseValue", "base_value", "valorBase", "value")),
        simulation_date=date_or_none(pick(record, "simulationDate", "simulation_date", "date", "data")),
        window_id=to_text(pick(record, "windowId", "window_id", "janelaId")) or None,
        window_label=to_text(pick(record, "windowLabel", "window_label", "janela")) or None,
        term_options=_integers(as_list(pick(record, "termOptions", "term_options", "terms", "prazos"))),
        tax_ids=list(dict.fromkeys(_texts(as_list(pick(record, "taxIds", "tax_ids")))))
    )


def normalize_calculation(value: Any) -> Optional[TermCalculation]:
    record = as_record(value)
    if record is None:
        return None
    return TermCalculation(
        base_type=normalize_base_type(pick(record, "baseType", "base_type")),
        base_value=number_or_none(pick(record, "baseValue", "base_value")),
        simulation_date=date_or_none(pick(record, "simulationDate", "simulation_date")),
        window_id=to_text(pick(record, "windowId", "window_id")) or None,
        window_label=to_text(pick(record, "windowLabel", "window_label")) or None,
        rate_id=to_text(pick(record, "rateId", "rate_id", "taxId", "tax_id")) or None,
        modality=to_text(pick(record, "modality", "modalidade")) or None,
        product=to_text(pick(record, "product", "produto")) or None,
        monthly_rate=number_or_none(pick(record, "monthlyRate", "monthly_rate")),
        daily_rate=number_or_none(pick(record, "dailyRate", "daily_rate")),
        grace_days=integer_or_none(pick(record, "graceDays", "grace_days")),
        present_value_unit=number_or_none(pick(record, "presentValueUnit", "present_value_unit")),
        tac_percent=number_or_none(pick(record, "tacPercent", "tac_percent")),
        tac_flat=number_or_none(pick(record, "tacFlat", "tac_flat"))
    )


def _term_id(record: Mapping[str, Any], offer_id: str, months: Optional[int], index: int) -> str:
    explicit = to_text(pick(record, "id", "termId", "term_id"))
    if explicit:
        return explicit
    if months is not None:
        return f"{offer_id}-{months}"
    return f"{offer_id}-term-{index + 1}"


def normalize_term(value: Any, offer_id: str, index: int) -> SnapshotTerm:
    record = as_record(value)
    if record is None:
        # Very old shapes stored bare term lengths
        months = integer_or_none(value)
        return SnapshotTerm(id=_term_id({}, offer_id, months, index), term=months)

    months = integer_or_none(pick(record, "term", "months", "prazo"))
    metadata = as_record(record.get("metadata"))
    return SnapshotTerm(
        id=_term_id(record, offer_id, months, index),
        term=months,
        installment=number_or_none(pick(record, "installment", "valorParcela", "amount", "valor")),
        net_amount=number_or_none(pick(record, "netAmount", "net_amount", "valorLiquido", "net_value", "net")),
        total_amount=number_or_none(
            pick(record, "totalAmount", "total_amount", "grossAmount", "gross_amount", "valorBruto", "total")
        ),
        coefficient=number_or_none(pick(record, "coefficient", "coeficiente")),
        tac_value=number_or_none(pick(record, "tacValue", "tac_value", "tac")),
        source=to_text(record.get("source")),
        calculation=normalize_calculation(record.get("calculation")),
        metadata=metadata
    )


def _raw_terms(record: Mapping[str, Any]) -> List[Any]:
    terms = as_list(pick(record, "terms", "options", "prazos", "installments"))
    if not terms and record.get("term") is not None:
        # Flat legacy offer: one term stored on the offer itself
        terms = [{
            "term": record.get("term"),
            "installment": pick(record, "installment", "amount"),
            "netAmount": pick(record, "netAmount", "net_amount", "net_value"),
            "totalAmount": pick(record, "totalAmount", "total_amount", "grossAmount"),
            "selected": record.get("selected"),
        }]
    return terms


def _offer_id(record: Mapping[str, Any], index: int) -> str:
    return to_text(pick(record, "id", "offerId", "offer_id", "bankId", "bank_id")) or f"offer-{index + 1}"


def normalize_offer(value: Any, index: int) -> SnapshotOffer:
    record = as_record(value)
    if record is None:
        return SnapshotOffer(id=f"offer-{index + 1}", bank_name=f"Banco {index + 1}", rank=index + 1)

    offer_id = _offer_id(record, index)
    rank = integer_or_none(record.get("rank"))
    return SnapshotOffer(
        id=offer_id,
        bank_id=to_text(pick(record, "bankId", "bank_id")) or offer_id,
        bank_name=to_text(pick(record, "bankName", "bank_name", "bank", "nome", "label")) or f"Banco {index + 1}",
        table=to_text(pick(record, "table", "tabela", "sheet")),
        table_id=to_text(pick(record, "tableId", "table_id")),
        tax_id=to_text(pick(record, "taxId", "tax_id")),
        modality=to_text(pick(record, "modality", "modalidade")),
        rank=rank if rank is not None else index + 1,
        source=to_text(record.get("source")),
        metadata=as_record(record.get("metadata")),
        terms=[normalize_term(term, offer_id, term_index) for term_index, term in enumerate(_raw_terms(record))]
    )


def _raw_offers(record: Mapping[str, Any]) -> Optional[List[Any]]:
    offers = pick(record, "offers", "options", "banks")
    return list(offers) if isinstance(offers, (list, tuple)) else None


def normalize_simulation_snapshot(raw: Any) -> Optional[SimulationSnapshot]:
    """
    Coerces stored or legacy data into a SimulationSnapshot.
    Returns None only when the input is not a mapping or has no offers array.
    """
    record = as_record(raw)
    if record is None:
        return None
    offers = _raw_offers(record)
    if offers is None:
        return None

    return SimulationSnapshot(
        version=to_text(pick(record, "version", "flowVersion")) or None,
        generated_at=to_datetime(pick(record, "generatedAt", "generated_at")),
        convenio=to_entity(pick(record, "convenio", "agreement", "convenioId", "agreementId")),
        product=to_entity(pick(record, "product", "productType", "productId", "product_id")),
        offers=[normalize_offer(offer, index) for index, offer in enumerate(offers)],
        parameters=normalize_parameters(pick(record, "parameters", "calculation"))
    )


def selection_pair(entry: Any) -> Optional[Tuple[str, str]]:
    """Extracts (offer id, term key) from a dict, model or 2-tuple selection entry."""
    if isinstance(entry, (tuple, list)) and len(entry) == 2:
        return to_text(entry[0]), to_text(entry[1])
    offer_id = getattr(entry, "offer_id", None)
    term_id = getattr(entry, "term_id", None)
    if offer_id is not None and term_id is not None:
        return to_text(offer_id), to_text(term_id)
    record = as_record(entry)
    if record is None:
        return None
    offer_id = to_text(pick(record, "offerId", "offer_id", "id"))
    term_id = to_text(pick(record, "termId", "term_id", "term"))
    if not offer_id or not term_id:
        return None
    return offer_id, term_id


def resolve_selection(simulation: SimulationSnapshot, offer_id: str, term_key: str) -> Optional[SelectedOffer]:
    """
    Maps a selection entry onto a pair present in the simulation.
    Term keys are matched by id first, then by term length (old entries stored months).
    """
    for offer in simulation.offers:
        if offer.id != offer_id:
            continue
        for term in offer.terms:
            if term.id == term_key:
                return SelectedOffer(offer_id=offer.id, term_id=term.id)
        if not term_key.strip().isdecimal():
            continue
        months = int(term_key)
        for term in offer.terms:
            if term.term == months:
                return SelectedOffer(offer_id=offer.id, term_id=term.id)
    return None


def resolve_selected_offers(simulation: SimulationSnapshot, entries: Sequence[Any]) -> List[SelectedOffer]:
    """Keeps only entries present in the simulation, deduplicated in input order."""
    resolved: Dict[Tuple[str, str], SelectedOffer] = {}
    for entry in entries:
        pair = selection_pair(entry)
        if pair is None:
            continue
        selected = resolve_selection(simulation, *pair)
        if selected is not None:
            resolved.setdefault((selected.offer_id, selected.term_id), selected)
    return list(resolved.values())


def inline_selection(record: Mapping[str, Any], simulation: SimulationSnapshot) -> List[SelectedOffer]:
    """Rebuilds the selection from `offers[].terms[].selected` flags of old shapes."""
    selected: List[SelectedOffer] = []
    raw_offers = _raw_offers(record) or []
    for raw_offer, offer in zip(raw_offers, simulation.offers):
        offer_record = as_record(raw_offer)
        if offer_record is None:
            continue
        for raw_term, term in zip(_raw_terms(offer_record), offer.terms):
            term_record = as_record(raw_term)
            if term_record is not None and term_record.get("selected") is True:
                selected.append(SelectedOffer(offer_id=offer.id, term_id=term.id))
    return selected


def normalize_pdf(record: Mapping[str, Any]) -> PdfMetadata:
    pdf = as_record(record.get("pdf"))
    if pdf is not None:
        return PdfMetadata(
            file_name=to_text(pick(pdf, "fileName", "file_name", "name")),
            url=to_text(pdf.get("url")),
            status=to_text(pdf.get("status")) or settings.DEFAULT_PDF_STATUS
        )
    return PdfMetadata(
        file_name=to_text(pick(record, "pdfFileName", "pdf_name")),
        url=to_text(pick(record, "pdfUrl", "pdf_url")),
        status=to_text(record.get("pdfStatus")) or settings.DEFAULT_PDF_STATUS
    )


def normalize_proposal_snapshot(raw: Any) -> Optional[ProposalSnapshot]:
    """
    Coerces stored or legacy data into a ProposalSnapshot.
    Older shapes kept offers at the top level and marked the selection inline.
    """
    record = as_record(raw)
    if record is None:
        return None

    nested = as_record(pick(record, "simulation", "simulationSnapshot"))
    simulation_record = nested if nested is not None else record
    simulation = normalize_simulation_snapshot(simulation_record)
    if simulation is None:
        return None

    explicit = pick(record, "selectedOffers", "selected_offers")
    if isinstance(explicit, (list, tuple)):
        selected_offers = resolve_selected_offers(simulation, explicit)
    else:
        selected_offers = inline_selection(simulation_record, simulation)

    return ProposalSnapshot(
        version=to_text(pick(record, "version", "flowVersion")) or None,
        generated_at=to_datetime(pick(record, "generatedAt", "generated_at")),
        simulation_id=to_text(pick(record, "simulationId", "simulation_id")),
        proposal_id=to_text(pick(record, "proposalId", "proposal_id", "id")),
        simulation=simulation,
        selected_offers=selected_offers,
        message=to_text(pick(record, "message", "whatsappMessage")),
        pdf=normalize_pdf(record)
    )


def normalize_deal_snapshot(raw: Any) -> Optional[DealSnapshot]:
    """Coerces stored or legacy data into a DealSnapshot. Missing values stay None."""
    record = as_record(raw)
    if record is None:
        return None

    proposal_record = as_record(pick(record, "proposalSnapshot", "proposal"))
    proposal = normalize_proposal_snapshot(proposal_record) if proposal_record is not None else None

    convenio_raw = pick(record, "convenio", "agreement")
    product_raw = pick(record, "product", "productType")
    if convenio_raw is not None or proposal is None:
        convenio = to_entity(convenio_raw)
    else:
        convenio = proposal.simulation.convenio
    if product_raw is not None or proposal is None:
        product = to_entity(product_raw)
    else:
        product = proposal.simulation.product

    return DealSnapshot(
        version=to_text(pick(record, "version", "flowVersion")) or None,
        generated_at=to_datetime(pick(record, "generatedAt", "generated_at")),
        simulation_id=to_text(pick(record, "simulationId", "simulation_id"))
        or (proposal.simulation_id if proposal else ""),
        proposal_id=to_text(pick(record, "proposalId", "proposal_id")) or (proposal.proposal_id if proposal else ""),
        convenio=convenio,
        product=product,
        bank=to_entity(pick(record, "bank", "financialInstitution", "banco", "bankId", "bankName")),
        term=integer_or_none(pick(record, "term", "termMonths", "prazo")),
        installment=number_or_none(pick(record, "installment", "valorParcela", "parcela")),
        net_amount=number_or_none(pick(record, "netAmount", "net_amount", "valorLiquido", "liquido")),
        total_amount=number_or_none(pick(record, "totalAmount", "total_amount", "valorBruto", "total")),
        closed_at=to_datetime(pick(record, "closedAt", "closed_at"))
    )
