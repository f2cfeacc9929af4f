"""
Snapshot lifecycle: builders, display summaries and persistence.
Builders funnel through the normalizers so canonical output is a fixed point of normalization.
"""
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from sqlalchemy.orm import Session

from loanquote.core.config import settings
from loanquote.core.exceptions import InvalidParametersError
from loanquote.core.logger import audit_log, get_logger_with_correlation, logger
from loanquote.core.utils import format_currency, format_percent, format_term_label, slugify
from loanquote.snapshots.models import SalesSnapshot
from loanquote.snapshots.normalizer import (
    as_list,
    as_record,
    normalize_deal_snapshot,
    normalize_proposal_snapshot,
    normalize_simulation_snapshot,
    pick,
    resolve_selected_offers,
    to_text,
)
from loanquote.snapshots.schemas import (
    DealSnapshot,
    Entity,
    PdfMetadata,
    ProposalSnapshot,
    SelectedOffer,
    SimulationParameters,
    SimulationSnapshot,
    SnapshotKind,
    SnapshotOffer,
    SnapshotTerm,
)

Snapshot = Union[SimulationSnapshot, ProposalSnapshot, DealSnapshot]

_NORMALIZERS = {
    SnapshotKind.SIMULATION: normalize_simulation_snapshot,
    SnapshotKind.PROPOSAL: normalize_proposal_snapshot,
    SnapshotKind.DEAL: normalize_deal_snapshot,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _merge_tax_ids(
    parameters: Optional[SimulationParameters],
    offers: Sequence[SnapshotOffer]
) -> Optional[SimulationParameters]:
    collected = [offer.tax_id for offer in offers if offer.tax_id]
    if parameters is None and not collected:
        return None
    if parameters is None:
        return SimulationParameters(
            base_type=None,
            base_value=None,
            simulation_date=None,
            window_id=None,
            window_label=None,
            term_options=[],
            tax_ids=list(dict.fromkeys(collected))
        )
    merged = list(dict.fromkeys([*parameters.tax_ids, *collected]))
    return parameters.model_copy(update={"tax_ids": merged})


def build_simulation_snapshot(
    convenio: Any,
    product: Any,
    offers: Sequence[Any],
    parameters: Any = None,
    generated_at: Optional[datetime] = None
) -> SimulationSnapshot:
    """
    Creates the canonical simulation snapshot from aggregator output or form data.
    Selection flags on terms are dropped: selection belongs to the proposal.
    """
    raw = {
        "version": settings.SIMULATION_SNAPSHOT_VERSION,
        "generatedAt": generated_at or _now(),
        "convenio": convenio,
        "product": product,
        "offers": [as_record(offer) or offer for offer in as_list(offers)],
        "parameters": parameters,
    }
    snapshot = normalize_simulation_snapshot(raw)
    snapshot = snapshot.model_copy(update={"parameters": _merge_tax_ids(snapshot.parameters, snapshot.offers)})

    logger.info(
        f"Simulation snapshot built: convenio={snapshot.convenio.id} product={snapshot.product.id} "
        f"offers={len(snapshot.offers)}"
    )
    return snapshot


def default_pdf_file_name(simulation: SimulationSnapshot, selected: Sequence[SelectedOffer]) -> str:
    """proposta-<bank>-<term>.pdf for the first selected offer, else proposta.pdf"""
    for entry in selected:
        for offer in simulation.offers:
            if offer.id != entry.offer_id:
                continue
            term = simulation.find_term(entry.offer_id, entry.term_id)
            months = term.term if term and term.term is not None else "prazo"
            return f"proposta-{slugify(offer.bank_name)}-{months}.pdf"
    return "proposta.pdf"


def build_proposal_snapshot(
    simulation: Any,
    selected_offers: Optional[Sequence[Any]],
    message: Any = "",
    pdf: Any = None,
    simulation_id: str = "",
    proposal_id: str = "",
    generated_at: Optional[datetime] = None
) -> ProposalSnapshot:
    """
    Wraps a simulation with the offer/term pairs shown to the client.
    Pairs that no longer exist in the simulation are dropped: the offers may have been
    recalculated after the agent made the selection.
    """
    if isinstance(simulation, SimulationSnapshot):
        normalized = simulation
    else:
        normalized = normalize_simulation_snapshot(simulation)
    if normalized is None:
        raise InvalidParametersError("Simulation is not a recognizable snapshot", field="simulation")

    entries = list(selected_offers or [])
    selected = resolve_selected_offers(normalized, entries)
    if len(selected) < len(entries):
        logger.debug(f"Dropped {len(entries) - len(selected)} stale or duplicate selection entries")

    raw_simulation = as_record(simulation) or {}
    pdf_record = as_record(pdf) or {}

    return ProposalSnapshot(
        version=settings.PROPOSAL_SNAPSHOT_VERSION,
        generated_at=generated_at or _now(),
        simulation_id=simulation_id or to_text(pick(raw_simulation, "simulationId", "id")),
        proposal_id=proposal_id,
        simulation=normalized,
        selected_offers=selected,
        message=to_text(message),
        pdf=PdfMetadata(
            file_name=to_text(pick(pdf_record, "fileName", "file_name")) or default_pdf_file_name(normalized, selected),
            url=to_text(pdf_record.get("url")),
            status=to_text(pdf_record.get("status")) or settings.DEFAULT_PDF_STATUS
        )
    )


def build_deal_snapshot(
    bank: Any,
    term: Any,
    installment: Any,
    net_amount: Any,
    total_amount: Any,
    closed_at: Optional[datetime] = None,
    proposal: Any = None,
    convenio: Any = None,
    product: Any = None,
    generated_at: Optional[datetime] = None
) -> DealSnapshot:
    """Freezes the closed terms. Agreement/product default to the proposal's."""
    if proposal is not None and not isinstance(proposal, ProposalSnapshot):
        proposal = normalize_proposal_snapshot(proposal)

    generated = generated_at or _now()
    raw = {
        "version": settings.DEAL_SNAPSHOT_VERSION,
        "generatedAt": generated,
        "simulationId": proposal.simulation_id if proposal else "",
        "proposalId": proposal.proposal_id if proposal else "",
        "convenio": convenio if convenio is not None else (proposal.simulation.convenio if proposal else None),
        "product": product if product is not None else (proposal.simulation.product if proposal else None),
        "bank": bank,
        "term": term,
        "installment": installment,
        "netAmount": net_amount,
        "totalAmount": total_amount,
        "closedAt": closed_at or generated,
    }
    deal = normalize_deal_snapshot(raw)
    logger.info(f"Deal snapshot built: bank={deal.bank.id} term={deal.term} installment={deal.installment}")
    return deal


def close_deal_from_proposal(
    proposal: ProposalSnapshot,
    offer_id: str,
    term_id: str,
    closed_at: Optional[datetime] = None
) -> DealSnapshot:
    """Copies the values of one proposal pair into a frozen deal snapshot."""
    term = proposal.simulation.find_term(offer_id, term_id)
    offer = next((item for item in proposal.simulation.offers if item.id == offer_id), None)
    if term is None or offer is None:
        raise InvalidParametersError(f"Pair {offer_id}/{term_id} is not part of the proposal", field="selection")
    return build_deal_snapshot(
        bank=Entity(id=offer.bank_id, label=offer.bank_name),
        term=term.term,
        installment=term.installment,
        net_amount=term.net_amount,
        total_amount=term.total_amount,
        closed_at=closed_at,
        proposal=proposal
    )


def normalize_snapshot(raw: Any, kind: Optional[Union[SnapshotKind, str]] = None) -> Optional[Snapshot]:
    """Dispatches to the right normalizer using `kind` (or legacy `type`)."""
    record = as_record(raw)
    if record is None:
        return None
    declared = kind or to_text(pick(record, "kind", "type"))
    try:
        snapshot_kind = SnapshotKind(declared)
    except ValueError:
        return None
    return _NORMALIZERS[snapshot_kind](record)


# Summaries


def _amount(value: Optional[float]) -> Dict[str, Any]:
    return {"value": value, "label": format_currency(value)}


def _term_summary(term: SnapshotTerm) -> Dict[str, Any]:
    monthly_rate = term.calculation.monthly_rate if term.calculation else None
    return {
        "id": term.id,
        "term": term.term,
        "termLabel": format_term_label(term.term),
        "installment": _amount(term.installment),
        "netAmount": _amount(term.net_amount),
        "totalAmount": _amount(term.total_amount),
        "coefficient": term.coefficient,
        "monthlyRate": {"value": monthly_rate, "label": format_percent(monthly_rate)},
    }


def _offer_summary(offer: SnapshotOffer) -> Dict[str, Any]:
    return {
        "id": offer.id,
        "bankName": offer.bank_name or None,
        "table": offer.table or None,
        "terms": [_term_summary(term) for term in offer.terms],
    }


def _entity_summary(entity: Entity) -> Dict[str, Optional[str]]:
    return {"id": entity.id or None, "label": entity.label or None}


def summarize_simulation(snapshot: Any) -> Optional[Dict[str, Any]]:
    """Read-only display projection; None when the input is not a snapshot at all."""
    normalized = snapshot if isinstance(snapshot, SimulationSnapshot) else normalize_simulation_snapshot(snapshot)
    if normalized is None:
        return None
    return {
        "convenio": _entity_summary(normalized.convenio),
        "product": _entity_summary(normalized.product),
        "offers": [_offer_summary(offer) for offer in normalized.offers],
    }


def summarize_proposal(snapshot: Any) -> Optional[Dict[str, Any]]:
    normalized = snapshot if isinstance(snapshot, ProposalSnapshot) else normalize_proposal_snapshot(snapshot)
    if normalized is None:
        return None

    simulation = normalized.simulation
    selected: List[Dict[str, Any]] = []
    for entry in normalized.selected_offers:
        offer = next((item for item in simulation.offers if item.id == entry.offer_id), None)
        term = simulation.find_term(entry.offer_id, entry.term_id)
        if offer is None or term is None:
            continue
        selected.append({
            "offerId": offer.id,
            "termId": term.id,
            "bankName": offer.bank_name or None,
            "table": offer.table or None,
            "term": _term_summary(term),
        })

    return {
        "convenio": _entity_summary(simulation.convenio),
        "product": _entity_summary(simulation.product),
        "offers": [_offer_summary(offer) for offer in simulation.offers],
        "selected": selected,
        "message": normalized.message or None,
        "pdf": {
            "fileName": normalized.pdf.file_name or None,
            "status": normalized.pdf.status or None,
            "url": normalized.pdf.url or None,
        },
    }


def summarize_deal(snapshot: Any) -> Optional[Dict[str, Any]]:
    normalized = snapshot if isinstance(snapshot, DealSnapshot) else normalize_deal_snapshot(snapshot)
    if normalized is None:
        return None
    return {
        "convenio": _entity_summary(normalized.convenio),
        "product": _entity_summary(normalized.product),
        "bank": _entity_summary(normalized.bank),
        "term": normalized.term,
        "termLabel": format_term_label(normalized.term),
        "installment": _amount(normalized.installment),
        "netAmount": _amount(normalized.net_amount),
        "totalAmount": _amount(normalized.total_amount),
        "closedAt": normalized.closed_at.isoformat() if normalized.closed_at else None,
    }


# Persistence


def save_snapshot(
    db: Session,
    snapshot: Snapshot,
    ticket_id: Optional[str] = None,
    correlation_id: Optional[str] = None
) -> SalesSnapshot:
    """Persists the canonical JSON payload for audit and later reloading."""
    kind = SnapshotKind(snapshot.kind)
    record = SalesSnapshot(
        kind=kind,
        version=snapshot.version,
        ticket_id=ticket_id,
        payload=json.dumps(snapshot.to_payload(), ensure_ascii=False),
        correlation_id=correlation_id
    )

    db.add(record)
    db.commit()
    db.refresh(record)

    audit_log(
        action=f"{kind.value}_snapshot_saved",
        user="system",
        resource=f"snapshot_id={record.id}",
        details={"correlation_id": correlation_id, "ticket_id": ticket_id, "version": snapshot.version}
    )

    get_logger_with_correlation(correlation_id).info(f"Snapshot persisted: id={record.id} kind={kind.value}")

    return record


def _restore(record: SalesSnapshot) -> Optional[Snapshot]:
    try:
        raw = json.loads(record.payload)
    except (TypeError, ValueError):
        logger.warning(f"Stored snapshot is not valid JSON: id={record.id}")
        return None
    return _NORMALIZERS[SnapshotKind(record.kind)](raw)


def load_snapshot(db: Session, snapshot_id: int) -> Optional[Snapshot]:
    """Loads a stored snapshot and normalizes it, so legacy payloads come back canonical."""
    record = db.query(SalesSnapshot).filter(SalesSnapshot.id == snapshot_id).first()
    if not record:
        return None
    return _restore(record)


def list_ticket_snapshots(
    db: Session,
    ticket_id: str,
    kind: Optional[SnapshotKind] = None
) -> List[Snapshot]:
    """All readable snapshots of a ticket, oldest first."""
    query = db.query(SalesSnapshot).filter(SalesSnapshot.ticket_id == ticket_id)
    if kind is not None:
        query = query.filter(SalesSnapshot.kind == kind)
    snapshots = [_restore(record) for record in query.order_by(SalesSnapshot.id).all()]
    return [snapshot for snapshot in snapshots if snapshot is not None]
