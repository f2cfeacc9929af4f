"""
Canonical, versioned snapshot shapes persisted as JSON (camelCase keys).
Each shape is tagged by `kind` so stored payloads can be dispatched without guessing.
"""
import enum
from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from loanquote.pricing.schemas import BaseType, TermCalculation


class SnapshotKind(str, enum.Enum):
    SIMULATION = "simulation"
    PROPOSAL = "proposal"
    DEAL = "deal"


class SnapshotModel(BaseModel):
    """Base for every persisted shape: immutable, camelCase on the wire."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class Entity(SnapshotModel):
    id: str = ""
    label: str = ""


class SnapshotTerm(SnapshotModel):
    id: str
    term: Optional[int] = None
    installment: Optional[float] = None
    net_amount: Optional[float] = None
    total_amount: Optional[float] = None
    coefficient: Optional[float] = None
    tac_value: Optional[float] = None
    source: str = ""
    calculation: Optional[TermCalculation] = None
    metadata: Optional[Dict[str, Any]] = None


class SnapshotOffer(SnapshotModel):
    id: str
    bank_id: str = ""
    bank_name: str = ""
    table: str = ""
    table_id: str = ""
    tax_id: str = ""
    modality: str = ""
    rank: int = 1
    source: str = ""
    metadata: Optional[Dict[str, Any]] = None
    terms: List[SnapshotTerm] = Field(default_factory=list)


class SimulationParameters(SnapshotModel):
    base_type: Optional[BaseType] = None
    base_value: Optional[float] = None
    simulation_date: Optional[date] = None
    window_id: Optional[str] = None
    window_label: Optional[str] = None
    term_options: List[int] = Field(default_factory=list)
    tax_ids: List[str] = Field(default_factory=list)


class SimulationSnapshot(SnapshotModel):
    """Priced offers for one agreement/product. Carries no selection state."""
    kind: Literal["simulation"] = "simulation"
    version: Optional[str] = None
    generated_at: Optional[datetime] = None
    convenio: Entity = Field(default_factory=Entity)
    product: Entity = Field(default_factory=Entity)
    offers: List[SnapshotOffer] = Field(default_factory=list)
    parameters: Optional[SimulationParameters] = None

    def has_pair(self, offer_id: str, term_id: str) -> bool:
        return any(
            offer.id == offer_id and any(term.id == term_id for term in offer.terms)
            for offer in self.offers
        )

    def find_term(self, offer_id: str, term_id: str) -> Optional[SnapshotTerm]:
        for offer in self.offers:
            if offer.id != offer_id:
                continue
            for term in offer.terms:
                if term.id == term_id:
                    return term
        return None


class SelectedOffer(SnapshotModel):
    offer_id: str
    term_id: str


class PdfMetadata(SnapshotModel):
    file_name: str = ""
    status: str = "pending"
    url: str = ""


class ProposalSnapshot(SnapshotModel):
    """A simulation plus the offer/term pairs presented to the client."""
    kind: Literal["proposal"] = "proposal"
    version: Optional[str] = None
    generated_at: Optional[datetime] = None
    simulation_id: str = ""
    proposal_id: str = ""
    simulation: SimulationSnapshot
    selected_offers: List[SelectedOffer] = Field(default_factory=list)
    message: str = ""
    pdf: PdfMetadata = Field(default_factory=PdfMetadata)


class DealSnapshot(SnapshotModel):
    """Frozen closed terms. Holds values, never live offer references."""
    kind: Literal["deal"] = "deal"
    version: Optional[str] = None
    generated_at: Optional[datetime] = None
    simulation_id: str = ""
    proposal_id: str = ""
    convenio: Entity = Field(default_factory=Entity)
    product: Entity = Field(default_factory=Entity)
    bank: Entity = Field(default_factory=Entity)
    term: Optional[int] = None
    installment: Optional[float] = None
    net_amount: Optional[float] = None
    total_amount: Optional[float] = None
    closed_at: Optional[datetime] = None


AnySnapshot = Annotated[
    Union[SimulationSnapshot, ProposalSnapshot, DealSnapshot],
    Field(discriminator="kind")
]
