"""
Pydantic schemas for quote parameters and aggregated bank offers.
"""
import enum
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from loanquote.pricing.schemas import BaseType, TermCalculation


class QuoteParameters(BaseModel):
    """Inputs shared by every (rate entry x term) calculation."""
    model_config = ConfigDict(frozen=True)

    base_type: BaseType = Field(..., description="margin or net")
    base_value: float = Field(..., gt=0, description="Margin or desired net amount (R$)")
    simulation_date: date = Field(..., description="Reference date")
    terms: List[int] = Field(..., min_length=1, description="Requested terms in months")

    @field_validator("terms")
    @classmethod
    def validate_terms(cls, v: List[int]) -> List[int]:
        if any(term <= 0 for term in v):
            raise ValueError("Terms must be positive")
        # Requested order is kept; duplicates are dropped
        return list(dict.fromkeys(v))


class IssueSeverity(str, enum.Enum):
    ERROR = "error"
    WARNING = "warning"


class QuoteIssue(BaseModel):
    """A problem found while aggregating. Errors block submission, warnings do not."""
    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="Machine-readable issue code")
    severity: IssueSeverity
    message: str
    context: str = Field(default="", description="Bank and term the issue refers to")

    @property
    def blocking(self) -> bool:
        return self.severity == IssueSeverity.ERROR


class Term(BaseModel):
    """One priced term inside an offer."""
    model_config = ConfigDict(frozen=True)

    id: str
    term: int
    installment: float
    net_amount: float
    total_amount: float = Field(..., description="Gross amount")
    coefficient: float
    tac_value: float
    source: str = "auto"
    calculation: TermCalculation
    selected: bool = Field(default=False, description="UI-local flag, never persisted")


class Offer(BaseModel):
    """All priced terms for one rate entry."""
    model_config = ConfigDict(frozen=True)

    id: str
    bank_id: str
    bank_name: str
    table: str = ""
    table_id: str = ""
    tax_id: str = ""
    modality: str = ""
    rank: int = 1
    source: str = "auto"
    terms: List[Term]


class QuoteParametersRecord(BaseModel):
    """Parameters as echoed back with the offers and stored in simulations."""
    model_config = ConfigDict(frozen=True)

    base_type: BaseType
    base_value: float
    simulation_date: date
    window_id: Optional[str] = None
    window_label: Optional[str] = None
    term_options: List[int] = Field(default_factory=list)
    tax_ids: List[str] = Field(default_factory=list)


class QuoteResult(BaseModel):
    """Aggregator output: ranked offers, echoed parameters and issues."""
    model_config = ConfigDict(frozen=True)

    offers: List[Offer] = Field(default_factory=list)
    parameters: Optional[QuoteParametersRecord] = None
    issues: List[QuoteIssue] = Field(default_factory=list)

    @property
    def blocking_issues(self) -> List[QuoteIssue]:
        return [issue for issue in self.issues if issue.blocking]

    @property
    def warning_issues(self) -> List[QuoteIssue]:
        return [issue for issue in self.issues if not issue.blocking]

    @property
    def can_submit(self) -> bool:
        return bool(self.offers) and not self.blocking_issues
