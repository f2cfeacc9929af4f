"""
Pydantic schemas for the agreement rate catalog.
Agreements own validity windows and per-product rate entries.
"""
import enum
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RateStatus(str, enum.Enum):
    """Lifecycle of a rate entry. Only active entries can be quoted."""
    ACTIVE = "active"
    INACTIVE = "inactive"


_STATUS_ALIASES = {
    "": RateStatus.ACTIVE,
    "active": RateStatus.ACTIVE,
    "ativa": RateStatus.ACTIVE,
    "ativo": RateStatus.ACTIVE,
    "inactive": RateStatus.INACTIVE,
    "inativa": RateStatus.INACTIVE,
    "inativo": RateStatus.INACTIVE,
}


class Window(BaseModel):
    """Contracting window during which an agreement's configuration is current."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Window identifier")
    label: str = Field(default="", description="Display label")
    start: date = Field(..., description="First contracting day (inclusive)")
    end: date = Field(..., description="Last contracting day (inclusive)")
    first_due_date: Optional[date] = Field(None, description="Due date of the first installment")

    @model_validator(mode="after")
    def validate_range(self) -> "Window":
        if self.end < self.start:
            raise ValueError("Window end must not precede its start")
        return self


class RateEntry(BaseModel):
    """One bank/product/table combination with its monthly rate and allowed terms."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Rate entry identifier")
    product_id: str = Field(..., description="Product this rate applies to")
    bank_id: str = Field(default="", description="Bank identifier")
    bank_name: str = Field(default="", description="Bank display name")
    table_id: str = Field(default="", description="Rate table identifier")
    table_name: str = Field(default="", description="Rate table display name")
    modality: str = Field(default="", description="Contract modality")
    monthly_rate: Optional[float] = Field(None, description="Monthly interest rate (decimal, 0.0199 = 1.99%)")
    terms: List[int] = Field(default_factory=list, description="Allowed terms in months")
    tac_percent: float = Field(default=0.0, ge=0, description="Origination fee as a fraction of gross")
    tac_flat: float = Field(default=0.0, ge=0, description="Flat origination fee (R$)")
    valid_from: Optional[date] = Field(None, description="First valid day (inclusive)")
    valid_until: Optional[date] = Field(None, description="Last valid day (inclusive)")
    status: RateStatus = Field(default=RateStatus.ACTIVE, description="Rate status")
    rank: Optional[int] = Field(None, ge=1, description="Explicit display order")

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: object) -> object:
        """Accepts legacy pt-BR spellings ("ativa"/"inativa")."""
        if isinstance(v, str):
            mapped = _STATUS_ALIASES.get(v.strip().lower())
            if mapped is None:
                raise ValueError(f"Unknown rate status: {v}")
            return mapped
        if v is None:
            return RateStatus.ACTIVE
        return v

    @field_validator("terms")
    @classmethod
    def validate_terms(cls, v: List[int]) -> List[int]:
        if any(term <= 0 for term in v):
            raise ValueError("Terms must be positive")
        return sorted(set(v))


class Agreement(BaseModel):
    """Payroll-deduction agreement ("convênio")."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Agreement identifier")
    label: str = Field(default="", description="Display label")
    windows: List[Window] = Field(default_factory=list, description="Validity windows in declaration order")
    rates: List[RateEntry] = Field(default_factory=list, description="Rate entries")
    products: List[str] = Field(default_factory=list, description="Declared product ids")
