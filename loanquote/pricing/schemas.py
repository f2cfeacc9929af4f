"""
Pydantic schemas for the daily-coefficient amortization calculator.
"""
import enum
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BaseType(str, enum.Enum):
    """Which value the caller fixed: the installment (margin) or the net amount."""
    MARGIN = "margin"
    NET = "net"


class CalculationDetails(BaseModel):
    """Every input needed to reproduce a calculation deterministically."""
    model_config = ConfigDict(frozen=True)

    base_type: BaseType = Field(..., description="Solved direction")
    base_value: float = Field(..., gt=0, description="Margin or target net amount supplied")
    monthly_rate: float = Field(..., description="Monthly interest rate (decimal)")
    daily_rate: float = Field(..., description="Equivalent daily rate")
    grace_days: int = Field(..., description="Days between contract date and first due date")
    present_value_unit: float = Field(..., gt=0, description="Present value of one unit of installment")
    tac_percent: float = Field(..., description="Percent TAC (fraction of gross)")
    tac_flat: float = Field(..., description="Flat TAC (R$)")
    contract_date: date = Field(..., description="Simulation date clamped into the window")
    window_id: Optional[str] = Field(None, description="Window used")
    window_label: Optional[str] = Field(None, description="Window label")
    rate_id: Optional[str] = Field(None, description="Rate entry used")
    modality: Optional[str] = Field(None, description="Rate modality")
    product: Optional[str] = Field(None, description="Rate product")


class DealSimulationResult(BaseModel):
    """Single-offer calculation result."""
    model_config = ConfigDict(frozen=True)

    installment: float = Field(..., description="Monthly installment (R$)")
    net_amount: float = Field(..., description="Amount released to the client (R$)")
    gross_amount: float = Field(..., description="Financed amount before TAC (R$)")
    coefficient: float = Field(..., description="Installment per unit of gross amount")
    tac_value: float = Field(..., description="Total TAC charged (R$)")
    details: CalculationDetails


class TermCalculation(BaseModel):
    """
    Audit record persisted with every term.
    Every field is optional so stored legacy records still load.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    base_type: Optional[BaseType] = None
    base_value: Optional[float] = None
    simulation_date: Optional[date] = None
    window_id: Optional[str] = None
    window_label: Optional[str] = None
    rate_id: Optional[str] = None
    modality: Optional[str] = None
    product: Optional[str] = None
    monthly_rate: Optional[float] = None
    daily_rate: Optional[float] = None
    grace_days: Optional[int] = None
    present_value_unit: Optional[float] = None
    tac_percent: Optional[float] = None
    tac_flat: Optional[float] = None
