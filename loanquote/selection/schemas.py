"""
Immutable selection state and the actions that transition it.
"""
from typing import Annotated, FrozenSet, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class SelectionEntry(BaseModel):
    """One (offer, term) pair chosen for a proposal."""
    model_config = ConfigDict(frozen=True)

    offer_id: str = Field(..., min_length=1)
    term_id: str = Field(..., min_length=1)

    @property
    def key(self) -> str:
        return selection_key(self.offer_id, self.term_id)


class SelectionState(BaseModel):
    """
    Current selection plus the keys of the latest offer batch.
    `valid_keys` is None until the first aggregation (or after a RESET).
    """
    model_config = ConfigDict(frozen=True)

    entries: Tuple[SelectionEntry, ...] = ()
    valid_keys: Optional[FrozenSet[str]] = None

    @property
    def keys(self) -> FrozenSet[str]:
        return frozenset(entry.key for entry in self.entries)

    def contains(self, offer_id: str, term_id: str) -> bool:
        return selection_key(offer_id, term_id) in self.keys


class ToggleAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["TOGGLE"] = "TOGGLE"
    offer_id: str
    term_id: str
    checked: bool


class SyncWithOffersAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["SYNC_WITH_OFFERS"] = "SYNC_WITH_OFFERS"
    valid_keys: FrozenSet[str]
    fallback_selection: Tuple[SelectionEntry, ...] = ()


class ResetAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["RESET"] = "RESET"
    payload: Tuple[SelectionEntry, ...] = ()


SelectionAction = Annotated[
    Union[ToggleAction, SyncWithOffersAction, ResetAction],
    Field(discriminator="type")
]


def selection_key(offer_id: str, term_id: str) -> str:
    return f"{offer_id}::{term_id}"
