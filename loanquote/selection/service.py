"""
Proposal selection state machine.
A pure reducer keeps the selection consistent with the latest offer batch.
"""
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from loanquote.core.logger import logger
from loanquote.selection.schemas import (
    ResetAction,
    SelectionAction,
    SelectionEntry,
    SelectionState,
    SyncWithOffersAction,
    ToggleAction,
    selection_key,
)
from loanquote.snapshots.normalizer import as_list, as_record, selection_pair
from loanquote.snapshots.schemas import ProposalSnapshot


def _unique(entries: Iterable[SelectionEntry]) -> Tuple[SelectionEntry, ...]:
    seen = {}
    for entry in entries:
        seen.setdefault(entry.key, entry)
    return tuple(seen.values())


def _toggle(state: SelectionState, action: ToggleAction) -> SelectionState:
    key = selection_key(action.offer_id, action.term_id)
    if not action.checked:
        remaining = tuple(entry for entry in state.entries if entry.key != key)
        return state.model_copy(update={"entries": remaining})

    if key in state.keys:
        return state
    if state.valid_keys is not None and key not in state.valid_keys:
        logger.debug(f"Ignoring toggle for unknown pair {key}")
        return state
    entry = SelectionEntry(offer_id=action.offer_id, term_id=action.term_id)
    return state.model_copy(update={"entries": state.entries + (entry,)})


def _sync(state: SelectionState, action: SyncWithOffersAction) -> SelectionState:
    kept = tuple(entry for entry in state.entries if entry.key in action.valid_keys)
    if not kept and action.valid_keys:
        kept = _unique(entry for entry in action.fallback_selection if entry.key in action.valid_keys)
    return SelectionState(entries=kept, valid_keys=action.valid_keys)


def selection_reducer(state: SelectionState, action: SelectionAction) -> SelectionState:
    """
    TOGGLE adds or removes one pair (idempotent).
    SYNC_WITH_OFFERS drops pairs missing from the new batch, falling back when nothing survives.
    RESET replaces the selection wholesale; it is trusted until the next sync.
    """
    if isinstance(action, ToggleAction):
        return _toggle(state, action)
    if isinstance(action, SyncWithOffersAction):
        return _sync(state, action)
    if isinstance(action, ResetAction):
        return SelectionState(entries=_unique(action.payload), valid_keys=None)
    raise TypeError(f"Unsupported selection action: {type(action).__name__}")


def _entries_from_pairs(items: Iterable[Any]) -> Tuple[SelectionEntry, ...]:
    entries = []
    for item in items:
        pair = selection_pair(item)
        if pair and pair[0] and pair[1]:
            entries.append(SelectionEntry(offer_id=pair[0], term_id=pair[1]))
    return _unique(entries)


def _field(item: Any, name: str, default: Any = None) -> Any:
    record = as_record(item)
    if record is not None and name in record:
        return record[name]
    return getattr(item, name, default)


def offer_keys(offers: Sequence[Any]) -> frozenset:
    """All `offerId::termId` keys of an offer batch."""
    return frozenset(
        selection_key(str(_field(offer, "id")), str(_field(term, "id")))
        for offer in offers
        for term in as_list(_field(offer, "terms", []))
    )


def default_selection(offers: Sequence[Any]) -> Tuple[SelectionEntry, ...]:
    """Fallback selection: the first term of each offer."""
    entries = []
    for offer in offers:
        terms = as_list(_field(offer, "terms", []))
        if terms:
            entries.append(SelectionEntry(offer_id=str(_field(offer, "id")), term_id=str(_field(terms[0], "id"))))
    return _unique(entries)


def create_proposal_selection(source: Union[ProposalSnapshot, Sequence[Any], None]) -> Tuple[SelectionEntry, ...]:
    """
    Initial selection when reopening a proposal.
    Uses the explicit `selected_offers` list, or `selected` flags on offer terms.
    """
    if source is None:
        return ()
    if isinstance(source, ProposalSnapshot):
        return _entries_from_pairs(source.selected_offers)

    entries = []
    for offer in as_list(source):
        for term in as_list(_field(offer, "terms", [])):
            if _field(term, "selected", False) is True:
                entries.append(SelectionEntry(offer_id=str(_field(offer, "id")), term_id=str(_field(term, "id"))))
    return _unique(entries)


def ensure_selection_has_items(selection: Union[SelectionState, Sequence[Any], None]) -> bool:
    """True when at least one complete (offer, term) pair is selected."""
    if isinstance(selection, SelectionState):
        return bool(selection.entries)
    return any(
        pair is not None and all(pair)
        for pair in (selection_pair(item) for item in as_list(selection))
    )


def sync_selection(state: SelectionState, offers: Sequence[Any]) -> SelectionState:
    """Builds and applies SYNC_WITH_OFFERS for a freshly aggregated offer list."""
    action = SyncWithOffersAction(valid_keys=offer_keys(offers), fallback_selection=default_selection(offers))
    return selection_reducer(state, action)


class SelectionStore:
    """Holds the single mutable selection cell of a quoting session."""

    def __init__(self, initial: Optional[Iterable[Any]] = None):
        self.state = SelectionState(entries=_entries_from_pairs(initial or []))

    def dispatch(self, action: SelectionAction) -> SelectionState:
        self.state = selection_reducer(self.state, action)
        return self.state

    def toggle(self, offer_id: str, term_id: str, checked: bool) -> SelectionState:
        return self.dispatch(ToggleAction(offer_id=offer_id, term_id=term_id, checked=checked))

    def sync(self, offers: Sequence[Any]) -> SelectionState:
        self.state = sync_selection(self.state, offers)
        return self.state

    def reset(self, payload: Iterable[Any] = ()) -> SelectionState:
        return self.dispatch(ResetAction(payload=_entries_from_pairs(payload)))

    @property
    def entries(self) -> List[SelectionEntry]:
        return list(self.state.entries)
