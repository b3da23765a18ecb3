"""Territory draft workflow: capture, validation and persistence."""

from canvass.draft.machine import DraftState, TerritoryDraft
from canvass.draft.reconciler import ChangeSet, PersistenceReconciler, SaveOutcome

__all__ = [
    "ChangeSet",
    "DraftState",
    "PersistenceReconciler",
    "SaveOutcome",
    "TerritoryDraft",
]
