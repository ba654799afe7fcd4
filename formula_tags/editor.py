"""
Formula editor session.

Glues the pieces together for one formula being edited: input events go
through the classifier, the resulting commands are applied to this
session's own tag store, and the result is re-evaluated from the current
snapshot whenever it is read.
"""

import logging
from typing import List, Optional

from .classifier import (
    Decision,
    classify_accept,
    classify_delete_backward,
    classify_input,
    classify_suggestion,
)
from .evaluator import evaluate
from .store import ClearTags, FormulaSnapshot, RemoveTag, SetBuffer, TagStore, UpdateTagValue
from .suggestions import Suggestion, SuggestionCache, visible_suggestions
from .tags import Number, Tag

logger = logging.getLogger(__name__)


class FormulaEditor:
    """One formula editing session."""

    def __init__(
        self,
        suggestions: Optional[SuggestionCache] = None,
        store: Optional[TagStore] = None,
    ):
        self.store = store or TagStore()
        self.suggestions = suggestions
        self.query = ""

    @property
    def snapshot(self) -> FormulaSnapshot:
        return self.store.get_snapshot()

    @property
    def tags(self):
        return self.snapshot.tags

    @property
    def buffer(self) -> str:
        return self.snapshot.buffer

    @property
    def result(self) -> Number:
        return evaluate(self.snapshot.tags)

    def _apply(self, decision: Decision) -> Decision:
        for command in decision.commands:
            self.store.mutate(command)
        if decision.query is not None:
            self.query = decision.query
            if not self.query and self.suggestions is not None:
                self.suggestions.reset()
        return decision

    # --------------------------
    # Input events
    # --------------------------

    def handle_input(self, text: str) -> Decision:
        """Buffer-change event carrying the full buffer text."""
        return self._apply(classify_input(text, self.snapshot))

    def handle_accept(self) -> Decision:
        """Explicit accept key."""
        return self._apply(classify_accept(self.snapshot))

    def handle_delete_backward(self) -> Decision:
        """Delete-backward key."""
        return self._apply(classify_delete_backward(self.snapshot))

    def pick_suggestion(self, suggestion: Suggestion) -> Decision:
        return self._apply(classify_suggestion(suggestion, self.snapshot))

    # --------------------------
    # Tag actions
    # --------------------------

    def apply_multiplier(self, tag_id: str, multiplier: Number) -> Optional[Tag]:
        """Apply a multiplier overlay; returns the updated tag, or None for an unknown id."""
        self.store.mutate(UpdateTagValue(tag_id, multiplier))
        return self.snapshot.find(tag_id)

    def remove_tag(self, tag_id: str) -> FormulaSnapshot:
        return self.store.mutate(RemoveTag(tag_id))

    def clear(self) -> FormulaSnapshot:
        return self.store.mutate(ClearTags())

    def discard_buffer(self) -> FormulaSnapshot:
        """Drop pending text and its query without touching the tags."""
        self._apply(Decision(commands=(SetBuffer(""),), query=""))
        return self.snapshot

    # --------------------------
    # Suggestions
    # --------------------------

    async def refresh_suggestions(self) -> List[Suggestion]:
        """Look up suggestions for the pending query."""
        if self.suggestions is None or not self.query:
            return []
        return await self.suggestions.refresh(self.query)

    @property
    def offered_suggestions(self) -> List[Suggestion]:
        remote = self.suggestions.current if self.suggestions is not None else []
        return visible_suggestions(self.buffer, remote)
