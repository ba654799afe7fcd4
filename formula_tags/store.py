"""
Tag store.

Holds the tag sequence and the raw input buffer for one editing session.
State is exposed as immutable snapshots; every change goes through
``mutate(command)``, which builds a new snapshot and notifies subscribers.
Commands never raise: requests that cannot apply (unknown ids, duplicate
ids) leave the state unchanged.
"""

import logging
from dataclasses import dataclass, replace
from typing import Callable, List, Tuple, Union

from .overlay import apply_multiplier
from .tags import Number, Tag

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FormulaSnapshot:
    """Immutable view of the store state."""
    tags: Tuple[Tag, ...] = ()
    buffer: str = ""

    @property
    def last_tag(self):
        return self.tags[-1] if self.tags else None

    def find(self, tag_id: str):
        for tag in self.tags:
            if tag.id == tag_id:
                return tag
        return None


# --------------------------
# Commands
# --------------------------

@dataclass(frozen=True)
class AppendTag:
    """Append a tag; an operand following an operand replaces it."""
    tag: Tag


@dataclass(frozen=True)
class RemoveTag:
    tag_id: str


@dataclass(frozen=True)
class ReplaceTag:
    """Put ``tag`` in place of the tag with ``tag_id``."""
    tag_id: str
    tag: Tag


@dataclass(frozen=True)
class ClearTags:
    pass


@dataclass(frozen=True)
class UpdateTagValue:
    """Apply a multiplier overlay to one tag."""
    tag_id: str
    multiplier: Number


@dataclass(frozen=True)
class SetBuffer:
    text: str


Command = Union[AppendTag, RemoveTag, ReplaceTag, ClearTags, UpdateTagValue, SetBuffer]
Listener = Callable[[FormulaSnapshot], None]


def _append(tags: Tuple[Tag, ...], tag: Tag) -> Tuple[Tag, ...]:
    if any(existing.id == tag.id for existing in tags):
        logger.debug(f"Ignoring append of duplicate tag id {tag.id}")
        return tags
    if tag.is_operand and tags and tags[-1].is_operand:
        tags = tags[:-1]
    return tags + (tag,)


def apply_command(snapshot: FormulaSnapshot, command: Command) -> FormulaSnapshot:
    """Pure transition: snapshot + command -> new snapshot."""
    tags = snapshot.tags
    if isinstance(command, AppendTag):
        return replace(snapshot, tags=_append(tags, command.tag))
    if isinstance(command, RemoveTag):
        return replace(snapshot, tags=tuple(t for t in tags if t.id != command.tag_id))
    if isinstance(command, ReplaceTag):
        return replace(
            snapshot,
            tags=tuple(command.tag if t.id == command.tag_id else t for t in tags),
        )
    if isinstance(command, ClearTags):
        return replace(snapshot, tags=())
    if isinstance(command, UpdateTagValue):
        return replace(
            snapshot,
            tags=tuple(
                apply_multiplier(t, command.multiplier) if t.id == command.tag_id else t
                for t in tags
            ),
        )
    if isinstance(command, SetBuffer):
        return replace(snapshot, buffer=command.text)
    logger.warning(f"Ignoring unknown command {command!r}")
    return snapshot


class TagStore:
    """State container for one formula editing session."""

    def __init__(self, snapshot: FormulaSnapshot = FormulaSnapshot()):
        self._snapshot = snapshot
        self._listeners: List[Listener] = []

    def get_snapshot(self) -> FormulaSnapshot:
        return self._snapshot

    def mutate(self, command: Command) -> FormulaSnapshot:
        """Apply one command and notify subscribers if the state changed."""
        new_snapshot = apply_command(self._snapshot, command)
        if new_snapshot != self._snapshot:
            self._snapshot = new_snapshot
            for listener in list(self._listeners):
                listener(new_snapshot)
        return self._snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
