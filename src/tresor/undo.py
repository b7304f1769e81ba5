"""Undo/redo log for document edits.

The manager is generic over the edited target and knows nothing about
documents; actions carry the knowledge of how to apply and revert
themselves. Return values of do/undo are passed through to the caller
(typically a hint for which item a UI should focus next).
"""

from __future__ import annotations

import copy
from typing import Any, Generic, Protocol, TypeVar

from .exceptions import AtNewestChange, AtOldestChange
from .models import Document, Entry

T = TypeVar("T")
T_contra = TypeVar("T_contra", contravariant=True)


class Action(Protocol[T_contra]):
    """A reversible edit of a target."""

    description: str

    def do(self, target: T_contra) -> Any: ...

    def undo(self, target: T_contra) -> Any: ...


class UndoManager(Generic[T]):
    """Linear undo log.

    `step` points one past the last executed action. Applying a new action
    after undoing discards everything beyond `step`.
    """

    def __init__(self) -> None:
        self.actions: list[Action[T]] = []
        self.step = 0

    @property
    def can_undo(self) -> bool:
        return self.step > 0

    @property
    def can_redo(self) -> bool:
        return self.step < len(self.actions)

    def apply(self, target: T, action: Action[T]) -> Any:
        """Execute an action and record it.

        Returns:
            Whatever the action's do() returns
        """
        result = action.do(target)
        del self.actions[self.step :]
        self.actions.append(action)
        self.step += 1
        return result

    def undo(self, target: T) -> Any:
        """Revert the most recent executed action.

        Raises:
            AtOldestChange: If nothing is left to undo
        """
        if self.step == 0:
            raise AtOldestChange()
        self.step -= 1
        return self.actions[self.step].undo(target)

    def redo(self, target: T) -> Any:
        """Re-execute the next undone action.

        Raises:
            AtNewestChange: If nothing is left to redo
        """
        if self.step >= len(self.actions):
            raise AtNewestChange()
        result = self.actions[self.step].do(target)
        self.step += 1
        return result

    def clear(self) -> None:
        self.actions.clear()
        self.step = 0


class UpdateEntryAction:
    """Replace an entry with a new version of itself.

    Both versions are deep-copied on construction and again on every
    do/undo, so later edits of the live document never leak into the log.
    """

    def __init__(
        self,
        new_entry: Entry,
        old_entry: Entry,
        return_value: Any = None,
        description: str = "",
    ) -> None:
        """Initialize the action.

        Args:
            new_entry: Entry after the edit
            old_entry: Entry before the edit
            return_value: Value returned from every do/undo
            description: Human-readable description of the edit

        Raises:
            ValueError: If the entries have different UUIDs
        """
        if new_entry.uuid != old_entry.uuid:
            raise ValueError(
                f"different UUIDs for old and new entry: '{old_entry.uuid}' != '{new_entry.uuid}'"
            )
        self._new_entry = copy.deepcopy(new_entry)
        self._old_entry = copy.deepcopy(old_entry)
        self._return_value = return_value
        self.description = description

    def do(self, target: Document) -> Any:
        target.update_entry(copy.deepcopy(self._new_entry))
        return self._return_value

    def undo(self, target: Document) -> Any:
        target.update_entry(copy.deepcopy(self._old_entry))
        return self._return_value

    def __repr__(self) -> str:
        return f"UpdateEntryAction({self.description!r}, uuid={self._new_entry.uuid})"
