"""Branch points: wait for one selection, then apply it in a single step."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Union

from .content import Choice, ContentError, ContentStore, Option
from .dialogue import Abandoned
from .interfaces import NullView, SelectionUI
from .save_manager import SaveManager
from .state import NarrativeState

logger = logging.getLogger(__name__)

Selection = Union[Option, int]


class InvalidSelection(Exception):
    """A selection that does not belong to the active choice."""


class ChoiceResolver:
    def __init__(
        self,
        content: ContentStore,
        ui: Optional[SelectionUI] = None,
        saves: Optional[SaveManager] = None,
    ) -> None:
        self.content = content
        self.ui = ui if ui is not None else NullView()
        self.saves = saves
        self.active: Optional[Choice] = None
        self._pending: Optional[asyncio.Future] = None

    @property
    def awaiting(self) -> bool:
        return self._pending is not None and not self._pending.done()

    async def resolve(self, choice: Choice, state: NarrativeState) -> Option:
        """Suspend until an option is selected, then apply and persist it."""
        if self.awaiting:
            raise RuntimeError("A choice is already awaiting selection.")
        self.active = choice
        self._pending = asyncio.get_running_loop().create_future()
        self.ui.present_choice(choice)
        try:
            option = await self._pending
        finally:
            self.ui.dismiss_choice()
            self.active = None
            self._pending = None
        self.apply_option(option, state)
        if self.saves is not None:
            self.saves.save(state)
        return option

    def select(self, selection: Selection) -> bool:
        """Offer a selection; only the first valid one for a choice is honoured."""
        if not self.awaiting:
            logger.debug("Ignoring selection %r: no choice is waiting.", selection)
            return False
        try:
            option = self.match(selection)
        except InvalidSelection as exc:
            logger.warning("Ignoring selection: %s", exc)
            return False
        self._pending.set_result(option)
        return True

    def match(self, selection: Selection) -> Option:
        choice = self.active
        if choice is None:
            raise InvalidSelection("no active choice")
        if isinstance(selection, int) and not isinstance(selection, bool):
            if 0 <= selection < len(choice.options):
                return choice.options[selection]
            raise InvalidSelection(f"option index {selection} out of range")
        if isinstance(selection, Option) and choice.index_of(selection) >= 0:
            return selection
        raise InvalidSelection(f"{selection!r} is not an option of the active choice")

    def dismiss(self) -> bool:
        """Close the option list without choosing; the same choice comes back."""
        if not self.awaiting or self.active is None:
            return False
        self.ui.dismiss_choice()
        self.ui.present_choice(self.active)
        return True

    def abandon(self, reason: Optional[Abandoned] = None) -> bool:
        if not self.awaiting:
            return False
        self._pending.set_exception(reason or Abandoned())
        return True

    def apply_option(self, option: Option, state: NarrativeState) -> None:
        target = option.next_scene
        if target is not None and target not in self.content:
            raise ContentError(
                f"Option '{option.text}' targets unknown scene '{target}'.", scene_id=target
            )
        flags = state.merged_flags(option.flags)
        if target is not None:
            state.commit(scene_id=target, line_index=0, flags=flags)
            return
        next_index = state.line_index + 1
        if self.content.has_scene(state.scene_id):
            scene = self.content.get_scene(state.scene_id)
            if next_index > scene.last_index:
                # Nothing follows the choice; stay on it so the index stays valid.
                next_index = state.line_index
        state.commit(line_index=next_index, flags=flags)
