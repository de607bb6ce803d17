"""
Completion Toggle Protocol

Flips one member's completed flag for a movie or a single episode:

1. validate the reference against the loaded view
2. resolve the current value (no record means not completed)
3. write the negated value through the progress store
4. only after the store confirms, apply it to the view

A failed write leaves the view exactly as it was and raises
ToggleFailedError. The viewer is always passed in explicitly.

Toggles on the same (item, user) record run one at a time: a second toggle
waits for the first round trip and flips the value that one left behind.
"""
import asyncio
import logging
from collections import Counter
from typing import Dict, Tuple, Union

from pydantic import BaseModel

from groupwatch.schemas import EpisodeRef, MovieRef, ProgressUpdate
from groupwatch.services.progress_store import ProgressStore, ProgressStoreError
from groupwatch.services.watchlist_view import WatchlistView

logger = logging.getLogger(__name__)

Ref = Union[MovieRef, EpisodeRef]


class ToggleFailedError(Exception):
    """The store did not confirm a toggle; the view was left untouched."""

    def __init__(self, message: str, ref: Ref, user_id: str):
        super().__init__(message)
        self.ref = ref
        self.user_id = user_id


class ToggleResult(BaseModel):
    ref: Union[MovieRef, EpisodeRef]
    user_id: str
    previous: bool
    completed: bool


class CompletionToggle:
    """Write-through toggles against one loaded watchlist view."""

    def __init__(self, view: WatchlistView, store: ProgressStore):
        self.view = view
        self.store = store
        self._locks: Dict[Tuple[Ref, str], asyncio.Lock] = {}
        # Toggles holding or waiting on each key's lock
        self._pending: Counter = Counter()

    async def toggle(self, user_id: str, ref: Ref) -> ToggleResult:
        self.view.ensure_item(ref)
        key = (ref, user_id)
        if self._pending[key]:
            logger.warning(
                f"Toggle for user {user_id} on {ref} queued behind {self._pending[key]} in-flight toggle(s)"
            )
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._pending[key] += 1
        try:
            async with lock:
                return await self._toggle_locked(user_id, ref)
        finally:
            self._pending[key] -= 1
            if not self._pending[key]:
                del self._pending[key]
                self._locks.pop(key, None)

    async def _toggle_locked(self, user_id: str, ref: Ref) -> ToggleResult:
        previous = self.view.resolve_completed(ref, user_id)
        requested = not previous
        update = ProgressUpdate.for_ref(self.view.group_id, ref, user_id, requested)

        logger.info(f"Toggling {ref} for user {user_id}: {previous} -> {requested}")
        try:
            ok = await self.store.update_progress(update)
        except ProgressStoreError as e:
            logger.warning(f"Toggle of {ref} for user {user_id} failed: {e}")
            raise ToggleFailedError(f"Could not update {ref}: {e}", ref, user_id) from e

        if not ok:
            logger.warning(f"Progress store rejected toggle of {ref} for user {user_id}")
            raise ToggleFailedError(f"Progress store rejected the update for {ref}", ref, user_id)

        self.view.apply_completion(ref, user_id, requested)
        return ToggleResult(ref=ref, user_id=user_id, previous=previous, completed=requested)

    async def toggle_movie(self, user_id: str, movie_id: str) -> ToggleResult:
        return await self.toggle(user_id, MovieRef(movie_id=movie_id))

    async def toggle_episode(self, user_id: str, series_id: str, season_number: int, episode_number: int) -> ToggleResult:
        ref = EpisodeRef(series_id=series_id, season_number=season_number, episode_number=episode_number)
        return await self.toggle(user_id, ref)
