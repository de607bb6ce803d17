"""
Watchlist View Model

The merged group + watchlist + progress structure a client works on after
loading a group once. Lookups are linear scans: groups and watchlists are
small. Only ``apply_completion`` mutates it, and only the completion toggle
calls that.
"""
import logging
from typing import List, Optional, Union

from groupwatch.schemas import (
    Comment,
    EpisodeProgress,
    EpisodeRef,
    Group,
    GroupWatchlist,
    Member,
    MovieListItem,
    MovieRef,
    SeriesListItem,
    UserMovieProgress,
    Watchlist,
)

logger = logging.getLogger(__name__)

Ref = Union[MovieRef, EpisodeRef]
ProgressRecord = Union[UserMovieProgress, EpisodeProgress]


class UnknownItemError(LookupError):
    """A reference names an item, season or episode missing from the view.

    Means the caller and the loaded watchlist have diverged.
    """
    pass


class WatchlistView:
    def __init__(self, group: Group, watchlist: Watchlist):
        if watchlist.group_id != group.id:
            raise ValueError(f"Watchlist {watchlist.id} belongs to group {watchlist.group_id}, not {group.id}")
        self.group = group
        self.watchlist = watchlist

    @classmethod
    def from_payload(cls, payload: Union[GroupWatchlist, dict]) -> "WatchlistView":
        if not isinstance(payload, GroupWatchlist):
            payload = GroupWatchlist.model_validate(payload)
        view = cls(payload.group, payload.watchlist)
        logger.debug(
            f"Loaded watchlist for group {view.group_id}: "
            f"{len(view.watchlist.movie_list)} movies, {len(view.watchlist.series_list)} series"
        )
        return view

    @property
    def group_id(self) -> str:
        return self.group.id

    @property
    def member_ids(self) -> List[str]:
        return self.group.member_ids

    @property
    def member_count(self) -> int:
        return len(self.group.members)

    def member(self, user_id: str) -> Optional[Member]:
        for m in self.group.members:
            if m.id == user_id:
                return m
        return None

    # Lookups

    def find_movie_item(self, movie_id: str) -> Optional[MovieListItem]:
        for item in self.watchlist.movie_list:
            if item.movie.id == movie_id:
                return item
        return None

    def find_series_item(self, series_id: str) -> Optional[SeriesListItem]:
        for item in self.watchlist.series_list:
            if item.series.id == series_id:
                return item
        return None

    def find_progress(self, item: MovieListItem, user_id: str) -> Optional[UserMovieProgress]:
        for record in item.user_progress:
            if record.user_id == user_id:
                return record
        return None

    def find_episode_progress(self, series_id: str, season_number: int, episode_number: int, user_id: str) -> Optional[EpisodeProgress]:
        item = self.find_series_item(series_id)
        if item is None:
            return None
        for record in item.episode_progress:
            if (record.season_number == season_number
                    and record.episode_number == episode_number
                    and record.user_id == user_id):
                return record
        return None

    def ensure_item(self, ref: Ref) -> Union[MovieListItem, SeriesListItem]:
        """Return the list item ``ref`` points at or raise UnknownItemError."""
        if isinstance(ref, MovieRef):
            item = self.find_movie_item(ref.movie_id)
            if item is None:
                raise UnknownItemError(f"Movie {ref.movie_id} is not on group {self.group_id}'s watchlist")
            return item
        item = self.find_series_item(ref.series_id)
        if item is None:
            raise UnknownItemError(f"Series {ref.series_id} is not on group {self.group_id}'s watchlist")
        season = item.series.season(ref.season_number)
        if season is None:
            raise UnknownItemError(f"Series {ref.series_id} has no season {ref.season_number}")
        if season.episode(ref.episode_number) is None:
            raise UnknownItemError(
                f"Series {ref.series_id} season {ref.season_number} has no episode {ref.episode_number}"
            )
        return item

    def record_for(self, ref: Ref, user_id: str) -> Optional[ProgressRecord]:
        item = self.ensure_item(ref)
        if isinstance(ref, MovieRef):
            return self.find_progress(item, user_id)
        return self.find_episode_progress(ref.series_id, ref.season_number, ref.episode_number, user_id)

    def resolve_completed(self, ref: Ref, user_id: str) -> bool:
        """A missing record resolves to not completed."""
        record = self.record_for(ref, user_id)
        return bool(record and record.completed)

    def comments_for(self, ref: Ref) -> List[Comment]:
        """Movie-level comments, or every member's comments on one episode."""
        item = self.ensure_item(ref)
        if isinstance(ref, MovieRef):
            return list(item.comments)
        comments = [
            c
            for record in item.episode_progress
            if record.season_number == ref.season_number and record.episode_number == ref.episode_number
            for c in record.comments
        ]
        return sorted(comments, key=lambda c: c.timestamp)

    # Mutation

    def apply_completion(self, ref: Ref, user_id: str, completed: bool) -> ProgressRecord:
        """
        Set the completed flag of ``user_id``'s record for ``ref``.

        Mutates an existing record in place, otherwise appends a fresh one
        with no reactions and no rating. Never suspends, so callers observe
        either the old or the new state.
        """
        item = self.ensure_item(ref)
        record = self.record_for(ref, user_id)
        if record is not None:
            record.completed = completed
            return record
        if isinstance(ref, MovieRef):
            record = UserMovieProgress(user_id=user_id, completed=completed)
            item.user_progress.append(record)
        else:
            record = EpisodeProgress(
                season_number=ref.season_number,
                episode_number=ref.episode_number,
                user_id=user_id,
                completed=completed,
            )
            item.episode_progress.append(record)
        logger.debug(f"Created progress record for user {user_id} on {ref}")
        return record
