"""
Aggregation Engine

Pure functions deriving display statistics from raw progress records:
- Completion percentage of a movie or episode across the group
- Average poll rating (None when nobody rated)
- Reaction tallies
- Season / series roll-ups: members who finished every episode
- A single member's progress through a series (watched, total, next episode)

Records are UserMovieProgress or EpisodeProgress instances; only their
``user_id``, ``completed``, ``reactions`` and ``poll_rating`` fields are read.
"""
from collections import Counter
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from groupwatch.schemas import (
    EpisodeProgress,
    ItemStats,
    MovieListItem,
    Series,
    SeriesListItem,
)

EpisodeKey = Tuple[int, int]


def completed_count(records: Iterable, members: Optional[Sequence[str]] = None) -> int:
    """Number of distinct users holding a completed record.

    With ``members`` given, records of anyone outside the group are ignored.
    """
    done = {r.user_id for r in records if r.completed}
    if members is not None:
        done &= set(members)
    return len(done)


def completion_percentage(records: Iterable, member_count: int, members: Optional[Sequence[str]] = None) -> int:
    """
    round(100 * completed / member_count), rounding halves up.

    Returns 0 for an empty group and never raises. The result is clamped to
    [0, 100] and only reaches 100 once every member has finished: 199 of 200
    would round to 100, so it is held at 99. Pass ``members`` to leave out
    stray records from users who are not in the group.
    """
    return _percentage(completed_count(records, members), member_count)


def _percentage(done: int, member_count: int) -> int:
    if member_count <= 0:
        return 0
    if done >= member_count:
        return 100
    # integer form of floor(100 * done / member_count + 0.5)
    pct = (200 * done + member_count) // (2 * member_count)
    return max(0, min(pct, 99))


def average_rating(records: Iterable) -> Optional[float]:
    """Mean poll rating rounded to one decimal, or None if nobody rated."""
    ratings = [r.poll_rating for r in records if r.poll_rating is not None]
    if not ratings:
        return None
    mean = Decimal(sum(ratings)) / Decimal(len(ratings))
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def reaction_tally(records: Iterable) -> Dict[str, int]:
    tally = Counter()
    for r in records:
        tally.update(r.reactions)
    return dict(tally)


def _completed_episodes_by_user(records: Iterable[EpisodeProgress]) -> Dict[str, Set[EpisodeKey]]:
    done: Dict[str, Set[EpisodeKey]] = {}
    for r in records:
        if r.completed:
            done.setdefault(r.user_id, set()).add((r.season_number, r.episode_number))
    return done


def _members_done(required: Set[EpisodeKey], records: Iterable[EpisodeProgress], members: Sequence[str]) -> int:
    # Nothing to watch means nothing finished
    if not required:
        return 0
    done = _completed_episodes_by_user(records)
    return sum(1 for m in dict.fromkeys(members) if required <= done.get(m, set()))


def season_completion(series: Series, season_number: int, progress_records: Iterable[EpisodeProgress], members: Sequence[str]) -> int:
    """
    Count members with an explicit completed record for every episode of the
    season. Missing records count as not completed.
    """
    season = series.season(season_number)
    if season is None:
        raise KeyError(f"Series {series.id} has no season {season_number}")
    required = {(season_number, ep.episode_number) for ep in season.episodes}
    return _members_done(required, progress_records, members)


def series_completion(series: Series, progress_records: Iterable[EpisodeProgress], members: Sequence[str]) -> int:
    """Members who completed every episode of every season."""
    required = {
        (season.season_number, ep.episode_number)
        for season in series.seasons
        for ep in season.episodes
    }
    return _members_done(required, progress_records, members)


def episode_records(item: SeriesListItem, season_number: int, episode_number: int) -> List[EpisodeProgress]:
    return [
        r for r in item.episode_progress
        if r.season_number == season_number and r.episode_number == episode_number
    ]


def episode_completion(item: SeriesListItem, season_number: int, episode_number: int, member_count: int, members: Optional[Sequence[str]] = None) -> int:
    return completion_percentage(episode_records(item, season_number, episode_number), member_count, members)


def user_series_progress(series: Series, progress_records: Iterable[EpisodeProgress], user_id: str) -> Dict[str, object]:
    """
    One member's position in a series.

    Returns watched and total episode counts, whether the series is finished,
    and the first episode (in season/episode order) not yet completed.
    """
    done = _completed_episodes_by_user(progress_records).get(user_id, set())
    ordered = [
        (season.season_number, ep.episode_number)
        for season in sorted(series.seasons, key=lambda s: s.season_number)
        for ep in sorted(season.episodes, key=lambda e: e.episode_number)
    ]
    watched = sum(1 for key in ordered if key in done)
    next_episode = next((key for key in ordered if key not in done), None)
    return {
        'watched_episodes': watched,
        'total_episodes': len(ordered),
        'episodes_behind': len(ordered) - watched,
        'completed': bool(ordered) and next_episode is None,
        'next_episode': (
            {'season_number': next_episode[0], 'episode_number': next_episode[1]}
            if next_episode else None
        ),
    }


def movie_item_stats(item: MovieListItem, members: Sequence[str]) -> ItemStats:
    member_count = len(set(members))
    finished = completed_count(item.user_progress, members)
    return ItemStats(
        item_id=item.movie.id,
        item_type="movie",
        title=item.movie.title,
        member_count=member_count,
        completed_count=finished,
        completion_percentage=_percentage(finished, member_count),
        average_rating=average_rating(item.user_progress),
        reactions=reaction_tally(item.user_progress),
    )


def series_item_stats(item: SeriesListItem, members: Sequence[str]) -> ItemStats:
    """Series-wide stats; completion here means the whole series is finished."""
    records = item.episode_progress
    finished = series_completion(item.series, records, members)
    member_count = len(set(members))
    return ItemStats(
        item_id=item.series.id,
        item_type="series",
        title=item.series.title,
        member_count=member_count,
        completed_count=finished,
        completion_percentage=_percentage(finished, member_count),
        average_rating=average_rating(records),
        reactions=reaction_tally(records),
        season_completion={
            season.season_number: season_completion(item.series, season.season_number, records, members)
            for season in item.series.seasons
        },
    )
