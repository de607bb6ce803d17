from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Callable, Dict, List, Optional, Tuple
import json
import logging

from . import models
from . import schemas
from .utils.timezone import ensure_utc

logger = logging.getLogger(__name__)


class WatchlistError(Exception):
    """Base class for progress service request errors."""
    pass

class GroupNotFoundError(WatchlistError):
    pass

class ItemNotFoundError(WatchlistError):
    """Item is not on the group's watchlist, or the episode does not exist."""
    pass

class NotAMemberError(WatchlistError):
    pass


def _json_list(raw: Optional[str]) -> list:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring malformed JSON column value: {raw[:80]!r}")
        return []
    return value if isinstance(value, list) else []


# Row -> schema conversion

def _member_schema(membership: models.GroupMember) -> schemas.Member:
    user = membership.user
    return schemas.Member(
        id=user.id,
        username=user.username,
        display_name=user.display_name,
        avatar=user.avatar,
        is_admin=bool(membership.is_admin),
    )

def _group_schema(group: models.Group) -> schemas.Group:
    members = [_member_schema(m) for m in group.memberships]
    return schemas.Group(
        id=group.id,
        name=group.name,
        description=group.description,
        members=members,
        admins=[m.id for m in members if m.is_admin],
        watchlist_id=group.watchlist.id if group.watchlist else None,
    )

def _movie_schema(movie: models.Movie) -> schemas.Movie:
    return schemas.Movie(
        id=movie.id,
        omdb_id=movie.omdb_id,
        title=movie.title,
        year=movie.year or "",
        genre=_json_list(movie.genres),
        poster=movie.poster,
        runtime=movie.runtime,
    )

def _series_schema(series: models.Series) -> schemas.Series:
    return schemas.Series(
        id=series.id,
        omdb_id=series.omdb_id,
        title=series.title,
        year=series.year or "",
        genre=_json_list(series.genres),
        poster=series.poster,
        total_seasons=series.total_seasons or 0,
        seasons=[schemas.Season.model_validate(s) for s in _json_list(series.seasons)],
    )

def _comment_schema(comment: models.Comment) -> schemas.Comment:
    return schemas.Comment(user_id=comment.user_id, text=comment.text, timestamp=ensure_utc(comment.created_at))


# Reads

def get_group(db: Session, group_id: str) -> models.Group:
    group = db.query(models.Group).filter(models.Group.id == group_id).first()
    if not group:
        raise GroupNotFoundError(f"Group {group_id} not found")
    return group

def list_members(db: Session, group_id: str) -> List[schemas.Member]:
    return [_member_schema(m) for m in get_group(db, group_id).memberships]

def list_user_groups(db: Session, user_id: str) -> List[schemas.UserGroup]:
    memberships = (
        db.query(models.GroupMember)
        .filter(models.GroupMember.user_id == user_id)
        .order_by(models.GroupMember.joined_at)
        .all()
    )
    return [
        schemas.UserGroup(
            id=m.group.id,
            name=m.group.name,
            description=m.group.description,
            role="admin" if m.is_admin else "member",
        )
        for m in memberships
    ]

def get_group_watchlist(db: Session, group_id: str) -> schemas.GroupWatchlist:
    """Assemble the Group/Watchlist payload with embedded progress arrays."""
    group = get_group(db, group_id)
    watchlist = group.watchlist
    if watchlist is None:
        raise GroupNotFoundError(f"Group {group_id} has no watchlist")

    comments = (
        db.query(models.Comment)
        .filter(models.Comment.group_id == group_id)
        .order_by(models.Comment.created_at, models.Comment.id)
        .all()
    )
    movie_comments: Dict[str, List[schemas.Comment]] = {}
    episode_comments: Dict[Tuple[str, int, int, str], List[schemas.Comment]] = {}
    for c in comments:
        if c.item_type == "movie":
            movie_comments.setdefault(c.item_id, []).append(_comment_schema(c))
        else:
            key = (c.item_id, c.season_number, c.episode_number, c.user_id)
            episode_comments.setdefault(key, []).append(_comment_schema(c))

    movie_progress: Dict[str, List[schemas.UserMovieProgress]] = {}
    for p in db.query(models.MovieProgress).filter(models.MovieProgress.group_id == group_id).order_by(models.MovieProgress.id):
        movie_progress.setdefault(p.movie_id, []).append(schemas.UserMovieProgress(
            user_id=p.user_id,
            completed=bool(p.completed),
            reactions=_json_list(p.reactions),
            poll_rating=p.poll_rating,
        ))

    episode_progress: Dict[str, List[schemas.EpisodeProgress]] = {}
    for p in db.query(models.EpisodeProgress).filter(models.EpisodeProgress.group_id == group_id).order_by(models.EpisodeProgress.id):
        episode_progress.setdefault(p.series_id, []).append(schemas.EpisodeProgress(
            season_number=p.season_number,
            episode_number=p.episode_number,
            user_id=p.user_id,
            completed=bool(p.completed),
            reactions=_json_list(p.reactions),
            poll_rating=p.poll_rating,
            comments=episode_comments.get((p.series_id, p.season_number, p.episode_number, p.user_id), []),
        ))

    return schemas.GroupWatchlist(
        group=_group_schema(group),
        watchlist=schemas.Watchlist(
            id=watchlist.id,
            group_id=group.id,
            movie_list=[
                schemas.MovieListItem(
                    movie=_movie_schema(entry.movie),
                    user_progress=movie_progress.get(entry.movie_id, []),
                    comments=movie_comments.get(entry.movie_id, []),
                )
                for entry in watchlist.movies
            ],
            series_list=[
                schemas.SeriesListItem(
                    series=_series_schema(entry.series),
                    episode_progress=episode_progress.get(entry.series_id, []),
                )
                for entry in watchlist.series
            ],
        ),
    )


# Writes

def _validate_target(db: Session, target: schemas.ItemTarget) -> models.Group:
    group = get_group(db, target.group_id)
    if not any(m.user_id == target.user_id for m in group.memberships):
        raise NotAMemberError(f"User {target.user_id} is not a member of group {target.group_id}")
    watchlist = group.watchlist
    if target.item_type == "movie":
        if watchlist is None or not any(e.movie_id == target.item_id for e in watchlist.movies):
            raise ItemNotFoundError(f"Movie {target.item_id} is not on group {target.group_id}'s watchlist")
        return group
    entry = None
    if watchlist is not None:
        entry = next((e for e in watchlist.series if e.series_id == target.item_id), None)
    if entry is None:
        raise ItemNotFoundError(f"Series {target.item_id} is not on group {target.group_id}'s watchlist")
    season = _series_schema(entry.series).season(target.season_number)
    if season is None or season.episode(target.episode_number) is None:
        raise ItemNotFoundError(
            f"Series {target.item_id} has no episode S{target.season_number}E{target.episode_number}"
        )
    return group

def _progress_query(db: Session, target: schemas.ItemTarget):
    if target.item_type == "movie":
        return db.query(models.MovieProgress).filter(
            models.MovieProgress.group_id == target.group_id,
            models.MovieProgress.movie_id == target.item_id,
            models.MovieProgress.user_id == target.user_id,
        )
    return db.query(models.EpisodeProgress).filter(
        models.EpisodeProgress.group_id == target.group_id,
        models.EpisodeProgress.series_id == target.item_id,
        models.EpisodeProgress.season_number == target.season_number,
        models.EpisodeProgress.episode_number == target.episode_number,
        models.EpisodeProgress.user_id == target.user_id,
    )

def _new_progress(target: schemas.ItemTarget):
    if target.item_type == "movie":
        return models.MovieProgress(
            group_id=target.group_id,
            movie_id=target.item_id,
            user_id=target.user_id,
            completed=False,
            reactions="[]",
        )
    return models.EpisodeProgress(
        group_id=target.group_id,
        series_id=target.item_id,
        season_number=target.season_number,
        episode_number=target.episode_number,
        user_id=target.user_id,
        completed=False,
        reactions="[]",
    )

def _upsert_progress(db: Session, target: schemas.ItemTarget, mutate: Callable) -> None:
    """
    Apply ``mutate`` to the (item, user) progress row, creating it first if
    needed. A concurrent insert of the same key loses the unique constraint
    race; the mutation is then replayed on the row that won.
    """
    _validate_target(db, target)
    for attempt in range(2):
        record = _progress_query(db, target).first()
        if record is None:
            record = _new_progress(target)
            db.add(record)
        mutate(record)
        try:
            db.commit()
            return
        except IntegrityError:
            db.rollback()
            if attempt:
                raise
            logger.info(f"Progress row for {target.item_type} {target.item_id} / user {target.user_id} created concurrently, retrying")
        except Exception as e:
            logger.error(f"Failed to write progress for {target.item_type} {target.item_id}: {e}")
            db.rollback()
            raise

def update_progress(db: Session, update: schemas.ProgressUpdate) -> None:
    def _set(record):
        record.completed = update.completed
    _upsert_progress(db, update, _set)
    logger.info(
        f"User {update.user_id} marked {update.item_type} {update.item_id}"
        + (f" S{update.season_number}E{update.episode_number}" if update.item_type == "series" else "")
        + f" completed={update.completed} in group {update.group_id}"
    )

def add_reaction(db: Session, request: schemas.ReactionRequest) -> None:
    def _add(record):
        reactions = _json_list(record.reactions)
        reactions.append(request.reaction)
        record.reactions = json.dumps(reactions, ensure_ascii=False)
    _upsert_progress(db, request, _add)

def set_rating(db: Session, request: schemas.RatingRequest) -> None:
    def _rate(record):
        record.poll_rating = request.poll_rating
    _upsert_progress(db, request, _rate)

def add_comment(db: Session, request: schemas.CommentRequest) -> None:
    if request.item_type == "series":
        # Episode comments live on the author's episode record, so make sure it exists
        _upsert_progress(db, request, lambda record: None)
    else:
        _validate_target(db, request)
    db.add(models.Comment(
        group_id=request.group_id,
        item_type=request.item_type,
        item_id=request.item_id,
        season_number=request.season_number,
        episode_number=request.episode_number,
        user_id=request.user_id,
        text=request.text,
    ))
    try:
        db.commit()
    except Exception as e:
        logger.error(f"Failed to add comment on {request.item_type} {request.item_id}: {e}")
        db.rollback()
        raise


def create_group(db: Session, request: schemas.CreateGroupRequest) -> schemas.Group:
    """Create a group and its empty watchlist. The creator becomes its admin."""
    member_ids = [request.user_id] + [m for m in dict.fromkeys(request.member_ids) if m != request.user_id]
    found = {u.id for u in db.query(models.User).filter(models.User.id.in_(member_ids)).all()}
    missing = [m for m in member_ids if m not in found]
    if missing:
        raise NotAMemberError(f"Unknown users: {missing}")
    try:
        logger.info(f"Creating group: {request.name}")
        group = models.Group(name=request.name, description=request.description)
        group.memberships = [
            models.GroupMember(user_id=uid, is_admin=(uid == request.user_id))
            for uid in member_ids
        ]
        group.watchlist = models.Watchlist()
        db.add(group)
        db.commit()
        db.refresh(group)
        logger.info(f"Successfully created group with ID: {group.id}")
        return _group_schema(group)
    except Exception as e:
        logger.error(f"Failed to create group: {e}")
        db.rollback()
        raise

def _import_title(db: Session, title: schemas.TitleMetadata):
    """Find or create the Movie/Series row for imported metadata."""
    model = models.Movie if title.type == "movie" else models.Series
    row = db.query(model).filter(model.omdb_id == title.imdb_id).first()
    if row:
        return row
    fields = dict(
        omdb_id=title.imdb_id,
        title=title.title,
        year=title.year,
        genres=json.dumps(title.genres()),
        poster=title.poster,
    )
    if title.type == "movie":
        row = models.Movie(runtime=title.runtime, **fields)
    else:
        row = models.Series(
            total_seasons=title.total_seasons or len(title.seasons),
            seasons=json.dumps([s.model_dump() for s in title.seasons]),
            **fields,
        )
    db.add(row)
    db.flush()
    return row

def add_to_watchlist(db: Session, request: schemas.AddToWatchlistRequest) -> schemas.AddToWatchlistResponse:
    title = request.movie_or_series
    results = []
    for group_id in dict.fromkeys(request.group_ids):
        try:
            group = get_group(db, group_id)
            if not any(m.user_id == request.user_id for m in group.memberships):
                raise NotAMemberError(f"User {request.user_id} is not a member of group {group_id}")
            row = _import_title(db, title)
            if group.watchlist is None:
                group.watchlist = models.Watchlist()
            watchlist = group.watchlist
            if title.type == "movie":
                already = any(e.movie_id == row.id for e in watchlist.movies)
                if not already:
                    watchlist.movies.append(models.WatchlistMovie(movie_id=row.id, added_by=request.user_id))
            else:
                already = any(e.series_id == row.id for e in watchlist.series)
                if not already:
                    watchlist.series.append(models.WatchlistSeries(series_id=row.id, added_by=request.user_id))
            db.commit()
            message = "Already in watchlist" if already else "Added to watchlist"
            results.append(schemas.AddToWatchlistResult(group_id=group_id, success=not already, message=message))
        except WatchlistError as e:
            db.rollback()
            results.append(schemas.AddToWatchlistResult(group_id=group_id, success=False, message=str(e)))
        except Exception as e:
            logger.error(f"Failed to add {title.imdb_id} to group {group_id}: {e}")
            db.rollback()
            raise
    added = sum(1 for r in results if r.success)
    return schemas.AddToWatchlistResponse(
        success=added > 0,
        message=f"Added '{title.title}' to {added} of {len(results)} groups",
        results=results,
    )
