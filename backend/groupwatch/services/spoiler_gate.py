"""
Spoiler Gate

A viewer may read an item's comments once their own progress record for
that exact movie or episode is completed. Group-wide completion never
matters, and finishing some episodes unlocks only those episodes.

``render_comments`` is the client contract: gated comments are still
returned, flagged ``obscured``, and the renderer blurs them. That hides
spoilers but is not access control. ``redact_watchlist`` removes gated
comments from a payload for callers that need the text to stay server-side.
"""
import datetime
import logging
from typing import List, Optional, Union

from pydantic import BaseModel

from groupwatch.schemas import EpisodeRef, GroupWatchlist, MovieRef
from groupwatch.services.watchlist_view import WatchlistView

logger = logging.getLogger(__name__)

SPOILER_NOTICE = "Complete watching to see comments (spoiler protection)"


class CommentView(BaseModel):
    user_id: str
    author_name: Optional[str] = None
    avatar: Optional[str] = None
    text: str
    timestamp: datetime.datetime
    obscured: bool


class GatedComments(BaseModel):
    visible: bool
    notice: Optional[str] = None
    comments: List[CommentView]


def can_view_comments(view: WatchlistView, viewer_user_id: str, ref: Union[MovieRef, EpisodeRef]) -> bool:
    return view.resolve_completed(ref, viewer_user_id)


def render_comments(view: WatchlistView, viewer_user_id: str, ref: Union[MovieRef, EpisodeRef]) -> GatedComments:
    visible = can_view_comments(view, viewer_user_id, ref)
    rendered = []
    for comment in view.comments_for(ref):
        # Authors who left the group render without a name
        author = view.member(comment.user_id)
        rendered.append(CommentView(
            user_id=comment.user_id,
            author_name=author.name if author else None,
            avatar=author.avatar if author else None,
            text=comment.text,
            timestamp=comment.timestamp,
            obscured=not visible,
        ))
    return GatedComments(
        visible=visible,
        notice=None if visible else SPOILER_NOTICE,
        comments=rendered,
    )


def redact_watchlist(payload: GroupWatchlist, viewer_user_id: str) -> GroupWatchlist:
    """
    Copy of ``payload`` without the comments ``viewer_user_id`` may not see.

    Progress, reactions and ratings are kept; only comment lists are emptied.
    """
    redacted = payload.model_copy(deep=True)
    view = WatchlistView(redacted.group, redacted.watchlist)
    hidden = 0
    for item in redacted.watchlist.movie_list:
        if not can_view_comments(view, viewer_user_id, MovieRef(movie_id=item.movie.id)):
            hidden += len(item.comments)
            item.comments = []
    for item in redacted.watchlist.series_list:
        for record in item.episode_progress:
            if not record.comments:
                continue
            ref = EpisodeRef(
                series_id=item.series.id,
                season_number=record.season_number,
                episode_number=record.episode_number,
            )
            try:
                allowed = can_view_comments(view, viewer_user_id, ref)
            except LookupError:
                # Progress for an episode the series metadata no longer lists
                allowed = False
            if not allowed:
                hidden += len(record.comments)
                record.comments = []
    if hidden:
        logger.debug(f"Redacted {hidden} spoiler comments for viewer {viewer_user_id} in group {view.group_id}")
    return redacted
