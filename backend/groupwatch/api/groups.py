"""
groups.py

API endpoints for a group's watchlist, member directory and statistics.
Group administration beyond creation lives elsewhere.
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from groupwatch.core.config import settings
from groupwatch.core.database import get_db
from groupwatch import crud
from groupwatch.api.progress import raise_for_watchlist_error
from groupwatch.schemas import CreateGroupRequest
from groupwatch.services import aggregation
from groupwatch.services.spoiler_gate import redact_watchlist

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
def list_groups(user_id: str = Query(...), db: Session = Depends(get_db)):
    """Groups the user belongs to, with their role in each."""
    groups = crud.list_user_groups(db, user_id)
    return {"groups": [g.model_dump() for g in groups]}


@router.post("", status_code=201)
def create_group(request: CreateGroupRequest, db: Session = Depends(get_db)):
    try:
        group = crud.create_group(db, request)
    except crud.WatchlistError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "success", "group": group.model_dump()}


@router.get("/{group_id}/watchlist")
def get_group_watchlist(
    group_id: str,
    viewer_id: Optional[str] = None,
    redact_spoilers: Optional[bool] = None,
    db: Session = Depends(get_db)
):
    """
    Group with members plus its watchlist and every progress record.

    Comments are included as-is so clients can blur them. With
    ``redact_spoilers`` and a ``viewer_id`` the comments the viewer has not
    unlocked are dropped from the response instead.
    """
    try:
        payload = crud.get_group_watchlist(db, group_id)
    except crud.WatchlistError as e:
        raise_for_watchlist_error(e)

    redact = settings.redact_spoilers_default if redact_spoilers is None else redact_spoilers
    if redact:
        if not viewer_id:
            raise HTTPException(status_code=400, detail="redact_spoilers requires viewer_id")
        if viewer_id not in payload.group.member_ids:
            raise HTTPException(status_code=403, detail=f"User {viewer_id} is not a member of group {group_id}")
        payload = redact_watchlist(payload, viewer_id)
    return payload.model_dump(mode="json")


@router.get("/{group_id}/members")
def get_members(group_id: str, db: Session = Depends(get_db)):
    try:
        members = crud.list_members(db, group_id)
    except crud.WatchlistError as e:
        raise_for_watchlist_error(e)
    return {"members": [m.model_dump() for m in members], "count": len(members)}


@router.get("/{group_id}/stats")
def get_group_stats(group_id: str, db: Session = Depends(get_db)):
    """Completion, rating and reaction statistics for every watchlist item."""
    try:
        payload = crud.get_group_watchlist(db, group_id)
    except crud.WatchlistError as e:
        raise_for_watchlist_error(e)

    member_ids = payload.group.member_ids
    movies = [aggregation.movie_item_stats(item, member_ids) for item in payload.watchlist.movie_list]
    series = [aggregation.series_item_stats(item, member_ids) for item in payload.watchlist.series_list]
    return {
        "group_id": group_id,
        "member_count": len(member_ids),
        "movies": [s.model_dump(mode="json") for s in movies],
        "series": [s.model_dump(mode="json") for s in series],
    }
