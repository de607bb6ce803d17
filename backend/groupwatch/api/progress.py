"""
progress.py

API endpoints for per-user progress records: completion, reactions,
poll ratings and comments.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from ..core.database import get_db
from .. import crud
from ..schemas import CommentRequest, ProgressUpdate, ProgressUpdateResponse, RatingRequest, ReactionRequest

router = APIRouter()
logger = logging.getLogger(__name__)


def raise_for_watchlist_error(e: crud.WatchlistError):
    if isinstance(e, crud.NotAMemberError):
        raise HTTPException(status_code=403, detail=str(e))
    if isinstance(e, (crud.GroupNotFoundError, crud.ItemNotFoundError)):
        raise HTTPException(status_code=404, detail=str(e))
    raise HTTPException(status_code=400, detail=str(e))


@router.post("/update", response_model=ProgressUpdateResponse)
def update_progress(update: ProgressUpdate, db: Session = Depends(get_db)):
    """Set one member's completed flag for a movie or an episode."""
    try:
        crud.update_progress(db, update)
    except crud.WatchlistError as e:
        raise_for_watchlist_error(e)
    except Exception as e:
        logger.error(f"Error updating progress: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to update progress: {str(e)}")
    state = "completed" if update.completed else "not completed"
    return ProgressUpdateResponse(success=True, message=f"Marked {state}")


@router.post("/reaction", response_model=ProgressUpdateResponse)
def add_reaction(request: ReactionRequest, db: Session = Depends(get_db)):
    try:
        crud.add_reaction(db, request)
    except crud.WatchlistError as e:
        raise_for_watchlist_error(e)
    except Exception as e:
        logger.error(f"Error adding reaction: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to add reaction: {str(e)}")
    return ProgressUpdateResponse(success=True, message=f"Reacted {request.reaction}")


@router.post("/rating", response_model=ProgressUpdateResponse)
def rate_item(request: RatingRequest, db: Session = Depends(get_db)):
    """Poll rating from 1 to 5; a later rating replaces the earlier one."""
    try:
        crud.set_rating(db, request)
    except crud.WatchlistError as e:
        raise_for_watchlist_error(e)
    except Exception as e:
        logger.error(f"Error rating item: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to rate item: {str(e)}")
    return ProgressUpdateResponse(success=True, message=f"Rated {request.poll_rating}/5")


@router.post("/comment", response_model=ProgressUpdateResponse)
def add_comment(request: CommentRequest, db: Session = Depends(get_db)):
    try:
        crud.add_comment(db, request)
    except crud.WatchlistError as e:
        raise_for_watchlist_error(e)
    except Exception as e:
        logger.error(f"Error adding comment: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to add comment: {str(e)}")
    return ProgressUpdateResponse(success=True, message="Comment added")
