"""
watchlist.py - add imported titles to group watchlists
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from groupwatch.core.database import get_db
from groupwatch import crud
from groupwatch.schemas import AddToWatchlistRequest, AddToWatchlistResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/add", response_model=AddToWatchlistResponse)
def add_to_watchlist(request: AddToWatchlistRequest, db: Session = Depends(get_db)):
    """
    Add one movie or series to several group watchlists at once.

    Each group gets its own result entry; a group the user does not belong
    to, or one that already lists the title, fails without affecting the rest.
    """
    try:
        return crud.add_to_watchlist(db, request)
    except Exception as e:
        logger.error(f"Error adding {request.movie_or_series.imdb_id} to watchlists: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to add to watchlist: {str(e)}")
