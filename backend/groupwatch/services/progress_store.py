class ProgressStoreError(Exception):
    """Base exception for progress store failures."""
    pass

class ProgressStoreNetworkError(ProgressStoreError):
    """Raised when network or connection to the progress service fails."""
    pass

class ProgressStoreUnavailableError(ProgressStoreError):
    """Raised when the progress service answers with a server error."""
    pass

"""
progress_store.py

Progress Record Store access. ``ProgressStore`` is the interface the
completion toggle writes through; ``HttpProgressStore`` is the async httpx
client for the GroupWatch progress service.
"""

import abc
import logging
from typing import Any, Dict, List, Optional

import httpx

from groupwatch.core.config import settings
from groupwatch.schemas import (
    AddToWatchlistRequest,
    AddToWatchlistResponse,
    CommentRequest,
    GroupWatchlist,
    ProgressUpdate,
    RatingRequest,
    ReactionRequest,
    UserGroup,
)

logger = logging.getLogger(__name__)


class ProgressStore(abc.ABC):
    """Source of truth for group watchlists and per-user progress records."""

    @abc.abstractmethod
    async def fetch_group_watchlist(self, group_id: str) -> GroupWatchlist:
        ...

    @abc.abstractmethod
    async def update_progress(self, update: ProgressUpdate) -> bool:
        """Persist one completion flag. Returns the store's success flag."""
        ...


class HttpProgressStore(ProgressStore):
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = (base_url or settings.api_base).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        # Injected transports (MockTransport, ASGITransport) replace the network
        self._transport = transport

    async def _request(self, method: str, endpoint: str, params: Optional[dict] = None, data: Optional[dict] = None) -> Any:
        url = f"{self.base_url}{endpoint}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.request(method, url, params=params, json=data)
                resp.raise_for_status()
                if resp.status_code == 204 or not resp.content:
                    return {}
                return resp.json()
        except httpx.TimeoutException:
            logger.error(f"Timeout talking to progress service: {method} {endpoint}")
            raise ProgressStoreNetworkError("Timed out talking to the progress service. Please try again.")
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _error_detail(e.response)
            if status >= 500:
                logger.error(f"Progress service unavailable ({status}) for {method} {endpoint}: {detail}")
                raise ProgressStoreUnavailableError(f"Progress service is unavailable ({status}). Please try again later.")
            logger.warning(f"Progress service rejected {method} {endpoint} ({status}): {detail}")
            raise ProgressStoreError(f"Progress service rejected the request ({status}): {detail}")
        except httpx.RequestError as e:
            logger.error(f"Network error talking to progress service: {e}")
            raise ProgressStoreNetworkError("Network error talking to the progress service. Please check your connection.")
        except ValueError as e:
            logger.error(f"Malformed response from progress service for {method} {endpoint}: {e}")
            raise ProgressStoreError(f"Malformed response from progress service: {e}")

    async def fetch_group_watchlist(self, group_id: str) -> GroupWatchlist:
        data = await self._request("GET", f"/api/groups/{group_id}/watchlist")
        return GroupWatchlist.model_validate(data)

    async def update_progress(self, update: ProgressUpdate) -> bool:
        data = await self._request("POST", "/api/progress/update", data=update.model_dump(mode="json"))
        return _success(data)

    async def add_reaction(self, request: ReactionRequest) -> bool:
        data = await self._request("POST", "/api/progress/reaction", data=request.model_dump(mode="json"))
        return _success(data)

    async def set_rating(self, request: RatingRequest) -> bool:
        data = await self._request("POST", "/api/progress/rating", data=request.model_dump(mode="json"))
        return _success(data)

    async def add_comment(self, request: CommentRequest) -> bool:
        data = await self._request("POST", "/api/progress/comment", data=request.model_dump(mode="json"))
        return _success(data)

    async def list_user_groups(self, user_id: str) -> List[UserGroup]:
        data = await self._request("GET", "/api/groups", params={"user_id": user_id})
        return [UserGroup.model_validate(g) for g in data.get("groups", [])]

    async def add_to_watchlist(self, request: AddToWatchlistRequest) -> AddToWatchlistResponse:
        data = await self._request("POST", "/api/watchlist/add", data=request.model_dump(mode="json"))
        return AddToWatchlistResponse.model_validate(data)


def _success(data: Dict[str, Any]) -> bool:
    # Anything but an explicit true counts as failure
    return isinstance(data, dict) and data.get("success") is True


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return str(body)[:200]
