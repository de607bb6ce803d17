"""
schemas.py

Pydantic schemas for groups, watchlists, title metadata, progress records and
the request/response payloads of the progress service.
"""
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Annotated, List, Literal, Optional, Union
import datetime

from groupwatch.utils.timezone import utc_now

Reaction = Literal["🔥", "😂", "❤️", "😢", "😡"]
REACTIONS = ("🔥", "😂", "❤️", "😢", "😡")

ItemType = Literal["movie", "series"]


class Comment(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    text: str
    timestamp: datetime.datetime = Field(default_factory=utc_now)


class Member(BaseModel):
    id: str
    username: str
    display_name: Optional[str] = None
    avatar: Optional[str] = None
    is_admin: bool = False

    @property
    def name(self) -> str:
        return self.display_name or self.username


class Group(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    members: List[Member] = Field(default_factory=list)
    admins: List[str] = Field(default_factory=list)
    watchlist_id: Optional[str] = None

    @model_validator(mode="after")
    def _admins_are_members(self):
        member_ids = {m.id for m in self.members}
        outsiders = [a for a in self.admins if a not in member_ids]
        if outsiders:
            raise ValueError(f"admins must be group members, got non-members {outsiders}")
        return self

    @property
    def member_ids(self) -> List[str]:
        return [m.id for m in self.members]


# Title metadata (read-only inputs imported by the title search pipeline)

class Movie(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    omdb_id: str
    title: str
    year: str  # may be a range like "2010–2015"
    genre: List[str] = Field(default_factory=list)
    poster: Optional[str] = None
    runtime: Optional[str] = None
    type: Literal["movie"] = "movie"


class Episode(BaseModel):
    model_config = ConfigDict(frozen=True)

    episode_number: int
    title: Optional[str] = None
    imdb_id: Optional[str] = None
    released: Optional[str] = None
    runtime: Optional[str] = None
    plot: Optional[str] = None
    imdb_rating: Optional[str] = None


class Season(BaseModel):
    model_config = ConfigDict(frozen=True)

    season_number: int
    episodes: List[Episode] = Field(default_factory=list)

    def episode(self, episode_number: int) -> Optional[Episode]:
        for ep in self.episodes:
            if ep.episode_number == episode_number:
                return ep
        return None


class Series(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    omdb_id: str
    title: str
    year: str
    genre: List[str] = Field(default_factory=list)
    poster: Optional[str] = None
    total_seasons: int = 0
    type: Literal["series"] = "series"
    seasons: List[Season] = Field(default_factory=list)

    def season(self, season_number: int) -> Optional[Season]:
        for s in self.seasons:
            if s.season_number == season_number:
                return s
        return None


# Progress records

class UserMovieProgress(BaseModel):
    user_id: str
    completed: bool = False
    reactions: List[Reaction] = Field(default_factory=list)
    poll_rating: Optional[int] = Field(None, ge=1, le=5)


class EpisodeProgress(BaseModel):
    season_number: int
    episode_number: int
    user_id: str
    completed: bool = False
    reactions: List[Reaction] = Field(default_factory=list)
    poll_rating: Optional[int] = Field(None, ge=1, le=5)
    comments: List[Comment] = Field(default_factory=list)


class MovieListItem(BaseModel):
    movie: Movie
    user_progress: List[UserMovieProgress] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)


class SeriesListItem(BaseModel):
    series: Series
    episode_progress: List[EpisodeProgress] = Field(default_factory=list)


class Watchlist(BaseModel):
    id: str
    group_id: str
    movie_list: List[MovieListItem] = Field(default_factory=list)
    series_list: List[SeriesListItem] = Field(default_factory=list)


class GroupWatchlist(BaseModel):
    """Group/Watchlist fetch payload: everything the view model is built from."""
    group: Group
    watchlist: Watchlist


# Item identity

class MovieRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["movie"] = "movie"
    movie_id: str

    @property
    def item_id(self) -> str:
        return self.movie_id

    @property
    def item_type(self) -> ItemType:
        return "movie"

    def __str__(self):
        return f"movie {self.movie_id}"


class EpisodeRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["episode"] = "episode"
    series_id: str
    season_number: int
    episode_number: int

    @property
    def item_id(self) -> str:
        return self.series_id

    @property
    def item_type(self) -> ItemType:
        return "series"

    def __str__(self):
        return f"series {self.series_id} S{self.season_number}E{self.episode_number}"


ItemRef = Annotated[Union[MovieRef, EpisodeRef], Field(discriminator="kind")]


# Payloads

class ItemTarget(BaseModel):
    """Addresses one movie, or one episode of a series, inside a group."""
    group_id: str
    item_id: str
    item_type: ItemType
    user_id: str
    season_number: Optional[int] = None
    episode_number: Optional[int] = None

    @model_validator(mode="after")
    def _episode_fields_match_type(self):
        has_episode = self.season_number is not None or self.episode_number is not None
        if self.item_type == "series" and (self.season_number is None or self.episode_number is None):
            raise ValueError("series updates require season_number and episode_number")
        if self.item_type == "movie" and has_episode:
            raise ValueError("movie updates must not carry season_number or episode_number")
        return self

    def ref(self) -> Union[MovieRef, EpisodeRef]:
        if self.item_type == "movie":
            return MovieRef(movie_id=self.item_id)
        return EpisodeRef(
            series_id=self.item_id,
            season_number=self.season_number,
            episode_number=self.episode_number,
        )

    @classmethod
    def target_fields(cls, group_id: str, ref: Union[MovieRef, EpisodeRef], user_id: str) -> dict:
        fields = {
            "group_id": group_id,
            "item_id": ref.item_id,
            "item_type": ref.item_type,
            "user_id": user_id,
        }
        if isinstance(ref, EpisodeRef):
            fields["season_number"] = ref.season_number
            fields["episode_number"] = ref.episode_number
        return fields


class ProgressUpdate(ItemTarget):
    completed: bool

    @classmethod
    def for_ref(cls, group_id: str, ref: Union[MovieRef, EpisodeRef], user_id: str, completed: bool) -> "ProgressUpdate":
        return cls(completed=completed, **cls.target_fields(group_id, ref, user_id))


class ReactionRequest(ItemTarget):
    reaction: Reaction


class RatingRequest(ItemTarget):
    poll_rating: int = Field(..., ge=1, le=5)


class CommentRequest(ItemTarget):
    text: str = Field(..., min_length=1, max_length=2000)


class ProgressUpdateResponse(BaseModel):
    success: bool
    message: Optional[str] = None


class CreateGroupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    member_ids: List[str] = Field(default_factory=list)
    user_id: str


class UserGroup(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    role: Literal["admin", "member"]


class TitleMetadata(BaseModel):
    """Title as returned by the external search/import pipeline."""
    imdb_id: str
    title: str
    year: str
    type: ItemType
    poster: Optional[str] = None
    plot: Optional[str] = None
    genre: Optional[str] = None  # comma separated, as OMDb returns it
    runtime: Optional[str] = None
    total_seasons: Optional[int] = None
    seasons: List[Season] = Field(default_factory=list)

    def genres(self) -> List[str]:
        if not self.genre:
            return []
        return [g.strip() for g in self.genre.split(",") if g.strip()]


class AddToWatchlistRequest(BaseModel):
    group_ids: List[str] = Field(..., min_length=1)
    movie_or_series: TitleMetadata
    user_id: str


class AddToWatchlistResult(BaseModel):
    group_id: str
    success: bool
    message: str


class AddToWatchlistResponse(BaseModel):
    success: bool
    message: str
    results: List[AddToWatchlistResult]


class ItemStats(BaseModel):
    item_id: str
    item_type: ItemType
    title: str
    member_count: int
    completed_count: int
    completion_percentage: int
    average_rating: Optional[float] = None  # None means nobody rated it yet
    reactions: dict = Field(default_factory=dict)
    season_completion: dict = Field(default_factory=dict)  # season number -> members done
