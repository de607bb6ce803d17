"""
models.py

SQLAlchemy models for users, groups, imported titles, group watchlists and
per-user progress records.
"""
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, Text, UniqueConstraint, Index
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship
import uuid
from groupwatch.utils.timezone import utc_now

Base = declarative_base()


def new_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True, default=new_id)
    username = Column(String, unique=True, nullable=False)
    email = Column(String, unique=True, nullable=False)
    display_name = Column(String, nullable=True)
    avatar = Column(String, nullable=True)
    created_at = Column(DateTime, default=utc_now)

class Group(Base):
    __tablename__ = "groups"
    id = Column(String, primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    memberships = relationship("GroupMember", back_populates="group", cascade="all, delete-orphan", order_by="GroupMember.id")
    watchlist = relationship("Watchlist", back_populates="group", uselist=False, cascade="all, delete-orphan")

class GroupMember(Base):
    __tablename__ = "group_members"
    id = Column(Integer, primary_key=True)
    group_id = Column(String, ForeignKey("groups.id"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    is_admin = Column(Boolean, default=False)
    joined_at = Column(DateTime, default=utc_now)

    group = relationship("Group", back_populates="memberships")
    user = relationship("User")

    __table_args__ = (UniqueConstraint('group_id', 'user_id', name='uq_group_member'),)

class Movie(Base):
    __tablename__ = "movies"
    id = Column(String, primary_key=True, default=new_id)
    omdb_id = Column(String, unique=True, nullable=False, index=True)
    title = Column(String, nullable=False)
    year = Column(String)  # OMDb years can be ranges
    genres = Column(Text)  # JSON array of genre names
    poster = Column(String, nullable=True)
    runtime = Column(String, nullable=True)
    created_at = Column(DateTime, default=utc_now)

class Series(Base):
    __tablename__ = "series"
    id = Column(String, primary_key=True, default=new_id)
    omdb_id = Column(String, unique=True, nullable=False, index=True)
    title = Column(String, nullable=False)
    year = Column(String)
    genres = Column(Text)  # JSON array of genre names
    poster = Column(String, nullable=True)
    total_seasons = Column(Integer, default=0)
    seasons = Column(Text)  # JSON array of {season_number, episodes: [...]}
    created_at = Column(DateTime, default=utc_now)

class Watchlist(Base):
    __tablename__ = "watchlists"
    id = Column(String, primary_key=True, default=new_id)
    group_id = Column(String, ForeignKey("groups.id"), nullable=False, unique=True)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    group = relationship("Group", back_populates="watchlist")
    movies = relationship("WatchlistMovie", cascade="all, delete-orphan", order_by="WatchlistMovie.id")
    series = relationship("WatchlistSeries", cascade="all, delete-orphan", order_by="WatchlistSeries.id")

class WatchlistMovie(Base):
    __tablename__ = "watchlist_movies"
    id = Column(Integer, primary_key=True)
    watchlist_id = Column(String, ForeignKey("watchlists.id"), nullable=False, index=True)
    movie_id = Column(String, ForeignKey("movies.id"), nullable=False)
    added_by = Column(String, ForeignKey("users.id"), nullable=True)
    added_at = Column(DateTime, default=utc_now)

    movie = relationship("Movie")

    __table_args__ = (UniqueConstraint('watchlist_id', 'movie_id', name='uq_watchlist_movie'),)

class WatchlistSeries(Base):
    __tablename__ = "watchlist_series"
    id = Column(Integer, primary_key=True)
    watchlist_id = Column(String, ForeignKey("watchlists.id"), nullable=False, index=True)
    series_id = Column(String, ForeignKey("series.id"), nullable=False)
    added_by = Column(String, ForeignKey("users.id"), nullable=True)
    added_at = Column(DateTime, default=utc_now)

    series = relationship("Series")

    __table_args__ = (UniqueConstraint('watchlist_id', 'series_id', name='uq_watchlist_series'),)

class MovieProgress(Base):
    """One row per (group, movie, user). Created lazily, never deleted."""
    __tablename__ = "movie_progress"
    id = Column(Integer, primary_key=True)
    group_id = Column(String, ForeignKey("groups.id"), nullable=False)
    movie_id = Column(String, ForeignKey("movies.id"), nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    completed = Column(Boolean, default=False, nullable=False)
    reactions = Column(Text, default="[]")  # JSON array, duplicates allowed
    poll_rating = Column(Integer, nullable=True)  # 1-5
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint('group_id', 'movie_id', 'user_id', name='uq_movie_progress'),
    )

class EpisodeProgress(Base):
    """One row per (group, series, season, episode, user)."""
    __tablename__ = "episode_progress"
    id = Column(Integer, primary_key=True)
    group_id = Column(String, ForeignKey("groups.id"), nullable=False)
    series_id = Column(String, ForeignKey("series.id"), nullable=False)
    season_number = Column(Integer, nullable=False)
    episode_number = Column(Integer, nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    completed = Column(Boolean, default=False, nullable=False)
    reactions = Column(Text, default="[]")
    poll_rating = Column(Integer, nullable=True)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint('group_id', 'series_id', 'season_number', 'episode_number', 'user_id', name='uq_episode_progress'),
        Index('ix_episode_progress_group_series', 'group_id', 'series_id'),
    )

class Comment(Base):
    """Append-only. Episode comments carry season/episode numbers and are
    attached to the author's episode progress record when assembled."""
    __tablename__ = "comments"
    id = Column(Integer, primary_key=True)
    group_id = Column(String, ForeignKey("groups.id"), nullable=False)
    item_type = Column(String, nullable=False)  # 'movie' or 'series'
    item_id = Column(String, nullable=False)
    season_number = Column(Integer, nullable=True)
    episode_number = Column(Integer, nullable=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utc_now, index=True)

    __table_args__ = (
        Index('ix_comments_group_item', 'group_id', 'item_type', 'item_id'),
    )
