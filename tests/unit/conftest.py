# GroupWatch unit test fixtures
from __future__ import annotations

import json
import os
os.environ.setdefault("GROUPWATCH_DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from groupwatch import models
from groupwatch.core.database import build_engine, get_db, init_db
from groupwatch.main import app
from sample_data import ALICE, BOB, CAROL, GROUP_ID, LOKI_SEASONS, MOVIE_ID, SERIES_ID, make_payload


@pytest.fixture()
def payload():
    """Fresh in-memory group watchlist; tests may mutate it freely."""
    return make_payload()


# Database-backed fixtures

@pytest.fixture()
def session_factory():
    engine = build_engine("sqlite://")
    init_db(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def seeded(db):
    """Three users in one group whose watchlist holds Iron Man and Loki."""
    db.add_all([
        models.User(id=ALICE, username="tony", email="tony@example.com", display_name="Tony Stark"),
        models.User(id=BOB, username="steve", email="steve@example.com"),
        models.User(id=CAROL, username="natasha", email="natasha@example.com"),
        models.User(id="u-loner", username="loner", email="loner@example.com"),
    ])
    group = models.Group(id=GROUP_ID, name="Avengers Squad", description="Binge-watching the MCU")
    group.memberships = [
        models.GroupMember(user_id=ALICE, is_admin=True),
        models.GroupMember(user_id=BOB),
        models.GroupMember(user_id=CAROL),
    ]
    group.watchlist = models.Watchlist(id="w-marvel")
    db.add(group)
    db.add(models.Movie(id=MOVIE_ID, omdb_id="tt0371746", title="Iron Man", year="2008", genres=json.dumps(["Action"])))
    db.add(models.Series(
        id=SERIES_ID, omdb_id="tt9140554", title="Loki", year="2021–2023", total_seasons=2,
        genres="[]", seasons=json.dumps([s.model_dump() for s in LOKI_SEASONS]),
    ))
    db.flush()
    group.watchlist.movies.append(models.WatchlistMovie(movie_id=MOVIE_ID))
    group.watchlist.series.append(models.WatchlistSeries(series_id=SERIES_ID))
    db.commit()
    return db


@pytest.fixture()
def client(session_factory, seeded):
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)
