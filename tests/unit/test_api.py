import asyncio

import httpx
import pytest

from groupwatch.main import app
from groupwatch.schemas import EpisodeRef, MovieRef
from groupwatch.services.progress_store import HttpProgressStore
from groupwatch.services.spoiler_gate import can_view_comments
from groupwatch.services.toggle import CompletionToggle
from groupwatch.services.watchlist_view import WatchlistView

from sample_data import ALICE, BOB, CAROL, GROUP_ID, MOVIE_ID, SERIES_ID


def movie_target(user_id=ALICE, **extra):
    return {"group_id": GROUP_ID, "item_id": MOVIE_ID, "item_type": "movie", "user_id": user_id, **extra}


def episode_target(season, episode, user_id=ALICE, **extra):
    return {
        "group_id": GROUP_ID, "item_id": SERIES_ID, "item_type": "series", "user_id": user_id,
        "season_number": season, "episode_number": episode, **extra,
    }


def watchlist(client, **params):
    resp = client.get(f"/api/groups/{GROUP_ID}/watchlist", params=params)
    assert resp.status_code == 200, resp.text
    return resp.json()["watchlist"]


def test_root(client):
    assert client.get("/").json() == {"status": "GroupWatch API Running"}


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["timestamp"].endswith("+00:00")


def test_fresh_watchlist_has_no_progress(client):
    body = client.get(f"/api/groups/{GROUP_ID}/watchlist").json()
    assert [m["id"] for m in body["group"]["members"]] == [ALICE, BOB, CAROL]
    assert body["group"]["admins"] == [ALICE]
    movie = body["watchlist"]["movie_list"][0]
    assert movie["movie"]["title"] == "Iron Man"
    assert movie["user_progress"] == [] and movie["comments"] == []
    series = body["watchlist"]["series_list"][0]
    assert [s["season_number"] for s in series["series"]["seasons"]] == [1, 2]


def test_unknown_group_is_404(client):
    assert client.get("/api/groups/g-nope/watchlist").status_code == 404
    assert client.get("/api/groups/g-nope/members").status_code == 404


def test_update_progress_upserts_one_record(client):
    resp = client.post("/api/progress/update", json=movie_target(completed=True))
    assert resp.json() == {"success": True, "message": "Marked completed"}
    resp = client.post("/api/progress/update", json=movie_target(completed=False))
    assert resp.json()["message"] == "Marked not completed"

    records = watchlist(client)["movie_list"][0]["user_progress"]
    assert records == [{"user_id": ALICE, "completed": False, "reactions": [], "poll_rating": None}]


def test_episode_progress_is_per_episode(client):
    client.post("/api/progress/update", json=episode_target(1, 2, user_id=BOB, completed=True))
    records = watchlist(client)["series_list"][0]["episode_progress"]
    assert len(records) == 1
    assert (records[0]["season_number"], records[0]["episode_number"], records[0]["user_id"]) == (1, 2, BOB)


def test_non_member_is_forbidden(client):
    resp = client.post("/api/progress/update", json=movie_target(user_id="u-loner", completed=True))
    assert resp.status_code == 403


@pytest.mark.parametrize("body", [
    episode_target(1, 9, completed=True),
    episode_target(5, 1, completed=True),
    {**movie_target(completed=True), "item_id": "m-unknown"},
])
def test_unknown_item_is_not_found(client, body):
    assert client.post("/api/progress/update", json=body).status_code == 404


@pytest.mark.parametrize("body", [
    {**movie_target(completed=True), "season_number": 1, "episode_number": 1},
    {**episode_target(1, 1, completed=True), "episode_number": None},
    {**movie_target(), "completed": "sometimes"},
])
def test_malformed_update_is_rejected(client, body):
    assert client.post("/api/progress/update", json=body).status_code == 422


def test_reactions_accumulate_and_rating_replaces(client):
    for emoji in ("🔥", "🔥", "😢"):
        assert client.post("/api/progress/reaction", json=movie_target(reaction=emoji)).status_code == 200
    assert client.post("/api/progress/rating", json=movie_target(poll_rating=2)).status_code == 200
    assert client.post("/api/progress/rating", json=movie_target(poll_rating=4)).json()["message"] == "Rated 4/5"

    record = watchlist(client)["movie_list"][0]["user_progress"][0]
    assert record["reactions"] == ["🔥", "🔥", "😢"]
    assert record["poll_rating"] == 4
    # reacting does not mark anything watched
    assert record["completed"] is False


def test_unsupported_reaction_and_rating_out_of_range(client):
    assert client.post("/api/progress/reaction", json=movie_target(reaction="👍")).status_code == 422
    assert client.post("/api/progress/rating", json=movie_target(poll_rating=6)).status_code == 422
    assert client.post("/api/progress/rating", json=movie_target(poll_rating=0)).status_code == 422


def test_comments_land_on_item_and_author_episode_record(client):
    client.post("/api/progress/comment", json=movie_target(user_id=CAROL, text="Suit up"))
    client.post("/api/progress/comment", json=episode_target(1, 1, user_id=BOB, text="Time variance!"))

    data = watchlist(client)
    movie_comments = data["movie_list"][0]["comments"]
    assert [(c["user_id"], c["text"]) for c in movie_comments] == [(CAROL, "Suit up")]
    records = data["series_list"][0]["episode_progress"]
    assert len(records) == 1
    assert records[0]["user_id"] == BOB and records[0]["completed"] is False
    assert [c["text"] for c in records[0]["comments"]] == ["Time variance!"]


def test_empty_comment_is_rejected(client):
    assert client.post("/api/progress/comment", json=movie_target(text="")).status_code == 422


def test_redact_spoilers_drops_locked_comments_for_viewer(client):
    client.post("/api/progress/update", json=movie_target(completed=True))
    client.post("/api/progress/comment", json=movie_target(text="Spoilers ahead"))

    assert len(watchlist(client, viewer_id=ALICE, redact_spoilers=True)["movie_list"][0]["comments"]) == 1
    assert watchlist(client, viewer_id=BOB, redact_spoilers=True)["movie_list"][0]["comments"] == []
    # without redaction the client receives everything and obscures it locally
    assert len(watchlist(client)["movie_list"][0]["comments"]) == 1


def test_redact_spoilers_requires_member_viewer(client):
    url = f"/api/groups/{GROUP_ID}/watchlist"
    assert client.get(url, params={"redact_spoilers": True}).status_code == 400
    assert client.get(url, params={"redact_spoilers": True, "viewer_id": "u-loner"}).status_code == 403


def test_members_directory(client):
    body = client.get(f"/api/groups/{GROUP_ID}/members").json()
    assert body["count"] == 3
    alice = body["members"][0]
    assert (alice["id"], alice["display_name"], alice["is_admin"]) == (ALICE, "Tony Stark", True)


def test_stats(client):
    client.post("/api/progress/update", json=movie_target(completed=True))
    client.post("/api/progress/rating", json=movie_target(poll_rating=5))
    client.post("/api/progress/rating", json=movie_target(user_id=BOB, poll_rating=4))
    client.post("/api/progress/reaction", json=movie_target(user_id=BOB, reaction="😂"))
    for season, episode in ((1, 1), (1, 2)):
        client.post("/api/progress/update", json=episode_target(season, episode, user_id=CAROL, completed=True))

    body = client.get(f"/api/groups/{GROUP_ID}/stats").json()
    assert body["member_count"] == 3
    movie = body["movies"][0]
    assert movie["completed_count"] == 1
    assert movie["completion_percentage"] == 33
    assert movie["average_rating"] == 4.5
    assert movie["reactions"] == {"😂": 1}
    series = body["series"][0]
    assert series["completed_count"] == 0
    assert series["average_rating"] is None
    assert series["season_completion"] == {"1": 1, "2": 0}


def test_create_and_list_groups(client):
    resp = client.post("/api/groups", json={"name": "Book club", "member_ids": [ALICE, ALICE], "user_id": BOB})
    assert resp.status_code == 201
    group = resp.json()["group"]
    assert [m["id"] for m in group["members"]] == [BOB, ALICE]
    assert group["admins"] == [BOB]
    assert group["watchlist_id"]

    groups = client.get("/api/groups", params={"user_id": ALICE}).json()["groups"]
    roles = {g["name"]: g["role"] for g in groups}
    assert roles == {"Avengers Squad": "admin", "Book club": "member"}

    fresh = client.get(f"/api/groups/{group['id']}/watchlist").json()["watchlist"]
    assert fresh["movie_list"] == [] and fresh["series_list"] == []


def test_create_group_with_unknown_member_fails(client):
    resp = client.post("/api/groups", json={"name": "Ghosts", "member_ids": ["u-ghost"], "user_id": ALICE})
    assert resp.status_code == 400


def test_add_to_watchlist_reports_per_group(client):
    title = {
        "imdb_id": "tt4154796", "title": "Avengers: Endgame", "year": "2019", "type": "movie",
        "genre": "Action, Adventure, Drama", "runtime": "181 min",
    }
    body = {"group_ids": [GROUP_ID, "g-nope"], "movie_or_series": title, "user_id": ALICE}

    resp = client.post("/api/watchlist/add", json=body).json()
    assert resp["success"] is True
    assert resp["message"] == "Added 'Avengers: Endgame' to 1 of 2 groups"
    assert [(r["group_id"], r["success"]) for r in resp["results"]] == [(GROUP_ID, True), ("g-nope", False)]

    again = client.post("/api/watchlist/add", json=body).json()
    assert again["success"] is False
    assert again["results"][0]["message"] == "Already in watchlist"

    movies = watchlist(client)["movie_list"]
    assert [m["movie"]["title"] for m in movies] == ["Iron Man", "Avengers: Endgame"]
    assert movies[1]["movie"]["genre"] == ["Action", "Adventure", "Drama"]


def test_add_to_watchlist_requires_a_group(client):
    title = {"imdb_id": "tt1", "title": "X", "year": "2000", "type": "movie"}
    resp = client.post("/api/watchlist/add", json={"group_ids": [], "movie_or_series": title, "user_id": ALICE})
    assert resp.status_code == 422


def test_toggle_writes_through_http_store(client):
    """Client toggle against the real API: refetching shows the persisted flags."""
    store = HttpProgressStore(base_url="http://test", transport=httpx.ASGITransport(app=app))
    episode = EpisodeRef(series_id=SERIES_ID, season_number=1, episode_number=1)

    async def scenario():
        view = WatchlistView.from_payload(await store.fetch_group_watchlist(GROUP_ID))
        toggle = CompletionToggle(view, store)
        await toggle.toggle(CAROL, MovieRef(movie_id=MOVIE_ID))
        await toggle.toggle(CAROL, episode)
        await toggle.toggle(CAROL, episode)
        return view, WatchlistView.from_payload(await store.fetch_group_watchlist(GROUP_ID))

    local, remote = asyncio.run(scenario())

    for view in (local, remote):
        assert view.resolve_completed(MovieRef(movie_id=MOVIE_ID), CAROL) is True
        assert view.resolve_completed(episode, CAROL) is False
        assert can_view_comments(view, CAROL, MovieRef(movie_id=MOVIE_ID)) is True
        assert can_view_comments(view, CAROL, episode) is False
