import unittest

from groupwatch.schemas import Comment, EpisodeRef, MovieRef
from groupwatch.services.spoiler_gate import SPOILER_NOTICE, can_view_comments, redact_watchlist, render_comments
from groupwatch.services.watchlist_view import WatchlistView

from sample_data import ALICE, BOB, CAROL, MOVIE_ID, SERIES_ID, make_payload

S1E1 = EpisodeRef(series_id=SERIES_ID, season_number=1, episode_number=1)
S1E2 = EpisodeRef(series_id=SERIES_ID, season_number=1, episode_number=2)
MOVIE = MovieRef(movie_id=MOVIE_ID)


def test_gate_follows_viewers_own_record(payload):
    view = WatchlistView.from_payload(payload)
    assert can_view_comments(view, ALICE, MOVIE) is True
    # explicit not-completed record
    assert can_view_comments(view, BOB, MOVIE) is False
    # no record at all
    assert can_view_comments(view, CAROL, MOVIE) is False


def test_gate_is_per_episode(payload):
    view = WatchlistView.from_payload(payload)
    assert can_view_comments(view, ALICE, S1E1) is True
    assert can_view_comments(view, ALICE, S1E2) is False


def test_gate_ignores_group_completion(payload):
    # everyone but Carol finished the movie; Carol still cannot read comments
    view = WatchlistView.from_payload(payload)
    view.apply_completion(MOVIE, BOB, True)
    assert can_view_comments(view, CAROL, MOVIE) is False


class TestRenderComments(unittest.TestCase):
    def setUp(self):
        self.view = WatchlistView.from_payload(make_payload())

    def test_unlocked_comments_are_plain(self):
        gated = render_comments(self.view, ALICE, MOVIE)
        self.assertTrue(gated.visible)
        self.assertIsNone(gated.notice)
        self.assertEqual([c.author_name for c in gated.comments], ["Tony Stark", "natasha"])
        self.assertFalse(any(c.obscured for c in gated.comments))

    def test_gated_comments_are_obscured_not_removed(self):
        gated = render_comments(self.view, CAROL, MOVIE)
        self.assertFalse(gated.visible)
        self.assertEqual(gated.notice, SPOILER_NOTICE)
        self.assertEqual(len(gated.comments), 2)
        self.assertTrue(all(c.obscured for c in gated.comments))
        # advisory only: the text is still in the payload
        self.assertEqual(gated.comments[0].text, "This started it all!")

    def test_unknown_author_renders_without_name(self):
        item = self.view.find_movie_item(MOVIE_ID)
        item.comments.append(Comment(user_id="u-former", text="bye"))
        gated = render_comments(self.view, ALICE, MOVIE)
        self.assertIsNone(gated.comments[-1].author_name)


def test_redact_watchlist_strips_only_locked_comments(payload):
    redacted = redact_watchlist(payload, BOB)
    assert redacted.watchlist.movie_list[0].comments == []
    assert redacted.watchlist.series_list[0].episode_progress[0].comments == []
    # progress data survives
    assert redacted.watchlist.movie_list[0].user_progress[0].poll_rating == 5
    # the original payload is untouched
    assert len(payload.watchlist.movie_list[0].comments) == 2

    for_alice = redact_watchlist(payload, ALICE)
    assert len(for_alice.watchlist.movie_list[0].comments) == 2
    assert len(for_alice.watchlist.series_list[0].episode_progress[0].comments) == 1
