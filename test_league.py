import json
import logging
import textwrap
from pathlib import Path

import pytest

import league
from league import League, LeagueFormatError, Round, Track, TrackResult, User, Vote


def write_csv(tmp_path: Path, name: str, content: str) -> Path:
    path = tmp_path / name
    path.write_text(textwrap.dedent(content).lstrip("\n"), encoding="utf-8")
    return path


def write_export(tmp_path: Path, votes: str, submissions: str, rounds: str | None = None,
                 competitors: str | None = None) -> Path:
    if competitors is not None:
        write_csv(tmp_path, "competitors.csv", competitors)
    if rounds is not None:
        write_csv(tmp_path, "rounds.csv", rounds)
    write_csv(tmp_path, "submissions.csv", submissions)
    write_csv(tmp_path, "votes.csv", votes)
    return tmp_path


SUBMISSIONS_HEADER = (
    "Spotify URI,Title,Album,Artist(s),Submitter ID,Created,Comment,Round ID,Visible To Voters\n"
)
VOTES_HEADER = "Spotify URI,Voter ID,Created,Points Assigned,Comment,Round ID\n"


# --- load_competitors / load_rounds ---


def test_load_competitors_reads_ids_and_names(tmp_path):
    csv_path = write_csv(
        tmp_path,
        "competitors.csv",
        """
        ID,Name
        a1,Alice
        b2,Bob
        """,
    )

    assert league.load_competitors(csv_path) == {"a1": "Alice", "b2": "Bob"}


def test_load_competitors_empty_file(tmp_path):
    csv_path = write_csv(tmp_path, "competitors.csv", "ID,Name\n")
    assert league.load_competitors(csv_path) == {}


def test_load_rounds_sorted_by_created(tmp_path):
    csv_path = write_csv(
        tmp_path,
        "rounds.csv",
        """
        ID,Created,Name,Description,Playlist URL
        r2,2026-02-17T00:00:00Z,Second,Covers only,https://example.com/2
        r1,2026-02-10T00:00:00Z,First,,https://example.com/1
        """,
    )

    assert league.load_rounds(csv_path) == [("r1", "First", ""), ("r2", "Second", "Covers only")]


# --- load_league_export ---


def test_load_league_export_builds_rounds_tracks_and_votes(tmp_path, caplog):
    directory = write_export(
        tmp_path,
        competitors="""
        ID,Name
        a1,Alice
        b2,Bob
        """,
        rounds="""
        ID,Created,Name,Description,Playlist URL
        r2,2026-02-17T00:00:00Z,Second,,https://example.com/2
        r1,2026-02-10T00:00:00Z,First,Opener,https://example.com/1
        """,
        submissions="""
        Spotify URI,Title,Album,Artist(s),Submitter ID,Created,Comment,Round ID,Visible To Voters
        spotify:track:1,Hit Song,Album A,Artist A,a1,2026-02-10T00:00:00Z,,r1,Yes
        spotify:track:2,Okay Song,Album B,Artist B,b2,2026-02-10T00:00:00Z,,r1,Yes
        spotify:track:3,Late Song,Album C,Artist C,a1,2026-02-17T00:00:00Z,,r2,Yes
        """,
        votes="""
        Spotify URI,Voter ID,Created,Points Assigned,Comment,Round ID
        spotify:track:1,b2,2026-02-10T00:00:00Z,3,,r1
        spotify:track:1,a1,2026-02-10T00:00:00Z,0,nice,r1
        spotify:track:2,a1,2026-02-10T00:00:00Z,2,,r1
        spotify:track:3,b2,2026-02-17T00:00:00Z,-1,,r2
        spotify:track:9,a1,2026-02-10T00:00:00Z,5,,r1
        """,
    )

    with caplog.at_level(logging.WARNING, logger="league"):
        result = league.load_league_export(directory, league_id="rf", title="Rock Fans")

    assert result.id == "rf"
    assert result.title == "Rock Fans"
    assert [r.id for r in result.rounds] == ["r1", "r2"]
    first = result.rounds[0]
    assert first.title == "First"
    assert first.description == "Opener"
    assert first.track_results[0] == TrackResult(
        track=Track(name="Hit Song", artist="Artist A", link="spotify:track:1"),
        submitted_by=User("Alice"),
        votes=(Vote(User("Bob"), 3),),
    )
    assert first.track_results[1].submitted_by == User("Bob")
    assert result.rounds[1].track_results[0].votes == (Vote(User("Bob"), -1),)
    assert "unknown submission spotify:track:9" in caplog.text


def test_load_league_export_without_metadata_files(tmp_path):
    directory = write_export(
        tmp_path,
        submissions=SUBMISSIONS_HEADER
        + "spotify:track:1,Title,Album,Artist,id_a,2026-02-10T00:00:00Z,,r1,Yes\n",
        votes=VOTES_HEADER + "spotify:track:1,id_b,2026-02-10T00:00:00Z,4,,r1\n",
    )

    result = league.load_league_export(directory)

    assert result.id == directory.name
    assert result.title == directory.name
    assert result.rounds[0].title == league.UNKNOWN_ROUND_TITLE
    track_result = result.rounds[0].track_results[0]
    assert track_result.submitted_by == User("id_a")
    assert track_result.votes == (Vote(User("id_b"), 4),)
    assert track_result.points == 4


def test_load_league_export_appends_rounds_missing_from_rounds_csv(tmp_path):
    directory = write_export(
        tmp_path,
        rounds="""
        ID,Created,Name,Description,Playlist URL
        r1,2026-02-10T00:00:00Z,Known,,https://example.com/1
        """,
        submissions=SUBMISSIONS_HEADER
        + "spotify:track:2,Later,Album,Artist,a,2026-02-10T00:00:00Z,,rX,Yes\n"
        + "spotify:track:1,Title,Album,Artist,a,2026-02-10T00:00:00Z,,r1,Yes\n",
        votes=VOTES_HEADER,
    )

    result = league.load_league_export(directory)

    assert [(r.id, r.title) for r in result.rounds] == [("r1", "Known"), ("rX", "Round")]


def test_load_league_export_missing_column_raises_format_error(tmp_path):
    directory = write_export(
        tmp_path,
        submissions=SUBMISSIONS_HEADER
        + "spotify:track:1,Title,Album,Artist,id_a,2026-02-10T00:00:00Z,,r1,Yes\n",
        votes="Spotify URI,Voter ID,Created,Comment,Round ID\n"
        + "spotify:track:1,id_b,2026-02-10T00:00:00Z,,r1\n",
    )

    with pytest.raises(LeagueFormatError, match="missing column 'Points Assigned'"):
        league.load_league_export(directory)


def test_load_league_export_bad_points_raises_format_error(tmp_path):
    directory = write_export(
        tmp_path,
        submissions=SUBMISSIONS_HEADER,
        votes=VOTES_HEADER + "spotify:track:1,id_b,2026-02-10T00:00:00Z,lots,,r1\n",
    )

    with pytest.raises(LeagueFormatError, match="bad points value"):
        league.load_league_export(directory)


def test_load_league_export_submissions_missing_column(tmp_path):
    directory = write_export(
        tmp_path,
        submissions="Spotify URI,Title,Round ID\nspotify:track:1,Title,r1\n",
        votes=VOTES_HEADER,
    )

    with pytest.raises(LeagueFormatError, match="submissions.csv: missing column"):
        league.load_league_export(directory)


# --- load_league_json ---


def scraped_league() -> dict:
    return {
        "id": "607226726c5a98003664c1f8",
        "title": "Office League",
        "rounds": [
            {
                "id": "round-1",
                "title": "Opening Night",
                "description": "Songs that open albums",
                "trackResults": [
                    {
                        "track": {"name": "Song", "artist": "Band", "spotifyLink": "https://open.spotify.com/x"},
                        "submittedBy": {"username": "alice"},
                        "votes": [
                            {"user": {"username": "bob"}, "points": 4},
                            {"user": {"username": "carol"}, "points": -1},
                        ],
                    }
                ],
            }
        ],
    }


def test_load_league_json(tmp_path):
    path = tmp_path / "office.json"
    path.write_text(json.dumps(scraped_league()), encoding="utf-8")

    result = league.load_league_json(path)

    assert result == League(
        id="607226726c5a98003664c1f8",
        title="Office League",
        rounds=(
            Round(
                id="round-1",
                title="Opening Night",
                description="Songs that open albums",
                track_results=(
                    TrackResult(
                        track=Track(name="Song", artist="Band", link="https://open.spotify.com/x"),
                        submitted_by=User("alice"),
                        votes=(Vote(User("bob"), 4), Vote(User("carol"), -1)),
                    ),
                ),
            ),
        ),
    )


def test_league_from_dict_missing_key_names_file():
    data = scraped_league()
    del data["rounds"][0]["trackResults"][0]["votes"]

    with pytest.raises(LeagueFormatError, match="votes"):
        league.league_from_dict(data, Path("office.json"))


def test_league_from_dict_rejects_empty_username():
    data = scraped_league()
    data["rounds"][0]["trackResults"][0]["submittedBy"]["username"] = ""

    with pytest.raises(LeagueFormatError, match="empty username"):
        league.league_from_dict(data)


def test_load_league_json_invalid_json(tmp_path):
    path = tmp_path / "corrupt.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(LeagueFormatError, match="invalid JSON"):
        league.load_league_json(path)


def test_league_from_dict_rejects_non_integer_points():
    data = scraped_league()
    data["rounds"][0]["trackResults"][0]["votes"][0]["points"] = "four"

    with pytest.raises(LeagueFormatError, match="bad value"):
        league.league_from_dict(data)


# --- flatten_rounds ---


def test_flatten_rounds_keeps_league_order():
    one = League(id="1", title="One", rounds=(Round(id="a", title="A"), Round(id="b", title="B")))
    two = League(id="2", title="Two", rounds=(Round(id="c", title="C"),))

    assert [r.id for r in league.flatten_rounds([one, two])] == ["a", "b", "c"]
    assert league.flatten_rounds([]) == []
