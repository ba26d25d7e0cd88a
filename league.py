from __future__ import annotations

import csv
import json
import logging
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Tuple


logger = logging.getLogger(__name__)

# Title used for rounds referenced by submissions but missing from rounds.csv.
UNKNOWN_ROUND_TITLE = "Round"


class LeagueFormatError(ValueError):
    """Raised when a league export or document cannot be turned into records."""


@dataclass(frozen=True)
class User:
    username: str


@dataclass(frozen=True)
class Vote:
    user: User
    points: int


@dataclass(frozen=True)
class Track:
    name: str
    artist: str
    link: str


@dataclass(frozen=True)
class TrackResult:
    track: Track
    submitted_by: User
    votes: Tuple[Vote, ...] = ()

    @property
    def points(self) -> int:
        return sum(vote.points for vote in self.votes)


@dataclass(frozen=True)
class Round:
    id: str
    title: str
    description: str = ""
    track_results: Tuple[TrackResult, ...] = ()


@dataclass(frozen=True)
class League:
    id: str
    title: str
    rounds: Tuple[Round, ...] = ()


def flatten_rounds(leagues: Iterable[League]) -> List[Round]:
    """Concatenate the rounds of every league, league order first."""
    rounds: List[Round] = []
    for league in leagues:
        rounds.extend(league.rounds)
    return rounds


# --- Music League CSV export ---


def load_competitors(path: Path) -> Dict[str, str]:
    competitors: Dict[str, str] = {}
    with path.open(newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        try:
            for row in reader:
                competitors[row["ID"]] = row["Name"]
        except KeyError as exc:
            raise LeagueFormatError(f"{path}: missing column {exc}") from exc
    return competitors


def load_rounds(path: Path) -> List[tuple[str, str, str]]:
    """Return list of (round_id, round_name, description) sorted by Created."""
    rows: List[tuple[str, str, str, str]] = []
    with path.open(newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        try:
            for row in reader:
                rows.append((row["ID"], row["Name"], row.get("Description") or "", row["Created"]))
        except KeyError as exc:
            raise LeagueFormatError(f"{path}: missing column {exc}") from exc
    rows.sort(key=lambda r: r[3])
    return [(r[0], r[1], r[2]) for r in rows]


def _load_votes(path: Path, competitors: Dict[str, str]) -> Dict[tuple[str, str], List[Vote]]:
    """Map (round_id, spotify_uri) -> votes in file order, zero-point rows dropped."""
    votes: Dict[tuple[str, str], List[Vote]] = defaultdict(list)
    with path.open(newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        try:
            for row in reader:
                points = int(row["Points Assigned"])
                # Zero-point rows are comments without a vote.
                if points == 0:
                    continue
                voter_id = row["Voter ID"]
                user = User(competitors.get(voter_id, voter_id))
                votes[(row["Round ID"], row["Spotify URI"])].append(Vote(user, points))
        except KeyError as exc:
            raise LeagueFormatError(f"{path}: missing column {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise LeagueFormatError(f"{path}: bad points value: {exc}") from exc
    return votes


def load_league_export(
    directory: Path, league_id: str | None = None, title: str | None = None
) -> League:
    """
    Build a League from a Music League CSV export directory
    (competitors.csv, rounds.csv, submissions.csv, votes.csv).

    Usernames are competitor display names, falling back to the raw ID.
    """
    competitors_path = directory / "competitors.csv"
    rounds_path = directory / "rounds.csv"
    competitors = load_competitors(competitors_path) if competitors_path.exists() else {}
    round_rows = load_rounds(rounds_path) if rounds_path.exists() else []
    votes = _load_votes(directory / "votes.csv", competitors)

    tracks_by_round: Dict[str, List[TrackResult]] = defaultdict(list)
    extra_round_ids: List[str] = []
    known_round_ids = {r[0] for r in round_rows}
    seen_keys = set()
    submissions_path = directory / "submissions.csv"
    with submissions_path.open(newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        try:
            for row in reader:
                round_id = row["Round ID"]
                uri = row["Spotify URI"]
                submitter_id = row["Submitter ID"]
                key = (round_id, uri)
                seen_keys.add(key)
                if round_id not in known_round_ids and round_id not in extra_round_ids:
                    extra_round_ids.append(round_id)
                tracks_by_round[round_id].append(
                    TrackResult(
                        track=Track(name=row["Title"], artist=row["Artist(s)"], link=uri),
                        submitted_by=User(competitors.get(submitter_id, submitter_id)),
                        votes=tuple(votes.get(key, ())),
                    )
                )
        except KeyError as exc:
            raise LeagueFormatError(f"{submissions_path}: missing column {exc}") from exc

    orphaned = [key for key in votes if key not in seen_keys]
    for round_id, uri in orphaned:
        logger.warning("Dropping %d vote(s) for unknown submission %s in round %s",
                       len(votes[(round_id, uri)]), uri, round_id)

    rounds = [
        Round(id=rid, title=rname, description=desc, track_results=tuple(tracks_by_round[rid]))
        for rid, rname, desc in round_rows
    ]
    rounds.extend(
        Round(id=rid, title=UNKNOWN_ROUND_TITLE, track_results=tuple(tracks_by_round[rid]))
        for rid in extra_round_ids
    )

    return League(
        id=league_id or directory.name,
        title=title or directory.name,
        rounds=tuple(rounds),
    )


# --- Scraped league JSON ---


def _user(data: dict, path: Path) -> User:
    username = data["username"]
    if not username:
        raise LeagueFormatError(f"{path}: empty username")
    return User(username)


def league_from_dict(data: dict, path: Path = Path("<memory>")) -> League:
    """
    Build a League from the scraped document shape:
    {id, title, rounds: [{id, title, description, trackResults: [...]}]}.
    """
    try:
        rounds = []
        for round_data in data["rounds"]:
            track_results = []
            for result in round_data["trackResults"]:
                track = result["track"]
                track_results.append(
                    TrackResult(
                        track=Track(
                            name=track["name"],
                            artist=track["artist"],
                            link=track.get("spotifyLink", ""),
                        ),
                        submitted_by=_user(result["submittedBy"], path),
                        votes=tuple(
                            Vote(_user(vote["user"], path), int(vote["points"]))
                            for vote in result["votes"]
                        ),
                    )
                )
            rounds.append(
                Round(
                    id=round_data["id"],
                    title=round_data["title"],
                    description=round_data.get("description", ""),
                    track_results=tuple(track_results),
                )
            )
        return League(id=data["id"], title=data["title"], rounds=tuple(rounds))
    except LeagueFormatError:
        raise
    except KeyError as exc:
        raise LeagueFormatError(f"{path}: missing key {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise LeagueFormatError(f"{path}: bad value: {exc}") from exc


def load_league_json(path: Path) -> League:
    with path.open(encoding="utf-8") as f:
        try:
            data = json.load(f)
        except ValueError as exc:
            raise LeagueFormatError(f"{path}: invalid JSON: {exc}") from exc
    return league_from_dict(data, path)
