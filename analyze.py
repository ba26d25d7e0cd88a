"""
Voting statistics over a flat sequence of rounds.

Pipeline: directed vote histories -> pairwise histories and voter alignments
-> global and per-user reports. Everything here is a pure function of the
rounds passed in.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from itertools import combinations
from operator import attrgetter
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from league import League, Round, TrackResult, flatten_rounds


logger = logging.getLogger(__name__)


class AnalysisError(Exception):
    pass


class MissingVoteHistoryError(AnalysisError, KeyError):
    """A (submitter, voter) cell that densification should have created is absent."""

    def __init__(self, submitter: str, voter: str) -> None:
        super().__init__(submitter, voter)
        self.submitter = submitter
        self.voter = voter

    def __str__(self) -> str:
        return f"no vote history for submitter {self.submitter!r} and voter {self.voter!r}"


@dataclass
class VoteHistory:
    """Points one voter has given one submitter, across every round."""

    submitter: str
    voter: str
    total_points: int = 0
    total_votes: int = 0
    total_down_votes: int = 0
    total_negative_points: int = 0

    def add(self, points: int) -> None:
        self.total_votes += 1
        self.total_points += points
        if points < 0:
            self.total_down_votes += 1
            self.total_negative_points += points


@dataclass
class PairwiseHistory(VoteHistory):
    """
    Undirected history of two users. `submitter` is the one discovered first,
    `voter` the other; totals cover both directions.
    """

    @classmethod
    def combine(cls, forward: VoteHistory, backward: VoteHistory) -> PairwiseHistory:
        return cls(
            submitter=forward.submitter,
            voter=forward.voter,
            total_points=forward.total_points + backward.total_points,
            total_votes=forward.total_votes + backward.total_votes,
            total_down_votes=forward.total_down_votes + backward.total_down_votes,
            total_negative_points=forward.total_negative_points + backward.total_negative_points,
        )


@dataclass(frozen=True)
class VoterAlignment:
    user_one: str
    user_two: str
    points: int


@dataclass(frozen=True)
class BestTrack:
    track_result: TrackResult
    points: int


@dataclass(frozen=True)
class BestRound:
    round: Round
    points: int


@dataclass
class SubmitterSummary:
    submitter: str
    total_rounds: int = 0
    total_tracks: int = 0
    total_points: int = 0
    best_track: Optional[BestTrack] = None
    best_round: Optional[BestRound] = None
    # voter -> history
    vote_histories: Dict[str, VoteHistory] = field(default_factory=dict)

    @property
    def average_points_per_track(self) -> float:
        if self.total_tracks == 0:
            return math.nan
        return self.total_points / self.total_tracks


@dataclass
class GlobalAnalysis:
    """Extremes over a set of histories and alignments. None means no candidates."""

    most_points_given_to: Optional[VoteHistory] = None
    fewest_points_given_to: Optional[VoteHistory] = None
    fewest_votes_given_to: Optional[VoteHistory] = None
    most_down_votes_given_to: Optional[VoteHistory] = None
    most_points_for_each_other: Optional[PairwiseHistory] = None
    fewest_points_for_each_other: Optional[PairwiseHistory] = None
    fewest_votes_for_each_other: Optional[PairwiseHistory] = None
    same_wavelength: Optional[VoterAlignment] = None
    different_wavelength: Optional[VoterAlignment] = None


@dataclass
class UserAnalysis(GlobalAnalysis):
    user: str = ""
    most_points_given_by_this_user: Optional[VoteHistory] = None
    fewest_points_given_by_this_user: Optional[VoteHistory] = None
    total_rounds_played: int = 0
    total_points_received: int = 0
    average_points_per_track: float = math.nan
    best_round: Optional[BestRound] = None
    best_track: Optional[BestTrack] = None


@dataclass
class Analysis:
    global_analysis: GlobalAnalysis
    # username -> report, in discovery order
    users: Dict[str, UserAnalysis] = field(default_factory=dict)


# --- Vote histories ---


def build_vote_histories(rounds: Sequence[Round]) -> Dict[str, SubmitterSummary]:
    """
    One SubmitterSummary per submitter, keyed by username in the order
    submitters are first seen. Each summary holds a VoteHistory for every
    other submitter, zero-valued where no votes were exchanged.
    """
    summaries: Dict[str, SubmitterSummary] = {}

    for rnd in rounds:
        # submitter -> points across all of their tracks this round
        round_points: Dict[str, int] = {}

        for result in rnd.track_results:
            submitter = result.submitted_by.username
            summary = summaries.get(submitter)
            if summary is None:
                summary = summaries[submitter] = SubmitterSummary(submitter=submitter)

            if submitter not in round_points:
                round_points[submitter] = 0
                summary.total_rounds += 1

            track_points = 0
            for vote in result.votes:
                track_points += vote.points
                voter = vote.user.username
                if voter == submitter:
                    continue
                history = summary.vote_histories.get(voter)
                if history is None:
                    history = summary.vote_histories[voter] = VoteHistory(submitter, voter)
                history.add(vote.points)

            summary.total_tracks += 1
            summary.total_points += track_points
            round_points[submitter] += track_points
            if summary.best_track is None or track_points > summary.best_track.points:
                summary.best_track = BestTrack(result, track_points)

        for submitter, points in round_points.items():
            summary = summaries[submitter]
            if summary.best_round is None or points > summary.best_round.points:
                summary.best_round = BestRound(rnd, points)

    _densify(summaries)
    logger.debug(
        "Built vote histories for %d submitters over %d rounds (%d cells)",
        len(summaries),
        len(rounds),
        sum(len(s.vote_histories) for s in summaries.values()),
    )
    return summaries


def _densify(summaries: Dict[str, SubmitterSummary]) -> None:
    for submitter, summary in summaries.items():
        for voter in summaries:
            if voter != submitter and voter not in summary.vote_histories:
                summary.vote_histories[voter] = VoteHistory(submitter, voter)


def vote_history(summaries: Dict[str, SubmitterSummary], submitter: str, voter: str) -> VoteHistory:
    try:
        return summaries[submitter].vote_histories[voter]
    except KeyError:
        raise MissingVoteHistoryError(submitter, voter) from None


# --- Pairwise histories ---


def combine_pairwise_histories(summaries: Dict[str, SubmitterSummary]) -> List[PairwiseHistory]:
    """Exactly one PairwiseHistory per unordered pair of submitters."""
    return [
        PairwiseHistory.combine(
            vote_history(summaries, one, two),
            vote_history(summaries, two, one),
        )
        for one, two in combinations(summaries, 2)
    ]


# --- Voter alignment ---


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def _ballots(rounds: Sequence[Round]) -> List[Tuple[str, Dict[str, int]]]:
    """(submitter, voter -> points) for every track; a repeat vote keeps the first."""
    ballots: List[Tuple[str, Dict[str, int]]] = []
    for rnd in rounds:
        for result in rnd.track_results:
            points_by_voter: Dict[str, int] = {}
            for vote in result.votes:
                points_by_voter.setdefault(vote.user.username, vote.points)
            ballots.append((result.submitted_by.username, points_by_voter))
    return ballots


def score_voter_alignments(rounds: Sequence[Round], participants: Sequence[str]) -> List[VoterAlignment]:
    """
    For each pair of participants, sum min(|a|, |b|) over the tracks neither
    submitted, where a and b are their points on the track (0 if they did not
    vote). Tracks where the signs of a and b differ are skipped; zero is a
    sign of its own, so a vote against no vote never scores.
    """
    ballots = _ballots(rounds)
    alignments: List[VoterAlignment] = []
    for user_one, user_two in combinations(participants, 2):
        points = 0
        for submitter, ballot in ballots:
            if submitter == user_one or submitter == user_two:
                continue
            one = ballot.get(user_one, 0)
            two = ballot.get(user_two, 0)
            if _sign(one) != _sign(two):
                continue
            points += min(abs(one), abs(two))
        alignments.append(VoterAlignment(user_one, user_two, points))
    return alignments


# --- Reports ---


def _max_min(candidates: Iterable[Any], key: str) -> Tuple[Optional[Any], Optional[Any]]:
    """Stable ascending sort: ties go to the last candidate for max, the first for min."""
    ordered = sorted(candidates, key=attrgetter(key))
    if not ordered:
        return None, None
    return ordered[-1], ordered[0]


def _extremes(
    vote_histories: Iterable[VoteHistory],
    pairwise_histories: Iterable[PairwiseHistory],
    alignments: Iterable[VoterAlignment],
) -> Dict[str, Any]:
    vote_histories = list(vote_histories)
    pairwise_histories = list(pairwise_histories)

    most_given, fewest_given = _max_min(vote_histories, "total_points")
    _, fewest_votes_given = _max_min(vote_histories, "total_votes")
    most_down_votes, _ = _max_min(vote_histories, "total_down_votes")
    most_pair, fewest_pair = _max_min(pairwise_histories, "total_points")
    _, fewest_pair_votes = _max_min(pairwise_histories, "total_votes")
    same, different = _max_min(alignments, "points")

    return dict(
        most_points_given_to=most_given,
        fewest_points_given_to=fewest_given,
        fewest_votes_given_to=fewest_votes_given,
        most_down_votes_given_to=most_down_votes,
        most_points_for_each_other=most_pair,
        fewest_points_for_each_other=fewest_pair,
        fewest_votes_for_each_other=fewest_pair_votes,
        same_wavelength=same,
        different_wavelength=different,
    )


def assemble_global_analysis(
    vote_histories: Iterable[VoteHistory],
    pairwise_histories: Iterable[PairwiseHistory],
    alignments: Iterable[VoterAlignment],
) -> GlobalAnalysis:
    return GlobalAnalysis(**_extremes(vote_histories, pairwise_histories, alignments))


def _given_by(
    username: str, summaries: Dict[str, SubmitterSummary]
) -> tuple[Optional[VoteHistory], Optional[VoteHistory]]:
    """Histories where `username` is the voter with the most and fewest points; first seen wins ties."""
    most: Optional[VoteHistory] = None
    fewest: Optional[VoteHistory] = None
    for submitter, summary in summaries.items():
        if submitter == username:
            continue
        if username in summaries:
            history = vote_history(summaries, submitter, username)
        else:
            history = summary.vote_histories.get(username)
            if history is None:
                continue
        if most is None or history.total_points > most.total_points:
            most = history
        if fewest is None or history.total_points < fewest.total_points:
            fewest = history
    return most, fewest


def assemble_user_analysis(
    username: str,
    summaries: Dict[str, SubmitterSummary],
    pairwise_histories: Iterable[PairwiseHistory],
    alignments: Iterable[VoterAlignment],
) -> UserAnalysis:
    summary = summaries.get(username) or SubmitterSummary(submitter=username)
    most_by, fewest_by = _given_by(username, summaries)
    extremes = _extremes(
        (
            h
            for s in summaries.values()
            for h in s.vote_histories.values()
            if username in (h.submitter, h.voter)
        ),
        (p for p in pairwise_histories if username in (p.submitter, p.voter)),
        (a for a in alignments if username in (a.user_one, a.user_two)),
    )
    return UserAnalysis(
        user=username,
        most_points_given_by_this_user=most_by,
        fewest_points_given_by_this_user=fewest_by,
        total_rounds_played=summary.total_rounds,
        total_points_received=summary.total_points,
        average_points_per_track=summary.average_points_per_track,
        best_round=summary.best_round,
        best_track=summary.best_track,
        **extremes,
    )


def analyze_rounds(rounds: Sequence[Round]) -> Analysis:
    summaries = build_vote_histories(rounds)
    participants = list(summaries)
    pairwise = combine_pairwise_histories(summaries)
    alignments = score_voter_alignments(rounds, participants)

    all_histories = [h for s in summaries.values() for h in s.vote_histories.values()]
    analysis = Analysis(
        global_analysis=assemble_global_analysis(all_histories, pairwise, alignments),
        users={
            user: assemble_user_analysis(user, summaries, pairwise, alignments)
            for user in participants
        },
    )
    logger.debug(
        "Analyzed %d participants: %d pairwise histories, %d alignments",
        len(participants),
        len(pairwise),
        len(alignments),
    )
    return analysis


def analyze_leagues(leagues: Iterable[League]) -> Analysis:
    return analyze_rounds(flatten_rounds(leagues))
