# sidebyside/services/tally_service.py
"""Vote tally, percentage rounding and winner determination.

Pure functions over option ids and per-option counts; the DB-facing wrapper
lives in ``voting_service``.
"""
import math
from dataclasses import dataclass, field
from typing import Literal, Mapping, Sequence, Union

TIE = "tie"

Winner = Union[int, Literal["tie"]]


@dataclass
class OptionResult:
    """Tally row for one option"""
    option_id: int
    count: int
    percentage: int


@dataclass
class VotingResults:
    total_votes: int
    results: list[OptionResult] = field(default_factory=list)
    winner: Winner = TIE

    @property
    def percentages(self) -> list[int]:
        return [r.percentage for r in self.results]


def round_half_up(value: float) -> int:
    """0.5 goes up (Python's round() would go to even)"""
    return int(math.floor(value + 0.5))


def compute_percentages(counts: Sequence[int]) -> list[int]:
    """
    Per-option percentages that add up to exactly 100.

    - no votes: every option gets 0
    - otherwise each option is rounded half-up independently, then the
      rounding difference is applied to the first option holding the
      largest percentage (array order decides between equal maxima)
    """
    total = sum(counts)
    if total == 0:
        return [0 for _ in counts]

    percentages = [round_half_up(count / total * 100) for count in counts]

    diff = 100 - sum(percentages)
    if diff != 0:
        # max() returns the first maximal element
        top = max(range(len(percentages)), key=lambda i: percentages[i])
        percentages[top] += diff

    return percentages


def determine_winner(option_ids: Sequence[int], counts: Sequence[int]) -> Winner:
    """Unique max count wins; shared max or zero votes is a tie"""
    if sum(counts) == 0:
        return TIE

    max_votes = max(counts)
    leaders = [option_id for option_id, count in zip(option_ids, counts) if count == max_votes]

    if len(leaders) == 1:
        return leaders[0]
    return TIE


def tally(option_ids: Sequence[int], vote_counts: Mapping[int, int]) -> VotingResults:
    """
    Build results for options in display order.

    Options without votes are included with a count of 0; counts for ids
    not in ``option_ids`` are ignored.
    """
    counts = [int(vote_counts.get(option_id, 0)) for option_id in option_ids]
    percentages = compute_percentages(counts)

    return VotingResults(
        total_votes=sum(counts),
        results=[
            OptionResult(option_id=option_id, count=count, percentage=percentage)
            for option_id, count, percentage in zip(option_ids, counts, percentages)
        ],
        winner=determine_winner(option_ids, counts),
    )
