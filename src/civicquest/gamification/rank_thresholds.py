"""Trainer rank thresholds and computation.

These values MUST match the mobile client's TrainerRank union and the
achievement catalog tiers in seed.py.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import case

from civicquest.gamification.enums import Rank

RANK_THRESHOLDS: list[dict] = [
    {"rank": Rank.NOVICE_TRAINER, "level": 1, "min_coins": 0},
    {"rank": Rank.ISSUE_SCOUT, "level": 2, "min_coins": 500},
    {"rank": Rank.COMMUNITY_GUARDIAN, "level": 3, "min_coins": 1000},
    {"rank": Rank.DISTRICT_CHAMPION, "level": 4, "min_coins": 2500},
    {"rank": Rank.ELITE_POKERANGER, "level": 5, "min_coins": 5000},
]

_BY_RANK: dict[Rank, dict] = {t["rank"]: t for t in RANK_THRESHOLDS}

MAX_RANK: Rank = RANK_THRESHOLDS[-1]["rank"]


def rank_for(civic_coins: int) -> Rank:
    """Highest rank whose minimum is <= civic_coins."""
    current = RANK_THRESHOLDS[0]
    for threshold in RANK_THRESHOLDS:
        if civic_coins >= threshold["min_coins"]:
            current = threshold
    return current["rank"]


def rank_index(rank: Rank) -> int:
    """Zero-based position of ``rank`` in the ladder."""
    return _BY_RANK[rank]["level"] - 1


def trainer_level_for(rank: Rank) -> int:
    return _BY_RANK[rank]["level"]


def threshold_for(rank: Rank) -> int:
    return _BY_RANK[rank]["min_coins"]


def next_rank(rank: Rank) -> Rank | None:
    """The rank after ``rank``, or None at the top of the ladder."""
    idx = rank_index(rank)
    if idx + 1 >= len(RANK_THRESHOLDS):
        return None
    return RANK_THRESHOLDS[idx + 1]["rank"]


def progress_to_next(rank: Rank, civic_coins: int) -> float:
    """Percent of the way from ``rank`` to the next one, clamped to [0, 100]."""
    following = next_rank(rank)
    if following is None:
        return 100.0

    current_min = threshold_for(rank)
    span = threshold_for(following) - current_min
    percent = (civic_coins - current_min) / span * 100
    return max(0.0, min(100.0, percent))


def rank_info(civic_coins: int) -> dict:
    """Rank, level and progress summary for a balance."""
    rank = rank_for(civic_coins)
    following = next_rank(rank)
    return {
        "rank": rank,
        "trainer_level": trainer_level_for(rank),
        "current_threshold": threshold_for(rank),
        "next_rank": following,
        "next_threshold": threshold_for(following) if following else None,
        "coins_to_next": max(0, threshold_for(following) - civic_coins) if following else 0,
        "progress_percent": progress_to_next(rank, civic_coins),
    }


# ---------------------------------------------------------------------------
# SQL expressions: keep rank / trainer_level in the same UPDATE as the balance
# ---------------------------------------------------------------------------


def rank_case(coins: Any) -> Any:  # noqa: ANN401
    """CASE expression mapping a coins expression to the stored rank value."""
    return case(
        *[(coins >= t["min_coins"], t["rank"].value) for t in reversed(RANK_THRESHOLDS[1:])],
        else_=RANK_THRESHOLDS[0]["rank"].value,
    )


def trainer_level_case(coins: Any) -> Any:  # noqa: ANN401
    """CASE expression mapping a coins expression to the trainer level."""
    return case(
        *[(coins >= t["min_coins"], t["level"]) for t in reversed(RANK_THRESHOLDS[1:])],
        else_=RANK_THRESHOLDS[0]["level"],
    )
