"""
Best-fit table scoring

    score = 100 - 10 * |capacity - party_size|
            + 50 if capacity == party_size
            + 25 if capacity == party_size + 1
            + location bonus if the preferred location matches

Scores never drop below zero. Ties go to the lowest table number.
"""

from typing import Iterable, List, Optional

from .models import Table, TableCandidate, TableState

BASE_SCORE = 100
CAPACITY_GAP_PENALTY = 10
EXACT_FIT_BONUS = 50
ONE_SPARE_SEAT_BONUS = 25


def location_matches(location: Optional[str], preference: Optional[str]) -> bool:
    if not preference or not location:
        return False
    return location.strip().casefold() == preference.strip().casefold()


def score_table(
    capacity: int,
    party_size: int,
    location: Optional[str] = None,
    location_preference: Optional[str] = None,
    location_bonus: int = 10,
) -> int:
    score = BASE_SCORE - CAPACITY_GAP_PENALTY * abs(capacity - party_size)
    if capacity == party_size:
        score += EXACT_FIT_BONUS
    elif capacity == party_size + 1:
        score += ONE_SPARE_SEAT_BONUS
    if location_matches(location, location_preference):
        score += location_bonus
    return max(0, score)


def rank_candidates(
    tables: Iterable[Table],
    party_size: int,
    location_preference: Optional[str] = None,
    location_bonus: int = 10,
) -> List[TableCandidate]:
    """Free tables that seat the party, best first"""
    candidates = [
        TableCandidate(
            table_id=t.table_id,
            number=t.number,
            capacity=t.capacity,
            location=t.location,
            score=score_table(t.capacity, party_size, t.location, location_preference, location_bonus),
        )
        for t in tables
        if t.state == TableState.FREE and t.capacity >= party_size
    ]
    candidates.sort(key=lambda c: (-c.score, c.number))
    return candidates
