"""Golden-dog score decay by token age.

Phases (age since the pair was first seen):
  EARLY      ≤ 30m   decay 1.0
  PEAK       ≤ 2h    decay 1.0 → 0.8 (linear)
  DECLINING  ≤ 6h    decay 0.8 → 0.5 (linear)
  EXPIRED    > 6h    decay 0.4, never listed

Everything here is pure: callers pass ``now`` so results are reproducible.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum

from src.models.token import Token

EARLY_MAX = timedelta(minutes=30)
PEAK_MAX = timedelta(hours=2)
DECLINING_MAX = timedelta(hours=6)

EXPIRED_DECAY = Decimal("0.4")


class GoldenDogPhase(StrEnum):
    EARLY = "EARLY"
    PEAK = "PEAK"
    DECLINING = "DECLINING"
    EXPIRED = "EXPIRED"


def golden_dog_phase(age: timedelta) -> GoldenDogPhase:
    if age <= EARLY_MAX:
        return GoldenDogPhase.EARLY
    if age <= PEAK_MAX:
        return GoldenDogPhase.PEAK
    if age <= DECLINING_MAX:
        return GoldenDogPhase.DECLINING
    return GoldenDogPhase.EXPIRED


def _lerp(age: timedelta, start: timedelta, end: timedelta, hi: Decimal, lo: Decimal) -> Decimal:
    progress = Decimal(str((age - start) / (end - start)))
    return hi - (hi - lo) * progress


def time_decay_factor(age: timedelta) -> Decimal:
    if age <= EARLY_MAX:
        return Decimal(1)
    if age <= PEAK_MAX:
        return _lerp(age, EARLY_MAX, PEAK_MAX, Decimal(1), Decimal("0.8"))
    if age <= DECLINING_MAX:
        return _lerp(age, PEAK_MAX, DECLINING_MAX, Decimal("0.8"), Decimal("0.5"))
    return EXPIRED_DECAY


def effective_score(score: int, age: timedelta) -> int:
    """round(score × decay), half rounds up, never below 0."""
    value = (Decimal(score) * time_decay_factor(age)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return max(0, int(value))


@dataclass
class RankedToken:
    token: Token
    phase: GoldenDogPhase
    decay: Decimal
    effective_score: int

    def to_dict(self) -> dict:
        data = self.token.to_dict()
        data["phase"] = self.phase.value
        data["time_decay_factor"] = float(self.decay)
        data["effective_score"] = self.effective_score
        return data


def token_age(token: Token, now: datetime) -> timedelta:
    if token.created_at is None:
        return timedelta(0)
    return max(timedelta(0), now - token.created_at)


def rank_golden_dogs(tokens: Sequence[Token], now: datetime, limit: int) -> list[RankedToken]:
    """Drop EXPIRED tokens, order by effective score desc then analyzed_at desc (None last)."""
    ranked: list[RankedToken] = []
    for token in tokens:
        age = token_age(token, now)
        phase = golden_dog_phase(age)
        if phase is GoldenDogPhase.EXPIRED:
            continue
        ranked.append(
            RankedToken(
                token=token,
                phase=phase,
                decay=time_decay_factor(age),
                effective_score=effective_score(token.golden_dog_score or 0, age),
            )
        )

    def _key(item: RankedToken) -> tuple[int, int, float]:
        analyzed = item.token.analyzed_at
        return (
            -item.effective_score,
            0 if analyzed is not None else 1,
            -analyzed.timestamp() if analyzed is not None else 0.0,
        )

    ranked.sort(key=_key)
    return ranked[: max(0, limit)]


def golden_dog_fetch_limit(limit: int) -> int:
    """How many analyzed rows to load before filtering: limit*5 within [20, 200]."""
    return min(200, max(20, limit * 5))
