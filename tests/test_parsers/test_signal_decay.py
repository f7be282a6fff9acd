"""Tests for golden-dog time decay and ranking (pure logic, no DB)."""

from datetime import datetime, timedelta
from decimal import Decimal

from src.models.token import STATUS_ANALYZED, Token
from src.parsers.signal_decay import (
    GoldenDogPhase,
    effective_score,
    golden_dog_fetch_limit,
    golden_dog_phase,
    rank_golden_dogs,
    time_decay_factor,
)

NOW = datetime(2026, 1, 1, 12, 0, 0)


def _token(address: str, score: int, age: timedelta, analyzed_ago: timedelta | None = None) -> Token:
    return Token(
        address=address,
        golden_dog_score=score,
        is_golden_dog=True,
        analysis_status=STATUS_ANALYZED,
        created_at=NOW - age,
        analyzed_at=(NOW - analyzed_ago) if analyzed_ago is not None else None,
    )


class TestPhases:
    def test_boundaries(self):
        assert golden_dog_phase(timedelta(0)) is GoldenDogPhase.EARLY
        assert golden_dog_phase(timedelta(minutes=30)) is GoldenDogPhase.EARLY
        assert golden_dog_phase(timedelta(minutes=30, seconds=1)) is GoldenDogPhase.PEAK
        assert golden_dog_phase(timedelta(hours=2)) is GoldenDogPhase.PEAK
        assert golden_dog_phase(timedelta(hours=2, seconds=1)) is GoldenDogPhase.DECLINING
        assert golden_dog_phase(timedelta(hours=6)) is GoldenDogPhase.DECLINING
        assert golden_dog_phase(timedelta(hours=6, seconds=1)) is GoldenDogPhase.EXPIRED


class TestDecay:
    def test_anchor_values(self):
        assert time_decay_factor(timedelta(minutes=10)) == 1
        assert time_decay_factor(timedelta(minutes=30)) == 1
        assert time_decay_factor(timedelta(hours=2)) == Decimal("0.8")
        assert time_decay_factor(timedelta(hours=6)) == Decimal("0.5")
        assert time_decay_factor(timedelta(hours=12)) == Decimal("0.4")

    def test_linear_inside_peak(self):
        # 75 min is halfway between 30 min and 2 h
        assert time_decay_factor(timedelta(minutes=75)) == Decimal("0.9")

    def test_monotonic_non_increasing(self):
        ages = [timedelta(minutes=m) for m in range(0, 8 * 60, 7)]
        factors = [time_decay_factor(a) for a in ages]
        assert all(a >= b for a, b in zip(factors, factors[1:]))
        assert all(Decimal("0.4") <= f <= 1 for f in factors)


class TestEffectiveScore:
    def test_rounding_half_up(self):
        assert effective_score(100, timedelta(minutes=75)) == 90
        assert effective_score(85, timedelta(hours=2)) == 68
        assert effective_score(5, timedelta(minutes=75)) == 5  # 4.5 → 5

    def test_never_negative(self):
        assert effective_score(-10, timedelta(0)) == 0


class TestRanking:
    def test_expired_tokens_are_never_listed(self):
        tokens = [
            _token("0xa", 90, timedelta(hours=7)),
            _token("0xb", 40, timedelta(minutes=5)),
        ]
        ranked = rank_golden_dogs(tokens, NOW, limit=10)
        assert [r.token.address for r in ranked] == ["0xb"]

    def test_orders_by_effective_score(self):
        tokens = [
            _token("0xold", 90, timedelta(hours=5)),  # decays below 0.8
            _token("0xnew", 80, timedelta(minutes=10)),
        ]
        ranked = rank_golden_dogs(tokens, NOW, limit=10)
        assert [r.token.address for r in ranked] == ["0xnew", "0xold"]
        assert ranked[0].phase is GoldenDogPhase.EARLY
        assert ranked[1].phase is GoldenDogPhase.DECLINING

    def test_ties_broken_by_analyzed_at_desc_then_missing_last(self):
        tokens = [
            _token("0xnone", 50, timedelta(minutes=1)),
            _token("0xearly", 50, timedelta(minutes=1), analyzed_ago=timedelta(minutes=30)),
            _token("0xlate", 50, timedelta(minutes=1), analyzed_ago=timedelta(minutes=1)),
        ]
        ranked = rank_golden_dogs(tokens, NOW, limit=10)
        assert [r.token.address for r in ranked] == ["0xlate", "0xearly", "0xnone"]

    def test_limit_applied_after_filtering(self):
        tokens = [_token(f"0x{i}", 50 + i, timedelta(minutes=i)) for i in range(5)]
        assert len(rank_golden_dogs(tokens, NOW, limit=2)) == 2

    def test_to_dict_adds_decay_fields(self):
        ranked = rank_golden_dogs([_token("0xa", 100, timedelta(minutes=75))], NOW, limit=1)
        data = ranked[0].to_dict()
        assert data["phase"] == "PEAK"
        assert data["time_decay_factor"] == 0.9
        assert data["effective_score"] == 90


def test_fetch_limit_clamped():
    assert golden_dog_fetch_limit(1) == 20
    assert golden_dog_fetch_limit(10) == 50
    assert golden_dog_fetch_limit(100) == 200
