import random

import numpy as np
import pytest

from hedgebrain.context import Context
from hedgebrain.experts import (
    EXPERT_LABELS,
    MAX_ORDER,
    MAX_PERIOD,
    MAX_WINDOW,
    BaitResponseExpert,
    FrequencyExpert,
    MarkovExpert,
    OutcomeExpert,
    PeriodicExpert,
    RecencyExpert,
    WinStayLoseShiftExpert,
    default_experts,
    expert_from_dict,
)
from hedgebrain.mixer import HedgeMixer
from hedgebrain.utils import is_valid_distribution, resolve_outcome

R, P, S = 0, 1, 2


def ctx_of(player, ai=None):
    ai = list(ai) if ai is not None else [R] * len(player)
    outcomes = [resolve_outcome(p, a) for p, a in zip(player, ai)]
    return Context(tuple(player), tuple(ai), tuple(outcomes), random.random)


def train(expert, player, ai=None):
    ai = list(ai) if ai is not None else [R] * len(player)
    for t in range(len(player)):
        expert.update(ctx_of(player[:t], ai[:t]), player[t])


def test_every_expert_returns_a_distribution():
    rnd = random.Random(3)
    for n in (0, 1, 2, 5, 30):
        player = [rnd.randrange(3) for _ in range(n)]
        ai = [rnd.randrange(3) for _ in range(n)]
        experts = default_experts()
        for e in experts:
            train(e, player, ai)
        ctx = ctx_of(player, ai)
        for e in experts:
            assert is_valid_distribution(e.predict(ctx)), e.kind


def test_stateless_experts_ignore_update():
    ctx = ctx_of([R, P, S, R, P, S, R, R])
    for e in (FrequencyExpert(), RecencyExpert(), PeriodicExpert()):
        before = e.predict(ctx).copy()
        e.update(ctx, P)
        assert np.array_equal(before, e.predict(ctx))


def test_frequency_locks_onto_rock():
    e = FrequencyExpert(window=20, alpha=1.0)
    p = e.predict(ctx_of([R] * 20))
    assert p[R] > 0.9


def test_frequency_only_sees_window():
    e = FrequencyExpert(window=3, alpha=1.0)
    p = e.predict(ctx_of([S] * 10 + [P] * 3))
    assert p[P] == pytest.approx(4 / 6)
    assert p[S] == pytest.approx(1 / 6)


def test_recency_prefers_latest_moves():
    e = RecencyExpert(gamma=0.5, alpha=0.0)
    p = e.predict(ctx_of([R] * 5 + [S]))
    # latest move weighs 1, the five rocks 0.5 + 0.25 + ... < 1
    assert p[S] > p[R]


def test_markov_learns_alternation():
    moves = [R, P] * 5
    e = MarkovExpert(order=1)
    train(e, moves)
    p = e.predict(ctx_of(moves + [R]))
    assert int(np.argmax(p)) == P


def test_markov_backs_off_to_shorter_key():
    e = MarkovExpert(order=2)
    e.update(ctx_of([R]), P)
    p = e.predict(ctx_of([S, R]))
    assert int(np.argmax(p)) == P


def test_markov_unknown_key_is_uniform():
    e = MarkovExpert(order=2)
    p = e.predict(ctx_of([S, S]))
    assert np.allclose(p, 1 / 3)


def test_outcome_expert_conditions_on_last_outcome():
    e = OutcomeExpert()
    ctx = ctx_of([P], ai=[R])  # player won
    for _ in range(3):
        e.update(ctx, S)
    assert int(np.argmax(e.predict(ctx))) == S
    assert np.allclose(e.predict(ctx_of([])), 1 / 3)


def test_wsls_keyed_by_outcome_and_move():
    e = WinStayLoseShiftExpert()
    won_with_paper = ctx_of([P], ai=[R])
    lost_with_paper = ctx_of([P], ai=[S])
    for _ in range(4):
        e.update(won_with_paper, P)
    assert int(np.argmax(e.predict(won_with_paper))) == P
    assert np.allclose(e.predict(lost_with_paper), 1 / 3)
    assert e.to_dict()["table"][0][0] == "win|paper"


def test_periodic_detects_cycle():
    moves = [R, P, S] * 4
    p = PeriodicExpert().predict(ctx_of(moves))
    assert int(np.argmax(p)) == R
    assert p[R] == pytest.approx(0.95 / 1.05)


def test_periodic_below_threshold_is_uniform():
    p = PeriodicExpert().predict(ctx_of([R, P, P, S, R, S]))
    assert np.allclose(p, 1 / 3)
    assert np.allclose(PeriodicExpert().predict(ctx_of([R, P])), 1 / 3)


def test_bait_response_tracks_reply_to_ai_move():
    e = BaitResponseExpert()
    ctx = ctx_of([R], ai=[S])
    for _ in range(3):
        e.update(ctx, R)
    assert int(np.argmax(e.predict(ctx))) == R
    assert np.allclose(e.predict(ctx_of([R], ai=[P])), 1 / 3)


def test_expert_state_round_trip():
    rnd = random.Random(11)
    player = [rnd.randrange(3) for _ in range(25)]
    ai = [rnd.randrange(3) for _ in range(25)]
    for e in default_experts():
        train(e, player, ai)
        clone = expert_from_dict(e.to_dict())
        assert type(clone) is type(e)
        assert clone.to_dict() == e.to_dict()


def test_deserialisation_clamps_parameters():
    rec = expert_from_dict({"type": "RecencyExpert", "gamma": 5, "alpha": -1})
    assert rec.gamma == 0.995 and rec.alpha == 0.0
    per = expert_from_dict({"type": "PeriodicExpert", "confident": 3, "window": "x", "minPeriod": 4, "maxPeriod": 2})
    assert per.confident == 1.0
    assert per.window == 18
    assert per.min_period == 4 and per.max_period == 4
    freq = expert_from_dict({"type": "FrequencyExpert", "window": float("nan"), "alpha": float("inf")})
    assert freq.window == 20 and freq.alpha == 1.0


def test_deserialisation_drops_bad_rows():
    m = expert_from_dict({
        "type": "MarkovExpert",
        "order": 0,
        "alpha": 1,
        "table": [
            ["rock", {"rock": 1, "paper": 2, "scissors": 0}],
            ["bogus", {"rock": 1}],
            ["rock|paper", {"rock": 1}],
            ["paper", {"rock": -1}],
            "not-a-row",
        ],
    })
    assert m.order == 1
    assert list(m.table) == ["rock"]
    bait = expert_from_dict({"type": "BaitResponseExpert", "table": {"rock": {"paper": "x"}, "paper": {"paper": 2}}})
    assert bait.table["rock"].tolist() == [0.0, 0.0, 0.0]
    assert bait.table["paper"].tolist() == [0.0, 2.0, 0.0]


def test_unknown_expert_kind_uses_fallback():
    fallback = MarkovExpert(order=2)
    assert expert_from_dict({"type": "NeuralExpert"}, fallback=fallback) is fallback
    assert isinstance(expert_from_dict("garbage"), FrequencyExpert)


def test_huge_stored_lengths_are_bounded():
    m = expert_from_dict({"type": "MarkovExpert", "order": 1e12})
    assert m.order == MAX_ORDER
    per = expert_from_dict({"type": "PeriodicExpert", "maxPeriod": 1e12, "minPeriod": 1e9, "window": 1e15})
    assert per.max_period == per.min_period == MAX_PERIOD
    assert per.window == MAX_WINDOW

    mixer = HedgeMixer.from_dict({
        "experts": [
            {"type": "FrequencyExpert", "window": 1e18},
            None,
            None,
            {"type": "MarkovExpert", "order": 1e12},
            None,
            None,
            {"type": "PeriodicExpert", "maxPeriod": 1e12},
            None,
        ],
    })
    ctx = ctx_of([R, P, S] * 5)
    assert is_valid_distribution(mixer.predict(ctx))
    mixer.update(ctx, R)


def test_long_lengths_only_scan_available_history():
    ctx = ctx_of([R, P, R, P, R])
    m = MarkovExpert(order=10 ** 12)
    train(m, [R, P, R, P, R])
    assert int(np.argmax(m.predict(ctx))) == P
    p = PeriodicExpert(max_period=10 ** 12).predict(ctx)
    assert int(np.argmax(p)) == P


def test_expert_labels_match_default_lineup():
    assert len(EXPERT_LABELS) == len(default_experts())
    assert HedgeMixer().names == list(EXPERT_LABELS)
