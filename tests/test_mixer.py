import json
import random

import numpy as np

from hedgebrain.context import Context
from hedgebrain.experts import Expert, FrequencyExpert, MarkovExpert, default_experts
from hedgebrain.mixer import MIN_WEIGHT, HedgeMixer
from hedgebrain.utils import is_valid_distribution, resolve_outcome

R, P, S = 0, 1, 2


class ConstantExpert(Expert):
    kind = "ConstantExpert"

    def __init__(self, dist):
        self.dist = np.asarray(dist, dtype=np.float64)
        self.updates = 0

    def predict(self, ctx):
        return self.dist.copy()

    def update(self, ctx, actual):
        self.updates += 1


class FlipFlopExpert(Expert):
    """Predicts rock on the first call and scissors on every later one."""

    kind = "FlipFlopExpert"

    def __init__(self):
        self.calls = 0

    def predict(self, ctx):
        self.calls += 1
        return np.array([1.0, 0.0, 0.0]) if self.calls == 1 else np.array([0.0, 0.0, 1.0])


def play(mixer, moves, ai=None):
    rnd = random.Random(5)
    player, ais, outcomes = [], [], []
    for m in moves:
        ctx = Context(tuple(player), tuple(ais), tuple(outcomes), rnd.random)
        mixer.predict(ctx)
        mixer.update(ctx, m)
        a = ai if ai is not None else rnd.randrange(3)
        player.append(m)
        ais.append(a)
        outcomes.append(resolve_outcome(m, a))
    return Context(tuple(player), tuple(ais), tuple(outcomes), rnd.random)


def test_predict_is_a_distribution():
    mixer = HedgeMixer()
    rnd = random.Random(1)
    ctx = play(mixer, [rnd.randrange(3) for _ in range(40)])
    assert is_valid_distribution(mixer.predict(ctx))
    assert is_valid_distribution(HedgeMixer().predict(Context()))


def test_update_reuses_cached_predictions():
    mixer = HedgeMixer([FlipFlopExpert()], names=["flip"])
    ctx = Context()
    mixer.predict(ctx)  # rock
    mixer.update(ctx, R)  # scored on the cached rock prediction, so no loss
    assert mixer.get_weights() == [1.0]


def test_update_without_predict_recomputes():
    mixer = HedgeMixer([ConstantExpert([0, 0, 1])], names=["s"])
    losses = mixer.update(Context(), R)
    assert losses[0] > 0.99
    assert mixer.get_weights()[0] < 1.0


def test_loss_direction_of_weights():
    good, bad = ConstantExpert([1, 0, 0]), ConstantExpert([0, 0, 1])
    mixer = HedgeMixer([good, bad], names=["good", "bad"])
    before = mixer.get_weights()
    mixer.predict(Context())
    mixer.update(Context(), R)
    after = mixer.get_weights()
    assert after[0] >= before[0]
    assert after[1] <= before[1]
    assert good.updates == 1 and bad.updates == 1


def test_weights_stay_positive():
    mixer = HedgeMixer([ConstantExpert([0, 0, 1]), ConstantExpert([1, 0, 0])], names=["a", "b"])
    for _ in range(2000):
        mixer.predict(Context())
        mixer.update(Context(), R)
    assert all(w >= MIN_WEIGHT > 0 for w in mixer.get_weights())
    assert is_valid_distribution(mixer.predict(Context()))


def test_rock_heavy_stream_favours_rock():
    mixer = HedgeMixer([FrequencyExpert(20, 1)], names=["freq"])
    ctx = play(mixer, [R, R, P, R, R])
    assert int(np.argmax(mixer.predict(ctx))) == R


def test_snapshot_shape():
    mixer = HedgeMixer()
    snap = mixer.snapshot()
    assert snap["predictions"] is None
    assert len(snap["weights"]) == len(default_experts())
    mixer.predict(Context())
    snap = mixer.snapshot()
    assert abs(sum(snap["weights"]) - 1.0) < 1e-9
    assert len(snap["predictions"]) == len(snap["names"]) == 8


def test_serialise_round_trip():
    mixer = HedgeMixer()
    rnd = random.Random(2)
    play(mixer, [rnd.choice([R, R, P, S]) for _ in range(30)])
    first = mixer.to_dict()
    again = HedgeMixer.from_dict(json.loads(json.dumps(first))).to_dict()
    assert again == first


def test_to_dict_is_independent_copy():
    mixer = HedgeMixer()
    play(mixer, [R, P, R])
    snap = mixer.to_dict()
    frozen = json.dumps(snap, sort_keys=True)
    play(mixer, [S, S, S, S])
    assert json.dumps(snap, sort_keys=True) == frozen


def test_from_dict_tolerates_corruption():
    mixer = HedgeMixer.from_dict({"eta": "fast", "weights": "abc", "experts": [{"type": "Nope"}, None]})
    assert mixer.eta == 1.6
    assert mixer.get_weights() == [1.0] * 8
    assert isinstance(mixer.experts[0], FrequencyExpert)
    assert isinstance(mixer.experts[3], MarkovExpert) and mixer.experts[3].order == 2

    short = HedgeMixer.from_dict({"weights": [0.5, 0.5]})
    assert short.get_weights() == [1.0] * 8
    assert len(HedgeMixer.from_dict(None)) == 8


def test_set_weights_replaces_bad_entries():
    mixer = HedgeMixer()
    mixer.set_weights([0.5, -1, float("nan"), 2, 1, 1, 1, 0])
    assert mixer.get_weights() == [0.5, 1.0, 1.0, 2.0, 1.0, 1.0, 1.0, 1.0]


def test_snapshot_keeps_last_predictions_after_update():
    mixer = HedgeMixer([FlipFlopExpert()], names=["flip"])
    mixer.predict(Context())
    mixer.update(Context(), R)
    preds = mixer.snapshot()["predictions"]
    assert preds is not None
    assert preds[0].tolist() == [1.0, 0.0, 0.0]


def test_cached_predictions_are_scored_once():
    flip = FlipFlopExpert()
    mixer = HedgeMixer([flip], names=["flip"])
    mixer.predict(Context())
    mixer.update(Context(), R)
    assert mixer.get_weights() == [1.0]
    # a second update without predict must not reuse the consumed cache
    mixer.update(Context(), R)
    assert flip.calls == 2
    assert mixer.get_weights()[0] < 1.0
