import argparse
import json
import random
from typing import Dict

from hedgebrain import GameBrain, MemoryStore
from hedgebrain.utils import resolve_outcome


def simulate_session(brain: GameBrain, n_rounds: int = 100, human_type: str = "sticky", seed: int = 7) -> Dict:
    rnd = random.Random(seed)
    cycle = [0, 1, 2]

    # simple scripted opponents
    def human_move(t: int, last_ai) -> int:
        if human_type == "counter":
            return (last_ai + 1) % 3 if last_ai is not None else 0  # beats our previous move
        if human_type == "cycle":
            return cycle[t % 3]
        if human_type == "sticky":
            return 0 if rnd.random() < 0.6 else rnd.randrange(3)
        return rnd.randrange(3)

    ai_wins = losses = ties = 0
    last_ai = None
    for t in range(n_rounds):
        ai, _ = brain.predict()
        hm = human_move(t, last_ai)
        res = resolve_outcome(hm, ai)
        if res == "lose":
            ai_wins += 1
        elif res == "win":
            losses += 1
        else:
            ties += 1
        brain.feedback(hm, ai)
        last_ai = ai
    return {"ai_win_rate": ai_wins / n_rounds, "ai_losses": losses, "ties": ties}


def main():
    ap = argparse.ArgumentParser(description="Play the engine against a scripted opponent.")
    ap.add_argument("--rounds", type=int, default=100)
    ap.add_argument("--human", choices=["sticky", "cycle", "counter", "random"], default="sticky")
    ap.add_argument("--difficulty", choices=["fair", "normal", "ruthless"], default="ruthless")
    ap.add_argument("--sessions", type=int, default=2)
    args = ap.parse_args()

    store = MemoryStore()
    brain = GameBrain(store=store, difficulty=args.difficulty, predictor_enabled=True, trained=True, random_seed=1)
    results = []
    for s in range(args.sessions):
        brain.select_profile("sim")
        r = simulate_session(brain, args.rounds, args.human, seed=s)
        r["history_rounds"] = brain.blender.rounds_seen
        results.append(r)
        brain.close()
    print(json.dumps({"human": args.human, "difficulty": args.difficulty, "sessions": results}, indent=2))


if __name__ == "__main__":
    main()
