from __future__ import annotations

import random

from bedwatch.sim import gen


def test_generated_weights_are_non_negative_and_sometimes_critical() -> None:
    rng = random.Random(7)
    ws = [gen(rng) for _ in range(2000)]
    assert min(ws) >= 0.0
    assert any(w < 100 for w in ws)
    assert sum(ws) / len(ws) > 200
