from __future__ import annotations
import os, time, random

from bedwatch.client import API_BASE_URL, ApiClient, ApiError
from bedwatch.config import settings

INTERVAL_SECONDS = float(os.environ.get("SIM_INTERVAL_SECONDS", "2"))

def gen(rng: random.Random = random) -> float:
    # Load-cell readings in grams; roughly 3% of samples dip under the critical line.
    weight = max(0.0, rng.gauss(450.0, 120.0))
    if rng.random() < 0.03:
        weight = rng.uniform(0.0, settings.critical_weight - 1)
    return round(weight, 1)

def main():
    pairs = settings.demo_pairs
    if not pairs:
        raise SystemExit("no demo beds configured (set DEMO_ROOMS and DEMO_BEDS)")
    client = ApiClient(API_BASE_URL)
    print("Bed sensor simulator started for", ", ".join(f"{r}/{b}" for r, b in pairs))
    i = 0
    while True:
        room, bed = pairs[i % len(pairs)]
        i += 1
        try:
            client.post_reading(room, bed, gen())
        except ApiError as e:
            print("sensor sim error:", e)
        time.sleep(INTERVAL_SECONDS)

if __name__ == "__main__":
    main()
