import math
import random
import time


def now_ts() -> float:
    return time.time()


def draw_interval_ms(rng: random.Random, min_ms: int, max_ms: int) -> int:
    """Uniform integer wait in [min_ms, max_ms], both ends inclusive."""
    return rng.randint(int(min_ms), int(max_ms))


def round_half_up(x: float) -> int:
    # Python's round() is banker's rounding; percentages round .5 upward
    return int(math.floor(x + 0.5))
