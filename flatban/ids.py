"""
Task identifier generator.

Ids are a random base-36 prefix followed by the creation second (since
2000-01-01 UTC) in base 36. The random part goes first so tasks created
moments apart don't share a prefix, which keeps short partial ids
unambiguous; the time suffix still reads roughly chronologically.
"""
import random
import time
from typing import Callable, Container

from .errors import ExhaustedError

EPOCH_2000 = 946684800
BASE36_CHARS = "0123456789abcdefghijklmnopqrstuvwxyz"
RANDOM_WIDTH = 3
TIME_WIDTH = 6
MAX_ATTEMPTS = 100


def to_base36(n: int) -> str:
    if n <= 0:
        return "0"
    digits = []
    while n:
        n, r = divmod(n, 36)
        digits.append(BASE36_CHARS[r])
    return "".join(reversed(digits))


def generate_task_id(
    existing_ids: Container[str],
    rng: random.Random = None,
    clock: Callable[[], float] = time.time,
) -> str:
    """Return an id not in existing_ids. Raises ExhaustedError after MAX_ATTEMPTS collisions."""
    rng = rng or random.Random()
    for _ in range(MAX_ATTEMPTS):
        prefix = "".join(rng.choice(BASE36_CHARS) for _ in range(RANDOM_WIDTH))
        seconds = int(clock()) - EPOCH_2000
        task_id = prefix + to_base36(seconds).rjust(TIME_WIDTH, "0")
        if task_id not in existing_ids:
            return task_id

    raise ExhaustedError(f"Failed to generate unique task ID after {MAX_ATTEMPTS} attempts")
