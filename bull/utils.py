"""Bull - Utilities

Small validation and code helpers.
"""

import random
import re
from typing import Tuple, Optional, Sequence, List

NAME_PATTERN = re.compile(r'^[A-Za-z0-9À-ÿ _-]+$')


def generate_code(length: int, alphabet: str, rng: Optional[random.Random] = None) -> str:
    """Random lobby code drawn from ``alphabet``."""
    rng = rng or random
    return ''.join(rng.choice(alphabet) for _ in range(length))


def normalize_code(code: Optional[str]) -> str:
    return (code or '').strip().upper()


def is_valid_code(code: str, length: int, alphabet: str) -> bool:
    return len(code) == length and all(c in alphabet for c in code)


def validate_name(name: Optional[str], max_length: int = 50) -> Tuple[bool, str]:
    """Validate a display name."""
    if name is None:
        return False, "Name is required"

    name = name.strip()

    if len(name) < 1:
        return False, "Name is required"

    if len(name) > max_length:
        return False, f"Name must be at most {max_length} characters"

    if not NAME_PATTERN.match(name):
        return False, "Name may only contain letters, digits, spaces, '-' and '_'"

    return True, ""


def shuffled(items: Sequence, rng: Optional[random.Random] = None) -> List:
    """Uniformly shuffled copy of ``items``."""
    result = list(items)
    (rng or random).shuffle(result)
    return result
