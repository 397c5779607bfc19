"""
Local reproduction of the contract's displayed multiplier curve.

Multipliers are integers scaled by 100 (150 == 1.50x). This is a display
approximation only; settlement always uses the crash point stored on-chain.
"""

BASE_MULTIPLIER = 100


def estimate(elapsed_seconds: int) -> int:
    """
    Multiplier after `elapsed_seconds` whole seconds of an active round.

    The step size grows with the multiplier itself and the whole curve is
    scaled by one extra unit for every full 10 seconds elapsed.
    """
    if elapsed_seconds < 0:
        raise ValueError(f"elapsed_seconds must be non-negative, got {elapsed_seconds}")

    multiplier = BASE_MULTIPLIER
    increment = 1
    scale = 1 + elapsed_seconds // 10

    for _ in range(elapsed_seconds):
        increment += multiplier // 1000
        multiplier += increment * scale

    return multiplier


def linear_estimate(elapsed_seconds: int) -> int:
    """Flat +0.10x per second. Crosses targets much earlier than the real curve."""
    if elapsed_seconds < 0:
        raise ValueError(f"elapsed_seconds must be non-negative, got {elapsed_seconds}")
    return BASE_MULTIPLIER + 10 * elapsed_seconds


def to_display(multiplier: int) -> float:
    return multiplier / 100


def format_multiplier(multiplier: int) -> str:
    """'1.50x' from 150. Integer arithmetic, so late-round values never overflow a float."""
    return f"{multiplier // 100}.{multiplier % 100:02d}x"
