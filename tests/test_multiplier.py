import pytest

from crash_pilot.game.multiplier import estimate, format_multiplier, linear_estimate, to_display


def test_starts_at_one_x() -> None:
    assert estimate(0) == 100


def test_monotonic_growth() -> None:
    values = [estimate(t) for t in range(0, 240)]
    assert all(a <= b for a, b in zip(values, values[1:]))
    assert min(values) == 100


def test_pure() -> None:
    assert estimate(37) == estimate(37) == estimate(37)


@pytest.mark.parametrize("elapsed,expected", [
    (1, 101),
    (6, 106),
    (9, 109),
    (10, 120),   # scale steps up to 2
    (19, 138),
    (20, 160),   # scale 3
])
def test_known_points(elapsed, expected) -> None:
    assert estimate(elapsed) == expected


def test_increment_grows_past_10x() -> None:
    # Once the multiplier passes 10.00x the step itself starts growing.
    late = [estimate(t) for t in range(100, 110)]
    steps = [b - a for a, b in zip(late, late[1:])]
    assert late[0] > 1000
    assert steps[-1] > steps[0]


def test_first_crossing_of_1_50x() -> None:
    crossing = next(t for t in range(100) if estimate(t) >= 150)
    assert crossing == 20


def test_negative_elapsed_rejected() -> None:
    with pytest.raises(ValueError):
        estimate(-1)
    with pytest.raises(ValueError):
        linear_estimate(-1)


def test_linear_curve() -> None:
    assert linear_estimate(0) == 100
    assert linear_estimate(6) == 160
    assert to_display(linear_estimate(6)) == pytest.approx(1.6)


def test_format_multiplier() -> None:
    assert format_multiplier(150) == "1.50x"
    assert format_multiplier(1005) == "10.05x"


def test_format_survives_long_rounds() -> None:
    # Past ~1715 s the curve no longer fits in a float.
    late = estimate(1800)
    with pytest.raises(OverflowError):
        to_display(late)
    text = format_multiplier(late)
    assert text.endswith("x")
    assert text[:-1].replace(".", "").isdigit()
