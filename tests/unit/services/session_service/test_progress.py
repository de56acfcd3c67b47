"""Unit tests for the decelerating progress curve."""

from nanovision.services.session_service.progress import next_estimate


def test_steps_shrink_toward_ceiling():
    values = [0.0]
    for _ in range(10):
        values.append(next_estimate(values[-1], 95.0, 0.1))

    steps = [b - a for a, b in zip(values, values[1:])]
    assert all(step > 0 for step in steps)
    assert all(later < earlier for earlier, later in zip(steps, steps[1:]))
    assert values[-1] < 95.0


def test_never_passes_ceiling():
    value = 0.0
    for _ in range(5000):
        value = next_estimate(value, 95.0, 0.5)
    assert value <= 95.0


def test_holds_at_or_above_ceiling():
    assert next_estimate(95.0, 95.0, 0.1) == 95.0
    assert next_estimate(97.0, 95.0, 0.1) == 97.0
