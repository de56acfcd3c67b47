"""Decelerating progress estimate shown while an edit is in flight."""


def next_estimate(current: float, ceiling: float, rate: float) -> float:
    """
    Move a fraction of the remaining distance toward the ceiling.

    The step shrinks as the estimate closes in, so it never passes the
    ceiling (which is itself below 100). The value is cosmetic only.
    """
    if current >= ceiling:
        return current
    step = (ceiling - current) * rate
    return min(ceiling, current + step)
