"""
Retry backoff policy.
"""


def compute_backoff(attempt: int, base_delay: float) -> float:
    """
    Delay in seconds before the attempt that follows ``attempt``.

    Quadratic in the attempt number (1-indexed): ``attempt**2 * base_delay``.
    With a positive base this is positive and strictly increasing.

    Args:
        attempt: Number of the attempt that just failed, starting at 1.
        base_delay: Base unit in seconds.

    Returns:
        The delay in seconds.
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    if base_delay <= 0:
        raise ValueError(f"base_delay must be positive, got {base_delay}")
    return attempt * attempt * base_delay
