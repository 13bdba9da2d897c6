import pytest
from tenancy.claims import compute_backoff_delay


def test_first_failure_waits_base_delay():
    assert compute_backoff_delay(0, 5, 3600) == 5


def test_delay_doubles_per_attempt():
    assert [compute_backoff_delay(n, 5, 3600) for n in range(5)] == [5, 10, 20, 40, 80]


def test_delay_is_capped():
    # 5 * 2 ** 10 = 5120
    assert compute_backoff_delay(10, 5, 3600) == 3600


def test_delay_is_monotonic_and_never_exceeds_cap():
    delays = [compute_backoff_delay(n, 5, 3600) for n in range(200)]
    
    assert delays == sorted(delays)
    assert max(delays) == 3600


def test_huge_attempt_counts_do_not_overflow():
    assert compute_backoff_delay(10_000, 5, 3600) == 3600
    assert compute_backoff_delay(10_000, 0, 3600) == 0


def test_negative_attempts_rejected():
    with pytest.raises(ValueError):
        compute_backoff_delay(-1)
