from barsan_api.ratelimit import FixedWindowLimiter


class Clock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_limit_applies_per_key_within_a_window():
    limiter = FixedWindowLimiter(2, window=60, clock=Clock())
    assert limiter.allow("10.0.0.1")
    assert limiter.allow("10.0.0.1")
    assert not limiter.allow("10.0.0.1")
    assert limiter.allow("10.0.0.2")


def test_new_window_resets_counts_and_drops_old_keys():
    clock = Clock()
    limiter = FixedWindowLimiter(1, window=60, clock=clock)
    for i in range(50):
        limiter.allow(f"10.0.0.{i}")
    assert len(limiter) == 50
    assert not limiter.allow("10.0.0.1")

    clock.now += 60
    assert limiter.allow("10.0.0.1")
    assert len(limiter) == 1
