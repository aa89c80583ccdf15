import threading

import pytest

from gamelift_metrics.samplers import AllSampler, FractionSampler, NoneSampler


def test_all_sampler():
    sampler = AllSampler()
    assert [sampler.should_sample() for _ in range(3)] == [True, True, True]
    assert sampler.sample_rate == 1.0


def test_none_sampler():
    sampler = NoneSampler()
    assert [sampler.should_sample() for _ in range(3)] == [False, False, False]
    assert sampler.sample_rate == 0.0


@pytest.mark.parametrize(
    "rate, expected",
    [(-0.5, 0.0), (1.5, 1.0), (0.7, 0.7)],
)
def test_fraction_sample_rate_clamped(rate, expected):
    assert FractionSampler(rate).sample_rate == expected


def test_fraction_zero_always_false():
    sampler = FractionSampler(0.0)
    assert [sampler.should_sample() for _ in range(3)] == [False, False, False]


def test_fraction_one_always_true():
    sampler = FractionSampler(1.0)
    assert [sampler.should_sample() for _ in range(3)] == [True, True, True]


def test_fraction_distribution():
    sampler = FractionSampler(0.5)
    iterations = 1000
    samples = sum(sampler.should_sample() for _ in range(iterations))
    ratio = samples / iterations
    assert 0.4 <= ratio <= 0.6


def test_fraction_thread_safe():
    sampler = FractionSampler(0.5)
    results = []
    lock = threading.Lock()

    def worker():
        local = [sampler.should_sample() for _ in range(100)]
        with lock:
            results.extend(local)

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 1000
    assert set(results) <= {True, False}
    ratio = sum(results) / len(results)
    assert 0.35 <= ratio <= 0.65

    rate = sampler.sample_rate
    assert rate == 0.5
    after = [sampler.should_sample() for _ in range(1000)]
    assert 0.35 <= sum(after) / len(after) <= 0.65