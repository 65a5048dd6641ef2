from hxkit import prng


def test_first_value_from_zero_seed():
    assert prng.TestRandom(0)() == 1013904223


def test_default_seed_is_one():
    a = prng.TestRandom()
    b = prng.TestRandom(1)
    assert [a() for _ in range(20)] == [b() for _ in range(20)]


def test_seed_tracks_last_value():
    r = prng.TestRandom(5)
    value = r()
    assert r.seed == value
    assert prng.TestRandom(value)() == r()


def test_values_stay_within_32_bits():
    r = prng.TestRandom(123)
    values = [r() for _ in range(1000)]
    assert all(0 <= v < 2**32 for v in values)
    assert len(set(values)) > 990