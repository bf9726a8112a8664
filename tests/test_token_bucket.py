import pytest

from ccbase.token_bucket import TokenBucket

SECOND = 1_000_000


def test_default_bucket_size_is_fifth_of_rate():
    bucket = TokenBucket(100, now_us=0)
    assert bucket.tokens() == 100 // 5


def test_bucket_size_defaults_initial_tokens():
    bucket = TokenBucket(50, 7, now_us=0)
    assert bucket.tokens() == 7


def test_zero_bucket_size_becomes_one():
    bucket = TokenBucket(100, 0, 0, now_us=0)
    assert bucket.tokens() == 0
    bucket.gen(now_us=10 * SECOND)
    assert bucket.tokens() == 1


def test_get_and_check():
    bucket = TokenBucket(10, 5, 5, now_us=0)
    assert bucket.check(5)
    assert not bucket.check(6)
    assert bucket.get(3)
    assert bucket.tokens() == 5 - 3
    assert not bucket.get(3)
    assert bucket.tokens() == 5 - 3


def test_get_defaults_to_one_token():
    bucket = TokenBucket(10, 5, 1, now_us=0)
    assert bucket.get()
    assert not bucket.get()


def test_overdraft_reports_debt():
    bucket = TokenBucket(10, 5, 2, now_us=0)
    assert bucket.overdraft(5) == 5 - 2
    assert bucket.tokens() == 0
    assert bucket.overdraft(0) == 5 - 2


def test_overdraft_without_debt():
    bucket = TokenBucket(10, 5, 5, now_us=0)
    assert bucket.overdraft(2) == 0
    assert bucket.tokens() == 5 - 2


def test_gen_clamps_to_bucket_size():
    bucket = TokenBucket(100, 10, 0, now_us=0)
    bucket.gen(now_us=100 * SECOND)
    assert bucket.tokens() == 10


@pytest.mark.parametrize("steps", [1, 2, 3, 7, 10])
def test_gen_accumulates_fractions(steps):
    rate = 3
    bucket = TokenBucket(rate, 1000, 0, now_us=0)
    for i in range(1, steps + 1):
        bucket.gen(now_us=SECOND * i // steps)
    assert bucket.tokens() == rate


def test_gen_ignores_backward_clock():
    bucket = TokenBucket(10, 100, 0, now_us=5 * SECOND)
    bucket.gen(now_us=SECOND)
    assert bucket.tokens() == 0
    bucket.gen(now_us=2 * SECOND)
    assert bucket.tokens() == 10


def test_mod_changes_rate_and_size():
    bucket = TokenBucket(10, 100, 0, now_us=0)
    bucket.mod(20, 15)
    bucket.gen(now_us=SECOND)
    assert bucket.tokens() == 15


def test_negative_values_rejected():
    with pytest.raises(ValueError):
        TokenBucket(-1)
    bucket = TokenBucket(10, 5, 5, now_us=0)
    with pytest.raises(ValueError):
        bucket.get(-1)