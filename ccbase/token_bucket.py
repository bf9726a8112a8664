"""Token bucket rate limiter with microsecond resolution."""

from __future__ import annotations

import time

_UINT32_MAX = 2**32 - 1
_INT64_MAX = 2**63 - 1
_US_PER_SEC = 1_000_000


def _now_us() -> int:
    return time.time_ns() // 1000


def _check_u32(name: str, value: int) -> int:
    if not 0 <= value <= _UINT32_MAX:
        raise ValueError(f"{name} must be in [0, {_UINT32_MAX}], got {value}")
    return value


class TokenBucket:
    """A token bucket refilled at a fixed rate up to a bucket size.

    Time is given in microseconds since the epoch; when omitted the wall clock
    is used.
    """

    def __init__(
        self,
        tokens_per_sec: int,
        bucket_size: int | None = None,
        init_tokens: int | None = None,
        now_us: int | None = None,
    ) -> None:
        _check_u32("tokens_per_sec", tokens_per_sec)
        if bucket_size is None:
            bucket_size = tokens_per_sec // 5
        _check_u32("bucket_size", bucket_size)
        if init_tokens is None:
            init_tokens = bucket_size
        _check_u32("init_tokens", init_tokens)

        self._tokens_per_sec = tokens_per_sec
        self._bucket_size = bucket_size or 1
        self._token_count = init_tokens
        self._last_gen_time = _now_us() if now_us is None else now_us
        self._last_calc_delta = 0

    def mod(self, tokens_per_sec: int, bucket_size: int) -> None:
        """Change the refill rate and the bucket size."""
        self._tokens_per_sec = _check_u32("tokens_per_sec", tokens_per_sec)
        self._bucket_size = _check_u32("bucket_size", bucket_size)

    def gen(self, now_us: int | None = None) -> None:
        """Add the tokens produced since the previous call."""
        if now_us is None:
            now_us = _now_us()
        if now_us < self._last_gen_time:
            # clock went backwards: resynchronise without generating
            self._last_gen_time = now_us
            return

        elapsed = now_us - self._last_gen_time
        new_tokens, calc_delta = divmod(
            self._tokens_per_sec * elapsed + self._last_calc_delta, _US_PER_SEC
        )
        self._last_gen_time = now_us
        self._last_calc_delta = calc_delta

        new_count = self._token_count + new_tokens
        if new_count > _INT64_MAX:
            self._token_count = self._bucket_size
            return
        self._token_count = min(new_count, self._bucket_size)

    def check(self, need_tokens: int = 1) -> bool:
        """Return whether ``need_tokens`` tokens are available."""
        return self._token_count >= _check_u32("need_tokens", need_tokens)

    def get(self, need_tokens: int = 1) -> bool:
        """Take ``need_tokens`` tokens if available; return whether taken."""
        if not self.check(need_tokens):
            return False
        self._token_count -= need_tokens
        return True

    def overdraft(self, need_tokens: int) -> int:
        """Take tokens unconditionally; return how many are owed."""
        self._token_count -= _check_u32("need_tokens", need_tokens)
        return -self._token_count if self._token_count < 0 else 0

    def tokens(self) -> int:
        """Return the number of tokens available, never negative."""
        return max(self._token_count, 0)