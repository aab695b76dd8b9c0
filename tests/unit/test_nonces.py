"""
test_nonces.py - Unit tests for the nonce registry

Tests:
- Single-use nonce consumed twice fails
- Multi-use nonce allows exactly max_uses uses
- max_uses = 0 never succeeds
- Cancellation exhausts a nonce, and cancelling twice fails
- Exhaustion survives a later call with a larger max_uses
- Nonces are scoped per account
- copy() is independent
- Property: successes never exceed max_uses
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from nftlend import NonceRegistry, NonceUsed, AlreadyConsumed


class TestConsume:

    def test_single_use_nonce_twice_fails(self):
        nonces = NonceRegistry()
        assert nonces.consume("acct", 7, 1) == 1
        with pytest.raises(NonceUsed):
            nonces.consume("acct", 7, 1)

    def test_nonce_used_is_already_consumed(self):
        nonces = NonceRegistry()
        nonces.consume("acct", 7, 1)
        with pytest.raises(AlreadyConsumed):
            nonces.consume("acct", 7, 1)

    def test_multi_use_nonce(self):
        nonces = NonceRegistry()
        assert nonces.consume("acct", 1, 3) == 1
        assert nonces.consume("acct", 1, 3) == 2
        assert not nonces.is_used("acct", 1)
        assert nonces.consume("acct", 1, 3) == 3
        assert nonces.is_used("acct", 1)
        assert nonces.uses("acct", 1) == 3
        with pytest.raises(NonceUsed):
            nonces.consume("acct", 1, 3)

    def test_zero_max_uses_always_fails(self):
        nonces = NonceRegistry()
        with pytest.raises(NonceUsed):
            nonces.consume("acct", 1, 0)
        assert nonces.uses("acct", 1) == 0

    def test_exhaustion_is_permanent(self):
        nonces = NonceRegistry()
        nonces.consume("acct", 1, 1)
        with pytest.raises(NonceUsed):
            nonces.consume("acct", 1, 5)

    def test_nonces_are_per_account(self):
        nonces = NonceRegistry()
        nonces.consume("alice", 1, 1)
        assert nonces.consume("bob", 1, 1) == 1
        assert not nonces.is_used("carol", 1)


class TestCancel:

    def test_cancel_exhausts(self):
        nonces = NonceRegistry()
        nonces.cancel("acct", 3)
        assert nonces.is_used("acct", 3)
        with pytest.raises(NonceUsed):
            nonces.consume("acct", 3, 10)

    def test_cancel_partially_used(self):
        nonces = NonceRegistry()
        nonces.consume("acct", 3, 5)
        nonces.cancel("acct", 3)
        assert nonces.uses("acct", 3) == 1
        assert nonces.is_used("acct", 3)

    def test_cancel_twice_fails(self):
        nonces = NonceRegistry()
        nonces.cancel("acct", 3)
        with pytest.raises(NonceUsed):
            nonces.cancel("acct", 3)


class TestCopy:

    def test_copy_is_independent(self):
        nonces = NonceRegistry()
        nonces.consume("acct", 1, 2)
        snapshot = nonces.copy()
        nonces.consume("acct", 1, 2)
        assert snapshot.uses("acct", 1) == 1
        assert not snapshot.is_used("acct", 1)
        assert nonces.is_used("acct", 1)


class TestNonceBoundProperty:

    @given(
        max_uses=st.integers(min_value=0, max_value=10),
        attempts=st.integers(min_value=0, max_value=20),
    )
    @settings(max_examples=100)
    def test_successes_never_exceed_max_uses(self, max_uses, attempts):
        """PROPERTY: consume(a, n, k) succeeds exactly min(k, attempts) times."""
        nonces = NonceRegistry()
        successes = 0
        for _ in range(attempts):
            try:
                nonces.consume("acct", 1, max_uses)
                successes += 1
            except NonceUsed:
                pass
        assert successes == min(max_uses, attempts)
