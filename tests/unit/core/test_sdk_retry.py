import pytest

from app.shared.core.retry import sdk_retry


class TransientError(Exception):
    pass


@pytest.mark.asyncio
async def test_transient_errors_are_retried():
    calls = {"n": 0}

    @sdk_retry(TransientError, attempts=3)
    async def flaky():
        calls["n"] += 1
        if calls["n"] < 3:
            raise TransientError("try again")
        return "ok"

    assert await flaky() == "ok"
    assert calls["n"] == 3


@pytest.mark.asyncio
async def test_last_error_is_reraised_after_attempts():
    calls = {"n": 0}

    @sdk_retry(TransientError, attempts=2)
    async def always_fails():
        calls["n"] += 1
        raise TransientError("still down")

    with pytest.raises(TransientError, match="still down"):
        await always_fails()
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_other_errors_propagate_immediately():
    calls = {"n": 0}

    @sdk_retry(TransientError)
    async def broken():
        calls["n"] += 1
        raise KeyError("missing")

    with pytest.raises(KeyError):
        await broken()
    assert calls["n"] == 1
