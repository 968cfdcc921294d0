"""call_with_retry: bounded attempts, exponential backoff, retryable predicate."""

import httpx
import pytest

from farpedia.services.retry import call_with_retry, is_transient_http_error


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.example.test/")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class Flaky:
    def __init__(self, failures: list[Exception], result: str = "ok") -> None:
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


class TestIsTransientHttpError:
    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable_statuses(self, status):
        assert is_transient_http_error(_status_error(status)) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_client_errors_are_not_retryable(self, status):
        assert is_transient_http_error(_status_error(status)) is False

    def test_network_errors_are_retryable(self):
        assert is_transient_http_error(httpx.ConnectError("refused")) is True
        assert is_transient_http_error(httpx.ReadTimeout("slow")) is True

    def test_other_exceptions_are_not(self):
        assert is_transient_http_error(ValueError("bad json")) is False


class TestCallWithRetry:
    async def test_backoff_doubles_between_attempts(self):
        delays: list[float] = []

        async def sleep(delay: float) -> None:
            delays.append(delay)

        fn = Flaky([_status_error(503), httpx.ConnectError("refused")])

        result = await call_with_retry(fn, max_attempts=3, base_delay=0.1, sleep=sleep)

        assert result == "ok"
        assert fn.calls == 3
        assert delays == pytest.approx([0.1, 0.2])

    async def test_delay_is_capped(self):
        delays: list[float] = []

        async def sleep(delay: float) -> None:
            delays.append(delay)

        fn = Flaky([_status_error(500)] * 4)

        await call_with_retry(fn, max_attempts=5, base_delay=1.0, max_delay=2.5, sleep=sleep)

        assert delays == [1.0, 2.0, 2.5, 2.5]

    async def test_gives_up_after_max_attempts(self):
        async def sleep(delay: float) -> None:
            pass

        fn = Flaky([_status_error(503)] * 5)

        with pytest.raises(httpx.HTTPStatusError):
            await call_with_retry(fn, max_attempts=3, base_delay=0.01, sleep=sleep)
        assert fn.calls == 3

    async def test_non_retryable_error_raises_immediately(self):
        async def sleep(delay: float) -> None:
            raise AssertionError("must not back off on a 4xx")

        fn = Flaky([_status_error(401)])

        with pytest.raises(httpx.HTTPStatusError):
            await call_with_retry(fn, max_attempts=3, base_delay=0.01, sleep=sleep)
        assert fn.calls == 1

    async def test_custom_predicate(self):
        async def sleep(delay: float) -> None:
            pass

        fn = Flaky([KeyError("x")])

        result = await call_with_retry(
            fn,
            max_attempts=2,
            base_delay=0.0,
            is_retryable=lambda exc: isinstance(exc, KeyError),
            sleep=sleep,
        )
        assert result == "ok"

    async def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            await call_with_retry(Flaky([]), max_attempts=0, base_delay=0.1)
