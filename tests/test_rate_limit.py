"""
Tests for debounce and throttle.

These run on a real event loop with short waits; assertions are bounds
rather than exact timings.
"""

import asyncio

import pytest

from budgetkeep.utils import debounce, throttle


def run(coro):
    return asyncio.run(coro)


class TestDebounce:
    """Tests for trailing-edge coalescing."""

    def test_burst_results_in_one_call_with_last_args(self):
        """Test five quick calls collapse into the last one."""
        calls = []
        debounced = debounce(lambda value: calls.append(value), 0.1)

        async def scenario():
            for value in range(5):
                debounced(value)
                await asyncio.sleep(0.01)
            assert calls == []
            await asyncio.sleep(0.2)

        run(scenario())
        assert calls == [4]

    def test_separate_bursts_each_fire(self):
        """Test that quiet periods separate invocations."""
        calls = []
        debounced = debounce(lambda value: calls.append(value), 0.05)

        async def scenario():
            debounced("a")
            await asyncio.sleep(0.15)
            debounced("b")
            await asyncio.sleep(0.15)

        run(scenario())
        assert calls == ["a", "b"]

    def test_keyword_arguments_are_forwarded(self):
        """Test that kwargs reach the wrapped function."""
        calls = []
        debounced = debounce(lambda **kwargs: calls.append(kwargs), 0.01)

        async def scenario():
            debounced(enabled=True)
            await asyncio.sleep(0.05)

        run(scenario())
        assert calls == [{"enabled": True}]

    def test_coroutine_function(self):
        """Test that async callables are scheduled and can be drained."""
        calls = []

        async def save(value):
            await asyncio.sleep(0)
            calls.append(value)

        debounced = debounce(save, 0.02)

        async def scenario():
            debounced("x")
            await asyncio.sleep(0.05)
            await debounced.drain()

        run(scenario())
        assert calls == ["x"]

    def test_cancel_drops_pending_call(self):
        """Test that cancel prevents the trailing invocation."""
        calls = []
        debounced = debounce(lambda: calls.append(1), 0.02)

        async def scenario():
            debounced()
            assert debounced.pending
            debounced.cancel()
            assert not debounced.pending
            await asyncio.sleep(0.05)

        run(scenario())
        assert calls == []

    def test_flush_runs_immediately(self):
        """Test that flush fires the pending call at once."""
        calls = []
        debounced = debounce(lambda value: calls.append(value), 10)

        async def scenario():
            debounced("now")
            assert debounced.flush() is True
            assert debounced.flush() is False

        run(scenario())
        assert calls == ["now"]

    def test_failing_callable_does_not_raise_into_loop(self):
        """Test that errors in the wrapped function are logged."""
        def broken():
            raise RuntimeError("boom")

        debounced = debounce(broken, 0.01)

        async def scenario():
            debounced()
            await asyncio.sleep(0.03)

        run(scenario())

    def test_negative_wait_rejected(self):
        """Test constructor validation."""
        with pytest.raises(ValueError):
            debounce(print, -1)


class TestThrottle:
    """Tests for leading-edge rate limiting with a trailing call."""

    def test_first_call_runs_immediately(self):
        """Test the leading edge."""
        calls = []
        throttled = throttle(lambda value: calls.append(value), 0.1)

        async def scenario():
            throttled("first")
            assert calls == ["first"]

        run(scenario())

    def test_steady_calls_are_evenly_spaced_with_trailing_call(self):
        """Test calls every 10ms for 500ms run about every 100ms, ending on the last args."""
        calls = []
        times = []

        async def scenario():
            loop = asyncio.get_running_loop()

            def record(value):
                calls.append(value)
                times.append(loop.time())

            throttled = throttle(record, 0.1)
            start = loop.time()
            sent = 0
            while loop.time() - start < 0.5:
                throttled(sent)
                sent += 1
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.25)
            return sent - 1

        last_sent = run(scenario())
        gaps = [later - earlier for earlier, later in zip(times, times[1:])]

        assert 5 <= len(calls) <= 6
        assert all(gap >= 0.09 for gap in gaps)
        assert calls[0] == 0
        assert calls[-1] == last_sent

    def test_single_trailing_call_per_window(self):
        """Test that a burst inside one window yields one trailing call."""
        calls = []
        throttled = throttle(lambda value: calls.append(value), 0.1)

        async def scenario():
            for value in range(5):
                throttled(value)
            await asyncio.sleep(0.2)

        run(scenario())
        assert calls == [0, 4]

    def test_cancel_drops_trailing_call(self):
        """Test cancelling the scheduled trailing call."""
        calls = []
        throttled = throttle(lambda value: calls.append(value), 0.05)

        async def scenario():
            throttled(1)
            throttled(2)
            throttled.cancel()
            await asyncio.sleep(0.1)

        run(scenario())
        assert calls == [1]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
