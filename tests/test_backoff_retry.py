import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.ai.retry import RetryPolicy, backoff_delay_ms, retry_async


class FlakyOperation:
    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class BackoffDelayTests(unittest.TestCase):
    def test_delays_are_non_decreasing_and_capped(self):
        policy = RetryPolicy(max_attempts=8, initial_delay_ms=1000, max_delay_ms=30000)
        delays = [backoff_delay_ms(attempt, policy) for attempt in range(1, policy.max_attempts)]
        self.assertEqual(delays[:3], [1000, 2000, 4000])
        self.assertEqual(delays, sorted(delays))
        self.assertTrue(all(delay <= policy.max_delay_ms for delay in delays))
        self.assertEqual(delays[-1], 30000)

    def test_jitter_is_added_before_cap(self):
        policy = RetryPolicy(initial_delay_ms=1000, max_delay_ms=1500)
        self.assertEqual(backoff_delay_ms(1, policy, jitter_ms=400), 1400)
        self.assertEqual(backoff_delay_ms(1, policy, jitter_ms=900), 1500)


class RetryAsyncTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.sleeps = []

    async def _sleep(self, seconds):
        self.sleeps.append(seconds)

    async def test_transient_errors_are_retried_until_success(self):
        operation = FlakyOperation([Exception("429 Too Many Requests"), Exception("503 Service Unavailable")])
        result = await retry_async(
            operation,
            RetryPolicy(max_attempts=3),
            sleep=self._sleep,
            rng=lambda: 0.5,
        )
        self.assertEqual(result, "ok")
        self.assertEqual(operation.calls, 3)
        self.assertEqual(self.sleeps, [1.5, 2.5])

    async def test_last_error_propagates_when_attempts_exhausted(self):
        last = Exception("overloaded again")
        operation = FlakyOperation([Exception("overloaded"), Exception("overloaded"), last])
        with self.assertRaises(Exception) as ctx:
            await retry_async(operation, RetryPolicy(max_attempts=3), sleep=self._sleep, rng=lambda: 0.0)
        self.assertIs(ctx.exception, last)
        self.assertEqual(operation.calls, 3)
        self.assertEqual(len(self.sleeps), 2)

    async def test_non_transient_error_is_not_retried(self):
        error = ValueError("invalid api key")
        operation = FlakyOperation([error])
        with self.assertRaises(ValueError):
            await retry_async(operation, RetryPolicy(max_attempts=3), sleep=self._sleep)
        self.assertEqual(operation.calls, 1)
        self.assertEqual(self.sleeps, [])


if __name__ == "__main__":
    unittest.main()
