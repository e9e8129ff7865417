import unittest
from provisioner.polling import Poller, PollState


class TestPoller(unittest.TestCase):
    def setUp(self):
        self.sleeps = []

    def _poller(self, results, interval=10, timeout=300):
        self.calls = 0
        results = iter(results)

        def check():
            self.calls += 1
            return next(results)

        return Poller(check, interval=interval, timeout=timeout, sleep=self.sleeps.append)

    def test_active_on_first_check(self):
        poller = self._poller(["i-1"])
        self.assertEqual(poller.run(), "i-1")
        self.assertIs(poller.state, PollState.ACTIVE)
        self.assertEqual(self.sleeps, [10])
        self.assertEqual(poller.waited, 0)

    def test_pending_checks_accumulate_wait(self):
        poller = self._poller([None, None, "done"])
        self.assertEqual(poller.run(), "done")
        self.assertEqual(self.calls, 3)
        self.assertEqual(poller.waited, 20)

    def test_times_out_after_budget(self):
        poller = self._poller([None] * 100, interval=10, timeout=30)
        self.assertIsNone(poller.run())
        self.assertIs(poller.state, PollState.TIMED_OUT)
        # waited 0, 10, 20, 30 are within budget; the fifth check sees 40 > 30
        self.assertEqual(self.calls, 5)

    def test_result_ignored_once_budget_exceeded(self):
        poller = self._poller([None] * 4 + ["late"], interval=10, timeout=30)
        self.assertIsNone(poller.run())
        self.assertIs(poller.state, PollState.TIMED_OUT)

    def test_last_check_within_budget_succeeds(self):
        poller = self._poller([None] * 3 + ["ok"], interval=10, timeout=30)
        self.assertEqual(poller.run(), "ok")
        self.assertEqual(poller.waited, 30)

    def test_cannot_run_twice(self):
        poller = self._poller(["x"])
        poller.run()
        with self.assertRaises(RuntimeError):
            poller.run()
        self.assertEqual(self.calls, 1)


if __name__ == '__main__':
    unittest.main()
