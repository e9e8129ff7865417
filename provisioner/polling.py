# provisioner/polling.py
import logging
import time
from enum import Enum

log = logging.getLogger("provisioner.polling")


class PollState(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    TIMED_OUT = "timed_out"


class Poller:
    """
    Fixed-interval poll loop with a wait budget.

    Every iteration sleeps one interval and then calls ``check``. The result of
    a check is ignored once the accumulated wait exceeds ``timeout``; otherwise
    a non-None result ends the loop as ACTIVE. Waited time grows by the interval
    per unsuccessful check, so tests can drive the loop with a fake ``sleep``.
    """

    def __init__(self, check, interval: int, timeout: int, sleep=time.sleep):
        self.check = check
        self.interval = interval
        self.timeout = timeout
        self._sleep = sleep
        self.state = PollState.PENDING
        self.waited = 0
        self.result = None

    def run(self):
        """
        Run until ACTIVE or TIMED_OUT. Returns the check result, or None on timeout.
        """
        if self.state is not PollState.PENDING:
            raise RuntimeError(f"Poller already finished in state {self.state.value}")

        while self.state is PollState.PENDING:
            self._sleep(self.interval)
            result = self.check()

            if self.waited > self.timeout:
                self.state = PollState.TIMED_OUT
                break

            if result is not None:
                self.result = result
                self.state = PollState.ACTIVE
                break

            self.waited += self.interval
            log.info("Checking...")

        return self.result
