# provisioner/github_client.py
import logging
import time

import requests

from provisioner.errors import GitHubAPIError, RunnerRegistrationTimeout
from provisioner.polling import Poller, PollState

log = logging.getLogger("provisioner.github_client")

API_URL = "https://api.github.com"

REGISTRATION_TIMEOUT_MINUTES = 5
REGISTRATION_POLL_INTERVAL_SECONDS = 10
REGISTRATION_QUIET_PERIOD_SECONDS = 30


class GitHubClient:
    """
    Thin wrapper over the repository self-hosted runner endpoints.
    """

    def __init__(self, token: str, repository: str, session=None, sleep=time.sleep):
        self.repository = repository
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"token {token}",
                "Accept": "application/vnd.github.v3+json",
            }
        )
        self._sleep = sleep

    def _url(self, path):
        return f"{API_URL}/repos/{self.repository}/actions/runners{path}"

    def get_registration_token(self) -> str:
        try:
            response = self.session.post(self._url("/registration-token"))
            response.raise_for_status()
            token = response.json()["token"]
        except (requests.exceptions.RequestException, KeyError, ValueError) as e:
            log.error("GitHub Registration Token receiving error: %s", e)
            raise GitHubAPIError(f"Failed to get registration token: {e}") from e

        log.info("GitHub Registration Token is received")
        return token

    def get_runner(self, label: str):
        """
        First runner of the repository carrying ``label``, or None.
        """
        url = self._url("")
        params = {"per_page": 100}
        try:
            while url:
                response = self.session.get(url, params=params)
                response.raise_for_status()
                for runner in response.json().get("runners", []):
                    names = [lbl.get("name") for lbl in runner.get("labels", [])]
                    if label in names:
                        return runner
                url = response.links.get("next", {}).get("url")
                params = None
        except (requests.exceptions.RequestException, ValueError) as e:
            log.error("GitHub runners listing error: %s", e)
            raise GitHubAPIError(f"Failed to get runners: {e}") from e
        return None

    def remove_runner(self, label: str):
        runner = self.get_runner(label)
        if not runner:
            log.info("GitHub self-hosted runner with label %s is not found, so the removal is skipped", label)
            return

        try:
            response = self.session.delete(self._url(f"/{runner['id']}"))
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            log.error("GitHub self-hosted runner %s removal error: %s", runner.get("name"), e)
            raise GitHubAPIError(f"Failed to remove runner {runner['id']}: {e}") from e

        log.info("GitHub self-hosted runner %s is removed", runner.get("name"))

    def _online_runner(self, label):
        runner = self.get_runner(label)
        if runner and runner.get("status") == "online":
            return runner
        return None

    def wait_for_runner_registered(self, label: str):
        log.info(
            "Waiting %ss for the AWS EC2 instance to be registered in GitHub as a new self-hosted runner",
            REGISTRATION_QUIET_PERIOD_SECONDS,
        )
        self._sleep(REGISTRATION_QUIET_PERIOD_SECONDS)
        log.info(
            "Checking every %ss if the GitHub self-hosted runner is registered",
            REGISTRATION_POLL_INTERVAL_SECONDS,
        )

        poller = Poller(
            lambda: self._online_runner(label),
            interval=REGISTRATION_POLL_INTERVAL_SECONDS,
            timeout=REGISTRATION_TIMEOUT_MINUTES * 60,
            sleep=self._sleep,
        )
        runner = poller.run()

        if poller.state is PollState.TIMED_OUT:
            log.error("GitHub self-hosted runner registration error: label %s", label)
            raise RunnerRegistrationTimeout(
                f"A timeout of {REGISTRATION_TIMEOUT_MINUTES} minutes is exceeded. Your AWS EC2 instance "
                "was not able to register itself in GitHub as a new self-hosted runner."
            )

        log.info("GitHub self-hosted runner %s is registered and ready to use", runner.get("name"))
        return runner
