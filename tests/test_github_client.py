import unittest
from unittest.mock import MagicMock

import requests

from provisioner.errors import GitHubAPIError, RunnerRegistrationTimeout
from provisioner.github_client import GitHubClient


def response(payload=None, status=200, links=None):
    resp = MagicMock()
    resp.json.return_value = payload or {}
    resp.links = links or {}
    if status >= 400:
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status} error")
    return resp


def runners(*items):
    return response({"runners": list(items)})


def runner(id_, label, status="offline"):
    return {"id": id_, "name": f"runner-{id_}", "status": status, "labels": [{"name": "self-hosted"}, {"name": label}]}


class TestGitHubClient(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.session.headers = {}
        self.sleeps = []
        self.client = GitHubClient("gh-token", "octo/repo", session=self.session, sleep=self.sleeps.append)

    def test_headers(self):
        self.assertEqual(self.session.headers["Authorization"], "token gh-token")

    def test_get_registration_token(self):
        self.session.post.return_value = response({"token": "reg-1"})
        self.assertEqual(self.client.get_registration_token(), "reg-1")
        self.session.post.assert_called_once_with(
            "https://api.github.com/repos/octo/repo/actions/runners/registration-token"
        )

    def test_get_registration_token_failure(self):
        self.session.post.return_value = response(status=403)
        with self.assertRaises(GitHubAPIError):
            self.client.get_registration_token()

    def test_get_runner_follows_pages(self):
        next_url = "https://api.github.com/repos/octo/repo/actions/runners?page=2"
        self.session.get.side_effect = [
            response({"runners": [runner(1, "other")]}, links={"next": {"url": next_url}}),
            runners(runner(2, "abc12")),
        ]
        self.assertEqual(self.client.get_runner("abc12")["id"], 2)
        self.assertEqual(self.session.get.call_args.args[0], next_url)

    def test_get_runner_missing(self):
        self.session.get.return_value = runners(runner(1, "other"))
        self.assertIsNone(self.client.get_runner("abc12"))

    def test_get_runner_failure_is_logged(self):
        self.session.get.return_value = response(status=502)
        with self.assertLogs("provisioner.github_client", level="ERROR") as logs:
            with self.assertRaises(GitHubAPIError):
                self.client.get_runner("abc12")
        self.assertIn("runners listing error", logs.output[0])

    def test_remove_runner(self):
        self.session.get.return_value = runners(runner(7, "abc12"))
        self.session.delete.return_value = response(status=204)
        self.client.remove_runner("abc12")
        self.session.delete.assert_called_once_with("https://api.github.com/repos/octo/repo/actions/runners/7")

    def test_remove_runner_skipped_when_not_found(self):
        self.session.get.return_value = runners()
        self.client.remove_runner("abc12")
        self.session.delete.assert_not_called()

    def test_remove_runner_failure(self):
        self.session.get.return_value = runners(runner(7, "abc12"))
        self.session.delete.return_value = response(status=500)
        with self.assertRaises(GitHubAPIError):
            self.client.remove_runner("abc12")

    def test_wait_for_runner_registered(self):
        self.session.get.side_effect = [
            runners(),
            runners(runner(3, "abc12", status="offline")),
            runners(runner(3, "abc12", status="online")),
        ]
        self.assertEqual(self.client.wait_for_runner_registered("abc12")["id"], 3)
        self.assertEqual(self.sleeps, [30, 10, 10, 10])

    def test_wait_for_runner_registered_timeout(self):
        self.session.get.return_value = runners()
        with self.assertRaises(RunnerRegistrationTimeout):
            self.client.wait_for_runner_registered("abc12")
        self.assertEqual(self.session.get.call_count, 32)


if __name__ == '__main__':
    unittest.main()
