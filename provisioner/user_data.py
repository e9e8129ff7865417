# provisioner/user_data.py
import base64

RUNNER_VERSION = "2.311.0"
RUNNER_DIR = "actions-runner"

ARCH_DETECT = (
    'case $(uname -m) in aarch64) ARCH="arm64" ;; amd64|x86_64) ARCH="x64" ;; esac '
    "&& export RUNNER_ARCH=${ARCH}"
)


def _runner_archive():
    return f"actions-runner-linux-${{RUNNER_ARCH}}-{RUNNER_VERSION}.tar.gz"


def build_boot_script(
    token: str,
    label: str,
    repository: str,
    runner_home_dir: str | None = None,
    pre_runner_script: str = "",
):
    """
    Shell lines run as root on first boot: install (or reuse) the actions runner,
    register it for ``repository`` with the one-time ``token`` and ``label``, then run it.

    With ``runner_home_dir`` set the runner is expected to be pre-installed in the AMI.
    """
    register = (
        f"./config.sh --unattended --url https://github.com/{repository} "
        f"--token {token} --labels {label}"
    )
    pre_runner = [
        f'echo "{pre_runner_script}" > pre-runner-script.sh',
        "source pre-runner-script.sh",
    ]

    if runner_home_dir:
        return [
            "#!/bin/bash",
            f'cd "{runner_home_dir}"',
            *pre_runner,
            "export RUNNER_ALLOW_RUNASROOT=1",
            register,
            "./run.sh",
        ]

    archive = _runner_archive()
    return [
        "#!/bin/bash",
        f"mkdir {RUNNER_DIR} && cd {RUNNER_DIR}",
        *pre_runner,
        ARCH_DETECT,
        f"curl -O -L https://github.com/actions/runner/releases/download/v{RUNNER_VERSION}/{archive}",
        f"tar xzf ./{archive}",
        "export RUNNER_ALLOW_RUNASROOT=1",
        register,
        "./run.sh",
    ]


def encode_user_data(lines) -> str:
    return base64.b64encode("\n".join(lines).encode()).decode("ascii")
