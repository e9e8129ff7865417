# provisioner/main.py
import argparse
import logging
import logging.config
import sys

import yaml

from provisioner.config_loader import load_runtime_config
from provisioner.errors import ProvisionerError
from provisioner.github_client import GitHubClient
from provisioner.instance_manager import Provisioner
from provisioner.utils import generate_unique_label, set_output


def load_logging_config(path="config/logging.yaml"):
    try:
        with open(path) as f:
            cfg = yaml.safe_load(f)
        logging.config.dictConfig(cfg)
    except (OSError, ValueError, TypeError, yaml.YAMLError):
        logging.basicConfig(
            level=logging.INFO,
            format='{"time":"%(asctime)s","level":"%(levelname)s","name":"%(name)s","msg":"%(message)s"}',
        )


def start(config, provisioner, github):
    label = generate_unique_label()
    token = github.get_registration_token()
    instance_id = provisioner.start(label, token)
    set_output("label", label)
    set_output("ec2-instance-id", instance_id)
    provisioner.await_running(instance_id)
    github.wait_for_runner_registered(label)
    return label, instance_id


def stop(config, provisioner, github):
    provisioner.terminate(config.ec2_instance_id)
    github.remove_runner(config.label)


def build_parser():
    parser = argparse.ArgumentParser(description="Start or stop an EC2 instance acting as a GitHub self-hosted runner.")
    parser.add_argument("mode", nargs="?", choices=["start", "stop"], help="start: provision a runner; stop: tear it down")
    parser.add_argument("--repository", help="GitHub repository as owner/repo (default $GITHUB_REPOSITORY)")
    parser.add_argument("--ec2-image-id", help="SSM parameter name holding the AMI ID")
    parser.add_argument("--ec2-instance-type", help="EC2 instance type")
    parser.add_argument("--subnet-id", help="Subnet ID for the runner")
    parser.add_argument("--security-group-id", help="Security group ID for the runner")
    parser.add_argument("--iam-role-name", help="IAM instance profile name")
    parser.add_argument("--key-name", help="EC2 key pair name")
    parser.add_argument("--volume-size", type=int, help="Root volume size in GiB")
    parser.add_argument("--runner-home-dir", help="Directory with a pre-installed actions runner")
    parser.add_argument("--pre-runner-script", help="Script sourced before runner registration")
    parser.add_argument("--aws-resource-tags", dest="resource_tags", help='JSON list of tags, e.g. [{"Key":"k","Value":"v"}]')
    parser.add_argument("--use-spot-instance", action="store_const", const=True, help="Request a spot instance")
    parser.add_argument("--use-public-ip", action="store_const", const=True, help="Associate a public IP")
    parser.add_argument("--label", help="Runner label (stop mode)")
    parser.add_argument("--ec2-instance-id", help="Instance ID to terminate (stop mode)")
    parser.add_argument("--region", help="AWS region")
    parser.add_argument("--profile", help="Optional AWS CLI profile")
    parser.add_argument("--runtime-config", default="config/runtime.yaml", help="Runtime config YAML path")
    parser.add_argument("--logging-config", default="config/logging.yaml", help="Logging config YAML path")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    load_logging_config(args.logging_config)
    log = logging.getLogger("provisioner.main")

    overrides = {
        key: value
        for key, value in vars(args).items()
        if key not in ("runtime_config", "logging_config")
    }

    try:
        config = load_runtime_config(overrides, path=args.runtime_config).validate()
        provisioner = Provisioner(config)
        github = GitHubClient(config.github_token, config.repository)

        log.info("Running in %s mode | repository=%s spot=%s", config.mode, config.repository, config.use_spot_instance)
        if config.mode == "start":
            start(config, provisioner, github)
        else:
            stop(config, provisioner, github)
    except ProvisionerError as e:
        log.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
