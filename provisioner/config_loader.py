# provisioner/config_loader.py
import json
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from provisioner.errors import ConfigurationError

RUNTIME_CONFIG_PATH = Path("config/runtime.yaml")

MODES = ("start", "stop")


@dataclass
class ProvisionerConfig:
    mode: str | None = None
    github_token: str | None = None
    repository: str | None = None
    ec2_image_id: str | None = None
    ec2_instance_type: str | None = None
    subnet_id: str | None = None
    security_group_id: str | None = None
    label: str | None = None
    ec2_instance_id: str | None = None
    iam_role_name: str | None = None
    resource_tags: list = field(default_factory=list)
    runner_home_dir: str | None = None
    pre_runner_script: str = ""
    key_name: str | None = None
    volume_size: int | None = None
    use_spot_instance: bool = False
    use_public_ip: bool = False
    region: str | None = None
    profile: str | None = None

    @property
    def tag_specifications(self):
        if not self.resource_tags:
            return None
        return [
            {"ResourceType": "instance", "Tags": list(self.resource_tags)},
            {"ResourceType": "volume", "Tags": list(self.resource_tags)},
        ]

    def validate(self):
        if not self.mode:
            raise ConfigurationError("The 'mode' input is not specified")
        if not self.github_token:
            raise ConfigurationError("The 'github-token' input is not specified")
        if not self.repository or "/" not in self.repository:
            raise ConfigurationError("The repository must be given as 'owner/repo'")

        if self.mode == "start":
            required = [self.ec2_image_id, self.ec2_instance_type, self.subnet_id, self.security_group_id]
            if not all(required):
                raise ConfigurationError("Not all the required inputs are provided for the 'start' mode")
        elif self.mode == "stop":
            if not self.label or not self.ec2_instance_id:
                raise ConfigurationError("Not all the required inputs are provided for the 'stop' mode")
        else:
            raise ConfigurationError(f"Wrong mode '{self.mode}'. Allowed values: {', '.join(MODES)}.")
        return self


def _as_bool(value):
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).lower() in ("1", "true", "yes")


def _as_int(name, value):
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"The '{name}' input must be an integer, got {value!r}")


def parse_resource_tags(value):
    """
    Accepts a JSON string or an already decoded list of {"Key": ..., "Value": ...} dicts.
    """
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"The 'aws-resource-tags' input is not valid JSON: {e}")
    if not isinstance(value, list) or not all(isinstance(t, dict) and "Key" in t for t in value):
        raise ConfigurationError("The 'aws-resource-tags' input must be a list of {Key, Value} objects")
    return value


def _input(cfg, name):
    # GitHub Actions exposes `with:` inputs as INPUT_<NAME>, hyphens preserved
    value = os.getenv(f"INPUT_{name.upper()}")
    if value is None or value == "":
        value = cfg.get(name.replace("-", "_"))
    return value


def load_runtime_config(overrides=None, path=RUNTIME_CONFIG_PATH):
    """
    Loads runtime configuration for the provisioner.
    Priority:
      1) overrides (CLI flags), ignoring None values
      2) Environment variables
      3) config/runtime.yaml (if present)
    """
    cfg = {}

    # Load from file if it exists
    path = Path(path)
    if path.exists():
        with open(path) as f:
            cfg = yaml.safe_load(f) or {}

    values = {
        "mode": _input(cfg, "mode"),
        "github_token": _input(cfg, "github-token") or os.getenv("GITHUB_TOKEN"),
        "repository": os.getenv("GITHUB_REPOSITORY") or cfg.get("repository"),
        "ec2_image_id": _input(cfg, "ec2-image-id"),
        "ec2_instance_type": _input(cfg, "ec2-instance-type"),
        "subnet_id": _input(cfg, "subnet-id"),
        "security_group_id": _input(cfg, "security-group-id"),
        "label": _input(cfg, "label"),
        "ec2_instance_id": _input(cfg, "ec2-instance-id"),
        "iam_role_name": _input(cfg, "iam-role-name"),
        "resource_tags": _input(cfg, "aws-resource-tags"),
        "runner_home_dir": _input(cfg, "runner-home-dir"),
        "pre_runner_script": _input(cfg, "pre-runner-script"),
        "key_name": _input(cfg, "key-name"),
        "volume_size": _input(cfg, "volume-size"),
        "use_spot_instance": _input(cfg, "use-spot-instance"),
        "use_public_ip": _input(cfg, "use-public-ip"),
        "region": os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or cfg.get("region"),
        "profile": os.getenv("AWS_PROFILE") or cfg.get("profile"),
    }

    # CLI flags take precedence
    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value

    return ProvisionerConfig(
        mode=values["mode"],
        github_token=values["github_token"],
        repository=values["repository"],
        ec2_image_id=values["ec2_image_id"],
        ec2_instance_type=values["ec2_instance_type"],
        subnet_id=values["subnet_id"],
        security_group_id=values["security_group_id"],
        label=values["label"],
        ec2_instance_id=values["ec2_instance_id"],
        iam_role_name=values["iam_role_name"],
        resource_tags=parse_resource_tags(values["resource_tags"]),
        runner_home_dir=values["runner_home_dir"],
        pre_runner_script=values["pre_runner_script"] or "",
        key_name=values["key_name"],
        volume_size=_as_int("volume-size", values["volume_size"]),
        use_spot_instance=_as_bool(values["use_spot_instance"]),
        use_public_ip=_as_bool(values["use_public_ip"]),
        region=values["region"],
        profile=values["profile"],
    )
