# provisioner/instance_manager.py
import logging
import time
from dataclasses import dataclass

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from provisioner.config_loader import ProvisionerConfig
from provisioner.errors import (
    ConfigurationError,
    InitializationError,
    ParameterLookupError,
    ProvisionError,
    SpotRequestError,
    SpotTimeoutError,
    TaggingError,
    TerminationError,
)
from provisioner.polling import Poller, PollState
from provisioner.user_data import build_boot_script, encode_user_data

log = logging.getLogger("provisioner.instance_manager")

SPOT_POLL_INTERVAL_SECONDS = 10
SPOT_TIMEOUT_MINUTES = 5

ROOT_DEVICE_NAME = "/dev/xvda"
ROOT_VOLUME_TYPE = "gp2"

AWS_ERRORS = (ClientError, BotoCoreError)


@dataclass(frozen=True)
class InstanceRequest:
    image_id: str
    instance_type: str
    subnet_id: str
    security_group_id: str
    user_data: tuple
    key_name: str | None = None
    iam_role_name: str | None = None
    volume_size: int | None = None
    use_public_ip: bool = False
    use_spot: bool = False
    tag_specifications: tuple | None = None

    def _common(self, device_index=None):
        ebs = {
            "DeleteOnTermination": True,
            "Encrypted": True,
            "VolumeType": ROOT_VOLUME_TYPE,
        }
        if self.volume_size:
            ebs["VolumeSize"] = self.volume_size

        nic = {
            "AssociatePublicIpAddress": self.use_public_ip,
            "SubnetId": self.subnet_id,
            "Groups": [self.security_group_id],
        }
        if device_index is not None:
            nic["DeviceIndex"] = device_index

        spec = {
            "ImageId": self.image_id,
            "InstanceType": self.instance_type,
            "UserData": encode_user_data(self.user_data),
            "BlockDeviceMappings": [{"DeviceName": ROOT_DEVICE_NAME, "Ebs": ebs}],
            "NetworkInterfaces": [nic],
        }
        if self.key_name:
            spec["KeyName"] = self.key_name
        if self.iam_role_name:
            spec["IamInstanceProfile"] = {"Name": self.iam_role_name}
        return spec

    def run_instances_params(self):
        params = self._common()
        params["MinCount"] = 1
        params["MaxCount"] = 1
        if self.tag_specifications:
            params["TagSpecifications"] = [dict(s) for s in self.tag_specifications]
        return params

    def spot_launch_specification(self):
        return self._common(device_index=0)

    @property
    def instance_tags(self):
        """Tags of the `instance` tag specification, applied after spot allocation."""
        for spec in self.tag_specifications or ():
            if spec.get("ResourceType") == "instance":
                return list(spec.get("Tags", []))
        return []


class OnDemandLauncher:
    def __init__(self, ec2):
        self.ec2 = ec2

    def launch(self, request: InstanceRequest) -> str:
        try:
            resp = self.ec2.run_instances(**request.run_instances_params())
            instance_id = resp["Instances"][0]["InstanceId"]
        except AWS_ERRORS as e:
            log.error("AWS EC2 instance starting error: %s", e)
            raise ProvisionError(f"AWS EC2 instance starting error: {e}") from e

        log.info("AWS EC2 instance %s is started", instance_id)
        return instance_id


class SpotLauncher:
    """
    Requests a one-instance spot allocation and polls it until it is `active`.

    The request is not cancelled on timeout; reclaiming it is left to the caller.
    """

    def __init__(self, ec2, sleep=time.sleep):
        self.ec2 = ec2
        self._sleep = sleep

    def _describe_active(self, request_id):
        try:
            resp = self.ec2.describe_spot_instance_requests(SpotInstanceRequestIds=[request_id])
        except AWS_ERRORS as e:
            log.error("Spot request %s describe error: %s", request_id, e)
            raise SpotRequestError(f"Spot request {request_id} describe error: {e}") from e

        spot = resp["SpotInstanceRequests"][0]
        if spot.get("State") == "active":
            return spot["InstanceId"]
        return None

    def launch(self, request: InstanceRequest) -> str:
        try:
            resp = self.ec2.request_spot_instances(
                InstanceCount=1,
                LaunchSpecification=request.spot_launch_specification(),
            )
            spot = resp["SpotInstanceRequests"][0]
            request_id = spot["SpotInstanceRequestId"]
        except AWS_ERRORS as e:
            log.error("AWS EC2 spot instance starting error: %s", e)
            raise SpotRequestError(f"AWS EC2 spot instance starting error: {e}") from e

        log.info("Spot request %s created, status: %s", request_id, spot.get("State"))
        log.info("Waiting for spot instance provisioning.....")

        poller = Poller(
            lambda: self._describe_active(request_id),
            interval=SPOT_POLL_INTERVAL_SECONDS,
            timeout=SPOT_TIMEOUT_MINUTES * 60,
            sleep=self._sleep,
        )
        instance_id = poller.run()

        if poller.state is PollState.TIMED_OUT:
            log.error("Spot instance creation error: request %s", request_id)
            raise SpotTimeoutError(
                f"A timeout of {SPOT_TIMEOUT_MINUTES} minutes is exceeded. "
                "Your AWS EC2 spot instance was not created."
            )

        tags = request.instance_tags
        if tags:
            try:
                self.ec2.create_tags(Resources=[instance_id], Tags=tags)
            except AWS_ERRORS as e:
                log.error("AWS EC2 instance %s tagging error: %s", instance_id, e)
                raise TaggingError(f"AWS EC2 instance {instance_id} tagging error: {e}") from e

        log.info("AWS EC2 instance %s is started", instance_id)
        return instance_id


class Provisioner:
    def __init__(self, config: ProvisionerConfig, ec2=None, ssm=None, sleep=time.sleep):
        self.config = config
        if ec2 is None or ssm is None:
            try:
                session = (
                    boto3.Session(profile_name=config.profile, region_name=config.region)
                    if config.profile
                    else boto3.Session(region_name=config.region)
                )
                ec2 = ec2 or session.client("ec2")
                ssm = ssm or session.client("ssm")
            except BotoCoreError as e:
                log.error("AWS session setup error (profile=%s region=%s): %s", config.profile, config.region, e)
                raise ConfigurationError(f"AWS session setup error: {e}") from e
        self.ec2 = ec2
        self.ssm = ssm
        self._sleep = sleep

    def resolve_image_id(self, parameter_name: str) -> str:
        try:
            resp = self.ssm.get_parameter(Name=parameter_name, WithDecryption=True)
        except AWS_ERRORS as e:
            log.error("SSM parameter %s lookup error: %s", parameter_name, e)
            raise ParameterLookupError(f"SSM parameter {parameter_name} lookup error: {e}") from e

        value = resp.get("Parameter", {}).get("Value")
        if not value:
            log.error("SSM parameter %s has no value", parameter_name)
            raise ParameterLookupError(f"SSM parameter {parameter_name} has no value")
        return value

    def build_request(self, label: str, token: str) -> InstanceRequest:
        cfg = self.config
        lines = build_boot_script(
            token,
            label,
            cfg.repository,
            runner_home_dir=cfg.runner_home_dir,
            pre_runner_script=cfg.pre_runner_script,
        )
        tag_specs = cfg.tag_specifications
        return InstanceRequest(
            image_id=self.resolve_image_id(cfg.ec2_image_id),
            instance_type=cfg.ec2_instance_type,
            subnet_id=cfg.subnet_id,
            security_group_id=cfg.security_group_id,
            user_data=tuple(lines),
            key_name=cfg.key_name,
            iam_role_name=cfg.iam_role_name,
            volume_size=cfg.volume_size,
            use_public_ip=cfg.use_public_ip,
            use_spot=cfg.use_spot_instance,
            tag_specifications=tuple(tag_specs) if tag_specs else None,
        )

    def launcher_for(self, request: InstanceRequest):
        if request.use_spot:
            return SpotLauncher(self.ec2, sleep=self._sleep)
        return OnDemandLauncher(self.ec2)

    def start(self, label: str, token: str) -> str:
        request = self.build_request(label, token)
        return self.launcher_for(request).launch(request)

    def terminate(self, instance_id: str):
        try:
            self.ec2.terminate_instances(InstanceIds=[instance_id])
        except AWS_ERRORS as e:
            log.error("AWS EC2 instance %s termination error: %s", instance_id, e)
            raise TerminationError(f"AWS EC2 instance {instance_id} termination error: {e}") from e
        log.info("AWS EC2 instance %s is terminated", instance_id)

    def await_running(self, instance_id: str):
        try:
            waiter = self.ec2.get_waiter("instance_running")
            waiter.wait(InstanceIds=[instance_id])
        except AWS_ERRORS as e:
            log.error("AWS EC2 instance %s initialization error: %s", instance_id, e)
            raise InitializationError(f"AWS EC2 instance {instance_id} initialization error: {e}") from e
        log.info("AWS EC2 instance %s is up and running", instance_id)
