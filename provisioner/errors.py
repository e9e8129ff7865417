# provisioner/errors.py


class ProvisionerError(Exception):
    """Base exception for runner provisioning operations."""

    pass


class ConfigurationError(ProvisionerError):
    """Missing or invalid inputs."""

    pass


class ParameterLookupError(ProvisionerError, LookupError):
    """SSM parameter could not be read."""

    pass


class ProvisionError(ProvisionerError):
    """EC2 instance could not be started."""

    pass


class SpotRequestError(ProvisionError):
    pass


class SpotTimeoutError(SpotRequestError, TimeoutError):
    pass


class TaggingError(ProvisionError):
    pass


class TerminationError(ProvisionerError):
    pass


class InitializationError(ProvisionerError):
    """Instance did not reach the running state."""

    pass


class GitHubAPIError(ProvisionerError):
    """GitHub API-related errors."""

    pass


class RunnerRegistrationTimeout(GitHubAPIError, TimeoutError):
    pass
