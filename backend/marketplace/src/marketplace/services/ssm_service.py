"""SSM Parameter Store access for the Stripe secrets.

Parameters are SecureStrings under ``/marketplace/{environment}/...`` and
are cached in-process after the first read.
"""

import os
from functools import lru_cache
from typing import ClassVar

import boto3
from botocore.exceptions import ClientError

from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


class SSMServiceError(Exception):
    """Raised when SSM parameter retrieval fails."""


def parameter_path(name: str, environment: str | None = None) -> str:
    """Build the full parameter path for the current environment.

    Args:
        name: Path below the environment, e.g. "stripe/secret_key"
        environment: Environment name. Defaults to ENVIRONMENT env var.
    """
    env = environment or os.environ.get("ENVIRONMENT", "dev")
    return f"/marketplace/{env}/{name}"


class SSMService:
    """Cached reader for decrypted SSM parameters.

    Usage:
        ssm = get_ssm_service()
        secret_key = ssm.get_parameter(parameter_path("stripe/secret_key"))
    """

    _cache: ClassVar[dict[str, str]] = {}

    def __init__(self) -> None:
        self._client = boto3.client("ssm")

    def get_parameter(self, name: str, *, use_cache: bool = True) -> str:
        """Retrieve a parameter value from SSM Parameter Store.

        Args:
            name: Full parameter path
            use_cache: Whether to use cached value if available (default: True)

        Returns:
            The decrypted parameter value.

        Raises:
            SSMServiceError: If parameter cannot be retrieved.
        """
        if use_cache and name in self._cache:
            return self._cache[name]

        try:
            logger.info("Fetching SSM parameter: %s", name)
            response = self._client.get_parameter(Name=name, WithDecryption=True)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code == "ParameterNotFound":
                raise SSMServiceError(f"SSM parameter not found: {name}") from e
            if error_code == "AccessDeniedException":
                raise SSMServiceError(
                    f"Access denied to SSM parameter: {name}. "
                    "Check IAM permissions for ssm:GetParameter."
                ) from e
            raise SSMServiceError(
                f"Failed to retrieve SSM parameter {name}: {e}"
            ) from e

        value: str = response["Parameter"]["Value"]
        self._cache[name] = value
        return value

    def clear_cache(self) -> None:
        """Clear all cached parameters."""
        self._cache.clear()
        logger.info("SSM parameter cache cleared")


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Get the shared SSMService instance."""
    return SSMService()
