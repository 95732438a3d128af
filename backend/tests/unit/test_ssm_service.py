"""Unit tests for SSMService against moto's Parameter Store."""

from collections.abc import Generator

import boto3
import pytest
from moto import mock_aws

from marketplace.services.ssm_service import SSMService, SSMServiceError, parameter_path


@pytest.fixture
def ssm(aws_credentials: None) -> Generator[SSMService, None, None]:
    with mock_aws():
        client = boto3.client("ssm", region_name="eu-west-1")
        client.put_parameter(
            Name="/marketplace/test/stripe/secret_key",
            Value="sk_test_from_ssm",
            Type="SecureString",
        )
        service = SSMService()
        service.clear_cache()
        yield service
        service.clear_cache()


class TestParameterPath:

    def test_uses_given_environment(self) -> None:
        assert parameter_path("stripe/secret_key", "prod") == "/marketplace/prod/stripe/secret_key"

    def test_defaults_to_environment_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ENVIRONMENT", "staging")

        assert parameter_path("stripe/webhook_secret") == "/marketplace/staging/stripe/webhook_secret"


class TestGetParameter:

    def test_reads_decrypted_value(self, ssm: SSMService) -> None:
        assert ssm.get_parameter("/marketplace/test/stripe/secret_key") == "sk_test_from_ssm"

    def test_caches_value(self, ssm: SSMService) -> None:
        name = "/marketplace/test/stripe/secret_key"
        ssm.get_parameter(name)
        boto3.client("ssm", region_name="eu-west-1").put_parameter(
            Name=name, Value="sk_test_rotated", Type="SecureString", Overwrite=True
        )

        assert ssm.get_parameter(name) == "sk_test_from_ssm"
        assert ssm.get_parameter(name, use_cache=False) == "sk_test_rotated"

    def test_missing_parameter(self, ssm: SSMService) -> None:
        with pytest.raises(SSMServiceError) as exc_info:
            ssm.get_parameter("/marketplace/test/nope")

        assert "not found" in str(exc_info.value)
