import os
from typing import Callable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError


class Settings:
    def __init__(self) -> None:
        self.ssm_prefix = os.getenv("STEP_DEPLOYER_SSM_PREFIX", "")
        self.region = os.getenv("STEP_DEPLOYER_REGION") or os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION", "")
        self.account_id = self._get("account_id", "STEP_DEPLOYER_ACCOUNT_ID", "", str)
        self.bucket_prefix = self._get("bucket_prefix", "STEP_DEPLOYER_BUCKET_PREFIX", "step-deployer-", str)
        self.deploy_with = self._get("deploy_with", "STEP_DEPLOYER_DEPLOY_WITH", "step-deployer", str)

        self.max_age_seconds = self._get("max_age_seconds", "STEP_DEPLOYER_MAX_AGE_SECONDS", 300, int)
        self.max_future_seconds = self._get("max_future_seconds", "STEP_DEPLOYER_MAX_FUTURE_SECONDS", 120, int)
        # 0 disables stale lock reclamation.
        self.lock_ttl_seconds = self._get("lock_ttl_seconds", "STEP_DEPLOYER_LOCK_TTL_SECONDS", 0, int)

        self.api_token = self._resolve_secret(self._get("api/token", "STEP_DEPLOYER_API_TOKEN", "", str))
        self.state_machine_arn = self._get("state_machine_arn", "STEP_DEPLOYER_STATE_MACHINE_ARN", "", str)
        self.api_url = self._get("api/url", "STEP_DEPLOYER_API_URL", "", str)

    def _get(self, ssm_key: str, env_key: str, default, parser: Callable) -> Optional[object]:
        if env_key in os.environ:
            try:
                return parser(os.environ[env_key])
            except ValueError:
                return default
        if self.ssm_prefix:
            value = self._read_ssm(f"{self.ssm_prefix}/{ssm_key}")
            if value is not None:
                try:
                    return parser(value)
                except ValueError:
                    return default
        return default

    def _read_ssm(self, name: str) -> Optional[str]:
        try:
            client = boto3.client("ssm")
            response = client.get_parameter(Name=name, WithDecryption=True)
            return response.get("Parameter", {}).get("Value")
        except (BotoCoreError, ClientError):
            return None

    def _resolve_secret(self, value: Optional[str]) -> Optional[str]:
        if not isinstance(value, str):
            return value
        if not value.startswith("arn:aws:secretsmanager:"):
            return value
        client = boto3.client("secretsmanager")
        response = client.get_secret_value(SecretId=value)
        return response.get("SecretString", value)


def resolve_account_id(settings: Settings) -> Optional[str]:
    if settings.account_id:
        return settings.account_id
    try:
        identity = boto3.client("sts").get_caller_identity()
    except (BotoCoreError, ClientError):
        return None
    return identity.get("Account")


SETTINGS = Settings()
