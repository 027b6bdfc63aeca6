import hashlib
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

import httpx

from step_deployer import s3
from step_deployer.config import SETTINGS, Settings, resolve_account_id
from step_deployer.models import Release
from step_deployer.observability import log_event


TERMINAL_EXECUTION_STATES = {"SUCCEEDED", "FAILED", "TIMED_OUT", "ABORTED"}


def prepare_release(
    release: Release,
    zip_file: bytes,
    settings: Settings = SETTINGS,
    account_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Release:
    """Fill defaults, stamp the artifact hash and compute the release hash."""
    release = release.with_defaults(
        settings.region,
        account_id or resolve_account_id(settings),
        settings.bucket_prefix,
    )
    release = release.model_copy(
        update={
            "created_at": now or datetime.now(timezone.utc),
            "lambda_sha256": hashlib.sha256(zip_file).hexdigest(),
            "release_sha256": "",
            "success": None,
            "error": None,
        }
    )
    return release.model_copy(update={"release_sha256": release.compute_sha256()})


def stage_release(s3_client, release: Release, zip_file: bytes) -> None:
    s3.put(s3_client, release.bucket, release.lambda_zip_path, zip_file)
    s3.put_struct(s3_client, release.bucket, release.release_path, release)
    log_event("release.staged", uuid=release.uuid, bucket=release.bucket, key=release.release_path)


def start_deploy(sfn_client, state_machine_arn: str, release: Release) -> str:
    response = sfn_client.start_execution(
        stateMachineArn=state_machine_arn,
        name=release.uuid,
        input=release.to_json(),
    )
    log_event("release.started", uuid=release.uuid, execution_arn=response["executionArn"])
    return response["executionArn"]


def wait_for_execution(
    sfn_client,
    execution_arn: str,
    poll_seconds: float = 5,
    timeout_seconds: float = 600,
    sleep: Callable[[float], None] = time.sleep,
) -> dict:
    deadline = time.monotonic() + timeout_seconds
    while True:
        response = sfn_client.describe_execution(executionArn=execution_arn)
        if response.get("status") in TERMINAL_EXECUTION_STATES:
            return response
        if time.monotonic() >= deadline:
            raise TimeoutError(f"Execution {execution_arn} still {response.get('status')} after {timeout_seconds}s")
        sleep(poll_seconds)


def submit_release_http(
    api_url: str,
    token: str,
    release: Release,
    timeout_seconds: float = 120,
    http_client: Optional[httpx.Client] = None,
) -> Tuple[int, dict]:
    url = api_url.rstrip("/") + "/v1/releases"
    headers = {"x-step-deployer-token": token}
    if http_client is None:
        response = httpx.post(url, json=release.to_dict(), headers=headers, timeout=timeout_seconds)
    else:
        response = http_client.post(url, json=release.to_dict(), headers=headers, timeout=timeout_seconds)
    return response.status_code, response.json()
