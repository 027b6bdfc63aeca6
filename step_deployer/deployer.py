import logging
from datetime import datetime
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from step_deployer import resources, s3, validation
from step_deployer.config import SETTINGS, Settings
from step_deployer.errors import (
    DeployerError,
    LockContendedError,
    PartialDeploymentError,
    classify_exception,
)
from step_deployer.models import Release
from step_deployer.observability import log_event


logger = logging.getLogger("step_deployer.deployer")

_FAILURES = (DeployerError, BotoCoreError, ClientError)


def deploy_lambda(release: Release, lambda_client, s3_client) -> None:
    # Pass the zip bytes rather than an S3 location: the function may live in
    # another region or account than the staging bucket.
    zip_file = s3.get(s3_client, release.bucket, release.lambda_zip_path)
    lambda_client.update_function_code(**release.update_function_code_input(zip_file))


def deploy_step_function(release: Release, sfn_client) -> None:
    sfn_client.update_state_machine(**release.update_state_machine_input())


def deploy(release: Release, lambda_client, sfn_client, s3_client) -> None:
    deploy_lambda(release, lambda_client, s3_client)
    try:
        deploy_step_function(release, sfn_client)
    except (BotoCoreError, ClientError) as exc:
        cause = classify_exception(exc).message
        raise PartialDeploymentError(
            f"Lambda {release.lambda_arn} updated but state machine {release.step_arn} update failed with {cause}"
        ) from exc


def validate_release(
    release: Release,
    lambda_client,
    sfn_client,
    s3_client,
    settings: Settings = SETTINGS,
    now: Optional[datetime] = None,
) -> None:
    validate_attributes(release, settings, now)
    resources.validate_resources(release, lambda_client, sfn_client, s3_client, deploy_with=settings.deploy_with)


def validate_attributes(release: Release, settings: Settings = SETTINGS, now: Optional[datetime] = None) -> None:
    validation.validate_attributes(
        release,
        now=now,
        max_age_seconds=settings.max_age_seconds,
        max_future_seconds=settings.max_future_seconds,
    )


def grab_lock(release: Release, s3_client, settings: Settings = SETTINGS) -> None:
    acquired = s3.grab_lock(
        s3_client,
        release.bucket,
        release.lock_path,
        release.uuid,
        ttl_seconds=settings.lock_ttl_seconds,
    )
    if not acquired:
        raise LockContendedError(f"Lock {release.lock_path} is held by another deployment")


def release_lock(release: Release, s3_client) -> None:
    s3.release_lock(s3_client, release.bucket, release.lock_path, release.uuid)


def deploy_release(
    release: Release,
    lambda_client,
    sfn_client,
    s3_client,
    settings: Settings = SETTINGS,
    now: Optional[datetime] = None,
) -> Release:
    """Validate, lock, re-validate against live resources, deploy and unlock.

    Returns the release with ``success`` and ``error`` set. A failed state
    machine update after a successful Lambda update leaves the lock in place
    so nothing else deploys over the mixed state.
    """
    release = release.model_copy(update={"success": None, "error": None})
    log_event(
        "release.submitted",
        uuid=release.uuid,
        release_id=release.release_id,
        project=release.project_name,
        config=release.config_name,
    )

    try:
        validate_attributes(release, settings, now)
        grab_lock(release, s3_client, settings)
    except _FAILURES as exc:
        return _finish(release, exc)

    try:
        resources.validate_resources(release, lambda_client, sfn_client, s3_client, deploy_with=settings.deploy_with)
        deploy(release, lambda_client, sfn_client, s3_client)
    except PartialDeploymentError as exc:
        log_event("release.lock_held", uuid=release.uuid, lock_path=release.lock_path)
        return _finish(release, exc)
    except _FAILURES as exc:
        _release_lock_after_failure(release, s3_client)
        return _finish(release, exc)

    try:
        release_lock(release, s3_client)
    except _FAILURES as exc:
        return _finish(release, exc)
    return _finish(release, None)


def _release_lock_after_failure(release: Release, s3_client) -> None:
    try:
        release_lock(release, s3_client)
    except _FAILURES as exc:
        logger.warning("release.unlock_failed uuid=%s lock_path=%s error=%s", release.uuid, release.lock_path, exc)


def _finish(release: Release, exc: Optional[Exception]) -> Release:
    finished = release.with_outcome(exc)
    if exc is None:
        log_event("release.succeeded", uuid=release.uuid, release_id=release.release_id)
    else:
        log_event(
            "release.failed",
            uuid=release.uuid,
            release_id=release.release_id,
            error=finished.error.error,
            cause=finished.error.cause,
        )
    return finished
