from __future__ import annotations

import json
from typing import Any, Callable, Dict, Optional

import boto3

from step_deployer import deployer, errors, resources
from step_deployer.config import SETTINGS
from step_deployer.errors import DeployerError
from step_deployer.models import Release, ReleaseError
from step_deployer.observability import log_event


_CLIENTS: Dict[str, Any] = {}

_KIND_BY_ERROR_TYPE = {
    cls.__name__: cls.kind.value
    for cls in vars(errors).values()
    if isinstance(cls, type) and issubclass(cls, DeployerError)
}


def _client(name: str):
    if name not in _CLIENTS:
        _CLIENTS[name] = boto3.client(name)
    return _CLIENTS[name]


def _catch_to_error(raw: Optional[Dict[str, Any]]) -> ReleaseError:
    """Translate a Step Functions Catch payload into a ReleaseError.

    Lambda failures arrive as ``{"Error": "TagMismatchError", "Cause": "<json>"}``
    where the cause carries ``errorMessage``.
    """
    raw = raw or {}
    error_type = raw.get("Error") or "Unknown"
    cause = raw.get("Cause") or ""
    try:
        parsed = json.loads(cause)
    except (TypeError, ValueError):
        parsed = None
    if isinstance(parsed, dict) and parsed.get("errorMessage"):
        cause = parsed["errorMessage"]
    kind = _KIND_BY_ERROR_TYPE.get(error_type, errors.ErrorKind.UPSTREAM_UNAVAILABLE.value)
    return ReleaseError(error=kind, cause=cause or error_type)


def _validate(release: Release) -> Release:
    deployer.validate_attributes(release, SETTINGS)
    return release


def _lock(release: Release) -> Release:
    deployer.grab_lock(release, _client("s3"), SETTINGS)
    return release


def _validate_resources(release: Release) -> Release:
    resources.validate_resources(
        release,
        _client("lambda"),
        _client("stepfunctions"),
        _client("s3"),
        deploy_with=SETTINGS.deploy_with,
    )
    return release


def _deploy(release: Release) -> Release:
    deployer.deploy(release, _client("lambda"), _client("stepfunctions"), _client("s3"))
    return release


def _release_lock(release: Release) -> Release:
    deployer.release_lock(release, _client("s3"))
    return release.with_outcome(None)


def _release_lock_failure(release: Release, caught: Optional[Dict[str, Any]]) -> Release:
    deployer.release_lock(release, _client("s3"))
    return release.model_copy(update={"success": False, "error": _catch_to_error(caught)})


TASKS: Dict[str, Callable[[Release], Release]] = {
    "Validate": _validate,
    "Lock": _lock,
    "ValidateResources": _validate_resources,
    "Deploy": _deploy,
    "ReleaseLock": _release_lock,
}


def handler(event, context):
    task = event.get("Task") or ""
    payload = dict(event.get("Release") or {})
    caught = payload.pop("error", None)
    release = Release.model_validate(payload)
    log_event("task.start", task=task, uuid=release.uuid, release_id=release.release_id)

    if task == "ReleaseLockFailure":
        return _release_lock_failure(release, caught).to_dict()

    fn = TASKS.get(task)
    if fn is None:
        raise ValueError(f"Unknown task '{task}'")
    try:
        result = fn(release)
    except DeployerError as exc:
        log_event("task.failed", task=task, uuid=release.uuid, error=exc.code, cause=exc.message)
        raise
    log_event("task.succeeded", task=task, uuid=release.uuid)
    return result.to_dict()
