import re
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Callable, Optional

import botocore.session
from botocore.exceptions import ParamValidationError
from botocore.validate import validate_parameters

from step_deployer import machine
from step_deployer.errors import (
    InvalidDefinitionSyntaxError,
    MalformedRequestError,
    MissingFieldError,
    StaleOrFutureTimestampError,
)
from step_deployer.models import Release, is_empty


ACCOUNT_ID_PATTERN = re.compile(r"^[0-9]{12}$")
REGION_PATTERN = re.compile(r"^[a-z]{2}(-[a-z]+)+-[0-9]+$")
LAMBDA_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
STEP_FN_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,80}$")

DEFAULT_MAX_AGE_SECONDS = 300
DEFAULT_MAX_FUTURE_SECONDS = 120


def validate_attributes(
    release: Release,
    now: Optional[datetime] = None,
    max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS,
    max_future_seconds: int = DEFAULT_MAX_FUTURE_SECONDS,
    definition_validator: Callable[[str], None] = machine.validate,
) -> None:
    _require(release.aws_account_id, "AwsAccountID")
    _require(release.aws_region, "AwsRegion")
    _require(release.uuid, "UUID")

    validate_client_attributes(
        release,
        now=now,
        max_age_seconds=max_age_seconds,
        max_future_seconds=max_future_seconds,
        definition_validator=definition_validator,
    )

    if not ACCOUNT_ID_PATTERN.match(release.aws_account_id):
        raise MalformedRequestError(f"AwsAccountID {release.aws_account_id} is not a 12 digit account id")
    if not REGION_PATTERN.match(release.aws_region):
        raise MalformedRequestError(f"AwsRegion {release.aws_region} is not a region name")
    if not LAMBDA_NAME_PATTERN.match(release.lambda_name):
        raise MalformedRequestError(f"LambdaName {release.lambda_name} is not a valid function name")
    if not STEP_FN_NAME_PATTERN.match(release.step_fn_name):
        raise MalformedRequestError(f"StepFnName {release.step_fn_name} is not a valid state machine name")

    _validate_request("lambda", "UpdateFunctionCode", release.update_function_code_input(b""))
    _validate_request("stepfunctions", "UpdateStateMachine", release.update_state_machine_input())


def validate_client_attributes(
    release: Release,
    now: Optional[datetime] = None,
    max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS,
    max_future_seconds: int = DEFAULT_MAX_FUTURE_SECONDS,
    definition_validator: Callable[[str], None] = machine.validate,
) -> None:
    _require(release.release_id, "ReleaseId")
    _require(release.project_name, "ProjectName")
    _require(release.config_name, "ConfigName")
    _require(release.bucket, "Bucket")

    if release.created_at is None:
        raise MissingFieldError("CreatedAt")

    # Five minutes back, two minutes forward for clock skew.
    if not within_time_frame(release.created_at, now, max_age_seconds, max_future_seconds):
        raise StaleOrFutureTimestampError(
            f"Created at older than {max_age_seconds // 60} mins (or in the future), got {release.created_at.isoformat()}"
        )

    _require(release.lambda_name, "LambdaName")
    _require(release.lambda_sha256, "LambdaSHA256")
    _require(release.step_fn_name, "StepFnName")
    _require(release.state_machine_json, "StateMachineJSON")

    try:
        definition_validator(release.state_machine_json)
    except machine.DefinitionSyntaxError as exc:
        raise InvalidDefinitionSyntaxError(f"StateMachineJSON invalid with '{exc}'") from exc


def within_time_frame(
    created_at: datetime,
    now: Optional[datetime],
    max_age_seconds: int,
    max_future_seconds: int,
) -> bool:
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    earliest = now - timedelta(seconds=max_age_seconds)
    latest = now + timedelta(seconds=max_future_seconds)
    return earliest < created_at < latest


def _require(value: Optional[str], field: str) -> None:
    if is_empty(value):
        raise MissingFieldError(field)


@lru_cache(maxsize=None)
def _input_shape(service: str, operation: str):
    model = botocore.session.get_session().get_service_model(service)
    return model.operation_model(operation).input_shape


def _validate_request(service: str, operation: str, params: dict) -> None:
    try:
        validate_parameters(params, _input_shape(service, operation))
    except ParamValidationError as exc:
        raise MalformedRequestError(f"{operation} request invalid: {exc}") from exc
