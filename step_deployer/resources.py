from typing import Optional, Tuple

from pydantic import ValidationError

from step_deployer import s3
from step_deployer.errors import (
    ArtifactHashMismatchError,
    AuthorizationPathMismatchError,
    SelfHashMismatchError,
    TagMismatchError,
    UpstreamUnavailableError,
)
from step_deployer.models import Release
from step_deployer.paths import arn_path, expected_role_path


DEPLOY_WITH = "step-deployer"


def validate_resources(
    release: Release,
    lambda_client,
    sfn_client,
    s3_client,
    deploy_with: str = DEPLOY_WITH,
) -> None:
    validate_lambda_function_tags(release, lambda_client, deploy_with)
    validate_step_function_path(release, sfn_client)
    validate_lambda_sha(release, s3_client)
    validate_release_sha(release, s3_client)


def validate_lambda_function_tags(release: Release, lambda_client, deploy_with: str = DEPLOY_WITH) -> None:
    project, config, deployer = lambda_project_config_deployer_tags(release, lambda_client)

    if project is None or config is None or deployer is None:
        raise TagMismatchError("ProjectName, ConfigName and or DeployWith tag on lambda is nil")

    if release.project_name != project:
        raise TagMismatchError(f"Lambda ProjectName tag incorrect, expecting {release.project_name} has {project}")

    if release.config_name != config:
        raise TagMismatchError(f"Lambda ConfigName tag incorrect, expecting {release.config_name} has {config}")

    if deployer != deploy_with:
        raise TagMismatchError(f"Lambda DeployWith tag incorrect, expecting {deploy_with} has {deployer}")


def lambda_project_config_deployer_tags(
    release: Release, lambda_client
) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    response = lambda_client.list_tags(Resource=release.lambda_arn)
    if response is None:
        raise UpstreamUnavailableError("Unknown Lambda Tags Error")
    tags = response.get("Tags") or {}
    return tags.get("ProjectName"), tags.get("ConfigName"), tags.get("DeployWith")


def validate_step_function_path(release: Release, sfn_client) -> None:
    response = sfn_client.describe_state_machine(stateMachineArn=release.step_arn)
    role_arn = (response or {}).get("roleArn")
    if not role_arn:
        raise UpstreamUnavailableError("Unknown Step Function Error")

    path = arn_path(role_arn)
    expected = expected_role_path(release.project_name, release.config_name)
    if path != expected:
        raise AuthorizationPathMismatchError(f"Incorrect Step Function Role Path, expecting {expected}, got {path}")


def validate_lambda_sha(release: Release, s3_client) -> None:
    sha = s3.get_sha256(s3_client, release.bucket, release.lambda_zip_path)
    if sha != release.lambda_sha256:
        raise ArtifactHashMismatchError(f"Lambda SHA mismatch, expecting {release.lambda_sha256}, got {sha}")


def validate_release_sha(release: Release, s3_client) -> None:
    try:
        staged = s3.get_struct(s3_client, release.bucket, release.release_path, Release)
    except ValidationError as exc:
        raise SelfHashMismatchError(f"Error Unmarshalling uploaded Release struct with {exc}") from exc

    expected = staged.compute_sha256()
    if expected != release.release_sha256:
        raise SelfHashMismatchError(f"Release SHA incorrect expected {expected}, got {release.release_sha256}")

    # The submitted fields must be the staged fields, not just carry the staged hash.
    submitted = release.compute_sha256()
    if submitted != expected:
        raise SelfHashMismatchError(f"Submitted release SHA {submitted} does not match staged release SHA {expected}")
