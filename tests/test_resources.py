import pytest
from botocore.exceptions import ClientError

from fakes import client_error
from step_deployer import s3
from step_deployer.errors import (
    ArtifactHashMismatchError,
    AuthorizationPathMismatchError,
    DeployerError,
    SelfHashMismatchError,
    TagMismatchError,
)
from step_deployer.resources import (
    validate_lambda_function_tags,
    validate_lambda_sha,
    validate_release_sha,
    validate_resources,
    validate_step_function_path,
)


def _validate(world, release=None):
    validate_resources(release or world.release, world.lambda_client, world.sfn, world.s3)


def test_matching_release_passes(world) -> None:
    _validate(world)
    assert world.lambda_client.calls == ["list_tags"]
    assert world.sfn.calls == ["describe_state_machine"]


@pytest.mark.parametrize("tag", ["ProjectName", "ConfigName", "DeployWith"])
def test_missing_tag_fails(world, tag: str) -> None:
    del world.lambda_client.default_tags[tag]
    with pytest.raises(TagMismatchError, match="is nil"):
        validate_lambda_function_tags(world.release, world.lambda_client)


@pytest.mark.parametrize(
    "tag, message",
    [
        ("ProjectName", "ProjectName tag incorrect, expecting p1 has other"),
        ("ConfigName", "ConfigName tag incorrect, expecting c1 has other"),
        ("DeployWith", "DeployWith tag incorrect, expecting step-deployer has other"),
    ],
)
def test_mismatched_tag_fails(world, tag: str, message: str) -> None:
    world.lambda_client.default_tags[tag] = "other"
    with pytest.raises(TagMismatchError, match=message):
        validate_lambda_function_tags(world.release, world.lambda_client)


def test_custom_deploy_with_sentinel(world) -> None:
    world.lambda_client.default_tags["DeployWith"] = "fleet-deployer"
    validate_lambda_function_tags(world.release, world.lambda_client, deploy_with="fleet-deployer")


def test_role_path_mismatch_fails(world) -> None:
    world.sfn.role_arn = "arn:aws:iam::000000000000:role/step/p2/c1/step-role"
    with pytest.raises(AuthorizationPathMismatchError, match="expecting /step/p1/c1/, got /step/p2/c1/"):
        validate_step_function_path(world.release, world.sfn)


def test_role_without_path_fails(world) -> None:
    world.sfn.role_arn = "arn:aws:iam::000000000000:role/step-role"
    with pytest.raises(AuthorizationPathMismatchError):
        validate_step_function_path(world.release, world.sfn)


def test_missing_state_machine_propagates_client_error(world) -> None:
    world.sfn.role_arn = ""
    with pytest.raises(ClientError):
        validate_step_function_path(world.release, world.sfn)


def test_artifact_hash_mismatch_names_both_hashes(world) -> None:
    release = world.release
    tampered = s3.get(world.s3, release.bucket, release.lambda_zip_path)[:-1] + b"X"
    world.s3.set(release.bucket, release.lambda_zip_path, tampered)
    with pytest.raises(ArtifactHashMismatchError) as exc_info:
        validate_lambda_sha(release, world.s3)
    actual = s3.get_sha256(world.s3, release.bucket, release.lambda_zip_path)
    assert release.lambda_sha256 in exc_info.value.message
    assert actual in exc_info.value.message


def test_missing_artifact_propagates_client_error(world) -> None:
    world.s3.objects.pop((world.release.bucket, world.release.lambda_zip_path))
    with pytest.raises(ClientError):
        validate_lambda_sha(world.release, world.s3)


def test_missing_staged_release_propagates_client_error(world) -> None:
    world.s3.objects.pop((world.release.bucket, world.release.release_path))
    with pytest.raises(ClientError) as exc_info:
        validate_release_sha(world.release, world.s3)
    assert exc_info.value.response["Error"]["Code"] == "NoSuchKey"


def test_list_tags_failure_propagates_client_error(world) -> None:
    world.lambda_client.fail_list_tags = client_error("ResourceNotFoundException", "ListTags")
    with pytest.raises(ClientError) as exc_info:
        validate_lambda_function_tags(world.release, world.lambda_client)
    assert exc_info.value.response["Error"]["Code"] == "ResourceNotFoundException"


def test_release_sha_mismatch(world) -> None:
    release = world.release.model_copy(update={"release_sha256": "0" * 64})
    with pytest.raises(SelfHashMismatchError, match="Release SHA incorrect"):
        validate_release_sha(release, world.s3)


def test_submitted_fields_differ_from_staged_copy(world) -> None:
    release = world.release.model_copy(update={"lambda_name": "other-lambda"})
    with pytest.raises(SelfHashMismatchError, match="does not match staged release"):
        validate_release_sha(release, world.s3)


def test_undecodable_staged_release(world) -> None:
    world.s3.set(world.release.bucket, world.release.release_path, b"not json")
    with pytest.raises(SelfHashMismatchError, match="Error Unmarshalling"):
        validate_release_sha(world.release, world.s3)


def _flip_tags(world):
    world.lambda_client.default_tags["ConfigName"] = "c2"


def _flip_role(world):
    world.sfn.role_arn = "arn:aws:iam::000000000000:role/step/p1/c2/step-role"


def _flip_artifact(world):
    world.s3.set(world.release.bucket, world.release.lambda_zip_path, b"other bytes")


def _flip_release(world):
    world.release = world.release.model_copy(update={"release_sha256": "f" * 64})


@pytest.mark.parametrize(
    "flip, expected",
    [
        (_flip_tags, "TagMismatch"),
        (_flip_role, "AuthorizationPathMismatch"),
        (_flip_artifact, "ArtifactHashMismatch"),
        (_flip_release, "SelfHashMismatch"),
    ],
)
def test_single_flip_yields_only_that_error(world, flip, expected: str) -> None:
    flip(world)
    with pytest.raises(DeployerError) as exc_info:
        _validate(world)
    assert exc_info.value.code == expected
