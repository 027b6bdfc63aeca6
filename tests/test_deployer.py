import json

from fakes import client_error
from release_helpers import ZIP
from step_deployer import deployer


def _deploy(world, release=None):
    return deployer.deploy_release(
        release or world.release,
        world.lambda_client,
        world.sfn,
        world.s3,
        settings=world.settings,
        now=world.now,
    )


def _lock_body(world):
    return world.s3.body(world.release.bucket, world.release.lock_path)


def test_deploy_release_succeeds_and_unlocks(world) -> None:
    result = _deploy(world)
    assert result.success is True
    assert result.error is None
    assert world.lambda_client.updates == [{"FunctionName": world.release.lambda_arn, "ZipFile": ZIP}]
    assert len(world.sfn.updates) == 1
    update = world.sfn.updates[0]
    assert update["stateMachineArn"] == world.release.step_arn
    assert json.loads(update["definition"]) == json.loads(world.release.state_machine_json)
    assert _lock_body(world) is None


def test_lock_is_taken_before_resource_checks(world) -> None:
    _deploy(world)
    names = [name for name, _ in world.s3.calls]
    first_put = names.index("put_object")
    first_get = names.index("get_object")
    assert first_put < first_get


def test_missing_field_makes_no_network_calls(world) -> None:
    release = world.release.model_copy(update={"lambda_name": None})
    result = _deploy(world, release)
    assert result.success is False
    assert result.error.error == "MissingField"
    assert "LambdaName" in result.error.cause
    assert world.s3.calls == []
    assert world.lambda_client.calls == []
    assert world.sfn.calls == []


def test_contended_lock_deploys_nothing(world) -> None:
    world.s3.set(world.release.bucket, world.release.lock_path, b"someone-else")
    result = _deploy(world)
    assert result.success is False
    assert result.error.error == "LockContended"
    assert world.lambda_client.calls == []
    assert world.sfn.calls == []
    assert _lock_body(world) == b"someone-else"


def test_resource_failure_releases_lock(world) -> None:
    world.lambda_client.default_tags["DeployWith"] = "terraform"
    result = _deploy(world)
    assert result.success is False
    assert result.error.error == "TagMismatch"
    assert world.lambda_client.updates == []
    assert _lock_body(world) is None


def test_lambda_update_failure_is_clean(world) -> None:
    world.lambda_client.fail_update = client_error("ResourceConflictException", "UpdateFunctionCode")
    result = _deploy(world)
    assert result.error.error == "UpstreamUnavailable"
    assert "ResourceConflictException" in result.error.cause
    assert world.sfn.updates == []
    assert _lock_body(world) is None


def test_state_machine_failure_is_partial_and_keeps_lock(world) -> None:
    world.sfn.fail_update = client_error("InvalidDefinition", "UpdateStateMachine")
    result = _deploy(world)
    assert result.success is False
    assert result.error.error == "PartialDeployment"
    assert "InvalidDefinition" in result.error.cause
    assert len(world.lambda_client.updates) == 1
    assert _lock_body(world) == world.release.uuid.encode("utf-8")


def test_lock_stolen_during_deploy_reports_ownership_mismatch(world) -> None:
    original_update = world.sfn.update_state_machine

    def steal_lock(**kwargs):
        world.s3.set(world.release.bucket, world.release.lock_path, b"intruder")
        return original_update(**kwargs)

    world.sfn.update_state_machine = steal_lock
    result = _deploy(world)
    assert result.success is False
    assert result.error.error == "LockOwnershipMismatch"
    assert _lock_body(world) == b"intruder"


def test_stale_outcome_fields_are_reset(world) -> None:
    release = world.release.model_copy(update={"success": False})
    result = _deploy(world, release)
    assert result.success is True


def test_validate_release_dry_run_does_not_lock(world) -> None:
    deployer.validate_release(
        world.release, world.lambda_client, world.sfn, world.s3, settings=world.settings, now=world.now
    )
    assert _lock_body(world) is None
    assert world.lambda_client.updates == []


def test_pipeline_logs_events(world, caplog) -> None:
    caplog.set_level("INFO")
    _deploy(world)
    assert "event=release.submitted" in caplog.text
    assert "event=release.succeeded" in caplog.text


def test_non_string_transition_is_invalid_definition(world) -> None:
    states = json.dumps({"StartAt": "A", "States": {"A": {"Type": "Pass", "Next": ["B"]}}})
    release = world.release.model_copy(update={"state_machine_json": states})
    result = _deploy(world, release)
    assert result.success is False
    assert result.error.error == "InvalidDefinitionSyntax"
    assert world.s3.calls == []


def test_lock_overwritten_with_binary_reports_ownership_mismatch(world) -> None:
    original_update = world.sfn.update_state_machine

    def corrupt_lock(**kwargs):
        world.s3.set(world.release.bucket, world.release.lock_path, b"\xff\xfe")
        return original_update(**kwargs)

    world.sfn.update_state_machine = corrupt_lock
    result = _deploy(world)
    assert result.success is False
    assert result.error.error == "LockOwnershipMismatch"
    assert _lock_body(world) == b"\xff\xfe"
