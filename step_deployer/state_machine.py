import json


def _task(name: str, lambda_arn: str, next_state: str, catch_next: str, retry_lock: bool = False) -> dict:
    state = {
        "Type": "Task",
        "Resource": lambda_arn,
        "Parameters": {"Task": name, "Release.$": "$"},
        "Next": next_state,
        "Catch": [{"ErrorEquals": ["States.ALL"], "ResultPath": "$.error", "Next": catch_next}],
    }
    if retry_lock:
        state["Retry"] = [
            {"ErrorEquals": ["LockContendedError"], "IntervalSeconds": 10, "MaxAttempts": 3, "BackoffRate": 2.0}
        ]
    return state


def definition(lambda_arn: str) -> dict:
    """States Language definition for the deployer itself.

    A failure before the lock is taken ends in FailureClean. A failure while
    holding the lock releases it, except for a partial deployment, which ends
    in FailureDirty with the lock still held.
    """
    return {
        "Comment": "Validate, lock, verify and deploy a Lambda and its state machine",
        "StartAt": "Validate",
        "States": {
            "Validate": _task("Validate", lambda_arn, "Lock", "FailureClean"),
            "Lock": _task("Lock", lambda_arn, "ValidateResources", "FailureClean", retry_lock=True),
            "ValidateResources": _task("ValidateResources", lambda_arn, "Deploy", "ReleaseLockFailure"),
            "Deploy": {
                **_task("Deploy", lambda_arn, "ReleaseLock", "ReleaseLockFailure"),
                "Catch": [
                    {"ErrorEquals": ["PartialDeploymentError"], "ResultPath": "$.error", "Next": "FailureDirty"},
                    {"ErrorEquals": ["States.ALL"], "ResultPath": "$.error", "Next": "ReleaseLockFailure"},
                ],
            },
            "ReleaseLock": _task("ReleaseLock", lambda_arn, "Success", "FailureDirty"),
            "ReleaseLockFailure": _task("ReleaseLockFailure", lambda_arn, "FailureClean", "FailureDirty"),
            "Success": {"Type": "Succeed"},
            "FailureClean": {"Type": "Fail", "Error": "FailureClean"},
            "FailureDirty": {"Type": "Fail", "Error": "FailureDirty"},
        },
    }


def definition_json(lambda_arn: str) -> str:
    return json.dumps(definition(lambda_arn), indent=2)
