from __future__ import annotations


def lambda_arn(region: str, account_id: str, name: str) -> str:
    return f"arn:aws:lambda:{region}:{account_id}:function:{name}"


def step_arn(region: str, account_id: str, name: str) -> str:
    return f"arn:aws:states:{region}:{account_id}:stateMachine:{name}"


def root_path(account_id: str, project_name: str, config_name: str) -> str:
    return f"{account_id}/{project_name}/{config_name}"


def release_path(root: str, release_id: str) -> str:
    return f"{root}/{release_id}"


def lambda_zip_path(release_dir: str) -> str:
    return f"{release_dir}/lambda.zip"


def release_key(release_dir: str) -> str:
    return f"{release_dir}/release"


def lock_path(root: str) -> str:
    return f"{root}/lock"


def arn_path(arn: str) -> str:
    """Return the IAM path of a role ARN.

    ``arn:aws:iam::000000000000:role/step/p1/c1/role-name`` -> ``/step/p1/c1/``.
    A role created without a path returns ``/``.
    """
    parts = arn.split(":", 5)
    if len(parts) < 6:
        return "/"
    segments = parts[5].split("/")
    if len(segments) <= 2:
        return "/"
    return "/" + "/".join(segments[1:-1]) + "/"


def expected_role_path(project_name: str, config_name: str) -> str:
    return f"/step/{project_name}/{config_name}/"
