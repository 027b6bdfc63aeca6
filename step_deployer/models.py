import hashlib
import json
import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from step_deployer import machine, paths
from step_deployer.errors import classify_exception


def is_empty(value: Optional[str]) -> bool:
    return value is None or value == ""


def time_uuid(prefix: str) -> str:
    # Time prefix keeps release ids sortable in S3 listings and execution history.
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{prefix}{stamp}-{uuid.uuid4().hex}"


class ReleaseError(BaseModel):
    error: Optional[str] = None
    cause: Optional[str] = None


class Release(BaseModel):
    """The structure passed between the client and the deployer.

    Optional strings follow an "empty means absent" contract, so ``None`` and
    ``""`` are treated the same by every validation.
    """

    aws_account_id: Optional[str] = None
    aws_region: Optional[str] = None

    uuid: Optional[str] = None
    release_id: Optional[str] = None

    project_name: Optional[str] = None
    config_name: Optional[str] = None
    bucket: Optional[str] = None

    created_at: Optional[datetime] = None

    lambda_name: Optional[str] = None
    lambda_sha256: Optional[str] = None
    step_fn_name: Optional[str] = None
    release_sha256: str = ""

    state_machine_json: Optional[str] = None

    error: Optional[ReleaseError] = None
    success: Optional[bool] = None

    # Derived identifiers

    @property
    def lambda_arn(self) -> str:
        return paths.lambda_arn(self.aws_region, self.aws_account_id, self.lambda_name)

    @property
    def step_arn(self) -> str:
        return paths.step_arn(self.aws_region, self.aws_account_id, self.step_fn_name)

    @property
    def root_path(self) -> str:
        return paths.root_path(self.aws_account_id, self.project_name, self.config_name)

    @property
    def release_dir(self) -> str:
        return paths.release_path(self.root_path, self.release_id)

    @property
    def lambda_zip_path(self) -> str:
        return paths.lambda_zip_path(self.release_dir)

    @property
    def release_path(self) -> str:
        return paths.release_key(self.release_dir)

    @property
    def lock_path(self) -> str:
        return paths.lock_path(self.root_path)

    # AWS requests

    def update_function_code_input(self, zip_file: bytes) -> dict:
        return {"FunctionName": self.lambda_arn, "ZipFile": zip_file}

    def update_state_machine_input(self) -> dict:
        return {"stateMachineArn": self.step_arn, "definition": machine.pretty_json(self.state_machine_json)}

    # Serialization

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw) -> "Release":
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return cls.model_validate_json(raw)

    def canonical_json(self) -> str:
        payload = self.model_dump(mode="json", exclude_none=True, exclude={"release_sha256"})
        return json.dumps(payload, sort_keys=True, separators=(",", ":"))

    def compute_sha256(self) -> str:
        return hashlib.sha256(self.canonical_json().encode("utf-8")).hexdigest()

    # Lifecycle

    def with_defaults(
        self,
        region: Optional[str],
        account_id: Optional[str],
        bucket_prefix: str = "step-deployer-",
    ) -> "Release":
        updates = {}
        if is_empty(self.uuid):
            updates["uuid"] = time_uuid("release-")
        if is_empty(self.aws_region):
            updates["aws_region"] = region
        if is_empty(self.aws_account_id):
            updates["aws_account_id"] = account_id
        if is_empty(self.bucket) and account_id:
            # The default bucket belongs to the deploying account, not the release account.
            updates["bucket"] = f"{bucket_prefix}{account_id}"
        return self.model_copy(update=updates)

    def with_outcome(self, error: Optional[Exception] = None) -> "Release":
        if error is None:
            return self.model_copy(update={"success": True, "error": None})
        classified = classify_exception(error)
        return self.model_copy(
            update={
                "success": False,
                "error": ReleaseError(error=classified.code, cause=classified.message),
            }
        )
