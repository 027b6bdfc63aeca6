import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Type, TypeVar

from botocore.exceptions import ClientError
from pydantic import BaseModel

from step_deployer.errors import LockOwnershipMismatchError


_CONFLICT_CODES = {"PreconditionFailed", "ConditionalRequestConflict"}
_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}

ModelT = TypeVar("ModelT", bound=BaseModel)

logger = logging.getLogger("step_deployer.s3")


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def is_not_found(exc: ClientError) -> bool:
    return _error_code(exc) in _NOT_FOUND_CODES


def get(s3_client, bucket: str, key: str) -> bytes:
    response = s3_client.get_object(Bucket=bucket, Key=key)
    return response["Body"].read()


def put(s3_client, bucket: str, key: str, body: bytes) -> None:
    s3_client.put_object(Bucket=bucket, Key=key, Body=body)


def get_sha256(s3_client, bucket: str, key: str) -> str:
    return hashlib.sha256(get(s3_client, bucket, key)).hexdigest()


def get_struct(s3_client, bucket: str, key: str, model: Type[ModelT]) -> ModelT:
    return model.model_validate_json(get(s3_client, bucket, key))


def put_struct(s3_client, bucket: str, key: str, value: BaseModel) -> None:
    body = value.model_dump_json(exclude_none=True).encode("utf-8")
    s3_client.put_object(Bucket=bucket, Key=key, Body=body, ContentType="application/json")


###
# Lock
###


def grab_lock(
    s3_client,
    bucket: str,
    lock_path: str,
    owner: str,
    ttl_seconds: int = 0,
    now: Optional[datetime] = None,
) -> bool:
    """Create the lock object holding ``owner`` if no lock exists.

    Returns ``False`` when another owner holds the lock. With a positive
    ``ttl_seconds`` a lock older than the TTL is deleted and creation is
    retried once.
    """
    if _create_if_absent(s3_client, bucket, lock_path, owner):
        return True
    if ttl_seconds > 0 and _reclaim_stale(s3_client, bucket, lock_path, ttl_seconds, now):
        return _create_if_absent(s3_client, bucket, lock_path, owner)
    return False


def release_lock(s3_client, bucket: str, lock_path: str, owner: str) -> None:
    try:
        response = s3_client.get_object(Bucket=bucket, Key=lock_path)
    except ClientError as exc:
        if is_not_found(exc):
            raise LockOwnershipMismatchError(f"Lock {lock_path} does not exist, expected owner {owner}") from exc
        raise
    current = response["Body"].read()
    if current != owner.encode("utf-8"):
        holder = current.decode("utf-8", errors="replace")
        raise LockOwnershipMismatchError(f"Lock {lock_path} held by {holder}, not {owner}")
    try:
        s3_client.delete_object(Bucket=bucket, Key=lock_path, IfMatch=response["ETag"])
    except ClientError as exc:
        if _error_code(exc) in _CONFLICT_CODES:
            raise LockOwnershipMismatchError(f"Lock {lock_path} changed while releasing for {owner}") from exc
        raise


def _create_if_absent(s3_client, bucket: str, key: str, value: str) -> bool:
    try:
        s3_client.put_object(Bucket=bucket, Key=key, Body=value.encode("utf-8"), IfNoneMatch="*")
    except ClientError as exc:
        if _error_code(exc) in _CONFLICT_CODES:
            return False
        raise
    return True


def _reclaim_stale(s3_client, bucket: str, key: str, ttl_seconds: int, now: Optional[datetime]) -> bool:
    try:
        head = s3_client.head_object(Bucket=bucket, Key=key)
    except ClientError as exc:
        if is_not_found(exc):
            return True
        raise
    now = now or datetime.now(timezone.utc)
    age = now - head["LastModified"]
    if age < timedelta(seconds=ttl_seconds):
        return False
    logger.warning("lock.reclaim bucket=%s key=%s age_seconds=%d", bucket, key, int(age.total_seconds()))
    try:
        s3_client.delete_object(Bucket=bucket, Key=key, IfMatch=head["ETag"])
    except ClientError as exc:
        if _error_code(exc) in _CONFLICT_CODES:
            return False
        raise
    return True
