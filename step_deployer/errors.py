from enum import Enum

from botocore.exceptions import BotoCoreError, ClientError


class ErrorKind(str, Enum):
    MISSING_FIELD = "MissingField"
    STALE_OR_FUTURE_TIMESTAMP = "StaleOrFutureTimestamp"
    INVALID_DEFINITION_SYNTAX = "InvalidDefinitionSyntax"
    MALFORMED_REQUEST = "MalformedRequest"
    TAG_MISMATCH = "TagMismatch"
    AUTHORIZATION_PATH_MISMATCH = "AuthorizationPathMismatch"
    ARTIFACT_HASH_MISMATCH = "ArtifactHashMismatch"
    SELF_HASH_MISMATCH = "SelfHashMismatch"
    LOCK_CONTENDED = "LockContended"
    LOCK_OWNERSHIP_MISMATCH = "LockOwnershipMismatch"
    UPSTREAM_UNAVAILABLE = "UpstreamUnavailable"
    PARTIAL_DEPLOYMENT = "PartialDeployment"


class DeployerError(Exception):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 502

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def code(self) -> str:
        return self.kind.value


class MissingFieldError(DeployerError):
    kind = ErrorKind.MISSING_FIELD
    status_code = 400

    def __init__(self, field: str) -> None:
        super().__init__(f"{field} must be defined")
        self.field = field


class StaleOrFutureTimestampError(DeployerError):
    kind = ErrorKind.STALE_OR_FUTURE_TIMESTAMP
    status_code = 400


class InvalidDefinitionSyntaxError(DeployerError):
    kind = ErrorKind.INVALID_DEFINITION_SYNTAX
    status_code = 400


class MalformedRequestError(DeployerError):
    kind = ErrorKind.MALFORMED_REQUEST
    status_code = 400


class TagMismatchError(DeployerError):
    kind = ErrorKind.TAG_MISMATCH
    status_code = 403


class AuthorizationPathMismatchError(DeployerError):
    kind = ErrorKind.AUTHORIZATION_PATH_MISMATCH
    status_code = 403


class ArtifactHashMismatchError(DeployerError):
    kind = ErrorKind.ARTIFACT_HASH_MISMATCH
    status_code = 409


class SelfHashMismatchError(DeployerError):
    kind = ErrorKind.SELF_HASH_MISMATCH
    status_code = 409


class LockContendedError(DeployerError):
    kind = ErrorKind.LOCK_CONTENDED
    status_code = 409


class LockOwnershipMismatchError(DeployerError):
    kind = ErrorKind.LOCK_OWNERSHIP_MISMATCH
    status_code = 409


class UpstreamUnavailableError(DeployerError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 502


class PartialDeploymentError(DeployerError):
    kind = ErrorKind.PARTIAL_DEPLOYMENT
    status_code = 500


def classify_exception(exc: BaseException) -> DeployerError:
    if isinstance(exc, DeployerError):
        return exc
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = error.get("Code") or "Unknown"
        message = error.get("Message") or str(exc)
        operation = getattr(exc, "operation_name", None) or "request"
        return UpstreamUnavailableError(f"{operation} failed with {code}: {message}")
    if isinstance(exc, BotoCoreError):
        return UpstreamUnavailableError(str(exc))
    return UpstreamUnavailableError(f"{exc.__class__.__name__}: {exc}")


def status_for_kind(kind: str) -> int:
    for cls in DeployerError.__subclasses__():
        if cls.kind.value == kind:
            return cls.status_code
    return DeployerError.status_code
