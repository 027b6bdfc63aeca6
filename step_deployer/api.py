import hmac
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from step_deployer import deployer
from step_deployer.config import SETTINGS
from step_deployer.errors import DeployerError, classify_exception, status_for_kind
from step_deployer.models import Release
from step_deployer.observability import log_event, request_id_ctx


@dataclass
class AwsClients:
    lambda_client: Any
    sfn_client: Any
    s3_client: Any


def build_clients() -> AwsClients:
    return AwsClients(
        lambda_client=boto3.client("lambda"),
        sfn_client=boto3.client("stepfunctions"),
        s3_client=boto3.client("s3"),
    )


app = FastAPI(title="Step Deployer API", version="1.0.0")
logger = logging.getLogger("step_deployer.api")
clients: Optional[AwsClients] = None


def get_clients() -> AwsClients:
    global clients
    if clients is None:
        clients = build_clients()
    return clients


def error_response(status_code: int, code: str, message: str, **extra: Any) -> JSONResponse:
    payload = {
        "code": code,
        "message": message,
        "request_id": request_id_ctx.get() or str(uuid.uuid4()),
    }
    payload.update(extra)
    return JSONResponse(status_code=status_code, content=payload)


@app.exception_handler(DeployerError)
async def deployer_error_handler(request: Request, exc: DeployerError):
    return error_response(exc.status_code, exc.code, exc.message)


@app.exception_handler(ClientError)
async def client_error_handler(request: Request, exc: ClientError):
    classified = classify_exception(exc)
    return error_response(classified.status_code, classified.code, classified.message)


@app.exception_handler(BotoCoreError)
async def botocore_error_handler(request: Request, exc: BotoCoreError):
    classified = classify_exception(exc)
    return error_response(classified.status_code, classified.code, classified.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return error_response(400, "INVALID_REQUEST", "Invalid request")


@app.middleware("http")
async def attach_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
    token = request_id_ctx.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_ctx.reset(token)
    response.headers["X-Request-Id"] = request_id
    return response


def require_token(provided: Optional[str]) -> Optional[JSONResponse]:
    expected = SETTINGS.api_token
    if not expected:
        return error_response(503, "AUTH_NOT_CONFIGURED", "API token is not configured")
    if not provided:
        return error_response(401, "MISSING_TOKEN", "x-step-deployer-token header is required")
    if not hmac.compare_digest(provided, expected):
        return error_response(403, "INVALID_TOKEN", "x-step-deployer-token is invalid")
    return None


@app.get("/v1/health")
def health():
    return {"status": "ok"}


@app.post("/v1/releases/validate")
def validate_release(release: Release, x_step_deployer_token: Optional[str] = Header(None)):
    auth_error = require_token(x_step_deployer_token)
    if auth_error:
        return auth_error
    aws = get_clients()
    deployer.validate_release(release, aws.lambda_client, aws.sfn_client, aws.s3_client, SETTINGS)
    log_event("release.validated", uuid=release.uuid, release_id=release.release_id)
    return {"valid": True, "release": release.to_dict()}


@app.post("/v1/releases")
def deploy_release(release: Release, x_step_deployer_token: Optional[str] = Header(None)):
    auth_error = require_token(x_step_deployer_token)
    if auth_error:
        return auth_error
    aws = get_clients()
    result = deployer.deploy_release(release, aws.lambda_client, aws.sfn_client, aws.s3_client, SETTINGS)
    if result.success:
        return {"release": result.to_dict()}
    return error_response(
        status_for_kind(result.error.error),
        result.error.error,
        result.error.cause,
        release=result.to_dict(),
    )
