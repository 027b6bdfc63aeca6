import sys
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest


# Ensure the repository root is on sys.path for tests that import modules directly.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from fakes import FakeLambda, FakeS3, FakeStepFunctions  # noqa: E402
from step_deployer.client import prepare_release, stage_release  # noqa: E402
from step_deployer.config import Settings  # noqa: E402
from release_helpers import ACCOUNT_ID, ROLE_ARN, TAGS, ZIP, build_release  # noqa: E402


@pytest.fixture
def settings(monkeypatch) -> Settings:
    for name in [
        "STEP_DEPLOYER_SSM_PREFIX",
        "STEP_DEPLOYER_ACCOUNT_ID",
        "STEP_DEPLOYER_LOCK_TTL_SECONDS",
        "STEP_DEPLOYER_DEPLOY_WITH",
        "STEP_DEPLOYER_MAX_AGE_SECONDS",
        "STEP_DEPLOYER_MAX_FUTURE_SECONDS",
        "STEP_DEPLOYER_API_TOKEN",
    ]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("STEP_DEPLOYER_REGION", "us-east-1")
    return Settings()


@pytest.fixture
def world(settings):
    now = datetime.now(timezone.utc)
    s3_client = FakeS3()
    lambda_client = FakeLambda(tags=TAGS)
    sfn_client = FakeStepFunctions(role_arn=ROLE_ARN)
    release = prepare_release(build_release(), ZIP, settings, account_id=ACCOUNT_ID, now=now)
    stage_release(s3_client, release, ZIP)
    s3_client.calls.clear()
    return SimpleNamespace(
        now=now,
        settings=settings,
        s3=s3_client,
        lambda_client=lambda_client,
        sfn=sfn_client,
        release=release,
    )
