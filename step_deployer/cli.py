from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import boto3

from step_deployer import client, machine, state_machine
from step_deployer.config import SETTINGS
from step_deployer.models import Release


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def _release_from_args(args: argparse.Namespace) -> Release:
    release_id = args.release_id or datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return Release(
        aws_account_id=args.account or None,
        aws_region=args.region or None,
        release_id=release_id,
        project_name=args.project,
        config_name=args.config,
        bucket=args.bucket or None,
        lambda_name=args.lambda_name,
        step_fn_name=args.step_fn,
        state_machine_json=_read_text(args.states),
    )


def _add_release_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--project", required=True)
    parser.add_argument("--config", required=True)
    parser.add_argument("--lambda", dest="lambda_name", required=True)
    parser.add_argument("--step-fn", required=True)
    parser.add_argument("--states", required=True, help="Path to the state machine JSON")
    parser.add_argument("--zip", required=True, help="Path to the Lambda zip")
    parser.add_argument("--release-id")
    parser.add_argument("--region", default=SETTINGS.region)
    parser.add_argument("--account", default=SETTINGS.account_id)
    parser.add_argument("--bucket")


def cmd_prepare(args: argparse.Namespace) -> int:
    zip_file = Path(args.zip).read_bytes()
    release = client.prepare_release(_release_from_args(args), zip_file, account_id=args.account or None)
    print(json.dumps(release.to_dict(), indent=2))
    return 0


def cmd_deploy(args: argparse.Namespace) -> int:
    zip_file = Path(args.zip).read_bytes()
    release = client.prepare_release(_release_from_args(args), zip_file, account_id=args.account or None)
    client.stage_release(boto3.client("s3"), release, zip_file)

    if args.api_url:
        if not SETTINGS.api_token:
            print("STEP_DEPLOYER_API_TOKEN is required with --api-url", file=sys.stderr)
            return 1
        status, body = client.submit_release_http(args.api_url, SETTINGS.api_token, release)
        print(f"HTTP {status}")
        print(json.dumps(body, indent=2))
        return 0 if status == 200 else 1

    if not args.state_machine_arn:
        print("--state-machine-arn or --api-url is required", file=sys.stderr)
        return 1
    sfn = boto3.client("stepfunctions")
    execution_arn = client.start_deploy(sfn, args.state_machine_arn, release)
    print(execution_arn)
    if args.no_wait:
        return 0
    execution = client.wait_for_execution(sfn, execution_arn, timeout_seconds=args.timeout)
    print(f"{execution['status']}")
    if execution.get("output"):
        print(json.dumps(json.loads(execution["output"]), indent=2))
    return 0 if execution["status"] == "SUCCEEDED" else 1


def cmd_validate_definition(args: argparse.Namespace) -> int:
    try:
        machine.validate(_read_text(args.states))
    except machine.DefinitionSyntaxError as exc:
        print(f"invalid: {exc}", file=sys.stderr)
        return 1
    print("valid")
    return 0


def cmd_deployer_definition(args: argparse.Namespace) -> int:
    print(state_machine.definition_json(args.lambda_arn))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="step-deployer", description="Deploy a Lambda and its Step Function.")
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    deploy = subparsers.add_parser("deploy", help="Stage a release and submit it for deployment")
    _add_release_args(deploy)
    deploy.add_argument("--state-machine-arn", default=SETTINGS.state_machine_arn)
    deploy.add_argument("--api-url", default=SETTINGS.api_url)
    deploy.add_argument("--no-wait", action="store_true")
    deploy.add_argument("--timeout", type=float, default=600)
    deploy.set_defaults(func=cmd_deploy)

    prepare = subparsers.add_parser("prepare", help="Print the prepared release without staging it")
    _add_release_args(prepare)
    prepare.set_defaults(func=cmd_prepare)

    validate = subparsers.add_parser("validate-definition", help="Validate a state machine definition")
    validate.add_argument("--states", required=True)
    validate.set_defaults(func=cmd_validate_definition)

    definition = subparsers.add_parser("deployer-definition", help="Print the deployer state machine")
    definition.add_argument("--lambda-arn", required=True)
    definition.set_defaults(func=cmd_deployer_definition)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
