import argparse
import dataclasses
import json
import logging
import os
import sys

import httpx

from devpush import VERSION
from devpush.client.http import DevpushClient
from devpush.config import Settings
from devpush.errors import DevpushError


logger = logging.getLogger("devpush.cli")


def _add_target_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--target", required=True, help="Base URL of the devpush server")
    parser.add_argument(
        "--token",
        default=os.getenv("DEVPUSH_AUTH_TOKEN"),
        help="Admin token (default: $DEVPUSH_AUTH_TOKEN)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="devpush", description="Push an app to a devpush server and run it."
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    deploy = sub.add_parser("deploy", help="Upload changed files, rebuild and restart")
    _add_target_args(deploy)
    deploy.add_argument("--workers", type=int, default=None, help="Parallel uploads")
    deploy.add_argument("config", help="Path to the app's app.yaml")

    status = sub.add_parser("status", help="Show the current build")
    _add_target_args(status)

    serve = sub.add_parser("serve", help="Run the devpush server")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    return parser


def cmd_deploy(args: argparse.Namespace) -> int:
    workers = args.workers or Settings.from_env().upload_workers
    with DevpushClient(args.target, token=args.token) as client:
        body = client.deploy(args.config, workers=workers)
    print(f"Build {body.get('build_id')} is {body.get('state')}: {args.target}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    with DevpushClient(args.target, token=args.token) as client:
        body = client.status()
    print(json.dumps(body, indent=2))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from server import create_app

    settings = Settings.from_env()
    if args.host:
        settings = dataclasses.replace(settings, host=args.host)
    if args.port:
        settings = dataclasses.replace(settings, port=args.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
    return 0


COMMANDS = {"deploy": cmd_deploy, "status": cmd_status, "serve": cmd_serve}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return COMMANDS[args.command](args)
    except (DevpushError, OSError, httpx.HTTPError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
