from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import uuid

import uvicorn

from submission_commit.api.http_app import build_app
from submission_commit.logging_setup import configure_logging
from submission_commit.roles import SUPPORTED_ROLES, RuntimeRole, validate_role
from submission_commit.services.bootstrap import RuntimeContainer, build_runtime_container
from submission_commit.workers.runner import drain_until_idle, worker_runtime_settings_from_env


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Submission commit service")
    parser.add_argument("--role", required=True, help=f"Runtime role ({', '.join(SUPPORTED_ROLES)})")
    parser.add_argument("--host", default=os.getenv("APP_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument(
        "--dry-run-startup",
        action="store_true",
        help="Validate role and wiring, then exit",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable code reload (dev mode)",
    )
    parser.add_argument(
        "--drain",
        action="store_true",
        help="Worker roles only: process the reconciliation ledger until idle, then exit",
    )
    return parser.parse_args(argv)


def _build_http_app(role: RuntimeRole, run_id: str, container: RuntimeContainer):
    return build_app(
        role=role.name,
        run_id=run_id,
        worker_loop=container.worker_loop,
        api_deps=container.api_deps,
        on_startup=container.on_startup,
        on_shutdown=container.on_shutdown,
    )


def create_runtime_app() -> object:
    """uvicorn factory used by `--reload`; the role comes from APP_ROLE."""
    role = validate_role(os.getenv("APP_ROLE", "api"))
    configure_logging()
    return _build_http_app(role, str(uuid.uuid4()), build_runtime_container(role))


async def _drain(role: RuntimeRole, run_id: str, container: RuntimeContainer) -> int:
    worker_loop = container.worker_loop
    if worker_loop is None:
        raise RuntimeError(f"role '{role.name}' has no worker loop to drain")
    if container.on_startup is not None:
        await container.on_startup()
    try:
        state = await drain_until_idle(
            worker_loop=worker_loop,
            role=role.name,
            run_id=run_id,
            settings=worker_runtime_settings_from_env(),
            logger=logging.getLogger("runtime"),
        )
    finally:
        if container.on_shutdown is not None:
            await container.on_shutdown()
    return 1 if state.errors_total else 0


def run(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        role = validate_role(args.role)
    except ValueError as exc:
        sys.stderr.write(f"ERROR: {exc}\n")
        sys.stderr.write(f"Try one of: {', '.join(SUPPORTED_ROLES)}\n")
        return 2

    if args.drain and not role.runs_worker:
        sys.stderr.write(f"ERROR: --drain is only available for worker roles, not '{role.name}'\n")
        return 2

    configure_logging()
    run_id = str(uuid.uuid4())
    logger = logging.getLogger("runtime")
    context = {"role": role.name, "service": role.name, "run_id": run_id}
    logger.info("runtime initialized", extra=context)

    if args.dry_run_startup:
        build_runtime_container(role)
        logger.info("dry-run startup complete", extra=context)
        return 0

    container = build_runtime_container(role)
    if args.drain:
        return asyncio.run(_drain(role, run_id, container))

    port = args.port if args.port is not None else role.default_port
    if args.reload:
        os.environ["APP_ROLE"] = role.name
        uvicorn.run(
            "submission_commit.main:create_runtime_app",
            host=args.host,
            port=port,
            log_level="warning",
            reload=True,
            factory=True,
        )
    else:
        uvicorn.run(_build_http_app(role, run_id, container), host=args.host, port=port, log_level="warning")
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
