from __future__ import annotations

import argparse
import asyncio
import socket
from datetime import datetime
from pathlib import Path
from typing import Sequence

from device_dna.auth import auth_manager
from device_dna.bootstrap import build_services
from device_dna.config import Settings, SettingsManager
from device_dna.graph.errors import GraphAPIError
from device_dna.services import CollectionProgressEvent
from device_dna.utils import LoggingOptions, configure_logging, get_logger
from device_dna.utils.errors import describe_exception


EXIT_OK = 0
EXIT_FAILED = 1
EXIT_NOT_CONFIGURED = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="device-dna",
        description="Collect the Intune view of a device (groups, targeting, "
        "deployment state) into a JSON document.",
    )
    parser.add_argument(
        "device_name",
        nargs="?",
        help="Device display name (defaults to this computer's host name)",
    )
    parser.add_argument("--hardware-id", help="Entra ID device id, if known")
    parser.add_argument("-o", "--output", type=Path, help="Path of the JSON file to write")
    parser.add_argument("--env-file", type=Path, help="Settings file to load")
    parser.add_argument("--tenant-id")
    parser.add_argument("--client-id")
    parser.add_argument(
        "--no-user-groups",
        action="store_true",
        help="Skip the primary user's group memberships",
    )
    parser.add_argument(
        "--include-settings",
        action="store_true",
        help="Fetch configured settings for targeted settings catalog policies",
    )
    parser.add_argument("--sign-out", action="store_true", help="Clear cached tokens and exit")
    parser.add_argument("--debug", action="store_true", help="Verbose console logging")
    return parser


def default_output_path(device_name: str, now: datetime | None = None) -> Path:
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    safe_name = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in device_name)
    return Path.cwd() / f"DeviceDNA_{safe_name}_{stamp}.json"


def load_settings(args: argparse.Namespace) -> Settings:
    settings = SettingsManager(args.env_file).load()
    if args.tenant_id:
        settings.tenant_id = args.tenant_id
    if args.client_id:
        settings.client_id = args.client_id
    if args.no_user_groups:
        settings.include_user_groups = False
    if args.include_settings:
        settings.include_profile_settings = True
    return settings


async def run(args: argparse.Namespace, settings: Settings) -> int:
    logger = get_logger(__name__)
    auth_manager.configure(settings)
    if args.sign_out:
        await auth_manager.sign_out()
        return EXIT_OK

    await auth_manager.ensure_signed_in()
    device_name = (args.device_name or socket.gethostname()).strip()
    services = build_services(settings, auth_manager.token_provider())

    def report_progress(event: CollectionProgressEvent) -> None:
        logger.info(
            "Collection progress",
            phase=event.phase,
            step=f"{event.completed}/{event.total}",
        )

    services.collector.progress.subscribe(report_progress)
    try:
        collection = await services.collector.collect(device_name, args.hardware_id)
    finally:
        await services.close()

    output = args.output or default_output_path(device_name)
    services.export.write_json(output, collection)
    logger.info("Report written", path=str(output), issues=len(collection.issues))
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(LoggingOptions(debug=args.debug))
    logger = get_logger(__name__)

    settings = load_settings(args)
    if not settings.is_configured:
        logger.error(
            "Tenant and client ids are not configured",
            hint="set DEVICE_DNA_TENANT_ID and DEVICE_DNA_CLIENT_ID or pass --tenant-id/--client-id",
        )
        return EXIT_NOT_CONFIGURED

    try:
        return asyncio.run(run(args, settings))
    except GraphAPIError as exc:
        descriptor = describe_exception(exc)
        logger.error(
            "Collection aborted",
            error=descriptor.summary(),
            category=exc.category.value,
        )
        if exc.required_permissions:
            logger.error(
                "Grant the app registration read access",
                permissions=", ".join(exc.required_permissions),
            )
        return EXIT_FAILED
    except KeyboardInterrupt:
        logger.info("Collection interrupted by user")
        return EXIT_FAILED


__all__ = ["build_parser", "default_output_path", "load_settings", "main", "run"]
