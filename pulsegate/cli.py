"""Command-line interface for pulsegate."""

from __future__ import annotations

import argparse
import base64
import binascii
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import PulseGateApp
from .client import sign_request
from .config import ConfigurationError, GateConfig, load_config
from .provisioning import (
    ProvisioningError,
    provision_device,
    revoke_device,
    set_authorization,
)
from .storage import CredentialStoreError, JsonCredentialStore

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pulsegate", description="Authenticated remote administration endpoint"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("start", help="Start the admin endpoint")
    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    provision_parser = subparsers.add_parser(
        "provision", help="Create a device and print its shared key"
    )
    provision_parser.add_argument("client_id", type=int)
    provision_parser.add_argument("--label", default="")
    provision_parser.add_argument(
        "--key-length", type=int, default=None, help="Shared key length in bytes"
    )

    for name, help_text in (
        ("authorize", "Allow a device to issue commands"),
        ("deauthorize", "Stop a device from issuing commands"),
        ("revoke", "Delete a device and its key"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("client_id", type=int)

    subparsers.add_parser("list-devices", help="List provisioned devices")

    sign_parser = subparsers.add_parser(
        "sign", help="Print signed form fields for a command"
    )
    sign_parser.add_argument("client_id", type=int)
    sign_parser.add_argument("admin_command", metavar="COMMAND")
    sign_parser.add_argument("--key-b64", required=True, help="Base64 shared key")
    sign_parser.add_argument("--counter", type=int, default=None)
    sign_parser.add_argument("--timestamp", type=int, default=None)
    sign_parser.add_argument("--nonce", default=None)

    return parser


def _print_config(config: GateConfig) -> None:
    print(f"Configuration loaded from {config.path!s}\n")
    for section in config.raw.sections():
        print(f"[{section}]")
        for key, value in config.raw[section].items():
            print(f"{key} = {value}")
        print()


def _run_device_command(args: argparse.Namespace, config: GateConfig) -> int:
    repository = JsonCredentialStore(config.storage.credentials_path)

    if args.command == "provision":
        credential = provision_device(
            repository,
            args.client_id,
            label=args.label,
            key_length=args.key_length or config.auth.key_length,
        )
        print(f"client_id = {credential.client_id}")
        print(f"shared_key_b64 = {base64.b64encode(credential.shared_key).decode('ascii')}")
        return 0

    if args.command in {"authorize", "deauthorize"}:
        set_authorization(repository, args.client_id, args.command == "authorize")
        return 0

    if args.command == "revoke":
        revoke_device(repository, args.client_id)
        return 0

    for credential in repository.list():
        state = "authorised" if credential.authorized else "blocked"
        key_state = "key" if credential.has_key else "no key"
        print(
            f"{credential.client_id}\t{state}\t{key_state}\t"
            f"counter={credential.last_counter}\t{credential.label}"
        )
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 1

    if args.command == "start":
        PulseGateApp.start(config)
        return 0

    if args.command == "show-config":
        _print_config(config)
        return 0

    if args.command == "sign":
        try:
            key = base64.b64decode(args.key_b64, validate=True)
            fields = sign_request(
                args.client_id,
                args.admin_command,
                key,
                counter=args.counter,
                timestamp=args.timestamp,
                nonce=args.nonce,
                policy=config.auth.policy,
            )
        except (binascii.Error, ValueError) as exc:
            LOGGER.error("Unable to sign request: %s", exc)
            return 1
        for key_name, value in fields.items():
            print(f"{key_name}={value}")
        return 0

    if args.command in {"provision", "authorize", "deauthorize", "revoke", "list-devices"}:
        try:
            return _run_device_command(args, config)
        except (ProvisioningError, CredentialStoreError) as exc:
            LOGGER.error("%s", exc)
            return 1

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
