"""
SecureLink - Command Line Entry Point

Runs one ECDH handshake against a backend and prints the result.
"""

import argparse
import asyncio
import dataclasses
import json
import logging
import os
import sys
from typing import List, Optional

from .config import ENV_PREFIX, ClientConfig
from .client import SecureClient
from .errors import ConfigurationError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="securelink-handshake",
        description="Establish a secure channel with the backend and report the result.",
    )
    parser.add_argument("--base-url", help="backend URL (overrides SECURELINK_* settings)")
    parser.add_argument("--client-id", help="client identifier")
    parser.add_argument("--insecure", action="store_true",
                        help="skip TLS certificate verification")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


async def _handshake(client: SecureClient) -> dict:
    try:
        return await client.perform_key_exchange()
    finally:
        client.close()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for securelink-handshake."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    env = dict(os.environ)
    if args.base_url:
        env[ENV_PREFIX + "BASE_URL"] = args.base_url
        env[ENV_PREFIX + "SECURE_BASE_URL"] = args.base_url

    try:
        config = ClientConfig.from_env(env)
        overrides = {}
        if args.client_id is not None:
            overrides['client_id'] = args.client_id
        if args.insecure:
            overrides['verify_tls'] = False
        # replace() re-runs validation on the overridden fields
        config = dataclasses.replace(config, **overrides)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    result = asyncio.run(_handshake(SecureClient(config)))
    print(json.dumps(result, indent=2))
    return 0 if result['success'] else 1


if __name__ == "__main__":
    sys.exit(main())
