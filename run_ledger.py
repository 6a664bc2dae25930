#!/usr/bin/env python3
"""
OpenLedger Node Runner: starts an in-memory ledger with:
  - one organization and its admin accounts
  - a fungible and/or a non-fungible asset contract
  - the REST gateway for signed submissions and reads

Usage:
    python run_ledger.py --config openledger.toml --port 8080 \\
                         --admin-seed "correct horse battery staple"

Environment variables (alternative to flags):
    OPENLEDGER_LEDGER_ID, OPENLEDGER_ORG_ID, OPENLEDGER_ADMIN_SEEDS,
    OPENLEDGER_HOST, OPENLEDGER_API_PORT, OPENLEDGER_API_KEY, OPENLEDGER_LOG_LEVEL
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import sys

# ---------------------------------------------------------------------------
# Ensure the project root is in sys.path so imports work before pip install
# ---------------------------------------------------------------------------
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from openledger_core.api import APIServer  # noqa: E402
from openledger_core.config import OpenLedgerConfig, load_config  # noqa: E402
from openledger_core.ledger import InMemoryLedger  # noqa: E402
from openledger_core.logging_config import setup_logging  # noqa: E402
from openledger_core.wallet import Wallet  # noqa: E402

logger = logging.getLogger("openledger_node")


# ===================================================================
#  Ledger node
# ===================================================================

class LedgerNode:
    """An ``InMemoryLedger`` populated from config, plus its gateway."""

    def __init__(self, config: OpenLedgerConfig):
        self.config = config
        self.ledger = InMemoryLedger(ledger_id=config.ledger.ledger_id)
        self.contracts: dict[str, str] = {}
        self.api: APIServer | None = None

    def bootstrap(self) -> None:
        cfg = self.config
        admins = [a for a in cfg.admin.addresses]
        for seed in cfg.admin.seeds:
            admins.append(Wallet.from_seed(seed, cfg.admin.seed_iterations).address)
        if not admins:
            logger.warning(
                "No admins configured; admin-only operations will be rejected. "
                "Set [admin] seeds or addresses in openledger.toml."
            )
        self.ledger.auth.create_org(cfg.ledger.org_id, admins=admins)

        if cfg.ledger.deploy_fungible:
            self.contracts["fungible"] = self.ledger.deploy_fungible(cfg.ledger.org_id)
        if cfg.ledger.deploy_non_fungible:
            self.contracts["non_fungible"] = self.ledger.deploy_non_fungible(cfg.ledger.org_id)
        for kind, address in self.contracts.items():
            logger.info(f"{kind} contract at {address}")

    def register_account(self, address: str) -> None:
        self.ledger.auth.register_account(address)

    async def start(self) -> None:
        self.bootstrap()
        if self.config.api.enabled:
            self.api = APIServer(
                self.ledger,
                host=self.config.api.host,
                port=self.config.api.port,
                api_config=self.config.api,
            )
            await self.api.start()

    async def stop(self) -> None:
        if self.api is not None:
            await self.api.stop()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="OpenLedger node")
    p.add_argument("--config", default=None, help="Path to openledger.toml config file")
    p.add_argument("--host", default=None, help="API listen host")
    p.add_argument("--port", type=int, default=None, help="API listen port")
    p.add_argument("--admin-seed", action="append", default=[],
                   help="Seed phrase of an organization admin (repeatable)")
    p.add_argument("--account", action="append", default=[],
                   help="Pre-register an account address for nonces (repeatable)")
    return p.parse_args(argv)


async def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    # Load config (TOML + env overrides), then CLI flags on top
    cfg = load_config(args.config)
    if args.host:
        cfg.api.host = args.host
    if args.port is not None:
        cfg.api.port = args.port
    if args.admin_seed:
        cfg.admin.seeds = cfg.admin.seeds + args.admin_seed

    setup_logging(cfg.logging.level, cfg.logging.format, cfg.logging.file)

    node = LedgerNode(cfg)
    await node.start()
    for address in args.account:
        node.register_account(address)

    try:
        while True:
            await asyncio.sleep(1)
    except (KeyboardInterrupt, asyncio.CancelledError):
        await node.stop()


def main_sync():
    """Synchronous entry point for console_scripts."""
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())


if __name__ == "__main__":
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())
