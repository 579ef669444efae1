from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from .banks import KNOWN_BANKS, build_account_lister, build_authenticator, build_scraper, get_bank
from .config import AppConfig, load_config
from .export import default_export_path, export_records
from .logging_config import configure_logging


logger = logging.getLogger("banker_sync")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="banker_sync")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    def _session_flags(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("bank", help=f"Bank slug ({', '.join(sorted(KNOWN_BANKS))})")
        sp.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
        sp.add_argument("--headful", action="store_true", help="Run browser headful (debug)")
        sp.add_argument(
            "--profile",
            default="",
            help="Performance profile for both login and scraping: maximum, aggressive, balanced, conservative, none.",
        )
        sp.add_argument("--debug-pauses", action="store_true", help="Pause in the Playwright inspector after each step.")

    login = sub.add_parser("login", help="Log into a bank portal and report the outcome (then log out)")
    _session_flags(login)

    scrape = sub.add_parser("scrape", help="Log in and extract recent transactions")
    _session_flags(scrape)
    scrape.add_argument(
        "--export",
        nargs="?",
        const="",
        default=None,
        help="Write transactions as JSON. Optional path (default: <export.dir>/<bank>-transactions-<stamp>.json).",
    )

    accounts = sub.add_parser("accounts", help="Log in and list the accounts on the landing page")
    _session_flags(accounts)

    sub.add_parser("list-banks", help="List supported bank slugs")
    return p


def _session_config(cfg: AppConfig, args: argparse.Namespace):
    overrides: dict = {}
    if args.headful:
        overrides["headless"] = False
    if args.debug_pauses:
        overrides["debug_pauses"] = True
    return cfg.session.with_overrides(**overrides) if overrides else cfg.session


def _bank_config(cfg: AppConfig, args: argparse.Namespace):
    bank_cfg = cfg.bank(args.bank)
    if args.profile:
        bank_cfg = bank_cfg.model_copy(update={"auth_profile": args.profile, "scraping_profile": args.profile})
    return bank_cfg


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    if args.cmd == "list-banks":
        for slug in sorted(KNOWN_BANKS):
            print(f"{slug}\t{KNOWN_BANKS[slug].display_name}")
        return 0

    try:
        cfg = load_config(args.config)
    except (ValidationError, yaml.YAMLError) as e:
        print(f"❌ Invalid config {args.config}: {e}")
        return 2
    configure_logging(level=cfg.logging.level, file_path=cfg.logging.file_path)

    try:
        info = get_bank(args.bank)
        bank_cfg = _bank_config(cfg, args)
    except KeyError as e:
        print(f"❌ {e.args[0] if e.args else e}")
        return 2
    if args.cmd == "accounts" and info.accounts is None:
        print(f"❌ {info.display_name}: account listing is not supported")
        return 2
    session = _session_config(cfg, args)

    try:
        auth = build_authenticator(info.slug, bank_cfg, session)
    except ValueError as e:
        print(f"❌ {e}")
        return 2
    try:
        outcome = auth.login()
        if not outcome.success:
            print(f"❌ {info.display_name}: {outcome.message}")
            return 1
        print(f"✅ {info.display_name}: {outcome.message}")

        if args.cmd == "login":
            return 0

        driver = auth.driver
        if driver is None:
            print(f"❌ {info.display_name}: no authenticated page to scrape")
            return 1

        if args.cmd == "accounts":
            try:
                found = build_account_lister(info.slug, driver).list_accounts()
            except Exception as e:
                print(f"❌ Could not list accounts: {e}")
                return 1
            for acct in found:
                print(f"{acct.number}\t{acct.account_type}\t{acct.balance:.2f} {acct.currency}\t{acct.name}")
            print(f"✅ {len(found)} account(s)")
            return 0

        try:
            scraper = build_scraper(info.slug, driver, bank_cfg, session)
        except ValueError as e:
            print(f"❌ {e}")
            return 2
        result = scraper.scrape()
        for err in result.errors:
            print(f"⚠️  {err.item}: {err.message}")
        if not result.success:
            print(f"❌ {result.message}")
            return 1
        print(f"✅ {result.message}")

        if args.export is not None:
            path = args.export or default_export_path(cfg.export.dir, info.slug)
            out = export_records(result.records, info.slug, path)
            print(f"✅ Exported {result.count} transaction(s): {out}")
        return 0
    except KeyboardInterrupt:
        print("Interrupted.")
        return 130
    finally:
        auth.close()
