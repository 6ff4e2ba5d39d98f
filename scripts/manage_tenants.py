"""Inspect or change stored tenant credentials without going through HTTP.

Useful for seeding a tenant on a fresh database or revoking one quickly.
"""

import argparse

from relaypay.common.config import settings
from relaypay.common.db import Base, SessionLocal, engine
from relaypay.services.relay.main import build_service


def main() -> None:
    """Parse CLI args and run one credential store operation."""

    parser = argparse.ArgumentParser(description="Manage relay tenant credentials.")
    sub = parser.add_subparsers(dest="command", required=True)
    add = sub.add_parser("add", help="Create or replace a tenant")
    add.add_argument("--id", dest="tenant_id", required=True)
    add.add_argument("--secret-key", required=True)
    add.add_argument("--public-key", required=True)
    remove = sub.add_parser("remove", help="Delete one tenant")
    remove.add_argument("--id", dest="tenant_id", required=True)
    sub.add_parser("list", help="Print tenant ids and public keys")
    sub.add_parser("flush", help="Delete all tenants, re-seeding the default one")
    args = parser.parse_args()

    Base.metadata.create_all(engine)
    store = build_service(SessionLocal, settings).store

    if args.command == "list":
        for record in store.list_all():
            print(f"{record.tenant_id}\t{record.public_key}")
        return
    if args.command == "add":
        result = store.upsert(args.tenant_id, args.secret_key, args.public_key)
    elif args.command == "remove":
        result = store.remove(args.tenant_id)
    else:
        result = store.remove_all()
    if result.error is not None:
        raise SystemExit(f"{args.command} failed: {result.error.reason}")
    print(f"{args.command} ok")


if __name__ == "__main__":
    main()
