# src/brokerdesk/scripts/issue_token.py
"""Mint a bearer token for an existing account, for local development."""
from __future__ import annotations

import argparse
import sys

from brokerdesk.core.security import create_access_token
from brokerdesk.db.session import SessionLocal
from brokerdesk.repositories.user_repo import UserDirectory


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("user_id", help="Identifier of the user_account row")
    args = parser.parse_args(argv)

    with SessionLocal() as db:
        user = UserDirectory(db).get(args.user_id)
    if user is None or not user.is_active:
        print(f"No active user with id {args.user_id}", file=sys.stderr)
        return 1

    print(create_access_token(user.id))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
