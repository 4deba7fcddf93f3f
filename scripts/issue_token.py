"""
Development Token Issuer

Prints a bearer token signed with JWT_SECRET_KEY, standing in for the
identity provider during local development.
Run from project root:
    python scripts/issue_token.py customer-1
    python scripts/issue_token.py admin-1 --role admin --name "Ada Admin"
"""

import argparse
import os
import sys
from datetime import timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from food_ordering.core.config import get_settings
from food_ordering.core.security import Role, create_access_token


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Issue a development bearer token")
    parser.add_argument("user_id", help="Value of the token's sub claim")
    parser.add_argument("--role", choices=[r.value for r in Role], default=Role.CUSTOMER.value)
    parser.add_argument("--name", default=None, help="Display name")
    parser.add_argument("--minutes", type=int, default=None, help="Token lifetime")
    args = parser.parse_args()

    if not get_settings().is_development:
        print("Refusing to mint tokens outside development mode", file=sys.stderr)
        sys.exit(1)

    print(create_access_token(
        args.user_id,
        role=Role(args.role),
        name=args.name,
        expires_in=timedelta(minutes=args.minutes) if args.minutes else None,
    ))
