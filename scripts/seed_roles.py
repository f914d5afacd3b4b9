"""
Seed Roles & Permissions — the six default roles (cargos) + 12 permissions.

Usage:
    python scripts/seed_roles.py                       # Uses development DB
    python scripts/seed_roles.py --env production      # Uses production DB
    python scripts/seed_roles.py --admin-email gm@example.com --admin-password secret

This script is idempotent — safe to run multiple times.
Also creates a GM user when --admin-email is given and no such user exists.
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from app.models.auth import User
from app.services.role_service import seed_default_roles
from app.services.user_service import UserServiceError, create_user


def main():
    parser = argparse.ArgumentParser(description="Seed default roles and permissions")
    parser.add_argument("--env", default=os.getenv("APP_ENV", "development"),
                        choices=["development", "testing", "production"])
    parser.add_argument("--admin-email", help="Create a GM user with this email")
    parser.add_argument("--admin-name", default="General Manager")
    parser.add_argument("--admin-password", help="Password for the GM user")
    args = parser.parse_args()

    app = create_app(args.env)
    with app.app_context():
        result = seed_default_roles()
        print(f"Roles created:        {result['roles_created']}")
        print(f"Permissions created:  {result['permissions_created']}")
        print(f"Role assignments:     {result['assignments']}")

        if not args.admin_email:
            return 0
        if User.query.filter_by(email=args.admin_email.strip().lower()).first():
            print(f"User {args.admin_email} already exists — skipped")
            return 0
        if not args.admin_password:
            print("--admin-password is required with --admin-email", file=sys.stderr)
            return 1
        try:
            user = create_user(args.admin_email, args.admin_name, "GM", password=args.admin_password)
        except UserServiceError as e:
            print(f"Could not create admin: {e.message}", file=sys.stderr)
            return 1
        print(f"Created GM user #{user.id} <{user.email}>")
    return 0


if __name__ == "__main__":
    sys.exit(main())
