"""Print an access token for an existing staff account.

Usage:
    python -m backend.issue_token staff@example.com [--minutes 120]
"""
import argparse
import sys

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from backend.auth.jwt_handler import create_access_token
from backend.database import SessionLocal
from backend.models.user import User


def issue_token(email: str, expires_minutes: int | None = None) -> str:
    db = SessionLocal()
    try:
        user = db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()
    finally:
        db.close()

    if user is None:
        raise LookupError(f"No user with email {email!r}.")
    return create_access_token(user.email, user.role, expires_minutes=expires_minutes)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Issue a bearer token for a staff account.")
    parser.add_argument("email")
    parser.add_argument("--minutes", type=int, default=None, help="token lifetime in minutes")
    args = parser.parse_args(argv)

    try:
        token = issue_token(args.email, args.minutes)
    except (LookupError, SQLAlchemyError) as exc:
        print(f"Could not issue token: {exc}", file=sys.stderr)
        sys.exit(1)
    print(token)


if __name__ == "__main__":
    main()
