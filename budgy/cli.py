"""Account administration for the relay: create users and issue bearer tokens."""

from __future__ import annotations

import argparse
import json
import sys

from sqlalchemy.orm import Session, sessionmaker

from budgy.database import Base, SessionLocal, engine
from budgy.deps import create_user, issue_token
from budgy.models import User


def _find_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        print(f"User not found: {user_id}", file=sys.stderr)
        sys.exit(1)
    return user


def main(argv: list[str] | None = None, session_factory: sessionmaker | None = None) -> None:
    parser = argparse.ArgumentParser(prog="budgy", description="Budgy relay account administration")
    sub = parser.add_subparsers(dest="command")

    create_parser = sub.add_parser("create-user", help="Create a user and print a bearer token")
    create_parser.add_argument("--email", type=str, default=None)
    create_parser.add_argument("--id", dest="user_id", type=str, default=None, help="Use this user id")
    create_parser.add_argument("--premium", action="store_true", help="Unlimited receipt processing")

    token_parser = sub.add_parser("issue-token", help="Replace a user's bearer token")
    token_parser.add_argument("user_id", type=str)

    plan_parser = sub.add_parser("set-plan", help="Switch a user between free and premium")
    plan_parser.add_argument("user_id", type=str)
    plan_parser.add_argument("plan", choices=["free", "premium"])

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        sys.exit(1)

    if session_factory is None:
        Base.metadata.create_all(bind=engine)
        session_factory = SessionLocal

    db = session_factory()
    try:
        if args.command == "create-user":
            user = create_user(db, email=args.email, premium=args.premium, user_id=args.user_id)
            token = issue_token(db, user)
            print(json.dumps({"user_id": user.id, "token": token}))
        elif args.command == "issue-token":
            user = _find_user(db, args.user_id)
            print(json.dumps({"user_id": user.id, "token": issue_token(db, user)}))
        elif args.command == "set-plan":
            user = _find_user(db, args.user_id)
            user.subscription_status = "active" if args.plan == "premium" else None
            db.commit()
            print(json.dumps({"user_id": user.id, "plan": args.plan}))
    finally:
        db.close()


if __name__ == "__main__":
    main()
