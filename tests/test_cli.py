import json

import pytest

from budgy.cli import main
from budgy.deps import hash_token
from budgy.models import User


def run(capsys, session_factory, *argv) -> dict:
    main(list(argv), session_factory=session_factory)
    return json.loads(capsys.readouterr().out)


def load_user(session_factory, user_id: str) -> User:
    db = session_factory()
    try:
        return db.query(User).filter(User.id == user_id).first()
    finally:
        db.close()


def test_create_user_prints_working_token(capsys, session_factory):
    out = run(capsys, session_factory, "create-user", "--email", "a@example.com")

    user = load_user(session_factory, out["user_id"])
    assert user.email == "a@example.com"
    assert user.subscription_status is None
    assert user.token_hash == hash_token(out["token"])


def test_create_premium_user_with_id(capsys, session_factory):
    out = run(capsys, session_factory, "create-user", "--id", "user-42", "--premium")

    assert out["user_id"] == "user-42"
    assert load_user(session_factory, "user-42").subscription_status == "active"


def test_issue_token_replaces_the_old_one(capsys, session_factory):
    first = run(capsys, session_factory, "create-user")
    second = run(capsys, session_factory, "issue-token", first["user_id"])

    assert second["token"] != first["token"]
    assert load_user(session_factory, first["user_id"]).token_hash == hash_token(second["token"])


def test_set_plan(capsys, session_factory):
    user_id = run(capsys, session_factory, "create-user")["user_id"]

    run(capsys, session_factory, "set-plan", user_id, "premium")
    assert load_user(session_factory, user_id).subscription_status == "active"

    run(capsys, session_factory, "set-plan", user_id, "free")
    assert load_user(session_factory, user_id).subscription_status is None


def test_unknown_user_exits(capsys, session_factory):
    with pytest.raises(SystemExit) as exc_info:
        main(["issue-token", "missing"], session_factory=session_factory)

    assert exc_info.value.code == 1
    assert "User not found" in capsys.readouterr().err


def test_no_command_prints_help(capsys, session_factory):
    with pytest.raises(SystemExit):
        main([], session_factory=session_factory)
