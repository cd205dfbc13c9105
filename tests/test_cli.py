from __future__ import annotations

import json
import sys
from typing import List


def _run_cli_with_args(args_list: List[str]) -> int:
    """Run cli.py main() with provided argv in-process (no subprocess); returns the exit code."""
    argv_backup = sys.argv[:]
    try:
        sys.argv = ["cli.py"] + args_list
        # Import fresh to ensure clean parser each time
        if "cli" in sys.modules:
            del sys.modules["cli"]
        import cli  # type: ignore
        try:
            cli.main()  # type: ignore[attr-defined]
        except SystemExit as e:
            return int(getattr(e, "code", 0) or 0)
        return 0
    finally:
        sys.argv = argv_backup


def _json_out(capsys):
    return json.loads(capsys.readouterr().out)


def test_cli_contact_lifecycle_and_confirmation(tmp_path, capsys):
    db = str(tmp_path / "cli.db")
    assert _run_cli_with_args(["--db", db, "bootstrap"]) == 0
    assert "Schema ready" in capsys.readouterr().out

    _run_cli_with_args(["--db", db, "register", "--email", "owner@example.com", "--name", "Owner"])
    owner = _json_out(capsys)["person_id"]

    code = _run_cli_with_args([
        "--db", db, "add-contact", "--owner", owner,
        "--email", "exec@example.com", "--name", "Exec", "--type", "trusted", "--role", "executor",
    ])
    assert code == 1
    err = _json_out(capsys)
    assert err["error"] == "validation_error"

    _run_cli_with_args([
        "--db", db, "add-contact", "--owner", owner,
        "--email", "exec@example.com", "--name", "Exec", "--phone", "555",
        "--type", "trusted", "--role", "executor", "--primary",
    ])
    contact = _json_out(capsys)
    assert contact["invitation_status"] == "pending"
    assert contact["is_primary"] is True

    _run_cli_with_args(["--db", db, "register", "--email", "exec@example.com"])
    executor = _json_out(capsys)["person_id"]

    _run_cli_with_args(["--db", db, "reconcile"])
    summary = _json_out(capsys)
    assert summary["fixed"] == 1 and summary["errors"] == 0

    _run_cli_with_args(["--db", db, "trustors", "--email", "EXEC@example.com"])
    entries = _json_out(capsys)
    assert entries == [
        {"owner_person_id": owner, "role": "executor", "is_primary": True, "invitation_status": "registered", "source": "normalized"}
    ]

    _run_cli_with_args(["--db", db, "add-content", "--owner", owner, "--title", "goodbye video"])
    content_id = _json_out(capsys)["content_id"]

    code = _run_cli_with_args([
        "--db", db, "confirm-deceased", "--requester", executor,
        "--requester-email", "exec@example.com", "--target", owner, "--release",
    ])
    assert code == 0
    confirmed = _json_out(capsys)
    assert confirmed["success"] is True
    assert confirmed["confirmed_by"] == executor
    assert confirmed["release"]["created"] == 1

    code = _run_cli_with_args([
        "--db", db, "confirm-deceased", "--requester", executor,
        "--requester-email", "exec@example.com", "--target", owner,
    ])
    assert code == 2
    again = _json_out(capsys)
    assert again["error"] == "already_confirmed"
    assert again["details"]["id"] == confirmed["confirmation_id"]

    _run_cli_with_args(["--db", db, "shared-with", "--email", "exec@example.com"])
    shares = _json_out(capsys)
    assert [s["content_id"] for s in shares] == [content_id]


def test_cli_not_found_and_reindex(tmp_path, capsys):
    db = str(tmp_path / "cli.db")
    _run_cli_with_args(["--db", db, "register", "--email", "owner@example.com"])
    owner = _json_out(capsys)["person_id"]

    code = _run_cli_with_args(["--db", db, "demote", "--owner", owner, "--contact", "missing"])
    assert code == 1
    assert _json_out(capsys)["error"] == "not_found"

    _run_cli_with_args(["--db", db, "add-contact", "--owner", owner, "--email", "x@example.com", "--name", "X", "--phone", "1"])
    contact_id = _json_out(capsys)["id"]
    _run_cli_with_args(["--db", db, "promote", "--owner", owner, "--contact", contact_id, "--role", "guardian"])
    assert _json_out(capsys)["role"] == "guardian"

    _run_cli_with_args(["--db", db, "check-contact", "--owner", owner, "--email", "x@example.com"])
    check = _json_out(capsys)
    assert check["contact_exists"] is True and check["can_add_contact"] is False

    _run_cli_with_args(["--db", db, "reindex"])
    assert _json_out(capsys) == {"index_entries": 1}

    _run_cli_with_args(["--db", db, "list-contacts", "--owner", owner])
    listed = _json_out(capsys)
    assert [c["id"] for c in listed] == [contact_id]

    _run_cli_with_args(["--db", db, "delete-contact", "--owner", owner, "--contact", contact_id])
    assert _json_out(capsys) == {"deleted": contact_id}
    _run_cli_with_args(["--db", db, "list-contacts", "--owner", owner])
    assert _json_out(capsys) == []


def test_cli_accept_invitation(tmp_path, capsys):
    db = str(tmp_path / "accept.db")
    _run_cli_with_args(["--db", db, "register", "--email", "owner@example.com"])
    owner = _json_out(capsys)["person_id"]
    _run_cli_with_args(["--db", db, "register", "--email", "kid@example.com"])
    kid = _json_out(capsys)["person_id"]
    _run_cli_with_args([
        "--db", db, "add-contact", "--owner", owner, "--email", "kid@example.com",
        "--name", "Kid", "--phone", "555", "--type", "trusted", "--role", "guardian",
    ])
    contact = _json_out(capsys)
    assert contact["invitation_status"] == "registered"
    assert contact["confirmed_at"]

    code = _run_cli_with_args(["--db", db, "accept-invitation", "--person", owner, "--contact", contact["id"]])
    assert code == 1
    assert _json_out(capsys)["error"] == "not_found"

    assert _run_cli_with_args(["--db", db, "accept-invitation", "--person", kid, "--contact", contact["id"]]) == 0
    accepted = _json_out(capsys)
    assert accepted["invitation_status"] == "confirmed"
    assert accepted["confirmed_at"] == contact["confirmed_at"]
