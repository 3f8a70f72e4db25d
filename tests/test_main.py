from __future__ import annotations

import pytest

import main
from conftest import FakeResponse, auth_payload


def test_status_when_signed_out(manager, capsys):
    assert main.main(["status"], manager=manager) == 0
    out = capsys.readouterr().out
    assert "Not signed in." in out
    assert '"logged_in": false' in out


def test_callback_command(manager, capsys):
    code = main.main(["callback", "roominate://login-callback#access_token=oauth-tok&expires_in=60"], manager=manager)

    assert code == 0
    assert manager.secure_store.is_valid()
    assert "Signed in successfully." in capsys.readouterr().out


def test_callback_command_without_tokens(manager, capsys):
    assert main.main(["callback", "roominate://login-callback"], manager=manager) == 1
    assert "Login callback missing tokens." in capsys.readouterr().out


def test_login_command(manager, fake_session, monkeypatch, capsys):
    fake_session.add("POST", "/auth/v1/token", FakeResponse(200, auth_payload(role="owner")))
    fake_session.add("GET", "/rest/v1/profiles", FakeResponse(200, []))
    monkeypatch.setattr(main.getpass, "getpass", lambda prompt="": "secret1")

    assert main.main(["login", "--email", "ana@example.com"], manager=manager) == 0
    assert "Dashboard: owner" in capsys.readouterr().out
    assert manager.is_logged_in()


def test_logout_command(manager, fake_session, token_store):
    token_store.save("user-token", None, "bearer", 600)
    fake_session.add("POST", "/auth/v1/logout", FakeResponse(204))

    assert main.main(["logout"], manager=manager) == 0
    assert not manager.is_logged_in()


def test_unknown_command_exits():
    with pytest.raises(SystemExit):
        main.build_parser().parse_args(["dance"])
