from __future__ import annotations

import json
import pathlib
from unittest import mock

import pytest

from photomemory import PhotoMemoryStateStore, cli
from photomemory.config import PhotoMemoryConfig
from photomemory.pollers.picker import PickerSessionController
from photomemory.web.auth import AccessTokenGrant

CONFIG = PhotoMemoryConfig(
    google_client_id="client",
    google_client_secret="client-secret",
    session_secret="session-secret",
)


@pytest.fixture()
def home(monkeypatch, tmp_path):
    monkeypatch.setattr(pathlib.Path, "home", lambda: tmp_path)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "load_config", mock.Mock(return_value=CONFIG))
    return tmp_path


def _picker_client(*sessions):
    client = mock.Mock()
    client.create_session.return_value = {"id": "s1", "pickerUri": "https://picker/s1"}
    client.get_session.side_effect = list(sessions)
    client.list_media_items.return_value = {
        "mediaItems": [
            {"id": "a", "mediaFile": {"baseUrl": "https://lh3/a", "filename": "a.jpg"}},
        ]
    }
    return client


def _use_fakes(monkeypatch, client):
    orchestrator = mock.Mock()
    orchestrator.issue_access_token.return_value = AccessTokenGrant("access", 3600)
    monkeypatch.setattr(cli, "create_orchestrator", lambda *args, **kwargs: orchestrator)

    async def no_sleep(_):
        return None

    ticks = iter(range(1000))
    monkeypatch.setattr(
        cli,
        "create_picker_controller",
        lambda config: PickerSessionController(
            lambda token: client, sleep=no_sleep, clock=lambda: next(ticks)
        ),
    )
    return orchestrator


def test_cli_status_outputs_json(home, capsys):
    exit_code = cli.main(["status"])
    assert exit_code == 0
    data = json.loads(capsys.readouterr().out)
    assert data["state_directory"] == str(home / ".photomemory")
    assert data["config"]["google_client_secret"] is True
    assert data["token_store"] == "file"
    assert data["missing"]["start"] == ["google_redirect_uri", "frontend_url"]


def test_cli_token_prints_fresh_token(home, monkeypatch, capsys):
    orchestrator = _use_fakes(monkeypatch, mock.Mock())
    assert cli.main(["token", "user-1"]) == 0
    orchestrator.issue_access_token.assert_called_once_with("user-1")
    payload = json.loads(capsys.readouterr().out)
    assert payload == {"google_user_id": "user-1", "access_token": "access", "expires_in": 3600}


def test_cli_pick_saves_selection(home, monkeypatch, capsys):
    client = _picker_client({"mediaItemsSet": False}, {"mediaItemsSet": True})
    _use_fakes(monkeypatch, client)

    exit_code = cli.main(["pick", "user-1", "--no-browser"])

    assert exit_code == 0
    captured = capsys.readouterr()
    payload = json.loads(captured.out)
    assert payload["session_id"] == "s1"
    assert payload["count"] == 1
    assert "https://picker/s1/autoclose" in captured.err
    client.delete_session.assert_called_once_with("s1")

    state = PhotoMemoryStateStore()
    assert [item["id"] for item in state.load_media_items()] == ["a"]
    assert cli.main(["logs", "tail", "--category", "picker"]) == 0
    entries = json.loads(capsys.readouterr().out)
    assert entries[-1]["message"] == "Picker selection saved"


def test_cli_pick_timeout_reports_error(home, monkeypatch, capsys):
    client = _picker_client(*([{"mediaItemsSet": False}] * 10))
    _use_fakes(monkeypatch, client)

    exit_code = cli.main(["pick", "user-1", "--no-browser", "--timeout", "3"])

    assert exit_code == 1
    err = capsys.readouterr().err
    assert "Timed out waiting for Google Photos selection." in err
    client.delete_session.assert_called_once_with("s1")
    assert not PhotoMemoryStateStore().media_path.exists()


def test_cli_media_list_and_clear(home, capsys):
    state = PhotoMemoryStateStore()
    state.save_media_items([{"id": "a", "baseUrl": "https://lh3/a"}])

    assert cli.main(["media", "list"]) == 0
    assert json.loads(capsys.readouterr().out)["count"] == 1

    assert cli.main(["media", "clear"]) == 0
    assert json.loads(capsys.readouterr().out) == {"cleared": True}
    assert not state.media_path.exists()


def test_cli_serve_runs_uvicorn(home, monkeypatch):
    run = mock.Mock()
    app = object()
    monkeypatch.setattr(cli.uvicorn, "run", run)
    monkeypatch.setattr(cli, "create_app", mock.Mock(return_value=app))

    assert cli.main(["serve", "--port", "9000"]) == 0
    run.assert_called_once_with(app, host="127.0.0.1", port=9000)


def test_cli_token_requires_client_credentials(home, monkeypatch, capsys):
    monkeypatch.setattr(cli, "load_config", mock.Mock(return_value=PhotoMemoryConfig()))
    assert cli.main(["token", "user-1"]) == 1
    err = json.loads(capsys.readouterr().err)
    assert err["error"].startswith("Missing server configuration")
