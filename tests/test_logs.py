import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

from photomemory.logs import PhotoMemoryLogStore, logs_directory, redact


def test_log_store_append_and_tail(tmp_path):
    store = PhotoMemoryLogStore(tmp_path, retention_days=7)
    record = store.append("auth", "Authorization started", data={"redirect_to": "/"})
    assert record.message == "Authorization started"
    assert record.level == "INFO"

    store.append("auth", "second")

    records = store.tail("auth", limit=1)
    assert len(records) == 1
    assert records[0].message == "second"

    store.prune(0)
    assert store.tail("auth") == []
    assert Path(tmp_path / "auth.log").exists() is False


def test_log_store_categories(tmp_path):
    store = PhotoMemoryLogStore(tmp_path)
    store.append("auth", "entry")
    store.append("picker", "picked")

    assert set(store.categories()) == {"auth", "picker"}


def test_credentials_are_masked_on_disk(tmp_path):
    store = PhotoMemoryLogStore(tmp_path)
    store.append(
        "auth",
        "callback",
        data={
            "refresh_token": "r-secret",
            "code_verifier": "v",
            "nested": {"client_secret": "s", "email": "a@example.com"},
        },
    )
    raw = (tmp_path / "auth.log").read_text()
    assert "r-secret" not in raw
    entry = json.loads(raw.splitlines()[0])
    assert entry["data"]["refresh_token"] == "[REDACTED]"
    assert entry["data"]["nested"]["email"] == "a@example.com"


def test_prune_drops_entries_older_than_retention(tmp_path):
    path = tmp_path / "auth.log"
    old = (datetime.now(timezone.utc) - timedelta(days=10)).isoformat()
    recent = datetime.now(timezone.utc).isoformat()
    path.write_text(
        "\n".join(
            [
                json.dumps({"timestamp": old, "level": "INFO", "message": "old", "data": {}}),
                "garbage",
                json.dumps({"timestamp": recent, "level": "INFO", "message": "new", "data": {}}),
            ]
        )
        + "\n"
    )
    store = PhotoMemoryLogStore(tmp_path)
    store.prune(5)
    assert [record.message for record in store.tail("auth")] == ["new"]


def test_redact_leaves_plain_values():
    assert redact({"google_user_id": "1"}) == {"google_user_id": "1"}


def test_logs_directory_defaults_under_state(tmp_path):
    assert logs_directory(None, tmp_path) == tmp_path / "logs"
    assert logs_directory(str(tmp_path / "x"), tmp_path) == tmp_path / "x"
