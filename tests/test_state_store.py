import json
from pathlib import Path

from state_store import JsonStateFile, SessionStore


def test_missing_file_loads_empty_sections(tmp_path: Path):
    store = SessionStore(tmp_path / "stream_state.json")
    store.load()

    assert store.sent_messages == {}
    assert store.live_status == {}
    assert store.is_live("alice") is False


def test_save_writes_the_documented_layout(tmp_path: Path):
    path = tmp_path / "stream_state.json"
    store = SessionStore(path)
    store.load()
    store.sent_messages["alice"] = "111"
    store.stream_start_times["alice"] = 1_700_000_000_000
    store.live_status["alice"] = True
    store.user_cache["alice"] = {"uniqueId": "alice", "avatarUrl": "https://img/a.png"}
    store.title_cache["alice"] = "Friday stream"
    store.save()

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data == {
        "sentMessages": {"alice": "111"},
        "streamStartTimes": {"alice": 1_700_000_000_000},
        "liveStatus": {"alice": True},
        "userCache": {"alice": {"uniqueId": "alice", "avatarUrl": "https://img/a.png"}},
        "titleCache": {"alice": "Friday stream"},
    }
    assert not path.with_suffix(".json.tmp").exists()

    reloaded = SessionStore(path)
    reloaded.load()
    assert reloaded.is_live("alice") is True
    assert reloaded.title_cache == {"alice": "Friday stream"}


def test_malformed_json_falls_back_to_defaults(tmp_path: Path, caplog):
    path = tmp_path / "stream_state.json"
    path.write_text("{not json", encoding="utf-8")
    store = SessionStore(path)

    with caplog.at_level("WARNING", logger="live_notifier"):
        store.load()

    assert store.snapshot()["liveStatus"] == {}
    assert "starting fresh" in caplog.text


def test_malformed_section_is_reset(tmp_path: Path):
    path = tmp_path / "stream_state.json"
    path.write_text(
        json.dumps({"sentMessages": ["oops"], "liveStatus": {"bob": True}}),
        encoding="utf-8",
    )
    store = SessionStore(path)
    store.load()

    assert store.sent_messages == {}
    assert store.live_status == {"bob": True}
    assert store.title_cache == {}


def test_reset_live_status_persists(tmp_path: Path):
    path = tmp_path / "stream_state.json"
    path.write_text(json.dumps({"liveStatus": {"alice": True, "zed": True}}), encoding="utf-8")
    store = SessionStore(path)
    store.load()

    store.reset_live_status(["alice", "bob"])

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["liveStatus"] == {"alice": False, "bob": False, "zed": True}


def test_json_state_file_rejects_non_object(tmp_path: Path):
    path = tmp_path / "counter.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")
    state_file = JsonStateFile(path, {"count": 0})

    assert state_file.load() == {"count": 0}
