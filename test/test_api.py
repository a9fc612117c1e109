"""
API endpoint tests for lyra.

Smoke tests for each endpoint plus detailed checks for clipboard import,
set ordering and sync settings.
"""

import os
import tempfile

import pytest
from fastapi.testclient import TestClient

from lyra.clipboard import ClipboardManager
from lyra.config_manager import ConfigManager
from lyra.database import Database, ImportRecordRepository
from lyra.library import LibraryManager
from lyra.models import ImportRecord
from lyra.network import NetworkMonitor
from lyra.sync import CloudSyncManager
from lyra.web.server import create_app


class FakeClipboard:
    def __init__(self, text=None):
        self.text = text

    def has_strings(self):
        return bool(self.text)

    def get_string(self):
        return self.text


@pytest.fixture
def temp_db():
    """Create a temporary database."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    db = Database(db_path=path)
    yield db
    db.close()
    os.unlink(path)


@pytest.fixture
def clipboard():
    return FakeClipboard()


@pytest.fixture
def app_components(temp_db, clipboard):
    """Create all real components on a temporary database."""
    config_manager = ConfigManager(temp_db)
    network = NetworkMonitor(config_manager)
    sync_manager = CloudSyncManager(config_manager, network, sync_delay=0)
    components = {
        "library": LibraryManager(temp_db),
        "clipboard_manager": ClipboardManager(temp_db, clipboard=clipboard),
        "sync_manager": sync_manager,
        "config_manager": config_manager,
    }
    yield components
    sync_manager.shutdown()


@pytest.fixture
def client(app_components):
    app = create_app(**app_components)
    return TestClient(app)


def import_song(client, text):
    response = client.post("/api/songs/import", json={"text": text})
    assert response.status_code == 200
    return response.json()["song"]


class TestSongEndpoints:
    def test_import_and_list(self, client):
        song = import_song(client, "{title: Amazing Grace}\n{key: G}\n[G]Amazing grace")
        assert song["title"] == "Amazing Grace"
        assert song["original_key"] == "G"
        assert song["import_source"] == "Clipboard"

        response = client.get("/api/songs")
        assert response.status_code == 200
        assert [s["title"] for s in response.json()["songs"]] == ["Amazing Grace"]

    def test_search(self, client):
        import_song(client, "{title: Amazing Grace}\nLine")
        import_song(client, "{title: Come Thou Fount}\nLine")
        response = client.get("/api/songs", params={"q": "fount"})
        assert [s["title"] for s in response.json()["songs"]] == ["Come Thou Fount"]

    def test_get_and_delete(self, client):
        song = import_song(client, "{title: Temporary}\nLine")

        assert client.get(f"/api/songs/{song['id']}").json()["title"] == "Temporary"
        assert client.delete(f"/api/songs/{song['id']}").status_code == 200
        assert client.get(f"/api/songs/{song['id']}").status_code == 404
        assert client.delete(f"/api/songs/{song['id']}").status_code == 404

    def test_import_empty_text(self, client):
        response = client.post("/api/songs/import", json={"text": "   "})
        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["kind"] == "empty_clipboard"
        assert detail["recovery_suggestion"] == "Copy some ChordPro content and try again."


class TestClipboardEndpoints:
    def test_status(self, client, clipboard):
        assert client.get("/api/clipboard").json() == {"has_content": False}
        clipboard.text = "[C]Hello"
        assert client.get("/api/clipboard").json() == {"has_content": True}

    def test_paste(self, client, clipboard):
        clipboard.text = "{artist: Nobody}"
        response = client.post("/api/clipboard/paste")
        assert response.status_code == 200
        data = response.json()
        assert data["song"]["title"] == "Untitled Song"
        assert data["was_untitled"] is True
        assert data["had_parsing_warnings"] is True

    def test_paste_empty(self, client):
        response = client.post("/api/clipboard/paste")
        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Clipboard is empty"


class TestBookEndpoints:
    def test_book_lifecycle(self, client):
        first = import_song(client, "{title: A}\nLine")
        second = import_song(client, "{title: B}\nLine")

        response = client.post("/api/books", json={"name": "Hymns", "song_ids": [first["id"]]})
        assert response.status_code == 200
        book = response.json()
        assert book["song_ids"] == [first["id"]]

        response = client.post(f"/api/books/{book['id']}/songs/{second['id']}")
        assert response.json() == {"status": "added"}
        response = client.post(f"/api/books/{book['id']}/songs/{second['id']}")
        assert response.json() == {"status": "already_present"}

        songs = client.get(f"/api/books/{book['id']}/songs").json()["songs"]
        assert [s["title"] for s in songs] == ["A", "B"]

        assert client.delete(f"/api/books/{book['id']}/songs/{first['id']}").status_code == 200
        assert client.delete(f"/api/books/{book['id']}/songs/{first['id']}").status_code == 404
        assert [b["name"] for b in client.get("/api/books").json()["books"]] == ["Hymns"]

    def test_unknown_song(self, client):
        response = client.post("/api/books", json={"name": "Broken", "song_ids": [42]})
        assert response.status_code == 404


class TestSetEndpoints:
    @pytest.fixture
    def set_with_songs(self, client):
        songs = [import_song(client, f"{{title: Song {n}}}\nLine") for n in range(3)]
        performance_set = client.post(
            "/api/sets",
            json={"name": "Sunday", "venue": "Main Sanctuary", "scheduled_date": "2024-06-02T10:00:00+00:00"},
        ).json()
        for song in songs:
            client.post(f"/api/sets/{performance_set['id']}/entries", json={"song_id": song["id"]})
        return client.get(f"/api/sets/{performance_set['id']}").json(), songs

    def test_entries_in_order(self, set_with_songs):
        performance_set, songs = set_with_songs
        assert [e["song_id"] for e in performance_set["entries"]] == [s["id"] for s in songs]
        assert [e["order_index"] for e in performance_set["entries"]] == [0, 1, 2]

    def test_move_entry(self, client, set_with_songs):
        performance_set, songs = set_with_songs
        last = performance_set["entries"][2]
        response = client.patch(
            f"/api/sets/{performance_set['id']}/entries/{last['id']}", json={"new_position": 0}
        )
        assert response.status_code == 200
        entries = response.json()["entries"]
        assert [e["song_id"] for e in entries] == [songs[2]["id"], songs[0]["id"], songs[1]["id"]]
        assert [e["order_index"] for e in entries] == [0, 1, 2]

    def test_update_entry_notes_keeps_key(self, client, set_with_songs):
        performance_set, _ = set_with_songs
        entry = performance_set["entries"][1]
        url = f"/api/sets/{performance_set['id']}/entries/{entry['id']}"

        client.patch(url, json={"key_override": "E"})
        entries = client.patch(url, json={"notes": "Capo 2"}).json()["entries"]
        assert entries[1]["key_override"] == "E"
        assert entries[1]["notes"] == "Capo 2"

    def test_remove_entry(self, client, set_with_songs):
        performance_set, songs = set_with_songs
        middle = performance_set["entries"][1]
        response = client.delete(f"/api/sets/{performance_set['id']}/entries/{middle['id']}")
        entries = response.json()["entries"]
        assert [e["song_id"] for e in entries] == [songs[0]["id"], songs[2]["id"]]
        assert [e["order_index"] for e in entries] == [0, 1]

    def test_list_sets(self, client, set_with_songs):
        sets = client.get("/api/sets").json()["sets"]
        assert [s["name"] for s in sets] == ["Sunday"]

    def test_missing_set(self, client):
        assert client.get("/api/sets/999").status_code == 404


class TestAnnotationEndpoints:
    def test_create_and_list(self, client):
        song = import_song(client, "{title: A}\nLine")
        response = client.post(
            f"/api/songs/{song['id']}/annotations", json={"x": 1.4, "y": 0.3, "text": "Slow"}
        )
        assert response.status_code == 200
        assert response.json()["x"] == 1.0

        annotations = client.get(f"/api/songs/{song['id']}/annotations").json()["annotations"]
        assert [a["text"] for a in annotations] == ["Slow"]

    def test_unknown_song(self, client):
        assert client.get("/api/songs/999/annotations").status_code == 404


class TestSyncEndpoints:
    def test_status(self, client):
        data = client.get("/api/sync").json()
        assert data["enabled"] is False
        assert data["status"] == "idle"
        assert data["status_message"] == "Not synced yet"

    def test_update_settings(self, client, app_components):
        response = client.patch(
            "/api/sync/settings", json={"scope": "Songs Only", "allow_cellular": True}
        )
        assert response.status_code == 200
        assert response.json()["scope"] == "Songs Only"
        assert app_components["config_manager"].get("sync.scope") == "Songs Only"
        assert app_components["config_manager"].get_bool("sync.allowCellular") is True

    def test_invalid_scope(self, client):
        response = client.patch("/api/sync/settings", json={"scope": "Half"})
        assert response.status_code == 422

    def test_toggle_and_sync_now(self, client, app_components):
        sync_manager = app_components["sync_manager"]
        response = client.post("/api/sync/toggle", json={"enabled": True})
        assert response.json()["enabled"] is True
        assert sync_manager.wait(timeout=5)

        response = client.post("/api/sync/now")
        assert response.json()["started"] is True
        assert sync_manager.wait(timeout=5)
        assert client.get("/api/sync").json()["status"] == "success"

    def test_sync_now_while_disabled(self, client):
        response = client.post("/api/sync/now")
        assert response.json()["started"] is False


class TestNetworkEndpoints:
    def test_status(self, client):
        data = client.get("/api/network").json()
        assert data["is_online"] is True
        assert data["status_message"] == "Connected via Wi-Fi"
        assert data["queued_operations"] == []

    def test_queue_flushes_when_back_online(self, client, app_components):
        sync_manager = app_components["sync_manager"]
        sync_manager.is_sync_enabled = True

        offline = client.put("/api/network", json={"is_online": False, "network_type": "wifi"})
        assert offline.json()["network_type"] == "offline"
        assert offline.json()["should_sync"] is False

        response = client.post("/api/network/queue", json={"operation_type": "syncData"})
        assert response.status_code == 200
        assert response.json()["type"] == "syncData"
        assert len(client.get("/api/network").json()["queued_operations"]) == 1

        online = client.put("/api/network", json={"is_online": True, "network_type": "ethernet"})
        assert online.json()["queued_operations"] == []
        assert sync_manager.wait(timeout=5)
        assert client.get("/api/sync").json()["status"] == "success"

    def test_unknown_operation_type(self, client):
        response = client.post("/api/network/queue", json={"operation_type": "teleport"})
        assert response.status_code == 422


class TestConfigEndpoints:
    def test_get_config(self, client):
        data = client.get("/api/config").json()
        assert data["values"]["sync.scope"] == "Everything"
        assert "sync" in data["groups"]

    def test_update_sync_key_reloads_settings(self, client):
        response = client.patch("/api/config", json={"key": "sync.scope", "value": "Songs Only"})
        assert response.status_code == 200
        assert client.get("/api/sync").json()["scope"] == "Songs Only"

    def test_enabling_sync_starts_initial_sync(self, client, app_components):
        sync_manager = app_components["sync_manager"]
        response = client.patch("/api/config", json={"key": "sync.enabled", "value": "true"})
        assert response.status_code == 200
        assert sync_manager.wait(timeout=5)

        data = client.get("/api/sync").json()
        assert data["enabled"] is True
        assert data["status"] == "success"
        assert app_components["config_manager"].get_bool("sync.enabled") is True

    def test_rejects_values_outside_schema(self, client, app_components):
        response = client.patch("/api/config", json={"key": "sync.scope", "value": "bogus"})
        assert response.status_code == 400
        response = client.patch("/api/config", json={"key": "web_port", "value": "abc"})
        assert response.status_code == 400
        assert app_components["config_manager"].get("sync.scope") == "Everything"
        assert app_components["config_manager"].get("web_port") == "8000"

    def test_unknown_key(self, client):
        response = client.patch("/api/config", json={"key": "nonsense", "value": "1"})
        assert response.status_code == 400


def test_import_history_empty(client):
    assert client.get("/api/imports").json() == {"imports": []}


def test_import_record_detail(client, temp_db):
    song = import_song(client, "{title: Imported}\nLine")
    record = ImportRecord(import_source="Files", song_ids=[song["id"]])
    record.update_statistics(total=2, successful=1, failed=1)
    ImportRecordRepository(temp_db).create(record)

    data = client.get(f"/api/imports/{record.id}").json()
    assert data["song_ids"] == [song["id"]]
    assert data["summary"] == "Imported 1 of 2 files"
    assert data["status_color"] == "orange"
    assert client.get("/api/imports/999").status_code == 404
