"""
Tests for the snapshot store, change broadcast and seeding
"""

import gc
import json

import httpx
import pytest

import config
import db
import members as member_ops
import seed
from models import MEMBERS_KEY, MEMBERS_SIGNAL


def make_store(seed_loader=None):
    return db.SnapshotStore(MEMBERS_KEY, MEMBERS_SIGNAL, member_ops.normalize_members, seed_loader)


class TestSnapshotStore:
    """Persisted collections"""

    def test_empty_store(self):
        assert make_store().load() == []

    def test_save_then_load(self, sample_member):
        store = make_store()
        saved = store.save([sample_member])
        assert saved[0]["totalPaid"] == 50.0
        assert make_store().load() == saved

    def test_load_returns_copies(self, sample_member):
        store = make_store()
        store.save([sample_member])
        first = store.load()
        first[0]["lastName"] = "Modifié"
        assert store.load()[0]["lastName"] == "Martin"

    def test_malformed_snapshot_keeps_last_state(self, sample_member):
        store = make_store()
        store.save([sample_member])
        db.execute("UPDATE snapshots SET value = ? WHERE key = ?", ("{pas du json", MEMBERS_KEY))
        assert [m["id"] for m in store.load()] == ["m-1"]
        assert make_store().load() == []

    def test_non_list_snapshot_is_malformed(self):
        db.init_db()
        db.write_snapshot(MEMBERS_KEY, [])
        db.execute("UPDATE snapshots SET value = ? WHERE key = ?", (json.dumps({"a": 1}), MEMBERS_KEY))
        with pytest.raises(db.SnapshotDecodeError):
            db.read_snapshot(MEMBERS_KEY)

    def test_seed_used_when_empty(self, sample_member):
        store = make_store(lambda: [sample_member])
        assert [m["id"] for m in store.load()] == ["m-1"]
        # persisted, so a store without a seed sees it too
        assert [m["id"] for m in make_store().load()] == ["m-1"]

    def test_seed_not_used_when_data_exists(self, sample_member, legacy_member):
        make_store().save([legacy_member])
        store = make_store(lambda: [sample_member])
        assert [m["id"] for m in store.load()] == ["m-2"]

    def test_seed_not_used_after_decode_failure(self, sample_member):
        make_store().save([sample_member])
        db.execute("UPDATE snapshots SET value = ? WHERE key = ?", ("[", MEMBERS_KEY))
        calls = []
        store = make_store(lambda: calls.append(1) or [sample_member])
        assert store.load() == []
        assert calls == []


class TestBroadcast:
    """Save notifies every cached view"""

    def test_view_refreshed_by_other_writer(self, sample_member):
        view = db.CachedView(make_store())
        assert view.records == []
        make_store().save([sample_member])
        assert [m["id"] for m in view.records] == ["m-1"]

    def test_closed_view_stops_refreshing(self, sample_member):
        view = db.CachedView(make_store())
        view.close()
        make_store().save([sample_member])
        assert view.records == []

    def test_failing_subscriber_does_not_break_save(self, sample_member):
        received = []

        def broken():
            raise RuntimeError("boom")

        db.subscribe(MEMBERS_SIGNAL, broken)
        db.subscribe(MEMBERS_SIGNAL, lambda: received.append(True))
        make_store().save([sample_member])
        assert received == [True]

    def test_unsubscribe(self):
        received = []
        unsubscribe = db.subscribe("test-signal", lambda: received.append(True))
        unsubscribe()
        unsubscribe()
        db.publish("test-signal")
        assert received == []

    def test_dropped_view_stops_being_notified(self, sample_member):
        refreshed = []

        class CountingView(db.CachedView):
            def refresh(self):
                refreshed.append(True)
                super().refresh()

        kept = CountingView(make_store())
        dropped = CountingView(make_store())
        assert db.subscriber_count(MEMBERS_SIGNAL) == 2
        del dropped
        gc.collect()
        make_store().save([sample_member])
        assert refreshed == [True]
        assert db.subscriber_count(MEMBERS_SIGNAL) == 1
        assert [m["id"] for m in kept.records] == ["m-1"]

    def test_plain_function_subscriber_stays_registered(self):
        received = []
        db.subscribe("test-signal", lambda: received.append(True))
        gc.collect()
        db.publish("test-signal")
        assert received == [True]


class TestSettings:
    """Force password change flag"""

    def test_flag_round_trip(self):
        db.init_db()
        assert db.is_force_password_change() is False
        db.set_force_password_change(True)
        assert db.is_force_password_change() is True
        db.set_force_password_change(False)
        assert db.is_force_password_change() is False


class TestSeedSources:
    """Seed documents from files or URLs"""

    def test_local_file(self, tmp_path, sample_member):
        path = tmp_path / "users.json"
        path.write_text(json.dumps([sample_member]), encoding="utf-8")
        assert seed.fetch_seed(str(path)) == [sample_member]

    def test_missing_or_disabled(self, tmp_path):
        assert seed.fetch_seed(str(tmp_path / "absent.json")) is None
        assert seed.fetch_seed("") is None
        assert seed.fetch_seed(None) is None

    def test_not_a_list(self, tmp_path):
        path = tmp_path / "users.json"
        path.write_text('{"members": []}', encoding="utf-8")
        assert seed.fetch_seed(str(path)) is None

    def test_http_source(self, monkeypatch, sample_member):
        def fake_get(url, **kwargs):
            return httpx.Response(200, json=[sample_member], request=httpx.Request("GET", url))

        monkeypatch.setattr(httpx, "get", fake_get)
        assert seed.fetch_seed("https://club.example/users.json") == [sample_member]

    def test_http_error(self, monkeypatch):
        def fake_get(url, **kwargs):
            return httpx.Response(404, request=httpx.Request("GET", url))

        monkeypatch.setattr(httpx, "get", fake_get)
        assert seed.fetch_seed("https://club.example/users.json") is None

    def test_connection_error(self, monkeypatch):
        def fake_get(url, **kwargs):
            raise httpx.ConnectError("unreachable")

        monkeypatch.setattr(httpx, "get", fake_get)
        assert seed.fetch_seed("http://club.example/users.json") is None

    def test_members_seed_reads_config(self, tmp_path, monkeypatch, sample_member):
        path = tmp_path / "users.json"
        path.write_text(json.dumps([sample_member]), encoding="utf-8")
        monkeypatch.setattr(config, "SEED_MEMBERS", str(path))
        assert seed.members_seed() == [sample_member]
