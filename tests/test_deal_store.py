import json
import pytest
from unittest.mock import MagicMock, patch
from datetime import datetime, timezone

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.deal_store import FirestoreDealStore, InMemoryDealStore, create_deal_store


class TestInMemoryDealStore:
    """Test suite for InMemoryDealStore"""

    @pytest.fixture
    def store(self, iso_ago):
        store = InMemoryDealStore()
        store.add_deal("t1", {"id": "d1", "name": "Acme", "stage": "proposal"})
        store.add_deal("t1", {"id": "d2", "name": "Globex", "stage": "discovery"})
        for i in range(5):
            store.add_action_log("t1", {"id": f"log-{i}", "dealId": "d1", "action": "email_sent",
                                        "timestamp": iso_ago(i + 1)})
        store.add_action_log("t1", {"id": "log-other", "dealId": "d2", "action": "note"})
        store.add_email("t1", {"id": "em-1", "dealId": "d1", "direction": "inbound"})
        store.add_stage_entry("t1", "d1", {"stage": "discovery", "timestamp": iso_ago(300)})
        store.add_stage_entry("t1", "d1", {"stage": "proposal", "timestamp": iso_ago(10)})
        store.add_stage_entry("t1", "d1", {"stage": "qualification", "timestamp": iso_ago(100)})
        return store

    def test_get_deal(self, store):
        assert store.get_deal("t1", "d1")["name"] == "Acme"
        assert store.get_deal("t1", "missing") is None
        assert store.get_deal("other-tenant", "d1") is None

    def test_get_deal_returns_copy(self, store):
        deal = store.get_deal("t1", "d1")
        deal["name"] = "Changed"

        assert store.get_deal("t1", "d1")["name"] == "Acme"

    def test_action_logs_filtered_and_limited(self, store):
        logs = store.list_action_logs("t1", "d1", limit=3)

        assert len(logs) == 3
        assert all(log["dealId"] == "d1" for log in logs)
        assert len(store.list_action_logs("t1", "d1", limit=50)) == 5

    def test_emails_filtered(self, store):
        assert [e["id"] for e in store.list_emails("t1", "d1", limit=100)] == ["em-1"]
        assert store.list_emails("t1", "d2", limit=100) == []

    def test_stage_history_newest_first(self, store):
        history = store.list_stage_history("t1", "d1", limit=2)

        assert [entry["stage"] for entry in history] == ["proposal", "qualification"]

    def test_save_ai_summary(self, store):
        last_updated = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)

        store.save_ai_summary("t1", "d1", {"summary": "text"}, last_updated)

        deal = store.get_deal("t1", "d1")
        assert deal["aiSummary"] == {"summary": "text"}
        assert deal["aiSummaryLastUpdated"] == last_updated
        assert deal["name"] == "Acme"

    def test_save_ai_summary_for_missing_deal(self, store):
        with pytest.raises(KeyError):
            store.save_ai_summary("t1", "missing", {"summary": "text"}, datetime.now(timezone.utc))

    def test_stats(self, store):
        stats = store.get_stats()

        assert stats["backend"] == "memory"
        assert stats["total_deals"] == 2
        assert stats["total_action_logs"] == 6

    def test_load_from_file(self, tmp_path):
        data_file = tmp_path / "deals.json"
        data_file.write_text(json.dumps({
            "tenants": {
                "t9": {
                    "deals": [{"id": "d9", "name": "Initech"}],
                    "ai_logs": [{"dealId": "d9", "action": "email_sent"}],
                    "emails": [{"dealId": "d9", "direction": "outbound"}],
                    "stage_history": {"d9": [{"stage": "discovery", "timestamp": "2024-05-01T00:00:00Z"}]}
                }
            }
        }))

        store = InMemoryDealStore()

        assert store.load_from_file(str(data_file)) == 1
        assert store.get_deal("t9", "d9")["name"] == "Initech"
        assert len(store.list_action_logs("t9", "d9", 50)) == 1
        assert len(store.list_stage_history("t9", "d9", 10)) == 1

    def test_load_from_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            InMemoryDealStore().load_from_file(str(tmp_path / "missing.json"))


class TestDealStoreFactory:
    """Test suite for create_deal_store"""

    def test_memory_backend(self):
        assert isinstance(create_deal_store("memory"), InMemoryDealStore)

    def test_memory_backend_seeds_from_file(self, tmp_path):
        data_file = tmp_path / "deals.json"
        data_file.write_text(json.dumps({"tenants": {"t1": {"deals": [{"id": "d1"}]}}}))

        store = create_deal_store("memory", data_path=str(data_file))

        assert store.get_deal("t1", "d1") == {"id": "d1"}

    def test_unsupported_backend(self):
        with pytest.raises(ValueError):
            create_deal_store("cassandra")


class TestFirestoreDealStore:
    """Test suite for FirestoreDealStore against a mocked client"""

    @pytest.fixture
    def db(self):
        return MagicMock()

    @pytest.fixture
    def store(self, db):
        with patch("firebase_admin.credentials.Certificate"), \
             patch("firebase_admin.get_app", side_effect=ValueError), \
             patch("firebase_admin.initialize_app"), \
             patch("firebase_admin.firestore.client", return_value=db):
            yield FirestoreDealStore(credentials_path="/secrets/service-account.json", timeout=3)

    @staticmethod
    def snapshot(doc_id, data, exists=True):
        snap = MagicMock()
        snap.id = doc_id
        snap.exists = exists
        snap.to_dict.return_value = data
        return snap

    def test_get_deal(self, store, db):
        deal_ref = db.collection.return_value.document.return_value.collection.return_value.document.return_value
        deal_ref.get.return_value = self.snapshot("d1", {"name": "Acme"})

        assert store.get_deal("t1", "d1") == {"id": "d1", "name": "Acme"}
        db.collection.assert_called_with("tenants")
        deal_ref.get.assert_called_once_with(timeout=3)

    def test_get_missing_deal(self, store, db):
        deal_ref = db.collection.return_value.document.return_value.collection.return_value.document.return_value
        deal_ref.get.return_value = self.snapshot("d1", None, exists=False)

        assert store.get_deal("t1", "d1") is None

    def test_list_action_logs_applies_filter_and_limit(self, store, db):
        query = db.collection.return_value.document.return_value.collection.return_value
        query.where.return_value.limit.return_value.stream.return_value = [
            self.snapshot("log-1", {"dealId": "d1", "action": "email_sent"})
        ]

        logs = store.list_action_logs("t1", "d1", limit=50)

        assert logs == [{"id": "log-1", "dealId": "d1", "action": "email_sent"}]
        query.where.return_value.limit.assert_called_once_with(50)

    def test_save_ai_summary_updates_two_fields(self, store, db):
        deal_ref = db.collection.return_value.document.return_value.collection.return_value.document.return_value
        last_updated = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)

        store.save_ai_summary("t1", "d1", {"summary": "text"}, last_updated)

        deal_ref.update.assert_called_once_with({
            "aiSummary": {"summary": "text"},
            "aiSummaryLastUpdated": last_updated
        })
