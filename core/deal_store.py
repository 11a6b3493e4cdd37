import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from config.settings import settings
from core.exceptions import StoreUnavailableError
from utils.helpers import recency_key, to_utc_datetime

logger = logging.getLogger(__name__)

class DealStore(ABC):
    """Abstract base class for the document store holding deals and their records"""

    @abstractmethod
    def get_deal(self, tenant_id: str, deal_id: str) -> Optional[Dict[str, Any]]:
        """Get a deal document by id, or None if it does not exist"""
        pass

    @abstractmethod
    def list_action_logs(self, tenant_id: str, deal_id: str, limit: int) -> List[Dict[str, Any]]:
        """Get up to `limit` action-log entries for a deal, in any order"""
        pass

    @abstractmethod
    def list_emails(self, tenant_id: str, deal_id: str, limit: int) -> List[Dict[str, Any]]:
        """Get up to `limit` email records for a deal, in any order"""
        pass

    @abstractmethod
    def list_stage_history(self, tenant_id: str, deal_id: str, limit: int) -> List[Dict[str, Any]]:
        """Get up to `limit` stage-history entries, newest first"""
        pass

    @abstractmethod
    def save_ai_summary(
        self,
        tenant_id: str,
        deal_id: str,
        ai_summary: Dict[str, Any],
        last_updated: datetime
    ) -> None:
        """Replace the deal's aiSummary and aiSummaryLastUpdated fields"""
        pass

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics"""
        pass

class InMemoryDealStore(DealStore):
    """In-process store used by tests, the CLI and local development"""

    def __init__(self):
        self._tenants: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        logger.info("In-memory deal store initialized")

    def _tenant(self, tenant_id: str) -> Dict[str, Any]:
        return self._tenants.setdefault(tenant_id, {
            'deals': {},
            'ai_logs': [],
            'emails': [],
            'stage_history': {}
        })

    # =================== SEEDING ===================

    def add_deal(self, tenant_id: str, deal: Dict[str, Any]) -> str:
        deal_id = str(deal['id'])
        with self._lock:
            self._tenant(tenant_id)['deals'][deal_id] = copy.deepcopy(deal)
        return deal_id

    def add_action_log(self, tenant_id: str, entry: Dict[str, Any]) -> None:
        with self._lock:
            self._tenant(tenant_id)['ai_logs'].append(copy.deepcopy(entry))

    def add_email(self, tenant_id: str, email: Dict[str, Any]) -> None:
        with self._lock:
            self._tenant(tenant_id)['emails'].append(copy.deepcopy(email))

    def add_stage_entry(self, tenant_id: str, deal_id: str, entry: Dict[str, Any]) -> None:
        with self._lock:
            history = self._tenant(tenant_id)['stage_history'].setdefault(deal_id, [])
            history.append(copy.deepcopy(entry))

    def load_from_file(self, file_path: str) -> int:
        """
        Seed the store from a JSON fixture

        Expected layout:
            {"tenants": {"<tenantId>": {
                "deals": [...], "ai_logs": [...], "emails": [...],
                "stage_history": {"<dealId>": [...]}}}}

        Returns:
            Number of deals loaded
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except Exception as e:
            logger.error(f"Error loading deal data from {file_path}: {e}")
            raise

        deals_loaded = 0
        for tenant_id, tenant_data in data.get('tenants', {}).items():
            for deal in tenant_data.get('deals', []):
                self.add_deal(tenant_id, deal)
                deals_loaded += 1
            for entry in tenant_data.get('ai_logs', []):
                self.add_action_log(tenant_id, entry)
            for email in tenant_data.get('emails', []):
                self.add_email(tenant_id, email)
            for deal_id, entries in tenant_data.get('stage_history', {}).items():
                for entry in entries:
                    self.add_stage_entry(tenant_id, deal_id, entry)

        logger.info(f"Loaded {deals_loaded} deals from {file_path}")
        return deals_loaded

    # =================== READS ===================

    def get_deal(self, tenant_id: str, deal_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            deal = self._tenants.get(tenant_id, {}).get('deals', {}).get(deal_id)
            return copy.deepcopy(deal) if deal is not None else None

    def _filter_by_deal(self, collection: str, tenant_id: str, deal_id: str, limit: int) -> List[Dict[str, Any]]:
        with self._lock:
            records = self._tenants.get(tenant_id, {}).get(collection, [])
            matches = [r for r in records if r.get('dealId') == deal_id]
            return copy.deepcopy(matches[:limit])

    def list_action_logs(self, tenant_id: str, deal_id: str, limit: int) -> List[Dict[str, Any]]:
        return self._filter_by_deal('ai_logs', tenant_id, deal_id, limit)

    def list_emails(self, tenant_id: str, deal_id: str, limit: int) -> List[Dict[str, Any]]:
        return self._filter_by_deal('emails', tenant_id, deal_id, limit)

    def list_stage_history(self, tenant_id: str, deal_id: str, limit: int) -> List[Dict[str, Any]]:
        with self._lock:
            history = self._tenants.get(tenant_id, {}).get('stage_history', {}).get(deal_id, [])
            ordered = sorted(
                history,
                key=lambda entry: recency_key(to_utc_datetime(entry.get('timestamp'))),
                reverse=True
            )
            return copy.deepcopy(ordered[:limit])

    # =================== WRITES ===================

    def save_ai_summary(
        self,
        tenant_id: str,
        deal_id: str,
        ai_summary: Dict[str, Any],
        last_updated: datetime
    ) -> None:
        with self._lock:
            deal = self._tenants.get(tenant_id, {}).get('deals', {}).get(deal_id)
            if deal is None:
                raise KeyError(f"Deal {deal_id} not found in tenant {tenant_id}")
            deal['aiSummary'] = copy.deepcopy(ai_summary)
            deal['aiSummaryLastUpdated'] = last_updated

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'backend': 'memory',
                'tenants': len(self._tenants),
                'total_deals': sum(len(t['deals']) for t in self._tenants.values()),
                'total_action_logs': sum(len(t['ai_logs']) for t in self._tenants.values()),
                'total_emails': sum(len(t['emails']) for t in self._tenants.values())
            }

class FirestoreDealStore(DealStore):
    """
    Firestore-backed store

    Layout:
        tenants/{tenantId}/crm_deals/{dealId}
        tenants/{tenantId}/crm_deals/{dealId}/stage_history
        tenants/{tenantId}/ai_logs      (filtered by dealId)
        tenants/{tenantId}/emails       (filtered by dealId)
    """

    def __init__(
        self,
        credentials_path: str = None,
        project_id: str = None,
        client_email: str = None,
        private_key: str = None,
        timeout: float = None
    ):
        self.timeout = timeout or settings.STORE_READ_TIMEOUT_SECONDS

        try:
            import firebase_admin
            from firebase_admin import credentials, firestore

            if credentials_path:
                cred = credentials.Certificate(credentials_path)
            else:
                cred = credentials.Certificate({
                    "type": "service_account",
                    "project_id": project_id,
                    "private_key": (private_key or "").replace('\\n', '\n'),
                    "client_email": client_email,
                    "token_uri": "https://oauth2.googleapis.com/token"
                })

            # Reuse an existing default app when one is already initialised
            try:
                app = firebase_admin.get_app()
            except ValueError:
                app = firebase_admin.initialize_app(cred)

            self._firestore = firestore
            self.db = firestore.client(app=app)
            logger.info(f"Firestore deal store initialized for project: {app.project_id}")

        except ImportError:
            raise ImportError("firebase-admin library required. Install with: pip install firebase-admin")
        except Exception as e:
            raise StoreUnavailableError(f"Failed to initialize Firestore: {e}") from e

    def _tenant_ref(self, tenant_id: str):
        return self.db.collection('tenants').document(tenant_id)

    def _deal_ref(self, tenant_id: str, deal_id: str):
        return self._tenant_ref(tenant_id).collection('crm_deals').document(deal_id)

    @staticmethod
    def _to_record(snapshot) -> Dict[str, Any]:
        record = snapshot.to_dict() or {}
        record['id'] = snapshot.id
        return record

    def get_deal(self, tenant_id: str, deal_id: str) -> Optional[Dict[str, Any]]:
        snapshot = self._deal_ref(tenant_id, deal_id).get(timeout=self.timeout)
        if not snapshot.exists:
            return None
        return self._to_record(snapshot)

    def _query_by_deal(self, collection: str, tenant_id: str, deal_id: str, limit: int) -> List[Dict[str, Any]]:
        from google.cloud.firestore_v1.base_query import FieldFilter

        query = (self._tenant_ref(tenant_id).collection(collection)
                 .where(filter=FieldFilter('dealId', '==', deal_id))
                 .limit(limit))
        return [self._to_record(doc) for doc in query.stream(timeout=self.timeout)]

    def list_action_logs(self, tenant_id: str, deal_id: str, limit: int) -> List[Dict[str, Any]]:
        return self._query_by_deal('ai_logs', tenant_id, deal_id, limit)

    def list_emails(self, tenant_id: str, deal_id: str, limit: int) -> List[Dict[str, Any]]:
        return self._query_by_deal('emails', tenant_id, deal_id, limit)

    def list_stage_history(self, tenant_id: str, deal_id: str, limit: int) -> List[Dict[str, Any]]:
        query = (self._deal_ref(tenant_id, deal_id).collection('stage_history')
                 .order_by('timestamp', direction=self._firestore.Query.DESCENDING)
                 .limit(limit))
        return [self._to_record(doc) for doc in query.stream(timeout=self.timeout)]

    def save_ai_summary(
        self,
        tenant_id: str,
        deal_id: str,
        ai_summary: Dict[str, Any],
        last_updated: datetime
    ) -> None:
        self._deal_ref(tenant_id, deal_id).update({
            'aiSummary': ai_summary,
            'aiSummaryLastUpdated': last_updated
        })

    def get_stats(self) -> Dict[str, Any]:
        return {
            'backend': 'firestore',
            'project_id': self.db.project,
            'read_timeout_seconds': self.timeout
        }

# Global deal store instance
_deal_store = None

def get_deal_store() -> DealStore:
    """Get global deal store instance"""
    global _deal_store
    if _deal_store is None:
        _deal_store = create_deal_store()
    return _deal_store

def create_deal_store(backend: str = None, **kwargs) -> DealStore:
    """Create deal store instance for the configured backend"""

    backend = (backend or settings.DEAL_STORE).lower()

    if backend == "firestore":
        config = {**settings.get_firestore_config(), **kwargs}
        return FirestoreDealStore(**config)

    if backend == "memory":
        store = InMemoryDealStore()
        data_path = kwargs.get('data_path') or settings.DEAL_DATA_PATH
        if data_path and Path(data_path).exists():
            store.load_from_file(data_path)
        return store

    raise ValueError(f"Unsupported deal store backend: {backend}")
