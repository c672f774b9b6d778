"""
Backends the checkout core talks to.

A backend exposes the catalog read, the atomic commit, the transaction
reads and the settings read. It returns raw dicts (validated afterwards by
pos.checkout.records) and raises BackendError whenever the answer could
not be obtained: connection failures, timeouts, 5xx responses, bodies
that are not JSON, unexpected database errors. For a commit, a
BackendError means the sale may or may not have happened.
"""
import logging
from typing import Any, Callable, Dict, List, Optional

import requests
from sqlalchemy.exc import SQLAlchemyError

from pos.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """The backend could not be reached or answered with an unexpected failure."""


class Backend:
    """Interface shared by the in-process and the HTTP backend."""

    def list_products(self, active_only: bool = True) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def get_product(self, product_id) -> Optional[Dict[str, Any]]:
        """Product dict, or None when it does not exist."""
        raise NotImplementedError

    def commit_sale(
        self,
        cashier_id,
        cashier_name: str,
        payment_type: str,
        amount_paid: str,
        lines: List[Dict[str, Any]],
        notes: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        """{'success': True, 'transaction_id', 'transaction_number'} or {'success': False, 'message'}."""
        raise NotImplementedError

    def get_transaction(self, transaction_id) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def list_transactions(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def find_transaction_by_key(self, idempotency_key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def get_settings(self) -> Optional[Dict[str, Any]]:
        """Store settings dict, or None when the store was never configured."""
        raise NotImplementedError


class LocalBackend(Backend):
    """Calls the backend services in-process with a SQLAlchemy session."""

    def __init__(self, session_factory: Callable):
        self.session_factory = session_factory

    def _call(self, operation: str, fn: Callable, *args, **kwargs):
        session = self.session_factory()
        try:
            return fn(session, *args, **kwargs)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"[BACKEND] {operation} failed: {e}", exc_info=True)
            raise BackendError(f'{operation} failed: {e}') from e

    def list_products(self, active_only: bool = True) -> List[Dict[str, Any]]:
        from pos.services.catalog_service import list_products, serialize_product
        products = self._call('list_products', list_products, active_only=active_only)
        return [serialize_product(p) for p in products]

    def get_product(self, product_id) -> Optional[Dict[str, Any]]:
        from pos.services.catalog_service import get_product, serialize_product
        try:
            return serialize_product(self._call('get_product', get_product, product_id))
        except NotFoundError:
            return None

    def commit_sale(self, cashier_id, cashier_name, payment_type, amount_paid, lines,
                    notes=None, idempotency_key=None) -> Dict[str, Any]:
        from pos.services.sales_service import commit_sale
        return self._call(
            'commit_sale', commit_sale,
            cashier_id=cashier_id,
            cashier_name=cashier_name,
            payment_type=payment_type,
            amount_paid=amount_paid,
            lines=lines,
            notes=notes,
            idempotency_key=idempotency_key
        )

    def get_transaction(self, transaction_id) -> Optional[Dict[str, Any]]:
        from pos.services.transaction_service import get_transaction, serialize_transaction
        try:
            return serialize_transaction(self._call('get_transaction', get_transaction, transaction_id))
        except NotFoundError:
            return None

    def list_transactions(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        from pos.services.transaction_service import list_transactions, serialize_transaction
        transactions = self._call('list_transactions', list_transactions, limit=limit)
        return [serialize_transaction(t, include_items=False) for t in transactions]

    def find_transaction_by_key(self, idempotency_key: str) -> Optional[Dict[str, Any]]:
        from pos.services.transaction_service import find_by_idempotency_key, serialize_transaction
        transaction = self._call('find_transaction_by_key', find_by_idempotency_key, idempotency_key)
        return serialize_transaction(transaction) if transaction else None

    def get_settings(self) -> Optional[Dict[str, Any]]:
        from pos.services.settings_service import get_settings, serialize_settings
        settings = self._call('get_settings', get_settings)
        return serialize_settings(settings) if settings else None


class HttpBackend(Backend):
    """Client for the backend JSON API (/api)."""

    def __init__(self, base_url: str, token: str = '', timeout: float = 10, http: Optional[requests.Session] = None):
        """
        Args:
            base_url: Backend root, e.g. https://pos.example.com
            token: Bearer token expected by the API
            timeout: Seconds before a request is abandoned
            http: Session to reuse (tests inject their own)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.http = http or requests.Session()
        self.headers = {'Content-Type': 'application/json', 'Accept': 'application/json'}
        if token:
            self.headers['Authorization'] = f'Bearer {token}'

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}/api{path}"
        try:
            response = self.http.request(method, url, headers=self.headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"[BACKEND] {method} {path} transport error: {e}")
            raise BackendError(f'{method} {path}: {e}') from e
        if response.status_code >= 500:
            logger.error(f"[BACKEND] {method} {path} returned HTTP {response.status_code}")
            raise BackendError(f'{method} {path}: HTTP {response.status_code}')
        return response

    def _json(self, response: requests.Response):
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f'Invalid JSON from backend (HTTP {response.status_code})') from e

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None):
        """GET returning the decoded body, None on 404."""
        response = self._request('GET', path, params=params)
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise BackendError(f'GET {path}: HTTP {response.status_code}')
        return self._json(response)

    def list_products(self, active_only: bool = True) -> List[Dict[str, Any]]:
        body = self._get('/products', params={'active': '1' if active_only else '0'})
        return (body or {}).get('products', [])

    def get_product(self, product_id) -> Optional[Dict[str, Any]]:
        return self._get(f'/products/{product_id}')

    def commit_sale(self, cashier_id, cashier_name, payment_type, amount_paid, lines,
                    notes=None, idempotency_key=None) -> Dict[str, Any]:
        payload = {
            'cashier_id': cashier_id,
            'cashier_name': cashier_name,
            'payment_type': payment_type,
            'amount_paid': str(amount_paid),
            'lines': lines,
            'notes': notes,
            'idempotency_key': idempotency_key,
        }
        response = self._request('POST', '/transactions/commit', json=payload)
        body = self._json(response)
        if 400 <= response.status_code < 500:
            # Refused before anything was written
            return {'success': False, 'message': body.get('message') or f'HTTP {response.status_code}'}
        return body

    def get_transaction(self, transaction_id) -> Optional[Dict[str, Any]]:
        return self._get(f'/transactions/{transaction_id}')

    def list_transactions(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {'limit': limit} if limit is not None else None
        body = self._get('/transactions', params=params)
        return (body or {}).get('transactions', [])

    def find_transaction_by_key(self, idempotency_key: str) -> Optional[Dict[str, Any]]:
        return self._get(f'/transactions/by-key/{idempotency_key}')

    def get_settings(self) -> Optional[Dict[str, Any]]:
        return self._get('/settings')
