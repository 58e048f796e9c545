"""
HTTP client for the clinic inventory API.

Usage:
    session = ApiSession('http://localhost:8000')
    session.login('pharmacist', 'secret')
    client = InventoryClient(session)
    client.restock(12, purchase_quantity=5, batch_number='B-2291', expiry_date='2027-03-31')
    session.logout()

The token lives on the ApiSession instance, so separate sessions never share
credentials.
"""
import logging
from typing import Any, Dict, Optional

import requests

from .exceptions import ClinicError, ConflictError, NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class ApiSession:
    """Base URL + token over a requests.Session."""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: int = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.http = requests.Session()
        self.http.headers['Accept'] = 'application/json'
        self.token = None
        if token:
            self._set_token(token)

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def _set_token(self, token: Optional[str]):
        self.token = token
        if token:
            self.http.headers['Authorization'] = f'Token {token}'
        else:
            self.http.headers.pop('Authorization', None)

    def login(self, username: str, password: str) -> str:
        data = self.request('POST', '/api/auth/token/', json={
            'username': username,
            'password': password,
        })
        self._set_token(data['token'])
        logger.info(f"Logged in to {self.base_url} as {username}")
        return self.token

    def logout(self):
        self._set_token(None)
        self.http.cookies.clear()

    def close(self):
        self.logout()
        self.http.close()

    def request(self, method: str, path: str, **kwargs) -> Any:
        """
        Send a request and return the decoded JSON body.

        Error statuses are raised as the matching core.exceptions error;
        connection failures become PersistenceError.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        kwargs.setdefault('timeout', self.timeout)
        try:
            response = self.http.request(method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"{method} {url} failed: {e}")
            raise PersistenceError(f"Could not reach {self.base_url}") from e

        if response.status_code >= 400:
            raise self._error_for(response)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_for(response) -> ClinicError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {'detail': body}

        detail = body.get('detail') or body.get('error') or response.reason or ''
        if response.status_code == 400:
            errors = body.get('errors')
            if errors is None:
                # Plain DRF serializer errors are a field -> messages mapping
                errors = {k: v for k, v in body.items() if k not in ('detail', 'error')}
            return ValidationError(str(body.get('detail', '')), errors=errors)
        if response.status_code == 404:
            return NotFoundError(str(detail))
        if response.status_code == 409:
            return ConflictError(str(detail))

        error = ClinicError(str(detail))
        error.status_code = response.status_code
        return error

    def get(self, path: str, params: Optional[Dict] = None) -> Any:
        return self.request('GET', path, params=params)

    def post(self, path: str, data: Optional[Dict] = None) -> Any:
        return self.request('POST', path, json=data or {})

    def patch(self, path: str, data: Optional[Dict] = None) -> Any:
        return self.request('PATCH', path, json=data or {})

    def delete(self, path: str) -> Any:
        return self.request('DELETE', path)


class InventoryClient:
    """Inventory and restock endpoints."""

    def __init__(self, session: ApiSession):
        self.session = session

    def list_drugs(self, active: Optional[bool] = None, category_id: Optional[int] = None):
        params = {}
        if active is not None:
            params['active'] = 'true' if active else 'false'
        if category_id is not None:
            params['category_id'] = category_id
        return self.session.get('/api/inventory/drugs/', params=params)

    def get_drug(self, drug_id: int):
        return self.session.get(f'/api/inventory/drugs/{drug_id}/')

    def search_drugs(self, query: str):
        return self.session.get('/api/inventory/drugs/search/', params={'q': query})

    def create_drug(self, basic: Dict, pricing: Dict):
        return self.session.post('/api/inventory/drugs/', {'basic': basic, 'pricing': pricing})

    def update_drug(self, drug_id: int, changes: Dict):
        return self.session.patch(f'/api/inventory/drugs/{drug_id}/', changes)

    def restock(self, drug_id: int, purchase_quantity: int, batch_number: str,
                expiry_date: str, notes: str = '', vendor_id: Optional[int] = None):
        payload = {
            'purchase_quantity': purchase_quantity,
            'batch_number': batch_number,
            'expiry_date': expiry_date,
            'notes': notes,
        }
        if vendor_id is not None:
            payload['vendor_id'] = vendor_id
        return self.session.post(f'/api/inventory/drugs/{drug_id}/restock/', payload)

    def pending_restocks(self):
        return self.session.get('/api/inventory/restock/pending/')

    def decide_restock(self, restock_id: int, approve: bool, reason: str = ''):
        return self.session.post(f'/api/inventory/restock/{restock_id}/approve/', {
            'status': 'approved' if approve else 'rejected',
            'reason': reason,
        })

    def low_stock(self):
        return self.session.get('/api/inventory/drugs/low-stock/')

    def expiring(self, days: Optional[int] = None):
        params = {'days': days} if days is not None else None
        return self.session.get('/api/inventory/drugs/expiring/', params=params)

    def stats(self):
        return self.session.get('/api/inventory/stats/')

    def categories(self, q: str = ''):
        return self.session.get('/api/inventory/categories/', params={'q': q} if q else None)

    def forms(self, q: str = ''):
        return self.session.get('/api/inventory/forms/', params={'q': q} if q else None)

    def vendors(self, active_only: bool = False):
        return self.session.get('/api/inventory/vendors/', params={'active': 'true'} if active_only else None)

    def preview_pricing(self, purchase_price, units_per_purchase, pos_markup=0, prescription_markup=0):
        return self.session.post('/api/inventory/pricing/preview/', {
            'purchase_price': str(purchase_price),
            'units_per_purchase': units_per_purchase,
            'pos_markup': str(pos_markup),
            'prescription_markup': str(prescription_markup),
        })
