"""HTTP client for the proposals JSON API, used by the draft scheduler."""
import logging
from typing import Any, Dict, Optional

import requests

from proposaldesk.exceptions import (
    ProposalDeskError, ValidationError, BusinessLogicError, NotFoundError,
    TransientIOError, UnauthorizedError
)

logger = logging.getLogger(__name__)


class ProposalApiClient:
    """Thin wrapper over the /api endpoints; maps failures onto the app exceptions."""

    def __init__(self, base_url: str, http: Optional[requests.Session] = None, timeout: float = 10):
        """
        Args:
            base_url: Server root, e.g. https://proposals.example.com
            http: requests session carrying the login cookie
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.http = http or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning(f"[API] {method} {path} unreachable: {e}")
            raise TransientIOError(f'Server unreachable: {e}') from e

        if response.status_code >= 500:
            logger.warning(f"[API] {method} {path} failed with {response.status_code}")
            raise TransientIOError(f'Server error {response.status_code}')

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400 or data.get('success') is False:
            raise self._error_for(response.status_code, data.get('error') or response.reason or 'Request failed')
        return data

    @staticmethod
    def _error_for(status_code: int, message: str) -> ProposalDeskError:
        if status_code == 400:
            return ValidationError(message)
        if status_code == 401:
            return UnauthorizedError(message)
        if status_code == 404:
            return NotFoundError(message)
        if status_code == 409:
            return BusinessLogicError(message, status_code=409)
        return ProposalDeskError(message, status_code)

    def check_draft(self, email: str) -> Optional[Dict[str, Any]]:
        """Return {id, proposalNumber} of a recent draft for this customer, or None."""
        data = self._request('GET', '/api/proposals/check-draft', params={'email': email})
        return data.get('draft') if data.get('found') else None

    def save_proposal(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create or update; returns {proposalId, proposalNumber, isDuplicate}."""
        data = self._request('POST', '/api/proposals', json=payload)
        return {
            'proposalId': data['proposalId'],
            'proposalNumber': data['proposalNumber'],
            'isDuplicate': bool(data.get('isDuplicate')),
        }

    def get_proposal(self, proposal_id: int) -> Dict[str, Any]:
        return self._request('GET', f'/api/proposals/{proposal_id}')['proposal']

    def update_status(self, proposal_id: int, status: str) -> Dict[str, Any]:
        return self._request('POST', f'/api/proposals/{proposal_id}/status', json={'status': status})
