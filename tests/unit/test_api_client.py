"""
Unit tests for the proposals API client with a mocked requests session.
"""

from unittest.mock import Mock

import pytest
import requests

from proposaldesk.client.api_client import ProposalApiClient
from proposaldesk.exceptions import (
    BusinessLogicError, NotFoundError, TransientIOError, UnauthorizedError, ValidationError
)


def make_response(status_code=200, body=None):
    response = Mock()
    response.status_code = status_code
    response.reason = 'OK' if status_code < 400 else 'Error'
    if body is None:
        response.json.side_effect = ValueError('no json')
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def http():
    return Mock(spec=requests.Session)


@pytest.fixture
def api(http):
    return ProposalApiClient('https://proposals.test/', http=http, timeout=5)


def test_check_draft_found(api, http):
    http.request.return_value = make_response(200, {
        'success': True, 'found': True, 'draft': {'id': 3, 'proposalNumber': 'PRO-10003'}
    })

    assert api.check_draft('jane@example.com') == {'id': 3, 'proposalNumber': 'PRO-10003'}
    http.request.assert_called_once_with(
        'GET', 'https://proposals.test/api/proposals/check-draft',
        timeout=5, params={'email': 'jane@example.com'}
    )


def test_check_draft_not_found(api, http):
    http.request.return_value = make_response(200, {'success': True, 'found': False, 'draft': None})
    assert api.check_draft('jane@example.com') is None


def test_save_proposal_maps_response(api, http):
    http.request.return_value = make_response(200, {
        'success': True, 'proposalId': 8, 'proposalNumber': 'PRO-10008', 'isDuplicate': True
    })

    result = api.save_proposal({'customer': {}})

    assert result == {'proposalId': 8, 'proposalNumber': 'PRO-10008', 'isDuplicate': True}
    assert http.request.call_args.kwargs['json'] == {'customer': {}}


@pytest.mark.parametrize('error', [requests.ConnectionError('refused'), requests.Timeout('slow')])
def test_network_errors_are_transient(api, http, error):
    http.request.side_effect = error
    with pytest.raises(TransientIOError):
        api.save_proposal({})


def test_server_errors_are_transient(api, http):
    http.request.return_value = make_response(503)
    with pytest.raises(TransientIOError):
        api.check_draft('jane@example.com')


@pytest.mark.parametrize('status_code,expected', [
    (400, ValidationError),
    (401, UnauthorizedError),
    (404, NotFoundError),
    (409, BusinessLogicError),
])
def test_client_errors_keep_server_message(api, http, status_code, expected):
    http.request.return_value = make_response(status_code, {'success': False, 'error': 'nope'})

    with pytest.raises(expected) as exc_info:
        api.save_proposal({})

    assert exc_info.value.message == 'nope'
    assert exc_info.value.status_code == status_code
