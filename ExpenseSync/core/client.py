"""HTTP client for the remote expense service.

One :class:`ApiClient` is created per authenticated session and carries that
session's bearer token. Transport and HTTP errors are mapped to status
exceptions:

    - connection errors, timeouts and 5xx: ``ServiceUnavailableException``
    - 401: ``NotAuthenticatedException``
    - 404: ``NotFoundException``
    - other 4xx: ``RequestInvalidException``
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from .model import AuthSession, DateRange, Expense, ExpenseSummary, TimeFrame, User, to_iso
from ..status import status

DEFAULT_TIMEOUT: int = 10


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason or ''
    if isinstance(body, dict):
        return str(body.get('message', ''))
    return ''


def _raise_for_status(response: requests.Response) -> None:
    """Raise the status exception matching an unsuccessful response."""
    code = response.status_code
    if code < 400:
        return

    message = _error_message(response)
    logging.debug(f'{response.url} answered {code}: {message}')

    if code == 401:
        raise status.NotAuthenticatedException(message)
    if code == 404:
        raise status.NotFoundException(message)
    if code >= 500:
        raise status.ServiceUnavailableException(f'Server error {code}. {message}'.strip())
    raise status.RequestInvalidException(message)


def _to_expense(data: Dict[str, Any]) -> Expense:
    data = dict(data)
    data['isSynced'] = True
    return Expense.from_dict(data)


class ApiClient:
    """Remote service client bound to a base URL and an optional bearer token.

    Args:
        base_url: API root, e.g. ``http://localhost:5000/api``.
        token: Bearer token of the authenticated session.
        timeout: Per-request timeout in seconds.
        session: Optional ``requests.Session`` to use, e.g. a test double.
    """

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: int = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None) -> None:
        self.base_url: str = base_url.rstrip('/')
        self.token: Optional[str] = token
        self.timeout: int = timeout

        self.session: requests.Session = session or requests.Session()
        self.session.headers.update({'Accept': 'application/json'})
        if token:
            self.session.headers.update({'Authorization': f'Bearer {token}'})

    def __repr__(self) -> str:
        return f'<ApiClient {self.base_url} authenticated={bool(self.token)}>'

    def with_token(self, token: str) -> 'ApiClient':
        """Return a new client for the same service carrying token."""
        return ApiClient(self.base_url, token=token, timeout=self.timeout)

    def close(self) -> None:
        self.session.close()

    def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            status.ServiceUnavailableException: On transport errors, timeouts or 5xx answers.
            status.NotAuthenticatedException: On 401.
            status.NotFoundException: On 404.
            status.RequestInvalidException: On any other 4xx.
        """
        url = f'{self.base_url}/{path.lstrip("/")}'
        kwargs.setdefault('timeout', self.timeout)
        logging.debug(f'{method} {url}')
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.Timeout as ex:
            raise status.ServiceUnavailableException(f'Request to {url} timed out.') from ex
        except requests.RequestException as ex:
            raise status.ServiceUnavailableException(f'Could not reach {url}: {ex}') from ex

        _raise_for_status(response)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as ex:
            raise status.ServiceUnavailableException(f'Invalid response from {url}.') from ex

    # Auth endpoints

    def _session_from(self, body: Any) -> AuthSession:
        if not isinstance(body, dict) or 'token' not in body or 'user' not in body:
            raise status.ServiceUnavailableException('Malformed authentication response.')
        return AuthSession(user=User.from_dict(body['user']), token=str(body['token']))

    def login(self, email: str, password: str) -> AuthSession:
        body = self.request('POST', '/auth/login', json={'email': email, 'password': password})
        return self._session_from(body)

    def register(self, name: str, email: str, password: str) -> AuthSession:
        body = self.request('POST', '/auth/register', json={'name': name, 'email': email, 'password': password})
        return self._session_from(body)

    def reset_password(self, email: str) -> Dict[str, Any]:
        return self.request('POST', '/auth/reset-password', json={'email': email})

    def me(self) -> User:
        return User.from_dict(self.request('GET', '/auth/me'))

    # Expense endpoints

    def get_expenses(self) -> List[Expense]:
        body = self.request('GET', '/expenses')
        return [_to_expense(item) for item in body or []]

    def get_expenses_by_date_range(self, date_range: DateRange) -> List[Expense]:
        params = {
            'startDate': to_iso(date_range.start_date),
            'endDate': to_iso(date_range.end_date),
        }
        body = self.request('GET', '/expenses/range', params=params)
        return [_to_expense(item) for item in body or []]

    def get_expenses_by_category(self, category: str) -> List[Expense]:
        body = self.request('GET', f'/expenses/category/{requests.utils.quote(category, safe="")}')
        return [_to_expense(item) for item in body or []]

    def create_expense(self, expense: Expense) -> Expense:
        """Create expense remotely and return the confirmed record with the server id."""
        return _to_expense(self.request('POST', '/expenses', json=expense.payload()))

    def update_expense(self, expense_id: str, changes: Dict[str, Any]) -> Expense:
        return _to_expense(self.request('PUT', f'/expenses/{expense_id}', json=changes))

    def delete_expense(self, expense_id: str) -> Dict[str, Any]:
        return self.request('DELETE', f'/expenses/{expense_id}')

    def get_summary(self, time_frame: TimeFrame) -> ExpenseSummary:
        body = self.request('GET', '/expenses/summary', params={'timeFrame': str(time_frame)})
        return ExpenseSummary(
            total_amount=float(body.get('totalAmount', 0.0)),
            category_breakdown={k: float(v) for k, v in body.get('categoryBreakdown', {}).items()},
            time_frame=TimeFrame(body.get('timeFrame', str(time_frame))),
        )
