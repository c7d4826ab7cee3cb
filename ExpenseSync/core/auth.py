"""
Session management for the remote expense service.

The :class:`AuthManager` signs users in and out, persists the session in the
local store and hands out the per-session :class:`~ExpenseSync.core.client.ApiClient`
that the sync coordinator uses for remote calls.
"""

import logging
import threading
from typing import Any, Dict, Optional

from . import storage
from .client import ApiClient
from .model import AuthSession, User
from ..settings import lib
from ..status import status


class AuthExpiredError(Exception):
    """Raised when no session exists and the user must sign in."""
    pass


class AuthManager:
    """Manages the authenticated session and its API client."""

    def __init__(self):
        self._lock = threading.Lock()
        self._session: Optional[AuthSession] = None
        self._client: Optional[ApiClient] = None

    @property
    def session(self) -> Optional[AuthSession]:
        return self._session

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    def anonymous_client(self) -> ApiClient:
        """Client without credentials, used by the auth endpoints."""
        return ApiClient(lib.settings.server_url, timeout=lib.settings.timeout)

    def client(self) -> ApiClient:
        """
        Return the API client of the current session.

        Raises:
            AuthExpiredError: If there is no session.
        """
        with self._lock:
            if self._session is None:
                raise AuthExpiredError('No session; sign in required')
            if self._client is None or self._client.token != self._session.token:
                self._client = ApiClient(lib.settings.server_url, token=self._session.token,
                                         timeout=lib.settings.timeout)
            return self._client

    def _start_session(self, session: AuthSession) -> AuthSession:
        storage.storage.set_session(session)
        with self._lock:
            self._session = session
            if self._client:
                self._client.close()
            self._client = None
        logging.info(f'Signed in as {session.user.email}')

        from .signals import signals
        signals.sessionChanged.emit(session)
        return session

    def login(self, email: str, password: str) -> AuthSession:
        """
        Sign in and persist the session.

        Raises:
            status.NotAuthenticatedException: If the credentials are rejected.
            status.ServiceUnavailableException: If the service cannot be reached.
        """
        if not email or not password:
            raise status.NotAuthenticatedException('Email and password are required.')
        try:
            session = self.anonymous_client().login(email.strip(), password)
        except status.RequestInvalidException as ex:
            raise status.NotAuthenticatedException(ex.detail) from ex
        return self._start_session(session)

    def register(self, name: str, email: str, password: str) -> AuthSession:
        """
        Create an account and sign in with it.

        Raises:
            status.RequestInvalidException: If the account exists or fields are missing.
            status.ServiceUnavailableException: If the service cannot be reached.
        """
        if not name or not email or not password:
            raise status.RequestInvalidException('Name, email and password are required.')
        session = self.anonymous_client().register(name.strip(), email.strip(), password)
        return self._start_session(session)

    def reset_password(self, email: str) -> Dict[str, Any]:
        """Request a password reset for email.

        Raises:
            status.NotFoundException: If no user has this email.
        """
        if not email:
            raise status.RequestInvalidException('Email is required.')
        return self.anonymous_client().reset_password(email.strip())

    def logout(self) -> None:
        """Forget the session locally. The local expense collection is kept."""
        storage.storage.clear_session()
        with self._lock:
            self._session = None
            if self._client:
                self._client.close()
            self._client = None
        logging.info('Signed out.')

        from .signals import signals
        signals.sessionChanged.emit(None)

    def restore(self) -> Optional[AuthSession]:
        """Load a previously persisted session from the local store."""
        session = storage.storage.get_session()
        with self._lock:
            self._session = session
            self._client = None
        if session:
            logging.debug(f'Restored session for {session.user.email}')
            from .signals import signals
            signals.sessionChanged.emit(session)
        return session

    def me(self) -> User:
        """
        Verify the session token with the service.

        A rejected token clears the session so the user has to sign in again.

        Raises:
            AuthExpiredError: If there is no session.
            status.NotAuthenticatedException: If the token was rejected.
        """
        client = self.client()
        try:
            user = client.me()
        except status.NotAuthenticatedException:
            logging.warning('Session token was rejected, signing out.')
            self.logout()
            raise

        # Keep the stored profile in step with the service
        if self._session and user.to_dict() != self._session.user.to_dict():
            self._start_session(AuthSession(user=user, token=self._session.token))
        return user


auth_manager = AuthManager()
