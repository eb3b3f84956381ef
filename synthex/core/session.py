"""
Session Management Module
=========================

This module owns the authentication lifecycle of the Synthex client and the
identity of the current user. The SessionManager is the only component that
ever holds the session token; it hands the token to the API client and
persists it, together with the user record, as one durable record.

States:
    UNINITIALIZED -> CHECKING -> AUTHENTICATED | ANONYMOUS
    ANONYMOUS <-> AUTHENTICATED   (login / signup / logout)

An expired or rejected token is not an error the caller has to handle: the
manager silently clears the stored session and becomes ANONYMOUS.
"""

import logging
from enum import Enum
from typing import Callable, List, Optional

from .config import MIN_PASSWORD_LENGTH, SESSION_KEY
from .models import User
from .storage import LocalStore
from .synthex_api import (
    AuthRequiredError,
    SessionBusyError,
    SynthexAPI,
    SynthexError,
    ValidationError,
)
from ..utils.background_worker import BackgroundWorker

PROFILE_FIELDS = ("name", "avatar")


class SessionState(Enum):
    """Authentication lifecycle states."""
    UNINITIALIZED = "uninitialized"
    CHECKING = "checking"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


def validate_credentials(
    email: str,
    password: str,
    name: Optional[str] = None,
    signup: bool = False,
) -> None:
    """
    Check login or signup input before anything touches the network.

    Raises:
        ValidationError: With a message suitable for display
    """
    if signup:
        if not name or not email or not password:
            raise ValidationError("All fields are required")
    elif not email or not password:
        raise ValidationError("Email and password are required")

    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    if signup and "@" not in email:
        raise ValidationError("Please enter a valid email address")


class SessionManager:
    """
    Authentication lifecycle and current user.

    The manager is created once per client and passed by reference to every
    consumer that needs the user; it is never a process-wide singleton.
    Mutating operations (login, signup, update_profile) are serialized:
    callers should gate UI actions on `is_loading`, and a second call while
    one is in flight raises SessionBusyError.

    Attributes:
        state: Current SessionState
        user: The signed-in user (or the cached one while CHECKING)
        error: Last displayable error message, if any
    """

    def __init__(self, api: SynthexAPI, store: LocalStore, worker: BackgroundWorker):
        self.logger = logging.getLogger(__name__)
        self._api = api
        self._store = store
        self._worker = worker

        self.state = SessionState.UNINITIALIZED
        self.user: Optional[User] = None
        self.error: Optional[str] = None
        self._token: Optional[str] = None
        self._busy = False
        self._listeners: List[Callable[["SessionManager"], None]] = []

        self._remove_hook = api.add_auth_expired_hook(self._on_auth_expired)

    # ------------------------------------------------------------------------
    # STATE
    # ------------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    @property
    def is_loading(self) -> bool:
        """True while a mutating operation runs or the initial check is unfinished."""
        return self._busy or self.state in (SessionState.UNINITIALIZED, SessionState.CHECKING)

    def subscribe(self, listener: Callable[["SessionManager"], None]) -> Callable[[], None]:
        """Call `listener(session)` on every state change; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def clear_error(self) -> None:
        self.error = None
        self._notify()

    # ------------------------------------------------------------------------
    # STARTUP
    # ------------------------------------------------------------------------

    def load_persisted(self) -> Optional[User]:
        """
        Restore the stored {token, user} record.

        With no usable record the state becomes ANONYMOUS. Otherwise the
        state becomes CHECKING and the cached user is available immediately,
        before the token has been validated.
        """
        record = self._store.read(SESSION_KEY)
        token = record.get("token") if isinstance(record, dict) else None

        if not token:
            self.logger.info("No stored session found")
            if record is not None:
                self._store.remove(SESSION_KEY)
            self._set_anonymous()
            return None

        try:
            user = User.from_dict(record["user"]) if record.get("user") else None
        except (KeyError, TypeError, ValueError) as e:
            self.logger.warning(f"Stored user record is invalid, it will be refreshed: {e}")
            user = None

        self._token = token
        self._api.set_token(token)
        self.user = user
        self.state = SessionState.CHECKING
        self.logger.info("Restored stored session, validation pending")
        self._notify()
        return user

    async def validate(self, token: Optional[str] = None) -> bool:
        """
        Check a token against the identity endpoint.

        Any failure (expired or invalid token, network error) clears the
        stored session and leaves the manager ANONYMOUS. Failures are not
        raised.

        Returns:
            True if the session is authenticated
        """
        if token is not None and token != self._token:
            self._token = token
            self._api.set_token(token)

        if self._token is None:
            self._set_anonymous()
            return False

        checked_token = self._token
        if self.state is not SessionState.AUTHENTICATED:
            self.state = SessionState.CHECKING
            self._notify()

        try:
            user = await self._api.auth.me()
        except SynthexError as e:
            if self._token != checked_token:
                # Superseded by a login or logout while checking
                return self.is_authenticated
            self.logger.info(f"Stored session rejected, continuing anonymously: {e}")
            self._clear_session()
            return False

        if self._token != checked_token:
            return self.is_authenticated

        self.user = user
        self._persist()
        self.state = SessionState.AUTHENTICATED
        self.logger.info(f"Session validated for {user.email}")
        self._notify()
        return True

    async def initialize(self) -> bool:
        """Restore the stored session and validate it if one was found."""
        self.load_persisted()
        if self._token is None:
            return False
        return await self.validate()

    # ------------------------------------------------------------------------
    # MUTATING OPERATIONS
    # ------------------------------------------------------------------------

    async def login(self, email: str, password: str) -> User:
        """
        Sign in.

        Input is validated first; invalid input raises ValidationError
        before any request is made.

        Raises:
            ValidationError: Invalid input (no network call)
            SessionBusyError: Another mutating operation is in flight
            SynthexAPIError: The server rejected or could not process the login
        """
        self._begin_mutation()
        try:
            self._check(lambda: validate_credentials(email, password))
            result = await self._call_remote(self._api.auth.login(email, password), "login")
            self._establish(result["token"], result["user"])
            return result["user"]
        finally:
            self._end_mutation()

    async def signup(self, name: str, email: str, password: str) -> User:
        """
        Create an account and sign in.

        Raises:
            ValidationError: Invalid input (no network call)
            SessionBusyError: Another mutating operation is in flight
            SynthexAPIError: The server rejected the signup
        """
        self._begin_mutation()
        try:
            self._check(lambda: validate_credentials(email, password, name=name, signup=True))
            result = await self._call_remote(self._api.auth.signup(name, email, password), "signup")
            self._establish(result["token"], result["user"])
            return result["user"]
        finally:
            self._end_mutation()

    async def update_profile(self, **changes) -> User:
        """
        Update the user's profile (name, avatar).

        Not optimistic: the stored user is replaced only with the record the
        server confirms.

        Raises:
            AuthRequiredError: The session is not authenticated
            ValidationError: Unknown profile fields
            SessionBusyError: Another mutating operation is in flight
            SynthexAPIError: The server rejected the update
        """
        if not self.is_authenticated:
            raise AuthRequiredError("You must be signed in to update your profile")

        self._begin_mutation()
        try:
            unknown = set(changes) - set(PROFILE_FIELDS)
            self._check(lambda: self._reject_fields(unknown))
            user = await self._call_remote(self._api.auth.update_profile(**changes), "profile update")
            if not self.is_authenticated:
                # Logged out while the update was in flight
                return user
            self.user = user
            self._persist()
            self.logger.info("Profile updated")
            self._notify()
            return user
        finally:
            self._end_mutation()

    def logout(self) -> None:
        """
        Sign out.

        Local state is cleared synchronously; the server is told in the
        background and its failure never blocks the local cleanup.
        """
        had_token = self._token is not None
        token = self._token
        self._clear_session()
        self.logger.info("Logged out")

        if had_token:
            self._worker.submit(self._remote_logout, token)

    def close(self) -> None:
        """Detach from the API client. The stored session is kept."""
        if self._remove_hook is not None:
            self._remove_hook()
            self._remove_hook = None
        self._listeners.clear()

    # ------------------------------------------------------------------------
    # INTERNALS
    # ------------------------------------------------------------------------

    def _begin_mutation(self) -> None:
        if self._busy:
            raise SessionBusyError("Another session operation is already in progress")
        self._busy = True
        self.error = None
        self._notify()

    def _end_mutation(self) -> None:
        self._busy = False
        self._notify()

    def _check(self, validator: Callable[[], None]) -> None:
        try:
            validator()
        except ValidationError as e:
            self.error = str(e)
            raise

    async def _call_remote(self, call, action: str):
        try:
            return await call
        except SynthexError as e:
            self.error = str(e) or f"An error occurred during {action}"
            self.logger.warning(f"Remote {action} failed: {self.error}")
            raise

    @staticmethod
    def _reject_fields(unknown) -> None:
        if unknown:
            raise ValidationError(f"Unknown profile field(s): {', '.join(sorted(unknown))}")

    def _establish(self, token: str, user: User) -> None:
        self._token = token
        self._api.set_token(token)
        self.user = user
        # Token and user are written as one record, in one atomic write
        self._persist()
        self.state = SessionState.AUTHENTICATED
        self.logger.info(f"Signed in as {user.email}")
        self._notify()

    def _persist(self) -> None:
        self._store.write(SESSION_KEY, {
            "token": self._token,
            "user": self.user.to_dict() if self.user else None,
        })

    def _clear_session(self) -> None:
        self._store.remove(SESSION_KEY)
        self._token = None
        self._api.set_token(None)
        self.user = None
        self._set_anonymous()

    def _set_anonymous(self) -> None:
        self.state = SessionState.ANONYMOUS
        self._notify()

    def _on_auth_expired(self) -> None:
        if self._token is None:
            return
        self.logger.info("Session token expired, signing out locally")
        self._clear_session()

    async def _remote_logout(self, token: str) -> None:
        # The API token was already cleared; send the old one explicitly
        try:
            await self._api.auth.logout(token)
        except SynthexError as e:
            self.logger.info(f"Remote logout failed (ignored): {e}")

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                self.logger.error(f"Session listener failed: {e}", exc_info=True)
