"""
CredentialStore - holds the bearer token for the request client.

Persists {token, user} to a local JSON file so a session survives restarts.
Issuing and verifying tokens is the auth server's job; this only keeps one.
"""
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

# Default credentials location
DEFAULT_CREDENTIALS_DIR = Path.home() / ".config" / "filevault"
DEFAULT_CREDENTIALS_FILE = "credentials.json"

EXPIRED_REASON = "expired"


class CredentialStore:
    """
    Bearer credential with a persisted copy.

    Lifecycle:
        store = CredentialStore()
        store.load()                 # hydrate at process start
        store.login(token, user)     # after the auth server issued a token
        store.logout()               # explicit teardown

    On HTTP 401 the request client calls expire(), which clears the token
    and notifies on_expired() listeners once. The "expired" reason is kept
    until consume_reason() reads it, so the login flow can tell the user why.
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = path or DEFAULT_CREDENTIALS_DIR / DEFAULT_CREDENTIALS_FILE
        self._token: Optional[str] = None
        self._user: Optional[Dict[str, Any]] = None
        self._reason: Optional[str] = None
        self._listeners: List[Callable[[], None]] = []

    @property
    def path(self) -> Path:
        return self._path

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def user(self) -> Optional[Dict[str, Any]]:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    def load(self) -> None:
        """Hydrate from disk. Invalid stored data is discarded."""
        if not self._path.exists():
            logger.debug("CredentialStore: no credentials at %s", self._path)
            return
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
            token = data["token"]
            if not isinstance(token, str) or not token:
                raise ValueError("token must be a non-empty string")
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("CredentialStore: invalid credentials file %s (%s), clearing", self._path, e)
            self._forget()
            return
        self._token = token
        self._user = data.get("user")
        logger.info("CredentialStore: loaded session from %s", self._path)

    def login(self, token: str, user: Optional[Dict[str, Any]] = None) -> None:
        """Store a freshly issued credential."""
        if not token:
            raise ValueError("token must not be empty")
        self._token = token
        self._user = user
        self._reason = None
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump({"token": token, "user": user}, f, indent=2)
        logger.info("CredentialStore: saved session to %s", self._path)

    def logout(self) -> None:
        self._forget()

    def expire(self) -> bool:
        """
        Clear the credential after the server rejected it.

        Returns True if this call cleared it. Concurrent 401s after the
        first one find nothing to clear and notify nobody.
        """
        if self._token is None:
            return False
        self._forget()
        self._reason = EXPIRED_REASON
        logger.warning("CredentialStore: session expired, credential cleared")
        for callback in self._listeners[:]:
            try:
                callback()
            except Exception as e:
                logger.error(f"Error in session expiry listener: {e}")
        return True

    def on_expired(self, callback: Callable[[], None]) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def consume_reason(self) -> Optional[str]:
        """Return the logout reason once, then forget it."""
        reason, self._reason = self._reason, None
        return reason

    def _forget(self) -> None:
        self._token = None
        self._user = None
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("CredentialStore: failed to remove %s: %s", self._path, e)
