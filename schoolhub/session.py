import threading
import time


class SessionState:
    """Holds the user signed in through the login endpoint for one app instance.

    Tokens revoked by logout are remembered until their own expiry.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._user_id: str | None = None
        self._token_id: str | None = None
        self._token_expires_at: int = 0
        self._revoked: dict[str, int] = {}

    @property
    def user_id(self) -> str | None:
        with self._lock:
            return self._user_id

    def sign_in(self, user_id: str, *, token_id: str | None = None, expires_at: int = 0) -> None:
        with self._lock:
            self._user_id = user_id
            self._token_id = token_id
            self._token_expires_at = expires_at

    def sign_out(self) -> str | None:
        with self._lock:
            previous, self._user_id = self._user_id, None
            if self._token_id:
                self._revoked[self._token_id] = self._token_expires_at
            self._token_id = None
            return previous

    def revoke(self, token_id: str, expires_at: int) -> None:
        with self._lock:
            self._revoked[token_id] = expires_at

    def is_revoked(self, token_id: str) -> bool:
        now = int(time.time())
        with self._lock:
            self._revoked = {jti: exp for jti, exp in self._revoked.items() if exp > now}
            return token_id in self._revoked
