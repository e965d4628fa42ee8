"""Bearer-token slots for the two users of a comparison session."""

import logging

from musicmatch.domain.ports import IKeyValueStore

logger = logging.getLogger(__name__)

TOKEN_KEY_USER1 = "spotify_token_user1"
TOKEN_KEY_USER2 = "spotify_token_user2"  # nosec B105 - storage key name, not a secret
SECOND_USER_FLAG_KEY = "isSecondUser"


# Hey future me – the token ACQUISITION (OAuth redirect, URL fragment parsing) is not our job.
# Somebody hands us a token and says which slot it belongs to; from then on the library client
# asks us for the ACTIVE token. The isSecondUser flag decides which slot is active, exactly like
# the old browser flow where the flag survived the redirect to Spotify and back.
class CredentialStore:
    """Holds up to two bearer tokens and tracks which one is active."""

    def __init__(self, store: IKeyValueStore) -> None:
        self._store = store

    @staticmethod
    def _key(is_second_user: bool) -> str:
        return TOKEN_KEY_USER2 if is_second_user else TOKEN_KEY_USER1

    @property
    def is_second_user(self) -> bool:
        """True when the second user's slot is active."""
        return self._store.get(SECOND_USER_FLAG_KEY) == "true"

    def use_slot(self, is_second_user: bool) -> None:
        """Make the first or second user's token the active one."""
        self._store.set(SECOND_USER_FLAG_KEY, "true" if is_second_user else "false")

    def store_token(self, token: str, is_second_user: bool) -> None:
        """Store a freshly acquired token and activate its slot.

        Args:
            token: Bearer token obtained out-of-band
            is_second_user: Whether the token belongs to the second user
        """
        if not token:
            raise ValueError("token must not be empty")
        self._store.set(self._key(is_second_user), token)
        self.use_slot(is_second_user)
        logger.debug("Stored token for %s user", "second" if is_second_user else "first")

    def token_for(self, is_second_user: bool) -> str | None:
        """Get the token stored in a slot, if any."""
        return self._store.get(self._key(is_second_user)) or None

    @property
    def active_token(self) -> str | None:
        """Token of the active slot, or None when that user is not logged in."""
        return self.token_for(self.is_second_user)

    def is_authenticated(self) -> bool:
        """True if the active slot holds a token."""
        return self.active_token is not None

    def clear(self) -> None:
        """Forget every stored credential (both slots and the slot flag)."""
        self._store.delete(TOKEN_KEY_USER1)
        self._store.delete(TOKEN_KEY_USER2)
        self._store.delete(SECOND_USER_FLAG_KEY)
        logger.info("Cleared stored Spotify credentials")


__all__ = [
    "CredentialStore",
    "SECOND_USER_FLAG_KEY",
    "TOKEN_KEY_USER1",
    "TOKEN_KEY_USER2",
]
