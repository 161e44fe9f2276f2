"""
auth/store.py -- Credential store: the persisted session (account + access token).

Pattern: Repository + Data Mapper. CredentialStore is the only code that knows
the serialization format of the two session keys; SessionManager and the CLI
go through it and never touch LocalStorage directly for session data.

Fail-closed rules:
  - A record that does not parse, or parses into a bad account shape, is
    treated as "no session" and both keys are cleared.
  - Partial state (account without token or token without account) is also
    "no session" and is cleared.

No network calls originate here.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Optional

from auth.storage import LocalStorage
from core.config import get_settings
from core.models import Account, StoredSession

logger = logging.getLogger("jobhub.auth.store")


class CredentialStore:
    """Read/write the persisted session.

    Usage:
        store = CredentialStore(LocalStorage())
        store.save(account, "token")
        session = store.load()   # StoredSession or None
        store.clear()
    """

    def __init__(
        self,
        storage: LocalStorage,
        account_key: Optional[str] = None,
        token_key: Optional[str] = None,
    ) -> None:
        cfg = get_settings()
        self.storage = storage
        self.account_key = account_key or cfg.account_storage_key
        self.token_key = token_key or cfg.access_token_storage_key

    @property
    def session_keys(self) -> frozenset[str]:
        return frozenset({self.account_key, self.token_key})

    def save(self, account: Account, access_token: str) -> None:
        self.storage.set_items(
            {
                self.token_key: access_token,
                self.account_key: json.dumps(account.to_dict()),
            }
        )

    def save_token(self, access_token: str) -> None:
        """Replace only the access token (used after a token refresh)."""
        self.storage.set_item(self.token_key, access_token)

    def load(self) -> Optional[StoredSession]:
        raw_account = self.storage.get_item(self.account_key)
        token = self.storage.get_item(self.token_key)
        if raw_account is None and token is None:
            return None
        if raw_account is None or not token:
            logger.info("Partial session in storage; clearing")
            self.clear()
            return None
        try:
            account = Account.from_dict(json.loads(raw_account))
        except ValueError as e:
            # json.JSONDecodeError is a ValueError subclass
            logger.warning("Stored account is unreadable; clearing session: %s", e)
            self.clear()
            return None
        return StoredSession(account=account, access_token=token)

    def update_account(self, updater: Callable[[Optional[Account]], Optional[Account]]) -> Optional[Account]:
        """Apply updater to the stored account and write the result back.

        A None result removes the stored account, which ends the session on the
        next load().
        """
        current = self.load()
        updated = updater(current.account if current else None)
        if updated is None:
            self.storage.remove_item(self.account_key)
        else:
            self.storage.set_item(self.account_key, json.dumps(updated.to_dict()))
        return updated

    def clear(self) -> None:
        self.storage.remove_items([self.token_key, self.account_key])
