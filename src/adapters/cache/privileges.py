"""
Privilege refresh adapter - Implements PrivilegeCache protocol.

Sessions are not held server-side, so there is no stored copy to patch:
refresh() re-reads the account from the directory after a grant so the
response carries the new admin flag.
"""

import logging

from src.domain.ports import Account, IdentityProvider

logger = logging.getLogger(__name__)


class AccountPrivilegeCache:
    """
    Implements PrivilegeCache protocol over an IdentityProvider.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, directory: IdentityProvider) -> None:
        self._directory = directory

    def refresh(self, account_id: str) -> Account | None:
        account = self._directory.get_account(account_id)
        if account is None:
            logger.warning("Privilege refresh found no account %s", account_id)
            return None
        logger.info("Refreshed privileges for account %s (is_admin=%s)", account_id, account.is_admin)
        return account
