"""AccessControl: Role-based permissions for engine operations.

Roles:
    - DEFAULT_ADMIN_ROLE: grants and revokes every role.
    - ORACLE_ADMIN_ROLE: configures sources and the emergency interval.
    - RATE_UPDATER_ROLE: runs batches and manual rate writes.

Accounts are compared case-insensitively so checksummed and lower-case
addresses name the same account.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_ROLE = "DEFAULT_ADMIN_ROLE"
ORACLE_ADMIN_ROLE = "ORACLE_ADMIN_ROLE"
RATE_UPDATER_ROLE = "RATE_UPDATER_ROLE"

ROLES = (DEFAULT_ADMIN_ROLE, ORACLE_ADMIN_ROLE, RATE_UPDATER_ROLE)


class AccessDeniedError(PermissionError):
    """Raised when an account lacks the role an operation requires."""

    def __init__(self, account: str, role: str):
        self.account = account
        self.role = role
        super().__init__(f"Account {account} is missing role {role}")


def _account_key(account: str) -> str:
    return account.strip().lower()


class AccessControl:
    """Keyed set of role members.

    :ivar admin: Initial holder of every role.
    """

    def __init__(self, admin: str) -> None:
        """Initialize with ``admin`` holding all roles.

        :param admin: Deploying or operating account.
        """
        self.admin = admin
        self._members: dict[str, set[str]] = {role: set() for role in ROLES}
        for role in ROLES:
            self._members[role].add(_account_key(admin))

    def has_role(self, role: str, account: str) -> bool:
        """Check whether ``account`` holds ``role``."""
        return _account_key(account) in self._members.get(role, set())

    def require(self, role: str, account: str) -> None:
        """Raise unless ``account`` holds ``role``.

        :raises AccessDeniedError: If the role is missing.
        """
        if not self.has_role(role, account):
            logger.warning(f"Denied {role} operation for {account}")
            raise AccessDeniedError(account, role)

    def grant_role(self, role: str, account: str, caller: str) -> None:
        """Grant ``role`` to ``account``.

        :param role: One of ROLES.
        :param account: Account receiving the role.
        :param caller: Account performing the grant (must be admin).
        :raises ValueError: If ``role`` is unknown.
        :raises AccessDeniedError: If ``caller`` is not an admin.
        """
        if role not in self._members:
            raise ValueError(f"Unknown role {role}")
        self.require(DEFAULT_ADMIN_ROLE, caller)
        key = _account_key(account)
        if key not in self._members[role]:
            self._members[role].add(key)
            logger.info(f"Granted {role} to {account}")

    def revoke_role(self, role: str, account: str, caller: str) -> None:
        """Revoke ``role`` from ``account``.

        :raises ValueError: If ``role`` is unknown.
        :raises AccessDeniedError: If ``caller`` is not an admin.
        """
        if role not in self._members:
            raise ValueError(f"Unknown role {role}")
        self.require(DEFAULT_ADMIN_ROLE, caller)
        key = _account_key(account)
        if key in self._members[role]:
            self._members[role].discard(key)
            logger.info(f"Revoked {role} from {account}")

    def members(self, role: str) -> list[str]:
        """Get the accounts holding ``role``, sorted."""
        return sorted(self._members.get(role, set()))
