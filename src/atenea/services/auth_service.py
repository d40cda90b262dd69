from __future__ import annotations

import logging
from typing import Optional

from atenea.domain.errors import AuthorizationError
from atenea.domain.models import Identity

log = logging.getLogger(__name__)

ROLES = {"owner", "accountant"}
DEFAULT_ROLE = "owner"

PERMISSIONS: dict[str, set[str]] = {
    "create_sale": {"owner"},
    "delete_sale": {"owner"},
    "manage_inventory": {"owner"},
    "manage_clients": {"owner"},
    "import_excel": {"owner"},
    "manage_expenses": {"owner"},
    "export_report": {"owner", "accountant"},
}


def can(identity: Identity, action: str) -> bool:
    allowed_roles = PERMISSIONS.get(action)
    if not allowed_roles:
        return False
    return identity.role in allowed_roles


def ensure_allowed(identity: Optional[Identity], action: str) -> None:
    """No identity means a local single-user session, which acts as owner."""
    if identity is None:
        return
    if not can(identity, action):
        log.warning("action_denied user_id=%s role=%s action=%s", identity.user_id, identity.role, action)
        raise AuthorizationError(f"Role '{identity.role}' is not allowed to perform '{action}'.")


class AuthService:
    def __init__(self, repo):
        self.repo = repo

    def identity_for(self, user_id: str) -> Identity:
        user_id = (user_id or "").strip()
        if not user_id:
            raise AuthorizationError("User id is required.")
        role = (self.repo.get_profile_role(user_id) or DEFAULT_ROLE).strip().lower()
        if role not in ROLES:
            raise AuthorizationError(f"Unknown role '{role}'.")
        return Identity(user_id=user_id, role=role)

    def can(self, identity: Identity, action: str) -> bool:
        return can(identity, action)

    def require_action(self, identity: Identity, action: str) -> None:
        ensure_allowed(identity, action)
