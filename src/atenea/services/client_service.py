from __future__ import annotations

import logging
from typing import Optional

from atenea.domain.errors import NotFoundError, ValidationError
from atenea.domain.models import Client, ClientDraft, Identity
from atenea.services.auth_service import ensure_allowed

log = logging.getLogger(__name__)


class ClientService:
    def __init__(self, repo, identity: Optional[Identity] = None):
        self.repo = repo
        self.identity = identity

    def list_clients(self) -> list[Client]:
        return self.repo.list_clients()

    def get_client(self, client_id: str) -> Client:
        client = self.repo.get_client(client_id)
        if not client:
            raise NotFoundError("Client not found.")
        return client

    def create_client(self, draft: ClientDraft) -> Client:
        ensure_allowed(self.identity, "manage_clients")
        name = (draft.name or "").strip()
        phone = (draft.phone or "").strip()
        email = (draft.email or "").strip() or None
        if not name or not phone:
            raise ValidationError("Client name and phone are required.")

        client = Client(
            id=self.repo.new_id(),
            name=name,
            phone=phone,
            email=email,
            created_at=self.repo.now_iso(),
            user_id=self.repo.user_id,
        )
        self.repo.add_client(client)
        log.info("client_created client_id=%s", client.id)
        return client
