"""Emergency contacts, owned and mutated only by their user."""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from saferide.domain.entities import EmergencyContact
from saferide.domain.errors import ForbiddenError, NotFoundError, ValidationError
from saferide.domain.ports import ContactRepository, IdentityProvider
from .support import Clock, require_user, utcnow

logger = logging.getLogger(__name__)

_EDITABLE = ("name", "phone", "relationship", "priority")


class EmergencyContactService:
    def __init__(
        self,
        contacts: ContactRepository,
        identity: Optional[IdentityProvider],
        clock: Clock = utcnow,
    ):
        self.contacts = contacts
        self.identity = identity
        self.clock = clock

    async def list_contacts(self) -> list[EmergencyContact]:
        user_id = require_user(self.identity)
        return await self.contacts.list_for_user(user_id)

    async def add_contact(
        self,
        name: str,
        phone: str,
        relationship: str,
        priority: Optional[int] = None,
    ) -> EmergencyContact:
        user_id = require_user(self.identity)
        _validate(name=name, phone=phone, relationship=relationship, priority=priority)
        if priority is None:
            existing = await self.contacts.list_for_user(user_id)
            priority = max((c.priority for c in existing), default=0) + 1

        now = self.clock()
        contact = EmergencyContact(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=name.strip(),
            phone=phone.strip(),
            relationship=relationship.strip(),
            priority=priority,
            created_at=now,
            updated_at=now,
        )
        await self.contacts.add(contact)
        logger.info("User %s added emergency contact %s", user_id, contact.id)
        return contact

    async def update_contact(self, contact_id: str, **changes) -> EmergencyContact:
        unknown = sorted(set(changes) - set(_EDITABLE))
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(unknown)}", unknown)
        contact = await self._owned(contact_id)
        changes = {k: v for k, v in changes.items() if v is not None}
        _validate(**changes)
        for name, value in changes.items():
            setattr(contact, name, value.strip() if isinstance(value, str) else value)
        contact.updated_at = self.clock()
        return await self.contacts.update(contact)

    async def remove_contact(self, contact_id: str) -> None:
        contact = await self._owned(contact_id)
        await self.contacts.delete(contact.id)
        logger.info("User %s removed emergency contact %s", contact.user_id, contact.id)

    async def _owned(self, contact_id: str) -> EmergencyContact:
        user_id = require_user(self.identity)
        contact = await self.contacts.get(contact_id)
        if contact is None:
            raise NotFoundError(f"Contact {contact_id} not found")
        if contact.user_id != user_id:
            raise ForbiddenError("Contacts can only be changed by their owner")
        return contact


def _validate(**fields) -> None:
    blank = [
        name
        for name in ("name", "phone", "relationship")
        if name in fields and fields[name] is not None and not fields[name].strip()
    ]
    if blank:
        raise ValidationError(f"Missing required fields: {', '.join(blank)}", blank)
    priority = fields.get("priority")
    if priority is not None and priority < 1:
        raise ValidationError("priority must be 1 or greater", ["priority"])
