"""
Emergency contact endpoints
===========================

GET    /api/v1/contacts              -- caller's contacts by priority
POST   /api/v1/contacts              -- add a contact
PATCH  /api/v1/contacts/{contact_id} -- change a contact
DELETE /api/v1/contacts/{contact_id} -- remove a contact
"""

from fastapi import APIRouter, Depends, Request, Response

from saferide.api.dependencies import get_contact_service
from saferide.api.middleware import limiter
from saferide.api.schemas import ContactCreateRequest, ContactResponse, ContactUpdateRequest
from saferide.config import settings
from saferide.services.contacts import EmergencyContactService

router = APIRouter(prefix="/contacts", tags=["contacts"])


@router.get("", response_model=list[ContactResponse], summary="List emergency contacts")
@limiter.limit(settings.rate_limit)
async def list_contacts(
    request: Request,
    service: EmergencyContactService = Depends(get_contact_service),
):
    return [ContactResponse.from_entity(c) for c in await service.list_contacts()]


@router.post(
    "",
    status_code=201,
    response_model=ContactResponse,
    summary="Add an emergency contact",
    description="Without a priority the contact goes after the existing ones.",
)
@limiter.limit(settings.rate_limit)
async def add_contact(
    request: Request,
    body: ContactCreateRequest,
    service: EmergencyContactService = Depends(get_contact_service),
):
    contact = await service.add_contact(
        body.name, body.phone, body.relationship, priority=body.priority
    )
    return ContactResponse.from_entity(contact)


@router.patch(
    "/{contact_id}",
    response_model=ContactResponse,
    summary="Update an emergency contact",
)
@limiter.limit(settings.rate_limit)
async def update_contact(
    request: Request,
    contact_id: str,
    body: ContactUpdateRequest,
    service: EmergencyContactService = Depends(get_contact_service),
):
    contact = await service.update_contact(
        contact_id, **body.model_dump(exclude_unset=True)
    )
    return ContactResponse.from_entity(contact)


@router.delete("/{contact_id}", status_code=204, summary="Remove an emergency contact")
@limiter.limit(settings.rate_limit)
async def remove_contact(
    request: Request,
    contact_id: str,
    service: EmergencyContactService = Depends(get_contact_service),
):
    await service.remove_contact(contact_id)
    return Response(status_code=204)
