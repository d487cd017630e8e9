"""
api/routes/emergency.py -- Emergency contact CRUD and the send-email action.

Routes (all require auth):
  POST   /api/emergency/             -- add a contact
  GET    /api/emergency/             -- list the caller's contacts
  GET    /api/emergency/{id}         -- one contact
  PUT    /api/emergency/{id}         -- update a contact
  DELETE /api/emergency/{id}         -- delete a contact
  POST   /api/emergency/send-email   -- email every contact that has an address

IDOR guard: every store call passes current_user.id; the store's WHERE clause
requires both the contact id and the owner to match. Another user's contact
is a 404, same as a missing one.

Every handler is a plain `def`: ContactStore and the mailer both block, so
FastAPI runs them in its threadpool.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import (
    ContactCreate,
    ContactResponse,
    ContactUpdate,
    MessageResponse,
    SendEmailRequest,
    SendEmailResponse,
)
from auth.dependencies import get_current_user
from auth.mailer import Mailer, MailError, emergency_email
from auth.models import User
from contacts.models import EmergencyContact
from contacts.store import ContactStore

logger = logging.getLogger("safehaven.emergency")

router = APIRouter()


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail={"code": "not_found", "message": "Contact not found."})


# send-email is registered before /{contact_id} so the literal path wins.
@router.post("/emergency/send-email", response_model=SendEmailResponse)
def send_emergency_email(
    request: Request,
    body: SendEmailRequest,
    current_user: User = Depends(get_current_user),
) -> SendEmailResponse:
    """Notify every contact with an email address of the caller's emergency.

    One failed delivery does not stop the rest; the counts report what happened.
    """
    contact_store: ContactStore = request.app.state.contact_store
    mailer: Mailer = request.app.state.mailer

    contacts = contact_store.list_contacts(current_user.id)
    recipients = [c for c in contacts if c.email]
    if not recipients:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_recipients", "message": "No emergency contacts with an email address."},
        )

    disaster = body.disaster.value if body.disaster else None
    sent = failed = 0
    for contact in recipients:
        subject, html = emergency_email(
            current_user.name, contact.name, body.latitude, body.longitude, disaster, body.message
        )
        try:
            mailer.send(contact.email, subject, html)
            sent += 1
        except MailError:
            failed += 1

    logger.info("Emergency email for user id=%s: sent=%d failed=%d", current_user.id, sent, failed)
    return SendEmailResponse(
        message=f"Emergency email sent to {sent} of {len(recipients)} contacts.",
        sent=sent,
        failed=failed,
        skipped=len(contacts) - len(recipients),
    )


@router.post("/emergency/", response_model=ContactResponse, status_code=201)
def create_contact(
    request: Request,
    body: ContactCreate,
    current_user: User = Depends(get_current_user),
) -> ContactResponse:
    contact_store: ContactStore = request.app.state.contact_store
    contact_id = contact_store.create_contact(
        EmergencyContact(
            user_id=current_user.id,
            name=body.name,
            phone=body.phone,
            email=body.email,
            relation=body.relation,
        )
    )
    return ContactResponse.from_contact(contact_store.get_contact(current_user.id, contact_id))


@router.get("/emergency/", response_model=list[ContactResponse])
def list_contacts(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> list[ContactResponse]:
    contact_store: ContactStore = request.app.state.contact_store
    return [ContactResponse.from_contact(c) for c in contact_store.list_contacts(current_user.id)]


@router.get("/emergency/{contact_id}", response_model=ContactResponse)
def get_contact(
    request: Request,
    contact_id: int,
    current_user: User = Depends(get_current_user),
) -> ContactResponse:
    contact_store: ContactStore = request.app.state.contact_store
    contact = contact_store.get_contact(current_user.id, contact_id)
    if contact is None:
        raise _not_found()
    return ContactResponse.from_contact(contact)


@router.put("/emergency/{contact_id}", response_model=ContactResponse)
def update_contact(
    request: Request,
    contact_id: int,
    body: ContactUpdate,
    current_user: User = Depends(get_current_user),
) -> ContactResponse:
    """Write only the fields present in the body. Sending email or relation as null clears it."""
    contact_store: ContactStore = request.app.state.contact_store
    fields = body.model_dump(exclude_unset=True)
    if not contact_store.update_contact(current_user.id, contact_id, **fields):
        raise _not_found()
    return ContactResponse.from_contact(contact_store.get_contact(current_user.id, contact_id))


@router.delete("/emergency/{contact_id}", response_model=MessageResponse)
def delete_contact(
    request: Request,
    contact_id: int,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    contact_store: ContactStore = request.app.state.contact_store
    if not contact_store.delete_contact(current_user.id, contact_id):
        raise _not_found()
    return MessageResponse(message="Contact deleted")
