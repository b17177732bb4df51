"""Client (customer) management, scoped by owning user."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from uuid import UUID

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.db.models import ClientModel, InspectionModel, SiteModel
from lukaut.errors import ValidationError, conflict, not_found
from lukaut.models import DEFAULT_PAGE_SIZE, Page
from lukaut.utils.validation import clean, email_error, length_error, required_error

logger = structlog.get_logger(__name__)

MAX_NAME_LENGTH = 255


@dataclass(slots=True)
class ClientParams:
    """Client fields from a form.

    On update, a field left as None keeps its stored value; an empty string
    clears it.
    """

    name: str | None = None
    email: str | None = None
    phone: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    notes: str | None = None


def _validate(params: ClientParams, partial: bool, op: str) -> None:
    fields: dict[str, str] = {}
    if not partial or params.name is not None:
        if err := required_error(params.name, "Name", max_length=MAX_NAME_LENGTH):
            fields["name"] = err
    if err := email_error(clean(params.email), required=False):
        fields["email"] = err
    if err := length_error(clean(params.phone), "Phone", 50):
        fields["phone"] = err
    if err := length_error(clean(params.postal_code), "Postal code", 20):
        fields["postal_code"] = err
    if fields:
        raise ValidationError(fields, op=op)


async def get_client(session: AsyncSession, client_id: UUID, user_id: UUID) -> ClientModel:
    result = await session.execute(
        select(ClientModel).where(ClientModel.id == client_id, ClientModel.user_id == user_id)
    )
    client = result.scalar_one_or_none()
    if client is None:
        raise not_found("Client", client_id, op="clients.get")
    return client


async def create_client(session: AsyncSession, user_id: UUID, params: ClientParams) -> ClientModel:
    _validate(params, partial=False, op="clients.create")
    client = ClientModel(
        user_id=user_id,
        **{f.name: clean(getattr(params, f.name)) for f in dataclasses.fields(params)},
    )
    session.add(client)
    await session.flush()
    logger.info("client_created", client_id=str(client.id), user_id=str(user_id))
    return client


async def update_client(
    session: AsyncSession, client_id: UUID, user_id: UUID, params: ClientParams
) -> ClientModel:
    _validate(params, partial=True, op="clients.update")
    client = await get_client(session, client_id, user_id)
    for f in dataclasses.fields(params):
        value = getattr(params, f.name)
        if value is not None:
            setattr(client, f.name, clean(value))
    await session.flush()
    logger.info("client_updated", client_id=str(client_id), user_id=str(user_id))
    return client


async def delete_client(session: AsyncSession, client_id: UUID, user_id: UUID) -> None:
    """Delete a client that no site or inspection references."""
    client = await get_client(session, client_id, user_id)

    site_count = await session.scalar(
        select(func.count()).select_from(SiteModel).where(SiteModel.client_id == client_id)
    )
    inspection_count = await session.scalar(
        select(func.count())
        .select_from(InspectionModel)
        .where(InspectionModel.client_id == client_id)
    )
    if site_count or inspection_count:
        raise conflict(
            "This client has sites or inspections and cannot be deleted",
            op="clients.delete",
        )

    await session.delete(client)
    await session.flush()
    logger.info("client_deleted", client_id=str(client_id), user_id=str(user_id))


async def list_clients(
    session: AsyncSession,
    user_id: UUID,
    page: int = 1,
    q: str | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Page[ClientModel]:
    """Paged listing ordered by name, optionally filtered by a search term."""
    conditions = [ClientModel.user_id == user_id]
    if q := clean(q):
        pattern = f"%{q.lower()}%"
        conditions.append(
            or_(
                func.lower(ClientModel.name).like(pattern),
                func.lower(func.coalesce(ClientModel.email, "")).like(pattern),
                func.lower(func.coalesce(ClientModel.city, "")).like(pattern),
            )
        )

    total = await session.scalar(
        select(func.count()).select_from(ClientModel).where(*conditions)
    ) or 0
    result = Page(items=[], total=total, page=page, page_size=page_size)
    rows = await session.execute(
        select(ClientModel)
        .where(*conditions)
        .order_by(ClientModel.name)
        .limit(page_size)
        .offset(result.offset)
    )
    result.items = list(rows.scalars())
    return result


async def list_all_clients(session: AsyncSession, user_id: UUID) -> list[ClientModel]:
    """Every client of the user, for select boxes."""
    rows = await session.execute(
        select(ClientModel).where(ClientModel.user_id == user_id).order_by(ClientModel.name)
    )
    return list(rows.scalars())


async def count_clients(session: AsyncSession, user_id: UUID) -> int:
    return await session.scalar(
        select(func.count()).select_from(ClientModel).where(ClientModel.user_id == user_id)
    ) or 0
