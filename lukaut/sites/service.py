"""Legacy site records.

New inspections carry their own address; sites remain for accounts that
created them before that change. Deleting a site detaches (rather than
deletes) the inspections that reference it.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from uuid import UUID

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from lukaut.clients.service import get_client
from lukaut.db.models import InspectionModel, SiteModel
from lukaut.errors import ValidationError, not_found
from lukaut.models import DEFAULT_PAGE_SIZE, Page
from lukaut.utils.validation import clean, length_error, required_error

logger = structlog.get_logger(__name__)

MAX_NAME_LENGTH = 200


@dataclass(slots=True)
class SiteParams:
    """Site fields from a form. None on update keeps the stored value."""

    name: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    notes: str | None = None
    client_id: UUID | None = None


_REQUIRED = {
    "name": "Name",
    "address_line1": "Address",
    "city": "City",
    "state": "State",
    "postal_code": "Postal code",
}


def _validate(params: SiteParams, partial: bool, op: str) -> None:
    fields: dict[str, str] = {}
    for name, label in _REQUIRED.items():
        value = getattr(params, name)
        if partial and value is None:
            continue
        max_length = MAX_NAME_LENGTH if name == "name" else None
        if err := required_error(value, label, max_length=max_length):
            fields[name] = err
    if err := length_error(clean(params.postal_code), "Postal code", 20):
        fields.setdefault("postal_code", err)
    if fields:
        raise ValidationError(fields, op=op)


async def get_site(session: AsyncSession, site_id: UUID, user_id: UUID) -> SiteModel:
    result = await session.execute(
        select(SiteModel).where(SiteModel.id == site_id, SiteModel.user_id == user_id)
    )
    site = result.scalar_one_or_none()
    if site is None:
        raise not_found("Site", site_id, op="sites.get")
    return site


async def create_site(session: AsyncSession, user_id: UUID, params: SiteParams) -> SiteModel:
    _validate(params, partial=False, op="sites.create")
    if params.client_id is not None:
        await get_client(session, params.client_id, user_id)

    values = {
        f.name: clean(getattr(params, f.name))
        for f in dataclasses.fields(params)
        if f.name != "client_id"
    }
    site = SiteModel(user_id=user_id, client_id=params.client_id, **values)
    session.add(site)
    await session.flush()
    logger.info("site_created", site_id=str(site.id), user_id=str(user_id))
    return site


async def update_site(
    session: AsyncSession,
    site_id: UUID,
    user_id: UUID,
    params: SiteParams,
    clear_client: bool = False,
) -> SiteModel:
    _validate(params, partial=True, op="sites.update")
    site = await get_site(session, site_id, user_id)
    if params.client_id is not None:
        await get_client(session, params.client_id, user_id)
        site.client_id = params.client_id
    elif clear_client:
        site.client_id = None

    for f in dataclasses.fields(params):
        if f.name == "client_id":
            continue
        value = getattr(params, f.name)
        if value is not None:
            setattr(site, f.name, clean(value))
    await session.flush()
    logger.info("site_updated", site_id=str(site_id), user_id=str(user_id))
    return site


async def delete_site(session: AsyncSession, site_id: UUID, user_id: UUID) -> None:
    site = await get_site(session, site_id, user_id)
    await session.execute(
        update(InspectionModel)
        .where(InspectionModel.site_id == site_id, InspectionModel.user_id == user_id)
        .values(site_id=None)
    )
    await session.delete(site)
    await session.flush()
    logger.info("site_deleted", site_id=str(site_id), user_id=str(user_id))


async def list_sites(
    session: AsyncSession,
    user_id: UUID,
    page: int = 1,
    q: str | None = None,
    client_id: UUID | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Page[SiteModel]:
    conditions = [SiteModel.user_id == user_id]
    if client_id is not None:
        conditions.append(SiteModel.client_id == client_id)
    if q := clean(q):
        pattern = f"%{q.lower()}%"
        conditions.append(
            or_(
                func.lower(SiteModel.name).like(pattern),
                func.lower(SiteModel.city).like(pattern),
                func.lower(SiteModel.address_line1).like(pattern),
            )
        )

    total = await session.scalar(select(func.count()).select_from(SiteModel).where(*conditions)) or 0
    result = Page(items=[], total=total, page=page, page_size=page_size)
    rows = await session.execute(
        select(SiteModel)
        .where(*conditions)
        .order_by(SiteModel.name)
        .limit(page_size)
        .offset(result.offset)
    )
    result.items = list(rows.scalars())
    return result
