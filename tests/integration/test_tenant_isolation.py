"""Every lookup is scoped to the owning account.

Another user's records behave exactly like missing ones.
"""

from __future__ import annotations

import pytest

from lukaut.clients.service import ClientParams, create_client, delete_client, get_client, update_client
from lukaut.errors import ENOTFOUND, LukautError
from lukaut.images.service import delete_image, get_image, list_images, upload_image
from lukaut.inspections.service import (
    InspectionParams,
    delete_inspection,
    get_inspection,
    list_inspections,
    update_inspection,
)
from lukaut.sites.service import SiteParams, create_site, delete_site, get_site, list_sites, update_site
from lukaut.violations.service import (
    ViolationParams,
    batch_update_status,
    create_violation,
    delete_violation,
    get_violation,
    list_violations,
    update_violation,
    update_violation_status,
)

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


async def assert_not_found(awaitable):
    with pytest.raises(LukautError) as exc_info:
        await awaitable
    assert exc_info.value.code == ENOTFOUND


async def test_inspection_hidden(db_session, make_user, make_inspection):
    owner = await make_user("owner@example.com")
    intruder = await make_user("intruder@example.com")
    inspection = await make_inspection(owner)

    await assert_not_found(get_inspection(db_session, inspection.id, intruder.id))
    await assert_not_found(update_inspection(db_session, inspection.id, intruder.id, InspectionParams(title="Mine")))
    await assert_not_found(delete_inspection(db_session, inspection.id, intruder.id))

    page = await list_inspections(db_session, intruder.id)
    assert page.total == 0


async def test_client_hidden(db_session, make_user):
    owner = await make_user("owner@example.com")
    intruder = await make_user("intruder@example.com")
    client = await create_client(db_session, owner.id, ClientParams(name="Acme"))

    await assert_not_found(get_client(db_session, client.id, intruder.id))
    await assert_not_found(update_client(db_session, client.id, intruder.id, ClientParams(name="Mine")))
    await assert_not_found(delete_client(db_session, client.id, intruder.id))

    assert (await get_client(db_session, client.id, owner.id)).name == "Acme"


async def test_cannot_attach_foreign_client(db_session, make_user, make_inspection):
    owner = await make_user("owner@example.com")
    intruder = await make_user("intruder@example.com")
    client = await create_client(db_session, owner.id, ClientParams(name="Acme"))

    await assert_not_found(make_inspection(intruder, client_id=client.id))


async def test_violation_hidden(db_session, make_user, make_inspection):
    owner = await make_user("owner@example.com")
    intruder = await make_user("intruder@example.com")
    inspection = await make_inspection(owner)
    violation = await create_violation(
        db_session, inspection.id, owner.id, ViolationParams(description="Missing guardrail", severity="serious")
    )

    await assert_not_found(get_violation(db_session, violation.id, intruder.id))
    await assert_not_found(update_violation_status(db_session, violation.id, intruder.id, "confirmed"))
    await assert_not_found(
        update_violation(db_session, violation.id, intruder.id, ViolationParams(description="Nothing to see"))
    )
    await assert_not_found(batch_update_status(db_session, inspection.id, intruder.id, [violation.id], "confirmed"))
    await assert_not_found(delete_violation(db_session, violation.id, intruder.id))
    await assert_not_found(list_violations(db_session, inspection.id, intruder.id))

    kept = await get_violation(db_session, violation.id, owner.id)
    assert kept.description == "Missing guardrail"
    assert kept.status == "pending"


async def test_image_hidden(db_session, storage, make_user, make_inspection, png_bytes):
    owner = await make_user("owner@example.com")
    intruder = await make_user("intruder@example.com")
    inspection = await make_inspection(owner)
    image = await upload_image(db_session, inspection.id, owner.id, "deck.png", png_bytes)

    await assert_not_found(get_image(db_session, image.id, intruder.id))
    await assert_not_found(upload_image(db_session, inspection.id, intruder.id, "x.png", png_bytes))
    await assert_not_found(delete_image(db_session, inspection.id, image.id, intruder.id))
    await assert_not_found(list_images(db_session, inspection.id, intruder.id))

    assert (await get_image(db_session, image.id, owner.id)).id == image.id
    assert await storage.exists(image.storage_key)


async def test_site_hidden(db_session, make_user):
    owner = await make_user("owner@example.com")
    intruder = await make_user("intruder@example.com")
    site = await create_site(
        db_session,
        owner.id,
        SiteParams(name="North Yard", address_line1="9 Quarry Ln", city="Austin", state="TX", postal_code="78702"),
    )

    await assert_not_found(get_site(db_session, site.id, intruder.id))
    await assert_not_found(update_site(db_session, site.id, intruder.id, SiteParams(name="Mine")))
    await assert_not_found(delete_site(db_session, site.id, intruder.id))
    assert (await list_sites(db_session, intruder.id)).total == 0

    assert (await get_site(db_session, site.id, owner.id)).name == "North Yard"


async def test_cannot_attach_foreign_site(db_session, make_user, make_inspection):
    owner = await make_user("owner@example.com")
    intruder = await make_user("intruder@example.com")
    site = await create_site(
        db_session,
        owner.id,
        SiteParams(name="North Yard", address_line1="9 Quarry Ln", city="Austin", state="TX", postal_code="78702"),
    )

    await assert_not_found(make_inspection(intruder, site_id=site.id))
