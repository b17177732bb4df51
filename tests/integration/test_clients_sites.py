"""Integration tests for client and legacy site management."""

from __future__ import annotations

import pytest

from lukaut.clients.service import (
    ClientParams,
    count_clients,
    create_client,
    delete_client,
    get_client,
    list_clients,
    update_client,
)
from lukaut.errors import ECONFLICT, ENOTFOUND, LukautError, ValidationError
from lukaut.sites.service import SiteParams, create_site, delete_site, get_site, list_sites, update_site

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


def site_params(**overrides) -> SiteParams:
    values = {
        "name": "North Yard",
        "address_line1": "12 Quarry Ln",
        "city": "Round Rock",
        "state": "TX",
        "postal_code": "78664",
    }
    values.update(overrides)
    return SiteParams(**values)


class TestClients:
    async def test_create_cleans_fields(self, db_session, user):
        client = await create_client(
            db_session, user.id, ClientParams(name="  Acme Builders ", email="ops@acme.test", phone="")
        )

        assert client.name == "Acme Builders"
        assert client.phone is None
        assert client.user_id == user.id

    async def test_name_required(self, db_session, user):
        with pytest.raises(ValidationError) as exc_info:
            await create_client(db_session, user.id, ClientParams(name=" ", email="not-an-email"))

        assert set(exc_info.value.fields) == {"name", "email"}

    async def test_partial_update_keeps_unset_fields(self, db_session, user):
        client = await create_client(
            db_session, user.id, ClientParams(name="Acme", email="ops@acme.test", city="Austin")
        )

        updated = await update_client(db_session, client.id, user.id, ClientParams(city="", phone="555-0100"))

        assert updated.name == "Acme"
        assert updated.email == "ops@acme.test"
        assert updated.city is None
        assert updated.phone == "555-0100"

    async def test_search_and_count(self, db_session, user):
        for name, city in (("Acme", "Austin"), ("Bolt Steel", "Dallas"), ("Cobalt Roofing", "Austin")):
            await create_client(db_session, user.id, ClientParams(name=name, city=city))

        page = await list_clients(db_session, user.id, q="austin")

        assert [c.name for c in page.items] == ["Acme", "Cobalt Roofing"]
        assert page.total == 2
        assert await count_clients(db_session, user.id) == 3

    async def test_delete_unused_client(self, db_session, user):
        client = await create_client(db_session, user.id, ClientParams(name="Acme"))

        await delete_client(db_session, client.id, user.id)

        with pytest.raises(LukautError) as exc_info:
            await get_client(db_session, client.id, user.id)
        assert exc_info.value.code == ENOTFOUND

    async def test_delete_referenced_client_conflicts(self, db_session, user, make_inspection):
        client = await create_client(db_session, user.id, ClientParams(name="Acme"))
        await make_inspection(user, client_id=client.id)

        with pytest.raises(LukautError) as exc_info:
            await delete_client(db_session, client.id, user.id)
        assert exc_info.value.code == ECONFLICT

    async def test_delete_client_with_site_conflicts(self, db_session, user):
        client = await create_client(db_session, user.id, ClientParams(name="Acme"))
        await create_site(db_session, user.id, site_params(client_id=client.id))

        with pytest.raises(LukautError) as exc_info:
            await delete_client(db_session, client.id, user.id)
        assert exc_info.value.code == ECONFLICT


class TestSites:
    async def test_required_fields(self, db_session, user):
        with pytest.raises(ValidationError) as exc_info:
            await create_site(db_session, user.id, SiteParams(name="Yard"))

        assert set(exc_info.value.fields) == {"address_line1", "city", "state", "postal_code"}

    async def test_update_and_clear_client(self, db_session, user):
        client = await create_client(db_session, user.id, ClientParams(name="Acme"))
        site = await create_site(db_session, user.id, site_params(client_id=client.id))

        updated = await update_site(db_session, site.id, user.id, SiteParams(city="Austin"), clear_client=True)

        assert updated.city == "Austin"
        assert updated.name == "North Yard"
        assert updated.client_id is None

    async def test_filter_by_client(self, db_session, user):
        client = await create_client(db_session, user.id, ClientParams(name="Acme"))
        await create_site(db_session, user.id, site_params(name="A Site", client_id=client.id))
        await create_site(db_session, user.id, site_params(name="B Site"))

        page = await list_sites(db_session, user.id, client_id=client.id)

        assert [s.name for s in page.items] == ["A Site"]

    async def test_delete_detaches_inspections(self, db_session, user, make_inspection):
        site = await create_site(db_session, user.id, site_params())
        inspection = await make_inspection(user, site_id=site.id)

        await delete_site(db_session, site.id, user.id)
        await db_session.refresh(inspection)

        assert inspection.site_id is None
        with pytest.raises(LukautError):
            await get_site(db_session, site.id, user.id)
