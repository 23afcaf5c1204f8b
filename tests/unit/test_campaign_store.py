"""
Unit tests for the campaign stores (in-memory and SQLite-backed).
"""
import pytest
from sqlalchemy.orm import sessionmaker

from campaign_engine.lib.db import build_engine, drop_db, init_db
from campaign_engine.lib.errors import CampaignNotFoundError, CampaignValidationError, StaleCampaignError
from campaign_engine.models.campaign import CampaignCategory, CampaignStatus
from campaign_engine.services.campaign_store import (
    CampaignFilter,
    InMemoryCampaignStore,
    SqlCampaignStore,
    apply_patch,
)


@pytest.fixture
def sql_store(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'campaigns.db'}")
    init_db(engine)
    yield SqlCampaignStore(sessionmaker(bind=engine, expire_on_commit=False))
    drop_db(engine)
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def any_store(request, sql_store):
    if request.param == "memory":
        return InMemoryCampaignStore()
    return sql_store


@pytest.mark.unit
def test_create_assigns_id_and_timestamps(any_store, make_campaign):
    created = any_store.create(make_campaign())

    assert created.id
    assert created.created_at is not None
    assert created.updated_at == created.created_at


@pytest.mark.unit
def test_get_returns_stored_campaign(any_store, make_campaign):
    created = any_store.create(make_campaign(target_audience={"regionIds": ["r1"]}))

    fetched = any_store.get(created.id)

    assert fetched == created
    assert fetched.target_audience.region_ids == frozenset({"r1"})


@pytest.mark.unit
def test_get_missing_raises(any_store):
    with pytest.raises(CampaignNotFoundError):
        any_store.get("missing")


@pytest.mark.unit
def test_update_applies_patch_and_bumps_timestamp(any_store, make_campaign):
    created = any_store.create(make_campaign())

    updated = any_store.update(created.id, {"title": "Renamed", "followUpStrategy": "ai_paced"})

    assert updated.title == "Renamed"
    assert updated.follow_up_strategy.value == "ai_paced"
    assert updated.updated_at > created.updated_at
    assert any_store.get(created.id).title == "Renamed"


@pytest.mark.unit
def test_update_rejects_invalid_values(any_store, make_campaign):
    created = any_store.create(make_campaign())

    with pytest.raises(CampaignValidationError):
        any_store.update(created.id, {"category": "gossip"})

    assert any_store.get(created.id).category == CampaignCategory.MORALE


@pytest.mark.unit
def test_update_missing_raises(any_store):
    with pytest.raises(CampaignNotFoundError):
        any_store.update("missing", {"title": "x"})


@pytest.mark.unit
def test_delete(any_store, make_campaign):
    created = any_store.create(make_campaign())

    any_store.delete(created.id)

    with pytest.raises(CampaignNotFoundError):
        any_store.get(created.id)
    with pytest.raises(CampaignNotFoundError):
        any_store.delete(created.id)


@pytest.mark.unit
def test_list_filters(any_store, make_campaign):
    first = any_store.create(make_campaign(tenant_id="t1", category="sales"))
    any_store.create(make_campaign(tenant_id="t2"))
    any_store.create(make_campaign(tenant_id="t1", template=True))

    assert len(any_store.list()) == 3
    assert [c.id for c in any_store.list(CampaignFilter(tenant_id="t1", template=False))] == [first.id]
    assert len(any_store.list(CampaignFilter(category=CampaignCategory.SALES))) == 1
    assert any_store.list(CampaignFilter(status=CampaignStatus.ACTIVE)) == []


@pytest.mark.unit
def test_save_writes_back_full_value(any_store, make_campaign):
    created = any_store.create(make_campaign())

    saved = any_store.save(created.with_changes(status=CampaignStatus.ACTIVE, occurrences_fired=2))

    assert saved.id == created.id
    assert any_store.get(created.id).occurrences_fired == 2
    assert any_store.list(CampaignFilter(status=CampaignStatus.ACTIVE))[0].id == created.id


@pytest.mark.unit
def test_save_from_stale_copy_is_rejected(any_store, make_campaign):
    created = any_store.create(make_campaign())
    any_store.update(created.id, {"status": "paused"})

    with pytest.raises(StaleCampaignError) as exc_info:
        any_store.save(created.with_changes(status=CampaignStatus.ACTIVE, occurrences_fired=1))

    assert exc_info.value.campaign_id == created.id
    stored = any_store.get(created.id)
    assert stored.status == CampaignStatus.PAUSED
    assert stored.occurrences_fired == 0


@pytest.mark.unit
def test_successive_saves_of_fresh_copies(any_store, make_campaign):
    campaign = any_store.create(make_campaign())

    for count in (1, 2, 3):
        campaign = any_store.save(campaign.with_changes(occurrences_fired=count))

    assert any_store.get(campaign.id).occurrences_fired == 3


@pytest.mark.unit
def test_update_with_expected_version(any_store, make_campaign):
    created = any_store.create(make_campaign())

    updated = any_store.update(created.id, {"title": "A"}, expected_updated_at=created.updated_at)

    with pytest.raises(StaleCampaignError):
        any_store.update(created.id, {"title": "B"}, expected_updated_at=created.updated_at)
    assert any_store.get(created.id).title == updated.title == "A"

@pytest.mark.unit
def test_apply_patch_ignores_identity_fields(make_campaign):
    campaign = make_campaign().with_changes(id="c1")

    patched = apply_patch(campaign, {"id": "c2", "createdAt": None, "objective": "New"})

    assert patched.id == "c1"
    assert patched.objective == "New"
