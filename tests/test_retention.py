from datetime import datetime, timedelta

import pytest

from app.models.db_models import Event, Organization
from app.services.retention import retention_service


@pytest.fixture
def connector(make_connector):
    return make_connector("yolink")


def age_events(make_event, connector, ages_in_days):
    now = datetime.utcnow()
    for days in ages_in_days:
        make_event(connector, "door-1", timestamp=now - timedelta(days=days, minutes=1))


def set_policy(db_session, organization, strategy, days=None, events=None):
    organization.retention_strategy = strategy
    organization.retention_max_age_days = days
    organization.retention_max_events = events
    db_session.commit()


def remaining_ages(db_session):
    db_session.expire_all()
    now = datetime.utcnow()
    return sorted((now - e.timestamp).days for e in db_session.query(Event).all())


def test_time_strategy_deletes_old_events(db_session, organization, connector, make_event):
    set_policy(db_session, organization, "time", days=30)
    age_events(make_event, connector, [1, 10, 31, 45])

    result = retention_service.cleanup_organization_events(organization.id)

    assert result["eventsBefore"] == 4
    assert result["eventsDeleted"] == 2
    assert result["eventsAfter"] == 2
    assert result["policy"]["strategy"] == "time"
    assert remaining_ages(db_session) == [1, 10]


def test_count_strategy_keeps_newest(db_session, organization, connector, make_event, settings):
    set_policy(db_session, organization, "count", events=2)
    age_events(make_event, connector, [500, 1, 3, 2])

    result = retention_service.cleanup_organization_events(organization.id)

    assert result["eventsDeleted"] == 2
    assert remaining_ages(db_session) == [1, 2]


def test_hybrid_applies_time_then_count(db_session, organization, connector, make_event):
    set_policy(db_session, organization, "hybrid", days=30, events=2)
    age_events(make_event, connector, [1, 2, 3, 40, 50])

    result = retention_service.cleanup_organization_events(organization.id)

    assert result["eventsDeleted"] == 3
    assert remaining_ages(db_session) == [1, 2]


def test_cleanup_is_scoped_to_organization(db_session, organization, connector, make_connector, make_event):
    db_session.add(Organization(id="org-2", name="Other", slug="other"))
    db_session.commit()
    other = make_connector("genea", organization_id="org-2")
    set_policy(db_session, organization, "count", events=1)
    age_events(make_event, connector, [1, 2])
    age_events(make_event, other, [1, 2, 3])

    retention_service.cleanup_organization_events(organization.id)

    db_session.expire_all()
    assert db_session.query(Event).filter(Event.connector_id == connector.id).count() == 1
    assert db_session.query(Event).filter(Event.connector_id == other.id).count() == 3


def test_cleanup_records_last_run(db_session, organization, connector, make_event):
    set_policy(db_session, organization, "time", days=7)
    age_events(make_event, connector, [10])

    retention_service.cleanup_organization_events(organization.id)

    db_session.expire_all()
    org = db_session.query(Organization).filter(Organization.id == organization.id).one()
    assert org.last_cleanup_deleted == 1
    assert org.last_cleanup_at is not None


def test_unknown_organization():
    with pytest.raises(LookupError):
        retention_service.cleanup_organization_events("missing")


def test_preview_does_not_delete(db_session, organization, connector, make_event):
    set_policy(db_session, organization, "hybrid", days=30, events=2)
    age_events(make_event, connector, [1, 2, 3, 40, 50])

    preview = retention_service.preview_organization_cleanup(organization.id)

    assert preview["currentEventCount"] == 5
    assert preview["estimatedDeletions"] == {"byTime": 2, "byCount": 1, "total": 3}
    db_session.expire_all()
    assert db_session.query(Event).count() == 5


def test_cleanup_all_organizations(db_session, organization, connector, make_event):
    db_session.add(Organization(id="org-2", name="Empty", slug="empty"))
    db_session.commit()
    set_policy(db_session, organization, "time", days=5)
    age_events(make_event, connector, [1, 6, 7])

    summary = retention_service.cleanup_all_organizations()

    assert summary["totalOrganizations"] == 2
    assert summary["organizationsProcessed"] == 2
    assert summary["organizationsFailed"] == 0
    assert summary["totalEventsDeleted"] == 2


def test_policy_defaults_and_update(db_session, organization, settings):
    assert retention_service.get_policy(organization) == {
        "strategy": settings.default_retention_strategy,
        "maxAgeInDays": settings.default_retention_days,
        "maxEvents": settings.default_retention_max_events,
    }

    updated = retention_service.update_policy(organization.id, "count", max_events=500)
    assert updated["strategy"] == "count"
    assert updated["maxEvents"] == 500

    with pytest.raises(ValueError):
        retention_service.update_policy(organization.id, "forever")


def test_retention_stats(db_session, organization, connector, make_event):
    age_events(make_event, connector, [1, 2])

    stats = retention_service.get_retention_stats(organization.id)

    assert stats["total_events"] == 2
    assert stats["organizations"][organization.id]["eventCount"] == 2
    assert stats["oldest_event"] < stats["newest_event"]
