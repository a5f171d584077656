"""
Event retention service: per-organization cleanup of old events.

Strategies:
    time   - delete events older than max_age_days
    count  - keep only the newest max_events
    hybrid - apply both, time first
"""
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db_context
from app.models.db_models import Connector, Event, Organization
from app.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

BATCH_SIZE = 1000
RETENTION_STRATEGIES = ("time", "count", "hybrid")


class RetentionService:
    """Service for managing event retention and cleanup."""

    def __init__(self):
        """Initialize retention service."""
        logger.info("Initializing RetentionService")

    @staticmethod
    def get_policy(organization: Organization) -> Dict[str, Any]:
        """Effective policy of an organization, falling back to the configured defaults."""
        strategy = organization.retention_strategy or settings.default_retention_strategy
        return {
            "strategy": strategy,
            "maxAgeInDays": organization.retention_max_age_days or settings.default_retention_days,
            "maxEvents": organization.retention_max_events or settings.default_retention_max_events,
        }

    @staticmethod
    def _org_events(db: Session, organization_id: str):
        connector_ids = db.query(Connector.id).filter(Connector.organization_id == organization_id)
        return db.query(Event).filter(Event.connector_id.in_(connector_ids))

    def count_organization_events(self, db: Session, organization_id: str) -> int:
        return self._org_events(db, organization_id).count()

    def _delete_ids(self, db: Session, event_ids: List[int]) -> int:
        deleted = 0
        for start in range(0, len(event_ids), BATCH_SIZE):
            batch = event_ids[start:start + BATCH_SIZE]
            deleted += db.query(Event).filter(Event.id.in_(batch)).delete(synchronize_session=False)
        return deleted

    def _cleanup(self, db: Session, organization: Organization) -> Dict[str, Any]:
        started = time.monotonic()
        policy = self.get_policy(organization)
        events_before = self.count_organization_events(db, organization.id)
        deleted = 0

        if policy["strategy"] in ("time", "hybrid") and policy["maxAgeInDays"]:
            cutoff = datetime.utcnow() - timedelta(days=policy["maxAgeInDays"])
            old_ids = [row[0] for row in self._org_events(db, organization.id).filter(Event.timestamp < cutoff).with_entities(Event.id).all()]
            by_time = self._delete_ids(db, old_ids)
            logger.info(f"[Retention][{organization.id}] Deleted {by_time} events older than {cutoff.isoformat()}")
            deleted += by_time

        if policy["strategy"] in ("count", "hybrid") and policy["maxEvents"]:
            current = self.count_organization_events(db, organization.id)
            excess = current - policy["maxEvents"]
            if excess > 0:
                oldest_ids = [
                    row[0] for row in self._org_events(db, organization.id)
                    .order_by(Event.timestamp.asc(), Event.id.asc())
                    .with_entities(Event.id)
                    .limit(excess)
                    .all()
                ]
                by_count = self._delete_ids(db, oldest_ids)
                logger.info(f"[Retention][{organization.id}] Deleted {by_count} events over the {policy['maxEvents']} event limit")
                deleted += by_count

        organization.last_cleanup_at = datetime.utcnow()
        organization.last_cleanup_deleted = deleted
        db.commit()

        return {
            "organizationId": organization.id,
            "eventsBefore": events_before,
            "eventsDeleted": deleted,
            "eventsAfter": self.count_organization_events(db, organization.id),
            "executionTimeMs": int((time.monotonic() - started) * 1000),
            "policy": policy,
        }

    def cleanup_organization_events(self, organization_id: str) -> Dict[str, Any]:
        """
        Apply an organization's retention policy.

        Args:
            organization_id: Organization identifier

        Returns:
            Cleanup statistics (eventsBefore, eventsDeleted, eventsAfter, executionTimeMs, policy)

        Raises:
            LookupError: If the organization does not exist
        """
        with get_db_context() as db:
            organization = db.query(Organization).filter(Organization.id == organization_id).first()
            if organization is None:
                raise LookupError(f"Organization {organization_id} not found")
            return self._cleanup(db, organization)

    def cleanup_all_organizations(self) -> Dict[str, Any]:
        """
        Run cleanup for every organization. A failing organization is logged
        and counted; the others are still processed.
        """
        started = time.monotonic()
        with get_db_context() as db:
            organization_ids = [row[0] for row in db.query(Organization.id).all()]

        results = []
        failed = 0
        for organization_id in organization_ids:
            try:
                results.append(self.cleanup_organization_events(organization_id))
            except Exception as e:
                failed += 1
                logger.error(f"[Retention][{organization_id}] Cleanup failed: {e}", exc_info=True)

        summary = {
            "totalOrganizations": len(organization_ids),
            "organizationsProcessed": len(results),
            "organizationsFailed": failed,
            "totalEventsDeleted": sum(r["eventsDeleted"] for r in results),
            "totalExecutionTimeMs": int((time.monotonic() - started) * 1000),
            "organizationResults": results,
        }
        logger.info(
            f"Retention cleanup summary: {summary['totalEventsDeleted']} events deleted across "
            f"{summary['organizationsProcessed']} organizations ({failed} failed)"
        )
        return summary

    def preview_organization_cleanup(self, organization_id: str) -> Dict[str, Any]:
        """Estimate what a cleanup would delete without deleting anything."""
        with get_db_context() as db:
            organization = db.query(Organization).filter(Organization.id == organization_id).first()
            if organization is None:
                raise LookupError(f"Organization {organization_id} not found")
            policy = self.get_policy(organization)
            current = self.count_organization_events(db, organization_id)

            by_time = 0
            if policy["strategy"] in ("time", "hybrid") and policy["maxAgeInDays"]:
                cutoff = datetime.utcnow() - timedelta(days=policy["maxAgeInDays"])
                by_time = self._org_events(db, organization_id).filter(Event.timestamp < cutoff).count()

            by_count = 0
            if policy["strategy"] in ("count", "hybrid") and policy["maxEvents"]:
                by_count = max(0, current - by_time - policy["maxEvents"])

            return {
                "policy": policy,
                "currentEventCount": current,
                "estimatedDeletions": {"byTime": by_time, "byCount": by_count, "total": by_time + by_count},
            }

    def update_policy(
        self,
        organization_id: str,
        strategy: str,
        max_age_days: Optional[int] = None,
        max_events: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Change an organization's retention policy.

        Raises:
            ValueError: If the strategy is unknown
            LookupError: If the organization does not exist
        """
        if strategy not in RETENTION_STRATEGIES:
            raise ValueError(f"Unknown retention strategy '{strategy}'")
        with get_db_context() as db:
            organization = db.query(Organization).filter(Organization.id == organization_id).first()
            if organization is None:
                raise LookupError(f"Organization {organization_id} not found")
            organization.retention_strategy = strategy
            organization.retention_max_age_days = max_age_days
            organization.retention_max_events = max_events
            db.flush()
            logger.info(f"[Retention][{organization_id}] Policy set to {strategy} (days={max_age_days}, events={max_events})")
            return self.get_policy(organization)

    def get_retention_stats(self, organization_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Event counts and age range, overall or for one organization.

        Returns:
            Dictionary with total_events, oldest_event, newest_event and per-organization details
        """
        with get_db_context() as db:
            organizations = db.query(Organization)
            if organization_id:
                organizations = organizations.filter(Organization.id == organization_id)

            per_org = {}
            for organization in organizations.all():
                query = self._org_events(db, organization.id)
                oldest, newest = query.with_entities(func.min(Event.timestamp), func.max(Event.timestamp)).one()
                per_org[organization.id] = {
                    "name": organization.name,
                    "eventCount": query.count(),
                    "oldestEvent": oldest.isoformat() if oldest else None,
                    "newestEvent": newest.isoformat() if newest else None,
                    "policy": self.get_policy(organization),
                    "lastCleanupAt": organization.last_cleanup_at.isoformat() if organization.last_cleanup_at else None,
                    "lastCleanupDeleted": organization.last_cleanup_deleted,
                }

            if organization_id:
                total = per_org.get(organization_id, {}).get("eventCount", 0)
                oldest = per_org.get(organization_id, {}).get("oldestEvent")
                newest = per_org.get(organization_id, {}).get("newestEvent")
            else:
                total = db.query(func.count(Event.id)).scalar() or 0
                oldest_dt, newest_dt = db.query(func.min(Event.timestamp), func.max(Event.timestamp)).one()
                oldest = oldest_dt.isoformat() if oldest_dt else None
                newest = newest_dt.isoformat() if newest_dt else None

            return {
                "total_events": total,
                "oldest_event": oldest,
                "newest_event": newest,
                "organizations": per_org,
            }


# Global retention service instance
retention_service = RetentionService()
