"""FraudScanService — batch heuristics over recent ledger and login activity.

A scan is a single sequential pass; overlapping scans (admin button + cron)
are excluded with a non-blocking redis-py lock. Alerts and the admin log row
commit together. A failed scan still leaves an admin log row behind.
"""

import logging
from collections import Counter

import redis.asyncio as aioredis
from redis.exceptions import LockError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.hb_admin.application.schemas import (
    FraudAlertItem,
    FraudAlertListResponse,
    FraudScanResponse,
)
from src.hb_admin.domain import fraud_rules as rules
from src.hb_admin.domain.models import AlertDraft
from src.hb_admin.infrastructure.audit import record_admin_action
from src.hb_admin.infrastructure.persistence import FraudAlertRepository
from src.hb_common.datetime_utils import utc_now
from src.hb_common.errors import FraudAlertNotFoundError, ScanInProgressError
from src.hb_common.redis_client import get_redis, job_lock
from src.hb_ledger.application.schemas import cursor_decode, cursor_encode

logger = logging.getLogger(__name__)

SCAN_LOCK_NAME = "fraud-scan"


class FraudScanService:
    def __init__(
        self,
        repo: FraudAlertRepository | None = None,
        redis: aioredis.Redis | None = None,
    ) -> None:
        self._repo = repo or FraudAlertRepository()
        self._redis = redis

    async def run(self, db: AsyncSession, admin_id: str | None = None) -> FraudScanResponse:
        """Run every heuristic once. ``admin_id`` is None when triggered by cron."""
        redis = self._redis or await get_redis()
        lock = job_lock(redis, SCAN_LOCK_NAME, settings.FRAUD_SCAN_LOCK_TTL_SECONDS)
        if not await lock.acquire():
            raise ScanInProgressError()
        try:
            return await self._scan(db, admin_id)
        finally:
            try:
                await lock.release()
            except LockError:
                # The scan outlived the TTL and the key expired
                logger.warning("Fraud scan lock already expired on release")

    async def _scan(self, db: AsyncSession, admin_id: str | None) -> FraudScanResponse:
        try:
            drafts = await self.collect(db)
            for draft in drafts:
                await self._repo.create(db, draft)
            by_type = dict(Counter(d.type for d in drafts))
            await record_admin_action(
                db,
                admin_id,
                "FRAUD_SCAN_RUN",
                details={"new_alerts": len(drafts), "by_type": by_type},
            )
            await db.commit()
        except Exception as exc:
            await db.rollback()
            logger.exception("Fraud scan failed")
            await record_admin_action(
                db, admin_id, "FRAUD_SCAN_FAILED", details={"error": type(exc).__name__}
            )
            await db.commit()
            raise

        logger.info("Fraud scan finished: new_alerts=%d by_type=%s", len(drafts), by_type)
        return FraudScanResponse(new_alerts=len(drafts), by_type=by_type)

    async def collect(self, db: AsyncSession) -> list[AlertDraft]:
        """Evaluate the four heuristics in order and return new alert drafts."""
        now = utc_now()
        drafts: list[AlertDraft] = []

        for row in await self._repo.velocity_candidates(
            db,
            since=now - rules.VELOCITY_WINDOW,
            dedup_since=now - rules.VELOCITY_DEDUP,
            min_count=rules.VELOCITY_MIN_COUNT,
        ):
            draft = rules.velocity_alert(str(row.user_id), int(row.tx_count), int(row.total_amount))
            if draft:
                drafts.append(draft)

        for row in await self._repo.large_deposit_candidates(
            db,
            since=now - rules.LARGE_DEPOSIT_WINDOW,
            dedup_since=now - rules.LARGE_DEPOSIT_DEDUP,
            min_amount=rules.LARGE_DEPOSIT_MIN,
        ):
            draft = rules.large_deposit_alert(
                str(row.user_id), row.id, int(row.amount), row.payment_method
            )
            if draft:
                drafts.append(draft)

        for row in await self._repo.shared_ip_candidates(
            db,
            since=now - rules.SHARED_IP_WINDOW,
            dedup_since=now - rules.SHARED_IP_DEDUP,
            min_users=rules.SHARED_IP_MIN_USERS,
        ):
            draft = rules.shared_ip_alert(row.ip_address, list(row.user_ids))
            if draft:
                drafts.append(draft)

        for row in await self._repo.dormant_depositor_candidates(
            db,
            dormant_since=now - rules.DORMANT_AFTER,
            since=now - rules.DORMANT_DEPOSIT_WINDOW,
            dedup_since=now - rules.DORMANT_DEDUP,
            min_amount=rules.DORMANT_DEPOSIT_MIN,
        ):
            drafts.append(rules.dormant_deposit_alert(str(row.user_id), row.last_login_at))

        return drafts

    async def list_alerts(
        self,
        db: AsyncSession,
        status: str | None,
        severity: str | None,
        cursor: str | None,
        limit: int,
    ) -> FraudAlertListResponse:
        alerts = await self._repo.list_alerts(db, status, severity, cursor_decode(cursor), limit + 1)
        has_more = len(alerts) > limit
        page = alerts[:limit]
        counts = await self._repo.counts(db)
        return FraudAlertListResponse(
            items=[FraudAlertItem.from_domain(a) for a in page],
            next_cursor=cursor_encode(page[-1].id) if has_more and page else None,
            has_more=has_more,
            by_status=counts["by_status"],
            by_severity=counts["by_severity"],
        )

    async def update_alert(
        self,
        db: AsyncSession,
        admin_id: str,
        alert_id: int,
        status: str,
        note: str | None,
    ) -> FraudAlertItem:
        try:
            alert = await self._repo.get(db, alert_id)
            if alert is None:
                raise FraudAlertNotFoundError(str(alert_id))
            updated = await self._repo.update_status(db, alert_id, status, note, admin_id)
            if updated is None:
                raise FraudAlertNotFoundError(str(alert_id))
            await record_admin_action(
                db,
                admin_id,
                "FRAUD_ALERT_REVIEWED",
                target=f"alert:{alert_id}",
                details={
                    "user_id": alert.user_id,
                    "type": alert.type,
                    "old_status": alert.status,
                    "new_status": status,
                    "note": note,
                },
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return FraudAlertItem.from_domain(updated)
