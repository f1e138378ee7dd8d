"""PromocodeService — validation, redemption and admin management of promocodes.

PERCENT and FIXED codes only report a discount; the checkout applies it and
redeems the code inside its own transaction. BALANCE codes are credited to the
balance immediately by ``apply``.
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_admin.infrastructure.audit import record_admin_action
from src.hb_common.cents import cents_to_display
from src.hb_common.datetime_utils import utc_now
from src.hb_common.enums import PromocodeType, ReferenceType, TransactionType
from src.hb_common.errors import (
    PromocodeExhaustedError,
    PromocodeExistsError,
    PromocodeInvalidError,
    PromocodeNotFoundError,
)
from src.hb_ledger.domain.repository import LedgerRepositoryProtocol
from src.hb_ledger.infrastructure.persistence import LedgerRepository
from src.hb_promo.application.schemas import (
    ApplyPromocodeResponse,
    CreatePromocodeRequest,
    PromocodeItem,
    UpdatePromocodeRequest,
)
from src.hb_promo.domain.codes import normalize_code
from src.hb_promo.domain.models import Promocode, ValidationResult
from src.hb_promo.domain.rules import evaluate_promocode
from src.hb_promo.infrastructure.persistence import PromocodeRepository

logger = logging.getLogger(__name__)


class PromocodeService:
    def __init__(
        self,
        repo: PromocodeRepository | None = None,
        ledger: LedgerRepositoryProtocol | None = None,
    ) -> None:
        self._repo = repo or PromocodeRepository()
        self._ledger: LedgerRepositoryProtocol = ledger or LedgerRepository()

    async def validate(
        self,
        db: AsyncSession,
        code: str,
        user_id: str,
        order_amount: int | None = None,
        plan_type: str | None = None,
    ) -> ValidationResult:
        promocode = await self._repo.get_by_code(db, normalize_code(code))
        usage_count = 0
        if promocode is not None:
            usage_count = await self._repo.count_user_usages(db, promocode.id, user_id)
        return evaluate_promocode(promocode, usage_count, utc_now(), order_amount, plan_type)

    async def apply(
        self,
        db: AsyncSession,
        code: str,
        user_id: str,
        order_amount: int | None = None,
        plan_type: str | None = None,
    ) -> ApplyPromocodeResponse:
        result = await self.validate(db, code, user_id, order_amount, plan_type)
        if not result.valid or result.promocode is None:
            raise PromocodeInvalidError(result.error or "Promocode is invalid")
        promocode = result.promocode

        if promocode.type != PromocodeType.BALANCE:
            return ApplyPromocodeResponse(
                code=promocode.code,
                type=promocode.type,
                applied=False,
                discount_cents=result.discount,
                message=f"Discount {cents_to_display(result.discount)} will be applied at checkout",
            )

        try:
            await self.redeem(db, promocode.id, user_id, promocode.value)
            tx = await self._ledger.append_transaction(
                db,
                user_id,
                TransactionType.PROMOCODE,
                promocode.value,
                f"Promocode {promocode.code}",
                reference_type=ReferenceType.PROMOCODE,
                reference_id=promocode.id,
                metadata={"promocode": promocode.code},
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Balance promocode %s redeemed by user=%s amount=%d",
            promocode.code, user_id, promocode.value,
        )
        return ApplyPromocodeResponse(
            code=promocode.code,
            type=promocode.type,
            applied=True,
            discount_cents=promocode.value,
            new_balance_cents=tx.balance_after,
            message=f"{cents_to_display(promocode.value)} credited to your balance",
        )

    async def redeem(
        self, db: AsyncSession, promocode_id: str, user_id: str, amount: int
    ) -> Promocode:
        """Record one usage and bump the counter; caller owns the transaction.

        The row lock serializes concurrent redemptions of the same code, so the
        per-user re-check below sees every committed usage.
        """
        promocode = await self._repo.lock_by_id(db, promocode_id)
        usage_count = 0
        if promocode is not None:
            usage_count = await self._repo.count_user_usages(db, promocode_id, user_id)
        check = evaluate_promocode(promocode, usage_count, utc_now())
        if not check.valid or promocode is None:
            raise PromocodeInvalidError(check.error or "Promocode is invalid")

        await self._repo.insert_usage(db, promocode_id, user_id, amount)
        if not await self._repo.increment_used(db, promocode_id):
            raise PromocodeExhaustedError()
        return promocode

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def create(
        self, db: AsyncSession, admin_id: str, body: CreatePromocodeRequest
    ) -> PromocodeItem:
        code = normalize_code(body.code)
        try:
            promocode = await self._repo.create(
                db,
                code=code,
                type=body.type.value,
                value=body.value,
                min_amount=body.min_amount,
                max_uses=body.max_uses,
                max_uses_per_user=body.max_uses_per_user,
                valid_from=body.valid_from or utc_now(),
                valid_until=body.valid_until,
                plan_types=[p.value for p in body.plan_types],
            )
            if promocode is None:
                raise PromocodeExistsError(code)
            await record_admin_action(
                db, admin_id, "PROMOCODE_CREATED", f"promocode:{promocode.id}",
                {"code": code, "type": promocode.type, "value": promocode.value},
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return PromocodeItem.from_domain(promocode)

    async def list_all(self, db: AsyncSession) -> list[PromocodeItem]:
        rows = await self._repo.list_all(db)
        return [PromocodeItem.from_domain(p, usage_count=n) for p, n in rows]

    async def list_usages(self, db: AsyncSession, promocode_id: str) -> list[dict[str, Any]]:
        if await self._repo.get_by_id(db, promocode_id) is None:
            raise PromocodeNotFoundError(promocode_id)
        return await self._repo.list_usages(db, promocode_id)

    async def update(
        self,
        db: AsyncSession,
        admin_id: str,
        promocode_id: str,
        body: UpdatePromocodeRequest,
    ) -> PromocodeItem:
        fields = body.model_dump(exclude_none=True)
        if "plan_types" in fields:
            fields["plan_types"] = [p.value for p in body.plan_types or []]
        try:
            promocode = await self._repo.update(db, promocode_id, **fields)
            if promocode is None:
                raise PromocodeNotFoundError(promocode_id)
            await record_admin_action(
                db, admin_id, "PROMOCODE_UPDATED", f"promocode:{promocode_id}",
                {k: v for k, v in fields.items()},
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return PromocodeItem.from_domain(promocode)

    async def delete(self, db: AsyncSession, admin_id: str, promocode_id: str) -> dict[str, Any]:
        """Hard-delete an unused code; a code with usages is only deactivated."""
        try:
            if await self._repo.delete_unused(db, promocode_id):
                action, deleted = "PROMOCODE_DELETED", True
            else:
                if await self._repo.deactivate(db, promocode_id) is None:
                    raise PromocodeNotFoundError(promocode_id)
                action, deleted = "PROMOCODE_DEACTIVATED", False
            await record_admin_action(db, admin_id, action, f"promocode:{promocode_id}")
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return {"id": promocode_id, "deleted": deleted, "deactivated": not deleted}
