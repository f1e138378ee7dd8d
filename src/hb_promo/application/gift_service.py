"""GiftCertificateService — one-shot redemption and admin issuance."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_admin.infrastructure.audit import record_admin_action
from src.hb_common.cents import cents_to_display
from src.hb_common.datetime_utils import utc_now
from src.hb_common.enums import ReferenceType, TransactionType
from src.hb_common.errors import (
    AppError,
    GiftCertificateExpiredError,
    GiftCertificateInactiveError,
    GiftCertificateNotFoundError,
    GiftCertificateOwnedError,
    GiftCertificateRedeemedError,
    InternalError,
)
from src.hb_ledger.domain.repository import LedgerRepositoryProtocol
from src.hb_ledger.infrastructure.persistence import LedgerRepository
from src.hb_promo.application.schemas import (
    CreateGiftRequest,
    GiftCertificateItem,
    GiftRedeemResponse,
)
from src.hb_promo.domain.codes import generate_gift_code, normalize_code
from src.hb_promo.domain.rules import check_gift_redeemable
from src.hb_promo.infrastructure.persistence import GiftCertificateRepository

logger = logging.getLogger(__name__)

_MAX_CODE_ATTEMPTS = 10

_PRECONDITION_ERRORS: dict[str, type[AppError]] = {
    "inactive": GiftCertificateInactiveError,
    "redeemed": GiftCertificateRedeemedError,
    "expired": GiftCertificateExpiredError,
    "owned": GiftCertificateOwnedError,
}


class GiftCertificateService:
    def __init__(
        self,
        repo: GiftCertificateRepository | None = None,
        ledger: LedgerRepositoryProtocol | None = None,
    ) -> None:
        self._repo = repo or GiftCertificateRepository()
        self._ledger: LedgerRepositoryProtocol = ledger or LedgerRepository()

    async def redeem(self, db: AsyncSession, code: str, user_id: str) -> GiftRedeemResponse:
        """Credit the certificate's whole remaining value as a BONUS and zero it.

        The certificate row stays locked until commit; a second redemption
        sees balance 0 and fails with GiftCertificateRedeemedError.
        """
        try:
            certificate = await self._repo.lock_by_code(db, normalize_code(code))
            if certificate is None:
                raise GiftCertificateNotFoundError()
            failed = check_gift_redeemable(certificate, user_id, utc_now())
            if failed is not None:
                raise _PRECONDITION_ERRORS[failed]()

            amount = certificate.balance
            tx = await self._ledger.append_transaction(
                db,
                user_id,
                TransactionType.BONUS,
                amount,
                f"Gift certificate {certificate.code}",
                reference_type=ReferenceType.GIFT_CERTIFICATE,
                reference_id=certificate.id,
                metadata={"certificate_code": certificate.code},
            )
            if await self._repo.mark_redeemed(db, certificate.id, user_id) is None:
                raise InternalError("Gift certificate changed while locked")
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info("Gift certificate %s redeemed by user=%s", certificate.code, user_id)
        return GiftRedeemResponse(
            amount_cents=amount,
            new_balance_cents=tx.balance_after,
            message=f"Certificate activated: {cents_to_display(amount)} credited to your balance",
        )

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def create(
        self, db: AsyncSession, admin_id: str, body: CreateGiftRequest
    ) -> GiftCertificateItem:
        try:
            certificate = None
            for _ in range(_MAX_CODE_ATTEMPTS):
                certificate = await self._repo.create(
                    db,
                    code=generate_gift_code(),
                    amount=body.amount,
                    message=body.message,
                    recipient_email=body.recipient_email,
                    expires_at=body.expires_at,
                )
                if certificate is not None:
                    break
            if certificate is None:
                raise InternalError("Could not generate a unique gift certificate code")
            await record_admin_action(
                db, admin_id, "GIFT_CERTIFICATE_CREATED", f"certificate:{certificate.id}",
                {"code": certificate.code, "amount": body.amount,
                 "recipient_email": body.recipient_email},
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return GiftCertificateItem.from_domain(certificate)

    async def list(
        self, db: AsyncSession, search: str | None, page: int, limit: int
    ) -> dict[str, Any]:
        certificates = await self._repo.list(db, search, limit, (page - 1) * limit)
        stats = await self._repo.stats(db)
        return {
            "certificates": [GiftCertificateItem.from_domain(c).model_dump() for c in certificates],
            "stats": stats,
            "page": page,
            "limit": limit,
        }

    async def deactivate(
        self, db: AsyncSession, admin_id: str, certificate_id: str
    ) -> GiftCertificateItem:
        try:
            certificate = await self._repo.deactivate(db, certificate_id)
            if certificate is None:
                raise GiftCertificateNotFoundError()
            await record_admin_action(
                db, admin_id, "GIFT_CERTIFICATE_DEACTIVATED", f"certificate:{certificate_id}"
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return GiftCertificateItem.from_domain(certificate)

