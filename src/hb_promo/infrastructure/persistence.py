"""Repositories for promocodes, gift certificates, referrals and volume discounts.

Raw SQL, same transaction-ownership rule as the ledger: the caller commits.
Redemption paths lock the promotion row FOR UPDATE before re-checking caps.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.hb_promo.domain.models import (
    DiscountTier,
    GiftCertificate,
    Promocode,
    UserDiscount,
)

# ---------------------------------------------------------------------------
# Promocodes
# ---------------------------------------------------------------------------

_PROMO_COLUMNS = """
    id, code, type, value, min_amount, max_uses, max_uses_per_user,
    valid_from, valid_until, plan_types, is_active, used_count, created_at
"""

_GET_PROMO_BY_CODE_SQL = text(f"SELECT {_PROMO_COLUMNS} FROM promocodes WHERE code = :code")
_GET_PROMO_BY_ID_SQL = text(f"SELECT {_PROMO_COLUMNS} FROM promocodes WHERE id = :id")
_LOCK_PROMO_SQL = text(f"SELECT {_PROMO_COLUMNS} FROM promocodes WHERE id = :id FOR UPDATE")

_COUNT_USER_USAGES_SQL = text("""
    SELECT COUNT(*) FROM promocode_usages
    WHERE promocode_id = :promocode_id AND user_id = :user_id
""")

_INSERT_USAGE_SQL = text("""
    INSERT INTO promocode_usages (promocode_id, user_id, amount)
    VALUES (:promocode_id, :user_id, :amount)
    RETURNING id
""")

# 0 rows -> global cap reached between validation and redemption
_INCREMENT_USED_SQL = text("""
    UPDATE promocodes
    SET used_count = used_count + 1,
        updated_at = NOW()
    WHERE id = :id AND (max_uses IS NULL OR used_count < max_uses)
    RETURNING used_count
""")

_INSERT_PROMO_SQL = text(f"""
    INSERT INTO promocodes
        (code, type, value, min_amount, max_uses, max_uses_per_user,
         valid_from, valid_until, plan_types)
    VALUES
        (:code, :type, :value, :min_amount, :max_uses, :max_uses_per_user,
         :valid_from, :valid_until, :plan_types)
    ON CONFLICT (code) DO NOTHING
    RETURNING {_PROMO_COLUMNS}
""")

_LIST_PROMOS_SQL = text(f"""
    SELECT {_PROMO_COLUMNS},
           (SELECT COUNT(*) FROM promocode_usages pu WHERE pu.promocode_id = p.id) AS usage_count
    FROM promocodes p
    ORDER BY created_at DESC
""")

_LIST_USAGES_SQL = text("""
    SELECT pu.id, pu.user_id, u.username, u.email, pu.amount, pu.created_at
    FROM promocode_usages pu
    JOIN users u ON u.id = pu.user_id
    WHERE pu.promocode_id = :promocode_id
    ORDER BY pu.created_at DESC
""")

_UPDATE_PROMO_SQL = text(f"""
    UPDATE promocodes
    SET value = COALESCE(:value, value),
        min_amount = COALESCE(:min_amount, min_amount),
        max_uses = COALESCE(:max_uses, max_uses),
        max_uses_per_user = COALESCE(:max_uses_per_user, max_uses_per_user),
        valid_until = COALESCE(:valid_until, valid_until),
        plan_types = COALESCE(:plan_types, plan_types),
        is_active = COALESCE(:is_active, is_active),
        updated_at = NOW()
    WHERE id = :id
    RETURNING {_PROMO_COLUMNS}
""")

_DELETE_UNUSED_PROMO_SQL = text("""
    DELETE FROM promocodes WHERE id = :id AND used_count = 0 RETURNING id
""")

_DEACTIVATE_PROMO_SQL = text(f"""
    UPDATE promocodes SET is_active = FALSE, updated_at = NOW()
    WHERE id = :id
    RETURNING {_PROMO_COLUMNS}
""")


def _row_to_promocode(row: object) -> Promocode:
    return Promocode(
        id=str(row.id),  # type: ignore[attr-defined]
        code=row.code,  # type: ignore[attr-defined]
        type=row.type,  # type: ignore[attr-defined]
        value=row.value,  # type: ignore[attr-defined]
        min_amount=row.min_amount,  # type: ignore[attr-defined]
        max_uses=row.max_uses,  # type: ignore[attr-defined]
        max_uses_per_user=row.max_uses_per_user,  # type: ignore[attr-defined]
        valid_from=row.valid_from,  # type: ignore[attr-defined]
        valid_until=row.valid_until,  # type: ignore[attr-defined]
        plan_types=list(row.plan_types or []),  # type: ignore[attr-defined]
        is_active=row.is_active,  # type: ignore[attr-defined]
        used_count=row.used_count,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class PromocodeRepository:
    async def get_by_code(self, db: AsyncSession, code: str) -> Promocode | None:
        result = await db.execute(_GET_PROMO_BY_CODE_SQL, {"code": code})
        row = result.fetchone()
        return _row_to_promocode(row) if row else None

    async def get_by_id(self, db: AsyncSession, promocode_id: str) -> Promocode | None:
        result = await db.execute(_GET_PROMO_BY_ID_SQL, {"id": promocode_id})
        row = result.fetchone()
        return _row_to_promocode(row) if row else None

    async def lock_by_id(self, db: AsyncSession, promocode_id: str) -> Promocode | None:
        result = await db.execute(_LOCK_PROMO_SQL, {"id": promocode_id})
        row = result.fetchone()
        return _row_to_promocode(row) if row else None

    async def count_user_usages(
        self, db: AsyncSession, promocode_id: str, user_id: str
    ) -> int:
        result = await db.execute(
            _COUNT_USER_USAGES_SQL, {"promocode_id": promocode_id, "user_id": user_id}
        )
        return int(result.scalar_one())

    async def insert_usage(
        self, db: AsyncSession, promocode_id: str, user_id: str, amount: int
    ) -> int:
        result = await db.execute(
            _INSERT_USAGE_SQL,
            {"promocode_id": promocode_id, "user_id": user_id, "amount": amount},
        )
        return int(result.scalar_one())

    async def increment_used(self, db: AsyncSession, promocode_id: str) -> bool:
        result = await db.execute(_INCREMENT_USED_SQL, {"id": promocode_id})
        return result.fetchone() is not None

    async def create(self, db: AsyncSession, **fields: Any) -> Promocode | None:
        """Insert; returns None when the code already exists."""
        result = await db.execute(_INSERT_PROMO_SQL, fields)
        row = result.fetchone()
        return _row_to_promocode(row) if row else None

    async def list_all(self, db: AsyncSession) -> list[tuple[Promocode, int]]:
        result = await db.execute(_LIST_PROMOS_SQL)
        return [(_row_to_promocode(r), int(r.usage_count)) for r in result.fetchall()]

    async def list_usages(self, db: AsyncSession, promocode_id: str) -> list[dict[str, Any]]:
        result = await db.execute(_LIST_USAGES_SQL, {"promocode_id": promocode_id})
        return [
            {
                "id": str(r.id),
                "user_id": str(r.user_id),
                "username": r.username,
                "email": r.email,
                "amount": r.amount,
                "created_at": r.created_at.isoformat(),
            }
            for r in result.fetchall()
        ]

    async def update(
        self, db: AsyncSession, promocode_id: str, **fields: Any
    ) -> Promocode | None:
        params = {
            "id": promocode_id,
            "value": None,
            "min_amount": None,
            "max_uses": None,
            "max_uses_per_user": None,
            "valid_until": None,
            "plan_types": None,
            "is_active": None,
        }
        params.update(fields)
        result = await db.execute(_UPDATE_PROMO_SQL, params)
        row = result.fetchone()
        return _row_to_promocode(row) if row else None

    async def delete_unused(self, db: AsyncSession, promocode_id: str) -> bool:
        result = await db.execute(_DELETE_UNUSED_PROMO_SQL, {"id": promocode_id})
        return result.fetchone() is not None

    async def deactivate(self, db: AsyncSession, promocode_id: str) -> Promocode | None:
        result = await db.execute(_DEACTIVATE_PROMO_SQL, {"id": promocode_id})
        row = result.fetchone()
        return _row_to_promocode(row) if row else None


# ---------------------------------------------------------------------------
# Gift certificates
# ---------------------------------------------------------------------------

_GIFT_COLUMNS = """
    id, code, amount, balance, is_active, message, recipient_email,
    redeemed_by_id, redeemed_at, expires_at, created_at
"""

_LOCK_GIFT_BY_CODE_SQL = text(
    f"SELECT {_GIFT_COLUMNS} FROM gift_certificates WHERE code = :code FOR UPDATE"
)

_MARK_GIFT_REDEEMED_SQL = text(f"""
    UPDATE gift_certificates
    SET balance = 0,
        redeemed_by_id = :user_id,
        redeemed_at = NOW()
    WHERE id = :id AND balance > 0
    RETURNING {_GIFT_COLUMNS}
""")

_INSERT_GIFT_SQL = text(f"""
    INSERT INTO gift_certificates (code, amount, balance, message, recipient_email, expires_at)
    VALUES (:code, :amount, :amount, :message, :recipient_email, :expires_at)
    ON CONFLICT (code) DO NOTHING
    RETURNING {_GIFT_COLUMNS}
""")

_LIST_GIFTS_SQL = text(f"""
    SELECT {_GIFT_COLUMNS}
    FROM gift_certificates
    WHERE (CAST(:search AS VARCHAR) IS NULL
           OR code ILIKE '%' || CAST(:search AS VARCHAR) || '%'
           OR recipient_email ILIKE '%' || CAST(:search AS VARCHAR) || '%')
    ORDER BY created_at DESC
    LIMIT :limit OFFSET :offset
""")

_GIFT_STATS_SQL = text("""
    SELECT COUNT(*) AS total_certificates,
           COALESCE(SUM(amount), 0) AS total_value,
           COUNT(*) FILTER (WHERE is_active AND redeemed_at IS NULL) AS active_count,
           COUNT(*) FILTER (WHERE redeemed_at IS NOT NULL) AS redeemed_count
    FROM gift_certificates
""")

_DEACTIVATE_GIFT_SQL = text(f"""
    UPDATE gift_certificates SET is_active = FALSE
    WHERE id = :id
    RETURNING {_GIFT_COLUMNS}
""")


def _row_to_gift(row: object) -> GiftCertificate:
    redeemed_by = row.redeemed_by_id  # type: ignore[attr-defined]
    return GiftCertificate(
        id=str(row.id),  # type: ignore[attr-defined]
        code=row.code,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        balance=row.balance,  # type: ignore[attr-defined]
        is_active=row.is_active,  # type: ignore[attr-defined]
        message=row.message,  # type: ignore[attr-defined]
        recipient_email=row.recipient_email,  # type: ignore[attr-defined]
        redeemed_by_id=str(redeemed_by) if redeemed_by else None,
        redeemed_at=row.redeemed_at,  # type: ignore[attr-defined]
        expires_at=row.expires_at,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class GiftCertificateRepository:
    async def lock_by_code(self, db: AsyncSession, code: str) -> GiftCertificate | None:
        result = await db.execute(_LOCK_GIFT_BY_CODE_SQL, {"code": code})
        row = result.fetchone()
        return _row_to_gift(row) if row else None

    async def mark_redeemed(
        self, db: AsyncSession, certificate_id: str, user_id: str
    ) -> GiftCertificate | None:
        result = await db.execute(
            _MARK_GIFT_REDEEMED_SQL, {"id": certificate_id, "user_id": user_id}
        )
        row = result.fetchone()
        return _row_to_gift(row) if row else None

    async def create(
        self,
        db: AsyncSession,
        code: str,
        amount: int,
        message: str | None,
        recipient_email: str | None,
        expires_at: datetime | None,
    ) -> GiftCertificate | None:
        """Insert; returns None on code collision so the caller can retry."""
        result = await db.execute(
            _INSERT_GIFT_SQL,
            {
                "code": code,
                "amount": amount,
                "message": message,
                "recipient_email": recipient_email,
                "expires_at": expires_at,
            },
        )
        row = result.fetchone()
        return _row_to_gift(row) if row else None

    async def list(
        self, db: AsyncSession, search: str | None, limit: int, offset: int
    ) -> list[GiftCertificate]:
        result = await db.execute(
            _LIST_GIFTS_SQL, {"search": search, "limit": limit, "offset": offset}
        )
        return [_row_to_gift(r) for r in result.fetchall()]

    async def stats(self, db: AsyncSession) -> dict[str, int]:
        result = await db.execute(_GIFT_STATS_SQL)
        row = result.fetchone()
        return {
            "total_certificates": int(row.total_certificates),  # type: ignore[union-attr]
            "total_value": int(row.total_value),  # type: ignore[union-attr]
            "active_count": int(row.active_count),  # type: ignore[union-attr]
            "redeemed_count": int(row.redeemed_count),  # type: ignore[union-attr]
        }

    async def deactivate(self, db: AsyncSession, certificate_id: str) -> GiftCertificate | None:
        result = await db.execute(_DEACTIVATE_GIFT_SQL, {"id": certificate_id})
        row = result.fetchone()
        return _row_to_gift(row) if row else None


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------

_GET_REFERRER_SQL = text("SELECT referred_by_id FROM users WHERE id = :user_id")

_CREDIT_REFERRAL_BALANCE_SQL = text("""
    UPDATE users SET referral_balance = referral_balance + :amount, updated_at = NOW()
    WHERE id = :user_id
""")

_FIND_BY_REFERRAL_CODE_SQL = text("SELECT id FROM users WHERE referral_code = :code")

# Only once: a user who already has a referrer cannot switch
_SET_REFERRER_SQL = text("""
    UPDATE users SET referred_by_id = :referrer_id, updated_at = NOW()
    WHERE id = :user_id AND referred_by_id IS NULL
    RETURNING id
""")

_REFERRAL_INFO_SQL = text("""
    SELECT u.referral_code, u.referral_balance,
           (SELECT COUNT(*) FROM users r WHERE r.referred_by_id = u.id) AS referred_count,
           (SELECT COALESCE(SUM(t.amount), 0) FROM transactions t
             WHERE t.user_id = u.id AND t.type = 'REFERRAL' AND t.status = 'COMPLETED')
               AS total_earned
    FROM users u
    WHERE u.id = :user_id
""")

_LIST_REFERRED_SQL = text("""
    SELECT id, username, created_at FROM users
    WHERE referred_by_id = :user_id
    ORDER BY created_at DESC
    LIMIT 100
""")

_SET_REFERRAL_CODE_SQL = text("""
    UPDATE users SET referral_code = :code, updated_at = NOW()
    WHERE id = :user_id
      AND NOT EXISTS (SELECT 1 FROM users WHERE referral_code = :code)
    RETURNING referral_code
""")


class ReferralRepository:
    async def get_referrer_id(self, db: AsyncSession, user_id: str) -> str | None:
        result = await db.execute(_GET_REFERRER_SQL, {"user_id": user_id})
        row = result.fetchone()
        if row is None or row.referred_by_id is None:
            return None
        return str(row.referred_by_id)

    async def credit_referral_balance(self, db: AsyncSession, user_id: str, amount: int) -> None:
        await db.execute(_CREDIT_REFERRAL_BALANCE_SQL, {"user_id": user_id, "amount": amount})

    async def find_user_by_code(self, db: AsyncSession, code: str) -> str | None:
        result = await db.execute(_FIND_BY_REFERRAL_CODE_SQL, {"code": code})
        row = result.fetchone()
        return str(row.id) if row else None

    async def set_referrer(self, db: AsyncSession, user_id: str, referrer_id: str) -> bool:
        result = await db.execute(
            _SET_REFERRER_SQL, {"user_id": user_id, "referrer_id": referrer_id}
        )
        return result.fetchone() is not None

    async def get_info(self, db: AsyncSession, user_id: str) -> dict[str, Any] | None:
        result = await db.execute(_REFERRAL_INFO_SQL, {"user_id": user_id})
        row = result.fetchone()
        if row is None:
            return None
        referred = await db.execute(_LIST_REFERRED_SQL, {"user_id": user_id})
        return {
            "referral_code": row.referral_code,
            "referral_balance": row.referral_balance,
            "referred_count": int(row.referred_count),
            "total_earned": int(row.total_earned),
            "referred_users": [
                {"user_id": str(r.id), "username": r.username, "joined_at": r.created_at.isoformat()}
                for r in referred.fetchall()
            ],
        }

    async def set_code(self, db: AsyncSession, user_id: str, code: str) -> bool:
        result = await db.execute(_SET_REFERRAL_CODE_SQL, {"user_id": user_id, "code": code})
        return result.fetchone() is not None


# ---------------------------------------------------------------------------
# Volume discounts
# ---------------------------------------------------------------------------

_LIST_TIERS_SQL = text("""
    SELECT id, name, min_amount, discount_percent, is_active
    FROM volume_discounts
    WHERE (:active_only = FALSE OR is_active = TRUE)
    ORDER BY min_amount ASC
""")

_INSERT_TIER_SQL = text("""
    INSERT INTO volume_discounts (name, min_amount, discount_percent, is_active)
    VALUES (:name, :min_amount, :discount_percent, :is_active)
    RETURNING id, name, min_amount, discount_percent, is_active
""")

_UPDATE_TIER_SQL = text("""
    UPDATE volume_discounts
    SET name = :name, min_amount = :min_amount,
        discount_percent = :discount_percent, is_active = :is_active
    WHERE id = :id
    RETURNING id, name, min_amount, discount_percent, is_active
""")

_DELETE_TIER_SQL = text("DELETE FROM volume_discounts WHERE id = :id RETURNING id")

_GET_USER_DISCOUNT_SQL = text("""
    SELECT user_id, total_spent, discount_percent, discount_tier, updated_at
    FROM user_discounts WHERE user_id = :user_id
""")

_UPSERT_USER_DISCOUNT_SQL = text("""
    INSERT INTO user_discounts (user_id, total_spent, discount_percent, discount_tier, updated_at)
    VALUES (:user_id, :total_spent, :discount_percent, :discount_tier, NOW())
    ON CONFLICT (user_id) DO UPDATE
        SET total_spent = EXCLUDED.total_spent,
            discount_percent = EXCLUDED.discount_percent,
            discount_tier = EXCLUDED.discount_tier,
            updated_at = NOW()
    RETURNING user_id, total_spent, discount_percent, discount_tier, updated_at
""")


def _row_to_tier(row: object) -> DiscountTier:
    return DiscountTier(
        id=str(row.id),  # type: ignore[attr-defined]
        name=row.name,  # type: ignore[attr-defined]
        min_amount=row.min_amount,  # type: ignore[attr-defined]
        discount_percent=row.discount_percent,  # type: ignore[attr-defined]
        is_active=row.is_active,  # type: ignore[attr-defined]
    )


def _row_to_user_discount(row: object) -> UserDiscount:
    return UserDiscount(
        user_id=str(row.user_id),  # type: ignore[attr-defined]
        total_spent=row.total_spent,  # type: ignore[attr-defined]
        discount_percent=row.discount_percent,  # type: ignore[attr-defined]
        discount_tier=row.discount_tier,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


class DiscountRepository:
    async def list_tiers(self, db: AsyncSession, active_only: bool = True) -> list[DiscountTier]:
        result = await db.execute(_LIST_TIERS_SQL, {"active_only": active_only})
        return [_row_to_tier(r) for r in result.fetchall()]

    async def save_tier(
        self,
        db: AsyncSession,
        tier_id: str | None,
        name: str,
        min_amount: int,
        discount_percent: int,
        is_active: bool,
    ) -> DiscountTier | None:
        params = {
            "name": name,
            "min_amount": min_amount,
            "discount_percent": discount_percent,
            "is_active": is_active,
        }
        if tier_id is None:
            result = await db.execute(_INSERT_TIER_SQL, params)
        else:
            result = await db.execute(_UPDATE_TIER_SQL, {"id": tier_id, **params})
        row = result.fetchone()
        return _row_to_tier(row) if row else None

    async def delete_tier(self, db: AsyncSession, tier_id: str) -> bool:
        result = await db.execute(_DELETE_TIER_SQL, {"id": tier_id})
        return result.fetchone() is not None

    async def get_user_discount(self, db: AsyncSession, user_id: str) -> UserDiscount | None:
        result = await db.execute(_GET_USER_DISCOUNT_SQL, {"user_id": user_id})
        row = result.fetchone()
        return _row_to_user_discount(row) if row else None

    async def upsert_user_discount(
        self,
        db: AsyncSession,
        user_id: str,
        total_spent: int,
        discount_percent: int,
        discount_tier: str | None,
    ) -> UserDiscount:
        result = await db.execute(
            _UPSERT_USER_DISCOUNT_SQL,
            {
                "user_id": user_id,
                "total_spent": total_spent,
                "discount_percent": discount_percent,
                "discount_tier": discount_tier,
            },
        )
        return _row_to_user_discount(result.fetchone())
