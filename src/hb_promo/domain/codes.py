"""Random code generators for gift certificates and referral links."""

import secrets
import string

# No I, O, 0, 1: codes are typed in by hand
GIFT_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
REFERRAL_CODE_ALPHABET = string.ascii_uppercase + string.digits
REFERRAL_CODE_LENGTH = 8


def generate_gift_code() -> str:
    """GIFT-XXXX-XXXX-XXXX-XXXX."""
    groups = [
        "".join(secrets.choice(GIFT_CODE_ALPHABET) for _ in range(4))
        for _ in range(4)
    ]
    return "GIFT-" + "-".join(groups)


def generate_referral_code() -> str:
    return "".join(
        secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH)
    )


def normalize_code(code: str) -> str:
    return code.strip().upper()
