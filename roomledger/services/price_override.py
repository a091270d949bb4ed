"""Administrative price override gate.

An override sets the final price of a booking directly. It never stacks with
coupons or credits and is only available to admins and allow-listed emails.
"""

import logging
import re
from dataclasses import dataclass

from roomledger.core.auth import ROLE_ADMIN
from roomledger.core.config import LedgerConfig
from roomledger.core.errors import OverrideErrorCode

logger = logging.getLogger(__name__)

MIN_REASON_LENGTH = 3

_OVERRIDE_CODE_RE = re.compile(r"^OVERRIDE_(\d+)$", re.IGNORECASE)


@dataclass(frozen=True)
class OverridePrice:
    final_cents: int
    reason: str


@dataclass(frozen=True)
class OverrideValidation:
    allowed: bool
    code: OverrideErrorCode | None = None
    reason: str | None = None
    final_cents: int | None = None


def is_override_admin(email: str | None, config: LedgerConfig) -> bool:
    if not email:
        return False
    return email.strip().lower() in config.override_admin_emails


def validate_override_access(
    session_email: str | None,
    role: str | None,
    override: OverridePrice | None,
    request_id: str,
    config: LedgerConfig,
) -> OverrideValidation:
    """Check that the caller may apply ``override`` and clamp its price.

    ``session_email`` must come from the authenticated session, never from
    the request body. A final price of zero is a courtesy booking and is kept;
    any other price below the gateway minimum is raised to it.
    """
    if override is None:
        return OverrideValidation(allowed=True)

    if not override.reason or len(override.reason.strip()) < MIN_REASON_LENGTH:
        return OverrideValidation(
            allowed=False,
            code=OverrideErrorCode.OVERRIDE_MISSING_REASON,
            reason=f"Override reason is required (at least {MIN_REASON_LENGTH} characters)",
        )

    if override.final_cents < 0:
        return OverrideValidation(
            allowed=False,
            code=OverrideErrorCode.OVERRIDE_INVALID_AMOUNT,
            reason="Override price must be zero or positive",
        )

    is_admin = (role or "").lower() == ROLE_ADMIN
    is_allow_listed = is_override_admin(session_email, config)
    logger.info(
        "Override access: request_id=%s has_session=%s is_admin=%s allow_listed=%s",
        request_id,
        bool(session_email),
        is_admin,
        is_allow_listed,
    )
    if not (is_admin or is_allow_listed):
        return OverrideValidation(
            allowed=False,
            code=OverrideErrorCode.OVERRIDE_NOT_ALLOWED,
            reason="Administrative pricing is not available for this account",
        )

    final_cents = override.final_cents
    if 0 < final_cents < config.min_payment_amount_cents:
        logger.info(
            "Override raised to gateway minimum: request_id=%s from=%d to=%d",
            request_id,
            final_cents,
            config.min_payment_amount_cents,
        )
        final_cents = config.min_payment_amount_cents

    return OverrideValidation(allowed=True, final_cents=final_cents)


def is_override_code(code: str | None) -> bool:
    if not code:
        return False
    return _OVERRIDE_CODE_RE.match(code.strip()) is not None


def parse_override_code(code: str | None) -> OverridePrice | None:
    """Turn an ``OVERRIDE_<units>`` code into an override, e.g. OVERRIDE_5 -> 500 cents."""
    if not code:
        return None
    normalized = code.strip().upper()
    match = _OVERRIDE_CODE_RE.match(normalized)
    if match is None:
        return None
    return OverridePrice(
        final_cents=int(match.group(1)) * 100,
        reason=f"Administrative code {normalized}",
    )
