"""Pre-flight credit admission, delegated to the store's atomic check-and-debit."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

from poster_studio.errors import AuthenticationRequired

logger = logging.getLogger(__name__)

CREDIT_COSTS = {"1K": 1, "2K": 2, "4K": 4}
FREE_TIER_RESOLUTIONS = ("1K",)
FREE_TIER_GENERATIONS = 5


class DenialReason(str, enum.Enum):
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    FREE_LIMIT_REACHED = "FREE_LIMIT_REACHED"
    RESOLUTION_NOT_ALLOWED = "RESOLUTION_NOT_ALLOWED"


_DEFAULT_MESSAGES = {
    DenialReason.INSUFFICIENT_CREDITS: "Not enough credits for this resolution",
    DenialReason.FREE_LIMIT_REACHED: (
        f"All {FREE_TIER_GENERATIONS} free generations are used; upgrade to keep creating"
    ),
    DenialReason.RESOLUTION_NOT_ALLOWED: (
        f"The free plan only generates {'/'.join(FREE_TIER_RESOLUTIONS)} images"
    ),
}


def credits_needed(resolution: str) -> int:
    try:
        return CREDIT_COSTS[resolution]
    except KeyError:
        raise ValueError(f"Unsupported resolution: {resolution}") from None


@dataclass(frozen=True)
class CreditDecision:
    granted: bool
    remaining: int = 0
    needed: int = 0
    is_free: bool = False
    watermark_required: bool = False
    reason: Optional[str] = None
    message: Optional[str] = None


class CreditStore(Protocol):
    async def check_and_debit(
        self, user_id: str, resolution: str, image_id: Optional[str] = None
    ) -> Mapping[str, Any]:
        ...


def _int_or(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def decision_from_reply(reply: Mapping[str, Any] | None, resolution: str) -> CreditDecision:
    """Translate the store's JSON reply into a :class:`CreditDecision`."""

    reply = reply or {}
    needed = _int_or(reply.get("needed"), credits_needed(resolution))
    is_free = bool(reply.get("is_free", False))
    remaining = _int_or(reply.get("remaining", reply.get("credits_remaining")), 0)

    if reply.get("success") is True or reply.get("granted") is True:
        watermark = reply.get("watermark", reply.get("watermark_required", is_free))
        return CreditDecision(
            granted=True,
            remaining=remaining,
            needed=needed,
            is_free=is_free,
            watermark_required=bool(watermark),
        )

    if reply.get("error"):
        raw_reason = str(reply["error"])
    elif is_free and resolution not in FREE_TIER_RESOLUTIONS:
        raw_reason = DenialReason.RESOLUTION_NOT_ALLOWED.value
    else:
        raw_reason = DenialReason.INSUFFICIENT_CREDITS.value
    try:
        reason = DenialReason(raw_reason)
        message = reply.get("message") or _DEFAULT_MESSAGES[reason]
    except ValueError:
        reason = None
        message = reply.get("message") or raw_reason
    return CreditDecision(
        granted=False,
        remaining=remaining,
        needed=needed,
        is_free=is_free,
        reason=reason.value if reason else raw_reason,
        message=str(message),
    )


class CreditGate:
    """Single-shot admission check run before any billable work."""

    def __init__(self, store: CreditStore) -> None:
        self.store = store

    async def admit(
        self, user_id: Optional[str], resolution: str, *, image_id: Optional[str] = None
    ) -> CreditDecision:
        if not user_id:
            raise AuthenticationRequired("a signed-in user is required to generate images")

        credits_needed(resolution)
        reply = await self.store.check_and_debit(user_id, resolution, image_id)
        decision = decision_from_reply(reply, resolution)
        logger.info(
            "credit admission",
            extra={
                "user_id": user_id,
                "resolution": resolution,
                "granted": decision.granted,
                "remaining": decision.remaining,
                "reason": decision.reason,
            },
        )
        return decision


__all__ = [
    "CREDIT_COSTS",
    "CreditDecision",
    "CreditGate",
    "CreditStore",
    "DenialReason",
    "credits_needed",
    "decision_from_reply",
]
