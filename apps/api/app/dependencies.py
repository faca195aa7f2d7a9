from typing import Protocol

from fastapi import Header, HTTPException, status

from app.observability import log_event


class SuspiciousOrderNotifier(Protocol):
    def notify_suspicious_order(
        self,
        *,
        order_id: int,
        customer_id: str,
        reason: str,
        related_order_ids: list[int],
        linked_merged_order_id: int | None,
    ) -> None: ...


class LoggingSuspiciousOrderNotifier:
    """Stand-in until an administrator notification channel is wired in."""

    def notify_suspicious_order(
        self,
        *,
        order_id: int,
        customer_id: str,
        reason: str,
        related_order_ids: list[int],
        linked_merged_order_id: int | None,
    ) -> None:
        log_event(
            "suspicious_order_notification",
            order_id=order_id,
            customer_id=customer_id,
            reason=reason,
            related_order_ids=related_order_ids,
            linked_merged_order_id=linked_merged_order_id,
        )


def get_suspicious_order_notifier() -> SuspiciousOrderNotifier:
    return LoggingSuspiciousOrderNotifier()


def require_admin_id(
    admin_id: str | None = Header(default=None, alias="X-Admin-Id"),
) -> str:
    """The upstream auth layer sets X-Admin-Id for authenticated administrators."""
    normalized = (admin_id or "").strip()
    if not normalized:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing administrator identity",
        )
    return normalized
