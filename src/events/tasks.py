"""Celery tasks for event orders.

- Sweeping expired orders: each page of candidates fans out one cancellation task
  per order, and a chord callback records what the page did
- Order cancellation emails, queued after the cancelling transaction commits
"""

from smtplib import SMTPException
from uuid import UUID

import structlog
from celery import chord, shared_task
from django.utils import translation
from django.utils.translation import gettext as _

from common.tasks import deliver_email

from .models import Order
from .service import order_service

logger = structlog.get_logger(__name__)


@shared_task
def cancel_expired_orders_task() -> dict[str, int]:
    """Queue the cancellation of every PENDING order whose payment window has closed."""
    queued = pages = 0
    for page in order_service.expired_order_id_pages():
        chord([cancel_expired_order_task.s(str(order_id)) for order_id in page])(record_expired_order_sweep.s())
        queued += len(page)
        pages += 1
    if queued:
        logger.info("expired_order_sweep_queued", queued_count=queued, page_count=pages)
    return {"queued_count": queued, "page_count": pages}


@shared_task
def cancel_expired_order_task(order_id: str) -> str:
    """Cancel one expired order and report the outcome."""
    return order_service.cancel_expired_order(UUID(order_id)).value


@shared_task
def record_expired_order_sweep(outcomes: list[str]) -> dict[str, int]:
    """Tally the outcomes of one page of the sweep."""
    return order_service.summarize_expired_order_sweep(outcomes)._asdict()


@shared_task(
    bind=True,
    max_retries=5,
    default_retry_delay=60,
    autoretry_for=(SMTPException, OSError),
    retry_backoff=True,
)
def send_order_cancelled_email(self: object, order_id: str) -> None:
    """Tell the buyer their order was cancelled."""
    order = Order.objects.select_related("event", "user").get(pk=order_id)
    user = order.user
    if not user.email:
        logger.info("order_cancelled_email_skipped", order_id=order_id, reason="missing_email")
        return
    with translation.override(user.language):
        subject = _("Your order for %(event)s was cancelled") % {"event": order.event.name}
        body = _(
            "Hi %(name)s,\n\n"
            "your order %(order_no)s for %(quantity)s ticket(s) to %(event)s has been cancelled.\n"
            "Reason: %(reason)s\n\n"
            "Any seats it held have been released."
        ) % {
            "name": user.display_name,
            "order_no": order.order_no,
            "quantity": order.quantity,
            "event": order.event.name,
            "reason": _(order.cancel_reason) if order.cancel_reason else "-",
        }
    deliver_email(user.email, subject, body)
    logger.info("order_cancelled_email_sent", order_id=order_id)
