"""Helpers for background work: transactional email and queueing tasks after commit."""

import typing as t

import structlog
from celery import Task
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.db import transaction

from common.models import DeliveryLog, SiteSettings

logger = structlog.get_logger(__name__)


def enqueue_on_commit(task: Task, *args: t.Any) -> None:
    """Queue ``task`` once the current transaction commits.

    The task is a side effect of work that has already been committed, so a failure
    to enqueue it (typically the broker being unreachable) is logged and dropped
    instead of failing the caller.
    """

    def enqueue() -> None:
        try:
            task.delay(*args)
        except Exception:
            logger.exception("task_enqueue_failed", task_name=task.name, task_args=[str(arg) for arg in args])

    transaction.on_commit(enqueue)


def to_safe_email_address(email: str, site_settings: SiteSettings | None = None) -> str:
    """Return the address an email to ``email`` should actually go to.

    While live emails are off the recipient is folded into a plus-alias of the
    catchall mailbox, e.g. ``ada@example.org`` becomes
    ``catchall+ada_at_example_dot_org@gatherly.test``.
    """
    site_settings = site_settings or SiteSettings.get_solo()
    if site_settings.live_emails:
        return email
    mailbox, domain = site_settings.internal_catchall_email.split("@", 1)
    alias = email.replace("@", "_at_").replace(".", "_dot_")
    return f"{mailbox}+{alias}@{domain}"


def deliver_email(to: str, subject: str, body: str, html_body: str | None = None) -> DeliveryLog:
    """Send one email to one recipient and log it."""
    recipient = to_safe_email_address(to)
    message = EmailMultiAlternatives(subject=subject, body=body, from_email=settings.DEFAULT_FROM_EMAIL, to=[recipient])
    if html_body:
        message.attach_alternative(html_body, "text/html")
    message.send(fail_silently=False)
    return DeliveryLog.objects.create(channel=DeliveryLog.Channel.EMAIL, to=recipient, subject=subject, body=body)
