"""Fire-and-forget delivery of approval, rejection and new-request notices."""

from __future__ import annotations

import sqlite3
from dataclasses import replace
from typing import Iterable, Optional

import requests

from seat_allocation.domain.models import InboxMessage, NotificationPayload, WorkflowOutcome
from seat_allocation.repository.request_repository import RequestRepository
from seat_allocation.utils.config import Settings, get_settings
from seat_allocation.utils.logger import get_logger


logger = get_logger(__name__)

NEW_REQUEST_EVENT = "request.submitted"
APPROVED_EVENT = "request.approved"
REJECTED_EVENT = "request.rejected"


class NotificationService:
    """Routes payloads to configured recipients and posts them to a webhook.

    Failures are logged and swallowed: an allocation outcome is never rolled
    back or blocked because a notice could not be delivered.
    """

    def __init__(
        self,
        repository: RequestRepository,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._repository = repository
        self._settings = settings or get_settings()
        self._session = session or requests.Session()

    def route(self, payload: NotificationPayload) -> tuple[str, ...]:
        override = self._settings.notification_override_recipient
        if override:
            return (override,)
        if payload.event == NEW_REQUEST_EVENT:
            admins = self._settings.notification_admin_recipients
            if admins:
                return admins
            return tuple(
                admin.email for admin in self._repository.list_employees_by_role("Admin")
            )
        return (payload.requestor_email,) if payload.requestor_email else ()

    def deliver(self, payload: NotificationPayload) -> bool:
        try:
            routed = replace(payload, recipients=self.route(payload))
        except sqlite3.Error as exc:
            logger.warning("Could not resolve recipients for %s: %s", payload.event, exc)
            return False
        url = self._settings.notification_webhook_url
        if not url:
            logger.info(
                "No notification webhook configured; %s for %s not sent",
                routed.event,
                routed.request_number,
            )
            return False
        if not routed.recipients:
            logger.warning(
                "No recipients for %s on %s; skipping delivery",
                routed.event,
                routed.request_number,
            )
            return False

        try:
            response = self._session.post(
                url,
                json={"sender": self._settings.notification_sender, **routed.to_dict()},
                timeout=self._settings.notification_timeout_seconds,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning(
                "Notification %s for %s failed: %s",
                routed.event,
                routed.request_number,
                exc,
            )
            return False

        logger.info(
            "Notification %s for %s delivered to %s recipient(s)",
            routed.event,
            routed.request_number,
            len(routed.recipients),
        )
        return True

    def post_inbox(self, messages: Iterable[InboxMessage]) -> int:
        try:
            return self._repository.add_notifications(messages)
        except sqlite3.Error as exc:
            logger.warning("Could not write inbox notifications: %s", exc)
            return 0

    def dispatch(self, outcome: WorkflowOutcome) -> None:
        """Emit everything a committed transition owes; never raises."""
        self.post_inbox(outcome.inbox)
        if outcome.notification is not None:
            self.deliver(outcome.notification)
