"""
Notifier: best-effort member notices.

Notices are handed over as post-commit tasks. Each recipient is attempted
once, concurrently with the others; every attempt is written to
notification_logs and failures are only logged. Nothing here can fail or
undo the operation that produced the notices.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple
from sqlalchemy import select

from clubhouse.database.db import LedgerStore
from clubhouse.database.models import (
    Member,
    NotificationLog,
    NotificationStatus,
    NotificationTemplate,
)
from clubhouse.services import email_service
from clubhouse.utils.datetime_utils import iso_or_none

logger = logging.getLogger(__name__)

EmailSender = Callable[[Optional[str], str, str], Awaitable[NotificationStatus]]


@dataclass
class Notice:
    """One notice for one member."""

    member_id: int
    template: str
    payload: Dict[str, Any] = field(default_factory=dict)


def render(template: str, member: Member, payload: Dict[str, Any]) -> Tuple[str, str]:
    """
    Build (subject, body) for a template.

    Raises:
        ValueError: For unknown templates
    """
    if template == NotificationTemplate.PRACTICE_RETIRED.value:
        practice_name = payload.get("practice_name", "your practice")
        subject = f"Practice discontinued: {practice_name}"
        body = "\n".join(
            [
                f"Hello {member.full_name},",
                "",
                f"The practice \"{practice_name}\" has been discontinued and your "
                "enrollment in it is no longer active.",
                "Please contact the club office if you would like to join another practice.",
                "",
                "---",
                "This is an automated message from the club management system.",
            ]
        )
        return subject, body
    raise ValueError(f"Unknown notification template: {template}")


class Notifier:
    """Dispatches member notices outside of any ledger transaction."""

    def __init__(self, store: LedgerStore, sender: Optional[EmailSender] = None):
        self._store = store
        self._sender = sender or email_service.send_email
        self._tasks: Set[asyncio.Task] = set()

    async def notify(self, member_id: int, template: str, payload: Dict[str, Any]) -> bool:
        """
        Attempt to deliver one notice. Returns True unless the attempt failed.

        Never raises; failures are logged and recorded.
        """
        to_address = None
        subject = None
        error = None
        member = None
        try:
            async with self._store.session() as session:
                member = await session.get(Member, member_id)
            if member is None:
                raise LookupError(f"Member {member_id} not found")
            to_address = member.email
            subject, body = render(template, member, payload)
            status = await self._sender(to_address, subject, body)
        except Exception as e:
            logger.warning(f"Failed to notify member {member_id} ({template}): {e}")
            status = NotificationStatus.FAILED
            error = str(e)

        if status == NotificationStatus.FAILED and error is None:
            error = "Delivery failed"
            logger.warning(f"Notice {template} to member {member_id} was not delivered")

        # Log rows reference members, so unknown ids are only kept in the error text
        logged_member_id = member.id if member is not None else None
        await self._record(logged_member_id, template, to_address, subject, status, error)
        return status != NotificationStatus.FAILED

    async def _record(
        self,
        member_id: Optional[int],
        template: str,
        to_address: Optional[str],
        subject: Optional[str],
        status: NotificationStatus,
        error: Optional[str],
    ) -> None:
        try:
            async with self._store.transaction() as session:
                session.add(
                    NotificationLog(
                        member_id=member_id,
                        template=template,
                        to_address=to_address,
                        subject=subject,
                        status=NotificationStatus(status).value,
                        error=error,
                    )
                )
        except Exception as e:
            # Losing the log row must not turn into an operation failure
            logger.error(f"Could not record notification for member {member_id}: {e}")

    async def _fan_out(self, notices: List[Notice]) -> Dict[int, bool]:
        results = await asyncio.gather(
            *(self.notify(n.member_id, n.template, n.payload) for n in notices)
        )
        outcome = {n.member_id: ok for n, ok in zip(notices, results)}
        failed = [member_id for member_id, ok in outcome.items() if not ok]
        if failed:
            logger.warning(f"{len(failed)} of {len(notices)} notices failed: members {failed}")
        else:
            logger.info(f"Delivered {len(notices)} notice(s)")
        return outcome

    def dispatch(self, notices: List[Notice]) -> Optional[asyncio.Task]:
        """
        Hand off a batch of notices and return immediately.

        Returns:
            The task running the batch, or None if there was nothing to send
        """
        if not notices:
            return None
        task = asyncio.create_task(self._fan_out(notices))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every dispatched batch to finish (shutdown, tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


async def list_notification_logs(
    store: LedgerStore,
    member_id: Optional[int] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Dict]:
    """
    List notification attempts, newest first.
    """
    query = select(NotificationLog)
    if member_id is not None:
        query = query.where(NotificationLog.member_id == member_id)
    if status is not None:
        query = query.where(NotificationLog.status == status)
    query = query.order_by(NotificationLog.created_at.desc(), NotificationLog.id.desc())

    async with store.session() as session:
        result = await session.execute(query.offset(offset).limit(limit))
        logs = result.scalars().all()

    return [
        {
            "id": log.id,
            "member_id": log.member_id,
            "template": log.template,
            "to_address": log.to_address,
            "subject": log.subject,
            "status": log.status,
            "error": log.error,
            "created_at": iso_or_none(log.created_at),
        }
        for log in logs
    ]
