"""
Secure messaging between clients and their clinicians.

A conversation is every message sharing a (client_id, staff_id) pair.
"""

from datetime import datetime, timezone
from typing import Dict, List

import structlog

from valorwell.models.message import ConversationSummary, Message, SenderType
from valorwell.services.clients import ClientService
from valorwell.services.data_access import TableService

logger = structlog.get_logger(__name__)


class MessageService(TableService):
    table = "messages"

    async def thread(self, client_id: str, staff_id: str, limit: int = 200) -> List[Message]:
        """Oldest first."""
        query = (
            self.query()
            .eq("client_id", client_id)
            .eq("staff_id", staff_id)
            .order("created_at")
            .paginate(limit)
        )
        return self._parse(Message, await self._select(query))

    async def send(
        self,
        tenant_id: str,
        client_id: str,
        staff_id: str,
        sender_type: SenderType,
        sender_id: str,
        body: str,
    ) -> Message:
        row = await self._insert(
            {
                "tenant_id": tenant_id,
                "client_id": client_id,
                "staff_id": staff_id,
                "sender_type": sender_type.value,
                "sender_id": sender_id,
                "body": body,
            }
        )
        message = Message.model_validate(row)
        logger.info("Message sent", message_id=message.id, sender_type=sender_type.value)
        return message

    async def mark_read(self, client_id: str, staff_id: str, reader: SenderType) -> int:
        """Mark the other side's unread messages as read; returns how many changed."""
        sent_by = SenderType.CLIENT if reader == SenderType.STAFF else SenderType.STAFF
        rows = await self._update(
            self.query()
            .eq("client_id", client_id)
            .eq("staff_id", staff_id)
            .eq("sender_type", sent_by)
            .is_null("read_at"),
            {"read_at": datetime.now(timezone.utc).isoformat()},
        )
        return len(rows)

    async def conversations(self, staff_id: str, tenant_id: str) -> List[ConversationSummary]:
        """One summary per client the staff member has messaged, most recent first."""
        query = (
            self.query()
            .eq("staff_id", staff_id)
            .eq("tenant_id", tenant_id)
            .order("created_at", ascending=False)
        )
        messages = self._parse(Message, await self._select(query))

        latest: Dict[str, Message] = {}
        unread: Dict[str, int] = {}
        for message in messages:
            latest.setdefault(message.client_id, message)
            if message.sender_type == SenderType.CLIENT and message.read_at is None:
                unread[message.client_id] = unread.get(message.client_id, 0) + 1

        names = await ClientService(self.backend, self.breaker).display_names(latest.keys())

        summaries = [
            ConversationSummary(
                client_id=client_id,
                staff_id=staff_id,
                client_name=names.get(client_id, "Unknown Client"),
                last_message_body=message.body,
                last_message_at=message.created_at,
                last_sender_type=message.sender_type,
                unread_count=unread.get(client_id, 0),
            )
            for client_id, message in latest.items()
        ]
        summaries.sort(key=lambda s: s.last_message_at, reverse=True)
        return summaries
