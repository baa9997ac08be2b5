"""
Conversation export for Ofie Assistant (json, csv, txt).
"""

import csv
import io
import json
import logging
from typing import Dict, List, Tuple

from .models import ConversationRecord, MessageRecord
from .store import ConversationStore

logger = logging.getLogger(__name__)


EXPORT_MEDIA_TYPES = {
    "json": "application/json",
    "csv": "text/csv",
    "txt": "text/plain",
}


class ConversationExporter:
    """Renders a conversation's full history in a downloadable format."""

    def __init__(self, store: ConversationStore, bot_user_id: str, bot_name: str):
        self.store = store
        self.bot_user_id = bot_user_id
        self.bot_name = bot_name

    async def export(self, conversation: ConversationRecord, fmt: str = "json") -> Tuple[str, str]:
        """
        Export a conversation.

        Args:
            conversation: Conversation to export
            fmt: json | csv | txt

        Returns:
            (content, media_type)
        """
        fmt = fmt.lower()
        if fmt not in EXPORT_MEDIA_TYPES:
            raise ValueError(f"Unsupported export format: {fmt}")

        messages = await self.store.list_messages(conversation.id)
        names = await self._sender_names(messages)

        if fmt == "json":
            content = self._to_json(conversation, messages, names)
        elif fmt == "csv":
            content = self._to_csv(messages, names)
        else:
            content = self._to_text(conversation, messages, names)

        logger.info(f"Exported conversation {conversation.id} as {fmt} ({len(messages)} messages)")
        return content, EXPORT_MEDIA_TYPES[fmt]

    async def _sender_names(self, messages: List[MessageRecord]) -> Dict[str, str]:
        names = {self.bot_user_id: self.bot_name}
        for message in messages:
            if message.sender_id not in names:
                user = await self.store.get_user(message.sender_id)
                names[message.sender_id] = user.name if user else message.sender_id
        return names

    def _to_json(self, conversation: ConversationRecord, messages: List[MessageRecord], names: Dict[str, str]) -> str:
        return json.dumps({
            "conversation": {
                "id": conversation.id,
                "tenant_id": conversation.tenant_id,
                "landlord_id": conversation.landlord_id,
                "subject": conversation.subject.to_dict() if conversation.subject else None,
                "status": conversation.status,
                "created_at": conversation.created_at.isoformat(),
            },
            "messages": [
                {
                    "id": m.id,
                    "sender_id": m.sender_id,
                    "sender_name": names[m.sender_id],
                    "content": m.content,
                    "message_type": m.message_type,
                    "metadata": m.metadata,
                    "created_at": m.created_at.isoformat(),
                }
                for m in messages
            ],
        }, indent=2, default=str)

    def _to_csv(self, messages: List[MessageRecord], names: Dict[str, str]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(["timestamp", "sender", "role", "content", "intent", "confidence"])
        for m in messages:
            writer.writerow([
                m.created_at.isoformat(),
                names[m.sender_id],
                "assistant" if m.sender_id == self.bot_user_id else "user",
                m.content,
                m.metadata.get("intent", ""),
                m.metadata.get("confidence", ""),
            ])
        return buffer.getvalue()

    def _to_text(self, conversation: ConversationRecord, messages: List[MessageRecord], names: Dict[str, str]) -> str:
        lines = [f"Conversation {conversation.id}"]
        if conversation.subject:
            lines.append(f"Property: {conversation.subject.title}")
        lines.append("")
        for m in messages:
            lines.append(f"[{m.created_at.strftime('%Y-%m-%d %H:%M')}] {names[m.sender_id]}: {m.content}")
        return "\n".join(lines) + "\n"
