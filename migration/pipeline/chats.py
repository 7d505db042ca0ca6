"""Booking chats and their messages."""

from __future__ import annotations

from dataclasses import dataclass

from migration.common.coercion import timestamp_or_default
from migration.common.ids import normalise_legacy_id
from migration.dump.records import LegacyChat, LegacyMessage
from migration.pipeline.base import EntityPipeline, Extraction, ParentRef, TargetRecord, WriteStep, resolve_required
from migration.pipeline.ownership import OWNER_BUYER, OWNER_STYLIST


@dataclass(frozen=True)
class ChatRecord(TargetRecord):
    booking_id: str
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class MessageRecord(TargetRecord):
    chat_legacy_id: str
    sender_id: str
    sender_kind: str
    content: str | None
    is_read: bool
    has_image: bool
    created_at: str


class ChatsPipeline(EntityPipeline):
    entity = "chats"
    requires = ("booking", "buyer", "stylist")

    def _booking_parties(self) -> dict[str, dict[str, str | None]]:
        parties = {}
        for row in self.ctx.dump.rows("booking"):
            booking_id = normalise_legacy_id(row.get("id"))
            if booking_id is None:
                continue
            parties[booking_id] = {
                OWNER_BUYER: normalise_legacy_id(row.get("buyer_id")),
                OWNER_STYLIST: normalise_legacy_id(row.get("stylist_id")),
            }
        return parties

    def transform(self) -> Extraction:
        extraction = Extraction()
        mappings = self.ctx.mappings
        processed_at = self.ctx.processed_at
        parties = self._booking_parties()

        chat_bookings: dict[str, str] = {}
        for chat in self.typed_rows(extraction, "chat", LegacyChat.from_row):
            if not chat.is_active:
                extraction.exclude("inactive_chat")
                continue
            booking_id = mappings.get("booking", chat.booking_id)
            if booking_id is None:
                self.skip(extraction, chat.id, f"Booking {chat.booking_id} not migrated")
                continue
            added = self.add(
                extraction,
                "chats",
                ChatRecord(
                    legacy_id=chat.id,
                    booking_id=booking_id,
                    created_at=timestamp_or_default(chat.created_at, processed_at),
                    updated_at=timestamp_or_default(chat.updated_at, processed_at),
                ),
            )
            if added:
                chat_bookings[chat.id] = chat.booking_id

        sender_counts = {OWNER_BUYER: 0, OWNER_STYLIST: 0}
        image_messages = 0
        for message in self.typed_rows(extraction, "message", LegacyMessage.from_row):
            legacy_booking_id = chat_bookings.get(message.chat_id)
            if legacy_booking_id is None:
                self.skip(extraction, message.id, f"Chat {message.chat_id} not migrated")
                continue
            kind = (message.is_from or "").lower()
            if kind not in sender_counts:
                self.skip(extraction, message.id, f"Unknown sender type: {message.is_from!r}")
                continue
            sender_legacy_id = parties.get(legacy_booking_id, {}).get(kind)
            sender_id = mappings.get(kind, sender_legacy_id)
            if sender_id is None:
                self.skip(extraction, message.id, f"Sender {kind} {sender_legacy_id} not migrated")
                continue
            sender_counts[kind] += 1
            image_messages += int(message.is_image)
            self.add(
                extraction,
                "messages",
                MessageRecord(
                    legacy_id=message.id,
                    chat_legacy_id=message.chat_id,
                    sender_id=sender_id,
                    sender_kind=kind,
                    content=message.message,
                    is_read=not message.is_unread,
                    has_image=message.is_image,
                    created_at=timestamp_or_default(message.created_at, processed_at),
                ),
            )

        extraction.stats["sender_distribution"] = sender_counts
        extraction.stats["image_messages"] = image_messages
        return extraction

    def _chat_row(self, record: ChatRecord) -> dict:
        return {
            "id": record.legacy_id,
            "booking_id": record.booking_id,
            "created_at": record.created_at,
            "updated_at": record.updated_at,
        }

    def _message_row(self, record: MessageRecord) -> dict:
        return {
            "id": record.legacy_id,
            "chat_id": resolve_required(self.ctx.mappings, "chat", record.chat_legacy_id, "chat"),
            "sender_id": record.sender_id,
            "content": record.content,
            "is_read": record.is_read,
            "created_at": record.created_at,
        }

    def write_steps(self) -> list[WriteStep]:
        return [
            WriteStep(
                collection="chats",
                table="chats",
                record_type=ChatRecord,
                natural_key=("booking_id",),
                to_row=self._chat_row,
                mapping_keys=lambda record: [("chat", record.legacy_id)],
                mapping_entities=("chat",),
                parent_refs=(ParentRef("booking_id", "bookings"),),
            ),
            WriteStep(
                collection="messages",
                table="chat_messages",
                record_type=MessageRecord,
                natural_key=("id",),
                to_row=self._message_row,
                mapping_keys=lambda record: [("message", record.legacy_id)],
                mapping_entities=("message",),
                parent_refs=(
                    ParentRef("chat_id", "chats"),
                    ParentRef("sender_id", "profiles"),
                ),
                sample_fields=("sender_id", "content", "is_read"),
            ),
        ]
