import uuid
from datetime import datetime
from typing import Callable, List, Optional

from fastapi import HTTPException, status

from db.mongodb import message_path, recent_message_path
from db.schemas.messages_schema import MessageInDB, RecentMessageInDB
from db.schemas.users_schema import UserInDB
from logger.logger import logger
from mappers.messages_mapper import (
    message_db_to_document,
    message_db_to_response,
    recent_db_to_document,
    recent_db_to_response,
)
from models.enums import ChangeKind, ChangeOp, SendStatus, WriteTarget
from models.message_model import (
    MessageCreate,
    MessageResponse,
    RecentMessageResponse,
    SendOutcome,
    WriteResult,
)
from repos.message_repo import MessageRepository
from repos.recent_message_repo import RecentMessageRepository
from repos.user_repo import UserRepository
from services.change_feed import ChangeFeed
from utils.time import get_current_utc_time

SKIPPED = "not attempted: sender copy was not written"


class MessageService:
    """
    Send pipeline and conversation reads.

    A send is four independent writes: the sender's message copy, the sender's
    recent row, the recipient's message copy and the recipient's recent row.
    There is no transaction and no rollback; every write is reported in the
    returned SendOutcome and a send only counts as delivered when all four
    landed. Replaying a send with the same messageId fills in missing writes
    without duplicating existing ones.
    """

    def __init__(self, message_repo: MessageRepository, recent_repo: RecentMessageRepository,
                 user_repo: UserRepository, feed: ChangeFeed,
                 clock: Callable[[], datetime] = get_current_utc_time):
        self.message_repo = message_repo
        self.recent_repo = recent_repo
        self.user_repo = user_repo
        self.feed = feed
        self.clock = clock

    async def send_message(self, sender: UserInDB, message: MessageCreate) -> SendOutcome:
        """Send a new message, or repair a previous send with the same messageId"""
        from_id = sender.uid
        to_id = message.to_id

        if message.from_id is not None and message.from_id != from_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot send messages as another user")
        if not message.text.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message text cannot be empty")
        if to_id == from_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot send message to yourself")

        recipient = await self.user_repo.find_by_uid(to_id)
        if not recipient:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recipient not found")

        message_id = message.message_id or str(uuid.uuid4())
        existing = await self._find_existing(from_id, to_id, message_id)
        if existing:
            self._ensure_same_message(existing, from_id, to_id, message.text)
            timestamp = existing.timestamp
            logger.info(f"Replaying send {message_id} from {from_id} to {to_id}")
        else:
            timestamp = self.clock()

        fields = {
            "message_id": message_id,
            "from_id": from_id,
            "to_id": to_id,
            "text": message.text,
            "timestamp": timestamp,
        }
        writes: List[WriteResult] = []
        replay = existing is not None

        sender_copy = await self._write_message(
            WriteTarget.SENDER_MESSAGE,
            MessageInDB(owner_id=from_id, peer_id=to_id, **fields),
            writes
        )
        if sender_copy is not None:
            # A concurrent send with this id may have stored its copy first
            self._ensure_same_message(sender_copy, from_id, to_id, message.text)
            if sender_copy.timestamp != timestamp:
                timestamp = fields["timestamp"] = sender_copy.timestamp
                replay = True
                logger.info(f"Send {message_id} from {from_id} lost the insert race, reusing stored copy")

        if sender_copy is None:
            for target, path in (
                (WriteTarget.SENDER_RECENT, recent_message_path(from_id, to_id)),
                (WriteTarget.RECIPIENT_MESSAGE, message_path(to_id, from_id, message_id)),
                (WriteTarget.RECIPIENT_RECENT, recent_message_path(to_id, from_id)),
            ):
                writes.append(WriteResult(target=target, path=path, ok=False, error=SKIPPED))
        else:
            await self._write_recent(
                WriteTarget.SENDER_RECENT,
                RecentMessageInDB(
                    owner_id=from_id, peer_id=to_id,
                    email=recipient.email, profile_image_url=recipient.profile_image_url,
                    status=True, **fields
                ),
                writes,
                replay=replay
            )
            recipient_copy = await self._write_message(
                WriteTarget.RECIPIENT_MESSAGE,
                MessageInDB(owner_id=to_id, peer_id=from_id, **fields),
                writes
            )
            if recipient_copy is not None:
                self._ensure_same_message(recipient_copy, from_id, to_id, message.text)
            await self._write_recent(
                WriteTarget.RECIPIENT_RECENT,
                RecentMessageInDB(
                    owner_id=to_id, peer_id=from_id,
                    email=sender.email, profile_image_url=sender.profile_image_url,
                    status=True, **fields
                ),
                writes,
                replay=replay
            )

        outcome = SendOutcome(
            message_id=message_id,
            from_id=from_id,
            to_id=to_id,
            text=message.text,
            timestamp=timestamp,
            status=self._overall_status(writes),
            writes=writes
        )

        if outcome.status == SendStatus.DELIVERED:
            logger.info(f"Message {message_id} delivered from {from_id} to {to_id}")
        elif outcome.status == SendStatus.PARTIAL:
            logger.warning(f"Message {message_id} from {from_id} to {to_id} partially written: {outcome.error}")
        else:
            logger.error(f"Message {message_id} from {from_id} to {to_id} failed: {outcome.error}")

        return outcome

    async def _find_existing(self, from_id: str, to_id: str, message_id: str) -> Optional[MessageInDB]:
        existing = await self.message_repo.find_message(from_id, to_id, message_id)
        if existing:
            return existing
        return await self.message_repo.find_message(to_id, from_id, message_id)

    @staticmethod
    def _ensure_same_message(stored: MessageInDB, from_id: str, to_id: str, text: str) -> None:
        if stored.text != text or stored.from_id != from_id or stored.to_id != to_id:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Message id already used for a different message"
            )

    async def _write_message(self, target: WriteTarget, copy: MessageInDB,
                             writes: List[WriteResult]) -> Optional[MessageInDB]:
        """
        Insert one message copy and return the copy as stored

        When the id already exists in the partition the stored copy is read
        back, so callers see the text and timestamp that actually won.
        Returns None when the write failed.
        """
        path = message_path(copy.owner_id, copy.peer_id, copy.message_id)
        try:
            created = await self.message_repo.insert_message(copy)
            stored = copy
            if not created:
                stored = await self.message_repo.find_message(copy.owner_id, copy.peer_id, copy.message_id) or copy
        except Exception as e:
            logger.error(f"Failed to save message into {path}: {e}")
            writes.append(WriteResult(target=target, path=path, ok=False, error=f"Failed to save message: {e}"))
            return None

        if created:
            self.feed.publish(
                ChangeKind.MESSAGE, ChangeOp.INSERT,
                copy.owner_id, copy.peer_id, copy.message_id,
                message_db_to_document(copy)
            )
        writes.append(WriteResult(target=target, path=path, ok=True))
        return stored

    async def _write_recent(self, target: WriteTarget, entry: RecentMessageInDB,
                            writes: List[WriteResult], replay: bool = False) -> bool:
        path = recent_message_path(entry.owner_id, entry.peer_id)
        try:
            if replay:
                current = await self.recent_repo.get_entry(entry.owner_id, entry.peer_id)
                # A replayed send must not roll the row back past a newer message
                if current and current.timestamp > entry.timestamp:
                    writes.append(WriteResult(target=target, path=path, ok=True))
                    return True
            created = await self.recent_repo.upsert_entry(entry)
        except Exception as e:
            logger.error(f"Failed to save recent message into {path}: {e}")
            writes.append(WriteResult(target=target, path=path, ok=False, error=f"Failed to save recent message: {e}"))
            return False

        self.feed.publish(
            ChangeKind.RECENT, ChangeOp.INSERT if created else ChangeOp.UPDATE,
            entry.owner_id, entry.peer_id, entry.peer_id,
            recent_db_to_document(entry)
        )
        writes.append(WriteResult(target=target, path=path, ok=True))
        return True

    @staticmethod
    def _overall_status(writes: List[WriteResult]) -> SendStatus:
        if all(w.ok for w in writes):
            return SendStatus.DELIVERED
        if writes and writes[0].target == WriteTarget.SENDER_MESSAGE and writes[0].ok:
            return SendStatus.PARTIAL
        return SendStatus.FAILED

    async def get_messages(self, owner_id: str, peer_id: str, limit: Optional[int] = None) -> List[MessageResponse]:
        """Get the messages of owner_id's partition for peer_id, oldest first"""
        if owner_id == peer_id:
            raise HTTPException(status_code=400, detail="Cannot get messages with yourself")

        messages = await self.message_repo.get_messages(owner_id, peer_id, limit)
        return [message_db_to_response(m) for m in messages]

    async def get_recent_messages(self, owner_id: str) -> List[RecentMessageResponse]:
        """Get owner_id's recent conversations, most recently touched first"""
        entries = await self.recent_repo.get_recent_messages(owner_id)
        return [recent_db_to_response(e) for e in entries]
