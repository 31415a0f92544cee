import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from educhat.errors import ForbiddenError, InvalidRoleError, NotFoundError, ValidationFailedError
from educhat.models.participant import STUDENT, CanonicalRole, map_role, participant_user_id
from educhat.repositories.conversation_repository import ConversationRepository
from educhat.repositories.message_repository import MessageRepository
from educhat.repositories.user_repository import UserRepository
from educhat.services.delivery import MESSAGE_READ, MESSAGES_READ, NEW_MESSAGE, DeliveryDispatcher


logger = logging.getLogger(__name__)

CANONICAL_ROLES = ("Student", "Educator", "Admin")


def require_role(external_role: Optional[str]) -> CanonicalRole:
    role = map_role(external_role)
    if role is None:
        raise InvalidRoleError(external_role)
    return role


class ChatService:

    def __init__(
        self,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        user_repo: UserRepository,
        dispatcher: DeliveryDispatcher,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._user_repo = user_repo
        self._dispatcher = dispatcher

    async def list_conversations(self, user_id: str, user_role: str) -> List[Dict[str, Any]]:
        role = require_role(user_role)
        conversations = await self._conversation_repo.list_for_user(user_id, role)
        return await self._expand_conversations(conversations)

    async def create_or_get_conversation(self, user_id: str, user_role: str, educator_id: str) -> Tuple[Dict[str, Any], bool]:
        """Student-initiated only. Returns the conversation and whether it was created."""
        role = require_role(user_role)
        if role != STUDENT:
            raise ForbiddenError("Only Student can create chat with Educator")
        if not educator_id:
            raise ValidationFailedError("other_user_id (Educator) is required for student chat", ["other_user_id"])
        if str(educator_id) == str(user_id):
            raise ValidationFailedError("Cannot start a conversation with yourself", ["other_user_id"])

        conversation, created = await self._conversation_repo.get_or_create_student_educator(str(user_id), str(educator_id))
        expanded = await self._expand_conversations([conversation])
        return expanded[0], created

    async def get_messages(self, conversation_id: str, user_id: str, page: int = 1, page_size: int = 50) -> Dict[str, Any]:
        conversation = await self._get_conversation_for(conversation_id, user_id)
        result = await self._message_repo.page(conversation["_id"], page, page_size)
        result["messages"] = await self._expand_messages(result["messages"])
        return result

    async def send_message(
        self,
        conversation_id: str,
        sender_id: str,
        sender_role: str,
        receiver_id: str,
        receiver_role: Optional[str],
        content: str,
        message_type: str = "text",
        attachments: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        role = require_role(sender_role)
        conversation = await self._get_conversation_for(conversation_id, sender_id)

        sender = self._conversation_repo.find_participant(conversation, sender_id)
        if sender is None or sender.get("role") != role:
            raise ForbiddenError("Sender role does not match this conversation")

        receiver = self._conversation_repo.find_participant(conversation, receiver_id)
        if receiver is None or participant_user_id(receiver) == str(sender_id):
            raise ValidationFailedError("Receiver is not the other participant of this conversation", ["receiver_id"])
        if receiver_role is not None and _canonical(receiver_role) != receiver.get("role"):
            raise ValidationFailedError("Receiver role does not match this conversation", ["receiver_role"])

        content = content or ""
        if not content.strip() and not attachments:
            raise ValidationFailedError("Message content cannot be empty", ["content"])

        message = await self._message_repo.append(
            conversation["_id"], sender, receiver, content, message_type, attachments
        )
        expanded = (await self._expand_messages([message]))[0]
        await self._dispatcher.push(participant_user_id(receiver), NEW_MESSAGE, {"message": expanded})
        return expanded

    async def mark_message_read(self, message_id: str, user_id: str) -> Dict[str, Any]:
        message, changed = await self._message_repo.mark_read(message_id, user_id)
        # a repeat read is a no-op and does not notify the sender again
        if changed:
            await self._dispatcher.push(
                participant_user_id(message["sender"]),
                MESSAGE_READ,
                {"message_id": message["_id"], "conversation_id": message["conversation_id"], "read_at": message["read_at"]},
            )
        return message

    async def mark_conversation_read(self, conversation_id: str, user_id: str, user_role: str) -> Dict[str, Any]:
        require_role(user_role)
        conversation = await self._get_conversation_for(conversation_id, user_id)
        updated = await self._message_repo.mark_all_read_in_conversation(conversation["_id"], user_id)
        if updated:
            for other_id in self._other_participants(conversation, user_id):
                await self._dispatcher.push(
                    other_id,
                    MESSAGES_READ,
                    {"conversation_id": conversation["_id"], "reader_id": str(user_id), "count": updated},
                )
        unread = await self._message_repo.unread_count(user_id)
        return {"conversation_id": conversation["_id"], "unread_count": unread, "marked": updated}

    async def unread_count(self, user_id: str, user_role: str) -> int:
        require_role(user_role)
        return await self._message_repo.unread_count(user_id)

    async def _get_conversation_for(self, conversation_id: str, user_id: str) -> Dict[str, Any]:
        conversation = await self._conversation_repo.find_by_id(conversation_id)
        if not conversation:
            raise NotFoundError("Conversation not found")
        if not self._conversation_repo.is_participant(conversation, user_id):
            raise ForbiddenError("You are not a participant in this conversation")
        return conversation

    @staticmethod
    def _other_participants(conversation: Dict[str, Any], user_id: str) -> List[str]:
        ids = (participant_user_id(p) for p in conversation.get("participants") or [])
        return [pid for pid in ids if pid and pid != str(user_id)]

    async def _expand_conversations(self, conversations: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not conversations:
            return conversations
        profiles = await self._user_repo.get_profiles(
            participant_user_id(p) for c in conversations for p in c.get("participants") or []
        )
        previews = await self._message_repo.get_previews(c.get("last_message") for c in conversations)
        for c in conversations:
            c["participants"] = _with_profiles(c.get("participants") or [], profiles)
            last = c.get("last_message")
            if last and last in previews:
                c["last_message"] = previews[last]
        return conversations

    async def _expand_messages(self, messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not messages:
            return messages
        profiles = await self._user_repo.get_profiles(
            participant_user_id(m[side]) for m in messages for side in ("sender", "receiver")
        )
        for m in messages:
            m["sender"], m["receiver"] = _with_profiles([m["sender"], m["receiver"]], profiles)
        return messages


def _canonical(role: str) -> Optional[str]:
    if role in CANONICAL_ROLES:
        return role
    return map_role(role)


def _with_profiles(participants: Iterable[Dict[str, Any]], profiles: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{**p, "user": profiles.get(participant_user_id(p))} for p in participants]
