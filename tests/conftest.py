import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient

from educhat.repositories.conversation_repository import ConversationRepository
from educhat.repositories.message_repository import MessageRepository
from educhat.repositories.user_repository import UserRepository
from educhat.services.chat_service import ChatService
from educhat.services.delivery import DeliveryDispatcher
from educhat.utils.websocket_manager import ConnectionManager


STUDENT_ID = str(ObjectId())
EDUCATOR_ID = str(ObjectId())
OTHER_STUDENT_ID = str(ObjectId())


class FakeSocket:
    """Stands in for a WebSocket; records what the server pushes."""

    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("broken pipe")
        self.sent.append(data)

    def events(self, name):
        return [s["data"] for s in self.sent if s["event"] == name]


@pytest.fixture()
def db():
    return AsyncMongoMockClient()["educhat_test"]


@pytest.fixture()
def conversation_repo(db):
    return ConversationRepository(db)


@pytest.fixture()
def message_repo(db, conversation_repo):
    return MessageRepository(db, conversation_repo)


@pytest.fixture()
def connections():
    manager = ConnectionManager()
    yield manager
    manager.clear()


@pytest.fixture()
def service(db, conversation_repo, message_repo, connections):
    return ChatService(message_repo, conversation_repo, UserRepository(db), DeliveryDispatcher(connections))


@pytest.fixture()
def seed_users(db):
    async def _seed():
        await db["users"].insert_many([
            {"_id": ObjectId(STUDENT_ID), "full_name": "Sam Student", "email": "sam@example.com", "password": "x"},
            {"_id": ObjectId(EDUCATOR_ID), "full_name": "Erin Educator", "username": "erin", "email": "erin@example.com"},
        ])
    return _seed
