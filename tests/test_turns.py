"""Tests for buffered conversation turns."""
import pytest
from sqlalchemy.exc import SQLAlchemyError

from docent.chat import TurnOrchestrator
from docent.chat.turns import EMPTY_REPLY
from docent.core.schemas import KnowledgeItemCreate, MessageRole, SendMessageInput
from docent.resilience import GenerationError, InvalidInputError, NotFoundError, PersistenceError

from .conftest import FakeEmbedder, FakeGenerator


@pytest.fixture
def turns(assistant):
    return assistant.turns


class TestValidation:
    """Input combinations rejected before anything is persisted."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"message": "hi"},
            {"conversation_id": "c", "user_id": "u", "message": "hi"},
            {"user_id": "u", "message": ""},
            {"user_id": "u", "message": "   "},
        ],
    )
    def test_invalid_inputs(self, kwargs):
        with pytest.raises(InvalidInputError):
            TurnOrchestrator.validate(SendMessageInput(**kwargs))

    @pytest.mark.asyncio
    async def test_unknown_conversation_persists_nothing(self, turns, message_repo):
        with pytest.raises(NotFoundError):
            await turns.send_message(SendMessageInput(conversation_id="missing", message="hello"))

    @pytest.mark.asyncio
    async def test_soft_deleted_conversation_is_not_found(self, assistant, message_repo):
        conversation_id = await assistant.create_conversation("user-1")
        await assistant.delete_conversation(conversation_id)

        with pytest.raises(NotFoundError):
            await assistant.send_message(SendMessageInput(conversation_id=conversation_id, message="hello"))
        assert await message_repo.list_by_conversation(conversation_id) == []


class TestSendMessage:
    """Tests for the buffered turn."""

    @pytest.mark.asyncio
    async def test_user_id_creates_conversation(self, turns, conversation_repo, message_repo, generator):
        output = await turns.send_message(SendMessageInput(user_id="user-1", message="Hello there"))

        conversation = await conversation_repo.get(output.conversation_id)
        assert conversation.creator_id == "user-1"
        assert conversation.title == "New Conversation"
        assert conversation.message_count == 2

        user_message, reply = await message_repo.list_by_conversation(output.conversation_id)
        assert user_message.role == MessageRole.USER
        assert user_message.content == "Hello there"
        assert reply.id == output.message_id
        assert reply.role == MessageRole.ASSISTANT
        assert reply.parent_message_id == user_message.id
        assert reply.content == output.content == generator.reply

    @pytest.mark.asyncio
    async def test_history_excludes_current_message(self, turns, generator):
        first = await turns.send_message(SendMessageInput(user_id="user-1", message="First question"))
        await turns.send_message(SendMessageInput(conversation_id=first.conversation_id, message="Second question"))

        call = generator.calls[-1]
        assert call["user_message"] == "Second question"
        assert [(t.role, t.content) for t in call["history"]] == [
            ("user", "First question"),
            ("assistant", generator.reply),
        ]

    @pytest.mark.asyncio
    async def test_history_is_capped(self, turns, generator):
        output = await turns.send_message(SendMessageInput(user_id="user-1", message="m0"))
        for n in range(1, 7):
            await turns.send_message(SendMessageInput(conversation_id=output.conversation_id, message=f"m{n}"))

        # Ten most recent rows, minus the message just stored
        history = generator.calls[-1]["history"]
        assert len(history) == 9
        assert history[-1].role == "assistant"
        assert all(turn.content != "m6" for turn in history)

    @pytest.mark.asyncio
    async def test_message_count_grows_by_two(self, turns, conversation_repo):
        output = await turns.send_message(SendMessageInput(user_id="user-1", message="one"))
        await turns.send_message(SendMessageInput(conversation_id=output.conversation_id, message="two"))

        assert (await conversation_repo.get(output.conversation_id)).message_count == 4

    @pytest.mark.asyncio
    async def test_generation_options_from_settings(self, turns, generator, settings):
        await turns.send_message(SendMessageInput(user_id="user-1", message="hi"))

        call = generator.calls[-1]
        assert call["temperature"] == settings.TEMPERATURE
        assert call["max_tokens"] == settings.MAX_TOKENS


class TestKnowledgeGrounding:
    """Knowledge context and reply metadata."""

    @pytest.mark.asyncio
    async def test_context_appended_to_system_prompt(self, settings, session_factory, knowledge_repo, message_repo):
        from docent.assistant import Assistant

        embedder = FakeEmbedder(vectors={"What is the refund window?": [1.0, 0.0]}, default=[0.0, 1.0])
        generator = FakeGenerator(reply="Thirty days.")
        assistant = Assistant(settings, session_factory=session_factory, generator=generator, embedder=embedder)
        await knowledge_repo.create(
            KnowledgeItemCreate(title="Refund policy", content="Refunds within 30 days."), embedding=[1.0, 0.0]
        )

        output = await assistant.send_message(
            SendMessageInput(user_id="user-1", message="What is the refund window?", context={"page": "faq"})
        )

        system_prompt = generator.calls[-1]["system_prompt"]
        assert system_prompt.endswith(
            "\n\nRelevant information from knowledge base:\n\n- Refund policy: Refunds within 30 days.\n"
        )

        reply = await message_repo.get(output.message_id)
        assert reply.metadata.knowledge_used is True
        assert reply.metadata.knowledge_item_count == 1
        assert reply.metadata.user_context == {"page": "faq"}
        assert reply.metadata.streamed is None

        user_message = await message_repo.get(reply.parent_message_id)
        assert user_message.metadata.context == {"page": "faq"}

    @pytest.mark.asyncio
    async def test_no_knowledge_leaves_prompt_untouched(self, assistant, generator, message_repo):
        output = await assistant.send_message(SendMessageInput(user_id="user-1", message="zzz"))

        personality = await assistant.get_personality()
        assert generator.calls[-1]["system_prompt"] == personality.system_prompt

        reply = await message_repo.get(output.message_id)
        assert reply.metadata.knowledge_used is False
        assert reply.metadata.knowledge_item_count == 0


class TestFailures:
    """Empty replies and generator failures."""

    @pytest.mark.asyncio
    async def test_empty_reply_is_replaced(self, settings, session_factory):
        from docent.assistant import Assistant

        assistant = Assistant(
            settings, session_factory=session_factory, generator=FakeGenerator(reply=""), embedder=FakeEmbedder()
        )

        output = await assistant.send_message(SendMessageInput(user_id="user-1", message="hello"))
        assert output.content == EMPTY_REPLY

    @pytest.mark.asyncio
    async def test_generation_failure_keeps_user_message(self, assistant, generator, conversation_repo, message_repo):
        conversation_id = await assistant.create_conversation("user-1")
        await assistant.get_personality()
        generator.fail = True

        with pytest.raises(GenerationError):
            await assistant.send_message(SendMessageInput(conversation_id=conversation_id, message="hello"))

        messages = await message_repo.list_by_conversation(conversation_id)
        assert [m.role for m in messages] == [MessageRole.USER]
        assert (await conversation_repo.get(conversation_id)).message_count == 0

    @pytest.mark.asyncio
    async def test_reply_persistence_failure_commits_no_reply(
        self, assistant, conversation_repo, message_repo, monkeypatch
    ):
        conversation_id = await assistant.create_conversation("user-1")
        await assistant.get_personality()

        def failing_count(session, conversation_id, by):
            raise SQLAlchemyError("count update failed")

        monkeypatch.setattr("docent.core.repositories._increment_count", failing_count)

        with pytest.raises(PersistenceError, match="count update failed"):
            await assistant.send_message(SendMessageInput(conversation_id=conversation_id, message="hello"))

        messages = await message_repo.list_by_conversation(conversation_id)
        assert [m.role for m in messages] == [MessageRole.USER]
        assert (await conversation_repo.get(conversation_id)).message_count == 0
