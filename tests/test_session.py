# Test suite for the conversation session facade

import pytest

from context_budget.config.settings import BudgetSettings
from context_budget.context.coordinator import ConversationSession
from context_budget.exceptions import ConfigurationError, ContextLengthExceededError
from context_budget.retrieval.packer import ContextPacker
from context_budget.structs import ConversationLimits, Message, RetrievedPassage, Role


class TestConversationSession:
    """Test suite for ConversationSession"""

    @pytest.fixture
    def generate(self, make_generate):
        return make_generate(reply="fine thanks")

    @pytest.fixture
    def session(self, generate, counter):
        return ConversationSession(
            "gpt-4o",
            generate,
            counter,
            limits=ConversationLimits(max_conversation_steps=2, max_history_length=4),
            persona="Be nice",
            max_output_tokens=256,
        )

    def test_chat_records_turn(self, session, generate):
        """Test that the question and the reply are added to history"""
        response = session.chat("how are you")

        assert response.text == "fine thanks"
        assert [m.text for m in session.history] == ["how are you", "fine thanks"]
        sent = generate.requests[0]
        assert [m.text for m in sent.messages] == ["Be nice", "how are you"]
        assert sent.max_output_tokens == 256

    def test_chat_trims_window(self, session, generate):
        """Test that the step limit applies to history plus the new turn"""
        session.chat("one")
        session.chat("two")

        sent = generate.requests[-1]
        assert [m.text for m in sent.messages] == ["Be nice", "fine thanks", "two"]

    def test_history_is_bounded(self, session):
        """Test that the audit history keeps the newest messages only"""
        for text in ("one", "two", "three"):
            session.chat(text)
        assert [m.text for m in session.history] == ["two", "fine thanks", "three", "fine thanks"]

    def test_complete_leaves_history_alone(self, session, generate):
        """Test that one-shot completion neither reads nor writes history"""
        session.chat("one")
        session.complete("standalone")
        assert [m.text for m in generate.requests[-1].messages] == ["Be nice", "standalone"]
        assert len(session.history) == 2

    def test_chat_recovers_from_overflow(self, make_generate, counter):
        """Test that chat goes through overflow recovery"""
        generate = make_generate(
            ContextLengthExceededError("too long", model_context_size=1000, prompt_token_length=950)
        )
        session = ConversationSession("gpt-4o", generate, counter, max_output_tokens=4096)
        session.chat("hello")
        assert [r.max_output_tokens for r in generate.requests] == [4096, 49]
        assert len(session.history) == 2

    def test_failed_chat_not_recorded(self, make_generate, counter):
        """Test that history is unchanged when the call fails"""
        generate = make_generate(RuntimeError("boom"))
        session = ConversationSession("gpt-4o", generate, counter)
        with pytest.raises(RuntimeError):
            session.chat("hello")
        assert session.history == []

    def test_clear_history(self, session):
        session.chat("one")
        session.clear_history()
        assert session.history == []


class TestAnswerWithContext:
    """Test suite for retrieval-augmented answers"""

    @pytest.fixture
    def passages(self):
        return [
            RetrievedPassage("Biglydoos are small rodents.", "doc1"),
            RetrievedPassage("Biglydoos eat cranberries.", "doc2"),
        ]

    def test_answer_uses_packed_context(self, make_generate, counter, passages):
        """Test that committed passages are sent as context"""
        generate = make_generate(reply="Yes.")
        session = ConversationSession("gpt-4o", generate, counter)

        answer = session.answer_with_context("Do biglydoos eat fruit?", passages)

        assert answer.text == "Yes."
        assert len(answer.context.passages) == 2
        prompt = generate.requests[0].messages[-1].text
        assert prompt.startswith("Context:\nBiglydoos are small rodents.\nBiglydoos eat cranberries.")
        assert prompt.endswith("Question: Do biglydoos eat fruit?")

    def test_zero_passages_answer_ungrounded(self, make_generate, counter):
        """Test that with no passages the question is sent once, without context"""
        generate = make_generate(reply="A city.")
        session = ConversationSession("gpt-4o", generate, counter)

        answer = session.answer_with_context("What is Rome?", passages=[])

        assert answer.text == "A city."
        assert answer.context.is_empty
        assert len(generate.requests) == 1
        assert [m.text for m in generate.requests[0].messages] == ["What is Rome?"]

    def test_oversized_first_passage_answer_ungrounded(self, make_generate, counter, passages):
        """Test that a context where nothing fits is neither truncated nor sent"""
        generate = make_generate(reply="Maybe.")
        session = ConversationSession("gpt-4o", generate, counter)

        answer = session.answer_with_context("Anything?", passages, token_budget=1)

        assert answer.text == "Maybe."
        assert answer.context.is_empty
        assert len(generate.requests) == 1
        assert "Context:" not in generate.requests[0].messages[-1].text

    def test_reranked_when_embedding_available(self, make_generate, counter, passages):
        """Test that the returned context is ordered by relevance to the answer"""
        vectors = {
            "Biglydoos are small rodents.": [1.0, 0.0],
            "Biglydoos eat cranberries.": [0.0, 1.0],
            "They eat cranberries.": [0.0, 1.0],
        }
        packer = ContextPacker(counter, embed=vectors.__getitem__)
        session = ConversationSession(
            "gpt-4o", make_generate(reply="They eat cranberries."), counter, packer=packer
        )

        answer = session.answer_with_context("What do they eat?", passages)

        assert [p.passage.source_ref for p in answer.context.passages] == ["doc2", "doc1"]
        assert [p.passage.source_ref for p in answer.context.strong_references()] == ["doc2"]

    def test_unknown_model_budget(self, make_generate, encoder, passages):
        """Test that a default budget for a model without metadata is an error"""
        settings = BudgetSettings(_env_file=None, default_model="mystery-model")
        generate = make_generate()
        session = ConversationSession.from_settings(settings, generate, encoder=encoder)

        with pytest.raises(ConfigurationError):
            session.answer_with_context("q?", passages)
        assert generate.requests == []

        answer = session.answer_with_context("q?", passages, token_budget=100)
        assert len(answer.context.passages) == 2
        assert len(generate.requests) == 1

    def test_default_budget(self, make_generate, counter):
        """Test that the default budget leaves room for the prompt and the reply"""
        session = ConversationSession("gpt-4o", make_generate(), counter, max_output_tokens=16_000)
        budget = session.context_budget("q")
        assert 0 < budget < 128_000 - 16_000


class TestFromSettings:
    """Test suite for building a session from settings"""

    def test_from_settings(self, make_generate, encoder):
        """Test that settings drive limits, persona and packer"""
        settings = BudgetSettings(
            _env_file=None,
            default_model="mystery-model",
            max_conversation_steps=2,
            persona="Be brief",
            packer_safety_margin=5,
        )
        session = ConversationSession.from_settings(settings, make_generate(), encoder=encoder)

        assert session.model == "mystery-model"
        assert session.limits.max_conversation_steps == 2
        assert session.persona == "Be brief"
        assert session.packer.safety_margin == 5
        assert session.counter.encoder is encoder
        assert session.max_output_tokens is None

    def test_known_model_output_cap(self, make_generate):
        """Test that the reply cap comes from catalog metadata"""
        settings = BudgetSettings(_env_file=None, default_model="gpt-4o")
        session = ConversationSession.from_settings(settings, make_generate())
        assert session.max_output_tokens == 16_384
        assert session.chat(Message.of(Role.USER, "hi")).text == "ok"
