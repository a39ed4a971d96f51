"""Tests for the chatbot pipeline and escalation detection."""

import pytest

from omnidesk.core.exceptions import LLMError
from omnidesk.models import ChannelType, ChatbotConfig, InboundEvent
from omnidesk.services.chatbot import ChatbotPipeline, EscalationDetector, EscalationTrigger
from omnidesk.services.routing import RoutingDecision
from omnidesk.services.sentiment import SentimentAnalyzer


@pytest.fixture
def detector():
    return EscalationDetector(SentimentAnalyzer(use_comprehend=False))


async def inbound(platform, text, sender="5511987654321"):
    return await platform.inbound.process(
        "acme",
        InboundEvent(channel=ChannelType.WHATSAPP, external_id=sender, content=text, sender_name="Joana"),
    )


@pytest.mark.asyncio
async def test_context_prompt_carries_company_contact_and_history(platform, chatbot, llm):
    await inbound(platform, "Bom dia")
    await inbound(platform, "Vocês abrem sábado?")

    prompt, user_message = llm.calls[-1]
    assert user_message == "Vocês abrem sábado?"
    assert "Acme Ltda" in prompt
    assert "Nome: Joana" in prompt
    assert "Telefone: 5511987654321" in prompt
    assert "Cliente: Bom dia" in prompt
    assert "Bot: Olá! Como posso ajudar?" in prompt
    assert '"horario": "9h às 18h"' in prompt


@pytest.mark.asyncio
async def test_explicit_request_hands_off_to_agent(platform, agents, chatbot, online, adapters):
    online("agent-b")
    result = await inbound(platform, "Quero falar com um atendente, por favor")

    assert result.outcome.kind == RoutingDecision.ASSIGNED_TO_AGENT
    assert result.outcome.agent_id == "agent-b"
    assert [m.content for m in adapters[ChannelType.WHATSAPP].sent] == [chatbot.handoff_message]


@pytest.mark.asyncio
async def test_handoff_without_agents_queues(platform, chatbot, llm):
    llm.reply = "Vou transferir você para um atendente humano."
    result = await inbound(platform, "Minha fatura veio errada")

    assert result.outcome.kind == RoutingDecision.QUEUED_PENDING


@pytest.mark.asyncio
async def test_ai_failure_sends_fallback_and_escalates(platform, chatbot, llm, adapters):
    llm.error = LLMError("All LLM providers failed", provider="stub")
    result = await inbound(platform, "Oi")

    assert result.outcome.kind == RoutingDecision.QUEUED_PENDING
    assert [m.content for m in adapters[ChannelType.WHATSAPP].sent] == [platform.chatbot.fallback_reply]

    reply = await platform.chatbot.generate_response(result.message, result.conversation, chatbot)
    assert reply.should_escalate
    assert reply.trigger == EscalationTrigger.AI_FAILURE
    assert reply.reply_text == platform.chatbot.fallback_reply


@pytest.mark.asyncio
async def test_ai_timeout_escalates(storage, platform, chatbot, llm, detector):
    pipeline = ChatbotPipeline(
        storage,
        llm,
        detector,
        platform.messenger,
        platform.assigner,
        timeout_seconds=0.01,
    )
    result = await inbound(platform, "Oi")
    llm.delay = 1.0

    reply = await pipeline.generate_response(result.message, result.conversation, chatbot)
    assert reply.should_escalate
    assert reply.trigger == EscalationTrigger.AI_FAILURE


@pytest.mark.asyncio
async def test_empty_completion_uses_fallback(platform, chatbot, llm):
    llm.reply = "   "
    result = await inbound(platform, "Oi")

    reply = await platform.chatbot.generate_response(result.message, result.conversation, chatbot)
    assert reply.reply_text == platform.chatbot.fallback_reply


@pytest.mark.asyncio
async def test_detector_explicit_request(detector):
    decision = await detector.evaluate("Preciso de um HUMANO agora", "Claro!")
    assert decision.should_escalate
    assert decision.trigger == EscalationTrigger.EXPLICIT_REQUEST
    assert decision.context == {"matched_keyword": "humano"}


@pytest.mark.asyncio
async def test_detector_bot_handoff(detector):
    decision = await detector.evaluate("Meu pedido não chegou", "Vou transferir você.")
    assert decision.trigger == EscalationTrigger.BOT_HANDOFF


@pytest.mark.asyncio
async def test_detector_negative_sentiment(detector):
    decision = await detector.evaluate("Isso é péssimo, estou muito irritado", "Sinto muito.")
    assert decision.should_escalate
    assert decision.trigger == EscalationTrigger.NEGATIVE_SENTIMENT


@pytest.mark.asyncio
async def test_detector_lets_ordinary_exchange_through(detector):
    decision = await detector.evaluate("Qual o prazo de entrega?", "O prazo é de 3 dias úteis.")
    assert not decision.should_escalate
    assert decision.trigger is None


@pytest.mark.asyncio
async def test_detector_chatbot_keywords(detector):
    bot = ChatbotConfig(company_id="acme", escalation_keywords=["cancelamento"])
    decision = await detector.evaluate("Quero o cancelamento do plano", "Ok", chatbot=bot)
    assert decision.trigger == EscalationTrigger.EXPLICIT_REQUEST
