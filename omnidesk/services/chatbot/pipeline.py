"""Chatbot response pipeline - context, completion, escalation, delivery."""

import asyncio
import json
from dataclasses import dataclass

import structlog

from omnidesk.core.config import settings
from omnidesk.models import BusinessHours, ChatbotConfig, Conversation, Message, MessageDirection
from omnidesk.models.common import utcnow
from omnidesk.services.chatbot.escalation import EscalationDetector, EscalationTrigger
from omnidesk.services.llm import LLMProvider
from omnidesk.services.messaging.outbound import OutboundMessenger
from omnidesk.services.routing.assigner import AgentAssigner
from omnidesk.services.routing.business_hours import company_timezone
from omnidesk.services.routing.outcome import RoutingOutcome
from omnidesk.storage.base import StorageBackend

logger = structlog.get_logger()

CONTEXT_PROMPT = """Você é um assistente virtual da empresa {company_name}.

Contexto do cliente:
- Nome: {contact_name}
- Telefone: {contact_phone}
- Horário atual: {current_time}

Histórico da conversa:
{history}

Instruções:
1. Seja educado, prestativo e profissional
2. Responda de forma concisa e clara
3. Use o nome do cliente quando possível
4. Se não souber responder algo específico, ofereça transferir para um atendente
5. Se detectar urgência ou problema complexo, transfira para atendente

Configurações específicas:
{bot_config}

Responda à mensagem do cliente de forma natural e útil."""


@dataclass(frozen=True)
class ChatbotReply:
    """What the bot wants to say and whether a human should take over."""

    reply_text: str
    should_escalate: bool
    reason: str | None = None
    trigger: EscalationTrigger | None = None


def history_line(message: Message) -> str:
    speaker = "Cliente" if message.direction == MessageDirection.INBOUND else "Bot"
    return f"{speaker}: {message.content}"


class ChatbotPipeline:
    """Answers inbound messages with the company's chatbot.

    The model is never trusted to stay up: any failure to get a completion
    in time produces the fallback reply and an escalation.
    """

    def __init__(
        self,
        storage: StorageBackend,
        llm: LLMProvider,
        detector: EscalationDetector,
        messenger: OutboundMessenger,
        assigner: AgentAssigner,
        context_messages: int | None = None,
        timeout_seconds: float | None = None,
        fallback_reply: str | None = None,
    ) -> None:
        self.storage = storage
        self.llm = llm
        self.detector = detector
        self.messenger = messenger
        self.assigner = assigner
        self.context_messages = context_messages or settings.chatbot_context_messages
        self.timeout_seconds = timeout_seconds or settings.ai_timeout_seconds
        self.fallback_reply = fallback_reply or settings.chatbot_fallback_reply

    async def build_context(self, conversation: Conversation, chatbot: ChatbotConfig) -> str:
        """Render the system prompt for one exchange."""
        recent = await self.storage.get_recent_messages(conversation.id, limit=self.context_messages)
        contact = await self.storage.get_contact(conversation.contact_id)
        company = await self.storage.get_company(conversation.company_id)

        hours = company.business_hours if company else BusinessHours()
        local_now = utcnow().astimezone(company_timezone(hours))

        return CONTEXT_PROMPT.format(
            company_name=company.name if company else "Nossa empresa",
            contact_name=(contact.name if contact else None) or "Cliente",
            contact_phone=(contact.phone if contact else None) or "-",
            current_time=local_now.strftime("%d/%m/%Y %H:%M:%S"),
            history="\n".join(history_line(m) for m in recent),
            bot_config=json.dumps(chatbot.config, indent=2, ensure_ascii=False, default=str),
        )

    async def generate_response(
        self,
        message: Message,
        conversation: Conversation,
        chatbot: ChatbotConfig,
    ) -> ChatbotReply:
        """Ask the model for a reply and decide whether to escalate.

        Raises:
            PersistenceError: If the conversation context can't be read
        """
        context_prompt = await self.build_context(conversation, chatbot)

        try:
            response = await asyncio.wait_for(
                self.llm.complete(context_prompt, message.content),
                timeout=self.timeout_seconds,
            )
        except Exception as e:
            logger.error(
                "Chatbot completion failed, escalating",
                conversation_id=conversation.id,
                error=str(e) or type(e).__name__,
            )
            return ChatbotReply(
                reply_text=self.fallback_reply,
                should_escalate=True,
                reason=f"AI unavailable: {type(e).__name__}",
                trigger=EscalationTrigger.AI_FAILURE,
            )

        reply_text = response.content.strip() or self.fallback_reply
        decision = await self.detector.evaluate(
            message.content, reply_text, chatbot, conversation_id=conversation.id
        )
        return ChatbotReply(
            reply_text=reply_text,
            should_escalate=decision.should_escalate,
            reason=decision.reason or None,
            trigger=decision.trigger,
        )

    async def handle(
        self,
        message: Message,
        conversation: Conversation,
        chatbot: ChatbotConfig,
    ) -> RoutingOutcome:
        """Reply as the bot, handing off to an agent when needed."""
        reply = await self.generate_response(message, conversation, chatbot)
        # The fallback reply already announces the transfer
        text = reply.reply_text
        if reply.should_escalate and reply.trigger != EscalationTrigger.AI_FAILURE:
            text = chatbot.handoff_message

        await self.messenger.deliver(conversation, text, is_from_bot=True)

        if not reply.should_escalate:
            return RoutingOutcome.bot()

        logger.info(
            "Chatbot handing off to an agent",
            conversation_id=conversation.id,
            trigger=reply.trigger.value if reply.trigger else None,
            reason=reply.reason,
        )
        return await self.assigner.assign_available(conversation)
