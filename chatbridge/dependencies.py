"""Process-wide service container injected into request handlers."""

from dataclasses import dataclass

from chatbridge.clients.anthropic import AnthropicClient, AnthropicConfig
from chatbridge.clients.twilio import TwilioClient, TwilioConfig
from chatbridge.config import ConfigurationError, Settings
from chatbridge.services.chat_store import ChatStore, InMemoryChatStore
from chatbridge.services.llm import LLMService, ModelProvider
from chatbridge.services.orchestrator import ChatConfiguration, ChatOrchestrator
from chatbridge.services.pending_replies import InMemoryPendingReplyStore, PendingReplyStore
from chatbridge.tools.registry import ToolsRegistry
from chatbridge.tools.sms_notify import create_sms_notify_tool
from chatbridge.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ChatServices:
    """Everything a request handler needs. Lives for the whole process."""

    settings: Settings
    chat_store: ChatStore
    pending_store: PendingReplyStore
    tools_registry: ToolsRegistry
    orchestrator: ChatOrchestrator


def build_chat_services(
    settings: Settings,
    llm: ModelProvider | None = None,
    chat_store: ChatStore | None = None,
    pending_store: PendingReplyStore | None = None,
    twilio_client: TwilioClient | None = None,
) -> ChatServices:
    """Wire stores, tools and the orchestrator from settings.

    Raises:
        ConfigurationError: If no model provider is given and no API key is set
    """
    if llm is None:
        if not settings.anthropic_api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is not set")
        client = AnthropicClient(
            api_key=settings.anthropic_api_key,
            config=AnthropicConfig(model=settings.model, max_tokens=settings.max_tokens),
        )
        llm = LLMService(client)

    chat_store = chat_store or InMemoryChatStore()
    pending_store = pending_store or InMemoryPendingReplyStore()

    registry = ToolsRegistry()
    if twilio_client is None and settings.twilio_configured:
        twilio_client = TwilioClient(
            TwilioConfig(
                account_sid=settings.twilio_account_sid,
                auth_token=settings.twilio_auth_token,
                from_number=settings.twilio_phone_number,
                to_number=settings.owner_phone_number,
            )
        )
    if twilio_client is not None:
        registry.register_tool(create_sms_notify_tool(twilio_client, pending_store))
    else:
        logger.info("Twilio is not configured; SMS tool disabled")

    config = ChatConfiguration(
        system_prompt=settings.system_prompt,
        model=settings.model,
        max_tokens=settings.max_tokens,
        tools=registry.get_llm_tools(),
        tool_executor=registry.execute,
        on_save=chat_store.save,
        max_tool_rounds=settings.max_tool_rounds,
        reply_check_interval=settings.reply_check_interval,
        reply_timeout=settings.reply_timeout,
        finalize_keyword=settings.finalize_keyword,
        reply_mode=settings.reply_mode,
    )

    return ChatServices(
        settings=settings,
        chat_store=chat_store,
        pending_store=pending_store,
        tools_registry=registry,
        orchestrator=ChatOrchestrator(llm, config),
    )


_chat_services: ChatServices | None = None


def get_chat_services() -> ChatServices:
    """Get or create the process-wide service container."""
    global _chat_services
    if _chat_services is None:
        _chat_services = build_chat_services(Settings.from_env())
    return _chat_services
