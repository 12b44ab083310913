"""Notify-owner SMS tool.

Sends a text to the business owner and hands the orchestrator a deferred
result whose `check` reads the owner's reply from the pending reply store.
"""

from pydantic import BaseModel, Field

from chatbridge.clients.twilio import TwilioClient
from chatbridge.services.pending_replies import PendingReplyStore
from chatbridge.tools.base import ToolContext, ToolDefinition, ToolExecutionResult
from chatbridge.utils.logging import get_logger

logger = get_logger(__name__)

SMS_TOOL_NAME = "notify_owner_sms"

# Concatenated SMS tops out at 1600 characters
MAX_SMS_LENGTH = 1500
TRUNCATION_MARKER = "..."

NOT_CONFIGURED_RESULT = (
    "SMS notifications are not configured. Please ask the user for their contact information instead."
)

SMS_TOOL_DESCRIPTION = (
    "Send an SMS message to the business owner for real-time input during the conversation. "
    "Use this tool when:\n"
    "- You have qualified a lead and want to notify the owner\n"
    "- You need human guidance or specific information only the owner can provide\n"
    "- The user has a question that requires the owner's direct input\n\n"
    "The conversation will pause until the owner replies via SMS. Include all relevant context in your "
    "message so the owner can respond effectively. Keep messages concise but informative."
)


class SMSNotifyInput(BaseModel):
    """Input schema for the notify-owner SMS tool."""

    message: str = Field(
        ...,
        min_length=1,
        description=(
            "The message to send to the business owner. Include context about the user, their question or "
            "need, and what kind of response would be helpful."
        ),
    )
    context_summary: str | None = Field(
        default=None,
        description=(
            'Brief summary of the conversation context for reference (e.g., "User asking about pricing for '
            'enterprise plan")'
        ),
    )


def format_sms_body(message: str, context_summary: str | None = None) -> str:
    """Prefix the context summary and clamp to a length every carrier accepts."""
    body = f"[{context_summary}]\n\n{message}" if context_summary else message
    if len(body) > MAX_SMS_LENGTH:
        body = body[: MAX_SMS_LENGTH - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER
    return body


def create_sms_notify_tool(twilio_client: TwilioClient | None, pending_store: PendingReplyStore) -> ToolDefinition:
    """Build the SMS tool bound to a Twilio client and pending reply store."""

    async def sms_notify_handler(params: SMSNotifyInput, context: ToolContext) -> ToolExecutionResult:
        if twilio_client is None or not twilio_client.config.configured:
            return ToolExecutionResult(result=NOT_CONFIGURED_RESULT)

        if not context.session_id:
            return ToolExecutionResult(
                result="Cannot wait for an SMS reply without a session. Ask the user for their contact information.",
                is_error=True,
            )

        session_id = context.session_id
        await pending_store.create_pending(
            session_id,
            context.tool_use_id,
            params.message,
            {"summary": params.context_summary} if params.context_summary else None,
        )

        body = format_sms_body(params.message, params.context_summary)
        try:
            send_result = await twilio_client.send_sms(body)
        except Exception:
            # A PENDING record left behind would capture the next owner reply
            await pending_store.mark_timed_out(session_id)
            raise

        if not send_result.success:
            logger.warning(f"SMS dispatch failed for session {session_id}: {send_result.error}")
            await pending_store.mark_timed_out(session_id)
            return ToolExecutionResult(result=f"Failed to send SMS: {send_result.error}")

        async def check() -> str | None:
            return await pending_store.check_reply(session_id)

        async def clear() -> None:
            await pending_store.clear_reply(session_id)

        async def expire() -> None:
            await pending_store.mark_timed_out(session_id)

        return ToolExecutionResult(
            result="SMS sent successfully. Waiting for owner's reply...",
            deferred=True,
            check=check,
            clear=clear,
            expire=expire,
        )

    return ToolDefinition(
        name=SMS_TOOL_NAME,
        description=SMS_TOOL_DESCRIPTION,
        input_schema_class=SMSNotifyInput,
        handler=sms_notify_handler,
    )
