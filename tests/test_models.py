"""Tests for data models."""

import json

import pytest
from pydantic import ValidationError

from chatbridge.models.conversation import ChatRequest, ChatTurn, LoadChatRequest
from chatbridge.models.events import DoneEvent, ErrorEvent, TextEvent, WaitingEvent
from chatbridge.models.llm import LLMMessage, LLMResponse, TextBlock, ToolResultBlock, ToolUseBlock


class TestChatRequest:
    """Tests for the chat request model."""

    def test_minimal_request(self):
        request = ChatRequest.model_validate({"message": "Hello"})

        assert request.message == "Hello"
        assert request.session_id is None
        assert request.history == []

    def test_camel_case_session_id(self):
        request = ChatRequest.model_validate(
            json.loads('{"message": "Hi", "sessionId": "abc", "history": [{"sender": "bot", "text": "Welcome"}]}')
        )

        assert request.session_id == "abc"
        assert request.history == [ChatTurn(sender="bot", text="Welcome")]

    @pytest.mark.parametrize("history", [None, "not a list", {"sender": "user"}])
    def test_non_array_history_treated_as_empty(self, history):
        request = ChatRequest.model_validate({"message": "hi", "sessionId": "s1", "history": history})

        assert request.history == []

    def test_empty_message_rejected(self):
        with pytest.raises(ValidationError):
            ChatRequest.model_validate({"message": ""})

    def test_unknown_sender_rejected(self):
        with pytest.raises(ValidationError):
            ChatRequest.model_validate({"message": "Hi", "history": [{"sender": "system", "text": "x"}]})

    def test_load_request_requires_session(self):
        assert LoadChatRequest.model_validate({"sessionId": "s1"}).session_id == "s1"
        with pytest.raises(ValidationError):
            LoadChatRequest.model_validate({})


class TestStreamEvents:
    """Tests for SSE frame rendering."""

    def test_text_event(self):
        assert TextEvent("Hello!").to_sse() == 'data: {"text":"Hello!"}\n\n'

    def test_text_event_escapes_newlines(self):
        frame = TextEvent('line one\nline "two"').to_sse()

        assert frame.count("\n") == 2
        assert json.loads(frame[len("data: ") :]) == {"text": 'line one\nline "two"'}

    def test_waiting_event(self):
        assert WaitingEvent().to_sse() == 'data: {"type":"waiting","message":"Checking with a team member..."}\n\n'

    def test_error_event(self):
        assert ErrorEvent().to_sse() == 'data: {"type":"error","message":"An error occurred"}\n\n'

    def test_done_event(self):
        assert DoneEvent().to_sse() == "data: [DONE]\n\n"


class TestLLMModels:
    """Tests for provider-agnostic LLM models."""

    def test_response_text_and_tool_uses(self):
        response = LLMResponse(
            content=[
                TextBlock(text="Let me "),
                ToolUseBlock(id="t1", name="lookup", input={"q": "x"}),
                TextBlock(text="check."),
            ],
            stop_reason="tool_use",
            usage=None,
            model="m",
        )

        assert response.text == "Let me check."
        assert [t.id for t in response.tool_uses] == ["t1"]

    def test_extra_fields_ignored(self):
        block = TextBlock.model_validate({"type": "text", "text": "hi", "citations": None})
        assert block.text == "hi"

    def test_message_with_tool_results(self):
        message = LLMMessage(role="user", content=[ToolResultBlock(tool_use_id="t1", content="ok", is_error=True)])

        assert message.model_dump()["content"][0] == {
            "type": "tool_result",
            "tool_use_id": "t1",
            "content": "ok",
            "is_error": True,
        }
