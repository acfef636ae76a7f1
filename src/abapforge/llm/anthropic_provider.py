"""Anthropic Messages API provider (tools and system prompt as top-level request fields)."""

import logging
from typing import (
    Any,
    Dict,
    List,
)

from abapforge.core.errors import LLMError
from abapforge.core.schema import (
    LLMResponse,
    Message,
    ToolCall,
    ToolDescriptor,
    Usage,
)
from abapforge.llm.base import (
    LLMProvider,
    register_provider,
)

logger = logging.getLogger(__name__)


def _serialize_content(message: Message) -> Any:
    if isinstance(message.content, str):
        return message.content
    return [block.model_dump() for block in message.content]


@register_provider("anthropic")
class AnthropicProvider(LLMProvider):
    """Claude models through the ``anthropic`` SDK."""

    provider_name = "anthropic"
    default_model = "claude-sonnet-4-5-20250929"

    def _get_client(self) -> Any:
        if self._client is None:
            import anthropic  # pylint: disable=import-outside-toplevel

            self._client = anthropic.AsyncAnthropic(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def build_request(self, messages: List[Message], tools: List[ToolDescriptor]) -> Dict[str, Any]:
        system = next((m for m in messages if m.role == "system"), None)
        params: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": m.role, "content": _serialize_content(m)}
                for m in messages
                if m.role != "system"
            ],
        }
        if system is not None:
            params["system"] = system.text
        if tools:
            params["tools"] = [
                {"name": t.name, "description": t.description, "input_schema": t.input_schema}
                for t in tools
            ]
        return params

    async def _send(self, params: Dict[str, Any]) -> LLMResponse:
        import anthropic  # pylint: disable=import-outside-toplevel

        client = self._get_client()
        try:
            response = await client.messages.create(**params)
        except anthropic.APIStatusError as exc:
            raise self._status_error(exc.status_code, exc.message, exc.response.headers) from exc
        except anthropic.APIConnectionError as exc:
            raise self._connection_error(exc, isinstance(exc, anthropic.APITimeoutError)) from exc
        return self.parse_response(response)

    def parse_response(self, response: Any) -> LLMResponse:
        """Normalise a Messages API response object."""
        if response.content is None:
            raise LLMError("Empty response from Anthropic", details=self._details())
        text: str | None = None
        tool_calls: List[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                text = (text or "") + block.text
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, input=block.input or {}))

        if response.stop_reason == "tool_use" and not tool_calls:
            logger.warning("Anthropic reported tool_use without tool_use blocks; treating as end_turn")

        usage = getattr(response, "usage", None)
        return LLMResponse(
            stop_reason="tool_use" if tool_calls else "end_turn",
            text=text,
            tool_calls=tool_calls or None,
            usage=Usage(
                input_tokens=getattr(usage, "input_tokens", 0) or 0,
                output_tokens=getattr(usage, "output_tokens", 0) or 0,
            ),
        )
