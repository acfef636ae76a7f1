"""
OpenAI Chat Completions providers.

Tools are wrapped as ``{"type": "function", "function": {...}}`` entries and the system prompt
stays the first message.  Conversation order is preserved; block-structured messages are mapped
onto the Chat Completions shapes (assistant ``tool_calls`` and one ``tool`` message per result).
"""

import json
import logging
from typing import (
    Any,
    Dict,
    List,
    Optional,
)

from abapforge.core.errors import LLMError
from abapforge.core.schema import (
    LLMResponse,
    Message,
    TextBlock,
    ToolCall,
    ToolDescriptor,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
)
from abapforge.llm.base import (
    LLMProvider,
    register_provider,
)

logger = logging.getLogger(__name__)


def to_chat_messages(messages: List[Message]) -> List[Dict[str, Any]]:
    """Convert conversation messages to Chat Completions message dicts, in order."""
    out: List[Dict[str, Any]] = []
    for message in messages:
        if isinstance(message.content, str):
            out.append({"role": message.role, "content": message.content})
            continue

        texts = [b.text for b in message.content if isinstance(b, TextBlock)]
        tool_uses = [b for b in message.content if isinstance(b, ToolUseBlock)]
        tool_results = [b for b in message.content if isinstance(b, ToolResultBlock)]

        if message.role == "assistant":
            entry: Dict[str, Any] = {"role": "assistant", "content": "".join(texts) or None}
            if tool_uses:
                entry["tool_calls"] = [
                    {
                        "id": b.id,
                        "type": "function",
                        "function": {"name": b.name, "arguments": json.dumps(b.input)},
                    }
                    for b in tool_uses
                ]
            out.append(entry)
            continue

        for result in tool_results:
            out.append({"role": "tool", "tool_call_id": result.tool_use_id, "content": result.content})
        if texts:
            out.append({"role": message.role, "content": "".join(texts)})
    return out


@register_provider("openai")
class OpenAIProvider(LLMProvider):
    """GPT models through the ``openai`` SDK."""

    provider_name = "openai"
    default_model = "gpt-4o"

    def _get_client(self) -> Any:
        if self._client is None:
            import openai  # pylint: disable=import-outside-toplevel

            self._client = openai.AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def build_request(self, messages: List[Message], tools: List[ToolDescriptor]) -> Dict[str, Any]:
        params: Dict[str, Any] = {"model": self.model, "messages": to_chat_messages(messages)}
        if tools:
            params["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t.name,
                        "description": t.description,
                        "parameters": t.input_schema,
                    },
                }
                for t in tools
            ]
        return params

    async def _send(self, params: Dict[str, Any]) -> LLMResponse:
        import openai  # pylint: disable=import-outside-toplevel

        client = self._get_client()
        try:
            response = await client.chat.completions.create(**params)
        except openai.APIStatusError as exc:
            raise self._status_error(exc.status_code, exc.message, exc.response.headers) from exc
        except openai.APIConnectionError as exc:
            raise self._connection_error(exc, isinstance(exc, openai.APITimeoutError)) from exc
        return self.parse_response(response)

    def parse_response(self, response: Any) -> LLMResponse:
        """Normalise a Chat Completions response object."""
        choice = response.choices[0] if response.choices else None
        if choice is None:
            raise LLMError(f"Empty response from {self.provider_name}", details=self._details())

        message = choice.message
        tool_calls: List[ToolCall] = []
        for call in message.tool_calls or []:
            try:
                arguments = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError as exc:
                raise LLMError(
                    f"Malformed arguments for tool call {call.function.name}: {exc}",
                    details=self._details(),
                ) from exc
            tool_calls.append(ToolCall(id=call.id, name=call.function.name, input=arguments))

        usage = getattr(response, "usage", None)
        return LLMResponse(
            stop_reason="tool_use" if tool_calls else "end_turn",
            text=message.content or None,
            tool_calls=tool_calls or None,
            usage=Usage(
                input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            ),
        )


@register_provider("azure")
class AzureOpenAIProvider(OpenAIProvider):
    """Azure OpenAI: the model name doubles as the deployment, ``base_url`` is the endpoint."""

    provider_name = "azure"
    default_model = "gpt-4o"
    default_api_version = "2024-10-21"

    def __init__(self, api_key: str, api_version: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(api_key, **kwargs)
        self.api_version = api_version or self.default_api_version

    def _get_client(self) -> Any:
        if self._client is None:
            import openai  # pylint: disable=import-outside-toplevel

            self._client = openai.AsyncAzureOpenAI(
                api_key=self.api_key,
                azure_endpoint=self.base_url,
                azure_deployment=self.model,
                api_version=self.api_version,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client
