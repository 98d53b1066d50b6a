# In core/conversation_relay.py

import logging
from typing import Any, Dict, List, Optional

import httpx

from core.errors import (
    NoAssistantOutput,
    UpstreamAuthError,
    UpstreamNotFound,
    UpstreamProcessingError,
)

TOOL_CALL_MARKERS = ("Calling tool", "Tool call")


def strip_tool_call_lines(text: str) -> str:
    """Drops the lines where the assistant narrates its own tool invocations."""
    lines = (text or "").split("\n")
    return "\n".join(
        line for line in lines if not any(marker in line for marker in TOOL_CALL_MARKERS)
    ).strip()


def extract_assistant_text(chat_response: Dict[str, Any]) -> str:
    """
    Returns the content of the last assistant message in the chat API's
    `output` array, cleaned of tool-call noise.
    """
    output = chat_response.get("output")
    if not output:
        raise NoAssistantOutput("No assistant response received from Vapi")

    assistant_messages = [
        msg for msg in output if isinstance(msg, dict) and msg.get("role") == "assistant"
    ]
    if not assistant_messages:
        raise NoAssistantOutput("No assistant message in Vapi response")

    content = assistant_messages[-1].get("content")
    return strip_tool_call_lines(content if isinstance(content, str) else "")


class ConversationRelay:
    def __init__(
        self,
        api_key: Optional[str],
        assistant_id: Optional[str],
        base_url: str = "https://api.vapi.ai",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.assistant_id = assistant_id
        self.endpoint = f"{base_url.rstrip('/')}/chat"
        self.timeout = timeout
        self._transport = transport
        self.logger = logging.getLogger(__name__)

    async def send(self, messages: List[Dict[str, str]], session_id: str = "SYSTEM") -> Dict[str, Any]:
        """
        Posts the full conversation to the chat API and returns its decoded
        JSON body. HTTP and transport failures are translated to UpstreamError
        subclasses.
        """
        payload = {
            "assistantId": self.assistant_id,
            "input": messages,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key or ''}",
            "Content-Type": "application/json",
        }
        self.logger.info(
            f"📤 Sending to Vapi: assistantId={self.assistant_id} messageCount={len(messages)}",
            extra={"session_id": session_id},
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint, json=payload, headers=headers)
                self.logger.info(f"📥 Vapi Response Status: {response.status_code}", extra={"session_id": session_id})
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 401:
                raise UpstreamAuthError(f"Vapi rejected credentials (HTTP {status})") from exc
            if status == 404:
                raise UpstreamNotFound(f"Vapi assistant or route not found (HTTP {status})") from exc
            raise UpstreamProcessingError(f"Vapi returned HTTP {status}") from exc
        except httpx.TimeoutException as exc:
            raise UpstreamProcessingError(f"Vapi request timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise UpstreamProcessingError(f"Vapi request failed: {exc}") from exc
        except ValueError as exc:
            raise UpstreamProcessingError("Vapi returned a body that is not JSON") from exc

        if not isinstance(data, dict):
            raise UpstreamProcessingError("Vapi returned an unexpected response shape")
        return data
