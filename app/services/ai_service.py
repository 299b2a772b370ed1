"""
AI COMPLETION SERVICE MODULE
============================

Turns a stored conversation into an assistant reply. The store never knows
which provider is behind this; ChatService only sees chat_completion(), which
takes the ordered messages of a conversation (the last one is the user's new
message) and returns the reply text plus metadata:

  {"model": "llama-3.3-70b-versatile", "processingTime": 812}   # milliseconds

ROUND-ROBIN API KEYS:
  - One Groq client per configured key (GROQ_API_KEY, GROQ_API_KEY_2, ...).
  - A class-level counter picks the starting key, so consecutive requests
    spread over the keys.
  - If a key keeps failing (after retries with backoff) the next key is tried;
    only when every key fails is the last error raised to the caller.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder
from langchain_groq import ChatGroq
from pydantic import BaseModel

from app.models import Message
from app.utils.retry import with_retry_async
from config import (
    AI_MAX_TOKENS,
    AI_TEMPERATURE,
    EMPTY_REPLY_TEXT,
    GROQ_API_KEYS,
    GROQ_MODEL,
    JARVIS_SYSTEM_PROMPT,
    MAX_CHAT_HISTORY_TURNS,
)

logger = logging.getLogger("J.A.R.V.I.S")


class AIReply(BaseModel):
    """Generated text plus what produced it."""
    text: str
    metadata: Dict[str, Any]


def _mask_key(key: str) -> str:
    """Show only the last 4 characters of an API key in logs."""
    return f"...{key[-4:]}" if len(key) > 4 else "****"


def _default_llm_factory(api_key: str, model: str):
    return ChatGroq(
        api_key=api_key,
        model=model,
        temperature=AI_TEMPERATURE,
        max_tokens=AI_MAX_TOKENS,
    )


# ==============================================================================
# AI SERVICE CLASS
# ==============================================================================

class AIService:
    """Groq chat model behind a provider-neutral chat_completion()."""

    # Shared by every instance so the rotation continues across requests.
    _shared_key_index = 0

    def __init__(
        self,
        api_keys: Optional[Sequence[str]] = None,
        model: Optional[str] = None,
        llm_factory: Optional[Callable[[str, str], Any]] = None,
    ):
        keys = list(api_keys) if api_keys is not None else list(GROQ_API_KEYS)
        if not keys:
            raise ValueError("GROQ_API_KEY is not set. Add it to .env to enable chat replies.")
        self.model = model or GROQ_MODEL
        self._keys = keys
        factory = llm_factory or _default_llm_factory
        self._llms = [factory(key, self.model) for key in keys]
        self.prompt = ChatPromptTemplate.from_messages([
            ("system", JARVIS_SYSTEM_PROMPT),
            MessagesPlaceholder(variable_name="history"),
            ("human", "{question}"),
        ])
        logger.info("AI service ready: model=%s, %d API key(s)", self.model, len(keys))

    def _key_order(self) -> List[int]:
        """Indexes of the keys to try for this request, starting at the next one in the rotation."""
        n = len(self._llms)
        start = AIService._shared_key_index % n
        AIService._shared_key_index += 1
        return [(start + i) % n for i in range(n)]

    async def _invoke_llm(self, messages: List[BaseMessage]) -> str:
        last_error: Optional[Exception] = None
        for idx in self._key_order():
            llm = self._llms[idx]
            try:
                response = await with_retry_async(lambda llm=llm: llm.ainvoke(messages))
            except Exception as e:
                last_error = e
                logger.warning("Groq key %s failed, trying next key: %s", _mask_key(self._keys[idx]), e)
                continue
            logger.info("Groq reply received using key %s", _mask_key(self._keys[idx]))
            content = response.content
            return content if isinstance(content, str) else str(content)
        raise last_error

    @staticmethod
    def to_langchain_history(messages: Sequence[Message]) -> List[BaseMessage]:
        """Stored messages as LangChain messages, capped to the last MAX_CHAT_HISTORY_TURNS turns."""
        recent = list(messages)[-MAX_CHAT_HISTORY_TURNS * 2:]
        return [
            HumanMessage(content=m.content) if m.role == "user" else AIMessage(content=m.content)
            for m in recent
        ]

    async def chat_completion(self, history: Sequence[Message]) -> AIReply:
        """
        Generate the assistant reply for a conversation.

        history must be in order and end with the user's message; everything
        before it is sent as context.
        """
        if not history or history[-1].role != "user":
            raise ValueError("chat_completion needs a history ending with a user message")

        messages = self.prompt.format_messages(
            history=self.to_langchain_history(history[:-1]),
            question=history[-1].content,
        )

        started = time.perf_counter()
        text = await self._invoke_llm(messages)
        processing_time = int((time.perf_counter() - started) * 1000)

        return AIReply(
            text=text.strip() or EMPTY_REPLY_TEXT,
            metadata={"model": self.model, "processingTime": processing_time},
        )
