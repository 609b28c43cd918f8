"""
Marketplace chat assistant.

A conversation is one ``ai_chat_conversations`` row per user holding the full
turn history. Each message:

    load history -> (search intent? fetch ads) -> Claude reply -> save history -> usage log

Messages that read like a shopping request ("hľadám bicykel") also fetch up to
six matching active ads, returned next to the reply.
"""
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from kupado.core.background import BackgroundTasks
from kupado.core.database import Store, get_store
from kupado.core.errors import InvalidRequestError, ProviderOverloadedError, StoreError
from kupado.core.logging import get_logger
from kupado.core.metrics import record_ai_generation
from kupado.services.ai import prompts
from kupado.services.ai.llm_client import ClaudeClient, get_providers

logger = get_logger(__name__)

CONVERSATIONS_TABLE = "ai_chat_conversations"
USAGE_LOG_TABLE = "ai_usage_logs"
CHAT_FEATURE = "chat"
CHAT_USAGE_LABEL = "chat_assistant"
CHAT_SEARCH_LIMIT = 6

SEARCH_KEYWORDS = (
    "hľadám", "hladam", "nájdi", "najdi", "ukáž", "ukaz", "chcem", "potrebujem",
    "kúpiť", "kupit", "predať", "predat", "mám záujem", "zaujíma ma",
)
_QUERY_NOISE = re.compile(r"hľadám|hladam|nájdi|najdi|ukáž|ukaz|chcem|potrebujem|kúpiť|kupit", re.IGNORECASE)


def detect_search_query(message: str) -> Optional[str]:
    """The product query inside a shopping request, or None for other messages."""
    lowered = message.lower()
    if not any(keyword in lowered for keyword in SEARCH_KEYWORDS):
        return None
    query = " ".join(_QUERY_NOISE.sub("", message).split())
    return query or None


@dataclass
class ChatReply:
    response: str
    conversation_id: Optional[str]
    timestamp: str
    search_results: Optional[List[Dict[str, Any]]] = None


class ChatService:
    def __init__(
        self,
        store: Store,
        provider: ClaudeClient,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        timer: Callable[[], float] = time.perf_counter,
        background: Optional[BackgroundTasks] = None,
    ):
        self.store = store
        self.provider = provider
        self._clock = clock
        self._timer = timer
        self.background = background or BackgroundTasks()

    async def reply(
        self,
        message: Optional[str],
        user_id: Optional[str],
        conversation_id: Optional[str] = None,
        context_type: str = "general",
    ) -> ChatReply:
        """
        Answer one chat message and persist the updated conversation.

        Raises:
            InvalidRequestError: message or user id missing
            ProviderOverloadedError: Claude over capacity, retry later
        """
        if not message or not message.strip() or not user_id:
            raise InvalidRequestError("message and userId are required")
        context_type = context_type or "general"

        conversation = None
        history: List[Dict[str, str]] = []
        if conversation_id:
            conversation = await self.store.select_one(
                CONVERSATIONS_TABLE,
                eq={"id": conversation_id, "user_id": user_id},
            )
            if conversation is not None:
                history = list(conversation.get("conversation_data") or [])

        search_results = await self._search(message)

        system = prompts.chat_system(context_type, has_search_results=search_results is not None)
        started = self._timer()
        try:
            response = await self.provider.chat(
                list(history),
                prompts.chat_message(message, len(search_results or [])),
                system=system,
            )
        except ProviderOverloadedError:
            record_ai_generation(CHAT_FEATURE, "claude", "overloaded")
            logger.warning("chat_overloaded", context_type=context_type)
            self._log_usage(user_id, self._elapsed_ms(started), context_type, success=False)
            raise
        except Exception as exc:
            record_ai_generation(CHAT_FEATURE, "claude", "error")
            logger.error("chat_failed", context_type=context_type, error=str(exc), error_type=type(exc).__name__)
            self._log_usage(user_id, self._elapsed_ms(started), context_type, success=False)
            raise
        elapsed_ms = self._elapsed_ms(started)
        record_ai_generation(CHAT_FEATURE, "claude", "success", elapsed_ms)

        history.extend([{"role": "user", "content": message}, {"role": "assistant", "content": response}])
        now = self._clock()

        if conversation is not None:
            await self.store.update(
                CONVERSATIONS_TABLE,
                {"conversation_data": history, "last_message_at": now.isoformat()},
                eq={"id": conversation["id"]},
            )
            saved_id = conversation["id"]
        else:
            rows = await self.store.insert(
                CONVERSATIONS_TABLE,
                {"user_id": user_id, "conversation_data": history, "context_type": context_type},
            )
            saved_id = rows[0].get("id") if rows else None

        self._log_usage(user_id, elapsed_ms, context_type, success=True)
        logger.info(
            "chat_reply_completed",
            conversation_id=saved_id,
            context_type=context_type,
            turns=len(history) // 2,
            generation_time_ms=elapsed_ms,
        )
        return ChatReply(
            response=response,
            conversation_id=saved_id,
            timestamp=now.isoformat(),
            search_results=search_results,
        )

    async def _search(self, message: str) -> Optional[List[Dict[str, Any]]]:
        """Matching ads for a shopping request; None when there is nothing to show."""
        query = detect_search_query(message)
        if query is None:
            return None
        try:
            ads = await self.store.select(
                "ads",
                eq={"status": "active"},
                ilike_any=(["title", "description"], query),
                limit=CHAT_SEARCH_LIMIT,
            )
        except StoreError as e:
            logger.warning("chat_search_failed", query=query, error=str(e))
            return None
        return ads or None

    def _elapsed_ms(self, started: float) -> int:
        return int(round((self._timer() - started) * 1000))

    def _log_usage(self, user_id: str, response_time_ms: int, context_type: str, success: bool) -> None:
        entry = {
            "user_id": user_id,
            "feature_type": CHAT_USAGE_LABEL,
            "response_time_ms": response_time_ms,
            "success": success,
            "metadata": {"context_type": context_type},
        }
        self.background.spawn(self.store.insert(USAGE_LOG_TABLE, entry), name="usage_log_write")


_chat_service: Optional[ChatService] = None


def get_chat_service() -> ChatService:
    """FastAPI dependency: process-wide chat service over the global store."""
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService(store=get_store(), provider=get_providers()["claude"])
    return _chat_service


async def shutdown_chat_service() -> None:
    if _chat_service is not None:
        await _chat_service.background.drain()
