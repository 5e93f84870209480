from __future__ import annotations

import logging
from typing import Collection, List, Optional, Tuple

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from config.settings import Settings
from tutor.core.prompt import compose
from tutor.core.sessions import Message, SessionRegistry
from tutor.curriculum import Curriculum
from tutor.errors import InvalidUnit, SessionNotFound, UpstreamFailure


logger = logging.getLogger("sprachpartner.conversation")


def build_chat_model(settings: Settings) -> Optional[BaseChatModel]:
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set, chat completions will fail")
        return None

    # No retries: the browser decides whether to ask the learner to try again.
    return ChatOpenAI(
        model=settings.chat_model,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        temperature=settings.chat_temperature,
        max_tokens=settings.chat_max_tokens,
        timeout=settings.upstream_timeout,
        max_retries=0,
    )


def to_lc_messages(history: List[Message]) -> List[BaseMessage]:
    messages: List[BaseMessage] = []
    for item in history:
        if item.role == "system":
            messages.append(SystemMessage(content=item.content))
        elif item.role == "assistant":
            messages.append(AIMessage(content=item.content))
        else:
            messages.append(HumanMessage(content=item.content))
    return messages


class ConversationService:
    """Turn-based exchanges: start, one user/assistant pair per message, end."""

    def __init__(
        self,
        curriculum: Curriculum,
        registry: SessionRegistry,
        chat_model: Optional[BaseChatModel],
        max_unit: int,
        reserved_units: Collection[int] = (),
        presence_penalty: Optional[float] = None,
        frequency_penalty: Optional[float] = None,
    ) -> None:
        self.curriculum = curriculum
        self.registry = registry
        self.chat_model = chat_model
        self.max_unit = max_unit
        self.reserved_units = frozenset(reserved_units)
        self.turn_options = {
            key: value
            for key, value in (
                ("presence_penalty", presence_penalty),
                ("frequency_penalty", frequency_penalty),
            )
            if value is not None
        }

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        curriculum: Curriculum,
        registry: SessionRegistry,
        chat_model: Optional[BaseChatModel],
    ) -> "ConversationService":
        return cls(
            curriculum,
            registry,
            chat_model,
            max_unit=settings.max_unit,
            reserved_units=settings.reserved_units,
            presence_penalty=settings.chat_presence_penalty,
            frequency_penalty=settings.chat_frequency_penalty,
        )

    def validate_unit(self, unit_number: int) -> None:
        if not 1 <= unit_number <= self.max_unit:
            raise InvalidUnit(f"Unit must be between 1 and {self.max_unit}")
        if unit_number in self.reserved_units:
            raise InvalidUnit(f"Unit {unit_number} is not available")

    def _complete(self, history: List[Message], **options) -> str:
        if self.chat_model is None:
            raise UpstreamFailure("OPENAI_API_KEY is not configured")
        model = self.chat_model.bind(**options) if options else self.chat_model
        try:
            result = model.invoke(to_lc_messages(history))
        except Exception as exc:
            logger.exception("Chat completion failed: %s", exc)
            raise UpstreamFailure(f"Chat completion failed: {exc}") from exc

        content = result.content if isinstance(result.content, str) else ""
        reply = content.strip()
        if not reply:
            raise UpstreamFailure("Chat completion returned an empty reply")
        return reply

    def start(self, unit_number: int) -> Tuple[str, str]:
        self.validate_unit(unit_number)
        system = Message("system", compose(self.curriculum.get(unit_number)))
        opening = self._complete([system])
        session_id = self.registry.create(
            unit_number, [system, Message("assistant", opening)]
        )
        logger.info(
            "Started conversation %s for unit %s (%s active)",
            session_id,
            unit_number,
            len(self.registry),
        )
        return session_id, opening

    def message(self, session_id: str, text: str) -> str:
        history = self.registry.history(session_id)
        if history is None:
            raise SessionNotFound()

        # History grows until the session expires; it is never truncated.
        reply = self._complete(history + [Message("user", text)], **self.turn_options)
        if not self.registry.append_turn(session_id, text, reply):
            # Expired or ended while the completion was in flight.
            raise SessionNotFound()
        logger.info(
            "Conversation %s turn complete: user_len=%s reply_len=%s history=%s",
            session_id,
            len(text),
            len(reply),
            len(history) + 2,
        )
        return reply

    def end(self, session_id: Optional[str]) -> None:
        if session_id and self.registry.delete(session_id):
            logger.info("Ended conversation %s", session_id)
