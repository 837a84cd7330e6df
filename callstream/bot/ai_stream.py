"""
Streaming conversational AI replies.

An AIStream is bound to one call's personality and rolling context. Replies
are streamed chunk by chunk to an async callback so that synthesis and
notifications can start before generation finishes. The caller always
receives at least one chunk: an empty reply becomes a short fallback, and a
generation failure becomes a spoken apology (the error is logged and
flagged on the stream, never raised).
"""

import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Awaitable, Callable, List, Optional

import google.generativeai as genai

from callstream.config.constants import (
    FALLBACK_EMPTY_RESPONSE,
    FALLBACK_GENERATION_ERROR,
    LOGGER_NAME,
)
from callstream.config.settings import StreamSettings
from callstream.errors import GenerationError, InitializationError
from callstream.services.personalities import Personality

logger = logging.getLogger(LOGGER_NAME)

ChunkCallback = Callable[[str], Awaitable[None]]
AIStreamFactory = Callable[[Personality, List[str]], Awaitable["AIStream"]]

CONTEXT_ACKNOWLEDGEMENT = (
    "I understand my role and personality. I will engage naturally while maintaining "
    "the specified traits."
)


class AIStream(ABC):
    """Base class for streaming reply generators."""

    def __init__(self, personality: Personality, context: List[str]):
        self.personality = personality
        self.context: List[str] = list(context)
        self.failed = False
        self.closed = False

    @abstractmethod
    def _generate(self, text: str) -> AsyncIterator[str]:
        """Yield reply text for the caller's input as it is produced."""

    def _context_changed(self) -> None:
        """Hook for subclasses that cache provider state built from the context."""

    async def _release(self) -> None:
        """Hook for subclasses holding provider resources."""

    async def stream_response(self, text: str, on_chunk: ChunkCallback) -> str:
        """
        Generate a reply, passing each piece to on_chunk as it arrives.

        Args:
            text: The caller's finalized utterance
            on_chunk: Awaited once per piece of generated text

        Returns:
            The full text delivered through on_chunk
        """
        self.failed = False
        pieces: List[str] = []
        try:
            async for piece in self._generate(text):
                if not piece:
                    continue
                pieces.append(piece)
                await on_chunk(piece)
        except Exception as e:
            logger.error(f"Error streaming response: {e}", exc_info=True)
            self.failed = True
            await on_chunk(FALLBACK_GENERATION_ERROR)
            return "".join(pieces) + FALLBACK_GENERATION_ERROR

        if not pieces:
            logger.warning("Generation returned no content; sending fallback")
            await on_chunk(FALLBACK_EMPTY_RESPONSE)
            return FALLBACK_EMPTY_RESPONSE
        return "".join(pieces)

    def update_context(self, history: List[str]) -> None:
        """Replace the rolling context; the next turn is generated against it."""
        self.context = list(history)
        self._context_changed()

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._release()


def build_system_prompt(personality: Personality) -> str:
    traits = ", ".join(personality.traits)
    return (
        f"{personality.system_prompt}\n\n"
        f"You are an AI assistant with these traits: {traits}.\n"
        "You are speaking with a caller on the phone. Respond naturally in a "
        "conversational style while maintaining the personality traits above.\n"
        "Keep responses concise and focused."
    )


def _chunk_text(chunk) -> str:
    # .text raises when a chunk carries no text parts (e.g. safety blocks)
    try:
        return chunk.text or ""
    except ValueError:
        return ""


class GeminiStream(AIStream):
    """AIStream backed by a Google Gemini chat session."""

    def __init__(self, model: "genai.GenerativeModel", personality: Personality, context: List[str]):
        super().__init__(personality, context)
        self._model = model
        self._chat = None

    @classmethod
    async def create(
        cls,
        personality: Personality,
        initial_context: List[str],
        api_key: Optional[str],
        model_name: str = "gemini-1.5-flash",
        max_output_tokens: int = 200,
    ) -> "GeminiStream":
        """
        Configure the Gemini model for a personality and open a chat.

        Raises:
            InitializationError: if the API key is missing or the model cannot be set up
        """
        if not api_key:
            raise InitializationError("GOOGLE_API_KEY environment variable not set")

        try:
            genai.configure(api_key=api_key)
            model = genai.GenerativeModel(
                model_name=model_name,
                generation_config={
                    "temperature": personality.temperature,
                    "top_p": 0.8,
                    "top_k": 40,
                    "max_output_tokens": max_output_tokens,
                },
                system_instruction=build_system_prompt(personality),
            )
        except Exception as e:
            raise InitializationError(f"Failed to initialize Gemini model {model_name}: {e}") from e

        instance = cls(model, personality, initial_context)
        instance._start_chat()
        logger.info(f"Gemini stream created with model {model_name} for {personality.name}")
        return instance

    def _chat_history(self) -> List[dict]:
        history = []
        for example in self.personality.examples:
            history.append({"role": "user", "parts": [example.input]})
            history.append({"role": "model", "parts": [example.response]})
        if self.context:
            history.append({
                "role": "user",
                "parts": ["Previous conversation context:\n" + "\n".join(self.context)],
            })
            history.append({"role": "model", "parts": [CONTEXT_ACKNOWLEDGEMENT]})
        return history

    def _start_chat(self) -> None:
        self._chat = self._model.start_chat(history=self._chat_history())

    async def _generate(self, text: str) -> AsyncIterator[str]:
        if self._chat is None:
            self._start_chat()
        try:
            response = await self._chat.send_message_async(text, stream=True)
            async for chunk in response:
                piece = _chunk_text(chunk)
                if piece:
                    yield piece
        except Exception as e:
            raise GenerationError(f"Gemini generation failed: {e}") from e

    def _context_changed(self) -> None:
        self._chat = None

    async def _release(self) -> None:
        self._chat = None


def gemini_stream_factory(settings: StreamSettings) -> AIStreamFactory:
    """Bind Gemini credentials and limits from settings into an AIStreamFactory."""

    async def create(personality: Personality, initial_context: List[str]) -> AIStream:
        return await GeminiStream.create(
            personality,
            initial_context,
            api_key=settings.google_api_key,
            model_name=settings.gemini_model,
            max_output_tokens=settings.max_output_tokens,
        )

    return create
