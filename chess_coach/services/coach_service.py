# chess_coach/services/coach_service.py
"""
Provides the coaching text-completion capability.

`CoachService` wraps an OpenAI-compatible chat-completions endpoint (Groq by
default) behind the `TextCompletionService` protocol, and builds the two
coaching prompts used by the application: a short analysis of the current
position, and a free-form chat with the coach about that position.
"""

from typing import Any, Dict, List, Optional

import openai
import structlog
from openai import AsyncOpenAI

from chess_coach.config.settings import CoachSettings
from chess_coach.exceptions import CoachServiceError
from chess_coach.types import ChatMessage, FEN, PositionAnalysisRequest, TextCompletionService

logger = structlog.get_logger(__name__)

DEFAULT_PLAYER_COLOR = "white"
EMPTY_COMPLETION_FALLBACK = "I apologize, I could not generate a response."
EMPTY_ANALYSIS_FALLBACK = "Unable to analyze position."


def build_analysis_prompt(request: PositionAnalysisRequest) -> str:
    color = request.player_color or DEFAULT_PLAYER_COLOR
    context_lines = [f"Current position (FEN): {request.fen}"]
    if request.last_move:
        context_lines.append(f"Last move played: {request.last_move}")
    if request.game_context:
        context_lines.append(f"Moves played so far: {request.game_context}")
    context = "\n".join(context_lines)

    return (
        f"You are a chess coach analyzing a position for a player playing as {color}.\n\n"
        f"{context}\n\n"
        "IMPORTANT:\n"
        "- Analyze the CURRENT position shown in the FEN, not the starting position\n"
        f"- Give advice from {color}'s perspective\n"
        "- Look at where the pieces actually are right now\n"
        f"- Focus on what {color} should do next\n\n"
        "Provide a brief analysis (2-3 sentences) covering:\n"
        f"1. What is happening in THIS specific position for {color}\n"
        f"2. Key threats or opportunities for {color} RIGHT NOW\n"
        f"3. What {color} should consider for their NEXT move\n\n"
        "Keep it concise and relevant to the actual current position."
    )

def build_analysis_system_prompt(player_color: Optional[str]) -> str:
    color = player_color or DEFAULT_PLAYER_COLOR
    return (
        "You are an expert chess coach. Always analyze the CURRENT position based on the FEN provided. "
        f"Give advice from the player's color perspective ({color})."
    )

def build_chat_system_prompt(fen: Optional[FEN], move_history: Optional[str], player_color: Optional[str]) -> str:
    color = player_color or DEFAULT_PLAYER_COLOR
    upper = color.upper()
    context_lines = []
    if fen:
        context_lines.append(f"CURRENT POSITION (FEN): {fen}")
    if move_history:
        context_lines.append(f"MOVES PLAYED: {move_history}")
    context = "\n".join(context_lines)

    return (
        f"You are an experienced chess coach helping a student who is playing as {upper}.\n\n"
        + (f"{context}\n\n" if context else "")
        + "CRITICAL INSTRUCTIONS:\n"
        f"- You are coaching the {upper} player\n"
        "- Analyze the CURRENT position shown in the FEN, not the starting position\n"
        f"- Base your advice on where the pieces ACTUALLY are right now from {color}'s perspective\n"
        "- Don't suggest moves that have already been played\n"
        "- Look at the actual board state before giving advice\n"
        f"- Focus on what is good or bad for {color}\n"
        f"- When it's {color}'s turn, suggest good moves\n"
        "- When it's the opponent's turn, explain what threats to watch for\n\n"
        "Be encouraging, educational, and provide specific advice for THIS position "
        f"from {color}'s point of view."
    )


class CoachService(TextCompletionService):
    """A coaching client for an OpenAI-compatible chat-completions API."""

    def __init__(self, settings: CoachSettings, client: Optional[AsyncOpenAI] = None):
        """
        Args:
            settings: Model, endpoint and sampling configuration.
            client: An existing SDK client. Built from `settings` if omitted.
        """
        self._settings = settings
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        # The SDK raises at construction when no API key is available.
        if self._client is None:
            try:
                self._client = AsyncOpenAI(api_key=self._settings.api_key, base_url=self._settings.base_url)
            except openai.OpenAIError as e:
                raise CoachServiceError(f"Coaching backend is not configured: {e}") from e
        return self._client

    async def complete(
        self,
        system_prompt: str,
        history: List[ChatMessage],
        user_message: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        fallback: str = EMPTY_COMPLETION_FALLBACK,
    ) -> str:
        """
        Sends one chat-completion request and returns the reply text.

        Only the most recent `history_window` history messages are sent.

        Raises:
            CoachServiceError: If the API call fails.
        """
        window = self._settings.history_window
        recent = history[-window:] if window > 0 else []
        messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        messages.extend(message.as_dict() for message in recent)
        messages.append({"role": "user", "content": user_message})

        try:
            completion = await self._get_client().chat.completions.create(
                model=self._settings.model,
                messages=messages,
                temperature=self._settings.chat_temperature if temperature is None else temperature,
                max_tokens=self._settings.chat_max_tokens if max_tokens is None else max_tokens,
            )
        except openai.OpenAIError as e:
            logger.error("Coaching completion failed.", model=self._settings.model, error=str(e))
            raise CoachServiceError(f"Coaching request failed: {e}") from e

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            logger.warning("Coaching completion was empty.", model=self._settings.model)
            return fallback
        return content

    async def analyze_position(self, request: PositionAnalysisRequest) -> str:
        """Returns a brief coaching analysis of `request.fen` for the player's colour."""
        if not request.fen:
            raise CoachServiceError("FEN position is required.")
        return await self.complete(
            system_prompt=build_analysis_system_prompt(request.player_color),
            history=[],
            user_message=build_analysis_prompt(request),
            temperature=self._settings.analysis_temperature,
            max_tokens=self._settings.analysis_max_tokens,
            fallback=EMPTY_ANALYSIS_FALLBACK,
        )

    async def chat(
        self,
        message: str,
        history: Optional[List[ChatMessage]] = None,
        fen: Optional[FEN] = None,
        move_history: Optional[str] = None,
        player_color: Optional[str] = None,
    ) -> str:
        """Answers one chat message from the player, using the recent conversation as context."""
        if not message:
            raise CoachServiceError("Message is required.")
        return await self.complete(
            system_prompt=build_chat_system_prompt(fen, move_history, player_color),
            history=history or [],
            user_message=message,
        )
