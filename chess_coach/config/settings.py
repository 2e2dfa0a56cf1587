# chess_coach/config/settings.py
"""
Configuration settings for the Chess Coach application, powered by Pydantic.

This module centralizes all tunable parameters, default values, and configuration
schemas. Using Pydantic allows for type-safe, self-documenting configuration
that can be loaded from environment variables, providing a clear separation of
configuration from code.
"""
from typing import Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Nested Models for Configuration Schemas ---

class ClassificationThresholdsModel(BaseModel):
    """
    Defines the evaluation-drop thresholds (in pawns) for move classification.

    The drop is measured from the mover's perspective: a positive value means
    the mover's position got worse, a negative value means it improved.
    """
    brilliant: float = Field(-0.5, description="A drop at or below this is 'Brilliant'.")
    great: float = Field(-0.2, description="A drop at or below this (and above 'brilliant') is 'Great'.")
    inaccuracy: float = Field(0.5, description="A drop at or above this is at least an 'Inaccuracy'.")
    mistake: float = Field(1.5, description="A drop at or above this is at least a 'Mistake'.")
    blunder: float = Field(3.0, description="A drop at or above this is a 'Blunder'.")

    @model_validator(mode='after')
    def validate_thresholds_are_sorted(self) -> 'ClassificationThresholdsModel':
        """Ensures the thresholds are ascending and straddle zero."""
        values = [self.brilliant, self.great, self.inaccuracy, self.mistake, self.blunder]
        if not all(values[i] <= values[i + 1] for i in range(len(values) - 1)):
            raise ValueError("Configuration error: Classification thresholds must be sorted.")
        if self.great > 0 or self.inaccuracy <= 0:
            raise ValueError("Configuration error: Improvement thresholds must be <= 0 and loss thresholds > 0.")
        return self

class EngineSettings(BaseModel):
    """Configuration for the engine process and its request timeouts."""
    path: Optional[str] = Field(None, description="The file path to the UCI engine executable. Falls back to STOCKFISH_PATH, then PATH.")
    startup_timeout_s: float = Field(30.0, description="Time allowed for the engine to answer the 'uci' handshake.")
    best_move_timeout_s: float = Field(15.0, description="Time allowed for a best-move search before it is stopped.")
    evaluation_timeout_s: float = Field(10.0, description="Time allowed for an evaluation before the best score so far is used.")
    handshake_delay_s: float = Field(0.1, description="Pause between spawning the process and sending 'uci'.")
    stop_grace_s: float = Field(1.0, description="Time the engine stays reserved after a timed-out search, waiting for its trailing 'bestmove'.")
    shutdown_timeout_s: float = Field(2.0, description="Time allowed for the process to exit after being killed.")
    default_difficulty: int = Field(10, description="Skill level used until one is set explicitly.")
    min_difficulty: int = 1
    max_difficulty: int = 20
    weakening_threshold: int = Field(15, description="Levels below this also widen the engine's maximum error.")

class AnalysisSettings(BaseModel):
    """Groups all settings related to full-game analysis."""
    depth: int = Field(15, description="The search depth for every analysis query.")
    mate_score: float = Field(100.0, description="The pawn-unit magnitude assigned to a forced mate.")
    evaluate_before_move: bool = Field(
        False, description="Also query the evaluation of the position before each move and record it."
    )
    classification_thresholds: ClassificationThresholdsModel = Field(default_factory=ClassificationThresholdsModel)

class SessionSettings(BaseModel):
    """Settings for interactive human-vs-engine games."""
    engine_move_delay_s: float = Field(0.5, description="Pause before the engine starts thinking about its reply.")
    opponent_label: str = Field("Stockfish", description="Opponent name stored with saved games.")

class PersistenceSettings(BaseModel):
    """Configuration for the game storage database."""
    db_filepath: str = Field("data/games.db", description="The file path for the SQLite games database.")
    default_page_size: int = 20

class CoachSettings(BaseModel):
    """Configuration for the LLM coaching backend (any OpenAI-compatible endpoint)."""
    api_key: Optional[str] = Field(None, description="API key for the completion endpoint.")
    base_url: str = Field("https://api.groq.com/openai/v1", description="Base URL of the OpenAI-compatible API.")
    model: str = "llama-3.3-70b-versatile"
    analysis_temperature: float = 0.5
    analysis_max_tokens: int = 400
    chat_temperature: float = 0.6
    chat_max_tokens: int = 600
    history_window: int = Field(10, description="Number of most recent chat messages sent with each request.")

# --- Main Application Settings Class ---

class Settings(BaseSettings):
    """
    Main configuration class for the application.

    It loads settings from environment variables with the prefix 'CHESS_COACH_'.
    Nested models can be configured using a double underscore delimiter, e.g.,
    `CHESS_COACH_ANALYSIS__DEPTH=18` or `CHESS_COACH_COACH__API_KEY=...`.
    """
    model_config = SettingsConfigDict(env_prefix='CHESS_COACH_', env_nested_delimiter='__')

    engine: EngineSettings = Field(default_factory=EngineSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    persistence: PersistenceSettings = Field(default_factory=PersistenceSettings)
    coach: CoachSettings = Field(default_factory=CoachSettings)
    default_log_level: str = "INFO"
