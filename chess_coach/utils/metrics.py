"""
Centralized Prometheus metrics definitions for the Chess Coach application.

This module uses the prometheus-client library to define all metrics that will
be exposed by the application for monitoring and alerting. Grouping them here
provides a single, clear overview of the application's instrumentation points.
"""
from prometheus_client import Counter, Histogram

# A common prefix for all application-specific metrics.
PREFIX = "chess_coach"

# --- Engine Metrics ---

ENGINE_COMMANDS_SENT_TOTAL = Counter(
    f"{PREFIX}_engine_commands_sent_total",
    "Total number of command lines written to the engine process.",
)

ENGINE_STARTUPS_TOTAL = Counter(
    f"{PREFIX}_engine_startups_total",
    "Total number of engine startup attempts.",
    ["outcome"],  # e.g., outcome="ready", "spawn_failed", "timeout"
)

ENGINE_CRASHES_TOTAL = Counter(
    f"{PREFIX}_engine_crashes_total",
    "Total number of engine processes that exited or failed unexpectedly.",
)

ENGINE_REQUEST_TIMEOUTS_TOTAL = Counter(
    f"{PREFIX}_engine_request_timeouts_total",
    "Total number of engine requests that hit their timeout.",
    ["operation"],  # e.g., operation="best_move", "evaluate"
)

ENGINE_REQUEST_DURATION_SECONDS = Histogram(
    f"{PREFIX}_engine_request_duration_seconds",
    "Histogram of the time taken by a single engine request.",
    ["operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 15, float("inf"))
)

# --- Analysis Metrics ---

PLIES_ANALYZED_TOTAL = Counter(
    f"{PREFIX}_plies_analyzed_total",
    "Total number of half-moves analyzed by the game analysis pipeline.",
)

MOVES_CLASSIFIED_TOTAL = Counter(
    f"{PREFIX}_moves_classified_total",
    "Total number of classified moves by quality tier.",
    ["classification"],
)

GAME_ANALYSIS_DURATION_SECONDS = Histogram(
    f"{PREFIX}_game_analysis_duration_seconds",
    "Histogram of the time taken to fully analyze a single game.",
    buckets=(1, 5, 10, 30, 60, 120, 300, 600, float("inf"))
)

# --- Persistence Metrics ---

GAMES_SAVED_TOTAL = Counter(
    f"{PREFIX}_games_saved_total",
    "Total number of finished games written to storage.",
    ["result"],
)

DB_TRANSIENT_ERRORS_TOTAL = Counter(
    f"{PREFIX}_db_transient_errors_total",
    "Transient database errors (lock contention) seen by retried operations.",
    ["operation"]
)
