# chess_coach/containers.py
"""
Defines the Dependency Injection (DI) container for the application.

This module uses the `punq` library to wire settings, the engine channel and
facade, the analysis pipeline, the game repository and the coaching service.
The engine channel is registered as a singleton per container: the container
is its one owner, and only the facade it builds ever drives it.
"""

from typing import Optional

import punq

from chess_coach.config.settings import Settings
from chess_coach.orchestration.analysis_pipeline import GameAnalysisPipeline
from chess_coach.orchestration.game_session import InteractiveGameSession
from chess_coach.persistence.game_repository import SqliteGameRepository
from chess_coach.services.coach_service import CoachService
from chess_coach.services.engine_channel import EngineChannel
from chess_coach.services.engine_facade import EngineFacade
from chess_coach.types import ProcessFactory


def get_container(settings: Settings, process_factory: Optional[ProcessFactory] = None) -> punq.Container:
    """
    Initializes and returns a DI container for one application instance.

    Args:
        settings: The application settings.
        process_factory: Optional override for launching the engine process.

    Note:
        `SqliteGameRepository` is an async context manager. Callers must enter
        it (`async with container.resolve(SqliteGameRepository)`) before a
        session saves games through it.
    """
    container = punq.Container()

    container.register(Settings, instance=settings)

    container.register(
        EngineChannel,
        factory=lambda: EngineChannel(settings.engine, process_factory),
        scope=punq.Scope.singleton,
    )
    container.register(
        EngineFacade,
        factory=lambda: EngineFacade(
            container.resolve(EngineChannel), settings.engine, mate_score=settings.analysis.mate_score
        ),
        scope=punq.Scope.singleton,
    )
    container.register(
        GameAnalysisPipeline,
        factory=lambda: GameAnalysisPipeline(container.resolve(EngineFacade), settings.analysis),
    )
    container.register(
        SqliteGameRepository,
        factory=lambda: SqliteGameRepository(settings.persistence),
        scope=punq.Scope.singleton,
    )
    container.register(
        CoachService,
        factory=lambda: CoachService(settings.coach),
        scope=punq.Scope.singleton,
    )

    # Unannotated so punq passes these through as resolve() kwargs.
    def create_game_session(user_id="local", on_alert=None) -> InteractiveGameSession:
        return InteractiveGameSession(
            container.resolve(EngineFacade),
            settings.session,
            repository=container.resolve(SqliteGameRepository),
            user_id=user_id,
            on_alert=on_alert,
        )

    container.register(InteractiveGameSession, factory=create_game_session)

    return container
