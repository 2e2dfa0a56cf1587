# tests/test_containers.py
from chess_coach.config.settings import Settings
from chess_coach.containers import get_container
from chess_coach.orchestration.analysis_pipeline import GameAnalysisPipeline
from chess_coach.orchestration.game_session import InteractiveGameSession
from chess_coach.services.coach_service import CoachService
from chess_coach.services.engine_channel import EngineChannel
from chess_coach.services.engine_facade import EngineFacade


def test_container_shares_one_engine_channel(engine_factory):
    container = get_container(Settings(), process_factory=engine_factory)

    facade = container.resolve(EngineFacade)
    pipeline = container.resolve(GameAnalysisPipeline)

    assert container.resolve(EngineFacade) is facade
    assert container.resolve(EngineChannel) is facade.channel
    assert isinstance(pipeline, GameAnalysisPipeline)
    assert container.resolve(CoachService) is container.resolve(CoachService)


def test_separate_containers_own_separate_channels(engine_factory):
    first = get_container(Settings(), process_factory=engine_factory)
    second = get_container(Settings(), process_factory=engine_factory)

    assert first.resolve(EngineChannel) is not second.resolve(EngineChannel)


def test_game_session_factory_passes_user_and_alert_callback(engine_factory):
    container = get_container(Settings(), process_factory=engine_factory)
    alerts = []

    session = container.resolve(InteractiveGameSession, user_id="alice", on_alert=alerts.append)

    assert isinstance(session, InteractiveGameSession)
    assert session._user_id == "alice"
    assert session._on_alert == alerts.append
    assert not session.is_initialized
