# chess_coach/utils/system_utils.py
"""
Locating the engine executable on the host.
"""
import os
import shutil
from pathlib import Path
from typing import List, Optional, Sequence

ENGINE_PATH_ENV_VAR = "STOCKFISH_PATH"
DEFAULT_ENGINE_NAMES: Sequence[str] = ("stockfish",)


def _as_executable(candidate: str) -> Optional[Path]:
    """Resolves a file path, or a bare command name via PATH."""
    path = Path(candidate).expanduser()
    if path.is_file() and os.access(path, os.X_OK):
        return path.resolve()
    if os.sep not in candidate and (found := shutil.which(candidate)):
        return Path(found)
    return None


def find_engine_executable(
    configured: Optional[str] = None,
    env_var: str = ENGINE_PATH_ENV_VAR,
    default_names: Sequence[str] = DEFAULT_ENGINE_NAMES,
) -> Path:
    """
    Finds the UCI engine to launch.

    Candidates are tried in order: the configured value, the `env_var`
    environment variable, then each of `default_names` on PATH. A configured
    value may be either a path or a command name.

    Raises:
        FileNotFoundError: If no candidate is an executable file. The message
            lists every candidate tried.
    """
    candidates: List[str] = []
    if configured:
        candidates.append(configured)
    if os.environ.get(env_var):
        candidates.append(os.environ[env_var])
    candidates.extend(default_names)

    for candidate in candidates:
        if (executable := _as_executable(candidate)) is not None:
            return executable

    raise FileNotFoundError(
        f"No engine executable found (tried: {', '.join(candidates)}). Install Stockfish, "
        f"set {env_var}, or pass --stockfish-path."
    )
