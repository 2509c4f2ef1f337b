"""Process restart: plain exit under a supervisor, self-respawn otherwise."""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import sys
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping

logger = logging.getLogger(__name__)

RESTART_DELAY = 0.5  # seconds; lets the HTTP response go out first

# systemd sets these for every unit it starts.
_SYSTEMD_VARS = ("INVOCATION_ID", "JOURNAL_STREAM", "NOTIFY_SOCKET")

_CONTAINER_MARKERS = ("/.dockerenv", "/run/.containerenv")

_PROCESS_MANAGER_VARS = (
    "PM2_HOME",
    "pm_id",
    "SUPERVISOR_ENABLED",  # supervisord
    "SUPERVISOR_PROCESS_NAME",
    "SUPERVISOR_TOKEN",  # Home Assistant Supervisor add-on
    "KUBERNETES_SERVICE_HOST",
)


def has_supervisor(
    environ: Mapping[str, str] | None = None,
    exists: Callable[[str], bool] = os.path.exists,
) -> bool:
    """Guess whether something will bring the process back after it exits.

    A heuristic, not a guarantee: a container without a restart policy
    still looks supervised.
    """
    env = os.environ if environ is None else environ
    if any(env.get(name) for name in _SYSTEMD_VARS):
        return True
    if any(exists(path) for path in _CONTAINER_MARKERS):
        return True
    return any(env.get(name) for name in _PROCESS_MANAGER_VARS)


class RestartStrategy(ABC):
    name: str = ""

    def __init__(self, exit_func: Callable[[int], object] = os._exit) -> None:
        self._exit = exit_func

    @abstractmethod
    def restart(self) -> None: ...


class SupervisedExit(RestartStrategy):
    """Exit and let the supervisor start us again."""

    name = "supervised"

    def restart(self) -> None:
        logger.info("Exiting for restart; supervisor will relaunch the server")
        self._exit(0)


class SelfRespawn(RestartStrategy):
    """Spawn a detached copy of this process with the same arguments, then exit."""

    name = "respawn"

    def __init__(
        self,
        exit_func: Callable[[int], object] = os._exit,
        spawn: Callable[..., object] = subprocess.Popen,
        argv: list[str] | None = None,
    ) -> None:
        super().__init__(exit_func)
        self._spawn = spawn
        self._argv = argv

    def command(self) -> list[str]:
        if self._argv is not None:
            return list(self._argv)
        # orig_argv keeps interpreter flags such as ``-m lobbyha``.
        return [sys.executable, *sys.orig_argv[1:]]

    def restart(self) -> None:
        cmd = self.command()
        logger.info("No supervisor detected, respawning: %s", " ".join(cmd))
        try:
            self._spawn(
                cmd,
                cwd=os.getcwd(),
                env=os.environ.copy(),
                stdin=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError:
            logger.exception("Respawn failed; staying up")
            return
        self._exit(0)


def select_strategy() -> RestartStrategy:
    return SupervisedExit() if has_supervisor() else SelfRespawn()


def schedule_restart(delay: float = RESTART_DELAY, strategy: RestartStrategy | None = None) -> RestartStrategy:
    """Run *strategy* on the event loop after *delay* seconds."""
    strategy = strategy or select_strategy()
    asyncio.get_running_loop().call_later(delay, strategy.restart)
    return strategy
