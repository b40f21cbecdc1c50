# autoscan/engine.py
"""
Lazy loader for the edge-detection engine (OpenCV).

The engine is imported once, on first use, and exposed through an
EngineLoader instance so tests can inject a fake module. States:

    UNLOADED -> LOADING -> READY
                        -> ERROR   (retry by calling load() again)
                        -> UNLOADED (load task cancelled)

Concurrent callers of load() share one in-flight initialization.
READY never goes back.
"""

import asyncio
import importlib
import inspect
import re
from enum import Enum
from typing import Any, Callable, Optional

from .config import ENGINE_MODULE
from .errors import EngineLoadError, EngineNotReady
from .logger import console
from .metrics import ENGINE_LOADS
from .models import EngineStatus

_VERSION_RE = re.compile(r"OpenCV\s+([\d.]+)")


class EngineState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


def _engine_version(module: Any) -> Optional[str]:
    version = getattr(module, "__version__", None)
    if version:
        return str(version)

    build_info = getattr(module, "getBuildInformation", None)
    if build_info is not None:
        match = _VERSION_RE.search(build_info())
        if match:
            return match.group(1)
    return None


class EngineLoader:
    """Owns the engine module handle and its load state."""

    def __init__(
        self,
        module_name: str = ENGINE_MODULE,
        importer: Callable[[str], Any] = importlib.import_module,
    ):
        self.module_name = module_name
        self._importer = importer
        self._state = EngineState.UNLOADED
        self._module: Any = None
        self._error: Optional[str] = None
        self._version: Optional[str] = None
        self._load_task: Optional[asyncio.Future] = None

    @property
    def state(self) -> EngineState:
        return self._state

    def is_ready(self) -> bool:
        return self._state is EngineState.READY

    def get_status(self) -> EngineStatus:
        return EngineStatus(
            loaded=self._state is EngineState.READY,
            loading=self._state is EngineState.LOADING,
            error=self._error,
            version=self._version,
        )

    @property
    def cv(self) -> Any:
        """The loaded engine module; raises EngineNotReady before load()."""
        if self._state is not EngineState.READY:
            raise EngineNotReady()
        return self._module

    async def load(self) -> None:
        if self._state is EngineState.READY:
            return

        task = self._load_task
        if task is not None and (task.done() or task.get_loop() is not asyncio.get_running_loop()):
            # left over from a cancelled load or an event loop that is gone
            self._load_task = None
            if self._state is EngineState.LOADING:
                self._state = EngineState.UNLOADED

        if self._load_task is None:
            self._state = EngineState.LOADING
            self._error = None
            self._load_task = asyncio.ensure_future(self._load())

        # shield: one caller giving up must not cancel the shared load
        await asyncio.shield(self._load_task)

    async def _load(self) -> None:
        console.log(f"[yellow]Loading edge detection engine '{self.module_name}'...[/yellow]")
        loop = asyncio.get_running_loop()

        try:
            module = await loop.run_in_executor(None, self._importer, self.module_name)
            if not hasattr(module, "Canny"):
                raise EngineLoadError(f"Module '{self.module_name}' does not provide Canny")
            version = _engine_version(module)
        except asyncio.CancelledError:
            # a stale task must not reset a newer load
            if self._load_task is asyncio.current_task():
                self._state = EngineState.UNLOADED
            console.log("[yellow]Edge detection engine load cancelled[/yellow]")
            raise
        except Exception as exc:
            self._state = EngineState.ERROR
            self._error = f"Failed to load {self.module_name}: {exc}"
            ENGINE_LOADS.labels(status="error").inc()
            console.log(f"[red]{self._error}[/red]")
            raise EngineLoadError(self._error) from exc
        finally:
            if self._load_task is asyncio.current_task():
                self._load_task = None

        self._module = module
        self._version = version
        self._state = EngineState.READY
        ENGINE_LOADS.labels(status="ready").inc()
        console.log(f"[green]Edge detection engine ready (version {version or 'unknown'})[/green]")


# Process-wide default engine
ENGINE = EngineLoader()


async def load_engine(engine: Optional[EngineLoader] = None) -> None:
    await (engine or ENGINE).load()


def is_engine_ready(engine: Optional[EngineLoader] = None) -> bool:
    return (engine or ENGINE).is_ready()


def get_engine_status(engine: Optional[EngineLoader] = None) -> EngineStatus:
    return (engine or ENGINE).get_status()


async def with_engine(fn: Callable[[Any], Any], engine: Optional[EngineLoader] = None) -> Any:
    """Load the engine if needed, then call fn(cv) and return its (awaited) result."""
    engine = engine or ENGINE
    await engine.load()
    result = fn(engine.cv)
    if inspect.isawaitable(result):
        result = await result
    return result
