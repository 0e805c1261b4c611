"""State machine driving one personalization session.

The orchestrator owns every piece of mutable flow state: the stage, the
cosmetic progress value, the current selection (through its ingestor), the
generation result and the user-facing notice.  All mutation goes through the
named transitions below.  Each run is tagged with a token; ``reset()`` bumps
it so that a remote call or export settling afterwards cannot bring back
state from the discarded run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

from ..errors import ExportFailed, GenerationFailed, RemoteGenerationFailed, TransportFailure
from ..export import ExportedArtifact, ResultExporter
from ..generation.adapter import HttpGenerationClient
from ..generation.config import GenerationConfig
from ..generation.interfaces import GenerationClientProtocol, GenerationRequest, GenerationResult
from ..ingest import ImageIngestor, ImageSelection, RawImage
from ..settings import FlowSettings
from .progress import ProgressTicker

logger = logging.getLogger(__name__)

__all__ = ["FlowSnapshot", "FlowState", "PersonalizationOrchestrator"]


class FlowState(str, Enum):
    UPLOAD = "upload"
    PROCESSING = "processing"
    RESULT = "result"


@dataclass(frozen=True)
class FlowSnapshot:
    state: FlowState
    progress: int
    selection: Optional[ImageSelection]
    result: Optional[GenerationResult]
    notice: Optional[str]
    exporting: bool = False


Listener = Callable[[FlowSnapshot], None]


def _notice_for(failure: GenerationFailed) -> str:
    if isinstance(failure, RemoteGenerationFailed):
        reason = failure.reason or "the service did not return an illustration"
        return f"We couldn't create your illustration ({reason}). Please try again."
    return "We couldn't reach the illustration service. Please try again."


class PersonalizationOrchestrator:
    """Coordinates ingestion, the remote call, progress and export."""

    def __init__(
        self,
        client: GenerationClientProtocol,
        *,
        config: Optional[GenerationConfig] = None,
        exporter: Optional[ResultExporter] = None,
        ingestor: Optional[ImageIngestor] = None,
        tick_interval: float = 0.05,
        tick_step: int = 2,
        progress_cap: int = 95,
        grace_delay: float = 0.5,
    ) -> None:
        self._client = client
        self._config = config or GenerationConfig.default()
        self._exporter = exporter
        self._ingestor = ingestor or ImageIngestor()
        self.tick_interval = float(tick_interval)
        self.tick_step = int(tick_step)
        self.progress_cap = int(progress_cap)
        self.grace_delay = max(0.0, float(grace_delay))

        self._state = FlowState.UPLOAD
        self._progress = 0
        self._result: Optional[GenerationResult] = None
        self._notice: Optional[str] = None
        self._last_export: Optional[ExportedArtifact] = None
        self._ticker: Optional[ProgressTicker] = None
        self._run_token = 0
        self._listeners: List[Listener] = []

    @classmethod
    def from_settings(
        cls,
        settings: FlowSettings,
        *,
        client: Optional[GenerationClientProtocol] = None,
        exporter: Optional[ResultExporter] = None,
    ) -> "PersonalizationOrchestrator":
        if client is None:
            client = HttpGenerationClient(settings.endpoint.url, timeout=settings.endpoint.timeout)
        if exporter is None:
            exporter = ResultExporter(
                settings.export.download_dir,
                timeout=settings.export.fetch_timeout,
            )
        progress = settings.progress
        return cls(
            client,
            config=settings.generation,
            exporter=exporter,
            tick_interval=progress.tick_interval,
            tick_step=progress.tick_step,
            progress_cap=progress.cap,
            grace_delay=progress.grace_delay,
        )

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def selection(self) -> Optional[ImageSelection]:
        return self._ingestor.current

    @property
    def result(self) -> Optional[GenerationResult]:
        return self._result

    @property
    def notice(self) -> Optional[str]:
        return self._notice

    @property
    def config(self) -> GenerationConfig:
        return self._config

    @property
    def last_export(self) -> Optional[ExportedArtifact]:
        return self._last_export

    @property
    def can_start(self) -> bool:
        return self._state is FlowState.UPLOAD and self._ingestor.ready

    @property
    def exporting(self) -> bool:
        return self._exporter is not None and self._exporter.in_progress

    def snapshot(self) -> FlowSnapshot:
        return FlowSnapshot(
            state=self._state,
            progress=self._progress,
            selection=self._ingestor.current,
            result=self._result,
            notice=self._notice,
            exporting=self.exporting,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("flow listener %r failed", listener)

    # ------------------------------------------------------------------
    # Upload stage
    # ------------------------------------------------------------------
    async def select_image(self, raw: RawImage) -> Optional[ImageSelection]:
        if self._state is not FlowState.UPLOAD:
            logger.debug("ignoring image selection while %s", self._state.value)
            return None
        selection = await self._ingestor.select(raw)
        if self._ingestor.current is selection:
            self._notice = None
            self._notify()
        return selection

    def clear_image(self) -> None:
        if self._state is not FlowState.UPLOAD:
            logger.debug("ignoring clear while %s", self._state.value)
            return
        self._ingestor.clear()
        self._notify()

    def set_parameter(self, key: str, value: Any) -> GenerationConfig:
        self._config = self._config.override(key, value)
        return self._config

    def configure(self, **overrides: Any) -> GenerationConfig:
        self._config = self._config.with_overrides(overrides)
        return self._config

    def build_request(self) -> GenerationRequest:
        selection = self._ingestor.current
        if self._state is not FlowState.UPLOAD or selection is None or not selection.ready:
            raise RuntimeError("A request needs a ready selection in the upload stage")
        return GenerationRequest(config=self._config, image_data_uri=selection.encoded_preview or "")

    # ------------------------------------------------------------------
    # Processing stage
    # ------------------------------------------------------------------
    async def start_personalization(self) -> Optional[FlowState]:
        """Run one generation and return the state it settled in.

        Returns ``None`` when the call was a no-op (wrong stage, no ready
        selection) or when the run was discarded by ``reset()``.
        """

        if not self.can_start:
            logger.debug("start ignored: state=%s ready=%s", self._state.value, self._ingestor.ready)
            return None

        request = self.build_request()
        self._run_token += 1
        token = self._run_token
        self._result = None
        self._notice = None
        self._last_export = None
        self._progress = 0
        self._state = FlowState.PROCESSING
        logger.info("run %d: processing started", token)
        self._notify()

        ticker = ProgressTicker(
            lambda value: self._on_tick(token, value),
            interval=self.tick_interval,
            step=self.tick_step,
            cap=self.progress_cap,
        )
        self._ticker = ticker
        ticker.start()

        result: Optional[GenerationResult] = None
        failure: Optional[GenerationFailed] = None
        try:
            result = await self._client.generate(request)
        except GenerationFailed as exc:
            failure = exc
        except (OSError, asyncio.TimeoutError) as exc:
            failure = TransportFailure(f"Transport error: {exc}")
        except Exception as exc:
            logger.exception("run %d: generation client raised unexpectedly", token)
            failure = TransportFailure(f"Unexpected client error: {exc}")
            failure.__cause__ = exc
        finally:
            await ticker.stop()
            if self._ticker is ticker:
                self._ticker = None

        if token != self._run_token:
            logger.info("run %d: settled after reset, discarding", token)
            return None

        if failure is not None:
            return self._fail(token, failure)
        return await self._succeed(token, result)

    def _on_tick(self, token: int, value: int) -> None:
        if token != self._run_token or self._state is not FlowState.PROCESSING:
            return
        if value > self._progress:
            self._progress = value
            self._notify()

    def _fail(self, token: int, failure: GenerationFailed) -> FlowState:
        logger.warning("run %d: generation failed: %s", token, failure)
        self._result = None
        self._progress = 0
        self._notice = _notice_for(failure)
        self._state = FlowState.UPLOAD
        self._notify()
        return self._state

    async def _succeed(self, token: int, result: Optional[GenerationResult]) -> Optional[FlowState]:
        self._progress = 100
        self._notify()
        if self.grace_delay:
            await asyncio.sleep(self.grace_delay)
        if token != self._run_token:
            logger.info("run %d: reset during grace delay, discarding", token)
            return None
        self._result = result
        self._state = FlowState.RESULT
        logger.info("run %d: result ready at %s", token, result.remote_image_ref if result else None)
        self._notify()
        return self._state

    # ------------------------------------------------------------------
    # Result stage
    # ------------------------------------------------------------------
    async def export_result(self) -> Optional[ExportedArtifact]:
        if self._state is not FlowState.RESULT or self._result is None:
            logger.debug("export ignored while %s", self._state.value)
            return None
        if self._exporter is None:
            logger.warning("export requested but no exporter is configured")
            return None
        if self._exporter.in_progress:
            logger.debug("export already in progress")
            return None

        token = self._run_token
        reference = self._result.remote_image_ref
        try:
            artifact = await self._exporter.export(reference)
        except ExportFailed as exc:
            if token != self._run_token:
                return None
            logger.error("export of %s failed: %s", reference, exc)
            self._notice = "We couldn't download or open your illustration."
            self._notify()
            return None

        if token != self._run_token or artifact.abandoned:
            logger.info("export of %s finished after reset, discarding", reference)
            return None
        self._last_export = artifact
        self._notify()
        return artifact

    def reset(self) -> None:
        self._run_token += 1
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
        if self._exporter is not None and self._exporter.in_progress:
            self._exporter.abandon()
        self._ingestor.clear()
        self._result = None
        self._notice = None
        self._last_export = None
        self._progress = 0
        self._state = FlowState.UPLOAD
        logger.info("flow reset")
        self._notify()
