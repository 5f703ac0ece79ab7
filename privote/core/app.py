"""
Pipeline controller for Privote.

This module provides TranscriptionPipeline, the single entry point the
desktop shell (recording view, file upload, settings) uses to transcribe
audio and manage whisper models. Configuration is re-read on every call so
a model change in settings takes effect on the next request.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from privote.core.config import AppConfig, load_config
from privote.core.models import (
    ErrorKind,
    InstallResult,
    ModelState,
    TranscriptionRequest,
    TranscriptionResult,
)
from privote.transcription.catalog import ModelCatalog
from privote.transcription.installer import ModelInstaller, ProgressCallback
from privote.transcription.locator import EngineLocator
from privote.transcription.whisper_wrapper import WhisperTranscriber

logger = logging.getLogger(__name__)


ConfigLoader = Callable[[], AppConfig]
LocatorFactory = Callable[[AppConfig], EngineLocator]


class TranscriptionOptions(BaseModel):
    """Per-call overrides; anything left unset comes from configuration."""

    model_config = ConfigDict(frozen=True)

    model: Optional[str] = Field(default=None, description="Model id or file name")
    language: Optional[str] = None
    threads: Optional[int] = Field(default=None, ge=1)
    timeout: Optional[float] = None
    engine_path: Optional[Path] = None


def _default_locator(config: AppConfig) -> EngineLocator:
    return EngineLocator(config.transcription.resources_dir)


class TranscriptionPipeline:
    """
    Ties the catalog, locator and transcriber together per request.

    Nothing here is cached between calls: each request builds its own
    catalog, locator and transcriber from freshly loaded configuration.
    """

    def __init__(
        self,
        config_loader: Optional[ConfigLoader] = None,
        locator_factory: Optional[LocatorFactory] = None,
        installer_transport: Any = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config_loader: Returns the current configuration (defaults to load_config)
            locator_factory: Builds an EngineLocator from configuration
            installer_transport: Optional httpx transport for model downloads
        """
        self.config_loader = config_loader or load_config
        self.locator_factory = locator_factory or _default_locator
        self.installer_transport = installer_transport

    def _catalog(self, config: AppConfig) -> ModelCatalog:
        return ModelCatalog(config.transcription.model_dir)

    async def transcribe(
        self,
        audio_path: Union[str, Path],
        options: Optional[TranscriptionOptions] = None,
    ) -> TranscriptionResult:
        """
        Transcribe an audio file with the currently configured model.

        Args:
            audio_path: Path to the audio file
            options: Per-call overrides

        Returns:
            TranscriptionResult; this method does not raise for pipeline failures
        """
        options = options or TranscriptionOptions()
        config = self.config_loader()
        settings = config.transcription

        model_id = options.model or config.whisper_model
        catalog = self._catalog(config)
        descriptor = catalog.get(model_id)
        if descriptor is None:
            logger.error(f"Configured model is not in the catalog: {model_id}")
            return TranscriptionResult.failed(
                ErrorKind.MODEL_NOT_FOUND,
                f"Unknown whisper model '{model_id}'. Choose a model in Settings.",
            )

        request = TranscriptionRequest(
            audio_path=Path(audio_path),
            model=descriptor,
            model_path=catalog.model_path(descriptor),
            language=options.language or settings.language,
            threads=options.threads or settings.threads,
            timeout=options.timeout if options.timeout is not None else settings.timeout_seconds,
        )

        logger.info(f"Transcribing audio: {request.audio_path} (model {descriptor.id})")
        transcriber = WhisperTranscriber(
            locator=self.locator_factory(config),
            engine_path=options.engine_path or settings.engine_path,
            output_limit=settings.output_limit_bytes,
            on_state=lambda state: logger.info(f"{request.audio_path.name}: {state.value}"),
        )
        result = await transcriber.transcribe(request)

        if result.success:
            logger.info(f"Transcription finished: {len(result.text)} chars")
        else:
            logger.info(f"Transcription failed: {result.error_kind.value}")
        return result

    async def transcribe_many(
        self,
        audio_paths: Iterable[Union[str, Path]],
        options: Optional[TranscriptionOptions] = None,
    ) -> List[TranscriptionResult]:
        """Transcribe several files concurrently, one engine process each."""
        return list(await asyncio.gather(*(self.transcribe(path, options) for path in audio_paths)))

    def transcribe_sync(
        self,
        audio_path: Union[str, Path],
        options: Optional[TranscriptionOptions] = None,
    ) -> TranscriptionResult:
        """Blocking wrapper around transcribe() for scripts and the CLI."""
        return asyncio.run(self.transcribe(audio_path, options))

    # Model management

    def list_models(self) -> List[ModelState]:
        return self._catalog(self.config_loader()).list_available()

    def current_model(self) -> Dict[str, Any]:
        """The configured model and whether its file is installed."""
        config = self.config_loader()
        catalog = self._catalog(config)
        descriptor = catalog.get(config.whisper_model)
        if descriptor is None:
            return {"model": config.whisper_model, "available": False}
        return {"model": descriptor.filename, "available": catalog.is_present(descriptor.id)}

    async def download_model(
        self,
        model_id: str,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> InstallResult:
        config = self.config_loader()
        installer = ModelInstaller(self._catalog(config), transport=self.installer_transport)
        return await installer.download(model_id, progress_callback)

    def engine_status(self) -> Dict[str, Any]:
        """Whether whisper.cpp and the configured model are both installed."""
        config = self.config_loader()
        catalog = self._catalog(config)
        transcriber = WhisperTranscriber(
            locator=self.locator_factory(config),
            engine_path=config.transcription.engine_path,
        )
        descriptor = catalog.get(config.whisper_model)
        if descriptor is None:
            model_path = config.transcription.model_dir / config.whisper_model
        else:
            model_path = catalog.model_path(descriptor)
        return transcriber.status(model_path)
