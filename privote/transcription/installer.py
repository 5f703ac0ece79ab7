"""
Model installer for Privote.

Downloads whisper.cpp model files into the model directory. Downloads are
streamed into a temporary file next to the final location and renamed into
place only once the body is complete, so a presence check (or a running
transcription) never sees a partial model.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional

import httpx

from privote.core.errors import ModelDownloadError
from privote.core.models import ErrorKind, InstallResult
from privote.transcription.catalog import ModelCatalog

logger = logging.getLogger(__name__)


ProgressCallback = Callable[[float, Optional[str]], None]


class ModelInstaller:
    """
    Downloads catalog models over HTTP.

    Overlapping downloads of the same model are not deduplicated here; the
    caller is expected to disable its trigger while a download runs.
    """

    CHUNK_SIZE = 1024 * 1024

    def __init__(
        self,
        catalog: ModelCatalog,
        request_timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the installer.

        Args:
            catalog: Catalog that defines known models and the model directory
            request_timeout: Timeout in seconds for connecting and for each read
            transport: Optional httpx transport (used by tests)
        """
        self.catalog = catalog
        self.request_timeout = request_timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            timeout=httpx.Timeout(self.request_timeout),
            transport=self.transport,
        )

    async def download(
        self,
        model_id: str,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> InstallResult:
        """
        Download a model unless it is already installed.

        Args:
            model_id: Catalog id or file name of the model
            progress_callback: Called with (fraction, message) while downloading

        Returns:
            InstallResult describing the outcome; never raises
        """
        descriptor = self.catalog.get(model_id)
        if descriptor is None:
            logger.error(f"Unknown model: {model_id}")
            return InstallResult(
                success=False,
                model_id=model_id,
                error_kind=ErrorKind.UNKNOWN_MODEL,
                error=f"Unknown model: {model_id}",
            )

        model_path = self.catalog.model_path(descriptor)
        if model_path.exists():
            logger.info(f"Model {descriptor.id} already present at {model_path}")
            return InstallResult(
                success=True,
                model_id=descriptor.id,
                path=model_path,
                already_present=True,
                message="Model already exists",
            )

        logger.info(f"Downloading {descriptor.size_mb} MB model from {descriptor.url}")
        try:
            await self._fetch(descriptor.url, model_path, progress_callback)
        except Exception as e:
            logger.error(f"Failed to download model {descriptor.id}: {e}")
            return InstallResult(
                success=False,
                model_id=descriptor.id,
                error_kind=ErrorKind.DOWNLOAD_FAILED,
                error=f"Failed to download model {descriptor.filename}: {e}",
            )

        logger.info(f"Model {descriptor.id} downloaded to {model_path}")
        return InstallResult(
            success=True,
            model_id=descriptor.id,
            path=model_path,
            message=f"Model {descriptor.filename} downloaded successfully",
        )

    async def _fetch(
        self,
        url: str,
        model_path: Path,
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        model_path.parent.mkdir(parents=True, exist_ok=True)

        with tempfile.NamedTemporaryFile(
            dir=model_path.parent,
            prefix=f".{model_path.name}.",
            suffix=".part",
            delete=False,
        ) as temp_file:
            temp_path = Path(temp_file.name)

        try:
            async with self._client() as client:
                async with client.stream("GET", url) as response:
                    if response.status_code >= 400:
                        raise ModelDownloadError(
                            f"HTTP {response.status_code}: {response.reason_phrase}",
                            status_code=response.status_code,
                        )

                    total_size = int(response.headers.get("content-length", 0))
                    downloaded_size = 0

                    with open(temp_path, "wb") as f:
                        async for chunk in response.aiter_bytes(chunk_size=self.CHUNK_SIZE):
                            f.write(chunk)
                            downloaded_size += len(chunk)

                            if total_size > 0:
                                progress = downloaded_size / total_size
                                logger.debug(f"Download progress: {progress:.1%}")
                                if progress_callback:
                                    progress_callback(progress, f"Downloading: {int(progress * 100)}%")

                    raw_size = response.num_bytes_downloaded

            if downloaded_size == 0:
                raise ModelDownloadError("Downloaded file is empty")
            if total_size and raw_size != total_size:
                raise ModelDownloadError(
                    f"Incomplete download: got {raw_size} of {total_size} bytes"
                )

            os.replace(temp_path, model_path)
            if progress_callback:
                progress_callback(1.0, "Download complete")
        finally:
            if temp_path.exists():
                temp_path.unlink()
