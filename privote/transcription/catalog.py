"""
Catalog of whisper.cpp models Privote knows how to install.

The catalog is a fixed, ordered list. Presence on disk is checked on every
call because models can be copied in or deleted while the app runs.
"""

import logging
from pathlib import Path
from typing import List, Optional

from privote.core.models import ModelDescriptor, ModelState

logger = logging.getLogger(__name__)


MODEL_BASE_URL = "https://huggingface.co/ggerganov/whisper.cpp/resolve/main"


def _descriptor(model_id: str, label: str, size_mb: int) -> ModelDescriptor:
    filename = f"ggml-{model_id}.bin"
    return ModelDescriptor(
        id=model_id,
        label=f"{label} ({size_mb}MB)",
        size_mb=size_mb,
        url=f"{MODEL_BASE_URL}/{filename}",
        filename=filename,
    )


MODELS: List[ModelDescriptor] = [
    _descriptor("base.en", "Base English", 141),
    _descriptor("tiny.en", "Tiny English", 74),
    _descriptor("small.en", "Small English", 244),
    _descriptor("medium.en", "Medium English", 769),
    _descriptor("large-v2", "Large v2", 1550),
]


class ModelCatalog:
    """
    Static registry of whisper models, checked against a local directory.
    """

    def __init__(self, model_dir: Path, models: Optional[List[ModelDescriptor]] = None):
        """
        Initialize the catalog.

        Args:
            model_dir: Directory where model files are stored
            models: Catalog entries (defaults to the built-in list)
        """
        self.model_dir = Path(model_dir)
        self.models = list(models) if models is not None else list(MODELS)

    def get(self, model_id: str) -> Optional[ModelDescriptor]:
        """Look up a model by id ('base.en') or file name ('ggml-base.en.bin')."""
        for descriptor in self.models:
            if model_id in (descriptor.id, descriptor.filename):
                return descriptor
        return None

    def model_path(self, descriptor: ModelDescriptor) -> Path:
        return self.model_dir / descriptor.filename

    def _local_files(self) -> List[str]:
        if not self.model_dir.is_dir():
            return []
        return [entry.name for entry in self.model_dir.iterdir() if entry.is_file()]

    def list_available(self) -> List[ModelState]:
        """Return every catalog entry annotated with whether it is on disk."""
        files = set(self._local_files())
        return [
            ModelState(descriptor=descriptor, is_present=descriptor.filename in files)
            for descriptor in self.models
        ]

    def is_present(self, model_id: str) -> bool:
        descriptor = self.get(model_id)
        if descriptor is None:
            return False
        return descriptor.filename in self._local_files()
