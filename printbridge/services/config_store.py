"""Owned holder of the bridge's printer configuration.

The configuration is an immutable model; updates swap the reference in one
synchronous step, so a print job that already took a snapshot keeps printing
with the settings it started with.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from printbridge.schemas.printer import PrinterConfigUpdate, PrinterConfiguration

logger = logging.getLogger(__name__)


class PrinterConfigStore:
    """Process-wide printer configuration with optional JSON persistence."""

    def __init__(self, path: Optional[str] = None, initial: Optional[PrinterConfiguration] = None):
        self.path = Path(path) if path else None
        self._config = initial or PrinterConfiguration()

    def snapshot(self) -> PrinterConfiguration:
        return self._config

    def update(self, changes: PrinterConfigUpdate) -> PrinterConfiguration:
        self._config = changes.apply_to(self._config)
        logger.info(f"Printer configuration updated: type={self._config.type.value} target={self._config.target}")
        if self.path:
            self.save()
        return self._config

    def load(self) -> PrinterConfiguration:
        """Read the persisted configuration, keeping defaults if it is missing or bad."""
        if not self.path or not self.path.exists():
            return self._config
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            self._config = PrinterConfiguration.model_validate(data)
            logger.info(f"Loaded printer configuration from {self.path}")
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable printer configuration {self.path}: {e}")
        return self._config

    def save(self) -> None:
        # Atomic replace: readers never see a partial file
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(self._config.to_response(), indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to persist printer configuration to {self.path}: {e}")
