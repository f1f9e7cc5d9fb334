"""Provisioning options file loading with validation.

SECURITY: File reads enforce a size limit. Input validation is performed at
the boundary.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import ProvisionOptions

logger = logging.getLogger(__name__)

MAX_OPTIONS_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max options file


class OptionsLoadError(Exception):
    """Raised when options loading or validation fails."""

    pass


def load_provision_options(path: Path) -> ProvisionOptions:
    """Load and validate provisioning options from YAML or JSON.

    Args:
        path: Options file. JSON files are read as YAML.

    Returns:
        Validated options.

    Raises:
        OptionsLoadError: If the file cannot be read or fails validation.
    """
    if not path.exists():
        raise OptionsLoadError(f"Options file not found: {path}")

    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise OptionsLoadError(f"Failed to stat options file {path}: {e}") from e

    if file_size > MAX_OPTIONS_FILE_SIZE_BYTES:
        raise OptionsLoadError(
            f"Options file exceeds maximum size of {MAX_OPTIONS_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise OptionsLoadError(f"Failed to read options file {path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise OptionsLoadError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise OptionsLoadError(f"Options file must contain a mapping: {path}")

    try:
        options = ProvisionOptions.model_validate(raw_data)
    except ValidationError as e:
        # Format Pydantic validation errors for readability
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")

        error_list = "\n".join(errors)
        raise OptionsLoadError(f"Validation failed for {path}:\n{error_list}") from e

    logger.info("Loaded options for instance '%s' from %s", options.guid, path)
    return options
