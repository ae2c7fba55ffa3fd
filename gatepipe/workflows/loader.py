"""Load and validate workflow files (JSON by extension, YAML otherwise)."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Union

import yaml
from pydantic import ValidationError

from gatepipe.runtime.errors import ParseError

from .models import WorkflowFile

logger = logging.getLogger(__name__)


def _validation_message(error: ValidationError) -> str:
    """First validation failure, without pydantic's "Value error, " prefix."""
    first = error.errors()[0]
    cause = (first.get("ctx") or {}).get("error")
    if isinstance(cause, Exception):
        return str(cause)
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


def parse_workflow(data: Any, source: str = "") -> WorkflowFile:
    """Validate an already-decoded workflow document.

    Raises:
        ParseError: If the document is not a valid workflow file.
    """
    try:
        return WorkflowFile.model_validate(data)
    except ValidationError as e:
        raise ParseError(_validation_message(e), source=source or None) from e


def load_workflow_file(file_path: Union[str, Path]) -> WorkflowFile:
    """Read a workflow file from disk.

    Raises:
        ParseError: If the file cannot be read, decoded or validated.
    """
    path = Path(file_path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ParseError(f"Cannot read workflow file {path}: {e}", source=str(path)) from e

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ParseError(f"Invalid workflow file {path}: {e}", source=str(path)) from e

    workflow = parse_workflow(data, source=str(path))
    logger.debug("Loaded workflow %s with %d step(s)", path, len(workflow.steps))
    return workflow
