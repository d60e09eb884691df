"""Project Service - save and load chat + explorer state as JSON."""

import json
import logging
import re

from pydantic import ValidationError

from forge_server.models import ProjectState

logger = logging.getLogger(__name__)


class ProjectFormatError(ValueError):
    """Saved project text is not valid JSON or not a project."""


def new_project() -> ProjectState:
    return ProjectState()


def dump_project(state: ProjectState) -> str:
    """Serialize a project to pretty-printed JSON with camelCase keys."""
    return json.dumps(
        state.model_dump(by_alias=True, exclude_none=True),
        indent=2,
        ensure_ascii=False,
    )


def load_project(text: str) -> ProjectState:
    """Parse saved project JSON. Raises ProjectFormatError on bad input."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProjectFormatError(f"Project file is not valid JSON: {e}") from e

    try:
        state = ProjectState.model_validate(data)
    except ValidationError as e:
        raise ProjectFormatError(f"Project file has an invalid layout: {e}") from e

    logger.info(
        f"Loaded project '{state.project_name}' "
        f"({len(state.history)} messages, {state.explorer_root.node_count()} nodes)"
    )
    return state


def project_filename(project_name: str) -> str:
    stem = re.sub(r'[\\/:*?"<>|\x00-\x1f]', "_", project_name).strip() or "project"
    return f"{stem}_save.json"
