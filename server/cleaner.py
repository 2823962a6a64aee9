"""
Module with the dataset-cleaning project logic.
- A project points at a source directory of JSON files and an output directory holding the edited copies.
- Projects live under the `cleaning-projects` key, field display settings under `field-configs-{projectId}`.
"""

import os
import time
from typing import Any, List, Literal, Optional

import storage
from logger import get_logger

log = get_logger(name="cleaner")

T_FILE_STATUS = Literal["all", "completed", "incomplete"]
FIELD_TYPES = ("text", "textarea", "markdown", "multiselect", "number", "boolean")
DEFAULT_FIELD_CONFIG = {"type": "text", "isEditing": False}
MARKDOWN_KEY_HINTS = ("description", "body", "content")


class ProjectNotFoundError(KeyError):
    pass


def default_project_name(source_path: str) -> str:
    return f"Dataset Cleaning - {os.path.basename(os.path.normpath(source_path))}"


# ------------------------------------------------------------------------------
# Project records:
# ------------------------------------------------------------------------------

def create_project(source_path: str, output_path: str, file_index: List[str],
                   file_path_mapping: dict[str, dict[str, str]],
                   name: Optional[str] = None) -> dict[str, Any]:
    """Build and persist a new project record.

    Args:
        source_path (str): Directory the files were copied from.
        output_path (str): Directory with the editable copies.
        file_index (List[str]): Names of the copied files.
        file_path_mapping (dict): Per file, its `sourcePath` and `outputPath`.
        name (str, optional): Project name. Defaults to `Dataset Cleaning - <source dir name>`.

    Returns:
        dict: The stored project.
    """

    now = storage.timestamp()
    project = {
        "id": str(int(time.time() * 1000)),
        "name": name or default_project_name(source_path),
        "sourcePath": source_path,
        "outputPath": output_path,
        "fileIndex": list(file_index),
        "filePathMapping": file_path_mapping,
        "modifiedFiles": {},
        "completedFiles": {},
        "createdAt": now,
        "updatedAt": now,
    }

    projects = list_projects()
    projects.append(project)
    storage.set_item(storage.PROJECTS_KEY, projects)
    log.info(f"Created project '{project['id']}' ({project['name']}) with {len(file_index)} files")
    return project


def list_projects() -> List[dict[str, Any]]:
    return storage.get_item(storage.PROJECTS_KEY, default=[])


def get_project(project_id: str) -> dict[str, Any]:
    for project in list_projects():
        if project["id"] == project_id:
            return project
    raise ProjectNotFoundError(project_id)


def _update_project(project_id: str, change) -> dict[str, Any]:
    projects = list_projects()
    for project in projects:
        if project["id"] == project_id:
            change(project)
            project["updatedAt"] = storage.timestamp()
            storage.set_item(storage.PROJECTS_KEY, projects)
            return project
    raise ProjectNotFoundError(project_id)


def delete_project(project_id: str) -> bool:
    """Delete the project with its field configs and cached file data.

    Returns:
        bool: True if the project existed.
    """

    projects = list_projects()
    remaining = [p for p in projects if p["id"] != project_id]
    if len(remaining) == len(projects):
        log.warning(f"Project not found for deletion: {project_id}")
        return False

    storage.set_item(storage.PROJECTS_KEY, remaining)
    storage.remove_item(storage.field_configs_key(project_id))
    storage.remove_item(storage.project_files_key(project_id))
    log.info(f"Project deleted: {project_id}")
    return True


def mark_file_modified(project_id: str, filename: str) -> dict[str, Any]:
    def change(project):
        project.setdefault("modifiedFiles", {})[filename] = True

    return _update_project(project_id, change)


def toggle_file_completion(project_id: str, filename: str) -> bool:
    """Flip the completion flag of a file and return its new value."""

    def change(project):
        completed = project.setdefault("completedFiles", {})
        completed[filename] = not completed.get(filename, False)

    project = _update_project(project_id, change)
    return project["completedFiles"][filename]


# ------------------------------------------------------------------------------
# File navigation:
# ------------------------------------------------------------------------------

def filter_files(project: dict[str, Any], status: T_FILE_STATUS = "all") -> List[str]:
    """Files of the project, optionally only the completed or the incomplete ones."""

    completed = project.get("completedFiles") or {}
    files = project.get("fileIndex") or []

    if status == "completed":
        return [f for f in files if completed.get(f) is True]
    if status == "incomplete":
        return [f for f in files if completed.get(f) is not True]
    return list(files)


def find_issue_file(files: List[str], issue_number: str) -> int:
    """Index of the first file whose name mentions the issue number, or -1.
    Matches names like `123.json`, `issue_123.json`, `issue-123.json` or `123-some-title.json`.
    """

    target = issue_number.strip().lower()
    if not target:
        return -1

    patterns = (target, f"issue_{target}", f"issue-{target}", f"{target}.json")
    for index, filename in enumerate(files):
        name = filename.lower()
        if any(p in name for p in patterns):
            return index
    return -1


def _child_key(container: Any, key: str) -> Any:
    return int(key) if isinstance(container, list) else key


def set_field_value(data: dict[str, Any], path: str, value: Any) -> dict[str, Any]:
    """Set `value` at a dotted `path`, creating missing intermediate objects.

    Numeric segments index into lists, so `replies.0.body` edits the first reply.
    """

    keys = path.split(".")
    current = data
    for key in keys[:-1]:
        if isinstance(current, dict) and key not in current:
            current[key] = {}
        current = current[_child_key(current, key)]

    current[_child_key(current, keys[-1])] = value
    return data


# ------------------------------------------------------------------------------
# Field configuration:
# ------------------------------------------------------------------------------

def auto_detect_field_type(key: str, value: Any) -> str:
    key_lower = key.lower()

    if any(hint in key_lower for hint in MARKDOWN_KEY_HINTS):
        return "markdown"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, list):
        return "multiselect"
    if isinstance(value, str) and len(value) > 100:
        return "textarea"

    return "text"


def get_field_configs(project_id: str) -> dict[str, dict[str, Any]]:
    return storage.get_item(storage.field_configs_key(project_id), default={})


def get_field_config(project_id: str, path: str) -> dict[str, Any]:
    return get_field_configs(project_id).get(path) or dict(DEFAULT_FIELD_CONFIG)


def update_field_config(project_id: str, path: str, changes: dict[str, Any]) -> dict[str, Any]:
    """Merge `changes` into the field's config and store it.

    Raises:
        ValueError: If `changes` sets an unknown field type.
    """

    if "type" in changes and changes["type"] not in FIELD_TYPES:
        raise ValueError(f"Unknown field type '{changes['type']}'. Choose from {list(FIELD_TYPES)}.")

    configs = get_field_configs(project_id)
    configs[path] = {**(configs.get(path) or DEFAULT_FIELD_CONFIG), **changes}
    storage.set_item(storage.field_configs_key(project_id), configs)
    log.info(f"Updated field config '{path}' of project '{project_id}': {configs[path]}")
    return configs[path]


def toggle_field_edit(project_id: str, path: str) -> dict[str, Any]:
    current = get_field_config(project_id, path)
    return update_field_config(project_id, path, {"isEditing": not current.get("isEditing", False)})
