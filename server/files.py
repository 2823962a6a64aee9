"""
# Files.py
- This module handles the JSON files of dataset-cleaning projects.
- This deals with disk storage: copying source files into a project and reading / writing them.
"""

import os
import json
import shutil
from typing import Any, Tuple, Union

from logger import get_logger
log = get_logger(name="FILES", log_to_console=False)


def list_json_files(source_path: str) -> list[str]:
    """Names of the `.json` files (any case) directly inside `source_path`, sorted."""
    return sorted(
        f for f in os.listdir(source_path)
        if f.lower().endswith(".json") and os.path.isfile(os.path.join(source_path, f))
    )


def copy_json_files(source_path: str, output_path: str) -> Tuple[bool, Union[dict, str]]:
    """Copy every JSON file of the source directory into the output directory.
    - The output directory is created if needed.
    - A file that fails to copy is logged and left out.

    Args:
        source_path (str): Directory with the original JSON files.
        output_path (str): Directory the project edits.

    Returns:
        Tuple[bool, dict | str]: A success flag and either
            `{fileIndex, filePathMapping, copiedFiles, totalFiles}` or an error message.
    """

    if not os.path.isdir(source_path):
        log.error(f"Source directory does not exist: {source_path}")
        return False, "Source directory does not exist"

    os.makedirs(output_path, exist_ok=True)

    json_files = list_json_files(source_path)
    if not json_files:
        log.warning(f"No JSON files found in: {source_path}")
        return False, "No JSON files found in source directory"

    copied = []
    for file_name in json_files:
        try:
            shutil.copy2(os.path.join(source_path, file_name), os.path.join(output_path, file_name))
            copied.append(file_name)
        except OSError as e:
            log.error(f"Error copying {file_name}: {repr(e)}")

    mapping = {
        file_name: {
            "sourcePath": os.path.join(source_path, file_name),
            "outputPath": os.path.join(output_path, file_name),
        }
        for file_name in copied
    }

    log.info(f"Copied {len(copied)}/{len(json_files)} files from {source_path} to {output_path}")
    return True, {
        "fileIndex": copied,
        "filePathMapping": mapping,
        "copiedFiles": len(copied),
        "totalFiles": len(json_files),
    }


def resolve_file_path(output_path: str, filename: str) -> str:
    """Join `filename` onto `output_path`, refusing names that point outside of it.

    Raises:
        ValueError: If the resolved path escapes `output_path`.
    """

    base = os.path.abspath(output_path)
    file_path = os.path.abspath(os.path.join(base, filename))

    if os.path.commonpath([base, file_path]) != base or file_path == base:
        log.warning(f"Rejected file path outside of project: {filename}")
        raise ValueError(f"Invalid filename: {filename}")

    return file_path


def read_json_file(file_path: str) -> Any:
    """Read and parse a JSON file. Errors propagate to the caller."""

    with open(file_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    log.info(f"Read file: {file_path}")
    return data


def write_json_file(file_path: str, data: Any) -> Tuple[bool, str]:
    """Write `data` as two-space indented JSON, creating parent directories.

    Returns:
        Tuple[bool, str]: A success flag and the file path or an error message.
    """

    try:
        os.makedirs(os.path.dirname(file_path), exist_ok=True)
        with open(file_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        log.info(f"File saved: {file_path}")
        return True, file_path

    except (OSError, TypeError, ValueError) as e:
        log.error(f"Error writing file {file_path}: {repr(e)}")
        return False, str(e)
