"""
Module with the CSV annotation logic of the dataset tool.
- A dataset is a parsed CSV plus a `reason` column for free-text annotations and optional custom fields.
- All datasets are kept as one list under the `csv-datasets` storage key.
"""

import io
import csv
import copy
import json
import uuid
from datetime import date
from typing import Any, Callable, List, Optional

import storage
from logger import get_logger

log = get_logger(name="datasets")

REASON_COLUMN_NAMES = ["reason", "reason_1", "reason_2", "reason_3", "reason_4", "reason_5"]

FILTER_OPERATORS = [
    "equals", "not_equals", "contains", "not_contains", "starts_with",
    "ends_with", "empty", "not_empty", "col_equals", "col_not_equals",
]


class DatasetNotFoundError(KeyError):
    pass


# ------------------------------------------------------------------------------
# Parsing and creation:
# ------------------------------------------------------------------------------

def parse_csv(csv_text: str) -> tuple[list[str], list[list[str]]]:
    """Parse CSV text into `(headers, rows)`. The first row holds the headers, empty lines are skipped."""

    data = [row for row in csv.reader(io.StringIO(csv_text)) if row]
    if not data:
        return [], []

    log.info(f"Parsed CSV with {len(data[0])} columns and {len(data) - 1} rows")
    return data[0], data[1:]


def find_reason_column(headers: list[str]) -> tuple[list[str], int]:
    """Append the first free reason column name to the headers.

    Returns:
        tuple[list[str], int]: The new headers and the index of the reason column.
    """

    for name in REASON_COLUMN_NAMES:
        if name not in headers:
            updated = [*headers, name]
            return updated, len(updated) - 1

    counter = 6
    while f"reason_{counter}" in headers:
        counter += 1
    updated = [*headers, f"reason_{counter}"]
    return updated, len(updated) - 1


def dataset_name_from_file(filename: str, today: Optional[date] = None) -> str:
    """`issues.csv` uploaded on 5 Jan 2024 becomes `issues - 1/5/2024`."""
    today = today or date.today()
    return f"{filename.replace('.csv', '', 1)} - {today.month}/{today.day}/{today.year}"


def create_dataset(name: str, headers: list[str], rows: list[list[str]]) -> dict[str, Any]:
    """Build a new dataset record with an empty reason column on every row."""

    updated_headers, reason_index = find_reason_column(headers)
    now = storage.timestamp()
    return {
        "id": str(uuid.uuid4()),
        "name": name,
        "headers": updated_headers,
        "rows": [[*row, ""] for row in rows],
        "annotations": {},
        "reasonColumnIndex": reason_index,
        "customFields": {},
        "createdAt": now,
        "updatedAt": now,
    }


def migrate_dataset(dataset: dict[str, Any]) -> bool:
    """Add a reason column and empty custom fields to datasets stored before they existed.

    Returns:
        bool: True if the dataset was changed.
    """

    if dataset.get("reasonColumnIndex") is not None:
        return False

    dataset["headers"], dataset["reasonColumnIndex"] = find_reason_column(dataset.get("headers", []))
    dataset["rows"] = [[*row, ""] for row in dataset.get("rows", [])]
    dataset["customFields"] = {}
    dataset.setdefault("annotations", {})
    log.info(f"Migrated dataset '{dataset.get('id')}' with reason column {dataset['reasonColumnIndex']}")
    return True


# ------------------------------------------------------------------------------
# Editing:
# ------------------------------------------------------------------------------

def _set_cell(row: list[str], column_index: int, value: str):
    if column_index >= len(row):
        row.extend([""] * (column_index + 1 - len(row)))
    row[column_index] = value


def _check_row(dataset: dict[str, Any], row_index: int):
    if not 0 <= row_index < len(dataset["rows"]):
        raise IndexError(f"Row {row_index} is out of range")


def get_annotation(dataset: dict[str, Any], row_index: int) -> str:
    """The row's reason-column value, falling back to the stored annotation."""

    rows = dataset.get("rows", [])
    reason_index = dataset.get("reasonColumnIndex")
    if reason_index is not None and 0 <= row_index < len(rows) and reason_index < len(rows[row_index]):
        return rows[row_index][reason_index]
    return dataset.get("annotations", {}).get(str(row_index), "")


def set_annotation(dataset: dict[str, Any], row_index: int, text: str) -> dict[str, Any]:
    """Store the annotation and copy it into the reason column."""

    _check_row(dataset, row_index)
    dataset.setdefault("annotations", {})[str(row_index)] = text
    if dataset.get("reasonColumnIndex") is not None:
        _set_cell(dataset["rows"][row_index], dataset["reasonColumnIndex"], text)
    return dataset


def add_custom_field(dataset: dict[str, Any], field_name: str) -> dict[str, Any]:
    """Append an empty column tracked as a custom field. Blank names are ignored."""

    if not field_name.strip():
        return dataset

    dataset["headers"] = [*dataset["headers"], field_name]
    dataset["rows"] = [[*row, ""] for row in dataset["rows"]]
    dataset.setdefault("customFields", {})[field_name] = {
        "columnIndex": len(dataset["headers"]) - 1,
        "values": {},
    }
    return dataset


def update_custom_field(dataset: dict[str, Any], field_name: str, row_index: int, value: str) -> dict[str, Any]:
    """Set a custom-field value of one row. Unknown fields are ignored."""

    field = dataset.get("customFields", {}).get(field_name)
    if field is None:
        return dataset

    _check_row(dataset, row_index)
    field["values"][str(row_index)] = value
    _set_cell(dataset["rows"][row_index], field["columnIndex"], value)
    return dataset


def update_cell(dataset: dict[str, Any], row_index: int, column_index: int, value: str) -> dict[str, Any]:
    _check_row(dataset, row_index)
    if not 0 <= column_index < len(dataset["headers"]):
        raise IndexError(f"Column {column_index} is out of range")

    _set_cell(dataset["rows"][row_index], column_index, value)
    return dataset


def add_json_field(dataset: dict[str, Any], row_index: int, field_name: str, data: Any) -> dict[str, Any]:
    """Store `data` as compact JSON in the `field_name` column of one row.
    A missing column is appended, empty for every other row.
    """

    _check_row(dataset, row_index)
    field_data = json.dumps(data, separators=(",", ":"), ensure_ascii=False)

    if field_name not in dataset["headers"]:
        dataset["headers"] = [*dataset["headers"], field_name]
        dataset["rows"] = [[*row, ""] for row in dataset["rows"]]

    _set_cell(dataset["rows"][row_index], dataset["headers"].index(field_name), field_data)
    return dataset


# ------------------------------------------------------------------------------
# Filtering and export:
# ------------------------------------------------------------------------------

def _rule_matches(row: list[str], headers: list[str], rule: dict[str, Any]) -> bool:
    if rule.get("column") not in headers:
        return True

    column_index = headers.index(rule["column"])
    cell = (row[column_index] if column_index < len(row) else "") or ""
    cell = cell.lower()
    value = (rule.get("value") or "").lower()
    operator = rule.get("operator")

    if operator == "equals":
        return cell == value
    if operator == "not_equals":
        return cell != value
    if operator == "contains":
        return value in cell
    if operator == "not_contains":
        return value not in cell
    if operator == "starts_with":
        return cell.startswith(value)
    if operator == "ends_with":
        return cell.endswith(value)
    if operator == "empty":
        return cell.strip() == ""
    if operator == "not_empty":
        return cell.strip() != ""

    if operator in ("col_equals", "col_not_equals"):
        compare_column = rule.get("compareColumn")
        if not compare_column or compare_column not in headers:
            return True
        compare_index = headers.index(compare_column)
        compare = ((row[compare_index] if compare_index < len(row) else "") or "").lower()
        return (cell == compare) if operator == "col_equals" else (cell != compare)

    return True


def apply_filters(rows: list[list[str]], headers: list[str], filters: list[dict[str, Any]]) -> list[int]:
    """Indices of the rows matching every filter rule (case-insensitive)."""

    if not filters:
        return list(range(len(rows)))

    return [
        index for index, row in enumerate(rows)
        if all(_rule_matches(row, headers, rule) for rule in filters)
    ]


def export_csv(dataset: dict[str, Any]) -> str:
    """The header line unquoted, then every cell double-quoted with `"` doubled."""

    lines = [",".join(dataset["headers"])]
    for row in dataset["rows"]:
        lines.append(",".join('"' + (cell or "").replace('"', '""') + '"' for cell in row))
    return "\n".join(lines)


def export_filename(dataset: dict[str, Any]) -> str:
    return f"{dataset['name']}_annotated.csv"


# ------------------------------------------------------------------------------
# Persistence:
# ------------------------------------------------------------------------------

class DatasetStore:
    """CRUD over the datasets stored under the `csv-datasets` key.
    Old datasets are migrated on read and written back once.
    """

    def __init__(self, key: str = storage.DATASETS_KEY):
        self.key = key

    def list(self) -> List[dict[str, Any]]:
        datasets = storage.get_item(self.key, default=[])
        migrated = [migrate_dataset(d) for d in datasets]
        if any(migrated):
            storage.set_item(self.key, datasets)
        return datasets

    def get(self, dataset_id: str) -> dict[str, Any]:
        for dataset in self.list():
            if dataset["id"] == dataset_id:
                return dataset
        raise DatasetNotFoundError(dataset_id)

    def add(self, dataset: dict[str, Any]) -> dict[str, Any]:
        datasets = self.list()
        datasets.append(dataset)
        storage.set_item(self.key, datasets)
        log.info(f"Added dataset '{dataset['id']}' ({dataset['name']}) with {len(dataset['rows'])} rows")
        return dataset

    def update(self, dataset_id: str, change: Callable[[dict[str, Any]], Any]) -> dict[str, Any]:
        """Apply `change` to a copy of the dataset, stamp `updatedAt` and save it."""

        datasets = self.list()
        for index, dataset in enumerate(datasets):
            if dataset["id"] == dataset_id:
                updated = copy.deepcopy(dataset)
                change(updated)
                updated["updatedAt"] = storage.timestamp()
                datasets[index] = updated
                storage.set_item(self.key, datasets)
                return updated
        raise DatasetNotFoundError(dataset_id)

    def delete(self, dataset_id: str) -> bool:
        datasets = self.list()
        remaining = [d for d in datasets if d["id"] != dataset_id]
        if len(remaining) == len(datasets):
            return False

        storage.set_item(self.key, remaining)
        log.info(f"Deleted dataset '{dataset_id}'")
        return True
