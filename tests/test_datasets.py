import json
from datetime import date

import pytest

import storage
import datasets


CSV_TEXT = "id,question,answer\n1,How to connect,Unlock phone\n\n2,\"List, mode?\",Settings\n"


@pytest.fixture
def dataset():
    headers, rows = datasets.parse_csv(CSV_TEXT)
    return datasets.create_dataset("issues - 1/5/2024", headers, rows)


class TestParsing:

    def test_parse_csv(self):
        headers, rows = datasets.parse_csv(CSV_TEXT)

        assert headers == ["id", "question", "answer"]
        assert rows == [["1", "How to connect", "Unlock phone"], ["2", "List, mode?", "Settings"]]

    def test_parse_empty(self):
        assert datasets.parse_csv("") == ([], [])

    def test_reason_column(self):
        assert datasets.find_reason_column(["a"]) == (["a", "reason"], 1)
        assert datasets.find_reason_column(["reason", "reason_1"]) == (["reason", "reason_1", "reason_2"], 2)

    def test_reason_column_past_the_named_ones(self):
        taken = datasets.REASON_COLUMN_NAMES + ["reason_6"]
        headers, index = datasets.find_reason_column(taken)
        assert headers[index] == "reason_7"

    def test_name_from_file(self):
        assert datasets.dataset_name_from_file("issues.csv", date(2024, 1, 5)) == "issues - 1/5/2024"

    def test_create_dataset(self, dataset):
        assert dataset["headers"] == ["id", "question", "answer", "reason"]
        assert dataset["reasonColumnIndex"] == 3
        assert all(len(row) == 4 and row[3] == "" for row in dataset["rows"])
        assert dataset["annotations"] == {} and dataset["customFields"] == {}
        assert dataset["createdAt"] == dataset["updatedAt"]


class TestMigration:

    def test_old_dataset_gets_reason_column(self):
        old = {"id": "x", "headers": ["a", "b"], "rows": [["1", "2"]]}

        assert datasets.migrate_dataset(old) is True
        assert old["headers"] == ["a", "b", "reason"]
        assert old["rows"] == [["1", "2", ""]]
        assert old["customFields"] == {}

    def test_current_dataset_unchanged(self, dataset):
        assert datasets.migrate_dataset(dataset) is False


class TestEditing:

    def test_annotation_mirrors_reason_column(self, dataset):
        datasets.set_annotation(dataset, 1, "duplicate of #276")

        assert dataset["annotations"] == {"1": "duplicate of #276"}
        assert dataset["rows"][1][3] == "duplicate of #276"
        assert datasets.get_annotation(dataset, 1) == "duplicate of #276"
        assert datasets.get_annotation(dataset, 0) == ""

    def test_annotation_bad_row(self, dataset):
        with pytest.raises(IndexError):
            datasets.set_annotation(dataset, 5, "x")

    def test_custom_field(self, dataset):
        datasets.add_custom_field(dataset, "category")
        datasets.update_custom_field(dataset, "category", 0, "connection")

        field = dataset["customFields"]["category"]
        assert dataset["headers"][-1] == "category"
        assert field["columnIndex"] == 4
        assert field["values"] == {"0": "connection"}
        assert dataset["rows"][0][4] == "connection"
        assert dataset["rows"][1][4] == ""

    def test_blank_custom_field_ignored(self, dataset):
        datasets.add_custom_field(dataset, "  ")
        assert len(dataset["headers"]) == 4

    def test_unknown_custom_field_ignored(self, dataset):
        datasets.update_custom_field(dataset, "nope", 0, "x")
        assert dataset["rows"][0] == ["1", "How to connect", "Unlock phone", ""]

    def test_update_cell(self, dataset):
        datasets.update_cell(dataset, 0, 2, "Unlock and replug")
        assert dataset["rows"][0][2] == "Unlock and replug"
        with pytest.raises(IndexError):
            datasets.update_cell(dataset, 0, 9, "x")

    def test_json_field(self, dataset):
        datasets.add_json_field(dataset, 1, "labels", {"tags": ["ui", "list"]})

        assert dataset["headers"][-1] == "labels"
        assert json.loads(dataset["rows"][1][-1]) == {"tags": ["ui", "list"]}
        assert dataset["rows"][1][-1] == '{"tags":["ui","list"]}'
        assert dataset["rows"][0][-1] == ""

        datasets.add_json_field(dataset, 0, "labels", [1])
        assert dataset["headers"].count("labels") == 1
        assert dataset["rows"][0][-1] == "[1]"


class TestFilters:

    HEADERS = ["id", "question", "answer"]
    ROWS = [["1", "Samsung issue", "Samsung issue"], ["2", "List mode", ""], ["3", "samsung S22", "Yes"]]

    def test_no_filters_match_everything(self):
        assert datasets.apply_filters(self.ROWS, self.HEADERS, []) == [0, 1, 2]

    @pytest.mark.parametrize("rule, expected", [
        ({"column": "question", "operator": "contains", "value": "SAMSUNG"}, [0, 2]),
        ({"column": "question", "operator": "not_contains", "value": "samsung"}, [1]),
        ({"column": "id", "operator": "equals", "value": "2"}, [1]),
        ({"column": "id", "operator": "not_equals", "value": "2"}, [0, 2]),
        ({"column": "question", "operator": "starts_with", "value": "list"}, [1]),
        ({"column": "question", "operator": "ends_with", "value": "s22"}, [2]),
        ({"column": "answer", "operator": "empty"}, [1]),
        ({"column": "answer", "operator": "not_empty"}, [0, 2]),
        ({"column": "question", "operator": "col_equals", "compareColumn": "answer"}, [0]),
        ({"column": "question", "operator": "col_not_equals", "compareColumn": "answer"}, [1, 2]),
        ({"column": "missing", "operator": "equals", "value": "x"}, [0, 1, 2]),
        ({"column": "question", "operator": "col_equals", "compareColumn": None}, [0, 1, 2]),
    ])
    def test_rule(self, rule, expected):
        assert datasets.apply_filters(self.ROWS, self.HEADERS, [rule]) == expected

    def test_rules_are_combined(self):
        rules = [
            {"column": "question", "operator": "contains", "value": "samsung"},
            {"column": "id", "operator": "equals", "value": "3"},
        ]
        assert datasets.apply_filters(self.ROWS, self.HEADERS, rules) == [2]


class TestExport:

    def test_export_csv(self, dataset):
        datasets.set_annotation(dataset, 0, 'said "hi"')
        lines = datasets.export_csv(dataset).split("\n")

        assert lines[0] == "id,question,answer,reason"
        assert lines[1] == '"1","How to connect","Unlock phone","said ""hi"""'
        assert lines[2] == '"2","List, mode?","Settings",""'

    def test_export_filename(self, dataset):
        assert datasets.export_filename(dataset) == "issues - 1/5/2024_annotated.csv"


class TestDatasetStore:

    @pytest.fixture(autouse=True)
    def _db(self, storage_db):
        return storage_db

    def test_add_get_delete(self, dataset):
        store = datasets.DatasetStore()
        store.add(dataset)

        assert store.get(dataset["id"]) == dataset
        assert [d["id"] for d in store.list()] == [dataset["id"]]
        assert store.delete(dataset["id"]) is True
        assert store.delete(dataset["id"]) is False
        with pytest.raises(datasets.DatasetNotFoundError):
            store.get(dataset["id"])

    def test_update_stamps_time(self, dataset, monkeypatch):
        store = datasets.DatasetStore()
        store.add(dataset)
        monkeypatch.setattr(storage, "timestamp", lambda: "2030-01-01T00:00:00.000Z")

        updated = store.update(dataset["id"], lambda d: datasets.set_annotation(d, 0, "ok"))

        assert updated["updatedAt"] == "2030-01-01T00:00:00.000Z"
        assert store.get(dataset["id"])["rows"][0][3] == "ok"

    def test_failed_update_is_not_saved(self, dataset):
        store = datasets.DatasetStore()
        store.add(dataset)

        with pytest.raises(IndexError):
            store.update(dataset["id"], lambda d: datasets.set_annotation(d, 99, "x"))
        assert store.get(dataset["id"])["annotations"] == {}

    def test_update_unknown(self):
        with pytest.raises(datasets.DatasetNotFoundError):
            datasets.DatasetStore().update("nope", lambda d: d)

    def test_old_datasets_are_migrated_once(self):
        storage.set_item(storage.DATASETS_KEY, [{"id": "old", "name": "n", "headers": ["a"], "rows": [["1"]]}])

        listed = datasets.DatasetStore().list()

        assert listed[0]["headers"] == ["a", "reason"]
        assert storage.get_item(storage.DATASETS_KEY)[0]["reasonColumnIndex"] == 1
