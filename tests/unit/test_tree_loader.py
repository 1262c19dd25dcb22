"""Unit tests for tree_loader module."""
from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from exceptions import TreeLoadError, TreeValidationError
from execution_tree import ExecutionResult, NodeType
from tree_loader import (
    load_tree_file,
    load_tree_files,
    parse_tree,
    tree_to_dict,
    validate_tree,
)


class TestParseTree:
    """Tests for parse_tree."""

    def test_builds_nodes(self, sample_tree_dict):
        [root] = parse_tree(sample_tree_dict)

        assert root.node_type is NodeType.ROOT
        assert root.status is ExecutionResult.FAILED
        assert root.node_count() == 4

        feature = root.children[0]
        assert feature.parent is root
        assert feature.tags == {"payments", "smoke"}
        assert feature.result.running_duration_ms == 2500

    def test_status_is_case_insensitive(self, sample_tree_dict):
        [root] = parse_tree(sample_tree_dict)
        assert root.find(3).status is ExecutionResult.PASSED

    def test_failure_detail(self, sample_tree_dict):
        [root] = parse_tree(sample_tree_dict)
        thrown = root.find(4).result.thrown

        assert thrown.message == "voucher rejected"
        assert thrown.exception_type == "AssertionError"
        assert thrown.stack_frames == ["checkout_steps.py:42 in pay"]

    def test_accepts_list_and_single_node(self):
        node = {"id": 1, "type": "root"}
        assert len(parse_tree([node, {"id": 2, "type": "root"}])) == 2
        assert parse_tree(node)[0].id == 1

    def test_defaults(self):
        [node] = parse_tree({"id": "7"})
        assert node.id == 7
        assert node.node_type is NodeType.STEP
        assert node.status is ExecutionResult.NOT_RUN
        assert node.tags == set()

    def test_duplicate_id(self):
        data = {"id": 1, "type": "root", "children": [{"id": 1, "type": "feature"}]}
        with pytest.raises(TreeValidationError, match="Duplicate node id"):
            parse_tree(data)

    def test_unknown_status(self):
        with pytest.raises(TreeValidationError) as exc_info:
            parse_tree({"id": 1, "result": "SKIPPED"})
        assert exc_info.value.field == "status"
        assert exc_info.value.node_id == 1

    def test_unknown_type(self):
        with pytest.raises(TreeValidationError):
            parse_tree({"id": 1, "type": "chapter"})

    def test_non_integer_id(self):
        with pytest.raises(TreeValidationError, match="integer"):
            parse_tree({"id": "abc"})

    def test_children_must_be_list(self):
        with pytest.raises(TreeValidationError):
            parse_tree({"id": 1, "children": {"id": 2}})

    def test_bad_tags(self):
        with pytest.raises(TreeLoadError):
            parse_tree({"id": 1, "tags": 5})


class TestLoadTreeFile:
    """Tests for loading tree files."""

    def test_json_file(self, temp_dir: Path, sample_tree_dict):
        path = temp_dir / "run.json"
        path.write_text(json.dumps(sample_tree_dict))

        [root] = load_tree_file(path)
        assert root.description == "Serialized run"

    def test_yaml_file(self, temp_dir: Path, sample_tree_dict):
        path = temp_dir / "run.yaml"
        path.write_text(yaml.safe_dump(sample_tree_dict))

        [root] = load_tree_file(path)
        assert root.find(2).feature == "Feature: Checkout"

    def test_invalid_json(self, temp_dir: Path):
        path = temp_dir / "broken.json"
        path.write_text("{")

        with pytest.raises(TreeLoadError) as exc_info:
            load_tree_file(path)
        assert exc_info.value.file_path == str(path)

    def test_missing_file(self, temp_dir: Path):
        with pytest.raises(TreeLoadError):
            load_tree_file(temp_dir / "absent.json")

    def test_ids_unique_across_files(self, temp_dir: Path):
        first = temp_dir / "a.json"
        second = temp_dir / "b.json"
        first.write_text(json.dumps({"id": 1, "type": "root"}))
        second.write_text(json.dumps({"id": 1, "type": "root"}))

        with pytest.raises(TreeValidationError, match="b.json"):
            load_tree_files([first, second])

    def test_multiple_files(self, temp_dir: Path):
        first = temp_dir / "a.json"
        second = temp_dir / "b.yml"
        first.write_text(json.dumps({"id": 1, "type": "root"}))
        second.write_text("id: 2\ntype: root\n")

        assert [root.id for root in load_tree_files([first, second])] == [1, 2]


class TestTreeToDict:
    """Tests for tree_to_dict."""

    def test_reloads_to_same_structure(self, simple_tree):
        data = tree_to_dict(simple_tree)
        [reloaded] = parse_tree(data)

        assert [n.id for n in reloaded.iter_nodes()] == [1, 2, 3, 4]
        failed = reloaded.find(4)
        assert failed.result.thrown.stack_frames == simple_tree.find(4).result.thrown.stack_frames
        assert reloaded.find(2).tags == {"smoke"}

    def test_omits_empty_fields(self, outline_tree):
        data = tree_to_dict(outline_tree.find(14))
        assert data == {"id": 14, "type": "outline_row", "row_number": 2}

    def test_outline_flag(self, outline_tree):
        assert tree_to_dict(outline_tree.find(12))["outline"] is True


class TestValidateTree:
    """Tests for validate_tree."""

    def test_valid(self, sample_tree_dict):
        assert validate_tree(sample_tree_dict) == []

    def test_reports_all_problems(self):
        data = {
            "roots": [
                {
                    "type": "root",
                    "children": [
                        {"id": 2, "type": "chapter"},
                        {"id": 2, "result": {"status": "SKIPPED"}},
                        "not a node",
                    ],
                }
            ]
        }
        errors = validate_tree(data)

        assert "roots[0]: missing required field: id" in errors
        assert "roots[0].children[0]: unknown type 'chapter'" in errors
        assert "roots[0].children[1]: duplicate id 2" in errors
        assert "roots[0].children[1]: unknown status 'SKIPPED'" in errors
        assert "roots[0].children[2]: node must be a mapping" in errors

    def test_roots_must_be_list(self):
        assert validate_tree({"roots": "x"}) == ["'roots' must be a list"]
