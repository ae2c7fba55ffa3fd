"""Tests for workflow file loading, models and templating helpers."""

import json

import pytest

from gatepipe.runtime.errors import ParseError
from gatepipe.workflows.engine import output_items, parse_step_json, resolve_workflow_args
from gatepipe.workflows.loader import load_workflow_file, parse_workflow
from gatepipe.workflows.models import UNSET, WorkflowResumeState, WorkflowStepResult
from gatepipe.workflows.templating import (
    arg_to_string,
    evaluate_condition,
    merge_env,
    resolve_cwd,
    resolve_stdin,
    resolve_template,
)

YAML_WORKFLOW = """\
name: pr-review
description: Comment on a pull request after approval
args:
  repo:
    default: octocat/hello-world
  pr:
    description: Pull request number
env:
  GH_PAGER: ""
steps:
  - id: fetch
    command: gh pr view ${pr} --repo ${repo} --json title
  - id: confirm
    command: |-
      echo '{"prompt": "Post comment?"}'
    approval: required
  - id: post
    command: gh pr comment ${pr} --repo ${repo} --body-file -
    stdin: $fetch.stdout
    when: $confirm.approved
"""


# =============================================================================
# Loading
# =============================================================================


class TestLoadWorkflowFile:
    """Tests for load_workflow_file()."""

    def test_yaml(self, tmp_path):
        path = tmp_path / "review.lobster"
        path.write_text(YAML_WORKFLOW, encoding="utf-8")

        workflow = load_workflow_file(path)

        assert workflow.name == "pr-review"
        assert [s.id for s in workflow.steps] == ["fetch", "confirm", "post"]
        assert workflow.steps[1].requires_approval is True
        assert workflow.steps[2].gate == "$confirm.approved"
        assert workflow.env == {"GH_PAGER": ""}
        assert workflow.arg_defaults() == {"repo": "octocat/hello-world"}

    def test_json_by_extension(self, tmp_path):
        path = tmp_path / "flow.JSON"
        path.write_text(json.dumps({"steps": [{"id": "a", "command": "echo 1"}]}), encoding="utf-8")
        assert load_workflow_file(path).steps[0].command == "echo 1"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ParseError, match="Cannot read workflow file"):
            load_workflow_file(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("steps: [unclosed", encoding="utf-8")
        with pytest.raises(ParseError, match="Invalid workflow file"):
            load_workflow_file(path)


class TestWorkflowValidation:
    """Structural errors are ParseErrors with actionable messages."""

    @pytest.mark.parametrize(
        "data,message",
        [
            ([1, 2], "Workflow file must be a JSON/YAML object"),
            ({}, "Workflow file requires a non-empty steps array"),
            ({"steps": []}, "Workflow file requires a non-empty steps array"),
            ({"steps": "echo"}, "Workflow file requires a non-empty steps array"),
            ({"steps": ["echo hi"]}, "Workflow step must be an object"),
            ({"steps": [{"command": "echo"}]}, "Workflow step requires an id"),
            ({"steps": [{"id": 7, "command": "echo"}]}, "Workflow step requires an id"),
            ({"steps": [{"id": "a"}]}, "Workflow step a requires a command string"),
            ({"steps": [{"id": "a", "command": ""}]}, "Workflow step a requires a command string"),
            (
                {"steps": [{"id": "a", "command": "x"}, {"id": "a", "command": "y"}]},
                "Duplicate workflow step id: a",
            ),
        ],
    )
    def test_invalid_documents(self, data, message):
        with pytest.raises(ParseError) as exc_info:
            parse_workflow(data)
        assert exc_info.value.message == message

    def test_arg_definitions_must_be_objects(self):
        with pytest.raises(ParseError, match="must be an object"):
            parse_workflow({"args": {"n": 3}, "steps": [{"id": "a", "command": "x"}]})

    def test_extra_keys_allowed(self):
        workflow = parse_workflow({"version": 2, "steps": [{"id": "a", "command": "x", "note": "hi"}]})
        assert workflow.steps[0].id == "a"


class TestResolveWorkflowArgs:
    def test_provided_overrides_defaults(self):
        workflow = parse_workflow({
            "args": {"a": {"default": 1}, "b": {"default": 2}, "c": {}},
            "steps": [{"id": "s", "command": "x"}],
        })
        assert resolve_workflow_args(workflow, {"b": 5, "d": 6}) == {"a": 1, "b": 5, "d": 6}
        assert resolve_workflow_args(workflow) == {"a": 1, "b": 2}


# =============================================================================
# Records
# =============================================================================


class TestStepResults:
    """Tests for WorkflowStepResult and WorkflowResumeState."""

    def test_unset_json_is_omitted(self):
        assert WorkflowStepResult(id="a", stdout="x").to_dict() == {"id": "a", "stdout": "x"}

    def test_null_json_is_kept(self):
        result = WorkflowStepResult.from_dict("a", {"id": "a", "stdout": "null\n", "json": None})
        assert result.json is None
        assert result.to_dict()["json"] is None
        assert output_items(result) == [None]

    def test_parse_step_json(self):
        assert parse_step_json("  [1, 2]\n") == [1, 2]
        assert parse_step_json("") is UNSET
        assert parse_step_json("not json") is UNSET

    def test_output_items(self):
        assert output_items(WorkflowStepResult(id="a", stdout="[1]", json=[1, 2])) == [1, 2]
        assert output_items(WorkflowStepResult(id="a", stdout="{}", json={"k": 1})) == [{"k": 1}]
        assert output_items(WorkflowStepResult(id="a", stdout="text\n")) == ["text\n"]
        assert output_items(WorkflowStepResult(id="a", stdout="")) == []
        assert output_items(None) == []

    def test_resume_state_round_trip(self):
        state = WorkflowResumeState(
            file_path="/w.yaml",
            resume_at_index=2,
            steps={"a": WorkflowStepResult(id="a", stdout="1\n", json=1, approved=True)},
            args={"n": 1},
            approval_step_id="a",
        )
        restored = WorkflowResumeState.from_dict(state.to_dict())
        assert restored == state

    @pytest.mark.parametrize(
        "data",
        [
            None,
            {"resumeAtIndex": 1, "steps": {}, "args": {}},
            {"filePath": "/w", "resumeAtIndex": "1", "steps": {}, "args": {}},
            {"filePath": "/w", "resumeAtIndex": 1, "steps": [], "args": {}},
            {"filePath": "/w", "resumeAtIndex": 1, "steps": {}},
        ],
    )
    def test_invalid_resume_state(self, data):
        with pytest.raises(ValueError):
            WorkflowResumeState.from_dict(data)


# =============================================================================
# Templating
# =============================================================================


@pytest.fixture
def results():
    return {
        "fetch": WorkflowStepResult(id="fetch", stdout="hello\n", json=UNSET),
        "data": WorkflowStepResult(id="data", stdout='{"a": 1}', json={"a": 1}),
        "gate": WorkflowStepResult(id="gate", stdout="", approved=True),
        "skip": WorkflowStepResult(id="skip", skipped=True),
    }


class TestTemplating:
    """Tests for arg and step reference substitution."""

    @pytest.mark.parametrize(
        "value,expected",
        [("s", "s"), (True, "true"), (False, "false"), (None, "null"), (3, "3"), (2.0, "2"), (1.5, "1.5"), ([1], "[1]")],
    )
    def test_arg_to_string(self, value, expected):
        assert arg_to_string(value) == expected

    def test_args_then_step_refs(self, results):
        text = "echo ${name} $fetch.stdout $data.json $gate.approved $skip.approved ${nope} $ghost.stdout"
        assert resolve_template(text, {"name": "ada"}, results) == (
            'echo ada hello\n {"a":1} true false ${nope} $ghost.stdout'
        )

    def test_arg_values_can_introduce_step_refs(self, results):
        assert resolve_template("${ref}", {"ref": "$fetch.stdout"}, results) == "hello\n"

    def test_stdin_exact_reference(self, results):
        assert resolve_stdin("  $data.json ", {}, results) == '{"a":1}'
        assert resolve_stdin("$fetch.stdout", {}, results) == "hello\n"

    def test_stdin_unknown_exact_reference(self, results):
        with pytest.raises(ParseError, match="Unknown step reference: ghost.json"):
            resolve_stdin("$ghost.json", {}, results)

    def test_stdin_other_values(self, results):
        assert resolve_stdin(None, {}, results) is None
        assert resolve_stdin("say ${x}", {"x": "hi"}, results) == "say hi"
        assert resolve_stdin({"k": [1]}, {}, results) == '{"k": [1]}'
        assert resolve_stdin(5, {}, results) == "5"

    def test_merge_env_precedence(self, results):
        env = merge_env(
            {"A": "base", "B": "base", "C": "base"},
            {"B": "workflow", "C": "workflow"},
            {"C": "$fetch.stdout", "D": 1},
            {},
            results,
        )
        assert env == {"A": "base", "B": "workflow", "C": "hello\n"}

    def test_cwd_only_substitutes_args(self, results):
        assert resolve_cwd("/srv/${app}/$fetch.stdout", {"app": "web"}) == "/srv/web/$fetch.stdout"
        assert resolve_cwd(None, {}) is None
        assert resolve_cwd("", {}) is None


class TestEvaluateCondition:
    """Tests for evaluate_condition()."""

    @pytest.mark.parametrize(
        "condition,expected",
        [
            (None, True),
            (True, True),
            (False, False),
            ("true", True),
            (" false ", False),
            ("$gate.approved", True),
            ("$fetch.approved", False),
            ("$skip.skipped", True),
            ("$fetch.skipped", False),
            ("$ghost.approved", False),
            ("$ghost.skipped", False),
        ],
    )
    def test_supported(self, results, condition, expected):
        assert evaluate_condition(condition, results) is expected

    @pytest.mark.parametrize("condition", ["yes", "$gate.stdout", "$gate.approved && true", 1, ["x"]])
    def test_unsupported(self, results, condition):
        with pytest.raises(ParseError, match="Unsupported condition"):
            evaluate_condition(condition, results)
