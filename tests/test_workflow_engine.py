"""Tests for the workflow file engine.

Steps run real subprocesses: small Python scripts invoked through the
configured shell with the current interpreter.
"""

import json
from pathlib import Path
from typing import Any, Dict, List

import pytest

from gatepipe.runtime.errors import (
    ApprovalRejectedError,
    CommandError,
    GatepipeError,
    ParseError,
    StepExecutionError,
    TokenProtocolError,
)
from gatepipe.runtime.storage import StateStore
from gatepipe.runtime.tokens import KIND_WORKFLOW, WorkflowFileToken, decode_token
from gatepipe.workflows.engine import run_workflow_file


def write_workflow(tmp_path: Path, steps: List[Dict[str, Any]], name: str = "flow.json", **extra) -> str:
    path = tmp_path / name
    path.write_text(json.dumps({"name": "test", "steps": steps, **extra}), encoding="utf-8")
    return str(path)


@pytest.fixture
def approval_workflow(tmp_path, py_command) -> str:
    """collect -> mutate -> approve_step -> finish (gated on approval)."""
    collect = py_command("collect", """
        import json
        print(json.dumps({"value": 1}))
    """)
    mutate = py_command("mutate", """
        import json, sys
        data = json.load(sys.stdin)
        print(json.dumps({"value": data["value"] + 1}))
    """)
    ask = py_command("ask", """
        import json
        print(json.dumps({"requiresApproval": {"prompt": "Finish?", "items": [{"value": 2}]}}))
    """)
    finish = py_command("finish", """
        import json, sys
        data = json.load(sys.stdin)
        print(json.dumps({"done": True, "value": data["value"]}))
    """)
    return write_workflow(tmp_path, [
        {"id": "collect", "command": collect},
        {"id": "mutate", "command": mutate, "stdin": "$collect.json"},
        {"id": "approve_step", "command": ask, "approval": "required"},
        {"id": "finish", "command": finish, "stdin": "$mutate.json", "when": "$approve_step.approved"},
    ])


# =============================================================================
# Approval round trip
# =============================================================================


class TestApprovalRoundTrip:
    """Halting at an approval step and resuming it."""

    def test_halt_then_resume(self, make_ctx, approval_workflow):
        halted = run_workflow_file(make_ctx(), file_path=approval_workflow)

        assert halted.status == "needs_approval"
        assert halted.output == []
        request = halted.requires_approval
        assert request["type"] == "approval_request"
        assert request["prompt"] == "Finish?"
        assert request["items"] == [{"value": 2}]
        assert request["resumeToken"]

        payload = decode_token(request["resumeToken"])
        assert payload.kind == KIND_WORKFLOW
        assert isinstance(payload, WorkflowFileToken)
        assert payload.state_key.startswith("workflow_resume_")

        resumed = run_workflow_file(make_ctx(), resume=payload, approved=True)
        assert resumed.status == "ok"
        assert resumed.output == [{"done": True, "value": 2}]

    def test_resume_state_is_persisted(self, make_ctx, approval_workflow, state_dir):
        halted = run_workflow_file(make_ctx(), file_path=approval_workflow, args={"x": 1})
        payload = decode_token(halted.requires_approval["resumeToken"])

        stored = StateStore(state_dir).read(payload.state_key)
        assert stored["filePath"] == approval_workflow
        assert stored["resumeAtIndex"] == 3
        assert stored["approvalStepId"] == "approve_step"
        assert stored["args"] == {"x": 1}
        assert stored["steps"]["mutate"]["json"] == {"value": 2}
        assert stored["createdAt"]

    def test_rejected_decision_skips_gated_step(self, make_ctx, approval_workflow):
        halted = run_workflow_file(make_ctx(), file_path=approval_workflow)
        payload = decode_token(halted.requires_approval["resumeToken"])

        resumed = run_workflow_file(make_ctx(), resume=payload, approved=False)
        assert resumed.status == "ok"
        assert resumed.output == []

    def test_resume_can_be_replayed(self, make_ctx, approval_workflow):
        """Resume state is never consumed, so the same token works twice."""
        halted = run_workflow_file(make_ctx(), file_path=approval_workflow)
        payload = decode_token(halted.requires_approval["resumeToken"])

        first = run_workflow_file(make_ctx(), resume=payload, approved=True)
        second = run_workflow_file(make_ctx(), resume=payload, approved=True)
        assert first.output == second.output

    def test_missing_resume_state(self, make_ctx):
        with pytest.raises(TokenProtocolError, match="Workflow resume state not found"):
            run_workflow_file(make_ctx(), resume=WorkflowFileToken(state_key="workflow_resume_gone"))

    def test_inline_resume_payload(self, make_ctx, approval_workflow):
        payload = WorkflowFileToken(
            file_path=approval_workflow,
            resume_at_index=3,
            steps={"mutate": {"id": "mutate", "stdout": "{\"value\": 5}\n", "json": {"value": 5}}},
            args={},
            approval_step_id="approve_step",
        )
        outcome = run_workflow_file(make_ctx(), resume=payload, approved=True)
        assert outcome.output == [{"done": True, "value": 5}]

    def test_interactive_yes_continues(self, make_ctx, tty_stdin, approval_workflow):
        ctx = make_ctx(mode="human", stdin=tty_stdin("yes\n"))
        outcome = run_workflow_file(ctx, file_path=approval_workflow)

        assert outcome.status == "ok"
        assert outcome.output == [{"done": True, "value": 2}]
        assert ctx.stdout.getvalue() == "Finish? [y/N] "

    def test_interactive_no_aborts(self, make_ctx, tty_stdin, approval_workflow):
        ctx = make_ctx(mode="human", stdin=tty_stdin("no\n"))
        with pytest.raises(ApprovalRejectedError):
            run_workflow_file(ctx, file_path=approval_workflow)


class TestApprovalRequestExtraction:
    """Prompt/items/preview precedence for approval steps."""

    def test_top_level_prompt(self, make_ctx, tmp_path):
        path = write_workflow(tmp_path, [{
            "id": "gate",
            "command": """echo '{"prompt": "Ship it?", "items": [1, 2], "preview": "two items"}'""",
            "approval": True,
        }])
        request = run_workflow_file(make_ctx(), file_path=path).requires_approval
        assert request["prompt"] == "Ship it?"
        assert request["items"] == [1, 2]
        assert request["preview"] == "two items"

    def test_fallback_prompt_previews_stdout(self, make_ctx, tmp_path):
        path = write_workflow(tmp_path, [
            {"id": "gate", "command": "echo '  plan: delete 3 files  '", "approval": "REQUIRED"},
        ])
        request = run_workflow_file(make_ctx(), file_path=path).requires_approval
        assert request["prompt"] == "Approve gate?"
        assert request["items"] == []
        assert request["preview"] == "plan: delete 3 files"

    def test_fallback_preview_is_truncated(self, make_ctx, tmp_path, py_command):
        long = py_command("long", """
            print("   " + "x" * 2000 + "y" * 3000 + "   ")
        """)
        path = write_workflow(tmp_path, [{"id": "gate", "command": long, "approval": True}])
        request = run_workflow_file(make_ctx(), file_path=path).requires_approval
        assert request["preview"] == "x" * 2000

    def test_nested_request_wins_over_top_level(self, make_ctx, tmp_path, py_command):
        both = py_command("both", """
            import json
            print(json.dumps({
                "prompt": "outer", "items": [1], "preview": "outer preview",
                "requiresApproval": {"prompt": "inner", "items": [2], "preview": "inner preview"},
            }))
        """)
        path = write_workflow(tmp_path, [{"id": "gate", "command": both, "approval": True}])
        request = run_workflow_file(make_ctx(), file_path=path).requires_approval
        assert request["prompt"] == "inner"
        assert request["items"] == [2]
        assert request["preview"] == "inner preview"

    def test_non_approval_string_is_ignored(self, make_ctx, tmp_path):
        path = write_workflow(tmp_path, [{"id": "a", "command": "echo 7", "approval": "maybe"}])
        outcome = run_workflow_file(make_ctx(), file_path=path)
        assert outcome.status == "ok"
        assert outcome.output == [7]


# =============================================================================
# Step execution
# =============================================================================


class TestStepExecution:
    """Templating, conditions, env, cwd and failures."""

    def test_args_defaults_and_overrides(self, make_ctx, tmp_path):
        path = write_workflow(
            tmp_path,
            [{"id": "greet", "command": "printf '%s %s' ${greeting} ${name}"}],
            args={"greeting": {"default": "hello"}, "name": {"default": "world"}},
        )
        assert run_workflow_file(make_ctx(), file_path=path).output == ["hello world"]
        assert run_workflow_file(make_ctx(), file_path=path, args={"name": "ada"}).output == ["hello ada"]

    def test_undefined_arg_left_literal(self, make_ctx, tmp_path):
        path = write_workflow(tmp_path, [{"id": "a", "command": "printf '%s' '${missing}'"}])
        assert run_workflow_file(make_ctx(), file_path=path).output == ["${missing}"]

    def test_step_stdout_reference(self, make_ctx, tmp_path):
        path = write_workflow(tmp_path, [
            {"id": "a", "command": "printf first"},
            {"id": "b", "command": "printf '%s-second' '$a.stdout'"},
        ])
        assert run_workflow_file(make_ctx(), file_path=path).output == ["first-second"]

    def test_non_string_stdin_is_json(self, make_ctx, tmp_path, py_command):
        echo = py_command("echo_stdin", """
            import sys
            sys.stdout.write(sys.stdin.read())
        """)
        path = write_workflow(tmp_path, [{"id": "a", "command": echo, "stdin": {"k": [1, 2]}}])
        assert run_workflow_file(make_ctx(), file_path=path).output == [{"k": [1, 2]}]

    def test_unknown_exact_stdin_reference_fails(self, make_ctx, tmp_path):
        path = write_workflow(tmp_path, [{"id": "a", "command": "cat", "stdin": "$ghost.stdout"}])
        with pytest.raises(ParseError, match="Unknown step reference: ghost.stdout"):
            run_workflow_file(make_ctx(), file_path=path)

    def test_false_condition_skips_step(self, make_ctx, tmp_path):
        path = write_workflow(tmp_path, [
            {"id": "a", "command": "echo '[1, 2]'"},
            {"id": "b", "command": "echo never", "when": False},
            {"id": "c", "command": "echo also-never", "condition": "$b.approved"},
        ])
        outcome = run_workflow_file(make_ctx(), file_path=path)
        assert outcome.output == [1, 2]

    def test_skipped_condition(self, make_ctx, tmp_path):
        path = write_workflow(tmp_path, [
            {"id": "a", "command": "echo no", "when": "false"},
            {"id": "b", "command": "echo '\"fallback\"'", "when": "$a.skipped"},
        ])
        assert run_workflow_file(make_ctx(), file_path=path).output == ["fallback"]

    def test_unsupported_condition_fails(self, make_ctx, tmp_path):
        path = write_workflow(tmp_path, [{"id": "a", "command": "echo 1", "when": "$a.stdout == 1"}])
        with pytest.raises(ParseError, match="Unsupported condition"):
            run_workflow_file(make_ctx(), file_path=path)

    def test_env_layers(self, make_ctx, tmp_path):
        path = write_workflow(
            tmp_path,
            [
                {"id": "a", "command": "printf ada"},
                {
                    "id": "b",
                    "command": "printf '%s %s' \"$GREETING\" \"$WHO\"",
                    "env": {"WHO": "$a.stdout", "IGNORED": 3},
                },
            ],
            env={"GREETING": "hi ${tone}", "WHO": "nobody"},
            args={"tone": {"default": "there"}},
        )
        assert run_workflow_file(make_ctx(), file_path=path).output == ["hi there ada"]

    def test_cwd_uses_args(self, make_ctx, tmp_path):
        (tmp_path / "work").mkdir()
        path = write_workflow(
            tmp_path,
            [{"id": "where", "command": "pwd"}],
            cwd=str(tmp_path) + "/${dir}",
            args={"dir": {"default": "work"}},
        )
        output = run_workflow_file(make_ctx(), file_path=path).output
        assert output[0].strip().endswith("/work")

    def test_missing_cwd_is_reported(self, make_ctx, tmp_path):
        missing = tmp_path / "nope"
        path = write_workflow(tmp_path, [{"id": "a", "command": "pwd", "cwd": str(missing)}])
        with pytest.raises(CommandError, match="working directory not found") as exc_info:
            run_workflow_file(make_ctx(), file_path=path)
        assert "PATH" not in exc_info.value.message

    def test_non_zero_exit_raises(self, make_ctx, tmp_path):
        path = write_workflow(tmp_path, [
            {"id": "ok", "command": "echo fine"},
            {"id": "boom", "command": "echo 'disk full' >&2; exit 3"},
            {"id": "after", "command": "echo unreachable"},
        ])
        with pytest.raises(StepExecutionError) as exc_info:
            run_workflow_file(make_ctx(), file_path=path)

        error = exc_info.value
        assert error.exit_code == 3
        assert error.step_id == "boom"
        assert "disk full" in error.message
        assert "exit 3" in error.message
        assert error.to_dict()["exitCode"] == 3

    def test_empty_stdout_gives_no_output(self, make_ctx, tmp_path):
        path = write_workflow(tmp_path, [{"id": "a", "command": "true"}])
        assert run_workflow_file(make_ctx(), file_path=path).output == []

    def test_runs_are_idempotent(self, make_ctx, tmp_path, py_command):
        double = py_command("double", """
            import json, sys
            print(json.dumps([n * 2 for n in json.load(sys.stdin)]))
        """)
        path = write_workflow(tmp_path, [
            {"id": "nums", "command": "echo '[1, 2, 3]'"},
            {"id": "double", "command": double, "stdin": "$nums.json"},
        ])
        first = run_workflow_file(make_ctx(), file_path=path)
        second = run_workflow_file(make_ctx(), file_path=path)
        assert first.output == second.output == [2, 4, 6]

    def test_file_path_required(self, make_ctx):
        with pytest.raises(GatepipeError, match="Workflow file path required"):
            run_workflow_file(make_ctx())
