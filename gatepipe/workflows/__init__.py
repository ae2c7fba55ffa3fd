"""
gatepipe.workflows - Workflow files and built-in named workflows.

Usage:
    from gatepipe.workflows import run_workflow_file, load_workflow_file, list_workflows
"""

from .engine import resolve_workflow_args, run_workflow_file
from .loader import load_workflow_file, parse_workflow
from .models import WorkflowFile, WorkflowResumeState, WorkflowStep, WorkflowStepResult
from .registry import BUILTIN_WORKFLOWS, get_workflow, list_workflows

__all__ = [
    "BUILTIN_WORKFLOWS",
    "WorkflowFile",
    "WorkflowResumeState",
    "WorkflowStep",
    "WorkflowStepResult",
    "get_workflow",
    "list_workflows",
    "load_workflow_file",
    "parse_workflow",
    "resolve_workflow_args",
    "run_workflow_file",
]
