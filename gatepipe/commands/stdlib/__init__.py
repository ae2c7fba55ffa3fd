"""
gatepipe.commands.stdlib - Standard pipeline command library.
"""

from .approve import ApproveCommand
from .exec import ExecCommand
from .meta import CommandsListCommand, WorkflowsListCommand, WorkflowsRunCommand
from .render import JsonCommand, TableCommand
from .state import DiffLastCommand, StateGetCommand, StateSetCommand
from .transform import HeadCommand, PickCommand, TemplateCommand, WhereCommand

__all__ = [
    "ApproveCommand",
    "CommandsListCommand",
    "DiffLastCommand",
    "ExecCommand",
    "HeadCommand",
    "JsonCommand",
    "PickCommand",
    "StateGetCommand",
    "StateSetCommand",
    "TableCommand",
    "TemplateCommand",
    "WhereCommand",
    "WorkflowsListCommand",
    "WorkflowsRunCommand",
]
