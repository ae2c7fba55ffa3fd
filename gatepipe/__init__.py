# gatepipe package
# Typed pipelines of shell-backed commands with resumable human approval gates.

__version__ = "0.1.0"
