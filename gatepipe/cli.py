"""
cli.py - The `gatepipe` command-line driver.

Usage:
    gatepipe '<pipeline>'
    gatepipe run --mode tool '<pipeline>'
    gatepipe resume --token <token> --approve yes|no
    gatepipe doctor
    gatepipe version
    gatepipe help [command]

Modes:
    human (default)  renderers may write to stdout; errors go to stderr
    tool             exactly one JSON envelope on stdout

Exit codes:
    0  success (including needs_approval and cancelled)
    1  runtime error
    2  parse/usage error
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Mapping, Optional, Sequence, TextIO, Tuple

from gatepipe import __version__
from gatepipe.commands.registry import CommandRegistry, create_default_registry
from gatepipe.config.runtime_config import VALID_LOG_LEVELS, get_log_level
from gatepipe.runtime.approval import RunOutcome, resume_pipeline, run_gated_pipeline
from gatepipe.runtime.envelope import ToolEnvelope
from gatepipe.runtime.errors import GatepipeError, ParseError
from gatepipe.runtime.parser import parse_pipeline
from gatepipe.runtime.pipeline import run_pipeline
from gatepipe.runtime.render import dumps_pretty
from gatepipe.runtime.tokens import PROTOCOL_VERSION, PipelineContinuation, decode_token
from gatepipe.runtime.types import RunContext, RunMode
from gatepipe.workflows.engine import run_workflow_file

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_RUNTIME_ERROR = 1
EXIT_PARSE_ERROR = 2

SUBCOMMANDS = ("run", "resume", "doctor", "version", "help")
DOCTOR_PIPELINE = "exec --json --shell 'echo [1]'"
YES_DECISIONS = ("yes", "y")
NO_DECISIONS = ("no", "n")

HELP_TEXT = (
    "gatepipe - typed pipelines with resumable approval gates\n\n"
    "Usage:\n"
    "  gatepipe '<pipeline>'\n"
    "  gatepipe run --mode tool '<pipeline>'\n"
    "  gatepipe resume --token <token> --approve yes|no\n"
    "  gatepipe doctor\n"
    "  gatepipe version\n"
    "  gatepipe help <command>\n\n"
    "Modes:\n"
    "  - human (default): renderers can write to stdout\n"
    "  - tool: prints a single JSON envelope for easy integration\n\n"
    "Examples:\n"
    "  gatepipe 'exec --json \"echo [1,2,3]\" | json'\n"
    "  gatepipe run --mode tool 'exec --json \"echo [1]\" | approve --prompt \"ok?\"'\n"
)


class Cli:
    """One CLI invocation bound to its stdio and environment."""

    def __init__(
        self,
        stdin: TextIO,
        stdout: TextIO,
        stderr: TextIO,
        env: Mapping[str, str],
        registry: Optional[CommandRegistry] = None,
    ):
        self.stdin = stdin
        self.stdout = stdout
        self.stderr = stderr
        self.env = dict(env)
        self.registry = registry or create_default_registry()

    def context(self, mode: RunMode) -> RunContext:
        return RunContext(
            registry=self.registry,
            env=dict(self.env),
            stdin=self.stdin,
            stdout=self.stdout,
            stderr=self.stderr,
            mode=mode,
        )

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def write_envelope(self, envelope: ToolEnvelope) -> None:
        self.stdout.write(envelope.to_json())
        self.stdout.write("\n")

    def report_error(self, error: BaseException, mode: RunMode) -> int:
        """Report a failure in the mode's format and return the exit code."""
        is_parse = isinstance(error, ParseError)
        code = EXIT_PARSE_ERROR if is_parse else EXIT_RUNTIME_ERROR
        if mode == "tool":
            self.write_envelope(ToolEnvelope.from_error(error))
        else:
            message = error.message if isinstance(error, GatepipeError) else str(error)
            self.stderr.write(f"{'Parse error' if is_parse else 'Error'}: {message}\n")
        return code

    # -------------------------------------------------------------------------
    # Subcommands
    # -------------------------------------------------------------------------

    def run(self, pipeline_text: str, mode: RunMode) -> int:
        try:
            stages = parse_pipeline(pipeline_text)
        except ParseError as e:
            return self.report_error(e, mode)

        ctx = self.context(mode)
        try:
            if mode == "tool":
                outcome = run_gated_pipeline(stages, ctx)
                self.write_envelope(ToolEnvelope.from_outcome(outcome))
                return EXIT_OK

            result = run_pipeline(stages, ctx)
        except (GatepipeError, OSError, ValueError) as e:
            logger.debug("Pipeline failed", exc_info=True)
            return self.report_error(e, mode)

        if not result.rendered:
            self.stdout.write(dumps_pretty(result.items))
            self.stdout.write("\n")
        return EXIT_OK

    def resume(self, token: Optional[str], decision: Optional[str]) -> int:
        """Continue a halted run. Always reports a tool envelope."""
        mode: RunMode = "tool"
        try:
            approved = parse_decision(token, decision)
            payload = decode_token(token or "")
        except GatepipeError as e:
            return self.report_error(e, mode)

        if not approved:
            logger.info("Resume declined; %s cancelled", payload.kind)
            self.write_envelope(ToolEnvelope.from_outcome(RunOutcome(status="cancelled")))
            return EXIT_OK

        ctx = self.context(mode)
        try:
            if isinstance(payload, PipelineContinuation):
                outcome = resume_pipeline(payload, ctx, approved=True)
            else:
                outcome = run_workflow_file(ctx, resume=payload, approved=True)
        except (GatepipeError, OSError, ValueError) as e:
            logger.debug("Resume failed", exc_info=True)
            return self.report_error(e, mode)

        self.write_envelope(ToolEnvelope.from_outcome(outcome))
        return EXIT_OK

    def doctor(self) -> int:
        """Check that a tool-mode pipeline runs end to end."""
        ctx = self.context("tool")
        try:
            run_pipeline(parse_pipeline(DOCTOR_PIPELINE), ctx)
        except (GatepipeError, OSError) as e:
            self.write_envelope(ToolEnvelope.from_error(e, error_type="doctor_error"))
            return EXIT_RUNTIME_ERROR

        report = {"toolMode": True, "protocolVersion": PROTOCOL_VERSION, "version": __version__}
        self.write_envelope(ToolEnvelope.from_outcome(RunOutcome(status="ok", output=[report])))
        return EXIT_OK

    def help(self, topic: Optional[str]) -> int:
        if not topic:
            self.stdout.write(HELP_TEXT)
            self.stdout.write("\nCommands:\n  " + ", ".join(self.registry.list()) + "\n")
            return EXIT_OK
        command = self.registry.get(topic)
        if command is None:
            self.stderr.write(f"Unknown command: {topic}\n")
            return EXIT_PARSE_ERROR
        self.stdout.write(command.help())
        return EXIT_OK


def parse_decision(token: Optional[str], decision: Optional[str]) -> bool:
    """Validate resume arguments and return the decision.

    Raises:
        ParseError: If the token or a valid yes/no decision is missing.
    """
    if not token:
        raise ParseError("resume requires --token")
    if not decision:
        raise ParseError("resume requires --approve yes|no")
    value = decision.strip().lower()
    if value not in YES_DECISIONS + NO_DECISIONS:
        raise ParseError("resume --approve must be yes or no")
    return value in YES_DECISIONS


def split_mode(tokens: Sequence[str], mode: str) -> Tuple[str, List[str]]:
    """Pull `--mode X` / `--mode=X` out of the pipeline tokens."""
    rest: List[str] = []
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok == "--mode" and i + 1 < len(tokens):
            mode = tokens[i + 1]
            i += 2
            continue
        if tok.startswith("--mode="):
            mode = tok[len("--mode=") :] or "human"
            i += 1
            continue
        rest.append(tok)
        i += 1
    return mode, rest


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--log-level",
        choices=VALID_LOG_LEVELS,
        type=str.upper,
        default=None,
        help="Diagnostic log level on stderr (default: GATEPIPE_LOG_LEVEL or config)",
    )

    parser = argparse.ArgumentParser(
        prog="gatepipe",
        description=HELP_TEXT,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        parents=[common],
    )
    parser.add_argument("--version", "-v", action="store_true", help="Print version and exit")
    sub = parser.add_subparsers(dest="subcommand")

    run_p = sub.add_parser("run", parents=[common], help="Run a pipeline")
    run_p.add_argument("--mode", choices=("human", "tool"), default="human")
    run_p.add_argument("pipeline", nargs=argparse.REMAINDER, help="Pipeline text")

    resume_p = sub.add_parser("resume", parents=[common], help="Resume a halted run")
    resume_p.add_argument("--token", default=None)
    resume_p.add_argument("--approve", "--decision", dest="decision", default=None)

    sub.add_parser("doctor", parents=[common], help="Check tool-mode integration")
    sub.add_parser("version", parents=[common], help="Print version")

    help_p = sub.add_parser("help", parents=[common], help="Show help for a command")
    help_p.add_argument("topic", nargs="?", default=None)

    return parser


def configure_logging(level: Optional[str], stderr: TextIO) -> None:
    """Send diagnostics to stderr so tool-mode stdout stays one JSON document."""
    logging.basicConfig(
        level=getattr(logging, level or get_log_level()),
        stream=stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )


def main(
    argv: Optional[Sequence[str]] = None,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
    env: Optional[Mapping[str, str]] = None,
) -> int:
    """CLI entry point. Returns the process exit code."""
    args_list = list(sys.argv[1:] if argv is None else argv)
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr
    env = os.environ if env is None else env

    if not args_list:
        stdout.write(HELP_TEXT)
        return EXIT_OK

    # Anything that isn't a subcommand or a top-level flag is a pipeline;
    # a leading --mode belongs to `run`.
    first = args_list[0]
    leading_mode = first == "--mode" or first.startswith("--mode=")
    if leading_mode or (first not in SUBCOMMANDS and not first.startswith("-")):
        args_list = ["run"] + args_list

    args = build_parser().parse_args(args_list)
    configure_logging(args.log_level, stderr)

    cli = Cli(stdin=stdin, stdout=stdout, stderr=stderr, env=env)

    if args.version or args.subcommand == "version":
        stdout.write(f"{__version__}\n")
        return EXIT_OK
    if args.subcommand == "help":
        return cli.help(args.topic)
    if args.subcommand == "doctor":
        return cli.doctor()
    if args.subcommand == "resume":
        return cli.resume(args.token, args.decision)
    if args.subcommand == "run":
        mode, rest = split_mode(args.pipeline, args.mode)
        if mode not in ("human", "tool"):
            stderr.write(f"Unknown mode: {mode} (expected human or tool)\n")
            return EXIT_PARSE_ERROR
        return cli.run(" ".join(rest), mode)  # type: ignore[arg-type]

    stdout.write(HELP_TEXT)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
