"""
Command-line interface for the rebase todo verifier.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from .dependency_extractor import ExtractionSettings
from .models import DepreeError, MalformedTodoLine
from .rebase_verifier import RebaseVerifier
from .reporter import DiagnosticReporter
from .version import build_revision
from . import __version__ as PACKAGE_VERSION


# stdout carries diagnostics only; everything else goes to stderr.
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)


def _print_version(ctx, param, value):
    """Eager option callback to print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    click.echo(f"depree {PACKAGE_VERSION}")
    ctx.exit()


class SafeConsoleFilter(logging.Filter):
    """Sanitize record messages for console by replacing unencodable characters.

    Commit subjects end up in log messages and may not be representable in the
    terminal's encoding.
    """

    def __init__(self, encoding: Optional[str] = None):
        super().__init__()
        self.encoding = encoding or getattr(sys.stderr, "encoding", None) or "utf-8"

    def filter(self, record: logging.LogRecord) -> bool:  # always keep the record
        try:
            message = record.getMessage()
        except Exception:
            return True
        try:
            message.encode(self.encoding, errors="strict")
        except UnicodeEncodeError:
            record.msg = message.encode(self.encoding, errors="replace").decode(self.encoding, errors="replace")
            record.args = ()
        return True


def setup_logging(
    verbose: bool = False, console_level: Optional[str] = None, log_file: Optional[Path] = None
) -> None:
    """Configure the root logger.

    - Console logging (stderr, rich) only with --verbose or --log-level
    - Rotating file log only when a log file is given
    - Otherwise records are discarded
    """
    root = logging.getLogger()
    # Clear existing handlers to avoid duplication in tests / repeated invocations
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_path), maxBytes=1_000_000, backupCount=3, encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(file_handler)

    if verbose or console_level:
        level_map = {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warning": logging.WARNING,
            "error": logging.ERROR,
        }
        ch_level = level_map.get((console_level or "info").lower(), logging.INFO)
        console_handler = RichHandler(console=err_console, rich_tracebacks=True, show_path=False)
        console_handler.setLevel(ch_level)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        console_handler.addFilter(SafeConsoleFilter())
        root.addHandler(console_handler)

    if not root.handlers:
        root.addHandler(logging.NullHandler())


@click.group()
@click.option(
    "--version",
    "-V",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show package version and exit.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging on stderr (INFO)")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Console log level. By default, console logging is disabled.",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="DEPREE_LOG",
    default=None,
    help="Also append logs to this file (rotated).",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, log_level: Optional[str], log_file: Optional[Path]) -> None:
    """Depree - verify git interactive rebase scripts against commit dependencies."""
    setup_logging(verbose, console_level=log_level, log_file=log_file)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["console_level"] = log_level
    logger.debug(f"CLI init: cwd={Path.cwd()} log_file={log_file}")


@cli.command("verify-rebase-interactive")
@click.argument("script_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--repo-path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Repository to resolve commits in (defaults to the script's repository)",
)
@click.option("--jobs", "-j", type=click.IntRange(min=1), default=1, show_default=True,
              help="Commits to analyse in parallel")
@click.option("--context-lines", type=click.IntRange(min=0), default=1, show_default=True,
              help="Lines of context around each change that count as touched")
@click.option("--content/--no-content", default=True, show_default=True,
              help="Derive dependencies from the lines each commit changes")
@click.option("--trailers/--no-trailers", default=True, show_default=True,
              help="Derive dependencies from Depends-on/Requires trailers")
@click.pass_context
def verify_rebase_interactive(
    ctx: click.Context,
    script_file: Path,
    repo_path: Optional[Path],
    jobs: int,
    context_lines: int,
    content: bool,
    trailers: bool,
) -> None:
    """
    Check SCRIPT_FILE, a git-rebase-todo, for dependency violations.

    Diagnostics are printed as path:line:column: severity: message.
    Exit status is 1 when any error is reported, 2 on fatal errors.

    Example: depree verify-rebase-interactive .git/rebase-merge/git-rebase-todo
    """
    settings = ExtractionSettings(
        context_lines=context_lines,
        use_content=content,
        use_trailers=trailers,
        jobs=jobs,
    )
    reporter = DiagnosticReporter(str(script_file))
    verifier: Optional[RebaseVerifier] = None
    try:
        verifier = RebaseVerifier(script_file, repo_path, settings)
        result = verifier.verify()
    except MalformedTodoLine as e:
        reporter.report_malformed(e)
        logger.debug("Verification aborted on malformed line", exc_info=True)
        sys.exit(1)
    except DepreeError as e:
        err_console.print(f"Verification Error: {e}", style="bold red", markup=False, soft_wrap=True)
        logger.debug("Verification aborted due to DepreeError", exc_info=True)
        sys.exit(2)
    except KeyboardInterrupt:
        err_console.print("Operation cancelled by user", style="bold yellow", soft_wrap=True)
        logger.debug("Operation cancelled by user", exc_info=True)
        sys.exit(130)
    except Exception as e:
        err_console.print(f"Unexpected Error: {e}", style="bold red", markup=False, soft_wrap=True)
        if ctx.obj.get("verbose"):
            err_console.print_exception()
        logger.debug("Unexpected error during verification", exc_info=True)
        sys.exit(2)
    finally:
        if verifier is not None:
            verifier.close()

    reporter.report_all(result.violations)
    sys.exit(1 if reporter.has_errors else 0)


@cli.command()
def version() -> None:
    """Print the source revision this build was made from."""
    click.echo(build_revision())


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
