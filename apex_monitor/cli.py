"""
Apex Log Monitor CLI.

Usage:
  apex-monitor stream [--target-org ALIAS]   # tail debug logs into .sf-log/ until Ctrl-C
  apex-monitor scan FILE [FILE ...]          # regex scan of saved logs
  apex-monitor analyze [--no-agent]          # archive, stage and analyze current logs
                                             # (with a stream running, asks it to analyze)
  apex-monitor doctor                        # check the sf and agent CLIs
"""

import argparse
import asyncio
import os
import shutil
import signal
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from apex_monitor import config
from apex_monitor.core.analysis import PatternScanner, load_rule_set
from apex_monitor.core.errors import ConfigurationError
from apex_monitor.core.logging import get_logger, set_log_level
from apex_monitor.core.services.analysis_service import AnalysisOutcome, AnalysisService
from apex_monitor.core.stream.lock import StreamLock
from apex_monitor.core.stream.session import StreamSession
from apex_monitor.core.tools.agent_executor import check_agent_health

_log = get_logger("cli")

console = Console()

POLL_INTERVAL = 0.25
# `apex-monitor analyze` sends this to a running stream
ANALYZE_SIGNAL = getattr(signal, "SIGUSR1", None)


def _session(project: Optional[str]) -> StreamSession:
    root = config.require_project_dir(project)
    return StreamSession(config.LogPaths.from_project(root))


def _scanner(rules: Optional[str]) -> PatternScanner:
    rules_path = rules or config.SCAN_RULES_FILE
    return PatternScanner(
        load_rule_set(Path(rules_path) if rules_path else None),
        max_line_display=config.SCAN_MAX_LINE_DISPLAY,
    )


def _install_stop_handler(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Windows: fall back to KeyboardInterrupt
            pass


def _install_analyze_handler(request: asyncio.Event) -> None:
    if ANALYZE_SIGNAL is None:
        return
    try:
        asyncio.get_running_loop().add_signal_handler(ANALYZE_SIGNAL, request.set)
    except (NotImplementedError, RuntimeError):
        pass


def _print_outcome(outcome: AnalysisOutcome) -> None:
    subtitle = f"source: {outcome.source}"
    if outcome.agent_error:
        subtitle += " (agent failed)"
    console.print(Panel(Text(outcome.report), title="Analysis", subtitle=subtitle, border_style="cyan"))
    if outcome.agent_error:
        console.print(f"[dim]agent: {outcome.agent_error[:200]}[/dim]")


async def stream(
    session: StreamSession,
    target: Optional[str],
    echo: bool = True,
    use_agent: bool = True,
) -> int:
    lock = StreamLock(session.paths.lock_file)
    if not lock.acquire():
        pid = lock.holder()
        console.print(f"[red]✗[/red] Another stream is already writing to this project (pid {pid or '?'})")
        return 1

    try:
        result = await session.start(target)
        if not result.ok:
            console.print(f"[red]✗[/red] {result.error}")
            return 1

        console.print(
            Panel(
                f"org: [bold]{result.target}[/bold]\nlog: {result.log_path or '(buffer only)'}",
                title="Apex Log Monitor",
                border_style="cyan",
            )
        )

        stop = asyncio.Event()
        analyze_request = asyncio.Event()
        _install_stop_handler(stop)
        _install_analyze_handler(analyze_request)
        printed = 0
        try:
            while session.is_running and not stop.is_set():
                try:
                    await asyncio.wait_for(stop.wait(), timeout=POLL_INTERVAL)
                except asyncio.TimeoutError:
                    pass
                buffer = session.state.buffer
                if echo:
                    chunk = buffer.since(printed)
                    if chunk:
                        console.out(chunk, end="", highlight=False)
                printed = buffer.total_chars
                if analyze_request.is_set():
                    analyze_request.clear()
                    _print_outcome(await AnalysisService(session).analyze(use_agent=use_agent))
        finally:
            stopped = await session.stop()

        console.print(f"\n[dim]Stopped. Last log: {stopped.log_path or '-'}[/dim]")
        return 0
    finally:
        lock.release()


def cmd_scan(files: List[str], rules: Optional[str]) -> int:
    scanner = _scanner(rules)
    sources = files or ["-"]
    found_errors = False

    for name in sources:
        if name == "-":
            text = sys.stdin.read()
        else:
            try:
                text = Path(name).read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                console.print(f"[red]✗[/red] {name}: {e}")
                found_errors = True
                continue

        report = scanner.scan(text)
        found_errors = found_errors or report.has_errors
        style = "red" if report.has_errors else ("yellow" if report.count else "green")
        console.print(Panel(Text(report.summary), title=name, border_style=style))

    return 1 if found_errors else 0


def _request_from_stream(pid: int, log_file: Optional[str]) -> int:
    """Hand analysis to the live stream, which owns the segment being archived."""
    if log_file or not pid or ANALYZE_SIGNAL is None:
        console.print(
            f"[red]✗[/red] A stream is running in this project (pid {pid or '?'}). "
            "Analyze from that process or stop it first."
        )
        return 1
    try:
        os.kill(pid, ANALYZE_SIGNAL)
    except OSError as e:
        console.print(f"[red]✗[/red] Cannot signal stream (pid {pid}): {e}")
        return 1
    console.print(f"[green]✓[/green] Analysis requested from the running stream (pid {pid}); the report prints there.")
    return 0


async def cmd_analyze(session: StreamSession, use_agent: bool, log_file: Optional[str]) -> int:
    stream_pid = StreamLock(session.paths.lock_file).holder()
    if stream_pid is not None:
        return _request_from_stream(stream_pid, log_file)

    content = None
    if log_file:
        try:
            content = Path(log_file).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            console.print(f"[red]✗[/red] {log_file}: {e}")
            return 1

    _print_outcome(await AnalysisService(session).analyze(log_content=content, use_agent=use_agent))
    return 0


async def cmd_doctor() -> int:
    tail_cli = shutil.which(config.TAIL_COMMAND)
    if tail_cli:
        console.print(f"[green]✓[/green] {config.TAIL_COMMAND}: {tail_cli}")
    else:
        console.print(f"[red]✗[/red] {config.TAIL_COMMAND} not on PATH")

    health = await check_agent_health()
    mark = "[green]✓[/green]" if health.available else "[yellow]![/yellow]"
    line = f"{mark} {health.message}"
    if health.version:
        line += f" ({health.version})"
    console.print(line)

    project = config.find_project_dir()
    console.print(f"{'[green]✓[/green]' if project else '[yellow]![/yellow]'} project: {project or 'not found'}")
    return 0 if tail_cli else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="apex-monitor",
        description="Stream Salesforce Apex debug logs and scan them for errors",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--project", help="Salesforce project root (default: search upward for sfdx-project.json)")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")

    subparsers = parser.add_subparsers(dest="command", required=True)

    stream_parser = subparsers.add_parser("stream", help="Tail debug logs into .sf-log/ until interrupted")
    stream_parser.add_argument("--target-org", "-o", help="Org alias or username (default: sf default org)")
    stream_parser.add_argument("--quiet", "-q", action="store_true", help="Do not echo log output")
    stream_parser.add_argument(
        "--no-agent", action="store_true", help="Regex scan only when analysis is requested (SIGUSR1)"
    )

    scan_parser = subparsers.add_parser("scan", help="Scan log files for error patterns")
    scan_parser.add_argument("files", nargs="*", help="Log files ('-' or none for stdin)")
    scan_parser.add_argument("--rules", help="YAML rules file")

    analyze_parser = subparsers.add_parser("analyze", help="Archive current logs and analyze them")
    analyze_parser.add_argument("--no-agent", action="store_true", help="Skip the agent CLI, regex scan only")
    analyze_parser.add_argument("--file", help="Analyze this file's content instead of staged logs")

    subparsers.add_parser("doctor", help="Check external CLIs and project discovery")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.log_level:
        set_log_level(args.log_level)

    try:
        if args.command == "scan":
            return cmd_scan(args.files, args.rules)
        if args.command == "doctor":
            return asyncio.run(cmd_doctor())

        session = _session(args.project)
        if args.command == "stream":
            return asyncio.run(stream(session, args.target_org, echo=not args.quiet, use_agent=not args.no_agent))
        if args.command == "analyze":
            return asyncio.run(cmd_analyze(session, use_agent=not args.no_agent, log_file=args.file))
    except ConfigurationError as e:
        _log.critical("Configuration error", error=e.message)
        console.print(f"[red]✗[/red] {e.message}")
        return 2
    except KeyboardInterrupt:
        return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
