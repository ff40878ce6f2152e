"""On-demand analysis of streamed logs.

Each run first archives the current output (``StreamSession.prepare_analysis``)
so the analysis works on a staged copy. The agent CLI is tried first when
requested; any agent failure falls back to the regex scanner.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from apex_monitor.config import SCAN_MAX_LINE_DISPLAY, SCAN_RULES_FILE
from apex_monitor.core.analysis import Finding, PatternScanner, load_rule_set
from apex_monitor.core.logging import get_logger
from apex_monitor.core.stream.session import StreamSession
from apex_monitor.core.tools.agent_executor import run_agent
from apex_monitor.core.tools.agent_types import AgentResult

_log = get_logger("services.analysis")

NO_LOGS_MESSAGE = "No logs to analyze. Start audit and wait for output."

SOURCE_AGENT = "agent"
SOURCE_REGEX = "regex"
SOURCE_NONE = "none"

AgentRunner = Callable[[Path, Path], Awaitable[AgentResult]]


@dataclass
class AnalysisOutcome:
    report: str
    source: str
    findings: List[Finding] = field(default_factory=list)
    agent_error: Optional[str] = None
    log_file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "report": self.report,
            "errors": [f.to_dict() for f in self.findings],
            "source": self.source,
        }
        if self.agent_error:
            data["agentError"] = self.agent_error
        return data


def latest_log_file(directory: Path) -> Optional[Path]:
    """Newest ``*.log`` in ``directory`` by name (names embed the timestamp)."""
    if not directory.is_dir():
        return None
    logs = sorted(
        (p for p in directory.iterdir() if p.is_file() and p.name.endswith(".log")),
        key=lambda p: p.name,
        reverse=True,
    )
    return logs[0] if logs else None


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        _log.warning("Cannot read log for analysis", path=str(path), error=str(e))
        return ""


class AnalysisService:

    def __init__(
        self,
        session: StreamSession,
        scanner: Optional[PatternScanner] = None,
        agent_runner: Optional[AgentRunner] = None,
    ):
        self.session = session
        self.scanner = scanner or PatternScanner(
            load_rule_set(Path(SCAN_RULES_FILE) if SCAN_RULES_FILE else None),
            max_line_display=SCAN_MAX_LINE_DISPLAY,
        )
        self._agent_runner = agent_runner or (lambda log_dir, root: run_agent(log_dir, root))

    def _scan(self, content: str, agent_error: Optional[str] = None, log_file: Optional[str] = None) -> AnalysisOutcome:
        report = self.scanner.scan(content)
        return AnalysisOutcome(
            report=report.summary,
            source=SOURCE_REGEX,
            findings=report.findings,
            agent_error=agent_error,
            log_file=log_file,
        )

    def _stage_content(self, content: str) -> Optional[Path]:
        analysis_dir = self.session.paths.analysis_dir
        path = analysis_dir / f"apex-analysis-{int(time.time() * 1000)}.log"
        try:
            analysis_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            _log.warning("Cannot stage content for agent", path=str(path), error=str(e))
            return None
        return path

    async def analyze(self, log_content: Optional[str] = None, use_agent: bool = True) -> AnalysisOutcome:
        """Analyze explicit content, the newest staged log, or the live buffer."""
        await self.session.prepare_analysis()
        paths = self.session.paths

        latest = latest_log_file(paths.analysis_dir)
        log_file = paths.relative(latest) if latest else None

        content = log_content or (_read_text(latest) if latest else "") or self.session.snapshot().logs
        if not content or not content.strip():
            return AnalysisOutcome(report=NO_LOGS_MESSAGE, source=SOURCE_NONE)

        if not use_agent:
            return self._scan(content, log_file=log_file)

        if latest is None:
            staged = self._stage_content(content)
            log_file = paths.relative(staged) if staged else None

        try:
            result = await self._agent_runner(paths.analysis_dir, paths.project_dir)
        except Exception as e:
            _log.exception("Agent runner raised, falling back to scanner")
            result = AgentResult(success=False, output="", error=str(e))

        if result.success:
            return AnalysisOutcome(report=result.output, source=SOURCE_AGENT, log_file=log_file)

        _log.info("Agent unavailable, using regex scanner", error=(result.error or "")[:100])
        return self._scan(content, agent_error=result.error, log_file=log_file)
