"""Data types produced by the pattern scanner."""
from dataclasses import dataclass, field
from enum import Enum
from typing import List


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class LogLine:
    """One line of raw tail output and its zero-based position."""
    text: str
    index: int


@dataclass
class Finding:
    """A single rule match, with one line of context on either side.

    ``line`` is trimmed for display; ``raw`` keeps the text as streamed and
    is what ``context`` renders.
    """
    line: str
    label: str
    severity: Severity
    index: int
    before: str = ""
    after: str = ""
    raw: str = ""

    @property
    def context(self) -> str:
        return f"{self.before}\n>>> {self.raw or self.line} <<<\n{self.after}"

    def to_dict(self) -> dict:
        return {
            "line": self.line,
            "type": self.label,
            "severity": self.severity.value,
            "index": self.index,
            "context": self.context,
        }


@dataclass
class AnalysisReport:
    """Findings of one scan plus the rendered human-readable summary."""
    findings: List[Finding] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)
    quick_fixes: List[str] = field(default_factory=list)
    summary: str = ""

    @property
    def count(self) -> int:
        return len(self.findings)

    @property
    def has_errors(self) -> bool:
        return any(f.severity is Severity.ERROR for f in self.findings)
