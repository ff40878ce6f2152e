"""Regex scanner for Apex debug logs.

Used directly, and as the fallback when the analysis agent is unavailable.
Scanning is a pure function of the input text and the rule set.
"""

from typing import Iterator, List, Optional

from apex_monitor.core.analysis.patterns import RuleSet, ScanRule
from apex_monitor.core.analysis.types import AnalysisReport, Finding, LogLine

NO_ERRORS_MESSAGE = "No errors detected."
DEFAULT_MAX_LINE_DISPLAY = 100
ELLIPSIS = "…"


def iter_lines(text: str) -> Iterator[LogLine]:
    for index, raw in enumerate(text.split("\n")):
        yield LogLine(text=raw.rstrip("\r"), index=index)


def _truncate(line: str, max_len: int) -> str:
    if len(line) <= max_len:
        return line
    return line[:max_len] + ELLIPSIS


class PatternScanner:
    """Classify log lines against an ordered rule set.

    The first rule that matches a line wins, so a line counts once even when
    a generic and a specific signature both apply.
    """

    def __init__(self, rule_set: Optional[RuleSet] = None, max_line_display: int = DEFAULT_MAX_LINE_DISPLAY):
        self.rule_set = rule_set or RuleSet()
        self.max_line_display = max_line_display

    def _first_match(self, line: str) -> Optional[ScanRule]:
        for rule in self.rule_set.rules:
            if rule.matches(line):
                return rule
        return None

    def find(self, text: Optional[str]) -> List[Finding]:
        if not text:
            return []

        lines = list(iter_lines(text))
        findings: List[Finding] = []

        for log_line in lines:
            rule = self._first_match(log_line.text)
            if rule is None:
                continue
            i = log_line.index
            findings.append(Finding(
                line=log_line.text.strip(),
                label=rule.label,
                severity=rule.severity,
                index=i,
                before=lines[i - 1].text if i > 0 else "",
                after=lines[i + 1].text if i + 1 < len(lines) else "",
                raw=log_line.text,
            ))

        return findings

    def scan(self, text: Optional[str]) -> AnalysisReport:
        findings = self.find(text)
        if not findings:
            return AnalysisReport(summary=NO_ERRORS_MESSAGE)

        labels = list(dict.fromkeys(f.label for f in findings))
        quick_fixes = [
            fix.render() for fix in self.rule_set.quick_fixes if fix.applies_to(labels)
        ]
        return AnalysisReport(
            findings=findings,
            labels=labels,
            quick_fixes=quick_fixes,
            summary=self._render(findings, labels, quick_fixes),
        )

    def _render(self, findings: List[Finding], labels: List[str], quick_fixes: List[str]) -> str:
        parts = [f"Found {len(findings)} issue(s): {', '.join(labels)}", "", "--- Errors ---"]
        parts.extend(
            f"[{n}] {f.label}: {_truncate(f.line, self.max_line_display)}"
            for n, f in enumerate(findings, start=1)
        )
        if quick_fixes:
            parts.extend(["", "--- Quick fixes ---"])
            parts.extend(f"• {fix}" for fix in quick_fixes)
        return "\n".join(parts)


def scan(text: Optional[str], rule_set: Optional[RuleSet] = None) -> AnalysisReport:
    return PatternScanner(rule_set).scan(text)
