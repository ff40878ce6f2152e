from apex_monitor.core.analysis.patterns import (
    DEFAULT_QUICK_FIXES,
    DEFAULT_RULES,
    QuickFix,
    RuleSet,
    ScanRule,
    load_rule_set,
)
from apex_monitor.core.analysis.scanner import NO_ERRORS_MESSAGE, PatternScanner, scan
from apex_monitor.core.analysis.types import AnalysisReport, Finding, LogLine, Severity

__all__ = [
    "AnalysisReport",
    "DEFAULT_QUICK_FIXES",
    "DEFAULT_RULES",
    "Finding",
    "LogLine",
    "NO_ERRORS_MESSAGE",
    "PatternScanner",
    "QuickFix",
    "RuleSet",
    "ScanRule",
    "Severity",
    "load_rule_set",
    "scan",
]
