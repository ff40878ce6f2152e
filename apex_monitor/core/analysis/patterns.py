"""Scan rules and quick-fix categories.

Rules are evaluated top to bottom and the first match claims the line, so the
order of ``DEFAULT_RULES`` is part of the contract. Both tables can be
replaced from a YAML file::

    rules:
      - label: EXCEPTION_THROWN
        pattern: '\\|EXCEPTION_THROWN(?!\\w)'
        severity: error
    quick_fixes:
      - category: Apex
        markers: [EXCEPTION, FATAL]
        text: Add try/catch
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import yaml

from apex_monitor.core.analysis.types import Severity
from apex_monitor.core.logging import get_logger

_log = get_logger("analysis.patterns")


@dataclass(frozen=True)
class ScanRule:
    label: str
    pattern: re.Pattern
    severity: Severity

    @classmethod
    def build(cls, label: str, pattern: str, severity: str = "error") -> "ScanRule":
        return cls(label=label, pattern=re.compile(pattern), severity=Severity(severity))

    def matches(self, line: str) -> bool:
        return self.pattern.search(line) is not None


@dataclass(frozen=True)
class QuickFix:
    """One suggestion, shown once when any finding label contains a marker."""
    category: str
    markers: tuple[str, ...]
    text: str

    def applies_to(self, labels: Sequence[str]) -> bool:
        return any(marker in label for label in labels for marker in self.markers)

    def render(self) -> str:
        return f"{self.category}: {self.text}"


def _event(name: str) -> str:
    return rf"\|{name}(?!\w)"


DEFAULT_RULES: tuple[ScanRule, ...] = (
    ScanRule.build("EXCEPTION_THROWN", _event("EXCEPTION_THROWN"), "error"),
    ScanRule.build("FATAL_ERROR", _event("FATAL_ERROR"), "error"),
    ScanRule.build("UNHANDLED_EXCEPTION", _event("UNHANDLED_EXCEPTION"), "error"),
    ScanRule.build("VALIDATION_FAIL", _event("VALIDATION_FAIL"), "error"),
    ScanRule.build("VALIDATION_FORMULA", _event("VALIDATION_FORMULA"), "warning"),
    ScanRule.build("LIMIT_USAGE", _event("LIMIT_USAGE"), "warning"),
    ScanRule.build("LIMIT_EXCEPTION", r"System\.LimitException", "error"),
    ScanRule.build("SYSTEM_EXCEPTION", r"System\.Exception", "error"),
    ScanRule.build("NULL_POINTER", r"NullPointerException", "error"),
)

DEFAULT_QUICK_FIXES: tuple[QuickFix, ...] = (
    QuickFix("Validation", ("VALIDATION",), "Check rule formula"),
    QuickFix("Apex", ("EXCEPTION", "FATAL", "NULL_POINTER"), "Add try/catch"),
    QuickFix("Limits", ("LIMIT",), "Optimize SOQL/DML"),
)


@dataclass(frozen=True)
class RuleSet:
    rules: tuple[ScanRule, ...] = DEFAULT_RULES
    quick_fixes: tuple[QuickFix, ...] = DEFAULT_QUICK_FIXES


def _parse_rules(raw_rules: list) -> tuple[ScanRule, ...]:
    rules = []
    for entry in raw_rules:
        if not isinstance(entry, dict) or "label" not in entry or "pattern" not in entry:
            raise ValueError(f"rule needs label and pattern: {entry!r}")
        rules.append(ScanRule.build(
            str(entry["label"]),
            str(entry["pattern"]),
            str(entry.get("severity", "error")),
        ))
    return tuple(rules)


def _parse_quick_fixes(raw_fixes: list) -> tuple[QuickFix, ...]:
    fixes = []
    for entry in raw_fixes:
        if not isinstance(entry, dict) or "category" not in entry or "text" not in entry:
            raise ValueError(f"quick fix needs category and text: {entry!r}")
        markers = entry.get("markers") or [entry["category"].upper()]
        fixes.append(QuickFix(str(entry["category"]), tuple(str(m) for m in markers), str(entry["text"])))
    return tuple(fixes)


def load_rule_set(config_path: Optional[Path]) -> RuleSet:
    """Load scan rules from a YAML file.

    Args:
        config_path: Path to the YAML rules file, or None.

    Returns:
        Parsed RuleSet. Returns the defaults if the file is missing or invalid;
        a file with only ``rules`` keeps the default quick fixes.
    """
    if config_path is None or not str(config_path):
        return RuleSet()

    config_path = Path(config_path)
    if not config_path.exists():
        _log.warning("Scan rules file not found, using defaults", path=str(config_path))
        return RuleSet()

    try:
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except (yaml.YAMLError, OSError) as e:
        _log.error("Failed to read scan rules", path=str(config_path), error=str(e))
        return RuleSet()

    if not raw:
        return RuleSet()

    try:
        rules = _parse_rules(raw.get("rules") or []) or DEFAULT_RULES
        quick_fixes = _parse_quick_fixes(raw["quick_fixes"]) if "quick_fixes" in raw else DEFAULT_QUICK_FIXES
    except (ValueError, re.error, AttributeError) as e:
        _log.error("Invalid scan rules, using defaults", path=str(config_path), error=str(e))
        return RuleSet()

    _log.info("Scan rules loaded", path=str(config_path), rules=len(rules), quick_fixes=len(quick_fixes))
    return RuleSet(rules=rules, quick_fixes=quick_fixes)
