"""Data-integrity validation models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ValidationStatus(str, Enum):
    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"


@dataclass
class ValidationRule:
    """An integrity check: passes when offending rows <= threshold."""
    name: str
    description: str
    severity: Severity = Severity.ERROR
    threshold: int = 0
    query: Optional[str] = None


@dataclass
class RuleResult:
    rule: str
    description: str
    severity: Severity
    passed: bool
    count: int = 0
    threshold: int = 0
    message: str = ""
    samples: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule": self.rule,
            "description": self.description,
            "severity": self.severity.value,
            "passed": self.passed,
            "count": self.count,
            "threshold": self.threshold,
            "message": self.message,
            "samples": self.samples,
        }


@dataclass
class ValidationReport:
    """Results of a validation pass over the source or the target."""
    phase: str = "post"
    timestamp: datetime = field(default_factory=datetime.utcnow)
    results: List[RuleResult] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)

    @property
    def issues(self) -> List[str]:
        return [r.message for r in self.results if not r.passed]

    @property
    def overall_status(self) -> ValidationStatus:
        failed = [r for r in self.results if not r.passed]
        if any(r.severity == Severity.ERROR for r in failed):
            return ValidationStatus.FAIL
        if failed:
            return ValidationStatus.WARNING
        return ValidationStatus.PASS

    @property
    def is_valid(self) -> bool:
        return self.overall_status != ValidationStatus.FAIL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "timestamp": self.timestamp.isoformat(),
            "overall_status": self.overall_status.value,
            "is_valid": self.is_valid,
            "summary": self.summary,
            "issues": self.issues,
            "results": [r.to_dict() for r in self.results],
        }
