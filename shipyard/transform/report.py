from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class ConversionReport:
    path: Optional[str] = None
    needed: bool = False
    changed: bool = False
    indicators: List[str] = field(default_factory=list)
    category_counts: Dict[str, int] = field(default_factory=dict)
    rule_hits: Dict[str, int] = field(default_factory=dict)
    shim_injected: bool = False
    violations: List[str] = field(default_factory=list)
    input_size: int = 0
    output_size: int = 0
    error: Optional[str] = None
    written_to: Optional[str] = None
    backup_path: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.violations and self.error is None

    @property
    def converted(self) -> bool:
        return self.needed and self.ok

    def to_dict(self) -> Dict:
        return {
            "path": self.path,
            "needed": self.needed,
            "changed": self.changed,
            "ok": self.ok,
            "category_counts": dict(self.category_counts),
            "shim_injected": self.shim_injected,
            "violations": list(self.violations),
            "error": self.error,
        }


@dataclass
class BatchConversionReport:
    succeeded: List[ConversionReport] = field(default_factory=list)
    failed: List[ConversionReport] = field(default_factory=list)

    def add(self, report: ConversionReport) -> None:
        (self.succeeded if report.ok else self.failed).append(report)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def converted(self) -> int:
        return sum(1 for r in self.succeeded if r.needed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.succeeded if not r.needed)

    @property
    def ok(self) -> bool:
        return not self.failed

    def category_totals(self) -> Dict[str, int]:
        totals: Dict[str, int] = {}
        for report in self.succeeded + self.failed:
            for category, count in report.category_counts.items():
                totals[category] = totals.get(category, 0) + count
        return totals

    def summary(self) -> str:
        return (f"{self.total} file(s): {self.converted} converted, "
                f"{self.skipped} unchanged, {len(self.failed)} failed")

    def to_dict(self) -> Dict:
        return {
            "total": self.total,
            "converted": self.converted,
            "skipped": self.skipped,
            "failed": [r.to_dict() for r in self.failed],
            "category_totals": self.category_totals(),
        }
