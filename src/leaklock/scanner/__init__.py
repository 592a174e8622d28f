"""Secret scanning through Nosey Parker.

- NoseyParkerScanner: runs the containerized init/scan/report phases
- parse_report: turns the JSON report into Finding records
- classify: display severity and dependency-directory flags
"""

from leaklock.scanner.noseyparker import NoseyParkerScanner, validate_target
from leaklock.scanner.report import parse_report, parse_report_strict, unique_findings

__all__ = [
    "NoseyParkerScanner",
    "parse_report",
    "parse_report_strict",
    "unique_findings",
    "validate_target",
]
