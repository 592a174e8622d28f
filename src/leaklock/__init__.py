"""Find secrets in a repository and scrub them from git history.

leaklock helps you:
- Check and install the external tools it drives (Docker, Nosey Parker, Java, BFG)
- Scan a directory, including its git history, with Nosey Parker in Docker
- Turn selected findings into BFG replacement rules
- Rewrite git history and purge the old objects
"""

__version__ = "0.1.0"

from leaklock.api import (
    Pipeline,
    check_dependencies,
    install_dependencies,
    plan_remediation,
    run_remediation,
    scan,
)

__all__ = [
    "Pipeline",
    "__version__",
    "check_dependencies",
    "install_dependencies",
    "plan_remediation",
    "run_remediation",
    "scan",
]
