"""Environment self-checks behind ``hapgraph doctor``.

Graph construction itself is pure Python plus pysam. Sequence extraction
from an AGC archive needs the ``agc`` executable (directly or through
``conda run``); ``bgzip``/``tabix`` are handy for inspecting outputs.
"""

from __future__ import annotations

import logging
import platform
import shutil
from dataclasses import dataclass
from typing import Dict, Optional

import pysam

from .external import ExternalCommandError, run_command

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckResult:
    name: str
    ok: bool
    detail: str
    howto: Optional[str] = None


def check_python() -> CheckResult:
    return CheckResult(name="python", ok=True, detail=f"Python {platform.python_version()}")


def check_pysam() -> CheckResult:
    return CheckResult(name="pysam", ok=True, detail=f"pysam {pysam.__version__}")


def check_executable(name: str, *, howto: Optional[str] = None) -> CheckResult:
    p = shutil.which(name)
    if p is None:
        return CheckResult(name=name, ok=False, detail="not found in PATH", howto=howto)
    return CheckResult(name=name, ok=True, detail=p)


def check_conda_env(prefix: str) -> CheckResult:
    """Check that ``agc`` runs inside the conda environment at ``prefix``."""
    if shutil.which("conda") is None:
        return CheckResult(
            name="conda-env",
            ok=False,
            detail="conda not found in PATH",
            howto="Install Miniforge/Miniconda, then create the environment that provides agc.",
        )
    try:
        cp = run_command(["conda", "run", "-p", prefix, "which", "agc"])
    except (ExternalCommandError, OSError) as e:
        return CheckResult(
            name="conda-env",
            ok=False,
            detail=f"agc not usable in {prefix}: {e}",
            howto=f"conda install -p {prefix} -c bioconda agc",
        )
    return CheckResult(name="conda-env", ok=True, detail=(cp.stdout or "").strip() or prefix)


def collect_checks(*, conda_env_prefix: Optional[str] = None) -> Dict[str, CheckResult]:
    """Run all checks and return a mapping name->result."""
    checks: Dict[str, CheckResult] = {}

    checks["python"] = check_python()
    checks["pysam"] = check_pysam()
    checks["agc"] = check_executable(
        "agc",
        howto=(
            "Conda/mamba: mamba install -c bioconda agc\n"
            "Or pass --conda-env-prefix pointing at an environment that has agc."
        ),
    )
    checks["conda"] = check_executable(
        "conda",
        howto="Only needed with --conda-env-prefix. Install Miniforge or Miniconda.",
    )
    checks["bgzip"] = check_executable(
        "bgzip",
        howto=(
            "Ubuntu: sudo apt-get install -y tabix\n"
            "Conda/mamba: mamba install -c bioconda htslib"
        ),
    )
    checks["tabix"] = check_executable(
        "tabix",
        howto=(
            "Ubuntu: sudo apt-get install -y tabix\n"
            "Conda/mamba: mamba install -c bioconda htslib"
        ),
    )
    if conda_env_prefix:
        checks["conda-env"] = check_conda_env(conda_env_prefix)

    return checks
