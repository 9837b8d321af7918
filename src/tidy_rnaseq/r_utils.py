"""R dependency utilities for the edgeR-backed steps."""

from __future__ import annotations

import logging
from typing import Sequence

logger = logging.getLogger(__name__)

# Track which packages have been checked
_checked_packages: set = set()

_RPY2_HINT = (
    "rpy2 is not installed. Please install it via 'pip install tidy-rnaseq[edger]' "
    "(requires a working R installation)."
)


def has_r_package(name: str) -> bool:
    """
    Check whether R and the R package `name` are available through rpy2.

    Returns False when rpy2 cannot be imported or R cannot be started.
    """
    try:
        import rpy2.robjects.packages as rpackages
    except ImportError:
        return False
    except (RuntimeError, OSError, ValueError) as err:  # R itself cannot be started
        logger.debug("R unavailable: %s", err)
        return False
    return bool(rpackages.isinstalled(name))


def ensure_r_dependencies(packages: Sequence[str]) -> None:
    """
    Checks if required R packages are installed.
    If not, attempts to install them using BiocManager via rpy2.

    Args:
        packages: Sequence of R package names to check/install.
            e.g., ["edgeR"]

    Raises:
        ImportError: If rpy2 is not installed.
    """
    global _checked_packages

    packages_to_check = [pkg for pkg in packages if pkg not in _checked_packages]
    if not packages_to_check:
        return

    try:
        import rpy2.robjects.packages as rpackages
        from rpy2.robjects.vectors import StrVector
    except ImportError:
        raise ImportError(_RPY2_HINT)

    missing_pkgs = [pkg for pkg in packages_to_check if not rpackages.isinstalled(pkg)]

    if missing_pkgs:
        logger.info("Missing R packages detected: %s", ", ".join(missing_pkgs))
        logger.info("Attempting to install via BiocManager...")

        utils = rpackages.importr("utils")
        utils.chooseCRANmirror(ind=1)  # Select first mirror automatically

        if not rpackages.isinstalled("BiocManager"):
            utils.install_packages(StrVector(["BiocManager"]))

        bioc_manager = rpackages.importr("BiocManager")
        bioc_manager.install(StrVector(missing_pkgs), ask=False)

        logger.info("R packages installed successfully.")

    _checked_packages.update(packages_to_check)
