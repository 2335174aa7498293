# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The k8s-rewrite contributors
"""Running the generated apply script against a cluster."""

import logging
import shlex
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


def check_kubectl_available(kubectl: str = "kubectl") -> bool:
    """
    Check if kubectl is installed and available.

    The command is split with shell rules, so it may carry arguments such
    as "kubectl --context staging".

    Returns:
        True if kubectl is available, False otherwise
    """
    try:
        subprocess.run(
            [*shlex.split(kubectl), "version", "--client"],
            capture_output=True,
            text=True,
            timeout=5,
        )
        return True
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return False


def run_apply_script(script: Path, kubectl: str = "kubectl") -> str:
    """
    Execute a generated apply script.

    Args:
        script: Path to apply.sh
        kubectl: Command the script invokes, checked before running

    Returns:
        Output of the script

    Raises:
        RuntimeError: If kubectl is not available or the script fails
    """
    if not check_kubectl_available(kubectl):
        raise RuntimeError(
            f"{kubectl} is not installed or not available in PATH. "
            "Please install kubectl: https://kubernetes.io/docs/tasks/tools/"
        )

    cmd = ["sh", str(script)]
    logger.debug(f"Executing: {' '.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=True,
            timeout=300,
        )
        return result.stdout
    except subprocess.CalledProcessError as e:
        raise RuntimeError(
            f"apply failed:\n  Command: {' '.join(cmd)}\n  Error: {e.stderr}"
        ) from e
    except subprocess.TimeoutExpired as e:
        raise RuntimeError(f"apply timed out:\n  Command: {' '.join(cmd)}") from e
