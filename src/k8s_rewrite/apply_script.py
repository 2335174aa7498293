# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The k8s-rewrite contributors
"""Generation of the apply.sh wrapper from a Mustache template."""

import logging
import shlex
import stat
from importlib.resources import files
from pathlib import Path

import pystache
from pystache.common import MissingTags

logger = logging.getLogger(__name__)

APPLY_SCRIPT_NAME = "apply.sh"


def _load_template() -> str:
    return (files("k8s_rewrite") / "templates" / "apply.sh.mustache").read_text()


def render_apply_script(
    manifests: list[Path],
    output_dir: Path,
    kubectl: str = "kubectl",
) -> str:
    """Render the apply script for a set of manifests.

    The script changes into its own directory and runs one apply command per
    manifest, using shell-quoted paths relative to the output directory.
    The kubectl command is written as given, so it may carry extra arguments.

    Args:
        manifests: Manifest files inside output_dir
        output_dir: Directory the script will live in
        kubectl: Command used to reach the cluster

    Returns:
        The script text
    """
    # Shell text is emitted verbatim, so HTML escaping is disabled
    renderer = pystache.Renderer(
        escape=lambda u: u,
        missing_tags=MissingTags.strict,
    )
    context = {
        "kubectl": kubectl,
        "manifests": [
            {"path": shlex.quote(f"./{manifest.relative_to(output_dir).as_posix()}")}
            for manifest in manifests
        ],
    }
    return renderer.render(_load_template(), context)


def write_apply_script(
    manifests: list[Path],
    output_dir: Path,
    kubectl: str = "kubectl",
) -> Path:
    """Write an executable apply.sh into the output directory.

    Returns:
        Path to the written script
    """
    script = output_dir / APPLY_SCRIPT_NAME
    script.write_text(render_apply_script(manifests, output_dir, kubectl))

    mode = script.stat().st_mode
    script.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    logger.debug(f"Wrote {script} ({len(manifests)} apply command(s))")
    return script
