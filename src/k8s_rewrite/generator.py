# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The k8s-rewrite contributors
"""Manifest rendering orchestration."""

import logging
import shutil
from dataclasses import dataclass
from importlib.resources import files
from pathlib import Path

import yaml

from k8s_rewrite.apply_script import write_apply_script
from k8s_rewrite.config import RewriteConfig
from k8s_rewrite.rewrite import rewrite_file

logger = logging.getLogger(__name__)

OUTPUT_PREFIX = "k8s."


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with a formatter for console output.

    Args:
        verbose: If True, set log level to DEBUG; otherwise INFO
    """
    formatter = logging.Formatter(
        "[%(asctime)s] [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S %z",
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)


@dataclass
class GenerationResult:
    """What a generation run produced."""

    output_dir: Path
    manifests: list[Path]
    apply_script: Path


def default_templates_dir() -> Path:
    """Return the manifest templates bundled with the package."""
    return Path(str(files("k8s_rewrite") / "templates" / "k8s"))


def output_dir_for(suffix: str, root: Path) -> Path:
    """
    Return the output directory for a suffix.

    Raises:
        ValueError: If the suffix is empty
    """
    if not suffix:
        raise ValueError("suffix required")
    return root / f"{OUTPUT_PREFIX}{suffix}"


def prepare_output_dir(templates_dir: Path, output_dir: Path) -> None:
    """
    Replace the output directory with a fresh copy of the templates.

    Any previous output is removed first so nothing stale survives a rerun.

    Raises:
        FileNotFoundError: If the templates directory doesn't exist
    """
    if not templates_dir.is_dir():
        raise FileNotFoundError(f"Templates directory not found: {templates_dir}")

    if output_dir.is_symlink() or output_dir.is_file():
        logger.debug(f"Removing previous output {output_dir}")
        output_dir.unlink()
    elif output_dir.exists():
        logger.debug(f"Removing previous output {output_dir}")
        shutil.rmtree(output_dir)

    shutil.copytree(templates_dir, output_dir)
    logger.debug(f"Copied {templates_dir} -> {output_dir}")


def find_manifests(output_dir: Path) -> list[Path]:
    """Return every YAML manifest under a directory, sorted."""
    return sorted(p for p in output_dir.rglob("*.yaml") if p.is_file())


def rewrite_manifests(
    output_dir: Path,
    config: RewriteConfig,
    strict: bool = False,
) -> list[Path]:
    """
    Substitute placeholders in every manifest under the output directory.

    Args:
        output_dir: Directory holding the copied templates
        config: Values to substitute
        strict: If True, placeholders left after substitution are an error

    Returns:
        The manifests that were processed

    Raises:
        ValueError: If strict and unknown placeholders remain
    """
    values = config.placeholder_values()
    manifests = find_manifests(output_dir)

    leftovers: dict[Path, set[str]] = {}
    for manifest in manifests:
        remaining = rewrite_file(manifest, values)
        if remaining:
            leftovers[manifest] = remaining

    if leftovers:
        details = "\n  ".join(
            f"{path.relative_to(output_dir)}: {', '.join(sorted(tokens))}"
            for path, tokens in sorted(leftovers.items())
        )
        if strict:
            raise ValueError(f"Unresolved placeholders remain:\n  {details}")
        logger.warning(f"Unresolved placeholders remain:\n  {details}")

    return manifests


def validate_manifests(manifests: list[Path]) -> None:
    """
    Check that every rendered manifest is still valid YAML.

    Raises:
        ValueError: If a manifest fails to parse
    """
    for manifest in manifests:
        try:
            with open(manifest) as f:
                for _ in yaml.safe_load_all(f):
                    pass
        except yaml.YAMLError as e:
            raise ValueError(f"Rendered manifest is not valid YAML: {manifest}\n{e}") from e


def generate(
    config: RewriteConfig,
    templates_dir: Path,
    output_dir: Path,
    kubectl: str = "kubectl",
    strict: bool = False,
    validate: bool = True,
) -> GenerationResult:
    """
    Render the templates into the output directory and write apply.sh.

    Args:
        config: Values to substitute
        templates_dir: Directory of manifest templates
        output_dir: Directory to (re)create
        kubectl: Command written into the apply script
        strict: If True, unresolved placeholders are an error
        validate: If True, parse each rendered manifest as YAML

    Returns:
        Summary of what was written

    Raises:
        FileNotFoundError: If the templates directory doesn't exist
        ValueError: If rendering leaves invalid output
    """
    logger.info(f"Rendering {templates_dir} -> {output_dir}")
    if config.image_pull_secret:
        logger.debug(f"Using image pull secret {config.image_pull_secret}")

    prepare_output_dir(templates_dir, output_dir)
    manifests = rewrite_manifests(output_dir, config, strict=strict)

    if validate:
        validate_manifests(manifests)

    script = write_apply_script(manifests, output_dir, kubectl)

    logger.info(f"Rendered {len(manifests)} manifest(s) into {output_dir}")
    return GenerationResult(output_dir=output_dir, manifests=manifests, apply_script=script)
