# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The k8s-rewrite contributors
"""Command-line interface for k8s-rewrite."""

import os
import sys
from pathlib import Path

import click

from k8s_rewrite._version import __version__
from k8s_rewrite.config import load_config
from k8s_rewrite.generator import (
    default_templates_dir,
    generate,
    output_dir_for,
    setup_logging,
)
from k8s_rewrite.kubectl import run_apply_script
from k8s_rewrite.launcher import DevServer, launch


@click.command()
@click.version_option(version=__version__, prog_name="k8s-rewrite")
@click.argument("config", type=click.Path(path_type=Path))
@click.argument("suffix")
@click.option(
    "--templates-dir",
    "-t",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Manifest templates directory (default: bundled templates)",
)
@click.option(
    "--output-root",
    "-o",
    type=click.Path(exists=False, path_type=Path),
    default=Path("."),
    help="Directory in which k8s.<SUFFIX> is created",
    show_default=True,
)
@click.option(
    "--kubectl",
    default="kubectl",
    help="Command used by the generated apply script; may include arguments",
    show_default=True,
)
@click.option(
    "--strict",
    is_flag=True,
    help="Fail if any placeholder is left after substitution",
)
@click.option(
    "--validate/--no-validate",
    default=True,
    help="Check that the rendered manifests are valid YAML",
    show_default=True,
)
@click.option(
    "--apply",
    "apply_",
    is_flag=True,
    help="Run the generated apply script after rendering",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Show detailed output",
)
def main(
    config: Path,
    suffix: str,
    templates_dir: Path | None,
    output_root: Path,
    kubectl: str,
    strict: bool,
    validate: bool,
    apply_: bool,
    verbose: bool,
) -> None:
    """Render Kubernetes manifest templates using values from CONFIG.

    The templates are copied to k8s.SUFFIX, placeholders are replaced and an
    apply.sh script is written next to them.
    """
    if not config.is_file():
        click.echo("[-] config file does not exist", err=True)
        sys.exit(1)

    if not suffix:
        click.echo("[-] suffix required", err=True)
        sys.exit(1)

    setup_logging(verbose=verbose)

    try:
        rewrite_config = load_config(config)
        output_dir = output_dir_for(suffix, output_root)

        if templates_dir is None:
            templates_dir = default_templates_dir()

        if verbose:
            click.echo(f"Configuration file: {config}")
            click.echo(f"Templates directory: {templates_dir}")
            click.echo(f"Output directory: {output_dir}")
            click.echo()

        result = generate(
            rewrite_config,
            templates_dir,
            output_dir,
            kubectl=kubectl,
            strict=strict,
            validate=validate,
        )

        if apply_:
            output = run_apply_script(result.apply_script, kubectl)
            if output:
                click.echo(output, nl=False)

        click.echo("Done.")

    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except ValueError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except RuntimeError as e:
        click.echo(f"Runtime error: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)


@click.command()
@click.version_option(version=__version__, prog_name="run-dev")
@click.option(
    "--binary",
    type=click.Path(exists=False, path_type=Path),
    default=DevServer.binary,
    help="Server binary to start",
    show_default=True,
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Print the command instead of running it",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Show detailed output",
)
def run_dev(binary: Path, dry_run: bool, verbose: bool) -> None:
    """Start the development server with its fixed local settings."""
    setup_logging(verbose=verbose)
    server = DevServer(binary=binary)

    if dry_run:
        for key, value in server.env.items():
            click.echo(f"{key}={value}")
        click.echo(" ".join(server.command()))
        return

    try:
        sys.exit(launch(server, dict(os.environ)))
    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
