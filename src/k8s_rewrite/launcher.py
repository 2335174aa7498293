# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The k8s-rewrite contributors
"""Launcher for a locally built development server."""

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


def _default_environment() -> dict[str, str]:
    return {
        "AWS_ACCESS_KEY_ID": "minioadmin",
        "AWS_SECRET_ACCESS_KEY": "minioadmin",
        "RUST_LOG": "info",
    }


@dataclass
class DevServer:
    """Fixed startup settings for the development server."""

    binary: Path = Path("./target/release/blueboat_server")
    listen: str = "0.0.0.0:3000"
    mds: str = "r1=/etc/foundationdb/fdb.cluster:blueboat-r1"
    s3_bucket: str = "apps"
    s3_region: str = "us-east-1"
    s3_endpoint: str = "http://127.0.0.1:1932"
    env: dict[str, str] = field(default_factory=_default_environment)

    def command(self) -> list[str]:
        return [
            str(self.binary),
            "-l",
            self.listen,
            "--mds",
            self.mds,
            "--s3-bucket",
            self.s3_bucket,
            "--s3-region",
            self.s3_region,
            "--s3-endpoint",
            self.s3_endpoint,
        ]

    def environment(self, base: dict[str, str]) -> dict[str, str]:
        """Overlay the fixed variables on a base environment."""
        return {**base, **self.env}


def launch(server: DevServer, base_env: dict[str, str]) -> int:
    """
    Run the server in the foreground until it exits.

    Args:
        server: Server settings
        base_env: Environment the fixed variables are added to

    Returns:
        The server's exit status

    Raises:
        FileNotFoundError: If the server binary doesn't exist
    """
    if not server.binary.is_file():
        raise FileNotFoundError(f"Server binary not found: {server.binary}")

    cmd = server.command()
    logger.info(f"Starting {server.binary} on {server.listen}")
    logger.debug(f"Executing: {' '.join(cmd)}")

    result = subprocess.run(cmd, env=server.environment(base_env))
    return result.returncode
