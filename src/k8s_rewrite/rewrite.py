# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The k8s-rewrite contributors
"""Literal placeholder substitution in manifest templates."""

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

# Placeholder tokens in the order they are substituted
PLACEHOLDERS = (
    "__EXTERNAL_IPS__",
    "__IMAGE_PREFIX__",
    "__IMAGE_SUFFIX__",
    "__NAMESPACE__",
    "__DB_URL__",
    "__NUM_PROXIES__",
    "__NUM_RUNTIMES__",
    "__NUM_FETCHD__",
    "__CPU_REQUEST_PER_RUNTIME__",
    "__MAYBE_PULL_SECRETS__",
)

_PLACEHOLDER_PATTERN = re.compile(r"__[A-Z][A-Z0-9_]*?__")


def pull_secrets_block(secret: str | None) -> str:
    """Build the imagePullSecrets block for a pod spec.

    The __MAYBE_PULL_SECRETS__ token sits at pod spec indentation in the
    templates, so the continuation line carries the same six-space indent.
    """
    if not secret:
        return ""
    return f'imagePullSecrets:\n      - name: "{secret}"'


def substitute(text: str, values: dict[str, str]) -> str:
    """
    Replace every occurrence of each placeholder with its value.

    Replacement is literal: values are inserted as-is, with no escaping and
    no pattern interpretation.

    Args:
        text: Template text
        values: Dict mapping placeholder tokens to replacement text, applied
            in iteration order

    Returns:
        The substituted text
    """
    for token, value in values.items():
        text = text.replace(token, value)
    return text


def find_placeholders(text: str) -> set[str]:
    """Return the double-underscore tokens still present in a text."""
    return set(_PLACEHOLDER_PATTERN.findall(text))


def rewrite_file(path: Path, values: dict[str, str]) -> set[str]:
    """
    Substitute placeholders in a file, in place.

    Args:
        path: File to rewrite
        values: Dict mapping placeholder tokens to replacement text

    Returns:
        Set of placeholder tokens left in the file after substitution
    """
    original = path.read_text()
    rewritten = substitute(original, values)
    if rewritten != original:
        path.write_text(rewritten)
        logger.debug(f"Rewrote {path}")
    return find_placeholders(rewritten)
