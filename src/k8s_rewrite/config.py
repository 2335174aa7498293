# SPDX-License-Identifier: MIT
# SPDX-FileCopyrightText: The k8s-rewrite contributors
"""Configuration file parsing and validation for k8s-rewrite."""

import os
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path

from k8s_rewrite.rewrite import PLACEHOLDERS, pull_secrets_block

# Variables the config file must assign (possibly to an empty string)
REQUIRED_VARIABLES = (
    "EXTERNAL_IPS",
    "IMAGE_PREFIX",
    "IMAGE_SUFFIX",
    "NAMESPACE",
    "DB_URL",
    "NUM_PROXIES",
    "NUM_RUNTIMES",
    "NUM_FETCHD",
    "CPU_REQUEST_PER_RUNTIME",
)

_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


@dataclass
class RewriteConfig:
    """Values substituted into the manifest templates."""

    external_ips: str
    image_prefix: str
    image_suffix: str
    namespace: str
    db_url: str
    num_proxies: str
    num_runtimes: str
    num_fetchd: str
    cpu_request_per_runtime: str
    image_pull_secret: str | None = None

    def placeholder_values(self) -> dict[str, str]:
        """Map each placeholder token to the text that replaces it."""
        values = {
            "__EXTERNAL_IPS__": self.external_ips,
            "__IMAGE_PREFIX__": self.image_prefix,
            "__IMAGE_SUFFIX__": self.image_suffix,
            "__NAMESPACE__": self.namespace,
            "__DB_URL__": self.db_url,
            "__NUM_PROXIES__": self.num_proxies,
            "__NUM_RUNTIMES__": self.num_runtimes,
            "__NUM_FETCHD__": self.num_fetchd,
            "__CPU_REQUEST_PER_RUNTIME__": self.cpu_request_per_runtime,
            "__MAYBE_PULL_SECRETS__": pull_secrets_block(self.image_pull_secret),
        }
        # Keep the substitution order stable
        return {token: values[token] for token in PLACEHOLDERS}


class _EnvLexer:
    """Split env-file text into shell words, expanding variable references.

    Quoting follows POSIX sh: single quotes are literal, double quotes allow
    ``$NAME`` / ``${NAME}`` expansion and backslash escapes, and unquoted
    newlines or ``;`` end a command. Command substitution is rejected.
    """

    def __init__(
        self, text: str, path: Path, lookup: Callable[[str], str | None]
    ) -> None:
        self.text = text
        self.path = path
        self.lookup = lookup
        self.pos = 0
        self.lineno = 1

    def _error(self, message: str, lineno: int | None = None) -> ValueError:
        return ValueError(f"{self.path}:{lineno or self.lineno}: {message}")

    def _expand(self) -> str:
        text, i = self.text, self.pos + 1
        if text.startswith("{", i):
            end = text.find("}", i)
            if end < 0:
                raise self._error("unterminated '${'")
            name = text[i + 1 : end]
            if not _NAME.fullmatch(name):
                raise self._error(f"unsupported parameter expansion '${{{name}}}'")
            self.pos = end + 1
        elif text.startswith("(", i):
            raise self._error("command substitution is not supported")
        else:
            match = _NAME.match(text, i)
            if not match:
                self.pos = i
                return "$"
            name = match.group()
            self.pos = match.end()

        value = self.lookup(name)
        if value is None:
            raise self._error(f"variable '{name}' is not set")
        return value

    def _double_quoted(self, word: list[str], start: int) -> None:
        text = self.text
        self.pos += 1
        while True:
            if self.pos >= len(text):
                raise self._error("unterminated double quote", start)
            c = text[self.pos]
            if c == '"':
                self.pos += 1
                return
            if c == "\\" and text[self.pos + 1 : self.pos + 2] in ("$", "`", '"', "\\", "\n"):
                escaped = text[self.pos + 1]
                if escaped == "\n":
                    self.lineno += 1
                else:
                    word.append(escaped)
                self.pos += 2
            elif c == "$":
                word.append(self._expand())
            elif c == "`":
                raise self._error("command substitution is not supported")
            else:
                if c == "\n":
                    self.lineno += 1
                word.append(c)
                self.pos += 1

    def words(self) -> Iterator[tuple[int, str | None]]:
        """Yield (line, word) pairs, and (line, None) at the end of each command.

        Words are produced lazily so that an expansion sees every assignment
        made by earlier words.
        """
        text = self.text
        word: list[str] | None = None
        start = 1

        while self.pos < len(text):
            c = text[self.pos]

            if c in " \t\n;":
                if word is not None:
                    yield start, "".join(word)
                    word = None
                if c != " " and c != "\t":
                    yield self.lineno, None
                if c == "\n":
                    self.lineno += 1
                self.pos += 1
                continue

            if c == "#" and word is None:
                end = text.find("\n", self.pos)
                self.pos = len(text) if end < 0 else end
                continue

            if c == "\\" and text.startswith("\n", self.pos + 1):
                self.lineno += 1
                self.pos += 2
                continue

            if word is None:
                word = []
                start = self.lineno

            if c == "\\":
                if self.pos + 1 >= len(text):
                    raise self._error("trailing backslash")
                word.append(text[self.pos + 1])
                self.pos += 2
            elif c == "'":
                end = text.find("'", self.pos + 1)
                if end < 0:
                    raise self._error("unterminated single quote", start)
                literal = text[self.pos + 1 : end]
                word.append(literal)
                self.lineno += literal.count("\n")
                self.pos = end + 1
            elif c == '"':
                self._double_quoted(word, start)
            elif c == "$":
                word.append(self._expand())
            elif c == "`":
                raise self._error("command substitution is not supported")
            else:
                word.append(c)
                self.pos += 1

        if word is not None:
            yield start, "".join(word)
        yield self.lineno, None


def parse_env_file(path: Path) -> dict[str, str]:
    """
    Parse a file of shell-style variable assignments.

    The file is read the way ``. file`` would evaluate it, without executing
    anything: each command is one or more KEY=value assignments, optionally
    prefixed by ``export``. Quoting follows sh rules and quoted values may
    span lines. ``$NAME`` and ``${NAME}`` expand outside single quotes, first
    from earlier assignments, then from the process environment. A bare
    ``export NAME`` keeps an existing value. Command substitution, other
    parameter expansions and non-assignment commands are rejected.

    Args:
        path: Path to the configuration file

    Returns:
        Dict mapping variable names to their values

    Raises:
        ValueError: If a command is not an assignment, quoting is unbalanced,
            or a referenced variable is not set
    """
    variables: dict[str, str] = {}

    def lookup(name: str) -> str | None:
        if name in variables:
            return variables[name]
        return os.environ.get(name)

    lexer = _EnvLexer(path.read_text(), path, lookup)
    at_start = True
    exporting = False

    for lineno, word in lexer.words():
        if word is None:
            at_start = True
            exporting = False
            continue

        if at_start and word == "export":
            at_start = False
            exporting = True
            continue
        at_start = False

        key, sep, value = word.partition("=")
        if not sep:
            if exporting and _NAME.fullmatch(key):
                if key not in variables and key in os.environ:
                    variables[key] = os.environ[key]
                continue
            raise ValueError(f"{path}:{lineno}: expected KEY=value, got '{word}'")
        if not _NAME.fullmatch(key):
            raise ValueError(f"{path}:{lineno}: invalid variable name '{key}'")
        variables[key] = value

    return variables


def load_config(path: Path) -> RewriteConfig:
    """
    Load the rewrite configuration from an env-style file.

    Args:
        path: Path to the configuration file

    Returns:
        Parsed configuration

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is malformed or misses required variables
    """
    if not path.is_file():
        raise FileNotFoundError(f"config file does not exist: {path}")

    variables = parse_env_file(path)

    missing = [name for name in REQUIRED_VARIABLES if name not in variables]
    if missing:
        raise ValueError(
            f"Missing required variable(s) in {path}: {', '.join(missing)}"
        )

    return RewriteConfig(
        external_ips=variables["EXTERNAL_IPS"],
        image_prefix=variables["IMAGE_PREFIX"],
        image_suffix=variables["IMAGE_SUFFIX"],
        namespace=variables["NAMESPACE"],
        db_url=variables["DB_URL"],
        num_proxies=variables["NUM_PROXIES"],
        num_runtimes=variables["NUM_RUNTIMES"],
        num_fetchd=variables["NUM_FETCHD"],
        cpu_request_per_runtime=variables["CPU_REQUEST_PER_RUNTIME"],
        image_pull_secret=variables.get("IMAGE_PULL_SECRET") or None,
    )
