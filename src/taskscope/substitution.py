"""Placeholder substitution for task templates.

Task definitions reference context variables as ``{{ ctx.name }}`` and
process environment variables as ``{{ env.NAME }}``.
"""

from __future__ import annotations

import os
import re
from typing import Callable, Mapping, Optional

from taskscope.variables import TaskVariables


# Pattern matches: {{ prefix.name }} with optional whitespace
# Groups: (1) prefix (ctx|env), (2) name (identifier)
PLACEHOLDER_PATTERN = re.compile(
    r'\{\{\s*(ctx|env)\s*\.\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*\}\}'
)


class UnresolvedPlaceholderError(ValueError):
    """Raised when a template references a value that is not available."""

    def __init__(self, prefix: str, name: str, message: str) -> None:
        super().__init__(message)
        self.prefix = prefix
        self.name = name


def _replacer(
    variables: Optional[TaskVariables],
    environ: Optional[Mapping[str, str]],
) -> Callable[[re.Match], str]:
    """Build a re.sub callback; a prefix whose source is None is left in place."""

    def replace_match(match: re.Match) -> str:
        prefix = match.group(1)
        name = match.group(2)

        if prefix == "ctx":
            if variables is None:
                return match.group(0)
            value = variables.get(name)
            if value is None:
                raise UnresolvedPlaceholderError(
                    prefix,
                    name,
                    f"Context variable '{name}' is not available at the current position",
                )
            return value

        if environ is None:
            return match.group(0)
        value = environ.get(name)
        if value is None:
            raise UnresolvedPlaceholderError(
                prefix, name, f"Environment variable '{name}' is not set"
            )
        return value

    return replace_match


def substitute_context(text: str, variables: TaskVariables) -> str:
    """Substitute {{ ctx.name }} placeholders with context variable values.

    Args:
        text: Text containing {{ ctx.name }} placeholders
        variables: Variables resolved from the editing position

    Returns:
        Text with all {{ ctx.name }} placeholders replaced

    Raises:
        UnresolvedPlaceholderError: If a referenced variable is not in the context
    """
    return PLACEHOLDER_PATTERN.sub(_replacer(variables, None), text)


def substitute_environment(text: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Substitute {{ env.NAME }} placeholders with environment variable values.

    Environment variables are read from os.environ at substitution time
    unless an explicit mapping is given.

    Raises:
        UnresolvedPlaceholderError: If a referenced environment variable is not set

    Example:
        >>> substitute_environment("Hello {{ env.USER }}", {"USER": "alice"})
        'Hello alice'
    """
    source = os.environ if environ is None else environ
    return PLACEHOLDER_PATTERN.sub(_replacer(None, source), text)


def substitute_all(
    text: str,
    variables: TaskVariables,
    environ: Optional[Mapping[str, str]] = None,
) -> str:
    """Substitute both placeholder types in a single pass.

    Substituted values are not rescanned: selected text that happens to
    contain ``{{ env.X }}`` is inserted literally.
    """
    source = os.environ if environ is None else environ
    return PLACEHOLDER_PATTERN.sub(_replacer(variables, source), text)
