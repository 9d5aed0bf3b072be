"""``${VAR}`` placeholder expansion for plan files."""

import os
import re

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")


class MissingEnvVarsError(ValueError):
    """Raised with every unresolved placeholder of a document."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__("Required environment variables not set: " + ", ".join(missing))


def substitute_env_vars(text: str) -> str:
    """
    Expand environment placeholders in a YAML document.

    Supports formats:
    - ${VAR_NAME} - required variable
    - ${VAR_NAME:-default} - optional with default value
    - ${VAR_NAME:?message} - required, ``message`` explains what it is for

    Lines that are YAML comments are left untouched, so commented-out chart
    entries may reference variables that are not set.

    Raises:
        MissingEnvVarsError: Listing every required variable that is unset
    """
    missing: list[str] = []

    def replacer(match: re.Match[str]) -> str:
        expr = match.group(1)
        if ":-" in expr:
            name, default = expr.split(":-", 1)
            return os.getenv(name, default)

        name, _, hint = expr.partition(":?")
        value = os.getenv(name)
        if value is None:
            missing.append(f"{name} ({hint})" if hint else name)
            return match.group(0)
        return value

    lines = [
        line if line.lstrip().startswith("#") else _PLACEHOLDER.sub(replacer, line)
        for line in text.splitlines(keepends=True)
    ]
    if missing:
        raise MissingEnvVarsError(missing)
    return "".join(lines)
