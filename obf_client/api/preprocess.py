"""Response preprocessors for endpoints that do not return plain JSON."""

from __future__ import annotations


def join_json_lines(output: str) -> str:
    """Turn newline-delimited JSON objects into a JSON array.

    Blank lines are dropped, so ``'{"a":1}\\n{"b":2}\\n'`` becomes
    ``'[{"a":1},{"b":2}]'``.
    """
    return "[" + ",".join(line.strip() for line in output.split("\n") if line.strip()) + "]"
