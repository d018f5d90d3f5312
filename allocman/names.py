"""
Allocator name validation.

An allocator name doubles as the Python class name the compiled module must
define and as the storage key stem, so it follows Python identifier rules
restricted to ASCII: letters, digits and underscore, not starting with a digit,
and never a reserved keyword.
"""

import keyword
import re
from pathlib import Path
from typing import Union

NAME_PATTERN = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

RESERVED_WORDS = frozenset(keyword.kwlist)


def validate(candidate: object) -> bool:
    """
    Judge whether a proposed allocator name is legal.

    Pure function: no side effects, no I/O.

    Args:
        candidate: The proposed name

    Returns:
        True if the name may be used for an allocator
    """
    if not isinstance(candidate, str) or not candidate:
        return False
    if NAME_PATTERN.fullmatch(candidate) is None:
        return False
    return candidate not in RESERVED_WORDS


def derive_name(path: Union[str, Path]) -> str:
    """Derive an allocator name from a file path by stripping its extension."""
    return Path(path).stem
