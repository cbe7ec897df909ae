"""Scratch-variable naming for composed procedures.

Fragments are authored independently and concatenated into one T-SQL batch,
so every variable they declare must be unique within the procedure. Names
follow ``@<purpose>_<entity>[_<entity2>][_<kind>]``.

A role with ``kind=None`` is shared: every fragment that asks for the same
purpose and entities gets the same variable, which is how the schema name of
a table is resolved once and read by several fragments.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

Role = Tuple[str, Tuple[str, ...], Optional[str]]

_UNSAFE = re.compile(r"[^A-Za-z0-9_]")


def _sanitize(part: str) -> str:
    return _UNSAFE.sub("_", part) or "_"


class NamespaceAllocator:
    """Map from semantic role to a procedure-unique variable name.

    One allocator is used per composed procedure. Allocation is idempotent and
    deterministic: the same sequence of roles always produces the same names.
    """

    def __init__(self) -> None:
        self._by_role: Dict[Role, str] = {}
        self._issued: Dict[str, Role] = {}

    def allocate(self, purpose: str, *entities: str, kind: Optional[str] = None) -> str:
        """Return the variable name for a role, issuing it on first request."""
        role: Role = (purpose, tuple(entities), kind)
        existing = self._by_role.get(role)
        if existing is not None:
            return existing

        parts = [purpose, *entities]
        if kind is not None:
            parts.append(kind)
        base = "@" + "_".join(_sanitize(part) for part in parts)

        name = base
        suffix = 2
        # Distinct roles can render identically, e.g. ("A_B",) and ("A", "B").
        while name in self._issued:
            name = f"{base}_{suffix}"
            suffix += 1
        if name != base:
            logger.debug("Variable %s already issued; using %s for role %r", base, name, role)

        self._by_role[role] = name
        self._issued[name] = role
        return name

    def shared(self, purpose: str, *entities: str) -> str:
        """Allocate a variable intended to be read by several fragments."""
        return self.allocate(purpose, *entities, kind=None)

    def roles(self) -> Dict[Role, str]:
        return dict(self._by_role)

    def __len__(self) -> int:
        return len(self._by_role)
