"""The ``Account`` entity: the one record type strata ships a mapping for.

An account has a storage-generated integer id, a required ``name`` and an
optional ``password``. ``id == 0`` marks a transient account that has not
been created yet.
"""

from __future__ import annotations

from dataclasses import dataclass

from strata.core.mapping import EntityMapper, FieldMapping

NAME_FIELD = "name"
PASSWORD_FIELD = "password"


@dataclass
class Account:
    name: str
    password: str | None = None
    id: int = 0


ACCOUNT_MAPPER: EntityMapper[Account] = EntityMapper(
    Account,
    table="account",
    fields=[
        FieldMapping.attribute("id", int, identity=True, generated=True),
        FieldMapping.attribute(NAME_FIELD, str, required=True),
        FieldMapping.attribute(PASSWORD_FIELD, str),
    ],
)


__all__ = [
    "ACCOUNT_MAPPER",
    "Account",
    "NAME_FIELD",
    "PASSWORD_FIELD",
]
