"""
Entity mapper: explicit binding between a record type and a table row.

Each entity type gets one :class:`EntityMapper` built from a table of
:class:`FieldMapping` entries. An entry names the field, its column, its
Python type, and the accessor/mutator pair used to read and write it. Nothing
is discovered by scanning annotations at runtime, so the queryable field set
is fixed when the mapper is constructed and the query builder can reject an
unknown field before any SQL exists.

Architecture:
    ::

        Account(id=7, name="Jim", password=None)
                 │ to_row                    ▲ from_row
                 ▼                           │
        {"id": 7, "name": "Jim", "password": None}

        EntityMapper
        ├── identity          FieldMapping("id", identity=True, generated=True)
        ├── fields            ordered FieldMapping table
        ├── queryable_fields  names accepted by Where clauses
        └── factory           values-by-field-name → entity

Examples:
    >>> mapper = EntityMapper(
    ...     Account,
    ...     table="account",
    ...     fields=[
    ...         FieldMapping.attribute("id", int, identity=True, generated=True),
    ...         FieldMapping.attribute("name", str, required=True),
    ...         FieldMapping.attribute("password", str),
    ...     ],
    ... )
    >>> mapper.to_row(Account("Jim"))
    {'id': 0, 'name': 'Jim', 'password': None}

Tags:
    mapper, entity, row, orm, strata
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from strata.core.errors import ErrorContext, MappingError, UnknownFieldError

E = TypeVar("E")


def _attribute_setter(name: str) -> Callable[[Any, Any], None]:
    def setter(entity: Any, value: Any) -> None:
        setattr(entity, name, value)

    return setter


def _attribute_getter(name: str) -> Callable[[Any], Any]:
    def getter(entity: Any) -> Any:
        return getattr(entity, name)

    return getter


@dataclass(frozen=True)
class FieldMapping:
    """One row of an entity's mapping table.

    Attributes:
        name: Field name on the entity and in query predicates
        type: Python type values must have (``int``, ``str``, ``float``, ``bool``, ``bytes``)
        getter: Reads the field from an entity
        setter: Writes the field on an entity
        column: Column name; defaults to ``name``
        required: A NULL or missing column is a :class:`MappingError`
        identity: This is the entity's identity field
        generated: Value is assigned by storage on insert
        queryable: Field may appear in query predicates
    """

    name: str
    type: type
    getter: Callable[[Any], Any]
    setter: Callable[[Any, Any], None]
    column: str = ""
    required: bool = False
    identity: bool = False
    generated: bool = False
    queryable: bool = True

    def __post_init__(self) -> None:
        if not self.column:
            object.__setattr__(self, "column", self.name)

    @classmethod
    def attribute(
        cls,
        name: str,
        type: type,
        *,
        column: str | None = None,
        required: bool = False,
        identity: bool = False,
        generated: bool = False,
        queryable: bool = True,
    ) -> FieldMapping:
        """Mapping for a plain attribute of the same name."""
        return cls(
            name=name,
            type=type,
            getter=_attribute_getter(name),
            setter=_attribute_setter(name),
            column=column or name,
            required=required or identity,
            identity=identity,
            generated=generated,
            queryable=queryable,
        )

    def check(self, value: Any, entity: str) -> Any:
        """Return *value* converted to this field's type, or raise MappingError."""
        if value is None:
            if self.required:
                raise MappingError(
                    f"Required field {self.name!r} is NULL",
                    context=ErrorContext(entity=entity, field=self.name),
                )
            return None
        if self.type is int and isinstance(value, bool):
            pass
        elif isinstance(value, self.type):
            return value
        elif self.type is float and isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        elif self.type is bool and isinstance(value, int) and value in (0, 1):
            return bool(value)
        elif self.type is bytes and isinstance(value, (bytearray, memoryview)):
            return bytes(value)
        raise MappingError(
            f"Field {self.name!r} expects {self.type.__name__}, got {type(value).__name__}",
            context=ErrorContext(entity=entity, field=self.name),
        )


@dataclass(eq=False)
class EntityMapper(Generic[E]):
    """Bidirectional mapping between entities of one type and table rows.

    Parameters:
        entity_type: The record class
        table: Table name
        fields: Ordered mapping table; exactly one entry must be the identity
        factory: Builds an entity from ``{field_name: value}``; defaults to
                 ``entity_type(**values)``
        unset_id: Identity value of a transient entity

    Raises:
        ValueError: If the mapping table is malformed (no identity, duplicates).
    """

    entity_type: type[E]
    table: str
    fields: list[FieldMapping]
    factory: Callable[[dict[str, Any]], E] | None = None
    unset_id: Any = 0

    def __post_init__(self) -> None:
        self.fields = list(self.fields)
        identities = [f for f in self.fields if f.identity]
        if len(identities) != 1:
            raise ValueError(
                f"{self.entity_name} mapping needs exactly one identity field, "
                f"found {len(identities)}"
            )
        names = [f.name for f in self.fields]
        columns = [f.column for f in self.fields]
        if len(set(names)) != len(names) or len(set(columns)) != len(columns):
            raise ValueError(f"{self.entity_name} mapping has duplicate fields or columns")
        self._by_name: dict[str, FieldMapping] = {f.name: f for f in self.fields}

    # -- Contract ----------------------------------------------------------

    @property
    def entity_name(self) -> str:
        return self.entity_type.__name__

    @property
    def identity(self) -> FieldMapping:
        return next(f for f in self.fields if f.identity)

    @property
    def identity_field(self) -> str:
        return self.identity.name

    @property
    def queryable_fields(self) -> frozenset[str]:
        return frozenset(f.name for f in self.fields if f.queryable)

    @property
    def columns(self) -> list[str]:
        return [f.column for f in self.fields]

    def field(self, name: str) -> FieldMapping:
        """Queryable field by name, or :class:`UnknownFieldError`."""
        mapping = self._by_name.get(name)
        if mapping is None or not mapping.queryable:
            raise UnknownFieldError(name, self.entity_name)
        return mapping

    def column_for(self, name: str) -> str:
        return self.field(name).column

    # -- Identity ----------------------------------------------------------

    def get_id(self, entity: E) -> Any:
        return self.identity.getter(entity)

    def set_id(self, entity: E, value: Any) -> None:
        self.identity.setter(entity, self.identity.check(value, self.entity_name))

    def is_managed(self, entity: E) -> bool:
        """True once storage has assigned the identity."""
        value = self.get_id(entity)
        return value is not None and value != self.unset_id

    # -- Conversion --------------------------------------------------------

    def to_row(self, entity: E) -> dict[str, Any]:
        """Column → value for every mapped field, in mapping order."""
        return {f.column: f.getter(entity) for f in self.fields}

    def insert_row(self, entity: E) -> dict[str, Any]:
        """Like :meth:`to_row` minus a generated identity (storage assigns it)."""
        return {f.column: f.getter(entity) for f in self.fields if not (f.identity and f.generated)}

    def from_row(self, row: Mapping[str, Any] | Any) -> E:
        """Build an entity from a row.

        Accepts any mapping, or an object with ``keys()`` and item access
        (``sqlite3.Row``). Extra columns are ignored.

        Raises:
            MappingError: Required column missing/NULL, or a value of the
                wrong type.
        """
        if not isinstance(row, Mapping):
            if not hasattr(row, "keys"):
                raise MappingError(
                    f"Cannot map {type(row).__name__} to {self.entity_name}: not a mapping",
                    context=ErrorContext(entity=self.entity_name, table=self.table),
                )
            row = {key: row[key] for key in row.keys()}

        values: dict[str, Any] = {}
        for f in self.fields:
            if f.column not in row:
                if f.required:
                    raise MappingError(
                        f"Row has no column {f.column!r} for required field {f.name!r}",
                        context=ErrorContext(entity=self.entity_name, table=self.table, field=f.name),
                    )
                values[f.name] = None
                continue
            values[f.name] = f.check(row[f.column], self.entity_name)
        return self.instantiate(values)

    def instantiate(self, values: dict[str, Any]) -> E:
        """Construct an entity from field values (the "loaded" constructor)."""
        if self.factory is not None:
            return self.factory(values)
        try:
            return self.entity_type(**values)
        except TypeError as e:
            raise MappingError(
                f"Cannot construct {self.entity_name}: {e}",
                context=ErrorContext(entity=self.entity_name),
                cause=e,
            ) from e

    def copy_into(self, source: E, target: E) -> None:
        """Overwrite every mapped field of *target* with *source*'s values."""
        for f in self.fields:
            f.setter(target, f.getter(source))

    def fields_equal(self, a: E, b: E, *, names: Iterable[str] | None = None) -> bool:
        """Compare mapped fields (all of them unless *names* is given)."""
        wanted = set(names) if names is not None else None
        return all(
            f.getter(a) == f.getter(b)
            for f in self.fields
            if wanted is None or f.name in wanted
        )


__all__ = [
    "FieldMapping",
    "EntityMapper",
]
