"""Data-driven fixed-width line mapping.

A mapping is compiled once per ``(mapping id, target type)`` into a list of
field plans (column range, extractor, optional transformer, setter) and cached
for the life of the process. Applying a compiled mapping to a line builds one
target record.
"""
from __future__ import annotations

import dataclasses
import logging
import re
import threading
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping as MappingType, Sequence

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable

from import_orchestrator.core.exceptions import (
    LineTooShortError,
    MandatoryBlankError,
    MappingError,
    MappingNotFoundError,
    ParseError,
    TransformerError,
)
from import_orchestrator.models.mapping import YES, MappingField

from .transformers import Kind, Transformer, compile_transformer

logger = logging.getLogger(__name__)

INT_RANGE = (-(2**31), 2**31 - 1)
LONG_RANGE = (-(2**63), 2**63 - 1)

_INTEGER_RE = re.compile(r"[+-]?\d+")
_DECIMAL_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

_JAVA_DATE_TOKENS = {
    "yyyy": "%Y",
    "yy": "%y",
    "MM": "%m",
    "dd": "%d",
    "HH": "%H",
    "mm": "%M",
    "ss": "%S",
}
_JAVA_DATE_RE = re.compile("|".join(sorted(_JAVA_DATE_TOKENS, key=len, reverse=True)))
_TIME_DIRECTIVES = ("%H", "%I", "%M", "%S", "%f", "%p")


class FieldType(str, Enum):
    STRING = "STRING"
    BIGDECIMAL = "BIGDECIMAL"
    DATE = "DATE"
    INT = "INT"
    LONG = "LONG"
    DOUBLE = "DOUBLE"

    @property
    def kind(self) -> Kind:
        if self is FieldType.STRING:
            return Kind.STRING
        if self is FieldType.DATE:
            return Kind.DATE
        return Kind.NUMBER


@dataclass(frozen=True)
class FieldSpec:
    """Detached copy of one mapping field definition."""

    property: str
    type: str
    offset: int
    length: int
    pattern: str | None = None
    mandatory: bool = False
    enable: bool = True
    transformer: str | None = None

    @classmethod
    def from_model(cls, field: MappingField) -> "FieldSpec":
        return cls(
            property=field.property,
            type=field.type,
            offset=field.offset,
            length=field.length,
            pattern=field.pattern,
            mandatory=(field.mandatory or "").upper() == YES,
            enable=(field.enable or YES).upper() == YES,
            transformer=field.transformer,
        )


Setter = Callable[[Any, Any], None]
Extractor = Callable[[str], Any]


@dataclass(frozen=True)
class CompiledField:
    property_name: str
    field_type: FieldType
    start: int
    end: int
    mandatory: bool
    extract: Extractor
    setter: Setter
    transformer: Transformer | None = None


class CompiledMapping:
    """A mapping ready to be applied to lines."""

    def __init__(self, mapping_id: str, target_type: type, fields: Sequence[CompiledField]) -> None:
        self.mapping_id = mapping_id
        self.target_type = target_type
        self.fields = tuple(fields)
        self.properties = frozenset(field.property_name for field in self.fields)

    def apply(self, line: str | None) -> Any | None:
        """Build a target record from ``line``; returns None for an empty line.

        Raises:
            LineTooShortError, MandatoryBlankError, ParseError, TransformerError
        """
        if not line:
            return None

        record = self.target_type()
        for field in self.fields:
            if field.end > len(line):
                raise LineTooShortError(field.property_name, field.end, len(line))
            raw = line[field.start:field.end]
            if not raw.strip():
                if field.mandatory:
                    raise MandatoryBlankError(field.property_name, field.field_type.value)
                field.setter(record, None)
                continue

            value = field.extract(raw)
            if field.transformer is not None:
                value = _coerce(field, field.transformer(value))
            field.setter(record, value)
        return record

    def __repr__(self) -> str:
        return f"CompiledMapping({self.mapping_id!r}, {self.target_type.__name__}, fields={len(self.fields)})"


# Setters ---------------------------------------------------------------------------


def _make_setter(name: str) -> Setter:
    def setter(target: Any, value: Any) -> None:
        setattr(target, name, value)

    return setter


@lru_cache(maxsize=None)
def setter_table(target_type: type) -> MappingType[str, Setter]:
    """Writable properties of ``target_type`` mapped to their setters.

    Dataclasses expose their init fields; SQLAlchemy models expose their
    non-primary-key column attributes.
    """
    if dataclasses.is_dataclass(target_type):
        names = [field.name for field in dataclasses.fields(target_type) if field.init]
    else:
        try:
            mapper = sa_inspect(target_type)
        except NoInspectionAvailable as exc:
            raise MappingError(f"{target_type.__name__} is neither a dataclass nor a mapped class") from exc
        primary_keys = set(mapper.primary_key)
        names = [
            attribute.key
            for attribute in mapper.column_attrs
            if not any(column in primary_keys for column in attribute.columns)
        ]
    return MappingProxyType({name: _make_setter(name) for name in names})


# Extractors ------------------------------------------------------------------------


def _java_to_strptime(pattern: str) -> str:
    if "%" in pattern:
        return pattern
    return _JAVA_DATE_RE.sub(lambda match: _JAVA_DATE_TOKENS[match.group(0)], pattern)


def _string_extractor(property_name: str) -> Extractor:
    return lambda raw: raw.rstrip(" ")


def _integer_extractor(property_name: str, bounds: tuple[int, int]) -> Extractor:
    low, high = bounds

    def extract(raw: str) -> int:
        text = raw.strip()
        if not _INTEGER_RE.fullmatch(text):
            raise ParseError(property_name, raw, "not an integer")
        number = int(text)
        if not low <= number <= high:
            raise ParseError(property_name, raw, f"out of range [{low}, {high}]")
        return number

    return extract


def _decimal_extractor(property_name: str) -> Extractor:
    def extract(raw: str) -> Decimal:
        text = raw.strip()
        if not _DECIMAL_RE.fullmatch(text):
            raise ParseError(property_name, raw, "not a decimal number")
        try:
            number = Decimal(text)
        except InvalidOperation as exc:
            raise ParseError(property_name, raw, "not a decimal number") from exc
        if not number.is_finite():
            raise ParseError(property_name, raw, "not a finite number")
        return number

    return extract


def _double_extractor(property_name: str) -> Extractor:
    def extract(raw: str) -> float:
        text = raw.strip()
        if not _DECIMAL_RE.fullmatch(text):
            raise ParseError(property_name, raw, "not a number")
        return float(text)

    return extract


def _date_extractor(property_name: str, pattern: str) -> Extractor:
    date_format = _java_to_strptime(pattern)
    with_time = any(directive in date_format for directive in _TIME_DIRECTIVES)

    def extract(raw: str) -> date | datetime:
        try:
            parsed = datetime.strptime(raw.strip(), date_format)
        except ValueError as exc:
            raise ParseError(property_name, raw, f"does not match pattern '{pattern}'") from exc
        return parsed if with_time else parsed.date()

    return extract


def _extractor_for(spec: FieldSpec, field_type: FieldType) -> Extractor:
    if field_type is FieldType.STRING:
        return _string_extractor(spec.property)
    if field_type is FieldType.INT:
        return _integer_extractor(spec.property, INT_RANGE)
    if field_type is FieldType.LONG:
        return _integer_extractor(spec.property, LONG_RANGE)
    if field_type is FieldType.BIGDECIMAL:
        return _decimal_extractor(spec.property)
    if field_type is FieldType.DOUBLE:
        return _double_extractor(spec.property)
    return _date_extractor(spec.property, spec.pattern or "")


def _coerce(field: CompiledField, value: Any) -> Any:
    """Fit a transformer result back into the field's type."""
    if value is None:
        return None
    field_type = field.field_type
    if field_type is FieldType.STRING or isinstance(value, (date, str)):
        return value
    if field_type in (FieldType.INT, FieldType.LONG):
        if isinstance(value, float) and not value.is_integer():
            raise TransformerError(f"{field.property_name}: {value!r} is not an integral value")
        if isinstance(value, Decimal) and value != value.to_integral_value():
            raise TransformerError(f"{field.property_name}: {value!r} is not an integral value")
        number = int(value)
        low, high = INT_RANGE if field_type is FieldType.INT else LONG_RANGE
        if not low <= number <= high:
            raise TransformerError(f"{field.property_name}: {number} is out of range [{low}, {high}]")
        return number
    if field_type is FieldType.BIGDECIMAL:
        return value if isinstance(value, Decimal) else Decimal(repr(value) if isinstance(value, float) else value)
    if field_type is FieldType.DOUBLE:
        return float(value)
    # DATE fields may yield a calendar number such as year(value)
    return value


# Compilation -----------------------------------------------------------------------


def _as_spec(field: FieldSpec | MappingField) -> FieldSpec:
    return field if isinstance(field, FieldSpec) else FieldSpec.from_model(field)


def compile_mapping(
    mapping_id: str,
    fields: Iterable[FieldSpec | MappingField],
    target_type: type,
) -> CompiledMapping:
    """Validate a mapping definition and compile it for ``target_type``.

    Raises:
        MappingError: if the definition is invalid for the target type
    """
    specs = [_as_spec(field) for field in fields]
    if not specs:
        raise MappingError(f"mapping '{mapping_id}' has no fields")

    setters = setter_table(target_type)
    compiled: list[CompiledField] = []
    taken: list[tuple[int, int, str]] = []

    for spec in specs:
        where = f"mapping '{mapping_id}' field '{spec.property}'"
        if not spec.enable:
            continue
        try:
            field_type = FieldType((spec.type or "").strip().upper())
        except ValueError as exc:
            raise MappingError(f"{where}: unknown type '{spec.type}'") from exc
        if spec.length is None or spec.length <= 0:
            raise MappingError(f"{where}: length must be positive")
        if spec.offset is None or spec.offset < 0:
            raise MappingError(f"{where}: offset must not be negative")
        if field_type is FieldType.DATE and not spec.pattern:
            raise MappingError(f"{where}: DATE fields need a pattern")
        if field_type is not FieldType.DATE and spec.pattern:
            raise MappingError(f"{where}: only DATE fields take a pattern")
        setter = setters.get(spec.property)
        if setter is None:
            raise MappingError(f"{where}: {target_type.__name__} has no property '{spec.property}'")

        start, end = spec.offset, spec.offset + spec.length
        for other_start, other_end, other in taken:
            if start < other_end and other_start < end:
                raise MappingError(f"{where}: columns {start}-{end} overlap field '{other}'")
        taken.append((start, end, spec.property))

        transformer = None
        if spec.transformer and spec.transformer.strip():
            transformer = compile_transformer(spec.transformer, field_type.kind)
            allowed = {field_type.kind}
            if field_type is FieldType.DATE:
                allowed.add(Kind.NUMBER)
            if transformer.result_kind not in allowed:
                raise MappingError(
                    f"{where}: transformer yields a {transformer.result_kind.value}, "
                    f"field type {field_type.value} needs a {field_type.kind.value}"
                )

        compiled.append(
            CompiledField(
                property_name=spec.property,
                field_type=field_type,
                start=start,
                end=end,
                mandatory=spec.mandatory,
                extract=_extractor_for(spec, field_type),
                setter=setter,
                transformer=transformer,
            )
        )

    if not compiled:
        raise MappingError(f"mapping '{mapping_id}' has no enabled fields")
    logger.debug(f"Compiled mapping '{mapping_id}' for {target_type.__name__} with {len(compiled)} fields")
    return CompiledMapping(mapping_id, target_type, compiled)


MappingLoader = Callable[[str], "Sequence[FieldSpec] | None"]


class MappingCache:
    """Process-wide cache of compiled mappings keyed by id and target type."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._compiled: dict[tuple[str, type], CompiledMapping] = {}

    def get_or_compile(self, mapping_id: str, target_type: type, loader: MappingLoader) -> CompiledMapping:
        """Return the cached mapping, compiling it with ``loader``'s fields on first use.

        Raises:
            MappingNotFoundError: if ``loader`` returns None
            MappingError: if the definition does not compile
        """
        key = (mapping_id, target_type)
        with self._lock:
            cached = self._compiled.get(key)
        if cached is not None:
            return cached

        fields = loader(mapping_id)
        if fields is None:
            raise MappingNotFoundError(mapping_id)
        compiled = compile_mapping(mapping_id, fields, target_type)
        with self._lock:
            return self._compiled.setdefault(key, compiled)

    def clear(self) -> None:
        with self._lock:
            self._compiled.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._compiled)


mapping_cache = MappingCache()
