"""
Row mapper that fills new instances of a class from result columns.

Writable properties are discovered once, when the mapper is created:

- ``property`` objects whose setter takes exactly one argument, typed by the
  setter's parameter annotation
- annotated class attributes (including dataclass fields)

Mapping policy is declared with ``typing.Annotated`` metadata on the setter
parameter or the attribute annotation, or fluently on the mapper::

    class User:
        id: int
        name: Annotated[str, Name('username')]
        uuid: Annotated[UUID | None, MapWith(StringToUUID)]
        cache: Annotated[dict, Skip()]

    mapper = BeanRowMapper(User).column('name', 'login').skip('uuid')

Columns are matched to properties case-insensitively by label. Columns with
no matching property are ignored.

For SQL NULL read into a non-optional ``int``, ``float`` or ``bool`` the
mapper uses 0, 0.0 or False (``default_null_for_primitives``, on by
default) or raises TypeMismatchError. Beware: writing such a bean back to
the database stores the default instead of NULL.

This mapper is built for convenience. Prefer a hand-written row mapper
where throughput matters.
"""
import enum
import inspect
import logging
import threading
import types
import typing
import uuid
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Annotated, Any, Generic, Protocol, Self, TypeVar, Union

from sqlbean.exceptions import BeanInstantiationError, ConversionError
from sqlbean.exceptions import TypeMismatchError
from sqlbean.statement import ResultSet, get_column_name
from sqlbean.types import get_result_set_value

logger = logging.getLogger(__name__)

__all__ = [
    'BeanRowMapper',
    'Converter',
    'Name',
    'MapWith',
    'Skip',
    'PropertyBinding',
    'StringToUUID',
    'PRIMITIVE_DEFAULTS',
    'get_converter',
    'register_converter',
    'introspect',
]

T = TypeVar('T')
S_contra = TypeVar('S_contra', contravariant=True)
R_co = TypeVar('R_co', covariant=True)

PRIMITIVE_DEFAULTS: dict[type, Any] = {
    int: 0,
    float: 0.0,
    bool: False,
}


class Converter(Protocol[S_contra, R_co]):
    """Converts a column value into the type of the target property.

    Instances are shared by every mapper in the process, so they must be
    stateless.
    """

    def __call__(self, value: S_contra) -> R_co:
        ...


@dataclass(frozen=True)
class Name:
    """Binds a property to a column whose label differs from its name."""
    column: str


@dataclass(frozen=True)
class MapWith:
    """Applies a converter class to the column value before assignment."""
    converter: type


@dataclass(frozen=True)
class Skip:
    """Excludes a property from mapping."""


class StringToUUID:
    """Converts textual (or 16-byte) UUIDs."""

    def __call__(self, value: str | bytes | None) -> uuid.UUID | None:
        if value is None or isinstance(value, uuid.UUID):
            return value
        try:
            if isinstance(value, (bytes, bytearray)) and len(value) == 16:
                return uuid.UUID(bytes=bytes(value))
            if isinstance(value, (bytes, bytearray)):
                value = value.decode()
            return uuid.UUID(value)
        except (TypeError, ValueError, AttributeError) as e:
            raise ConversionError(f'Cannot convert {value!r} to UUID: {e}') from e


# Process-wide converter instances, keyed by converter class. Append-only.
_converter_registry: dict[type, Converter] = {}
_converter_registry_lock = threading.RLock()


def register_converter(converter: Converter) -> None:
    """Register a converter instance for its class."""
    with _converter_registry_lock:
        _converter_registry[type(converter)] = converter


def get_converter(converter_cls: type) -> Converter:
    """Return the shared instance of a converter class, creating it once."""
    with _converter_registry_lock:
        converter = _converter_registry.get(converter_cls)
        if converter is None:
            try:
                converter = converter_cls()
            except Exception as e:
                raise RuntimeError(
                    f'Cannot instantiate converter {converter_cls.__qualname__}') from e
            _converter_registry[converter_cls] = converter
            logger.debug(f'Registered converter {converter_cls.__qualname__}')
        return converter


@dataclass(frozen=True)
class PropertyBinding:
    """A writable property and how a column value reaches it."""
    name: str
    type: Any
    setter: Callable[[Any, Any], None]
    optional: bool = False
    column: str | None = None
    converter: type | None = None

    @property
    def key(self) -> str:
        """Lower-cased column label this property binds to."""
        return (self.column or self.name).lower()

    @property
    def primitive(self) -> bool:
        return not self.optional and self.type in PRIMITIVE_DEFAULTS


_NONE_TYPE = type(None)


def _is_union(tp: Any) -> bool:
    return typing.get_origin(tp) in {Union, types.UnionType}


def _unwrap(annotation: Any) -> tuple[Any, bool, tuple]:
    """Split an annotation into (base type, optional, Annotated metadata)."""
    metadata: tuple = ()
    if typing.get_origin(annotation) is Annotated:
        metadata = annotation.__metadata__
        annotation = typing.get_args(annotation)[0]

    optional = False
    if _is_union(annotation):
        args = [a for a in typing.get_args(annotation) if a is not _NONE_TYPE]
        optional = len(args) < len(typing.get_args(annotation))
        if len(args) == 1:
            inner = args[0]
            if typing.get_origin(inner) is Annotated:
                metadata = metadata + inner.__metadata__
                inner = typing.get_args(inner)[0]
            annotation = inner
        else:
            annotation = Union[tuple(args)]
    if annotation is Any or annotation is _NONE_TYPE:
        optional = True
    return annotation, optional, metadata


def _type_hints(obj: Any) -> dict[str, Any]:
    try:
        return typing.get_type_hints(obj, include_extras=True)
    except (NameError, TypeError) as e:
        logger.debug(f'Cannot resolve annotations of {obj!r}: {e}')
        return {}


def _apply_markers(binding: PropertyBinding, metadata: tuple) -> PropertyBinding | None:
    for marker in metadata:
        if isinstance(marker, Skip) or marker is Skip:
            return None
        if isinstance(marker, Name):
            binding = replace(binding, column=marker.column)
        elif isinstance(marker, MapWith):
            binding = replace(binding, converter=marker.converter)
    return binding


def _property_binding(name: str, prop: property, hints: dict[str, Any]) -> PropertyBinding | None:
    fset = prop.fset
    try:
        params = list(inspect.signature(fset).parameters.values())
    except (TypeError, ValueError):
        return None
    # self plus exactly one value parameter
    if len(params) != 2 or params[1].kind not in {inspect.Parameter.POSITIONAL_ONLY,
                                                  inspect.Parameter.POSITIONAL_OR_KEYWORD}:
        return None

    annotation = _type_hints(fset).get(params[1].name)
    if annotation is None and prop.fget is not None:
        annotation = _type_hints(prop.fget).get('return')
    if annotation is None:
        annotation = hints.get(name, Any)

    base, optional, metadata = _unwrap(annotation)
    binding = PropertyBinding(name, base, lambda bean, value: fset(bean, value), optional)
    return _apply_markers(binding, metadata)


def _attribute_binding(name: str, annotation: Any) -> PropertyBinding | None:
    if typing.get_origin(annotation) is typing.ClassVar or annotation is typing.ClassVar:
        return None
    base, optional, metadata = _unwrap(annotation)
    binding = PropertyBinding(name, base, lambda bean, value: setattr(bean, name, value), optional)
    return _apply_markers(binding, metadata)


def introspect(target: type) -> list[PropertyBinding]:
    """Discover the writable, non-skipped properties of a class.
    """
    hints = _type_hints(target)
    bindings: list[PropertyBinding] = []
    seen: set[str] = set()

    for name in dir(target):
        if name.startswith('_'):
            continue
        attr = inspect.getattr_static(target, name)
        if isinstance(attr, property):
            seen.add(name)
            if attr.fset is None:
                continue
            binding = _property_binding(name, attr, hints)
            if binding is not None:
                bindings.append(binding)

    for name, annotation in hints.items():
        if name.startswith('_') or name in seen:
            continue
        binding = _attribute_binding(name, annotation)
        if binding is not None:
            bindings.append(binding)

    return bindings


def _is_compatible(value: Any, binding: PropertyBinding) -> bool:
    tp = binding.type
    if value is None:
        return not binding.primitive
    if tp is Any or tp is object:
        return True
    if _is_union(tp):
        return any(_is_instance(value, member) for member in typing.get_args(tp))
    return _is_instance(value, tp)


def _is_instance(value: Any, tp: Any) -> bool:
    origin = typing.get_origin(tp)
    if origin is not None:
        tp = origin
    if not isinstance(tp, type):
        return True
    if tp is bool:
        return isinstance(value, bool)
    if tp is int:
        return isinstance(value, int) and not isinstance(value, bool)
    if tp is float:
        # int widens to float
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    return isinstance(value, tp)


def _coerce_enum(value: Any, tp: type[enum.Enum]) -> Any:
    try:
        return tp(value)
    except ValueError:
        pass
    if isinstance(value, str) and value in tp.__members__:
        return tp[value]
    return value


class BeanRowMapper(Generic[T]):
    """Maps each row to a new instance of ``target``.

    ``target`` must be instantiable without arguments.
    """

    def __init__(self, target: type[T], default_null_for_primitives: bool = True) -> None:
        if target is None:
            raise TypeError('The target class cannot be None.')
        self.target = target
        self.default_null_for_primitives = default_null_for_primitives
        self.bindings = introspect(target)
        self._index()

    def _index(self) -> None:
        self._by_column: dict[str, PropertyBinding] = {}
        for binding in self.bindings:
            self._by_column.setdefault(binding.key, binding)

    def _update(self, prop: str, **changes: Any) -> Self:
        for i, binding in enumerate(self.bindings):
            if binding.name == prop:
                self.bindings[i] = replace(binding, **changes)
                self._index()
                return self
        raise AttributeError(f'{self.target.__qualname__} has no writable property {prop!r}')

    def column(self, prop: str, column: str) -> Self:
        """Bind ``prop`` to the column labelled ``column``."""
        return self._update(prop, column=column)

    def convert(self, prop: str, converter_cls: type) -> Self:
        """Apply ``converter_cls`` to the values mapped into ``prop``."""
        return self._update(prop, converter=converter_cls)

    def skip(self, prop: str) -> Self:
        """Exclude ``prop`` from mapping."""
        before = len(self.bindings)
        self.bindings = [b for b in self.bindings if b.name != prop]
        if len(self.bindings) == before:
            raise AttributeError(f'{self.target.__qualname__} has no writable property {prop!r}')
        self._index()
        return self

    def set_default_null_for_primitives(self, value: bool) -> Self:
        self.default_null_for_primitives = value
        return self

    def add_converter(self, converter: Converter) -> Self:
        """Register a converter instance for this and every other mapper."""
        register_converter(converter)
        return self

    def binding_for(self, column: str) -> PropertyBinding | None:
        """Return the property a column label maps to, if any."""
        return self._by_column.get(column.lower())

    def new_instance(self) -> T:
        try:
            return self.target()
        except Exception as e:
            raise BeanInstantiationError(
                f'Cannot create an instance of {self.target.__qualname__}. '
                'Can it be created without arguments?') from e

    def __call__(self, rs: ResultSet, row_number: int) -> T:
        bean = self.new_instance()
        metadata = rs.metadata
        for i in range(1, metadata.column_count + 1):
            binding = self.binding_for(get_column_name(metadata, i))
            if binding is None:
                continue
            required = binding.type if isinstance(binding.type, type) else None
            value = get_result_set_value(rs, i, required)
            self.set_value(bean, binding, value)
        return bean

    def set_value(self, bean: T, binding: PropertyBinding, value: Any) -> None:
        """Assign one column value to a property of ``bean``.

        Raises
            TypeMismatchError: If the value cannot be assigned to the property
            ConversionError: If the property's converter fails
        """
        if value is None and binding.primitive:
            if not self.default_null_for_primitives:
                raise TypeMismatchError(
                    f'Cannot set None to non-optional {binding.type.__name__} '
                    f'property {binding.name!r}.')
            value = PRIMITIVE_DEFAULTS[binding.type]

        if binding.converter is not None:
            converter = get_converter(binding.converter)
            try:
                value = converter(value)
            except ConversionError:
                raise
            except Exception as e:
                raise ConversionError(
                    f'{binding.converter.__qualname__} failed on {value!r}: {e}') from e
        elif (value is not None and isinstance(binding.type, type)
              and issubclass(binding.type, enum.Enum)):
            value = _coerce_enum(value, binding.type)

        if not _is_compatible(value, binding):
            raise TypeMismatchError(
                f'Cannot assign {type(value).__name__} value {value!r} to property '
                f'{binding.name!r} of type {getattr(binding.type, "__name__", binding.type)}.')

        try:
            binding.setter(bean, value)
        except Exception as e:
            raise RuntimeError(
                f'Setting property {binding.name!r} of {type(bean).__qualname__} failed') from e
