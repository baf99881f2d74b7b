"""
Parley type tree: stable type identities and the assignability relation.

Overview
- identify(hint) maps a python type hint to a content-addressed integer
  identity. Two spellings of the same type (`Optional[int]` and `int | None`,
  two `list[str]` written in different modules) always get the same identity,
  so converter lookups keyed by identity are consistent.
- TypeRegistry.load(hints) builds the graph of TypeData entries for the given
  hints and every supertype reachable from them. The graph is read-only once
  loaded and is the input of is_assignable().
- is_assignable(a, b, registry) answers "can a value declared as A be used
  where B is expected".

Identities
- sentinels: DYNAMIC_ID = 0 (typing.Any), VOID_ID = 1 (None), NEVER_ID = 2
  (typing.Never / typing.NoReturn). No other type can collide with them.
- every other identity is an even integer >= 8 derived from a BLAKE2 digest of
  the type's qualified name and the identities of its type arguments.
- the nullable form `T | None` is `identify(T) + NULLABLE_OFFSET`; the offset
  is reversible with strip_nullable(). Sentinels are never shifted.

Entries (a closed tagged union, matched pairwise by is_assignable)
- NominalType: a class, possibly parameterized (`list[int]`, `Box[str]`).
- FunctionType: a callable shape (`Callable[[int], str]` or FunctionShape).
- DynamicType / VoidType / NeverType: the three sentinels.

Supported hints
- classes, parameterized generics (builtin and typing.Generic subclasses),
  `X | None` / Optional[X], Callable[[...], R], FunctionShape, TypeVar (its
  bound, or Any), Annotated[X, ...] (X), Any, None, Never/NoReturn.
- string forward references resolve to Any. Other unions and special forms
  raise RegistrationError.
"""
import collections.abc
import hashlib
import types
import typing
from types import MappingProxyType
from typing import NamedTuple

from .faults import *
from .utils import *

DYNAMIC_ID = 0
VOID_ID = 1
NEVER_ID = 2
NULLABLE_OFFSET = 1

_SENTINELS = frozenset({DYNAMIC_ID, VOID_ID, NEVER_ID})


def _digest(*parts):
    key = "\x1f".join(map(str, parts)).encode()
    value = int.from_bytes(hashlib.blake2b(key, digest_size=7).digest(), "big")
    # Even and above the sentinel range, so the nullable offset never collides.
    return (value << 1) + 8


def _qualname(cls):
    return f"{cls.__module__}.{cls.__qualname__}"


def strip_nullable(id, /):
    """
    Return the identity of the non-nullable form of `id`.
    """
    return id if id in _SENTINELS else id & ~NULLABLE_OFFSET


def nullable(id, /):
    """
    Return the identity of the nullable form of `id` (sentinels are unchanged).
    """
    return id if id in _SENTINELS else id | NULLABLE_OFFSET


class FunctionShape(metaclass=Introspectable):
    """
    Declared shape of a callable, including named parameters.

    typing.Callable can only describe positional parameters; FunctionShape
    fills the gap for converter transforms and callbacks declared as types.

    Parameters
    - returns: return type hint.
    - *positional: positional parameter type hints, in order.
    - required: how many leading positional parameters are required
      (defaults to all of them).
    - named: mapping of required named parameters to their type hints.
    - optional: mapping of optional named parameters to their type hints.
    """
    __introspectable__ = ("returns", "positional", "required", "named", "optional")

    def __init__(self, returns, /, *positional, required=Unset, named=MappingProxyType({}), optional=MappingProxyType({})):
        required = coalesce(required, len(positional))
        if not isinstance(required, int) or not 0 <= required <= len(positional):
            raise TypeError(f"{type(self).__typename__} 'required' must be between 0 and {len(positional)}")
        if set(named) & set(optional):
            raise ValueError(f"{type(self).__typename__} named parameters can not be both required and optional")
        self._returns = returns
        self._positional = tuple(positional)
        self._required = required
        self._named = tuple(sorted(dict(named).items()))
        self._optional = tuple(sorted(dict(optional).items()))

    def __key(self):
        return self._returns, self._positional, self._required, self._named, self._optional

    def __eq__(self, other):
        if not isinstance(other, FunctionShape):
            return NotImplemented
        return self.__key() == other.__key()

    def __hash__(self):
        return hash(self.__key())


def _normalize(hint):
    """
    Classify a hint into one of the tagged forms understood by the tree.

    Returns one of
    - ("dynamic",) / ("void",) / ("never",)
    - ("nullable", inner)
    - ("function", returns, positional, required, named, optional)
    - ("nominal", origin, arguments)
    """
    if hint is typing.Any:
        return ("dynamic",)
    if hint is None or hint is types.NoneType:
        return ("void",)
    if hint is typing.Never or hint is typing.NoReturn:
        return ("never",)
    if isinstance(hint, str | typing.ForwardRef):
        return ("dynamic",)
    if isinstance(hint, typing.TypeVar):
        return _normalize(hint.__bound__) if hint.__bound__ is not None else ("dynamic",)
    if isinstance(hint, FunctionShape):
        return ("function", hint.returns, hint.positional, hint.required, hint.named, hint.optional)

    origin = typing.get_origin(hint)
    arguments = typing.get_args(hint)

    if origin is typing.Union or origin is types.UnionType:
        members = [member for member in arguments if member is not types.NoneType]
        if len(members) != 1 or len(members) == len(arguments):
            raise RegistrationError(
                f"unsupported union {hint!r}: only 'T | None' unions have an identity",
                hint=f"register a converter for a concrete type instead of {hint!r}",
            )
        return ("nullable", members[0])
    if origin is typing.Annotated:
        return _normalize(arguments[0])
    if origin is collections.abc.Callable:
        if not arguments:
            return ("nominal", collections.abc.Callable, ())
        parameters, returns = arguments
        if parameters is Ellipsis:
            raise RegistrationError(
                f"unsupported callable {hint!r}: a variadic callable has no fixed shape",
                hint="describe it with FunctionShape(returns, *positional, ...)",
            )
        return ("function", returns, tuple(parameters), len(parameters), (), ())
    if isinstance(origin, type):
        return ("nominal", origin, arguments)
    if isinstance(hint, type):
        # A bare generic class stands for its dynamic parameterization (Box == Box[Any]).
        return ("nominal", hint, (typing.Any,) * len(getattr(hint, "__parameters__", ())))

    raise RegistrationError(
        f"unsupported type hint {hint!r}",
        hint="use a class, a parameterized generic, 'T | None', Callable[[...], R] or FunctionShape",
    )


def identify(hint, /):
    """
    Return the stable, content-addressed identity of a type hint.

    This does not need a loaded registry: converter registries key their
    converters by identify(converter.output) long before the tree is built.
    """
    match _normalize(hint):
        case ("dynamic",):
            return DYNAMIC_ID
        case ("void",):
            return VOID_ID
        case ("never",):
            return NEVER_ID
        case ("nullable", inner):
            return nullable(identify(inner))
        case ("nominal", origin, arguments):
            return _digest("nominal", _qualname(origin), *map(identify, arguments))
        case ("function", returns, positional, required, named, optional):
            return _digest(
                "function",
                identify(returns),
                tuple(map(identify, positional)),
                required,
                tuple((name, identify(type)) for name, type in named),
                tuple((name, identify(type)) for name, type in optional),
            )


def runtime_class(hint, /):
    """
    Return the class an instance must be of to satisfy `hint`, or None when
    the hint can not be checked with isinstance (functions, sentinels).
    """
    match _normalize(hint):
        case ("nullable", inner):
            return runtime_class(inner)
        case ("nominal", origin, _):
            return origin
    return None


def _display(hint):
    if isinstance(hint, type):
        return hint.__qualname__
    return repr(hint).replace("typing.", "").replace("collections.abc.", "")


def _supertypes(origin, arguments):
    """
    Return the direct supertypes of a (possibly parameterized) class, with the
    class's type parameters substituted by `arguments` where possible.
    """
    substitution = dict(zip(getattr(origin, "__parameters__", ()), arguments))
    bases = []
    # __orig_bases__ is looked up on the class itself: it is inherited otherwise.
    for base in origin.__dict__.get("__orig_bases__", origin.__bases__):
        if base is typing.Generic or base is typing.Protocol:
            continue
        if typing.get_origin(base) in (typing.Generic, typing.Protocol):
            continue
        if parameters := getattr(base, "__parameters__", ()):
            if typing.get_origin(base) is not None:
                base = base[tuple(substitution.get(parameter, typing.Any) for parameter in parameters)]
        bases.append(base)

    # Generic and Protocol roots still descend from object.
    if not bases and origin is not object:
        bases.append(object)
    return bases


class NominalType(NamedTuple):
    """A class type; `stripped` is its identity with type arguments erased."""
    id: int
    name: str
    stripped: int
    supertypes: tuple = ()
    arguments: tuple = ()
    nullable: bool = False


class FunctionType(NamedTuple):
    """A callable shape; `named`/`optional` hold (name, identity) pairs."""
    id: int
    name: str
    returns: int
    positional: tuple = ()
    required: int = 0
    named: tuple = ()
    optional: tuple = ()
    nullable: bool = False


class DynamicType(NamedTuple):
    id: int = DYNAMIC_ID
    name: str = "Any"


class VoidType(NamedTuple):
    id: int = VOID_ID
    name: str = "None"


class NeverType(NamedTuple):
    id: int = NEVER_ID
    name: str = "Never"


class TypeRegistry:
    """
    The loaded graph of TypeData entries, keyed by identity.

    Lifecycle
    - TypeRegistry() is empty and unloaded: every lookup raises RegistryNotLoadedError.
    - load(hints) builds the graph once (object and the root Callable type are
      always included). Loading again raises RegistrationError.
    - after loading the registry is read-only.
    """

    def __init__(self):
        self._types = Unset

    @property
    def loaded(self):
        return self._types is not Unset

    @property
    def object_id(self):
        return identify(object)

    @property
    def function_id(self):
        return identify(collections.abc.Callable)

    def load(self, hints=(), /):
        """
        Build the graph for `hints` and every supertype reachable from them.

        Returns the registry itself (fluent style).
        """
        if self.loaded:
            raise RegistrationError("type registry is already loaded", hint="create a new TypeRegistry instead")

        entries = {
            DYNAMIC_ID: DynamicType(),
            VOID_ID: VoidType(),
            NEVER_ID: NeverType(),
        }
        for hint in (object, collections.abc.Callable, *hints):
            self._build(hint, entries)
        self._types = MappingProxyType(entries)
        return self

    def _build(self, hint, entries):
        if (id := identify(hint)) in entries:
            return id

        match _normalize(hint):
            case ("nullable", inner):
                return self._nullable(self._build(inner, entries), entries)
            case ("nominal", origin, arguments):
                entry = NominalType(
                    id,
                    _display(hint),
                    _digest("nominal", _qualname(origin)),
                    tuple(self._build(base, entries) for base in _supertypes(origin, arguments)),
                    tuple(self._build(argument, entries) for argument in arguments),
                )
            case ("function", returns, positional, required, named, optional):
                entry = FunctionType(
                    id,
                    _display(hint),
                    self._build(returns, entries),
                    tuple(self._build(parameter, entries) for parameter in positional),
                    required,
                    tuple((name, self._build(type, entries)) for name, type in named),
                    tuple((name, self._build(type, entries)) for name, type in optional),
                )
        entries[id] = entry
        return id

    def _nullable(self, id, entries):
        if (target := nullable(id)) in entries:
            return target
        match entry := entries[id]:
            case NominalType():
                # The supertypes of `T | None` are the nullable forms of T's supertypes.
                entries[target] = entry._replace(
                    id=target,
                    name=f"{entry.name} | None",
                    supertypes=tuple(self._nullable(base, entries) for base in entry.supertypes),
                    nullable=True,
                )
            case FunctionType():
                entries[target] = entry._replace(id=target, name=f"({entry.name}) | None", nullable=True)
        return target

    def _entries(self):
        if not self.loaded:
            raise RegistryNotLoadedError("type registry was used before it was loaded")
        return self._types

    def __getitem__(self, id):
        try:
            return self._entries()[id]
        except KeyError:
            raise UnknownTypeError(
                f"no type with identity {id} in the registry",
                hint="make sure every declared type is passed to load()",
                identity=id,
            ) from None

    def __contains__(self, id):
        return id in self._entries()

    def __iter__(self):
        return iter(self._entries())

    def __len__(self):
        return len(self._entries())

    def resolve(self, hint, /):
        """
        Return the identity of `hint`, which must be part of the loaded graph.
        """
        return self[identify(hint)].id

    def is_assignable(self, a, b, /):
        """
        Can a value declared as `a` be used where `b` is expected.

        `a` and `b` are identities (int) or type hints.
        """
        a = a if type(a) is int else self.resolve(a)
        b = b if type(b) is int else self.resolve(b)
        return is_assignable(a, b, self)

    def __repr__(self):
        if not self.loaded:
            return "TypeRegistry(<not loaded>)"
        return f"TypeRegistry({", ".join(entry.name for entry in self._types.values())})"


def _accepts(a, b):
    # A nullable source only flows into a nullable target.
    return b.nullable or not a.nullable


def _is_function_assignable(a, b, registry):
    """
    Function subtyping, A <: B: A must accept every call B accepts.

    - A may not require more positional arguments than B guarantees, and must
      accept at least as many as B may pass.
    - parameters are contravariant, the return type is covariant.
    - every named parameter B accepts must be accepted by A with a wider type;
      A's required named parameters must be required by B too.

    The arity and named-parameter checks are deliberately read in the
    substitution direction (A stands in for B), the reverse of a literal
    "A requires at least what B requires" reading.
    """
    if a.required > b.required or len(a.positional) < len(b.positional):
        return False
    for mine, theirs in zip(a.positional, b.positional):
        if not is_assignable(theirs, mine, registry):
            return False

    accepted = dict(a.named) | dict(a.optional)
    required = dict(b.named)
    for name, theirs in b.named + b.optional:
        if name not in accepted or not is_assignable(theirs, accepted[name], registry):
            return False
    for name, _ in a.named:
        if name not in required:
            return False

    return is_assignable(a.returns, b.returns, registry) and _accepts(a, b)


def is_assignable(a_id, b_id, registry, /):
    """
    Decide whether a value declared as type `a_id` may be used where `b_id` is expected.

    Rules, first match wins
    1. identical identities                      → True
    2. either side is Never                      → False
    3. target is None (void)                     → True
    4. source is None (void)                     → False
    5. target is Any                             → True
    6. source is Any                             → False
    7. non-function source, function target      → False
    8. class → class: same generic class → covariant arguments + nullability;
       otherwise some direct supertype of the source is assignable
    9. function → class: only to object or Callable, with nullability
    10. class → function                         → False (see 7)
    11. function → function                      → standard subtyping
    12. anything else                            → RegistrationError
    """
    a = registry[a_id]
    b = registry[b_id]

    if a.id == b.id:
        return True

    match a, b:
        case (NeverType(), _) | (_, NeverType()):
            return False
        case (_, VoidType()):
            return True
        case (VoidType(), _):
            return False
        case (_, DynamicType()):
            return True
        case (DynamicType(), _):
            return False
        case (NominalType(), FunctionType()):
            return False
        case (NominalType(), NominalType()):
            if a.stripped == b.stripped:
                return all(
                    is_assignable(mine, theirs, registry)
                    for mine, theirs in zip(a.arguments, b.arguments)
                ) and _accepts(a, b)
            return any(is_assignable(base, b.id, registry) for base in a.supertypes)
        case (FunctionType(), NominalType()):
            return strip_nullable(b.id) in (registry.object_id, registry.function_id) and _accepts(a, b)
        case (FunctionType(), FunctionType()):
            return _is_function_assignable(a, b, registry)

    raise RegistrationError(f"unhandled assignability check between {a!r} and {b!r}")


__all__ = (
    "DYNAMIC_ID",
    "VOID_ID",
    "NEVER_ID",
    "NULLABLE_OFFSET",
    "FunctionShape",
    "NominalType",
    "FunctionType",
    "DynamicType",
    "VoidType",
    "NeverType",
    "TypeRegistry",
    "identify",
    "nullable",
    "strip_nullable",
    "runtime_class",
    "is_assignable",
)
