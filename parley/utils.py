"""
Parley utilities (internal helpers, carefully exposed)

Scope
- Small building blocks shared by the lexer, the converter pipeline and the
  command tree, kept here so every layer renders and names things the same way.

Overview
- UnsetType / Unset
  • Singleton sentinel for “value not provided” when None is a meaningful value
    (a converter default of None, an argument default of None, ...).
  • Falsey, printable as "Unset", non-subclassable.

- coalesce(value, default=None)
  • Replace Unset with a concrete default; None/0/""/[] are preserved.

- rename(callable, name) / @rename("name")
  • Assign stable __name__/__qualname__ to generated callables for clean tracebacks.

- mirror("attr")
  • Read-only property exposing a private backing field (self._attr) as a copy.

- kebabcase(name) / ordinal(number) / pluralize(word)
  • Text helpers used by interaction option names and fault messages.

- Introspectable
  • Metaclass for descriptor-like objects (arguments, converters, commands):
    derives __typename__, mirrors __introspectable__ fields as read-only
    properties and provides __repr__/__rich_repr__.

Stability and contract
- Names in __all__ are re-exported by the package; anything else is internal.
"""
import builtins
import functools
import operator
import re
from collections.abc import Sequence, Mapping, Set
from typing import final


@final
class UnsetType:
    """
    Internal sentinel type representing a value that was not provided.

    Characteristics
    - Boolean-false: bool(Unset) is False, but it is distinct from None and 0.
    - Printable: repr(Unset) -> "Unset".
    - Non-subclassable and a per-process singleton.
    """

    def __or__(self, other, /):
        """
        Support PEP 604 unions in isinstance checks (e.g., str | Unset).
        """
        try:
            return type(self) | other
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


Unset = UnsetType()
"""
Internal sentinel for “not provided”.

Use Unset as a default when None is a valid, user-meaningful value; materialize
it with coalesce(value, default).
"""


def coalesce(object, default=None, /):
    """
    Resolve the Unset sentinel to a concrete default.

    Falsey values like None, 0, "" or [] are preserved; only Unset is replaced.

    Examples
    - coalesce("name", "fallback") -> "name"
    - coalesce(Unset, "fallback")  -> "fallback"
    - coalesce(None, "fallback")   -> None
    """
    return object if object is not Unset else default


def rename(*parameters):
    """
    Set a stable __name__/__qualname__ on a callable, or return a decorator
    that will do so later.

    Forms
    - rename(callable, name) -> callable (renamed in place)
    - rename(name)           -> decorator
    """
    match len(parameters):
        case 2:
            callable, name = parameters
            if not builtins.callable(callable):
                raise TypeError("rename() first argument must be callable")
            if not isinstance(name, str):
                raise TypeError("rename() second argument must be a string")
            try:
                callable.__qualname__ = name
                callable.__name__ = name
            except (AttributeError, TypeError):
                raise TypeError("rename() first argument must be a updatable callable") from None
            return callable
        case 1:
            name, = parameters
            if not isinstance(name, str):
                raise TypeError("@rename() argument must be a string")

            def wrapper(callable):
                if not builtins.callable(callable):
                    raise TypeError("@rename() must be applied to a callable")
                return rename(callable, name)

            return rename(wrapper, "rename")
        case _:
            raise TypeError("rename takes 1 to 2 arguments but %d were given" % len(parameters))


def _immortalize(object):
    """
    Recursively copy container values so callers can not mutate internal state.

    - named tuples → same named tuple type with processed fields
    - tuple → tuple, other non-string sequences → list of processed items
    - Mapping → dict with processed values (keys untouched)
    - frozenset → frozenset, other sets → set of processed items
    - anything else → returned as-is
    """
    if isinstance(object, tuple) and hasattr(object, "_fields"):
        return type(object)(*map(_immortalize, object))
    if isinstance(object, tuple):
        return tuple(map(_immortalize, object))
    if isinstance(object, Sequence) and not isinstance(object, str | bytes):
        return list(map(_immortalize, object))
    elif isinstance(object, Mapping):
        return dict(zip(object.keys(), map(_immortalize, object.values())))
    elif isinstance(object, frozenset):
        return frozenset(map(_immortalize, object))
    elif isinstance(object, Set):
        return set(map(_immortalize, object))
    return object


def mirror(name, /):
    """
    Define a read-only property that mirrors the private field "_{name}".

    Container values are returned as fresh copies (see _immortalize).
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    @rename(name)
    def getter(self):
        return _immortalize(getattr(self, "_" + name))

    return property(getter)


def kebabcase(name, /):
    """
    Turn a python parameter name into the kebab-case form used for interaction options.

    Both snake_case and camelCase are handled:
    - kebabcase("target_user") -> "target-user"
    - kebabcase("targetUser")  -> "target-user"
    """
    if not isinstance(name, str):
        raise TypeError("kebabcase() argument must be a string")
    name = re.sub(r"(?<=[^\W_])(?=[A-Z])", "-", name)
    return name.replace("_", "-").strip("-").lower()


@functools.cache
def ordinal(number, /):
    """
    Render 1 → "1st", 2 → "2nd", 11 → "11th" for position-first fault messages.
    """
    if 10 <= number % 100 <= 20:
        return f"{number}th"
    return f"{number}%s" % {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th")


@functools.cache
def pluralize(word, /):
    """
    Best-effort English pluralizer for the handful of nouns used in messages
    ("argument", "converter", "choice", "alias", ...). Casing is preserved.
    """
    if not isinstance(word, str):
        raise TypeError("pluralize() argument must be a string")
    if not word:
        return word
    lower = word.lower()
    if lower.endswith(("s", "sh", "ch", "x", "z")):
        plural = lower + "es"
    elif lower.endswith("y") and len(lower) > 1 and lower[-2] not in "aeiou":
        plural = lower[:-1] + "ies"
    else:
        plural = lower + "s"
    if word.isupper():
        return plural.upper()
    if word[:1].isupper():
        return plural[:1].upper() + plural[1:]
    return plural


class Introspectable(type):
    """
    Metaclass for parley's descriptor-like objects.

    Responsibilities
    - derive __typename__ from the class name ("ChatCommand" → "chat-command"),
      used as the subject of registration messages.
    - expose every name in __introspectable__ as a read-only property backed by
      the private "_{name}" field (see mirror()).
    - provide stable __repr__ and __rich_repr__ built from __displayable__
      (falls back to __introspectable__).
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                field: mirror(field) for field in namespace.get("__introspectable__", ())
                if field not in namespace
            },
        )

        # Only generate on classes that have no custom representation of their own or inherited.
        if self.__repr__ is object.__repr__:
            @rename("__repr__")
            def __repr__(self):
                return f"{type(self).__typename__}({
                    ", ".join(map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__()))
                })"
            self.__repr__ = __repr__

        if not hasattr(self, "__rich_repr__"):
            @rename("__rich_repr__")
            def __rich_repr__(self):
                for field in coalesce(type(self).__displayable__, type(self).__introspectable__):
                    yield field, getattr(self, field)
            self.__rich_repr__ = __rich_repr__

        return self


__all__ = (
    # Functions
    "coalesce",
    "rename",
    "mirror",
    "kebabcase",
    "ordinal",
    "pluralize",

    # Types
    "UnsetType",
    "Introspectable",

    # Constants
    "Unset",
)
