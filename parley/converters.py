r"""
Parley converters: turn the next token(s) of a StringView into typed values.

Overview
- Converter(convert, output): the base building block. `convert(view, context)`
  consumes from the view and returns a value, or None when the input is not
  valid for this converter. It may be a plain function or a coroutine
  function; `await converter(view, context)` always works.
- CombineConverter(converter, process, output): post-process the result of
  another converter (narrow, validate, map to another type).
- FallbackConverter(converters): try several converters in order, each on a
  private copy of the view; the first success is committed.
- SimpleConverter(provider, stringify, output): pick the closest element of a
  (possibly dynamic) collection by fuzzy matching the next word.

Built-ins
- string_converter   str        the next (quoted) word
- int_converter      int        IntConverter(minimum=..., maximum=...) for bounds
- float_converter    float      FloatConverter(...); "inf" and "nan" are rejected
- bool_converter     bool       y yes + 1 true / n no - 0 false (any case)
- snowflake_converter Snowflake 15-20 digit ids and <@id> <@!id> <@&id> <#id> mentions

Choices
- A converter may expose a finite list of Choice(name, value) pairs (at most
  MAX_CHOICES) that an interaction front-end can present. `choices` is None
  when the converter accepts open input.

Quick example:
    >>> from parley.view import StringView
    >>> positive = IntConverter(minimum=1)
    >>> await positive(StringView("42 rest"), None)
    42
    >>> await positive(StringView("-3"), None) is None
    True
"""
import difflib
import inspect
import math
import re
from collections.abc import Iterable, Mapping
from typing import NamedTuple

from .utils import *

MAX_CHOICES = 25


class Choice(NamedTuple):
    name: str
    value: object


async def _resolve(object):
    # Converters, processors and providers may be sync or async.
    if inspect.isawaitable(object):
        return await object
    return object


def _sanitize_choices(cls, choices, /):
    """
    Internal: normalize choices into a tuple of Choice (or None when absent).

    Accepted forms
    - Unset / None: no choices.
    - Mapping: name → value.
    - Iterable of Choice or (name, value) pairs.

    Names must be non-empty strings and unique.
    """
    if choices is Unset or choices is None:
        return None
    if isinstance(choices, Mapping):
        choices = choices.items()
    if not isinstance(choices, Iterable) or isinstance(choices, str):
        raise TypeError(f"{cls.__typename__} 'choices' must be a mapping or an iterable of pairs")

    sanitized = {}
    for choice in choices:
        try:
            name, value = choice
        except (TypeError, ValueError):
            raise TypeError(f"{cls.__typename__} 'choices' must contain (name, value) pairs") from None
        if not isinstance(name, str):
            raise TypeError(f"{cls.__typename__} choice names must be strings")
        elif not (name := name.strip()):
            raise ValueError(f"{cls.__typename__} choice names cannot be empty")
        elif name in sanitized:
            raise ValueError(f"{cls.__typename__} 'choices' cannot contain duplicates")
        sanitized[name] = Choice(name, value)

    if len(sanitized) > MAX_CHOICES:
        raise ValueError(f"{cls.__typename__} cannot have more than {MAX_CHOICES} choices")
    return tuple(sanitized.values())


def _sanitize_descr(cls, descr, /):
    if descr is Unset or descr is None:
        return None
    if not isinstance(descr, str):
        raise TypeError(f"{cls.__typename__} 'descr' must be a string")
    elif not (descr := descr.strip()):
        raise ValueError(f"{cls.__typename__} 'descr' cannot be empty")
    return descr


class Converter(metaclass=Introspectable):
    """
    Turn input from a StringView into a value of type `output`.

    Parameters
    - convert: (view, context) -> value | None, sync or async. Returning None
      means the input was not valid for this converter.
    - output: the type hint of the produced values; converter registries and
      the type tree key converters by it.
    - choices: optional finite Choice(name, value) list (see module notes).
    - descr: optional short description.
    """

    __introspectable__ = ("convert", "output", "choices", "descr")
    __displayable__ = ("output", "choices")

    def __init__(self, convert, /, output, *, choices=Unset, descr=Unset):
        if not callable(convert):
            raise TypeError(f"{type(self).__typename__} 'convert' must be callable")
        self._convert = convert
        self._output = output
        self._choices = _sanitize_choices(type(self), choices)
        self._descr = _sanitize_descr(type(self), descr)

    async def __call__(self, view, context, /):
        return await _resolve(self._convert(view, context))


class CombineConverter(Converter):
    """
    Run `converter`, then feed its result to `process(value, context)`.

    - a None from the wrapped converter short-circuits to None.
    - process may be async; its result (None included) is returned as-is.
    - whatever the wrapped converter consumed stays consumed, even when
      process rejects the value.
    - choices default to the wrapped converter's.
    """

    __introspectable__ = ("converter", "process")
    __displayable__ = ("converter", "output", "choices")

    def __init__(self, converter, process, /, output, *, choices=Unset, descr=Unset):
        if not isinstance(converter, Converter):
            raise TypeError(f"{type(self).__typename__} 'converter' must be a converter")
        if not callable(process):
            raise TypeError(f"{type(self).__typename__} 'process' must be callable")
        self._converter = converter
        self._process = process
        super().__init__(
            self.__combine,
            output,
            choices=converter.choices if choices is Unset else choices,
            descr=descr,
        )

    async def __combine(self, view, context):
        if (value := await self._converter(view, context)) is None:
            return None
        return await _resolve(self._process(value, context))


class FallbackConverter(Converter):
    """
    Try each of `converters` in order and return the first non-None result.

    Every attempt runs on view.copy(); only the successful attempt's index and
    history are written back to the real view. When every converter fails the
    view is left exactly where it was and the result is None.

    `output` defaults to the first converter's output. Without explicit
    choices, the choices are the union of the children's choices, or None
    when a child has none, two children map a name to different values, or
    the union is empty or larger than MAX_CHOICES.
    """

    __introspectable__ = ("converters", "output", "choices")
    __displayable__ = ("converters", "output")

    def __init__(self, converters, /, output=Unset, *, choices=Unset, descr=Unset):
        if not isinstance(converters, Iterable):
            raise TypeError(f"{type(self).__typename__} 'converters' must be iterable")
        if not (converters := tuple(converters)):
            raise ValueError(f"{type(self).__typename__} needs at least one converter")
        if not all(isinstance(converter, Converter) for converter in converters):
            raise TypeError(f"{type(self).__typename__} 'converters' must only contain converters")
        self._converters = converters
        super().__init__(
            self.__fallback,
            coalesce(output, converters[0].output),
            choices=choices,
            descr=descr,
        )

    @property
    def choices(self):
        if self._choices is not None:
            return self._choices

        merged = {}
        for converter in self._converters:
            if (choices := converter.choices) is None:
                return None
            for choice in choices:
                if merged.setdefault(choice.name, choice).value != choice.value:
                    return None

        if not merged or len(merged) > MAX_CHOICES:
            return None
        return tuple(merged.values())

    async def __fallback(self, view, context):
        for converter in self._converters:
            attempt = view.copy()
            if (value := await converter(attempt, context)) is not None:
                view.index, view.history = attempt.index, attempt.history
                return value
        return None


class SimpleConverter(Converter):
    """
    Pick an element of a collection by fuzzy matching the next quoted word.

    Parameters
    - provider: context -> iterable of elements (sync or async).
    - stringify: element -> label the user types.
    - output: type hint of the elements.
    - sensitivity: 0..100, minimum similarity (difflib ratio, in percent)
      a label needs to be picked. Matching ignores case.
    - reviver: optional (view, context) -> value | None called when nothing
      matches; the word read for matching is undone before it runs.
    """

    __introspectable__ = ("provider", "stringify", "sensitivity", "reviver")
    __displayable__ = ("output", "sensitivity", "choices")

    def __init__(self, provider, stringify, /, output, *, sensitivity=50, reviver=Unset, choices=Unset, descr=Unset):
        if not callable(provider):
            raise TypeError(f"{type(self).__typename__} 'provider' must be callable")
        if not callable(stringify):
            raise TypeError(f"{type(self).__typename__} 'stringify' must be callable")
        if not isinstance(sensitivity, int) or isinstance(sensitivity, bool):
            raise TypeError(f"{type(self).__typename__} 'sensitivity' must be an integer")
        if not 0 <= sensitivity <= 100:
            raise ValueError(f"{type(self).__typename__} 'sensitivity' must be between 0 and 100")
        if reviver is not Unset and not callable(reviver):
            raise TypeError(f"{type(self).__typename__} 'reviver' must be callable")
        self._provider = provider
        self._stringify = stringify
        self._sensitivity = sensitivity
        self._reviver = reviver
        super().__init__(self.__match, output, choices=choices, descr=descr)

    @classmethod
    def fixed(cls, elements, stringify, /, output, *, sensitivity=50, reviver=Unset, descr=Unset):
        """
        Build a SimpleConverter over a constant list of elements.

        With at most MAX_CHOICES elements the labels are also exposed as choices.
        """
        elements = tuple(elements)
        choices = Unset
        if len(elements) <= MAX_CHOICES:
            choices = [Choice(label, label) for label in dict.fromkeys(map(stringify, elements))]
        return cls(
            rename(lambda context: elements, "provider"),
            stringify,
            output,
            sensitivity=sensitivity,
            reviver=reviver,
            choices=choices,
            descr=descr,
        )

    async def __match(self, view, context):
        word = view.get_quoted_word()

        labels = {}
        for element in await _resolve(self._provider(context)):
            labels.setdefault(str(self._stringify(element)).lower(), element)

        if matches := difflib.get_close_matches(word.lower(), labels, 1, self._sensitivity / 100):
            return labels[matches[0]]

        view.undo()
        if self._reviver is Unset:
            return None
        return await _resolve(self._reviver(view, context))


class NumberConverter(Converter):
    """
    Shared bounds handling for numeric converters.

    `parse(word)` returns a number or None; values outside [minimum, maximum]
    (either bound optional) are rejected.
    """

    __introspectable__ = ("minimum", "maximum")
    __displayable__ = ("output", "minimum", "maximum", "choices")

    def __init__(self, parse, /, output, minimum=Unset, maximum=Unset, *, choices=Unset, descr=Unset):
        if minimum is not Unset and maximum is not Unset and minimum > maximum:
            raise ValueError(f"{type(self).__typename__} 'minimum' cannot be greater than 'maximum'")
        self._parse = parse
        self._minimum = coalesce(minimum)
        self._maximum = coalesce(maximum)
        super().__init__(self.__bounded, output, choices=choices, descr=descr)

    def __bounded(self, view, context):
        if (value := self._parse(view.get_quoted_word())) is None:
            return None
        if self._minimum is not None and value < self._minimum:
            return None
        if self._maximum is not None and value > self._maximum:
            return None
        return value


def _parse_int(word):
    if re.fullmatch(r"[-+]?[0-9]+", word):
        return int(word)
    return None


def _parse_float(word):
    try:
        value = float(word)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


class IntConverter(NumberConverter):
    def __init__(self, minimum=Unset, maximum=Unset, *, choices=Unset, descr=Unset):
        super().__init__(_parse_int, int, minimum, maximum, choices=choices, descr=descr)


class FloatConverter(NumberConverter):
    def __init__(self, minimum=Unset, maximum=Unset, *, choices=Unset, descr=Unset):
        super().__init__(_parse_float, float, minimum, maximum, choices=choices, descr=descr)


class Snowflake(int):
    """
    A platform entity id (user, role, channel, ...).
    """

    def __repr__(self):
        return f"Snowflake({int(self)})"


_TRUTHY = frozenset({"y", "yes", "+", "1", "true"})
_FALSY = frozenset({"n", "no", "-", "0", "false"})
_SNOWFLAKE = re.compile(r"<(?:@[!&]?|#)([0-9]{15,20})>|([0-9]{15,20})")


def _convert_string(view, context):
    return view.get_quoted_word()


def _convert_bool(view, context):
    word = view.get_quoted_word().lower()
    if word in _TRUTHY:
        return True
    if word in _FALSY:
        return False
    return None


def _convert_snowflake(view, context):
    if match := _SNOWFLAKE.fullmatch(view.get_quoted_word()):
        return Snowflake(match[1] or match[2])
    return None


string_converter = Converter(_convert_string, str)
int_converter = IntConverter()
float_converter = FloatConverter()
bool_converter = Converter(_convert_bool, bool)
snowflake_converter = Converter(_convert_snowflake, Snowflake)

DEFAULT_CONVERTERS = (
    string_converter,
    int_converter,
    float_converter,
    bool_converter,
    snowflake_converter,
)


__all__ = (
    # Types
    "Choice",
    "Converter",
    "CombineConverter",
    "FallbackConverter",
    "SimpleConverter",
    "NumberConverter",
    "IntConverter",
    "FloatConverter",
    "Snowflake",

    # Built-ins
    "string_converter",
    "int_converter",
    "float_converter",
    "bool_converter",
    "snowflake_converter",
    "DEFAULT_CONVERTERS",

    # Constants
    "MAX_CHOICES",
)
