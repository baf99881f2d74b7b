"""
Parley converter registry and the parse orchestrator.

Scope
- ConverterRegistry: converters keyed by the identity of the type they produce.
- assemble(): build a converter for a type nobody registered directly, out of
  the converters for its subtypes and supertypes.
- parse(): run the right converter for a declared type and turn its outcome
  into a value or a single family of catchable faults.

Fault mapping (parse)
- no converter for the declared type      → NoConverterError
- ParsingError raised while converting    → BadInputError (same message)
- converter returned None                 → ConversionFailedError (a BadInputError)
  carrying the attempted input text, the converter and the expected type
- anything else                           → propagates unchanged

Notes
- Registration is keyed by identify(converter.output), so `int | None` and
  `Optional[int]` share a slot. A later registration replaces an earlier one.
"""
from .converters import *
from .faults import *
from .typetree import *
from .utils import *


def _narrow(cls):
    @rename(f"narrow_to_{cls.__name__}")
    def narrow(value, context):
        return value if isinstance(value, cls) else None
    return narrow


class ConverterRegistry:
    """
    Mapping of type identity → converter.
    """

    def __init__(self, converters=(), /):
        self._converters = {}
        for converter in converters:
            self.add(converter)

    def add(self, converter, /):
        """
        Register `converter` for its output type (replacing any previous one).

        Returns the converter (decorator friendly).
        """
        if not isinstance(converter, Converter):
            raise TypeError("add() argument must be a converter")
        self._converters[identify(converter.output)] = converter
        return converter

    def get(self, hint, /):
        """
        Exact lookup by type; None when no converter produces exactly `hint`.
        """
        return self._converters.get(identify(hint))

    @property
    def outputs(self):
        return tuple(converter.output for converter in self._converters.values())

    def assemble(self, hint, types, /, **options):
        """
        Build a converter for `hint` out of the registered converters.

        - every converter whose output is assignable to `hint` is tried first,
          in registration order.
        - then every converter whose output is a supertype of `hint`, with its
          result narrowed to instances of hint's runtime class.

        Emits an AssembledConverterWarning (through trigger, with `options`) and
        returns the FallbackConverter, or None when nothing fits.
        """
        target = identify(hint)
        assignable = []
        supertypes = []

        for id, converter in self._converters.items():
            if types.is_assignable(id, target):
                assignable.append(converter)
            elif types.is_assignable(target, id):
                supertypes.append(converter)

        if (cls := runtime_class(hint)) is not None:
            narrowed = [
                CombineConverter(converter, _narrow(cls), hint)
                for converter in supertypes
            ]
        else:
            narrowed = []

        if not (converters := assignable + narrowed):
            return None

        trigger(AssembledConverterWarning(
            "assembled a converter for type %r out of %d registered %s" % (
                types[target].name,
                len(converters),
                "converter" if len(converters) == 1 else pluralize("converter"),
            ),
            expected=hint,
            converters=tuple(converters),
        ), **options)
        return FallbackConverter(converters, hint)

    def __contains__(self, hint):
        return identify(hint) in self._converters

    def __iter__(self):
        return iter(self._converters.values())

    def __len__(self):
        return len(self._converters)

    def __repr__(self):
        return f"ConverterRegistry({", ".join(map(repr, self._converters.values()))})"


def _attempted(view, start):
    # The text the converter consumed, or the next word when it consumed nothing.
    if text := view.buffer[start:view.index].strip():
        return text
    return view.copy().get_word()


async def parse(registry, context, view, declared, /, converter=Unset):
    """
    Convert the next argument of `view` to the `declared` type.

    Parameters
    - registry: ConverterRegistry used when no converter override is given.
    - context: opaque value handed to the converter.
    - view: StringView positioned before the argument.
    - declared: the declared type hint of the argument.
    - converter: explicit converter override, used unconditionally.

    Returns the converted value; see the module notes for faults.
    """
    if converter is Unset:
        converter = registry.get(declared)
    if converter is None:
        raise NoConverterError(
            "no converter found for type %r" % declared,
            expected=declared,
        )

    start = view.index
    try:
        value = await converter(view, context)
    except ParsingError as error:
        raise BadInputError(
            error.message,
            input=view.buffer[start:],
            index=start,
            expected=declared,
            converter=converter,
        ) from error

    if value is None:
        raise ConversionFailedError(
            "could not convert %r to type %r" % (input := _attempted(view, start), declared),
            input=input,
            index=start,
            expected=declared,
            converter=converter,
        )
    return value


__all__ = (
    "ConverterRegistry",
    "parse",
)
