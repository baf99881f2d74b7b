"""
Parley faults (errors and warnings) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for every fault the lexer,
  the converter pipeline, the type registry and the command tree can raise.
- CommandException / CommandWarning: base types that carry a message plus a
  read-only options mapping (code, title, hint and context such as the input
  text or the expected type) and know how to render themselves with rich.
- trigger(): central entry point to surface a fault (respecting shell/fancy/colorful).
- getdoc(): optional description lookup for a code from the host application.

Taxonomy
- lexing        ParsingError, OutOfBoundsError
- conversion    BadInputError, ConversionFailedError, NoConverterError
- arguments     NotEnoughArgumentsError
- routing       CommandNotFoundError
- registration  RegistrationError, RegistryNotLoadedError, UnknownTypeError
- invocation    UncaughtCommandError
- warnings      AssembledConverterWarning

Propagation
- Lexing and conversion faults are raised as typed, catchable exceptions; parse()
  turns lexing faults into BadInputError so callers handle a single family.
- Registration faults are programmer errors: they are raised while the command
  tree is being built or loaded, never while an argument string is parsed.
- In non-shell mode trigger() raises; in shell mode faults are rendered via rich
  and the process exits unless the fault is deferred or carries fatal=False.

Host integration (__main__ attributes)
- __prog__: program name shown in headers (defaults to "parley").
- __styles__: style overrides for the palette below.
- __codes__: FaultCode → label overrides (see FaultCode.normalize).
- __docs__: FaultCode → documentation strings (see getdoc).
"""
import copy
import inspect
import sys
import warnings
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes used across parley (stable identifiers).

    grouping (by high-level domain)
    - lexing (131xx)        UNCLOSED_QUOTE, OUT_OF_BOUNDS
    - conversion (132xx)    BAD_INPUT, CONVERSION_FAILED, NO_CONVERTER
    - arguments (133xx)     NOT_ENOUGH_ARGUMENTS
    - routing (134xx)       COMMAND_NOT_FOUND
    - registration (135xx)  INVALID_REGISTRATION, REGISTRY_NOT_LOADED, UNKNOWN_TYPE
    - invocation (136xx)    UNCAUGHT_EXCEPTION
    - warnings (14xxx)      ASSEMBLED_CONVERTER
    """
    # --- lexing errors (131xx) ---
    UNCLOSED_QUOTE          = 13101
    OUT_OF_BOUNDS           = 13102

    # --- conversion errors (132xx) ---
    BAD_INPUT               = 13201
    CONVERSION_FAILED       = 13202
    NO_CONVERTER            = 13203

    # --- argument errors (133xx) ---
    NOT_ENOUGH_ARGUMENTS    = 13301

    # --- routing errors (134xx) ---
    COMMAND_NOT_FOUND       = 13401

    # --- registration errors (135xx) ---
    INVALID_REGISTRATION    = 13501
    REGISTRY_NOT_LOADED     = 13502
    UNKNOWN_TYPE            = 13503

    # --- invocation errors (136xx) ---
    UNCAUGHT_EXCEPTION      = 13601

    # --- warnings (14xxx) ---
    ASSEMBLED_CONVERTER     = 14201

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


def _render(fault, palette, title_style, message_style):
    """
    Build the rich renderable shared by exceptions and warnings.

    Layout
    - header: "[ prog — code | Title ]"
    - body: the message
    - hint: " → hint" (omitted when the fault carries no hint)
    Rendered inside a Panel when options["fancy"] is set.
    """
    main = __import__("__main__")
    options = fault.options
    colorful = options.get("colorful", False)

    styles = defaultdict(str, palette | getattr(main, "__styles__", {}))

    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if isinstance(fragment, Text):
            return fragment
        return Text(str(fragment), styles[style] if colorful else "")

    header = Text.assemble(
        "[ ",
        text(getattr(main, "__prog__", options.get("prog", "parley")), "prog-name"),
        " — ",
        text(options["code"].normalize(), "code"),
        " | ",
        text(str(options["title"]).title(), title_style),
        " ]"
    )
    parts = [text(fault.message, message_style)]
    if options.get("hint"):
        parts.append(Text.assemble(text(" → ", "hint-arrow"), text(options["hint"], "hint")))

    if options.get("fancy", False):
        return Panel(Group(*parts), title=header, title_align="left")
    return Group(header, *parts)


class CommandException(Exception):
    """
    Base class of every parley error.

    Subclasses declare their default code, title and hint as __code__,
    __title__ and __hint__ class attributes;
    any of them can be overridden per instance through keyword options. Extra
    keyword options are kept as read-only context (e.g. input=, expected=).
    """
    __code__ = FaultCode.BAD_INPUT
    __title__ = "command error"
    __hint__ = ""

    def __init__(self, message, /, **options):
        if not isinstance(message, str):
            raise TypeError(f"{type(self).__name__}() message must be a string")
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType({
            "code": type(self).__code__,
            "title": type(self).__title__,
            "hint": type(self).__hint__,
        } | options)

    def __getattr__(self, name):
        # Context options read as attributes: fault.input, fault.expected, ...
        try:
            return self.__dict__["options"][name]
        except KeyError:
            raise AttributeError(name) from None

    def __rich__(self):
        return _render(self, {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #00E5FF",  # neon cyan fault code
            "error-title": "bold #FF4DA6",  # friendly pinky title

            # body
            "error-message": "#C8C8D0",  # soft light gray message
            "hint-arrow": "#9CE19C dim",  # gentle green arrow
            "hint": "italic #9CE19C",  # gentle green hint text
        }, "error-title", "error-message")

    def __trigger__(self):
        if not self.options.get("shell", False):
            raise self from None
        console.print(self)
        if self.options.get("deferred", False) or not self.options.get("fatal", True):
            return
        sys.exit(1)

    def __replace__(self, *unused, **overrides):
        assert not unused, "unused arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class ParsingError(CommandException):
    __code__ = FaultCode.UNCLOSED_QUOTE
    __title__ = "malformed input"
    __hint__ = "close every opening quote, or escape it with a backslash"


class OutOfBoundsError(ParsingError, IndexError):
    __code__ = FaultCode.OUT_OF_BOUNDS
    __title__ = "end of input"
    __hint__ = "check eof before reading the current character"


class BadInputError(CommandException):
    __code__ = FaultCode.BAD_INPUT
    __title__ = "bad input"
    __hint__ = "check the value you passed for this argument"


class ConversionFailedError(BadInputError):
    __code__ = FaultCode.CONVERSION_FAILED
    __title__ = "conversion failed"


class NotEnoughArgumentsError(BadInputError):
    __code__ = FaultCode.NOT_ENOUGH_ARGUMENTS
    __title__ = "not enough arguments"
    __hint__ = "pass a value for every required argument"


class NoConverterError(CommandException):
    __code__ = FaultCode.NO_CONVERTER
    __title__ = "no converter"
    __hint__ = "register a converter for this type, or pass one explicitly with Argument(converter=...)"


class CommandNotFoundError(CommandException):
    __code__ = FaultCode.COMMAND_NOT_FOUND
    __title__ = "unknown command"


class UncaughtCommandError(CommandException):
    __code__ = FaultCode.UNCAUGHT_EXCEPTION
    __title__ = "command raised"


class RegistrationError(CommandException):
    __code__ = FaultCode.INVALID_REGISTRATION
    __title__ = "invalid registration"


class RegistryNotLoadedError(RegistrationError):
    __code__ = FaultCode.REGISTRY_NOT_LOADED
    __title__ = "registry not loaded"
    __hint__ = "call load() once every converter and command is registered"


class UnknownTypeError(RegistrationError, KeyError):
    __code__ = FaultCode.UNKNOWN_TYPE
    __title__ = "unknown type"

    def __str__(self):
        return self.message


class CommandWarning(Warning):
    """
    Base class of every parley warning; same options model as CommandException.
    """
    __code__ = FaultCode.ASSEMBLED_CONVERTER
    __title__ = "command warning"
    __hint__ = ""

    def __init__(self, message, /, **options):
        if not isinstance(message, str):
            raise TypeError(f"{type(self).__name__}() message must be a string")
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType({
            "code": type(self).__code__,
            "title": type(self).__title__,
            "hint": type(self).__hint__,
        } | options)

    def __rich__(self):
        return _render(self, {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #FFB400",  # amber fault code for warnings
            "warning-title": "bold #FFC2E0",  # softer pinky title for warnings

            # body
            "warning-message": "#D6D6DE",  # slightly lighter gray body
            "hint-arrow": "#B8EFAF dim",  # softer green arrow
            "hint": "italic #B8EFAF",  # softer green hint text
        }, "warning-title", "warning-message")

    def __trigger__(self):
        if not self.options.get("shell", False):
            return warnings.warn(self, stacklevel=len(inspect.stack()))
        console.print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class AssembledConverterWarning(CommandWarning):
    __code__ = FaultCode.ASSEMBLED_CONVERTER
    __title__ = "assembled converter"
    __hint__ = "register a converter for this exact type to silence this warning"


class CommandExit(ExceptionGroup):
    """
    Aggregate of the faults collected while running in deferred mode.
    """

    def __new__(cls, exceptions, **options):
        return super().__new__(cls, "bad exit", tuple(exceptions))

    def __init__(self, exceptions, **options):
        super().__init__("bad exit", tuple(exceptions))
        self.options = MappingProxyType(options)

    def __rich__(self):
        renders = [copy.replace(exception, fancy=False) for exception in self.exceptions]
        header = Text.assemble("[ ", getattr(__import__("__main__"), "__prog__", "parley"), " — Bad Exit ]")
        if self.options.get("fancy", False):
            return Panel(Group(*renders), title=header, title_align="left")
        return Group(header, *renders)

    def __trigger__(self):
        if not self.options.get("shell", False):
            raise self from None
        console.print(self)
        sys.exit(1)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.exceptions, **{**self.options, **overrides})


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide __trigger__ and __replace__ methods (see base classes).
    - options are merged into the fault via copy.replace(fault, **options) before triggering.
    - in shell mode, rendering happens via rich console; otherwise, exceptions are
      raised and warnings go through warnings.warn.
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    copy.replace(fault, **options).__trigger__()


def getdoc(code, /):
    """
    optional documentation fetch for a fault code from __main__.__docs__.

    returns None when the host does not document the code.
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be a fault-code")
    return getattr(__import__("__main__"), "__docs__", {}).get(code)


__all__ = (
    "FaultCode",
    "CommandException",
    "ParsingError",
    "OutOfBoundsError",
    "BadInputError",
    "ConversionFailedError",
    "NotEnoughArgumentsError",
    "NoConverterError",
    "CommandNotFoundError",
    "UncaughtCommandError",
    "RegistrationError",
    "RegistryNotLoadedError",
    "UnknownTypeError",
    "CommandWarning",
    "AssembledConverterWarning",
    "CommandExit",
    "trigger",
    "getdoc",
)
