"""
Parley command layer: declare chat commands, route input to them, run them.

What this module provides
- Argument: static descriptor of one command parameter, used as the default
  value of a callback parameter.
- ChatGroup: a named node that only holds children (`/admin ...`).
- ChatCommand: a callable leaf (which may also hold children) built from a
  python callback whose first parameter receives the invocation context.
- Commands: the root. It owns the converter registry, the type registry and
  the runtime flags, and runs the whole pipeline.
- command(...) / group(...): factories (command() doubles as a decorator).

Pipeline (Commands.execute)
1. resolve: walk the tree one word at a time (StringView.get_word) until no
   child matches; unknown first word → CommandNotFoundError with suggestions.
2. parse: convert each declared argument in order with the converter resolved
   at load() time. Parsing stops early when only whitespace is left; missing
   required arguments → NotEnoughArgumentsError, missing optional ones take
   their default. A value that fails to convert is always an error, even for
   an optional argument.
3. invoke: pre hooks → callback(context, *arguments) → post hooks. Exceptions
   that are not parley faults are wrapped in UncaughtCommandError.

Interaction path (Commands.execute_options)
- Values arrive already split into named options (kebab-case parameter names).
  Each present value is parsed from a rest-block StringView over str(value).

Lifecycle
- Build the tree (add / @command / group), register extra converters, then
  call load() once. load() builds the type registry, checks converter
  overrides and picks a converter for every argument. The tree and the
  registry are frozen afterwards.

Quick start
    from parley import Commands, Argument, Snowflake

    commands = Commands()

    @commands.command(descr="ban a member")
    async def ban(context, user=Argument(Snowflake), reason=Argument(str, default="no reason")):
        ...

    commands.load()
    await commands.execute('ban 123456789012345678 "spamming links"', context)
"""
import builtins
import copy
import difflib
import inspect
import re
from collections.abc import Iterable, Mapping
from inspect import Parameter
from types import MappingProxyType
from typing import NamedTuple

from .converters import Converter, DEFAULT_CONVERTERS, _sanitize_choices
from .faults import *
from .hooks import *
from .registry import *
from .typetree import *
from .utils import *
from .view import *

_NAME = re.compile(r"[-_\w]{1,32}")
_POSITIONAL = (Parameter.POSITIONAL_ONLY, Parameter.POSITIONAL_OR_KEYWORD)


async def _resolve(object):
    if inspect.isawaitable(object):
        return await object
    return object


def _sanitize_name(cls, name, /):
    if not isinstance(name, str):
        raise TypeError(f"{cls.__typename__} names must be strings")
    if not _NAME.fullmatch(name) or name != name.lower():
        raise RegistrationError(
            f"invalid {cls.__typename__} name {name!r}",
            hint="names are 1 to 32 lowercase letters, digits, '-' or '_'",
            input=name,
        )
    return name


def _sanitize_descr(cls, descr, /, *, limit=None):
    if descr is Unset or descr is None:
        return None
    if not isinstance(descr, str):
        raise TypeError(f"{cls.__typename__} 'descr' must be a string")
    if not (descr := descr.strip()) or (limit is not None and len(descr) > limit):
        raise RegistrationError(
            f"{cls.__typename__} description must be non-empty and at most {limit} characters"
            if limit is not None else f"{cls.__typename__} description cannot be empty",
            input=descr,
        )
    return descr


class Argument(metaclass=Introspectable):
    """
    Static descriptor of a command parameter.

    Used as the default value of a callback parameter:

        def ban(context, user=Argument(Snowflake), days=Argument(int, default=0)): ...

    Parameters
    - type: declared type hint of the value.
    - default: value used when the argument is not given; the argument is
      optional iff a default is provided (None is a valid default).
    - descr: short description, 1 to 100 characters.
    - choices: mapping of choice name → value offered to interaction front-ends
      (takes precedence over the converter's own choices).
    - converter: converter override; its output must be assignable to `type`.
    - name: interaction option name (defaults to the kebab-case parameter name).
    """

    __introspectable__ = ("type", "default", "descr", "choices", "converter", "name")
    __displayable__ = ("type", "default", "descr", "name")

    def __init__(self, type, /, default=Unset, descr=Unset, choices=Unset, converter=Unset, name=Unset):
        cls = builtins.type(self)
        identify(type)  # unsupported hints fail at declaration time

        if converter is not Unset and not isinstance(converter, Converter):
            raise TypeError(f"{cls.__typename__} 'converter' must be a converter")
        if choices is not Unset and not isinstance(choices, Mapping):
            raise TypeError(f"{cls.__typename__} 'choices' must be a mapping")
        if name is not Unset:
            name = _sanitize_name(cls, name)

        self._type = type
        self._default = default
        self._descr = _sanitize_descr(cls, descr, limit=100)
        self._choices = _sanitize_choices(cls, choices)
        self._converter = coalesce(converter)
        self._name = coalesce(name)

    @property
    def optional(self):
        return self._default is not Unset


class BoundArgument(NamedTuple):
    """An Argument attached to a callback parameter."""
    name: str
    key: str
    argument: Argument


class ChatTree:
    """
    Shared behaviour of everything that holds child commands.

    Children are indexed by name and by every alias; `children` lists each
    child once, in the order they were added.
    """

    def _setup(self):
        self._children = {}
        self.hooks = Hooks()

    @property
    def children(self):
        return tuple(dict.fromkeys(self._children.values()))

    def _ancestry(self):
        node = self
        while node is not None:
            yield node
            node = getattr(node, "parent", None)

    def add(self, child, /):
        """
        Attach `child` below this node and forward its hooks to ours.

        Raises RegistrationError on duplicate names/aliases, on re-attachment,
        on cycles and once the tree has been loaded.
        """
        if not isinstance(child, ChatComponent):
            raise TypeError("add() argument must be a chat group or a chat command")
        if getattr(self.root, "loaded", False):
            raise RegistrationError(
                "can not add %s %r after the commands were loaded" % (type(child).__typename__, child.name),
                hint="add every command before calling load()",
            )
        if child.parent is not None:
            raise RegistrationError(f"{type(child).__typename__} {child.name!r} already has a parent")
        if any(node is child for node in self._ancestry()):
            raise RegistrationError(f"{type(child).__typename__} {child.name!r} can not be its own descendant")

        for name in (child.name, *child.aliases):
            if name in self._children:
                route = " ".join(filter(None, (getattr(self, "full_name", ""), name)))
                raise RegistrationError(
                    f"command with name {route!r} already exists",
                    input=name,
                )

        child._parent = self
        for name in (child.name, *child.aliases):
            self._children[name] = child
        child.hooks.forward(self.hooks)
        return child

    def walk(self):
        """
        Yield every ChatCommand of this subtree, depth first.
        """
        if isinstance(self, ChatCommand):
            yield self
        for child in self.children:
            yield from child.walk()

    def get_command(self, view, /):
        """
        Consume command names from `view` and return the deepest matching command.

        An unknown word is given back (view.undo()) and ends the descent.
        Returns None when no command matched.
        """
        name = view.get_word()
        if (child := self._children.get(name)) is None:
            view.undo()
            return None
        if (found := child.get_command(view)) is None and isinstance(child, ChatCommand):
            return child
        return found

    def command(self, callback=Unset, /, **options):
        """
        Create a ChatCommand under this node (direct call or decorator).
        """
        @rename("command")
        def wrapper(callback, /):
            return self.add(ChatCommand(callback, **options))

        return wrapper(callback) if callback is not Unset else wrapper

    def group(self, name, /, **options):
        """
        Create and attach a ChatGroup under this node.
        """
        return self.add(ChatGroup(name, **options))


class ChatComponent(ChatTree, metaclass=Introspectable):
    """
    A named node of the command tree (group or command).
    """

    __introspectable__ = ("name", "descr", "aliases")
    __displayable__ = ("name", "descr", "aliases", "children")

    def _setup(self, name, descr, aliases, children):
        super()._setup()
        cls = type(self)
        self._name = _sanitize_name(cls, name)
        self._descr = _sanitize_descr(cls, descr)
        self._parent = None

        if not isinstance(aliases, Iterable) or isinstance(aliases, str):
            raise TypeError(f"{cls.__typename__} 'aliases' must be an iterable of strings")
        sanitized = []
        for alias in aliases:
            if (alias := _sanitize_name(cls, alias)) == self._name or alias in sanitized:
                raise RegistrationError(f"{cls.__typename__} {self._name!r} has duplicated alias {alias!r}")
            sanitized.append(alias)
        self._aliases = tuple(sanitized)

        for child in children:
            self.add(child)

    @property
    def parent(self):
        return self._parent

    @property
    def root(self):
        *_, root = self._ancestry()
        return root

    @property
    def full_name(self):
        if isinstance(self._parent, ChatComponent):
            return f"{self._parent.full_name} {self._name}"
        return self._name


class ChatGroup(ChatComponent):
    """
    A node that only groups child commands under a shared name.
    """

    def __init__(self, name, /, descr=Unset, aliases=(), children=()):
        self._setup(name, descr, aliases, children)


class ChatCommand(ChatComponent):
    """
    A runnable command wrapping `callback(context, *arguments)`.

    The callback's first parameter receives the context; every following
    parameter must be positional and carry an Argument default. Required
    arguments can not follow optional ones.

    Defaults
    - name: the kebab-case callback name.
    - descr: the first line of the callback's docstring.
    """

    __introspectable__ = ("callback", "arguments")
    __displayable__ = ("name", "descr", "aliases", "arguments", "children")

    def __init__(self, callback, /, name=Unset, descr=Unset, aliases=(), children=()):
        if not callable(callback):
            raise TypeError("chat-command callback must be callable")
        if descr is Unset and (doc := inspect.getdoc(callback)):
            descr = doc.splitlines()[0]

        self._callback = callback
        self._converters = Unset
        self._setup(coalesce(name, kebabcase(getattr(callback, "__name__", ""))), descr, aliases, children)
        self._arguments = self._load_arguments(callback)

    def _load_arguments(self, callback):
        cls = type(self)
        try:
            parameters = list(inspect.signature(callback).parameters.values())
        except (TypeError, ValueError):
            raise TypeError(f"{cls.__typename__} callback must have an inspectable signature") from None

        if not parameters or parameters[0].kind not in _POSITIONAL:
            raise RegistrationError(
                f"callback of command {self.full_name!r} must take the context as first parameter",
            )

        arguments = []
        optional = None
        for position, parameter in enumerate(parameters[1:], 1):
            if parameter.kind not in _POSITIONAL or not isinstance(argument := parameter.default, Argument):
                raise RegistrationError(
                    "%s parameter %r of command %r must be positional and declared with Argument(...)" % (
                        ordinal(position), parameter.name, self.full_name,
                    ),
                    hint=f"write '{parameter.name}=Argument(<type>)'",
                )
            if optional is not None and not argument.optional:
                raise RegistrationError(
                    "required argument %r of command %r follows optional argument %r" % (
                        parameter.name, self.full_name, optional,
                    ),
                    hint="move optional arguments after the required ones",
                )
            if argument.optional:
                optional = parameter.name
            key = argument.name if argument.name is not None else kebabcase(parameter.name)
            arguments.append(BoundArgument(parameter.name, key, argument))

        keys = [bound.key for bound in arguments]
        if len(set(keys)) != len(keys):
            raise RegistrationError(f"command {self.full_name!r} has duplicated argument names")
        return tuple(arguments)

    @property
    def required(self):
        return sum(not bound.argument.optional for bound in self._arguments)

    @property
    def choices(self):
        """
        Choices offered for each argument, keyed by interaction name.

        An argument's own choices win over its converter's. Before load() only
        explicit converter overrides are known.
        """
        choices = {}
        for index, bound in enumerate(self._arguments):
            if (own := bound.argument.choices) is None and (converter := self._converter(index)) is not Unset:
                own = converter.choices
            choices[bound.key] = own
        return MappingProxyType(choices)

    def _bind(self, converters):
        # Called by Commands.load() with one converter per argument.
        self._converters = tuple(converters)

    def _converter(self, index):
        if self._converters is Unset:
            override = self._arguments[index].argument.converter
            return override if override is not None else Unset
        return self._converters[index]

    async def parse(self, commands, context, source, /):
        """
        Convert the text after the command name into the callback's arguments.

        `source` is a string or a StringView positioned after the command name.
        Returns a tuple with one value per declared argument.
        """
        view = StringView(source) if isinstance(source, str) else source
        if not isinstance(view, StringView):
            raise TypeError("parse() source must be a string or a string view")

        values = []
        for index, bound in enumerate(self._arguments):
            if not view.remaining.strip():
                break
            values.append(await parse(
                commands.converters,
                context,
                view,
                bound.argument.type,
                self._converter(index),
            ))

        if len(values) < self.required:
            missing = self._arguments[len(values)]
            raise NotEnoughArgumentsError(
                "missing %s argument %r of command %r" % (ordinal(len(values) + 1), missing.name, self.full_name),
                hint="%r takes %d required %s but %d %s given" % (
                    self.full_name,
                    self.required,
                    "argument" if self.required == 1 else pluralize("argument"),
                    len(values),
                    "was" if len(values) == 1 else "were",
                ),
                command=self,
                index=len(values),
            )

        values.extend(bound.argument._default for bound in self._arguments[len(values):])
        return tuple(values)

    async def parse_options(self, commands, context, options, /):
        """
        Convert named interaction values (keyed by kebab-case argument name).
        """
        if not isinstance(options, Mapping):
            raise TypeError("parse_options() options must be a mapping")

        values = []
        for index, bound in enumerate(self._arguments):
            if bound.key not in options:
                if not bound.argument.optional:
                    raise NotEnoughArgumentsError(
                        "missing required option %r of command %r" % (bound.key, self.full_name),
                        command=self,
                        index=index,
                    )
                values.append(bound.argument._default)
                continue
            values.append(await parse(
                commands.converters,
                context,
                StringView(str(options[bound.key]), rest=True),
                bound.argument.type,
                self._converter(index),
            ))
        return tuple(values)

    async def invoke(self, context, arguments, /):
        """
        Run pre hooks, the callback and post hooks; return the callback's result.
        """
        await self.hooks.emit_pre(context)
        try:
            result = await _resolve(self._callback(context, *arguments))
        except CommandException:
            raise
        except Exception as error:
            raise UncaughtCommandError(
                "command %r raised %s: %s" % (self.full_name, type(error).__name__, error),
                command=self,
                exception=error,
            ) from error
        await self.hooks.emit_post(context)
        return result

    def __call__(self, *args, **kwargs):
        return self._callback(*args, **kwargs)


class Commands(ChatTree):
    """
    Root of a command tree and owner of the runtime configuration.

    Parameters
    - converters: initial converters (defaults to DEFAULT_CONVERTERS).
    - shell: render faults with rich instead of raising them.
    - fancy: render faults inside panels.
    - colorful: use the colour palette when rendering.
    - deferred: collect faults in `faults` instead of surfacing them; see flush().
    """

    def __init__(self, *, converters=DEFAULT_CONVERTERS, shell=False, fancy=False, colorful=False, deferred=False):
        if not isinstance(converters, Iterable):
            raise TypeError("commands 'converters' must be iterable")
        self._setup()
        self._converters = ConverterRegistry(converters)
        self._types = TypeRegistry()
        self._faults = []
        self.shell = bool(shell)
        self.fancy = bool(fancy)
        self.colorful = bool(colorful)
        self.deferred = bool(deferred)

    @property
    def root(self):
        return self

    @property
    def converters(self):
        return self._converters

    @property
    def types(self):
        return self._types

    @property
    def loaded(self):
        return self._types.loaded

    @property
    def faults(self):
        return tuple(self._faults)

    def _flags(self):
        return {"shell": self.shell, "fancy": self.fancy, "colorful": self.colorful, "deferred": self.deferred}

    def add_converter(self, converter, /):
        """
        Register a converter (replacing one with the same output type).
        """
        if self.loaded:
            raise RegistrationError(
                "can not add a converter after the commands were loaded",
                hint="register every converter before calling load()",
            )
        return self._converters.add(converter)

    def load(self):
        """
        Freeze the tree: build the type registry and resolve every argument's converter.
        """
        if self.loaded:
            raise RegistrationError("commands are already loaded")

        commands = list(self.walk())
        hints = list(self._converters.outputs)
        for command in commands:
            for bound in command.arguments:
                hints.append(bound.argument.type)
                if bound.argument.converter is not None:
                    hints.append(bound.argument.converter.output)
        self._types.load(hints)

        for command in commands:
            command._bind(self._resolve_converter(command, bound) for bound in command.arguments)
        return self

    def _resolve_converter(self, command, bound):
        declared = bound.argument.type
        if (override := bound.argument.converter) is not None:
            if not self._types.is_assignable(override.output, declared):
                raise RegistrationError(
                    "converter override of argument %r of command %r produces %r, which is not a %r" % (
                        bound.name, command.full_name, override.output, declared,
                    ),
                    hint="the converter output must be assignable to the declared type",
                    converter=override,
                    expected=declared,
                )
            return override

        if (converter := self._converters.get(declared)) is not None:
            return converter
        if (converter := self._converters.assemble(declared, self._types, **self._flags())) is not None:
            return converter
        raise NoConverterError(
            "no converter for argument %r of command %r of type %r" % (bound.name, command.full_name, declared),
            expected=declared,
        )

    def find(self, full_name, /):
        """
        Return the command with the given full name, or None.
        """
        for command in self.walk():
            if command.full_name == full_name:
                return command
        return None

    def resolve(self, text, /):
        """
        Route `text` to a command: return (command, view) where view is
        positioned right after the command's name.
        """
        view = StringView(text)
        if (command := self.get_command(view)) is not None:
            return command, view

        word = StringView(text).get_word()
        suggestions = difflib.get_close_matches(word, self._children.keys(), 5)
        try:
            hint = "did you mean %r?" % suggestions[0]
        except IndexError:
            hint = "available commands: %s" % (", ".join(map(repr, self._children)) or "none")
        raise CommandNotFoundError(
            "unknown command %r at %s position" % (word, ordinal(1)),
            input=word,
            index=0,
            suggestions=tuple(suggestions),
            hint=hint,
            docs=getdoc(FaultCode.COMMAND_NOT_FOUND),
        )

    def _ensure_loaded(self):
        if not self.loaded:
            raise RegistryNotLoadedError("commands were executed before load() was called")

    async def execute(self, text, context=None, /):
        """
        Resolve, parse and invoke the command named in `text`.

        Faults go through trigger(); the callback's result is returned.
        """
        self._ensure_loaded()
        try:
            command, view = self.resolve(text)
            arguments = await command.parse(self, context, view)
            return await command.invoke(context, arguments)
        except CommandException as fault:
            return self.trigger(fault)

    async def execute_options(self, command, options, context=None, /):
        """
        Invoke `command` (a ChatCommand or its full name) with named option values.
        """
        self._ensure_loaded()
        try:
            if isinstance(command, str):
                if (found := self.find(command)) is None:
                    raise CommandNotFoundError(f"unknown command {command!r}", input=command)
                command = found
            arguments = await command.parse_options(self, context, options)
            return await command.invoke(context, arguments)
        except CommandException as fault:
            return self.trigger(fault)

    def trigger(self, fault, /, **options):
        """
        Surface a fault with this root's runtime flags.

        In deferred mode the fault is collected (see faults / flush()). In shell
        mode it is rendered and only the current invocation is aborted.
        """
        if (
                not hasattr(fault, "__trigger__") or
                not callable(fault.__trigger__) or
                not hasattr(fault, "__replace__") or
                not callable(fault.__replace__)
        ):
            raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
        fault = copy.replace(fault, **options | self._flags())
        if self.deferred:
            return self._faults.append(fault)
        trigger(fault, fatal=False)

    def flush(self):
        """
        Surface the faults collected in deferred mode.

        Warnings are triggered one by one; errors are grouped into a single
        CommandExit. The collection is emptied either way.
        """
        faults, self._faults = self._faults, []
        exceptions = []

        for fault in faults:
            if isinstance(fault, CommandWarning):
                trigger(fault)
            else:
                exceptions.append(fault)

        if exceptions:
            trigger(CommandExit(exceptions), **self._flags())


def command(callback=Unset, /, **options):
    """
    Create a ChatCommand, or return a decorator that will.

    Forms
    - command(callback, name=..., ...) -> ChatCommand
    - @command(name=..., ...)          -> decorator
    """
    @rename("command")
    def wrapper(callback, /):
        return ChatCommand(callback, **options)

    return wrapper(callback) if callback is not Unset else wrapper


def group(name, /, **options):
    """
    Create a ChatGroup.
    """
    return ChatGroup(name, **options)


__all__ = (
    "Argument",
    "BoundArgument",
    "ChatTree",
    "ChatComponent",
    "ChatGroup",
    "ChatCommand",
    "Commands",
    "command",
    "group",
)
