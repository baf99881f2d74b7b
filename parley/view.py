r"""
Parley lexer: a quote-aware, escape-aware cursor over an argument string.

Overview
- StringView wraps one immutable buffer (the text after a command's name, or a
  single interaction value) and hands out tokens while moving its index forward.
- Every consuming read pushes a checkpoint onto `history` first, so undo()
  restores the exact position the read started from.
- copy() gives converters a private cursor for speculative reads; the caller
  decides whether to write the copy's position back.

Escaping
- A character at position p is escaped iff the run of backslashes directly
  before p has odd length.
- Unescaping turns every "\X" pair into "X", left to right, without overlap.
  A lone backslash at the very end of the buffer is kept as-is.

Tokens
- get_word(): the next run of characters up to an unescaped whitespace.
- get_quoted_word(): the text between an unescaped opening quote and its
  closing quote, or a plain word when the token does not start with a quote.

Quick example:
    >>> view = StringView(r'foo "bar baz" qux\ quux')
    >>> view.get_quoted_word(), view.get_quoted_word(), view.get_word()
    ('foo', 'bar baz', 'qux quux')
"""
from types import MappingProxyType

from .faults import *

DEFAULT_QUOTES = MappingProxyType({'"': '"'})

# Paired quotes recognised when a view is built with quotes=QUOTES.
QUOTES = MappingProxyType({
    '"': '"',
    "'": "'",
    '‘': '’',
    '‚': '‛',
    '“': '”',
    '„': '‟',
    '⹂': '⹂',
    '「': '」',
    '『': '』',
    '〝': '〞',
    '﹁': '﹂',
    '﹃': '﹄',
    '＂': '＂',
    '｢': '｣',
    '«': '»',
    '‹': '›',
    '《': '》',
    '〈': '〉',
})


class StringView:
    """
    Cursor over an immutable string with backtracking.

    Attributes
    - buffer: the source text (read-only).
    - index: current position, 0 <= index <= end.
    - history: checkpoints pushed by consuming reads, popped by undo().
    - quotes: opening → closing quote mapping used by get_quoted_word().
    - rest: when True the view is a rest block; word reads return the whole
      remaining text verbatim (used for single interaction values).
    """

    __slots__ = ("_buffer", "index", "history", "_quotes", "_rest")

    def __init__(self, buffer, /, *, quotes=DEFAULT_QUOTES, rest=False):
        if not isinstance(buffer, str):
            raise TypeError("StringView() argument must be a string")
        self._buffer = buffer
        self._quotes = MappingProxyType(dict(quotes))
        self._rest = bool(rest)
        self.index = 0
        self.history = []

    @property
    def buffer(self):
        return self._buffer

    @property
    def quotes(self):
        return self._quotes

    @property
    def rest(self):
        return self._rest

    @property
    def end(self):
        return len(self._buffer)

    @property
    def eof(self):
        return self.index >= self.end

    @property
    def current(self):
        """
        The character under the cursor; OutOfBoundsError at end of input.
        """
        if self.eof:
            raise OutOfBoundsError("no character at position %d: end of input" % self.index, index=self.index)
        return self._buffer[self.index]

    @property
    def remaining(self):
        return self._buffer[self.index:]

    def is_escaped(self, position, /):
        """
        Return whether the character at `position` is preceded by an odd run of backslashes.
        """
        if not 0 <= position <= self.end:
            return False
        count = 0
        while position - count - 1 >= 0 and self._buffer[position - count - 1] == "\\":
            count += 1
        return count % 2 == 1

    def _is_whitespace(self):
        return self._buffer[self.index].isspace() and not self.is_escaped(self.index)

    def _skip(self):
        while not self.eof and self._is_whitespace():
            self.index += 1

    def skip_whitespace(self):
        """
        Advance past a run of unescaped whitespace; no-op on anything else, including EOF.
        """
        self.history.append(self.index)
        self._skip()

    def skip_string(self, string, /):
        """
        Consume `string` if the remaining text starts with it; all-or-nothing.

        Returns True (and pushes a checkpoint) on a match, False otherwise with
        the index left untouched.
        """
        if not isinstance(string, str):
            raise TypeError("skip_string() argument must be a string")
        if not self._buffer.startswith(string, self.index):
            return False
        self.history.append(self.index)
        self.index += len(string)
        return True

    def _read_word(self):
        self._skip()
        start = self.index
        while not self.eof and not self._is_whitespace():
            self.index += 1
        return self.escape(start, self.index)

    def _read_rest(self):
        text = self.remaining
        self.index = self.end
        return text

    def get_word(self):
        """
        Read the next whitespace-delimited word, resolving escapes.

        Never fails: returns "" when only whitespace (or nothing) is left.
        """
        self.history.append(self.index)
        if self._rest:
            return self._read_rest()
        return self._read_word()

    def get_quoted_word(self):
        """
        Read the next word, honouring an opening quote if the word starts with one.

        Raises ParsingError when a quoted section has no closing quote.
        """
        self.history.append(self.index)
        if self._rest:
            return self._read_rest()

        self._skip()
        if self.eof or self.current not in self._quotes or self.is_escaped(self.index):
            return self._read_word()

        closing = self._quotes[self.current]
        self.index += 1
        start = self.index

        while not self.eof and (self.current != closing or self.is_escaped(self.index)):
            self.index += 1

        if self.eof:
            raise ParsingError(
                "unclosed quote opened at position %d" % (start - 1),
                input=self._buffer[start - 1:],
                index=start - 1,
            )

        word = self.escape(start, self.index)
        self.index += 1  # closing quote
        return word

    def escape(self, start, end, /):
        """
        Return buffer[start:end] with every backslash-escaped character unescaped.
        """
        characters = []
        for position in range(start, end):
            # A backslash that escapes the next character is dropped.
            if position + 1 < self.end and self.is_escaped(position + 1):
                continue
            characters.append(self._buffer[position])
        return "".join(characters)

    def undo(self):
        """
        Restore the index recorded by the most recent checkpoint.
        """
        if self.history:
            self.index = self.history.pop()

    def copy(self):
        """
        Independent view over the same buffer, index and (duplicated) history.
        """
        view = StringView(self._buffer, quotes=self._quotes, rest=self._rest)
        view.index = self.index
        view.history = list(self.history)
        return view

    def __repr__(self):
        return "StringView(index=%d (current=%r), end=%d, buffer=%r)" % (
            self.index,
            "<eof>" if self.eof else self._buffer[self.index],
            self.end,
            self._buffer,
        )


__all__ = (
    "StringView",
    "DEFAULT_QUOTES",
    "QUOTES",
)
