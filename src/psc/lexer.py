"""
PostScript Cross-Compiler Lexer
Tokenizes PostScript source lazily, with a push/pop token-stream override
"""

from dataclasses import dataclass
from typing import List, Optional

from psc.errors import LexError

WHITESPACE = ' \t\r\n\f\0'
DELIMITERS = '()<>[]{}/%'
HEX_DIGITS = '0123456789abcdefABCDEF'

# PostScript string escapes
ESCAPES = {
    'n': '\n',
    'r': '\r',
    't': '\t',
    'b': '\b',
    'f': '\f',
    '\\': '\\',
    '(': '(',
    ')': ')',
}


@dataclass
class Token:
    text: str
    line: int


class TokenStream:
    """A captured token region being re-read in place of the raw text."""

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.position = 0

    def exhausted(self) -> bool:
        return self.position >= len(self.tokens)


def escape_string(value: str) -> str:
    """Encode decoded string contents as a JavaScript string-literal body."""
    out = []
    for char in value:
        code = ord(char)
        if char == '\\':
            out.append('\\\\')
        elif char == '"':
            out.append('\\"')
        elif char == '\n':
            out.append('\\n')
        elif char == '\r':
            out.append('\\r')
        elif char == '\t':
            out.append('\\t')
        elif 0x20 <= code < 0x7f or code > 0xff:
            out.append(char)
        else:
            out.append('\\x%02x' % code)
    return ''.join(out)


class Lexer:
    def __init__(self, source: str):
        self.source = source
        self.position = 0
        self.line = 1
        self.streams: List[TokenStream] = []
        self.current: Optional[Token] = None

    @property
    def current_line(self) -> int:
        """Line of the most recently returned token."""
        if self.current is not None:
            return self.current.line
        return self.line

    # Token-stream override

    def push(self, tokens: List[Token]):
        self.streams.append(TokenStream(tokens))

    def pop(self):
        self.streams.pop()

    def peek(self) -> Optional[Token]:
        """Look at the next token without consuming it.

        Only available inside a pushed token stream; raw text is never
        looked ahead.
        """
        if not self.streams or self.streams[-1].exhausted():
            return None
        stream = self.streams[-1]
        return stream.tokens[stream.position]

    def next(self) -> Optional[Token]:
        """Return the next token, or None at the end of the current stream."""
        if self.streams:
            stream = self.streams[-1]
            if stream.exhausted():
                return None
            token = stream.tokens[stream.position]
            stream.position += 1
        else:
            token = self.next_raw()
        if token is not None:
            self.current = token
        return token

    def tokenize(self) -> List[Token]:
        tokens = []
        while True:
            token = self.next_raw()
            if token is None:
                return tokens
            tokens.append(token)

    # Raw text scanning

    def current_char(self) -> Optional[str]:
        if self.position >= len(self.source):
            return None
        return self.source[self.position]

    def peek_char(self, offset: int = 1) -> Optional[str]:
        peek_pos = self.position + offset
        if peek_pos >= len(self.source):
            return None
        return self.source[peek_pos]

    def advance(self) -> Optional[str]:
        char = self.current_char()
        self.position += 1
        if char == '\n':
            self.line += 1
        return char

    def skip_whitespace(self):
        while True:
            char = self.current_char()
            if char is None:
                return
            if char in WHITESPACE:
                self.advance()
            elif char == '%':
                while self.current_char() is not None and self.current_char() != '\n':
                    self.advance()
            else:
                return

    def read_string(self, start_line: int) -> str:
        self.advance()  # Skip opening paren
        value = []
        depth = 1

        while True:
            char = self.advance()
            if char is None:
                raise LexError("Unterminated string", start_line)
            if char == '\\':
                char = self.advance()
                if char is None:
                    raise LexError("Unterminated string", start_line)
                if char in ESCAPES:
                    value.append(ESCAPES[char])
                elif char in '01234567':
                    digits = char
                    while len(digits) < 3 and self.current_char() is not None \
                            and self.current_char() in '01234567':
                        digits += self.advance()
                    value.append(chr(int(digits, 8) & 0xff))
                elif char == '\r':
                    if self.current_char() == '\n':
                        self.advance()
                elif char != '\n':
                    value.append(char)
            elif char == '(':
                depth += 1
                value.append(char)
            elif char == ')':
                depth -= 1
                if depth == 0:
                    break
                value.append(char)
            else:
                value.append(char)

        return escape_string(''.join(value))

    def read_hex_string(self, start_line: int) -> str:
        self.advance()  # Skip '<'
        digits = ''

        while True:
            char = self.advance()
            if char is None:
                raise LexError("Unterminated hex string", start_line)
            if char == '>':
                break
            if char in WHITESPACE:
                continue
            if char not in HEX_DIGITS:
                raise LexError(f"Invalid hex string character '{char}'", self.line)
            digits += char

        if len(digits) % 2:
            digits += '0'
        return ''.join('\\x' + digits[i:i + 2] for i in range(0, len(digits), 2))

    def read_name(self) -> str:
        value = ''
        # A name may begin with one or two slashes
        while self.current_char() == '/' and len(value) < 2:
            value += self.advance()
        while self.current_char() is not None and \
                self.current_char() not in WHITESPACE and \
                self.current_char() not in DELIMITERS:
            value += self.advance()
        return value

    def next_raw(self) -> Optional[Token]:
        self.skip_whitespace()
        char = self.current_char()
        if char is None:
            return None

        start_line = self.line

        if char == '(':
            return Token('(' + self.read_string(start_line) + ')', start_line)

        if char == '<':
            if self.peek_char() == '<':
                self.advance()
                self.advance()
                return Token('<<', start_line)
            return Token('(' + self.read_hex_string(start_line) + ')', start_line)

        if char == '>':
            if self.peek_char() == '>':
                self.advance()
                self.advance()
                return Token('>>', start_line)
            raise LexError("Unexpected '>'", start_line)

        if char == ')':
            raise LexError("Unbalanced ')'", start_line)

        if char in '[]{}':
            self.advance()
            return Token(char, start_line)

        return Token(self.read_name(), start_line)
