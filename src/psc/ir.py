"""
PostScript Cross-Compiler Intermediate Representation
Typed code lines emitted by the operators and rewritten by the optimizer
"""

import re
from enum import Enum, auto
from dataclasses import dataclass
from typing import List

# String literals are blanked out before looking for identifier uses
STRING_LITERAL = re.compile(r'"(?:[^\\"]|\\.)*"|\'(?:[^\\\']|\\.)*\'')


class LineKind(Enum):
    DECLARE = auto()     # var target=expr;
    PUSH = auto()        # $k[$j++]=expr;
    ASSIGN = auto()      # target=expr;
    DROP = auto()        # $j--;  /  $j-=count;
    CALL = auto()        # procedure invocation, expr is the full statement
    STATEMENT = auto()   # any other statement, expr is the full text
    OPEN = auto()        # opens a block, e.g. if(x){
    CLOSE = auto()       # closes a block, e.g. }  or  }else{


@dataclass
class CodeLine:
    kind: LineKind
    line: int
    order: int
    target: str = ''
    expr: str = ''
    count: int = 1

    @property
    def code(self) -> str:
        if self.kind is LineKind.DECLARE:
            return f"var {self.target}={self.expr};"
        if self.kind is LineKind.PUSH:
            return f"$k[$j++]={self.expr};"
        if self.kind is LineKind.ASSIGN:
            return f"{self.target}={self.expr};"
        if self.kind is LineKind.DROP:
            return "$j--;" if self.count == 1 else f"$j-={self.count};"
        return self.expr

    def searchable(self) -> str:
        """Code text with string literals removed."""
        return STRING_LITERAL.sub('', self.code)

    def uses(self, name: str) -> int:
        """Number of references to identifier `name` outside string literals."""
        return len(identifier_pattern(name).findall(self.searchable()))

    def substitute(self, name: str, replacement: str):
        """Replace the first reference to `name` with `replacement`."""
        pattern = identifier_pattern(name)
        for attr in ('target', 'expr'):
            text = getattr(self, attr)
            if _find_outside_strings(pattern, text) is not None:
                setattr(self, attr, _replace_outside_strings(pattern, text, replacement))
                return
        raise ValueError(f"'{name}' does not occur in {self.code!r}")


def identifier_pattern(name: str) -> re.Pattern:
    return re.compile(r'(?<![\w$])' + re.escape(name) + r'(?![\w$])')


def _find_outside_strings(pattern: re.Pattern, text: str):
    blanked = STRING_LITERAL.sub(lambda m: ' ' * len(m.group(0)), text)
    return pattern.search(blanked)


def _replace_outside_strings(pattern: re.Pattern, text: str, replacement: str) -> str:
    match = _find_outside_strings(pattern, text)
    return text[:match.start()] + replacement + text[match.end():]


def render(lines: List[CodeLine], line_comments: bool = False) -> str:
    """Join code lines into target text, one statement per line."""
    if line_comments:
        return ''.join(f"{ln.code}/*{ln.line}*/\n" for ln in lines)
    return ''.join(ln.code + '\n' for ln in lines)
