"""
PostScript Cross-Compiler Symbolic Stack Tracker
Compile-time abstract interpreter over the operand stack
"""

import re
import logging
from dataclasses import dataclass
from typing import List, Optional

from psc.errors import MalformedStateError
from psc.ir import CodeLine, LineKind
from psc.lexer import Lexer, Token
from psc.state import CompilerState
from psc.typetags import TypeTag

logger = logging.getLogger(__name__)

TEMP_VAR = re.compile(r'^_[\w$]+$')

# Expressions that never need parentheses
SIMPLE_EXPRESSIONS = [
    re.compile(r'^[A-Za-z_$][\w$.]*$'),          # 'dot' expression
    re.compile(r'^-?[0-9.]+$'),                   # number literal
    re.compile(r'^"([^"\\]|\\.)*"$'),             # string literal
    re.compile(r'^[\w$.]+\([^;()]*\)$'),          # function call
]


def parens(expr: str) -> str:
    """Parenthesize an expression unless it is a simple term."""
    for pattern in SIMPLE_EXPRESSIONS:
        if pattern.match(expr):
            return expr
    return '(' + expr + ')'


def is_temp(expr: Optional[str]) -> bool:
    return expr is not None and TEMP_VAR.match(expr) is not None


@dataclass
class StackEntry:
    type: TypeTag
    expr: Optional[str]
    order: int
    tokens: Optional[List[Token]] = None

    def describe(self) -> str:
        if self.tokens is not None:
            body = ' '.join(t.text for t in self.tokens)
            return f"{self.type.name} {{ {body} }} #{self.order}"
        return f"{self.type.name or hex(self.type)} {self.expr} #{self.order}"


class Tracker:
    """One symbolic operand stack plus the code block it emits into."""

    def __init__(self, state: CompilerState, lexer: Lexer):
        self.state = state
        self.lexer = lexer
        self.stack: List[StackEntry] = []
        self.block: List[CodeLine] = []
        self.depth = 0      # entries reconciled from the real stack

    def reset(self):
        self.stack = []
        self.block = []
        self.depth = 0

    @property
    def sp(self) -> int:
        return len(self.stack)

    # Stack entries

    def push(self, type: TypeTag, expr: Optional[str], tokens: Optional[List[Token]] = None) -> StackEntry:
        entry = StackEntry(type, expr, self.state.next_order(), tokens)
        self.stack.append(entry)
        return entry

    def pop(self) -> StackEntry:
        return self.stack.pop()

    def top(self, n: int = 1) -> StackEntry:
        """Entry n places from the top (1 is the top)."""
        return self.stack[-n]

    def replace(self, n: int, type: TypeTag, expr: Optional[str]) -> StackEntry:
        entry = StackEntry(type, expr, self.state.next_order())
        self.stack[-n] = entry
        return entry

    def restamp(self, entry: StackEntry):
        entry.order = self.state.next_order()

    def clone(self, entry: StackEntry) -> StackEntry:
        return StackEntry(entry.type, entry.expr, self.state.next_order(), entry.tokens)

    def need(self, n: int):
        """Make sure n entries are tracked, popping the rest off the real stack."""
        for _ in range(n - self.sp):
            tid = self.state.new_temp()
            self.declare(tid, '$k[--$j]')
            self.stack.insert(0, StackEntry(TypeTag.UNKNOWN, tid, self.state.next_order()))
            self.depth += 1

    def flush(self):
        """Push every tracked entry onto the real stack and empty the tracker."""
        for entry in self.stack:
            if entry.expr is None:
                raise MalformedStateError("flush: missing expression",
                                          self.lexer.current_line, self.dump('flush'))
            self.push_real(entry.expr)
        self.stack = []

    def bind_temp(self, entry: StackEntry) -> str:
        """Assign the entry's expression to a temp unless it already is one."""
        if not is_temp(entry.expr):
            tid = self.state.new_temp()
            self.declare(tid, entry.expr)
            entry.expr = tid
        return entry.expr

    def dump(self, label: str) -> str:
        lines = [f"[[[{label}#{self.lexer.current_line} ({self.depth} from the real stack)"]
        for i in range(self.sp - 1, -1, -1):
            lines.append(f"{i} {self.stack[i].describe()}")
        lines.append("]]]")
        text = '\n'.join(lines)
        logger.debug("%s", text)
        return text

    # Code emission

    def emit(self, kind: LineKind, target: str = '', expr: str = '', line: Optional[int] = None) -> CodeLine:
        code_line = CodeLine(kind, line or self.lexer.current_line, self.state.next_order(), target, expr)
        self.block.append(code_line)
        return code_line

    def declare(self, name: str, expr: str) -> CodeLine:
        return self.emit(LineKind.DECLARE, name, expr)

    def push_real(self, expr: str) -> CodeLine:
        return self.emit(LineKind.PUSH, expr=expr)

    def assign(self, target: str, expr: str) -> CodeLine:
        return self.emit(LineKind.ASSIGN, target, expr)

    def statement(self, text: str) -> CodeLine:
        return self.emit(LineKind.STATEMENT, expr=text)

    def call(self, text: str) -> CodeLine:
        return self.emit(LineKind.CALL, expr=text)

    def open(self, text: str) -> CodeLine:
        return self.emit(LineKind.OPEN, expr=text)

    def close(self, text: str = '}') -> CodeLine:
        return self.emit(LineKind.CLOSE, expr=text)

    def drop(self):
        """Discard one real-stack value, merging consecutive drops."""
        if self.block and self.block[-1].kind is LineKind.DROP:
            self.block[-1].count += 1
        else:
            self.emit(LineKind.DROP)

    def append(self, lines: List[CodeLine]):
        """Splice lines compiled in a nested context into this block."""
        for ln in lines:
            self.block.append(CodeLine(ln.kind, ln.line, self.state.next_order(),
                                       ln.target, ln.expr, ln.count))

    def new_branch(self):
        branch = self.state.new_branch()
        if branch is not None:
            self.assign(f'$psc_coverage[{branch}]', '1')
