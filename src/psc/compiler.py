"""
PostScript Cross-Compiler Driver
Token loop, nested literal compilation, procedure binding and the two-pass scheme
"""

import re
import logging
from typing import Dict, List, Optional, Union

from psc.config import CompilerConfig
from psc.context import ContextManager
from psc.emitter import (JS_IDENT, dict_ref, dict_target, function_literal, functions_registry,
                         functions_registry_writer, instrumentation, program_text, unquote)
from psc.errors import LexError, UnknownOperatorError, UnsupportedConstructError
from psc.ir import CodeLine, LineKind
from psc.lexer import Lexer, Token, escape_string
from psc.operators import get_operators
from psc.optimizer import devar, static_array, static_dict
from psc.state import CompilerState, PassMode
from psc.tracker import StackEntry, Tracker
from psc.typetags import TypeTag

logger = logging.getLogger(__name__)

OPENERS = {'{': '}', '[': ']', '<<': '>>'}
CLOSERS = set(OPENERS.values())

NUMBER = re.compile(r'^[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?$')
RADIX_NUMBER = re.compile(r'^(\d{1,2})#([0-9A-Za-z]+)$')


def parse_number(text: str) -> Optional[Union[int, float]]:
    radix = RADIX_NUMBER.match(text)
    if radix:
        try:
            return int(radix.group(2), int(radix.group(1)))
        except ValueError:
            return None
    if not NUMBER.match(text):
        return None
    value = float(text)
    if value % 1 == 0 and abs(value) < 2 ** 53:
        return int(value)
    return value


class Compiler:
    def __init__(self, source: str, config: Optional[CompilerConfig] = None):
        self.source = source
        self.config = config or CompilerConfig()
        self.state = CompilerState(self.config)
        self.lexer = Lexer(source)
        self.contexts = ContextManager(self.state, self.lexer)
        self.operators = get_operators()

    @property
    def tracker(self) -> Tracker:
        return self.contexts.tracker

    @property
    def line(self) -> int:
        return self.lexer.current_line

    def translate(self) -> str:
        """Compile the whole source and return the generated program."""
        self.discover_globals()
        top = self.contexts.frames[0]
        if self.config.coverage:
            top.statement(functions_registry())
        self.compile()
        if self.config.coverage:
            top.statement(functions_registry_writer(self.config.coverage_dir))
        return program_text(top.block)

    def discover_globals(self):
        """Record top-level `/name {...} [bind] def` procedures ahead of time."""
        tokens = Lexer(self.source).tokenize()
        depth = 0
        i = 0
        while i < len(tokens):
            text = tokens[i].text
            if depth == 0 and text.startswith('/') and not text.startswith('//') \
                    and i + 1 < len(tokens) and tokens[i + 1].text == '{':
                end = self._matching_brace(tokens, i + 1)
                if end is None:
                    return
                k = end + 1
                if k < len(tokens) and tokens[k].text == 'bind':
                    k += 1
                if k < len(tokens) and tokens[k].text == 'def':
                    self.state.globals.setdefault(text[1:], TypeTag.FUNCTION)
                i = end + 1
                continue
            if text in OPENERS:
                depth += 1
            elif text in CLOSERS:
                depth -= 1
            i += 1

    @staticmethod
    def _matching_brace(tokens: List[Token], start: int) -> Optional[int]:
        depth = 0
        for i in range(start, len(tokens)):
            if tokens[i].text in OPENERS:
                depth += 1
            elif tokens[i].text in CLOSERS:
                depth -= 1
                if depth == 0:
                    return i
        return None

    # The main compilation loop

    def compile(self):
        while True:
            token = self.lexer.next()
            if token is None:
                return
            self.compile_token(token)

    def compile_token(self, token: Token):
        text = token.text

        # Executable blocks wait until we know how they are used
        if text == '{':
            self.tracker.push(TypeTag.TOKENS, None, self.read_tokens('}', token.line))
        elif text == '[':
            self.compile_array(token)
        elif text == '<<':
            self.compile_dict(token)
        elif text in CLOSERS:
            raise LexError(f"Unbalanced '{text}'", token.line)
        elif text.startswith('('):
            self.tracker.push(TypeTag.STRLIT, '"' + text[1:-1] + '"')
        elif text.startswith('/'):
            self.compile_name(text)
        elif text in self.operators:
            self.operators[text](self)
        elif not self.compile_number(text):
            self.compile_identifier(token)

    def compile_number(self, text: str) -> bool:
        value = parse_number(text)
        if value is None:
            return False
        if isinstance(value, int):
            self.tracker.push(TypeTag.INTLIT, str(value))
        else:
            self.tracker.push(TypeTag.NUMLIT, repr(value))
        return True

    def compile_name(self, text: str):
        dictionary = self.state.dictionary
        if text.startswith('//'):
            # Immediately evaluated names are always global
            name = text[2:]
            if JS_IDENT.match(name):
                expr = '$0.' + name
            else:
                expr = '$0["' + escape_string(name) + '"]'
            self.tracker.push(TypeTag.IENAME, expr)
            dictionary[name] = TypeTag.IENAME
        else:
            name = text[1:]
            self.tracker.push(TypeTag.IDENT, '"' + escape_string(name) + '"')
            if not dictionary.get(name):
                dictionary[name] = TypeTag.IDENT

    def compile_identifier(self, token: Token):
        name = token.text
        found = self.state.lookup(name)
        if found is None:
            if not self.state.allow_unknown:
                raise UnknownOperatorError(name, token.line, self.tracker.dump(name))
            found = (self.state.dlvl, TypeTag.UNKNOWN)
        level, tag = found
        t = self.tracker

        if tag == TypeTag.FUNCTION:
            t.flush()
            t.call(dict_ref(level, name) + '();')
            return

        # A dictionary reference cannot be used directly as a stack
        # expression: `/a b /b a def def` must see the old value of b.
        if tag in (TypeTag.IDENT, TypeTag.TOKENS):
            tag = TypeTag.UNKNOWN
        tid = self.state.new_temp()
        t.declare(tid, dict_ref(level, name))
        t.push(tag, tid)

    def read_tokens(self, end: str, line: int) -> List[Token]:
        """Capture tokens up to the close of a block, array or dictionary."""
        expected = [end]
        tokens = []
        while True:
            token = self.lexer.next()
            if token is None:
                raise LexError(f"Unterminated region, expected '{end}'", line)
            if token.text in OPENERS:
                expected.append(OPENERS[token.text])
            elif token.text in CLOSERS:
                if token.text != expected[-1]:
                    raise LexError(f"Mismatched '{token.text}'", token.line)
                expected.pop()
                if not expected:
                    return tokens
            tokens.append(token)

    def compile_region(self, tokens: List[Token]) -> List[CodeLine]:
        self.contexts.push(tokens)
        self.compile()
        return self.contexts.pop()

    # Array and dictionary literals

    def compile_array(self, token: Token):
        lines = self.compile_region(self.read_tokens(']', token.line))
        t = self.tracker

        static = static_array(lines)
        if static is not None:
            t.append(static.hoisted)
            tid = self.state.new_temp()
            t.declare(tid, static.expr)
            t.push(TypeTag.ARRAY, tid)
            logger.debug("static array at line %d", token.line)
            return

        # `/name [ ... ] def` assigns the runtime-built array directly
        defsym = None
        following = self.lexer.peek()
        if t.sp and t.top().type == TypeTag.IDENT and following is not None \
                and following.text == 'def':
            defsym = t.pop().expr

        t.flush()
        t.push_real('Infinity')
        t.append(lines)
        if defsym is not None:
            t.assign(dict_target(self.state.dlvl, defsym), '$a()')
            self.lexer.next()   # the def
            self.state.define(unquote(defsym), TypeTag.ARRAY)
        else:
            tid = self.state.new_temp()
            t.declare(tid, '$a()')
            t.push(TypeTag.ARRAY, tid)

    def compile_dict(self, token: Token):
        lines = self.compile_region(self.read_tokens('>>', token.line))
        t = self.tracker
        tid = self.state.new_temp()

        static = static_dict(lines)
        if static is not None:
            t.append(static.hoisted)
            t.declare(tid, static.expr)
            logger.debug("static dictionary at line %d", token.line)
        else:
            t.flush()
            t.push_real('Infinity')
            t.append(lines)
            t.declare(tid, '$d()')
        t.push(TypeTag.DICT, tid)

    # Executable values

    def prepare(self, exec_entry: StackEntry):
        """Open a nested context for a token block; other executables run inline."""
        if exec_entry.type == TypeTag.TOKENS:
            self.contexts.push(exec_entry.tokens)
        elif exec_entry.type not in (TypeTag.IENAME, TypeTag.PRECALC):
            raise UnsupportedConstructError(
                f"Cannot execute {exec_entry.describe()}\n{self.tracker.dump('prepare')}", self.line)

    def execute(self, exec_entry: StackEntry) -> List[CodeLine]:
        """Compile a prepared executable and return its lines."""
        if exec_entry.type == TypeTag.IENAME:
            return [CodeLine(LineKind.CALL, self.line, self.state.next_order(),
                             expr=exec_entry.expr + '();')]
        if exec_entry.type == TypeTag.PRECALC:
            return [CodeLine(LineKind.PUSH, self.line, self.state.next_order(),
                             expr=exec_entry.expr)]
        self.compile()
        return self.contexts.pop()

    # Procedures

    def bind_procedure(self):
        """Turn the token block on top of the stack into a function literal."""
        t = self.tracker
        t.need(1)
        entry = t.pop()
        if entry.tokens is None:
            raise UnsupportedConstructError(f"bind: {entry.describe()} is not a token block", self.line)

        state = self.state
        top_level = self.contexts.depth == 0
        if top_level:
            discovered = self.run_pass(entry.tokens, PassMode.DISCOVER)
            state.begin_pass(PassMode.EMIT, discovered)

        # Taken before the body so branch numbers follow the code
        branch = None if top_level else state.new_branch()

        dlvl = state.dlvl
        lines = self.compile_region(entry.tokens)
        state.dlvl = dlvl
        if self.config.devar:
            devar(lines)

        # The name this procedure is about to be bound to, if any
        t = self.tracker
        fname = t.top().expr if t.sp and t.top().type == TypeTag.IDENT else None
        name = None
        if top_level and state.coverage_active and fname:
            t.statement(f'$psc_functions.push({fname});')
            name = unquote(fname)

        prologue, epilogue = instrumentation(name, branch, state.branchno, self.config.coverage_dir)
        if top_level:
            state.branchno = -1
            logger.debug("compiled procedure %s (%d lines)", fname or '<anonymous>', len(lines))
        t.push(TypeTag.FUNCTION, function_literal(lines, prologue, epilogue))

    def run_pass(self, tokens: List[Token], mode: PassMode) -> Dict[str, TypeTag]:
        """Compile a token region under `mode`; returns the resulting dictionary."""
        self.state.begin_pass(mode)
        dlvl = self.state.dlvl
        logger.debug("%s pass at line %d", mode.name.lower(), self.line)
        self.compile_region(tokens)
        self.state.dlvl = dlvl
        return self.state.dictionary


def compile_source(source: str, config: Optional[CompilerConfig] = None) -> str:
    """Cross-compile PostScript source text to JavaScript."""
    return Compiler(source, config).translate()
