"""
PostScript Cross-Compiler Optimizer
Static composite detection and temporary-variable elimination
"""

import re
import logging
from dataclasses import dataclass
from typing import List, Optional

from psc.ir import CodeLine, LineKind
from psc.tracker import is_temp

logger = logging.getLogger(__name__)

# References to the real stack, including helpers that consume it
STACK_REF = re.compile(r'\$j|\$k|\$[ad]\(\)|\$counttomark\(|\$cleartomark\(')

# Declarations eligible for elimination are terms, free of precedence issues:
#   $k[--$j]   $0.textmap[x]   $1.func(a,b).Ident
TERM = re.compile(r'^[\w$.]+(\(.*\))?(\[.+\])?(\.[\w$]+)*$')

STRING_KEY = re.compile(r'^"((?:[^"\\]|\\.)*)"$')
JS_IDENT = re.compile(r'^[A-Za-z_]\w*$')

LOOP_OPENERS = ('for(', '$forall(')

# Runtime helpers that write into an array, string or dictionary operand
MUTATORS = ('$put(', '$puti(', '$astore(', '$aload(', '$cvs(', '$cvrs(', '$search(', '$strcpy(')

# A statement that stores into a property, e.g. _3.FontSize=12;
PROPERTY_WRITE = re.compile(r'^[\w$.()\[\]"]+=(?!=)')

POP = '$k[--$j]'


@dataclass
class StaticComposite:
    hoisted: List[CodeLine]     # declarations to emit ahead of the literal
    expr: str                   # literal construction expression


def static_array(lines: List[CodeLine]) -> Optional[StaticComposite]:
    """Recognize an array body that only declares and pushes closed values."""
    hoisted = []
    elements = []
    for ln in lines:
        if ln.kind is LineKind.DECLARE:
            if STACK_REF.search(ln.expr):
                return None
            hoisted.append(ln)
        elif ln.kind is LineKind.PUSH:
            elements.append(ln.expr)
        else:
            return None
    return StaticComposite(hoisted, '$a([' + ','.join(elements) + '])')


def static_dict(lines: List[CodeLine]) -> Optional[StaticComposite]:
    """Recognize a dictionary body made of (decls, key push, decls, value push) groups."""
    hoisted = []
    entries = []
    i = 0

    def skip_declarations(i: int) -> Optional[int]:
        while i < len(lines) and lines[i].kind is LineKind.DECLARE:
            if STACK_REF.search(lines[i].expr):
                return None
            hoisted.append(lines[i])
            i += 1
        return i

    while i < len(lines):
        i = skip_declarations(i)
        if i is None or i >= len(lines) or lines[i].kind is not LineKind.PUSH:
            return None
        key = STRING_KEY.match(lines[i].expr)
        if not key:
            return None
        i = skip_declarations(i + 1)
        if i is None or i >= len(lines) or lines[i].kind is not LineKind.PUSH:
            return None
        value = lines[i].expr
        i += 1

        if JS_IDENT.match(key.group(1)):
            entries.append(key.group(1) + ':' + value)
        else:
            entries.append('"' + key.group(1) + '":' + value)

    return StaticComposite(hoisted, '{' + ','.join(entries) + '}')


def devar(lines: List[CodeLine]) -> int:
    """Inline single-use temporaries in place; returns how many were removed.

    need() produces `var X=$k[--$j];` followed by one use of X, and
    dictionary reads produce `var X=$1.name;`. When the only use is safe
    to reach, the expression replaces X and the declaration goes away.
    """
    removed = 0
    i = 0
    while i < len(lines):
        decl = lines[i]
        if _eligible(decl):
            where = _single_use(lines, i)
            if where is not None:
                lines[where].substitute(decl.target, decl.expr)
                logger.debug("devar: %s inlined at line %d", decl.target, lines[where].line)
                del lines[i]
                removed += 1
                continue
        i += 1
    return removed


def _eligible(decl: CodeLine) -> bool:
    return (decl.kind is LineKind.DECLARE and
            is_temp(decl.target) and
            TERM.match(decl.expr) is not None and
            # graphics calls keep their order
            not decl.expr.startswith('$$.'))


def _single_use(lines: List[CodeLine], i: int) -> Optional[int]:
    decl = lines[i]
    name = decl.target
    where = None
    stack_ref = None
    loops_open = 0
    call_seen = False

    for j in range(i + 1, len(lines)):
        ln = lines[j]
        text = ln.searchable()
        if stack_ref is None and STACK_REF.search(text):
            stack_ref = j

        uses = ln.uses(name)
        if uses:
            if where is not None or uses > 1 or loops_open or call_seen:
                return None
            where = j

        # The source of the declaration is reassigned or its data written
        # to: stop here. A use on this same line still reads the old value.
        if ln.kind is LineKind.ASSIGN:
            if ln.target == decl.expr:
                break
        elif ln.code.startswith(decl.expr + '='):
            break
        if decl.expr != POP and _mutates(ln):
            break
        if ln.kind is LineKind.CLOSE:
            break
        if ln.kind is LineKind.OPEN and ln.expr.startswith(LOOP_OPENERS):
            loops_open += 1
        if ln.kind is LineKind.CALL:
            call_seen = True

    if where is None:
        return None
    if STACK_REF.search(decl.expr) and stack_ref is not None and stack_ref <= where:
        return None
    for ln in lines[where + 1:]:
        if ln.uses(name):
            return None
    return where


def _mutates(ln: CodeLine) -> bool:
    """True when the line may change data a term declaration reads."""
    if ln.kind is LineKind.ASSIGN:
        return not is_temp(ln.target)
    if ln.kind in (LineKind.DECLARE, LineKind.CALL):
        return ln.expr.startswith(MUTATORS)
    if ln.kind is LineKind.STATEMENT:
        return ln.expr.startswith(MUTATORS) or PROPERTY_WRITE.match(ln.expr) is not None
    return False
