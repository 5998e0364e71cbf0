"""
PostScript Cross-Compiler Operators
Operand stack manipulation
"""

from typing import TYPE_CHECKING, Callable, Dict

from psc.errors import UnsupportedConstructError
from psc.tracker import is_temp, parens
from psc.typetags import LITERALS, TypeTag

if TYPE_CHECKING:
    from psc.compiler import Compiler


def ps_exch(cc: 'Compiler') -> None:
    """Swap the top two entries"""
    t = cc.tracker
    t.need(2)
    t.stack[-1], t.stack[-2] = t.stack[-2], t.stack[-1]
    t.restamp(t.top(2))
    t.restamp(t.top(1))


def ps_dup(cc: 'Compiler') -> None:
    """Duplicate the top entry, binding complex expressions to a temp first"""
    t = cc.tracker
    t.need(1)
    top = t.top()
    if top.tokens is None and not (top.type & LITERALS) and not is_temp(top.expr):
        t.bind_temp(top)
    t.stack.append(t.clone(top))


def ps_copy(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    arg = t.top()
    if arg.type & TypeTag.INTLIT:
        t.pop()
        count = int(arg.expr)
        t.need(count)
        for entry in t.stack[t.sp - count:]:
            t.stack.append(t.clone(entry))
    elif arg.type & TypeTag.STRVAL:
        # string1 string2 copy -> substring of string2
        t.need(2)
        src = t.top(2).expr
        dst = t.top(1).expr
        tid = cc.state.new_temp()
        t.declare(tid, f'$strcpy({dst},{src})')
        t.pop()
        t.replace(1, TypeTag.STRVAL, tid)
    else:
        raise UnsupportedConstructError(
            f"copy: count is not constant ({arg.describe()})", cc.line)


def ps_roll(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(2)
    shift = t.pop()
    count = t.pop()
    if shift.type != TypeTag.INTLIT or count.type != TypeTag.INTLIT:
        raise UnsupportedConstructError("roll: parameters not constant", cc.line)
    n = int(count.expr)
    if n <= 0:
        return
    j = int(shift.expr) % n
    t.need(n)
    window = t.stack[t.sp - n:]
    if j:
        window = window[-j:] + window[:-j]
    t.stack[t.sp - n:] = window
    for entry in window:
        t.restamp(entry)


def ps_index(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    v = t.pop()
    if v.type == TypeTag.INTLIT:
        depth = int(v.expr) + 1     # zero based
        t.need(depth)
        t.stack.append(t.clone(t.top(depth)))
    else:
        # Typically `counttomark N add index`
        tid = cc.state.new_temp()
        t.flush()
        t.declare(tid, f'$k[$j-1-{parens(v.expr)}]')
        t.push(TypeTag.UNKNOWN, tid)


def ps_pop(cc: 'Compiler') -> None:
    t = cc.tracker
    if t.sp:
        t.pop()
    else:
        t.drop()


def ps_mark(cc: 'Compiler') -> None:
    t = cc.tracker
    t.flush()
    t.push_real('Infinity')


def ps_counttomark(cc: 'Compiler') -> None:
    """Count to the mark on the real stack plus what is still tracked"""
    t = cc.tracker
    tid = cc.state.new_temp()
    if t.sp:
        t.declare(tid, f'$counttomark()+{t.sp}')
    else:
        t.declare(tid, '$counttomark()')
    t.push(TypeTag.INTVAL, tid)


def ps_cleartomark(cc: 'Compiler') -> None:
    t = cc.tracker
    t.flush()
    t.statement('$cleartomark();')


def ps_clear(cc: 'Compiler') -> None:
    t = cc.tracker
    t.flush()
    t.statement('$j=0;')


def get_operators() -> Dict[str, Callable]:
    """Return the stack manipulation operators"""
    return {
        'exch': ps_exch,
        'dup': ps_dup,
        'copy': ps_copy,
        'roll': ps_roll,
        'index': ps_index,
        'pop': ps_pop,

        # Marks live on the real stack only
        'mark': ps_mark,
        'counttomark': ps_counttomark,
        'cleartomark': ps_cleartomark,
        'clear': ps_clear,
    }
