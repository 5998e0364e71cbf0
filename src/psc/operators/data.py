"""
PostScript Cross-Compiler Operators
Dictionaries, composite objects and type conversion
"""

import re
from typing import TYPE_CHECKING, Callable, Dict

from psc.emitter import QUOTED, dict_target, member, unquote
from psc.errors import MalformedStateError, UnsupportedConstructError
from psc.tracker import parens
from psc.typetags import NUMTYP, STRTYP, TypeTag, to_value

if TYPE_CHECKING:
    from psc.compiler import Compiler

SIMPLE_REFERENCE = re.compile(r'^[\w$.\[\]]+$')


# Dictionaries

def ps_begin(cc: 'Compiler') -> None:
    """Open a function-scoped dictionary $N"""
    t = cc.tracker
    t.need(1)
    t.pop()
    cc.state.dlvl += 1
    t.declare(f'${cc.state.dlvl}', '{}')


def ps_end(cc: 'Compiler') -> None:
    # The dictionary dies with the function, nothing to emit
    if cc.state.dlvl == 0:
        raise MalformedStateError("end without begin", cc.line, cc.tracker.dump('end'))
    cc.state.dlvl -= 1


def ps_dict(cc: 'Compiler') -> None:
    """The size operand is ignored"""
    t = cc.tracker
    t.need(1)
    t.replace(1, TypeTag.DICT, '{}')


def ps_def(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(2)

    # Executable blocks become procedures
    if t.top().type == TypeTag.TOKENS:
        cc.bind_procedure()

    value = t.pop()
    key = t.pop()
    state = cc.state
    if key.type in (TypeTag.IDENT, TypeTag.STRLIT) or QUOTED.match(key.expr):
        t.assign(dict_target(state.dlvl, key.expr), value.expr)
        state.define(unquote(key.expr), to_value(value.type))
    else:
        t.assign(f'${state.dlvl}[{key.expr}]', value.expr)


def ps_bind(cc: 'Compiler') -> None:
    cc.bind_procedure()


def ps_load(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    key = t.top().expr
    level, tag = cc.state.dlvl, TypeTag.UNKNOWN
    if QUOTED.match(key):
        found = cc.state.lookup(unquote(key))
        if found is not None:
            level, tag = found
    if tag in (TypeTag.IDENT, TypeTag.TOKENS):
        tag = TypeTag.UNKNOWN
    tid = cc.state.new_temp()
    t.declare(tid, f'${level}[{key}]')
    t.replace(1, tag, tid)


def ps_known(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(2)
    key = t.pop().expr
    obj = t.top().expr
    tid = cc.state.new_temp()
    t.declare(tid, (member(obj, key) or f'$get({obj},{key})') + '!==undefined')
    t.replace(1, TypeTag.BOOLEAN, tid)


def ps_get(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(2)
    key = t.pop().expr
    obj = t.top()
    tid = cc.state.new_temp()
    # Arrays may be views and strings may be byte arrays, so only
    # constant keys bypass the runtime helper.
    t.declare(tid, member(obj.expr, key) or f'$get({obj.expr},{key})')
    t.replace(1, TypeTag.INTVAL if obj.type & STRTYP else TypeTag.UNKNOWN, tid)


def ps_put(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(3)
    value = t.pop().expr
    key = t.pop().expr
    obj = t.pop().expr
    target = member(obj, key)
    if target is not None:
        t.assign(target, value)
    else:
        t.statement(f'$put({obj},{key},{value});')


def ps_length(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    t.replace(1, TypeTag.INTVAL, parens(t.top().expr) + '.length')


# Arrays and strings

def ps_array(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    tid = cc.state.new_temp()
    t.declare(tid, f'$a({t.top().expr})')
    t.replace(1, TypeTag.ARRAY, tid)


def ps_aload(cc: 'Compiler') -> None:
    """Scatter an array onto the stack; the array itself must be popped"""
    t = cc.tracker
    t.need(1)
    line = cc.line
    arr = t.pop().expr
    following = cc.lexer.peek()
    if following is None or following.text != 'pop':
        raise UnsupportedConstructError("aload without pop", line)
    t.flush()
    t.call(f'$aload({arr});')
    cc.lexer.next()


def ps_astore(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    arr = t.pop().expr
    t.flush()
    t.call(f'$astore({arr});')


def ps_string(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    tid = cc.state.new_temp()
    t.declare(tid, f'$s({t.top().expr})')
    t.replace(1, TypeTag.STRVAL, tid)


def ps_getinterval(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(3)
    count = t.pop().expr
    offset = t.pop().expr
    src = t.top()
    tid = cc.state.new_temp()
    t.declare(tid, f'$geti({src.expr},{offset},{count})')
    if src.type & STRTYP:
        tag = TypeTag.STRVAL
    elif src.type & TypeTag.ARRAY:
        tag = TypeTag.ARRAY
    else:
        tag = TypeTag.UNKNOWN
    t.replace(1, tag, tid)


def ps_putinterval(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(3)
    src = t.pop().expr
    offset = t.pop().expr
    dst = t.pop().expr
    t.statement(f'$puti({dst},{offset},{src});')


def ps_search(cc: 'Compiler') -> None:
    """Leaves either post match pre true or the string and false"""
    t = cc.tracker
    t.need(2)
    seek = t.pop().expr
    src = t.pop().expr
    t.flush()
    t.call(f'$search({src},{seek});')


# Conversion

def ps_cvi(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    top = t.top()
    if top.type & NUMTYP:
        expr = '~~' + parens(top.expr)
    else:
        expr = f'~~$z({top.expr})'
    t.replace(1, TypeTag.INTVAL, expr)


def ps_cvlit(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    expr = t.top().expr
    if not SIMPLE_REFERENCE.match(expr):
        expr = parens(expr)
    t.replace(1, TypeTag.STRVAL, '""+' + expr)


def ps_noop(cc: 'Compiler') -> None:
    pass


def ps_cvs(cc: 'Compiler') -> None:
    """The runtime helper pushes the resulting substring"""
    t = cc.tracker
    t.need(2)
    dst = t.pop().expr
    value = t.pop().expr
    t.flush()
    t.call(f'$cvs({dst},{value});')


def ps_cvr(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    t.replace(1, TypeTag.NUMVAL, '+' + parens(t.top().expr))


def ps_cvrs(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(3)
    dst = t.pop().expr
    radix = t.pop().expr
    value = t.top().expr
    tid = cc.state.new_temp()
    t.declare(tid, f'$cvrs({dst},{value},{radix})')
    t.replace(1, TypeTag.STRVAL, tid)


def ps_type(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    tid = cc.state.new_temp()
    t.declare(tid, f'$type({t.top().expr})')
    t.replace(1, TypeTag.STRVAL, tid)


# Constants

def _constant(tag: TypeTag, expr: str) -> Callable:
    def op(cc: 'Compiler') -> None:
        cc.tracker.push(tag, expr)
    return op


def get_operators() -> Dict[str, Callable]:
    """Return the dictionary, composite and conversion operators"""
    return {
        # Dictionaries
        'begin': ps_begin,
        'end': ps_end,
        'dict': ps_dict,
        'def': ps_def,
        'bind': ps_bind,
        'load': ps_load,
        'known': ps_known,
        'get': ps_get,
        'put': ps_put,
        'length': ps_length,

        # Arrays and strings
        'array': ps_array,
        'aload': ps_aload,
        'astore': ps_astore,
        'string': ps_string,
        'getinterval': ps_getinterval,
        'putinterval': ps_putinterval,
        'search': ps_search,

        # Conversion
        'cvi': ps_cvi,
        'cvlit': ps_cvlit,
        'cvn': ps_noop,
        'cvs': ps_cvs,
        'cvx': ps_noop,
        'cvr': ps_cvr,
        'cvrs': ps_cvrs,
        'type': ps_type,

        # Constants
        'true': _constant(TypeTag.BOOLEAN, 'true'),
        'false': _constant(TypeTag.BOOLEAN, 'false'),
        'null': _constant(TypeTag.NULL, 'null'),
    }
