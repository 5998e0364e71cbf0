"""
PostScript Cross-Compiler Operators
Arithmetic, comparison and logic
"""

import re
from typing import TYPE_CHECKING, Callable, Dict

from psc.tracker import is_temp, parens
from psc.typetags import INTTYP, NUMTYP, TypeTag, to_value

if TYPE_CHECKING:
    from psc.compiler import Compiler

NUMERIC_LITERALS = TypeTag.INTLIT | TypeTag.NUMLIT

# $an(a,b) / $or(a,b) / $xo(a,b) over simple operands
LOGIC_HELPER = re.compile(r'\$(an|or|xo)\(([\w$]+),([\w$]+)\)')


def binarith(cc: 'Compiler', op: str) -> None:
    """Binary arithmetic; never constant folded"""
    t = cc.tracker
    t.need(2)
    a, b = t.top(2), t.top(1)
    if (a.type & INTTYP) and (b.type & INTTYP) and op != '/':
        tag = TypeTag.INTVAL
    else:
        tag = TypeTag.NUMVAL
    t.pop()
    t.replace(1, tag, parens(a.expr) + op + parens(b.expr))


def binbool(cc: 'Compiler', op: str, helper: str) -> None:
    """Binary operator with a boolean result.

    Numbers and booleans compare natively; strings and unknown values go
    through the runtime helper since equality of composites is not
    structural in JavaScript.
    """
    t = cc.tracker
    t.need(2)
    a, b = t.top(2), t.top(1)
    native = TypeTag.BOOLEAN | NUMTYP
    if (a.type & native) or (b.type & native):
        expr = parens(a.expr) + op + parens(b.expr)
    else:
        expr = f'{helper}({a.expr},{b.expr})'
    t.pop()
    t.replace(1, TypeTag.BOOLEAN, expr)


def inline_logic(expr: str) -> str:
    """Rewrite logical helper calls as native operators.

    Inside a condition the operands are known to be booleans.
    """
    def native(match):
        op, a, b = match.groups()
        if op == 'an':
            return f'({a}&&{b})'
        if op == 'or':
            return f'({a}||{b})'
        return f'(!{a}&&{b}||{a}&&!{b})'
    return LOGIC_HELPER.sub(native, expr)


def _numeric_operand(cc: 'Compiler') -> bool:
    t = cc.tracker
    t.need(2)
    return bool((t.top(1).type & NUMTYP) or (t.top(2).type & NUMTYP))


# Arithmetic

def ps_add(cc: 'Compiler') -> None:
    binarith(cc, '+')


def ps_sub(cc: 'Compiler') -> None:
    binarith(cc, '-')


def ps_mul(cc: 'Compiler') -> None:
    binarith(cc, '*')


def ps_div(cc: 'Compiler') -> None:
    binarith(cc, '/')


def ps_mod(cc: 'Compiler') -> None:
    binarith(cc, '%')


def ps_idiv(cc: 'Compiler') -> None:
    """Integer division truncating toward zero"""
    t = cc.tracker
    t.need(2)
    a, b = t.top(2), t.top(1)
    if (a.type & NUMERIC_LITERALS) and (b.type & NUMERIC_LITERALS) and float(b.expr) != 0:
        # int() truncates like ~~ does; floor division would not
        t.pop()
        t.replace(1, TypeTag.INTLIT, str(int(float(a.expr) / float(b.expr))))
    else:
        t.pop()
        t.replace(1, TypeTag.INTVAL, f'~~({parens(a.expr)}/{parens(b.expr)})')


def ps_exp(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(2)
    expo = t.pop().expr
    base = t.top().expr
    t.replace(1, TypeTag.NUMVAL, f'Math.pow({base},{expo})')


def ps_ln(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    t.replace(1, TypeTag.NUMVAL, f'Math.log({t.top().expr})')


def ps_log(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    t.replace(1, TypeTag.NUMVAL, f'Math.log({t.top().expr})/Math.LN10')


def ps_neg(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    top = t.top()
    if top.type & NUMERIC_LITERALS:
        value = -float(top.expr)
        if top.type == TypeTag.INTLIT:
            t.replace(1, TypeTag.INTLIT, str(int(value)))
        else:
            t.replace(1, TypeTag.NUMLIT, repr(value))
    else:
        t.replace(1, top.type or TypeTag.NUMVAL, '-' + parens(top.expr))


def ps_abs(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    top = t.top()
    t.replace(1, to_value(top.type) or TypeTag.NUMVAL, f'Math.abs({top.expr})')


def _math_call(fn: str, tag: TypeTag) -> Callable:
    def op(cc: 'Compiler') -> None:
        t = cc.tracker
        t.need(1)
        t.replace(1, tag, f'Math.{fn}({t.top().expr})')
    return op


def ps_bitshift(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(2)
    shift = t.pop()
    val = parens(t.top().expr)
    if shift.type == TypeTag.INTLIT:
        bits = int(shift.expr)
        if bits < 0:
            expr = f'{val}>>>{-bits}'
        else:
            expr = f'{val}<<{bits}'
    else:
        # The shift is evaluated twice
        if not is_temp(shift.expr):
            tid = cc.state.new_temp()
            t.declare(tid, shift.expr)
            shift.expr = tid
        expr = f'({shift.expr}<0?{val}>>>-{shift.expr}:{val}<<{shift.expr})'
    t.replace(1, TypeTag.INTVAL, expr)


# Comparison

def ps_eq(cc: 'Compiler') -> None:
    binbool(cc, '==', '$eq')


def ps_ne(cc: 'Compiler') -> None:
    binbool(cc, '!=', '$ne')


def ps_lt(cc: 'Compiler') -> None:
    binbool(cc, '<', '$lt')


def ps_le(cc: 'Compiler') -> None:
    binbool(cc, '<=', '$le')


def ps_gt(cc: 'Compiler') -> None:
    binbool(cc, '>', '$gt')


def ps_ge(cc: 'Compiler') -> None:
    binbool(cc, '>=', '$ge')


# Logic

def ps_and(cc: 'Compiler') -> None:
    if _numeric_operand(cc):
        binarith(cc, '&')
    else:
        binbool(cc, '&&', '$an')


def ps_or(cc: 'Compiler') -> None:
    if _numeric_operand(cc):
        binarith(cc, '|')
    else:
        binbool(cc, '||', '$or')


def ps_xor(cc: 'Compiler') -> None:
    if _numeric_operand(cc):
        binarith(cc, '^')
        return
    # No logical xor in JavaScript
    t = cc.tracker
    a, b = t.top(2), t.top(1)
    if (a.type | b.type) & TypeTag.BOOLEAN:
        tag = TypeTag.BOOLEAN
    else:
        tag = TypeTag.UNKNOWN
    t.pop()
    t.replace(1, tag, f'$xo({a.expr},{b.expr})')


def ps_not(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    top = t.top()
    if top.type & NUMTYP:
        t.replace(1, TypeTag.INTVAL, '~' + parens(top.expr))
    elif top.type & TypeTag.BOOLEAN:
        t.replace(1, TypeTag.BOOLEAN, '!' + parens(top.expr))
    else:
        t.replace(1, TypeTag.UNKNOWN, f'$nt({top.expr})')


def get_operators() -> Dict[str, Callable]:
    """Return the arithmetic, comparison and logic operators"""
    return {
        # Arithmetic
        'add': ps_add,
        'sub': ps_sub,
        'mul': ps_mul,
        'div': ps_div,
        'mod': ps_mod,
        'idiv': ps_idiv,
        'exp': ps_exp,
        'ln': ps_ln,
        'log': ps_log,
        'neg': ps_neg,
        'abs': ps_abs,
        'round': _math_call('round', TypeTag.INTVAL),
        'floor': _math_call('floor', TypeTag.INTVAL),
        'ceiling': _math_call('ceil', TypeTag.INTVAL),
        'sqrt': _math_call('sqrt', TypeTag.NUMVAL),
        'bitshift': ps_bitshift,

        # Comparison
        'eq': ps_eq,
        'ne': ps_ne,
        'lt': ps_lt,
        'le': ps_le,
        'gt': ps_gt,
        'ge': ps_ge,

        # Logic
        'and': ps_and,
        'or': ps_or,
        'xor': ps_xor,
        'not': ps_not,
    }
