"""
PostScript Cross-Compiler Operators
Conditionals, loops and procedure execution
"""

import re
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

from psc.emitter import LC, RC
from psc.errors import UnsupportedConstructError
from psc.operators.arith import inline_logic
from psc.tracker import StackEntry, Tracker, is_temp, parens
from psc.typetags import INTTYP, NUMTYP, STRTYP, TypeTag

if TYPE_CHECKING:
    from psc.compiler import Compiler

DIGITS = re.compile(r'^\d+$')


def block_text(entry: StackEntry) -> Optional[List[str]]:
    """Token texts of a captured block, None for any other entry."""
    if entry.tokens is None:
        return None
    return [tk.text for tk in entry.tokens]


def loop_body(cc: 'Compiler', t: Tracker, body: StackEntry,
              loop_vars: List[Tuple[TypeTag, str]]) -> None:
    """Compile a loop body into `t`, handing it the per-iteration values."""
    cc.prepare(body)
    inner = cc.tracker
    for tag, expr in loop_vars:
        inner.push(tag, expr)
    if inner is t:
        # Executed inline, so the body reads them from the real stack
        t.flush()
    t.append(cc.execute(body))


# Conditionals

def ps_if(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(2)
    body = t.pop()
    cond = inline_logic(t.pop().expr)

    # `a b cond {exch} if` swaps in place and keeps both values tracked.
    # Fresh temps: other entries may share an existing one (dup).
    if t.sp >= 2 and block_text(body) == ['exch']:
        a = cc.state.new_temp()
        t.declare(a, t.top(1).expr)
        b = cc.state.new_temp()
        t.declare(b, t.top(2).expr)
        t.top(1).expr, t.top(2).expr = a, b
        t.open('if(' + cond + ')' + LC)
        t.declare('_', a)
        t.assign(a, b)
        t.assign(b, '_')
        t.close(RC)
        return

    t.flush()
    t.open('if(' + cond + ')' + LC)
    t.new_branch()
    cc.prepare(body)
    t.append(cc.execute(body))
    t.close(RC)


def ps_ifelse(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(3)
    fexec = t.pop()
    texec = t.pop()
    cond = inline_logic(t.pop().expr)
    ttext, ftext = block_text(texec), block_text(fexec)

    # `cond {{0}} {{1}} ifelse` yields an executable that pushes a number
    if ttext and ftext and len(ttext) == len(ftext) == 3 \
            and ttext[0] == ftext[0] == '{' and DIGITS.match(ttext[1]) and DIGITS.match(ftext[1]):
        tid = cc.state.new_temp()
        t.declare(tid, f'{parens(cond)}?{ttext[1]}:{ftext[1]}')
        t.push(TypeTag.PRECALC, tid)
        return

    # `cond {5} {1} ifelse`
    if ttext and ftext and len(ttext) == len(ftext) == 1 \
            and DIGITS.match(ttext[0]) and DIGITS.match(ftext[0]):
        tid = cc.state.new_temp()
        t.declare(tid, f'{parens(cond)}?{ttext[0]}:{ftext[0]}')
        t.push(TypeTag.INTVAL, tid)
        return

    t.flush()
    cc.prepare(texec)
    tlines = cc.execute(texec)
    cc.prepare(fexec)
    flines = cc.execute(fexec)

    t.open('if(' + cond + ')' + LC)
    t.new_branch()
    t.append(tlines)
    t.close(RC + 'else' + LC)
    t.new_branch()
    t.append(flines)
    t.close(RC)


# Loops

def ps_forall(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(2)
    body = t.pop()
    obj = t.pop()
    state = cc.state

    if obj.type & (TypeTag.ARRAY | STRTYP):
        i, n, val = state.new_temp(), state.new_temp(), state.new_temp()
        t.flush()
        t.open(f'for(var {i}=0,{n}={obj.expr}.length;{i}<{n};{i}++)' + LC)
        t.new_branch()
        t.declare(val, f'$get({obj.expr},{i})')
        elem = TypeTag.UNKNOWN if obj.type & TypeTag.ARRAY else TypeTag.INTVAL
        loop_body(cc, t, body, [(elem, val)])
        t.close(RC)

    elif obj.type & TypeTag.DICT:
        key, val = state.new_temp(), state.new_temp()
        target = obj.expr if is_temp(obj.expr) else state.new_temp()
        t.flush()
        if target != obj.expr:
            t.declare(target, obj.expr)
        t.open(f'for(var {key} in {target})' + LC)
        t.new_branch()
        t.declare(val, f'{target}[{key}]')
        loop_body(cc, t, body, [(TypeTag.STRVAL, key), (TypeTag.UNKNOWN, val)])
        t.close(RC)

    else:
        t.flush()
        if body.tokens is not None and not body.tokens:
            # Scatter the composite onto the stack
            t.call(f'$forall({obj.expr});')
        else:
            t.open(f'$forall({obj.expr},function()' + LC)
            t.new_branch()
            loop_body(cc, t, body, [])
            t.close(RC + ');')


def ps_for(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(4)
    body = t.pop()
    limit = t.pop()
    inc = t.pop()
    init = t.pop()
    state = cc.state

    if limit.type == TypeTag.INTLIT:
        vlim = limit.expr
        limit_decl = ''
    else:
        vlim = state.new_temp()
        limit_decl = f',{vlim}={limit.expr}'
    tid = state.new_temp()

    if (init.type & INTTYP) and (inc.type & INTTYP):
        var_tag = TypeTag.INTVAL
    elif (init.type & NUMTYP) and (inc.type & NUMTYP):
        var_tag = TypeTag.NUMVAL
    else:
        var_tag = TypeTag.UNKNOWN

    t.flush()
    if inc.type != TypeTag.INTLIT:
        # Direction is only known at run time
        vinc = state.new_temp()
        t.open(f'for(var {tid}={init.expr},{vinc}={inc.expr}{limit_decl};'
               f'{vinc}<0?{tid}>={vlim}:{tid}<={vlim};{tid}+={vinc})' + LC)
    elif int(inc.expr) < 0:
        t.open(f'for(var {tid}={init.expr}{limit_decl};{tid}>={vlim};{tid}-={-int(inc.expr)})' + LC)
    else:
        t.open(f'for(var {tid}={init.expr}{limit_decl};{tid}<={vlim};{tid}+={inc.expr})' + LC)
    t.new_branch()
    loop_body(cc, t, body, [(var_tag, tid)])
    t.close(RC)


def ps_repeat(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(2)
    body = t.pop()
    count = t.pop()
    tid, lim = cc.state.new_temp(), cc.state.new_temp()

    t.flush()
    t.open(f'for(var {tid}=0,{lim}={count.expr};{tid}<{lim};{tid}++)' + LC)
    t.new_branch()
    loop_body(cc, t, body, [])
    t.close(RC)


def ps_loop(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    body = t.pop()

    t.flush()
    t.open('for(;;)' + LC)
    t.new_branch()
    loop_body(cc, t, body, [])
    t.close(RC)


def ps_exit(cc: 'Compiler') -> None:
    t = cc.tracker
    t.flush()
    t.statement('break;')


# Execution

def ps_exec(cc: 'Compiler') -> None:
    t = cc.tracker
    t.need(1)
    entry = t.pop()
    if entry.type in (TypeTag.TOKENS, TypeTag.PRECALC):
        t.flush()
        cc.prepare(entry)
        t.append(cc.execute(entry))
    elif entry.type == TypeTag.IENAME:
        t.flush()
        t.call(entry.expr + '();')
    elif entry.type & STRTYP:
        raise UnsupportedConstructError("exec of a string is not supported", cc.line)
    else:
        # Most likely a procedure; a wrong guess fails at run time
        t.flush()
        t.call(parens(entry.expr) + '();')


def ps_return(cc: 'Compiler') -> None:
    t = cc.tracker
    t.flush()
    t.statement('return;')


# System

def ps_debug(cc: 'Compiler') -> None:
    cc.tracker.dump('debug')


def ps_stack(cc: 'Compiler') -> None:
    t = cc.tracker
    t.flush()
    t.statement('$stack();')


def ps_handleerror(cc: 'Compiler') -> None:
    cc.tracker.statement('throw new Error($0.$error.errorname+": "+$0.$error.errorinfo);')


def ps_quit(cc: 'Compiler') -> None:
    """handleerror already throws"""


def get_operators() -> Dict[str, Callable]:
    """Return the control flow and system operators"""
    return {
        'if': ps_if,
        'ifelse': ps_ifelse,
        'forall': ps_forall,
        'for': ps_for,
        'repeat': ps_repeat,
        'loop': ps_loop,
        'exit': ps_exit,
        'exec': ps_exec,
        'return': ps_return,

        'debug': ps_debug,
        'stack': ps_stack,
        'handleerror': ps_handleerror,
        'quit': ps_quit,
    }
