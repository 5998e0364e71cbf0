"""
PostScript Cross-Compiler Operators
Graphics state and path construction on the $$ drawing surface
"""

from typing import TYPE_CHECKING, Callable, Dict, List

from psc.tracker import parens
from psc.typetags import TypeTag

if TYPE_CHECKING:
    from psc.compiler import Compiler

# operator: (canvas method, operand count)
CANVAS_CALLS = {
    'gsave': ('save', 0),
    'grestore': ('restore', 0),
    'setextent': ('setextent', 0),
    'scale': ('scale', 2),
    'translate': ('translate', 2),
    'setfont': ('setfont', 1),
    'charpath': ('charpath', 2),
    'setlinewidth': ('setlinewidth', 1),
    'setcolor': ('setcolor', 1),
    'stroke': ('stroke', 0),
    'newpath': ('newpath', 0),
    'closepath': ('closepath', 0),
    'moveto': ('moveto', 2),
    'lineto': ('lineto', 2),
    'rlineto': ('rlineto', 2),
    'rmoveto': ('rmoveto', 2),
    'fill': ('fill', 0),
}


def take(cc: 'Compiler', count: int) -> List[str]:
    """Pop `count` operands, bottom-most first."""
    t = cc.tracker
    t.need(count)
    if not count:
        return []
    args = [entry.expr for entry in t.stack[-count:]]
    del t.stack[-count:]
    return args


def canvas_call(method: str, count: int) -> Callable:
    def op(cc: 'Compiler') -> None:
        args = take(cc, count)
        cc.tracker.statement(f'$$.{method}({",".join(args)});')
    return op


def canvas_query(cc: 'Compiler', call: str, fields: List[str]) -> None:
    """Bind a canvas result to a temp and push the named fields"""
    t = cc.tracker
    tid = cc.state.new_temp()
    t.declare(tid, f'$$.{call}')
    for name in fields:
        t.push(TypeTag.NUMVAL, f'{tid}.{name}')


def ps_currentpoint(cc: 'Compiler') -> None:
    canvas_query(cc, 'currpos()', ['x', 'y'])


def ps_pathbbox(cc: 'Compiler') -> None:
    canvas_query(cc, 'pathbbox()', ['llx', 'lly', 'urx', 'ury'])


def ps_stringwidth(cc: 'Compiler') -> None:
    text, = take(cc, 1)
    canvas_query(cc, f'stringwidth({text})', ['w', 'h'])


def ps_dtransform(cc: 'Compiler') -> None:
    # Only the matrix form is used; device space equals user space
    t = cc.tracker
    t.need(3)
    t.pop()


def ps_currentfont(cc: 'Compiler') -> None:
    tid = cc.state.new_temp()
    cc.tracker.declare(tid, '$$.currfont()')
    cc.tracker.push(TypeTag.DICT, tid)


def ps_findfont(cc: 'Compiler') -> None:
    name, = take(cc, 1)
    tid = cc.state.new_temp()
    cc.tracker.declare(tid, f'$$.findfont({name})')
    cc.tracker.push(TypeTag.DICT, tid)


def ps_scalefont(cc: 'Compiler') -> None:
    font, size = take(cc, 2)
    t = cc.tracker
    t.statement(f'{parens(font)}.FontSize={size};')
    t.push(TypeTag.DICT, font)


def ps_ashow(cc: 'Compiler') -> None:
    dx, dy, text = take(cc, 3)
    cc.tracker.statement(f'$$.show({text},{dx},{dy});')


def ps_show(cc: 'Compiler') -> None:
    text, = take(cc, 1)
    cc.tracker.statement(f'$$.show({text},0,0);')


def ps_imagemask(cc: 'Compiler') -> None:
    # polarity is always true and the matrix is unused
    width, height, _polarity, _matrix, source = take(cc, 5)
    cc.tracker.statement(f'$$.imagemask({width},{height},{source});')


def ps_ignore_one(cc: 'Compiler') -> None:
    """Line caps and joins are fixed by the renderer"""
    take(cc, 1)


def arc_call(ccw: int) -> Callable:
    def op(cc: 'Compiler') -> None:
        x, y, r, a1, a2 = take(cc, 5)
        cc.tracker.statement(f'$$.arc({x},{y},{r},{a1},{a2},{ccw});')
    return op


def get_operators() -> Dict[str, Callable]:
    """Return the graphics operators"""
    operators = {name: canvas_call(method, count)
                 for name, (method, count) in CANVAS_CALLS.items()}
    operators.update({
        'currentpoint': ps_currentpoint,
        'pathbbox': ps_pathbbox,
        'stringwidth': ps_stringwidth,
        'dtransform': ps_dtransform,
        'currentfont': ps_currentfont,
        'findfont': ps_findfont,
        'scalefont': ps_scalefont,
        'ashow': ps_ashow,
        'show': ps_show,
        'imagemask': ps_imagemask,
        'setlinecap': ps_ignore_one,
        'setlinejoin': ps_ignore_one,
        'arc': arc_call(1),
        'arcn': arc_call(0),
    })
    return operators
