"""
PostScript Cross-Compiler Emitter
Linearizes code lines into JavaScript function literals and program text
"""

import re
from typing import List, Optional

from psc.ir import CodeLine, render
from psc.lexer import escape_string

# Curly braces kept out of string literals so editors match brackets
LC = '\x7b'
RC = '\x7d'


def function_literal(lines: List[CodeLine], prologue: str = '', epilogue: str = '') -> str:
    """Wrap compiled procedure lines in a function literal."""
    return 'function()' + LC + '\n' + prologue + render(lines, line_comments=True) + epilogue + RC


def program_text(lines: List[CodeLine]) -> str:
    return render(lines)


# Dictionary naming

JS_IDENT = re.compile(r'^[A-Za-z_]\w*$')
LOOKUP_NAME = re.compile(r'^[$A-Za-z_]\w*$')
QUOTED_IDENT = re.compile(r'^"[A-Za-z_]\w*"$')
QUOTED = re.compile(r'^"(?:[^"\\]|\\.)*"$')


def unquote(expr: str) -> str:
    """Recover a dictionary name from its "quoted" expression."""
    return re.sub(r'\\(.)', r'\1', expr[1:-1])


def dict_ref(level: int, name: str) -> str:
    if LOOKUP_NAME.match(name):
        return f'${level}.{name}'
    return f'${level}["{escape_string(name)}"]'


def dict_target(level: int, key_expr: str) -> str:
    """Assignment target for a key expression on dictionary $level."""
    if QUOTED_IDENT.match(key_expr):
        return f'${level}.{key_expr[1:-1]}'
    return f'${level}[{key_expr}]'


def member(obj: str, key_expr: str) -> Optional[str]:
    """Property access for a constant key, or None when the key is computed."""
    if QUOTED.match(key_expr):
        if LOOKUP_NAME.match(key_expr[1:-1]):
            return f'{obj}.{key_expr[1:-1]}'
        return f'{obj}[{key_expr}]'
    return None


# Branch coverage instrumentation

def branch_marker(branch: int) -> str:
    return f'$psc_coverage[{branch}]=1;\n'


def coverage_prologue(max_branch: int) -> str:
    # The maximum branch number is always recorded so the report knows
    # how many branches exist.
    return f'var $psc_coverage={LC}{max_branch}:1{RC};\ntry {LC}\n'


def coverage_epilogue(name: str, coverage_dir: str) -> str:
    return (RC + 'catch(e)' + LC + '\n'
            'throw e;\n' +
            RC + 'finally' + LC + '\n'
            'typeof require==="function"&&'
            f'require("fs").appendFileSync("{coverage_dir}/{name}",'
            'Object.keys($psc_coverage).join("\\n")+"\\n","binary");\n' +
            RC + '\n')


def functions_registry() -> str:
    return 'var $psc_functions=[];'


def functions_registry_writer(coverage_dir: str) -> str:
    return ('typeof require=="function"&&'
            f'require("fs").writeFileSync("{coverage_dir}/functions",'
            '$psc_functions.join("\\n")+"\\n","binary");')


def instrumentation(name: Optional[str], branch: Optional[int], max_branch: int,
                    coverage_dir: str) -> tuple:
    """Return (prologue, epilogue) for a procedure body.

    Named top-level procedures persist their branch hits on every exit
    path; nested procedures only mark their own entry branch.
    """
    if name is not None:
        return coverage_prologue(max_branch), coverage_epilogue(name, coverage_dir)
    if branch is not None:
        return branch_marker(branch), ''
    return '', ''
