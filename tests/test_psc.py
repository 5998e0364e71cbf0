#!/usr/bin/env python3
"""
PostScript Cross-Compiler Tests
Test suite for lexer, tracker, operators, optimizer and driver
"""

import io
import os
import sys
import json
import logging
import tempfile
import unittest
from contextlib import redirect_stderr
from pathlib import Path

# Add src directory to Python path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from psc.cli import main
from psc.compiler import Compiler, compile_source, parse_number
from psc.config import CompilerConfig, load_config
from psc.errors import (ConfigError, LexError, MalformedStateError, UnknownOperatorError,
                        UnsupportedConstructError)
from psc.ir import CodeLine, LineKind, render
from psc.lexer import Lexer, Token
from psc.operators.arith import inline_logic
from psc.optimizer import devar, static_array, static_dict
from psc.state import b62
from psc.tracker import parens
from psc.typetags import TypeTag, to_value


def exprs(cc):
    return [entry.expr for entry in cc.tracker.stack]


def block_code(cc):
    return [ln.code for ln in cc.tracker.block]


def run(source, config=None):
    """Compile top-level code without finishing the program"""
    cc = Compiler(source, config)
    cc.compile()
    return cc


class TestLexer(unittest.TestCase):

    def texts(self, source):
        return [tk.text for tk in Lexer(source).tokenize()]

    def test_token_kinds(self):
        self.assertEqual(self.texts('1 /abc //def (str) [ ] { } << >>'),
                         ['1', '/abc', '//def', '(str)', '[', ']', '{', '}', '<<', '>>'])

    def test_delimiters_split_names(self):
        self.assertEqual(self.texts('/a/b{c}'), ['/a', '/b', '{', 'c', '}'])

    def test_comments(self):
        self.assertEqual(self.texts('1 % comment (not a string\n2'), ['1', '2'])

    def test_line_numbers(self):
        tokens = Lexer('1\n2\n\n3').tokenize()
        self.assertEqual([tk.line for tk in tokens], [1, 2, 4])

    def test_nested_and_escaped_parens(self):
        self.assertEqual(self.texts('(a(b)c)'), ['(a(b)c)'])
        self.assertEqual(self.texts(r'(a\(b\)c)'), ['(a(b)c)'])

    def test_string_escapes(self):
        self.assertEqual(self.texts(r'(line\n)'), [r'(line\n)'])
        self.assertEqual(self.texts(r'(\101)'), ['(A)'])
        self.assertEqual(self.texts('(say "hi")'), [r'(say \"hi\")'])

    def test_hex_string(self):
        self.assertEqual(self.texts('<41 42>'), [r'(\x41\x42)'])
        # odd length is padded with a zero digit
        self.assertEqual(self.texts('<414>'), [r'(\x41\x40)'])

    def test_unterminated_string(self):
        with self.assertRaises(LexError) as cm:
            Lexer('\n(abc').tokenize()
        self.assertEqual(cm.exception.line, 2)

    def test_bad_hex_string(self):
        with self.assertRaises(LexError):
            Lexer('<4G>').tokenize()

    def test_token_stream_override(self):
        lexer = Lexer('x')
        lexer.push([Token('a', 1), Token('b', 1)])
        self.assertEqual(lexer.peek().text, 'a')
        self.assertEqual(lexer.next().text, 'a')
        self.assertEqual(lexer.next().text, 'b')
        self.assertIsNone(lexer.next())
        lexer.pop()
        self.assertIsNone(lexer.peek())
        self.assertEqual(lexer.next().text, 'x')
        self.assertIsNone(lexer.next())


class TestTypesAndState(unittest.TestCase):

    def test_literal_to_value(self):
        self.assertEqual(to_value(TypeTag.INTLIT), TypeTag.INTVAL)
        self.assertEqual(to_value(TypeTag.NUMLIT), TypeTag.NUMVAL)
        self.assertEqual(to_value(TypeTag.STRLIT), TypeTag.STRVAL)
        self.assertEqual(to_value(TypeTag.ARRAY), TypeTag.ARRAY)

    def test_b62(self):
        self.assertEqual(b62(0), '0')
        self.assertEqual(b62(61), 'z')
        self.assertEqual(b62(62), '10')

    def test_parse_number(self):
        self.assertEqual(parse_number('42'), 42)
        self.assertEqual(parse_number('-5'), -5)
        self.assertEqual(parse_number('.5'), 0.5)
        self.assertEqual(parse_number('1e3'), 1000)
        self.assertEqual(parse_number('16#FF'), 255)
        self.assertEqual(parse_number('2#1010'), 10)
        self.assertIsNone(parse_number('-inf'))
        self.assertIsNone(parse_number('a-b'))

    def test_parens(self):
        self.assertEqual(parens('a+b'), '(a+b)')
        self.assertEqual(parens('$1.x'), '$1.x')
        self.assertEqual(parens('-5'), '-5')
        self.assertEqual(parens('"s"'), '"s"')
        self.assertEqual(parens('f(a,b)'), 'f(a,b)')
        self.assertEqual(parens('f(g(a))'), '(f(g(a)))')


class TestCodeLines(unittest.TestCase):

    def test_rendering(self):
        self.assertEqual(CodeLine(LineKind.DECLARE, 1, 1, '_0', '5').code, 'var _0=5;')
        self.assertEqual(CodeLine(LineKind.PUSH, 1, 1, expr='5').code, '$k[$j++]=5;')
        self.assertEqual(CodeLine(LineKind.ASSIGN, 1, 1, '$1.x', '5').code, '$1.x=5;')
        self.assertEqual(CodeLine(LineKind.DROP, 1, 1).code, '$j--;')
        self.assertEqual(CodeLine(LineKind.DROP, 1, 1, count=3).code, '$j-=3;')

    def test_render_with_line_comments(self):
        lines = [CodeLine(LineKind.PUSH, 7, 1, expr='1')]
        self.assertEqual(render(lines), '$k[$j++]=1;\n')
        self.assertEqual(render(lines, line_comments=True), '$k[$j++]=1;/*7*/\n')

    def test_uses_ignore_strings_and_longer_names(self):
        ln = CodeLine(LineKind.PUSH, 1, 1, expr='"_0"+_0+_01')
        self.assertEqual(ln.uses('_0'), 1)

    def test_substitute_outside_strings(self):
        ln = CodeLine(LineKind.ASSIGN, 1, 1, '$1.x', '"_0"+_0')
        ln.substitute('_0', '$k[--$j]')
        self.assertEqual(ln.code, '$1.x="_0"+$k[--$j];')


class TestTracker(unittest.TestCase):

    def setUp(self):
        self.cc = Compiler('')

    def test_need_pops_from_real_stack(self):
        t = self.cc.tracker
        t.need(2)
        self.assertEqual(block_code(self.cc), ['var _0=$k[--$j];', 'var _1=$k[--$j];'])
        # the first value popped was the top of the stack
        self.assertEqual(exprs(self.cc), ['_1', '_0'])
        self.assertEqual(t.depth, 2)

    def test_need_is_lazy(self):
        t = self.cc.tracker
        t.push(TypeTag.INTLIT, '1')
        t.need(1)
        self.assertEqual(t.block, [])

    def test_flush(self):
        t = self.cc.tracker
        t.push(TypeTag.INTLIT, '1')
        t.push(TypeTag.STRLIT, '"a"')
        t.flush()
        self.assertEqual(t.sp, 0)
        self.assertEqual(block_code(self.cc), ['$k[$j++]=1;', '$k[$j++]="a";'])

    def test_dump_reports_real_stack_depth(self):
        t = self.cc.tracker
        t.need(2)
        self.assertIn('(2 from the real stack)', t.dump('check'))

    def test_flush_without_expression(self):
        t = self.cc.tracker
        t.push(TypeTag.TOKENS, None, [])
        with self.assertRaises(MalformedStateError):
            t.flush()

    def test_context_push_pop(self):
        contexts = self.cc.contexts
        contexts.push([Token('1', 1)])
        self.assertEqual(contexts.depth, 1)
        self.cc.compile()
        lines = contexts.pop()
        self.assertEqual(contexts.depth, 0)
        self.assertEqual([ln.code for ln in lines], ['$k[$j++]=1;'])


class TestStackOperators(unittest.TestCase):

    def test_exch(self):
        self.assertEqual(exprs(run('1 2 exch')), ['2', '1'])

    def test_dup_literal(self):
        cc = run('(a) dup')
        self.assertEqual(exprs(cc), ['"a"', '"a"'])
        self.assertEqual(cc.tracker.block, [])

    def test_dup_expression_binds_temp(self):
        cc = run('1 2 add dup')
        self.assertEqual(exprs(cc), ['_0', '_0'])
        self.assertEqual(block_code(cc), ['var _0=1+2;'])

    def test_roll(self):
        self.assertEqual(exprs(run('1 2 3 3 1 roll')), ['3', '1', '2'])
        self.assertEqual(exprs(run('1 2 3 3 -1 roll')), ['2', '3', '1'])

    def test_roll_needs_constants(self):
        with self.assertRaises(UnsupportedConstructError):
            run('1 2 3 true roll')

    def test_index(self):
        self.assertEqual(exprs(run('1 2 3 1 index')), ['1', '2', '3', '2'])

    def test_index_runtime(self):
        cc = run('1 2 3 1 2 add index')
        self.assertEqual(block_code(cc)[-1], 'var _0=$k[$j-1-(1+2)];')
        self.assertEqual(cc.tracker.top().type, TypeTag.UNKNOWN)

    def test_copy(self):
        self.assertEqual(exprs(run('1 2 3 2 copy')), ['1', '2', '3', '2', '3'])

    def test_copy_into_string(self):
        cc = run('(abc) 3 string copy')
        self.assertEqual(block_code(cc), ['var _0=$s(3);', 'var _1=$strcpy(_0,"abc");'])
        self.assertEqual(exprs(cc), ['_1'])
        self.assertEqual(cc.tracker.top().type, TypeTag.STRVAL)

    def test_copy_unknown_count(self):
        with self.assertRaises(UnsupportedConstructError):
            run('1 true copy')

    def test_pop_coalesces(self):
        cc = run('1 pop pop pop')
        self.assertEqual(block_code(cc), ['$j-=2;'])

    def test_counttomark(self):
        cc = run('mark 1 2 counttomark')
        self.assertEqual(block_code(cc), ['$k[$j++]=Infinity;', 'var _0=$counttomark()+2;'])
        self.assertEqual(cc.tracker.top().type, TypeTag.INTVAL)

    def test_cleartomark_flushes(self):
        cc = run('1 cleartomark')
        self.assertEqual(block_code(cc), ['$k[$j++]=1;', '$cleartomark();'])


class TestArithmetic(unittest.TestCase):

    def top(self, source):
        return run(source).tracker.top()

    def test_integer_result(self):
        top = self.top('1 2 add')
        self.assertEqual((top.type, top.expr), (TypeTag.INTVAL, '1+2'))

    def test_division_is_real(self):
        top = self.top('1 2 div')
        self.assertEqual((top.type, top.expr), (TypeTag.NUMVAL, '1/2'))

    def test_real_operand(self):
        self.assertEqual(self.top('1.5 2 add').type, TypeTag.NUMVAL)

    def test_precedence(self):
        self.assertEqual(self.top('1 2 add 3 mul').expr, '(1+2)*3')

    def test_idiv_truncates(self):
        top = self.top('-5 2 idiv')
        self.assertEqual((top.type, top.expr), (TypeTag.INTLIT, '-2'))

    def test_idiv_runtime(self):
        self.assertEqual(self.top('1 2 add 2 idiv').expr, '~~((1+2)/2)')

    def test_neg(self):
        self.assertEqual(self.top('5 neg').expr, '-5')
        self.assertEqual(self.top('1.5 neg').expr, '-1.5')
        self.assertEqual(self.top('1 2 add neg').expr, '-(1+2)')

    def test_bitshift(self):
        self.assertEqual(self.top('1 3 bitshift').expr, '1<<3')
        self.assertEqual(self.top('8 -2 bitshift').expr, '8>>>2')

    def test_comparisons(self):
        self.assertEqual(self.top('1 2 eq').expr, '1==2')
        top = self.top('(a) (b) eq')
        self.assertEqual((top.type, top.expr), (TypeTag.BOOLEAN, '$eq("a","b")'))

    def test_and_or(self):
        self.assertEqual(self.top('true false and').expr, 'true&&false')
        self.assertEqual(self.top('12 10 and').expr, '12&10')
        self.assertEqual(self.top('(a) (b) or').expr, '$or("a","b")')

    def test_xor(self):
        top = self.top('(a) (b) xor')
        self.assertEqual((top.type, top.expr), (TypeTag.UNKNOWN, '$xo("a","b")'))
        self.assertEqual(self.top('true (b) xor').type, TypeTag.BOOLEAN)
        self.assertEqual(self.top('6 3 xor').expr, '6^3')

    def test_not(self):
        self.assertEqual(self.top('true not').expr, '!true')
        self.assertEqual(self.top('5 not').expr, '~5')
        self.assertEqual(self.top('(a) not').expr, '$nt("a")')

    def test_inline_logic(self):
        self.assertEqual(inline_logic('$an(_1,_2)'), '(_1&&_2)')
        self.assertEqual(inline_logic('$or(_1,_2)'), '(_1||_2)')
        self.assertEqual(inline_logic('$xo(_1,_2)'), '(!_1&&_2||_1&&!_2)')


class TestControl(unittest.TestCase):

    def test_ifelse_numeric_shortcut(self):
        cc = run('true {1} {2} ifelse')
        self.assertEqual(block_code(cc), ['var _0=true?1:2;'])
        self.assertEqual(cc.tracker.top().type, TypeTag.INTVAL)

    def test_ifelse_precalc(self):
        cc = run('true {{0}} {{1}} ifelse')
        self.assertEqual(cc.tracker.top().type, TypeTag.PRECALC)

    def test_ifelse_general(self):
        out = compile_source('/f { 1 2 lt { (a) } { (b) } ifelse } bind def')
        self.assertIn('if(1<2){/*1*/\n$k[$j++]="a";/*1*/\n}else{/*1*/\n$k[$j++]="b";/*1*/\n}/*1*/\n', out)

    def test_exch_if_swaps_in_place(self):
        cc = run('1 2 add 3 4 mul true {exch} if')
        self.assertEqual(block_code(cc), [
            'var _0=3*4;',
            'var _1=1+2;',
            'if(true){',
            'var _=_0;',
            '_0=_1;',
            '_1=_;',
            '}',
        ])
        self.assertEqual(exprs(cc), ['_1', '_0'])

    def test_exch_if_leaves_shared_temp_alone(self):
        cc = run('1 2 add dup dup 7 add true {exch} if')
        self.assertEqual(block_code(cc), [
            'var _0=1+2;',
            'var _1=_0+7;',
            'var _2=_0;',
            'if(true){',
            'var _=_1;',
            '_1=_2;',
            '_2=_;',
            '}',
        ])
        # the bottom copy of the dup still reads the original value
        self.assertEqual(exprs(cc), ['_0', '_2', '_1'])

    def test_if(self):
        out = compile_source('/f { 10 dict begin /x 0 def x 1 eq { 5 } if end } bind def')
        self.assertIn('if($1.x==1){/*1*/\n$k[$j++]=5;/*1*/\n}/*1*/\n', out)

    def test_forall_array(self):
        cc = run('[1 2] { pop } forall')
        self.assertEqual(block_code(cc), [
            'var _0=$a([1,2]);',
            'for(var _1=0,_2=_0.length;_1<_2;_1++){',
            'var _3=$get(_0,_1);',
            '}',
        ])

    def test_forall_dict(self):
        cc = run('<< /a 1 >> { pop pop } forall')
        self.assertIn('for(var _1 in _0){', block_code(cc))
        self.assertIn('var _2=_0[_1];', block_code(cc))

    def test_forall_unknown(self):
        self.assertEqual(block_code(run('/x load {} forall'))[-1], '$forall(_0);')
        cc = run('/x load { pop } forall')
        self.assertIn('$forall(_0,function(){', block_code(cc))
        self.assertEqual(block_code(cc)[-1], '});')

    def test_for(self):
        self.assertIn('for(var _0=0;_0<=10;_0+=1){', block_code(run('0 1 10 { pop } for')))
        self.assertIn('for(var _0=10;_0>=0;_0-=1){', block_code(run('10 -1 0 { pop } for')))

    def test_for_runtime_increment(self):
        cc = run('0 /x load 10 { pop } for')
        self.assertIn('for(var _1=0,_2=_0;_2<0?_1>=10:_1<=10;_1+=_2){', block_code(cc))

    def test_repeat(self):
        self.assertEqual(block_code(run('3 { 1 } repeat')),
                         ['for(var _0=0,_1=3;_0<_1;_0++){', '$k[$j++]=1;', '}'])

    def test_loop_exit(self):
        self.assertEqual(block_code(run('{ exit } loop')), ['for(;;){', 'break;', '}'])

    def test_exec_block_inline(self):
        self.assertEqual(block_code(run('{ 1 } exec')), ['$k[$j++]=1;'])

    def test_exec_immediate_name(self):
        self.assertEqual(block_code(run('//foo exec')), ['$0.foo();'])


class TestOptimizer(unittest.TestCase):

    def line(self, kind, target='', expr=''):
        return CodeLine(kind, 1, 0, target, expr)

    def test_devar_inlines_single_use(self):
        lines = [self.line(LineKind.DECLARE, '_0', '$k[--$j]'),
                 self.line(LineKind.ASSIGN, '$1.x', '_0')]
        self.assertEqual(devar(lines), 1)
        self.assertEqual([ln.code for ln in lines], ['$1.x=$k[--$j];'])

    def test_devar_declines_across_stack_reference(self):
        lines = [self.line(LineKind.DECLARE, '_0', '$k[--$j]'),
                 self.line(LineKind.PUSH, expr='5'),
                 self.line(LineKind.ASSIGN, '$1.x', '_0')]
        self.assertEqual(devar(lines), 0)
        self.assertEqual(len(lines), 3)

    def test_devar_declines_inside_loop(self):
        lines = [self.line(LineKind.DECLARE, '_0', '$1.n'),
                 self.line(LineKind.OPEN, expr='for(;;){'),
                 self.line(LineKind.PUSH, expr='_0'),
                 self.line(LineKind.CLOSE, expr='}')]
        self.assertEqual(devar(lines), 0)

    def test_devar_declines_after_call(self):
        lines = [self.line(LineKind.DECLARE, '_0', '$1.n'),
                 self.line(LineKind.CALL, expr='$1.f();'),
                 self.line(LineKind.PUSH, expr='_0')]
        self.assertEqual(devar(lines), 0)

    def test_devar_declines_multiple_uses(self):
        lines = [self.line(LineKind.DECLARE, '_0', '$1.n'),
                 self.line(LineKind.PUSH, expr='_0*_0')]
        self.assertEqual(devar(lines), 0)

    def test_devar_skips_non_terms(self):
        lines = [self.line(LineKind.DECLARE, '_0', '1+2'),
                 self.line(LineKind.PUSH, expr='_0')]
        self.assertEqual(devar(lines), 0)

    def test_devar_stops_at_helper_writes(self):
        lines = [self.line(LineKind.DECLARE, '_0', '$get(_1,0)'),
                 self.line(LineKind.STATEMENT, expr='$put(_1,0,9);'),
                 self.line(LineKind.ASSIGN, '$1.z', '_0')]
        self.assertEqual(devar(lines), 0)

    def test_devar_stops_at_dictionary_writes(self):
        lines = [self.line(LineKind.DECLARE, '_0', '$1.n'),
                 self.line(LineKind.ASSIGN, '$1.m', '5'),
                 self.line(LineKind.ASSIGN, '$1.z', '_0')]
        self.assertEqual(devar(lines), 0)

    def test_devar_stops_at_bracket_key_reassignment(self):
        lines = [self.line(LineKind.DECLARE, '_0', '$1["a-b"]'),
                 self.line(LineKind.ASSIGN, '$1["a-b"]', '2'),
                 self.line(LineKind.PUSH, expr='_0')]
        self.assertEqual(devar(lines), 0)

    def test_devar_stack_pop_crosses_dictionary_writes(self):
        lines = [self.line(LineKind.DECLARE, '_0', '$k[--$j]'),
                 self.line(LineKind.ASSIGN, '$1.m', '5'),
                 self.line(LineKind.ASSIGN, '$1.z', '_0')]
        self.assertEqual(devar(lines), 1)
        self.assertEqual([ln.code for ln in lines], ['$1.m=5;', '$1.z=$k[--$j];'])

    def test_static_array(self):
        lines = [self.line(LineKind.PUSH, expr='1'),
                 self.line(LineKind.DECLARE, '_0', '$1.x'),
                 self.line(LineKind.PUSH, expr='_0')]
        static = static_array(lines)
        self.assertEqual(static.expr, '$a([1,_0])')
        self.assertEqual([ln.target for ln in static.hoisted], ['_0'])
        # detection leaves its input alone
        self.assertEqual(static_array(lines).expr, static.expr)

    def test_static_array_rejects_stack_reads(self):
        lines = [self.line(LineKind.DECLARE, '_0', '$k[--$j]'),
                 self.line(LineKind.PUSH, expr='_0')]
        self.assertIsNone(static_array(lines))
        self.assertIsNone(static_array([self.line(LineKind.CALL, expr='$1.f();')]))

    def test_static_dict(self):
        lines = [self.line(LineKind.PUSH, expr='"a"'),
                 self.line(LineKind.PUSH, expr='1'),
                 self.line(LineKind.PUSH, expr='"b c"'),
                 self.line(LineKind.PUSH, expr='2')]
        self.assertEqual(static_dict(lines).expr, '{a:1,"b c":2}')

    def test_static_dict_needs_string_keys(self):
        lines = [self.line(LineKind.PUSH, expr='_0'),
                 self.line(LineKind.PUSH, expr='1')]
        self.assertIsNone(static_dict(lines))


class TestCompiler(unittest.TestCase):

    def test_procedure_output(self):
        self.assertEqual(compile_source('/foo { 1 2 add } bind def'),
                         '$0.foo=function(){\n$k[$j++]=1+2;/*1*/\n};\n')

    def test_top_level_def(self):
        self.assertEqual(compile_source('/x 5 def /a-b 1 def'), '$0.x=5;\n$0["a-b"]=1;\n')

    def test_devar_of_need(self):
        out = compile_source('/f { 10 dict begin /x exch def end } bind def')
        self.assertEqual(out, '$0.f=function(){\nvar $1={};/*1*/\n$1.x=$k[--$j];/*1*/\n};\n')

    def test_devar_disabled(self):
        config = CompilerConfig(devar=False)
        out = compile_source('/f { 10 dict begin /x exch def end } bind def', config)
        self.assertIn('var _0=$k[--$j];/*1*/\n$1.x=_0;', out)

    def test_devar_keeps_pop_before_flush(self):
        # the repeat flushes 1 onto the real stack before _0 is pushed back
        out = compile_source('/f { 1 exch 2 { 3 } repeat pop } bind def')
        self.assertIn('var _0=$k[--$j];/*1*/\n$k[$j++]=1;/*1*/\n$k[$j++]=_0;/*1*/\n', out)

    def test_devar_keeps_read_before_put(self):
        out = compile_source('/f { 10 dict begin /a [1 2] def a 0 get a 0 9 put /z exch def end } bind def')
        self.assertIn('var _2=$get($1.a,0);/*1*/\n$put($1.a,0,9);/*1*/\n$1.z=_2;', out)

    def test_devar_keeps_read_before_redefinition(self):
        out = compile_source('/f { 10 dict begin /a-b 1 def a-b /a-b 2 def /z exch def end } bind def')
        self.assertIn('var _0=$1["a-b"];/*1*/\n$1["a-b"]=2;/*1*/\n$1.z=_0;', out)

    def test_dictionary_lookup(self):
        out = compile_source('/f { 10 dict begin /x 5 def x x add end } bind def')
        self.assertIn('$1.x=5;', out)
        self.assertIn('$k[$j++]=$1.x+$1.x;', out)

    def test_string_key(self):
        out = compile_source('/f { 10 dict begin (a b) 1 def end } bind def')
        self.assertIn('$1["a b"]=1;', out)

    def test_static_array_literal(self):
        out = compile_source('/f { [1 2 3] } bind def')
        self.assertIn('$k[$j++]=$a([1,2,3]);', out)

    def test_runtime_array_assigned_by_def(self):
        out = compile_source('/f { 10 dict begin /a [ 0 1 counttomark ] def end } bind def')
        self.assertIn('$k[$j++]=Infinity;', out)
        self.assertIn('var _0=$counttomark()+2;', out)
        self.assertIn('$1.a=$a();', out)

    def test_static_dict_literal(self):
        out = compile_source('/f { << /a 1 /b (x) >> } bind def')
        self.assertIn('var _0={a:1,b:"x"};', out)

    def test_forward_reference_in_nested_dictionary(self):
        out = compile_source('/f { 10 dict begin /a { b } def /b { 1 } def a end } bind def')
        self.assertIn('$1.a=function(){\n$1.b();/*1*/\n};', out)
        self.assertIn('$1.a();', out)

    def test_forward_reference_at_top_level(self):
        out = compile_source('/a { b } bind def /b { 1 } bind def')
        self.assertIn('$0.a=function(){\n$0.b();/*1*/\n};', out)

    def test_unknown_identifier_in_procedure(self):
        with self.assertRaises(UnknownOperatorError) as cm:
            compile_source('/a {\n zork\n} bind def')
        self.assertEqual(cm.exception.token, 'zork')
        self.assertEqual(cm.exception.line, 2)

    def test_unknown_identifier_at_top_level(self):
        with self.assertRaises(UnknownOperatorError):
            compile_source('zork')

    def test_immediate_name(self):
        top = run('//foo').tracker.top()
        self.assertEqual((top.type, top.expr), (TypeTag.IENAME, '$0.foo'))

    def test_aload_pop(self):
        out = compile_source('/f { 10 dict begin /x [1 2] def x aload pop end } bind def')
        self.assertIn('$1.x=$a([1,2]);', out)
        self.assertIn('$aload($1.x);', out)

    def test_aload_without_pop(self):
        with self.assertRaises(UnsupportedConstructError):
            compile_source('/f { 10 dict begin /x [1 2] def x aload end } bind def')

    def test_unterminated_block(self):
        with self.assertRaises(LexError):
            compile_source('/f { 1 2')

    def test_unbalanced_close(self):
        with self.assertRaises(LexError):
            compile_source('1 }')

    def test_mismatched_close(self):
        with self.assertRaises(LexError):
            compile_source('/f { 1 ] } def')

    def test_end_without_begin(self):
        with self.assertRaises(MalformedStateError):
            compile_source('end')

    def test_graphics(self):
        cc = run('1 2 moveto 3 4 lineto stroke currentpoint')
        self.assertEqual(block_code(cc), ['$$.moveto(1,2);', '$$.lineto(3,4);', '$$.stroke();',
                                          'var _0=$$.currpos();'])
        self.assertEqual(exprs(cc), ['_0.x', '_0.y'])

    def test_coverage_instrumentation(self):
        out = compile_source('/f { 1 { 2 } if } bind def', CompilerConfig(coverage=True))
        self.assertTrue(out.startswith('var $psc_functions=[];\n$psc_functions.push("f");\n'))
        self.assertIn('var $psc_coverage={1:1};\ntry {\n', out)
        self.assertIn('$psc_coverage[0]=1;', out)
        self.assertIn('appendFileSync("coverage/f"', out)
        self.assertIn('writeFileSync("coverage/functions"', out)


class TestConfig(unittest.TestCase):

    def test_flags(self):
        config = CompilerConfig.from_flags(['--no-devar', '--with-coverage'])
        self.assertFalse(config.devar)
        self.assertTrue(config.coverage)

    def test_unknown_flag_warns(self):
        with self.assertLogs('psc.config', level=logging.WARNING):
            config = CompilerConfig.from_flags(['--fast'])
        self.assertTrue(config.devar)

    def test_from_dict(self):
        config = CompilerConfig.from_dict({'devar': False, 'environment': {'pixs': 'dict', 'foo': 'array'}})
        self.assertFalse(config.devar)
        self.assertEqual(config.environment['foo'], TypeTag.ARRAY)
        self.assertEqual(config.environment['pixs'], TypeTag.DICT)
        self.assertEqual(config.environment['pixx'], TypeTag.INTVAL)

    def test_invalid_config(self):
        with self.assertRaises(ConfigError):
            CompilerConfig.from_dict({'speed': 11})
        with self.assertRaises(ConfigError):
            CompilerConfig.from_dict({'devar': 'yes'})
        with self.assertRaises(ConfigError):
            CompilerConfig.from_dict({'environment': {'x': 'float'}})

    def test_load_config_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'psc.json')
            with open(path, 'w') as f:
                json.dump({'coverage': True, 'coverage_dir': 'cov'}, f)
            config = load_config(path)
        self.assertTrue(config.coverage)
        self.assertEqual(config.coverage_dir, 'cov')

    def test_load_config_errors(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'bad.json')
            with open(path, 'w') as f:
                f.write('{not json')
            with self.assertRaises(ConfigError):
                load_config(path)
            with self.assertRaises(ConfigError):
                load_config(os.path.join(tmp, 'missing.json'))


class TestCLI(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def write(self, name, text):
        path = os.path.join(self.tmp.name, name)
        with open(path, 'w') as f:
            f.write(text)
        return path

    def test_compile_to_file(self):
        src = self.write('in.ps', '/foo { 1 2 add } bind def\n')
        out = os.path.join(self.tmp.name, 'out.js')
        self.assertEqual(main([src, '-o', out]), 0)
        with open(out) as f:
            self.assertEqual(f.read(), '$0.foo=function(){\n$k[$j++]=1+2;/*1*/\n};\n')

    def test_missing_file(self):
        stderr = io.StringIO()
        with redirect_stderr(stderr), self.assertRaises(SystemExit) as cm:
            main([os.path.join(self.tmp.name, 'nope.ps')])
        self.assertEqual(cm.exception.code, 1)
        self.assertIn('not found', stderr.getvalue())

    def test_compile_error(self):
        src = self.write('bad.ps', 'zork\n')
        stderr = io.StringIO()
        with redirect_stderr(stderr), self.assertRaises(SystemExit) as cm:
            main([src])
        self.assertEqual(cm.exception.code, 1)
        self.assertIn('psc: line 1: Unknown identifier (zork)', stderr.getvalue())


if __name__ == '__main__':
    # Create a test suite
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    # Add test classes
    for case in (TestLexer, TestTypesAndState, TestCodeLines, TestTracker, TestStackOperators,
                 TestArithmetic, TestControl, TestOptimizer, TestCompiler, TestConfig, TestCLI):
        suite.addTests(loader.loadTestsFromTestCase(case))

    # Run tests
    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)

    # Exit with non-zero code if tests failed
    sys.exit(0 if result.wasSuccessful() else 1)
