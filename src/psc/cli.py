"""
PostScript Cross-Compiler
Command line entry point
"""

import sys
import argparse
import logging
from typing import List, Optional

from psc import __version__
from psc.compiler import compile_source
from psc.config import CompilerConfig, load_config
from psc.errors import PSCError

logger = logging.getLogger(__name__)

SWITCHES = {
    '--no-devar': 'Keep single-use temporaries',
    '--with-devar': 'Inline single-use temporaries (default)',
    '--no-coverage': 'No branch coverage instrumentation (default)',
    '--with-coverage': 'Instrument procedures for branch coverage',
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='psc', description='PostScript to JavaScript cross-compiler')
    parser.add_argument('file', nargs='?', help='PostScript source file (default: stdin)')
    parser.add_argument('-o', '--out', help='Write JavaScript to file (default: stdout)')
    for switch, text in SWITCHES.items():
        parser.add_argument(switch, dest='flags', action='append_const', const=switch, help=text)
    parser.add_argument('--coverage-dir', help='Directory coverage data is written to at run time')
    parser.add_argument('--config', help='Config file (json)')
    parser.add_argument('--verbose', action='store_true', help='Verbose logging')
    parser.add_argument('--version', action='version', version=f'psc {__version__}')
    return parser


def make_config(args: argparse.Namespace) -> CompilerConfig:
    config = load_config(args.config)
    config = CompilerConfig.from_flags(args.flags or [], config)
    if args.coverage_dir:
        config.coverage_dir = args.coverage_dir
    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')

    try:
        config = make_config(args)
        if args.file:
            with open(args.file, 'r', encoding='latin-1') as f:
                source = f.read()
        else:
            source = sys.stdin.read()

        output = compile_source(source, config)
        logger.debug("generated %d lines", output.count('\n'))

        if args.out:
            with open(args.out, 'w', encoding='latin-1') as f:
                f.write(output)
        else:
            sys.stdout.write(output)
    except FileNotFoundError as e:
        print(f"psc: File '{e.filename}' not found", file=sys.stderr)
        sys.exit(1)
    except PSCError as e:
        print(f"psc: {e}", file=sys.stderr)
        sys.exit(1)
    return 0


if __name__ == '__main__':
    main()
