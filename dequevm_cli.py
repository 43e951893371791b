#!/usr/bin/env python3
# dequevm_cli.py
#
# Point d'entrée ligne de commande :
# - lit le programme depuis le chemin donné en premier argument
# - charge, exécute, et traduit le résultat en code de sortie du process
# - --debug : trace de la deque après chaque instruction (sur stderr)
# - --dump  : affiche le programme normalisé sans l'exécuter
# - --repl  : lance le REPL interactif (programme optionnel préchargé)

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from dequevm_vm_core import VM, ParseError, RuntimeExit, VMError, dump, load


def exit_status(code: int) -> int:
    """Map a program exit code to a process exit status (nonzero stays nonzero)."""
    return code if 0 < code < 256 else 1


def read_program(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dequevm", description="Run a deque VM program")
    parser.add_argument("program", nargs="?", help="program file path")
    parser.add_argument("--debug", action="store_true", help="print the deque after each instruction (stderr)")
    parser.add_argument("--dump", action="store_true", help="print the normalized program instead of running it")
    parser.add_argument("--repl", action="store_true", help="start the interactive REPL")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    source = None
    if args.program is not None:
        try:
            source = read_program(args.program)
        except (OSError, UnicodeDecodeError):
            print(f"Could not read file: {args.program}", file=sys.stderr)
            return 1

    if args.repl:
        # import local : prompt_toolkit n'est utile qu'en mode interactif
        from dequevm_repl import HostREPL
        repl = HostREPL(debug=args.debug)
        if source is not None:
            repl.buffer.extend(source.splitlines())
        repl.run()
        return 0

    if source is None:
        print("File name is required.", file=sys.stderr)
        return 2

    if args.dump:
        try:
            program, _labels = load(source)
        except ParseError as e:
            print(f"ParseError: {e}", file=sys.stderr)
            return 1
        print(dump(program))
        return 0

    vm = VM(debug=args.debug)
    try:
        vm.load_program(source)
    except ParseError as e:
        print(f"ParseError: {e}", file=sys.stderr)
        return 1

    try:
        vm.execute()
    except RuntimeExit as e:
        sys.stdout.flush()
        print(str(e), file=sys.stderr)
        return exit_status(e.code)
    except VMError as e:
        sys.stdout.flush()
        print(f"{type(e).__name__}: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
