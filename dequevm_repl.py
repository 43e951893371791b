#!/usr/bin/env python3
# dequevm_repl.py
#
# REPL pour la VM deque :
# - les lignes sans préfixe sont ajoutées au buffer du programme
# - toutes les commandes REPL commencent par:  :vm ...
#
# Commandes prévues:
#   :vm run                  -> charge le buffer et l'exécute
#   :vm load                 -> charge le buffer sans l'exécuter (pour :vm step)
#   :vm step                 -> exécute une seule instruction
#   :vm list                 -> affiche le buffer numéroté
#   :vm clear                -> vide le buffer et la VM
#   :vm read-from "file"     -> ajoute un fichier programme au buffer
#   :vm .stack / .labels / .see / ...  -> dot-command sur la VM
#   :vm quit                 -> quitte le REPL
#
# Le programme n'est jamais modifié pendant une exécution : le buffer
# n'est relu qu'au prochain :vm run / :vm load.

from __future__ import annotations

import io
import shlex
import sys
from typing import List

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion, PathCompleter
from prompt_toolkit.patch_stdout import patch_stdout

from dequevm_vm_core import DOT_CMDS, VM, RuntimeExit, VMError

VM_CMDS = ["run", "load", "step", "list", "clear", "read-from", "quit", "help"]


class HostREPL:
    """
    REPL texte par-dessus une VM unique.

    - accumule les lignes de programme dans ``buffer``
    - :vm run / load / step pilotent la VM
    - intercepte :vm .stack, :vm .see, etc. et appelle vm.handle_dot_command(...)
    """

    def __init__(self, *, debug: bool = False) -> None:
        self.debug = debug
        self.vm = VM(debug=debug)
        self.buffer: List[str] = []
        # True quand la VM contient le buffer courant (pour :vm step)
        self._loaded: bool = False

    # ------------------------------------------------------------------
    # Utilitaires internes
    # ------------------------------------------------------------------

    def _source(self) -> str:
        return "\n".join(self.buffer)

    def _buffer_labels(self) -> List[str]:
        return [tok[:-1] for tok in self._source().split() if tok.endswith(":")]

    def _report_error(self, e: VMError) -> None:
        if isinstance(e, RuntimeExit):
            print(str(e))
        else:
            print(f"{type(e).__name__}: {e}")

    def add_line(self, line: str) -> None:
        self.buffer.append(line)
        self._loaded = False

    def _load_buffer(self) -> bool:
        try:
            self.vm.load_program(self._source())
        except VMError as e:
            self._report_error(e)
            self._loaded = False
            return False
        self._loaded = True
        return True

    def _run_buffer(self) -> None:
        if not self._load_buffer():
            return
        # sortie résolue à l'appel (compatible redirect_stdout / patch_stdout)
        self.vm.out = sys.stdout
        try:
            self.vm.execute()
        except VMError as e:
            self._report_error(e)

    def _load_file(self, args: List[str]) -> None:
        if not args:
            print("load error: missing filename")
            return
        filename = args[0]
        try:
            with open(filename, "r", encoding="utf-8") as f:
                lines = f.read().splitlines()
        except OSError as e:
            print(f"load error: {e}")
            return
        self.buffer = lines
        if self._load_buffer():
            print(f"loaded {filename}")

    def _step(self) -> None:
        if not self._loaded and not self._load_buffer():
            return
        vm = self.vm
        if not vm.alive or vm.ip >= len(vm.program):
            print("program finished; use :vm load to restart.")
            return
        vm.out = sys.stdout
        ip = vm.ip
        token = vm.program[ip].to_token()
        try:
            vm.step()
        except VMError as e:
            self._report_error(e)
            return
        print(f"{ip:4d}  {token:12s} <{len(vm.data)}> " + " ".join(map(str, vm.data)))

    def _print_list(self) -> None:
        if not self.buffer:
            print("(empty buffer)")
            return
        for i, ln in enumerate(self.buffer, 1):
            print(f"{i:4d}  {ln}")

    # ------------------------------------------------------------------
    # Commandes :vm ...
    # ------------------------------------------------------------------

    def _handle_vm_command(self, line: str) -> bool:
        """
        Traite une ligne commençant par ':vm'.
        Retourne True si la commande a été reconnue/traitée.
        Peut lever SystemExit pour :vm quit.
        """
        rest = line.strip()[len(":vm"):].strip()
        if not rest:
            self._print_help()
            return True

        try:
            parts = shlex.split(rest)
        except ValueError as e:
            print(f"parse error in :vm command: {e}")
            return True

        cmd = parts[0]
        args = parts[1:]

        # .load remplace le buffer : :vm run / step relisent toujours le buffer
        if cmd == ".load":
            self._load_file(args)
            return True

        if cmd.startswith("."):
            out = io.StringIO()
            self.vm.handle_dot_command(" ".join(parts), out)
            sys.stdout.write(out.getvalue())
            sys.stdout.flush()
            return True

        if cmd == "read-from":
            if not args:
                print('usage: :vm read-from "filename"')
                return True
            filename = args[0]
            try:
                with open(filename, "r", encoding="utf-8") as f:
                    lines = f.read().splitlines()
            except OSError as e:
                print(f"read-from: cannot open {filename!r}: {e}")
                return True
            for ln in lines:
                self.add_line(ln)
            print(f"read {len(lines)} lines from {filename}")
            return True

        if cmd == "run":
            self._run_buffer()
            return True

        if cmd == "load":
            if self._load_buffer():
                print(f"loaded {len(self.vm.program)} instructions")
            return True

        if cmd == "step":
            self._step()
            return True

        if cmd == "list":
            self._print_list()
            return True

        if cmd == "clear":
            self.buffer.clear()
            self.vm = VM(debug=self.debug)
            self._loaded = False
            print("cleared.")
            return True

        if cmd in ("quit", "exit"):
            print("bye.")
            raise SystemExit(0)

        if cmd in ("help", "?"):
            self._print_help()
            return True

        print(f"unknown vm command: {cmd!r}")
        self._print_help()
        return True

    def _print_help(self) -> None:
        print("REPL commands (prefix with :vm):")
        print("  :vm run                  - load the buffer and execute it")
        print("  :vm load                 - load the buffer without running")
        print("  :vm step                 - execute one instruction")
        print("  :vm list                 - show the program buffer")
        print("  :vm clear                - empty buffer and reset the VM")
        print("  :vm read-from \"file\"     - append a program file to the buffer")
        print("  :vm .stack/.see/...      - run VM dot-command")
        print("  :vm quit                 - exit REPL")

    # ------------------------------------------------------------------
    # Boucle principale (PromptSession + patch_stdout)
    # ------------------------------------------------------------------

    def run(self) -> None:
        """
        Boucle REPL interactive basée sur prompt_toolkit, avec complétion :
        - commandes :vm ... et dot-commands
        - fichiers pour :vm read-from
        - opcodes (!op / op!) et labels du buffer.
        """
        print("DequeVM REPL")
        print("Type program tokens to add them to the buffer.")
        print("Use :vm ... for commands.  (:vm help for help)")

        outer = self
        dot_cmds = sorted(DOT_CMDS)
        path_completer = PathCompleter(expanduser=True)

        class DequeVMCompleter(Completer):
            def get_completions(self, document, complete_event):
                stripped = document.text_before_cursor.lstrip()

                if stripped.startswith(":vm"):
                    after = stripped[len(":vm"):].lstrip()
                    if not after:
                        for name in VM_CMDS + dot_cmds:
                            yield Completion(name, start_position=0)
                        return
                    parts = after.split()
                    if len(parts) == 1 and not after.endswith(" "):
                        frag = parts[0]
                        for name in VM_CMDS + dot_cmds:
                            if name.startswith(frag):
                                yield Completion(name, start_position=-len(frag))
                        return
                    if parts[0] == "read-from":
                        yield from path_completer.get_completions(document, complete_event)
                    return

                word = document.get_word_before_cursor(WORD=True)
                if not word:
                    return
                # "!ad" -> "!add" ; "ad" -> "add!"
                left = word.startswith("!")
                frag = word[1:] if left else word
                names = sorted(outer.vm.ops) + outer._buffer_labels()
                for name in names:
                    if name.lower().startswith(frag.lower()):
                        text = f"!{name}" if left else f"{name}!"
                        yield Completion(text, start_position=-len(word))

        session = PromptSession(completer=DequeVMCompleter())

        with patch_stdout():
            while True:
                try:
                    line = session.prompt(f"[{len(self.buffer)}] dequevm> ")
                except EOFError:
                    print("\nEOF -> quitting.")
                    break
                except KeyboardInterrupt:
                    print("\nKeyboardInterrupt (Ctrl-C). Use ':vm quit' to exit.")
                    continue

                if not line.strip():
                    continue

                if line.strip().startswith(":vm"):
                    try:
                        self._handle_vm_command(line)
                    except SystemExit:
                        return
                    continue

                self.add_line(line)


def main() -> None:
    HostREPL().run()


if __name__ == "__main__":
    main()
