#!/usr/bin/env python3
# dequevm_vm_core.py
#
# Noyau de la VM "deque" :
# - une seule deque d'entiers 64 bits signés, partagée par les deux bouts
# - chaque instruction choisit son bout : !op = gauche, op! = droite
# - labels "nom:" résolus au chargement, sauts jmp / jmpif
# - sortie centralisée via VM.emit(text), entrée via VM.inp
#
from __future__ import annotations
import io
import re
import sys
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

INT64_MIN = -(1 << 63)
INT64_MAX = (1 << 63) - 1
_MASK64 = (1 << 64) - 1

_INT_RE = re.compile(r"[+-]?[0-9]+")


def wrap64(x: int) -> int:
    """Wrap a Python int into the two's-complement signed 64-bit range."""
    x &= _MASK64
    return x - (1 << 64) if x > INT64_MAX else x


def parse_int64(tok: str) -> Optional[int]:
    """Parse tok as a base-10 signed 64-bit literal. Return int or None."""
    if not _INT_RE.fullmatch(tok):
        return None
    val = int(tok, 10)
    if val < INT64_MIN or val > INT64_MAX:
        return None
    return val


class Direction(Enum):
    LEFT = "left"
    RIGHT = "right"

    def invert(self) -> "Direction":
        return Direction.RIGHT if self is Direction.LEFT else Direction.LEFT

    def mark(self, op: str) -> str:
        """Render op as a source token: '!op' for LEFT, 'op!' for RIGHT."""
        return f"!{op}" if self is Direction.LEFT else f"{op}!"


@dataclass(frozen=True)
class Instruction:
    op: str
    direction: Direction
    label: Optional[str] = None  # nom tel qu'écrit, seulement pour les "nom:"

    def is_label(self) -> bool:
        return self.label is not None

    def to_token(self) -> str:
        if self.label is not None:
            return f"{self.label}:"
        return self.direction.mark(self.op)

    def __repr__(self) -> str:
        return f"Instruction({self.to_token()})"


Program = Tuple[Instruction, ...]
LabelTable = Dict[str, int]


# ============================================================
# Erreurs
# ============================================================

class VMError(RuntimeError): ...


class ParseError(VMError):
    def __init__(self, token: str, index: int) -> None:
        super().__init__(f"token #{index} {token!r} has no direction marker ('!op' or 'op!') and is not a label ('name:')")
        self.token = token
        self.index = index


class StackUnderflow(VMError): ...
class UnknownLabel(VMError): ...
class NonIntegerInput(VMError): ...
class InvalidJump(VMError): ...


class RuntimeExit(VMError):
    def __init__(self, code: int) -> None:
        super().__init__(f"Exit code {code}")
        self.code = code


# ============================================================
# Loader
# ============================================================

def load(program_text: str) -> Tuple[Program, LabelTable]:
    """
    Tokenize program_text on whitespace and build (instructions, labels).

    The token index is the instruction address. A label definition records
    its own index and compiles to a no-op so addresses stay aligned with the
    token stream; references may appear before the definition.
    """
    instructions: List[Instruction] = []
    labels: LabelTable = {}
    for addr, tok in enumerate(program_text.split()):
        if tok.endswith(":"):
            name = tok[:-1]
            labels[name.lower()] = addr
            instructions.append(Instruction("label", Direction.LEFT, label=name))
        elif tok.startswith("!"):
            instructions.append(Instruction(tok[1:], Direction.LEFT))
        elif tok.endswith("!"):
            instructions.append(Instruction(tok[:-1], Direction.RIGHT))
        else:
            raise ParseError(tok, addr)
    return tuple(instructions), labels


def dump(program: Program) -> str:
    """Serialize instructions back to source tokens (single-space separated)."""
    return " ".join(ins.to_token() for ins in program)


# ============================================================
# Opcodes
# ============================================================

@dataclass
class Opcode:
    name: str
    prim: Callable[["VM", Direction], None]
    doc: str = ""


DOT_CMDS = (".help", ".stack", ".labels", ".see", ".ops", ".ip", ".save", ".load")


class VM:

    def __init__(self, *, out: Optional[Any] = None, inp: Optional[Any] = None,
                 debug: bool = False, err: Optional[Any] = None):
        # Flux par défaut : ceux du process, résolus à l'appel
        self.out = out if out is not None else sys.stdout
        self.inp = inp if inp is not None else sys.stdin
        self.err = err if err is not None else sys.stderr
        self.debug = debug

        self.program: Program = ()
        self.labels: LabelTable = {}
        self.data: Deque[int] = deque()
        self.ip: int = 0

        # état d'arrêt (exit 0 met alive à False)
        self.alive: bool = True
        self.exit_code: Optional[int] = None
        self._jumped: bool = False

        self.ops: Dict[str, Opcode] = {}
        self._install_core()

    # --- Program lifecycle ---
    def load_program(self, program_text: str) -> None:
        """Load a new program and reset the run state (data, ip, halt flag)."""
        program, labels = load(program_text)
        self.program = program
        self.labels = labels
        self.reset()

    def reset(self) -> None:
        self.data = deque()
        self.ip = 0
        self.alive = True
        self.exit_code = None
        self._jumped = False

    # --- Data store access ---
    def _where(self) -> str:
        if 0 <= self.ip < len(self.program):
            return f" ({self.program[self.ip].to_token()} at {self.ip})"
        return ""

    def pop(self, d: Direction) -> int:
        try:
            if d is Direction.LEFT:
                return self.data.popleft()
            return self.data.pop()
        except IndexError:
            raise StackUnderflow(f"could not pop from {d.value} end of empty deque{self._where()}") from None

    def push(self, d: Direction, val: int) -> None:
        val = wrap64(val)
        if d is Direction.LEFT:
            self.data.appendleft(val)
        else:
            self.data.append(val)

    def jump(self, addr: int) -> None:
        # addr >= len(program) : la boucle s'arrête normalement
        if addr < 0:
            raise InvalidJump(f"negative jump target {addr}{self._where()}")
        self.ip = addr
        self._jumped = True

    def emit(self, text: str) -> None:
        """Point central de sortie texte."""
        self.out.write(text)

    def emit_byte(self, b: int) -> None:
        """Write one raw byte; text streams without a binary buffer get chr(b)."""
        raw = getattr(self.out, "buffer", None)
        if raw is None:
            self.out.write(chr(b))
            return
        self.out.flush()
        raw.write(bytes([b]))
        raw.flush()

    # --- Execution loop ---
    def execute(self) -> None:
        """Run until ip reaches program length or `exit` fires.

        Errors raised by a handler propagate unchanged; ``RuntimeExit`` is
        raised for a nonzero exit code.
        """
        while self.alive and self.ip < len(self.program):
            self.step()

    def step(self) -> bool:
        """Execute exactly one instruction.
        Returns True if more work remains, False otherwise.
        """
        if not self.alive or self.ip >= len(self.program):
            return False
        ins = self.program[self.ip]
        self._jumped = False
        self._dispatch(ins)
        if not self._jumped and self.alive:
            self.ip += 1
        if self.debug:
            self.err.write(f"data {list(self.data)}\n")
        return self.alive and self.ip < len(self.program)

    def _dispatch(self, ins: Instruction) -> None:
        opcode = self.ops.get(ins.op)
        if opcode is not None:
            opcode.prim(self, ins.direction)
            return
        self.push(ins.direction, self._resolve_operand(ins.op))

    def _resolve_operand(self, tok: str) -> int:
        val = parse_int64(tok)
        if val is not None:
            return val
        addr = self.labels.get(tok.lower())
        if addr is None:
            raise UnknownLabel(f"Label {tok} does not exist.")
        return addr

    def run(self, program_text: str, *, out: Optional[Any] = None, inp: Optional[Any] = None) -> str:
        """Load and execute program_text, returning what it printed."""
        old_out, old_inp = self.out, self.inp
        target = out if out is not None else io.StringIO()
        start_len = len(target.getvalue()) if hasattr(target, "getvalue") else None
        self.out = target
        if inp is not None:
            self.inp = io.StringIO(inp) if isinstance(inp, str) else inp
        try:
            self.load_program(program_text)
            self.execute()
            if start_len is not None:
                return target.getvalue()[start_len:]
            return ""
        finally:
            self.out, self.inp = old_out, old_inp

    # --- Core primitives ---
    def _install_core(self) -> None:
        def addp(name, prim, *, doc=""):
            self.ops[name] = Opcode(name, prim, doc)
            return self.ops[name]

        def binop(fn):
            # a = premier pop (le plus récent), b = second
            def prim(vm, d):
                a = vm.pop(d)
                b = vm.pop(d)
                vm.push(d, fn(a, b))
            return prim

        # Arithmetic / logic
        addp("add", binop(lambda a, b: a + b), doc="( b a -- a+b )")
        addp("sub", binop(lambda a, b: b - a), doc="( b a -- b-a )")
        addp("shr", binop(lambda a, b: b >> (a & 63)), doc="( b a -- b>>a )")
        addp("shl", binop(lambda a, b: b << (a & 63)), doc="( b a -- b<<a )")
        addp("eq",  binop(lambda a, b: int(a == b)), doc="( b a -- flag )")
        addp("or",  binop(lambda a, b: a | b), doc="( b a -- a|b )")
        addp("and", binop(lambda a, b: a & b), doc="( b a -- a&b )")
        addp("xor", binop(lambda a, b: a ^ b), doc="( b a -- a^b )")
        addp("not", lambda vm, d: vm.push(d, ~vm.pop(d)), doc="( a -- ~a )")

        # Comparisons (true = 1, false = 0)
        addp(">",  binop(lambda a, b: int(b > a)),  doc="( b a -- b>a )")
        addp("<",  binop(lambda a, b: int(b < a)),  doc="( b a -- b<a )")
        addp(">=", binop(lambda a, b: int(b >= a)), doc="( b a -- b>=a )")
        addp("<=", binop(lambda a, b: int(b <= a)), doc="( b a -- b<=a )")

        # Stack basics
        def prim_swap(vm, d):
            a = vm.pop(d); b = vm.pop(d)
            vm.push(d, a); vm.push(d, b)
        addp("swap", prim_swap, doc="( b a -- a b )")
        def prim_over(vm, d):
            a = vm.pop(d); b = vm.pop(d)
            vm.push(d, b); vm.push(d, a); vm.push(d, b)
        addp("over", prim_over, doc="( b a -- b a b )")
        def prim_dup(vm, d):
            a = vm.pop(d)
            vm.push(d, a); vm.push(d, a)
        addp("dup", prim_dup, doc="( a -- a a )")
        addp("drop", lambda vm, d: vm.pop(d), doc="( a -- )")
        addp("move", lambda vm, d: vm.push(d.invert(), vm.pop(d)), doc="( a -- ) push a on the other end")

        # I/O
        addp("print", lambda vm, d: vm.emit(f"{vm.pop(d)}\n"), doc="( a -- ) print decimal + newline")
        addp("printc", lambda vm, d: vm.emit_byte(vm.pop(d) & 0xFF), doc="( a -- ) write the low byte")
        def prim_read(vm, d):
            line = vm.inp.readline()
            if not line:
                raise NonIntegerInput(f"read: end of input{vm._where()}")
            val = parse_int64(line.strip())
            if val is None:
                raise NonIntegerInput(f"read: {line.strip()!r} is not an integer{vm._where()}")
            vm.push(d, val)
        addp("read", prim_read, doc="( -- n ) read one line as an integer")
        def prim_readc(vm, d):
            line = vm.inp.readline().rstrip("\r\n")
            vm.push(d, ord(line[0]) if line else ord(" "))
        addp("readc", prim_readc, doc="( -- c ) first character of one input line (space if empty)")
        def prim_trace(vm, d):
            vm.emit("".join("*" if x == 1 else " " for x in vm.data) + "\n")
        addp("trace", prim_trace, doc="( -- ) one glyph per cell: '*' for 1, blank otherwise")

        # Control flow
        addp("jmp", lambda vm, d: vm.jump(vm.pop(d)), doc="( addr -- )")
        def prim_jmpif(vm, d):
            addr = vm.pop(d)
            cond = vm.pop(d)
            if cond != 0:
                vm.jump(addr)
        addp("jmpif", prim_jmpif, doc="( cond addr -- ) jump when cond != 0")
        def prim_exit(vm, d):
            code = vm.pop(d)
            vm.alive = False
            vm.exit_code = code
            if code != 0:
                raise RuntimeExit(code)
        addp("exit", prim_exit, doc="( code -- ) stop; nonzero code is a failure")
        addp("label", lambda vm, d: None, doc="( -- ) no-op left by 'name:'")

    # --- Dot-commands via dispatch table ---
    def _dotcmd_dispatch(self):
        return {
            ".help": self._dot_help,
            ".stack": self._dot_stack,
            ".labels": self._dot_labels,
            ".see": self._dot_see,
            ".ops": self._dot_ops,
            ".ip": self._dot_ip,
            ".save": self._dot_save,
            ".load": self._dot_load,
        }

    def _dot_help(self, args, out):
        names = [c for c in self._dotcmd_dispatch() if c not in (".save", ".load")]
        out.write(" ".join(names) + "\n")
        out.write(".save <file> / .load <file>\n")

    def _dot_stack(self, args, out):
        out.write(f"<{len(self.data)}> " + " ".join(map(str, self.data)) + " \n")

    def _dot_labels(self, args, out):
        if not self.labels:
            out.write("labels: (none)\n"); return
        for name, addr in sorted(self.labels.items(), key=lambda kv: kv[1]):
            out.write(f"{name}={addr}\n")

    def _dot_see(self, args, out):
        for i, ins in enumerate(self.program):
            mark = ">" if i == self.ip else " "
            out.write(f"{i:4d}{mark} {ins.to_token()}\n")

    def _dot_ops(self, args, out):
        for name in sorted(self.ops):
            out.write(f"{name:7s} {self.ops[name].doc}\n")

    def _dot_ip(self, args, out):
        state = "running" if self.alive else f"halted (exit {self.exit_code})"
        out.write(f"ip={self.ip}/{len(self.program)} {state}\n")

    def _dot_save(self, args, out):
        if not args:
            out.write("save error: missing filename\n"); return
        fn = args[0]
        try:
            with open(fn, "w", encoding="utf-8") as f:
                f.write(dump(self.program) + "\n")
            out.write(f"program saved to {fn}\n")
        except OSError as e:
            out.write(f"save error: {e}\n")

    def _dot_load(self, args, out):
        if not args:
            out.write("load error: missing filename\n"); return
        fn = args[0]
        try:
            with open(fn, "r", encoding="utf-8") as f:
                self.load_program(f.read())
            out.write(f"loaded {fn}\n")
        except (OSError, ParseError) as e:
            out.write(f"load error: {e}\n")

    def handle_dot_command(self, line: str, out):
        parts = line.split()
        cmd, args = parts[0], parts[1:]
        h = self._dotcmd_dispatch().get(cmd)
        if not h:
            out.write(f"unknown dot-cmd: {cmd}\n")
            return
        h(args, out)
