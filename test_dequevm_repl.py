#!/usr/bin/env python3
# test_dequevm_repl.py
#
# Tests du REPL : on ne lance pas repl.run(), on utilise uniquement l'API interne.

from __future__ import annotations

import io
import os
import tempfile
import unittest
from contextlib import redirect_stdout

from dequevm_repl import HostREPL


class TestHostREPL(unittest.TestCase):
    def setUp(self):
        self.repl = HostREPL()

    def cmd(self, line: str) -> str:
        buf = io.StringIO()
        with redirect_stdout(buf):
            self.repl._handle_vm_command(line)
        return buf.getvalue()

    def test_run_buffer(self):
        self.repl.add_line("!2 !3")
        self.repl.add_line("!add !print")
        self.assertEqual(self.cmd(":vm run"), "5\n")

    def test_dot_stack_after_run(self):
        self.repl.add_line("!1 2! !3")
        self.cmd(":vm run")
        self.assertEqual(self.cmd(":vm .stack"), "<3> 3 1 2 \n")

    def test_run_reports_errors(self):
        self.repl.add_line("!add")
        self.assertIn("StackUnderflow", self.cmd(":vm run"))
        self.repl.add_line("bogus")
        self.assertIn("ParseError", self.cmd(":vm run"))

    def test_run_reports_exit_code(self):
        self.repl.add_line("!4 !exit")
        self.assertIn("Exit code 4", self.cmd(":vm run"))

    def test_step(self):
        self.repl.add_line("!1 !2 !add")
        out = self.cmd(":vm step")
        self.assertIn("!1", out)
        self.assertIn("<1> 1", out)
        self.cmd(":vm step")
        out = self.cmd(":vm step")
        self.assertIn("<1> 3", out)
        self.assertIn("finished", self.cmd(":vm step"))

    def test_new_line_reloads_on_step(self):
        self.repl.add_line("!1")
        self.cmd(":vm step")
        self.repl.add_line("!print")
        out = self.cmd(":vm step")
        self.assertIn("   0  !1", out)

    def test_list_and_clear(self):
        self.assertIn("empty", self.cmd(":vm list"))
        self.repl.add_line("!1 !print")
        self.assertIn("   1  !1 !print", self.cmd(":vm list"))
        self.assertIn("cleared", self.cmd(":vm clear"))
        self.assertEqual(self.repl.buffer, [])

    def test_read_from(self):
        with tempfile.TemporaryDirectory() as tmp:
            fn = os.path.join(tmp, "prog.dq")
            with open(fn, "w", encoding="utf-8") as f:
                f.write("!6\n!print\n")
            self.assertIn("read 2 lines", self.cmd(f':vm read-from "{fn}"'))
        self.assertEqual(self.cmd(":vm run"), "6\n")
        self.assertIn("cannot open", self.cmd(":vm read-from /nonexistent/x.dq"))

    def test_dot_load_replaces_buffer_and_runs(self):
        self.repl.add_line("!1 !print")
        with tempfile.TemporaryDirectory() as tmp:
            fn = os.path.join(tmp, "prog.dq")
            with open(fn, "w", encoding="utf-8") as f:
                f.write("!6 !print\n")
            self.assertIn("loaded", self.cmd(f":vm .load {fn}"))
        self.assertEqual(self.repl.buffer, ["!6 !print"])
        self.assertEqual(self.cmd(":vm run"), "6\n")
        self.assertIn("load error", self.cmd(":vm .load /nonexistent/x.dq"))
        self.assertEqual(self.repl.buffer, ["!6 !print"])

    def test_debug_survives_clear(self):
        repl = HostREPL(debug=True)
        self.assertTrue(repl.vm.debug)
        buf = io.StringIO()
        with redirect_stdout(buf):
            repl._handle_vm_command(":vm clear")
        self.assertTrue(repl.vm.debug)

    def test_help_and_unknown(self):
        self.assertIn(":vm run", self.cmd(":vm"))
        self.assertIn("unknown vm command", self.cmd(":vm frobnicate"))

    def test_quit_raises_systemexit(self):
        with self.assertRaises(SystemExit):
            self.cmd(":vm quit")


if __name__ == "__main__":
    unittest.main()
