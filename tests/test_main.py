#!/usr/bin/env python
# -*- coding: utf-8 -*-

import sys
import unittest

import groupby as gb
from . import mock
from .helpers import ExitTestHelper, NoopMock

class MainTestCase(unittest.TestCase):
    def test_main_connections(self):
        arglist = NoopMock(name='arglist')
        prog_mock = mock.Mock(name='Program')
        excepthook_mock = mock.Mock(name='ExceptHook')
        with mock.patch('sys.excepthook'):
            exitcode = gb.main(arglist, prog_mock, excepthook_mock)
            self.assertIs(sys.excepthook, excepthook_mock.with_sys_stderr())
        prog_mock.from_arglist.assert_called_with(arglist)
        program = prog_mock.from_arglist()
        excepthook_mock.with_sys_stderr.assert_called_with(program.args.encoding)
        self.assertIs(excepthook_mock.with_sys_stderr().show_tb, program.args.debug)
        program.main.assert_called_with()
        self.assertIs(exitcode, program.main())


class ScriptMainTestCase(unittest.TestCase, ExitTestHelper):
    def test_exits_with_main_result(self):
        with mock.patch('groupby.main', return_value=14) as main_mock, \
             mock.patch('sys.argv', ['groupby', '-f', '3']), \
             self.assertExits(14):
            gb.script_main()
        main_mock.assert_called_with(['-f', '3'])

    def test_errors_go_to_installed_hook(self):
        error = gb.UserInputError("error reading input")
        hook = mock.Mock(name='excepthook', side_effect=SystemExit(3))
        with mock.patch('groupby.main', side_effect=error), \
             mock.patch('sys.excepthook', hook), \
             self.assertExits(3):
            gb.script_main()
        exc_type, exc_value, _ = hook.call_args[0]
        self.assertIs(exc_type, gb.UserInputError)
        self.assertIs(exc_value, error)

    def test_errors_before_hook_installed_propagate(self):
        error = RuntimeError("early failure")
        with mock.patch('groupby.main', side_effect=error), \
             mock.patch('sys.excepthook', sys.__excepthook__), \
             self.assertRaises(RuntimeError):
            gb.script_main()
