#!/usr/bin/env python
# -*- coding: utf-8 -*-

import io
import unittest

import groupby as gb

class InputWordSplitterTestCase(unittest.TestCase):
    def assertWords(self, source, expected):
        splitter = gb.InputWordSplitter(io.StringIO(source))
        self.assertEqual(list(splitter), expected)

    def test_one_line(self):
        self.assertWords("DES1 CRD1 DES2\n", ['DES1', 'CRD1', 'DES2'])

    def test_multiple_lines(self):
        self.assertWords("a b\nc\nd e f\n", ['a', 'b', 'c', 'd', 'e', 'f'])

    def test_whitespace_runs(self):
        self.assertWords("  a \t\tb\n\n\n   c  ", ['a', 'b', 'c'])

    def test_no_trailing_newline(self):
        self.assertWords("one two", ['one', 'two'])

    def test_empty_input(self):
        self.assertWords("", [])

    def test_only_whitespace(self):
        self.assertWords(" \n\t\n", [])

    def test_non_ascii(self):
        self.assertWords("café ♥ naïve", ['café', '♥', 'naïve'])
