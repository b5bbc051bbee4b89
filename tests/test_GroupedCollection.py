#!/usr/bin/env python
# -*- coding: utf-8 -*-

import unittest

import groupby as gb

class GroupedCollectionTestCase(unittest.TestCase):
    def setUp(self):
        self.collection = gb.GroupedCollection()

    def add_all(self, *pairs):
        for key, value in pairs:
            self.collection.add(key, value)

    def test_empty(self):
        self.assertEqual(len(self.collection), 0)
        self.assertEqual(list(self.collection.items()), [])
        self.assertEqual(self.collection.total(), 0)

    def test_keys_in_first_seen_order(self):
        self.add_all(('b', 1), ('a', 2), ('b', 3), ('c', 4))
        self.assertEqual(list(self.collection), ['b', 'a', 'c'])

    def test_values_in_insertion_order(self):
        self.add_all(('k', 'z'), ('k', 'a'), ('k', 'm'))
        self.assertEqual(self.collection['k'], ('z', 'a', 'm'))

    def test_duplicates_kept(self):
        self.add_all(('k', 'x'), ('k', 'x'))
        self.assertEqual(self.collection['k'], ('x', 'x'))
        self.assertEqual(self.collection.total(), 2)

    def test_get_missing(self):
        self.assertIsNone(self.collection.get('nope'))
        self.assertEqual(self.collection.get('nope', ()), ())

    def test_getitem_missing(self):
        with self.assertRaises(KeyError):
            self.collection['nope']

    def test_contains(self):
        self.add_all(('', 'blank'))
        self.assertIn('', self.collection)
        self.assertNotIn('x', self.collection)

    def test_items(self):
        self.add_all(('DES', 'DES1'), ('CRD', 'CRD1'), ('DES', 'DES2'))
        self.assertEqual(list(self.collection.items()),
                         [('DES', ('DES1', 'DES2')), ('CRD', ('CRD1',))])

    def test_values_are_snapshots(self):
        self.add_all(('k', 1))
        values = self.collection['k']
        self.add_all(('k', 2))
        self.assertEqual(values, (1,))
        self.assertEqual(self.collection['k'], (1, 2))

    def test_len_counts_keys(self):
        self.add_all(('a', 1), ('a', 2), ('b', 3))
        self.assertEqual(len(self.collection), 2)
        self.assertEqual(self.collection.total(), 3)
