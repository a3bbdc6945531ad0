"""
Unit Tests for Cell Values
"""

import unittest

from gridbase.cells import (
    CellKind, ColumnType, as_number, as_text, classify, coerce_for_column, is_empty
)
from gridbase.errors import ValidationError


class TestClassify(unittest.TestCase):
    """Test cell kind tagging."""

    def test_scalars(self):
        self.assertEqual(classify('abc'), CellKind.TEXT)
        self.assertEqual(classify(''), CellKind.TEXT)
        self.assertEqual(classify(3), CellKind.NUMBER)
        self.assertEqual(classify(2.5), CellKind.NUMBER)
        self.assertEqual(classify(None), CellKind.EMPTY)

    def test_rejected_values(self):
        """Bools, containers and non-finite floats are not cell values."""
        self.assertIsNone(classify(True))
        self.assertIsNone(classify([1]))
        self.assertIsNone(classify({'a': 1}))
        self.assertIsNone(classify(float('nan')))
        self.assertIsNone(classify(float('inf')))


class TestValueViews(unittest.TestCase):

    def test_is_empty(self):
        self.assertTrue(is_empty(None))
        self.assertTrue(is_empty(''))
        self.assertFalse(is_empty(' '))
        self.assertFalse(is_empty(0))

    def test_as_number(self):
        self.assertEqual(as_number(5), 5.0)
        self.assertEqual(as_number(' 12.5 '), 12.5)
        self.assertIsNone(as_number('abc'))
        self.assertIsNone(as_number(None))
        self.assertIsNone(as_number(False))

    def test_as_text_renders_integral_floats_without_fraction(self):
        self.assertEqual(as_text(3.0), '3')
        self.assertEqual(as_text(3.5), '3.5')
        self.assertEqual(as_text(7), '7')
        self.assertIsNone(as_text(None))


class TestColumnTypeParse(unittest.TestCase):

    def test_members_pass_through(self):
        self.assertIs(ColumnType.parse(ColumnType.TEXT), ColumnType.TEXT)
        self.assertIs(ColumnType.parse(ColumnType.NUMBER), ColumnType.NUMBER)

    def test_names_are_case_insensitive(self):
        self.assertIs(ColumnType.parse('number'), ColumnType.NUMBER)
        self.assertIs(ColumnType.parse('TEXT'), ColumnType.TEXT)

    def test_unknown_type(self):
        with self.assertRaises(ValidationError):
            ColumnType.parse('DATE')
        with self.assertRaises(ValidationError):
            ColumnType.parse(None)


class TestCoerceForColumn(unittest.TestCase):

    def test_number_column(self):
        self.assertEqual(coerce_for_column('42', ColumnType.NUMBER), 42)
        self.assertEqual(coerce_for_column('4.5', ColumnType.NUMBER), 4.5)
        self.assertEqual(coerce_for_column(7, ColumnType.NUMBER), 7)
        self.assertIsNone(coerce_for_column('', ColumnType.NUMBER))
        self.assertIsNone(coerce_for_column(None, ColumnType.NUMBER))

    def test_number_column_rejects_text(self):
        with self.assertRaises(ValidationError):
            coerce_for_column('abc', ColumnType.NUMBER)

    def test_text_column_renders_numbers(self):
        self.assertEqual(coerce_for_column(12, ColumnType.TEXT), '12')
        self.assertEqual(coerce_for_column('x', ColumnType.TEXT), 'x')

    def test_unsupported_value(self):
        with self.assertRaises(ValidationError):
            coerce_for_column(True, ColumnType.TEXT)

    def test_column_type_parse(self):
        self.assertIs(ColumnType.parse('number'), ColumnType.NUMBER)
        with self.assertRaises(ValidationError):
            ColumnType.parse('DATE')


if __name__ == '__main__':
    unittest.main()
