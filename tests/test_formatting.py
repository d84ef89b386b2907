import unittest

from clinicdesk.formatting import (
    digits_only,
    format_currency_uzs,
    format_uz_phone_display,
    is_valid_uz_phone,
    normalize_uz_phone,
)


class PhoneFormattingTests(unittest.TestCase):
    def test_local_number_gets_country_code(self):
        self.assertEqual(normalize_uz_phone("901234567"), "+998901234567")

    def test_display_and_back(self):
        normalized = normalize_uz_phone("901234567")
        shown = format_uz_phone_display(normalized)
        self.assertEqual(shown, "+998 (90) 123-45-67")
        self.assertEqual(normalize_uz_phone(shown), normalized)

    def test_round_trip_for_many_local_numbers(self):
        for local in ("331112233", "945550011", "770000001", "999999999"):
            normalized = normalize_uz_phone(local)
            self.assertEqual(normalize_uz_phone(format_uz_phone_display(normalized)), normalized)

    def test_punctuation_and_extra_digits_are_dropped(self):
        self.assertEqual(normalize_uz_phone("+998 (90) 123-45-67 89"), "+998901234567")
        self.assertEqual(normalize_uz_phone("998-90-123-45-67"), "+998901234567")

    def test_empty_input(self):
        self.assertEqual(normalize_uz_phone(""), "")
        self.assertEqual(normalize_uz_phone("abc"), "")

    def test_partial_number_display_is_padded(self):
        self.assertEqual(format_uz_phone_display("+99890"), "+998 (90) ___-__-__")

    def test_foreign_number_display_is_untouched(self):
        self.assertEqual(format_uz_phone_display("+7 999 000"), "+7 999 000")

    def test_validity(self):
        self.assertTrue(is_valid_uz_phone("90 123 45 67"))
        self.assertFalse(is_valid_uz_phone("12345"))
        self.assertFalse(is_valid_uz_phone("+998 90 123 45 67 89"))
        self.assertTrue(is_valid_uz_phone("+998 (90) 123-45-67"))

    def test_digits_only(self):
        self.assertEqual(digits_only("+998 (90) 123"), "99890123")


class CurrencyFormattingTests(unittest.TestCase):
    def test_groups_thousands(self):
        self.assertEqual(format_currency_uzs(1234567), "1 234 567 UZS")

    def test_small_and_negative_amounts(self):
        self.assertEqual(format_currency_uzs(0), "0 UZS")
        self.assertEqual(format_currency_uzs(-6000), "-6 000 UZS")

    def test_without_currency(self):
        self.assertEqual(format_currency_uzs(54000, currency=""), "54 000")
