from decimal import Decimal

from django.test import SimpleTestCase

from finance.fiscal.amount_words import amount_in_words, number_below_hundred


class AmountInWordsTests(SimpleTestCase):
    def test_one_unit_is_singular(self):
        self.assertEqual(amount_in_words(Decimal("1.00")), "un dólar con 00/100")

    def test_small_amounts_are_spelled_out(self):
        cases = {
            "0.50": "cero dólares con 50/100",
            "2.05": "dos dólares con 05/100",
            "15.00": "quince dólares con 00/100",
            "21.00": "veintiún dólares con 00/100",
            "31.10": "treinta y un dólares con 10/100",
            "99.99": "noventa y nueve dólares con 99/100",
        }
        for amount, expected in cases.items():
            with self.subTest(amount=amount):
                self.assertEqual(amount_in_words(Decimal(amount)), expected)

    def test_hundred_and_above_use_digits(self):
        self.assertEqual(amount_in_words(Decimal("150.25")), "150 dólares con 25/100")
        self.assertEqual(amount_in_words(Decimal("107.48")), "107 dólares con 48/100")

    def test_rounds_to_cents_first(self):
        self.assertEqual(amount_in_words(Decimal("0.995")), "un dólar con 00/100")

    def test_custom_currency_names(self):
        self.assertEqual(
            amount_in_words(Decimal("1.00"), singular="quetzal", plural="quetzales"),
            "un quetzal con 00/100",
        )

    def test_rejects_negative_amounts(self):
        with self.assertRaises(ValueError):
            amount_in_words(Decimal("-1.00"))

    def test_number_below_hundred_bounds(self):
        self.assertEqual(number_below_hundred(0), "cero")
        self.assertEqual(number_below_hundred(40), "cuarenta")
        with self.assertRaises(ValueError):
            number_below_hundred(100)
