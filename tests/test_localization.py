import os
import sys
import datetime
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from localization import Translator


class TranslatorTest(unittest.TestCase):
    def test_weekday_labels(self) -> None:
        tr = Translator()
        sunday = datetime.date(2026, 6, 14)
        self.assertEqual(tr.weekday_abbr(sunday), "Sun")
        tr.set_language("pt")
        self.assertEqual(tr.weekday_abbr(sunday), "DOM")
        self.assertEqual(tr.weekday_abbr(datetime.date(2026, 6, 20)), "SÁB")

    def test_month_labels(self) -> None:
        tr = Translator()
        tr.set_language("pt")
        self.assertEqual(tr.month_abbr(2), "FEV")
        self.assertEqual(tr.month_abbr(12), "DEZ")

    def test_unknown_language_falls_back_to_english(self) -> None:
        tr = Translator()
        tr.set_language("xx")
        self.assertEqual(tr.month_abbr(1), "Jan")


if __name__ == "__main__":
    unittest.main()
