import datetime


class Translator:
    def __init__(self) -> None:
        self.language = "en"
        # weekdays start on Sunday
        self.weekdays = {
            "en": ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"],
            "pt": ["DOM", "SEG", "TER", "QUA", "QUI", "SEX", "SÁB"],
        }
        self.months = {
            "en": ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"],
            "pt": ["JAN", "FEV", "MAR", "ABR", "MAI", "JUN", "JUL", "AGO", "SET", "OUT", "NOV", "DEZ"],
        }

    def set_language(self, lang: str) -> None:
        self.language = lang

    def weekday_abbr(self, day: datetime.date) -> str:
        names = self.weekdays.get(self.language, self.weekdays["en"])
        return names[(day.weekday() + 1) % 7]

    def month_abbr(self, month: int) -> str:
        """Return the label for ``month`` (1-12)."""
        names = self.months.get(self.language, self.months["en"])
        return names[month - 1]


translator = Translator()
