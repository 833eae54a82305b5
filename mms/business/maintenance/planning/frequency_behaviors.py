"""
Frequency Behaviors
Calendar arithmetic for PM frequencies.
"""

import calendar
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional


def add_months(value: datetime, months: int) -> datetime:
    """
    Add calendar months, clamping the day to the end of the target month.

    2024-01-31 + 1 month is 2024-02-29, not 2024-03-02.
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


class BaseFrequencyBehavior(ABC):
    """Abstract base class for frequency behaviors"""

    @abstractmethod
    def advance(self, from_date: datetime) -> datetime:
        """
        Date of the next occurrence after `from_date`.
        """
        pass

    @abstractmethod
    def describe(self) -> str:
        pass


class DayIntervalFrequency(BaseFrequencyBehavior):
    """Fixed number of days (Daily, Weekly)"""

    def __init__(self, days: int):
        self.days = days

    def advance(self, from_date: datetime) -> datetime:
        return from_date + timedelta(days=self.days)

    def describe(self) -> str:
        return f"every {self.days} day(s)"


class MonthIntervalFrequency(BaseFrequencyBehavior):
    """Calendar months (Monthly, Quarterly, Semi-Annually, Annually)"""

    def __init__(self, months: int):
        self.months = months

    def advance(self, from_date: datetime) -> datetime:
        return add_months(from_date, self.months)

    def describe(self) -> str:
        return f"every {self.months} month(s)"


FREQUENCY_BEHAVIORS = {
    'Daily': DayIntervalFrequency(1),
    'Weekly': DayIntervalFrequency(7),
    'Monthly': MonthIntervalFrequency(1),
    'Quarterly': MonthIntervalFrequency(3),
    'Semi-Annually': MonthIntervalFrequency(6),
    'Annually': MonthIntervalFrequency(12),
}


def select_frequency_behavior(frequency: str) -> Optional[BaseFrequencyBehavior]:
    return FREQUENCY_BEHAVIORS.get(frequency)
