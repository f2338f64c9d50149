from datetime import date, datetime
from functools import lru_cache
from typing import Optional

import holidays
import structlog

logger = structlog.get_logger(__name__)


class HolidayService:
    """Public holiday lookup for the shop's country.

    Uses the `holidays` library; the shop opts in by configuring an ISO
    country code such as "BR".
    """

    @staticmethod
    @lru_cache(maxsize=32)
    def _country_holidays(country: str, year: int) -> Optional[holidays.HolidayBase]:
        try:
            return holidays.country_holidays(country.upper(), years=year)
        except NotImplementedError:
            logger.warning("Unsupported holiday country", country=country)
            return None

    @classmethod
    def is_holiday(cls, country: Optional[str], dt: date) -> bool:
        if not country:
            return False
        d: date = dt.date() if isinstance(dt, datetime) else dt
        cal = cls._country_holidays(country, d.year)
        return cal is not None and d in cal
