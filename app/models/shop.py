from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Time
from sqlalchemy.sql import func

from app.core.database import Base

SHOP_CONFIG_ID = 1


class ShopConfig(Base):
    """Singleton shop configuration: hours, lunch break, workdays, holidays
    and the cooldown release list.
    """

    __tablename__ = "shop_config"

    id = Column(Integer, primary_key=True, default=SHOP_CONFIG_ID)

    # Global accept/reject switch for new bookings
    is_open = Column(Boolean, nullable=False, default=True)

    # Daily service window
    open_time = Column(Time, nullable=False)
    close_time = Column(Time, nullable=False)
    lunch_start = Column(Time, nullable=True)
    lunch_end = Column(Time, nullable=True)
    interval_minutes = Column(Integer, nullable=False)

    # Weekdays as 0=Sunday..6=Saturday
    work_days = Column(JSON, nullable=False, default=list)
    # ISO dates (YYYY-MM-DD)
    blocked_dates = Column(JSON, nullable=False, default=list)
    released_clients = Column(JSON, nullable=False, default=list)

    # ISO country code for public holidays, unset disables the lookup
    holiday_country = Column(String(10), nullable=True)

    version = Column(Integer, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return (
            f"<ShopConfig(is_open={self.is_open}, "
            f"{self.open_time}-{self.close_time}, "
            f"every {self.interval_minutes}min, version={self.version})>"
        )
