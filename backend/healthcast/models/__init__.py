from .subject import Subject
from .area import Area
from .user import User
from .raw_event import RawEvent
from .imported_statistic import ImportedStatistic
from .forecast_results import ForecastResults


__all__ = ["Subject", "Area", "User", "RawEvent", "ImportedStatistic", "ForecastResults"]
