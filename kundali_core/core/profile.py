"""
profile.py
==========
Birth profile as supplied by the client.

Only used to stamp the birth moment; every position comes from the
provider. The wire names are camelCase (birthDate, birthTime,
timezoneOffsetMinutes), snake_case is accepted too.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidInputError


class BirthProfile(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    birth_date:              date  = Field(..., alias="birthDate")
    birth_time:              time  = Field(..., alias="birthTime")
    latitude:                float = Field(..., ge=-90,  le=90)
    longitude:               float = Field(..., ge=-180, le=180)
    timezone_offset_minutes: int   = Field(..., ge=-720, le=840,
                                           alias="timezoneOffsetMinutes")

    @property
    def tz(self) -> timezone:
        return timezone(timedelta(minutes=self.timezone_offset_minutes))

    def birth_datetime(self) -> datetime:
        """Local civil time of birth, offset-aware."""
        return datetime.combine(self.birth_date, self.birth_time.replace(tzinfo=None),
                                tzinfo=self.tz)

    def birth_utc(self) -> datetime:
        return self.birth_datetime().astimezone(timezone.utc)

    def as_dict(self) -> dict:
        return {
            "birthDate": self.birth_date.isoformat(),
            "birthTime": self.birth_time.strftime("%H:%M:%S"),
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timezoneOffsetMinutes": self.timezone_offset_minutes,
            "birthUtc": self.birth_utc().isoformat().replace("+00:00", "Z"),
        }


def parse_birth_profile(data: Union[BirthProfile, Mapping]) -> BirthProfile:
    if isinstance(data, BirthProfile):
        return data
    if not isinstance(data, Mapping):
        raise InvalidInputError(f"Birth profile must be a mapping, got {type(data).__name__}")
    try:
        return BirthProfile.model_validate(data)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid birth profile: {e}") from e
