'''Opening hours and closed days, read from the repository git configuration.

    [historiography]
        start = 9
        end = 18
        closed = saturday,sunday
'''
from dataclasses import dataclass

from .errors import RepositoryAccessError
from .utils import WEEKDAYS, parse_weekday

SECTION = "historiography"


@dataclass(frozen=True)
class Settings:
    start: int = 9
    end: int = 18
    closed: tuple = (5, 6)

    def __str__(self):
        closed = ",".join(WEEKDAYS[day][:3] for day in self.closed) or "none"
        return f"opening hours {self.start}h-{self.end}h, closed: {closed}"


def _hour(repo, key, default):
    value = repo.config_get(f"{SECTION}.{key}")
    if value is None:
        return default
    try:
        hour = int(value)
    except ValueError:
        raise RepositoryAccessError(f"{SECTION}.{key}: {value!r} is not an hour")
    if not 0 <= hour <= 24:
        raise RepositoryAccessError(f"{SECTION}.{key}: {hour} is not between 0 and 24")
    return hour


def load_settings(repo):
    '''Reads the settings of a repository, falling back on defaults.'''
    defaults = Settings()
    start = _hour(repo, "start", defaults.start)
    end = _hour(repo, "end", defaults.end)
    if start >= end:
        raise RepositoryAccessError(f"{SECTION}: start ({start}) must be before end ({end})")

    closed = defaults.closed
    value = repo.config_get(f"{SECTION}.closed")
    if value is not None:
        try:
            closed = tuple(sorted({parse_weekday(day) for day in value.split(",") if day.strip()}))
        except ValueError as e:
            raise RepositoryAccessError(f"{SECTION}.closed: {e}")
    return Settings(start, end, closed)
