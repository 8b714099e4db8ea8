import logging
import secrets
import string

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

TIME_FORMAT = "%H:%M"
DAY_FORMAT = "%a %d %b %Y"
HISTORY_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

BRANCH_ALPHABET = string.ascii_lowercase + string.digits


def random_string(size):
    '''Returns a random [a-z0-9] string of the given size.'''
    return "".join(secrets.choice(BRANCH_ALPHABET) for _ in range(size))


def parse_weekday(name):
    '''Returns the weekday number (Monday is 0) of a day name or prefix ("sat").'''
    name = name.strip().lower()
    if len(name) >= 3:
        for index, day in enumerate(WEEKDAYS):
            if day.startswith(name):
                return index
    raise ValueError(f"unknown weekday {name!r}")


def verbosity_level(verbosity):
    '''Maps a -v count (0-5) to a logging level.'''
    if verbosity >= 5:
        return TRACE
    if verbosity >= 2:
        return logging.DEBUG
    if verbosity == 1:
        return logging.INFO
    return logging.WARNING
