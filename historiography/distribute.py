'''Redistribution of a day worth of commits outside of opening hours.

Commits are first bucketed per hour into 28 slots, slots 24 to 27 standing for
the first hours of the following day. The buckets are then reshaped in three
passes:

1. the hour preceding opening is seeded with commits found a few hours later
   when it is empty, so some days start early in the morning;
2. gaps of three hours or more between commits after opening are reduced to
   two hours;
3. the remaining cluster is pushed after closing time, most often right at
   closing, sometimes up to three hours later.

Only the hour changes: minutes, seconds and timezone are kept, the date moves
forward by one day for commits landing in the overflow slots.
'''
import datetime
import logging
import random

from .utils import TIME_FORMAT

logger = logging.getLogger(__name__)

SLOTS = 28
MAX_GAP = 2
SEED_SCAN = 8
# offset after closing time, in hours: 0, 1, 2 or 3
EVENING_WEIGHTS = (10, 8, 4, 2)


def weighted(rng, *weights):
    '''Draws an index of weights, each index being as likely as its weight.'''
    return rng.choices(range(len(weights)), weights=weights)[0]


def move(when, slot):
    '''Moves a datetime to a virtual hour slot of its day.'''
    return when + datetime.timedelta(hours=slot - when.hour)


class Distributor:
    '''Reschedules commits of a day out of the [start, end) hours window.

    closed is a collection of weekdays (Monday is 0) which are left untouched.
    rng provides randrange() and choices(); a random.Random by default.
    '''

    def __init__(self, start=9, end=18, closed=(5, 6), rng=None):
        if not 0 <= start < end <= 24:
            raise ValueError(f"invalid opening hours {start}-{end}")
        self.start = start
        self.end = end
        self.closed = frozenset(closed)
        self.rng = rng or random.Random()

    def reschedule(self, day):
        '''Tells whether some commits of the day fall within opening hours.'''
        if not day:
            return False
        if day[0].author.when.weekday() in self.closed:
            return False
        return any(self.start <= c.author.when.hour < self.end for c in day)

    def distribute(self, day):
        '''Returns the changes (commit id -> new datetime) for a day.'''
        slots = [[] for _ in range(SLOTS)]
        for commit in day:
            slots[commit.author.when.hour].append(commit)

        self._seed_morning(slots)
        first, last = self._compress(slots)
        if first is not None and (first >= self.start or last < self.end):
            self._push_evening(slots, first, last)

        changes = {}
        for slot, commits in enumerate(slots):
            for commit in commits:
                old = commit.author.when
                if slot == old.hour:
                    continue
                new = move(old, slot)
                logger.debug(
                    "commit: %s pushing from %s to %s",
                    commit.short_id, old.strftime(TIME_FORMAT), new.strftime(TIME_FORMAT),
                )
                changes[commit.id] = new
        return changes

    def _seed_morning(self, slots):
        # every non empty slot of the scanned range is swapped into the
        # morning slot, so the last one found ends up there
        morning = self.start - 1
        if morning < 0 or slots[morning]:
            return
        bound = morning + self.rng.randrange(SEED_SCAN)
        for i in range(morning + 1, bound):
            if slots[i]:
                slots[morning], slots[i] = slots[i], slots[morning]

    def _compress(self, slots):
        first = last = None
        for i in range(self.start, 24):
            if not slots[i]:
                continue
            if first is None:
                first = last = i
            elif i - last <= MAX_GAP:
                last = i
            else:
                slots[last + MAX_GAP], slots[i] = slots[i], []
                last += MAX_GAP
        return first, last

    def _push_evening(self, slots, first, last):
        elapsed = last - first
        logger.debug("elapsed time of commits chunk %d hours", elapsed)

        target = self.end + weighted(self.rng, *EVENING_WEIGHTS)
        # keep the chunk within the overflow slots when possible
        target = max(self.end, min(target, SLOTS - 1 - elapsed))

        moved = [[] for _ in range(SLOTS)]
        for i in range(last, first - 1, -1):
            if slots[i]:
                moved[min(target + i - first, SLOTS - 1)].extend(slots[i])
                slots[i] = []
        for i, commits in enumerate(moved):
            slots[i].extend(commits)
