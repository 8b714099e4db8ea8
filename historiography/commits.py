'''Commit objects and retrieval of a branch history grouped per day.'''
import datetime
import logging
import re
from dataclasses import dataclass, replace

from .errors import EmptyHistoryError, GitCommandError, RepositoryAccessError

logger = logging.getLogger(__name__)

SIGNATURE_RE = re.compile(r"^(?P<name>.*?) ?<(?P<email>[^>]*)> (?P<time>-?\d+) (?P<tz>[+-]\d{4})$")


def parse_offset(tz):
    '''Converts a git timezone offset ("+0200") into a tzinfo.'''
    sign = -1 if tz[0] == "-" else 1
    minutes = int(tz[1:3]) * 60 + int(tz[3:5])
    return datetime.timezone(sign * datetime.timedelta(minutes=minutes))


def format_offset(when):
    minutes = int(when.utcoffset().total_seconds() // 60)
    sign = "-" if minutes < 0 else "+"
    minutes = abs(minutes)
    return f"{sign}{minutes // 60:02d}{minutes % 60:02d}"


@dataclass(frozen=True)
class Signature:
    name: str
    email: str
    when: datetime.datetime

    @classmethod
    def parse(cls, line):
        match = SIGNATURE_RE.match(line)
        if not match:
            raise ValueError(f"malformed signature: {line!r}")
        tz = parse_offset(match.group("tz"))
        when = datetime.datetime.fromtimestamp(int(match.group("time")), tz)
        return cls(match.group("name"), match.group("email"), when)

    def git_date(self):
        '''Date in a form accepted by GIT_AUTHOR_DATE / GIT_COMMITTER_DATE.'''
        return f"@{int(self.when.timestamp())} {format_offset(self.when)}"

    def replace(self, **fields):
        return replace(self, **fields)


@dataclass(frozen=True)
class Commit:
    id: str
    tree: str
    parents: tuple
    author: Signature
    committer: Signature
    message: str

    @property
    def short_id(self):
        return self.id[:10]

    @classmethod
    def parse(cls, commit_id, raw):
        '''Parses the raw content of a commit object (bytes).'''
        text = raw.decode("utf-8", errors="surrogateescape")
        header, _, message = text.partition("\n\n")
        tree, parents, author, committer = None, [], None, None
        for line in header.splitlines():
            if line.startswith(" "):  # continuation of gpgsig / mergetag
                continue
            key, _, value = line.partition(" ")
            if key == "tree":
                tree = value
            elif key == "parent":
                parents.append(value)
            elif key == "author":
                author = Signature.parse(value)
            elif key == "committer":
                committer = Signature.parse(value)
        if tree is None or author is None or committer is None:
            raise ValueError(f"incomplete commit object {commit_id}")
        return cls(commit_id, tree, tuple(parents), author, committer, message)


def describe(day):
    '''Renders a day bucket as {date: [id: HH:MM, ...]} for debug output.'''
    if not day:
        return "{}"
    entries = ", ".join(f"{c.short_id}: {c.author.when:%H:%M}" for c in day)
    return f"{{{day[-1].author.when:%Y/%m/%d}: [{entries}]}}"


def group_by_day(commits):
    '''Splits chronologically ordered commits into per-day buckets.'''
    days = []
    current = None
    for commit in commits:
        date = commit.author.when
        key = (date.year, date.month, date.day)
        if key != current:
            days.append([])
            current = key
        days[-1].append(commit)
    return days


def flatten(days):
    return [commit for day in days for commit in day]


def retrieve(repo, count=None, ref="HEAD"):
    '''Returns the commits reachable from ref grouped per day, oldest first.

    Only the `count` most recent commits are kept when count is given.
    '''
    try:
        ids = repo.rev_list(ref, count=count)
        commits = repo.read_commits(ids)
    except GitCommandError as e:
        raise RepositoryAccessError(f"cannot walk history: {e.message}", phase="retrieve") from e
    except ValueError as e:
        raise RepositoryAccessError(str(e), phase="retrieve") from e

    if not commits:
        raise EmptyHistoryError("there is no commit to process", phase="retrieve")

    days = group_by_day(commits)
    logger.info("retrieved %d commits over %d days", len(commits), len(days))
    return days
