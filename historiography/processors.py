'''Processors computing the new metadata of each commit.

A processor is prepared once with the whole history (preprocess) and then asked
for the author, committer and message of every commit being replayed
(process). Processors are chained by a ComposerProcessor.
'''
import logging

from .distribute import Distributor
from .errors import HistoriographyError, ProcessorError

logger = logging.getLogger(__name__)

SIGNATURE_FIELDS = ("name", "email", "when")


class Processor:
    def preprocess(self, days):
        pass

    def process(self, commit):
        return commit.author, commit.committer, commit.message


class DateProcessor(Processor):
    '''Moves commits out of opening hours, both author and committer dates.'''

    def __init__(self, distributor):
        self.distributor = distributor
        self.changes = {}

    def preprocess(self, days):
        changes = {}
        for day in days:
            if self.distributor.reschedule(day):
                changes.update(self.distributor.distribute(day))
        self.changes = changes

    def process(self, commit):
        when = self.changes.get(commit.id)
        if when is None:
            return commit.author, commit.committer, commit.message
        return commit.author.replace(when=when), commit.committer.replace(when=when), commit.message


class NameProcessor(Processor):
    def __init__(self, name):
        if not name:
            raise ProcessorError("replacement name cannot be empty")
        self.name = name

    def process(self, commit):
        return commit.author.replace(name=self.name), commit.committer.replace(name=self.name), commit.message


class EmailProcessor(Processor):
    def __init__(self, email):
        if not email:
            raise ProcessorError("replacement email cannot be empty")
        self.email = email

    def process(self, commit):
        return commit.author.replace(email=self.email), commit.committer.replace(email=self.email), commit.message


def _merge(result, original, changed):
    '''Copies into result the fields of changed which differ from original.'''
    updates = {f: getattr(changed, f) for f in SIGNATURE_FIELDS if getattr(changed, f) != getattr(original, f)}
    return result.replace(**updates) if updates else result


class ComposerProcessor(Processor):
    '''Chains processors, a later processor wins when two change the same field.

    Fields are compared with the original commit, so a processor leaving a
    field untouched keeps what an earlier processor did to it.
    '''

    def __init__(self, processors):
        self.processors = list(processors)

    def _call(self, processor, method, *args, commit=None):
        try:
            return getattr(processor, method)(*args)
        except HistoriographyError:
            raise
        except Exception as e:
            raise ProcessorError(
                f"{type(processor).__name__}.{method} failed: {e}", commit=commit, phase="process",
            ) from e

    def preprocess(self, days):
        for processor in self.processors:
            self._call(processor, "preprocess", days)

    def process(self, commit):
        author, committer, message = commit.author, commit.committer, commit.message
        for processor in self.processors:
            a, c, m = self._call(processor, "process", commit, commit=commit.id)
            author = _merge(author, commit.author, a)
            committer = _merge(committer, commit.committer, c)
            if m != commit.message:
                message = m
        return author, committer, message

    @property
    def date_processor(self):
        for processor in self.processors:
            if isinstance(processor, DateProcessor):
                return processor
        return None


def new_composer_processor(settings, name=None, email=None, rng=None):
    '''Builds the standard chain: dates, then name and email overrides if any.'''
    distributor = Distributor(settings.start, settings.end, settings.closed, rng=rng)
    processors = [DateProcessor(distributor)]
    if name:
        processors.append(NameProcessor(name))
    if email:
        processors.append(EmailProcessor(email))
    logger.debug("processors: %s", ", ".join(type(p).__name__ for p in processors))
    return ComposerProcessor(processors)
