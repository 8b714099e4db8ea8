import argparse
import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .commits import describe, flatten, retrieve
from .config import load_settings
from .core import Repository
from .errors import EmptyHistoryError, HistoriographyError
from .processors import new_composer_processor
from .rewrite import Historiography
from .ui import confirm_rescheduling, console, print_error, print_info, print_success, print_warning
from .utils import DAY_FORMAT, TIME_FORMAT, TRACE, verbosity_level

logger = logging.getLogger("historiography")


def setup_logging(verbosity):
    '''Routes package logs to stderr through rich, filtered by verbosity (0-5).'''
    handler = RichHandler(console=Console(stderr=True), show_path=verbosity >= 5)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.handlers[:] = [handler]
    logger.setLevel(verbosity_level(verbosity))
    logger.propagate = False
    if verbosity >= 5:
        logger.info("verbosity: debug (vvvvv)")
    elif verbosity:
        logger.info("verbosity: %s", "v" * verbosity)


def log_changes(days, date_processor):
    '''Logs, per day, which commits were moved and where.'''
    for day in days:
        logger.debug("computing day: %s", day[0].author.when.strftime(DAY_FORMAT))
        for commit in day:
            old = commit.author.when.strftime(TIME_FORMAT)
            new = date_processor.changes.get(commit.id)
            if new is None:
                logger.debug("commit %s at %s not changed", commit.short_id, old)
            else:
                logger.debug("commit %s at %s changed to %s", commit.short_id, old, new.strftime(TIME_FORMAT))


def rewrite_repository(path, args, rng=None):
    '''Rewrites the checked-out branch of one repository, returns True if it was overridden.'''
    repo = Repository.open(path)
    settings = load_settings(repo)
    logger.info("parsing %s repository (%s)", repo.workdir, settings)

    processor = new_composer_processor(settings, args.author, args.email, rng=rng)

    with Historiography(repo, processor) as historiography:
        days = retrieve(repo, count=args.commits)
        if logger.isEnabledFor(TRACE):
            for day in days:
                logger.log(TRACE, "%s", describe(day))

        processor.preprocess(days)
        if logger.isEnabledFor(logging.DEBUG) and processor.date_processor:
            log_changes(days, processor.date_processor)

        commits = flatten(days)
        with console.status(f"[bold green]Replaying {len(commits)} commits...[/bold green]", spinner="dots"):
            historiography.process(commits)

        def gate(repo, ref):
            return confirm_rescheduling(repo, ref, len(commits))

        return historiography.confirm(force=args.force, gate=gate)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="histoctl",
        description="Rewrite git history dates so commits fall outside opening hours",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Opening hours and closed days are read from each repository git config:
  git config historiography.start 9
  git config historiography.end 18
  git config historiography.closed saturday,sunday

Examples:
  # Review and rewrite the current branch of two repositories
  histoctl ~/src/project ~/src/other

  # Rewrite the last 20 commits without review, replacing the author
  histoctl -f -c 20 --author "Jane Doe" --email jane@example.com .
        '''
    )
    parser.add_argument("repos", nargs="+", metavar="repo", help="Path of a git repository")
    parser.add_argument("-f", "--force", action="store_true",
                        help="Force change, no review of rescheduling")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Verbose mode, repeat to increase verbosity (max 5)")
    parser.add_argument("--debug", action="store_true",
                        help="Debug mode, equivalent to -vvvvv")
    parser.add_argument("-c", "--commits", type=int, metavar="N",
                        help="Number of commits to take into account when rescheduling (N latest)")
    parser.add_argument("--author", help="Replace author and committer name on all commits")
    parser.add_argument("--email", help="Replace author and committer email on all commits")
    parser.add_argument("--version", action="version", version=f"histoctl {__version__}",
                        help="Show program's version number and exit")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.commits is not None and args.commits <= 0:
        parser.error("--commits must be a positive number")
    verbosity = 5 if args.debug else min(args.verbose, 5)
    setup_logging(verbosity)

    status = 0
    for path in args.repos:
        try:
            if rewrite_repository(path, args):
                print_success(f"{path}: history rewritten.")
            else:
                print_info(f"{path}: rescheduling discarded, nothing changed.")
        except EmptyHistoryError:
            print_warning(f"{path}: no commits to process.")
        except HistoriographyError as e:
            print_error(f"{path}: {e}")
            status = 1
    return status


if __name__ == "__main__":
    sys.exit(main())
