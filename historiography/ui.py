import logging
import sys

from prompt_toolkit.formatted_text import ANSI, to_formatted_text
from pypager.pager import Pager
from pypager.source import GeneratorSource
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .errors import ConfirmationIOError

logger = logging.getLogger(__name__)

PROMPT = "Is rescheduling correct? [Y/n] (see again? [?]): "

# Initialize console at module level
console = Console()


def print_info(msg):
    console.print(f"[bold cyan]INFO[/] {msg}")


def print_success(msg):
    console.print(f"[bold green]SUCCESS[/] {msg}")


def print_warning(msg):
    console.print(f"[bold yellow]WARNING[/] {msg}")


def print_error(msg):
    console.print(f"[bold red]ERROR[/] {msg}")


def display_commit_history(commits, title="Git Commit History"):
    '''Displays a rich table of commit history.'''
    if not commits:
        console.print("[yellow]No commits found.[/yellow]")
        return

    table = Table(title=title, show_header=True, header_style="bold magenta", box=box.ROUNDED)
    table.add_column("Hash", style="cyan", no_wrap=True)
    table.add_column("Date", style="green")
    table.add_column("Relative", style="blue")
    table.add_column("Author", style="yellow")
    table.add_column("Message", style="white")

    for commit in commits:
        table.add_row(
            commit['hash'][:7],
            commit['date'],
            commit['relative_date'],
            commit['author'],
            commit['message']
        )

    if not sys.stdout.isatty():
        console.print(table)
        return

    # Capture rich output and hand it to pypager as formatted text
    def generate_content():
        with console.capture() as capture:
            console.print(table)
        yield to_formatted_text(ANSI(capture.get()))

    p = Pager()
    p.add_source(GeneratorSource(generate_content()))
    p.run()


def read_response():
    '''Reads one answer, None when input is exhausted or unreadable.'''
    try:
        return console.input(escape(PROMPT))
    except EOFError:
        return None
    except OSError as e:
        logger.warning("%s", ConfirmationIOError(f"cannot read answer: {e}", phase="confirm"))
        return None


def confirm_rescheduling(repo, ref, count=None):
    '''Shows the rewritten history and asks whether it should replace the branch.

    An empty answer, or no answer at all, accepts the rescheduling.
    '''
    display_commit_history(repo.commit_history(ref, count), title=f"Rescheduled history ({ref})")
    while True:
        response = read_response()
        if response is None:
            return True
        response = response.strip().lower()[:1]
        if response in ("", "y"):
            return True
        if response == "n":
            return False
        if response == "?":
            display_commit_history(repo.commit_history(ref, count), title=f"Rescheduled history ({ref})")
            continue
        print_error("Response is incorrect!")
