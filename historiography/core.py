'''Thin wrapper over the git executable exposing the primitives used to rewrite history.'''
import logging
import os
import shutil
import subprocess

from .commits import Commit
from .errors import DirtyRepositoryError, GitCommandError, RepositoryAccessError
from .utils import HISTORY_DATE_FORMAT, TRACE

logger = logging.getLogger(__name__)

# files git leaves behind while an operation is in progress
IN_PROGRESS_FILES = (
    ("MERGE_HEAD", "merge"),
    ("CHERRY_PICK_HEAD", "cherry-pick"),
    ("REVERT_HEAD", "revert"),
    ("rebase-merge", "rebase"),
    ("rebase-apply", "rebase"),
    ("BISECT_LOG", "bisect"),
    ("sequencer", "cherry-pick sequence"),
)

# removed by state_cleanup, never touches rebase/bisect state
TRANSIENT_FILES = ("MERGE_HEAD", "MERGE_MSG", "MERGE_MODE", "CHERRY_PICK_HEAD", "REVERT_HEAD", "AUTO_MERGE", "sequencer")


class Repository:
    def __init__(self, path):
        self.path = os.path.abspath(path)
        self.workdir = self.path

    @classmethod
    def open(cls, path):
        '''Opens the working tree repository containing path.'''
        if not os.path.isdir(path):
            raise RepositoryAccessError(f"{path}: no such directory")
        repo = cls(path)
        try:
            if repo.git("rev-parse", "--is-bare-repository") == "true":
                raise RepositoryAccessError(f"{path}: bare repositories have no working tree")
            repo.workdir = repo.git("rev-parse", "--show-toplevel")
        except GitCommandError as e:
            raise RepositoryAccessError(f"{path}: not a git repository ({e.stderr})") from e
        return repo

    def run(self, *args, input=None, env=None):
        '''Runs a git command in the repository and returns its raw stdout.'''
        full_env = None
        if env:
            full_env = os.environ.copy()
            full_env.update(env)
        logger.log(TRACE, "git %s", " ".join(args))
        try:
            result = subprocess.run(
                ["git", *args], cwd=self.workdir, input=input, env=full_env,
                stdout=subprocess.PIPE, stderr=subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise RepositoryAccessError("git executable not found in PATH") from e
        if result.returncode != 0:
            raise GitCommandError(args, result.returncode, result.stderr.decode("utf-8", errors="replace"))
        return result.stdout

    def git(self, *args, input=None, env=None):
        return self.run(*args, input=input, env=env).decode("utf-8", errors="replace").strip()

    def git_path(self, name):
        return os.path.join(self.workdir, self.git("rev-parse", "--git-path", name))

    # state

    def in_progress_state(self):
        '''Returns the name of the operation in progress, None if there is none.'''
        for name, state in IN_PROGRESS_FILES:
            if os.path.exists(self.git_path(name)):
                return state
        return None

    def has_local_changes(self):
        return bool(self.git("status", "--porcelain", "--untracked-files=no"))

    def state_cleanup(self):
        '''Removes leftovers of an interrupted merge or cherry-pick.'''
        for name in TRANSIENT_FILES:
            path = self.git_path(name)
            if os.path.isdir(path):
                shutil.rmtree(path)
            elif os.path.exists(path):
                os.remove(path)

    # references

    def head_branch(self):
        '''Full reference name of the checked-out branch.'''
        try:
            return self.git("symbolic-ref", "-q", "HEAD")
        except GitCommandError as e:
            raise DirtyRepositoryError("HEAD is detached, check out a branch first") from e

    def resolve(self, ref):
        '''Commit id ref points to, None if it does not resolve.'''
        try:
            return self.git("rev-parse", "--verify", "-q", f"{ref}^{{commit}}")
        except GitCommandError:
            return None

    def ref_exists(self, refname):
        try:
            self.git("show-ref", "--verify", "--quiet", refname)
        except GitCommandError:
            return False
        return True

    def create_branch(self, name, commit_id):
        self.git("branch", "--no-track", name, commit_id)
        return f"refs/heads/{name}"

    def delete_branch(self, name):
        self.git("branch", "-D", name)

    def set_head(self, refname):
        self.git("symbolic-ref", "HEAD", refname)

    def checkout_head(self):
        '''Forces index and working tree to match HEAD.'''
        self.git("reset", "--hard", "--quiet", "HEAD")

    def checkout_branch(self, name):
        '''Switches to a branch, refusing to overwrite untracked files.'''
        self.git("checkout", "--quiet", name)

    def update_ref(self, refname, new, old=None, reason="historiography"):
        args = ["update-ref", "-m", reason, refname, new]
        if old:
            args.append(old)
        self.git(*args)

    # history

    def rev_list(self, ref="HEAD", count=None):
        '''Commit ids reachable from ref in topological order, oldest first.'''
        if self.resolve(ref) is None:
            return []
        args = ["rev-list", "--topo-order"]
        if count:
            args.append(f"--max-count={count}")
        ids = self.git(*args, ref).split()
        ids.reverse()
        return ids

    def read_commits(self, ids):
        '''Reads and parses commit objects with a single cat-file process.'''
        if not ids:
            return []
        out = self.run("cat-file", "--batch", input=("\n".join(ids) + "\n").encode("ascii"))
        commits = []
        pos = 0
        for commit_id in ids:
            end = out.index(b"\n", pos)
            header = out[pos:end].decode("ascii").split()
            if len(header) != 3 or header[1] != "commit":
                raise ValueError(f"{commit_id} is not a commit")
            size = int(header[2])
            commits.append(Commit.parse(header[0], out[end + 1:end + 1 + size]))
            pos = end + 1 + size + 1
        return commits

    def commit_history(self, ref="HEAD", count=None):
        '''Returns a list of commit details for history view.'''
        cmd = [
            "log", "--pretty=format:%H%x1f%ad%x1f%ar%x1f%an%x1f%s",
            f"--date=format:{HISTORY_DATE_FORMAT}",
        ]
        if count:
            cmd.append(f"--max-count={count}")
        cmd.extend([ref, "--"])

        history = []
        for line in self.git(*cmd).splitlines():
            parts = line.split("\x1f", 4)
            if len(parts) == 5:
                history.append({
                    "hash": parts[0],
                    "date": parts[1],
                    "relative_date": parts[2],
                    "author": parts[3],
                    "message": parts[4],
                })
        return history

    # rewriting

    def cherry_pick(self, commit_id):
        '''Applies the changes of a commit to index and working tree without committing.'''
        self.git("cherry-pick", "--no-commit", commit_id)

    def write_tree(self):
        return self.git("write-tree")

    def create_commit(self, tree, parents, author, committer, message):
        '''Creates a commit object from explicit metadata and returns its id.'''
        args = ["commit-tree", tree]
        for parent in parents:
            args.extend(["-p", parent])
        env = {
            "GIT_AUTHOR_NAME": author.name,
            "GIT_AUTHOR_EMAIL": author.email,
            "GIT_AUTHOR_DATE": author.git_date(),
            "GIT_COMMITTER_NAME": committer.name,
            "GIT_COMMITTER_EMAIL": committer.email,
            "GIT_COMMITTER_DATE": committer.git_date(),
        }
        return self.git(*args, input=message.encode("utf-8", errors="surrogateescape"), env=env)

    def config_get(self, key):
        try:
            return self.git("config", "--get", key)
        except GitCommandError:
            return None
