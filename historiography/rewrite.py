'''Replays a branch history with new metadata on a temporary branch.

The original branch is left untouched until the rewrite is confirmed, at
which point it is moved to the tip of the temporary branch in one update.
Whatever happens, leaving the context restores the original branch, removes
the temporary one and clears any cherry-pick state.
'''
import enum
import logging

from .errors import (
    CleanupError,
    CommitCreationError,
    ContentMergeConflictError,
    DirtyRepositoryError,
    EmptyHistoryError,
    GitCommandError,
    HistoriographyError,
    RepositoryAccessError,
)
from .utils import random_string

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "historiography-"
BRANCH_NAME_SIZE = 8


def overwrites_untracked(error):
    return "untracked working tree files" in error.stderr


class State(enum.Enum):
    IDLE = "idle"
    BRANCH_CREATED = "branch created"
    ROOT_AMENDED = "root amended"
    REPLAYING = "replaying"
    ALL_REPLAYED = "all replayed"
    CONFIRMED = "confirmed"
    DISCARDED = "discarded"


class Historiography:
    '''Rewrite of the checked-out branch of a repository.

        with Historiography(repo, processor) as h:
            h.process(commits)
            h.confirm(force)
    '''

    def __init__(self, repo, processor):
        self.repo = repo
        self.processor = processor
        self.state = State.IDLE
        self.head = None     # original branch, e.g. refs/heads/master
        self.anchor = None   # commit the original branch points to
        self.branch = None   # temporary branch name
        self.ref = None
        self.tip = None
        self.position = 0

    def __enter__(self):
        self.check_clean()
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            self.cleanup()
        except CleanupError as e:
            if exc is None:
                raise
            # the original error is the one worth reporting
            logger.error("%s", e)
        return False

    def check_clean(self):
        try:
            state = self.repo.in_progress_state()
            if state:
                raise DirtyRepositoryError(f"repository is not in a clean state ({state} in progress)")
            if self.repo.has_local_changes():
                raise DirtyRepositoryError("repository has uncommitted changes")
            self.head = self.repo.head_branch()
            if self.head.startswith(f"refs/heads/{BRANCH_PREFIX}"):
                raise DirtyRepositoryError(
                    f"{self.head} is left over from an interrupted rewrite, recover the original branch manually"
                )
            self.anchor = self.repo.resolve(self.head)
        except GitCommandError as e:
            raise RepositoryAccessError(f"cannot inspect repository: {e.message}") from e
        logger.debug("anchor %s at %s", self.head, self.anchor)

    def process(self, commits):
        '''Replays commits (oldest first) on a temporary branch, returns its new tip.'''
        if not commits:
            raise EmptyHistoryError("there is no commit to process")
        if self.state is not State.IDLE:
            raise HistoriographyError(f"cannot process history in state {self.state.value}")
        for commit in commits:
            if len(commit.parents) > 1:
                raise ContentMergeConflictError(
                    "merge commits cannot be replayed, only linear history is supported",
                    commit=commit.id, phase="replay",
                )

        root = commits[0]
        self._create_branch(root)
        self._amend(root)
        for position, commit in enumerate(commits[1:], 1):
            self.position = position
            self._apply(commit)
        self.state = State.ALL_REPLAYED
        logger.info("%d commits replayed on %s", len(commits), self.branch)
        return self.tip

    def _create_branch(self, root):
        name = BRANCH_PREFIX + random_string(BRANCH_NAME_SIZE)
        while self.repo.ref_exists(f"refs/heads/{name}"):
            name = BRANCH_PREFIX + random_string(BRANCH_NAME_SIZE)
        try:
            self.ref = self.repo.create_branch(name, root.id)
            self.branch = name
            self.tip = root.id
            self.state = State.BRANCH_CREATED
            self.repo.checkout_branch(name)
        except GitCommandError as e:
            if overwrites_untracked(e):
                raise DirtyRepositoryError(
                    f"untracked files would be overwritten: {e.stderr}", commit=root.id, phase="branch",
                ) from e
            raise RepositoryAccessError(f"cannot set up {name}: {e.message}", commit=root.id, phase="branch") from e
        logger.debug("temporary branch %s created at %s", name, root.short_id)

    def _commit(self, commit, tree, parents, phase):
        author, committer, message = self.processor.process(commit)
        try:
            new = self.repo.create_commit(tree, parents, author, committer, message)
            self.repo.update_ref(self.ref, new, self.tip)
        except GitCommandError as e:
            raise CommitCreationError(e.message, commit=commit.id, phase=phase) from e
        logger.debug("%s %s -> %s", phase, commit.short_id, new[:10])
        self.tip = new

    def _amend(self, root):
        self._commit(root, root.tree, root.parents, "amend")
        self.state = State.ROOT_AMENDED

    def _apply(self, commit):
        self.state = State.REPLAYING
        try:
            self.repo.cherry_pick(commit.id)
            tree = self.repo.write_tree()
        except GitCommandError as e:
            if overwrites_untracked(e):
                raise DirtyRepositoryError(
                    f"untracked files would be overwritten: {e.stderr}", commit=commit.id, phase="replay",
                ) from e
            raise ContentMergeConflictError(
                f"cannot apply changes: {e.stderr or e.message}", commit=commit.id, phase="replay",
            ) from e
        if tree != commit.tree:
            raise ContentMergeConflictError(
                f"replayed content {tree[:10]} differs from original {commit.tree[:10]}",
                commit=commit.id, phase="replay",
            )
        self._commit(commit, tree, [self.tip], "replay")
        self.repo.state_cleanup()

    def confirm(self, force=False, gate=None):
        '''Overrides the original branch if forced or if the gate approves.'''
        if self.state is not State.ALL_REPLAYED:
            raise HistoriographyError(f"cannot confirm in state {self.state.value}", phase="confirm")
        approved = force or gate is None or gate(self.repo, self.ref)
        if approved:
            self.override()
        else:
            logger.info("rewrite of %s discarded", self.head)
            self.state = State.DISCARDED
        return approved

    def override(self):
        '''Moves the original branch to the rewritten history.'''
        try:
            self.repo.update_ref(self.head, self.tip, self.anchor, reason="historiography: rewrite")
        except GitCommandError as e:
            raise RepositoryAccessError(f"cannot update {self.head}: {e.message}", phase="override") from e
        self.state = State.CONFIRMED
        logger.info("%s now points to %s", self.head, self.tip[:10])

    def cleanup(self):
        '''Restores the original branch and drops the temporary one; safe to call repeatedly.'''
        if self.state is State.IDLE:
            return
        errors = []
        for step in (self.repo.state_cleanup, self._restore_head, self._delete_branch):
            try:
                step()
            except (GitCommandError, OSError) as e:
                logger.error("cleaning repository failed: %s", e)
                errors.append(str(e))
        if self.state is not State.CONFIRMED:
            self.state = State.DISCARDED
        if errors:
            raise CleanupError("; ".join(errors), phase="cleanup")

    def _restore_head(self):
        self.repo.set_head(self.head)
        self.repo.checkout_head()

    def _delete_branch(self):
        if self.branch and self.repo.ref_exists(self.ref):
            self.repo.delete_branch(self.branch)
        self.branch = None
