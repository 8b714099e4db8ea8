import os
import random
import unittest
from unittest.mock import MagicMock, patch

from historiography.commits import flatten, retrieve
from historiography.config import Settings
from historiography.core import Repository
from historiography.errors import (
    CleanupError,
    ContentMergeConflictError,
    DirtyRepositoryError,
    GitCommandError,
    ProcessorError,
)
from historiography.processors import Processor, new_composer_processor
from historiography.rewrite import BRANCH_PREFIX, Historiography, State
from tests.test_base import MONDAY, GitRepoTestCase


class FailingAt(Processor):
    def __init__(self, commit_id):
        self.commit_id = commit_id

    def process(self, commit):
        if commit.id == self.commit_id:
            raise ProcessorError("boom", commit=commit.id)
        return super().process(commit)


class RewriteTestCase(GitRepoTestCase):

    def setUp(self):
        super().setUp()
        self.ids = [
            self.commit(f"{MONDAY}T10:00:00+01:00"),
            self.commit(f"{MONDAY}T11:20:00+01:00"),
            self.commit(f"{MONDAY}T14:45:00+01:00"),
            self.commit("2023-10-31T16:05:00+01:00"),
        ]
        self.repo = Repository.open(self.test_dir)
        self.processor = new_composer_processor(Settings(), rng=random.Random(0))

    def rewrite(self, processor=None, count=None, force=True, gate=None):
        processor = processor or self.processor
        with Historiography(self.repo, processor) as historiography:
            days = retrieve(self.repo, count=count)
            processor.preprocess(days)
            historiography.process(flatten(days))
            historiography.confirm(force=force, gate=gate)
        return historiography

    def assertRestored(self, head):
        self.assertEqual(self.git("rev-parse", "master"), head)
        self.assertEqual(self.git("symbolic-ref", "HEAD"), "refs/heads/master")
        self.assertEqual(self.branches(), ["master"])
        self.assertEqual(self.git("status", "--porcelain"), "")
        self.assertFalse(os.path.exists(os.path.join(self.test_dir, ".git", "CHERRY_PICK_HEAD")))


class TestRewrite(RewriteTestCase):

    def test_rewrite_moves_commits_out_of_opening_hours(self):
        historiography = self.rewrite()

        self.assertEqual(historiography.state, State.CONFIRMED)
        for hour in self.hours("%ad") + self.hours("%cd"):
            self.assertFalse(9 <= hour < 18, hour)
        self.assertEqual(self.git("symbolic-ref", "HEAD"), "refs/heads/master")
        self.assertEqual(self.branches(), ["master"])
        self.assertEqual(self.git("status", "--porcelain"), "")

    def test_content_and_messages_are_kept(self):
        trees = self.log("%T")
        messages = self.log("%B%x00")
        minutes = [line.split()[1][3:] for line in self.log("%ad")]

        self.rewrite()

        self.assertNotEqual(self.git("rev-parse", "HEAD"), self.ids[-1])
        self.assertEqual(self.log("%T"), trees)
        self.assertEqual(self.log("%B%x00"), messages)
        self.assertEqual([line.split()[1][3:] for line in self.log("%ad")], minutes)
        self.assertEqual(self.git("rev-list", "--count", "HEAD"), "4")

    def test_identity_override(self):
        processor = new_composer_processor(Settings(), "Jane Doe", "jane@example.com", rng=random.Random(0))
        self.rewrite(processor)
        self.assertEqual(set(self.log("%an <%ae> %cn <%ce>")), {"Jane Doe <jane@example.com> Jane Doe <jane@example.com>"})

    def test_count_limits_rewritten_commits(self):
        self.rewrite(count=2)
        history = self.git("rev-list", "--reverse", "HEAD").splitlines()
        self.assertEqual(history[:2], self.ids[:2])
        self.assertNotEqual(history[2:], self.ids[2:])

    def test_force_skips_gate(self):
        gate = MagicMock(return_value=False)
        self.rewrite(force=True, gate=gate)
        gate.assert_not_called()
        self.assertNotEqual(self.git("rev-parse", "master"), self.ids[-1])

    def test_gate_approves(self):
        gate = MagicMock(return_value=True)
        self.rewrite(force=False, gate=gate)
        gate.assert_called_once()
        self.assertNotEqual(self.git("rev-parse", "master"), self.ids[-1])

    def test_gate_discards(self):
        gate = MagicMock(return_value=False)
        historiography = self.rewrite(force=False, gate=gate)
        self.assertEqual(historiography.state, State.DISCARDED)
        self.assertRestored(self.ids[-1])

    def test_gate_sees_rewritten_branch(self):
        def gate(repo, ref):
            self.assertTrue(ref.startswith(f"refs/heads/{BRANCH_PREFIX}"))
            self.assertEqual(repo.git("symbolic-ref", "HEAD"), ref)
            self.assertEqual(repo.git("rev-parse", "master"), self.ids[-1])
            return False

        self.rewrite(force=False, gate=gate)


class TestFailures(RewriteTestCase):

    def test_processor_failure_restores_branch(self):
        with self.assertRaises(ProcessorError):
            self.rewrite(processor=FailingAt(self.ids[2]))
        self.assertRestored(self.ids[-1])

    def test_failure_on_root_restores_branch(self):
        with self.assertRaises(ProcessorError):
            self.rewrite(processor=FailingAt(self.ids[0]))
        self.assertRestored(self.ids[-1])

    def test_conflict_restores_branch(self):
        error = GitCommandError(["cherry-pick", "--no-commit"], 1, "error: could not apply")
        with patch.object(self.repo, "cherry_pick", side_effect=error):
            with self.assertRaises(ContentMergeConflictError) as ctx:
                self.rewrite()
        self.assertEqual(ctx.exception.commit, self.ids[1])
        self.assertEqual(ctx.exception.phase, "replay")
        self.assertRestored(self.ids[-1])

    def add_and_remove_notes(self):
        '''Commits notes.txt, removes it in the next commit, then recreates it untracked.'''
        notes = os.path.join(self.test_dir, "notes.txt")
        with open(notes, "w") as f:
            f.write("tracked once\n")
        self.git("add", "notes.txt")
        env = {"GIT_AUTHOR_DATE": "2023-11-02T10:00:00+01:00", "GIT_COMMITTER_DATE": "2023-11-02T10:00:00+01:00"}
        self.git("commit", "-q", "-m", "Add notes", env=env)
        self.git("rm", "-q", "notes.txt")
        env = {"GIT_AUTHOR_DATE": "2023-11-02T11:00:00+01:00", "GIT_COMMITTER_DATE": "2023-11-02T11:00:00+01:00"}
        self.git("commit", "-q", "-m", "Remove notes", env=env)
        with open(notes, "w") as f:
            f.write("precious user data\n")
        return notes

    def assertNotesKept(self, notes, head):
        with open(notes) as f:
            self.assertEqual(f.read(), "precious user data\n")
        self.assertEqual(self.git("rev-parse", "master"), head)
        self.assertEqual(self.git("symbolic-ref", "HEAD"), "refs/heads/master")
        self.assertEqual(self.branches(), ["master"])

    def test_untracked_file_tracked_by_oldest_commit(self):
        notes = self.add_and_remove_notes()
        head = self.git("rev-parse", "HEAD")

        with self.assertRaises(DirtyRepositoryError) as ctx:
            self.rewrite(count=2, force=False, gate=MagicMock(return_value=False))
        self.assertEqual(ctx.exception.phase, "branch")
        self.assertNotesKept(notes, head)

    def test_untracked_file_added_by_replayed_commit(self):
        notes = self.add_and_remove_notes()
        head = self.git("rev-parse", "HEAD")

        with self.assertRaises(DirtyRepositoryError) as ctx:
            self.rewrite(force=False, gate=MagicMock(return_value=False))
        self.assertEqual(ctx.exception.phase, "replay")
        self.assertNotesKept(notes, head)

    def test_unrelated_untracked_file_is_kept(self):
        scratch = os.path.join(self.test_dir, "scratch.txt")
        with open(scratch, "w") as f:
            f.write("draft\n")
        self.rewrite(force=False, gate=MagicMock(return_value=False))
        with open(scratch) as f:
            self.assertEqual(f.read(), "draft\n")
        self.assertEqual(self.git("rev-parse", "master"), self.ids[-1])

    def test_divergent_replayed_content_is_refused(self):
        empty_tree = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"
        with patch.object(self.repo, "write_tree", return_value=empty_tree):
            with self.assertRaises(ContentMergeConflictError) as ctx:
                self.rewrite()
        self.assertEqual(ctx.exception.commit, self.ids[1])
        self.assertEqual(ctx.exception.phase, "replay")
        self.assertRestored(self.ids[-1])

    def test_merge_commits_are_refused(self):
        self.git("checkout", "-q", "-b", "topic", self.ids[1])
        self.commit(f"{MONDAY}T12:00:00+01:00")
        self.git("checkout", "-q", "master")
        self.git("merge", "-q", "--no-ff", "--no-edit", "topic")
        self.git("branch", "-D", "topic")
        head = self.git("rev-parse", "HEAD")

        with self.assertRaises(ContentMergeConflictError):
            self.rewrite()
        self.assertRestored(head)

    def test_local_changes(self):
        with open(os.path.join(self.test_dir, "file1.txt"), "w") as f:
            f.write("changed\n")
        with self.assertRaises(DirtyRepositoryError):
            self.rewrite()
        self.assertEqual(self.git("rev-parse", "master"), self.ids[-1])
        self.assertIn("file1.txt", self.git("status", "--porcelain"))

    def test_operation_in_progress(self):
        merge_head = os.path.join(self.test_dir, ".git", "MERGE_HEAD")
        with open(merge_head, "w") as f:
            f.write(self.ids[0] + "\n")
        with self.assertRaises(DirtyRepositoryError):
            self.rewrite()
        # nothing was set up, so the merge state is left alone
        self.assertTrue(os.path.exists(merge_head))

    def test_leftover_branch(self):
        self.git("checkout", "-q", "-b", f"{BRANCH_PREFIX}abcd1234")
        with self.assertRaises(DirtyRepositoryError):
            self.rewrite()

    def test_detached_head(self):
        self.git("checkout", "-q", "--detach")
        with self.assertRaises(DirtyRepositoryError):
            self.rewrite()

    def test_cleanup_is_idempotent(self):
        historiography = Historiography(self.repo, self.processor)
        with historiography:
            days = retrieve(self.repo)
            self.processor.preprocess(days)
            historiography.process(flatten(days))
            historiography.cleanup()
            historiography.cleanup()
        self.assertEqual(historiography.state, State.DISCARDED)
        self.assertRestored(self.ids[-1])

    def test_cleanup_error_does_not_mask_original_error(self):
        historiography = Historiography(self.repo, FailingAt(self.ids[1]))
        with patch.object(self.repo, "state_cleanup", side_effect=OSError("disk full")):
            with self.assertRaises(ProcessorError):
                with historiography:
                    historiography.process(flatten(retrieve(self.repo)))

    def test_cleanup_error_is_reported(self):
        historiography = Historiography(self.repo, Processor())
        with self.assertRaises(CleanupError):
            with historiography:
                historiography.process(flatten(retrieve(self.repo)))
                historiography.confirm(force=True)
                self.repo.state_cleanup = MagicMock(side_effect=OSError("disk full"))
        # the other cleanup steps still ran
        self.assertEqual(self.branches(), ["master"])
        self.assertEqual(self.git("symbolic-ref", "HEAD"), "refs/heads/master")


if __name__ == '__main__':
    unittest.main()
