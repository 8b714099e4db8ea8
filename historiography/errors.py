'''Errors raised while rewriting a repository history.'''


class HistoriographyError(Exception):
    '''Base error, optionally tagged with the commit and phase it happened in.'''

    def __init__(self, message, commit=None, phase=None):
        super().__init__(message)
        self.message = message
        self.commit = commit
        self.phase = phase

    def __str__(self):
        context = []
        if self.phase:
            context.append(self.phase)
        if self.commit:
            context.append(f"commit {self.commit[:10]}")
        if context:
            return f"[{', '.join(context)}] {self.message}"
        return self.message


class GitCommandError(HistoriographyError):
    '''A git command exited with a non-zero status.'''

    def __init__(self, args, returncode, stderr=""):
        self.args_ = list(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        message = f"'git {' '.join(self.args_)}' failed ({returncode})"
        if self.stderr:
            message += f": {self.stderr}"
        super().__init__(message)


class RepositoryAccessError(HistoriographyError):
    pass


class DirtyRepositoryError(HistoriographyError):
    pass


class EmptyHistoryError(HistoriographyError):
    '''Nothing to rewrite; callers treat this as success.'''


class ContentMergeConflictError(HistoriographyError):
    pass


class CommitCreationError(HistoriographyError):
    pass


class ProcessorError(HistoriographyError):
    pass


class ConfirmationIOError(HistoriographyError):
    pass


class CleanupError(HistoriographyError):
    pass
