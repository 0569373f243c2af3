from __future__ import annotations


class ScoringError(Exception):
    """Base class for errors raised inside the scoring pipeline."""


class AuthorizationError(ScoringError):
    """Trigger credential missing or wrong. Aborts the whole invocation."""


class TransientExternalError(ScoringError):
    """Network or 5xx failure talking to the provider. Retried on a later run."""


class PermanentJobError(ScoringError):
    """Provider reported failure, or the job outlived the staleness window."""


class SubmissionError(ScoringError):
    """A subject could not be queued this run. No ledger row is written."""


class ProfileWriteError(ScoringError):
    """Storing a harvested score on the talent profile failed."""


class LedgerTransitionError(ValueError):
    """Attempt to move a ledger row that is no longer pending."""
