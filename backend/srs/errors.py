"""Exceptions raised by the scheduling core and its persistence glue."""


class SchedulingError(Exception):
    """Base exception for the SRS package."""


class InvalidChoiceError(SchedulingError, ValueError):
    """Raised when an answer choice or rating is not one of the defined values."""


class PlanNotFoundError(SchedulingError, LookupError):
    """Raised when no daily plan exists for the requested learner, wordbook and date."""


class UnknownPlanItemError(SchedulingError, ValueError):
    """Raised when an answer refers to an item that is not part of the plan."""


class PastPlanError(SchedulingError):
    """Raised when trying to mutate a plan whose date has already passed."""


class PlanConflictError(SchedulingError):
    """Raised when another writer updated the same plan between read and write."""


class ItemNotFoundError(SchedulingError, LookupError):
    """Raised when a word does not exist in the requested wordbook."""


class AlgorithmMismatchError(SchedulingError, ValueError):
    """Raised when a review is submitted for a card produced by the other algorithm."""


class LearnerNotFoundError(SchedulingError, LookupError):
    """Raised when a learner id does not exist."""
