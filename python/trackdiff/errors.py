class TrackDiffError(Exception):
    """Base class for every failure surfaced by trackdiff."""


class ArchiveError(TrackDiffError):
    """The input is not a readable zip package or exceeds the configured limits."""


class MissingPartError(TrackDiffError):
    """A required part (word/document.xml) is absent from an input package."""


class PartParseError(TrackDiffError):
    """A part is not well-formed XML. Recoverable: the engine falls back to an empty tree."""


class PolicyViolationError(TrackDiffError):
    """The revised document already carries tracked changes and the policy is 'fail'."""
