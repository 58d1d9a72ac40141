from importlib.metadata import PackageNotFoundError, version

from trackdiff.errors import ArchiveError, MissingPartError, PolicyViolationError, TrackDiffError
from trackdiff.models import DiffResult, Granularity, Options, ResourceLimits, RevisionsPolicy
from trackdiff.redline.engine import TrackDiffEngine, diff_docx_tracked

try:
    __version__ = version("trackdiff")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

__all__ = [
    "TrackDiffEngine",
    "diff_docx_tracked",
    "DiffResult",
    "Options",
    "ResourceLimits",
    "Granularity",
    "RevisionsPolicy",
    "TrackDiffError",
    "ArchiveError",
    "MissingPartError",
    "PolicyViolationError",
    "__version__",
]
