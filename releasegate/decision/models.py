"""Decision results and the evaluation context."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from releasegate.movies import Movie, MovieFile
from releasegate.parser.release import ReleaseCandidate


class RejectionType(str, Enum):
    """Whether a rejection may resolve itself over time."""

    PERMANENT = "permanent"
    TEMPORARY = "temporary"


class SearchTrigger(str, Enum):
    """What started an evaluation."""

    RSS = "rss"
    SEARCH = "search"
    RECHECK = "recheck"


@dataclass(frozen=True)
class SearchCriteria:
    """How the candidate was found."""

    trigger: SearchTrigger = SearchTrigger.RSS
    user_invoked: bool = False


@dataclass(frozen=True)
class DecisionEntry:
    """Outcome of one rule."""

    rule: str
    accepted: bool
    reason: str | None = None
    rejection_type: RejectionType | None = None

    @classmethod
    def accept(cls, rule: str, reason: str | None = None) -> "DecisionEntry":
        return cls(rule=rule, accepted=True, reason=reason)

    @classmethod
    def reject(
        cls,
        rule: str,
        reason: str,
        rejection_type: RejectionType = RejectionType.PERMANENT,
    ) -> "DecisionEntry":
        return cls(rule=rule, accepted=False, reason=reason, rejection_type=rejection_type)

    @property
    def is_temporary(self) -> bool:
        return not self.accepted and self.rejection_type == RejectionType.TEMPORARY


@dataclass(frozen=True)
class Decision:
    """All rule outcomes for one candidate; accepted only if every entry is."""

    candidate: ReleaseCandidate
    entries: tuple[DecisionEntry, ...] = ()

    @property
    def accepted(self) -> bool:
        return all(entry.accepted for entry in self.entries)

    @property
    def rejections(self) -> list[DecisionEntry]:
        return [entry for entry in self.entries if not entry.accepted]

    @property
    def is_temporarily_rejected(self) -> bool:
        """Rejected only by rules that may pass later (deferrable)."""
        rejections = self.rejections
        return bool(rejections) and all(entry.is_temporary for entry in rejections)

    @property
    def reasons(self) -> list[str]:
        return [entry.reason or entry.rule for entry in self.rejections]

    def to_dict(self) -> dict[str, object]:
        return {
            "title": self.candidate.title,
            "source": self.candidate.source,
            "accepted": self.accepted,
            "entries": [
                {
                    "rule": e.rule,
                    "accepted": e.accepted,
                    "reason": e.reason,
                    "rejection_type": e.rejection_type.value if e.rejection_type else None,
                }
                for e in self.entries
            ],
        }


@dataclass(frozen=True)
class EvaluationContext:
    """Everything outside the candidate and profiles that rules may read.

    Attributes:
        movie: Movie the candidate is for.
        now: Evaluation time; rules never read the clock themselves.
        search: How the candidate was found.
        existing_files: Files currently held for the movie.
        pending_competitor: Another candidate already waiting for the same
            movie and profile context, if any.
    """

    movie: Movie
    now: datetime
    search: SearchCriteria = field(default_factory=SearchCriteria)
    existing_files: tuple[MovieFile, ...] = ()
    pending_competitor: ReleaseCandidate | None = None
