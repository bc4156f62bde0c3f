"""Decision module.

Rules, the pipeline that runs them and the decision maker that builds the
evaluation context and routes the result.
"""

from releasegate.decision.aggregator import DecisionMaker, ProcessOutcome, ProcessResult
from releasegate.decision.models import (
    Decision,
    DecisionEntry,
    EvaluationContext,
    RejectionType,
    SearchCriteria,
    SearchTrigger,
)
from releasegate.decision.pipeline import SpecificationPipeline
from releasegate.decision.specifications import (
    CustomFormatScoreSpecification,
    DecisionSpecification,
    DelaySpecification,
    FreeSpaceSpecification,
    QualityAllowedSpecification,
    RestrictionSpecification,
    UpgradeDiskSpecification,
    default_specifications,
)
from releasegate.decision.upgrade import (
    cutoff_not_met,
    is_revision_upgrade,
    is_upgradable,
    is_upgrade_allowed,
)

__all__ = [
    # Results
    "Decision",
    "DecisionEntry",
    "EvaluationContext",
    "RejectionType",
    "SearchCriteria",
    "SearchTrigger",
    # Rules
    "CustomFormatScoreSpecification",
    "DecisionSpecification",
    "DelaySpecification",
    "FreeSpaceSpecification",
    "QualityAllowedSpecification",
    "RestrictionSpecification",
    "UpgradeDiskSpecification",
    "default_specifications",
    "cutoff_not_met",
    "is_revision_upgrade",
    "is_upgradable",
    "is_upgrade_allowed",
    # Pipeline
    "DecisionMaker",
    "ProcessOutcome",
    "ProcessResult",
    "SpecificationPipeline",
]
