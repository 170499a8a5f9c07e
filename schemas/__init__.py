from schemas.requirement import (
    REVIEW_THRESHOLD,
    FIELD_LABELS,
    ConfidenceField,
    TextField,
    ListField,
    ClientResearch,
    RequirementFields,
    RequirementProfile,
    needs_review,
)
from schemas.material import CostLevel, Material
from schemas.proposal import (
    ProposalStatus,
    DraftType,
    ScoringReason,
    ScoredProposal,
    RankingResponse,
    Ingredient,
    ExpectedFunction,
    PackageProposal,
    ManufacturingEstimate,
    CostBreakdown,
    EmailDrafts,
    GeneratedContent,
    ProposalContent,
    FullProposal,
    ProposalSummary,
)
