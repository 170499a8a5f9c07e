"""Pydantic request models for the proposal API."""

from typing import Optional

from pydantic import BaseModel, Field

from schemas.proposal import DraftType, FullProposal, ProposalStatus, ScoredProposal
from schemas.requirement import RequirementProfile
from webapp.proposal.rewriter import ToneDirective


class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class SettingsUpdate(BaseModel):
    llm_provider: Optional[str] = None
    llm_model: Optional[str] = None
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None


# ── Pipeline ──


class ExtractTextRequest(BaseModel):
    text: str


class ExtractUrlRequest(BaseModel):
    url: str


class ResearchRequest(BaseModel):
    company_name: str
    website_url: str = ""


class RankRequest(BaseModel):
    profile: RequirementProfile
    use_catalog: bool = Field(default=True, description="Include the caller's registered materials")


class ExpandRequest(BaseModel):
    """Optional ranking context; without it the server-side candidate cache is used."""

    candidate: Optional[ScoredProposal] = None
    profile: Optional[RequirementProfile] = None
    use_catalog: bool = True


# ── Persistence ──


class SaveProposalRequest(BaseModel):
    proposal: FullProposal
    client_name: str = ""
    website_url: str = ""
    profile: Optional[RequirementProfile] = None
    status: ProposalStatus = ProposalStatus.DRAFT


class StatusUpdate(BaseModel):
    status: ProposalStatus


class EmailRegenerateRequest(BaseModel):
    content: str
    tone: ToneDirective


class EmailSaveRequest(BaseModel):
    proposal_id: str
    draft_type: DraftType = DraftType.STANDARD
    content: str
    language: str = Field(default="jp", pattern="^(jp|en)$")


class MaterialParseRequest(BaseModel):
    text: Optional[str] = None
    url: Optional[str] = None
