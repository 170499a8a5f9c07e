"""FastAPI web application for the OEM proposal assistant.

Launch:
    python -m uvicorn webapp.app:app --reload --port 8501

Or via pipeline:
    python pipeline.py serve --port 8501
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Ensure the project root is on sys.path so we can import schemas, scrapers, etc.
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

load_dotenv(PROJECT_ROOT / ".env")

from processors.content_extractor import ContentExtractor
from schemas.material import Material
from schemas.proposal import ProposalStatus
from scrapers.utils import extract_social_links, fetch_page_text, fetch_url
from webapp.proposal.cache import CandidateCache, RankingContext, build_cache
from webapp.proposal.catalog import MaterialCatalog, MaterialParser
from webapp.proposal.errors import InputValidationError, ProposalNotFound, ProposalPipelineError
from webapp.proposal.extractor import RequirementExtractor, is_absolute_url
from webapp.proposal.generator import ProposalDetailer
from webapp.proposal.llm import LLMClient
from webapp.proposal.models import (
    EmailRegenerateRequest,
    EmailSaveRequest,
    ExpandRequest,
    ExtractTextRequest,
    ExtractUrlRequest,
    LoginRequest,
    MaterialParseRequest,
    RankRequest,
    ResearchRequest,
    SaveProposalRequest,
    SettingsUpdate,
    StatusUpdate,
)
from webapp.proposal.ranker import ProposalRanker
from webapp.proposal.research import ClientResearcher
from webapp.proposal.rewriter import EmailRewriter
from webapp.proposal.settings import DEFAULT_FAST_MODELS, DEFAULT_MODELS, PipelineSettings
from webapp.store import ProposalStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

app = FastAPI(
    title="OEM Proposal Assistant",
    description="Requirement extraction, proposal ranking and bilingual proposal drafting for cosmetics OEM sales",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Global state, lazy-initialized on first request
# ---------------------------------------------------------------------------

_pipeline_settings = PipelineSettings.from_env()

_store: Optional[ProposalStore] = None
_cache: Optional[CandidateCache] = None
_llm: Optional[LLMClient] = None
_fast_llm: Optional[LLMClient] = None

# Session-level settings (in-memory; reset on restart)
_settings = {
    "llm_provider": _pipeline_settings.llm_provider,
    "llm_model": _pipeline_settings.llm_model,
    "openai_api_key": os.getenv("OPENAI_API_KEY", ""),
    "anthropic_api_key": os.getenv("ANTHROPIC_API_KEY", ""),
}


def get_store() -> ProposalStore:
    global _store
    if _store is None:
        _store = ProposalStore(str(_pipeline_settings.db_path))
    return _store


def get_cache() -> CandidateCache:
    global _cache
    if _cache is None:
        _cache = build_cache(
            _pipeline_settings.cache_backend,
            db_path=str(_pipeline_settings.db_path.with_name("candidate_cache.db")),
            ttl_seconds=_pipeline_settings.cache_ttl_seconds,
            max_entries=_pipeline_settings.cache_max_entries,
        )
    return _cache


def _api_key(provider: str) -> Optional[str]:
    if provider == "anthropic":
        return _settings["anthropic_api_key"] or None
    return _settings["openai_api_key"] or None


def get_llm() -> LLMClient:
    global _llm
    if _llm is None:
        provider = _settings["llm_provider"]
        _llm = LLMClient(provider=provider, model=_settings["llm_model"], api_key=_api_key(provider))
    return _llm


def get_fast_llm() -> LLMClient:
    """Cheaper model for research and email rewrites."""
    global _fast_llm
    if _fast_llm is None:
        provider = _settings["llm_provider"]
        model = _pipeline_settings.llm_fast_model or DEFAULT_FAST_MODELS.get(provider)
        _fast_llm = LLMClient(provider=provider, model=model, api_key=_api_key(provider))
    return _fast_llm


def current_user(
    authorization: Optional[str] = Header(default=None),
    store: ProposalStore = Depends(get_store),
) -> dict:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Authentication required")
    user = store.user_for_token(authorization[7:].strip())
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user


def _catalog_for(store: ProposalStore, user: dict) -> MaterialCatalog:
    return MaterialCatalog(store.list_materials(user["username"]))


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

@app.exception_handler(ProposalPipelineError)
async def pipeline_error_handler(request: Request, exc: ProposalPipelineError):
    if isinstance(exc, InputValidationError):
        return JSONResponse(status_code=400, content={"detail": exc.user_message, "retryable": False})
    logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": exc.user_message, "retryable": exc.retryable})


@app.exception_handler(ProposalNotFound)
async def not_found_handler(request: Request, exc: ProposalNotFound):
    return JSONResponse(status_code=404, content={"detail": f"Proposal not found: {exc.args[0] if exc.args else ''}"})


# ---------------------------------------------------------------------------
# Login & settings
# ---------------------------------------------------------------------------

@app.post("/api/login")
def login(req: LoginRequest, store: ProposalStore = Depends(get_store)):
    """Verify (or register, on first login) a user and return its bearer token."""
    user = store.authenticate_user(req.username, req.password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid username or password")
    return {"username": user["username"], "display_name": user["display_name"], "token": user["token"]}


@app.get("/api/settings")
async def get_settings(user: dict = Depends(current_user)):
    """Return current settings (keys masked)."""
    return {
        "llm_provider": _settings["llm_provider"],
        "llm_model": _settings["llm_model"] or DEFAULT_MODELS.get(_settings["llm_provider"]),
        "openai_api_key_set": bool(_settings["openai_api_key"]),
        "anthropic_api_key_set": bool(_settings["anthropic_api_key"]),
        "en_mode": _pipeline_settings.en_mode,
        "cache_backend": _pipeline_settings.cache_backend,
        "available_providers": [
            {
                "id": "anthropic",
                "name": "Anthropic (Claude)",
                "models": [
                    {"id": "claude-sonnet-4-6", "name": "Claude Sonnet 4.6"},
                    {"id": "claude-opus-4-6", "name": "Claude Opus 4.6"},
                    {"id": "claude-haiku-4-5-20251001", "name": "Claude Haiku 4.5"},
                ],
            },
            {
                "id": "openai",
                "name": "OpenAI",
                "models": [
                    {"id": "gpt-4o", "name": "GPT-4o"},
                    {"id": "gpt-4o-mini", "name": "GPT-4o Mini"},
                    {"id": "gpt-4.1", "name": "GPT-4.1"},
                ],
            },
        ],
    }


@app.post("/api/settings")
async def update_settings(req: SettingsUpdate, user: dict = Depends(current_user)):
    """Update LLM settings; clients are rebuilt on next use."""
    global _llm, _fast_llm

    if req.llm_provider is not None:
        if req.llm_provider not in DEFAULT_MODELS:
            raise HTTPException(status_code=400, detail=f"Unsupported provider: {req.llm_provider}")
        _settings["llm_provider"] = req.llm_provider
    if req.llm_model is not None:
        _settings["llm_model"] = req.llm_model or None
    if req.openai_api_key is not None:
        _settings["openai_api_key"] = req.openai_api_key
    if req.anthropic_api_key is not None:
        _settings["anthropic_api_key"] = req.anthropic_api_key

    _llm = None
    _fast_llm = None
    logger.info("LLM settings updated by %s", user["username"])
    return {"status": "ok", "llm_provider": _settings["llm_provider"], "llm_model": _settings["llm_model"]}


# ---------------------------------------------------------------------------
# Extraction & research
# ---------------------------------------------------------------------------

@app.post("/api/extract/text")
def extract_text(req: ExtractTextRequest, llm: LLMClient = Depends(get_llm)):
    profile = RequirementExtractor(llm).extract_text(req.text)
    return {"profile": profile.model_dump(mode="json"), "review_fields": profile.review_fields()}


@app.post("/api/extract/file")
async def extract_file(file: UploadFile = File(...), llm: LLMClient = Depends(get_llm)):
    data = await file.read()
    extractor = RequirementExtractor(llm)
    profile = await run_in_threadpool(
        extractor.extract_document, data, file.content_type or "application/pdf", file.filename or ""
    )
    return {"profile": profile.model_dump(mode="json"), "review_fields": profile.review_fields()}


@app.post("/api/extract/url")
def extract_url(req: ExtractUrlRequest, llm: LLMClient = Depends(get_llm)):
    profile = RequirementExtractor(llm).extract_url(req.url)
    return {"profile": profile.model_dump(mode="json"), "review_fields": profile.review_fields()}


@app.post("/api/research")
def research_client(req: ResearchRequest, llm: LLMClient = Depends(get_fast_llm)):
    research = ClientResearcher(llm).research(req.company_name, req.website_url)
    return research.model_dump(mode="json")


@app.get("/api/extract-social-media")
def extract_social_media(url: str = Query(...)):
    """Find the client's Instagram and X accounts linked from their site."""
    if not is_absolute_url(url):
        raise HTTPException(status_code=400, detail="URL is required")
    response = fetch_url(url)
    if response is None:
        raise HTTPException(status_code=502, detail="Failed to extract social media links")
    return extract_social_links(response.text, base_url=url)


@app.get("/api/fetch-url")
def fetch_url_content(url: str = Query(...)):
    """Return cleaned page text for a URL."""
    if not is_absolute_url(url):
        raise HTTPException(status_code=400, detail="URL is required")
    title, text = fetch_page_text(url)
    if not text:
        raise HTTPException(status_code=502, detail="Failed to fetch URL content")
    return {"title": title, "content": ContentExtractor().clean(text)}


# ---------------------------------------------------------------------------
# Ranking & expansion
# ---------------------------------------------------------------------------

@app.post("/api/proposals/rank")
def rank_proposals(
    req: RankRequest,
    user: dict = Depends(current_user),
    store: ProposalStore = Depends(get_store),
    cache: CandidateCache = Depends(get_cache),
    llm: LLMClient = Depends(get_llm),
):
    catalog = _catalog_for(store, user) if req.use_catalog else MaterialCatalog()
    candidates = ProposalRanker(llm, cache).rank(req.profile, catalog)
    return {"proposals": [c.model_dump(mode="json") for c in candidates]}


@app.post("/api/proposals/{proposal_id}/expand")
def expand_proposal(
    proposal_id: str,
    req: Optional[ExpandRequest] = None,
    user: dict = Depends(current_user),
    store: ProposalStore = Depends(get_store),
    cache: CandidateCache = Depends(get_cache),
    llm: LLMClient = Depends(get_llm),
):
    req = req or ExpandRequest()
    context = None
    if req.candidate is not None and req.profile is not None:
        if req.candidate.id != proposal_id:
            raise HTTPException(status_code=400, detail="candidate id does not match the path")
        context = RankingContext(candidate=req.candidate, profile=req.profile)

    catalog = _catalog_for(store, user) if req.use_catalog else MaterialCatalog()
    detailer = ProposalDetailer(llm, cache=cache, en_mode=_pipeline_settings.en_mode)
    proposal = detailer.expand(proposal_id, catalog, cached_context=context)
    return proposal.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Saved proposals
# ---------------------------------------------------------------------------

@app.post("/api/proposals")
def save_proposal(
    req: SaveProposalRequest,
    user: dict = Depends(current_user),
    store: ProposalStore = Depends(get_store),
):
    proposal_id = store.save_proposal(
        user["username"],
        req.proposal,
        client_name=req.client_name,
        website_url=req.website_url,
        profile=req.profile,
        status=req.status,
    )
    return {"id": proposal_id, "status": "saved"}


@app.get("/api/proposals")
def list_proposals(
    status: Optional[ProposalStatus] = None,
    user: dict = Depends(current_user),
    store: ProposalStore = Depends(get_store),
):
    return {"proposals": [p.model_dump(mode="json") for p in store.list_proposals(user["username"], status)]}


@app.get("/api/proposals/{proposal_id}")
def get_proposal(
    proposal_id: str,
    user: dict = Depends(current_user),
    store: ProposalStore = Depends(get_store),
):
    return store.load_proposal(user["username"], proposal_id).model_dump(mode="json")


@app.delete("/api/proposals/{proposal_id}")
def delete_proposal(
    proposal_id: str,
    user: dict = Depends(current_user),
    store: ProposalStore = Depends(get_store),
):
    if not store.delete_proposal(user["username"], proposal_id):
        raise ProposalNotFound(proposal_id)
    return {"status": "deleted"}


@app.patch("/api/proposals/{proposal_id}/status")
def update_status(
    proposal_id: str,
    req: StatusUpdate,
    user: dict = Depends(current_user),
    store: ProposalStore = Depends(get_store),
):
    store.set_status(user["username"], proposal_id, req.status)
    return {"id": proposal_id, "status": req.status.value}


# ---------------------------------------------------------------------------
# Email drafts
# ---------------------------------------------------------------------------

@app.post("/api/email/regenerate")
def regenerate_email(
    req: EmailRegenerateRequest,
    user: dict = Depends(current_user),
    llm: LLMClient = Depends(get_fast_llm),
):
    """Rewrite a draft toward a tone. Nothing is saved."""
    return {"content": EmailRewriter(llm).rewrite(req.content, req.tone)}


@app.post("/api/email/save")
def save_email(
    req: EmailSaveRequest,
    user: dict = Depends(current_user),
    store: ProposalStore = Depends(get_store),
):
    proposal = store.update_email_draft(
        user["username"], req.proposal_id, req.draft_type, req.content, language=req.language
    )
    return {"id": proposal.id, "draft_type": req.draft_type.value, "status": "saved"}


# ---------------------------------------------------------------------------
# Materials
# ---------------------------------------------------------------------------

@app.post("/api/materials")
def add_material(
    material: Material,
    user: dict = Depends(current_user),
    store: ProposalStore = Depends(get_store),
):
    if not material.trade_name and not material.inci_name:
        raise HTTPException(status_code=400, detail="trade_name or inci_name is required")
    return {"id": store.add_material(user["username"], material)}


@app.get("/api/materials")
def list_materials(user: dict = Depends(current_user), store: ProposalStore = Depends(get_store)):
    return {"materials": [m.model_dump(mode="json") for m in store.list_materials(user["username"])]}


@app.delete("/api/materials/{material_id}")
def delete_material(
    material_id: str,
    user: dict = Depends(current_user),
    store: ProposalStore = Depends(get_store),
):
    if not store.delete_material(user["username"], material_id):
        raise HTTPException(status_code=404, detail=f"Material not found: {material_id}")
    return {"status": "deleted"}


@app.post("/api/materials/parse")
def parse_material(
    req: MaterialParseRequest,
    user: dict = Depends(current_user),
    llm: LLMClient = Depends(get_llm),
):
    """Parse an unsaved material from text or a supplier URL."""
    parser = MaterialParser(llm)
    if req.url:
        material = parser.parse_url(req.url)
    elif req.text:
        material = parser.parse_text(req.text)
    else:
        raise HTTPException(status_code=400, detail="text or url is required")
    return material.model_dump(mode="json")


@app.post("/api/materials/parse-file")
async def parse_material_file(
    file: UploadFile = File(...),
    user: dict = Depends(current_user),
    llm: LLMClient = Depends(get_llm),
):
    data = await file.read()
    parser = MaterialParser(llm)
    material = await run_in_threadpool(
        parser.parse_document, data, file.content_type or "application/pdf", file.filename or ""
    )
    return material.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

@app.get("/api/reports/stats")
def report_stats(user: dict = Depends(current_user), store: ProposalStore = Depends(get_store)):
    return store.stats(user["username"])


@app.get("/api/status")
async def status():
    """Health check with the active model configuration."""
    return {
        "status": "ok",
        "llm_provider": _settings["llm_provider"],
        "llm_model": _settings["llm_model"] or DEFAULT_MODELS.get(_settings["llm_provider"]),
        "cache_backend": _pipeline_settings.cache_backend,
        "en_mode": _pipeline_settings.en_mode,
    }
