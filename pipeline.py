#!/usr/bin/env python3
"""Command-line entry point for the OEM proposal pipeline.

Usage:
  python pipeline.py extract --text "20代女性向けの保湿化粧水を..."   # Inquiry text -> profile
  python pipeline.py extract --file inquiry.pdf                        # PDF/image -> profile
  python pipeline.py extract --url https://brand.example.com/new-line  # URL string -> profile

  python pipeline.py research "株式会社サンプル" --url https://example.com

  python pipeline.py rank --profile profile.json --materials materials.json
  python pipeline.py expand proposal-abc123 --profile profile.json --candidate candidate.json

  python pipeline.py rewrite --tone shorter draft.txt
  python pipeline.py materials parse --url https://supplier.example.com/ingredient

  python pipeline.py serve --port 8501                                 # Launch the web API
"""

import argparse
import logging
import mimetypes
import sys
from pathlib import Path

import orjson
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).parent
load_dotenv(PROJECT_ROOT / ".env")

from schemas.material import Material
from schemas.proposal import ScoredProposal
from schemas.requirement import RequirementProfile
from webapp.proposal.cache import InMemoryCandidateCache, RankingContext
from webapp.proposal.catalog import MaterialCatalog, MaterialParser
from webapp.proposal.errors import ProposalPipelineError
from webapp.proposal.extractor import RequirementExtractor
from webapp.proposal.generator import ProposalDetailer
from webapp.proposal.llm import LLMClient
from webapp.proposal.ranker import ProposalRanker
from webapp.proposal.research import ClientResearcher
from webapp.proposal.rewriter import EmailRewriter, ToneDirective
from webapp.proposal.settings import PipelineSettings

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool = False):
    # Logs go to stderr so JSON on stdout stays pipeable.
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def _read_json(path: str):
    return orjson.loads(Path(path).read_bytes())


def _emit(data, output: str = ""):
    payload = orjson.dumps(data, option=orjson.OPT_INDENT_2)
    if output:
        Path(output).write_bytes(payload)
        logger.info("Wrote %s", output)
    else:
        sys.stdout.buffer.write(payload + b"\n")
        sys.stdout.flush()


def _load_catalog(path: str) -> MaterialCatalog:
    if not path:
        return MaterialCatalog()
    return MaterialCatalog(Material.model_validate(m) for m in _read_json(path))


def _media_type(path: Path) -> str:
    return mimetypes.guess_type(path.name)[0] or "application/pdf"


def _llm(fast: bool = False) -> LLMClient:
    return LLMClient.from_settings(PipelineSettings.from_env(), fast=fast)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_extract(args):
    """Extract a requirement profile from text, a document or a URL."""
    extractor = RequirementExtractor(_llm())
    if args.file:
        path = Path(args.file)
        profile = extractor.extract_document(path.read_bytes(), _media_type(path), path.name)
    elif args.url:
        profile = extractor.extract_url(args.url)
    else:
        profile = extractor.extract_text(args.text)

    review = profile.review_fields()
    if review:
        logger.info("Fields needing review: %s", ", ".join(review))
    _emit(profile.model_dump(mode="json"), args.output)


def cmd_research(args):
    research = ClientResearcher(_llm(fast=True)).research(args.name, args.url)
    _emit(research.model_dump(mode="json"), args.output)


def cmd_rank(args):
    profile = RequirementProfile.model_validate(_read_json(args.profile))
    catalog = _load_catalog(args.materials)
    ranker = ProposalRanker(_llm(), InMemoryCandidateCache())
    candidates = ranker.rank(profile, catalog)
    for c in candidates:
        logger.info("  #%d  %5.1f  %s  (%s)", c.rank, c.score, c.product_name_suggestion, c.id)
    _emit([c.model_dump(mode="json") for c in candidates], args.output)


def cmd_expand(args):
    """Expand a ranked candidate saved by ``rank`` into a full proposal."""
    profile = RequirementProfile.model_validate(_read_json(args.profile))
    candidates = _read_json(args.candidate)
    if isinstance(candidates, dict):
        candidates = [candidates]
    candidate = next(
        (ScoredProposal.model_validate(c) for c in candidates if c.get("id") == args.proposal_id),
        None,
    )
    if candidate is None:
        logger.warning("Candidate %s not in %s; generating a generic proposal", args.proposal_id, args.candidate)
        context = None
    else:
        context = RankingContext(candidate=candidate, profile=profile)

    settings = PipelineSettings.from_env()
    detailer = ProposalDetailer(_llm(), en_mode=args.en_mode or settings.en_mode)
    proposal = detailer.expand(args.proposal_id, _load_catalog(args.materials), cached_context=context)
    _emit(proposal.model_dump(mode="json"), args.output)


def cmd_rewrite(args):
    content = Path(args.file).read_text(encoding="utf-8")
    rewritten = EmailRewriter(_llm(fast=True)).rewrite(content, args.tone)
    if args.output:
        Path(args.output).write_text(rewritten + "\n", encoding="utf-8")
    else:
        print(rewritten)


def cmd_materials_parse(args):
    parser = MaterialParser(_llm())
    if args.file:
        path = Path(args.file)
        material = parser.parse_document(path.read_bytes(), _media_type(path), path.name)
    elif args.url:
        material = parser.parse_url(args.url)
    else:
        material = parser.parse_text(args.text)
    _emit(material.model_dump(mode="json"), args.output)


def cmd_serve(args):
    """Launch the web API."""
    import uvicorn

    logger.info("=" * 60)
    logger.info("LAUNCHING OEM PROPOSAL API")
    logger.info("  http://localhost:%d", args.port)
    logger.info("=" * 60)

    uvicorn.run(
        "webapp.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="OEM cosmetics proposal pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")

    extract_parser = subparsers.add_parser("extract", help="Extract a requirement profile")
    source = extract_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--text", help="Inquiry text")
    source.add_argument("--file", help="PDF, image or text file")
    source.add_argument("--url", help="Reference URL (not fetched)")
    extract_parser.add_argument("--output", "-o", default="", help="Write JSON here instead of stdout")

    research_parser = subparsers.add_parser("research", help="Research a client company")
    research_parser.add_argument("name", help="Company name")
    research_parser.add_argument("--url", default="", help="Company website")
    research_parser.add_argument("--output", "-o", default="")

    rank_parser = subparsers.add_parser("rank", help="Rank three candidate proposals")
    rank_parser.add_argument("--profile", required=True, help="RequirementProfile JSON file")
    rank_parser.add_argument("--materials", default="", help="Material catalog JSON file")
    rank_parser.add_argument("--output", "-o", default="")

    expand_parser = subparsers.add_parser("expand", help="Expand a candidate into a full proposal")
    expand_parser.add_argument("proposal_id", help="Candidate id from rank output")
    expand_parser.add_argument("--profile", required=True, help="RequirementProfile JSON file")
    expand_parser.add_argument("--candidate", required=True, help="Rank output (list) or single candidate JSON")
    expand_parser.add_argument("--materials", default="", help="Material catalog JSON file")
    expand_parser.add_argument("--en-mode", choices=["generate", "copy"], default=None)
    expand_parser.add_argument("--output", "-o", default="")

    rewrite_parser = subparsers.add_parser("rewrite", help="Rewrite an email draft toward a tone")
    rewrite_parser.add_argument("file", help="Text file with the draft")
    rewrite_parser.add_argument("--tone", required=True, choices=[t.value for t in ToneDirective])
    rewrite_parser.add_argument("--output", "-o", default="")

    materials_parser = subparsers.add_parser("materials", help="Material catalog tools")
    materials_sub = materials_parser.add_subparsers(dest="materials_command")
    mparse = materials_sub.add_parser("parse", help="Parse a material description with the model")
    msource = mparse.add_mutually_exclusive_group(required=True)
    msource.add_argument("--text", help="Material description")
    msource.add_argument("--file", help="Spec sheet (PDF, image or text)")
    msource.add_argument("--url", help="Supplier product page")
    mparse.add_argument("--output", "-o", default="")

    serve_parser = subparsers.add_parser("serve", help="Launch the web API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind host")
    serve_parser.add_argument("--port", type=int, default=8501, help="Port")
    serve_parser.add_argument("--reload", action="store_true", help="Auto-reload on code changes")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        "extract": cmd_extract,
        "research": cmd_research,
        "rank": cmd_rank,
        "expand": cmd_expand,
        "rewrite": cmd_rewrite,
        "materials": cmd_materials_parse,
        "serve": cmd_serve,
    }

    if args.command == "materials" and args.materials_command != "parse":
        parser.parse_args(["materials", "--help"])

    try:
        commands[args.command](args)
    except ProposalPipelineError as e:
        logger.error("%s: %s", type(e).__name__, e.user_message)
        logger.debug("Detail: %s", e.detail)
        sys.exit(2)
    except Exception as e:
        logger.exception("Pipeline error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
