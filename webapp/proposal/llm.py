"""Model invocation boundary for the proposal pipeline.

Every component talks to the model through ``LLMClient``: one request, one
response, optional attachments, optional server-side web search, and
optional schema-validated JSON output. Transient provider errors are retried
here so callers only see a finished response or a ``ProposalPipelineError``.
"""

import base64
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Optional, Type, TypeVar

import anthropic
import openai
from pydantic import BaseModel, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from webapp.proposal.errors import MalformedModelOutput, ProposalPipelineError
from webapp.proposal.prompts import JSON_OUTPUT_INSTRUCTION
from webapp.proposal.settings import DEFAULT_MODELS, PipelineSettings

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

TRANSIENT_ERRORS = (
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)

PROVIDER_ERRORS = (anthropic.APIError, openai.APIError)

WEB_SEARCH_MAX_USES = 5


@dataclass
class Attachment:
    """A binary document or image sent inline with the prompt."""

    data: bytes
    media_type: str = "application/pdf"
    filename: str = ""

    @property
    def b64(self) -> str:
        return base64.standard_b64encode(self.data).decode("ascii")

    @property
    def is_image(self) -> bool:
        return self.media_type.startswith("image/")

    @property
    def is_text(self) -> bool:
        return self.media_type.startswith("text/")

    def as_text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


@dataclass
class ModelResponse:
    text: str
    grounding_sources: list[str] = field(default_factory=list)


def unique_urls(urls) -> list[str]:
    """Drop empties and duplicates, keeping first-seen order."""
    seen = set()
    result = []
    for url in urls:
        if url and url not in seen:
            seen.add(url)
            result.append(url)
    return result


def parse_json_payload(text: str):
    """Extract a JSON object or array from model text.

    Tries a fenced code block first, then the outermost bare object or array.
    """
    if not text or not text.strip():
        raise MalformedModelOutput("empty model response")

    candidates = []
    match = re.search(r"```(?:json)?\s*\n?([\s\S]*?)\n?```", text)
    if match:
        candidates.append(match.group(1))
    candidates.append(text.strip())
    for pattern in (r"\{[\s\S]*\}", r"\[[\s\S]*\]"):
        match = re.search(pattern, text)
        if match:
            candidates.append(match.group(0))

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    raise MalformedModelOutput(f"no JSON payload in model response ({len(text)} chars)")


def validate_payload(text: str, response_model: Type[T]) -> T:
    """Parse model text and validate it against ``response_model``."""
    data = parse_json_payload(text)
    if isinstance(data, list):
        # A bare array answers a single-list envelope such as {"proposals": [...]}.
        names = list(response_model.model_fields)
        if len(names) != 1:
            raise MalformedModelOutput(f"expected an object for {response_model.__name__}")
        data = {names[0]: data}
    try:
        return response_model.model_validate(data)
    except ValidationError as e:
        raise MalformedModelOutput(
            f"{response_model.__name__} validation failed: {e.error_count()} errors"
        ) from e


class LLMClient:
    """Single-shot model client for Anthropic and OpenAI.

    Anthropic: document/image blocks, web_search server tool, prompt caching.
    OpenAI: chat completions with JSON mode; Responses API for web search.
    """

    def __init__(
        self,
        provider: str = "anthropic",
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        client=None,
    ):
        if provider not in DEFAULT_MODELS:
            raise ValueError(f"Unsupported provider: {provider}")
        self.provider = provider
        self.model = model or DEFAULT_MODELS[provider]

        if client is not None:
            self.client = client
        elif provider == "anthropic":
            self.client = anthropic.Anthropic(api_key=api_key) if api_key else anthropic.Anthropic()
        else:
            self.client = openai.OpenAI(api_key=api_key) if api_key else openai.OpenAI()

    @classmethod
    def from_settings(cls, settings: PipelineSettings, fast: bool = False) -> "LLMClient":
        return cls(
            provider=settings.llm_provider,
            model=settings.fast_model if fast else settings.model,
            api_key=settings.api_key,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(
        self,
        prompt: str,
        system: str = "",
        attachments: Optional[list[Attachment]] = None,
        response_model: Optional[Type[BaseModel]] = None,
        web_search: bool = False,
        temperature: float = 0.2,
        max_tokens: int = 4096,
        operation: str = "generate",
    ) -> ModelResponse:
        """Send one request and return the text plus any grounding URLs."""
        if response_model is not None:
            schema = json.dumps(response_model.model_json_schema(), ensure_ascii=False, indent=2)
            system = system + JSON_OUTPUT_INSTRUCTION.format(schema=schema)

        start = time.time()
        try:
            response = self._call(
                prompt=prompt,
                system=system,
                attachments=attachments or [],
                json_mode=response_model is not None,
                web_search=web_search,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except PROVIDER_ERRORS as e:
            logger.error("%s failed via %s/%s: %s", operation, self.provider, self.model, e)
            raise ProposalPipelineError(f"{self.provider} request failed: {e}") from e

        elapsed_ms = (time.time() - start) * 1000
        logger.info(
            "%s via %s/%s in %.0f ms (%d chars, %d sources)",
            operation, self.provider, self.model, elapsed_ms,
            len(response.text), len(response.grounding_sources),
        )
        return response

    def generate_structured(
        self,
        prompt: str,
        response_model: Type[T],
        system: str = "",
        attachments: Optional[list[Attachment]] = None,
        temperature: float = 0.2,
        max_tokens: int = 4096,
        operation: str = "generate",
    ) -> T:
        """Generate and validate against ``response_model``.

        An unparseable answer is retried once at temperature 0 before
        ``MalformedModelOutput`` propagates.
        """
        kwargs = dict(
            prompt=prompt,
            system=system,
            attachments=attachments,
            response_model=response_model,
            max_tokens=max_tokens,
            operation=operation,
        )
        response = self.generate(temperature=temperature, **kwargs)
        try:
            return validate_payload(response.text, response_model)
        except MalformedModelOutput as e:
            logger.warning("%s returned malformed output, retrying at temperature 0: %s", operation, e)

        response = self.generate(temperature=0.0, **kwargs)
        return validate_payload(response.text, response_model)

    # ------------------------------------------------------------------
    # Provider calls
    # ------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=20),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "Model API retry %d after error: %s",
            retry_state.attempt_number,
            retry_state.outcome.exception() if retry_state.outcome else "unknown",
        ),
    )
    def _call(
        self,
        prompt: str,
        system: str,
        attachments: list[Attachment],
        json_mode: bool,
        web_search: bool,
        temperature: float,
        max_tokens: int,
    ) -> ModelResponse:
        if self.provider == "anthropic":
            return self._call_anthropic(prompt, system, attachments, web_search, temperature, max_tokens)
        if web_search:
            return self._call_openai_responses(prompt, system, temperature, max_tokens)
        return self._call_openai_chat(prompt, system, attachments, json_mode, temperature, max_tokens)

    def _call_anthropic(self, prompt, system, attachments, web_search, temperature, max_tokens) -> ModelResponse:
        content = [_anthropic_block(a) for a in attachments]
        content.append({"type": "text", "text": prompt})

        params = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": content}],
        }
        if system:
            params["system"] = [{"type": "text", "text": system, "cache_control": {"type": "ephemeral"}}]
        if web_search:
            params["tools"] = [{
                "type": "web_search_20250305",
                "name": "web_search",
                "max_uses": WEB_SEARCH_MAX_USES,
            }]

        response = self.client.messages.create(**params)

        text = ""
        urls = []
        for block in response.content:
            btype = getattr(block, "type", None)
            if btype == "text":
                text += block.text
                for citation in getattr(block, "citations", None) or []:
                    urls.append(getattr(citation, "url", None))
            elif btype == "web_search_tool_result":
                results = getattr(block, "content", None)
                if isinstance(results, list):
                    urls.extend(getattr(r, "url", None) for r in results)
        return ModelResponse(text=text, grounding_sources=unique_urls(urls))

    def _call_openai_chat(self, prompt, system, attachments, json_mode, temperature, max_tokens) -> ModelResponse:
        if attachments:
            user_content = [_openai_part(a) for a in attachments]
            user_content.append({"type": "text", "text": prompt})
        else:
            user_content = prompt

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": user_content})

        params = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": messages,
        }
        if json_mode:
            params["response_format"] = {"type": "json_object"}

        response = self.client.chat.completions.create(**params)
        return ModelResponse(text=response.choices[0].message.content or "")

    def _call_openai_responses(self, prompt, system, temperature, max_tokens) -> ModelResponse:
        response = self.client.responses.create(
            model=self.model,
            instructions=system or None,
            input=prompt,
            tools=[{"type": "web_search_preview"}],
            temperature=temperature,
            max_output_tokens=max_tokens,
        )
        urls = []
        for item in getattr(response, "output", None) or []:
            if getattr(item, "type", None) != "message":
                continue
            for part in getattr(item, "content", None) or []:
                for annotation in getattr(part, "annotations", None) or []:
                    if getattr(annotation, "type", None) == "url_citation":
                        urls.append(getattr(annotation, "url", None))
        return ModelResponse(text=response.output_text or "", grounding_sources=unique_urls(urls))


def _anthropic_block(attachment: Attachment) -> dict:
    if attachment.is_image:
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": attachment.media_type, "data": attachment.b64},
        }
    if attachment.is_text:
        return {
            "type": "document",
            "source": {"type": "text", "media_type": "text/plain", "data": attachment.as_text()},
        }
    return {
        "type": "document",
        "source": {"type": "base64", "media_type": attachment.media_type, "data": attachment.b64},
    }


def _openai_part(attachment: Attachment) -> dict:
    if attachment.is_image:
        return {
            "type": "image_url",
            "image_url": {"url": f"data:{attachment.media_type};base64,{attachment.b64}"},
        }
    if attachment.is_text:
        return {"type": "text", "text": attachment.as_text()}
    return {
        "type": "file",
        "file": {
            "filename": attachment.filename or "document.pdf",
            "file_data": f"data:{attachment.media_type};base64,{attachment.b64}",
        },
    }
