"""Exception types raised by the proposal pipeline."""

from typing import Optional


class ProposalPipelineError(Exception):
    """Base class for pipeline failures.

    ``user_message`` is safe to show to sales staff; ``retryable`` tells the
    caller whether running the same operation again may succeed.
    """

    default_message = "処理中にエラーが発生しました。"
    retryable = True

    def __init__(self, detail: str = "", user_message: Optional[str] = None):
        super().__init__(detail or self.default_message)
        self.detail = detail
        self.user_message = user_message or self.default_message


class MalformedModelOutput(ProposalPipelineError):
    """Model text could not be parsed or validated against the requested schema."""

    default_message = "AIの応答を解析できませんでした。"


class ExtractionFailure(ProposalPipelineError):
    default_message = "要件の抽出に失敗しました。"


class ResearchFailure(ProposalPipelineError):
    default_message = "企業調査に失敗しました。"


class RankingFailure(ProposalPipelineError):
    default_message = "提案候補の生成に失敗しました。"


class DetailGenerationFailure(ProposalPipelineError):
    default_message = "詳細提案書の生成に失敗しました。"


class RewriteFailure(ProposalPipelineError):
    default_message = "メールの書き直しに失敗しました。"


class InputValidationError(ProposalPipelineError, ValueError):
    """Caller input rejected before any model call."""

    default_message = "入力内容が不正です。"
    retryable = False


class ProposalNotFound(KeyError):
    """No stored proposal with the given id for this owner."""
