"""Prompts for the OEM proposal pipeline.

Sales staff and clients work in Japanese, so every prompt is written in
Japanese except the English variant of the detailed proposal.
"""

# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------

OEM_PLANNER_SYSTEM = """\
あなたは化粧品OEMの企画開発エキスパートです。
クライアントの要望を正確に読み取り、実現性の高い化粧品企画を提案します。"""

JSON_OUTPUT_INSTRUCTION = """\

出力は以下のJSONスキーマに従うJSONオブジェクトのみとしてください。説明文やマークダウンは不要です。
JSONスキーマ:
{schema}"""

# ---------------------------------------------------------------------------
# Requirement extraction
# ---------------------------------------------------------------------------

CONFIDENCE_RULES = """\
抽出ルール:
1. 明記されている具体的な情報（製品タイプ、成分、ターゲット、予算、ロット数など）を優先的に抽出し、confidenceを高く(1.0に近く)設定してください。
2. 具体的な記載がないが文脈から強く推測できる場合は、その内容を提案し、confidenceを0.5〜0.8程度に設定してください。
3. 関係のない情報は捏造せず、不明な場合は値（value）を空（""や[]）にし、confidenceを0.0に設定してください。"""

EXTRACT_TEXT_USER = """\
以下のクライアントからの問い合わせテキスト（日本語）を分析し、指定されたJSONスキーマに従って情報を抽出・整理してください。
各項目について、内容（value）と、テキストからどれだけ明確に抽出できたかの自信度（confidence）を0.0から1.0の数値で示してください。

{rules}

問い合わせテキスト:
---
{text}
---"""

EXTRACT_DOCUMENT_USER = """\
添付されたドキュメント{filename}を詳細に読み込み、クライアントが要望している化粧品の企画内容を分析してください。
分析結果を、指定されたJSONスキーマに従って抽出・整理してください。

{rules}"""

EXTRACT_URL_USER = """\
以下のURL（またはURL文字列）から推測される化粧品の製品企画内容を分析し、指定されたJSONスキーマに従って情報を整理してください。
URL: {url}

URLの文字列や文脈から、ブランドの方向性、製品タイプ、ターゲット層などを可能な限り推測してください。
ページの内容は取得されていないため、推測した項目のconfidenceは0.8未満にしてください。

{rules}"""

# ---------------------------------------------------------------------------
# Client research
# ---------------------------------------------------------------------------

RESEARCH_USER = """\
以下の企業について、最近のニュース、SNSでの話題、公式発表などをリサーチしてください。

企業名: {company_name}
{url_line}

以下の点に注目して情報を収集し、**300文字程度で簡潔に要約（サマリー）**してください：
1. 最近の活動内容、新製品発売、プレスリリース
2. SNS等でのブランドの雰囲気、顧客層の反応
3. 企業としての戦略的な注力分野（例：サステナビリティ、エイジングケア、特定の成分など）

出力は箇条書き（「- 」で始まる行）を活用し、一目で状況が把握できるようにしてください。"""

# ---------------------------------------------------------------------------
# Material registration
# ---------------------------------------------------------------------------

MATERIAL_PARSE_USER = """\
提供された情報から化粧品原料のスペックを抽出してください。不明な情報は空文字にしてください。
コスト感(cost_level)は High, Medium, Low のいずれかで答えてください。"""

MATERIAL_INPUT_BLOCK = """\

入力データ:
{content}"""

# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

RANKING_USER = """\
あなたは化粧品OEMの熟練プランナーです。
クライアントから以下の要件（RequirementProfile）を受け取りました。
この要件に最も合致する、魅力的で実現性の高い製品提案を3つ作成してください。

RequirementProfile:
{profile_json}
{material_context}{research_context}
提案作成のルール:
1. クライアントの要望（製品タイプ、成分、予算など）を最大限尊重してください。
2. 「ランク1」は要望に最も忠実な「ベストマッチ」案にしてください。
3. 「ランク2」と「ランク3」は、少し視点を変えた提案（例：コスト重視、トレンド重視、機能性重視）を混ぜてバリエーションを出してください。
4. 自社原料リストにある成分を使用した場合は、scoring_reasonsに「自社原料活用」として加点理由を含めてください。
5. クライアントリサーチ情報がある場合は、その内容（最近のニュースやSNSの話題）に触れ、なぜこの提案が今のクライアントに適しているかの理由を含めてください。
6. スコア(score)は0-100点で評価してください。

出力形式:
"proposals" に3件の提案を入れたJSONオブジェクトで返してください。"""

RANKING_MATERIAL_CONTEXT = """
【重要：自社原料データベース】
以下のJSONデータは、自社が保有する利用可能な原料リストです。
提案を作成する際は、クライアントの要望に合致する限り、**可能な限りこのリスト内の原料を優先して**使用してください。
自社原料を使用した場合は、scoring_reasonsにその旨を記載して加点してください。

自社原料リスト:
{materials_json}
"""

RANKING_NO_MATERIAL_CONTEXT = """
【注意】自社原料リストは登録されていません。「自社原料活用」を加点理由に含めないでください。
"""

RANKING_RESEARCH_CONTEXT = """
【クライアント企業リサーチ情報】
以下の情報は、クライアント企業「{company_name}」に関する最新のWebリサーチ結果です。
提案を作成する際は、これらの情報（最近の動向、ブランドの雰囲気、注力分野）を考慮し、
「クライアントの現在の状況や戦略に寄り添った」提案内容にしてください。

リサーチ概要:
{summary}
"""

# ---------------------------------------------------------------------------
# Detailed proposal
# ---------------------------------------------------------------------------

DETAIL_CONTEXT = """\
以下の製品提案(Basic Proposal)と、元のクライアント要件(RequirementProfile)に基づいて、詳細な製品仕様書(Full Proposal)を作成してください。

RequirementProfile:
{profile_json}

Basic Proposal:
{candidate_json}"""

DETAIL_GENERIC_CONTEXT = """\
提案ID: {proposal_id} の詳細な製品仕様書を作成してください。
コンテキストが見つからないため、一般的な高品質な化粧品OEM提案として作成してください。"""

DETAIL_MATERIAL_CONTEXT = """
【自社原料データベース (詳細提案用)】
以下のJSONデータは、自社が保有する利用可能な原料リストです。
成分表(main_ingredients)を作成する際、これらの原料名(trade_name)やINCI名を使用し、
自社原料を使用した場合は is_internal_material: true を設定してください。

自社原料リスト:
{materials_json}
"""

DETAIL_RESEARCH_CONTEXT = """
【クライアント企業リサーチ情報】
概要: {summary}

メールの下書き(email_drafts)やコンセプト詳細を作成する際は、
「御社の最近の〇〇というニュースを拝見し...」や「SNSでの〇〇というトレンドを踏まえ...」といった
具体的な言及を入れて、パーソナライズされた内容にしてください。
"""

DETAIL_USER_JP = """\
{context}
{material_context}{research_context}
以下のJSONスキーマに従って、日本語で詳細な提案書を出力してください。

【重要：メール下書き(email_drafts)について】
メールはそのまま顧客に送信できる品質が必要です。以下の点に特に注意してください：
1. レイアウト: **可読性を最優先してください**。
   - 段落の間には必ず空白行（改行2回）を入れてください。
   - 詰まった文章は絶対に避けてください。
   - 重要なポイントは箇条書きにしてください。
2. バリエーション: 相手や状況に合わせて使い分けられるよう、3つのパターン（standard, formal, casual）を生成してください。
   - standard: バランスの取れた標準的なビジネスメール。
   - formal: 礼儀正しく、堅実な印象を与えるフォーマルなメール。
   - casual: 既存顧客やベンチャー企業向けなど、少し親しみやすさを出したメール。
3. 内容: 提案のハイライトを含め、ネクストアクションを促す内容にしてください。

【重要：エグゼクティブサマリー(executive_summary)について】
提案書の冒頭に配置するため、この提案の魅力、クライアントにとってのメリット、差別化ポイントを150文字程度で簡潔かつ強力にまとめてください。"""

DETAIL_USER_EN = """\
{context}
{material_context}{research_context}
Write the detailed proposal in **English** following the JSON schema below.
All free-text values (summary, tagline, ingredient names, email drafts, notes) must be in English.

Email drafts (email_drafts) must be ready to send to the client:
1. Leave a blank line between paragraphs and use bullet points for key facts.
2. Provide three variants: standard (balanced business email), formal (polite and conservative),
   casual (friendlier, for existing clients or start-ups).
3. Highlight the proposal and close with a clear next action.

The executive_summary opens the document: summarise the appeal, the client benefit and
the differentiator in roughly 60 words."""

# ---------------------------------------------------------------------------
# Email rewriting
# ---------------------------------------------------------------------------

REWRITE_USER = """\
以下のメール文を書き直してください。

【指示】
{instruction}

【元のメール文】
{content}

【書き直したメール文】
メール文のみを出力してください。説明や注釈は不要です。"""
