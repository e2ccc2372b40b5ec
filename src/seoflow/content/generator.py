"""LLM-backed generation of stage candidates.

Every public coroutine returns a validated payload, or ``None`` when the model
call fails or its answer cannot be parsed. Callers treat ``None`` as "nothing
happened" and leave the workspace untouched.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import date
from typing import Any, Iterable, List, Optional, Protocol, Sequence, Type, TypeVar

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from pydantic import ValidationError

from ..llm.cost import BudgetExceededError, CostTracker, usage_from_response
from ..llm.images import ImageBackend
from ..llm.providers import LangChainChatProvider, ProviderError
from ..pipeline.schema import (
    Analysis,
    ArticleOptions,
    CtaOption,
    Document,
    ImageOption,
    Keyword,
    MetaDescriptionOption,
    ObjectiveOption,
    Outline,
    OutlineSection,
    PayloadModel,
    Persona,
    ProductInfo,
    SapoOption,
    SeoChecklistResult,
    TitleOption,
)
from .assembler import PartPlan

__all__ = [
    "ContentGenerator",
    "ContentPromptBuilder",
    "LangChainContentGenerator",
    "safe_json_parse",
    "normalize_string_array",
    "image_prompts_for",
    "collect_lsi_keywords",
]

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=PayloadModel)

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
LANGUAGE_NAMES = {"en": "English", "vi": "Vietnamese"}
SEO_CONTENT_LIMIT = 50_000


def safe_json_parse(text: str | None) -> Any | None:
    """Pull a JSON value out of a model reply.

    A fenced ```json block wins; otherwise the slice from the first ``{``/``[``
    to the last ``}``/``]`` is parsed. Returns ``None`` when nothing parses.
    """

    if not text:
        return None
    fenced = _FENCED_JSON_RE.search(text)
    if fenced and fenced.group(1):
        try:
            return json.loads(fenced.group(1))
        except json.JSONDecodeError:
            logger.debug("Fenced block is not valid JSON")
            return None

    starts = [index for index in (text.find("{"), text.find("[")) if index != -1]
    if not starts:
        logger.debug("No JSON object or array in model reply")
        return None
    start = min(starts)
    end = max(text.rfind("}"), text.rfind("]"))
    if end < start:
        logger.debug("Could not find the end of the JSON value in model reply")
        return None
    try:
        return json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        logger.debug("Failed to parse JSON from model reply")
        return None


def normalize_string_array(data: Any) -> list[str]:
    """Coerce list-ish model output (objects, newline strings) into a list of strings."""

    if not data:
        return []
    if isinstance(data, str):
        lines = (line.strip() for line in data.split("\n"))
        return [line[2:].strip() if line.startswith("- ") else line for line in lines if line]
    if not isinstance(data, list):
        return []
    result: list[str] = []
    for item in data:
        if isinstance(item, dict):
            title, description = item.get("title"), item.get("description")
            if isinstance(title, str) and isinstance(description, str):
                value = f"{title}: {description}"
            else:
                value = next(
                    (item[key] for key in ("title", "description", "name") if isinstance(item.get(key), str)),
                    json.dumps(item, ensure_ascii=False),
                )
        else:
            value = str(item)
        if value and value.strip():
            result.append(value)
    return result


def image_prompts_for(outline: Outline, limit: int = 4) -> list[str]:
    """Default image prompts: every other outline section, at most ``limit``."""

    selected = outline.sections[::2][:limit]
    return [
        f"A visually stunning, photorealistic image representing: {section.heading}. "
        f"{'. '.join(section.bullets)}. Style: cinematic, high detail. "
        "IMPORTANT: Do not include any text, letters, or words in the image."
        for section in selected
    ]


class ContentGenerator(Protocol):
    """What the orchestrator needs from a generation backend."""

    async def generate_persona(self, product: ProductInfo, models: Sequence[str] = ...) -> Optional[Persona]: ...

    async def generate_keywords(self, persona: Persona, location: str | None = None) -> Optional[List[Keyword]]: ...

    async def generate_analysis(
        self, keywords: Sequence[str], persona: Persona, content: str
    ) -> Optional[Analysis]: ...

    async def generate_objectives(self, analysis: Analysis) -> Optional[List[ObjectiveOption]]: ...

    async def generate_titles(
        self, objectives: Sequence[str], primary_keyword: str
    ) -> Optional[List[TitleOption]]: ...

    async def generate_meta_descriptions(
        self, title: str, keyword: str
    ) -> Optional[List[MetaDescriptionOption]]: ...

    async def generate_sapos(self, title: str, keyword: str, persona: Persona) -> Optional[List[SapoOption]]: ...

    async def generate_ctas(self, objectives: Sequence[str], persona: Persona) -> Optional[List[CtaOption]]: ...

    async def generate_outline(
        self,
        analysis: Analysis,
        persona: Persona,
        title: str,
        meta_description: str,
        objectives: Sequence[str],
        keyword: Keyword,
    ) -> Optional[Outline]: ...

    async def generate_images(self, prompts: Sequence[str]) -> Optional[List[ImageOption]]: ...

    async def generate_article_section(
        self,
        plan: PartPlan,
        *,
        title: str,
        sapo: str,
        persona: Persona,
        analysis: Analysis,
        options: ArticleOptions,
    ) -> Optional[str]: ...

    async def evaluate_seo(
        self,
        document: Document,
        *,
        primary_keyword: str,
        lsi_keywords: Sequence[str],
        objectives: Sequence[str],
    ) -> Optional[SeoChecklistResult]: ...


class ContentPromptBuilder:
    """Builds the chat messages for every generation stage."""

    SYSTEM_PROMPT = (
        "You are an expert SEO strategist and content writer. Follow the requested output "
        "format exactly and never add commentary outside it."
    )

    PERSONA_SCHEMA_PARTS = {
        "standard": '"details": { "demographics": "Detailed demographics.", "goals": ["Goal 1", "Goal 2"], '
        '"challenges": ["Challenge 1", "Challenge 2"] }',
        "empathy": '"empathyMap": { "says": ["..."], "thinks": ["..."], "does": ["..."], "feels": ["..."] }',
        "value-prop": '"valueProposition": { "customerJobs": ["..."], "pains": ["..."], "gains": ["..."], '
        '"productsServices": ["..."], "painRelievers": ["..."], "gainCreators": ["..."] }',
        "jtbd": '"jtbd": { "jobStatement": "...", "functionalAspects": ["..."], "emotionalAspects": ["..."], '
        '"socialAspects": ["..."] }',
        "journey": '"journey": { "awareness": { "actions": ["..."], "painPoints": ["..."], "opportunities": ["..."] }, '
        '"consideration": { "actions": ["..."], "painPoints": ["..."], "opportunities": ["..."] }, '
        '"decision": { "actions": ["..."], "painPoints": ["..."], "opportunities": ["..."] } }',
        "mental": '"mentalModel": { "coreBeliefs": ["..."], "thoughtProcess": "...", "informationStructure": "..." }',
    }

    def __init__(self, language: str = "en") -> None:
        self.language = language

    @property
    def language_name(self) -> str:
        return LANGUAGE_NAMES.get(self.language, "English")

    def _messages(self, *lines: str) -> List[BaseMessage]:
        body = "\n".join(line for line in lines if line is not None)
        return [SystemMessage(content=self.SYSTEM_PROMPT), HumanMessage(content=body.strip())]

    @staticmethod
    def _options_example(fields: str) -> str:
        return f'{{\n  "options": [\n    {{ {fields} }}\n  ]\n}}'

    def persona(self, product: ProductInfo, models: Sequence[str]) -> List[BaseMessage]:
        schema_parts = ['"summary": "A concise, one-sentence summary of the persona."']
        schema_parts.extend(self.PERSONA_SCHEMA_PARTS[name] for name in models if name in self.PERSONA_SCHEMA_PARTS)
        product_lines = [f"Name: {product.name}"]
        if product.price:
            product_lines.append(f"Price: {product.price}")
        if product.desired_outcome:
            product_lines.append(f"Desired outcome: {product.desired_outcome}")
        if product.location:
            product_lines.append(f"Location: {product.location}")
        return self._messages(
            f"Analyze the following product information and generate a detailed user persona in {self.language_name}.",
            "Product Information:",
            "---",
            *product_lines,
            "---",
            f"Generate the following persona models: {', '.join(models)}.",
            "The final output MUST be a single, valid JSON object, with no other text before or after it. "
            "The JSON structure must be:",
            "{",
            ",\n".join(schema_parts),
            "}",
            "Provide rich, detailed, and plausible information for every field.",
        )

    def keywords(self, persona: Persona, location: str | None = None) -> List[BaseMessage]:
        year = date.today().year
        location_rule = (
            f'The target location for these keywords is "{location}". '
            "Please prioritize keywords that are geographically relevant."
            if location
            else "The keywords should be globally relevant unless the persona implies a location."
        )
        return self._messages(
            f"Based on the following user persona summary, generate a list of 20 relevant SEO keywords in {self.language_name}.",
            "Persona Summary:",
            "---",
            persona.summary,
            "---",
            "IMPORTANT CONTEXTUAL RULES:",
            f"1. Location: {location_rule}",
            f"2. Timeliness: The current year is {year}. You MUST NOT generate any keywords that include past years "
            f"(e.g., {year - 1}, {year - 2}). Focus on evergreen or current/future year terms.",
            "For each keyword, provide: term, relevance (1-10), searchVolume (estimated monthly searches), "
            "competition ('Low', 'Medium' or 'High'), kei (Search Volume^2 / Competition, using 1/5/10 for "
            "Low/Medium/High), kgr (allintitle results / search volume), intent ('Informational', 'Navigational', "
            "'Commercial' or 'Transactional') and lsiKeywords (3-5 related terms).",
            'The final output MUST be a single JSON object with a "keywords" key containing an array of keyword objects. Example:',
            '{ "keywords": [ { "term": "example keyword", "relevance": 8, "searchVolume": 1200, "competition": "Medium", '
            '"kei": 288000, "kgr": 0.15, "intent": "Informational", "lsiKeywords": ["related term 1", "related term 2"] } ] }',
        )

    def analysis(self, keywords: Sequence[str], persona: Persona, content: str) -> List[BaseMessage]:
        return self._messages(
            f'Analyze the following content based on keywords "{", ".join(keywords)}" '
            f'from the perspective of persona: "{persona.summary}".',
            "Content:",
            "---",
            content,
            "---",
            f"Output language: {self.language_name}.",
            "Synthesize your findings. Ensure ALL fields are filled.",
            "Required JSON Structure:",
            '{ "summary": "Deep summary...", "objectives": ["..."], "contentGaps": ["..."], "creativeIdeas": ["..."], '
            '"breakthroughs": { "uniqueInsights": "...", "humanExperienceEEAT": "...", "hcuExploitation": "..." } }',
        )

    def objectives(self, analysis: Analysis) -> List[BaseMessage]:
        summary = json.dumps(
            analysis.model_dump(include={"summary", "objectives", "content_gaps", "creative_ideas", "breakthroughs"}),
            ensure_ascii=False,
            indent=2,
        )
        return self._messages(
            f"Based on the following content analysis, generate 5 distinct and strategic content objectives in {self.language_name}.",
            "Analysis:",
            "---",
            summary,
            "---",
            "For each objective, provide: description (a clear, concise statement), rationale (why it matters "
            "based on the analysis) and score (1-10 potential impact).",
            'The final output MUST be a single JSON object with an "options" key containing an array of objective objects. Example:',
            self._options_example('"description": "...", "rationale": "...", "score": 9'),
        )

    def titles(self, objectives: Sequence[str], primary_keyword: str) -> List[BaseMessage]:
        return self._messages(
            f"Based on the following content objectives, generate 10 compelling, SEO-friendly titles in {self.language_name}.",
            "Objectives:",
            "---",
            *[f"- {objective}" for objective in objectives],
            "---",
            f'MANDATORY REQUIREMENT: Every single title generated MUST contain the primary keyword: "{primary_keyword}".',
            "For each title, provide: title (under 60 characters), rationale and score (1-10 potential click-through).",
            'The final output MUST be a single JSON object with an "options" key containing an array of title objects. Example:',
            self._options_example('"title": "...", "rationale": "...", "score": 8'),
        )

    def meta_descriptions(self, title: str, keyword: str) -> List[BaseMessage]:
        return self._messages(
            f"Generate 5 concise and persuasive meta descriptions in {self.language_name} for an article "
            "with the following title and primary keyword.",
            f'Title: "{title}"',
            f'Primary Keyword: "{keyword}"',
            "Each description MUST be under 160 characters, MUST include the primary keyword and MUST encourage clicks.",
            "For each description, provide: description, rationale and score (1-10).",
            'The final output MUST be a single JSON object with an "options" key containing an array of description objects. Example:',
            self._options_example('"description": "...", "rationale": "...", "score": 9'),
        )

    def sapos(self, title: str, keyword: str, persona: Persona) -> List[BaseMessage]:
        return self._messages(
            f"Generate 5 engaging, hook-filled introductory paragraphs (Sapo) in {self.language_name} for an article.",
            "Context:",
            f'- Title: "{title}"',
            f'- Primary Keyword: "{keyword}"',
            f'- Target Audience (Persona): "{persona.summary}"',
            "MANDATORY REQUIREMENTS:",
            f'1. Each Sapo MUST include the primary keyword "{keyword}" naturally.',
            "2. It must set the stage for the article and encourage the user to read on.",
            "3. Length: approximately 40-60 words.",
            'The final output MUST be a single JSON object with an "options" key containing an array of objects.',
            self._options_example('"content": "The sapo text...", "rationale": "Why this hook works..."'),
        )

    def ctas(self, objectives: Sequence[str], persona: Persona) -> List[BaseMessage]:
        return self._messages(
            f"Generate 5 compelling Call to Action (CTA) phrases in {self.language_name}.",
            "Context:",
            f"- Article Objectives: {', '.join(objectives)}",
            f'- Target Audience (Persona): "{persona.summary}"',
            "MANDATORY REQUIREMENTS:",
            "1. The CTA must align strictly with the article objectives.",
            "2. It should be persuasive and action-oriented.",
            'The final output MUST be a single JSON object with an "options" key containing an array of objects.',
            self._options_example('"content": "The CTA text...", "rationale": "Why this works for the objective..."'),
        )

    def outline(
        self,
        analysis: Analysis,
        persona: Persona,
        title: str,
        meta_description: str,
        objectives: Sequence[str],
        keyword: Keyword,
    ) -> List[BaseMessage]:
        return self._messages(
            f"Create a comprehensive, logical content outline in {self.language_name}.",
            "CORE CONTEXT:",
            f'- Title: "{title}"',
            f'- Meta Description: "{meta_description}"',
            f'- Target Persona: "{persona.summary}"',
            f'- Primary Keyword: "{keyword.term}"',
            f'- Search Intent: "{keyword.intent}"',
            f"- LSI Keywords to Include: {', '.join(keyword.lsi_keywords)}",
            f"- Strategic Objectives: {', '.join(objectives)}",
            "ANALYSIS INSIGHTS:",
            f"- Content Gaps to Fill: {', '.join(analysis.content_gaps)}",
            f"- Creative Ideas: {', '.join(analysis.creative_ideas)}",
            "INSTRUCTIONS:",
            "The outline should be structured with H2 headings and detailed bullet points under each heading.",
            f"Structure the outline to match the Search Intent ({keyword.intent}).",
            "Ensure the LSI keywords are naturally distributed and the structure is MECE.",
            'The final output MUST be a single JSON object with a "sections" key containing an array of section objects. Example:',
            '{ "sections": [ { "h2": "First Main Section Title", "bullets": ["Key point 1", "Key point 2"] } ] }',
        )

    def article_section(
        self,
        plan: PartPlan,
        *,
        title: str,
        sapo: str,
        persona: Persona,
        analysis: Analysis,
        options: ArticleOptions,
    ) -> List[BaseMessage]:
        part = plan.part
        cta_rule = (
            "CALL TO ACTION: Distribute these Call-to-Action phrases naturally throughout the section "
            f"(bolded or italicized): {' | '.join(plan.ctas)}."
            if plan.ctas
            else ""
        )
        if part == "part1":
            specific = [
                "MANDATORY INTRODUCTION (Sapo):",
                "You MUST start the article immediately with this exact text (do not change it):",
                sapo,
                cta_rule,
                "Length Goal: approximately 500-600 words for this section (Intro + First main points).",
            ]
        elif part == "part2":
            specific = [
                "This is the MIDDLE section of the article (Deep Dive).",
                "Continue seamlessly from the previous section. Do NOT write a new introduction.",
                "Focus on deep, detailed analysis of the assigned outline points.",
                cta_rule,
                "Length Goal: approximately 1000 words for this section.",
            ]
        else:
            specific = [
                "This is the FINAL section of the article (Conclusion & Wrap up).",
                "Continue seamlessly from the previous section.",
                "Cover the remaining outline points and provide a strong conclusion.",
                cta_rule,
                (
                    'REQUIRED SECTIONS: At the very end of this section include a "Frequently Asked Questions (FAQs)" '
                    'section with 3-5 questions and answers. Format this as H2 "FAQs" followed by H3 questions.'
                    if options.include_faq
                    else ""
                ),
                "Length Goal: write the remaining content needed to finish the article (approx 500+ words).",
            ]

        general = [
            f'WRITING STYLE: Adopt the "{options.writing_style}" framework.' if options.writing_style != "default" else "",
            (
                "ARTICLE STRUCTURE: Use the Inverted Pyramid structure. Present the most crucial information, "
                "conclusions, and key takeaways at the beginning."
                if options.use_inverted_pyramid and part == "part1"
                else ""
            ),
            (
                "SEO OPTIMIZATION: Structure the content to be easily digestible for Google's AI Overview. "
                "Use clear headings, bulleted lists, and concise direct answers."
                if options.optimize_for_ai_overview
                else ""
            ),
            "FORMATTING: You MUST use Markdown tables where appropriate." if options.use_tables else "",
            "FORMATTING: You MUST include at least one Markdown blockquote (> Quote)." if options.use_quotes else "",
            (
                "E-E-A-T ENHANCEMENT: Embed links to the English Wikipedia pages of key concepts, "
                "e.g. [Term](https://en.wikipedia.org/wiki/Term)."
                if options.add_wikipedia_links
                else ""
            ),
            (
                "INTERNAL LINKS (MANDATORY): Integrate these links as [Anchor Text](URL):\n" + "\n".join(options.internal_links)
                if options.internal_links
                else ""
            ),
            (
                "EXTERNAL LINKS (MANDATORY): Integrate these links as [Anchor Text](URL):\n" + "\n".join(options.external_links)
                if options.external_links
                else ""
            ),
            (
                f"IMPORTANT: This section has {len(plan.images)} associated images. You MUST place image placeholders "
                f"({', '.join(f'[IMAGE_{index}]' for index in range(1, len(plan.images) + 1))}) where they are most "
                "contextually relevant. Use all placeholders provided."
                if plan.images
                else ""
            ),
        ]
        outline_text = "\n\n".join(_section_markdown(section) for section in plan.sections)
        return self._messages(
            f"You are writing {part.upper()} of a comprehensive article in {self.language_name}.",
            "The final output should be only the Markdown text for this specific section.",
            "### CORE CONTEXT",
            f"Article Title: {title}",
            f"Target Persona: {persona.summary}",
            f"Gaps: {', '.join(analysis.content_gaps)}",
            f"Ideas: {', '.join(analysis.creative_ideas)}",
            f"Breakthroughs: {analysis.breakthroughs.unique_insights}",
            "### SECTION INSTRUCTIONS",
            *[line for line in specific if line],
            "### GENERAL REQUIREMENTS",
            "Content Principles: Helpful, people-first, high E-E-A-T. Adhere to Google HCU guidelines.",
            *[line for line in general if line],
            "Use Markdown H2 (##) for main headings, H3 (###) for subsections and standard Markdown links.",
            "### OUTLINE FOR THIS SECTION (MANDATORY)",
            "---",
            outline_text,
            "---",
        )

    def seo_evaluation(
        self,
        document: Document,
        *,
        primary_keyword: str,
        lsi_keywords: Sequence[str],
        objectives: Sequence[str],
    ) -> List[BaseMessage]:
        body = document.body
        if len(body) > SEO_CONTENT_LIMIT:
            body = body[:25_000] + "\n...[Content Truncated]...\n" + body[-10_000:]
        checklist = [
            "primaryKeyword: the primary keyword appears naturally in the title, meta description and early in the article",
            "title: well written, contains the primary keyword, 50-60 characters",
            "metaDescription: well written, contains the primary keyword, 140-160 characters",
            "sapo: the introduction is engaging, contains the primary keyword and summarizes the value",
            "aiOverview: clear concise answers, lists and headings suitable for AI Overview / featured snippets",
            "h1: the main title contains the primary keyword",
            "headings: H2-H6 headings structure the content logically",
            "writingStyle: the article consistently follows the requested writing style",
            "tables: tables are present if requested; passes when not requested",
            "trust: the content builds confidence like an authoritative site",
            "expertise: the article is accurate, comprehensive and well explained",
            "images: images are used within the article body",
            "faqs: a dedicated FAQ section exists if requested; passes when not requested",
            "objectives: the article fulfils the target objectives",
            "creativity: the article is original and avoids generic content",
        ]
        options = document.generation_options
        return self._messages(
            "Analyze the provided article content based on a strict checklist. For each criterion provide a boolean "
            f'"pass" value and a concise "reason" (max 150 characters) in {self.language_name}.',
            "Context:",
            f"- Primary Keyword: {primary_keyword}",
            f"- LSI Keywords: {', '.join(list(lsi_keywords)[:10])}",
            f"- Target Objectives: {'; '.join(objectives)}",
            f"- Requested Writing Style: {document.writing_style}",
            f"- Was \"Include FAQs\" requested? {bool(options.get('include_faq'))}",
            f"- Was \"Use Tables\" requested? {bool(options.get('use_tables'))}",
            "Content for Analysis:",
            f"- Title: {document.title}",
            f"- Meta Description: {document.meta_description}",
            "- Article Body (Markdown):",
            "---",
            body,
            "---",
            "Checklist:",
            *[f"{index}. {item}" for index, item in enumerate(checklist, start=1)],
            "The final output MUST be a single JSON object whose keys are the checklist names above, each mapping to "
            '{ "pass": boolean, "reason": "..." }.',
        )


def _section_markdown(section: OutlineSection) -> str:
    bullets = "\n".join(f"- {bullet}" for bullet in section.bullets)
    return f"## {section.heading}\n{bullets}" if bullets else f"## {section.heading}"


class LangChainContentGenerator:
    """:class:`ContentGenerator` backed by a LangChain chat model."""

    def __init__(
        self,
        provider: LangChainChatProvider,
        *,
        language: str = "en",
        cost_tracker: CostTracker | None = None,
        image_backend: ImageBackend | None = None,
        prompt_builder: ContentPromptBuilder | None = None,
    ) -> None:
        self._provider = provider
        self._prompts = prompt_builder or ContentPromptBuilder(language)
        self.cost_tracker = cost_tracker
        self.image_backend = image_backend

    # ------------------------------------------------------------------
    # Model plumbing
    # ------------------------------------------------------------------

    async def _complete(self, stage: str, messages: Sequence[BaseMessage]) -> Optional[str]:
        try:
            response = await self._provider.ainvoke(list(messages))
        except ProviderError as exc:
            logger.warning("Generation for %s failed: %s", stage, exc)
            return None
        self._record_usage(stage, response)
        content = getattr(response, "content", response)
        if isinstance(content, list):
            content = "".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in content)
        text = str(content or "").strip()
        if not text:
            logger.warning("Generation for %s returned an empty response", stage)
            return None
        return text

    def _record_usage(self, stage: str, response: Any) -> None:
        if self.cost_tracker is None:
            return
        prompt_tokens, completion_tokens = usage_from_response(response)
        try:
            self.cost_tracker.record(stage, self._provider.model, prompt_tokens, completion_tokens)
        except BudgetExceededError:
            logger.warning("Budget exceeded after %s generation", stage)
            raise
        if self.cost_tracker.should_warn():
            logger.warning(
                "LLM spend %.4f is approaching the budget limit %.2f",
                self.cost_tracker.total_cost,
                self.cost_tracker.budget_limit,
            )

    async def _complete_json(self, stage: str, messages: Sequence[BaseMessage]) -> Any | None:
        text = await self._complete(stage, messages)
        if text is None:
            return None
        parsed = safe_json_parse(text)
        if parsed is None:
            logger.warning("Generation for %s did not return parseable JSON", stage)
        return parsed

    async def _options(self, stage: str, messages: Sequence[BaseMessage], model: Type[M], key: str = "options") -> Optional[List[M]]:
        parsed = await self._complete_json(stage, messages)
        if parsed is None:
            return None
        items = parsed.get(key) if isinstance(parsed, dict) else parsed
        return _validate_many(stage, model, items)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def generate_persona(self, product: ProductInfo, models: Sequence[str] = ("standard",)) -> Optional[Persona]:
        parsed = await self._complete_json("persona", self._prompts.persona(product, models))
        if not isinstance(parsed, dict):
            return None
        return _validate_one("persona", Persona, {**parsed, "models": list(models)})

    async def generate_keywords(self, persona: Persona, location: str | None = None) -> Optional[List[Keyword]]:
        return await self._options("keywords", self._prompts.keywords(persona, location), Keyword, key="keywords")

    async def generate_analysis(self, keywords: Sequence[str], persona: Persona, content: str) -> Optional[Analysis]:
        parsed = await self._complete_json("analysis", self._prompts.analysis(keywords, persona, content))
        if not isinstance(parsed, dict):
            return None
        sanitized = {
            "summary": parsed.get("summary") if isinstance(parsed.get("summary"), str) else "",
            "objectives": normalize_string_array(parsed.get("objectives")),
            "contentGaps": normalize_string_array(parsed.get("contentGaps")),
            "creativeIdeas": normalize_string_array(parsed.get("creativeIdeas")),
            "breakthroughs": parsed.get("breakthroughs") if isinstance(parsed.get("breakthroughs"), dict) else {},
        }
        return _validate_one("analysis", Analysis, sanitized)

    async def generate_objectives(self, analysis: Analysis) -> Optional[List[ObjectiveOption]]:
        return await self._options("objectives", self._prompts.objectives(analysis), ObjectiveOption)

    async def generate_titles(self, objectives: Sequence[str], primary_keyword: str) -> Optional[List[TitleOption]]:
        return await self._options("titles", self._prompts.titles(objectives, primary_keyword), TitleOption)

    async def generate_meta_descriptions(self, title: str, keyword: str) -> Optional[List[MetaDescriptionOption]]:
        return await self._options(
            "meta_descriptions", self._prompts.meta_descriptions(title, keyword), MetaDescriptionOption
        )

    async def generate_sapos(self, title: str, keyword: str, persona: Persona) -> Optional[List[SapoOption]]:
        return await self._options("sapos", self._prompts.sapos(title, keyword, persona), SapoOption)

    async def generate_ctas(self, objectives: Sequence[str], persona: Persona) -> Optional[List[CtaOption]]:
        return await self._options("ctas", self._prompts.ctas(objectives, persona), CtaOption)

    async def generate_outline(
        self,
        analysis: Analysis,
        persona: Persona,
        title: str,
        meta_description: str,
        objectives: Sequence[str],
        keyword: Keyword,
    ) -> Optional[Outline]:
        messages = self._prompts.outline(analysis, persona, title, meta_description, objectives, keyword)
        parsed = await self._complete_json("outline", messages)
        if not isinstance(parsed, dict):
            return None
        outline = _validate_one("outline", Outline, {"sections": parsed.get("sections") or []})
        if outline is not None and not outline.sections:
            logger.warning("Generation for outline returned no sections")
            return None
        return outline

    async def generate_images(self, prompts: Sequence[str]) -> Optional[List[ImageOption]]:
        """Generate one image per prompt; failed prompts are skipped."""

        if self.image_backend is None:
            logger.warning("No image backend configured; cannot generate images")
            return None
        options: list[ImageOption] = []
        for prompt in prompts:
            if not prompt.strip():
                continue
            try:
                url = await self.image_backend.generate(prompt)
            except ProviderError as exc:
                logger.warning("Image generation failed for prompt %r: %s", prompt[:40], exc)
                continue
            options.append(ImageOption(url=url, prompt=prompt))
        return options or None

    async def generate_article_section(
        self,
        plan: PartPlan,
        *,
        title: str,
        sapo: str,
        persona: Persona,
        analysis: Analysis,
        options: ArticleOptions,
    ) -> Optional[str]:
        messages = self._prompts.article_section(
            plan, title=title, sapo=sapo, persona=persona, analysis=analysis, options=options
        )
        return await self._complete(f"article_{plan.part}", messages)

    async def evaluate_seo(
        self,
        document: Document,
        *,
        primary_keyword: str,
        lsi_keywords: Sequence[str],
        objectives: Sequence[str],
    ) -> Optional[SeoChecklistResult]:
        messages = self._prompts.seo_evaluation(
            document, primary_keyword=primary_keyword, lsi_keywords=lsi_keywords, objectives=objectives
        )
        parsed = await self._complete_json("seo_evaluation", messages)
        if not isinstance(parsed, dict):
            return None
        return _validate_one("seo_evaluation", SeoChecklistResult, parsed)


def _validate_one(stage: str, model: Type[M], payload: Any) -> Optional[M]:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        logger.warning("Generation for %s returned an invalid payload: %s", stage, exc.error_count())
        return None


def _validate_many(stage: str, model: Type[M], items: Any) -> Optional[List[M]]:
    if not isinstance(items, list) or not items:
        logger.warning("Generation for %s returned no options", stage)
        return None
    validated: list[M] = []
    for item in items:
        parsed = _validate_one(stage, model, item)
        if parsed is not None:
            validated.append(parsed)
    return validated or None


def collect_lsi_keywords(keywords: Iterable[Keyword]) -> list[str]:
    seen: list[str] = []
    for keyword in keywords:
        for term in keyword.lsi_keywords:
            if term not in seen:
                seen.append(term)
    return seen
