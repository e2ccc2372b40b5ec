"""Three-part article assembly: outline split, image/CTA distribution and merge.

The article body is generated in three parts so each request stays small.
The assembler decides which outline sections, body images and CTAs each part
receives, swaps ``[IMAGE_n]`` placeholders in the returned text for HTML image
embeds, and merges the parts behind the feature image. Merging is recomputed
on every call so manual edits to a part always show up in the final body.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Sequence, TypeVar, cast

from ..errors import AssemblyPreconditionError, IncompleteDocumentError
from ..pipeline.schema import Analysis, ArticleOptions, Document, DocumentParts, Outline, OutlineSection, Persona
from .metrics import DEFAULT_WORDS_PER_MINUTE, DocumentStats

__all__ = [
    "PARTS",
    "PartPlan",
    "AssemblyContext",
    "DocumentAssembler",
    "split_outline",
    "distribute_images",
    "distribute_ctas",
    "image_embed",
    "feature_image_embed",
    "inject_images",
    "merge_document",
    "check_preconditions",
]

logger = logging.getLogger(__name__)

PARTS: tuple[str, str, str] = ("part1", "part2", "part3")

IMAGE_STYLE = "width: 100%; max-width: 800px; height: auto; border-radius: 8px; margin: 20px 0; display: block;"
FEATURE_IMAGE_STYLE = (
    "width: 100%; max-width: 800px; height: auto; border-radius: 8px; margin-bottom: 24px; display: block;"
)

T = TypeVar("T")
Split = tuple[list[T], list[T], list[T]]


def split_outline(sections: Sequence[T]) -> Split[T]:
    """Split outline sections into three ordered, contiguous parts.

    Fewer than three sections all go to the first part. Otherwise every part
    gets at least one section and the remainder lands in the last part.
    """

    items = list(sections)
    total = len(items)
    if total < 3:
        return items, [], []
    third = total // 3
    part1_end = max(1, third)
    part2_end = max(part1_end + 1, third * 2)
    return items[:part1_end], items[part1_end:part2_end], items[part2_end:]


def distribute_images(images: Sequence[T]) -> Split[T]:
    """Chunk body images by ``ceil(M / 3)``; the last part takes whatever is left."""

    items = list(images)
    if not items:
        return [], [], []
    chunk = math.ceil(len(items) / 3)
    return items[:chunk], items[chunk : chunk * 2], items[chunk * 2 :]


def distribute_ctas(ctas: Sequence[str]) -> Split[str]:
    """First CTA to part 1, second to part 2, all remaining CTAs to part 3."""

    items = list(ctas)
    return items[:1], items[1:2], items[2:]


def image_embed(url: str, index: int) -> str:
    return f'\n\n<img src="{url}" alt="Article Image {index}" style="{IMAGE_STYLE}" />\n\n'


def feature_image_embed(url: str) -> str:
    return f'<img src="{url}" alt="Feature Image" style="{FEATURE_IMAGE_STYLE}" />\n\n'


def inject_images(text: str, image_urls: Sequence[str]) -> str:
    """Replace ``[IMAGE_i]`` placeholders (1-indexed, any case) with image embeds.

    An image whose placeholder is absent is appended to the end of the text so
    no assigned image is ever dropped.
    """

    result = text
    for index, url in enumerate(image_urls, start=1):
        fragment = image_embed(url, index)
        pattern = re.compile(rf"\[IMAGE_{index}\]", re.IGNORECASE)
        if pattern.search(result):
            result = pattern.sub(lambda _match: fragment, result)
        else:
            result += f"\n\n{fragment}\n"
    return result


def merge_document(
    parts: Sequence[str],
    image_splits: Sequence[Sequence[str]],
    feature_image: str | None = None,
) -> str:
    """Inject images into each part and join them behind the feature image."""

    if len(parts) != 3 or len(image_splits) != 3:
        raise ValueError("merge_document expects exactly three parts and three image groups")
    injected = [inject_images(text, images) for text, images in zip(parts, image_splits)]
    header = feature_image_embed(feature_image) if feature_image else ""
    return f"{header}{injected[0]}\n\n{injected[1]}\n\n{injected[2]}"


@dataclass(slots=True)
class PartPlan:
    """Inputs handed to the text generator for one article part."""

    part: str
    sections: list[OutlineSection]
    images: list[str]
    ctas: list[str]


@dataclass(slots=True)
class AssemblyContext:
    """Resolved upstream selections an article is assembled from."""

    title: str | None = None
    meta_description: str | None = None
    sapo: str | None = None
    ctas: list[str] = field(default_factory=list)
    persona: Persona | None = None
    analysis: Analysis | None = None
    outline: Outline | None = None
    feature_image: str | None = None
    images: list[str] = field(default_factory=list)
    persona_id: str = ""
    analysis_id: str = ""
    outline_id: str = ""
    primary_keyword_id: str | None = None
    objective_ids: list[str] = field(default_factory=list)


def check_preconditions(context: AssemblyContext) -> list[str]:
    """Names of the inputs that still block article generation."""

    required = (
        ("outline", context.outline),
        ("title", context.title),
        ("meta_description", context.meta_description),
        ("sapo", context.sapo),
        ("ctas", context.ctas),
        ("persona", context.persona),
        ("feature_image", context.feature_image),
        ("analysis", context.analysis),
    )
    return [name for name, value in required if not value]


class DocumentAssembler:
    """Holds the three generated parts for one article run and merges them."""

    def __init__(self, context: AssemblyContext, options: ArticleOptions | None = None) -> None:
        missing = check_preconditions(context)
        if missing:
            raise AssemblyPreconditionError(missing)
        self.context = context
        self.options = options or ArticleOptions()
        self._outline_split = split_outline(cast(Outline, context.outline).sections)
        self._image_split = distribute_images(context.images)
        self._cta_split = distribute_ctas(context.ctas)
        self._parts: dict[str, str] = {part: "" for part in PARTS}

    @staticmethod
    def _index(part: str) -> int:
        try:
            return PARTS.index(part)
        except ValueError as exc:
            raise ValueError(f"Unknown article part '{part}'; expected one of {PARTS}") from exc

    def plan_for(self, part: str) -> PartPlan:
        index = self._index(part)
        return PartPlan(
            part=part,
            sections=list(self._outline_split[index]),
            images=list(self._image_split[index]),
            ctas=list(self._cta_split[index]),
        )

    def set_part(self, part: str, text: str) -> None:
        self._index(part)
        self._parts[part] = text
        logger.info("Article %s updated (%d chars)", part, len(text))

    def part(self, part: str) -> str:
        self._index(part)
        return self._parts[part]

    @property
    def parts(self) -> dict[str, str]:
        return dict(self._parts)

    def pending_parts(self) -> list[str]:
        return [part for part in PARTS if not self._parts[part].strip()]

    @property
    def is_complete(self) -> bool:
        return not self.pending_parts()

    def merge(self) -> str:
        if not self.is_complete:
            raise IncompleteDocumentError(
                f"Article parts not generated yet: {', '.join(self.pending_parts())}"
            )
        return merge_document(
            [self._parts[part] for part in PARTS],
            self._image_split,
            self.context.feature_image,
        )

    def stats(self, words_per_minute: int = DEFAULT_WORDS_PER_MINUTE) -> DocumentStats:
        image_count = len(self.context.images) + (1 if self.context.feature_image else 0)
        return DocumentStats.for_body(self.merge(), image_count=image_count, words_per_minute=words_per_minute)

    def build_document(self) -> Document:
        """Produce the document payload saved to the library."""

        if not self.context.primary_keyword_id:
            raise AssemblyPreconditionError(["primary_keyword"])
        context = self.context
        return Document(
            title=context.title or "",
            body=self.merge(),
            parts=DocumentParts(**self._parts),
            meta_description=context.meta_description or "",
            sapo=context.sapo or "",
            cta=context.ctas[0],
            ctas=list(context.ctas),
            outline_id=context.outline_id,
            feature_image=context.feature_image or "",
            images=list(context.images),
            persona_id=context.persona_id,
            analysis_id=context.analysis_id,
            primary_keyword_id=context.primary_keyword_id,
            objective_ids=list(context.objective_ids),
            writing_style=self.options.writing_style,
            generation_options=self.options.generation_options(),
        )
