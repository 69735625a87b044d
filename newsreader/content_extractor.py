"""
Content Extractor

Responsibility: Turn raw article HTML into clean, speakable text.
Nothing more.

Strategy (cheapest first, each stage independently testable):
1. Structured data: <script type="application/ld+json"> with articleBody
2. Selector pass: common content containers (article, [role=main], ...)
3. Fallback: walk the body, keep the largest text block
4. Last resort: <meta name="description"> when everything else is too short

Every candidate goes through the same post-processing (entity decoding,
whitespace collapse, boilerplate removal) and the same validity gate.

Does NOT:
- Fetch pages (article_fetcher owns the network)
- Keep the raw HTML after extraction
- Decide what happens on failure (raises ExtractionError, engine decides)
"""

from __future__ import annotations

import html
import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from newsreader.models import ExtractedDocument
from newsreader.sentence_splitter import DEFAULT_MIN_SENTENCE_LENGTH, split_sentences

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """No usable article content in the document."""


# ============================================================================
# CLASSIFICATION TABLES
# ============================================================================

NON_CONTENT_TAGS = frozenset({
    "script", "style", "nav", "header", "footer", "aside",
    "form", "button", "noscript",
})

# Never carry readable body text
NON_TEXT_TAGS = frozenset({
    "head", "title", "template", "svg", "iframe", "select", "textarea", "figcaption",
})

NOISE_CLASS_FRAGMENTS = (
    "nav", "navbar", "navigation", "menu", "sidebar", "footer", "header",
    "ad", "ads", "advert", "share", "social", "byline", "caption", "promo",
    "metadata", "timestamp", "author", "related", "btn",
)

# Short fragments only match a whole "-"/"_" separated segment ("ad-slot",
# "btn_primary"), otherwise "ad" would hit "lead", "thread", "headline".
_SEGMENT_MATCH_MAX_LENGTH = 3

# Document roots keep their content whatever their class says
CLASS_EXEMPT_TAGS = frozenset({"html", "body", "main", "[document]"})

PARAGRAPH_TAGS = frozenset({
    "p", "h1", "h2", "h3", "li", "blockquote", "article", "section",
})

SHARE_KEYWORDS = (
    "share", "share this", "facebook", "twitter", "tweet", "copy link",
    "print", "email", "linkedin", "reddit", "whatsapp", "pinterest",
    "flipboard", "messenger", "telegram", "gift article", "save article",
)

# Affordance labels are short; longer text that starts with a keyword is prose
SHARE_AFFORDANCE_MAX_LENGTH = 40

CONTENT_SELECTORS = (
    "article",
    "[role=main]",
    "[itemprop=articleBody]",
    ".article-content",
    ".article-body",
    ".story-body",
    ".post-content",
    ".entry-content",
    "#article-body",
    "main",
)

ARTICLE_TYPES = frozenset({
    "Article", "NewsArticle", "ReportageNewsArticle", "AnalysisNewsArticle",
    "BlogPosting", "Report",
})

BOILERPLATE_PHRASES = (
    "skip to main content",
    "skip to content",
    "skip to navigation",
    "subscribe to our newsletter",
    "subscribe to newsletter",
    "sign up for our newsletter",
    "story continues below advertisement",
    "advertisement",
    "sponsored content",
    "all rights reserved",
)

_BOILERPLATE_BY_LENGTH = sorted(BOILERPLATE_PHRASES, key=len, reverse=True)
# A whole line that is nothing but a boilerplate phrase ("ADVERTISEMENT")
_BOILERPLATE_LINE = re.compile(
    r"^\W*(?:" + "|".join(re.escape(p) for p in _BOILERPLATE_BY_LENGTH) + r")\W*$",
    re.IGNORECASE,
)
# Multi-word phrases are also removed inline, on word boundaries only
_BOILERPLATE_INLINE = re.compile(
    r"\b(?:" + "|".join(re.escape(p) for p in _BOILERPLATE_BY_LENGTH if " " in p) + r")\b",
    re.IGNORECASE,
)
_INLINE_WHITESPACE = re.compile(r"[^\S\n]+")
_SPACE_BEFORE_PUNCTUATION = re.compile(r" +([,.;:!?])")
_CLASS_SEGMENTS = re.compile(r"[-_\s]+")


# ============================================================================
# NODE CLASSIFICATION (PURE)
# ============================================================================

class NodeKind(Enum):
    EXCLUDE = "exclude"
    META_DESCRIPTION = "meta_description"
    CONTENT = "content"


@dataclass(frozen=True)
class NodeClass:
    kind: NodeKind
    text: str = ""


def _class_tokens(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return value.split()
    return [str(v) for v in value]


def _has_noise_class(class_value: Any) -> bool:
    for token in _class_tokens(class_value):
        token = token.lower()
        segments = [s for s in _CLASS_SEGMENTS.split(token) if s]
        for fragment in NOISE_CLASS_FRAGMENTS:
            if len(fragment) <= _SEGMENT_MATCH_MAX_LENGTH:
                if fragment in segments:
                    return True
            elif fragment in token:
                return True
    return False


def classify(name: Optional[str], attrs: Mapping[str, Any], text: str = "") -> NodeClass:
    """
    Classify an element by tag name and attributes.

    Independent of the parser: callers pass the tag name and an attribute
    mapping ("class" may be a string or a token list).

    Returns:
        NodeClass EXCLUDE, META_DESCRIPTION(text) or CONTENT(text)
    """
    name = (name or "").lower()

    if name == "meta":
        key = (attrs.get("name") or attrs.get("property") or "").lower()
        if key in ("description", "og:description"):
            return NodeClass(NodeKind.META_DESCRIPTION, (attrs.get("content") or "").strip())
        return NodeClass(NodeKind.EXCLUDE)

    if name in NON_CONTENT_TAGS or name in NON_TEXT_TAGS:
        return NodeClass(NodeKind.EXCLUDE)

    if name not in CLASS_EXEMPT_TAGS and _has_noise_class(attrs.get("class")):
        return NodeClass(NodeKind.EXCLUDE)

    return NodeClass(NodeKind.CONTENT, text)


def is_share_affordance(text: str) -> bool:
    """True for short "Share" / "Email" / "Copy link" style labels."""
    lowered = text.strip().lower()
    if not lowered or len(lowered) > SHARE_AFFORDANCE_MAX_LENGTH:
        return False
    for keyword in SHARE_KEYWORDS:
        if lowered == keyword:
            return True
        if lowered.startswith(keyword) and not lowered[len(keyword)].isalnum():
            return True
    return False


def clean_text(text: str) -> str:
    """
    Post-process extracted text.

    Decodes entities, collapses whitespace (paragraph breaks kept as single
    newlines), strips boilerplate case-insensitively and trims. A line that
    is only a boilerplate phrase is dropped; multi-word phrases are also cut
    out of running text. Prose that merely mentions "advertisements" stays.
    """
    if not text:
        return ""
    text = html.unescape(text)
    lines = []
    for line in text.split("\n"):
        if _BOILERPLATE_LINE.match(line):
            continue
        line = _BOILERPLATE_INLINE.sub(" ", line)
        line = _INLINE_WHITESPACE.sub(" ", line).strip()
        line = _SPACE_BEFORE_PUNCTUATION.sub(r"\1", line)
        if line:
            lines.append(line)
    return "\n".join(lines).strip()


# ============================================================================
# EXTRACTOR
# ============================================================================

class ContentExtractor:
    """
    Heuristic article text extractor.

    Thresholds are character counts measured on cleaned text.
    """

    def __init__(
        self,
        min_length: int = 100,
        selector_min_length: int = 200,
        block_min_length: int = 100,
        sentence_min_length: int = DEFAULT_MIN_SENTENCE_LENGTH,
    ):
        self.min_length = min_length
        self.selector_min_length = selector_min_length
        self.block_min_length = block_min_length
        self.sentence_min_length = sentence_min_length

    def extract(self, raw_html: str) -> ExtractedDocument:
        """
        Extract speakable text from an article page.

        Args:
            raw_html: Full HTML document

        Returns:
            ExtractedDocument with body text and sentences

        Raises:
            ExtractionError: Empty document, or text at/under min_length
        """
        if not raw_html or not raw_html.strip():
            raise ExtractionError("Could not extract meaningful content from article: empty document")

        soup = BeautifulSoup(raw_html, "html.parser")

        text, source = self._from_json_ld(soup)
        if not text:
            text, source = self._from_selectors(soup)
        if not text:
            text, source = self._from_largest_block(soup)

        if len(text) <= self.min_length:
            description = clean_text(self._meta_description(soup))
            if len(description) > self.min_length:
                text, source = description, "meta-description"

        if len(text) <= self.min_length:
            logger.warning(f"[EXTRACT] Rejected: {len(text)} chars (min {self.min_length + 1})")
            raise ExtractionError("Could not extract meaningful content from article")

        sentences = tuple(split_sentences(text, min_length=self.sentence_min_length))
        if not sentences:
            raise ExtractionError("Could not extract meaningful content from article: no sentences")

        logger.info(f"[EXTRACT] {source}: {len(text)} chars, {len(sentences)} sentences")
        return ExtractedDocument(body_text=text, sentences=sentences, source=source)

    # ========================================================================
    # STRATEGIES
    # ========================================================================

    def _from_json_ld(self, soup: BeautifulSoup) -> Tuple[str, str]:
        for script in soup.find_all("script"):
            if (script.get("type") or "").strip().lower() != "application/ld+json":
                continue
            raw = script.string or script.get_text()
            if not raw or not raw.strip():
                continue
            try:
                data = json.loads(raw)
            except (ValueError, RecursionError) as e:
                logger.debug(f"[EXTRACT] Skipping malformed JSON-LD: {e}")
                continue

            body = _find_article_body(data)
            if not body:
                continue
            if "<" in body:
                body = BeautifulSoup(body, "html.parser").get_text("\n")
            text = clean_text(body)
            if len(text) > self.min_length:
                return text, "json-ld"
        return "", ""

    def _from_selectors(self, soup: BeautifulSoup) -> Tuple[str, str]:
        for selector in CONTENT_SELECTORS:
            for element in soup.select(selector):
                if self._is_excluded(element):
                    continue
                text = clean_text(self._render(element))
                if len(text) > self.selector_min_length:
                    return text, f"selector:{selector}"
        return "", ""

    def _from_largest_block(self, soup: BeautifulSoup) -> Tuple[str, str]:
        root = soup.body or soup
        blocks: List[str] = []
        body_text = self._render(root, blocks)
        # The root itself is always the biggest block; rank descendants only
        if blocks and blocks[-1] == body_text:
            blocks.pop()

        candidates = [clean_text(b) for b in blocks]
        candidates = [c for c in candidates if len(c) > self.block_min_length]
        if candidates:
            return max(candidates, key=len), "largest-block"
        return clean_text(body_text), "body"

    def _meta_description(self, soup: BeautifulSoup) -> str:
        for meta in soup.find_all("meta"):
            node = classify(meta.name, meta.attrs)
            if node.kind is NodeKind.META_DESCRIPTION and node.text:
                return node.text
        return ""

    # ========================================================================
    # TREE WALK
    # ========================================================================

    @staticmethod
    def _node_class(tag: Tag) -> NodeClass:
        return classify(tag.name, tag.attrs)

    def _is_excluded(self, element: Tag) -> bool:
        """True if the element or any ancestor is excluded (sidebar, related, ...)."""
        if self._node_class(element).kind is NodeKind.EXCLUDE:
            return True
        return any(self._node_class(parent).kind is NodeKind.EXCLUDE for parent in element.parents)

    def _render(self, node: Tag, blocks: Optional[List[str]] = None) -> str:
        """
        Collect readable text under node.

        Paragraph-level tags are set on their own line; inline content joins
        with single spaces. When blocks is given, every element whose text is
        longer than block_min_length is appended in post-order.

        Walks with an explicit stack, so nesting depth is unbounded.
        """
        # (tag, remaining children, collected parts)
        stack = [(node, iter(node.children), [])]
        while True:
            tag, children, parts = stack[-1]
            child = next(children, None)

            if child is None:
                stack.pop()
                text = _join(parts)
                if blocks is not None and len(text) > self.block_min_length:
                    blocks.append(text)
                if not stack:
                    return text
                if text:
                    parent_parts = stack[-1][2]
                    if tag.name in PARAGRAPH_TAGS:
                        parent_parts.append("\n" + text + "\n")
                    else:
                        parent_parts.append(text)
                continue

            if isinstance(child, Tag):
                if self._node_class(child).kind is not NodeKind.EXCLUDE:
                    stack.append((child, iter(child.children), []))
            elif isinstance(child, NavigableString) and not isinstance(child, PreformattedString):
                text = _text_node(child)
                if text:
                    parts.append(text)


def _text_node(node: NavigableString) -> str:
    text = " ".join(str(node).split())
    if len(text) <= 1:
        return ""
    if is_share_affordance(text):
        return ""
    return text


def _join(parts: List[str]) -> str:
    joined = " ".join(parts)
    joined = re.sub(r"[ \t]*\n[ \t\n]*", "\n", joined)
    return joined.strip()


def _find_article_body(data: Any) -> Optional[str]:
    """Search decoded JSON-LD for articleBody or an Article node's text."""
    if isinstance(data, list):
        for item in data:
            found = _find_article_body(item)
            if found:
                return found
        return None

    if not isinstance(data, dict):
        return None

    body = data.get("articleBody")
    if isinstance(body, str) and body.strip():
        return body

    types = data.get("@type")
    if isinstance(types, str):
        types = [types]
    if isinstance(types, list) and any(t in ARTICLE_TYPES for t in types):
        text = data.get("text")
        if isinstance(text, str) and text.strip():
            return text

    for key in ("@graph", "mainEntity", "mainEntityOfPage"):
        found = _find_article_body(data.get(key))
        if found:
            return found
    return None
