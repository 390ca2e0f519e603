"""
Category Classifier
===================

Assigns a category to an article. In ``TRUST`` mode the feed's configured
category is used as-is; in ``AUTO`` mode an ordered keyword rule table is
tested against the lower-cased title and tag-stripped content, and the
first matching rule wins.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Pattern, Sequence

from bs4 import BeautifulSoup

from ..config.settings import ClassificationSettings

DEFAULT_CATEGORY = "General"

# Order matters: earlier categories win over later ones
DEFAULT_CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "Football": [
        "football", "soccer", "premier league", "champions league", "la liga",
        "serie a", "bundesliga", "fifa", "uefa", "striker", "goalkeeper",
        "midfielder", "transfer window", "world cup", "afcon", "super eagles",
    ],
    "Entertainment": [
        "movie", "film", "celebrity", "music", "album", "concert", "actor",
        "actress", "nollywood", "hollywood", "box office", "grammy", "oscar",
        "netflix", "tv series", "reality show", "singer", "rapper",
    ],
    "Politics": [
        "election", "president", "senate", "governor", "parliament",
        "minister", "government", "campaign", "politics", "political",
        "lawmaker", "legislation", "policy", "vote", "democracy", "inec",
    ],
    "Sports": [
        "sport", "sports", "basketball", "nba", "tennis", "olympic", "athlete",
        "boxing", "cricket", "formula 1", "f1", "golf", "marathon", "ufc",
    ],
    "Lifestyle": [
        "lifestyle", "travel", "food", "recipe", "health", "wellness",
        "fitness", "relationship", "parenting", "wedding",
    ],
    "Fashion&Beauty": [
        "fashion", "beauty", "makeup", "style", "runway", "designer",
        "skincare", "cosmetic", "outfit", "hairstyle",
    ],
    "Technology": [
        "technology", "tech", "software", "smartphone", "iphone", "android",
        "artificial intelligence", "ai", "startup", "app", "cyber",
        "google", "microsoft", "apple", "gadget", "internet",
    ],
    "Business": [
        "business", "economy", "market", "stock", "investment", "bank",
        "finance", "inflation", "naira", "dollar", "trade", "company",
        "revenue", "profit", "oil price",
    ],
}


class ClassificationMode(str, Enum):
    """How categories are assigned."""
    TRUST = "trust"
    AUTO = "auto"


@dataclass(frozen=True)
class CategoryRule:
    """One row of the rule table."""
    category: str
    pattern: Pattern

    def matches(self, text: str) -> bool:
        return bool(self.pattern.search(text))


def compile_rules(keyword_table: Dict[str, Sequence[str]]) -> List[CategoryRule]:
    """Compile an ordered category -> keywords mapping into rules.

    Keywords match on word boundaries so that ``ai`` does not fire on
    ``said``.
    """
    rules = []
    for category, keywords in keyword_table.items():
        terms = sorted(
            {k.strip().lower() for k in keywords if k and k.strip()},
            key=len,
            reverse=True,
        )
        if not terms:
            continue
        alternation = "|".join(re.escape(term) for term in terms)
        rules.append(CategoryRule(category, re.compile(rf"\b(?:{alternation})\b")))
    return rules


class CategoryClassifier:
    """Pure, deterministic category assignment."""

    def __init__(
        self,
        mode: ClassificationMode = ClassificationMode.TRUST,
        rules: Optional[List[CategoryRule]] = None,
        default_category: str = DEFAULT_CATEGORY,
    ):
        self.mode = ClassificationMode(mode)
        self.rules = rules if rules is not None else compile_rules(DEFAULT_CATEGORY_KEYWORDS)
        self.default_category = default_category

    @classmethod
    def from_settings(cls, settings: ClassificationSettings) -> "CategoryClassifier":
        table = settings.keyword_rules or DEFAULT_CATEGORY_KEYWORDS
        return cls(
            mode=ClassificationMode(settings.mode.value),
            rules=compile_rules(table),
            default_category=settings.default_category,
        )

    def classify(
        self,
        title: str,
        content_html: str = "",
        feed_category: Optional[str] = None,
    ) -> str:
        """Category for one article; never empty."""
        if self.mode == ClassificationMode.TRUST:
            category = (feed_category or "").strip()
            return category or self.default_category

        return self.detect(title, content_html)

    def detect(self, title: str, content_html: str = "") -> str:
        """Keyword detection regardless of mode."""
        text = f"{title or ''} {self._strip_tags(content_html)}".lower()
        for rule in self.rules:
            if rule.matches(text):
                return rule.category
        return self.default_category

    @staticmethod
    def _strip_tags(html: str) -> str:
        if not html:
            return ""
        if "<" not in html:
            return html
        return BeautifulSoup(html, "html.parser").get_text(" ")
