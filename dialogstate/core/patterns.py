"""Table-driven pattern scoring.

Every lexical signal the analyzers rely on (intent cues, correction tiers,
implicit references, hedging markers, topic keywords, polarity pairs) is data
held in a :class:`PatternBundle`. The analyzers only ever call the generic
scorers defined here, so a deployment can swap the tables without touching
control flow.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from loguru import logger


@dataclass(frozen=True)
class PatternRule:
    """
    A single weighted regular expression belonging to a category.
    """

    pattern: str
    category: str
    weight: float = 1.0
    label: str | None = None
    confidence: float | None = None

    def compiled(self) -> re.Pattern[str]:
        """
        Return the compiled, case-insensitive expression.

        Returns:
            re.Pattern[str]: The compiled pattern.
        """
        return _compile(self.pattern)

    def search(self, text: str) -> re.Match[str] | None:
        """
        Search the text for this rule.

        Args:
            text (str): The text to search.

        Returns:
            re.Match[str] | None: The first match, if any.
        """
        return self.compiled().search(text)


_PATTERN_CACHE: dict[str, re.Pattern[str]] = {}


def _compile(pattern: str) -> re.Pattern[str]:
    compiled = _PATTERN_CACHE.get(pattern)
    if compiled is None:
        compiled = re.compile(pattern, flags=re.IGNORECASE)
        _PATTERN_CACHE[pattern] = compiled
    return compiled


@dataclass(frozen=True)
class PatternTable:
    """
    Versioned list of rules consumed by a generic scorer.
    """

    name: str
    version: str
    rules: tuple[PatternRule, ...] = ()

    @property
    def categories(self) -> list[str]:
        """
        Categories in first-seen order.

        Returns:
            list[str]: The distinct rule categories.
        """
        seen: dict[str, None] = {}
        for rule in self.rules:
            seen.setdefault(rule.category, None)
        return list(seen)

    def rules_for(self, category: str) -> list[PatternRule]:
        """
        Return the rules of one category, in table order.

        Args:
            category (str): The category to select.

        Returns:
            list[PatternRule]: Matching rules.
        """
        return [rule for rule in self.rules if rule.category == category]

    def score(self, text: str) -> dict[str, float]:
        """
        Sum the weights of matching rules per category.

        Args:
            text (str): The text to score.

        Returns:
            dict[str, float]: Score per category; categories without a match score 0.
        """
        scores = {category: 0.0 for category in self.categories}
        for rule in self.rules:
            if rule.search(text):
                scores[rule.category] += rule.weight
        return scores

    def matches(self, text: str, category: str | None = None) -> bool:
        """
        Return True if any rule (optionally limited to a category) matches.

        Args:
            text (str): The text to search.
            category (str | None, optional): Restrict to this category. Defaults to None.

        Returns:
            bool: Whether a rule matched.
        """
        rules = self.rules if category is None else self.rules_for(category)
        return any(rule.search(text) for rule in rules)

    def matching_rules(self, text: str) -> list[PatternRule]:
        """
        Return every rule that matches, in table order.

        Args:
            text (str): The text to search.

        Returns:
            list[PatternRule]: The matching rules.
        """
        return [rule for rule in self.rules if rule.search(text)]

    def first_match(self, text: str) -> PatternRule | None:
        """
        Return the first matching rule in table order.

        Args:
            text (str): The text to search.

        Returns:
            PatternRule | None: The first match, or None.
        """
        for rule in self.rules:
            if rule.search(text):
                return rule
        return None

    def matched_texts(self, text: str) -> list[str]:
        """
        Return the matched fragment of every matching rule.

        Args:
            text (str): The text to search.

        Returns:
            list[str]: Matched fragments, in rule order.
        """
        fragments: list[str] = []
        for rule in self.rules:
            match = rule.search(text)
            if match:
                fragments.append(match.group(0))
        return fragments

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "rules": [
                {
                    "pattern": r.pattern,
                    "category": r.category,
                    "weight": r.weight,
                    "label": r.label,
                    "confidence": r.confidence,
                }
                for r in self.rules
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PatternTable:
        rules = tuple(
            PatternRule(
                pattern=str(r["pattern"]),
                category=str(r["category"]),
                weight=float(r.get("weight", 1.0)),
                label=r.get("label"),
                confidence=(
                    float(r["confidence"]) if r.get("confidence") is not None else None
                ),
            )
            for r in data.get("rules", [])
        )
        return cls(
            name=str(data.get("name", "")),
            version=str(data.get("version", "0")),
            rules=rules,
        )


@dataclass(frozen=True)
class KeywordTable:
    """
    Topic keywords plus general domain keywords.

    ``match_mode`` is ``"prefix"`` for space-delimited scripts (a keyword must
    start at a word boundary, so ``card`` matches ``cards`` but not ``discard``)
    or ``"substring"`` for scripts that attach particles to words.
    """

    topics: dict[str, tuple[str, ...]] = field(default_factory=dict)
    general: tuple[str, ...] = ()
    match_mode: str = "prefix"

    def contains(self, text: str, keyword: str) -> bool:
        """
        Check whether a keyword occurs in the text.

        Args:
            text (str): The text to search.
            keyword (str): The keyword.

        Returns:
            bool: True if present under the table's match mode.
        """
        if self.match_mode == "substring":
            return keyword.lower() in text.lower()
        return _compile(rf"(?<!\w){re.escape(keyword)}").search(text) is not None

    def hits(self, text: str, keywords: Iterable[str]) -> list[str]:
        """
        Return the keywords present in the text, deduplicated, in keyword order.

        Args:
            text (str): The text to search.
            keywords (Iterable[str]): Candidate keywords.

        Returns:
            list[str]: The keywords found.
        """
        found: dict[str, None] = {}
        for kw in keywords:
            if kw not in found and self.contains(text, kw):
                found[kw] = None
        return list(found)

    @property
    def all_keywords(self) -> list[str]:
        """
        Topic names, topic keywords and general keywords, deduplicated.

        Returns:
            list[str]: Every keyword known to the table.
        """
        words: dict[str, None] = {}
        for topic, kws in self.topics.items():
            words.setdefault(topic, None)
            for kw in kws:
                words.setdefault(kw, None)
        for kw in self.general:
            words.setdefault(kw, None)
        return list(words)

    def extract(self, text: str) -> list[str]:
        """
        Extract every known keyword present in the text.

        Args:
            text (str): The text to search.

        Returns:
            list[str]: The keywords found.
        """
        return self.hits(text, self.all_keywords)

    def detect_topic(self, text: str) -> str | None:
        """
        Return the first topic whose keywords or name appear in the text.

        Args:
            text (str): The text to search.

        Returns:
            str | None: The topic label, or None when nothing matched.
        """
        for topic, kws in self.topics.items():
            if self.hits(text, kws):
                return topic
        for topic in self.topics:
            if self.contains(text, topic):
                return topic
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "topics": {k: list(v) for k, v in self.topics.items()},
            "general": list(self.general),
            "match_mode": self.match_mode,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeywordTable:
        return cls(
            topics={
                str(k): tuple(str(x) for x in v)
                for k, v in (data.get("topics") or {}).items()
            },
            general=tuple(str(x) for x in data.get("general", [])),
            match_mode=str(data.get("match_mode", "prefix")),
        )


@dataclass(frozen=True)
class ContradictionPair:
    """
    Polarity-opposite phrase lists, e.g. possible / impossible.
    """

    positive: tuple[str, ...]
    negative: tuple[str, ...]
    match_mode: str = "prefix"

    def _pattern(self, phrase: str) -> re.Pattern[str]:
        if self.match_mode == "substring":
            return _compile(re.escape(phrase))
        return _compile(rf"(?<!\w){re.escape(phrase)}(?!\w)")

    def polarity(self, text: str) -> tuple[bool, bool]:
        """
        Report which sides of the pair the text asserts.

        Negative phrases are removed before positive ones are searched, so a
        negated form never counts as the positive one.

        Args:
            text (str): The text to inspect.

        Returns:
            tuple[bool, bool]: (asserts positive, asserts negative).
        """
        remainder = text
        has_negative = False
        for phrase in sorted(self.negative, key=len, reverse=True):
            pattern = self._pattern(phrase)
            if pattern.search(remainder):
                has_negative = True
                remainder = pattern.sub(" ", remainder)
        has_positive = any(self._pattern(p).search(remainder) for p in self.positive)
        return has_positive, has_negative

    def contradicts(self, first: str, second: str) -> bool:
        """
        Return True if the two texts take opposite sides of this pair.

        Args:
            first (str): One answer.
            second (str): Another answer.

        Returns:
            bool: Whether they contradict each other.
        """
        pos1, neg1 = self.polarity(first)
        pos2, neg2 = self.polarity(second)
        return (pos1 and neg2) or (neg1 and pos2)


@dataclass(frozen=True)
class PatternBundle:
    """
    Every lexical table used by one deployment.
    """

    locale: str
    version: str
    intent: PatternTable
    correction_intensity: PatternTable
    implicit_reference: PatternTable
    user_correction: PatternTable
    low_confidence: PatternTable
    keywords: KeywordTable
    contradictions: tuple[ContradictionPair, ...]
    apologies: dict[str, tuple[str, ...]]
    messages: dict[str, str] = field(default_factory=dict)
    recovery_actions: dict[str, tuple[str, ...]] = field(default_factory=dict)
    general_topic: str = "general"
    complexity: PatternTable = field(
        default_factory=lambda: PatternTable(name="complexity", version="0")
    )

    def has_contradiction(self, first: str, second: str) -> bool:
        """
        Return True if any polarity pair is split across the two texts.

        Args:
            first (str): One answer.
            second (str): Another answer.

        Returns:
            bool: Whether the answers contradict each other.
        """
        return any(pair.contradicts(first, second) for pair in self.contradictions)

    def message(self, key: str) -> str:
        return self.messages.get(key, key)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize the bundle to the JSON shape accepted by :meth:`from_dict`.

        Returns:
            dict[str, Any]: Plain data.
        """
        return {
            "locale": self.locale,
            "version": self.version,
            "intent": self.intent.to_dict(),
            "correction_intensity": self.correction_intensity.to_dict(),
            "implicit_reference": self.implicit_reference.to_dict(),
            "user_correction": self.user_correction.to_dict(),
            "low_confidence": self.low_confidence.to_dict(),
            "keywords": self.keywords.to_dict(),
            "contradictions": [
                {
                    "positive": list(p.positive),
                    "negative": list(p.negative),
                    "match_mode": p.match_mode,
                }
                for p in self.contradictions
            ],
            "apologies": {k: list(v) for k, v in self.apologies.items()},
            "messages": dict(self.messages),
            "recovery_actions": {k: list(v) for k, v in self.recovery_actions.items()},
            "general_topic": self.general_topic,
            "complexity": self.complexity.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PatternBundle:
        """
        Build a bundle from plain data.

        Args:
            data (dict[str, Any]): Data in the shape produced by :meth:`to_dict`.

        Returns:
            PatternBundle: The bundle.

        Raises:
            ValueError: If a required table is missing.
        """
        required = (
            "intent",
            "correction_intensity",
            "implicit_reference",
            "user_correction",
            "low_confidence",
            "keywords",
        )
        missing = [key for key in required if key not in data]
        if missing:
            logger.error("ValueError: Pattern bundle is missing tables: {}", missing)
            raise ValueError(f"Pattern bundle is missing tables: {', '.join(missing)}")

        return cls(
            locale=str(data.get("locale", "custom")),
            version=str(data.get("version", "0")),
            intent=PatternTable.from_dict(data["intent"]),
            correction_intensity=PatternTable.from_dict(data["correction_intensity"]),
            implicit_reference=PatternTable.from_dict(data["implicit_reference"]),
            user_correction=PatternTable.from_dict(data["user_correction"]),
            low_confidence=PatternTable.from_dict(data["low_confidence"]),
            keywords=KeywordTable.from_dict(data["keywords"]),
            contradictions=tuple(
                ContradictionPair(
                    positive=tuple(p.get("positive", [])),
                    negative=tuple(p.get("negative", [])),
                    match_mode=str(p.get("match_mode", "prefix")),
                )
                for p in data.get("contradictions", [])
            ),
            apologies={
                str(k): tuple(v) for k, v in (data.get("apologies") or {}).items()
            },
            messages={str(k): str(v) for k, v in (data.get("messages") or {}).items()},
            recovery_actions={
                str(k): tuple(v)
                for k, v in (data.get("recovery_actions") or {}).items()
            },
            general_topic=str(data.get("general_topic", "general")),
            complexity=PatternTable.from_dict(
                data.get("complexity") or {"name": "complexity"}
            ),
        )


def load_pattern_bundle(
    locale: str | None = None, path: str | Path | None = None
) -> PatternBundle:
    """
    Load a built-in bundle by locale, or a custom bundle from a JSON file.

    Args:
        locale (str | None, optional): Built-in locale ("en" or "ko"). Defaults to "en".
        path (str | Path | None, optional): JSON file overriding the built-in tables. Defaults to None.

    Returns:
        PatternBundle: The loaded bundle.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the locale is unknown or the file is malformed.
    """
    if path is not None:
        path = Path(path).expanduser()
        if not path.exists():
            logger.error("FileNotFoundError: Pattern table not found at {}", path)
            raise FileNotFoundError(f"Pattern table not found at {path}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.error("ValueError: Invalid pattern table {}: {}", path, e)
            raise ValueError(f"Invalid pattern table {path}: {e}") from e
        bundle = PatternBundle.from_dict(data)
        logger.info(
            "Loaded pattern bundle {} v{} from {}", bundle.locale, bundle.version, path
        )
        return bundle

    from dialogstate.core.tables import BUILTIN_BUNDLES

    key = (locale or "en").lower()
    factory = BUILTIN_BUNDLES.get(key)
    if factory is None:
        logger.error("ValueError: Unknown pattern locale: {}", key)
        raise ValueError(f"Unknown pattern locale: {key}")
    return factory()
