"""English pattern tables (default deployment)."""

from dialogstate.core.patterns import (
    ContradictionPair,
    KeywordTable,
    PatternBundle,
    PatternRule,
    PatternTable,
)

VERSION = "2024.12.1"

INTENT = PatternTable(
    name="intent",
    version=VERSION,
    rules=(
        PatternRule(r"\b(wrong|incorrect|mistaken|a mistake|inaccurate)\b", "correction"),
        PatternRule(
            r"\b(isn't (it|that)|that's not|that is not|not true|that's different)\b",
            "correction",
        ),
        PatternRule(
            r"\b(are you sure|is that (right|correct|true))\b|\breally\?", "correction"
        ),
        PatternRule(r"\bso (it|that|you) (was|were) (wrong|incorrect|mistaken)\b", "correction"),
        PatternRule(
            r"\b(actually|in fact|to be precise|the correct answer is)\b", "correction"
        ),
        PatternRule(
            r"\bwhat do you mean\b|\bwhat does (that|it) mean\b|\bmeaning of\b",
            "clarification",
        ),
        PatternRule(
            r"\b(more detail|in detail|more specific|specifically|elaborate)\b",
            "clarification",
        ),
        PatternRule(
            r"\b(explain (it |that )?again|say (it|that) again|rephrase)\b",
            "clarification",
        ),
        PatternRule(
            r"\b(don't understand|do not understand|confused|confusing|unclear)\b",
            "clarification",
        ),
        PatternRule(r"^\s*(so|then|but|and)\b|\b(in that case|if so)\b", "followup"),
        PatternRule(r"\b(also|additionally|in addition|besides|another)\b", "followup"),
        PatternRule(r"\b(next|after that|what about|how about)\b", "followup"),
        PatternRule(r"\b(related to|similarly|likewise|same for)\b", "followup"),
        PatternRule(r"\b(how|why|when|where|who|what)\b", "question"),
        PatternRule(r"\b(rules?|effects?|abilit(y|ies)|methods?)\b", "question"),
        PatternRule(
            r"\b(can i|can you|is it possible|am i allowed|allowed to)\b", "question"
        ),
        PatternRule(r"\b(how many|how much|how often)\b", "question"),
    ),
)

CORRECTION_INTENSITY = PatternTable(
    name="correction_intensity",
    version=VERSION,
    rules=(
        PatternRule(
            r"\b(completely|totally|absolutely|entirely|dead) (wrong|incorrect)\b"
            r"|\bnot at all\b|\b(makes no sense|nonsense)\b",
            "strong",
        ),
        PatternRule(
            r"\b(i think|seems like|seems|pretty sure|i believe) "
            r"(that's|that is|it's|it is|you're|you are) (wrong|incorrect|mistaken|not right)\b"
            r"|\b(doesn't|does not) (seem|sound) right\b"
            r"|\bnot sure (that's|that is) (right|correct)\b",
            "medium",
        ),
        PatternRule(
            r"\b(is that (right|correct|true)|are you sure)\b|\breally\?"
            r"|\bisn't (that|it) wrong\b",
            "weak",
        ),
    ),
)

IMPLICIT_REFERENCE = PatternTable(
    name="implicit_reference",
    version=VERSION,
    rules=(
        PatternRule(r"\bthat( one)?\b|\bthose\b", "reference"),
        PatternRule(r"\b(earlier|before|previously|above)\b", "reference"),
        PatternRule(r"\b(just now|a moment ago|a minute ago)\b", "reference"),
        PatternRule(r"\b(your|the|that) (answer|explanation|reply|response)\b", "reference"),
    ),
)

USER_CORRECTION = PatternTable(
    name="user_correction",
    version=VERSION,
    rules=(
        PatternRule(
            r"\b(completely|totally|absolutely|entirely|dead) (wrong|incorrect)\b"
            r"|\bnot at all\b|\b(makes no sense|nonsense)\b",
            "strong",
            confidence=0.9,
        ),
        PatternRule(
            r"\b(wrong|incorrect|mistaken)\b|\bthat's not (right|true|it)\b|\bno,? it's not\b"
            r"|\bnot right\b|\b(doesn't|does not) (seem|sound) right\b"
            r"|\bnot sure (that's|that is|it's|it is) (right|correct)\b",
            "medium",
            confidence=0.8,
        ),
        PatternRule(
            r"\b(is that (right|correct|true)|are you sure)\b|\breally\?",
            "weak",
            confidence=0.6,
        ),
        PatternRule(
            r"\b(actually|in fact|to be precise|the (correct|right) answer is)\b",
            "correction",
            confidence=0.85,
        ),
        PatternRule(
            r"\b(think again|reconsider|double[- ]check|check again|look again)\b",
            "review",
            confidence=0.7,
        ),
        PatternRule(
            r"\b(doubtful|not convinced|i doubt|sounds off|questionable|not so sure)\b",
            "doubt",
            confidence=0.65,
        ),
    ),
)

LOW_CONFIDENCE = PatternTable(
    name="low_confidence",
    version=VERSION,
    rules=(
        PatternRule(
            r"\b(probably|maybe|perhaps|likely|presumably|i guess|it seems)\b", "hedge"
        ),
        PatternRule(r"\b(not sure|not certain|unclear|ambiguous)\b", "hedge"),
        PatternRule(r"\b(generally|usually|typically|in most cases)\b", "hedge"),
    ),
)

KEYWORDS = KeywordTable(
    topics={
        "ark nova": (
            "rhino",
            "zoo",
            "conservation",
            "association",
            "sponsor",
            "animal",
            "enclosure",
        ),
        "wingspan": ("bird", "egg", "food", "habitat", "migration", "nest", "feather"),
        "terraforming mars": (
            "mars",
            "plant",
            "temperature",
            "oxygen",
            "ocean",
            "city",
            "greenery",
        ),
        "gloomhaven": ("adventure", "monster", "scenario", "character", "experience"),
        "spirit island": ("spirit", "invader", "fear", "energy", "element", "growth"),
    },
    general=(
        "card",
        "action",
        "resource",
        "score",
        "round",
        "turn",
        "rule",
        "effect",
        "ability",
        "combo",
        "strategy",
        "method",
    ),
    match_mode="prefix",
)

CONTRADICTIONS = (
    ContradictionPair(
        positive=("possible", "allowed", "permitted", "can be"),
        negative=(
            "impossible",
            "not possible",
            "not allowed",
            "not permitted",
            "cannot",
            "can't",
            "forbidden",
        ),
    ),
    ContradictionPair(
        positive=("exists", "there is", "there are", "included", "includes"),
        negative=(
            "does not exist",
            "doesn't exist",
            "there is no",
            "there are no",
            "not included",
            "no such",
        ),
    ),
    ContradictionPair(
        positive=("correct", "valid", "true"),
        negative=("incorrect", "invalid", "not correct", "not valid", "not true", "false"),
    ),
)

_COMPLEXITY_WEIGHTS = {"high": 15.0, "medium": 10.0, "low": 5.0}

COMPLEXITY = PatternTable(
    name="complexity",
    version=VERSION,
    rules=tuple(
        PatternRule(rf"\b{word}", level, weight=_COMPLEXITY_WEIGHTS[level])
        for level, words in (
            (
                "high",
                (
                    "specifically",
                    "exactly",
                    "how",
                    "why",
                    "when",
                    "in detail",
                    "exception",
                    "special case",
                ),
            ),
            (
                "medium",
                ("card", "effect", "abilit", "combo", "strateg", "situation", "rule"),
            ),
            ("low", ("method", "possible", "not allowed", "is it right", "how many")),
        )
        for word in words
    ),
)

APOLOGIES = {
    "strong": (
        "I'm sorry, the information I gave you was completely wrong.",
        "I apologize, my previous answer was incorrect.",
        "My apologies for the confusion the wrong information caused.",
    ),
    "medium": (
        "Sorry, I got that wrong.",
        "My previous answer wasn't accurate, sorry about that.",
        "I'm sorry for giving you incorrect information.",
    ),
    "weak": (
        "I may not have been certain about that answer.",
        "There may be an error in my previous answer.",
        "Let me look for more accurate information.",
    ),
    "correction": (
        "Thank you for the correction.",
        "Thanks for pointing out the right information.",
        "Thank you for catching my mistake.",
    ),
}

MESSAGES = {
    "research_notice": "Let me look up the correct information again. One moment, please.",
    "consistency_error": "This answer contradicts an earlier one and should be reviewed.",
    "low_confidence": "This answer has low confidence; further verification is recommended.",
    "recommend_more_research": "Back answers with research more often.",
    "recommend_consistency_checks": "Strengthen answer consistency checks.",
    "recommend_recovery_improvement": "Improve the error recovery mechanism.",
}

RECOVERY_ACTIONS = {
    "general_verification": ("run web research", "regenerate the answer"),
    "high_priority_research": (
        "research immediately",
        "cross-check multiple sources",
        "expert verification",
    ),
    "enhanced_verification": (
        "run web research",
        "compare with previous answers",
        "assess confidence",
    ),
    "standard_correction": ("basic verification", "revise the answer"),
}


def bundle() -> PatternBundle:
    return PatternBundle(
        locale="en",
        version=VERSION,
        intent=INTENT,
        correction_intensity=CORRECTION_INTENSITY,
        implicit_reference=IMPLICIT_REFERENCE,
        user_correction=USER_CORRECTION,
        low_confidence=LOW_CONFIDENCE,
        keywords=KEYWORDS,
        contradictions=CONTRADICTIONS,
        apologies=APOLOGIES,
        messages=MESSAGES,
        recovery_actions=RECOVERY_ACTIONS,
        general_topic="general",
        complexity=COMPLEXITY,
    )
