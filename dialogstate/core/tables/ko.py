"""Korean pattern tables."""

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
        PatternRule(r"틀린거|잘못된거|틀렸|잘못했", "correction"),
        PatternRule(r"아닌데|아니야|아니지|다른데", "correction"),
        PatternRule(r"맞나|확실해|정말", "correction"),
        PatternRule(r"그럼.*틀린|그럼.*잘못", "correction"),
        PatternRule(r"사실은|실제로는|정확히는", "correction"),
        PatternRule(r"무슨 뜻|무슨 의미|뭔 말|어떤 의미", "clarification"),
        PatternRule(r"좀 더|더 자세히|구체적으로", "clarification"),
        PatternRule(r"다시 설명|다시 말해|재설명", "clarification"),
        PatternRule(r"이해가 안|모르겠|헷갈려", "clarification"),
        PatternRule(r"그럼|그러면|그런데|그래서", "followup"),
        PatternRule(r"또|추가로|그리고|더불어", "followup"),
        PatternRule(r"다음|이어서|계속해서", "followup"),
        PatternRule(r"관련해서|연관해서|비슷하게", "followup"),
        PatternRule(r"어떻게|왜|언제|어디서|누가|무엇을", "question"),
        PatternRule(r"방법|규칙|효과|능력", "question"),
        PatternRule(r"가능한가|할 수 있나|되나", "question"),
        PatternRule(r"몇 개|몇 명|얼마나", "question"),
    ),
)

CORRECTION_INTENSITY = PatternTable(
    name="correction_intensity",
    version=VERSION,
    rules=(
        PatternRule(r"완전히 틀렸|전혀 아니야|말도 안돼", "strong"),
        PatternRule(r"틀린거 같은데|아닌 것 같은데|확실하지 않은데", "medium"),
        PatternRule(r"맞나|확실해|정말", "weak"),
    ),
)

IMPLICIT_REFERENCE = PatternTable(
    name="implicit_reference",
    version=VERSION,
    rules=(
        PatternRule(r"그거|그것|그게|그런거", "reference"),
        PatternRule(r"위에서|앞에서|이전에|아까", "reference"),
        PatternRule(r"방금|금방|조금 전", "reference"),
        PatternRule(r"그 답변|그 설명|그 내용", "reference"),
    ),
)

USER_CORRECTION = PatternTable(
    name="user_correction",
    version=VERSION,
    rules=(
        PatternRule(r"완전히 틀렸|전혀 아니야|말도 안돼|완전 잘못", "strong", confidence=0.9),
        PatternRule(
            r"틀렸어|잘못됐어|아니야|틀린거|아닌 것 같은데|확실하지 않은데",
            "medium",
            confidence=0.8,
        ),
        PatternRule(r"맞나|확실해|정말|그래\?", "weak", confidence=0.6),
        PatternRule(r"사실은|실제로는|정확히는|올바른 답은", "correction", confidence=0.85),
        PatternRule(r"다시 생각해|재검토|다시 확인", "review", confidence=0.7),
        PatternRule(r"의심스러운데|확신이 안서|애매한데", "doubt", confidence=0.65),
    ),
)

LOW_CONFIDENCE = PatternTable(
    name="low_confidence",
    version=VERSION,
    rules=(
        PatternRule(r"아마도|아마|추정|예상|것 같|듯", "hedge"),
        PatternRule(r"확실하지 않|정확하지 않|애매", "hedge"),
        PatternRule(r"일반적으로|보통|대부분", "hedge"),
    ),
)

KEYWORDS = KeywordTable(
    topics={
        "아크노바": ("코뿔소", "동물원", "보존", "협회", "후원자", "동물", "인클로저"),
        "윙스팬": ("새", "알", "먹이", "서식지", "이주", "둥지", "깃털"),
        "테라포밍 마스": ("화성", "식물", "온도", "산소", "해양", "도시", "녹지"),
        "글룸헤이븐": ("모험", "몬스터", "시나리오", "캐릭터", "경험치"),
        "스피릿 아일랜드": ("영혼", "침입자", "공포", "에너지", "원소", "성장"),
    },
    general=(
        "카드",
        "액션",
        "자원",
        "점수",
        "라운드",
        "턴",
        "규칙",
        "효과",
        "능력",
        "조합",
        "전략",
        "방법",
    ),
    match_mode="substring",
)

CONTRADICTIONS = (
    ContradictionPair(
        positive=("가능", "할 수 있", "됩니다", "허용", "유효"),
        negative=("불가능", "할 수 없", "안됩니다", "금지", "무효"),
        match_mode="substring",
    ),
    ContradictionPair(
        positive=("있습니다", "존재합니다", "포함됩니다"),
        negative=("없습니다", "존재하지 않습니다", "포함되지 않습니다"),
        match_mode="substring",
    ),
    ContradictionPair(
        positive=("맞습니다", "정확"),
        negative=("틀렸습니다", "부정확"),
        match_mode="substring",
    ),
)

_COMPLEXITY_WEIGHTS = {"high": 15.0, "medium": 10.0, "low": 5.0}

COMPLEXITY = PatternTable(
    name="complexity",
    version=VERSION,
    rules=tuple(
        PatternRule(word, level, weight=_COMPLEXITY_WEIGHTS[level])
        for level, words in (
            (
                "high",
                ("구체적으로", "정확히", "어떻게", "왜", "언제", "상세히", "예외", "특수상황"),
            ),
            ("medium", ("카드", "효과", "능력", "조합", "전략", "상황", "규칙")),
            ("low", ("방법", "가능", "안됨", "맞나", "몇개")),
        )
        for word in words
    ),
)

APOLOGIES = {
    "strong": (
        "죄송합니다. 제가 완전히 잘못된 정보를 드렸네요.",
        "정말 죄송합니다. 제 답변이 틀렸습니다.",
        "사과드립니다. 잘못된 정보로 혼란을 드려서 죄송합니다.",
    ),
    "medium": (
        "죄송합니다. 제가 틀렸습니다.",
        "제 답변이 정확하지 않았네요. 죄송합니다.",
        "잘못된 정보를 드려서 죄송합니다.",
    ),
    "weak": (
        "확실하지 않은 답변을 드린 것 같네요.",
        "제 답변에 오류가 있을 수 있습니다.",
        "더 정확한 정보를 찾아보겠습니다.",
    ),
    "correction": (
        "정정해주셔서 감사합니다.",
        "올바른 정보를 알려주셔서 고맙습니다.",
        "제 실수를 지적해주셔서 감사합니다.",
    ),
}

MESSAGES = {
    "research_notice": "정확한 정보를 다시 찾아보겠습니다. 잠시만 기다려주세요.",
    "consistency_error": "이전 답변과 모순되는 내용이 있습니다. 재검토가 필요합니다.",
    "low_confidence": "답변의 신뢰도가 낮습니다. 추가 검증을 권장합니다.",
    "recommend_more_research": "웹 리서치 빈도 증가 권장",
    "recommend_consistency_checks": "답변 일관성 검증 강화 필요",
    "recommend_recovery_improvement": "오류 복구 메커니즘 개선 필요",
}

RECOVERY_ACTIONS = {
    "general_verification": ("웹 리서치 수행", "답변 재생성"),
    "high_priority_research": ("즉시 웹 리서치", "다중 소스 확인", "전문가 검증"),
    "enhanced_verification": ("웹 리서치 수행", "이전 답변과 비교", "신뢰도 평가"),
    "standard_correction": ("기본 검증", "답변 수정"),
}


def bundle() -> PatternBundle:
    return PatternBundle(
        locale="ko",
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
        general_topic="일반",
        complexity=COMPLEXITY,
    )
