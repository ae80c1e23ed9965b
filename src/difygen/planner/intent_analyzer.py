import math
import re
from typing import Optional
from difygen.planner.state import FeatureType, Intent, WorkflowFeature

"""
要求文からワークフローの意図（機能・複雑度・動作・領域・要求事項）をルールで抽出するモジュール。
要求事項を句読点で切り出すため、テンプレート検索とは違い記号は残して正規化する。
"""

# (機能, キーワード, 説明)
FEATURE_RULES: list[tuple[FeatureType, tuple[str, ...], str]] = [
    ("llm", ("回答", "生成", "对话", "聊天", "问答", "qa", "chat", "分析", "总结", "翻译", "写", "创作", "ai", "gpt"), "LLM 对话/生成"),
    ("rag", ("知识库", "检索", "文档", "rag", "向量", "搜索文档", "知识", "资料", "数据库查询", "文献"), "知识库检索"),
    ("classification", ("分类", "识别", "判断类型", "意图", "路由", "classify", "归类", "分辨", "区分"), "意图/问题分类"),
    ("conditional", ("条件", "如果", "否则", "if", "else", "分支", "判断", "选择", "根据"), "条件分支"),
    ("iteration", ("循环", "迭代", "遍历", "批量", "loop", "iterate", "逐个", "每个", "列表处理"), "循环迭代"),
    ("code", ("代码", "python", "javascript", "脚本", "计算", "处理", "转换", "格式化", "解析"), "代码执行"),
    ("api", ("api", "http", "接口", "请求", "webhook", "rest", "调用", "获取数据", "外部服务"), "API 调用"),
    ("agent", ("智能体", "agent", "工具", "自主", "规划", "多步骤", "自动执行"), "智能体"),
    ("multi-model", ("多模型", "并行", "对比", "多个ai", "多个llm", "同时", "比较结果"), "多模型并行"),
    ("streaming", ("流式", "streaming", "实时", "逐字", "打字效果"), "流式输出"),
]

OPTIONAL_INDICATORS = ("可选", "可以", "或者", "如果需要", "可能")
# 任意指示語とキーワードの距離（文字数）がこれ未満なら任意機能とみなす
OPTIONAL_DISTANCE = 10

COMPLEXITY_WEIGHTS: list[tuple[tuple[str, ...], int]] = [
    (("简单", "基础", "基本", "单一", "simple"), -1),
    (("条件", "分支", "if", "else"), 1),
    (("循环", "迭代", "批量"), 1),
    (("知识库", "rag", "检索"), 1),
    (("多个", "并行", "复杂", "高级"), 1),
    (("智能体", "agent", "自主"), 2),
]

ACTION_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"创建.*(问答|qa|对话)"), "问答"),
    (re.compile(r"创建.*翻译"), "翻译"),
    (re.compile(r"创建.*(摘要|总结|概括)"), "摘要"),
    (re.compile(r"创建.*(分类|识别)"), "分类"),
    (re.compile(r"创建.*分析"), "分析"),
    (re.compile(r"创建.*(生成|写|创作)"), "生成"),
    (re.compile(r"创建.*(检索|搜索)"), "检索"),
    (re.compile(r"创建.*处理"), "处理"),
]
DEFAULT_ACTION = "处理"

DOMAIN_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"知识库"), "知识库"),
    (re.compile(r"客服"), "客服"),
    (re.compile(r"文档"), "文档"),
    (re.compile(r"代码"), "代码"),
    (re.compile(r"数据"), "数据"),
    (re.compile(r"api|接口"), "API"),
]

REQUIREMENT_PATTERNS = [
    re.compile(rf"{marker}(.+?)(?:，|。|$)")
    for marker in ("需要", "要求", "必须", "支持", "能够")
]


def normalize_request(text: str) -> str:
    return re.sub(r"\s+", " ", text.lower()).strip()


def detect_features(text: str) -> list[WorkflowFeature]:
    features = []
    for feature_type, keywords, description in FEATURE_RULES:
        if any(keyword in text for keyword in keywords):
            features.append(WorkflowFeature(
                type=feature_type,
                description=description,
                required=not _is_optional(text, keywords),
            ))
    if not features:
        features.append(WorkflowFeature(type="llm", description="LLM 对话/生成", required=True))
    return features


def _is_optional(text: str, keywords: tuple[str, ...]) -> bool:
    # 最初の出現位置どうしで比較する
    for indicator in OPTIONAL_INDICATORS:
        indicator_pos = text.find(indicator)
        if indicator_pos == -1:
            continue
        for keyword in keywords:
            keyword_pos = text.find(keyword)
            if keyword_pos != -1 and abs(keyword_pos - indicator_pos) < OPTIONAL_DISTANCE:
                return True
    return False


def estimate_complexity(text: str, features: list[WorkflowFeature]) -> int:
    complexity = 1 + 0.5 * len(features)
    for keywords, weight in COMPLEXITY_WEIGHTS:
        if any(keyword in text for keyword in keywords):
            complexity += weight
    clamped = max(1.0, min(5.0, complexity))
    return int(math.floor(clamped + 0.5))


def extract_action_domain(text: str) -> tuple[str, Optional[str]]:
    action = next((a for pattern, a in ACTION_PATTERNS if pattern.search(text)), DEFAULT_ACTION)
    domain = next((d for pattern, d in DOMAIN_PATTERNS if pattern.search(text)), None)
    return action, domain


def extract_requirements(text: str) -> list[str]:
    requirements = []
    for pattern in REQUIREMENT_PATTERNS:
        for match in pattern.finditer(text):
            requirement = match.group(1).strip()
            if 2 < len(requirement) < 50:
                requirements.append(requirement)
    return list(dict.fromkeys(requirements))


def analyze_intent(text: str) -> Intent:
    normalized = normalize_request(text)
    features = detect_features(normalized)
    action, domain = extract_action_domain(normalized)
    return Intent(
        action=action,
        domain=domain,
        requirements=extract_requirements(normalized),
        features=features,
        complexity=estimate_complexity(normalized, features),
    )
