import re

"""
テンプレート・事例の検索で共有する字句処理。
中国語はスペースで区切られないため、CJKの連続部分から2文字ずつのバイグラムも作る。
"""

_NON_WORD = re.compile(r"[^\u4e00-\u9fa5a-z0-9\s]")
_SPACES = re.compile(r"\s+")
_CJK = re.compile(r"[\u4e00-\u9fa5]")

COMPLEXITY_INDICATORS = (
    "条件", "分支", "if", "else", "判断",
    "循环", "迭代", "loop", "遍历",
    "知识库", "rag", "检索",
    "分类", "路由", "router",
    "并行", "parallel",
    "代码", "code", "python", "javascript",
    "api", "http", "请求",
)


def normalize_text(text: str) -> str:
    text = _NON_WORD.sub(" ", text.lower())
    return _SPACES.sub(" ", text).strip()


def tokenize(text: str) -> list[str]:
    tokens = [t for t in _SPACES.split(text) if t]
    result = list(tokens)
    for token in tokens:
        if len(token) > 1 and _CJK.search(token):
            result.extend(token[i:i + 2] for i in range(len(token) - 1))
    return list(dict.fromkeys(result))


def estimate_query_complexity(normalized_query: str) -> int:
    complexity = 1 + sum(1 for indicator in COMPLEXITY_INDICATORS if indicator in normalized_query)
    return min(complexity, 5)
