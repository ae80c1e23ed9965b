import re
from typing import Optional

"""
LLMの応答テキストからYAML部分だけを取り出す処理。
"""

_FENCED_BLOCK = re.compile(r"```(?:yaml|yml)?\s*\n(.*?)\n```", re.DOTALL)
_LEADING_FENCE = re.compile(r"^```(?:yaml|yml)?\s*\n?")
_TRAILING_FENCE = re.compile(r"\n?```\s*$")
# DSLのトップレベルキーで始まる行
_DSL_START_LINE = re.compile(r"^(?:app|version|kind):", re.MULTILINE)
_YAML_LINE = re.compile(r"^(?:[a-z_-]+:|- |['\"])")
_PROSE_LINE = re.compile(r"^(?:Let me|Here|I |The |This |Note|Please|Feel free)", re.IGNORECASE)


def clean_yaml_response(text: str) -> str:
    """先頭の ```yaml / ``` と末尾の ``` を取り除く"""
    cleaned = text.strip()
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_FENCE.sub("", cleaned)
    return cleaned.strip()


def extract_yaml(text: str) -> Optional[str]:
    """
    応答からYAMLを探す。
    コードブロック → app:/version:/kind: で始まる行以降 → version: と workflow: を両方含む全文 の順に試し、
    見つからなければNoneを返す。
    """
    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        return fenced.group(1).strip()

    # app: だけを起点にすると前にある version: を落とすため、最初に現れたトップレベルキーから取る
    start = _DSL_START_LINE.search(text)
    if start:
        return _extract_until_prose(text[start.start():])

    if "version:" in text and "workflow:" in text:
        return text.strip()
    return None


def _extract_until_prose(text: str) -> str:
    lines = []
    for line in text.split("\n"):
        stripped = line.strip()
        is_yaml = (
            not stripped
            or line.startswith((" ", "\t"))
            or _YAML_LINE.match(stripped)
        )
        if not is_yaml and _PROSE_LINE.match(stripped):
            break
        lines.append(line)
    return "\n".join(lines).strip()
