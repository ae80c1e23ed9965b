import re
from typing import Any, Iterator, NamedTuple
from pydantic import BaseModel
from difygen.dsl.schema import (
    AgentNodeData,
    AnswerNodeData,
    CodeNodeData,
    DocumentExtractorNodeData,
    EndNodeData,
    HttpRequestNodeData,
    IfElseNodeData,
    IterationNodeData,
    KnowledgeRetrievalNodeData,
    ListOperatorNodeData,
    LLMNodeData,
    LoopNodeData,
    ParameterExtractorNodeData,
    QuestionClassifierNodeData,
    StartNodeData,
    TemplateTransformNodeData,
    ToolNodeData,
    VariableAggregatorNodeData,
    VariableAssignerNodeData,
)

"""
ノードdataから変数参照を取り出す型付きビジター。
ノード型ごとに「参照を含みうるフィールド」をパスで宣言し、それ以外（コード本体など）は走査しない。
パスは "." 区切りで、"*" はリスト要素または辞書の値を表す。
"""

VAR_REF_PATTERN = re.compile(r"\{\{#([^.#}]+)\.([^#}]+)#\}\}")


class VariableReference(NamedTuple):
    node_id: str
    variable: str

    def __str__(self) -> str:
        return f"{{{{#{self.node_id}.{self.variable}#}}}}"

    @property
    def key(self) -> str:
        return f"{self.node_id}.{self.variable}"


class ReferenceFields(NamedTuple):
    texts: tuple[str, ...] = ()
    selectors: tuple[str, ...] = ()


REFERENCE_FIELDS: dict[type, ReferenceFields] = {
    StartNodeData: ReferenceFields(),
    EndNodeData: ReferenceFields(selectors=("outputs.*.value_selector",)),
    AnswerNodeData: ReferenceFields(texts=("answer",)),
    LLMNodeData: ReferenceFields(
        texts=("prompt_template.*.text",),
        selectors=("context.variable_selector", "vision.configs.variable_selector"),
    ),
    KnowledgeRetrievalNodeData: ReferenceFields(selectors=("query_variable_selector",)),
    QuestionClassifierNodeData: ReferenceFields(
        texts=("instruction",),
        selectors=("query_variable_selector",),
    ),
    IfElseNodeData: ReferenceFields(
        texts=("conditions.*.conditions.*.value",),
        selectors=("conditions.*.conditions.*.variable_selector",),
    ),
    # コード本体とテンプレート本体は参照として扱わない
    CodeNodeData: ReferenceFields(selectors=("variables.*.value_selector",)),
    TemplateTransformNodeData: ReferenceFields(selectors=("variables.*.value_selector",)),
    VariableAggregatorNodeData: ReferenceFields(
        selectors=("variables.*", "advanced_settings.groups.*.variables.*"),
    ),
    VariableAssignerNodeData: ReferenceFields(selectors=("variables.*.value_selector",)),
    IterationNodeData: ReferenceFields(selectors=("iterator_selector", "output_selector")),
    LoopNodeData: ReferenceFields(
        texts=("loop_condition.*.value",),
        selectors=("loop_condition.*.variable_selector",),
    ),
    ParameterExtractorNodeData: ReferenceFields(texts=("instruction",), selectors=("query",)),
    HttpRequestNodeData: ReferenceFields(
        texts=(
            "url",
            "headers",
            "headers.*.value",
            "params",
            "params.*.value",
            "body.data",
            "body.data.*.value",
            "authorization.config.api_key",
        ),
    ),
    ToolNodeData: ReferenceFields(
        texts=("tool_parameters.*.value",),
        selectors=("tool_parameters.*.variable_selector", "tool_parameters.*.value"),
    ),
    AgentNodeData: ReferenceFields(texts=("prompt_template.*.text",)),
    DocumentExtractorNodeData: ReferenceFields(selectors=("variable_selector",)),
    ListOperatorNodeData: ReferenceFields(selectors=("variable_selector",)),
}


class _Slot(NamedTuple):
    container: Any
    key: Any
    value: Any


def _children(obj: Any, part: str) -> Iterator[_Slot]:
    if obj is None:
        return
    if part == "*":
        if isinstance(obj, list):
            for index, item in enumerate(obj):
                yield _Slot(obj, index, item)
        elif isinstance(obj, dict):
            for key, item in obj.items():
                yield _Slot(obj, key, item)
        return
    if isinstance(obj, BaseModel):
        value = getattr(obj, part, None)
        if value is None and obj.model_extra:
            value = obj.model_extra.get(part)
        if value is not None:
            yield _Slot(obj, part, value)
    elif isinstance(obj, dict) and obj.get(part) is not None:
        yield _Slot(obj, part, obj[part])


def _resolve(root: Any, path: str) -> Iterator[_Slot]:
    slots = [_Slot(None, None, root)]
    for part in path.split("."):
        slots = [child for slot in slots for child in _children(slot.value, part)]
    return iter(slots)


def _is_selector(value: Any) -> bool:
    return isinstance(value, list) and len(value) >= 2 and all(isinstance(v, str) for v in value[:2])


def _assign(slot: _Slot, value: Any) -> None:
    if isinstance(slot.container, BaseModel):
        setattr(slot.container, slot.key, value)
    else:
        slot.container[slot.key] = value


def reference_fields_for(data: Any) -> ReferenceFields:
    return REFERENCE_FIELDS.get(type(data), ReferenceFields())


def extract_text_references(text: str) -> list[VariableReference]:
    return [VariableReference(m.group(1), m.group(2)) for m in VAR_REF_PATTERN.finditer(text)]


def extract_references(data: Any) -> list[VariableReference]:
    """ノードdataに含まれる変数参照を重複なしで返す（出現順）"""
    fields = reference_fields_for(data)
    found: dict[VariableReference, None] = {}
    for path in fields.texts:
        for slot in _resolve(data, path):
            if isinstance(slot.value, str):
                for ref in extract_text_references(slot.value):
                    found.setdefault(ref, None)
    for path in fields.selectors:
        for slot in _resolve(data, path):
            if _is_selector(slot.value):
                found.setdefault(VariableReference(slot.value[0], slot.value[1]), None)
    return list(found)


def rewrite_references(data: Any, id_map: dict[str, str]) -> None:
    """
    参照中のノードIDをid_mapに従って書き換える（dataをその場で更新）
    id_mapに無いID（sys/envなど）はそのまま残す
    """
    fields = reference_fields_for(data)

    def replace(match: re.Match) -> str:
        node_id = id_map.get(match.group(1), match.group(1))
        return f"{{{{#{node_id}.{match.group(2)}#}}}}"

    for path in fields.texts:
        for slot in list(_resolve(data, path)):
            if isinstance(slot.value, str):
                _assign(slot, VAR_REF_PATTERN.sub(replace, slot.value))
    for path in fields.selectors:
        for slot in list(_resolve(data, path)):
            if _is_selector(slot.value) and slot.value[0] in id_map:
                _assign(slot, [id_map[slot.value[0]], *slot.value[1:]])
