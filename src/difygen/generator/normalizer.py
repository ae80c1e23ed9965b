from typing import Optional
from pydantic import BaseModel
from difygen.dsl.id_generator import IdGenerator
from difygen.dsl.references import rewrite_references
from difygen.dsl.schema import DifyDSL, Features, FileUploadConfig, Position, TextToSpeechConfig
from difygen.log_output.log import log

"""
LLMが出力したDSLをDifyに取り込める形に整える。
配置の付与、ノードIDの振り直しと参照の書き換え、既定の機能設定の補完を行う。
"""

NODE_WIDTH = 244
DEFAULT_NODE_HEIGHT = 54
NODE_HEIGHTS = {
    "start": 90,
    "end": 90,
    "answer": 106,
    "llm": 98,
    "knowledge-retrieval": 92,
    "question-classifier": 166,
    "if-else": 126,
    "code": 54,
    "http-request": 110,
    "variable-aggregator": 118,
    "template-transform": 54,
}
HORIZONTAL_GAP = 150
START_X = 80
START_Y = 282

CONTAINER_ID_KEYS = ("iteration_id", "loop_id")


class NormalizeOptions(BaseModel):
    layout: bool = True
    regenerate_ids: bool = True
    fill_defaults: bool = True


def apply_layout(dsl: DifyDSL) -> None:
    """ノードを左から右へ1列に並べる"""
    for index, node in enumerate(dsl.nodes):
        node.position = Position(x=START_X + index * (NODE_WIDTH + HORIZONTAL_GAP), y=START_Y)
        node.width = NODE_WIDTH
        node.height = NODE_HEIGHTS.get(node.data.type, DEFAULT_NODE_HEIGHT)
        node.sourcePosition = "right"
        node.targetPosition = "left"
        node.selected = False


def regenerate_ids(dsl: DifyDSL, id_generator: IdGenerator) -> dict[str, str]:
    """
    全ノードに新しいIDを振り、辺と変数参照を新しいIDに書き換える。
    旧ID→新IDの対応を返す。
    """
    id_map = {node.id: id_generator.next() for node in dsl.nodes}
    for node in dsl.nodes:
        node.id = id_map[node.id]
        if node.parentId:
            node.parentId = id_map.get(node.parentId, node.parentId)
        if getattr(node.data, "start_node_id", None):
            node.data.start_node_id = id_map.get(node.data.start_node_id, node.data.start_node_id)
        _rewrite_container_ids(node.data, id_map)
        rewrite_references(node.data, id_map)
    for edge in dsl.edges:
        edge.source = id_map.get(edge.source, edge.source)
        edge.target = id_map.get(edge.target, edge.target)
        edge.id = f"{edge.source}-{edge.sourceHandle}-{edge.target}-{edge.targetHandle}"
        if edge.data.iterationID:
            edge.data.iterationID = id_map.get(edge.data.iterationID, edge.data.iterationID)
        _rewrite_container_ids(edge.data, id_map)
    return id_map


def _rewrite_container_ids(model, id_map: dict[str, str]) -> None:
    # 子ノードのdataや辺のdataに付く iteration_id / loop_id はスキーマ外のフィールドとして保持される
    extra = model.model_extra or {}
    for key in CONTAINER_ID_KEYS:
        if isinstance(extra.get(key), str):
            extra[key] = id_map.get(extra[key], extra[key])


def fill_defaults(dsl: DifyDSL) -> None:
    workflow = dsl.workflow
    if workflow is None:
        return
    if workflow.features is None:
        workflow.features = Features(
            file_upload=FileUploadConfig(enabled=False),
            text_to_speech=TextToSpeechConfig(enabled=False),
        )
    if workflow.conversation_variables is None:
        workflow.conversation_variables = []
    if workflow.environment_variables is None:
        workflow.environment_variables = []
    if "viewport" not in (workflow.graph.model_extra or {}):
        workflow.graph.viewport = {"x": 0, "y": 0, "zoom": 1}


def normalize_dsl(
    dsl: DifyDSL,
    id_generator: Optional[IdGenerator] = None,
    options: Optional[NormalizeOptions] = None,
) -> DifyDSL:
    """元のDSLは変更せず、整えたコピーを返す"""
    options = options or NormalizeOptions()
    normalized = dsl.model_copy(deep=True)
    if options.regenerate_ids:
        regenerate_ids(normalized, id_generator or IdGenerator())
    if options.layout:
        apply_layout(normalized)
    if options.fill_defaults:
        fill_defaults(normalized)
    log("info", f"DSLを正規化しました（ノード {len(normalized.nodes)}件、辺 {len(normalized.edges)}件）")
    return normalized
