from typing import Any, Callable, Optional
from difygen.dsl.yaml_io import parse_yaml
from difygen.log_output.log import log
from difygen.workflow_graph.state import RepairState


class TextExtractor:
    """LLMの応答からYAMLテキストを取り出すノード"""
    def __init__(self, extract: Callable[[str], Optional[str]]):
        self.extract = extract

    def __call__(self, state: RepairState) -> dict[str, Any]:
        yaml_text = self.extract(state.response_text or "")
        if not yaml_text:
            error = "Failed to extract YAML from response"
            log("warning", "LLMの応答からYAMLを取り出せませんでした")
            return {"errors": [error], "failed_stage": "extract", "error_history": [error], "node_history": ["extract"]}
        return {"yaml_text": yaml_text, "node_history": ["extract"]}


class DSLParser:
    """YAMLテキストをパースしてDSLの辞書にするノード"""
    def __call__(self, state: RepairState) -> dict[str, Any]:
        parsed = parse_yaml(state.yaml_text or "")
        if not parsed.success:
            error = f"Parse error: {parsed.error}"
            log("warning", f"YAMLのパースに失敗しました: {parsed.error}")
            return {"errors": [error], "failed_stage": "parse", "error_history": [error], "node_history": ["parse"]}
        return {"data": parsed.data, "node_history": ["parse"]}
