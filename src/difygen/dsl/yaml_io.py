from typing import Any, Optional, Union
import yaml
from pydantic import BaseModel, Field
from difygen.dsl.schema import DifyDSL

"""
Dify DSL と YAML テキストの相互変換。
parse_yamlはスキーマ検証までは行わず、最低限の構造チェックだけを行う（詳細な検証はvalidatorの役割）。
"""


class ParseResult(BaseModel):
    success: bool = Field(..., description="パースに成功したか")
    data: Optional[dict] = Field(None, description="パース結果の辞書")
    error: Optional[str] = Field(None, description="失敗時のエラーメッセージ")


class _DSLDumper(yaml.SafeDumper):
    pass


def _represent_str(dumper: yaml.SafeDumper, value: str):
    # 複数行の文字列はリテラルブロックで出力する
    if "\n" in value:
        return dumper.represent_scalar("tag:yaml.org,2002:str", value, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", value)


_DSLDumper.add_representer(str, _represent_str)

_TOP_LEVEL_ORDER = ("app", "dependencies", "kind", "version", "workflow", "model_config")
_WORKFLOW_ORDER = ("conversation_variables", "environment_variables", "features", "graph")
_GRAPH_ORDER = ("edges", "nodes", "viewport")


def _ordered(src: dict, order: tuple[str, ...]) -> dict:
    result = {key: src[key] for key in order if key in src}
    result.update({key: value for key, value in src.items() if key not in result})
    return result


def _order_dsl_fields(data: dict) -> dict:
    """Difyのエクスポートと同じキー順に並べ替える"""
    ordered = _ordered(data, _TOP_LEVEL_ORDER)
    workflow = ordered.get("workflow")
    if isinstance(workflow, dict):
        workflow = _ordered(workflow, _WORKFLOW_ORDER)
        if isinstance(workflow.get("graph"), dict):
            workflow["graph"] = _ordered(workflow["graph"], _GRAPH_ORDER)
        ordered["workflow"] = workflow
    return ordered


def parse_yaml(content: str) -> ParseResult:
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        return ParseResult(success=False, error=f"YAML parse error: {e}")

    if not isinstance(data, dict):
        return ParseResult(success=False, error="Invalid YAML: root must be an object")
    if not data.get("version"):
        return ParseResult(success=False, error='Invalid DSL: missing required field "version"')
    if data.get("kind") != "app":
        return ParseResult(success=False, error='Invalid DSL: "kind" must be "app"')
    app = data.get("app")
    if not isinstance(app, dict) or not app:
        return ParseResult(success=False, error='Invalid DSL: missing required field "app"')
    mode = app.get("mode")
    if mode in ("workflow", "advanced-chat") and not data.get("workflow"):
        return ParseResult(success=False, error=f'Invalid DSL: mode "{mode}" requires "workflow" field')
    return ParseResult(success=True, data=data)


def to_plain_dict(dsl: Union[DifyDSL, dict]) -> dict:
    if isinstance(dsl, DifyDSL):
        return dsl.to_dict()
    return dsl


def stringify_yaml(dsl: Union[DifyDSL, dict], indent: int = 2, line_width: int = 120) -> str:
    return yaml.dump(
        _order_dsl_fields(to_plain_dict(dsl)),
        Dumper=_DSLDumper,
        allow_unicode=True,
        sort_keys=False,
        indent=indent,
        width=line_width,
    )


def parse_yaml_or_throw(content: str) -> dict:
    result = parse_yaml(content)
    if not result.success:
        raise ValueError(result.error)
    return result.data


def is_valid_dsl_yaml(content: str) -> bool:
    return parse_yaml(content).success


def format_yaml(content: str, indent: int = 2, line_width: int = 120) -> str:
    """YAMLテキストをDifyのキー順・書式に整形し直す"""
    return stringify_yaml(parse_yaml_or_throw(content), indent=indent, line_width=line_width)


def extract_field(content: str, path: str) -> Any:
    """"app.name" のようなドット区切りのパスで値を取り出す。無ければNone"""
    result = parse_yaml(content)
    if not result.success:
        return None
    current: Any = result.data
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current
