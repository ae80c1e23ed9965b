from collections import deque
from typing import Literal, Optional, Union
from pydantic import BaseModel, Field, ValidationError
from difygen.analyzer.dependency_analyzer import DependencyAnalyzer
from difygen.dsl.references import extract_references
from difygen.dsl.schema import DifyDSL, Edge, Node
from difygen.dsl.yaml_io import parse_yaml

"""
Dify DSL のバリデーター。
1. スキーマ検証（失敗したらここで打ち切る）
2. トポロジー検証（開始/終了ノード、ID重複、孤立・到達不能ノード、循環依存）
3. エッジ検証
4. 変数参照検証（参照先ノードの存在のみ。変数名までは検証しない）
コードとメッセージの組は修復プロンプトにそのまま埋め込まれるため変えないこと。
"""

SYS_VARIABLES = {"query", "user_id", "conversation_id", "files"}


class ValidationIssue(BaseModel):
    path: str = Field("", description="問題箇所のパス")
    message: str
    severity: Literal["error", "warning"] = "error"
    code: str

    def __str__(self) -> str:
        return f"[{self.path}] {self.message}" if self.path else self.message


class ValidationResult(BaseModel):
    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)
    dsl: Optional[DifyDSL] = Field(None, exclude=True, description="スキーマ検証を通過したDSL")

    def messages(self) -> list[str]:
        return [issue.message for issue in self.errors]


class ValidateOptions(BaseModel):
    strict: bool = Field(False, description="Trueなら警告も不合格として扱う")
    check_topology: bool = True
    check_variable_refs: bool = True


class DSLValidator:
    def __init__(self, options: Optional[ValidateOptions] = None, **kwargs):
        self.options = options or ValidateOptions(**kwargs)
        self.analyzer = DependencyAnalyzer()

    def validate(self, dsl: Union[DifyDSL, dict, str]) -> ValidationResult:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        if isinstance(dsl, str):
            parsed = parse_yaml(dsl)
            if not parsed.success:
                errors.append(ValidationIssue(path="", message=parsed.error, code="YAML_PARSE_ERROR"))
                return ValidationResult(valid=False, errors=errors, warnings=warnings)
            dsl = parsed.data
        if isinstance(dsl, DifyDSL):
            dsl = dsl.to_dict()

        # 1. スキーマ
        model = self._validate_schema(dsl, errors)
        if model is None:
            return ValidationResult(valid=False, errors=errors, warnings=warnings)

        if model.workflow is not None:
            nodes = model.nodes
            edges = model.edges
            if self.options.check_topology:
                self._validate_topology(model, nodes, edges, errors, warnings)
            if self.options.check_variable_refs:
                self._validate_variable_refs(nodes, errors, warnings)
            self._validate_edges(nodes, edges, errors)

        valid = not errors and not (self.options.strict and warnings)
        return ValidationResult(valid=valid, errors=errors, warnings=warnings, dsl=model)

    def _validate_schema(self, data: dict, errors: list[ValidationIssue]) -> Optional[DifyDSL]:
        try:
            return DifyDSL.model_validate(data)
        except ValidationError as e:
            for issue in e.errors():
                errors.append(ValidationIssue(
                    path=".".join(str(part) for part in issue["loc"]),
                    message=issue["msg"],
                    code="SCHEMA_VALIDATION",
                ))
            return None

    def _validate_topology(
        self,
        model: DifyDSL,
        nodes: list[Node],
        edges: list[Edge],
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> None:
        start_nodes = [n for n in nodes if n.data.type == "start"]
        if not start_nodes:
            errors.append(ValidationIssue(
                path="workflow.graph.nodes",
                message='Workflow must have exactly one "start" node',
                code="MISSING_START_NODE",
            ))
        elif len(start_nodes) > 1:
            errors.append(ValidationIssue(
                path="workflow.graph.nodes",
                message=f'Found {len(start_nodes)} "start" nodes, expected exactly 1',
                code="MULTIPLE_START_NODES",
            ))

        if not any(n.data.type in ("end", "answer") for n in nodes):
            errors.append(ValidationIssue(
                path="workflow.graph.nodes",
                message='Workflow must have at least one "end" or "answer" node',
                code="MISSING_END_NODE",
            ))

        seen: set[str] = set()
        for node in nodes:
            if node.id in seen:
                errors.append(ValidationIssue(
                    path="workflow.graph.nodes",
                    message=f'Duplicate node ID: "{node.id}"',
                    code="DUPLICATE_NODE_ID",
                ))
            seen.add(node.id)

        with_in_edges = {e.target for e in edges}
        with_out_edges = {e.source for e in edges}
        for node in nodes:
            if node.data.type == "start":
                continue
            if node.id not in with_in_edges and node.id not in with_out_edges:
                warnings.append(ValidationIssue(
                    path=f"workflow.graph.nodes[{node.id}]",
                    message=f'Node "{node.id}" is isolated (no incoming or outgoing edges)',
                    severity="warning",
                    code="ISOLATED_NODE",
                ))

        if len(start_nodes) == 1:
            reachable = self._find_reachable_nodes(start_nodes[0].id, edges)
            for node in nodes:
                if node.data.type != "start" and node.id not in reachable:
                    warnings.append(ValidationIssue(
                        path=f"workflow.graph.nodes[{node.id}]",
                        message=f'Node "{node.id}" is not reachable from start node',
                        severity="warning",
                        code="UNREACHABLE_NODE",
                    ))

        # 明示エッジ・変数参照を合わせた依存グラフに循環が無いこと
        analysis = self.analyzer.analyze(model)
        for cycle in analysis.dependencies.circular_dependencies:
            errors.append(ValidationIssue(
                path="workflow.graph",
                message=f"Circular dependency detected: {' -> '.join(cycle)}",
                code="CIRCULAR_DEPENDENCY",
            ))

    def _find_reachable_nodes(self, start_id: str, edges: list[Edge]) -> set[str]:
        outgoing: dict[str, list[str]] = {}
        for edge in edges:
            outgoing.setdefault(edge.source, []).append(edge.target)
        reachable: set[str] = set()
        queue = deque([start_id])
        while queue:
            current = queue.popleft()
            if current in reachable:
                continue
            reachable.add(current)
            queue.extend(t for t in outgoing.get(current, []) if t not in reachable)
        return reachable

    def _validate_edges(self, nodes: list[Node], edges: list[Edge], errors: list[ValidationIssue]) -> None:
        node_ids = {n.id for n in nodes}
        for edge in edges:
            path = f"workflow.graph.edges[{edge.id}]"
            if edge.source not in node_ids:
                errors.append(ValidationIssue(
                    path=path,
                    message=f'Edge source "{edge.source}" does not exist',
                    code="INVALID_EDGE_SOURCE",
                ))
            if edge.target not in node_ids:
                errors.append(ValidationIssue(
                    path=path,
                    message=f'Edge target "{edge.target}" does not exist',
                    code="INVALID_EDGE_TARGET",
                ))
            if edge.source == edge.target:
                errors.append(ValidationIssue(
                    path=path,
                    message="Edge cannot connect a node to itself",
                    code="SELF_REFERENCE_EDGE",
                ))

        edge_keys: set[str] = set()
        for edge in edges:
            key = f"{edge.source}:{edge.sourceHandle}:{edge.target}:{edge.targetHandle}"
            if key in edge_keys:
                errors.append(ValidationIssue(
                    path=f"workflow.graph.edges[{edge.id}]",
                    message=f'Duplicate edge from "{edge.source}" to "{edge.target}"',
                    code="DUPLICATE_EDGE",
                ))
            edge_keys.add(key)

    def _validate_variable_refs(
        self,
        nodes: list[Node],
        errors: list[ValidationIssue],
        warnings: list[ValidationIssue],
    ) -> None:
        """
        参照先ノードの存在だけを検証する。
        ノードが持つ変数名までは見ない（出力変数の型推論を行わないため、存在するノードへの参照は許容する）
        """
        node_ids = {n.id for n in nodes}
        for node in nodes:
            path = f"workflow.graph.nodes[{node.id}].data"
            for ref in extract_references(node.data):
                if ref.node_id == "env":
                    continue
                if ref.node_id == "sys":
                    if ref.variable not in SYS_VARIABLES:
                        warnings.append(ValidationIssue(
                            path=path,
                            message=f'Unknown system variable: "sys.{ref.variable}"',
                            severity="warning",
                            code="INVALID_SYS_VAR",
                        ))
                    continue
                if ref.node_id not in node_ids:
                    errors.append(ValidationIssue(
                        path=path,
                        message=f'Variable reference to non-existent node: "{ref.node_id}"',
                        code="INVALID_VAR_REF_NODE",
                    ))


def validate_dsl(dsl: Union[DifyDSL, dict, str], options: Optional[ValidateOptions] = None) -> ValidationResult:
    return DSLValidator(options).validate(dsl)


def format_issues(issues: list[ValidationIssue]) -> str:
    return "\n".join(str(issue) for issue in issues)


def validate_dsl_or_throw(dsl: Union[DifyDSL, dict, str], options: Optional[ValidateOptions] = None) -> DifyDSL:
    result = validate_dsl(dsl, options)
    if not result.valid:
        issues = result.errors if result.errors else result.warnings
        raise ValueError(f"DSL validation failed:\n{format_issues(issues)}")
    return result.dsl
