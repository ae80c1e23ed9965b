from collections import deque
from typing import Any, Literal, Optional, Union
from pydantic import BaseModel, Field
from difygen.dsl.references import VariableReference, extract_references
from difygen.dsl.schema import DifyDSL, Edge, Node

"""
ワークフローの依存関係解析。
明示的なエッジと変数参照による暗黙のエッジからノード間の依存グラフを作り、
トポロジカル順序・循環依存・孤立ノード・未定義/未使用変数を求める。
"""

# sys.* / env.* はワークフロー外から供給されるため未定義扱いしない
EXTERNAL_NAMESPACES = ("sys", "env")


class NodeDependency(BaseModel):
    node_id: str
    depends_on: list[str] = Field(default_factory=list)
    depended_by: list[str] = Field(default_factory=list)
    variable_references: list[str] = Field(default_factory=list, description='"nodeId.variable" 形式の参照')
    provides_variables: list[str] = Field(default_factory=list)


class TopologicalOrder(BaseModel):
    """
    トポロジカルソートの結果。
    orderは依存関係を満たす部分順序で、remainderは循環のため順序付けできなかったノード。
    """
    order: list[str] = Field(default_factory=list)
    remainder: list[str] = Field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.remainder

    def as_list(self) -> list[str]:
        """順序付けできなかったノードを末尾に付けたベストエフォートの全順序"""
        return self.order + self.remainder


class DependencyGraph(BaseModel):
    nodes: dict[str, NodeDependency] = Field(default_factory=dict)
    topological_order: TopologicalOrder = Field(default_factory=TopologicalOrder)
    circular_dependencies: list[list[str]] = Field(default_factory=list)
    orphan_nodes: list[str] = Field(default_factory=list)


class VariableAnalysis(BaseModel):
    defined: list[str] = Field(default_factory=list)
    referenced: list[str] = Field(default_factory=list)
    undefined: list[str] = Field(default_factory=list)
    unused: list[str] = Field(default_factory=list)


class AnalysisIssue(BaseModel):
    severity: Literal["error", "warning", "info"]
    code: str
    message: str
    node_id: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)


class AnalysisResult(BaseModel):
    dependencies: DependencyGraph
    variables: VariableAnalysis
    issues: list[AnalysisIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)


def provided_variables(node: Node) -> list[str]:
    """ノード型ごとの出力変数名"""
    data = node.data
    if data.type == "start":
        return [v.variable for v in data.variables]
    if data.type == "llm":
        return ["text"]
    if data.type == "knowledge-retrieval":
        return ["result"]
    if data.type == "code":
        return [o.variable for o in data.outputs]
    if data.type == "http-request":
        return ["body", "status_code", "headers"]
    if data.type == "question-classifier":
        return ["class_name"]
    if data.type in ("variable-aggregator", "template-transform"):
        return ["output"]
    if data.type == "parameter-extractor":
        return [p.name for p in data.parameters]
    return ["output"]


class DependencyAnalyzer:
    def analyze(self, dsl: Union[DifyDSL, dict]) -> AnalysisResult:
        if isinstance(dsl, dict):
            dsl = DifyDSL.model_validate(dsl)
        nodes = dsl.nodes
        edges = dsl.edges
        references: dict[str, list[VariableReference]] = {}
        for node in nodes:
            # 依存グラフと同じく重複IDは先勝ち
            references.setdefault(node.id, extract_references(node.data))

        dependencies = self._build_dependency_graph(nodes, edges, references)
        variables = self._analyze_variables(nodes, references)
        issues = self._collect_issues(dependencies, variables, references)
        return AnalysisResult(dependencies=dependencies, variables=variables, issues=issues)

    def _build_dependency_graph(
        self,
        nodes: list[Node],
        edges: list[Edge],
        references: dict[str, list[VariableReference]],
    ) -> DependencyGraph:
        graph: dict[str, NodeDependency] = {}
        for node in nodes:
            # 重複IDは先勝ち（重複自体はvalidatorが報告する）
            if node.id in graph:
                continue
            graph[node.id] = NodeDependency(
                node_id=node.id,
                variable_references=[ref.key for ref in references[node.id]],
                provides_variables=provided_variables(node),
            )

        def link(source: str, target: str) -> None:
            if target not in graph[source].depended_by:
                graph[source].depended_by.append(target)
            if source not in graph[target].depends_on:
                graph[target].depends_on.append(source)

        for edge in edges:
            if edge.source in graph and edge.target in graph:
                link(edge.source, edge.target)

        # 変数参照による暗黙の依存
        for node_id, refs in references.items():
            for ref in refs:
                if ref.node_id != node_id and ref.node_id in graph:
                    link(ref.node_id, node_id)

        topological_order = self._topological_sort(graph)
        cycles = self._find_cycles(graph, topological_order.remainder)

        node_types = {node.id: node.data.type for node in nodes}
        orphan_nodes = [
            node_id
            for node_id, dep in graph.items()
            if node_types[node_id] not in ("start", "end")
            and not dep.depends_on
            and not dep.depended_by
        ]
        return DependencyGraph(
            nodes=graph,
            topological_order=topological_order,
            circular_dependencies=cycles,
            orphan_nodes=orphan_nodes,
        )

    def _topological_sort(self, graph: dict[str, NodeDependency]) -> TopologicalOrder:
        """Kahnのアルゴリズム。入次数0のノードをFIFOで取り出す"""
        in_degree = {node_id: 0 for node_id in graph}
        for dep in graph.values():
            for dependent in dep.depended_by:
                in_degree[dependent] += 1

        queue = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
        order: list[str] = []
        while queue:
            node_id = queue.popleft()
            order.append(node_id)
            for dependent in graph[node_id].depended_by:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        placed = set(order)
        return TopologicalOrder(order=order, remainder=[n for n in graph if n not in placed])

    def _find_cycles(self, graph: dict[str, NodeDependency], candidates: list[str]) -> list[list[str]]:
        """順序付けできなかったノードからDFSし、再訪したスタック上のノードで閉路を切り出す"""
        cycles: list[list[str]] = []
        visited: set[str] = set()
        in_stack: set[str] = set()

        def visit(node_id: str, path: list[str]) -> None:
            if node_id in in_stack:
                start = path.index(node_id)
                cycles.append(path[start:] + [node_id])
                return
            if node_id in visited:
                return
            visited.add(node_id)
            in_stack.add(node_id)
            for dep_id in graph[node_id].depends_on:
                visit(dep_id, path + [node_id])
            in_stack.discard(node_id)

        for node_id in candidates:
            if node_id not in visited:
                visit(node_id, [])
        return cycles

    def _analyze_variables(
        self, nodes: list[Node], references: dict[str, list[VariableReference]]
    ) -> VariableAnalysis:
        defined: dict[str, str] = {}
        for node in nodes:
            for name in provided_variables(node):
                defined.setdefault(f"{node.id}.{name}", node.data.type)

        referenced: dict[str, None] = {}
        for refs in references.values():
            for ref in refs:
                referenced.setdefault(ref.key, None)

        undefined = [
            key for key in referenced
            if key not in defined and key.split(".", 1)[0] not in EXTERNAL_NAMESPACES
        ]
        # 開始ノードの入力はワークフローの入力なので未使用扱いしない
        unused = [
            key for key, node_type in defined.items()
            if node_type != "start" and key not in referenced
        ]
        return VariableAnalysis(
            defined=list(defined),
            referenced=list(referenced),
            undefined=undefined,
            unused=unused,
        )

    def _collect_issues(
        self,
        dependencies: DependencyGraph,
        variables: VariableAnalysis,
        references: dict[str, list[VariableReference]],
    ) -> list[AnalysisIssue]:
        issues: list[AnalysisIssue] = []
        for cycle in dependencies.circular_dependencies:
            issues.append(AnalysisIssue(
                severity="error",
                code="CIRCULAR_DEPENDENCY",
                message=f"Circular dependency detected: {' -> '.join(cycle)}",
                details={"cycle": cycle},
            ))
        for node_id in dependencies.orphan_nodes:
            issues.append(AnalysisIssue(
                severity="warning",
                code="ORPHAN_NODE",
                message=f'Node "{node_id}" is not connected to the workflow',
                node_id=node_id,
            ))
        undefined = set(variables.undefined)
        for node_id, refs in references.items():
            for ref in refs:
                if ref.key in undefined:
                    issues.append(AnalysisIssue(
                        severity="error",
                        code="UNDEFINED_VARIABLE",
                        message=f"Reference to undefined variable: {ref}",
                        node_id=node_id,
                        details={"node_id": ref.node_id, "variable": ref.variable},
                    ))
        for key in variables.unused:
            node_id, variable = key.split(".", 1)
            issues.append(AnalysisIssue(
                severity="info",
                code="UNUSED_VARIABLE",
                message=f'Variable "{key}" is defined but never used',
                node_id=node_id,
                details={"variable": variable},
            ))
        return issues


def analyze_dependencies(dsl: Union[DifyDSL, dict]) -> AnalysisResult:
    return DependencyAnalyzer().analyze(dsl)


def get_execution_order(dsl: Union[DifyDSL, dict]) -> TopologicalOrder:
    return DependencyAnalyzer().analyze(dsl).dependencies.topological_order


def has_circular_dependencies(dsl: Union[DifyDSL, dict]) -> bool:
    return bool(DependencyAnalyzer().analyze(dsl).dependencies.circular_dependencies)
