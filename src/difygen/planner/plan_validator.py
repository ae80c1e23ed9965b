import math
from difygen.planner.state import PlannedEdge, PlannedNode, PlanValidation, WorkflowPlan

"""計画（WorkflowPlan）の構造チェック。DSLになる前の段階で明らかな誤りを弾く"""

BRANCHING_NODE_TYPES = ("question-classifier", "if-else")
ADVANCED_NODE_TYPES = ("code", "http-request")


def validate_plan(plan: WorkflowPlan) -> PlanValidation:
    errors: list[str] = []
    warnings: list[str] = []

    if not any(n.type == "start" for n in plan.nodes):
        errors.append("Workflow must have a start node")
    if not any(n.type in ("end", "answer") for n in plan.nodes):
        errors.append("Workflow must have an end or answer node")

    seen = set()
    for node in plan.nodes:
        if node.id in seen:
            errors.append(f"Duplicate node ID: {node.id}")
        seen.add(node.id)

    connected = {e.source for e in plan.edges} | {e.target for e in plan.edges}
    for node in plan.nodes:
        if node.type not in ("start", "end") and node.id not in connected:
            warnings.append(f"Orphaned node: {node.id}")

    for edge in plan.edges:
        if edge.source not in seen:
            errors.append(f"Edge references non-existent source node: {edge.source}")
        if edge.target not in seen:
            errors.append(f"Edge references non-existent target node: {edge.target}")

    cycles = _detect_cycles(plan.nodes, plan.edges)
    if cycles:
        warnings.append(f"Potential cycles detected: {', '.join(cycles)}")

    return PlanValidation(valid=not errors, errors=errors, warnings=warnings)


def _detect_cycles(nodes: list[PlannedNode], edges: list[PlannedEdge]) -> list[str]:
    adjacency: dict[str, list[str]] = {}
    for edge in edges:
        adjacency.setdefault(edge.source, []).append(edge.target)

    cycles: list[str] = []
    visited: set[str] = set()
    stack: set[str] = set()

    def dfs(node_id: str, path: list[str]) -> bool:
        visited.add(node_id)
        stack.add(node_id)
        path = path + [node_id]
        for neighbor in adjacency.get(node_id, []):
            if neighbor not in visited:
                if dfs(neighbor, path):
                    return True
            elif neighbor in stack:
                cycles.append(" -> ".join(path + [neighbor]))
                return True
        stack.discard(node_id)
        return False

    for node in nodes:
        if node.id not in visited:
            dfs(node.id, [])
    return cycles


def check_plan_features(plan: WorkflowPlan, required_features: list[str]) -> bool:
    plan_features = {f.type for f in plan.intent.features}
    return all(feature in plan_features for feature in required_features)


def estimate_plan_complexity(plan: WorkflowPlan) -> int:
    complexity = len(plan.nodes)
    complexity += 2 * sum(1 for n in plan.nodes if n.type in BRANCHING_NODE_TYPES)
    complexity += 1.5 * sum(1 for n in plan.nodes if n.type in ADVANCED_NODE_TYPES)
    return int(math.floor(complexity + 0.5))
