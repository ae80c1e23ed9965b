# オーケストレータ（計画→DSL生成→修正、編集）用のプロンプト
from typing import Optional
from difygen.dsl.schema import DifyDSL
from difygen.dsl.yaml_io import stringify_yaml
from difygen.planner.state import WorkflowPlan
from difygen.prompts.dsl_rules import EDIT_PRINCIPLES, VALIDATION_RULES, build_dsl_format_doc, build_node_types_doc

GENERATION_SYSTEM_PROMPT = f"""你是一个专业的 Dify 工作流 DSL 生成专家。你的任务是根据工作流规划生成符合 Dify 格式的 YAML DSL。

{build_dsl_format_doc()}

{build_node_types_doc()}

{VALIDATION_RULES}

请只输出 YAML 格式的 DSL，不要包含其他解释。"""

EDIT_SYSTEM_PROMPT = f"""你是一个专业的 Dify 工作流编辑专家。你的任务是根据用户的编辑指令修改现有的工作流 DSL。

{EDIT_PRINCIPLES}

## 常见编辑操作
1. **添加节点**：在合适的位置插入节点并更新相关的边
2. **删除节点**：删除节点及其边，并修复断开的连接
3. **修改节点**：更新标题、提示词、模型配置等
4. **调整连接**：修改节点之间的连接关系
5. **修改变量**：更新输入变量或输出定义

请只输出修改后的完整 YAML DSL，不要包含其他解释。"""

# エラーメッセージに含まれる語 → 修正のヒント
_SUGGESTION_RULES = [
    ("not found", "确保所有引用的节点 ID 存在"),
    ("variable", "检查变量引用格式是否正确 ({{#nodeId.variable#}})"),
    ("edge", "确保所有边连接的节点都存在"),
    ("start", "确保有且只有一个 start 节点"),
]


def build_generation_prompt_from_plan(
    plan: WorkflowPlan,
    preferred_provider: Optional[str] = None,
    preferred_model: Optional[str] = None,
    dataset_ids: Optional[list[str]] = None,
    examples: str = "",
) -> str:
    parts = [
        "## 工作流规划\n",
        f"名称: {plan.name}",
        f"描述: {plan.description}",
        f"复杂度: {plan.intent.complexity}/5\n",
        "### 节点规划\n",
    ]
    for node in plan.nodes:
        parts.append(f"- {node.id} ({node.type}): {node.title} - {node.description}")

    parts.append("\n### 连接规划\n")
    for edge in plan.edges:
        handle = f" [handle: {edge.source_handle}]" if edge.source_handle else ""
        parts.append(f"- {edge.source} -> {edge.target}{handle}")

    parts.append("\n### 输入变量\n")
    for variable in plan.input_variables:
        parts.append(f"- {variable.name} ({variable.type}): {variable.label}{' [必填]' if variable.required else ''}")

    parts.append("\n### 输出定义\n")
    for output in plan.outputs:
        parts.append(f"- {output.name}: 来自 {output.source[0]}.{output.source[1]}")

    parts.append("\n### 配置要求\n")
    parts.append(f"- 模型提供商: {preferred_provider or 'openai'}")
    parts.append(f"- 模型: {preferred_model or 'gpt-4o'}")
    if dataset_ids:
        parts.append(f"- 知识库 ID: {', '.join(dataset_ids)}")

    if examples:
        parts.append(f"\n{examples}")

    parts.append("\n请根据以上规划生成完整的 Dify 工作流 DSL (YAML 格式)。")
    return "\n".join(parts)


def build_suggestions(errors: list[str]) -> list[str]:
    suggestions = []
    for error in errors:
        lowered = error.lower()
        for keyword, suggestion in _SUGGESTION_RULES:
            if keyword in lowered and suggestion not in suggestions:
                suggestions.append(suggestion)
    return suggestions


def render_validation_feedback(errors: list[str]) -> str:
    """検証エラーと、そこから導いた修正ヒントをMarkdownにまとめる"""
    parts = ["## 验证错误\n"]
    parts.extend(f"- ❌ {e}" for e in errors)
    suggestions = build_suggestions(errors)
    if suggestions:
        parts.append("\n## 修复建议\n")
        parts.extend(f"- 💡 {s}" for s in suggestions)
    return "\n".join(parts)


def build_orchestrator_fix_prompt(yaml_text: str, feedback: str) -> str:
    return "\n".join([
        "## 当前 DSL\n",
        "```yaml",
        yaml_text,
        "```\n",
        feedback,
        "\n请修复以上错误，输出修正后的完整 YAML DSL。",
    ])


def build_edit_prompt(dsl: DifyDSL, instruction: str, target_nodes: Optional[list[str]] = None) -> str:
    parts = [
        "## 当前工作流 DSL\n",
        "```yaml",
        stringify_yaml(dsl),
        "```\n",
        "## 编辑指令\n",
        instruction,
    ]
    if target_nodes:
        parts.append("\n## 目标节点\n")
        parts.append(f"请重点关注以下节点: {', '.join(target_nodes)}")
    parts.append("\n请根据以上指令修改工作流，输出完整的 YAML DSL。")
    return "\n".join(parts)
