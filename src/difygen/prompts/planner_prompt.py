# LLMによるワークフロー計画用のプロンプト
from typing import Optional
from difygen.planner.state import (
    InputVariable,
    Intent,
    OutputDefinition,
    PlannedEdge,
    PlannedNode,
    WorkflowFeature,
    WorkflowPlan,
)
from difygen.prompts.dsl_rules import DESIGN_PRINCIPLES, build_node_type_list

PLANNER_SYSTEM_PROMPT = f"""你是一个专业的 Dify 工作流规划专家。请根据用户的自然语言描述分析需求，规划合理的工作流结构。

## 你需要做的事情
1. **理解意图**：找出核心目标和关键要求
2. **识别特性**：判断需要哪些能力（LLM、知识检索、条件分支、代码执行等）
3. **规划节点**：设计节点及其连接关系
4. **定义输入输出**：明确输入变量和最终输出

## 可用的节点类型
{build_node_type_list()}

{DESIGN_PRINCIPLES}

## 输出格式
只输出一个 JSON 对象，字段如下：
- name: 工作流名称
- description: 工作流描述
- intent: {{action, domain, requirements, features: [{{type, description, required}}], complexity(1-5)}}
- nodes: [{{id, type, title, description, config_hints}}]
- edges: [{{source, target, source_handle, condition}}]
- input_variables: [{{name, label, type, required, description}}]
- outputs: [{{name, source: [节点ID, 变量名], description}}]
- confidence: 置信度 (0-1)
- alternatives: 其他可选方案的说明"""

EXAMPLE_PLAN = WorkflowPlan(
    name="智能问答助手",
    description="接收用户问题，从知识库检索相关信息后生成回答",
    intent=Intent(
        action="问答",
        domain="知识库",
        requirements=["检索相关文档", "生成准确回答"],
        features=[
            WorkflowFeature(type="rag", description="知识库检索"),
            WorkflowFeature(type="llm", description="LLM 生成回答"),
        ],
        complexity=2,
    ),
    nodes=[
        PlannedNode(id="start", type="start", title="开始", description="接收用户问题"),
        PlannedNode(id="retrieval", type="knowledge-retrieval", title="知识检索",
                    description="从知识库检索相关文档", config_hints={"top_k": 5}),
        PlannedNode(id="llm", type="llm", title="生成回答",
                    description="基于检索结果生成回答", config_hints={"temperature": 0.7}),
        PlannedNode(id="end", type="end", title="结束", description="输出回答结果"),
    ],
    edges=[
        PlannedEdge(source="start", target="retrieval"),
        PlannedEdge(source="retrieval", target="llm"),
        PlannedEdge(source="llm", target="end"),
    ],
    input_variables=[
        InputVariable(name="question", label="问题", type="paragraph", description="用户的问题"),
    ],
    outputs=[OutputDefinition(name="answer", source=["llm", "text"], description="AI 生成的回答")],
    confidence=0.9,
    alternatives=["可以添加问题分类节点，针对不同类型问题使用不同的知识库"],
)


def build_few_shot_prompt() -> str:
    return (
        "## 示例\n\n"
        "用户需求：创建一个知识库问答工作流，根据用户问题检索相关文档并生成回答\n\n"
        "规划结果：\n"
        f"```json\n{EXAMPLE_PLAN.model_dump_json(indent=2, exclude_none=True)}\n```\n\n"
        "请参考以上示例的格式输出规划结果。"
    )


def build_planning_prompt(user_request: str, context: Optional[str] = None) -> str:
    prompt = f"## 用户需求\n\n{user_request}"
    if context:
        prompt += f"\n\n## 额外上下文\n\n{context}"
    prompt += "\n\n请分析上述需求，规划一个合理的 Dify 工作流结构。以 JSON 格式输出规划结果。"
    return prompt
