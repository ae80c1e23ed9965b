from typing import Any, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

"""
よく使うノード種別の説明情報（表示名、入出力、設定項目、使用例）。
CLIの --list-nodes とサーバーの /nodes から参照する。
"""

NodeCategory = Literal["basic", "llm", "logic", "data", "tool", "advanced"]


class PortDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: str = Field(..., description="出力型・変数型、または任意を表す 'any'")
    description: str
    required: Optional[bool] = None


class ConfigField(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: Literal["string", "number", "boolean", "select", "array", "object", "code", "template"]
    description: str
    required: bool
    options: Optional[tuple[str, ...]] = None


class NodeExample(BaseModel):
    description: str
    config: dict[str, Any]


class NodeMeta(BaseModel):
    type: str
    display_name: str
    description: str
    category: NodeCategory
    inputs: list[PortDefinition] = Field(default_factory=list)
    outputs: list[PortDefinition] = Field(default_factory=list)
    config_fields: list[ConfigField] = Field(default_factory=list)
    examples: list[NodeExample] = Field(default_factory=list)
    multiple_outputs: bool = Field(False, description="分岐ごとに出力エッジを持つか（IF/ELSE、問題分類）")
    notes: list[str] = Field(default_factory=list)


_ANY_INPUT = PortDefinition(name="any", type="any", description="任意输入")

NODE_META_REGISTRY: dict[str, NodeMeta] = {
    "start": NodeMeta(
        type="start",
        display_name="开始",
        description="工作流入口节点，定义工作流的输入变量",
        category="basic",
        outputs=[PortDefinition(name="variables", type="any", description="定义的输入变量")],
        config_fields=[ConfigField(name="variables", type="array", description="输入变量定义列表", required=True)],
        examples=[NodeExample(description="简单文本输入", config={"variables": [{
            "variable": "user_input", "label": "用户输入", "type": "paragraph", "required": True, "max_length": 2000,
        }]})],
        notes=["每个工作流必须有且仅有一个 Start 节点"],
    ),
    "end": NodeMeta(
        type="end",
        display_name="结束",
        description="工作流出口节点，定义最终输出",
        category="basic",
        inputs=[_ANY_INPUT],
        config_fields=[ConfigField(name="outputs", type="array", description="输出变量列表", required=True)],
        examples=[NodeExample(description="输出 LLM 结果", config={
            "outputs": [{"variable": "result", "value_selector": ["llm", "text"]}],
        })],
        notes=["每个工作流至少需要一个 End 或 Answer 节点"],
    ),
    "answer": NodeMeta(
        type="answer",
        display_name="回答",
        description="流式输出节点，用于 Chatflow 对话场景",
        category="basic",
        inputs=[_ANY_INPUT],
        config_fields=[ConfigField(name="answer", type="template", description="回答内容模板，支持变量引用", required=True)],
        examples=[NodeExample(description="输出 LLM 回答", config={"answer": "{{#llm.text#}}"})],
        notes=["仅用于 Chatflow 模式", "支持流式输出"],
    ),
    "llm": NodeMeta(
        type="llm",
        display_name="LLM",
        description="调用大语言模型进行对话、生成、分类等任务",
        category="llm",
        inputs=[PortDefinition(name="context", type="any", description="可选的上下文输入", required=False)],
        outputs=[PortDefinition(name="text", type="string", description="模型生成的文本")],
        config_fields=[
            ConfigField(name="model", type="object", description="模型配置", required=True),
            ConfigField(name="prompt_template", type="array", description="提示词模板", required=True),
            ConfigField(name="memory", type="object", description="对话记忆配置", required=False),
            ConfigField(name="context", type="object", description="上下文配置", required=False),
            ConfigField(name="vision", type="object", description="视觉能力配置", required=False),
        ],
        examples=[NodeExample(description="简单问答", config={
            "model": {"provider": "openai", "name": "gpt-4o", "mode": "chat", "completion_params": {"temperature": 0.7}},
            "prompt_template": [
                {"role": "system", "text": "你是一个有帮助的助手。"},
                {"role": "user", "text": "{{#start.user_input#}}"},
            ],
        })],
        notes=["temperature 范围 0-2", "支持多种模型提供商"],
    ),
    "knowledge-retrieval": NodeMeta(
        type="knowledge-retrieval",
        display_name="知识检索",
        description="从知识库中检索相关文档",
        category="data",
        inputs=[PortDefinition(name="query", type="string", description="检索查询", required=True)],
        outputs=[PortDefinition(name="result", type="array[object]", description="检索结果列表")],
        config_fields=[
            ConfigField(name="query_variable_selector", type="array", description="查询变量选择器", required=True),
            ConfigField(name="dataset_ids", type="array", description="知识库 ID 列表", required=True),
            ConfigField(name="retrieval_mode", type="select", description="检索模式", required=True,
                        options=("single", "multiple")),
        ],
        examples=[NodeExample(description="多路检索", config={
            "query_variable_selector": ["start", "user_input"],
            "dataset_ids": ["dataset-xxx"],
            "retrieval_mode": "multiple",
            "multiple_retrieval_config": {"top_k": 5, "score_threshold": 0.5, "reranking_enable": True},
        })],
        notes=["需要提前在 Dify 中创建知识库"],
    ),
    "question-classifier": NodeMeta(
        type="question-classifier",
        display_name="问题分类",
        description="使用 LLM 对问题进行分类，路由到不同分支",
        category="logic",
        inputs=[PortDefinition(name="query", type="string", description="待分类的问题", required=True)],
        outputs=[PortDefinition(name="class_name", type="string", description="分类结果")],
        config_fields=[
            ConfigField(name="query_variable_selector", type="array", description="查询变量选择器", required=True),
            ConfigField(name="model", type="object", description="模型配置", required=True),
            ConfigField(name="classes", type="array", description="分类定义列表", required=True),
            ConfigField(name="instruction", type="string", description="分类指令", required=False),
        ],
        examples=[NodeExample(description="意图分类", config={"classes": [
            {"id": "product", "name": "产品咨询"},
            {"id": "tech", "name": "技术支持"},
            {"id": "other", "name": "其他"},
        ]})],
        multiple_outputs=True,
        notes=["Edge 的 sourceHandle 对应 class.id"],
    ),
    "if-else": NodeMeta(
        type="if-else",
        display_name="条件分支",
        description="根据条件判断路由到不同分支",
        category="logic",
        inputs=[_ANY_INPUT],
        config_fields=[ConfigField(name="conditions", type="array", description="条件分支列表", required=True)],
        examples=[NodeExample(description="检查是否为空", config={"conditions": [{
            "id": "cond-1",
            "logical_operator": "and",
            "conditions": [{
                "variable_selector": ["start", "user_input"],
                "comparison_operator": "is not empty",
                "value": "",
            }],
        }]})],
        multiple_outputs=True,
        notes=['Edge sourceHandle: 条件 ID 或 "false"'],
    ),
    "code": NodeMeta(
        type="code",
        display_name="代码执行",
        description="执行自定义 Python 或 JavaScript 代码",
        category="advanced",
        inputs=[PortDefinition(name="variables", type="any", description="输入变量")],
        outputs=[PortDefinition(name="outputs", type="any", description="代码输出")],
        config_fields=[
            ConfigField(name="code_language", type="select", description="代码语言", required=True,
                        options=("python3", "javascript")),
            ConfigField(name="code", type="code", description="代码内容", required=True),
            ConfigField(name="variables", type="array", description="输入变量映射", required=True),
            ConfigField(name="outputs", type="array", description="输出变量定义", required=True),
        ],
        examples=[NodeExample(description="Python 数据处理", config={
            "code_language": "python3",
            "code": 'def main(text: str) -> dict:\n    return {"result": text.upper()}',
            "variables": [{"variable": "text", "value_selector": ["start", "input"]}],
            "outputs": [{"variable": "result", "variable_type": "string"}],
        })],
        notes=["Python 需要定义 main 函数", "JavaScript 也需要定义 main 函数"],
    ),
    "http-request": NodeMeta(
        type="http-request",
        display_name="HTTP 请求",
        description="发送 HTTP 请求调用外部 API",
        category="tool",
        inputs=[_ANY_INPUT],
        outputs=[
            PortDefinition(name="status_code", type="number", description="HTTP 状态码"),
            PortDefinition(name="body", type="string", description="响应体"),
            PortDefinition(name="headers", type="object", description="响应头"),
        ],
        config_fields=[
            ConfigField(name="method", type="select", description="HTTP 方法", required=True,
                        options=("get", "post", "put", "patch", "delete", "head")),
            ConfigField(name="url", type="string", description="请求 URL", required=True),
            ConfigField(name="authorization", type="object", description="授权配置", required=False),
            ConfigField(name="headers", type="array", description="请求头", required=False),
            ConfigField(name="body", type="object", description="请求体", required=False),
        ],
        examples=[NodeExample(description="GET 请求", config={
            "method": "get",
            "url": "https://api.example.com/data",
            "timeout": {"connect": 10, "read": 30, "write": 10},
        })],
        notes=["URL 支持变量模板 {{#node.var#}}"],
    ),
    "template-transform": NodeMeta(
        type="template-transform",
        display_name="模板转换",
        description="使用 Jinja2 模板转换数据",
        category="data",
        inputs=[PortDefinition(name="variables", type="any", description="模板变量")],
        outputs=[PortDefinition(name="output", type="string", description="模板输出")],
        config_fields=[
            ConfigField(name="template", type="template", description="Jinja2 模板", required=True),
            ConfigField(name="variables", type="array", description="变量映射", required=True),
        ],
        examples=[NodeExample(description="格式化输出", config={
            "template": "# {{ title }}\n\n{{ content }}",
            "variables": [
                {"variable": "title", "value_selector": ["start", "title"]},
                {"variable": "content", "value_selector": ["llm", "text"]},
            ],
        })],
        notes=["使用 Jinja2 语法"],
    ),
    "variable-aggregator": NodeMeta(
        type="variable-aggregator",
        display_name="变量聚合",
        description="合并多个变量",
        category="data",
        inputs=[PortDefinition(name="variables", type="any", description="待合并的变量")],
        outputs=[PortDefinition(name="output", type="any", description="聚合结果")],
        config_fields=[
            ConfigField(name="variables", type="array", description="变量选择器列表", required=True),
            ConfigField(name="output_type", type="select", description="输出类型", required=True),
        ],
        notes=["常用于合并条件分支的输出"],
    ),
}


def get_node_meta(node_type: str) -> Optional[NodeMeta]:
    return NODE_META_REGISTRY.get(node_type)


def get_all_node_types() -> list[str]:
    return list(NODE_META_REGISTRY)


def get_nodes_by_category(category: str) -> list[NodeMeta]:
    return [meta for meta in NODE_META_REGISTRY.values() if meta.category == category]
