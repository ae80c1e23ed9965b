from typing import Annotated, Any, Literal, Optional, Union, get_args
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

"""
Dify ワークフロー DSL のPydanticモデル。
ノードのdataはdata.typeをキーにした判別共用体で、型ごとに自分のフィールドを検証する。
"""

DSLVersion = Literal["0.5.0", "0.1.0", "0.1.1", "0.1.2", "0.1.3", "0.1.4", "0.1.5"]
AppMode = Literal["workflow", "advanced-chat", "chat", "agent-chat", "completion"]
IconType = Literal["emoji", "image", "link"]
VariableType = Literal["text-input", "paragraph", "select", "number", "file", "file-list"]
OutputType = Literal[
    "string", "number", "boolean", "object",
    "array[string]", "array[number]", "array[object]",
]
CodeLanguage = Literal["python3", "javascript"]
HttpMethod = Literal["get", "post", "put", "patch", "delete", "head"]
BodyType = Literal["none", "form-data", "x-www-form-urlencoded", "raw-text", "json"]
ComparisonOperator = Literal[
    "=", "≠", "contains", "not contains", "start with", "end with",
    "is empty", "is not empty", ">", "<", "≥", "≤", "in", "not in",
]
LogicalOperator = Literal["and", "or"]
ExtractorParamType = Literal[
    "string", "number", "bool", "select",
    "array[string]", "array[number]", "array[object]",
]
NodeType = Literal[
    "start", "end", "answer", "llm", "knowledge-retrieval", "question-classifier",
    "if-else", "code", "template-transform", "variable-aggregator", "variable-assigner",
    "iteration", "loop", "parameter-extractor", "http-request", "tool", "agent",
    "document-extractor", "list-operator",
]

NODE_TYPES: tuple[str, ...] = get_args(NodeType)

# [nodeId, variableName]
Selector = Annotated[list[str], Field(min_length=2, max_length=2)]


class DSLModel(BaseModel):
    """DSLモデル共通設定。未知のフィールドは保持し、数値IDは文字列として扱う"""
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True, populate_by_name=True)


class Position(DSLModel):
    x: float
    y: float


class KeyValue(DSLModel):
    key: str
    value: str


# ---- 共通の部品 ----

class CompletionParams(DSLModel):
    temperature: Optional[float] = Field(None, ge=0, le=2)
    top_p: Optional[float] = Field(None, ge=0, le=1)
    max_tokens: Optional[int] = Field(None, gt=0)
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    stop: Optional[list[str]] = None


class ModelConfig(DSLModel):
    provider: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    mode: Literal["chat", "completion"] = "chat"
    completion_params: Optional[CompletionParams] = None


class PromptMessage(DSLModel):
    role: Literal["system", "user", "assistant"]
    text: str
    edition_type: Optional[Literal["basic", "jinja2"]] = None


class VariableBinding(DSLModel):
    """コード・テンプレート・終了ノードなどで使う「変数名 ← セレクタ」の組"""
    variable: str = Field(..., min_length=1)
    value_selector: Selector


class Condition(DSLModel):
    variable_selector: Selector
    comparison_operator: ComparisonOperator
    value: Union[bool, int, float, str] = ""


class NodeDataBase(DSLModel):
    title: str = Field(..., min_length=1)
    desc: Optional[str] = None


# ---- ノードごとのdata ----

class StartVariable(DSLModel):
    variable: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1)
    type: VariableType = "text-input"
    required: bool = True
    max_length: Optional[int] = Field(None, gt=0)
    options: Optional[list[str]] = None
    default: Optional[Union[int, float, str]] = None
    allowed_file_types: Optional[list[str]] = None
    allowed_file_extensions: Optional[list[str]] = None


class StartNodeData(NodeDataBase):
    type: Literal["start"]
    variables: list[StartVariable] = Field(default_factory=list)


class EndNodeData(NodeDataBase):
    type: Literal["end"]
    outputs: list[VariableBinding] = Field(default_factory=list)


class AnswerNodeData(NodeDataBase):
    type: Literal["answer"]
    answer: str


class ContextConfig(DSLModel):
    enabled: bool = False
    variable_selector: Optional[Selector] = None


class VisionConfigs(DSLModel):
    variable_selector: Selector
    detail: Optional[Literal["low", "high"]] = None


class VisionConfig(DSLModel):
    enabled: bool = False
    configs: Optional[VisionConfigs] = None


class LLMNodeData(NodeDataBase):
    type: Literal["llm"]
    model: ModelConfig
    prompt_template: list[PromptMessage] = Field(..., min_length=1)
    memory: Optional[dict[str, Any]] = None
    context: Optional[ContextConfig] = None
    vision: Optional[VisionConfig] = None


class RerankingModel(DSLModel):
    provider: str
    model: str


class MultipleRetrievalConfig(DSLModel):
    top_k: int = Field(..., gt=0)
    score_threshold: Optional[float] = Field(None, ge=0, le=1)
    score_threshold_enabled: Optional[bool] = None
    reranking_enable: Optional[bool] = None
    reranking_model: Optional[RerankingModel] = None


class KnowledgeRetrievalNodeData(NodeDataBase):
    type: Literal["knowledge-retrieval"]
    query_variable_selector: Selector
    dataset_ids: list[str] = Field(..., min_length=1)
    retrieval_mode: Literal["single", "multiple"] = "multiple"
    single_retrieval_config: Optional[dict[str, Any]] = None
    multiple_retrieval_config: Optional[MultipleRetrievalConfig] = None


class ClassDefinition(DSLModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)


class QuestionClassifierNodeData(NodeDataBase):
    type: Literal["question-classifier"]
    query_variable_selector: Selector
    model: ModelConfig
    classes: list[ClassDefinition] = Field(..., min_length=2)
    instruction: Optional[str] = None


class ConditionBranch(DSLModel):
    id: str = Field(..., min_length=1)
    logical_operator: LogicalOperator = "and"
    conditions: list[Condition] = Field(..., min_length=1)


class IfElseNodeData(NodeDataBase):
    type: Literal["if-else"]
    conditions: list[ConditionBranch] = Field(..., min_length=1)


class CodeOutput(DSLModel):
    variable: str = Field(..., min_length=1)
    variable_type: OutputType


class CodeNodeData(NodeDataBase):
    type: Literal["code"]
    code_language: CodeLanguage
    code: str = Field(..., min_length=1)
    variables: list[VariableBinding] = Field(default_factory=list)
    outputs: list[CodeOutput] = Field(..., min_length=1)

    @field_validator("outputs", mode="before")
    @classmethod
    def _outputs_from_mapping(cls, value):
        # Difyのエクスポート形式 {name: {type: ...}} をリスト形式へ
        if isinstance(value, dict):
            return [
                {"variable": name, "variable_type": (definition or {}).get("type", "string")}
                for name, definition in value.items()
            ]
        return value


class TemplateTransformNodeData(NodeDataBase):
    type: Literal["template-transform"]
    template: str = Field(..., min_length=1)
    variables: list[VariableBinding] = Field(default_factory=list)


class AggregatorGroup(DSLModel):
    output_type: OutputType
    variables: list[Selector]


class AggregatorAdvancedSettings(DSLModel):
    group_enabled: bool = False
    groups: Optional[list[AggregatorGroup]] = None


class VariableAggregatorNodeData(NodeDataBase):
    type: Literal["variable-aggregator"]
    variables: list[Selector] = Field(..., min_length=1)
    output_type: OutputType = "string"
    advanced_settings: Optional[AggregatorAdvancedSettings] = None


class VariableAssignerNodeData(NodeDataBase):
    type: Literal["variable-assigner"]
    output_type: OutputType = "string"
    variables: list[VariableBinding] = Field(default_factory=list)


class IterationNodeData(NodeDataBase):
    type: Literal["iteration"]
    iterator_selector: Selector
    output_selector: Selector
    output_type: OutputType
    is_parallel: Optional[bool] = None
    parallel_nums: Optional[int] = Field(None, gt=0)
    error_handle_mode: Optional[Literal["terminated", "continue-on-error", "remove-abnormal-output"]] = None
    start_node_id: Optional[str] = Field(None, description="反復内で最初に実行する子ノードのID")


class LoopNodeData(NodeDataBase):
    type: Literal["loop"]
    loop_condition: Optional[list[Condition]] = None
    max_iterations: Optional[int] = Field(None, gt=0)
    start_node_id: Optional[str] = Field(None, description="ループ内で最初に実行する子ノードのID")


class ExtractorParameter(DSLModel):
    name: str = Field(..., min_length=1)
    type: ExtractorParamType
    description: str = ""
    required: bool = False
    options: Optional[list[str]] = None


class ParameterExtractorNodeData(NodeDataBase):
    type: Literal["parameter-extractor"]
    query: Selector
    model: ModelConfig
    parameters: list[ExtractorParameter] = Field(..., min_length=1)
    instruction: Optional[str] = None
    reasoning_mode: Optional[Literal["prompt", "function_call"]] = None


class AuthorizationConfig(DSLModel):
    type: Literal["no-auth", "api-key", "basic"] = "no-auth"
    config: Optional[dict[str, Any]] = None


class BodyConfig(DSLModel):
    type: BodyType = "none"
    data: Optional[Union[str, list[KeyValue]]] = None


class TimeoutConfig(DSLModel):
    connect: Optional[float] = Field(None, gt=0)
    read: Optional[float] = Field(None, gt=0)
    write: Optional[float] = Field(None, gt=0)


class HttpRequestNodeData(NodeDataBase):
    type: Literal["http-request"]
    method: HttpMethod
    url: str = Field(..., min_length=1)
    authorization: Optional[AuthorizationConfig] = None
    # Difyのエクスポートでは "Key:Value" 形式の文字列になることがある
    headers: Optional[Union[str, list[KeyValue]]] = None
    params: Optional[Union[str, list[KeyValue]]] = None
    body: Optional[BodyConfig] = None
    timeout: Optional[TimeoutConfig] = None


class ToolParameter(DSLModel):
    type: Literal["variable", "constant", "mixed"]
    value: Optional[Union[bool, int, float, str, list[str]]] = None
    variable_selector: Optional[Selector] = None


class ToolNodeData(NodeDataBase):
    type: Literal["tool"]
    provider_id: str = Field(..., min_length=1)
    provider_type: Literal["builtin", "api", "workflow"]
    provider_name: str = Field(..., min_length=1)
    tool_name: str = Field(..., min_length=1)
    tool_label: str = Field(..., min_length=1)
    tool_configurations: Optional[dict[str, Any]] = None
    tool_parameters: Optional[dict[str, ToolParameter]] = None


class AgentTool(DSLModel):
    provider_id: str = Field(..., min_length=1)
    provider_type: Literal["builtin", "api", "workflow"]
    provider_name: str = Field(..., min_length=1)
    tool_name: str = Field(..., min_length=1)
    tool_label: str = Field(..., min_length=1)
    tool_configurations: Optional[dict[str, Any]] = None


class AgentNodeData(NodeDataBase):
    type: Literal["agent"]
    agent_strategy_provider: Optional[str] = None
    agent_strategy_name: Optional[str] = None
    agent_parameters: Optional[dict[str, Any]] = None
    model: ModelConfig
    prompt_template: Optional[list[PromptMessage]] = None
    tools: list[AgentTool] = Field(default_factory=list)


class DocumentExtractorNodeData(NodeDataBase):
    type: Literal["document-extractor"]
    variable_selector: Selector


class ListOperatorNodeData(NodeDataBase):
    type: Literal["list-operator"]
    variable_selector: Selector
    operation: Optional[str] = None


NodeData = Annotated[
    Union[
        StartNodeData,
        EndNodeData,
        AnswerNodeData,
        LLMNodeData,
        KnowledgeRetrievalNodeData,
        QuestionClassifierNodeData,
        IfElseNodeData,
        CodeNodeData,
        TemplateTransformNodeData,
        VariableAggregatorNodeData,
        VariableAssignerNodeData,
        IterationNodeData,
        LoopNodeData,
        ParameterExtractorNodeData,
        HttpRequestNodeData,
        ToolNodeData,
        AgentNodeData,
        DocumentExtractorNodeData,
        ListOperatorNodeData,
    ],
    Field(discriminator="type"),
]


# ---- グラフ ----

class Node(DSLModel):
    id: str = Field(..., min_length=1)
    type: Literal["custom"] = "custom"
    data: NodeData
    position: Optional[Position] = None
    width: Optional[float] = None
    height: Optional[float] = None
    sourcePosition: Optional[str] = None
    targetPosition: Optional[str] = None
    selected: Optional[bool] = None
    parentId: Optional[str] = Field(None, description="反復・ループ内の子ノードが属する親ノードのID")


class EdgeData(DSLModel):
    sourceType: NodeType
    targetType: NodeType
    isInIteration: bool = False
    isInLoop: Optional[bool] = None
    iterationID: Optional[str] = None


class Edge(DSLModel):
    id: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    sourceHandle: str = Field("source", min_length=1)
    target: str = Field(..., min_length=1)
    targetHandle: str = Field("target", min_length=1)
    type: Literal["custom"] = "custom"
    zIndex: Optional[int] = None
    data: EdgeData


class Graph(DSLModel):
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)


# ---- アプリ・機能設定 ----

class AppConfig(DSLModel):
    name: str = Field(..., min_length=1)
    mode: AppMode = "workflow"
    icon: str = "🤖"
    icon_type: IconType = "emoji"
    icon_background: Optional[str] = None
    description: Optional[str] = None
    use_icon_as_answer_icon: Optional[bool] = None


class EnvironmentVariable(DSLModel):
    name: str = Field(..., min_length=1)
    value: str
    value_type: Optional[Literal["string", "number", "object", "secret", "array[string]"]] = None


class ConversationVariable(DSLModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    value_type: Literal["string", "number", "object", "secret", "array[string]"]
    value: Any = None
    description: Optional[str] = None


class Toggle(DSLModel):
    enabled: bool = False


class ImageUploadConfig(DSLModel):
    enabled: bool = False
    number_limits: Optional[int] = Field(None, gt=0)
    transfer_methods: Optional[list[Literal["remote_url", "local_file"]]] = None


class FileUploadConfig(DSLModel):
    enabled: bool = False
    image: Optional[ImageUploadConfig] = None
    allowed_file_types: Optional[list[str]] = None
    allowed_file_extensions: Optional[list[str]] = None
    allowed_file_upload_methods: Optional[list[str]] = None
    number_limits: Optional[int] = Field(None, gt=0)


class TextToSpeechConfig(DSLModel):
    enabled: bool = False
    voice: Optional[str] = None
    language: Optional[str] = None


class Features(DSLModel):
    file_upload: Optional[FileUploadConfig] = None
    text_to_speech: Optional[TextToSpeechConfig] = None
    speech_to_text: Optional[Toggle] = None
    retriever_resource: Optional[Toggle] = None
    sensitive_word_avoidance: Optional[Toggle] = None
    suggested_questions: Optional[list[str]] = None
    suggested_questions_after_answer: Optional[Toggle] = None
    opening_statement: Optional[str] = None


class WorkflowConfig(DSLModel):
    graph: Graph
    features: Optional[Features] = None
    environment_variables: Optional[list[EnvironmentVariable]] = None
    conversation_variables: Optional[list[ConversationVariable]] = None


class DifyDSL(DSLModel):
    """Dify DSL ドキュメント全体"""
    version: DSLVersion = "0.5.0"
    kind: Literal["app"] = "app"
    app: AppConfig
    workflow: Optional[WorkflowConfig] = None
    # pydanticのmodel_configと衝突するため別名で保持する
    app_model_config: Optional[dict[str, Any]] = Field(None, alias="model_config")
    dependencies: Optional[list[dict[str, Any]]] = None

    @model_validator(mode="after")
    def _workflow_required(self):
        if self.app.mode in ("workflow", "advanced-chat") and self.workflow is None:
            raise ValueError('Workflow mode requires "workflow" field')
        return self

    @property
    def nodes(self) -> list[Node]:
        return self.workflow.graph.nodes if self.workflow else []

    @property
    def edges(self) -> list[Edge]:
        return self.workflow.graph.edges if self.workflow else []

    def get_node(self, node_id: str) -> Optional[Node]:
        return next((node for node in self.nodes if node.id == node_id), None)

    def to_dict(self) -> dict:
        """YAML/JSONへ書き出すための辞書"""
        return self.model_dump(mode="json", exclude_none=True, by_alias=True)
