from typing import Any, Optional
from difygen.dsl.id_generator import IdGenerator
from difygen.dsl.schema import (
    AggregatorAdvancedSettings,
    AnswerNodeData,
    AppConfig,
    BodyConfig,
    ClassDefinition,
    CodeNodeData,
    CodeOutput,
    Condition,
    ConditionBranch,
    ContextConfig,
    DifyDSL,
    Edge,
    EdgeData,
    EndNodeData,
    Features,
    FileUploadConfig,
    Graph,
    HttpRequestNodeData,
    IfElseNodeData,
    KeyValue,
    KnowledgeRetrievalNodeData,
    LLMNodeData,
    ModelConfig,
    CompletionParams,
    MultipleRetrievalConfig,
    Node,
    PromptMessage,
    QuestionClassifierNodeData,
    StartNodeData,
    StartVariable,
    TemplateTransformNodeData,
    TextToSpeechConfig,
    TimeoutConfig,
    VariableAggregatorNodeData,
    VariableBinding,
    WorkflowConfig,
    AuthorizationConfig,
)

"""
ワークフローDSLを組み立てるビルダー。
IDを指定しないノードには、ビルダーに渡したIdGeneratorから "llm-1" のようなIDを割り当てる。
"""


def create_edge(
    source: str,
    target: str,
    source_type: str,
    target_type: str,
    source_handle: str = "source",
    target_handle: str = "target",
    edge_id: Optional[str] = None,
    is_in_iteration: bool = False,
    is_in_loop: bool = False,
    iteration_id: Optional[str] = None,
) -> Edge:
    return Edge(
        id=edge_id or f"{source}-{target}",
        source=source,
        sourceHandle=source_handle,
        target=target,
        targetHandle=target_handle,
        type="custom",
        zIndex=0,
        data=EdgeData(
            sourceType=source_type,
            targetType=target_type,
            isInIteration=is_in_iteration,
            isInLoop=is_in_loop,
            iterationID=iteration_id,
        ),
    )


class WorkflowBuilder:
    def __init__(
        self,
        name: str,
        description: Optional[str] = None,
        mode: str = "workflow",
        icon: str = "🤖",
        id_generator: Optional[IdGenerator] = None,
    ):
        self.name = name
        self.description = description
        self.mode = mode
        self.icon = icon
        self.id_generator = id_generator or IdGenerator()
        self.nodes: list[Node] = []
        self.edges: list[Edge] = []
        self.last_node_id: Optional[str] = None

    def _add(self, node_id: str, data: Any) -> "WorkflowBuilder":
        self.nodes.append(Node(id=node_id, type="custom", data=data))
        self.last_node_id = node_id
        return self

    def _node_id(self, node_id: Optional[str], prefix: str) -> str:
        return node_id or self.id_generator.next(prefix)

    def add_start(self, variables: list[dict], title: str = "开始", desc: Optional[str] = None) -> "WorkflowBuilder":
        """
        variables: {"name", "label", "type", "required", "max_length", "options", "default"} の辞書のリスト
        開始ノードのIDは常に "start"
        """
        data = StartNodeData(
            type="start",
            title=title,
            desc=desc,
            variables=[
                StartVariable(
                    variable=v["name"],
                    label=v["label"],
                    type=v.get("type", "text-input"),
                    required=v.get("required", True),
                    max_length=v.get("max_length"),
                    options=v.get("options"),
                    default=v.get("default"),
                )
                for v in variables
            ],
        )
        return self._add("start", data)

    def add_end(self, outputs: list[dict], node_id: Optional[str] = None, title: str = "结束",
                desc: Optional[str] = None) -> "WorkflowBuilder":
        """outputs: {"name", "source": [nodeId, variable]} の辞書のリスト"""
        data = EndNodeData(
            type="end",
            title=title,
            desc=desc,
            outputs=[VariableBinding(variable=o["name"], value_selector=o["source"]) for o in outputs],
        )
        return self._add(self._node_id(node_id, "end"), data)

    def add_answer(self, answer: str, node_id: Optional[str] = None, title: str = "回答") -> "WorkflowBuilder":
        data = AnswerNodeData(type="answer", title=title, answer=answer)
        return self._add(self._node_id(node_id, "answer"), data)

    def add_llm(
        self,
        user_prompt: str,
        node_id: Optional[str] = None,
        title: str = "LLM",
        desc: Optional[str] = None,
        system_prompt: Optional[str] = None,
        provider: str = "openai",
        model: str = "gpt-4o",
        temperature: float = 0.7,
        max_tokens: int = 4096,
        context_selector: Optional[list[str]] = None,
    ) -> "WorkflowBuilder":
        prompt_template = []
        if system_prompt:
            prompt_template.append(PromptMessage(role="system", text=system_prompt))
        prompt_template.append(PromptMessage(role="user", text=user_prompt))
        data = LLMNodeData(
            type="llm",
            title=title,
            desc=desc,
            model=ModelConfig(
                provider=provider,
                name=model,
                mode="chat",
                completion_params=CompletionParams(temperature=temperature, max_tokens=max_tokens),
            ),
            prompt_template=prompt_template,
            context=ContextConfig(enabled=True, variable_selector=context_selector) if context_selector else None,
        )
        return self._add(self._node_id(node_id, "llm"), data)

    def add_knowledge_retrieval(
        self,
        query_from: list[str],
        dataset_ids: list[str],
        node_id: Optional[str] = None,
        title: str = "知识检索",
        desc: Optional[str] = None,
        top_k: int = 5,
        score_threshold: Optional[float] = None,
        reranking_enabled: bool = False,
        reranking_model: Optional[dict] = None,
    ) -> "WorkflowBuilder":
        data = KnowledgeRetrievalNodeData(
            type="knowledge-retrieval",
            title=title,
            desc=desc,
            query_variable_selector=query_from,
            dataset_ids=dataset_ids,
            retrieval_mode="multiple",
            multiple_retrieval_config=MultipleRetrievalConfig(
                top_k=top_k,
                score_threshold=score_threshold if score_threshold is not None else 0.5,
                score_threshold_enabled=score_threshold is not None,
                reranking_enable=reranking_enabled,
                reranking_model=reranking_model,
            ),
        )
        return self._add(self._node_id(node_id, "retrieval"), data)

    def add_question_classifier(
        self,
        query_from: list[str],
        classes: list[dict],
        node_id: Optional[str] = None,
        title: str = "问题分类",
        desc: Optional[str] = None,
        instruction: Optional[str] = None,
        provider: str = "openai",
        model: str = "gpt-4o-mini",
    ) -> "WorkflowBuilder":
        data = QuestionClassifierNodeData(
            type="question-classifier",
            title=title,
            desc=desc,
            query_variable_selector=query_from,
            model=ModelConfig(
                provider=provider,
                name=model,
                mode="chat",
                completion_params=CompletionParams(temperature=0),
            ),
            classes=[ClassDefinition(id=c["id"], name=c["name"]) for c in classes],
            instruction=instruction,
        )
        return self._add(self._node_id(node_id, "classifier"), data)

    def add_if_else(
        self,
        conditions: list[dict],
        node_id: Optional[str] = None,
        title: str = "条件判断",
        desc: Optional[str] = None,
    ) -> "WorkflowBuilder":
        """
        conditions: {"id", "logical_operator", "rules": [{"variable_selector", "operator", "value"}]} のリスト
        各分岐のidが出力エッジのsourceHandleになり、どれにも該当しない場合は "false"
        """
        data = IfElseNodeData(
            type="if-else",
            title=title,
            desc=desc,
            conditions=[
                ConditionBranch(
                    id=cond["id"],
                    logical_operator=cond.get("logical_operator", "and"),
                    conditions=[
                        Condition(
                            variable_selector=rule["variable_selector"],
                            comparison_operator=rule["operator"],
                            value=rule.get("value", ""),
                        )
                        for rule in cond["rules"]
                    ],
                )
                for cond in conditions
            ],
        )
        return self._add(self._node_id(node_id, "ifelse"), data)

    def add_code(
        self,
        code: str,
        inputs: list[dict],
        outputs: list[dict],
        language: str = "python3",
        node_id: Optional[str] = None,
        title: str = "代码执行",
        desc: Optional[str] = None,
    ) -> "WorkflowBuilder":
        data = CodeNodeData(
            type="code",
            title=title,
            desc=desc,
            code_language=language,
            code=code,
            variables=[VariableBinding(variable=i["name"], value_selector=i["source"]) for i in inputs],
            outputs=[CodeOutput(variable=o["name"], variable_type=o["type"]) for o in outputs],
        )
        return self._add(self._node_id(node_id, "code"), data)

    def add_http_request(
        self,
        url: str,
        method: str = "get",
        node_id: Optional[str] = None,
        title: str = "HTTP 请求",
        desc: Optional[str] = None,
        headers: Optional[list[dict]] = None,
        params: Optional[list[dict]] = None,
        body: Optional[dict] = None,
        authorization: Optional[dict] = None,
        timeout: Optional[dict] = None,
    ) -> "WorkflowBuilder":
        data = HttpRequestNodeData(
            type="http-request",
            title=title,
            desc=desc,
            method=method,
            url=url,
            headers=[KeyValue(**h) for h in headers] if headers else None,
            params=[KeyValue(**p) for p in params] if params else None,
            body=BodyConfig(type=body["type"], data=body.get("data")) if body else None,
            timeout=TimeoutConfig(**timeout) if timeout else None,
        )
        if authorization and authorization.get("type", "no-auth") != "no-auth":
            data.authorization = AuthorizationConfig(
                type=authorization["type"],
                config={
                    "type": "bearer",
                    "api_key": authorization.get("api_key"),
                    "username": authorization.get("username"),
                    "password": authorization.get("password"),
                },
            )
        return self._add(self._node_id(node_id, "http"), data)

    def add_template(
        self,
        template: str,
        variables: list[dict],
        node_id: Optional[str] = None,
        title: str = "模板转换",
        desc: Optional[str] = None,
    ) -> "WorkflowBuilder":
        data = TemplateTransformNodeData(
            type="template-transform",
            title=title,
            desc=desc,
            template=template,
            variables=[VariableBinding(variable=v["name"], value_selector=v["source"]) for v in variables],
        )
        return self._add(self._node_id(node_id, "template"), data)

    def add_aggregator(
        self,
        variables: list[list[str]],
        output_type: str = "string",
        node_id: Optional[str] = None,
        title: str = "变量聚合",
        desc: Optional[str] = None,
        group_enabled: Optional[bool] = None,
    ) -> "WorkflowBuilder":
        data = VariableAggregatorNodeData(
            type="variable-aggregator",
            title=title,
            desc=desc,
            variables=variables,
            output_type=output_type,
            advanced_settings=AggregatorAdvancedSettings(group_enabled=group_enabled) if group_enabled is not None else None,
        )
        return self._add(self._node_id(node_id, "aggregator"), data)

    def add_node(self, node: Node) -> "WorkflowBuilder":
        self.nodes.append(node)
        self.last_node_id = node.id
        return self

    def connect(self, source: str, target: str, source_handle: str = "source",
                target_handle: str = "target") -> "WorkflowBuilder":
        source_node = next((n for n in self.nodes if n.id == source), None)
        target_node = next((n for n in self.nodes if n.id == target), None)
        if source_node is None:
            raise ValueError(f'Source node "{source}" not found')
        if target_node is None:
            raise ValueError(f'Target node "{target}" not found')
        self.edges.append(
            create_edge(
                source=source,
                target=target,
                source_type=source_node.data.type,
                target_type=target_node.data.type,
                source_handle=source_handle,
                target_handle=target_handle,
            )
        )
        return self

    def connect_from_last(self, target: str, source_handle: str = "source") -> "WorkflowBuilder":
        if self.last_node_id is None:
            raise ValueError("No previous node to connect from")
        return self.connect(self.last_node_id, target, source_handle=source_handle)

    def build(self) -> DifyDSL:
        return DifyDSL(
            version="0.5.0",
            kind="app",
            app=AppConfig(
                name=self.name,
                mode=self.mode,
                icon=self.icon,
                icon_type="emoji",
                description=self.description,
            ),
            workflow=WorkflowConfig(
                graph=Graph(nodes=list(self.nodes), edges=list(self.edges)),
                features=Features(
                    file_upload=FileUploadConfig(enabled=False),
                    text_to_speech=TextToSpeechConfig(enabled=False),
                ),
            ),
        )
