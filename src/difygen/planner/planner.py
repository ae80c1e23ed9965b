import time
from typing import Optional
from langchain_core.exceptions import OutputParserException
from langchain_core.output_parsers import JsonOutputParser
from pydantic import BaseModel, Field, ValidationError
from difygen.log_output.log import log
from difygen.planner.intent_analyzer import analyze_intent
from difygen.planner.plan_validator import validate_plan
from difygen.planner.state import (
    InputVariable,
    Intent,
    OutputDefinition,
    PlannedEdge,
    PlannedNode,
    PlanningResult,
    WorkflowPlan,
)
from difygen.prompts.planner_prompt import PLANNER_SYSTEM_PROMPT, build_few_shot_prompt, build_planning_prompt
from difygen.templates.template_store import TemplateStore, WorkflowTemplate, get_default_template_store
from difygen.tools.llm import ChatMessage, ChatOptions, LLMServiceError

"""
要求文からワークフローの計画（WorkflowPlan）を作るモジュール。
経路は テンプレート → LLM → ルール の順で、LLMの計画が使えない場合はルールに戻る。
"""

# テンプレートからそのまま計画を作る最低スコア
TEMPLATE_SCORE_THRESHOLD = 80
# これ以上の複雑度、またはこれらの機能を含む要求はテンプレートを使わない
COMPLEX_THRESHOLD = 4
COMPLEX_FEATURES = ("conditional", "classification", "iteration")

NODE_TITLES = {
    "start": "开始",
    "end": "结束",
    "answer": "回答",
    "llm": "AI 处理",
    "knowledge-retrieval": "知识检索",
    "question-classifier": "问题分类",
    "if-else": "条件判断",
    "code": "代码执行",
    "http-request": "HTTP 请求",
    "variable-aggregator": "变量聚合",
    "template-transform": "模板转换",
}

NODE_DESCRIPTIONS = {
    "start": "接收用户输入",
    "end": "输出结果",
    "answer": "直接回答用户",
    "llm": "使用大语言模型处理",
    "knowledge-retrieval": "从知识库检索相关内容",
    "question-classifier": "对用户问题进行分类",
    "if-else": "根据条件执行不同分支",
    "code": "执行自定义代码",
    "http-request": "调用外部 API",
    "variable-aggregator": "聚合多个变量",
    "template-transform": "转换数据格式",
}

# 直線型の計画で使う (機能, ノードID, ノード種別, タイトル, 説明)。並びがパイプラインの順序
LINEAR_STEPS = [
    ("rag", "retrieval", "knowledge-retrieval", "知识检索", "从知识库检索相关内容"),
    ("classification", "classifier", "question-classifier", "问题分类", "对用户问题进行分类"),
    ("code", "code", "code", "代码处理", "执行代码进行数据处理"),
    ("api", "http", "http-request", "API 请求", "调用外部 API"),
    ("llm", "llm", "llm", "AI 处理", "使用 LLM 进行处理"),
]


class BranchInfo(BaseModel):
    id: str
    name: str
    needs_retrieval: bool = False
    dataset_id: Optional[str] = None
    dataset_name: Optional[str] = None


def extract_branches(request: str) -> list[BranchInfo]:
    """要求文のキーワードから分類の分岐を推定する"""
    branches = []
    if "技术" in request or "产品" in request:
        branches.append(BranchInfo(
            id="tech",
            name="技术支持",
            needs_retrieval=any(k in request for k in ("知识", "检索", "文档")),
            dataset_id="tech-docs",
            dataset_name="技术文档库",
        ))
    if any(k in request for k in ("账单", "付款", "退款")):
        branches.append(BranchInfo(
            id="billing",
            name="账单咨询",
            needs_retrieval=any(k in request for k in ("知识", "检索", "FAQ")),
            dataset_id="billing-faq",
            dataset_name="账单FAQ库",
        ))
    if "其他" in request or "一般" in request or branches:
        branches.append(BranchInfo(id="other", name="其他问题"))

    if not branches:
        branches = [
            BranchInfo(id="category1", name="类别一", needs_retrieval=True, dataset_id="dataset-1"),
            BranchInfo(id="category2", name="类别二", needs_retrieval=True, dataset_id="dataset-2"),
            BranchInfo(id="default", name="默认"),
        ]
    return branches


def generate_workflow_name(intent: Intent) -> str:
    return f"{intent.domain}{intent.action}" if intent.domain else f"智能{intent.action}"


def infer_input_variables(request: str) -> list[InputVariable]:
    variables = [InputVariable(name="input", label="用户输入", type="paragraph", required=True, description="用户的输入内容")]
    if "文档" in request or "文件" in request:
        variables.append(InputVariable(name="file", label="上传文件", type="file", required=False, description="可选的文件上传"))
    return variables


def infer_outputs(nodes: list[PlannedNode]) -> list[OutputDefinition]:
    output_node = next((n for n in reversed(nodes) if n.type not in ("start", "end")), None)
    if output_node is None:
        return []
    variable = "text" if output_node.type == "llm" else "output"
    return [OutputDefinition(name="result", source=[output_node.id, variable], description="处理结果")]


def plan_from_template(request: str, template: WorkflowTemplate, intent: Intent) -> WorkflowPlan:
    nodes = [
        PlannedNode(
            id=f"{node_type}-{index}",
            type=node_type,
            title=NODE_TITLES.get(node_type, node_type),
            description=NODE_DESCRIPTIONS.get(node_type, ""),
        )
        for index, node_type in enumerate(template.metadata.node_types)
    ]
    edges = [PlannedEdge(source=a.id, target=b.id) for a, b in zip(nodes, nodes[1:])]
    return WorkflowPlan(
        name=template.metadata.name,
        description=template.metadata.description,
        intent=intent,
        nodes=nodes,
        edges=edges,
        input_variables=infer_input_variables(request),
        outputs=infer_outputs(nodes),
        confidence=0.85,
    )


def plan_linear_workflow(request: str, intent: Intent) -> WorkflowPlan:
    required = {f.type for f in intent.required_features()}
    nodes = [PlannedNode(id="start", type="start", title="开始", description="接收用户输入")]
    edges = []
    prev = "start"
    for feature, node_id, node_type, title, description in LINEAR_STEPS:
        if feature in required:
            nodes.append(PlannedNode(id=node_id, type=node_type, title=title, description=description))
            edges.append(PlannedEdge(source=prev, target=node_id))
            prev = node_id

    if not any(n.type == "llm" for n in nodes):
        nodes.append(PlannedNode(id="llm", type="llm", title="AI 处理", description="使用 LLM 进行处理"))
        edges.append(PlannedEdge(source=prev, target="llm"))
        prev = "llm"

    nodes.append(PlannedNode(id="end", type="end", title="结束", description="输出结果"))
    edges.append(PlannedEdge(source=prev, target="end"))
    return WorkflowPlan(
        name=generate_workflow_name(intent),
        description=request,
        intent=intent,
        nodes=nodes,
        edges=edges,
        input_variables=infer_input_variables(request),
        outputs=infer_outputs(nodes),
        confidence=0.7,
    )


def plan_branching_workflow(request: str, intent: Intent) -> WorkflowPlan:
    branches = extract_branches(request)
    nodes = [
        PlannedNode(id="start", type="start", title="开始", description="接收用户输入"),
        PlannedNode(
            id="classifier",
            type="question-classifier",
            title="问题分类",
            description="对用户问题进行智能分类",
            config_hints={"classes": [{"id": b.id, "name": b.name} for b in branches]},
        ),
    ]
    edges = [PlannedEdge(source="start", target="classifier")]

    for branch in branches:
        llm_id = f"llm-{branch.id}"
        if branch.needs_retrieval:
            retrieval_id = f"retrieval-{branch.id}"
            nodes.append(PlannedNode(
                id=retrieval_id,
                type="knowledge-retrieval",
                title=f"{branch.name}知识检索",
                description=f"从{branch.dataset_name or '知识库'}检索",
                config_hints={"dataset_id": branch.dataset_id},
            ))
            edges.append(PlannedEdge(source="classifier", target=retrieval_id, source_handle=branch.id, condition=branch.name))
            nodes.append(PlannedNode(id=llm_id, type="llm", title=f"{branch.name}回答", description=f"基于检索结果生成{branch.name}回答"))
            edges.append(PlannedEdge(source=retrieval_id, target=llm_id))
        else:
            nodes.append(PlannedNode(id=llm_id, type="llm", title=f"{branch.name}回答", description=f"直接生成{branch.name}回答"))
            edges.append(PlannedEdge(source="classifier", target=llm_id, source_handle=branch.id, condition=branch.name))
        edges.append(PlannedEdge(source=llm_id, target="aggregator"))

    nodes.append(PlannedNode(id="aggregator", type="variable-aggregator", title="结果聚合", description="聚合各分支的输出结果"))
    nodes.append(PlannedNode(id="end", type="end", title="结束", description="输出最终结果"))
    edges.append(PlannedEdge(source="aggregator", target="end"))
    return WorkflowPlan(
        name=generate_workflow_name(intent),
        description=request,
        intent=intent,
        nodes=nodes,
        edges=edges,
        input_variables=infer_input_variables(request),
        outputs=[OutputDefinition(name="final_answer", source=["aggregator", "output"], description="最终回答")],
        confidence=0.75,
    )


def plan_from_rules(request: str, intent: Intent) -> WorkflowPlan:
    if intent.has_feature("classification") and (intent.has_feature("conditional") or intent.has_feature("rag")):
        return plan_branching_workflow(request, intent)
    return plan_linear_workflow(request, intent)


class PlannerConfig(BaseModel):
    use_llm_for_complex: bool = Field(True, description="LLMが設定されていればテンプレートで決まらない要求をLLMで計画する")
    template_threshold: float = TEMPLATE_SCORE_THRESHOLD
    temperature: float = 0.2


class WorkflowPlanner:
    def __init__(
        self,
        llm_service=None,
        template_store: Optional[TemplateStore] = None,
        config: Optional[PlannerConfig] = None,
    ):
        self.llm_service = llm_service
        self.template_store = template_store or get_default_template_store()
        self.config = config or PlannerConfig()

    async def plan(self, request: str, context: Optional[str] = None) -> PlanningResult:
        start_time = time.time()
        try:
            intent = analyze_intent(request)
            log("info", f"意図を解析しました: 動作={intent.action}, 領域={intent.domain}, 複雑度={intent.complexity}, 機能={[f.type for f in intent.features]}")

            is_complex = intent.complexity >= COMPLEX_THRESHOLD or any(intent.has_feature(f) for f in COMPLEX_FEATURES)
            if not is_complex:
                match = self.template_store.find_best(request)
                if match is not None and match.score >= self.config.template_threshold:
                    log("info", f"テンプレート '{match.template.id}'（スコア {match.score}）から計画を作成します")
                    return PlanningResult(
                        success=True,
                        plan=plan_from_template(request, match.template, intent),
                        duration=time.time() - start_time,
                        source="template",
                    )
            else:
                log("info", "複雑な要求のためテンプレート照合をスキップします")

            if self.llm_service is not None and self.config.use_llm_for_complex:
                plan = await self._plan_with_llm(request, intent, context)
                if plan is not None:
                    return PlanningResult(success=True, plan=plan, duration=time.time() - start_time, source="llm")

            log("info", "ルールベースで計画を作成します")
            return PlanningResult(
                success=True,
                plan=plan_from_rules(request, intent),
                duration=time.time() - start_time,
                source="rules",
            )
        except Exception as e:
            log("error", f"ワークフローの計画に失敗しました: {e}")
            return PlanningResult(success=False, error=str(e), duration=time.time() - start_time)

    async def _plan_with_llm(self, request: str, intent: Intent, context: Optional[str]) -> Optional[WorkflowPlan]:
        """LLMで計画する。使えない結果ならログを出してNoneを返し、呼び出し側でルールに戻す"""
        log("info", "LLMでワークフローを計画します")
        messages = [
            ChatMessage(role="system", content=PLANNER_SYSTEM_PROMPT),
            ChatMessage(role="user", content=f"{build_few_shot_prompt()}\n\n{build_planning_prompt(request, context)}"),
        ]
        try:
            response = await self.llm_service.chat(messages, ChatOptions(temperature=self.config.temperature))
            # ```json のコードブロックで返ってきても取り出せる
            data = JsonOutputParser().parse(response.content)
            if not isinstance(data, dict):
                raise ValueError("Planner response must be a JSON object")
            # 意図が省略されていればルールで解析したものを使う
            data.setdefault("intent", intent.model_dump())
            plan = WorkflowPlan.model_validate(data)
        except (LLMServiceError, OutputParserException, ValueError, ValidationError) as e:
            log("warning", f"LLMによる計画を利用できないためルールベースに切り替えます: {e}")
            return None

        validation = validate_plan(plan)
        if not validation.valid:
            log("warning", f"LLMの計画に誤りがあるためルールベースに切り替えます: {'; '.join(validation.errors)}")
            return None
        for warning in validation.warnings:
            log("warning", f"LLMの計画: {warning}")
        log("success", f"LLMで計画を作成しました（{plan.summary()}）")
        return plan


def create_planner(llm_service=None, template_store: Optional[TemplateStore] = None, config: Optional[PlannerConfig] = None) -> WorkflowPlanner:
    return WorkflowPlanner(llm_service=llm_service, template_store=template_store, config=config)
