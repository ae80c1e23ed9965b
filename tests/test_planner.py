import asyncio
import json
from difygen.planner.intent_analyzer import analyze_intent
from difygen.planner.plan_validator import (
    check_plan_features,
    estimate_plan_complexity,
    validate_plan,
)
from difygen.planner.planner import (
    PlannerConfig,
    WorkflowPlanner,
    create_planner,
    plan_from_rules,
)
from difygen.planner.state import PlannedEdge, PlannedNode
from difygen.prompts.planner_prompt import EXAMPLE_PLAN
from difygen.templates.template_store import TemplateStore, TemplateStoreConfig
from difygen.tools.llm import LLMServiceError

BRANCHING_REQUEST = "创建智能客服，先识别用户意图分类，技术问题从知识库检索文档回答，账单问题直接回答"


def empty_store():
    return TemplateStore(TemplateStoreConfig(include_builtin=False))


def test_template_path_for_simple_request():
    result = asyncio.run(WorkflowPlanner().plan("创建一个翻译工作流"))
    assert result.success
    assert result.source == "template"
    assert [n.id for n in result.plan.nodes] == ["start-0", "llm-1", "end-2"]
    assert result.plan.confidence == 0.85
    assert result.plan.outputs[0].source == ["llm-1", "text"]


def test_branching_plan_from_rules():
    result = asyncio.run(WorkflowPlanner().plan(BRANCHING_REQUEST))
    plan = result.plan
    assert result.source == "rules"
    # 技術・請求の両分岐に検索ノードが付く
    assert [n.id for n in plan.nodes] == [
        "start", "classifier", "retrieval-tech", "llm-tech", "retrieval-billing", "llm-billing",
        "llm-other", "aggregator", "end",
    ]
    assert plan.nodes[1].type == "question-classifier"
    assert [c["id"] for c in plan.nodes[1].config_hints["classes"]] == ["tech", "billing", "other"]
    handles = {e.source_handle for e in plan.edges if e.source == "classifier"}
    assert handles == {"tech", "billing", "other"}
    assert plan.outputs[0].name == "final_answer"
    assert plan.confidence == 0.75
    assert validate_plan(plan).valid


def test_linear_plan_follows_pipeline_order():
    planner = WorkflowPlanner(template_store=empty_store())
    result = asyncio.run(planner.plan("调用天气api获取数据，然后用python代码格式化"))
    plan = result.plan
    assert result.source == "rules"
    assert [n.id for n in plan.nodes] == ["start", "code", "http", "llm", "end"]
    assert [(e.source, e.target) for e in plan.edges] == [
        ("start", "code"), ("code", "http"), ("http", "llm"), ("llm", "end"),
    ]
    assert plan.outputs[0].source == ["llm", "text"]
    assert plan.confidence == 0.7


def test_optional_features_are_left_out_of_linear_plan():
    plan = plan_from_rules("使用llm回答问题，可选知识库检索", analyze_intent("使用llm回答问题，可选知识库检索"))
    assert [n.type for n in plan.nodes] == ["start", "llm", "end"]


def test_file_input_is_inferred():
    plan = plan_from_rules("总结上传的文档", analyze_intent("总结上传的文档"))
    assert [v.name for v in plan.input_variables] == ["input", "file"]
    assert plan.input_variables[1].required is False


def test_llm_plan_is_used(scripted_llm):
    response = f"规划如下：\n```json\n{EXAMPLE_PLAN.model_dump_json(exclude={'intent'})}\n```"
    llm = scripted_llm([response])
    planner = WorkflowPlanner(llm_service=llm, template_store=empty_store())
    result = asyncio.run(planner.plan(BRANCHING_REQUEST))

    assert result.source == "llm"
    assert result.plan.name == "智能问答助手"
    # 省略された意図はルールで補われる
    assert result.plan.intent.has_feature("classification")
    assert len(llm.calls) == 1
    assert llm.calls[0][0].role == "system"


def test_invalid_llm_plan_falls_back_to_rules(scripted_llm):
    bad_plan = EXAMPLE_PLAN.model_copy(update={"nodes": [n for n in EXAMPLE_PLAN.nodes if n.type != "start"]})
    planner = WorkflowPlanner(llm_service=scripted_llm([bad_plan.model_dump_json()]), template_store=empty_store())
    result = asyncio.run(planner.plan(BRANCHING_REQUEST))
    assert result.success
    assert result.source == "rules"


def test_llm_error_falls_back_to_rules(scripted_llm):
    for response in ("这不是 JSON", LLMServiceError("timeout"), json.dumps({"name": "缺少节点字段", "confidence": 7})):
        planner = WorkflowPlanner(llm_service=scripted_llm([response]), template_store=empty_store())
        result = asyncio.run(planner.plan(BRANCHING_REQUEST))
        assert result.success
        assert result.source == "rules"


def test_llm_disabled_by_config(scripted_llm):
    llm = scripted_llm([EXAMPLE_PLAN.model_dump_json()])
    planner = create_planner(llm, empty_store(), PlannerConfig(use_llm_for_complex=False))
    result = asyncio.run(planner.plan(BRANCHING_REQUEST))
    assert result.source == "rules"
    assert llm.calls == []


def test_unexpected_error_becomes_failure():
    class BrokenStore:
        def find_best(self, query):
            raise RuntimeError("store is down")

    result = asyncio.run(WorkflowPlanner(template_store=BrokenStore()).plan("创建一个翻译工作流"))
    assert not result.success
    assert "store is down" in result.error


def test_llm_plan_without_code_fence(scripted_llm):
    planner = WorkflowPlanner(llm_service=scripted_llm([EXAMPLE_PLAN.model_dump_json()]), template_store=empty_store())
    result = asyncio.run(planner.plan(BRANCHING_REQUEST))
    assert result.source == "llm"
    assert [n.id for n in result.plan.nodes] == [n.id for n in EXAMPLE_PLAN.nodes]


def test_llm_plan_that_is_not_an_object_falls_back(scripted_llm):
    planner = WorkflowPlanner(llm_service=scripted_llm(['```json\n["start", "end"]\n```']), template_store=empty_store())
    result = asyncio.run(planner.plan(BRANCHING_REQUEST))
    assert result.source == "rules"


def test_validate_plan_messages():
    plan = EXAMPLE_PLAN.model_copy(update={
        "nodes": EXAMPLE_PLAN.nodes + [PlannedNode(id="llm", type="llm", title="重复")],
        "edges": EXAMPLE_PLAN.edges + [
            PlannedEdge(source="llm", target="ghost"),
            PlannedEdge(source="end", target="start"),
        ],
    })
    validation = validate_plan(plan)
    assert not validation.valid
    assert "Duplicate node ID: llm" in validation.errors
    assert "Edge references non-existent target node: ghost" in validation.errors
    assert any(w.startswith("Potential cycles detected: ") for w in validation.warnings)


def test_plan_features_and_complexity():
    assert check_plan_features(EXAMPLE_PLAN, ["rag", "llm"])
    assert not check_plan_features(EXAMPLE_PLAN, ["code"])
    assert estimate_plan_complexity(EXAMPLE_PLAN) == 4
    plan = plan_from_rules(BRANCHING_REQUEST, analyze_intent(BRANCHING_REQUEST))
    # 9ノード + 分類1つ(2)
    assert estimate_plan_complexity(plan) == 11
