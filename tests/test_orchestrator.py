import asyncio
from difygen.dsl.builder import WorkflowBuilder
from difygen.dsl.yaml_io import stringify_yaml
from difygen.generator.generator import create_simple_dsl
from difygen.orchestrator.orchestrator import (
    GenerationRequest,
    OrchestratorConfig,
    WorkflowOrchestrator,
    detect_changes,
)
from difygen.planner.planner import WorkflowPlanner
from difygen.templates.template_store import TemplateStore, TemplateStoreConfig


def rules_only_planner():
    return WorkflowPlanner(template_store=TemplateStore(TemplateStoreConfig(include_builtin=False)))


def polished_dsl():
    """simple DSLの後ろに仕上げ用のLLMノードを足したもの"""
    return (
        WorkflowBuilder(name="测试工作流", description="测试用")
        .add_start([{"name": "input", "label": "输入", "type": "paragraph"}])
        .add_llm("{{#start.input#}}", node_id="llm")
        .add_llm("润色：{{#llm.text#}}", node_id="polish")
        .add_end([{"name": "result", "source": ["polish", "text"]}], node_id="end")
        .connect("start", "llm")
        .connect("llm", "polish")
        .connect("polish", "end")
        .build()
    )


def test_template_short_circuit_skips_llm(scripted_llm):
    llm = scripted_llm(["unused"])
    orchestrator = WorkflowOrchestrator(llm)
    result = asyncio.run(orchestrator.generate(GenerationRequest(prompt="创建一个翻译工作流", preferred_model="gpt-4o-mini")))

    assert result.success
    assert llm.calls == []
    assert result.metadata.template_used == "translation"
    assert [n.data.type for n in result.dsl.nodes] == ["start", "llm", "end"]
    assert result.dsl.get_node("llm").data.model.name == "gpt-4o-mini"
    assert result.yaml.startswith("app:")


def test_repair_loop_fixes_invalid_dsl(scripted_llm, broken_yaml, good_yaml):
    llm = scripted_llm([broken_yaml, good_yaml])
    orchestrator = WorkflowOrchestrator(llm, planner=rules_only_planner())
    result = asyncio.run(orchestrator.generate(GenerationRequest(prompt="创建一个问答工作流", skip_templates=True)))

    assert result.success
    assert result.metadata.retries == 1
    assert result.metadata.template_used is None
    assert result.metadata.plan_summary == "3 nodes, 2 edges"
    assert result.metadata.tokens_used == 20

    first, second = llm.calls
    assert first[0].role == "system"
    assert "## 工作流规划" in first[-1].content
    assert "## 验证错误" in second[-1].content
    assert "## 当前 DSL" in second[-1].content


def test_failure_after_retries(scripted_llm, broken_yaml):
    llm = scripted_llm([broken_yaml])
    orchestrator = WorkflowOrchestrator(llm, planner=rules_only_planner())
    result = asyncio.run(orchestrator.generate(GenerationRequest(prompt="创建一个问答工作流", skip_templates=True)))

    assert not result.success
    assert result.error.startswith("Failed to fix after 2 retries. Errors: ")
    assert len(llm.calls) == 3
    assert result.yaml is not None


def test_max_fix_retries_zero_means_single_attempt(scripted_llm, broken_yaml):
    llm = scripted_llm([broken_yaml])
    orchestrator = WorkflowOrchestrator(llm, OrchestratorConfig(max_fix_retries=0), planner=rules_only_planner())
    result = asyncio.run(orchestrator.generate(GenerationRequest(prompt="创建一个问答工作流", skip_templates=True)))
    assert not result.success
    assert len(llm.calls) == 1


def test_max_complexity_is_enforced(scripted_llm):
    llm = scripted_llm(["unused"])
    orchestrator = WorkflowOrchestrator(llm, planner=rules_only_planner())
    result = asyncio.run(orchestrator.generate(GenerationRequest(prompt="翻译", max_complexity=1, skip_templates=True)))

    assert not result.success
    assert result.error == "Workflow complexity 2 exceeds max_complexity 1"
    assert llm.calls == []


def test_few_shot_examples_dropped_under_token_budget(monkeypatch, scripted_llm, good_yaml):
    # tiktokenのエンコーディング取得に通信が要らないよう文字数で数える
    monkeypatch.setattr("difygen.orchestrator.orchestrator.count_tokens", lambda text: len(text))
    llm = scripted_llm([good_yaml])
    orchestrator = WorkflowOrchestrator(llm, planner=rules_only_planner())
    asyncio.run(orchestrator.generate(GenerationRequest(prompt="创建一个知识库问答工作流", skip_templates=True)))
    assert "以下是一些工作流生成的示例" in llm.calls[0][-1].content

    llm = scripted_llm([good_yaml])
    orchestrator = WorkflowOrchestrator(llm, OrchestratorConfig(max_prompt_tokens=1), planner=rules_only_planner())
    result = asyncio.run(orchestrator.generate(GenerationRequest(prompt="创建一个知识库问答工作流", skip_templates=True)))
    assert result.success
    assert "以下是一些工作流生成的示例" not in llm.calls[0][-1].content


def test_planning_error_becomes_failure(scripted_llm):
    class BrokenPlanner:
        async def plan(self, request, context=None):
            raise RuntimeError("planner crashed")

    orchestrator = WorkflowOrchestrator(scripted_llm(["unused"]), planner=BrokenPlanner())
    result = asyncio.run(orchestrator.generate(GenerationRequest(prompt="x", skip_templates=True)))
    assert not result.success
    assert result.error == "planner crashed"


def test_plain_string_request(scripted_llm):
    result = asyncio.run(WorkflowOrchestrator(scripted_llm(["unused"])).generate("创建一个翻译工作流"))
    assert result.success
    assert result.metadata.template_used == "translation"


def test_edit_reports_added_nodes(scripted_llm):
    original = create_simple_dsl("测试工作流", "测试用")
    llm = scripted_llm([f"修改后的工作流如下：\n```yaml\n{stringify_yaml(polished_dsl())}\n```"])
    result = asyncio.run(WorkflowOrchestrator(llm).edit(original, "在回答后增加润色步骤", ["llm"]))

    assert result.success
    assert [(c.type, c.target, c.id) for c in result.changes] == [("add", "node", "polish")]
    assert result.changes[0].description == "Added node polish"
    prompt = llm.calls[0][-1].content
    assert "## 编辑指令" in prompt
    assert "## 目标节点" in prompt


def test_detect_changes_reports_removed_nodes():
    changes = detect_changes(polished_dsl(), create_simple_dsl("测试工作流"))
    assert [c.description for c in changes] == ["Removed node polish"]
