from difygen.dsl.id_generator import IdGenerator
from difygen.dsl.schema import DifyDSL
from difygen.dsl.yaml_io import stringify_yaml
from difygen.templates.builtin import BUILTIN_TEMPLATES
from difygen.templates.template_store import (
    TemplateMetadata,
    TemplateStore,
    TemplateStoreConfig,
    WorkflowTemplate,
    get_default_template_store,
)
from difygen.tools.cache import CacheConfig
from difygen.validator.validator import validate_dsl


def test_builtin_templates_registered():
    store = TemplateStore()
    assert [t.id for t in store.get_all()] == [
        "simple-qa", "translation", "rag-qa", "intent-router",
        "summarizer", "api-caller", "code-processor", "conditional",
        "customer-support", "content-generation", "data-analysis", "code-review", "document-qa",
    ]
    assert len(BUILTIN_TEMPLATES) == 13
    assert store.get("rag-qa").metadata.category == "rag"
    assert [t.id for t in store.get_by_tag("知识库")] == ["rag-qa"]
    assert [t.id for t in store.get_by_category("analysis")] == ["summarizer", "data-analysis", "code-review"]
    assert {t.id for t in store.get_by_category("automation")} == {
        "intent-router", "api-caller", "code-processor", "conditional",
    }


def test_template_node_types_match_build():
    for template in get_default_template_store().get_all():
        dsl = template.build()
        assert tuple(dict.fromkeys(n.data.type for n in dsl.nodes)) == tuple(dict.fromkeys(template.metadata.node_types)), template.id


def test_simple_question_matches_simple_qa():
    best = TemplateStore().find_best("创建一个简单的问答工作流")
    assert best is not None
    assert best.template.id == "simple-qa"
    assert "问答" in best.matched_keywords


def test_knowledge_query_matches_rag_template():
    best = TemplateStore().find_best("知识库检索问答")
    assert "RAG" in best.template.metadata.tags


def test_translation_scores_above_threshold():
    best = TemplateStore().find_best("创建一个翻译工作流")
    assert best.template.id == "translation"
    assert best.score >= 80


def test_unmatched_query_returns_nothing():
    store = TemplateStore()
    assert store.match("zzzz qqqq") == []
    assert store.find_best("zzzz qqqq") is None


def test_match_limit_and_order():
    matches = TemplateStore().match("根据意图分类路由到不同分支", limit=3)
    assert len(matches) <= 3
    assert [m.score for m in matches] == sorted((m.score for m in matches), reverse=True)
    assert matches[0].template.id == "intent-router"


def test_build_is_pure_and_takes_params():
    template = TemplateStore().get("rag-qa")
    first = template.build({"dataset_ids": ["ds-1"], "model": "gpt-4o-mini"}, IdGenerator(base=0))
    second = template.build({"dataset_ids": ["ds-1"], "model": "gpt-4o-mini"}, IdGenerator(base=0))
    assert first.to_dict() == second.to_dict()
    retrieval = next(n for n in first.nodes if n.data.type == "knowledge-retrieval")
    assert retrieval.data.dataset_ids == ["ds-1"]
    llm = next(n for n in first.nodes if n.data.type == "llm")
    assert llm.data.model.name == "gpt-4o-mini"


def test_cache_is_used_and_cleared_on_register():
    store = TemplateStore(TemplateStoreConfig(cache_config=CacheConfig(max_size=10, enable_stats=True)))
    store.match("翻译")
    store.match("翻译")
    assert store.get_cache_stats().hits == 1

    custom = WorkflowTemplate(
        TemplateMetadata(id="custom-translate", name="自定义翻译", description="翻译", keywords=("翻译",)),
        lambda params, ids: DifyDSL.model_validate(store.get("translation").build().to_dict()),
    )
    store.register(custom)
    assert store.get_cache_stats().size == 0
    assert "custom-translate" in [m.template.id for m in store.match("翻译")]
    assert store.unregister("custom-translate")
    assert not store.unregister("custom-translate")


def test_cache_can_be_disabled():
    store = TemplateStore(TemplateStoreConfig(enable_cache=False, include_builtin=False))
    assert store.get_all() == []
    assert store.get_cache_stats() is None


def test_extended_templates_match_their_queries():
    store = TemplateStore()
    assert store.find_best("创建智能客服对话系统").template.id == "customer-support"
    assert store.find_best("帮我写一篇博客文章").template.id == "content-generation"
    assert store.find_best("用python做数据分析并生成图表").template.id == "data-analysis"
    assert store.find_best("代码审查，检查安全问题").template.id == "code-review"
    assert store.find_best("上传PDF文档进行文档问答").template.id == "document-qa"


def test_customer_support_routes_each_category():
    categories = [{"id": "refund", "name": "退款"}, {"id": "shipping", "name": "物流"}]
    dsl = TemplateStore().get("customer-support").build({"categories": categories, "dataset_ids": ["kb-1"]})
    handles = {e.sourceHandle: e.target for e in dsl.edges if e.source == "intent-classifier"}
    assert handles == {"refund": "response-refund", "shipping": "response-shipping"}
    assert dsl.get_node("kb-retrieval").data.dataset_ids == ["kb-1"]
    assert dsl.get_node("response-refund").data.context.variable_selector == ["kb-retrieval", "result"]
    assert validate_dsl(dsl).valid


def test_data_analysis_branches_on_execution_result():
    dsl = TemplateStore().get("data-analysis").build({"allowed_libraries": ["pandas"]})
    branches = {e.sourceHandle: e.target for e in dsl.edges if e.source == "check-result"}
    assert branches == {"success": "generate-report", "false": "analyze-error"}
    code = dsl.get_node("execute-analysis").data
    assert [v.value_selector for v in code.variables] == [["start", "data"], ["generate-code", "text"]]
    assert "可用库：pandas\n" in dsl.get_node("generate-code").data.prompt_template[0].text


def test_code_review_report_collects_every_review():
    dsl = TemplateStore().get("code-review").build()
    report = dsl.get_node("generate-report")
    sources = {v.value_selector[0] for v in report.data.variables}
    assert sources == {
        "start", "analyze-structure", "quality-check", "security-audit",
        "performance-analysis", "best-practices", "suggest-improvements",
    }
    assert {e.source for e in dsl.edges if e.target == "generate-report"} == sources - {"start", "analyze-structure"}


def test_document_qa_without_section_extraction_stays_valid():
    dsl = TemplateStore().get("document-qa").build({"extract_sections": False})
    assert dsl.get_node("extract-relevant-sections") is None
    assert "extract-relevant-sections" not in stringify_yaml(dsl)
    assert validate_dsl(dsl).valid
    assert [o.variable for o in dsl.get_node("end").data.outputs] == [
        "answer", "document_summary", "quality_assessment", "followup_questions",
    ]


def test_metadata_fields():
    # 組み立てパラメータはメタデータに持たず、buildのdictで受け取る
    assert list(TemplateMetadata.model_fields) == [
        "id", "name", "description", "category", "tags", "keywords", "node_types", "complexity",
    ]
