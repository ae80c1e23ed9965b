import pytest
from difygen.dsl.builder import WorkflowBuilder, create_edge
from difygen.dsl.id_generator import IdGenerator
from difygen.dsl.references import extract_references, extract_text_references, rewrite_references
from difygen.validator.validator import DSLValidator


def test_id_generator_prefix_and_reset():
    generator = IdGenerator(base=1000)
    assert generator.next("llm") == "llm-1"
    assert generator.next() == "1002"
    assert generator.count == 2
    generator.reset()
    assert generator.next() == "1001"


def test_builder_assigns_ids_from_generator():
    builder = WorkflowBuilder(name="ビルダー", id_generator=IdGenerator(base=0))
    builder.add_start([{"name": "query", "label": "问题"}])
    builder.add_llm("{{#start.query#}}")
    llm_id = builder.last_node_id
    builder.add_end([{"name": "answer", "source": [llm_id, "text"]}])
    end_id = builder.last_node_id
    builder.connect("start", llm_id).connect(llm_id, end_id)
    dsl = builder.build()

    assert llm_id == "llm-1"
    assert end_id == "end-2"
    assert [n.id for n in dsl.nodes] == ["start", "llm-1", "end-2"]
    assert dsl.edges[0].id == "start-llm-1"
    assert dsl.edges[0].data.sourceType == "start"
    assert dsl.edges[0].data.targetType == "llm"
    assert DSLValidator().validate(dsl).valid


def test_connect_unknown_node_raises():
    builder = WorkflowBuilder(name="x")
    builder.add_start([])
    with pytest.raises(ValueError, match='Target node "nope" not found'):
        builder.connect("start", "nope")
    with pytest.raises(ValueError, match='Source node "nope" not found'):
        builder.connect("nope", "start")


def test_connect_from_last_without_nodes():
    with pytest.raises(ValueError):
        WorkflowBuilder(name="x").connect_from_last("end")


def test_if_else_branch_handles():
    builder = WorkflowBuilder(name="分岐")
    builder.add_start([{"name": "score", "label": "分数", "type": "number"}])
    builder.add_if_else(
        [{"id": "pass", "rules": [{"variable_selector": ["start", "score"], "operator": ">", "value": "60"}]}],
        node_id="check",
    )
    builder.add_answer("及格", node_id="ok").add_answer("不及格", node_id="ng")
    builder.connect("start", "check").connect("check", "ok", source_handle="pass").connect("check", "ng", source_handle="false")
    dsl = builder.build()
    assert [e.sourceHandle for e in dsl.edges] == ["source", "pass", "false"]
    assert extract_references(dsl.get_node("check").data)[0].key == "start.score"


def test_create_edge_defaults():
    edge = create_edge("a", "b", "start", "llm")
    assert edge.id == "a-b"
    assert edge.sourceHandle == "source"
    assert edge.targetHandle == "target"
    assert edge.data.isInIteration is False


def test_text_references():
    refs = extract_text_references("问题：{{#start.query#}} 上下文：{{#1711.result#}} {{#sys.user_id#}}")
    assert [r.key for r in refs] == ["start.query", "1711.result", "sys.user_id"]
    assert str(refs[0]) == "{{#start.query#}}"


def test_code_body_is_not_scanned():
    builder = WorkflowBuilder(name="コード")
    builder.add_start([{"name": "data", "label": "数据"}])
    builder.add_code(
        "def main(data):\n    return {'result': '{{#ghost.value#}}'}",
        inputs=[{"name": "data", "source": ["start", "data"]}],
        outputs=[{"name": "result", "type": "string"}],
        node_id="code",
    )
    refs = extract_references(builder.nodes[-1].data)
    assert [r.key for r in refs] == ["start.data"]


def test_rewrite_references_in_text_and_selectors():
    builder = WorkflowBuilder(name="書き換え")
    builder.add_start([{"name": "q", "label": "问题"}])
    builder.add_llm("{{#start.q#}} {{#sys.query#}}", node_id="llm", context_selector=["retrieval", "result"])
    data = builder.nodes[-1].data
    rewrite_references(data, {"start": "100", "retrieval": "200"})

    keys = [r.key for r in extract_references(data)]
    assert "100.q" in keys
    assert "200.result" in keys
    assert "sys.query" in keys
    assert data.context.variable_selector == ["200", "result"]
