from difygen.analyzer.dependency_analyzer import (
    DependencyAnalyzer,
    analyze_dependencies,
    get_execution_order,
    has_circular_dependencies,
)
from difygen.dsl.builder import WorkflowBuilder, create_edge
from difygen.templates.template_store import get_default_template_store


def linear_workflow():
    builder = WorkflowBuilder(name="直列")
    builder.add_start([{"name": "q", "label": "问题"}])
    builder.add_llm("{{#start.q#}}", node_id="llm")
    builder.add_end([{"name": "answer", "source": ["llm", "text"]}], node_id="end")
    builder.connect("start", "llm").connect("llm", "end")
    return builder


def test_topological_order_respects_edges():
    for template in get_default_template_store().get_all():
        dsl = template.build()
        order = get_execution_order(dsl)
        assert order.is_complete, template.id
        position = {node_id: i for i, node_id in enumerate(order.order)}
        for edge in dsl.edges:
            assert position[edge.source] < position[edge.target], template.id


def test_implicit_dependency_from_reference():
    builder = linear_workflow()
    # llm2はエッジ無しでllmの出力を参照する
    builder.add_llm("{{#llm.text#}}", node_id="llm2")
    result = analyze_dependencies(builder.build())
    assert "llm" in result.dependencies.nodes["llm2"].depends_on
    assert "llm2" in result.dependencies.nodes["llm"].depended_by
    assert result.dependencies.nodes["llm2"].variable_references == ["llm.text"]


def test_cycle_goes_to_remainder_and_is_reported():
    builder = linear_workflow()
    builder.add_llm("{{#llm.text#}}", node_id="a")
    builder.add_llm("{{#a.text#}}", node_id="b")
    builder.edges.append(create_edge("b", "a", "llm", "llm"))
    dsl = builder.build()

    result = DependencyAnalyzer().analyze(dsl)
    order = result.dependencies.topological_order
    assert not order.is_complete
    assert set(order.remainder) == {"a", "b"}
    assert order.as_list()[-2:] == order.remainder
    assert any(set(cycle) == {"a", "b"} and cycle[0] == cycle[-1] for cycle in result.dependencies.circular_dependencies)
    assert any(issue.code == "CIRCULAR_DEPENDENCY" for issue in result.issues)
    assert has_circular_dependencies(dsl)
    assert result.has_errors


def test_orphans_and_variables():
    builder = linear_workflow()
    builder.add_answer("独立的节点", node_id="lonely")
    builder.add_answer("{{#ghost.output#}} {{#sys.query#}} {{#env.KEY#}}", node_id="refs")
    result = analyze_dependencies(builder.build())

    assert "lonely" in result.dependencies.orphan_nodes
    assert result.variables.undefined == ["ghost.output"]
    assert "start.q" in result.variables.defined
    # 開始ノードの入力は未使用でも報告しない
    assert "start.q" not in result.variables.unused
    codes = [issue.code for issue in result.issues]
    assert "ORPHAN_NODE" in codes
    assert "UNDEFINED_VARIABLE" in codes


def test_provided_variables_by_type():
    dsl = get_default_template_store().get("api-caller").build()
    nodes = analyze_dependencies(dsl).dependencies.nodes
    http = next(n for n in dsl.nodes if n.data.type == "http-request")
    assert nodes[http.id].provides_variables == ["body", "status_code", "headers"]


def test_accepts_plain_dict():
    result = analyze_dependencies(linear_workflow().build().to_dict())
    assert result.dependencies.topological_order.order == ["start", "llm", "end"]


def test_duplicate_node_ids_keep_first_references():
    builder = linear_workflow()
    builder.add_answer("{{#start.q#}}", node_id="dup")
    builder.add_answer("{{#llm.text#}}", node_id="dup")
    result = analyze_dependencies(builder.build())

    assert result.dependencies.nodes["dup"].variable_references == ["start.q"]
    assert "dup" in result.dependencies.nodes["start"].depended_by
    assert "dup" not in result.dependencies.nodes["llm"].depended_by
