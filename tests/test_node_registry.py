from difygen.dsl.node_registry import get_all_node_types, get_node_meta, get_nodes_by_category
from difygen.dsl.schema import NODE_TYPES


def test_all_node_types_listed_in_order():
    assert get_all_node_types() == [
        "start", "end", "answer", "llm", "knowledge-retrieval", "question-classifier",
        "if-else", "code", "http-request", "template-transform", "variable-aggregator",
    ]
    # 説明のあるノードはすべてスキーマが扱える種別
    assert set(get_all_node_types()) <= set(NODE_TYPES)


def test_node_meta_lookup():
    llm = get_node_meta("llm")
    assert llm.display_name == "LLM"
    assert [port.name for port in llm.outputs] == ["text"]
    assert [f.name for f in llm.config_fields if f.required] == ["model", "prompt_template"]
    assert get_node_meta("http-request").config_fields[0].options[0] == "get"
    assert get_node_meta("loop") is None


def test_branching_nodes_have_multiple_outputs():
    branching = [t for t in get_all_node_types() if get_node_meta(t).multiple_outputs]
    assert branching == ["question-classifier", "if-else"]


def test_nodes_by_category():
    assert [m.type for m in get_nodes_by_category("data")] == [
        "knowledge-retrieval", "template-transform", "variable-aggregator",
    ]
    assert [m.type for m in get_nodes_by_category("basic")] == ["start", "end", "answer"]
    assert get_nodes_by_category("unknown") == []
