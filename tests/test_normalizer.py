from difygen.dsl.id_generator import IdGenerator
from difygen.dsl.references import extract_references
from difygen.dsl.schema import Node
from difygen.generator.generator import create_simple_dsl
from difygen.generator.normalizer import NormalizeOptions, normalize_dsl


def test_ids_are_regenerated_and_references_follow():
    dsl = create_simple_dsl("测试")
    normalized = normalize_dsl(dsl, IdGenerator(base=1000))

    assert [n.id for n in normalized.nodes] == ["1001", "1002", "1003"]
    new_ids = {n.id for n in normalized.nodes}
    for node in normalized.nodes:
        for ref in extract_references(node.data):
            assert ref.node_id in new_ids
    llm = normalized.get_node("1002")
    assert llm.data.prompt_template[-1].text == "{{#1001.input#}}"
    end = normalized.get_node("1003")
    assert end.data.outputs[0].value_selector == ["1002", "text"]


def test_edges_are_rewritten():
    normalized = normalize_dsl(create_simple_dsl("测试"), IdGenerator(base=0))
    assert [(e.source, e.target) for e in normalized.edges] == [("1", "2"), ("2", "3")]
    assert normalized.edges[0].id == "1-source-2-target"


def test_layout_places_nodes_left_to_right():
    normalized = normalize_dsl(create_simple_dsl("测试"), IdGenerator(base=0))
    assert [n.position.x for n in normalized.nodes] == [80, 474, 868]
    assert all(n.position.y == 282 for n in normalized.nodes)
    assert normalized.nodes[0].height == 90
    assert normalized.nodes[1].height == 98
    assert normalized.nodes[0].sourcePosition == "right"


def test_defaults_are_filled():
    dsl = create_simple_dsl("测试")
    dsl.workflow.features = None
    dsl.workflow.environment_variables = None
    normalized = normalize_dsl(dsl)
    assert normalized.workflow.features.file_upload.enabled is False
    assert normalized.workflow.environment_variables == []
    assert normalized.workflow.conversation_variables == []
    assert normalized.to_dict()["workflow"]["graph"]["viewport"] == {"x": 0, "y": 0, "zoom": 1}


def test_original_is_not_mutated():
    dsl = create_simple_dsl("测试")
    before = dsl.to_dict()
    normalize_dsl(dsl, IdGenerator(base=0))
    assert dsl.to_dict() == before


def test_options_can_skip_steps():
    dsl = create_simple_dsl("测试")
    normalized = normalize_dsl(dsl, options=NormalizeOptions(regenerate_ids=False, layout=False))
    assert [n.id for n in normalized.nodes] == ["start", "llm", "end"]
    assert normalized.nodes[0].position == dsl.nodes[0].position


def test_iteration_children_follow_new_ids():
    dsl = create_simple_dsl("测试")
    dsl.nodes.insert(2, Node.model_validate({
        "id": "iter",
        "data": {
            "type": "iteration", "title": "逐条处理",
            "iterator_selector": ["start", "input"],
            "output_selector": ["inner", "output"],
            "output_type": "array[string]",
            "start_node_id": "inner",
        },
    }))
    dsl.nodes.insert(3, Node.model_validate({
        "id": "inner",
        "parentId": "iter",
        "data": {
            "type": "template-transform", "title": "格式化",
            "template": "{{ item }}",
            "iteration_id": "iter",
        },
    }))
    normalized = normalize_dsl(dsl, IdGenerator(base=0))

    iteration = normalized.get_node("3")
    inner = normalized.get_node("4")
    assert iteration.data.start_node_id == "4"
    assert iteration.data.output_selector == ["4", "output"]
    assert inner.parentId == "3"
    assert inner.data.model_extra["iteration_id"] == "3"
    new_ids = {n.id for n in normalized.nodes}
    assert all(n.parentId in new_ids for n in normalized.nodes if n.parentId)
