import pytest
from difygen.analyzer.dependency_analyzer import analyze_dependencies
from difygen.dsl.builder import WorkflowBuilder, create_edge
from difygen.dsl.yaml_io import stringify_yaml
from difygen.generator.generator import create_simple_dsl
from difygen.templates.template_store import get_default_template_store
from difygen.validator.validator import DSLValidator, ValidateOptions, validate_dsl, validate_dsl_or_throw


def codes(issues):
    return [issue.code for issue in issues]


def simple_builder():
    builder = WorkflowBuilder(name="検証")
    builder.add_start([{"name": "q", "label": "问题"}])
    builder.add_llm("{{#start.q#}}", node_id="llm")
    builder.add_end([{"name": "answer", "source": ["llm", "text"]}], node_id="end")
    builder.connect("start", "llm").connect("llm", "end")
    return builder


def test_builtin_templates_are_valid_and_acyclic():
    for template in get_default_template_store().get_all():
        dsl = template.build()
        result = validate_dsl(dsl)
        assert result.valid, (template.id, result.errors)
        assert not analyze_dependencies(dsl).dependencies.circular_dependencies


def test_validate_from_yaml_text():
    result = DSLValidator().validate(stringify_yaml(create_simple_dsl("文本")))
    assert result.valid
    assert result.dsl is not None


def test_yaml_parse_error_stops_early():
    result = DSLValidator().validate("app: [")
    assert not result.valid
    assert codes(result.errors) == ["YAML_PARSE_ERROR"]


def test_schema_error_has_path():
    data = create_simple_dsl("スキーマ").to_dict()
    data["workflow"]["graph"]["nodes"][1]["data"]["type"] = "unknown-type"
    result = DSLValidator().validate(data)
    assert not result.valid
    assert set(codes(result.errors)) == {"SCHEMA_VALIDATION"}
    assert result.errors[0].path.startswith("workflow.graph.nodes.1")


def test_missing_start_and_end():
    builder = WorkflowBuilder(name="x")
    builder.add_llm("你好", node_id="llm")
    result = DSLValidator().validate(builder.build())
    assert "MISSING_START_NODE" in codes(result.errors)
    assert "MISSING_END_NODE" in codes(result.errors)
    assert 'Workflow must have exactly one "start" node' in result.messages()


def test_duplicate_ids_and_edges():
    builder = simple_builder()
    builder.add_answer("重复", node_id="llm")
    builder.connect("start", "llm")
    result = DSLValidator().validate(builder.build())
    assert "DUPLICATE_NODE_ID" in codes(result.errors)
    assert "DUPLICATE_EDGE" in codes(result.errors)


def test_dangling_and_self_edges():
    builder = simple_builder()
    builder.edges.append(create_edge("llm", "missing", "llm", "end"))
    builder.edges.append(create_edge("llm", "llm", "llm", "llm"))
    result = DSLValidator().validate(builder.build())
    assert "INVALID_EDGE_TARGET" in codes(result.errors)
    assert "SELF_REFERENCE_EDGE" in codes(result.errors)
    dangling = next(issue for issue in result.errors if issue.code == "INVALID_EDGE_TARGET")
    assert str(dangling) == '[workflow.graph.edges[llm-missing]] Edge target "missing" does not exist'


def test_isolated_and_unreachable_are_warnings():
    builder = simple_builder()
    builder.add_answer("孤立", node_id="island")
    result = DSLValidator().validate(builder.build())
    assert result.valid
    assert "ISOLATED_NODE" in codes(result.warnings)
    assert "UNREACHABLE_NODE" in codes(result.warnings)

    strict = DSLValidator(strict=True).validate(builder.build())
    assert not strict.valid
    assert strict.errors == []


def test_variable_reference_checks():
    builder = simple_builder()
    builder.add_answer("{{#ghost.text#}} {{#sys.unknown#}} {{#env.API_KEY#}}", node_id="answer")
    builder.connect("llm", "answer")
    result = DSLValidator().validate(builder.build())
    assert codes(result.errors) == ["INVALID_VAR_REF_NODE"]
    assert "INVALID_SYS_VAR" in codes(result.warnings)


def test_unknown_variable_name_on_existing_node_is_allowed():
    builder = simple_builder()
    builder.add_answer("{{#llm.no_such_output#}}", node_id="answer")
    builder.connect("llm", "answer")
    assert DSLValidator().validate(builder.build()).valid


def test_reference_cycle_is_an_error():
    builder = simple_builder()
    builder.add_llm("{{#b.text#}}", node_id="a")
    builder.add_llm("{{#a.text#}}", node_id="b")
    builder.connect("llm", "a").connect("a", "b").connect("b", "end")
    result = DSLValidator().validate(builder.build())
    assert "CIRCULAR_DEPENDENCY" in codes(result.errors)


def test_options_disable_checks():
    builder = WorkflowBuilder(name="x")
    builder.add_answer("{{#ghost.text#}}", node_id="answer")
    result = DSLValidator(ValidateOptions(check_topology=False, check_variable_refs=False)).validate(builder.build())
    assert result.valid


def test_validate_or_throw():
    assert validate_dsl_or_throw(create_simple_dsl("ok")).app.name == "ok"
    builder = WorkflowBuilder(name="x")
    builder.add_llm("hi", node_id="llm")
    with pytest.raises(ValueError, match="DSL validation failed"):
        validate_dsl_or_throw(builder.build())
