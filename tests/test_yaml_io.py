import pytest
from difygen.dsl.schema import DifyDSL
from difygen.dsl.yaml_io import (
    extract_field,
    format_yaml,
    is_valid_dsl_yaml,
    parse_yaml,
    parse_yaml_or_throw,
    stringify_yaml,
)
from difygen.generator.generator import create_simple_dsl
from difygen.templates.template_store import get_default_template_store


def test_roundtrip_simple_dsl():
    dsl = create_simple_dsl("往返测试", "说明")
    parsed = parse_yaml(stringify_yaml(dsl))
    assert parsed.success
    assert DifyDSL.model_validate(parsed.data).to_dict() == dsl.to_dict()


def test_roundtrip_every_builtin_template():
    for template in get_default_template_store().get_all():
        dsl = template.build()
        assert DifyDSL.model_validate(parse_yaml_or_throw(stringify_yaml(dsl))).to_dict() == dsl.to_dict(), template.id


def test_key_order_follows_dify_export():
    text = stringify_yaml(create_simple_dsl("顺序"))
    top_keys = [line.split(":")[0] for line in text.splitlines() if line and not line.startswith(" ")]
    assert top_keys == ["app", "kind", "version", "workflow"]
    assert text.index("  graph:") > text.index("  features:")
    # 中国語はエスケープしない
    assert "顺序" in text


@pytest.mark.parametrize(
    "content, message",
    [
        ("app: [", "YAML parse error"),
        ("- a\n- b", "root must be an object"),
        ("kind: app\napp:\n  name: x\n  mode: workflow", 'missing required field "version"'),
        ("version: 0.5.0\nkind: other\napp:\n  name: x", '"kind" must be "app"'),
        ("version: 0.5.0\nkind: app", 'missing required field "app"'),
        ("version: 0.5.0\nkind: app\napp:\n  name: x\n  mode: workflow", 'requires "workflow" field'),
    ],
)
def test_parse_errors(content, message):
    result = parse_yaml(content)
    assert not result.success
    assert message in result.error
    assert not is_valid_dsl_yaml(content)


def test_parse_or_throw_raises():
    with pytest.raises(ValueError):
        parse_yaml_or_throw("not: [valid")


def test_chat_mode_without_workflow_is_accepted():
    assert is_valid_dsl_yaml("version: 0.5.0\nkind: app\napp:\n  name: x\n  mode: chat")


def test_extract_field_and_format():
    text = stringify_yaml(create_simple_dsl("字段"))
    assert extract_field(text, "app.name") == "字段"
    assert extract_field(text, "app.missing.deeper") is None
    assert extract_field("::: broken [", "app.name") is None
    assert format_yaml(text) == text
