from difygen.parsing.yaml_extract import clean_yaml_response, extract_yaml

DSL_TEXT = "version: 0.5.0\nkind: app\napp:\n  name: demo\nworkflow:\n  graph:\n    nodes: []"


def test_clean_yaml_response_strips_fences():
    assert clean_yaml_response(f"```yaml\n{DSL_TEXT}\n```") == DSL_TEXT
    assert clean_yaml_response(f"```\n{DSL_TEXT}\n```\n") == DSL_TEXT
    assert clean_yaml_response(DSL_TEXT) == DSL_TEXT


def test_extract_fenced_block():
    text = f"好的，这是生成的工作流：\n```yaml\n{DSL_TEXT}\n```\n希望对你有帮助。"
    assert extract_yaml(text) == DSL_TEXT


def test_extract_from_first_top_level_key_and_stop_at_prose():
    text = f"Here is the workflow you asked for.\n{DSL_TEXT}\nLet me know if you need changes."
    assert extract_yaml(text) == DSL_TEXT


def test_version_before_app_is_kept():
    text = "下面是结果\nversion: 0.5.0\nkind: app\napp:\n  name: demo\n  mode: chat"
    extracted = extract_yaml(text)
    assert extracted.startswith("version: 0.5.0")
    assert extracted.endswith("mode: chat")


def test_raw_text_fallback():
    text = "graph:\n  version: 1\nworkflow: {}"
    assert extract_yaml(text) == text


def test_nothing_found():
    assert extract_yaml("抱歉，我无法生成这个工作流。") is None
