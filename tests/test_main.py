import sys
import pytest
from difygen import main as cli
from difygen.dsl.yaml_io import parse_yaml, stringify_yaml
from difygen.generator.generator import create_simple_dsl


def run_cli(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["difygen", *argv])
    cli.main()


def test_list_templates(monkeypatch, capsys):
    run_cli(monkeypatch, "--list-templates")
    out = capsys.readouterr().out
    assert "simple-qa" in out
    assert "conditional" in out


def test_list_nodes(monkeypatch, capsys):
    run_cli(monkeypatch, "--list-nodes")
    out = capsys.readouterr().out
    assert "question-classifier" in out
    assert "出力: status_code, body, headers" in out


def test_validate_file(monkeypatch, tmp_path, capsys):
    good = tmp_path / "good.yml"
    good.write_text(stringify_yaml(create_simple_dsl("测试")), encoding="utf-8")
    with pytest.raises(SystemExit) as exc:
        run_cli(monkeypatch, "--validate", str(good))
    assert exc.value.code == 0

    bad = tmp_path / "bad.yml"
    bad.write_text("version: 0.5.0\nkind: app\napp:\n  name: x\nworkflow:\n  graph:\n    nodes: []\n", encoding="utf-8")
    with pytest.raises(SystemExit) as exc:
        run_cli(monkeypatch, "--validate", str(bad))
    assert exc.value.code == 1
    assert 'ERROR   [workflow.graph.nodes] Workflow must have exactly one "start" node' in capsys.readouterr().out


def test_generate_writes_output(monkeypatch, tmp_path, scripted_llm):
    llm = scripted_llm(["unused"])
    monkeypatch.setattr(cli, "create_llm_service", lambda provider, model: llm)
    output = tmp_path / "translation.yml"
    run_cli(monkeypatch, "创建一个翻译工作流", "-o", str(output))

    assert llm.calls == []
    assert parse_yaml(output.read_text(encoding="utf-8")).success


def test_prompt_is_required(monkeypatch):
    with pytest.raises(SystemExit) as exc:
        run_cli(monkeypatch)
    assert exc.value.code == 2
