import pytest
from fastapi.testclient import TestClient
from difygen.generator.generator import create_simple_dsl
from difygen.dsl.yaml_io import stringify_yaml
from difygen.orchestrator.orchestrator import WorkflowOrchestrator
from difygen.server.api import app, get_orchestrator


@pytest.fixture
def client(scripted_llm, good_yaml):
    llm = scripted_llm([good_yaml])
    app.dependency_overrides[get_orchestrator] = lambda: WorkflowOrchestrator(llm)
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_list_templates(client):
    body = client.get("/templates").json()
    assert body["status"] == "success"
    assert len(body["templates"]) == 13
    assert body["templates"][0]["id"] == "simple-qa"


def test_list_nodes(client):
    body = client.get("/nodes").json()
    assert body["status"] == "success"
    assert len(body["nodes"]) == 11
    assert body["nodes"][0]["type"] == "start"

    logic = client.get("/nodes", params={"category": "logic"}).json()
    assert [n["type"] for n in logic["nodes"]] == ["question-classifier", "if-else"]
    assert logic["nodes"][1]["multiple_outputs"] is True


def test_get_template(client):
    body = client.get("/templates/rag-qa").json()
    assert body["status"] == "success"
    assert body["template"]["category"] == "rag"
    assert "knowledge-retrieval" in body["yaml"]

    missing = client.get("/templates/nope").json()
    assert missing["status"] == "not_found"
    assert missing["yaml"] is None


def test_validate(client):
    valid = client.post("/validate", json={"yaml": stringify_yaml(create_simple_dsl("测试"))}).json()
    assert valid["status"] == "success"
    assert valid["valid"] is True

    broken = client.post("/validate", json={"yaml": "app: ["}).json()
    assert broken["valid"] is False
    assert broken["errors"]


def test_generate_with_template(client):
    body = client.post("/generate", json={"prompt": "创建一个翻译工作流"}).json()
    assert body["status"] == "success"
    assert body["template_used"] == "translation"
    assert body["yaml"].startswith("app:")


def test_generate_requires_prompt(client):
    assert client.post("/generate", json={}).status_code == 422


def test_refine(client):
    body = client.post("/refine", json={
        "yaml": stringify_yaml(create_simple_dsl("测试")),
        "instruction": "保持不变",
    }).json()
    assert body["status"] == "success"
    assert body["changes"] == []


def test_refine_rejects_unparseable_yaml(client):
    body = client.post("/refine", json={"yaml": "app: [", "instruction": "x"}).json()
    assert body["status"] == "error"
