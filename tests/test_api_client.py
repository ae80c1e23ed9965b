import requests
from difygen.tools.api_client import DifygenAPIClient


class FakeResponse:
    def __init__(self, body):
        self.body = body

    def json(self):
        return self.body


def test_generate_posts_payload(monkeypatch):
    sent = {}

    def fake_post(url, json, timeout):
        sent.update(url=url, json=json, timeout=timeout)
        return FakeResponse({"status": "success", "message": "ok", "yaml": "app: {}", "template_used": "translation"})

    monkeypatch.setattr(requests, "post", fake_post)
    result = DifygenAPIClient("http://example.test/", timeout=5).generate("翻译", skip_templates=True)

    assert result.status == "success"
    assert result.template_used == "translation"
    assert sent["url"] == "http://example.test/generate"
    assert sent["json"]["skip_templates"] is True
    assert sent["timeout"] == 5


def test_connection_error_becomes_error_result(monkeypatch):
    def refuse(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(requests, "post", refuse)
    monkeypatch.setattr(requests, "get", refuse)
    client = DifygenAPIClient()

    for result in (client.generate("x"), client.refine("app: {}", "x"), client.validate("app: {}"), client.list_templates()):
        assert result.status == "error"
        assert result.message.startswith("サーバーへの接続に失敗しました: ")


def test_validate_and_list_templates(monkeypatch):
    monkeypatch.setattr(requests, "post", lambda url, json, timeout: FakeResponse(
        {"status": "success", "message": "ok", "valid": False, "errors": ["[workflow] bad"]}
    ))
    monkeypatch.setattr(requests, "get", lambda url, timeout: FakeResponse(
        {"status": "success", "message": "1件", "templates": [{"id": "simple-qa"}]}
    ))
    client = DifygenAPIClient()
    assert client.validate("app: {}").errors == ["[workflow] bad"]
    assert client.list_templates().templates[0]["id"] == "simple-qa"
