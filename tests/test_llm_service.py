import asyncio
import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from difygen.tools.llm import (
    ChatMessage,
    ChatOptions,
    LLMService,
    LLMServiceError,
    create_chat_model,
)


class FlakyChatModel(FakeListChatModel):
    """最初のfailures回だけ例外を送出するチャットモデル"""
    failures: int = 0

    def _call(self, messages, stop=None, run_manager=None, **kwargs):
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("connection reset")
        return super()._call(messages, stop=stop, run_manager=run_manager, **kwargs)


@pytest.fixture
def no_sleep(monkeypatch):
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr("difygen.tools.llm.asyncio.sleep", fake_sleep)
    return delays


def test_chat_returns_model_response():
    service = LLMService(FakeListChatModel(responses=["你好"]), provider="fake")
    messages = [ChatMessage(role="system", content="你是助手"), ChatMessage(role="user", content="hi")]
    response = asyncio.run(service.chat(messages, ChatOptions(temperature=0.2, max_tokens=100)))
    assert response.content == "你好"
    assert response.finish_reason == "stop"


def test_complete_and_generate():
    service = LLMService(FakeListChatModel(responses=["一", "二"]))
    assert asyncio.run(service.complete("第一")).content == "一"
    assert asyncio.run(service.generate("第二")) == "二"


def test_retries_with_backoff(no_sleep):
    service = LLMService(FlakyChatModel(responses=["ok"], failures=2), max_retries=3)
    assert asyncio.run(service.generate("hi")) == "ok"
    assert no_sleep == [1, 2]


def test_raises_after_all_retries_fail(no_sleep):
    service = LLMService(FlakyChatModel(responses=["ok"], failures=5), max_retries=3)
    with pytest.raises(LLMServiceError, match="after 3 attempts: connection reset"):
        asyncio.run(service.generate("hi"))
    assert no_sleep == [1, 2]


def test_is_available(no_sleep):
    assert asyncio.run(LLMService(FakeListChatModel(responses=["pong"])).is_available())
    down = LLMService(FlakyChatModel(responses=["pong"], failures=10), max_retries=1)
    assert not asyncio.run(down.is_available())


def test_unknown_provider():
    with pytest.raises(ValueError):
        create_chat_model("unknown-provider")
