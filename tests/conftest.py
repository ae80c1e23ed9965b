import pytest
from difygen.dsl.builder import WorkflowBuilder
from difygen.dsl.id_generator import IdGenerator
from difygen.dsl.yaml_io import stringify_yaml
from difygen.generator.generator import create_simple_dsl
from difygen.tools.llm import ChatResponse, TokenUsage


class ScriptedLLM:
    """
    あらかじめ用意した応答を順に返すLLMのテストダブル。
    応答を使い切ったら最後の応答を返し続ける。例外を入れるとその回は例外を送出する。
    """
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def chat(self, messages, options=None):
        self.calls.append(messages)
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        response = self.responses[index]
        if isinstance(response, Exception):
            raise response
        return ChatResponse(content=response, usage=TokenUsage(total_tokens=10), model="scripted")

    async def complete(self, prompt, options=None):
        return await self.chat([prompt], options)

    async def generate(self, prompt):
        return (await self.complete(prompt)).content

    async def is_available(self):
        return True


def missing_start_yaml() -> str:
    """開始ノードの無いDSL（検証で必ず落ちる）"""
    builder = WorkflowBuilder(name="壊れたワークフロー", id_generator=IdGenerator(base=0))
    builder.add_llm("你好", node_id="llm")
    builder.add_end([{"name": "result", "source": ["llm", "text"]}], node_id="end")
    builder.connect("llm", "end")
    return stringify_yaml(builder.build())


def valid_yaml() -> str:
    return stringify_yaml(create_simple_dsl("测试工作流", "测试用"))


@pytest.fixture
def scripted_llm():
    return ScriptedLLM


@pytest.fixture
def broken_yaml():
    return missing_start_yaml()


@pytest.fixture
def good_yaml():
    return valid_yaml()
