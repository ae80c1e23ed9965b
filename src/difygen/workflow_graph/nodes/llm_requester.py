from typing import Any, Optional
from difygen.log_output.log import log
from difygen.tools.llm import ChatMessage, ChatOptions
from difygen.workflow_graph.state import RepairState


class LLMRequester:
    """プロンプトをLLMに送り、応答を状態に書き込むノード。呼び出しの失敗も1回の試行として数える"""
    def __init__(self, llm, options: Optional[ChatOptions] = None, repair_options: Optional[ChatOptions] = None):
        self.llm = llm
        self.options = options or ChatOptions()
        self.repair_options = repair_options or self.options

    async def __call__(self, state: RepairState) -> dict[str, Any]:
        attempt = state.attempt + 1
        log("info", f"LLMにDSLを要求します（{attempt}/{state.max_attempts}回目）")

        messages = []
        if state.system_prompt:
            messages.append(ChatMessage(role="system", content=state.system_prompt))
        messages.append(ChatMessage(role="user", content=state.prompt))
        options = self.options if attempt == 1 else self.repair_options

        # 前回の試行の結果は持ち越さない
        reset = {"attempt": attempt, "yaml_text": None, "data": None, "dsl": None, "node_history": ["request"]}
        try:
            response = await self.llm.chat(messages, options)
        except Exception as e:
            log("error", f"LLMの呼び出しに失敗しました: {e}")
            error = f"LLM request failed: {e}"
            return {
                **reset,
                "response_text": None,
                "errors": [error],
                "failed_stage": "request",
                "error_history": [error],
            }

        tokens = response.usage.total_tokens if response.usage else 0
        return {
            **reset,
            "response_text": response.content,
            "errors": [],
            "failed_stage": None,
            "tokens_used": state.tokens_used + tokens,
        }
