from typing import Any, Callable
from difygen.log_output.log import log
from difygen.workflow_graph.state import RepairState


class Repairer:
    """
    失敗した試行のエラーから次のプロンプトを作るノード。
    試行が残っていなければ最終エラーメッセージを状態に書き込む。
    """
    def __init__(
        self,
        build_repair_prompt: Callable[[str, str], str],
        render_feedback: Callable[[list[str]], str],
        failure_message: Callable[[RepairState], str],
    ):
        self.build_repair_prompt = build_repair_prompt
        self.render_feedback = render_feedback
        self.failure_message = failure_message

    def __call__(self, state: RepairState) -> dict[str, Any]:
        if state.attempt >= state.max_attempts:
            error = self.failure_message(state)
            log("fail", f"{state.max_attempts}回試行しましたがDSLを生成できませんでした: {error}")
            return {"error": error, "node_history": ["repair"]}

        # YAMLが得られていない（呼び出し失敗・抽出失敗）場合は同じプロンプトで再試行する
        if state.failed_stage in ("request", "extract") or not state.yaml_text:
            log("info", "同じプロンプトで再試行します")
            return {"node_history": ["repair"]}

        log("info", f"{state.failed_stage}段階のエラーをもとに修正を依頼します")
        prompt = self.build_repair_prompt(state.yaml_text, self.render_feedback(state.errors))
        return {"prompt": prompt, "node_history": ["repair"]}
