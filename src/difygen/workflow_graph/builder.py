from typing import Callable, Optional
from langgraph.graph import END, StateGraph
from difygen.log_output.log import log
from difygen.tools.llm import ChatOptions
from difygen.validator.validator import DSLValidator
from difygen.workflow_graph.nodes.dsl_checker import DSLChecker
from difygen.workflow_graph.nodes.dsl_parser import DSLParser, TextExtractor
from difygen.workflow_graph.nodes.llm_requester import LLMRequester
from difygen.workflow_graph.nodes.repairer import Repairer
from difygen.workflow_graph.state import RepairState


def default_failure_message(state: RepairState) -> str:
    return "; ".join(state.errors) or "Unknown error"


class RepairLoopBuilder:
    """
    request → extract → parse → validate の各段階で失敗したら repair に回し、
    試行が残っている間は修正プロンプトで request に戻るグラフ。
    ジェネレータとオーケストレータは修正プロンプトとエラーの整形方法だけを差し替えて使う。
    """
    def __init__(
        self,
        llm,
        extract_text: Callable[[str], Optional[str]],
        build_repair_prompt: Callable[[str, str], str],
        render_feedback: Callable[[list[str]], str],
        failure_message: Callable[[RepairState], str] = default_failure_message,
        validator: Optional[DSLValidator] = None,
        validate: bool = True,
        options: Optional[ChatOptions] = None,
        repair_options: Optional[ChatOptions] = None,
    ):
        # 各種ノードの初期化
        self.requester = LLMRequester(llm, options=options, repair_options=repair_options)
        self.extractor = TextExtractor(extract_text)
        self.parser = DSLParser()
        self.checker = DSLChecker(validator=validator, validate=validate)
        self.repairer = Repairer(build_repair_prompt, render_feedback, failure_message)
        # グラフの作成
        self.graph = self._build()

    def _build(self):
        # グラフの初期化
        workflow = StateGraph(RepairState)
        # ノードの追加
        workflow.add_node("request", self.requester)
        workflow.add_node("extract", self.extractor)
        workflow.add_node("parse", self.parser)
        workflow.add_node("validate", self.checker)
        workflow.add_node("repair", self.repairer)

        # エントリーポイントの設定
        workflow.set_entry_point("request")

        # 各段階は成功なら次へ、失敗なら repair へ
        workflow.add_conditional_edges("request", self._stage_passed, {True: "extract", False: "repair"})
        workflow.add_conditional_edges("extract", self._stage_passed, {True: "parse", False: "repair"})
        workflow.add_conditional_edges("parse", self._stage_passed, {True: "validate", False: "repair"})
        workflow.add_conditional_edges("validate", lambda state: state.success, {True: END, False: "repair"})
        workflow.add_conditional_edges("repair", self._should_retry, {True: "request", False: END})

        # グラフのコンパイル
        return workflow.compile()

    def _stage_passed(self, state: RepairState) -> bool:
        return state.failed_stage is None

    def _should_retry(self, state: RepairState) -> bool:
        """
        試行回数が上限に達していなければ再試行する
        """
        if state.attempt >= state.max_attempts:
            log("warning", "グラフの分岐：試行回数が上限に達したため修正を終了します")
            return False
        log("info", f"グラフの分岐：{state.failed_stage}段階で失敗したため再試行します")
        return True

    async def run(self, prompt: str, max_attempts: int, system_prompt: Optional[str] = None) -> RepairState:
        initial = RepairState(prompt=prompt, system_prompt=system_prompt, max_attempts=max(1, max_attempts))
        # 1試行で最大5ノードを通る
        final_state = await self.graph.ainvoke(initial, config={"recursion_limit": initial.max_attempts * 5 + 5})
        return RepairState(**final_state)
