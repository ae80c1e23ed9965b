import time
from typing import Literal, Optional, Union
import tiktoken
from pydantic import BaseModel, Field
from difygen.dsl.schema import DifyDSL
from difygen.dsl.yaml_io import stringify_yaml
from difygen.fewshot.example_store import ExampleStore, FewShotExample
from difygen.log_output.log import log
from difygen.parsing.yaml_extract import extract_yaml
from difygen.planner.planner import WorkflowPlanner
from difygen.planner.state import WorkflowPlan
from difygen.prompts.orchestrator_prompt import (
    EDIT_SYSTEM_PROMPT,
    GENERATION_SYSTEM_PROMPT,
    build_edit_prompt,
    build_generation_prompt_from_plan,
    build_orchestrator_fix_prompt,
    render_validation_feedback,
)
from difygen.templates.template_store import TemplateStore, get_default_template_store
from difygen.tools.llm import ChatOptions
from difygen.validator.validator import DSLValidator
from difygen.workflow_graph.builder import RepairLoopBuilder
from difygen.workflow_graph.state import RepairState

"""
ワークフロー生成の入口。
テンプレートで決まればLLMを呼ばずに返し、そうでなければ計画→DSL生成→修正の順に進める。
既存DSLの編集もここで扱う。
"""

# テンプレートをそのまま採用する最低スコア
TEMPLATE_ACCEPT_SCORE = 80
TOKEN_ENCODING = "o200k_base"


class OrchestratorConfig(BaseModel):
    max_fix_retries: int = Field(2, description="初回生成後に修正を依頼する最大回数")
    use_few_shot: bool = True
    few_shot_count: int = 2
    max_prompt_tokens: Optional[int] = Field(None, description="指定するとFew-shot事例を減らしてプロンプトをこのトークン数に収める")
    generate_temperature: float = 0.3
    fix_temperature: float = 0.2
    edit_temperature: float = 0.3
    template_threshold: float = TEMPLATE_ACCEPT_SCORE


class GenerationRequest(BaseModel):
    prompt: str = Field(..., min_length=1, description="自然言語による要求")
    context: Optional[str] = Field(None, description="追加の文脈")
    preferred_provider: Optional[str] = Field(None, description="生成するLLMノードのモデル提供元")
    preferred_model: Optional[str] = Field(None, description="生成するLLMノードのモデル名")
    dataset_ids: Optional[list[str]] = Field(None, description="知識検索で使うデータセットID")
    max_complexity: Optional[int] = Field(None, ge=1, le=5, description="許容する複雑度の上限")
    skip_templates: bool = Field(False, description="Trueならテンプレート照合をせず常にLLMで生成する")


class GenerationMetadata(BaseModel):
    duration: float = Field(0.0, description="生成にかかった時間（秒）")
    tokens_used: Optional[int] = None
    template_used: Optional[str] = None
    plan_summary: Optional[str] = None
    retries: int = 0


class GenerationResult(BaseModel):
    success: bool
    dsl: Optional[DifyDSL] = None
    yaml: Optional[str] = None
    error: Optional[str] = None
    metadata: GenerationMetadata = Field(default_factory=GenerationMetadata)


class EditChange(BaseModel):
    type: Literal["add", "remove", "modify"]
    target: Literal["node", "edge", "config"]
    id: Optional[str] = None
    description: str


class EditResult(BaseModel):
    success: bool
    dsl: Optional[DifyDSL] = None
    yaml: Optional[str] = None
    error: Optional[str] = None
    changes: list[EditChange] = Field(default_factory=list)


def count_tokens(text: str) -> int:
    return len(tiktoken.get_encoding(TOKEN_ENCODING).encode(text))


def detect_changes(before: DifyDSL, after: DifyDSL) -> list[EditChange]:
    """ノードIDの集合の差分だけを見る粗い変更検出"""
    before_ids = {node.id for node in before.nodes}
    after_ids = {node.id for node in after.nodes}
    changes = [
        EditChange(type="add", target="node", id=node.id, description=f"Added node {node.id}")
        for node in after.nodes if node.id not in before_ids
    ]
    changes.extend(
        EditChange(type="remove", target="node", id=node.id, description=f"Removed node {node.id}")
        for node in before.nodes if node.id not in after_ids
    )
    return changes


class WorkflowOrchestrator:
    def __init__(
        self,
        llm,
        config: Optional[OrchestratorConfig] = None,
        template_store: Optional[TemplateStore] = None,
        example_store: Optional[ExampleStore] = None,
        planner: Optional[WorkflowPlanner] = None,
        validator: Optional[DSLValidator] = None,
    ):
        self.llm = llm
        self.config = config or OrchestratorConfig()
        self.template_store = template_store or get_default_template_store()
        self.example_store = example_store or ExampleStore()
        self.planner = planner or WorkflowPlanner(llm_service=llm, template_store=self.template_store)
        self.validator = validator or DSLValidator()

        self.generation_loop = RepairLoopBuilder(
            llm,
            extract_text=extract_yaml,
            build_repair_prompt=build_orchestrator_fix_prompt,
            render_feedback=render_validation_feedback,
            failure_message=self._failure_message,
            validator=self.validator,
            options=ChatOptions(temperature=self.config.generate_temperature),
            repair_options=ChatOptions(temperature=self.config.fix_temperature),
        )
        self.edit_loop = RepairLoopBuilder(
            llm,
            extract_text=extract_yaml,
            build_repair_prompt=build_orchestrator_fix_prompt,
            render_feedback=render_validation_feedback,
            failure_message=self._failure_message,
            validator=self.validator,
            options=ChatOptions(temperature=self.config.edit_temperature),
            repair_options=ChatOptions(temperature=self.config.fix_temperature),
        )

    def _failure_message(self, state: RepairState) -> str:
        return f"Failed to fix after {self.config.max_fix_retries} retries. Errors: {'; '.join(state.errors)}"

    async def generate(self, request: Union[GenerationRequest, str]) -> GenerationResult:
        if isinstance(request, str):
            request = GenerationRequest(prompt=request)
        start_time = time.time()
        metadata = GenerationMetadata()

        try:
            if not request.skip_templates:
                result = self._generate_from_template(request, start_time)
                if result is not None:
                    return result

            log("info", "ワークフローを計画します")
            planning = await self.planner.plan(request.prompt, request.context)
            if not planning.success or planning.plan is None:
                metadata.duration = time.time() - start_time
                return GenerationResult(success=False, error=planning.error or "Failed to plan workflow", metadata=metadata)

            plan = planning.plan
            metadata.plan_summary = plan.summary()
            log("info", f"計画を作成しました（{metadata.plan_summary}）")
            if request.max_complexity is not None and plan.intent.complexity > request.max_complexity:
                metadata.duration = time.time() - start_time
                return GenerationResult(
                    success=False,
                    error=f"Workflow complexity {plan.intent.complexity} exceeds max_complexity {request.max_complexity}",
                    metadata=metadata,
                )

            prompt = self._build_generation_prompt(plan, request)
            log("info", "計画からDSLを生成します")
            state = await self.generation_loop.run(
                prompt,
                max_attempts=1 + self.config.max_fix_retries,
                system_prompt=GENERATION_SYSTEM_PROMPT,
            )
            metadata.tokens_used = state.tokens_used
            metadata.retries = state.retries
            metadata.duration = time.time() - start_time

            if not state.success or state.dsl is None:
                return GenerationResult(success=False, yaml=state.yaml_text, error=state.error, metadata=metadata)
            log("success", f"ワークフローを生成しました（{metadata.duration:.2f}秒）")
            return GenerationResult(success=True, dsl=state.dsl, yaml=stringify_yaml(state.dsl), metadata=metadata)
        except Exception as e:
            log("error", f"ワークフローの生成中にエラーが発生しました: {e}")
            metadata.duration = time.time() - start_time
            return GenerationResult(success=False, error=str(e), metadata=metadata)

    def _generate_from_template(self, request: GenerationRequest, start_time: float) -> Optional[GenerationResult]:
        match = self.template_store.find_best(request.prompt)
        if match is None or match.score < self.config.template_threshold:
            return None

        log("info", f"テンプレート '{match.template.id}'（スコア {match.score}）を使用します")
        params = {}
        if request.preferred_provider:
            params["provider"] = request.preferred_provider
        if request.preferred_model:
            params["model"] = request.preferred_model
        if request.dataset_ids:
            params["dataset_ids"] = request.dataset_ids
        dsl = match.template.build(params)
        return GenerationResult(
            success=True,
            dsl=dsl,
            yaml=stringify_yaml(dsl),
            metadata=GenerationMetadata(duration=time.time() - start_time, template_used=match.template.id),
        )

    def _build_generation_prompt(self, plan: WorkflowPlan, request: GenerationRequest) -> str:
        examples: list[FewShotExample] = []
        if self.config.use_few_shot and self.config.few_shot_count > 0:
            examples = self.example_store.find_best_examples(request.prompt, self.config.few_shot_count)

        def render(selected: list[FewShotExample]) -> str:
            return build_generation_prompt_from_plan(
                plan,
                preferred_provider=request.preferred_provider,
                preferred_model=request.preferred_model,
                dataset_ids=request.dataset_ids,
                examples=self.example_store.format_for_prompt(selected),
            )

        prompt = render(examples)
        if self.config.max_prompt_tokens is None:
            return prompt

        # 予算を超える間は関連度の低い事例から落とす
        while examples and count_tokens(GENERATION_SYSTEM_PROMPT + prompt) > self.config.max_prompt_tokens:
            examples = examples[:-1]
            log("info", f"プロンプトがトークン上限を超えるためFew-shot事例を{len(examples)}件に減らします")
            prompt = render(examples)
        return prompt

    async def edit(self, dsl: DifyDSL, instruction: str, target_nodes: Optional[list[str]] = None) -> EditResult:
        try:
            log("info", "ワークフローを編集します")
            state = await self.edit_loop.run(
                build_edit_prompt(dsl, instruction, target_nodes),
                max_attempts=1 + self.config.max_fix_retries,
                system_prompt=EDIT_SYSTEM_PROMPT,
            )
            if not state.success or state.dsl is None:
                return EditResult(success=False, yaml=state.yaml_text, error=state.error)

            changes = detect_changes(dsl, state.dsl)
            log("success", f"ワークフローを編集しました（変更 {len(changes)}件）")
            return EditResult(success=True, dsl=state.dsl, yaml=stringify_yaml(state.dsl), changes=changes)
        except Exception as e:
            log("error", f"ワークフローの編集中にエラーが発生しました: {e}")
            return EditResult(success=False, error=str(e))
