from typing import Optional
from pydantic import BaseModel, Field
from difygen.dsl.builder import WorkflowBuilder
from difygen.dsl.id_generator import IdGenerator
from difygen.dsl.schema import DifyDSL
from difygen.dsl.yaml_io import stringify_yaml
from difygen.generator.normalizer import normalize_dsl
from difygen.log_output.log import log
from difygen.parsing.yaml_extract import clean_yaml_response
from difygen.prompts.generator_prompt import build_fix_prompt, build_generation_prompt, render_error_bullets
from difygen.tools.llm import ChatOptions
from difygen.validator.validator import DSLValidator
from difygen.workflow_graph.builder import RepairLoopBuilder
from difygen.workflow_graph.state import RepairState

"""
要求文から直接DSLを生成するジェネレータ。
LLMの応答はパース・検証し、失敗したらエラーを添えて修正を依頼する。受け入れたDSLは正規化して返す。
"""


class GeneratorConfig(BaseModel):
    max_retries: int = Field(3, description="LLMに要求する最大回数（初回を含む）")
    validate_output: bool = True
    normalize_output: bool = Field(True, description="受け入れたDSLのIDと配置を振り直す")
    temperature: float = 0.7
    max_tokens: int = 4096


class GenerateResult(BaseModel):
    success: bool
    dsl: Optional[DifyDSL] = None
    yaml: Optional[str] = None
    error: Optional[str] = None
    retries: int = 0
    tokens_used: int = 0


def generator_failure_message(state: RepairState) -> str:
    if state.failed_stage == "validate":
        return f"Validation failed: {'; '.join(state.errors)}"
    return "; ".join(state.errors) or "Unknown error"


class DSLGenerator:
    def __init__(
        self,
        llm,
        config: Optional[GeneratorConfig] = None,
        validator: Optional[DSLValidator] = None,
        id_generator: Optional[IdGenerator] = None,
    ):
        self.config = config or GeneratorConfig()
        self.id_generator = id_generator or IdGenerator()
        options = ChatOptions(temperature=self.config.temperature, max_tokens=self.config.max_tokens)
        self.repair_loop = RepairLoopBuilder(
            llm,
            extract_text=clean_yaml_response,
            build_repair_prompt=build_fix_prompt,
            render_feedback=render_error_bullets,
            failure_message=generator_failure_message,
            validator=validator,
            validate=self.config.validate_output,
            options=options,
        )

    async def generate(self, request: str) -> GenerateResult:
        log("info", "DSLの生成を開始します")
        state = await self.repair_loop.run(build_generation_prompt(request), max_attempts=self.config.max_retries)

        if not state.success or state.dsl is None:
            return GenerateResult(
                success=False,
                yaml=state.yaml_text,
                error=state.error or generator_failure_message(state),
                retries=state.retries,
                tokens_used=state.tokens_used,
            )

        dsl = normalize_dsl(state.dsl, self.id_generator) if self.config.normalize_output else state.dsl
        log("success", f"DSLを生成しました（再試行 {state.retries}回）")
        return GenerateResult(
            success=True,
            dsl=dsl,
            yaml=stringify_yaml(dsl),
            retries=state.retries,
            tokens_used=state.tokens_used,
        )

    async def generate_simple_workflow(self, name: str, system_prompt: str, input_label: str = "输入") -> GenerateResult:
        request = (
            f"创建一个名为\"{name}\"的工作流：\n"
            f"- 接收用户的{input_label}\n"
            f"- 使用 LLM 处理，系统提示词是：{system_prompt}\n"
            "- 输出处理结果"
        )
        return await self.generate(request)


def create_simple_dsl(name: str, description: str = "") -> DifyDSL:
    """開始 → LLM → 終了 の最小構成のDSL（LLMを使わない）"""
    builder = WorkflowBuilder(name=name, description=description)
    builder.add_start([{"name": "input", "label": "输入", "type": "paragraph", "required": True, "max_length": 2000}])
    builder.add_llm(
        "{{#start.input#}}",
        node_id="llm",
        title="AI 处理",
        system_prompt="你是一个有帮助的助手。",
        temperature=0.7,
        max_tokens=2000,
    )
    builder.add_end([{"name": "result", "source": ["llm", "text"]}], node_id="end")
    builder.connect("start", "llm").connect("llm", "end")
    return builder.build()


def dsl_to_yaml(dsl: DifyDSL) -> str:
    return stringify_yaml(dsl)
