"""
FastAPIを用いたdifygenのHTTPサーバー。
LLMのAPIキー（OPENAI_API_KEYなど）と、必要ならDIFYGEN_PROVIDER・DIFYGEN_MODELを.envかターミナルで設定しておく必要があります
"""
import os
from functools import lru_cache
from typing import Any
import uvicorn
from fastapi import Depends, FastAPI
from pydantic import BaseModel, Field
from dotenv import load_dotenv
from difygen.dsl.node_registry import NodeMeta, get_all_node_types, get_node_meta, get_nodes_by_category
from difygen.dsl.yaml_io import parse_yaml, stringify_yaml
from difygen.dsl.schema import DifyDSL
from difygen.log_output.log import log
from difygen.orchestrator.orchestrator import GenerationRequest, WorkflowOrchestrator
from difygen.templates.template_store import TemplateStore, WorkflowTemplate, get_default_template_store
from difygen.tools.llm import create_llm_service
from difygen.validator.validator import DSLValidator

load_dotenv()

app = FastAPI(title="difygen")

class GenerateRequest(BaseModel):
    prompt: str = Field(..., description="生成したいワークフローの説明")
    context: str | None = Field(None, description="追加の文脈")
    preferred_provider: str | None = Field(None, description="LLMノードに設定するモデル提供元")
    preferred_model: str | None = Field(None, description="LLMノードに設定するモデル名")
    dataset_ids: list[str] | None = Field(None, description="知識検索ノードで使うデータセットID")
    skip_templates: bool = Field(False, description="Trueならテンプレートを使わずLLMで生成する")

class GenerateResponse(BaseModel):
    status: str
    message: str
    yaml: str | None = None
    template_used: str | None = None
    plan_summary: str | None = None
    duration: float | None = None

class RefineRequest(BaseModel):
    yaml: str = Field(..., description="編集したいワークフローのYAML")
    instruction: str = Field(..., description="編集内容の指示")
    target_nodes: list[str] | None = Field(None, description="編集対象のノードID")

class RefineResponse(BaseModel):
    status: str
    message: str
    yaml: str | None = None
    changes: list[str] = Field(default_factory=list)

class ValidateRequest(BaseModel):
    yaml: str = Field(..., description="検証したいワークフローのYAML")
    strict: bool = Field(False, description="Trueなら警告も不合格として扱う")

class ValidateResponse(BaseModel):
    status: str
    message: str
    valid: bool = False
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

class TemplateInfo(BaseModel):
    id: str
    name: str
    description: str
    category: str
    tags: list[str] = Field(default_factory=list)
    node_types: list[str] = Field(default_factory=list)
    complexity: int = 1

class TemplateListResponse(BaseModel):
    status: str
    message: str
    templates: list[TemplateInfo] = Field(default_factory=list)

class TemplateDetailResponse(BaseModel):
    status: str
    message: str
    template: TemplateInfo | None = None
    yaml: str | None = None

class NodeListResponse(BaseModel):
    status: str
    message: str
    nodes: list[NodeMeta] = Field(default_factory=list)


def template_info(template: WorkflowTemplate) -> TemplateInfo:
    metadata = template.metadata
    return TemplateInfo(
        id=metadata.id,
        name=metadata.name,
        description=metadata.description,
        category=metadata.category,
        tags=list(metadata.tags),
        node_types=list(metadata.node_types),
        complexity=metadata.complexity,
    )


@lru_cache
def get_orchestrator() -> WorkflowOrchestrator:
    """
    環境変数で指定されたLLMを使うオーケストレータを1つだけ作る。
    """
    provider = os.environ.get("DIFYGEN_PROVIDER", "openai")
    model = os.environ.get("DIFYGEN_MODEL") or None
    log("info", f"オーケストレータを初期化します（{provider}:{model or 'default'}）")
    return WorkflowOrchestrator(create_llm_service(provider=provider, model=model))

def get_template_store() -> TemplateStore:
    return get_default_template_store()


@app.post("/generate", response_model=GenerateResponse)
async def generate_workflow(req: GenerateRequest, orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)):
    """
    自然言語の要求からワークフローのYAMLを生成する。
    """
    try:
        result = await orchestrator.generate(GenerationRequest(**req.model_dump()))
        if not result.success:
            return GenerateResponse(status="error", message=result.error or "生成に失敗しました", yaml=result.yaml)
        return GenerateResponse(
            status="success",
            message="ワークフローを生成しました",
            yaml=result.yaml,
            template_used=result.metadata.template_used,
            plan_summary=result.metadata.plan_summary,
            duration=result.metadata.duration,
        )
    except Exception as e:
        return GenerateResponse(status="error", message=str(e))

@app.post("/refine", response_model=RefineResponse)
async def refine_workflow(req: RefineRequest, orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)):
    """
    既存のワークフローYAMLを指示に従って編集する。
    """
    try:
        parsed = parse_yaml(req.yaml)
        if not parsed.success:
            return RefineResponse(status="error", message=parsed.error)
        dsl = DifyDSL.model_validate(parsed.data)
        result = await orchestrator.edit(dsl, req.instruction, req.target_nodes)
        if not result.success:
            return RefineResponse(status="error", message=result.error or "編集に失敗しました", yaml=result.yaml)
        return RefineResponse(
            status="success",
            message="ワークフローを編集しました",
            yaml=result.yaml,
            changes=[change.description for change in result.changes],
        )
    except Exception as e:
        return RefineResponse(status="error", message=str(e))

@app.post("/validate", response_model=ValidateResponse)
def validate_workflow(req: ValidateRequest):
    """
    ワークフローYAMLを検証し、エラーと警告を返す。
    """
    try:
        result = DSLValidator(strict=req.strict).validate(req.yaml)
        return ValidateResponse(
            status="success",
            message="検証に合格しました" if result.valid else f"{len(result.errors)}件のエラーがあります",
            valid=result.valid,
            errors=[str(issue) for issue in result.errors],
            warnings=[str(issue) for issue in result.warnings],
        )
    except Exception as e:
        return ValidateResponse(status="error", message=str(e))

@app.get("/templates", response_model=TemplateListResponse)
def list_templates(store: TemplateStore = Depends(get_template_store)):
    try:
        templates = [template_info(t) for t in store.get_all()]
        return TemplateListResponse(status="success", message=f"{len(templates)}件のテンプレート", templates=templates)
    except Exception as e:
        return TemplateListResponse(status="error", message=str(e))

@app.get("/templates/{template_id}", response_model=TemplateDetailResponse)
def get_template(template_id: str, store: TemplateStore = Depends(get_template_store)):
    """
    テンプレートの情報と、既定パラメータで組み立てたYAMLを返す。
    """
    try:
        template = store.get(template_id)
        if template is None:
            return TemplateDetailResponse(status="not_found", message=f"テンプレート '{template_id}' は存在しません")
        return TemplateDetailResponse(
            status="success",
            message="テンプレートを取得しました",
            template=template_info(template),
            yaml=stringify_yaml(template.build()),
        )
    except Exception as e:
        return TemplateDetailResponse(status="error", message=str(e))

@app.get("/nodes", response_model=NodeListResponse)
def list_nodes(category: str | None = None):
    """
    ノード種別の説明情報を返す。categoryを指定するとその分類だけに絞る。
    """
    nodes = get_nodes_by_category(category) if category else [get_node_meta(t) for t in get_all_node_types()]
    return NodeListResponse(status="success", message=f"{len(nodes)}件のノード", nodes=nodes)

@app.get("/health")
def health() -> dict[str, Any]:
    return {"status": "ok"}


def run(host: str = "127.0.0.1", port: int = 8000) -> None:
    log("info", f"difygenサーバーを http://{host}:{port} で起動します")
    uvicorn.run(app, host=host, port=port)


# 実行方法:
# uvicorn difygen.server.api:app --host 127.0.0.1 --port 8000
if __name__ == "__main__":
    run()
