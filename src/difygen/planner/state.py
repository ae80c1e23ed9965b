from typing import Any, Literal, Optional
from pydantic import BaseModel, Field
from difygen.dsl.schema import NodeType, VariableType

"""
プランナーが扱うデータ構造。
WorkflowPlanはリクエストごとに作られ、永続化はしない。
"""

FeatureType = Literal[
    "llm", "rag", "classification", "conditional", "iteration",
    "code", "api", "agent", "multi-model", "streaming",
]


class WorkflowFeature(BaseModel):
    type: FeatureType
    description: str = ""
    required: bool = Field(True, description="任意機能(可选など)ならFalse")


class Intent(BaseModel):
    action: str = Field(..., description="主な動作（问答、翻译など）")
    domain: Optional[str] = Field(None, description="対象領域（知识库、客服など）")
    requirements: list[str] = Field(default_factory=list, description="要求文から抜き出した条件")
    features: list[WorkflowFeature] = Field(default_factory=list)
    complexity: int = Field(1, ge=1, le=5)

    def has_feature(self, feature: str) -> bool:
        return any(f.type == feature for f in self.features)

    def required_features(self) -> list[WorkflowFeature]:
        return [f for f in self.features if f.required]


class PlannedNode(BaseModel):
    id: str
    type: NodeType
    title: str
    description: str = ""
    config_hints: dict[str, Any] = Field(default_factory=dict, description="DSL生成時に参考にする設定")


class PlannedEdge(BaseModel):
    source: str
    target: str
    source_handle: Optional[str] = Field(None, description="分岐ノードの分岐ID")
    target_handle: Optional[str] = None
    condition: Optional[str] = Field(None, description="分岐の説明")


class InputVariable(BaseModel):
    name: str
    label: str
    type: VariableType = "text-input"
    required: bool = True
    description: Optional[str] = None


class OutputDefinition(BaseModel):
    name: str
    source: list[str] = Field(..., min_length=2, max_length=2, description="[nodeId, variableName]")
    description: Optional[str] = None


class WorkflowPlan(BaseModel):
    name: str
    description: str = ""
    intent: Intent
    nodes: list[PlannedNode] = Field(default_factory=list)
    edges: list[PlannedEdge] = Field(default_factory=list)
    input_variables: list[InputVariable] = Field(default_factory=list)
    outputs: list[OutputDefinition] = Field(default_factory=list)
    confidence: float = Field(0.5, ge=0, le=1)
    alternatives: list[str] = Field(default_factory=list)

    def summary(self) -> str:
        return f"{len(self.nodes)} nodes, {len(self.edges)} edges"


class PlanningResult(BaseModel):
    success: bool
    plan: Optional[WorkflowPlan] = None
    error: Optional[str] = None
    duration: float = Field(0.0, description="計画にかかった時間（秒）")
    source: Optional[Literal["template", "llm", "rules"]] = Field(None, description="計画を作った経路")


class PlanValidation(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
