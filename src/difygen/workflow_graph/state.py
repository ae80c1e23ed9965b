import operator
from typing import Annotated, Any, Literal, Optional
from pydantic import BaseModel, Field
from difygen.dsl.schema import DifyDSL

"""
DSL生成・修復ループの状態（State）を管理するPydanticモデル。
LangGraphのグラフ構築時に各ノード間で受け渡すデータ構造として利用。
"""

FailedStage = Literal["request", "extract", "parse", "validate"]


class RepairState(BaseModel):
    prompt: str = Field(..., description="次にLLMへ送るプロンプト")
    system_prompt: Optional[str] = Field(None, description="毎回先頭に付けるシステムプロンプト")
    attempt: int = Field(0, description="LLMに要求した回数")
    max_attempts: int = Field(3, description="LLMに要求できる最大回数（初回を含む）")

    response_text: Optional[str] = Field(None, description="直近のLLMの応答")
    yaml_text: Optional[str] = Field(None, description="直近の応答から取り出したYAML")
    data: Optional[dict[str, Any]] = Field(None, description="YAMLをパースした結果")
    dsl: Optional[DifyDSL] = Field(None, description="検証を通過したDSL")

    errors: list[str] = Field(default_factory=list, description="直近の試行で見つかったエラー")
    failed_stage: Optional[FailedStage] = Field(None, description="直近の試行が失敗した段階")
    error_history: Annotated[list[str], operator.add] = Field(default_factory=list, description="全試行のエラー履歴")
    node_history: Annotated[list[str], operator.add] = Field(default_factory=list, description="通過したノードの履歴")
    tokens_used: int = 0

    success: bool = False
    error: Optional[str] = Field(None, description="試行を使い切ったときの最終エラーメッセージ")

    @property
    def retries(self) -> int:
        return max(self.attempt - 1, 0)

    def summary(self) -> str:
        return (
            f"試行: {self.attempt}/{self.max_attempts}\n"
            f"成功: {self.success}\n"
            f"失敗した段階: {self.failed_stage or 'なし'}\n"
            f"エラー: {'; '.join(self.errors) or 'なし'}"
        )
