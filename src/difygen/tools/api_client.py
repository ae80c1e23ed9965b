from typing import Optional
import requests
from pydantic import BaseModel, Field
from difygen.log_output.log import log

"""
difygenサーバー（difygen.server.api）を呼び出すクライアント。
サーバーは別途 uvicorn difygen.server.api:app で起動しておくこと。
"""


class GenerateResult(BaseModel):
    status: str = Field(..., description="処理結果のステータス")
    message: str = Field(..., description="処理結果のメッセージ")
    yaml: Optional[str] = Field(None, description="生成されたワークフローのYAML")
    template_used: Optional[str] = Field(None, description="使用したテンプレートのID")
    plan_summary: Optional[str] = Field(None, description="計画の概要")
    duration: Optional[float] = Field(None, description="生成にかかった時間（秒）")


class RefineResult(BaseModel):
    status: str = Field(..., description="処理結果のステータス")
    message: str = Field(..., description="処理結果のメッセージ")
    yaml: Optional[str] = Field(None, description="編集後のワークフローのYAML")
    changes: list[str] = Field(default_factory=list, description="変更内容")


class ValidateResult(BaseModel):
    status: str = Field(..., description="処理結果のステータス")
    message: str = Field(..., description="処理結果のメッセージ")
    valid: bool = Field(False, description="検証に合格したかどうか")
    errors: list[str] = Field(default_factory=list, description="エラーの一覧")
    warnings: list[str] = Field(default_factory=list, description="警告の一覧")


class TemplateListResult(BaseModel):
    status: str = Field(..., description="処理結果のステータス")
    message: str = Field(..., description="処理結果のメッセージ")
    templates: list[dict] = Field(default_factory=list, description="テンプレート情報の一覧")


class DifygenAPIClient:
    def __init__(self, base_url: str = "http://localhost:8000", timeout: float = 300.0):
        """
        Args:
            base_url (str): APIサーバーのベースURL（デフォルト: http://localhost:8000）
            timeout (float): 1リクエストのタイムアウト秒数。生成はLLMを複数回呼ぶため長めにする
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def generate(
        self,
        prompt: str,
        preferred_provider: Optional[str] = None,
        preferred_model: Optional[str] = None,
        dataset_ids: Optional[list[str]] = None,
        skip_templates: bool = False,
    ) -> GenerateResult:
        """
        自然言語の要求からワークフローを生成する。

        Args:
            prompt (str): 生成したいワークフローの説明
            preferred_provider (Optional[str]): LLMノードに設定するモデル提供元
            preferred_model (Optional[str]): LLMノードに設定するモデル名
            dataset_ids (Optional[list[str]]): 知識検索ノードで使うデータセットID
            skip_templates (bool): Trueならテンプレートを使わない
        Returns:
            GenerateResult: 処理結果
        """
        payload = {
            "prompt": prompt,
            "preferred_provider": preferred_provider,
            "preferred_model": preferred_model,
            "dataset_ids": dataset_ids,
            "skip_templates": skip_templates,
        }
        try:
            resp = requests.post(f"{self.base_url}/generate", json=payload, timeout=self.timeout)
            result = GenerateResult(**resp.json())
        except Exception as e:
            result = GenerateResult(status="error", message=f"サーバーへの接続に失敗しました: {e}")
        log(result.status, result.message)
        return result

    def refine(self, yaml_text: str, instruction: str, target_nodes: Optional[list[str]] = None) -> RefineResult:
        """
        既存のワークフローYAMLを指示に従って編集する。
        """
        payload = {"yaml": yaml_text, "instruction": instruction, "target_nodes": target_nodes}
        try:
            resp = requests.post(f"{self.base_url}/refine", json=payload, timeout=self.timeout)
            result = RefineResult(**resp.json())
        except Exception as e:
            result = RefineResult(status="error", message=f"サーバーへの接続に失敗しました: {e}")
        log(result.status, result.message)
        return result

    def validate(self, yaml_text: str, strict: bool = False) -> ValidateResult:
        try:
            resp = requests.post(f"{self.base_url}/validate", json={"yaml": yaml_text, "strict": strict}, timeout=self.timeout)
            result = ValidateResult(**resp.json())
        except Exception as e:
            result = ValidateResult(status="error", message=f"サーバーへの接続に失敗しました: {e}")
        log(result.status, result.message)
        return result

    def list_templates(self) -> TemplateListResult:
        try:
            resp = requests.get(f"{self.base_url}/templates", timeout=self.timeout)
            result = TemplateListResult(**resp.json())
        except Exception as e:
            result = TemplateListResult(status="error", message=f"サーバーへの接続に失敗しました: {e}")
        log(result.status, result.message)
        return result
