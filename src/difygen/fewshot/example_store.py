from typing import Literal, Optional, Union
import yaml
from pydantic import BaseModel, Field, ValidationError
from difygen.dsl.schema import DifyDSL
from difygen.dsl.yaml_io import parse_yaml, stringify_yaml
from difygen.log_output.log import log
from difygen.templates.lexical import normalize_text, tokenize

"""
Few-shot用の生成事例を管理するストア。
検索はテンプレートと同じ正規化・トークン化を使い、プロンプト文との重なりも加点する。
"""

ExampleCategory = Literal["simple", "conditional", "loop", "rag", "agent", "api", "code", "complex"]


class ExampleMetadata(BaseModel):
    id: str
    name: str
    description: str
    category: ExampleCategory
    keywords: list[str] = Field(default_factory=list)
    node_types: list[str] = Field(default_factory=list)
    complexity: int = Field(1, ge=1, le=5)


class FewShotExample(BaseModel):
    metadata: ExampleMetadata
    prompt: str = Field(..., description="この事例を生成した自然言語の要求")
    dsl: DifyDSL
    explanation: Optional[str] = Field(None, description="ワークフロー構成の説明")


class ExampleMatch(BaseModel):
    example: FewShotExample
    score: float
    matched_keywords: list[str] = Field(default_factory=list)


class SerializedExample(BaseModel):
    """dslをYAML文字列で持つ保存用の形式"""
    metadata: ExampleMetadata
    prompt: str
    dsl: str
    explanation: Optional[str] = None


class ExampleStoreConfig(BaseModel):
    include_builtin: bool = True
    custom_examples: list[FewShotExample] = Field(default_factory=list)
    min_score: float = Field(10, description="検索結果に含める最低スコア")
    max_results: int = Field(3, description="検索結果の最大件数")


class ExampleStore:
    def __init__(self, config: Optional[ExampleStoreConfig] = None):
        self.config = config or ExampleStoreConfig()
        self._examples: dict[str, FewShotExample] = {}
        if self.config.include_builtin:
            from difygen.fewshot.builtin import get_builtin_examples
            for example in get_builtin_examples():
                self.add(example)
        for example in self.config.custom_examples:
            self.add(example)

    def add(self, example: FewShotExample) -> None:
        if example.metadata.id in self._examples:
            log("warning", f"事例 '{example.metadata.id}' は既に存在するため上書きします")
        self._examples[example.metadata.id] = example

    def remove(self, example_id: str) -> bool:
        return self._examples.pop(example_id, None) is not None

    def get(self, example_id: str) -> Optional[FewShotExample]:
        return self._examples.get(example_id)

    def get_all(self) -> list[FewShotExample]:
        return list(self._examples.values())

    def get_by_category(self, category: str) -> list[FewShotExample]:
        return [e for e in self._examples.values() if e.metadata.category == category]

    def search(self, query: str, limit: Optional[int] = None) -> list[ExampleMatch]:
        normalized_query = normalize_text(query)
        query_tokens = tokenize(normalized_query)
        matches = []
        for example in self._examples.values():
            score = self._calculate_score(example, normalized_query, query_tokens)
            if score >= self.config.min_score:
                matches.append(ExampleMatch(
                    example=example,
                    score=score,
                    matched_keywords=self._find_matched_keywords(example, query_tokens),
                ))
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[: limit if limit is not None else self.config.max_results]

    def find_best_examples(self, query: str, count: int = 2) -> list[FewShotExample]:
        return [match.example for match in self.search(query, count)]

    def format_for_prompt(self, examples: list[FewShotExample]) -> str:
        """事例をLLMに渡すFew-shotプロンプトの形に整形する"""
        if not examples:
            return ""
        parts = ["以下是一些工作流生成的示例：\n"]
        for i, example in enumerate(examples, 1):
            parts.append(f"### 示例 {i}: {example.metadata.name}\n")
            parts.append(f"**用户需求：** {example.prompt}\n")
            if example.explanation:
                parts.append(f"**设计说明：** {example.explanation}\n")
            parts.append(f"**生成的 DSL：**\n```yaml\n{stringify_yaml(example.dsl)}```\n")
        return "\n".join(parts)

    def import_examples(self, serialized: Union[str, list]) -> int:
        """
        保存形式の事例を取り込む。YAML文字列の場合はSerializedExampleのリストとして読む。
        壊れた事例はログを出して読み飛ばし、取り込めた件数を返す。
        """
        if isinstance(serialized, str):
            try:
                serialized = yaml.safe_load(serialized) or []
            except yaml.YAMLError as e:
                log("error", f"事例のYAMLを読み込めませんでした: {e}")
                return 0
            if not isinstance(serialized, list):
                log("error", "事例のYAMLはリストである必要があります")
                return 0

        imported = 0
        for item in serialized:
            try:
                item = item if isinstance(item, SerializedExample) else SerializedExample.model_validate(item)
                parsed = parse_yaml(item.dsl)
                if not parsed.success:
                    log("error", f"事例 '{item.metadata.id}' のDSLをパースできませんでした: {parsed.error}")
                    continue
                self.add(FewShotExample(
                    metadata=item.metadata,
                    prompt=item.prompt,
                    dsl=DifyDSL.model_validate(parsed.data),
                    explanation=item.explanation,
                ))
                imported += 1
            except ValidationError as e:
                log("error", f"事例を取り込めませんでした: {e}")
        return imported

    def export_examples(self) -> str:
        serialized = [
            SerializedExample(
                metadata=example.metadata,
                prompt=example.prompt,
                dsl=stringify_yaml(example.dsl),
                explanation=example.explanation,
            ).model_dump(exclude_none=True)
            for example in self._examples.values()
        ]
        return yaml.safe_dump(serialized, allow_unicode=True, sort_keys=False)

    def _calculate_score(self, example: FewShotExample, normalized_query: str, query_tokens: list[str]) -> float:
        meta = example.metadata
        score = 0

        name = normalize_text(meta.name)
        if name and name in normalized_query:
            score += 30

        prompt_tokens = set(tokenize(normalize_text(example.prompt)))
        score += 8 * sum(1 for token in query_tokens if token in prompt_tokens)

        for keyword in meta.keywords:
            normalized_keyword = normalize_text(keyword)
            if normalized_keyword in normalized_query:
                score += 15
            elif any(token in normalized_keyword for token in query_tokens):
                score += 7

        description_tokens = set(tokenize(normalize_text(meta.description)))
        score += 3 * sum(1 for token in query_tokens if token in description_tokens)
        return score

    def _find_matched_keywords(self, example: FewShotExample, query_tokens: list[str]) -> list[str]:
        matched = []
        for keyword in example.metadata.keywords:
            normalized_keyword = normalize_text(keyword)
            if any(token in normalized_keyword or normalized_keyword in token for token in query_tokens):
                matched.append(keyword)
        return matched


def create_example_store(config: Optional[ExampleStoreConfig] = None) -> ExampleStore:
    return ExampleStore(config)
