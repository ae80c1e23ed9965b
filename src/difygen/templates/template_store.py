from typing import Any, Callable, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from difygen.dsl.id_generator import IdGenerator
from difygen.dsl.schema import DifyDSL
from difygen.log_output.log import log
from difygen.templates.lexical import estimate_query_complexity, normalize_text, tokenize
from difygen.tools.cache import CacheConfig, LRUCache, get_cache_config

"""
ワークフローテンプレートの登録と、自然言語クエリとの字句マッチング。
マッチ結果は "query:limit" をキーにLRUキャッシュへ保存し、登録内容が変わったら全消去する。
"""

TemplateCategory = Literal["qa", "rag", "translation", "writing", "analysis", "automation", "agent", "other"]


class TemplateMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    category: TemplateCategory = "other"
    tags: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    node_types: tuple[str, ...] = ()
    complexity: int = Field(1, ge=1, le=5)


class WorkflowTemplate:
    """メタデータと、パラメータからDSLを組み立てる純粋関数の組"""

    def __init__(self, metadata: TemplateMetadata, builder: Callable[[dict, IdGenerator], DifyDSL]):
        self.metadata = metadata
        self._builder = builder

    @property
    def id(self) -> str:
        return self.metadata.id

    def build(self, params: Optional[dict[str, Any]] = None, id_generator: Optional[IdGenerator] = None) -> DifyDSL:
        return self._builder(params or {}, id_generator or IdGenerator())

    def __repr__(self) -> str:
        return f"WorkflowTemplate(id={self.metadata.id!r})"


class TemplateMatch(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    template: WorkflowTemplate
    score: float
    matched_keywords: list[str] = Field(default_factory=list)


class TemplateStoreConfig(BaseModel):
    include_builtin: bool = True
    custom_templates: list[Any] = Field(default_factory=list, description="追加登録するWorkflowTemplate")
    enable_cache: bool = True
    cache_config: Optional[CacheConfig] = None


class TemplateStore:
    def __init__(self, config: Optional[TemplateStoreConfig] = None):
        config = config or TemplateStoreConfig()
        self._templates: dict[str, WorkflowTemplate] = {}
        self._match_cache: Optional[LRUCache] = None

        if config.enable_cache:
            cache_config = config.cache_config or get_cache_config("TEMPLATE")
            self._match_cache = LRUCache(
                max_size=cache_config.max_size,
                ttl=cache_config.ttl,
                enable_stats=cache_config.enable_stats,
            )

        if config.include_builtin:
            from difygen.templates.builtin import BUILTIN_TEMPLATES
            for template in BUILTIN_TEMPLATES:
                self.register(template)
        for template in config.custom_templates:
            self.register(template)

    def register(self, template: WorkflowTemplate) -> None:
        if template.id in self._templates:
            log("warning", f"テンプレート '{template.id}' は既に登録されているため上書きします")
        self._templates[template.id] = template
        self.clear_cache()

    def unregister(self, template_id: str) -> bool:
        if self._templates.pop(template_id, None) is None:
            return False
        self.clear_cache()
        return True

    def get(self, template_id: str) -> Optional[WorkflowTemplate]:
        return self._templates.get(template_id)

    def get_all(self) -> list[WorkflowTemplate]:
        return list(self._templates.values())

    def get_by_category(self, category: str) -> list[WorkflowTemplate]:
        return [t for t in self._templates.values() if t.metadata.category == category]

    def get_by_tag(self, tag: str) -> list[WorkflowTemplate]:
        return [t for t in self._templates.values() if tag in t.metadata.tags]

    def match(self, query: str, limit: int = 5) -> list[TemplateMatch]:
        cache_key = f"{query}:{limit}"
        if self._match_cache is not None:
            cached = self._match_cache.get(cache_key)
            if cached is not None:
                return cached

        normalized_query = normalize_text(query)
        query_tokens = tokenize(normalized_query)
        matches = []
        for template in self._templates.values():
            score = self._calculate_score(template, normalized_query, query_tokens)
            if score > 0:
                matches.append(TemplateMatch(
                    template=template,
                    score=score,
                    matched_keywords=self._find_matched_keywords(template, query_tokens),
                ))
        # 同点は登録順
        result = sorted(matches, key=lambda m: m.score, reverse=True)[:limit]

        if self._match_cache is not None:
            self._match_cache.set(cache_key, result)
        return result

    def find_best(self, query: str) -> Optional[TemplateMatch]:
        matches = self.match(query, 1)
        return matches[0] if matches else None

    def _calculate_score(self, template: WorkflowTemplate, normalized_query: str, query_tokens: list[str]) -> float:
        meta = template.metadata
        score = 0

        name = normalize_text(meta.name)
        if name and name in normalized_query:
            score += 50

        for keyword in meta.keywords:
            normalized_keyword = normalize_text(keyword)
            if normalized_keyword in normalized_query:
                score += 20
            elif any(token in normalized_keyword for token in query_tokens):
                score += 10

        for tag in meta.tags:
            if normalize_text(tag) in normalized_query:
                score += 15

        description_tokens = set(tokenize(normalize_text(meta.description)))
        score += 5 * sum(1 for token in query_tokens if token in description_tokens)

        # 字句的に一致したテンプレートのみ、複雑度が近ければ加点する
        if score > 0 and abs(meta.complexity - estimate_query_complexity(normalized_query)) <= 1:
            score += 10
        return score

    def _find_matched_keywords(self, template: WorkflowTemplate, query_tokens: list[str]) -> list[str]:
        matched = []
        for keyword in template.metadata.keywords:
            normalized_keyword = normalize_text(keyword)
            if any(token in normalized_keyword or normalized_keyword in token for token in query_tokens):
                matched.append(keyword)
        return matched

    def get_cache_stats(self):
        return self._match_cache.stats() if self._match_cache is not None else None

    def clear_cache(self) -> None:
        if self._match_cache is not None:
            self._match_cache.clear()


_default_store: Optional[TemplateStore] = None


def get_default_template_store() -> TemplateStore:
    """プロセス全体で共有するテンプレートストア"""
    global _default_store
    if _default_store is None:
        _default_store = TemplateStore()
    return _default_store
