from difygen.dsl.builder import WorkflowBuilder
from difygen.dsl.id_generator import IdGenerator
from difygen.dsl.schema import DifyDSL
from difygen.templates.template_store import TemplateMetadata, WorkflowTemplate

"""
組み込みテンプレート。
buildはパラメータ(dict)だけから決まる純粋関数で、ノードIDは固定値を使う。
"""


def _build_simple_qa(params: dict, id_generator: IdGenerator) -> DifyDSL:
    system_prompt = params.get("system_prompt", "你是一个有帮助的 AI 助手。请根据用户的问题提供准确、简洁的回答。")
    return (
        WorkflowBuilder(name="简单问答", description="基础的单轮问答工作流", icon="💬", id_generator=id_generator)
        .add_start(variables=[{
            "name": "question",
            "label": params.get("input_label", "问题"),
            "type": "paragraph",
            "required": True,
            "max_length": 2000,
        }])
        .add_llm(
            node_id="llm",
            title="AI 回答",
            provider=params.get("provider", "openai"),
            model=params.get("model", "gpt-4o"),
            temperature=0.7,
            system_prompt=system_prompt,
            user_prompt="{{#start.question#}}",
        )
        .add_end(node_id="end", outputs=[{"name": "answer", "source": ["llm", "text"]}])
        .connect("start", "llm")
        .connect("llm", "end")
        .build()
    )


_TRANSLATION_RULES = """要求：
1. 保持原文的语气和风格
2. 专业术语翻译准确
3. 只输出翻译结果，不要解释"""


def _build_translation(params: dict, id_generator: IdGenerator) -> DifyDSL:
    target_language = params.get("target_language", "")
    if target_language:
        system_prompt = f"你是专业翻译。请将用户输入的文本翻译成{target_language}。\n{_TRANSLATION_RULES}"
    else:
        system_prompt = (
            "你是专业翻译。请判断输入文本的语言：\n"
            "- 如果是中文，翻译成英文\n"
            "- 如果是英文，翻译成中文\n"
            "- 如果是其他语言，翻译成中文\n\n"
            f"{_TRANSLATION_RULES}"
        )
    return (
        WorkflowBuilder(name="智能翻译", description="自动检测语言并翻译", icon="🌐", id_generator=id_generator)
        .add_start(variables=[{
            "name": "text",
            "label": "待翻译文本",
            "type": "paragraph",
            "required": True,
            "max_length": 10000,
        }])
        .add_llm(
            node_id="llm",
            title="翻译",
            provider=params.get("provider", "openai"),
            model=params.get("model", "gpt-4o"),
            temperature=0.3,
            system_prompt=system_prompt,
            user_prompt="{{#start.text#}}",
        )
        .add_end(node_id="end", outputs=[{"name": "translation", "source": ["llm", "text"]}])
        .connect("start", "llm")
        .connect("llm", "end")
        .build()
    )


_RAG_SYSTEM_PROMPT = """你是一个专业的客服助手。请根据提供的参考资料回答用户的问题。

要求：
1. 只根据参考资料中的信息回答，不要编造
2. 如果参考资料中没有相关信息，请诚实地说"我没有找到相关信息"
3. 回答要简洁明了
4. 如果需要，可以引用资料中的具体内容"""


def _build_rag_qa(params: dict, id_generator: IdGenerator) -> DifyDSL:
    return (
        WorkflowBuilder(name="知识库问答", description="基于知识库的 RAG 问答系统", icon="📚", id_generator=id_generator)
        .add_start(variables=[{
            "name": "query",
            "label": "问题",
            "type": "paragraph",
            "required": True,
            "max_length": 2000,
        }])
        .add_knowledge_retrieval(
            node_id="retrieval",
            title="知识检索",
            query_from=["start", "query"],
            dataset_ids=params.get("dataset_ids") or ["your-dataset-id"],
            top_k=params.get("top_k", 5),
            score_threshold=params.get("score_threshold", 0.5),
            reranking_enabled=True,
            reranking_model={"provider": "cohere", "model": "rerank-multilingual-v2.0"},
        )
        .add_llm(
            node_id="llm",
            title="生成回答",
            provider=params.get("provider", "openai"),
            model=params.get("model", "gpt-4o"),
            temperature=0.5,
            system_prompt=params.get("system_prompt", _RAG_SYSTEM_PROMPT),
            user_prompt="{{#start.query#}}",
            context_selector=["retrieval", "result"],
        )
        .add_end(node_id="end", outputs=[{"name": "answer", "source": ["llm", "text"]}])
        .connect("start", "retrieval")
        .connect("retrieval", "llm")
        .connect("llm", "end")
        .build()
    )


_DEFAULT_ROUTER_CLASSES = [
    {"id": "product", "name": "产品咨询"},
    {"id": "tech", "name": "技术支持"},
    {"id": "other", "name": "其他问题"},
]


def _build_intent_router(params: dict, id_generator: IdGenerator) -> DifyDSL:
    classes = params.get("classes") or _DEFAULT_ROUTER_CLASSES
    provider = params.get("provider", "openai")
    model = params.get("model", "gpt-4o")

    builder = (
        WorkflowBuilder(name="意图路由", description="根据用户意图分类，路由到不同处理分支", icon="🔀", id_generator=id_generator)
        .add_start(variables=[{
            "name": "input",
            "label": "用户输入",
            "type": "paragraph",
            "required": True,
            "max_length": 2000,
        }])
        .add_question_classifier(
            node_id="classifier",
            title="意图分类",
            query_from=["start", "input"],
            provider=provider,
            model="gpt-4o-mini",
            classes=classes,
            instruction="根据用户输入的内容，判断其意图属于哪个类别。",
        )
    )

    llm_ids = []
    for cls in classes:
        llm_id = f"llm-{cls['id']}"
        llm_ids.append(llm_id)
        builder.add_llm(
            node_id=llm_id,
            title=f"{cls['name']}处理",
            provider=provider,
            model=model,
            temperature=0.7,
            system_prompt=f"你是{cls['name']}专家。请针对用户的{cls['name']}相关问题提供专业的回答。",
            user_prompt="{{#start.input#}}",
        )

    builder.add_aggregator(
        node_id="aggregator",
        title="结果聚合",
        variables=[[llm_id, "text"] for llm_id in llm_ids],
        output_type="string",
    )
    builder.add_end(node_id="end", outputs=[{"name": "result", "source": ["aggregator", "output"]}])

    builder.connect("start", "classifier")
    for cls, llm_id in zip(classes, llm_ids):
        builder.connect("classifier", llm_id, source_handle=cls["id"])
        builder.connect(llm_id, "aggregator")
    builder.connect("aggregator", "end")
    return builder.build()


_SUMMARY_PROMPTS = {
    "bullet": """你是文本摘要专家。请将用户提供的文本总结为简洁的要点列表。

要求：
1. 提取 3-7 个核心要点
2. 每个要点一句话，简洁明了
3. 使用 "•" 作为要点符号
4. 保持原文的关键信息和数据
5. 总字数不超过 {max_length} 字""",
    "paragraph": """你是文本摘要专家。请将用户提供的文本总结为一段简洁的摘要。

要求：
1. 摘要应包含原文的核心观点和关键信息
2. 使用流畅的段落形式
3. 保持客观中立的语气
4. 总字数不超过 {max_length} 字""",
    "outline": """你是文本摘要专家。请将用户提供的文本整理为结构化的大纲。

要求：
1. 使用多级标题结构
2. 提取主要论点和支撑细节
3. 保持逻辑层次清晰
4. 总字数不超过 {max_length} 字""",
}


def _build_summarizer(params: dict, id_generator: IdGenerator) -> DifyDSL:
    max_length = params.get("max_length", 500)
    prompt = _SUMMARY_PROMPTS.get(
        params.get("style", "bullet"),
        "请总结以下文本，提取关键信息，总字数不超过 {max_length} 字。",
    )
    return (
        WorkflowBuilder(name="文本摘要", description="对长文本进行智能摘要", icon="📝", id_generator=id_generator)
        .add_start(variables=[{
            "name": "text",
            "label": "待摘要文本",
            "type": "paragraph",
            "required": True,
            "max_length": 50000,
        }])
        .add_llm(
            node_id="llm",
            title="生成摘要",
            provider=params.get("provider", "openai"),
            model=params.get("model", "gpt-4o"),
            temperature=0.3,
            max_tokens=2000,
            system_prompt=prompt.format(max_length=max_length),
            user_prompt="{{#start.text#}}",
        )
        .add_end(node_id="end", outputs=[{"name": "summary", "source": ["llm", "text"]}])
        .connect("start", "llm")
        .connect("llm", "end")
        .build()
    )


def _build_api_caller(params: dict, id_generator: IdGenerator) -> DifyDSL:
    return (
        WorkflowBuilder(name="API 调用", description="调用外部 API 并处理结果", icon="🔌", id_generator=id_generator)
        .add_start(variables=[{
            "name": "query",
            "label": "查询参数",
            "type": "text-input",
            "required": False,
            "max_length": 500,
        }])
        .add_http_request(
            node_id="http",
            title="API 请求",
            method=params.get("method", "get"),
            url=params.get("api_url", "https://api.example.com/data"),
            headers=[{"key": "Content-Type", "value": "application/json"}],
            timeout={"connect": 10, "read": 30, "write": 10},
        )
        .add_llm(
            node_id="llm",
            title="处理结果",
            provider=params.get("provider", "openai"),
            model=params.get("model", "gpt-4o"),
            temperature=0.5,
            system_prompt=params.get("process_prompt", "请分析以下 API 返回的数据，并生成简洁的总结："),
            user_prompt="{{#http.body#}}",
        )
        .add_end(node_id="end", outputs=[
            {"name": "result", "source": ["llm", "text"]},
            {"name": "raw_data", "source": ["http", "body"]},
        ])
        .connect("start", "http")
        .connect("http", "llm")
        .connect("llm", "end")
        .build()
    )


_PYTHON_PROCESSOR = """def main(data: str) -> dict:
    # 在这里处理数据
    lines = data.strip().split('\\n')
    processed = [line.upper() for line in lines]
    return {
        "result": '\\n'.join(processed),
        "count": len(lines)
    }"""

_JAVASCRIPT_PROCESSOR = """function main(data) {
    const lines = data.trim().split('\\n');
    const processed = lines.map(line => line.toUpperCase());
    return {
        result: processed.join('\\n'),
        count: lines.length
    };
}"""


def _build_code_processor(params: dict, id_generator: IdGenerator) -> DifyDSL:
    language = params.get("language", "python3")
    default_code = _PYTHON_PROCESSOR if language == "python3" else _JAVASCRIPT_PROCESSOR
    return (
        WorkflowBuilder(name="代码数据处理", description="使用代码节点处理数据", icon="💻", id_generator=id_generator)
        .add_start(variables=[{
            "name": "data",
            "label": "输入数据",
            "type": "paragraph",
            "required": True,
            "max_length": 50000,
        }])
        .add_code(
            node_id="code",
            title="数据处理",
            language=language,
            code=params.get("code", default_code),
            inputs=[{"name": "data", "source": ["start", "data"]}],
            outputs=[{"name": "result", "type": "string"}, {"name": "count", "type": "number"}],
        )
        .add_llm(
            node_id="llm",
            title="结果分析",
            provider=params.get("provider", "openai"),
            model=params.get("model", "gpt-4o"),
            temperature=0.5,
            system_prompt="请分析以下处理后的数据，并提供简要说明。",
            user_prompt="处理结果：{{#code.result#}}\n\n数量：{{#code.count#}}",
        )
        .add_end(node_id="end", outputs=[
            {"name": "processed_data", "source": ["code", "result"]},
            {"name": "analysis", "source": ["llm", "text"]},
        ])
        .connect("start", "code")
        .connect("code", "llm")
        .connect("llm", "end")
        .build()
    )


def _build_conditional(params: dict, id_generator: IdGenerator) -> DifyDSL:
    provider = params.get("provider", "openai")
    model = params.get("model", "gpt-4o")
    return (
        WorkflowBuilder(name="条件分支", description="根据条件判断执行不同的处理逻辑", icon="🔀", id_generator=id_generator)
        .add_start(variables=[
            {"name": "input", "label": "输入内容", "type": "paragraph", "required": True, "max_length": 5000},
            {"name": "mode", "label": "处理模式", "type": "select", "required": True,
             "options": ["详细", "简洁"], "default": "简洁"},
        ])
        .add_if_else(
            node_id="condition",
            title="检查模式",
            conditions=[{
                "id": "detailed",
                "logical_operator": "and",
                "rules": [{"variable_selector": ["start", "mode"], "operator": "=", "value": "详细"}],
            }],
        )
        .add_llm(
            node_id="llm-detailed",
            title="详细处理",
            provider=provider,
            model=model,
            temperature=0.7,
            max_tokens=4000,
            system_prompt="请对用户输入进行详细分析和处理，提供全面的回复。",
            user_prompt="{{#start.input#}}",
        )
        .add_llm(
            node_id="llm-brief",
            title="简洁处理",
            provider=provider,
            model=model,
            temperature=0.5,
            max_tokens=1000,
            system_prompt="请对用户输入进行简洁处理，只提供核心要点。",
            user_prompt="{{#start.input#}}",
        )
        .add_aggregator(
            node_id="aggregator",
            title="结果聚合",
            variables=[["llm-detailed", "text"], ["llm-brief", "text"]],
            output_type="string",
        )
        .add_end(node_id="end", outputs=[{"name": "result", "source": ["aggregator", "output"]}])
        .connect("start", "condition")
        .connect("condition", "llm-detailed", source_handle="detailed")
        .connect("condition", "llm-brief", source_handle="false")
        .connect("llm-detailed", "aggregator")
        .connect("llm-brief", "aggregator")
        .connect("aggregator", "end")
        .build()
    )


_DEFAULT_SUPPORT_CATEGORIES = [
    {"id": "product", "name": "产品咨询"},
    {"id": "technical", "name": "技术问题"},
    {"id": "order", "name": "订单问题"},
    {"id": "complaint", "name": "投诉建议"},
]

_SUPPORT_PROMPTS = {
    "product": "你是产品咨询专家。请基于知识库内容，清晰准确地回答客户关于产品的问题。如果知识库中没有相关信息，请礼貌地说明。",
    "technical": "你是技术支持专家。请基于知识库内容，提供详细的技术解决方案。必要时提供分步指导。",
    "order": "你是订单处理专家。请基于知识库内容，帮助客户处理订单相关问题。注意保护客户隐私。",
    "complaint": "你是客户关系专家。请以同理心回应客户的投诉或建议，表达理解并提供解决方案。",
}

_SENTIMENT_PROMPT = """分析客户消息的情感倾向，返回以下之一：
- positive（正面）
- neutral（中性）
- negative（负面）
- urgent（紧急/愤怒）

只返回一个词，不要其他解释。"""


def _build_customer_support(params: dict, id_generator: IdGenerator) -> DifyDSL:
    categories = params.get("categories") or _DEFAULT_SUPPORT_CATEGORIES
    provider = params.get("provider", "openai")
    model = params.get("model", "gpt-4o")

    builder = (
        WorkflowBuilder(name="智能客服对话", description="包含意图识别和知识库检索的智能客服系统", icon="🎧",
                        id_generator=id_generator)
        .add_start(variables=[
            {"name": "user_message", "label": "用户消息", "type": "paragraph", "required": True, "max_length": 2000},
            {"name": "conversation_history", "label": "对话历史（可选）", "type": "paragraph",
             "required": False, "max_length": 10000},
        ])
        .add_question_classifier(
            node_id="intent-classifier",
            title="意图识别",
            query_from=["start", "user_message"],
            provider=provider,
            model="gpt-4o-mini",
            classes=categories,
            instruction="分析客户消息，判断其咨询类型。考虑对话历史上下文。",
        )
        .add_knowledge_retrieval(
            node_id="kb-retrieval",
            title="知识库检索",
            query_from=["start", "user_message"],
            dataset_ids=params.get("dataset_ids") or ["customer-support-kb"],
            top_k=3,
            score_threshold=0.6,
            reranking_enabled=True,
            reranking_model={"provider": "cohere", "model": "rerank-multilingual-v2.0"},
        )
        .add_llm(
            node_id="sentiment-analysis",
            title="情感分析",
            provider=provider,
            model="gpt-4o-mini",
            temperature=0.3,
            system_prompt=_SENTIMENT_PROMPT,
            user_prompt="{{#start.user_message#}}",
        )
    )

    response_ids = []
    for category in categories:
        response_id = f"response-{category['id']}"
        response_ids.append(response_id)
        builder.add_llm(
            node_id=response_id,
            title=f"{category['name']}回复",
            provider=provider,
            model=model,
            temperature=0.7,
            system_prompt=_SUPPORT_PROMPTS.get(category["id"], "你是一个专业的客服助手。"),
            user_prompt=(
                "客户消息：{{#start.user_message#}}\n\n"
                "对话历史：{{#start.conversation_history#}}\n\n"
                "情感状态：{{#sentiment-analysis.text#}}\n\n"
                "请提供专业、友好的回复。"
            ),
            context_selector=["kb-retrieval", "result"],
        )

    builder.add_aggregator(
        node_id="response-aggregator",
        title="回复聚合",
        variables=[[response_id, "text"] for response_id in response_ids],
        output_type="string",
    )
    builder.add_end(node_id="end", outputs=[
        {"name": "reply", "source": ["response-aggregator", "output"]},
        {"name": "intent", "source": ["intent-classifier", "class_name"]},
        {"name": "sentiment", "source": ["sentiment-analysis", "text"]},
    ])

    builder.connect("start", "intent-classifier")
    builder.connect("start", "kb-retrieval")
    builder.connect("start", "sentiment-analysis")
    for category, response_id in zip(categories, response_ids):
        builder.connect("intent-classifier", response_id, source_handle=category["id"])
        builder.connect("kb-retrieval", response_id)
        builder.connect("sentiment-analysis", response_id)
        builder.connect(response_id, "response-aggregator")
    builder.connect("response-aggregator", "end")
    return builder.build()


_OUTLINE_PROMPT = """你是专业的内容策划师。根据主题和要求，创建详细的内容大纲。

输出格式：
1. 标题建议（3 个选项）
2. 核心观点
3. 章节大纲（3-5 个章节，每个章节包含 2-3 个要点）
4. 建议字数
5. SEO 优化建议"""

_WRITING_PROMPT = """你是专业的内容撰写者。根据大纲，撰写完整的高质量内容。

要求：
1. 严格按照大纲结构撰写
2. 内容充实、论点清晰
3. 适当使用案例和数据支撑
4. 保持指定的语气风格
5. 自然融入 SEO 关键词
6. 段落层次分明"""

_EDITOR_PROMPT = """你是资深编辑。审阅文章并提供优化建议。

检查要点：
1. 内容完整性和逻辑性
2. 语法和表达
3. SEO 优化程度
4. 可读性
5. 目标受众契合度

输出格式：
- 评分（1-10）
- 优点（3 条）
- 改进建议（3 条）
- 是否需要重写（是/否）"""

_ARTICLE_TEMPLATE = """# {{ topic }}

{{ main_content }}

---
*关键词: {{ keywords }}*
*目标受众: {{ target_audience }}*"""


def _build_content_generation(params: dict, id_generator: IdGenerator) -> DifyDSL:
    provider = params.get("provider", "openai")
    model = params.get("model", "gpt-4o")
    content_types = params.get("content_types") or ["博客文章", "营销文案", "产品描述", "社交媒体"]
    return (
        WorkflowBuilder(name="内容创作助手", description="从大纲到成稿的完整内容创作流程", icon="✍️",
                        id_generator=id_generator)
        .add_start(variables=[
            {"name": "topic", "label": "主题", "type": "text-input", "required": True, "max_length": 200},
            {"name": "content_type", "label": "内容类型", "type": "select", "required": True, "options": content_types},
            {"name": "target_audience", "label": "目标受众", "type": "text-input", "required": False, "max_length": 200},
            {"name": "keywords", "label": "SEO 关键词（可选）", "type": "text-input", "required": False, "max_length": 200},
            {"name": "tone", "label": "语气风格", "type": "select", "required": False,
             "options": ["专业", "友好", "幽默", "正式", "随性"], "default": "专业"},
        ])
        .add_llm(
            node_id="create-outline",
            title="创建内容大纲",
            provider=provider,
            model=model,
            temperature=0.7,
            system_prompt=_OUTLINE_PROMPT,
            user_prompt=(
                "主题：{{#start.topic#}}\n内容类型：{{#start.content_type#}}\n目标受众：{{#start.target_audience#}}\n"
                "关键词：{{#start.keywords#}}\n语气风格：{{#start.tone#}}"
            ),
        )
        .add_llm(
            node_id="write-main-content",
            title="撰写主要内容",
            provider=provider,
            model=model,
            temperature=0.8,
            system_prompt=_WRITING_PROMPT,
            user_prompt=(
                "主题：{{#start.topic#}}\n语气风格：{{#start.tone#}}\n目标受众：{{#start.target_audience#}}\n"
                "SEO关键词：{{#start.keywords#}}\n\n大纲：\n{{#create-outline.text#}}\n\n请根据大纲撰写完整的文章内容。"
            ),
        )
        .add_template(
            node_id="assemble-article",
            title="组装文章",
            template=_ARTICLE_TEMPLATE,
            variables=[
                {"name": "topic", "source": ["start", "topic"]},
                {"name": "main_content", "source": ["write-main-content", "text"]},
                {"name": "keywords", "source": ["start", "keywords"]},
                {"name": "target_audience", "source": ["start", "target_audience"]},
            ],
        )
        .add_llm(
            node_id="quality-check",
            title="质量检查",
            provider=provider,
            model=model,
            temperature=0.3,
            system_prompt=_EDITOR_PROMPT,
            user_prompt=(
                "文章内容：\n{{#assemble-article.output#}}\n\n原始要求：\n- 主题：{{#start.topic#}}\n"
                "- 类型：{{#start.content_type#}}\n- 受众：{{#start.target_audience#}}"
            ),
        )
        .add_llm(
            node_id="final-polish",
            title="最终润色",
            provider=provider,
            model=model,
            temperature=0.5,
            system_prompt="你是专业编辑。根据质量检查建议，对文章进行最终润色。保持原有结构，优化表达和细节。",
            user_prompt="文章：\n{{#assemble-article.output#}}\n\n优化建议：\n{{#quality-check.text#}}",
        )
        .add_end(node_id="end", outputs=[
            {"name": "final_content", "source": ["final-polish", "text"]},
            {"name": "outline", "source": ["create-outline", "text"]},
            {"name": "quality_report", "source": ["quality-check", "text"]},
        ])
        .connect("start", "create-outline")
        .connect("create-outline", "write-main-content")
        .connect("write-main-content", "assemble-article")
        .connect("assemble-article", "quality-check")
        .connect("quality-check", "final-polish")
        .connect("final-polish", "end")
        .build()
    )


_ANALYSIS_PLAN_PROMPT = """你是数据分析专家。分析用户的需求，输出结构化的分析计划。

输出格式（JSON）：
{
  "analysis_type": "描述性统计/相关性分析/趋势分析/分类预测等",
  "key_metrics": ["指标1", "指标2"],
  "visualization_needed": true/false,
  "steps": ["步骤1", "步骤2"]
}"""

_ANALYSIS_CODE_PROMPT = """你是 Python 数据分析专家。根据分析计划生成完整的 Python 代码。

要求：
1. 使用 pandas, numpy 等标准库
2. 包含数据预处理（缺失值处理、异常值检测）
3. 进行所需的统计分析
4. 如需可视化，使用 matplotlib 或 seaborn
5. 代码要有详细注释
6. 把分析结果赋值给变量 result

可用库：{libraries}

只输出 Python 代码，不要其他解释。"""

_ANALYSIS_REPORT_PROMPT = """你是数据分析师。根据代码执行结果，生成易懂的分析报告。

报告应包括：
1. 数据概况
2. 关键发现
3. 统计结果解读
4. 建议和洞察

使用 Markdown 格式，结构清晰。"""

# 生成されたスクリプトは data を受け取り result に結果を入れる約束
_RUN_ANALYSIS = """def main(data: str, script: str) -> dict:
    scope = {"data": data}
    exec(script, scope)
    return {
        "result": str(scope.get("result", ""))
    }"""

_DEFAULT_ANALYSIS_LIBRARIES = ["pandas", "numpy", "matplotlib", "seaborn", "scipy", "sklearn"]


def _build_data_analysis(params: dict, id_generator: IdGenerator) -> DifyDSL:
    provider = params.get("provider", "openai")
    model = params.get("model", "gpt-4o")
    libraries = params.get("allowed_libraries") or _DEFAULT_ANALYSIS_LIBRARIES
    return (
        WorkflowBuilder(name="数据分析助手", description="自动化数据分析和可视化工作流", icon="📊",
                        id_generator=id_generator)
        .add_start(variables=[
            {"name": "analysis_request", "label": "分析需求", "type": "paragraph", "required": True, "max_length": 2000},
            {"name": "data", "label": "数据（CSV/JSON 格式）", "type": "paragraph", "required": True, "max_length": 50000},
        ])
        .add_llm(
            node_id="understand-request",
            title="理解分析需求",
            provider=provider,
            model=model,
            temperature=0.3,
            system_prompt=_ANALYSIS_PLAN_PROMPT,
            user_prompt="分析需求：{{#start.analysis_request#}}",
        )
        .add_llm(
            node_id="generate-code",
            title="生成分析代码",
            provider=provider,
            model=model,
            temperature=0.2,
            system_prompt=_ANALYSIS_CODE_PROMPT.format(libraries=", ".join(libraries)),
            user_prompt="分析计划：{{#understand-request.text#}}\n\n数据预览：\n{{#start.data#}}",
        )
        .add_code(
            node_id="execute-analysis",
            title="执行数据分析",
            code=_RUN_ANALYSIS,
            inputs=[
                {"name": "data", "source": ["start", "data"]},
                {"name": "script", "source": ["generate-code", "text"]},
            ],
            outputs=[{"name": "result", "type": "string"}],
        )
        .add_if_else(
            node_id="check-result",
            title="检查执行结果",
            conditions=[{
                "id": "success",
                "logical_operator": "and",
                "rules": [{"variable_selector": ["execute-analysis", "result"], "operator": "is not empty"}],
            }],
        )
        .add_llm(
            node_id="generate-report",
            title="生成分析报告",
            provider=provider,
            model=model,
            temperature=0.5,
            system_prompt=_ANALYSIS_REPORT_PROMPT,
            user_prompt=(
                "原始需求：{{#start.analysis_request#}}\n\n分析计划：{{#understand-request.text#}}\n\n"
                "执行结果：\n{{#execute-analysis.result#}}"
            ),
        )
        .add_llm(
            node_id="analyze-error",
            title="错误分析",
            provider=provider,
            model=model,
            temperature=0.3,
            system_prompt="你是 Python 专家。分析代码执行错误，提供解决建议。",
            user_prompt="代码：\n{{#generate-code.text#}}\n\n错误信息：代码执行失败\n\n请说明可能的问题原因和解决方案。",
        )
        .add_aggregator(
            node_id="result-aggregator",
            title="结果聚合",
            variables=[["generate-report", "text"], ["analyze-error", "text"]],
            output_type="string",
        )
        .add_end(node_id="end", outputs=[
            {"name": "report", "source": ["result-aggregator", "output"]},
            {"name": "code", "source": ["generate-code", "text"]},
            {"name": "execution_result", "source": ["execute-analysis", "result"]},
        ])
        .connect("start", "understand-request")
        .connect("understand-request", "generate-code")
        .connect("generate-code", "execute-analysis")
        .connect("execute-analysis", "check-result")
        .connect("check-result", "generate-report", source_handle="success")
        .connect("check-result", "analyze-error", source_handle="false")
        .connect("generate-report", "result-aggregator")
        .connect("analyze-error", "result-aggregator")
        .connect("result-aggregator", "end")
        .build()
    )


_CODE_BLOCK = "代码：\n```{{#start.language#}}\n{{#start.code#}}\n```"

_REVIEW_PROMPTS = {
    "analyze-structure": """分析 {{#start.language#}} 代码的结构组成。

输出格式（JSON）：
{
  "functions": ["函数1", "函数2"],
  "classes": ["类1", "类2"],
  "dependencies": ["依赖1", "依赖2"],
  "complexity": "低/中/高"
}""",
    "quality-check": """你是资深 {{#start.language#}} 工程师。检查代码质量。

检查项：
1. 代码可读性（命名、注释、格式）
2. 代码组织（模块化、耦合度）
3. 错误处理
4. 测试覆盖
5. 文档完整性

输出格式：
## 评分：X/10
## 优点
## 问题（标注严重程度：高/中/低）
## 建议""",
    "security-audit": """你是安全专家。审查代码的安全问题。

重点检查：
1. 注入漏洞（SQL、XSS、命令注入等）
2. 身份验证和授权
3. 敏感数据处理
4. 加密和哈希
5. 依赖安全
6. 输入验证

对每个问题标注风险等级（严重/高/中/低）。""",
    "performance-analysis": """你是性能优化专家。分析代码的性能问题。

检查项：
1. 算法复杂度
2. 不必要的计算
3. 内存使用
4. 数据库查询优化
5. 异步处理
6. 缓存机会

提供具体的优化建议和预期收益。""",
    "best-practices": """你是 {{#start.language#}} 专家。检查代码是否符合该语言的最佳实践和编码规范。

检查项：
1. 语言特定的惯用法
2. 设计模式应用
3. SOLID 原则
4. DRY 原则
5. 代码异味（Code Smells）

引用具体的最佳实践指南。""",
    "suggest-improvements": """基于审查结果，提供改进后的代码示例。

要求：
1. 只针对关键问题提供改进
2. 保持原有功能不变
3. 添加必要的注释说明改进点
4. 如果改动较大，分步骤说明""",
}

_REVIEW_REPORT = """# 代码审查报告

## 基本信息
- **语言**: {{ language }}
- **结构分析**: {{ structure }}

## 1. 代码质量
{{ quality }}

## 2. 安全审计
{{ security }}

## 3. 性能分析
{{ performance }}

## 4. 最佳实践
{{ practices }}

## 5. 改进建议
{{ improvements }}

*本报告由 AI 自动生成，建议结合人工审查*"""


def _build_code_review(params: dict, id_generator: IdGenerator) -> DifyDSL:
    provider = params.get("provider", "openai")
    model = params.get("model", "gpt-4o")

    def review_step(builder: WorkflowBuilder, node_id: str, title: str, user_prompt: str,
                    temperature: float = 0.3, step_model: str = model) -> WorkflowBuilder:
        return builder.add_llm(
            node_id=node_id,
            title=title,
            provider=provider,
            model=step_model,
            temperature=temperature,
            system_prompt=_REVIEW_PROMPTS[node_id],
            user_prompt=user_prompt,
        )

    builder = WorkflowBuilder(name="代码审查助手", description="多维度自动化代码审查系统", icon="🔍",
                              id_generator=id_generator)
    builder.add_start(variables=[
        {"name": "code", "label": "代码", "type": "paragraph", "required": True, "max_length": 50000},
        {"name": "language", "label": "编程语言", "type": "select", "required": True,
         "options": ["JavaScript", "TypeScript", "Python", "Java", "Go", "Rust", "C++", "Other"]},
        {"name": "context", "label": "代码上下文（可选）", "type": "paragraph", "required": False, "max_length": 2000},
    ])
    review_step(builder, "analyze-structure", "分析代码结构", _CODE_BLOCK, temperature=0.2, step_model="gpt-4o-mini")
    review_step(builder, "quality-check", "代码质量检查", f"{_CODE_BLOCK}\n\n上下文：{{{{#start.context#}}}}")
    review_step(builder, "security-audit", "安全审计", f"语言：{{{{#start.language#}}}}\n\n{_CODE_BLOCK}", temperature=0.2)
    review_step(builder, "performance-analysis", "性能分析", f"{_CODE_BLOCK}\n\n结构分析：\n{{{{#analyze-structure.text#}}}}")
    review_step(builder, "best-practices", "最佳实践检查", _CODE_BLOCK)
    review_step(
        builder, "suggest-improvements", "生成改进建议",
        f"原始{_CODE_BLOCK}\n\n质量问题：\n{{{{#quality-check.text#}}}}\n\n安全问题：\n{{{{#security-audit.text#}}}}\n\n"
        "性能问题：\n{{#performance-analysis.text#}}",
        temperature=0.4,
    )
    builder.add_template(
        node_id="generate-report",
        title="生成审查报告",
        template=_REVIEW_REPORT,
        variables=[
            {"name": "language", "source": ["start", "language"]},
            {"name": "structure", "source": ["analyze-structure", "text"]},
            {"name": "quality", "source": ["quality-check", "text"]},
            {"name": "security", "source": ["security-audit", "text"]},
            {"name": "performance", "source": ["performance-analysis", "text"]},
            {"name": "practices", "source": ["best-practices", "text"]},
            {"name": "improvements", "source": ["suggest-improvements", "text"]},
        ],
    )
    builder.add_end(node_id="end", outputs=[
        {"name": "report", "source": ["generate-report", "output"]},
        {"name": "quality_score", "source": ["quality-check", "text"]},
        {"name": "security_issues", "source": ["security-audit", "text"]},
        {"name": "improved_code", "source": ["suggest-improvements", "text"]},
    ])

    builder.connect("start", "analyze-structure")
    for step in ("quality-check", "security-audit", "performance-analysis"):
        builder.connect("analyze-structure", step)
        builder.connect(step, "suggest-improvements")
        builder.connect(step, "generate-report")
    builder.connect("start", "best-practices")
    builder.connect("best-practices", "generate-report")
    builder.connect("suggest-improvements", "generate-report")
    builder.connect("generate-report", "end")
    return builder.build()


_PREPROCESS_PROMPT = """你是文档处理专家。分析文档结构并提取关键信息。

输出格式（JSON）：
{
  "document_type": "技术文档/合同/报告/文章/其他",
  "key_sections": ["章节1", "章节2"],
  "entities": ["实体1", "实体2"],
  "summary": "文档简要概述（50字内）"
}"""

_DOCUMENT_SUMMARY_PROMPT = """你是专业的文档摘要专家。生成结构化的文档摘要。

摘要应包括：
1. 核心主题
2. 关键要点（3-5 条）
3. 重要数据和结论
4. 文档价值和适用场景

使用 Markdown 格式，层次清晰。"""

_SECTION_PROMPT = """你是信息检索专家。从文档中提取与问题最相关的段落。

要求：
1. 提取 2-5 个最相关的段落
2. 保持原文，不要改写
3. 如果整个文档都相关，说明原因
4. 如果找不到相关内容，明确指出"""

_QUESTION_PROMPT = """分析用户问题的类型和意图。

输出格式（JSON）：
{
  "question_type": "事实查询/信息提取/对比分析/推理判断/开放讨论",
  "key_focuses": ["焦点1", "焦点2"],
  "needs_reasoning": true/false,
  "expected_answer_format": "描述"
}"""

_DOCUMENT_ANSWER_PROMPT = """你是专业的文档分析师。基于文档内容回答问题。

回答原则：
1. 只基于文档内容，不要编造
2. 明确区分事实和推断
3. 引用具体段落或位置
4. 如果文档中没有相关信息，诚实说明
5. 对于复杂问题，分步骤解释
6. 必要时使用表格或列表

引用格式：根据文档第X部分，"原文引用"..."""

_EVALUATION_PROMPT = """评估答案的质量和完整性。

评估维度：
1. 准确性（是否基于文档事实）
2. 完整性（是否充分回答问题）
3. 清晰度（表达是否清楚）
4. 引用质量（是否有效引用）

输出格式：
- 评分：X/10
- 优点：...
- 不足：...
- 是否建议补充信息：是/否"""

_FOLLOWUP_PROMPT = """基于当前问答，建议 3-5 个有价值的后续问题。

这些问题应该：
1. 深入挖掘相关主题
2. 探索文档的其他重要方面
3. 帮助用户更全面理解文档

直接输出问题列表，每行一个问题。"""


def _build_document_qa(params: dict, id_generator: IdGenerator) -> DifyDSL:
    provider = params.get("provider", "openai")
    model = params.get("model", "gpt-4o")
    # 無効にすると関連段落の抽出ノードを作らず、回答は文書全体から行う
    extract_sections = params.get("extract_sections", True)

    builder = (
        WorkflowBuilder(name="文档问答系统", description="智能文档分析和问答系统", icon="📄", id_generator=id_generator)
        .add_start(variables=[
            {"name": "document", "label": "文档内容", "type": "paragraph", "required": True, "max_length": 100000},
            {"name": "question", "label": "问题", "type": "paragraph", "required": True, "max_length": 2000},
            {"name": "question_type", "label": "问题类型（可选）", "type": "select", "required": False,
             "options": ["事实查询", "信息提取", "文档摘要", "对比分析", "推理判断"]},
        ])
        .add_llm(
            node_id="preprocess-document",
            title="文档预处理",
            provider=provider,
            model="gpt-4o-mini",
            temperature=0.2,
            system_prompt=_PREPROCESS_PROMPT,
            user_prompt="文档内容：\n{{#start.document#}}",
        )
        .add_if_else(
            node_id="check-need-summary",
            title="检查是否需要摘要",
            conditions=[{
                "id": "need-summary",
                "logical_operator": "or",
                "rules": [{"variable_selector": ["start", "question_type"], "operator": "contains", "value": "摘要"}],
            }],
        )
        .add_llm(
            node_id="generate-summary",
            title="生成文档摘要",
            provider=provider,
            model=model,
            temperature=0.5,
            system_prompt=_DOCUMENT_SUMMARY_PROMPT,
            user_prompt="文档类型：{{#preprocess-document.text#}}\n\n完整文档：\n{{#start.document#}}",
        )
    )
    if extract_sections:
        builder.add_llm(
            node_id="extract-relevant-sections",
            title="提取相关段落",
            provider=provider,
            model="gpt-4o-mini",
            temperature=0.2,
            system_prompt=_SECTION_PROMPT,
            user_prompt=(
                "文档：\n{{#start.document#}}\n\n问题：{{#start.question#}}\n\n"
                "文档结构信息：{{#preprocess-document.text#}}"
            ),
        )

    sections = "相关段落：\n{{#extract-relevant-sections.text#}}\n\n" if extract_sections else ""
    builder.add_llm(
        node_id="analyze-question",
        title="分析问题意图",
        provider=provider,
        model="gpt-4o-mini",
        temperature=0.3,
        system_prompt=_QUESTION_PROMPT,
        user_prompt="问题：{{#start.question#}}\n文档类型：{{#preprocess-document.text#}}",
    )
    builder.add_llm(
        node_id="generate-answer",
        title="生成答案",
        provider=provider,
        model=model,
        temperature=0.5,
        system_prompt=_DOCUMENT_ANSWER_PROMPT,
        user_prompt=(
            f"文档内容：\n{{{{#start.document#}}}}\n\n{sections}问题：{{{{#start.question#}}}}\n\n"
            "问题分析：{{#analyze-question.text#}}\n\n请提供准确、有据的回答。"
        ),
    )
    builder.add_llm(
        node_id="evaluate-answer",
        title="答案质量评估",
        provider=provider,
        model="gpt-4o-mini",
        temperature=0.2,
        system_prompt=_EVALUATION_PROMPT,
        user_prompt=(
            "原始问题：{{#start.question#}}\n\n生成的答案：\n{{#generate-answer.text#}}\n\n"
            "文档内容：\n{{#start.document#}}"
        ),
    )
    builder.add_llm(
        node_id="suggest-followup",
        title="建议后续问题",
        provider=provider,
        model="gpt-4o-mini",
        temperature=0.7,
        system_prompt=_FOLLOWUP_PROMPT,
        user_prompt=(
            "文档类型：{{#preprocess-document.text#}}\n\n已回答问题：{{#start.question#}}\n\n"
            "答案：{{#generate-answer.text#}}"
        ),
    )
    builder.add_aggregator(
        node_id="final-result",
        title="结果聚合",
        variables=[["generate-summary", "text"], ["generate-answer", "text"]],
        output_type="string",
    )
    outputs = [
        {"name": "answer", "source": ["generate-answer", "text"]},
        {"name": "document_summary", "source": ["generate-summary", "text"]},
        {"name": "quality_assessment", "source": ["evaluate-answer", "text"]},
        {"name": "followup_questions", "source": ["suggest-followup", "text"]},
    ]
    if extract_sections:
        outputs.append({"name": "relevant_sections", "source": ["extract-relevant-sections", "text"]})
    builder.add_end(node_id="end", outputs=outputs)

    builder.connect("start", "preprocess-document")
    builder.connect("preprocess-document", "check-need-summary")
    builder.connect("check-need-summary", "generate-summary", source_handle="need-summary")
    if extract_sections:
        builder.connect("preprocess-document", "extract-relevant-sections")
        builder.connect("extract-relevant-sections", "generate-answer")
    builder.connect("preprocess-document", "analyze-question")
    builder.connect("analyze-question", "generate-answer")
    builder.connect("generate-answer", "evaluate-answer")
    builder.connect("generate-answer", "suggest-followup")
    builder.connect("generate-summary", "final-result")
    builder.connect("generate-answer", "final-result")
    # 評価と後続質問の出力も終了ノードで待つ
    builder.connect("final-result", "end")
    builder.connect("evaluate-answer", "end")
    builder.connect("suggest-followup", "end")
    return builder.build()


simple_qa_template = WorkflowTemplate(
    TemplateMetadata(
        id="simple-qa",
        name="简单问答",
        description="基础的单轮问答工作流，接收问题并使用 LLM 生成回答",
        category="qa",
        tags=("问答", "LLM", "基础"),
        keywords=("问答", "回答", "对话", "聊天", "助手", "问问题", "qa", "chat"),
        node_types=("start", "llm", "end"),
        complexity=1,
    ),
    _build_simple_qa,
)

translation_template = WorkflowTemplate(
    TemplateMetadata(
        id="translation",
        name="智能翻译",
        description="智能翻译工作流，自动检测语言并翻译，支持中英文互译",
        category="translation",
        tags=("翻译", "LLM", "多语言"),
        keywords=(
            "翻译", "文本翻译", "多语言翻译", "中英", "英中", "互译", "语言",
            "translate", "translation", "中文", "英文",
        ),
        node_types=("start", "llm", "end"),
        complexity=1,
    ),
    _build_translation,
)

rag_qa_template = WorkflowTemplate(
    TemplateMetadata(
        id="rag-qa",
        name="知识库问答",
        description="基于知识库检索的问答系统，先检索相关文档再生成回答",
        category="rag",
        tags=("RAG", "知识库", "问答", "检索"),
        keywords=(
            "知识库", "文档", "检索", "RAG", "知识问答", "文档问答",
            "资料库", "数据库", "knowledge", "retrieval", "查询文档",
        ),
        node_types=("start", "knowledge-retrieval", "llm", "end"),
        complexity=2,
    ),
    _build_rag_qa,
)

intent_router_template = WorkflowTemplate(
    TemplateMetadata(
        id="intent-router",
        name="意图路由",
        description="根据用户意图分类，路由到不同的处理分支",
        category="automation",
        tags=("分类", "路由", "意图识别", "多分支"),
        keywords=(
            "意图", "分类", "路由", "分支", "判断", "intent", "router",
            "智能客服", "多场景", "场景识别",
        ),
        node_types=("start", "question-classifier", "llm", "variable-aggregator", "end"),
        complexity=3,
    ),
    _build_intent_router,
)

summarizer_template = WorkflowTemplate(
    TemplateMetadata(
        id="summarizer",
        name="文本摘要",
        description="对长文本进行智能摘要，提取关键信息",
        category="analysis",
        tags=("摘要", "总结", "分析", "LLM"),
        keywords=(
            "摘要", "总结", "概括", "提取", "精简", "summary", "summarize",
            "要点", "关键信息", "长文本",
        ),
        node_types=("start", "llm", "end"),
        complexity=1,
    ),
    _build_summarizer,
)

api_caller_template = WorkflowTemplate(
    TemplateMetadata(
        id="api-caller",
        name="API 调用",
        description="调用外部 API 获取数据，并用 LLM 处理结果",
        category="automation",
        tags=("API", "HTTP", "自动化", "集成"),
        keywords=(
            "API", "HTTP", "接口", "调用", "请求", "集成",
            "外部服务", "webhook", "REST", "数据获取",
        ),
        node_types=("start", "http-request", "llm", "end"),
        complexity=2,
    ),
    _build_api_caller,
)

code_processor_template = WorkflowTemplate(
    TemplateMetadata(
        id="code-processor",
        name="代码数据处理",
        description="使用代码节点处理数据，结合 LLM 进行分析",
        category="automation",
        tags=("代码", "数据处理", "Python", "JavaScript"),
        keywords=(
            "代码", "Python", "JavaScript", "数据处理", "计算",
            "脚本", "自动化", "转换", "格式化",
        ),
        node_types=("start", "code", "llm", "end"),
        complexity=2,
    ),
    _build_code_processor,
)

conditional_template = WorkflowTemplate(
    TemplateMetadata(
        id="conditional",
        name="条件分支",
        description="根据条件判断执行不同的处理逻辑",
        category="automation",
        tags=("条件", "分支", "IF/ELSE", "逻辑"),
        keywords=(
            "条件", "判断", "if", "else", "分支", "逻辑",
            "不同处理", "选择", "决策",
        ),
        node_types=("start", "if-else", "llm", "variable-aggregator", "end"),
        complexity=2,
    ),
    _build_conditional,
)

customer_support_template = WorkflowTemplate(
    TemplateMetadata(
        id="customer-support",
        name="智能客服对话",
        description="多轮对话的智能客服系统，包含意图识别、知识库检索和情感分析",
        category="agent",
        tags=("客服", "对话", "多轮", "情感分析"),
        keywords=(
            "客服", "客户服务", "对话", "聊天", "咨询", "支持",
            "customer service", "support", "chat", "智能客服", "售后", "在线客服",
        ),
        node_types=("start", "question-classifier", "knowledge-retrieval", "llm", "variable-aggregator", "end"),
        complexity=4,
    ),
    _build_customer_support,
)

content_generation_template = WorkflowTemplate(
    TemplateMetadata(
        id="content-generation",
        name="内容创作助手",
        description="多步骤内容生成工作流，包含大纲规划、内容撰写和质量检查",
        category="writing",
        tags=("写作", "内容创作", "文章", "SEO"),
        keywords=(
            "写作", "创作", "文章", "博客", "内容生成", "content", "writing", "blog",
            "article", "copywriting", "写文章", "生成内容", "SEO", "营销文案",
        ),
        node_types=("start", "llm", "template-transform", "end"),
        complexity=3,
    ),
    _build_content_generation,
)

data_analysis_template = WorkflowTemplate(
    TemplateMetadata(
        id="data-analysis",
        name="数据分析助手",
        description="使用 Python 代码进行数据分析，包含数据预处理、分析和可视化",
        category="analysis",
        tags=("数据分析", "Python", "可视化", "统计"),
        keywords=(
            "数据分析", "数据处理", "统计", "可视化", "python", "data analysis",
            "statistics", "visualization", "pandas", "分析数据", "数据统计", "图表",
        ),
        node_types=("start", "llm", "code", "if-else", "variable-aggregator", "end"),
        complexity=3,
    ),
    _build_data_analysis,
)

code_review_template = WorkflowTemplate(
    TemplateMetadata(
        id="code-review",
        name="代码审查助手",
        description="自动化代码审查，包含代码质量检查、安全审计和最佳实践建议",
        category="analysis",
        tags=("代码审查", "Code Review", "质量检查", "安全"),
        keywords=(
            "代码审查", "代码检查", "code review", "review", "代码质量", "安全审计",
            "最佳实践", "bug", "审查代码", "检查代码", "代码优化",
        ),
        node_types=("start", "llm", "template-transform", "end"),
        complexity=4,
    ),
    _build_code_review,
)

document_qa_template = WorkflowTemplate(
    TemplateMetadata(
        id="document-qa",
        name="文档问答系统",
        description="针对长文档的智能问答，支持文档摘要、关键信息提取和多轮对话",
        category="rag",
        tags=("文档", "问答", "RAG", "摘要"),
        keywords=(
            "文档问答", "文档分析", "问文档", "document qa", "PDF", "长文本",
            "文档摘要", "信息提取", "读文档", "文档理解", "合同分析",
        ),
        node_types=("start", "llm", "if-else", "variable-aggregator", "end"),
        complexity=3,
    ),
    _build_document_qa,
)

BUILTIN_TEMPLATES: list[WorkflowTemplate] = [
    simple_qa_template,
    translation_template,
    rag_qa_template,
    intent_router_template,
    summarizer_template,
    api_caller_template,
    code_processor_template,
    conditional_template,
    customer_support_template,
    content_generation_template,
    data_analysis_template,
    code_review_template,
    document_qa_template,
]
