from difygen.fewshot.example_store import ExampleMetadata, FewShotExample
from difygen.templates.builtin import (
    api_caller_template,
    code_processor_template,
    conditional_template,
    intent_router_template,
    rag_qa_template,
    simple_qa_template,
)

"""組み込みのFew-shot事例。DSLは組み込みテンプレートから組み立てる"""


def get_builtin_examples() -> list[FewShotExample]:
    return [
        FewShotExample(
            metadata=ExampleMetadata(
                id="example-simple-qa",
                name="简单问答",
                description="最基础的问答工作流，接收用户问题并返回 AI 回答",
                category="simple",
                keywords=["问答", "qa", "对话", "聊天", "简单", "基础"],
                node_types=["start", "llm", "end"],
                complexity=1,
            ),
            prompt="帮我创建一个简单的问答工作流，用户输入问题，AI 回答",
            dsl=simple_qa_template.build(),
            explanation="这是最简单的工作流结构：开始节点接收用户输入，LLM 节点处理并生成回答，结束节点输出结果。适合快速构建基础的问答应用。",
        ),
        FewShotExample(
            metadata=ExampleMetadata(
                id="example-rag-qa",
                name="知识库问答",
                description="基于知识库检索的问答工作流，先检索相关文档再生成回答",
                category="rag",
                keywords=["知识库", "rag", "检索", "文档", "问答", "向量"],
                node_types=["start", "knowledge-retrieval", "llm", "end"],
                complexity=2,
            ),
            prompt="创建一个知识库问答工作流，根据用户问题检索相关文档，然后基于检索结果生成回答",
            dsl=rag_qa_template.build({"dataset_ids": ["your-dataset-id"], "top_k": 5}),
            explanation=(
                "这个工作流使用 RAG (Retrieval-Augmented Generation) 模式：首先通过知识检索节点从向量数据库中检索相关文档片段，"
                "然后将检索结果作为上下文提供给 LLM，让 AI 基于实际知识库内容回答问题，确保回答的准确性。"
            ),
        ),
        FewShotExample(
            metadata=ExampleMetadata(
                id="example-conditional",
                name="条件分支处理",
                description="根据条件判断执行不同处理逻辑的工作流",
                category="conditional",
                keywords=["条件", "分支", "if", "else", "判断", "选择", "逻辑"],
                node_types=["start", "if-else", "llm", "variable-aggregator", "end"],
                complexity=2,
            ),
            prompt="创建一个条件分支工作流，根据用户选择的模式（详细/简洁）执行不同的处理",
            dsl=conditional_template.build(),
            explanation=(
                "这个工作流展示了条件分支的使用：IF/ELSE 节点根据用户选择的模式进行判断，"
                "\"详细\"模式走一个分支使用更多 token 生成详细回复，\"简洁\"模式走另一个分支生成精简回复。"
                "最后通过变量聚合节点汇总结果输出。"
            ),
        ),
        FewShotExample(
            metadata=ExampleMetadata(
                id="example-intent-router",
                name="意图识别路由",
                description="根据用户意图分类并路由到不同处理分支的智能客服工作流",
                category="complex",
                keywords=["意图", "分类", "路由", "客服", "多分支", "智能"],
                node_types=["start", "question-classifier", "llm", "variable-aggregator", "end"],
                complexity=3,
            ),
            prompt="创建一个智能客服工作流，能自动识别用户问题类型（产品咨询/技术支持/其他），并分别由专门的处理节点回答",
            dsl=intent_router_template.build({
                "classes": [
                    {"id": "product", "name": "产品咨询"},
                    {"id": "tech", "name": "技术支持"},
                    {"id": "other", "name": "其他问题"},
                ],
            }),
            explanation=(
                "这个工作流使用问题分类器节点识别用户意图，将问题分为三类：产品咨询、技术支持和其他问题。"
                "每类问题都有专门的 LLM 节点处理，使用针对性的系统提示。最后通过聚合节点汇总各分支结果。"
            ),
        ),
        FewShotExample(
            metadata=ExampleMetadata(
                id="example-api-caller",
                name="API 数据获取",
                description="调用外部 API 获取数据并用 LLM 处理结果",
                category="api",
                keywords=["api", "http", "接口", "请求", "获取", "集成", "webhook"],
                node_types=["start", "http-request", "llm", "end"],
                complexity=2,
            ),
            prompt="创建一个工作流，调用外部 API 获取数据，然后用 AI 分析和总结返回的结果",
            dsl=api_caller_template.build({
                "api_url": "https://api.example.com/data",
                "method": "get",
                "process_prompt": "请分析以下 API 返回的数据，并生成简洁的总结：",
            }),
            explanation=(
                "这个工作流展示了如何集成外部 API：HTTP 请求节点调用外部接口获取数据，LLM 节点对 API 返回的数据进行分析和处理。"
                "适合需要获取实时数据并进行智能分析的场景，如天气查询、新闻摘要等。"
            ),
        ),
        FewShotExample(
            metadata=ExampleMetadata(
                id="example-code-processor",
                name="代码数据处理",
                description="使用代码节点进行数据处理，结合 LLM 分析结果",
                category="code",
                keywords=["代码", "python", "javascript", "处理", "计算", "脚本", "转换"],
                node_types=["start", "code", "llm", "end"],
                complexity=2,
            ),
            prompt="创建一个工作流，用 Python 代码处理用户输入的数据，然后用 AI 分析处理结果",
            dsl=code_processor_template.build({"language": "python3"}),
            explanation=(
                "这个工作流展示了代码节点的使用：接收用户输入的原始数据，通过 Python 代码进行预处理，"
                "然后将处理结果传给 LLM 进行智能分析。适合需要精确数据处理与智能分析相结合的场景。"
            ),
        ),
    ]
