# Dify DSLを書くうえでの共通ルールとフォーマット説明をまとめたプロンプト部品
from difygen.dsl.schema import NODE_TYPES

DSL_VERSION = "0.5.0"

OUTPUT_REQUIREMENTS = f"""# 输出要求
1. 只输出合法的 YAML，不附带任何解释
2. 节点 ID 使用有含义的名称（如 start, llm, retrieval, end）
3. 每条边的 source 和 target 都必须是已存在的节点
4. 变量引用格式为 {{{{#节点ID.变量名#}}}}
5. 有且只有一个 start 节点
6. workflow 模式以 end 节点结束，advanced-chat 模式以 answer 节点回复
7. version 固定为 "{DSL_VERSION}\""""

DESIGN_PRINCIPLES = """# 设计原则
1. **节点最少**：满足需求即可，不添加多余节点
2. **连接清晰**：每个节点的上下游关系一目了然
3. **分支明确**：条件分支和分类分支都要有清楚的判断依据
4. **变量命名**：输入输出变量使用有意义的名称
5. **保持一致**：同一工作流内命名风格统一"""

VALIDATION_RULES = """# 验证规则
1. 节点 ID 不能重复
2. 边只能连接存在的节点，不能连接自身
3. 变量引用必须指向存在的节点
4. start 节点有且只有一个
5. 至少有一个 end 或 answer 节点
6. 除 start 外每个节点都要有入边
7. 不能出现循环依赖（循环请使用 iteration 或 loop 节点）"""

EDIT_PRINCIPLES = """# 编辑原则
1. **最小改动**：只改指令要求的部分，其余配置原样保留
2. **引用一致**：改动节点 ID 时同步更新边和变量引用
3. **连接正确**：增删节点后重新检查边的连接
4. **不丢配置**：不要删除用户没有要求删除的内容"""

TOP_LEVEL_STRUCTURE = f"""## 顶级结构
```yaml
version: "{DSL_VERSION}"
kind: app
app:
  name: 工作流名称
  mode: workflow  # workflow | advanced-chat
  icon: "🤖"
  icon_background: "#FFEAD5"
  description: 工作流说明
  use_icon_as_answer_icon: false
workflow:
  conversation_variables: []
  environment_variables: []
  features:
    file_upload:
      enabled: false
    text_to_speech:
      enabled: false
  graph:
    nodes: []
    edges: []
```"""

NODE_STRUCTURE = """## 节点结构
```yaml
- id: llm
  type: custom
  data:
    type: llm  # 节点类型
    title: AI 处理
    desc: ""
    # 以下为各节点类型自己的字段
```"""

EDGE_STRUCTURE = """## 边结构
```yaml
- id: start-llm
  source: start
  sourceHandle: source
  target: llm
  targetHandle: target
  type: custom
  zIndex: 0
  data:
    sourceType: start
    targetType: llm
    isInIteration: false
```
从 if-else 或 question-classifier 出发的边，sourceHandle 填写条件 ID、分类 ID 或 "false"。"""

VARIABLE_REFERENCE = """## 变量引用
在文本字段中使用 `{{#节点ID.变量名#}}`，在选择器字段中使用 `[节点ID, 变量名]`。
- {{#start.input#}}：开始节点的 input 变量
- {{#llm.text#}}：LLM 节点的输出文本
- {{#retrieval.result#}}：知识检索的结果
- {{#sys.query#}}：系统变量 query（可用 sys 变量：query, user_id, conversation_id, files）"""

NODE_TYPE_DOCS = {
    "start": """### start（开始）
定义工作流的输入变量。
```yaml
data:
  type: start
  title: 开始
  variables:
    - variable: input
      label: 用户输入
      type: paragraph  # text-input | paragraph | select | number | file
      required: true
      max_length: 2000
```""",
    "end": """### end（结束）
workflow 模式的出口，声明输出变量。
```yaml
data:
  type: end
  title: 结束
  outputs:
    - variable: result
      value_selector: [llm, text]
```""",
    "answer": """### answer（直接回复）
advanced-chat 模式的回复节点。
```yaml
data:
  type: answer
  title: 回复
  answer: "{{#llm.text#}}"
```""",
    "llm": """### llm（大语言模型）
```yaml
data:
  type: llm
  title: AI 处理
  model:
    provider: openai
    name: gpt-4o
    mode: chat
    completion_params:
      temperature: 0.7
  prompt_template:
    - role: system
      text: 系统提示词
    - role: user
      text: "{{#start.input#}}"
  context:
    enabled: false
```
使用检索结果时设置 context.enabled: true 和 context.variable_selector: [retrieval, result]。""",
    "knowledge-retrieval": """### knowledge-retrieval（知识检索）
```yaml
data:
  type: knowledge-retrieval
  title: 知识检索
  query_variable_selector: [start, input]
  dataset_ids: [dataset-id]
  retrieval_mode: multiple
  multiple_retrieval_config:
    top_k: 5
    score_threshold: 0.5
```""",
    "question-classifier": """### question-classifier（问题分类）
至少两个分类，每个分类 ID 作为出边的 sourceHandle。
```yaml
data:
  type: question-classifier
  title: 问题分类
  query_variable_selector: [start, input]
  model:
    provider: openai
    name: gpt-4o
    mode: chat
  classes:
    - id: tech
      name: 技术支持
    - id: other
      name: 其他问题
```""",
    "if-else": """### if-else（条件分支）
条件 ID 作为满足条件时出边的 sourceHandle，不满足时使用 "false"。
```yaml
data:
  type: if-else
  title: 条件判断
  conditions:
    - id: case-1
      logical_operator: and
      conditions:
        - variable_selector: [start, input]
          comparison_operator: contains  # = | ≠ | contains | not contains | is empty | is not empty | > | <
          value: 关键词
```""",
    "code": """### code（代码执行）
```yaml
data:
  type: code
  title: 代码执行
  code_language: python3  # python3 | javascript
  code: |
    def main(text: str) -> dict:
        return {"result": text.upper()}
  variables:
    - variable: text
      value_selector: [start, input]
  outputs:
    - variable: result
      variable_type: string
```""",
    "http-request": """### http-request（HTTP 请求）
```yaml
data:
  type: http-request
  title: API 调用
  method: get  # get | post | put | patch | delete | head
  url: https://api.example.com/data
  authorization:
    type: no-auth
  headers: ""
  params: ""
  body:
    type: none
```
输出变量为 body, status_code, headers。""",
    "variable-aggregator": """### variable-aggregator（变量聚合）
把多个分支的输出合并为一个 output 变量。
```yaml
data:
  type: variable-aggregator
  title: 结果聚合
  output_type: string
  variables:
    - [llm-a, text]
    - [llm-b, text]
```""",
}


def build_dsl_format_doc() -> str:
    return "\n\n".join([
        "# Dify DSL 格式",
        TOP_LEVEL_STRUCTURE,
        NODE_STRUCTURE,
        EDGE_STRUCTURE,
        VARIABLE_REFERENCE,
    ])


def build_node_types_doc(types: list[str] | None = None) -> str:
    """指定したノード種別（省略時は全種別）の説明をまとめる"""
    selected = [NODE_TYPE_DOCS[t] for t in (types or NODE_TYPE_DOCS.keys()) if t in NODE_TYPE_DOCS]
    return "# 可用节点类型\n\n" + "\n\n".join(selected)


def build_node_type_list() -> str:
    return "、".join(NODE_TYPES)
