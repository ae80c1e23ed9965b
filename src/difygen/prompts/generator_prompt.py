# 単体ジェネレータ（要求文から直接YAMLを作る）用のプロンプト
from difygen.log_output.log import log
from difygen.prompts.dsl_rules import (
    DESIGN_PRINCIPLES,
    OUTPUT_REQUIREMENTS,
    VALIDATION_RULES,
    build_dsl_format_doc,
    build_node_types_doc,
)

GENERATOR_SYSTEM_PROMPT = f"""你是 difygen，一个专门生成 Dify 工作流 DSL 的助手。

# 你的能力
1. 理解用户的自然语言需求
2. 规划合理的工作流拓扑
3. 输出符合 Dify DSL 规范的 YAML

{build_dsl_format_doc()}

{build_node_types_doc()}

{OUTPUT_REQUIREMENTS}

{DESIGN_PRINCIPLES}

{VALIDATION_RULES}"""


def build_generation_prompt(user_request: str, examples: str = "") -> str:
    log("info", "DSL生成用のプロンプトを組み立てました。")
    parts = [GENERATOR_SYSTEM_PROMPT]
    if examples:
        parts.append(examples)
    parts.append(f"# 用户请求\n{user_request}")
    parts.append("# 输出\n请根据用户请求生成符合 Dify DSL 规范的 YAML。只输出 YAML 代码，不要包含 ```yaml 标记或任何解释。")
    return "\n\n".join(parts)


def render_error_bullets(errors: list[str]) -> str:
    return "\n".join(f"- {e}" for e in errors)


def build_fix_prompt(yaml_text: str, feedback: str) -> str:
    """feedbackはrender_error_bulletsで整形済みのエラー一覧"""
    return (
        "以下 Dify DSL YAML 存在错误，请修复：\n\n"
        f"原始 YAML：\n```yaml\n{yaml_text}\n```\n\n"
        f"错误信息：\n{feedback}\n\n"
        "请输出修复后的完整 YAML，不要包含 ```yaml 标记或任何解释。"
    )
