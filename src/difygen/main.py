import argparse
import asyncio
import os
from pathlib import Path
from dotenv import load_dotenv
from difygen.dsl.node_registry import get_all_node_types, get_node_meta
from difygen.log_output.log import log, set_log_is
from difygen.orchestrator.orchestrator import GenerationRequest, OrchestratorConfig, WorkflowOrchestrator
from difygen.templates.template_store import get_default_template_store
from difygen.tools.api_client import DifygenAPIClient
from difygen.tools.llm import create_llm_service
from difygen.validator.validator import DSLValidator

load_dotenv()

# モデルの設定
"""
PROVIDERには"openai"、"anthropic"、"google"、"deepseek"を指定できます。
MODEL_NAMEをNoneにするとプロバイダごとの既定モデルを使います。
"""
PROVIDER = os.environ.get("DIFYGEN_PROVIDER", "openai")
MODEL_NAME = os.environ.get("DIFYGEN_MODEL") or None

# コマンドライン引数のデフォルト値
OUTPUT_FILE = "workflow.yml" # 生成されるYAMLファイル名
MAX_FIX_RETRIES = 2 # 検証エラー時に修正を依頼する回数
SERVE_PORT = 8000

# ログ出力の設定、TrueかFalseを指定できます
SET_LOG_IS = True


def print_templates() -> None:
    for template in get_default_template_store().get_all():
        metadata = template.metadata
        print(f"{metadata.id:<16} {metadata.name}  [{', '.join(metadata.tags)}]")
        print(f"{'':<16} {metadata.description}")


def print_nodes() -> None:
    for node_type in get_all_node_types():
        meta = get_node_meta(node_type)
        outputs = ", ".join(port.name for port in meta.outputs) or "-"
        print(f"{meta.type:<20} {meta.display_name}  [{meta.category}] 出力: {outputs}")
        print(f"{'':<20} {meta.description}")


def validate_file(path: str) -> bool:
    result = DSLValidator().validate(Path(path).read_text(encoding="utf-8"))
    for issue in result.errors:
        print(f"ERROR   {issue}")
    for issue in result.warnings:
        print(f"WARNING {issue}")
    if result.valid:
        log("success", f"{path} は検証に合格しました")
    else:
        log("fail", f"{path} に{len(result.errors)}件のエラーがあります")
    return result.valid


def generate_local(args) -> str | None:
    llm = create_llm_service(provider=args.provider, model=args.model)
    orchestrator = WorkflowOrchestrator(llm, config=OrchestratorConfig(max_fix_retries=args.max_fix_retries))
    request = GenerationRequest(
        prompt=args.prompt,
        preferred_provider=args.provider,
        preferred_model=args.model,
        skip_templates=args.skip_templates,
    )
    result = asyncio.run(orchestrator.generate(request))
    if not result.success:
        log("fail", f"ワークフローの生成に失敗しました: {result.error}")
        return None
    if result.metadata.template_used:
        log("info", f"テンプレート '{result.metadata.template_used}' を使用しました")
    return result.yaml


def generate_remote(args) -> str | None:
    client = DifygenAPIClient(base_url=args.server)
    result = client.generate(
        args.prompt,
        preferred_provider=args.provider,
        preferred_model=args.model,
        skip_templates=args.skip_templates,
    )
    if result.status != "success":
        return None
    return result.yaml


def main():
    set_log_is(SET_LOG_IS)
    # コマンドライン引数のパーサーを作成
    parser = argparse.ArgumentParser(
        description="自然言語の要求からDifyワークフローのYAMLを生成します"
    )
    parser.add_argument(
        "prompt",
        type=str,
        nargs="?",
        help="生成したいワークフローの説明を指定してください",
    )
    parser.add_argument(
        "-o", "--output",
        type=str,
        default=OUTPUT_FILE,
        help=f"生成されるYAMLファイルの名前を設定してください（デフォルト:{OUTPUT_FILE}）",
    )
    parser.add_argument(
        "--provider",
        type=str,
        default=PROVIDER,
        help=f"LLMのプロバイダを指定してください（デフォルト:{PROVIDER}）",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=MODEL_NAME,
        help="LLMのモデル名を指定してください（デフォルト:プロバイダの既定モデル）",
    )
    parser.add_argument(
        "--max_fix_retries",
        type=int,
        default=MAX_FIX_RETRIES,
        help=f"検証エラー時に修正を依頼する回数を設定してください（デフォルト:{MAX_FIX_RETRIES}）",
    )
    # "server"を指定するとローカルでLLMを呼ばずにサーバーへ依頼する
    parser.add_argument(
        "--server",
        type=str,
        help="difygenサーバーのURLを指定してください（例: http://localhost:8000）",
    )
    parser.add_argument(
        "--skip-templates",
        action="store_true",
        help="テンプレートを使わず常にLLMで生成します",
    )
    parser.add_argument(
        "--validate",
        type=str,
        metavar="FILE",
        help="生成はせず、指定したYAMLファイルを検証します",
    )
    parser.add_argument(
        "--list-templates",
        action="store_true",
        help="組み込みテンプレートの一覧を表示します",
    )
    parser.add_argument(
        "--list-nodes",
        action="store_true",
        help="ノード種別の一覧を表示します",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help=f"HTTPサーバーとして起動します（ポート:{SERVE_PORT}）",
    )
    # コマンドライン引数を解析
    args = parser.parse_args()

    if args.list_templates:
        print_templates()
        return
    if args.list_nodes:
        print_nodes()
        return
    if args.validate:
        raise SystemExit(0 if validate_file(args.validate) else 1)
    if args.serve:
        from difygen.server.api import run
        run(port=SERVE_PORT)
        return
    if not args.prompt:
        parser.error("promptを指定してください")

    yaml_text = generate_remote(args) if args.server else generate_local(args)
    if yaml_text is None:
        raise SystemExit(1)
    Path(args.output).write_text(yaml_text, encoding="utf-8")
    log("success", f"ワークフローを {args.output} に書き出しました")


# 実行方法:
# python -m difygen.main "生成したいワークフローの説明" -o "出力ファイル名" --provider openai --model gpt-4o
# promptのみ必須、他は任意
# 実行例）
# python -m difygen.main "创建一个翻译工作流" -o translation.yml
# python -m difygen.main --validate translation.yml
if __name__ == "__main__":
    main()
