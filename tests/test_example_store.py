from difygen.fewshot.example_store import ExampleStore, ExampleStoreConfig, create_example_store


def test_builtin_examples_are_loaded():
    store = ExampleStore()
    assert len(store.get_all()) == 6
    assert store.get("example-rag-qa").metadata.category == "rag"
    assert [e.metadata.id for e in store.get_by_category("api")] == ["example-api-caller"]


def test_find_best_examples_ranks_relevant_first():
    examples = ExampleStore().find_best_examples("创建一个知识库文档问答工作流", count=2)
    assert len(examples) == 2
    assert examples[0].metadata.id == "example-rag-qa"


def test_search_respects_min_score_and_limit():
    store = ExampleStore(ExampleStoreConfig(min_score=1000))
    assert store.search("知识库问答") == []

    store = ExampleStore(ExampleStoreConfig(max_results=1))
    assert len(store.search("代码 处理 api 接口 问答")) == 1


def test_format_for_prompt():
    store = ExampleStore()
    text = store.format_for_prompt([store.get("example-simple-qa")])
    assert text.startswith("以下是一些工作流生成的示例")
    assert "### 示例 1:" in text
    assert "```yaml\n" in text
    assert store.format_for_prompt([]) == ""


def test_export_then_import_into_empty_store():
    exported = ExampleStore().export_examples()
    target = create_example_store(ExampleStoreConfig(include_builtin=False))
    assert target.get_all() == []
    assert target.import_examples(exported) == 6
    assert target.get("example-conditional") is not None


def test_import_skips_broken_entries():
    store = ExampleStore(ExampleStoreConfig(include_builtin=False))
    assert store.import_examples("::: [") == 0
    assert store.import_examples("key: value") == 0
    broken = [{
        "metadata": {"id": "x", "name": "x", "description": "x", "category": "simple"},
        "prompt": "x",
        "dsl": "version: 0.5.0",
    }]
    assert store.import_examples(broken) == 0
    assert store.get_all() == []


def test_add_and_remove():
    store = ExampleStore()
    example = store.get("example-simple-qa")
    store.add(example)
    assert len(store.get_all()) == 6
    assert store.remove("example-simple-qa")
    assert not store.remove("example-simple-qa")
