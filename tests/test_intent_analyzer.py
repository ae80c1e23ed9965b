from difygen.planner.intent_analyzer import (
    analyze_intent,
    detect_features,
    estimate_complexity,
    extract_action_domain,
    extract_requirements,
    normalize_request,
)


def feature_types(intent):
    return [f.type for f in intent.features]


def test_simple_qa_intent():
    intent = analyze_intent("创建一个简单的问答工作流")
    assert feature_types(intent) == ["llm"]
    assert intent.features[0].required
    assert intent.complexity == 1
    assert intent.action == "问答"
    assert intent.domain is None


def test_default_feature_is_required_llm():
    intent = analyze_intent("hello")
    assert feature_types(intent) == ["llm"]
    assert intent.required_features()[0].type == "llm"
    assert intent.action == "处理"


def test_optional_feature_near_indicator():
    features = {f.type: f for f in detect_features(normalize_request("使用llm回答问题，可选知识库检索"))}
    assert features["rag"].required is False


def test_indicator_far_away_keeps_feature_required():
    text = normalize_request("可以帮我做点事情吗，我想要一个完整的流程，最后再接入知识库")
    features = {f.type: f for f in detect_features(text)}
    assert features["rag"].required is True


def test_complexity_is_clamped():
    text = normalize_request("创建一个智能体，根据条件分支判断，批量循环处理知识库检索，并行调用多个api")
    assert estimate_complexity(text, detect_features(text)) == 5


def test_complexity_rounds_half_up():
    # 1 + 0.5 * 1 = 1.5 -> 2
    text = "翻译"
    assert estimate_complexity(text, detect_features(text)) == 2


def test_action_and_domain():
    assert extract_action_domain("创建一个翻译工具") == ("翻译", None)
    assert extract_action_domain("创建客服知识库检索") == ("检索", "知识库")
    assert extract_action_domain("调用天气api") == ("处理", "API")


def test_requirements():
    requirements = extract_requirements("需要支持中英文翻译，必须保持原文格式。")
    assert requirements == ["支持中英文翻译", "保持原文格式", "中英文翻译"]
    # 短すぎるものは除く
    assert extract_requirements("需要快") == []


def test_normalize_request():
    assert normalize_request("  Create   a QA\nFlow ") == "create a qa flow"
