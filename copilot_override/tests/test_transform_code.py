import json

from copilot_override.adapters.copilot.transform import encode_body, fim_prompt, transform_code
from copilot_override.config.settings import Settings


def _cfg(model: str = "gpt-3.5-turbo-instruct", **overrides) -> Settings:
    return Settings(code_instruct_model=model, codex_max_tokens=500, **overrides)


def _code_body(**extra) -> dict:
    body = {
        "model": "copilot-codex",
        "prompt": "def add(a, b):\n    ",
        "suffix": "\n\nprint(add(1, 2))",
        "max_tokens": 1200,
        "n": 4,
        "stream": True,
        "extra": {"language": "python"},
        "nwo": "octo/repo",
    }
    body.update(extra)
    return body


def test_extra_and_nwo_removed_and_model_forced():
    out = transform_code(_code_body(), _cfg())
    assert "extra" not in out
    assert "nwo" not in out
    assert out["model"] == "gpt-3.5-turbo-instruct"


def test_max_tokens_clamped_against_codex_ceiling():
    assert transform_code(_code_body(max_tokens=1200), _cfg())["max_tokens"] == 500
    assert transform_code(_code_body(max_tokens=500), _cfg())["max_tokens"] == 500
    assert transform_code(_code_body(max_tokens=64), _cfg())["max_tokens"] == 64


def test_absent_max_tokens_stays_absent():
    body = _code_body()
    del body["max_tokens"]
    assert "max_tokens" not in transform_code(body, _cfg())


def test_default_model_keeps_prompt_suffix_shape():
    out = transform_code(_code_body(), _cfg())
    assert out["prompt"] == "def add(a, b):\n    "
    assert out["suffix"] == "\n\nprint(add(1, 2))"
    assert out["n"] == 4
    assert "messages" not in out


def test_stable_code_builds_single_fim_user_message():
    out = transform_code(_code_body(prompt="foo", suffix="bar"), _cfg("stabilityai/stable-code-3b"))
    assert out["messages"] == [
        {"role": "user", "content": "<fim_prefix>foo<fim_suffix>bar<fim_middle>"},
    ]
    assert "prompt" not in out
    assert "suffix" not in out


def test_stable_code_serialized_with_literal_angle_brackets():
    out = transform_code(_code_body(prompt="foo", suffix="bar"), _cfg("stable-code-instruct-3b"))
    raw = encode_body(out)
    assert b"<fim_prefix>foo<fim_suffix>bar<fim_middle>" in raw
    assert b"\\u003c" not in raw
    assert b"\\u003e" not in raw


def test_stable_code_missing_prompt_and_suffix_are_empty():
    body = _code_body()
    del body["prompt"]
    del body["suffix"]
    out = transform_code(body, _cfg("stable-code-3b"))
    assert out["messages"][0]["content"] == "<fim_prefix><fim_suffix><fim_middle>"


def test_branch_follows_configured_model_not_inbound_model():
    out = transform_code(_code_body(model="stable-code-3b", n=3), _cfg("deepseek-coder-6.7b-base"))
    assert "messages" not in out
    assert out["n"] == 1
    assert out["model"] == "deepseek-coder-6.7b-base"


def test_deepseek_coder_clamps_n_to_one():
    out = transform_code(_code_body(n=4), _cfg("deepseek-coder-1.3b-base"))
    assert out["n"] == 1
    assert out["prompt"] == "def add(a, b):\n    "


def test_deepseek_coder_leaves_single_n_and_absent_n():
    assert transform_code(_code_body(n=1), _cfg("deepseek-coder"))["n"] == 1
    body = _code_body()
    del body["n"]
    assert "n" not in transform_code(body, _cfg("deepseek-coder"))


def test_deepseek_prefix_must_be_at_start():
    out = transform_code(_code_body(n=4), _cfg("my-deepseek-coder"))
    assert out["n"] == 4


def test_fim_prompt_template():
    assert fim_prompt("a", "b") == "<fim_prefix>a<fim_suffix>b<fim_middle>"


def test_unnamed_fields_survive_rebuild():
    out = transform_code(_code_body(temperature=0.2), _cfg("stable-code-3b"))
    decoded = json.loads(encode_body(out))
    assert decoded["stream"] is True
    assert decoded["temperature"] == 0.2


def test_lone_surrogate_is_sent_escaped():
    body = json.loads('{"prompt": "a\\ud800b", "suffix": "<tag>"}')
    raw = encode_body(transform_code(body, _cfg()))
    assert b'"prompt":"a\\ud800b"' in raw
    assert b'"suffix":"<tag>"' in raw
    assert json.loads(raw)["prompt"] == "a\ud800b"
