"""Tests for pipeline parsing and rendering."""

import random

import pytest

from gatepipe.runtime.errors import ParseError
from gatepipe.runtime.parser import (
    parse_args,
    parse_pipeline,
    quote_token,
    render_pipeline,
    split_stages,
    tokenize,
)


def _structure(stages):
    return [(s.name, dict(s.args)) for s in stages]


# Characters with special meaning to split_stages() and tokenize()
_FRAGMENTS = ["a", "b", "'", "\"", "\\", "|", "=", "--", " "]


def _random_pipeline(rng: random.Random) -> str:
    stages = []
    for _ in range(rng.randint(1, 3)):
        tokens = [
            "".join(rng.choice(_FRAGMENTS) for _ in range(rng.randint(1, 4)))
            for _ in range(rng.randint(1, 4))
        ]
        stages.append(" ".join(quote_token(tok) for tok in tokens))
    return " | ".join(stages)


# =============================================================================
# Stage splitting
# =============================================================================


class TestParsePipeline:
    """Tests for parse_pipeline()."""

    def test_three_stage_pipeline(self):
        """Each `|` separates a stage; the first token is the command."""
        stages = parse_pipeline("exec echo hi | where a=1 | pick id,subject")

        assert [s.name for s in stages] == ["exec", "where", "pick"]
        assert stages[0].args["_"] == ["echo", "hi"]
        assert stages[1].args["_"] == ["a=1"]
        assert stages[2].args["_"] == ["id,subject"]

    def test_quoted_pipe_is_not_a_separator(self):
        stages = parse_pipeline("exec echo 'a|b' | json")

        assert len(stages) == 2
        assert stages[0].args["_"] == ["echo", "a|b"]
        assert stages[1].name == "json"

    def test_double_quoted_pipe_is_not_a_separator(self):
        stages = parse_pipeline('exec --shell "echo x | tr x y" | json')

        assert len(stages) == 2
        assert stages[0].args["shell"] == "echo x | tr x y"

    def test_quoted_whitespace_is_preserved(self):
        stages = parse_pipeline('exec --shell "echo a  b"')
        assert stages[0].args["shell"] == "echo a  b"

    def test_raw_keeps_stage_text(self):
        stages = parse_pipeline("exec echo 'a b' |  json ")
        assert stages[0].raw == "exec echo 'a b'"
        assert stages[1].raw == "json"

    def test_unclosed_quote_is_parse_error(self):
        with pytest.raises(ParseError, match="Unclosed quote"):
            parse_pipeline("exec echo 'oops | json")

    @pytest.mark.parametrize("text", ["", "   ", "\t"])
    def test_empty_pipeline_is_parse_error(self, text):
        with pytest.raises(ParseError, match="Empty pipeline"):
            parse_pipeline(text)

    def test_empty_stage_is_parse_error(self):
        with pytest.raises(ParseError, match="Empty command stage"):
            parse_pipeline("exec echo hi | | json")

    def test_split_stages_keeps_quotes(self):
        assert split_stages("a 'x|y' | b") == ["a 'x|y'", "b"]


# =============================================================================
# Tokenizing and args
# =============================================================================


class TestTokenize:
    """Tests for tokenize()."""

    def test_splits_on_whitespace(self):
        assert tokenize("exec  echo\thi") == ["exec", "echo", "hi"]

    def test_backslash_inside_quotes_escapes(self):
        assert tokenize('say "a\\"b"') == ["say", 'a"b']
        assert tokenize("say 'it\\'s'") == ["say", "it's"]

    def test_backslash_outside_quotes_is_literal(self):
        assert tokenize("say a\\b") == ["say", "a\\b"]

    def test_adjacent_quotes_join_one_token(self):
        assert tokenize("say pre'fix suf'fix") == ["say", "prefix suffix"]


class TestParseArgs:
    """Tests for parse_args()."""

    def test_equals_form(self):
        assert parse_args(["--prompt=ok?"]) == {"_": [], "prompt": "ok?"}

    def test_value_form_consumes_next_token(self):
        assert parse_args(["--n", "5", "rest"]) == {"_": ["rest"], "n": "5"}

    def test_flag_before_flag_is_boolean(self):
        args = parse_args(["--json", "--shell", "echo [1]"])
        assert args == {"_": [], "json": True, "shell": "echo [1]"}

    def test_trailing_flag_is_boolean(self):
        assert parse_args(["a", "--emit"]) == {"_": ["a"], "emit": True}

    def test_positionals_keep_order(self):
        assert parse_args(["b", "a", "c"])["_"] == ["b", "a", "c"]


# =============================================================================
# Rendering
# =============================================================================


class TestRender:
    """Tests for quote_token() and render_pipeline()."""

    def test_bare_tokens_are_not_quoted(self):
        assert quote_token("plain") == "plain"
        assert quote_token("id,subject") == "id,subject"

    def test_tokens_with_specials_are_quoted(self):
        assert quote_token("a b") == "'a b'"
        assert quote_token("a|b") == "'a|b'"
        assert tokenize(quote_token("it's \\ here")) == ["it's \\ here"]

    @pytest.mark.parametrize(
        "text",
        [
            "exec echo hi | where a=1 | pick id,subject",
            "exec --json --shell 'echo [1]' | approve --prompt 'Send these?' --emit",
            "exec echo 'a|b' | json",
            'template --text "PR {{number}}: {{title}}" | head --n 3',
            "approve --preview-from-stdin --limit=5 --prompt \"it's ok?\"",
            "exec --stdin jsonl cat | table",
        ],
    )
    def test_round_trip_preserves_structure(self, text):
        """parse(render(parse(s))) has the same names and args as parse(s)."""
        first = parse_pipeline(text)
        second = parse_pipeline(render_pipeline(first))
        assert _structure(second) == _structure(first)

    def test_render_puts_positionals_before_flags(self):
        stages = parse_pipeline("exec --json echo hi")
        # `--json echo` consumed "echo" as the value; rendering must not change that
        assert stages[0].args == {"_": ["hi"], "json": "echo"}
        assert render_pipeline(stages) == "exec hi --json=echo"

    @pytest.mark.parametrize(
        "text,args",
        [
            ("cmd '--a b'", {"_": [], "a b": True}),
            ("cmd '--a\\'b'", {"_": [], "a'b": True}),
            ("cmd '--x y=1 2'", {"_": [], "x y": "1 2"}),
        ],
    )
    def test_named_keys_with_specials_round_trip(self, text, args):
        stages = parse_pipeline(text)
        assert stages[0].args == args
        assert parse_pipeline(render_pipeline(stages))[0].args == args

    def test_round_trip_random_pipelines(self):
        rng = random.Random(20240501)
        for _ in range(500):
            text = _random_pipeline(rng)
            first = parse_pipeline(text)
            assert _structure(parse_pipeline(render_pipeline(first))) == _structure(first), text
