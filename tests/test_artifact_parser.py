import pytest

from artifacts import (
    Mutation,
    StreamingArtifactParser,
    files_from_transcript,
    parse,
    prior_files_from_transcript,
    serialize_artifact,
    summarize_message,
)
from artifacts.denylist import is_excluded, normalize_path

TWO_BLOCKS = (
    "Sure, here is the app.\n"
    '<boltArtifact id="counter" title="Counter">\n'
    '<boltAction type="file" filePath="src/main.ts">\nconsole.log(1)\n</boltAction>\n'
    '<boltAction type="shell">npm install</boltAction>\n'
    '<boltAction type="file" filePath="package.json">\n{"name": "x"}\n</boltAction>\n'
    "</boltArtifact>\n"
    "And a tweak <b>now</b>:\n"
    '<artifact id="tweak"><file path="src/main.ts">console.log(2)</file></artifact>\n'
    "Done."
)


def test_unterminated_block_is_carried_until_closed():
    chunk1 = '<artifact id="x"><file path="a.ts">console.log(1)</file>'
    first = parse(chunk1)
    assert first.mutations == []
    assert first.trailing_text == chunk1

    second = parse(first.trailing_text + "</artifact>")
    assert second.mutations == [Mutation("a.ts", "console.log(1)")]
    assert second.trailing_text == ""


def test_parse_collects_file_actions_in_order():
    result = parse(TWO_BLOCKS)
    assert result.mutations == [
        Mutation("src/main.ts", "console.log(1)"),
        Mutation("package.json", '{"name": "x"}'),
        Mutation("src/main.ts", "console.log(2)"),
    ]
    assert result.trailing_text == ""


@pytest.mark.parametrize("split", range(len(TWO_BLOCKS) + 1))
def test_reparse_with_carried_tail_matches_single_pass(split):
    expected = parse(TWO_BLOCKS).mutations

    head = parse(TWO_BLOCKS[:split])
    tail = parse(head.trailing_text + TWO_BLOCKS[split:])

    assert head.mutations + tail.mutations == expected


def test_streaming_parser_emits_each_directive_once():
    parser = StreamingArtifactParser()
    emitted: list[Mutation] = []
    for i in range(0, len(TWO_BLOCKS), 7):
        emitted.extend(parser.feed(TWO_BLOCKS[i : i + 7]))
    assert emitted == parse(TWO_BLOCKS).mutations
    assert parser.finish() == ""


def test_finish_returns_unclosed_remainder():
    parser = StreamingArtifactParser()
    assert parser.feed('<boltArtifact id="a"><boltAction type="file" filePath="x">1') == []
    leftover = parser.finish()
    assert leftover.startswith("<boltArtifact")
    assert parser.trailing_text == ""


def test_partial_start_marker_is_held_back():
    result = parse("some prose <boltArt")
    assert result.mutations == []
    assert result.trailing_text == "<boltArt"


def test_plain_text_has_no_trailing_text():
    result = parse("no markup here, 1 < 2 and 3 > 2")
    assert result.mutations == []
    assert result.trailing_text == ""


def test_block_without_id_or_title_is_skipped():
    text = '<artifact><file path="a.ts">x</file></artifact><artifact title="ok"><file path="b.ts">y</file></artifact>'
    assert parse(text).mutations == [Mutation("b.ts", "y")]


def test_file_directive_without_path_is_skipped():
    text = '<boltArtifact id="a"><boltAction type="file">orphan</boltAction></boltArtifact>'
    assert parse(text).mutations == []


def test_body_is_verbatim_apart_from_one_framing_newline():
    body = "\n\n  indented\r\n\ttabbed  \n\n"
    text = f'<boltArtifact id="a"><boltAction type="file" filePath="f.txt">{body}</boltAction></boltArtifact>'
    assert parse(text).mutations == [Mutation("f.txt", body[1:-1])]


def test_denylisted_paths_never_become_mutations():
    text = (
        '<boltArtifact id="a">'
        '<boltAction type="file" filePath="components/weicon/index.js">x</boltAction>'
        '<boltAction type="file" filePath="./components/weicon/icon.css">x</boltAction>'
        '<boltAction type="file" filePath="/miniprogram/components/weicon/index.wxml">x</boltAction>'
        '<boltAction type="file" filePath="src/secret.env">x</boltAction>'
        '<boltAction type="file" filePath="src/app.ts">kept</boltAction>'
        "</boltArtifact>"
    )
    result = parse(text, extra_denylist=["src/secret.env"])
    assert result.mutations == [Mutation("src/app.ts", "kept")]


def test_normalize_path_strips_relative_and_absolute_prefixes():
    assert normalize_path("./a/b") == "a/b"
    assert normalize_path("//a/b") == "a/b"
    assert is_excluded("miniprogram/components/weicon/base64.js")
    assert not is_excluded("components/weicon/other.js")


def test_serialize_then_parse_reproduces_files():
    files = {"src/main.ts": "console.log(1)\n", "README.md": "# Title", "empty.txt": ""}
    text = serialize_artifact(files)
    assert text.startswith('<boltArtifact id="workspace" title="the current file">\n')
    assert text.endswith("</boltArtifact>\n\n")
    assert {m.path: m.content for m in parse(text).mutations} == files


def test_serialize_drops_denylisted_files_and_empty_result():
    assert serialize_artifact({"components/weicon/index.js": "x"}) == ""
    text = serialize_artifact({"components/weicon/index.js": "x", "a.ts": "y"})
    assert "weicon" not in text


def test_summarize_message_replaces_first_block_with_paths():
    text = "Here you go\n" + serialize_artifact({"a.ts": "1", "b.ts": "2"}) + "Enjoy"
    assert summarize_message(text) == 'Here you go\nModified directory ["a.ts", "b.ts"]\n\nEnjoy'
    assert summarize_message("nothing to see") == "nothing to see"


def test_files_from_transcript_replays_messages_in_order():
    messages = [
        {"role": "user", "content": "make an app"},
        {"role": "assistant", "content": serialize_artifact({"a.ts": "1", "b.ts": "2"})},
        {"role": "user", "content": "change a"},
        {"role": "assistant", "content": [{"type": "text", "text": serialize_artifact({"a.ts": "3"})}]},
    ]
    assert files_from_transcript(messages) == {"a.ts": "3", "b.ts": "2"}
    assert prior_files_from_transcript(messages) == {"a.ts": "3"}
    assert prior_files_from_transcript(messages[:2]) == {}
