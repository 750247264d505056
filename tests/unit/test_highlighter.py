"""Test syntax highlighting of fenced code."""

import pytest
from bs4 import BeautifulSoup

from slide_renderer.errors import HighlightError
from slide_renderer.highlighter import SyntaxHighlighter


@pytest.fixture
def highlighter():
    return SyntaxHighlighter()


def _code_text(html):
    return BeautifulSoup(html, "html.parser").select_one("td.code code").get_text()


@pytest.mark.parametrize(
    "language,source",
    [
        ("python", 'def hello():\n    print("world")  \n\n    return 1 < 2 & 3'),
        ("csharp", "public class Cart\n{\n    Task<Cart> Get();\n}"),
        ("javascript", "\n\nconst a = `x`;\n   "),
        ("bash", "echo \"$HOME\" | grep -v '<tmp>'"),
    ],
)
def test_text_content_equals_source(highlighter, language, source):
    result = highlighter.highlight(source, language)

    assert result.styled
    assert _code_text(result.html) == source


def test_highlighted_output_has_styles_and_line_numbers(highlighter):
    result = highlighter.highlight("a = 1\nb = 2\nc = 3", "python")

    soup = BeautifulSoup(result.html, "html.parser")
    assert result.lexer_name == "Python"
    assert result.line_count == 3
    assert soup.select_one("td.linenos pre").get_text() == "1\n2\n3"
    assert soup.select("td.code span[style]")
    assert soup.select_one("div.code-block")["data-language"] == "python"


def test_unknown_language_falls_back_to_plain(highlighter):
    source = "some <weird> text\n  indented"

    result = highlighter.highlight(source, "nosuchlang")

    assert not result.styled
    assert result.language == "text"
    assert "plain-style" in result.html
    assert "span style" not in result.html
    assert _code_text(result.html) == source


def test_empty_language_hint_does_not_raise(highlighter):
    result = highlighter.highlight("x", "")

    assert not result.styled


def test_lexer_for_unknown_language_raises(highlighter):
    with pytest.raises(HighlightError) as excinfo:
        highlighter.lexer_for("nosuchlang")

    assert excinfo.value.language == "nosuchlang"


def test_language_hint_is_case_insensitive(highlighter):
    assert highlighter.highlight("x = 1", "Python").lexer_name == "Python"


def test_unknown_style_falls_back(caplog):
    highlighter = SyntaxHighlighter(style="no-such-style")

    assert highlighter.highlight("x = 1", "python").styled
    assert "Unknown code style" in caplog.text


def test_line_numbers_can_be_disabled():
    highlighter = SyntaxHighlighter(line_numbers=False)

    result = highlighter.highlight("x = 1\ny = 2", "python")

    assert "linenos" not in result.html
    assert _code_text(result.html) == "x = 1\ny = 2"


@pytest.mark.parametrize("source", ["x = 1", "x = 1\n", "x = 1\n\n", ""])
def test_final_newline_is_kept_exactly(highlighter, source):
    result = highlighter.highlight(source, "python")

    assert _code_text(result.html) == source


def test_output_is_a_pygments_line_number_table(highlighter):
    result = highlighter.highlight("a = 1\nb = 2", "python")

    soup = BeautifulSoup(result.html, "html.parser")
    table = soup.select_one("div.code-block table.highlighttable")
    assert table is not None
    assert table.select_one("td.code pre code") is not None
    assert table.select_one("td.linenos pre").get_text() == "1\n2"
