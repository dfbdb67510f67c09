"""Body transformation: literal HTML passthrough plus highlighted code regions"""

import html
import logging
import re
from functools import lru_cache
from typing import Optional

from markdown_it import MarkdownIt
from pygments import highlight as pygments_highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import find_lexer_class_by_name
from pygments.util import ClassNotFound

from folio.core.errors import UnknownLanguage
from folio.core.models import CodeBlock


logger = logging.getLogger(__name__)

PLAIN_LANGUAGES = {"", "text", "plain", "plaintext", "none", "nohighlight"}
LANG_PREFIXES = ("language-", "lang-")

# One pass over three region kinds. Already-highlighted output is matched first
# and returned untouched so that a second transform is a no-op.
CODE_RE = re.compile(
    r'(?P<done><pre\b[^>]*\bclass\s*=\s*["\'][^"\']*\bhighlight\b[^"\']*["\'][^>]*>.*?</pre>)'
    r'|^[ \t]*(?P<fence>`{3,}|~{3,})[ \t]*(?P<info>[^\s`]*)[^\n]*\n'
    r'(?P<fenced>.*?)^[ \t]*(?P=fence)[ \t]*$'
    r'|<pre\b(?P<pre_attrs>[^>]*)>\s*<code\b(?P<code_attrs>[^>]*)>'
    r'(?P<tagged>.*?)</code>\s*</pre>',
    re.DOTALL | re.MULTILINE | re.IGNORECASE,
)
CLASS_ATTR_RE = re.compile(r'\bclass\s*=\s*(["\'])(?P<cls>.*?)\1', re.IGNORECASE)


def normalize_language(tag: Optional[str]) -> Optional[str]:
    """Strip a language-/lang- prefix and lowercase; empty tags become None."""
    if not tag:
        return None
    tag = tag.strip().lower()
    for prefix in LANG_PREFIXES:
        if tag.startswith(prefix):
            tag = tag[len(prefix):]
            break
    return tag or None


def _language_from_class(cls: Optional[str], bare_name: bool = True) -> Optional[str]:
    """Pick the language out of a class attribute like 'language-typescript extra'."""
    if not cls:
        return None
    names = cls.split()
    for name in names:
        if name.lower().startswith(LANG_PREFIXES):
            return normalize_language(name)
    return normalize_language(names[0]) if bare_name and len(names) == 1 else None


def _language_from_attrs(attrs: Optional[str], bare_name: bool = True) -> Optional[str]:
    """Language named by the class attribute in a tag's attribute text, if any."""
    m = CLASS_ATTR_RE.search(attrs or "")
    return _language_from_class(m.group("cls"), bare_name) if m else None


def _block_from_match(m: re.Match) -> Optional[CodeBlock]:
    if m.group("done") is not None:
        return None
    if m.group("fence") is not None:
        code = m.group("fenced")
        if code.endswith("\n"):
            code = code[:-1]
        return CodeBlock(language=normalize_language(m.group("info")), code=code)
    # <pre> classes only count when prefixed, e.g. <pre class="language-ts">.
    language = (
        _language_from_attrs(m.group("code_attrs"))
        or _language_from_attrs(m.group("pre_attrs"), bare_name=False)
    )
    return CodeBlock(language=language, code=m.group("tagged"))


def find_code_blocks(body: str) -> list[CodeBlock]:
    """Return the not-yet-highlighted code regions in body, in document order."""
    blocks = []
    for m in CODE_RE.finditer(body):
        block = _block_from_match(m)
        if block is not None:
            blocks.append(block)
    return blocks


@lru_cache(maxsize=None)
def _lexer_class(language: str):
    """Resolve a Pygments lexer class by alias, or None if unknown."""
    try:
        return find_lexer_class_by_name(language)
    except ClassNotFound:
        return None


def _plain(block: CodeBlock) -> str:
    cls = f' class="language-{block.language}"' if block.language else ""
    return f'<pre class="highlight"><code{cls}>{block.code}</code></pre>'


def highlight(block: CodeBlock, unknown_as_plain: bool = True) -> str:
    """Render one code block. Unknown languages fall back to plain unless strict."""
    lang = block.language
    if not lang or lang in PLAIN_LANGUAGES:
        return _plain(block)

    lexer_cls = _lexer_class(lang)
    if lexer_cls is None:
        if not unknown_as_plain:
            raise UnknownLanguage(f"no highlighter for code language {lang!r}")
        logger.debug("No highlighter for %r; rendering plain", lang)
        return _plain(block)

    # Source code arrives pre-escaped; decode so the formatter escapes exactly once.
    lexer = lexer_cls(stripnl=False, ensurenl=False)
    spans = pygments_highlight(html.unescape(block.code), lexer, HtmlFormatter(nowrap=True))
    return (
        f'<pre class="highlight"><code class="language-{lang}" data-lang="{lang}">'
        f'{spans}</code></pre>'
    )


def transform_body(body: str, unknown_as_plain: bool = True) -> str:
    """Convert a document body to output HTML.

    Text outside code regions is passed through unchanged. Each fenced
    (``` or ~~~) or bare <pre><code> region is replaced by a highlighted
    <pre class="highlight"> block; those blocks are left alone on later passes.
    """
    def _replace(m: re.Match) -> str:
        block = _block_from_match(m)
        if block is None:
            return m.group(0)
        return highlight(block, unknown_as_plain)

    return CODE_RE.sub(_replace, body)


def _make_parser(preset: str, unknown_as_plain: bool) -> MarkdownIt:
    """Build a MarkdownIt instance whose fences go through highlight()."""
    def _highlight(code: str, lang: str, _attrs: str) -> str:
        # markdown-it hands over raw text; escape it like an HTML body would.
        block = CodeBlock(language=normalize_language(lang), code=html.escape(code.rstrip("\n"), quote=False))
        return highlight(block, unknown_as_plain)

    return MarkdownIt(preset, {"html": True, "linkify": False, "highlight": _highlight})


def transform_markdown(body: str, unknown_as_plain: bool = True, preset: str = "gfm-like") -> str:
    """Render a Markdown body to HTML, then treat it like any HTML body."""
    rendered = _make_parser(preset, unknown_as_plain).render(body)
    return transform_body(rendered, unknown_as_plain)
