import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from bs4 import BeautifulSoup, NavigableString, ParserRejectedMarkup, Tag
from bs4.element import (
    CData,
    Comment,
    Declaration,
    Doctype,
    PageElement,
    ProcessingInstruction,
    Script,
    Stylesheet,
)

from rewriteproxy.rules import CompiledRule, apply_rules
from rewriteproxy.urlcodec import resolve_relative

logger = logging.getLogger(__name__)

TAG_ATTR_MAP = {
    "a": "href",
    "link": "href",
    "img": "src",
    "script": "src",
    "form": "action",
}

# Script and style contents are code, not page text.
_NOT_TEXT = (Comment, CData, Declaration, Doctype, ProcessingInstruction, Script, Stylesheet)


class RewriteError(ValueError):
    pass


@dataclass
class RewriteContext:
    url_prefix: str
    rules: List[CompiledRule] = field(default_factory=list)


def walk(node: PageElement, visit: Callable[[PageElement], None]) -> None:
    """Call ``visit`` on ``node`` and then on each descendant, in document order."""
    stack = [node]
    while stack:
        current = stack.pop()
        visit(current)
        if isinstance(current, Tag):
            stack.extend(reversed(current.contents))


def rewrite_attr(tag: Tag, attr: str, url_prefix: str) -> None:
    original = tag.get(attr)
    if not isinstance(original, str):
        return
    new_url = resolve_relative(original, url_prefix)
    if new_url and new_url != original:
        tag[attr] = new_url
        logger.debug("[HTML Rewrite] <%s %s=%s> -> %s", tag.name, attr, original, new_url)


def is_text_node(node: PageElement) -> bool:
    return isinstance(node, NavigableString) and not isinstance(node, _NOT_TEXT)


def rewrite_text(node: PageElement, rules: List[CompiledRule]) -> None:
    if not rules or not is_text_node(node):
        return
    text = str(node)
    new_text = apply_rules(text, rules)
    if new_text != text:
        node.replace_with(NavigableString(new_text))


def rewrite_html(body: bytes, context: RewriteContext, encoding: Optional[str] = None) -> bytes:
    """Rewrite links and text of an HTML document so it keeps flowing through the proxy."""
    try:
        soup = BeautifulSoup(body, "html.parser", from_encoding=encoding)
    except ParserRejectedMarkup as e:
        raise RewriteError(f"could not parse HTML: {e}") from e

    for tag_name, attr in TAG_ATTR_MAP.items():
        for tag in soup.find_all(tag_name, attrs={attr: True}):
            rewrite_attr(tag, attr, context.url_prefix)

    walk(soup, lambda node: rewrite_text(node, context.rules))

    output_encoding = soup.original_encoding or encoding or "utf-8"
    try:
        return soup.encode(output_encoding)
    except LookupError as e:
        raise RewriteError(f"could not serialize HTML as {output_encoding}: {e}") from e
