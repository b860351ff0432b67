"""convert an ai markdown answer into note content blocks.

the answer is parsed as commonmark with markdown-it-py; the block-level
token stream is then mapped onto note block flavours.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from markdown_it import MarkdownIt
from markdown_it.token import Token

from .errors import ConversionError
from .store import DocumentStore
from .transaction import MutationTransaction

logger = logging.getLogger(__name__)

_md = MarkdownIt("commonmark")

LIST_TYPES = {
    "bullet_list_open": "bulleted",
    "ordered_list_open": "numbered",
}


@dataclass
class BlockSpec:
    """one content block to insert: flavour plus props."""

    flavour: str
    props: dict = field(default_factory=dict)


def parse_markdown(text: str) -> list[BlockSpec]:
    """map commonmark blocks to paragraph, list, code and divider blocks.

    raises ConversionError if the answer is not text or cannot be parsed.
    """
    if not isinstance(text, str):
        raise ConversionError(f"answer is {type(text).__name__}, not text")
    try:
        tokens = _md.parse(text)
    except Exception as e:
        raise ConversionError(f"could not parse answer: {e}") from e
    return tokens_to_blocks(tokens)


def tokens_to_blocks(tokens: list[Token]) -> list[BlockSpec]:
    """walk a markdown-it token stream, tracking list and quote nesting."""
    blocks: list[BlockSpec] = []
    lists: list[str] = []   # innermost list type last
    quote_depth = 0

    i = 0
    while i < len(tokens):
        token = tokens[i]
        kind = token.type

        if kind in LIST_TYPES:
            lists.append(LIST_TYPES[kind])
        elif kind in ("bullet_list_close", "ordered_list_close"):
            lists.pop()
        elif kind == "blockquote_open":
            quote_depth += 1
        elif kind == "blockquote_close":
            quote_depth -= 1

        elif kind == "heading_open":
            blocks.append(BlockSpec("paragraph", {"type": token.tag, "text": _inline_text(tokens, i)}))
            i += 3  # heading_open, inline, heading_close
            continue

        elif kind == "paragraph_open":
            text = _inline_text(tokens, i)
            if lists:
                blocks.append(BlockSpec("list", {"type": lists[-1], "text": text}))
            elif quote_depth:
                blocks.append(BlockSpec("paragraph", {"type": "quote", "text": text}))
            else:
                blocks.append(BlockSpec("paragraph", {"type": "text", "text": text}))
            i += 3  # paragraph_open, inline, paragraph_close
            continue

        elif kind in ("fence", "code_block"):
            blocks.append(BlockSpec("code", {
                "language": _language(token.info),
                "text": token.content.rstrip("\n"),
            }))

        elif kind == "hr":
            blocks.append(BlockSpec("divider", {}))

        elif kind == "html_block":
            blocks.append(BlockSpec("paragraph", {"type": "text", "text": token.content.strip()}))

        i += 1
    return blocks


def _inline_text(tokens: list[Token], i: int) -> str:
    # soft breaks inside a block collapse to spaces
    if i + 1 < len(tokens) and tokens[i + 1].type == "inline":
        return " ".join(line.strip() for line in tokens[i + 1].content.splitlines())
    return ""


def _language(info: str) -> Optional[str]:
    parts = info.split()
    return parts[0] if parts else None


async def insert_from_markdown(store: DocumentStore, markdown: str, parent_id: str) -> list[str]:
    """parse markdown and insert the blocks under parent_id in one transaction."""
    # conversion is a suspension point for the caller
    await asyncio.sleep(0)
    blocks = parse_markdown(markdown)

    ids: list[str] = []
    with MutationTransaction(store) as tx:
        for block in blocks:
            ids.append(tx.add_block(block.flavour, block.props, parent_id))
    logger.debug("inserted %d blocks into %s", len(ids), parent_id)
    return ids
