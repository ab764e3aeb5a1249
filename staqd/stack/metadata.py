"""Stack metadata embedded in pull request descriptions.

A stack is recorded on each parent pull request as a single HTML comment
holding a JSON object::

    <!-- stack-rebase:{"version":1,"children":[{"branch":"feat-b","pr":12}]} -->

The description (body) is the only place this module writes. Older stacks
may carry the block in a regular comment instead, so reads fall back to
the first comment that holds a valid block.
"""

import json
import re
import logging
from typing import Iterable, Optional, Tuple

from pydantic import ValidationError

from .models import DEFAULT_MERGE_METHOD, METADATA_VERSION, StackMetadata
from ..github import GitHubClient
from ..github.types import Change, Comment

logger = logging.getLogger(__name__)

MARKER_PREFIX = "<!-- stack-rebase:"
MARKER_SUFFIX = " -->"
METADATA_PATTERN = re.compile(r'<!-- stack-rebase:([\s\S]*?) -->')
# Used when rewriting a body so the block keeps exactly one blank line above it
BODY_BLOCK_PATTERN = re.compile(r'\n*<!-- stack-rebase:[\s\S]*? -->')


def decode(text: Optional[str]) -> Optional[StackMetadata]:
    """Parse the first metadata block in text.

    Returns None when there is no block, when it is not valid JSON, when it
    does not describe metadata, or when it was written by an unknown schema
    version. Never raises.
    """
    if not text:
        return None
    match = METADATA_PATTERN.search(text)
    if not match:
        return None
    try:
        raw = json.loads(match.group(1))
    except ValueError:
        logger.debug("Ignoring malformed stack metadata")
        return None
    if not isinstance(raw, dict):
        return None

    # Blocks written before the version field existed are version 1
    version = raw.get("version", METADATA_VERSION)
    if version != METADATA_VERSION:
        logger.warning(f"Ignoring stack metadata with unsupported version {version!r}")
        return None
    try:
        return StackMetadata.model_validate(raw)
    except ValidationError as e:
        logger.debug(f"Ignoring invalid stack metadata: {e}")
        return None


def encode(metadata: StackMetadata) -> str:
    """Serialize metadata into its marker line."""
    payload = {
        "version": metadata.version,
        "children": [child.model_dump() for child in metadata.children],
    }
    if metadata.merge_method != DEFAULT_MERGE_METHOD:
        payload["merge_method"] = metadata.merge_method
    return f"{MARKER_PREFIX}{json.dumps(payload, separators=(',', ':'))}{MARKER_SUFFIX}"


def locate(change: Change, comments: Iterable[Comment] = ()) -> Optional[StackMetadata]:
    """Metadata of a pull request: its body first, then its comments in listing order."""
    metadata = decode(change.body)
    if metadata is not None:
        return metadata
    for comment in comments:
        metadata = decode(comment.body)
        if metadata is not None:
            logger.debug(f"#{change.number}: stack metadata found in comment {comment.id}")
            return metadata
    return None


def load(github: GitHubClient, number: int) -> Tuple[Change, Optional[StackMetadata]]:
    """Fetch a pull request and its metadata, listing comments only if the body has none."""
    change = github.get_change(number)
    metadata = decode(change.body)
    if metadata is None:
        metadata = locate(change, github.list_comments(number))
    return change, metadata


def with_metadata(body: str, metadata: StackMetadata) -> str:
    """Body with its metadata block replaced, or appended if it had none."""
    block = encode(metadata)
    if BODY_BLOCK_PATTERN.search(body):
        # Function replacement keeps backslashes in the JSON literal
        new_body = BODY_BLOCK_PATTERN.sub(lambda _: "\n\n" + block, body, count=1)
    else:
        new_body = body + "\n\n" + block
    return new_body.strip()


def without_metadata(body: str) -> str:
    """Body with its metadata block removed."""
    return BODY_BLOCK_PATTERN.sub("", body, count=1).strip()
