"""
Prompt source resolver

Builds the final prompt from a direct prompt string and/or a prompt file.
A prompt file may contain the {{PROMPT}} placeholder, which is replaced by
the direct prompt when both are given.
"""

import logging
from os import PathLike
from typing import Optional, Union

from errors import MissingPromptError, PromptFileError

logger = logging.getLogger(__name__)

PROMPT_PLACEHOLDER = "{{PROMPT}}"


def strip_trailing_newline(text: str) -> str:
    """
    Remove a single trailing line terminator

    "hello\\r\\n" -> "hello", "hello\\n\\n" -> "hello\\n", "hello\\r" -> "hello".
    """
    if text.endswith("\n"):
        text = text[:-1]
    if text.endswith("\r"):
        text = text[:-1]
    return text


def read_prompt_file(path: Union[str, PathLike]) -> str:
    """
    Read and normalize a prompt file

    Args:
        path: Prompt file path

    Returns:
        File contents (UTF-8) with one trailing line terminator removed

    Raises:
        PromptFileError: If the file can't be read or isn't valid UTF-8
    """
    try:
        # newline="" keeps "\r\n" intact so normalization sees the raw bytes
        with open(path, "r", encoding="utf-8", newline="") as f:
            contents = f.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise PromptFileError(path, str(exc)) from exc

    return strip_trailing_newline(contents)


def resolve_prompt(
    prompt: Optional[str] = None, prompt_file: Optional[Union[str, PathLike]] = None
) -> str:
    """
    Resolve the prompt for an invocation

    Args:
        prompt: Direct prompt text
        prompt_file: Optional prompt file path

    Returns:
        - file and prompt: file contents with every {{PROMPT}} replaced
        - file only: file contents as-is
        - prompt only: the prompt

    Raises:
        PromptFileError: If the prompt file can't be read
        MissingPromptError: If neither source was provided
    """
    if prompt_file is not None:
        contents = read_prompt_file(prompt_file)
        if prompt is None:
            return contents
        if PROMPT_PLACEHOLDER not in contents:
            logger.debug("Prompt file %s has no %s placeholder; ignoring prompt", prompt_file, PROMPT_PLACEHOLDER)
            return contents
        return contents.replace(PROMPT_PLACEHOLDER, prompt)

    if prompt is not None:
        return prompt

    raise MissingPromptError()
