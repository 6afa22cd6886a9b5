from __future__ import annotations

from typing import Protocol, runtime_checkable

import tiktoken

DEFAULT_ENCODING = "cl100k_base"


@runtime_checkable
class Tokenizer(Protocol):
    def count_tokens(self, text: str | None) -> int: ...


class TiktokenTokenizer:
    """
    Token counter backed by a tiktoken encoding.

    The encoding is an approximation of the service's own tokenizer; counts are
    meant for budgeting, not billing. It is loaded on first use because tiktoken
    may fetch the encoding file.
    """

    def __init__(self, encoding_name: str = DEFAULT_ENCODING):
        self.encoding_name = encoding_name
        self._encoding: tiktoken.Encoding | None = None

    def _get_encoding(self) -> tiktoken.Encoding:
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self.encoding_name)
        return self._encoding

    def count_tokens(self, text: str | None) -> int:
        if not text:
            return 0
        return len(self._get_encoding().encode(text, disallowed_special=()))
