import tiktoken

from completions_client.tokenizer import TiktokenTokenizer, Tokenizer


class FakeEncoding:
    def __init__(self):
        self.calls = []

    def encode(self, text, disallowed_special=()):
        self.calls.append(disallowed_special)
        return text.split()


def test_empty_text_does_not_load_encoding(monkeypatch):
    def boom(name):
        raise AssertionError("encoding loaded")

    monkeypatch.setattr(tiktoken, "get_encoding", boom)
    tokenizer = TiktokenTokenizer()
    assert tokenizer.count_tokens("") == 0
    assert tokenizer.count_tokens(None) == 0


def test_encoding_loaded_once_and_special_tokens_counted_as_text(monkeypatch):
    encoding = FakeEncoding()
    loads = {"n": 0}

    def get_encoding(name):
        loads["n"] += 1
        assert name == "cl100k_base"
        return encoding

    monkeypatch.setattr(tiktoken, "get_encoding", get_encoding)
    tokenizer = TiktokenTokenizer()
    assert tokenizer.count_tokens("a b c") == 3
    assert tokenizer.count_tokens("<|endoftext|> x") == 2
    assert loads["n"] == 1
    assert encoding.calls == [(), ()]


def test_tiktoken_tokenizer_satisfies_protocol():
    assert isinstance(TiktokenTokenizer(), Tokenizer)
