"""
RouterOS API binary protocol implementation.
Same framing on RouterOS 6.x and 7.x.

Wire format:
  Sentence = Word* + ZeroWord
  Word     = Length + Data
  ZeroWord = 0x00
  Length   = variable (1–5 bytes)

Reply types:
  !re    = data row
  !done  = command completed (may carry =ret=)
  !trap  = command error, followed by !done
  !fatal = fatal error, router closes the connection
  !empty = no rows (RouterOS 7.18+)
"""

import hashlib
from dataclasses import dataclass, field


class IncompleteSentence(Exception):
    """Buffer ends in the middle of a sentence; wait for more bytes."""


# ─── Length Encoding ──────────────────────────────────────────────────────────

def encode_length(length: int) -> bytes:
    if length < 0x80:
        return length.to_bytes(1, "big")
    if length < 0x4000:
        return (length | 0x8000).to_bytes(2, "big")
    if length < 0x200000:
        return (length | 0xC00000).to_bytes(3, "big")
    if length < 0x10000000:
        return (length | 0xE0000000).to_bytes(4, "big")
    return b"\xF0" + length.to_bytes(4, "big")


def decode_length(data: bytes, offset: int) -> tuple[int, int]:
    """Returns (length, new_offset). Raises IncompleteSentence if truncated."""
    if offset >= len(data):
        raise IncompleteSentence()
    first = data[offset]
    if first < 0x80:
        return first, offset + 1
    if first < 0xC0:
        size, mask = 2, 0x3FFF
    elif first < 0xE0:
        size, mask = 3, 0x1FFFFF
    elif first < 0xF0:
        size, mask = 4, 0x0FFFFFFF
    else:
        size, mask = 5, 0xFFFFFFFF

    if offset + size > len(data):
        raise IncompleteSentence()
    if size == 5:
        value = int.from_bytes(data[offset + 1:offset + 5], "big")
    else:
        value = int.from_bytes(data[offset:offset + size], "big") & mask
    return value, offset + size


# ─── Word / Sentence Encoding ─────────────────────────────────────────────────

def encode_word(word: str) -> bytes:
    data = word.encode("utf-8")
    return encode_length(len(data)) + data


def build_sentence(words: list[str]) -> bytes:
    return b"".join(encode_word(w) for w in words) + b"\x00"


def command_words(
    path: str,
    params: dict | None = None,
    queries: list[str] | None = None,
    tag: int | None = None,
) -> list[str]:
    """
    Words for one API command:
      path, then =key=value attributes, then ?query words, then .tag=N
    """
    words = [path]
    for key, value in (params or {}).items():
        if value is None:
            value = ""
        elif isinstance(value, bool):
            value = "yes" if value else "no"
        words.append(f"={key}={value}")
    if queries:
        words.extend(queries)
    if tag is not None:
        words.append(f".tag={tag}")
    return words


# ─── Sentence Decoding ────────────────────────────────────────────────────────

def decode_sentence(data: bytes, offset: int = 0) -> tuple[list[str], int]:
    """
    Decode one sentence starting at offset.
    Returns (words, new_offset). Raises IncompleteSentence when the buffer
    does not yet hold the terminating zero word.
    """
    words = []
    while True:
        length, offset = decode_length(data, offset)
        if length == 0:
            return words, offset
        if offset + length > len(data):
            raise IncompleteSentence()
        words.append(bytes(data[offset:offset + length]).decode("utf-8", errors="replace"))
        offset += length


class SentenceReader:
    """Incremental decoder: feed raw socket chunks, get complete sentences back."""

    def __init__(self):
        self._buf = bytearray()

    def feed(self, chunk: bytes) -> list[list[str]]:
        self._buf += chunk
        sentences = []
        offset = 0
        while offset < len(self._buf):
            try:
                words, offset = decode_sentence(self._buf, offset)
            except IncompleteSentence:
                break
            if words:
                sentences.append(words)
        del self._buf[:offset]
        return sentences

    def reset(self):
        self._buf.clear()

    @property
    def pending(self) -> int:
        return len(self._buf)


# ─── Replies ──────────────────────────────────────────────────────────────────

@dataclass
class Reply:
    type: str | None = None
    tag: int | str | None = None
    attrs: dict[str, str] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return self.attrs.get("message", "")


def parse_reply(words: list[str]) -> Reply:
    """
    Parse one reply sentence:
      ["!re", "=name=ether1", "=.id=*1", ".tag=3"]
        -> Reply(type="!re", tag=3, attrs={"name": "ether1", ".id": "*1"})
    """
    reply = Reply()
    for word in words:
        if word.startswith("!"):
            reply.type = word
        elif word.startswith(".tag="):
            raw = word[5:]
            reply.tag = int(raw) if raw.isdigit() else raw
        elif word.startswith("="):
            key, _, value = word[1:].partition("=")
            reply.attrs[key] = value
    return reply


# ─── MD5 Login Helper (pre-6.43 routers) ──────────────────────────────────────

def md5_challenge_response(password: str, challenge_hex: str) -> str:
    """
    RouterOS MD5 login:
      "00" + hex(MD5( 0x00 + password_bytes + challenge_bytes ))
    """
    h = hashlib.md5()
    h.update(b"\x00")
    h.update(password.encode("utf-8"))
    h.update(bytes.fromhex(challenge_hex))
    return "00" + h.hexdigest()
