"""
noteledger/codec/abi.py

Proof payload ABI codec.

Wire layout (every cell one 32-byte big-endian word):

    header words        PAYLOAD_LAYOUTS[proof_type], e.g. m ‖ challenge ‖ publicOwner
    offset table        one word per dynamic segment
    segments            proof data: count ‖ count × 6 note words

Offset rule:
    length     = len(header) + segment_count + 1
    offsets[0] = length * 32
    offsets[i] = offsets[i - 1] + len(segment[i - 1])

Offsets are byte positions counted from the start of the length-prefixed
byte string that carries the payload, so the word holding that length is
the "+ 1" above and buffer position = offset - 32.

Decoding validates the whole structure before anything is handed to a
validator: alignment, header length, offset monotonicity and bounds, exact
consumption of the buffer by the trailing segment, and per-segment length.
"""

from typing import List, Sequence, Tuple, Union

from noteledger.core.exceptions import MalformedPayload, UnknownProofType
from noteledger.core.models import (
    NOTE_GROUP_WORDS,
    PAYLOAD_LAYOUTS,
    WORD_BYTES,
    WORD_LIMIT,
    NoteGroup,
    ProofPayload,
    ProofType,
    int_to_word,
    word_to_int,
)


# Every family currently carries exactly one dynamic segment: proof data.
SEGMENT_COUNT = 1


# ─────────────────────────────────────────────────────────────
# Offset table
# ─────────────────────────────────────────────────────────────

def compute_offsets(fixed_words: int, segment_lengths: Sequence[int]) -> List[int]:
    """
    Offset table for segments of the given byte lengths.

    An empty segment list yields an empty table.
    """
    if not segment_lengths:
        return []
    accumulator = (fixed_words + len(segment_lengths) + 1) * WORD_BYTES
    offsets = [accumulator]
    for length in segment_lengths[:-1]:
        accumulator += length
        offsets.append(accumulator)
    return offsets


def split_segments(
    data:          bytes,
    fixed_words:   int,
    segment_count: int,
) -> Tuple[List[bytes], List[bytes]]:
    """
    Split a payload into its header words and dynamic segments.

    Raises MalformedPayload on any structural inconsistency.
    """
    if len(data) % WORD_BYTES:
        raise MalformedPayload(
            "payload is not word aligned",
            {"length": len(data)},
        )

    table_end = (fixed_words + segment_count) * WORD_BYTES
    if len(data) < table_end:
        raise MalformedPayload(
            "payload shorter than its header and offset table",
            {"length": len(data), "required": table_end},
        )

    header = [
        data[i * WORD_BYTES:(i + 1) * WORD_BYTES] for i in range(fixed_words)
    ]
    offsets = [
        word_to_int(data[(fixed_words + i) * WORD_BYTES:(fixed_words + i + 1) * WORD_BYTES])
        for i in range(segment_count)
    ]
    if not offsets:
        if len(data) != table_end:
            raise MalformedPayload(
                "trailing bytes after header",
                {"length": len(data), "expected": table_end},
            )
        return header, []

    expected_first = (fixed_words + segment_count + 1) * WORD_BYTES
    if offsets[0] != expected_first:
        raise MalformedPayload(
            "first offset does not point past the offset table",
            {"offset": offsets[0], "expected": expected_first},
        )

    # buffer position = offset - one length word
    limit = len(data) + WORD_BYTES
    for i, offset in enumerate(offsets):
        if offset >= limit:
            raise MalformedPayload(
                "offset exceeds payload length",
                {"index": i, "offset": offset, "length": len(data)},
            )
        if i and offset <= offsets[i - 1]:
            raise MalformedPayload(
                "offsets are not strictly increasing",
                {"index": i, "offset": offset, "previous": offsets[i - 1]},
            )
        if offset % WORD_BYTES:
            raise MalformedPayload(
                "offset is not word aligned",
                {"index": i, "offset": offset},
            )

    bounds = [offset - WORD_BYTES for offset in offsets] + [len(data)]
    segments = [data[bounds[i]:bounds[i + 1]] for i in range(segment_count)]
    return header, segments


# ─────────────────────────────────────────────────────────────
# Proof data segment
# ─────────────────────────────────────────────────────────────

def _word(value: int, name: str) -> bytes:
    if not isinstance(value, int) or not 0 <= value < WORD_LIMIT:
        raise MalformedPayload(
            "scalar outside the 256-bit word range",
            {"field": name, "value": value},
        )
    return int_to_word(value)


def encode_proof_data(groups: Sequence[NoteGroup]) -> bytes:
    parts = [_word(len(groups), "count")]
    for index, group in enumerate(groups):
        if len(group) != NOTE_GROUP_WORDS:
            raise MalformedPayload(
                "note group has wrong arity",
                {"index": index, "words": len(group)},
            )
        parts.extend(_word(w, f"proof_data[{index}]") for w in group)
    return b"".join(parts)


def decode_proof_data(segment: bytes) -> Tuple[NoteGroup, ...]:
    if len(segment) < WORD_BYTES:
        raise MalformedPayload("proof data segment has no count word")
    count = word_to_int(segment[:WORD_BYTES])
    expected = WORD_BYTES * (1 + count * NOTE_GROUP_WORDS)
    if len(segment) != expected:
        raise MalformedPayload(
            "proof data length does not match its note count",
            {"count": count, "length": len(segment), "expected": expected},
        )
    groups = []
    body = segment[WORD_BYTES:]
    group_bytes = NOTE_GROUP_WORDS * WORD_BYTES
    for start in range(0, len(body), group_bytes):
        chunk = body[start:start + group_bytes]
        groups.append(NoteGroup(*(
            word_to_int(chunk[w * WORD_BYTES:(w + 1) * WORD_BYTES])
            for w in range(NOTE_GROUP_WORDS)
        )))
    return tuple(groups)


# ─────────────────────────────────────────────────────────────
# Payloads
# ─────────────────────────────────────────────────────────────

def payload_bytes(data: Union[bytes, bytearray, str]) -> bytes:
    """Raw bytes from bytes or hex text (0x prefix optional, any case)."""
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if not isinstance(data, str):
        raise MalformedPayload(
            "payload must be bytes or hex text",
            {"type": type(data).__name__},
        )
    text = data.strip()
    if text[:2] in ("0x", "0X"):
        text = text[2:]
    try:
        return bytes.fromhex(text)
    except ValueError as exc:
        raise MalformedPayload(f"payload is not valid hex: {exc}") from exc


def _header_word(payload: ProofPayload, name: str) -> bytes:
    value = getattr(payload, name)
    if name == "public_owner":
        if not isinstance(value, (bytes, bytearray)) or len(value) > WORD_BYTES:
            raise MalformedPayload(
                "public owner must be at most one word of bytes",
                {"value": value},
            )
        return bytes(value).rjust(WORD_BYTES, b"\x00")
    return _word(value, name)


def encode(payload: ProofPayload) -> bytes:
    """Encode a payload to its bit-exact wire form."""
    problems = payload.missing_or_extra_fields()
    if problems:
        raise MalformedPayload(
            "header fields do not match the proof type layout",
            {"proof_type": payload.proof_type.name, "fields": problems},
        )
    if payload.m is not None and payload.m > len(payload.proof_data):
        raise MalformedPayload(
            "m exceeds the number of notes",
            {"m": payload.m, "notes": len(payload.proof_data)},
        )

    header   = [_header_word(payload, name) for name in payload.layout]
    segments = [encode_proof_data(payload.proof_data)]
    offsets  = compute_offsets(len(header), [len(s) for s in segments])

    return b"".join(header + [int_to_word(o) for o in offsets] + segments)


def encode_hex(payload: ProofPayload) -> str:
    """Lowercase 0x-prefixed hex form of encode()."""
    return "0x" + encode(payload).hex()


def parse_proof_type(proof_type) -> ProofType:
    try:
        return ProofType.parse(proof_type)
    except ValueError as exc:
        raise UnknownProofType(str(exc), {"proof_type": proof_type}) from exc


def decode(proof_type, data: Union[bytes, str]) -> ProofPayload:
    """
    Decode a payload for proof_type.

    Raises MalformedPayload on any structural problem. Never calls a validator.
    """
    proof_type = parse_proof_type(proof_type)
    layout = PAYLOAD_LAYOUTS[proof_type]
    raw = payload_bytes(data)

    header, segments = split_segments(raw, len(layout), SEGMENT_COUNT)
    proof_data = decode_proof_data(segments[0])

    fields = {}
    for name, word in zip(layout, header):
        fields[name] = word if name == "public_owner" else word_to_int(word)

    if "m" in fields and fields["m"] > len(proof_data):
        raise MalformedPayload(
            "m exceeds the number of notes",
            {"m": fields["m"], "notes": len(proof_data)},
        )

    return ProofPayload(proof_type=proof_type, proof_data=proof_data, **fields)


class ProofCodec:
    """
    Injectable facade over the module functions, so an engine can be built
    with an alternative wire format.
    """

    def encode(self, payload: ProofPayload) -> bytes:
        return encode(payload)

    def decode(self, proof_type, data: Union[bytes, str]) -> ProofPayload:
        return decode(proof_type, data)
