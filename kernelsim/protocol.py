"""Binary message format shared by the kernel and the file-service server."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum

SERVER_PORT = 9881
BLOCK_SIZE = 16
MAX_PATH = 256
MAX_DIR_ENTRIES = 40
LIST_BUFFER_SIZE = 2048


class MessageType(IntEnum):
    """Operation codes carried in the first field of every message."""

    REQ_READ = 0
    REQ_WRITE = 1
    REQ_CREATE_DIR = 2
    REQ_REM_DIR = 3
    REQ_LIST_DIR = 4
    REP_READ = 5
    REP_WRITE = 6
    REP_CREATE_DIR = 7
    REP_REM_DIR = 8
    REP_LIST_DIR = 9


_HEADER = struct.Struct("<i")
_FILE = struct.Struct(f"<ii{MAX_PATH}si{BLOCK_SIZE}si")
_DIR_REQ = struct.Struct(f"<ii{MAX_PATH}si{MAX_PATH}si")
_PATH_ONLY = struct.Struct(f"<ii{MAX_PATH}si")
_LIST_REP = struct.Struct(f"<ii{LIST_BUFFER_SIZE}s{3 * MAX_DIR_ENTRIES}ii")

MESSAGE_SIZE = max(s.size for s in (_FILE, _DIR_REQ, _PATH_ONLY, _LIST_REP))

_FILE_KINDS = frozenset(
    {
        MessageType.REQ_READ,
        MessageType.REP_READ,
        MessageType.REQ_WRITE,
        MessageType.REP_WRITE,
    }
)
_DIR_REQ_KINDS = frozenset({MessageType.REQ_CREATE_DIR, MessageType.REQ_REM_DIR})

_SYSCALL_NAMES = {
    MessageType.REQ_READ: "READ",
    MessageType.REQ_WRITE: "WRITE",
    MessageType.REQ_CREATE_DIR: "CREATE_DIR",
    MessageType.REQ_REM_DIR: "REM_DIR",
    MessageType.REQ_LIST_DIR: "LIST_DIR",
}


def syscall_name(kind):
    """Return the short name of a request type, or "UNKNOWN"."""
    try:
        return _SYSCALL_NAMES.get(MessageType(kind), "UNKNOWN")
    except ValueError:
        return "UNKNOWN"


def _to_cstr(text: str, size: int) -> bytes:
    return text.encode("utf-8")[: size - 1]


def _from_cstr(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", "replace")


@dataclass(frozen=True)
class EntryPos:
    """Location of one name inside a directory listing buffer."""

    start: int
    end: int
    is_file: bool


@dataclass
class Message:
    """One protocol message; which fields travel depends on ``kind``."""

    kind: MessageType
    owner: int = 0
    path: str = ""
    path_len: int = 0
    payload: bytes = b""
    offset: int = 0
    dirname: str = ""
    dirname_len: int = 0
    filenames: bytes = b""
    entries: list[EntryPos] = field(default_factory=list)
    count: int = 0

    def __post_init__(self) -> None:
        self.kind = MessageType(self.kind)
        payload = bytes(self.payload)
        if len(payload) > BLOCK_SIZE:
            raise ValueError(f"payload longer than {BLOCK_SIZE} bytes")
        self.payload = payload.ljust(BLOCK_SIZE, b"\0")
        self.filenames = bytes(self.filenames)

    def encode(self) -> bytes:
        """Serialise to a fixed-size datagram."""
        kind = self.kind
        if kind in _FILE_KINDS:
            body = _FILE.pack(
                kind,
                self.owner,
                _to_cstr(self.path, MAX_PATH),
                self.path_len,
                self.payload,
                self.offset,
            )
        elif kind in _DIR_REQ_KINDS:
            body = _DIR_REQ.pack(
                kind,
                self.owner,
                _to_cstr(self.path, MAX_PATH),
                self.path_len,
                _to_cstr(self.dirname, MAX_PATH),
                self.dirname_len,
            )
        elif kind is MessageType.REP_LIST_DIR:
            if len(self.filenames) > LIST_BUFFER_SIZE:
                raise ValueError("file name buffer too large")
            if len(self.entries) > MAX_DIR_ENTRIES:
                raise ValueError(f"more than {MAX_DIR_ENTRIES} entries")
            flat = [
                value
                for entry in self.entries
                for value in (entry.start, entry.end, int(entry.is_file))
            ]
            flat.extend([0] * (3 * MAX_DIR_ENTRIES - len(flat)))
            body = _LIST_REP.pack(kind, self.owner, self.filenames, *flat, self.count)
        else:
            body = _PATH_ONLY.pack(
                kind, self.owner, _to_cstr(self.path, MAX_PATH), self.path_len
            )
        return body.ljust(MESSAGE_SIZE, b"\0")

    @classmethod
    def decode(cls, data) -> "Message":
        """Parse a datagram; raise ValueError if it is too short or of unknown type."""
        data = bytes(data)
        if len(data) < _HEADER.size:
            raise ValueError("message too short")
        buf = data[:MESSAGE_SIZE].ljust(MESSAGE_SIZE, b"\0")
        (raw_kind,) = _HEADER.unpack_from(buf)
        try:
            kind = MessageType(raw_kind)
        except ValueError:
            raise ValueError(f"unknown message type {raw_kind}") from None

        if kind in _FILE_KINDS:
            _, owner, path, path_len, payload, offset = _FILE.unpack_from(buf)
            return cls(
                kind,
                owner=owner,
                path=_from_cstr(path),
                path_len=path_len,
                payload=payload,
                offset=offset,
            )
        if kind in _DIR_REQ_KINDS:
            _, owner, path, path_len, dirname, dirname_len = _DIR_REQ.unpack_from(buf)
            return cls(
                kind,
                owner=owner,
                path=_from_cstr(path),
                path_len=path_len,
                dirname=_from_cstr(dirname),
                dirname_len=dirname_len,
            )
        if kind is MessageType.REP_LIST_DIR:
            fields = _LIST_REP.unpack_from(buf)
            owner, names_buf = fields[1], fields[2]
            count = fields[-1]
            flat = iter(fields[3:-1])
            wanted = min(max(count, 0), MAX_DIR_ENTRIES)
            entries = [
                EntryPos(start, end, bool(is_file))
                for start, end, is_file in list(zip(flat, flat, flat))[:wanted]
            ]
            return cls(
                kind,
                owner=owner,
                filenames=names_buf.rstrip(b"\0"),
                entries=entries,
                count=count,
            )
        _, owner, path, path_len = _PATH_ONLY.unpack_from(buf)
        return cls(kind, owner=owner, path=_from_cstr(path), path_len=path_len)

    def names(self) -> list[str]:
        """Names carried by a directory listing, in order."""
        return [
            self.filenames[entry.start : entry.end].decode("utf-8", "replace")
            for entry in self.entries
        ]