import socket
import threading

import pytest

from kernelsim.protocol import (
    BLOCK_SIZE,
    MAX_DIR_ENTRIES,
    MESSAGE_SIZE,
    Message,
    MessageType,
)
from kernelsim.server import FileServer


@pytest.fixture
def server(tmp_path):
    srv = FileServer(tmp_path)
    srv.prepare()
    return srv


def _write(server, path, payload, offset):
    return server.handle(
        Message(MessageType.REQ_WRITE, owner=1, path=path, payload=payload, offset=offset)
    )


def test_prepare_creates_homes(tmp_path):
    root = tmp_path / "root"
    FileServer(root).prepare()
    assert sorted(p.name for p in root.iterdir()) == [f"A{i}" for i in range(6)]


def test_resolve_concatenates_root(tmp_path):
    assert str(FileServer(tmp_path).resolve("/A1/x")) == f"{tmp_path}/A1/x"


def test_write_then_read(server, tmp_path):
    reply = _write(server, "/A1/dados.txt", b"D-A1-PC03", 0)
    assert reply.kind is MessageType.REP_WRITE
    assert reply.offset == 0
    read = server.handle(Message(MessageType.REQ_READ, owner=1, path="/A1/dados.txt"))
    assert read.kind is MessageType.REP_READ
    assert read.owner == 1
    assert read.payload == b"D-A1-PC03".ljust(BLOCK_SIZE, b"\0")
    assert (tmp_path / "A1" / "dados.txt").stat().st_size == BLOCK_SIZE


def test_write_beyond_end_fills_with_spaces(server, tmp_path):
    reply = _write(server, "/A2/dados.txt", b"abc", 32)
    assert reply.kind is MessageType.REP_WRITE
    assert reply.offset == 32
    content = (tmp_path / "A2" / "dados.txt").read_bytes()
    assert content[:32] == b" " * 32
    assert content[32:] == b"abc".ljust(BLOCK_SIZE, b"\0")
    read = server.handle(
        Message(MessageType.REQ_READ, owner=1, path="/A2/dados.txt", offset=16)
    )
    assert read.payload == b" " * BLOCK_SIZE


def test_write_keeps_existing_content(server, tmp_path):
    first = _write(server, "/A3/dados.txt", b"first", 0)
    second = _write(server, "/A3/dados.txt", b"second", 16)
    assert first.offset == 0
    assert second.offset == 16
    content = (tmp_path / "A3" / "dados.txt").read_bytes()
    assert content.startswith(b"first")
    assert content[16:22] == b"second"
    read = server.handle(Message(MessageType.REQ_READ, owner=1, path="/A3/dados.txt"))
    assert read.payload == b"first".ljust(BLOCK_SIZE, b"\0")


def test_write_into_missing_directory_fails(server):
    assert _write(server, "/nowhere/dados.txt", b"x", 0).offset == -1


def test_read_missing_file(server):
    reply = server.handle(Message(MessageType.REQ_READ, owner=4, path="/A4/none.txt"))
    assert reply.offset == -1
    assert reply.kind is MessageType.REP_READ


def test_read_negative_offset(server):
    _write(server, "/A1/dados.txt", b"x", 0)
    reply = server.handle(
        Message(MessageType.REQ_READ, owner=1, path="/A1/dados.txt", offset=-5)
    )
    assert reply.offset == -2


def test_read_past_end_returns_empty_block(server):
    _write(server, "/A1/dados.txt", b"x", 0)
    reply = server.handle(
        Message(MessageType.REQ_READ, owner=1, path="/A1/dados.txt", offset=96)
    )
    assert reply.offset == 96
    assert reply.payload == bytes(BLOCK_SIZE)


def test_create_dir(server, tmp_path):
    req = Message(MessageType.REQ_CREATE_DIR, owner=1, path="/A1", dirname="sub_3")
    reply = server.handle(req)
    assert reply.kind is MessageType.REP_CREATE_DIR
    assert reply.path == "/A1/sub_3"
    assert reply.path_len == len("/A1/sub_3")
    assert (tmp_path / "A1" / "sub_3").is_dir()
    assert server.handle(req).path == "/A1/sub_3"


def test_create_dir_in_missing_parent(server):
    reply = server.handle(
        Message(MessageType.REQ_CREATE_DIR, owner=1, path="/missing", dirname="sub_1")
    )
    assert reply.path_len == -1


def test_remove_dir(server, tmp_path):
    (tmp_path / "A2" / "sub_9").mkdir()
    reply = server.handle(
        Message(MessageType.REQ_REM_DIR, owner=2, path="/A2", dirname="sub_9")
    )
    assert reply.kind is MessageType.REP_REM_DIR
    assert reply.path == "/A2"
    assert reply.path_len == len("/A2")
    assert not (tmp_path / "A2" / "sub_9").exists()


def test_remove_missing_dir(server):
    reply = server.handle(
        Message(MessageType.REQ_REM_DIR, owner=2, path="/A2", dirname="sub_0")
    )
    assert reply.path_len == -1


def test_remove_non_empty_dir(server, tmp_path):
    (tmp_path / "A2" / "full").mkdir()
    (tmp_path / "A2" / "full" / "f").write_bytes(b"x")
    reply = server.handle(
        Message(MessageType.REQ_REM_DIR, owner=2, path="/A2", dirname="full")
    )
    assert reply.path_len == -1
    assert (tmp_path / "A2" / "full").is_dir()


def test_list_dir(server, tmp_path):
    (tmp_path / "A5" / "sub_1").mkdir()
    (tmp_path / "A5" / "dados.txt").write_bytes(b"x")
    reply = server.handle(Message(MessageType.REQ_LIST_DIR, owner=5, path="/A5"))
    assert reply.kind is MessageType.REP_LIST_DIR
    assert reply.count == 2
    kinds = dict(zip(reply.names(), (e.is_file for e in reply.entries)))
    assert kinds == {"sub_1": False, "dados.txt": True}
    decoded = Message.decode(reply.encode())
    assert decoded.names() == reply.names()


def test_list_dir_limits_entries(server, tmp_path):
    for i in range(MAX_DIR_ENTRIES + 5):
        (tmp_path / "A0" / f"f{i}").write_bytes(b"")
    reply = server.handle(Message(MessageType.REQ_LIST_DIR, owner=1, path="/A0"))
    assert reply.count == MAX_DIR_ENTRIES
    assert len(reply.names()) == MAX_DIR_ENTRIES


def test_list_missing_dir(server):
    reply = server.handle(Message(MessageType.REQ_LIST_DIR, owner=1, path="/nope"))
    assert reply.count == -1
    assert reply.names() == []


def test_reply_kinds_come_back_unchanged(server):
    msg = Message(MessageType.REP_READ, owner=3, path="/A3/dados.txt", offset=16)
    assert server.handle(msg) == msg


def test_serve_answers_over_udp(server, tmp_path):
    srv = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    srv.bind(("127.0.0.1", 0))
    srv.settimeout(0.05)
    thread = threading.Thread(target=server.serve, args=(srv,), daemon=True)
    thread.start()
    client = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    client.settimeout(5)
    try:
        request = Message(MessageType.REQ_CREATE_DIR, owner=3, path="/A3", dirname="sub_7")
        client.sendto(request.encode(), srv.getsockname())
        data, _ = client.recvfrom(MESSAGE_SIZE)
    finally:
        client.close()
        srv.close()
        thread.join(timeout=5)
    reply = Message.decode(data)
    assert reply.kind is MessageType.REP_CREATE_DIR
    assert reply.path == "/A3/sub_7"
    assert (tmp_path / "A3" / "sub_7").is_dir()
    assert not thread.is_alive()