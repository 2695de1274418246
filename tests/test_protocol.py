import pytest

from kernelsim.protocol import (
    BLOCK_SIZE,
    MAX_DIR_ENTRIES,
    MAX_PATH,
    MESSAGE_SIZE,
    EntryPos,
    Message,
    MessageType,
    syscall_name,
)


def test_every_kind_encodes_to_the_same_size():
    sizes = {len(Message(kind).encode()) for kind in MessageType}
    assert sizes == {MESSAGE_SIZE}
    assert MESSAGE_SIZE == 2540


def test_read_request_wire_layout():
    msg = Message(MessageType.REQ_READ, owner=2, path="/A2/dados.txt", offset=16)
    data = msg.encode()
    assert data[:4] == int(MessageType.REQ_READ).to_bytes(4, "little")
    assert data[4:8] == (2).to_bytes(4, "little")
    assert data[8:21] == b"/A2/dados.txt"
    assert data[21] == 0


@pytest.mark.parametrize("kind", [MessageType.REQ_WRITE, MessageType.REP_READ])
def test_file_message_round_trip(kind):
    msg = Message(kind, owner=4, path="/A4/dados.txt", path_len=13,
                  payload=b"D-A4-PC07", offset=48)
    back = Message.decode(msg.encode())
    assert back == msg
    assert back.payload == b"D-A4-PC07".ljust(BLOCK_SIZE, b"\0")


@pytest.mark.parametrize("kind", [MessageType.REQ_CREATE_DIR, MessageType.REQ_REM_DIR])
def test_dir_request_round_trip(kind):
    msg = Message(kind, owner=1, path="/A1", dirname="sub_12", dirname_len=6)
    assert Message.decode(msg.encode()) == msg


@pytest.mark.parametrize(
    "kind",
    [MessageType.REP_CREATE_DIR, MessageType.REP_REM_DIR, MessageType.REQ_LIST_DIR],
)
def test_path_only_round_trip(kind):
    msg = Message(kind, owner=5, path="/A0/sub_3", path_len=9)
    assert Message.decode(msg.encode()) == msg


def test_list_reply_round_trip_and_names():
    msg = Message(
        MessageType.REP_LIST_DIR,
        owner=3,
        filenames=b"dados.txt\0sub_1",
        entries=[EntryPos(0, 9, True), EntryPos(10, 15, False)],
        count=2,
    )
    back = Message.decode(msg.encode())
    assert back == msg
    assert back.names() == ["dados.txt", "sub_1"]
    assert [e.is_file for e in back.entries] == [True, False]


def test_list_reply_with_error_count_has_no_entries():
    back = Message.decode(Message(MessageType.REP_LIST_DIR, owner=1, count=-1).encode())
    assert back.count == -1
    assert back.entries == []
    assert back.names() == []


def test_too_many_entries_rejected():
    msg = Message(
        MessageType.REP_LIST_DIR,
        entries=[EntryPos(0, 0, True)] * (MAX_DIR_ENTRIES + 1),
    )
    with pytest.raises(ValueError):
        msg.encode()


def test_long_path_is_truncated_with_terminator():
    back = Message.decode(Message(MessageType.REQ_LIST_DIR, path="x" * 400).encode())
    assert back.path == "x" * (MAX_PATH - 1)


def test_decode_short_data_raises():
    with pytest.raises(ValueError):
        Message.decode(b"\x01")


def test_decode_unknown_type_raises():
    with pytest.raises(ValueError):
        Message.decode((99).to_bytes(4, "little") + bytes(20))


def test_decode_pads_partial_datagram():
    data = Message(MessageType.REQ_LIST_DIR, owner=2, path="/A2").encode()
    back = Message.decode(data[:40])
    assert back.path == "/A2"
    assert back.owner == 2


def test_payload_too_long_rejected():
    with pytest.raises(ValueError):
        Message(MessageType.REQ_WRITE, payload=b"z" * (BLOCK_SIZE + 1))


@pytest.mark.parametrize(
    "kind, name",
    [
        (MessageType.REQ_READ, "READ"),
        (MessageType.REQ_WRITE, "WRITE"),
        (MessageType.REQ_CREATE_DIR, "CREATE_DIR"),
        (MessageType.REQ_REM_DIR, "REM_DIR"),
        (MessageType.REQ_LIST_DIR, "LIST_DIR"),
        (MessageType.REP_READ, "UNKNOWN"),
        (77, "UNKNOWN"),
    ],
)
def test_syscall_name(kind, name):
    assert syscall_name(kind) == name