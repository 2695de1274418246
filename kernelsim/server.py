"""UDP file-service server that executes file and directory requests."""

from __future__ import annotations

import argparse
import os
import socket
import sys
from dataclasses import replace
from pathlib import Path

from kernelsim.protocol import (
    BLOCK_SIZE,
    LIST_BUFFER_SIZE,
    MAX_DIR_ENTRIES,
    MESSAGE_SIZE,
    SERVER_PORT,
    EntryPos,
    Message,
    MessageType,
)

DEFAULT_ROOT = "SFSS-root-dir"
HOME_COUNT = 6


class FileServer:
    """Serves requests against a directory tree rooted at ``root``."""

    def __init__(self, root=DEFAULT_ROOT):
        self.root = os.fspath(root)

    def prepare(self) -> None:
        """Create the root directory and the home directories A0..A5."""
        try:
            os.mkdir(self.root, 0o700)
            print(">>> Root directory created.")
        except FileExistsError:
            pass
        for i in range(HOME_COUNT):
            try:
                os.mkdir(os.path.join(self.root, f"A{i}"), 0o700)
            except FileExistsError:
                pass

    def resolve(self, path: str) -> Path:
        """Map a request path onto the server's directory tree."""
        return Path(f"{self.root}{path}")

    def handle_read(self, msg: Message) -> Message:
        real = self.resolve(msg.path)
        reply = replace(msg, kind=MessageType.REP_READ)
        try:
            f = open(real, "rb")
        except OSError as exc:
            print(f"SFSS: read error '{real}': {exc.strerror}")
            return replace(reply, offset=-1)
        with f:
            if msg.offset < 0:
                print(f"SFSS: seek error '{real}': invalid offset")
                return replace(reply, offset=-2)
            f.seek(msg.offset)
            data = f.read(BLOCK_SIZE)
        print(f"SFSS: Read OK (A{msg.owner}) '{msg.path}' Off={msg.offset}")
        return replace(reply, payload=data, offset=msg.offset)

    def handle_write(self, msg: Message) -> Message:
        real = self.resolve(msg.path)
        reply = replace(msg, kind=MessageType.REP_WRITE)
        try:
            f = open(real, "r+b")
        except OSError:
            try:
                f = open(real, "w+b")
            except OSError as exc:
                print(f"SFSS: write error '{real}': {exc.strerror}")
                return replace(reply, offset=-1)
        with f:
            size = f.seek(0, os.SEEK_END)
            if msg.offset > size:
                f.write(b" " * (msg.offset - size))
            f.seek(msg.offset if msg.offset >= 0 else size)
            f.write(msg.payload)
        print(f"SFSS: Write OK (A{msg.owner}) '{msg.path}'")
        return replace(reply, offset=msg.offset)

    def handle_create_dir(self, msg: Message) -> Message:
        target = f"{self.resolve(msg.path)}/{msg.dirname}"
        reply = replace(msg, kind=MessageType.REP_CREATE_DIR)
        print(f"SFSS: Mkdir (A{msg.owner}) '{target}'")
        try:
            os.mkdir(target, 0o700)
        except FileExistsError:
            pass
        except OSError as exc:
            print(f"SFSS mkdir error: {exc.strerror}", file=sys.stderr)
            return replace(reply, path_len=-1)
        new_path = f"{msg.path}/{msg.dirname}"
        return replace(reply, path=new_path, path_len=len(new_path.encode("utf-8")))

    def handle_remove_dir(self, msg: Message) -> Message:
        target = f"{self.resolve(msg.path)}/{msg.dirname}"
        reply = replace(msg, kind=MessageType.REP_REM_DIR)
        print(f"SFSS: Rmdir (A{msg.owner}) '{target}'")
        try:
            if os.path.isdir(target) and not os.path.islink(target):
                os.rmdir(target)
            else:
                os.unlink(target)
        except OSError:
            return replace(reply, path_len=-1)
        return replace(reply, path_len=len(msg.path.encode("utf-8")))

    def handle_list_dir(self, msg: Message) -> Message:
        real = self.resolve(msg.path)
        reply = replace(
            msg, kind=MessageType.REP_LIST_DIR, filenames=b"", entries=[], count=0
        )
        buffer = bytearray()
        entries: list[EntryPos] = []
        try:
            with os.scandir(real) as listing:
                for entry in listing:
                    if len(entries) >= MAX_DIR_ENTRIES:
                        break
                    name = os.fsencode(entry.name)
                    if len(buffer) + len(name) + 1 >= LIST_BUFFER_SIZE:
                        break
                    is_file = not entry.is_dir(follow_symlinks=False)
                    entries.append(EntryPos(len(buffer), len(buffer) + len(name), is_file))
                    buffer += name + b"\0"
        except OSError:
            return replace(reply, count=-1)
        print(f"SFSS: ListDir OK (A{msg.owner}) '{msg.path}' -> {len(entries)} items")
        return replace(
            reply,
            filenames=bytes(buffer).rstrip(b"\0"),
            entries=entries,
            count=len(entries),
        )

    def handle(self, msg: Message) -> Message:
        """Execute a request and return its reply; other messages come back unchanged."""
        handlers = {
            MessageType.REQ_READ: self.handle_read,
            MessageType.REQ_WRITE: self.handle_write,
            MessageType.REQ_CREATE_DIR: self.handle_create_dir,
            MessageType.REQ_REM_DIR: self.handle_remove_dir,
            MessageType.REQ_LIST_DIR: self.handle_list_dir,
        }
        handler = handlers.get(msg.kind)
        if handler is None:
            print(f"SFSS: unknown message type ({int(msg.kind)})")
            return msg
        return handler(msg)

    def _respond(self, data: bytes) -> bytes:
        try:
            msg = Message.decode(data)
        except ValueError as exc:
            print(f"SFSS: {exc}")
            return data[:MESSAGE_SIZE].ljust(MESSAGE_SIZE, b"\0")
        return self.handle(msg).encode()

    def serve(self, sock: socket.socket) -> None:
        """Answer datagrams on ``sock`` until the socket is closed."""
        while True:
            try:
                data, address = sock.recvfrom(MESSAGE_SIZE)
            except OSError:
                if sock.fileno() == -1:
                    return
                continue
            reply = self._respond(data)
            try:
                sock.sendto(reply, address)
            except OSError:
                if sock.fileno() == -1:
                    return


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="File-service server over UDP.")
    parser.add_argument("--root", default=DEFAULT_ROOT, help="directory to serve")
    parser.add_argument("--port", type=int, default=SERVER_PORT, help="UDP port")
    args = parser.parse_args(argv)

    server = FileServer(args.root)
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind(("", args.port))
        except OSError as exc:
            print(f"Bind failed: {exc}", file=sys.stderr)
            return 1
        server.prepare()
        print(f">>> SFSS running on port {args.port}")
        try:
            server.serve(sock)
        except KeyboardInterrupt:
            pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())