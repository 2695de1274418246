# kernelsim

kernelsim is a teaching simulator for a tiny operating-system kernel. Five
application processes share one CPU under round-robin scheduling. Their file
and directory system calls go over UDP to a separate file-system server.

## Commands

### `kernelsim-sfss`: the file-system server

```
kernelsim-sfss [--root DIR] [--port PORT]
```

The server listens on UDP port 9881 unless `--port` gives another. It serves
files under `--root`, which defaults to `SFSS-root-dir` in the current
directory. At start-up it creates the root and the home directories `A0` to
`A5` if they are missing.

It handles five requests:

| Request | Reply |
|---------|-------|
| `REQ_READ` | 16 bytes at `offset` in `payload`. `offset` is -1 if the file cannot be opened and -2 for a negative offset. |
| `REQ_WRITE` | Writes the 16-byte block at `offset`. It creates the file if needed and fills any gap before `offset` with spaces. `offset` is -1 on failure. |
| `REQ_CREATE_DIR` | Creates `path/dirname`, and succeeds if it already exists. Returns the new path in `path`, or `path_len` = -1. |
| `REQ_REM_DIR` | Removes `path/dirname`, which may be an empty directory or a file. `path_len` is -1 on failure. |
| `REQ_LIST_DIR` | Lists up to 40 names in a buffer of up to 2048 bytes, each marked as file or directory. `count` is -1 if the directory cannot be opened. |

A message of any other type is sent back unchanged.

### `kernelsim`: the kernel

```
kernelsim [--host HOST] [--port PORT]
```

The kernel sends requests to the server at `--host`:`--port`, which defaults
to `127.0.0.1:9881`. It receives replies on a UDP port of its own, which it
prints at start-up.

The kernel forks five applications, A1 to A5, and an interrupt controller.
The controller sends these signals to the kernel every half second:

| Interrupt | Signal | How often | Meaning |
|-----------|--------|-----------|---------|
| IRQ0 | SIGALRM | every tick | Timer: the time slice ends |
| IRQ1 | SIGUSR1 | 40% of ticks | The oldest pending file reply is delivered |
| IRQ2 | SIGUSR2 | 20% of ticks | The oldest pending directory reply is delivered |

Each application picks a home directory. Usually this is `/A<n>`, and
sometimes it is the shared `/A0`. At each step it makes a system call with
15% probability. Half of those calls are a read or write of `dados.txt` in
its home. The other half are a create, remove or list of a `sub_<k>`
directory in its home.

A process that makes a system call is blocked until its reply has arrived and
the matching interrupt has fired. Each timer tick adds one to the running
process's program counter. A process finishes when the counter reaches 20.
The simulation ends when all five processes have finished.

Press Ctrl-C while the kernel is running to print its state. The report shows
each process with its PC and state, and the device and operation it is
blocked on. It also shows the pending file replies and directory replies.

## Running

Start the server in one terminal:

```
kernelsim-sfss
```

Start the kernel in another:

```
kernelsim
```

The kernel waits for replies only from the server. Without a running server,
processes that make a system call stay blocked and the simulation never ends.

## Library use

`kernelsim.protocol` defines `Message`, `MessageType` and `EntryPos`.
`Message.encode()` and `Message.decode()` convert to and from the fixed-size
wire format. `decode` raises `ValueError` for short data or an unknown type.
`Message.names()` returns the names held in a list-directory reply, and
`syscall_name()` gives the short name of a request type.

`kernelsim.server.FileServer` can be driven without a socket:

```python
from kernelsim.protocol import Message, MessageType
from kernelsim.server import FileServer

server = FileServer("SFSS-root-dir")
server.prepare()
reply = server.handle(Message(MessageType.REQ_CREATE_DIR, owner=1,
                              path="/A1", dirname="sub_1"))
print(reply.path)        # /A1/sub_1
reply = server.handle(Message(MessageType.REQ_WRITE, owner=1,
                              path="/A1/dados.txt", payload=b"hello", offset=0))
print(reply.offset)      # 0
```

Payloads shorter than 16 bytes are padded with NUL bytes. A write always
stores a full block.

`kernelsim.scheduler.Scheduler` holds the scheduling state machine on its own.
This covers the process table, the ready queue and the two reply queues, each
holding at most 20 replies. It takes a list of pids and a `control(pid,
signum)` callable, so it can be exercised without forking or signals. Its
methods are:

- `start_next`
- `stop_running`
- `on_syscall`
- `enqueue_reply`
- `on_file_interrupt`
- `on_dir_interrupt`
- `on_timer`
- `all_finished`
- `dump`, which returns the state report as a string.

## Requirements

Python 3.10 or later, on a POSIX system. The kernel uses `fork` and signals.