"""Round-robin process scheduler driven by timer and device interrupts."""

from __future__ import annotations

import signal
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from kernelsim.protocol import Message, MessageType

MAX_PC = 20
REPLY_QUEUE_SIZE = 20

_FILE_REQUESTS = frozenset({MessageType.REQ_READ, MessageType.REQ_WRITE})
_FILE_REPLIES = frozenset({MessageType.REP_READ, MessageType.REP_WRITE})

# Device number and operation letter shown for a process blocked on a request.
_BLOCK_INFO = {
    MessageType.REQ_READ: (1, "R"),
    MessageType.REQ_WRITE: (1, "W"),
    MessageType.REQ_CREATE_DIR: (2, "C"),
    MessageType.REQ_REM_DIR: (2, "D"),
    MessageType.REQ_LIST_DIR: (2, "L"),
}


class ProcessState(Enum):
    """Life-cycle state of a simulated process."""

    READY = "READY"
    RUNNING = "RUNNING"
    BLOCKED = "BLOCKED"
    FINISHED = "FINISHED"


@dataclass
class Process:
    """Bookkeeping for one simulated application."""

    pid: int
    pc: int = 0
    state: ProcessState = ProcessState.READY
    request: Optional[Message] = None
    file_accesses: int = 0
    dir_accesses: int = 0


class Scheduler:
    """Keeps the ready queue and the device reply queues for a set of processes.

    ``control(pid, signum)`` is called to continue, stop or kill a process.
    """

    def __init__(
        self,
        pids: Iterable[int],
        control: Callable[[int, int], None],
        max_pc: int = MAX_PC,
    ):
        self.processes = [Process(pid) for pid in pids]
        self.control = control
        self.max_pc = max_pc
        self.running: Optional[int] = None
        self._ready: deque[int] = deque()
        self._file_replies: deque[Message] = deque()
        self._dir_replies: deque[Message] = deque()
        for index in range(len(self.processes)):
            self._push_ready(index)

    @property
    def ready(self) -> list[int]:
        """Indices waiting in the ready queue, head first."""
        return list(self._ready)

    @property
    def file_replies(self) -> list[Message]:
        """Pending file-device replies, oldest first."""
        return list(self._file_replies)

    @property
    def dir_replies(self) -> list[Message]:
        """Pending directory-device replies, oldest first."""
        return list(self._dir_replies)

    def _push_ready(self, index: int) -> None:
        if len(self._ready) < len(self.processes):
            self._ready.append(index)

    def _start(self, index: int) -> None:
        proc = self.processes[index]
        if proc.state is not ProcessState.READY:
            return
        self.control(proc.pid, signal.SIGCONT)
        proc.state = ProcessState.RUNNING
        self.running = index

    def start_next(self) -> Optional[int]:
        """Dispatch the head of the ready queue; return its index, if any."""
        if not self._ready:
            return None
        index = self._ready.popleft()
        self._start(index)
        return index

    def stop_running(self) -> None:
        """Preempt the running process and put it back on the ready queue."""
        if self.running is None:
            return
        proc = self.processes[self.running]
        if proc.state is ProcessState.RUNNING:
            self.control(proc.pid, signal.SIGSTOP)
            proc.state = ProcessState.READY
            self._push_ready(self.running)
        self.running = None

    def on_syscall(self, send: Callable[[Message], object]) -> Optional[int]:
        """Send the running process's request, block it and dispatch the next one.

        Returns the index of the blocked process, or None if nothing was running.
        """
        if self.running is None:
            return None
        index = self.running
        proc = self.processes[index]
        if proc.request is None:
            raise ValueError(f"A{index + 1} has no pending request")
        print(
            f"\n>>> KERNEL: A{index + 1} made a syscall "
            f"({_syscall_label(proc.request)}). Sending request to SFSS..."
        )
        try:
            send(proc.request)
        except OSError as exc:
            print(f"Kernel sendto error: {exc}")
        proc.state = ProcessState.BLOCKED
        print(f"\n>>> KERNEL: A{index + 1} BLOCKED (waiting for SFSS reply)")
        self.control(proc.pid, signal.SIGSTOP)
        if proc.request.kind in _FILE_REQUESTS:
            proc.file_accesses += 1
        else:
            proc.dir_accesses += 1
        self.running = None
        self.start_next()
        return index

    def enqueue_reply(self, msg: Message) -> bool:
        """Queue a server reply on its device; return False if the queue is full."""
        queue = self._file_replies if msg.kind in _FILE_REPLIES else self._dir_replies
        if len(queue) >= REPLY_QUEUE_SIZE:
            return False
        queue.append(msg)
        return True

    def _deliver(self, queue: deque[Message], label: str) -> Optional[int]:
        if not queue:
            return None
        reply = queue.popleft()
        index = reply.owner - 1
        if not 0 <= index < len(self.processes):
            return None
        proc = self.processes[index]
        if proc.state is not ProcessState.BLOCKED:
            return None
        proc.request = reply
        proc.state = ProcessState.READY
        self._push_ready(index)
        print(f"\n>>> {label}: A{index + 1} UNBLOCKED!")
        return index

    def on_file_interrupt(self) -> Optional[int]:
        """Deliver the oldest file reply; return the index of the unblocked process."""
        return self._deliver(self._file_replies, "IRQ1-FILE")

    def on_dir_interrupt(self) -> Optional[int]:
        """Deliver the oldest directory reply; return the index of the unblocked process."""
        return self._deliver(self._dir_replies, "IRQ2-DIR")

    def on_timer(self) -> Optional[int]:
        """Charge a time slice to the running process and dispatch the next one."""
        if self.running is not None:
            index = self.running
            proc = self.processes[index]
            if proc.state is ProcessState.RUNNING:
                proc.pc += 1
                print(f">>> CPU: A{index + 1} consuming time slice - PC={proc.pc}")
                if proc.pc >= self.max_pc:
                    proc.state = ProcessState.FINISHED
                    print(f"\n>>> KERNEL: A{index + 1} FINISHED.")
                    self.control(proc.pid, signal.SIGKILL)
                    self.running = None
                else:
                    self.stop_running()
        return self.start_next()

    def all_finished(self) -> bool:
        """True once every process has finished."""
        return all(p.state is ProcessState.FINISHED for p in self.processes)

    def dump(self) -> str:
        """Human-readable report of processes and pending replies."""
        lines = ["", "", "******* Current State *******"]
        for i, proc in enumerate(self.processes):
            head = f"A{i + 1}(pid={proc.pid}): PC={proc.pc} - STATE={proc.state.value}"
            if proc.state is ProcessState.BLOCKED:
                kind = proc.request.kind if proc.request is not None else None
                dev, op = _BLOCK_INFO.get(kind, (0, "?"))
                head += f" - (Blocked on D{dev} op={op})"
            lines.append(head)

        lines.append("")
        lines.append(
            f"--- FILE reply queue (pending IRQ1: {len(self._file_replies)}) ---"
        )
        if not self._file_replies:
            lines.append("  (empty)")
        for i, msg in enumerate(self._file_replies):
            kind = "READ_REP" if msg.kind is MessageType.REP_READ else "WRITE_REP"
            lines.append(
                f"  [{i}] Owner: A{msg.owner} | Type: {kind} | "
                f"Path: {msg.path} | Off: {msg.offset}"
            )

        lines.append("")
        lines.append(
            f"--- DIRECTORY reply queue (pending IRQ2: {len(self._dir_replies)}) ---"
        )
        if not self._dir_replies:
            lines.append("  (empty)")
        for i, msg in enumerate(self._dir_replies):
            info = "N/A"
            if msg.kind is MessageType.REP_CREATE_DIR:
                kind, info = "CREATE_DIR_REP", msg.path
            elif msg.kind is MessageType.REP_REM_DIR:
                kind, info = "REM_DIR_REP", msg.path
            elif msg.kind is MessageType.REP_LIST_DIR:
                kind, info = "LIST_DIR_REP", f"({msg.count} names listed)"
            else:
                kind = f"UNKNOWN ({int(msg.kind)})"
            lines.append(f"  [{i}] Owner: A{msg.owner} | Type: {kind} | Info: {info}")

        lines.append("**********************************************")
        lines.append("")
        return "\n".join(lines)


def _syscall_label(msg: Message) -> str:
    from kernelsim.protocol import syscall_name

    return syscall_name(msg.kind)