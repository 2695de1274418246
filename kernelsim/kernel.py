"""Kernel simulator: forks applications, schedules them and forwards their requests."""

from __future__ import annotations

import argparse
import contextlib
import multiprocessing
import os
import random
import signal
import socket
import sys
import time
from typing import Optional

from kernelsim.protocol import MESSAGE_SIZE, SERVER_PORT, Message, MessageType
from kernelsim.scheduler import MAX_PC, Scheduler

N_PROCESSES = 5
IC_PERIOD = 0.5
APP_STEP = 0.5
SHARED_HOME = "/A0"
SHARED_HOME_PERCENT = 10
SYSCALL_PERCENT = 15
IRQ1_PERCENT = 40
IRQ2_PERCENT = 20
OFFSETS = (0, 16, 32, 48, 64, 80, 96)
DATA_FILE = "dados.txt"

SIG_SYSCALL = getattr(signal, "SIGRTMIN", signal.SIGWINCH)

_RAND_LIMIT = 2**31


def choose_home(owner_id: int, rng: random.Random) -> str:
    """Pick the application's home directory; sometimes the shared one."""
    if rng.randrange(100) < SHARED_HOME_PERCENT:
        return SHARED_HOME
    return f"/A{owner_id}"


def build_request(
    owner_id: int, home: str, pc: int, rng: random.Random
) -> Optional[Message]:
    """Decide whether this step makes a system call and build its request."""
    d = rng.randrange(_RAND_LIMIT)
    if d % 100 >= SYSCALL_PERCENT:
        return None
    offset = rng.choice(OFFSETS)

    if d % 2 != 0:
        path = f"{home}/{DATA_FILE}"
        path_len = len(path.encode("utf-8"))
        if rng.randrange(2) == 0:
            return Message(
                MessageType.REQ_READ,
                owner=owner_id,
                path=path,
                path_len=path_len,
                offset=offset,
            )
        return Message(
            MessageType.REQ_WRITE,
            owner=owner_id,
            path=path,
            path_len=path_len,
            offset=offset,
            payload=f"D-A{owner_id}-PC{pc:02d}".encode("utf-8"),
        )

    sub_op = rng.randrange(3)
    if sub_op == 2:
        return Message(MessageType.REQ_LIST_DIR, owner=owner_id, path=home)
    kind = MessageType.REQ_CREATE_DIR if sub_op == 0 else MessageType.REQ_REM_DIR
    dirname = f"sub_{rng.randrange(50)}"
    return Message(
        kind,
        owner=owner_id,
        path=home,
        dirname=dirname,
        dirname_len=len(dirname.encode("utf-8")),
    )


def run_application(index: int, conn, seed=None) -> None:
    """Body of one simulated application; requests travel over ``conn``."""
    rng = random.Random(seed)
    owner_id = index + 1
    home = choose_home(owner_id, rng)
    print(f"   APP A{owner_id}: started (PID {os.getpid()}). Home: {home}")

    pc = 0
    try:
        while pc < MAX_PC:
            time.sleep(APP_STEP)
            request = build_request(owner_id, home, pc, rng)
            if request is not None:
                conn.send_bytes(request.encode())
                os.kill(os.getppid(), SIG_SYSCALL)
                conn.recv_bytes()
            time.sleep(APP_STEP)
            pc += 1
    except (EOFError, OSError):
        pass
    finally:
        conn.close()


def run_interrupt_controller(kernel_pid: int, seed=None) -> int:
    """Send timer and device interrupts to the kernel until it is gone.

    Returns the number of timer interrupts delivered.
    """
    rng = random.Random(seed)
    ticks = 0
    try:
        while True:
            time.sleep(IC_PERIOD)
            os.kill(kernel_pid, signal.SIGALRM)
            ticks += 1
            if rng.randrange(100) < IRQ1_PERCENT:
                os.kill(kernel_pid, signal.SIGUSR1)
            if rng.randrange(100) < IRQ2_PERCENT:
                os.kill(kernel_pid, signal.SIGUSR2)
    except ProcessLookupError:
        return ticks


def _control(pid: int, signum: int) -> None:
    with contextlib.suppress(ProcessLookupError):
        os.kill(pid, signum)


def _reap_children() -> None:
    while True:
        try:
            pid, _ = os.waitpid(-1, os.WNOHANG)
        except ChildProcessError:
            return
        if pid == 0:
            return


@contextlib.contextmanager
def _timer_blocked():
    signal.pthread_sigmask(signal.SIG_BLOCK, {signal.SIGALRM})
    try:
        yield
    finally:
        signal.pthread_sigmask(signal.SIG_UNBLOCK, {signal.SIGALRM})


class Kernel:
    """Owns the network endpoint and runs the simulation loop."""

    def __init__(self, server_address=("127.0.0.1", SERVER_PORT)):
        self.server_address = tuple(server_address)
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._sock.bind(("", 0))
            self._sock.setblocking(False)
        except OSError:
            self._sock.close()
            raise
        self.port = self._sock.getsockname()[1]
        print(f">>> NETWORK: Kernel listening on UDP port {self.port}")

    def __enter__(self) -> "Kernel":
        return self

    def __exit__(self, *exc) -> None:
        self._close()

    def _close(self) -> None:
        self._sock.close()

    def _send(self, msg: Message) -> None:
        self._sock.sendto(msg.encode(), self.server_address)

    def _receive_replies(self) -> list[Message]:
        """Drain every datagram waiting on the socket without blocking."""
        replies = []
        while True:
            try:
                data = self._sock.recv(MESSAGE_SIZE)
            except BlockingIOError:
                break
            except OSError:
                break
            if not data:
                break
            try:
                msg = Message.decode(data)
            except ValueError as exc:
                print(f">>> NETWORK: discarded datagram ({exc})")
                continue
            print(
                f"\n>>> NETWORK: Reply received! Bytes: {len(data)} | "
                f"Type: {int(msg.kind)} | Owner: A{msg.owner}"
            )
            replies.append(msg)
        return replies

    def _spawn_applications(self) -> tuple[list[int], list]:
        pids, conns = [], []
        print(f">>> KERNEL: Creating {N_PROCESSES} processes...")
        for i in range(N_PROCESSES):
            parent_conn, child_conn = multiprocessing.Pipe()
            pid = os.fork()
            if pid == 0:
                parent_conn.close()
                self._sock.close()
                try:
                    run_application(i, child_conn)
                finally:
                    os._exit(0)
            child_conn.close()
            os.kill(pid, signal.SIGSTOP)
            pids.append(pid)
            conns.append(parent_conn)
            print(f"   + Process A{i + 1} created (PID {pid}) and PAUSED.")
        return pids, conns

    def _spawn_controller(self) -> int:
        kernel_pid = os.getpid()
        pid = os.fork()
        if pid == 0:
            self._sock.close()
            try:
                run_interrupt_controller(kernel_pid)
            finally:
                os._exit(0)
        return pid

    def run(self) -> int:
        """Run the simulation until every application has finished."""
        flags: set[str] = set()

        def setter(name):
            return lambda signum, frame: flags.add(name)

        def take(name: str) -> bool:
            if name in flags:
                flags.discard(name)
                return True
            return False

        for signum, name in (
            (signal.SIGALRM, "timer"),
            (signal.SIGUSR1, "irq1"),
            (signal.SIGUSR2, "irq2"),
            (SIG_SYSCALL, "syscall"),
            (signal.SIGINT, "dump"),
            (signal.SIGCHLD, "child"),
        ):
            signal.signal(signum, setter(name))

        pids, conns = self._spawn_applications()
        controller = self._spawn_controller()
        print(">>> KERNEL STARTED")

        scheduler = Scheduler(pids, _control)
        scheduler.start_next()
        print(scheduler.dump())

        def deliver(index: Optional[int]) -> None:
            if index is None:
                return
            reply = scheduler.processes[index].request
            with contextlib.suppress(OSError):
                conns[index].send_bytes(reply.encode())

        while True:
            signal.pause()

            for msg in self._receive_replies():
                scheduler.enqueue_reply(msg)

            if take("syscall"):
                with _timer_blocked():
                    index = scheduler.running
                    if index is not None and conns[index].poll(0.1):
                        try:
                            data = conns[index].recv_bytes()
                            scheduler.processes[index].request = Message.decode(data)
                        except (EOFError, OSError, ValueError) as exc:
                            print(f">>> KERNEL: bad request from A{index + 1}: {exc}")
                        else:
                            scheduler.on_syscall(self._send)

            if take("irq1"):
                with _timer_blocked():
                    deliver(scheduler.on_file_interrupt())

            if take("irq2"):
                with _timer_blocked():
                    deliver(scheduler.on_dir_interrupt())

            if take("timer"):
                scheduler.on_timer()

            if take("dump"):
                print(scheduler.dump())

            if take("child"):
                _reap_children()

            if scheduler.all_finished():
                print(
                    "\n******* END OF SIMULATION (all processes finished) *******"
                )
                for pid in [controller, *pids]:
                    _control(pid, signal.SIGKILL)
                for conn in conns:
                    conn.close()
                for pid in [controller, *pids]:
                    with contextlib.suppress(ChildProcessError):
                        os.waitpid(pid, 0)
                return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Process scheduling simulator.")
    parser.add_argument("--host", default="127.0.0.1", help="file server host")
    parser.add_argument("--port", type=int, default=SERVER_PORT, help="file server port")
    args = parser.parse_args(argv)
    try:
        kernel = Kernel((args.host, args.port))
    except OSError as exc:
        print(f"Socket setup failed: {exc}", file=sys.stderr)
        return 1
    with kernel:
        return kernel.run()


if __name__ == "__main__":
    raise SystemExit(main())