"""Process table with a multi-level feedback queue scheduler."""

from __future__ import annotations

import enum
import errno
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .printf import format_cprintf

# Runs a process may get at each queue level before it is demoted,
# and idle rounds after which it is promoted; index is the queue number.
QUEUE_ITERATIONS = (500, 24, 16, 8)
TOP_QUEUE = len(QUEUE_ITERATIONS) - 1
NAME_LEN = 16

_RUN_MESSAGE = (
    "process [%s:%d] is running. queue number: [%d], idle count: [%d], "
    "iterations left: %d0 ms \n"
)


class ProcState(enum.IntEnum):
    """Life cycle of a process slot."""

    UNUSED = 0
    EMBRYO = 1
    SLEEPING = 2
    RUNNABLE = 3
    RUNNING = 4
    ZOMBIE = 5

    @property
    def label(self) -> str:
        return _STATE_LABELS[self]


_STATE_LABELS = {
    ProcState.UNUSED: "unused",
    ProcState.EMBRYO: "embryo",
    ProcState.SLEEPING: "sleep ",
    ProcState.RUNNABLE: "runble",
    ProcState.RUNNING: "run   ",
    ProcState.ZOMBIE: "zombie",
}


@dataclass(eq=False)
class Proc:
    """One slot of the process table."""

    pid: int = 0
    state: ProcState = ProcState.UNUSED
    name: str = ""
    parent: Optional["Proc"] = None
    killed: bool = False
    chan: object = None
    sz: int = 0
    queue_num: int = 0
    iterations_left: int = 0
    idle_count: int = 0


class ProcessTable:
    """A fixed set of process slots; the first process allocated becomes init."""

    def __init__(self, nproc: int):
        if nproc < 1:
            raise ValueError("the process table needs at least one slot")
        self.procs: Tuple[Proc, ...] = tuple(Proc() for _ in range(nproc))
        self.initproc: Optional[Proc] = None
        self._nextpid = 1

    def _allocproc(self) -> Proc:
        for p in self.procs:
            if p.state is ProcState.UNUSED:
                p.state = ProcState.EMBRYO
                p.pid = self._nextpid
                self._nextpid += 1
                p.idle_count = 0
                p.iterations_left = QUEUE_ITERATIONS[TOP_QUEUE]
                p.queue_num = TOP_QUEUE
                p.killed = False
                p.chan = None
                p.parent = None
                return p
        raise OSError(errno.EAGAIN, "process table full")

    def alloc(self, name: str) -> Proc:
        """Set up a runnable process with no parent; the first one is init."""
        p = self._allocproc()
        p.name = name[:NAME_LEN - 1]
        p.sz = 0
        if self.initproc is None:
            self.initproc = p
        p.state = ProcState.RUNNABLE
        return p

    def fork(self, parent: Proc) -> int:
        """Create a runnable copy of ``parent`` and return the child's pid."""
        if parent.state in (ProcState.UNUSED, ProcState.ZOMBIE):
            raise ValueError(f"cannot fork a process in state {parent.state.name}")
        child = self._allocproc()
        child.sz = parent.sz
        child.parent = parent
        child.name = parent.name
        child.state = ProcState.RUNNABLE
        return child.pid

    def _sleep(self, p: Proc, chan: object) -> None:
        p.chan = chan
        p.state = ProcState.SLEEPING

    def _wakeup1(self, chan: object) -> None:
        if chan is None:
            return
        for p in self.procs:
            if p.state is ProcState.SLEEPING and p.chan is chan:
                p.state = ProcState.RUNNABLE
                p.chan = None

    def exit(self, proc: Proc) -> None:
        """Turn ``proc`` into a zombie, waking its parent and handing its children to init."""
        if proc is self.initproc:
            raise RuntimeError("init exiting")
        if proc.state in (ProcState.UNUSED, ProcState.ZOMBIE):
            raise ValueError(f"cannot exit a process in state {proc.state.name}")
        self._wakeup1(proc.parent)
        for p in self.procs:
            if p.parent is proc:
                p.parent = self.initproc
                if p.state is ProcState.ZOMBIE:
                    self._wakeup1(self.initproc)
        proc.state = ProcState.ZOMBIE

    def wait(self, parent: Proc) -> Optional[int]:
        """Reap an exited child and return its pid.

        Returns None when children exist but none has exited; the parent is
        then put to sleep until a child exits. Raises ChildProcessError when
        there are no children or the parent has been killed.
        """
        havekids = False
        for p in self.procs:
            if p.parent is not parent:
                continue
            havekids = True
            if p.state is ProcState.ZOMBIE:
                pid = p.pid
                p.pid = 0
                p.parent = None
                p.name = ""
                p.killed = False
                p.chan = None
                p.sz = 0
                p.state = ProcState.UNUSED
                return pid
        if not havekids or parent.killed:
            raise ChildProcessError("no children to wait for")
        self._sleep(parent, parent)
        return None

    def kill(self, pid: int) -> None:
        """Mark the process ``pid`` killed, waking it if it sleeps."""
        for p in self.procs:
            if p.state is not ProcState.UNUSED and p.pid == pid:
                p.killed = True
                if p.state is ProcState.SLEEPING:
                    p.state = ProcState.RUNNABLE
                    p.chan = None
                return
        raise ProcessLookupError(pid)

    def schedule_round(self) -> List[str]:
        """Run one pass of the scheduler over the table.

        Before each slot is considered, every slot ages by one idle round and
        long-idle slots move up a queue. A runnable process in the highest
        occupied queue runs for one time slice and is demoted once it has used
        up its runs at that level. Returns one log line per process run.
        """
        lines: List[str] = []
        for p in self.procs:
            max_queue = 0
            for p2 in self.procs:
                p2.idle_count += 1
                if (p2.idle_count >= QUEUE_ITERATIONS[p2.queue_num]
                        and p2.queue_num < TOP_QUEUE):
                    p2.queue_num += 1
                    p2.idle_count = 0
                    p2.iterations_left = QUEUE_ITERATIONS[p2.queue_num]
                max_queue = max(max_queue, p2.queue_num)

            if p.state is not ProcState.RUNNABLE or p.queue_num != max_queue:
                continue
            if p.iterations_left <= 0 and p.queue_num > 0:
                p.queue_num -= 1
                p.idle_count = 0
                p.iterations_left = QUEUE_ITERATIONS[p.queue_num]
            p.idle_count = 0
            p.iterations_left -= 1

            # The slice ends with a timer preemption, leaving it runnable.
            p.state = ProcState.RUNNING
            p.state = ProcState.RUNNABLE
            lines.append(format_cprintf(
                _RUN_MESSAGE, p.name, p.pid, p.queue_num, p.idle_count, p.iterations_left
            ))
        return lines

    def procdump(self) -> str:
        """A listing of every slot in use: pid, state and name."""
        return "".join(
            format_cprintf("%d %s %s\n", p.pid, p.state.label, p.name)
            for p in self.procs
            if p.state is not ProcState.UNUSED
        )