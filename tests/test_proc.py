import pytest

from xv6kit.proc import ProcessTable, ProcState


def _table(nproc=4):
    table = ProcessTable(nproc)
    init = table.alloc("init")
    return table, init


def test_first_alloc_is_init():
    table, init = _table()
    assert table.initproc is init
    assert init.pid == 1
    assert init.state is ProcState.RUNNABLE
    assert init.queue_num == 3
    assert init.iterations_left == 8


def test_name_truncated_to_fifteen_chars():
    table = ProcessTable(2)
    p = table.alloc("a" * 30)
    assert p.name == "a" * 15


def test_fork_copies_parent():
    table, init = _table()
    init.sz = 4096
    pid = table.fork(init)
    child = next(p for p in table.procs if p.pid == pid)
    assert pid == 2
    assert child.parent is init
    assert child.name == "init"
    assert child.sz == 4096
    assert child.state is ProcState.RUNNABLE


def test_fork_fails_when_table_full():
    table, init = _table(2)
    table.fork(init)
    with pytest.raises(OSError):
        table.fork(init)


def test_init_may_not_exit():
    table, init = _table()
    with pytest.raises(RuntimeError, match="init exiting"):
        table.exit(init)


def test_exit_then_wait_reaps_child():
    table, init = _table()
    pid = table.fork(init)
    child = next(p for p in table.procs if p.pid == pid)
    table.exit(child)
    assert child.state is ProcState.ZOMBIE
    assert table.wait(init) == pid
    assert child.state is ProcState.UNUSED
    assert child.parent is None


def test_wait_without_children():
    table, init = _table()
    with pytest.raises(ChildProcessError):
        table.wait(init)


def test_wait_sleeps_until_child_exits():
    table, init = _table()
    pid = table.fork(init)
    child = next(p for p in table.procs if p.pid == pid)
    assert table.wait(init) is None
    assert init.state is ProcState.SLEEPING
    table.exit(child)
    assert init.state is ProcState.RUNNABLE
    assert table.wait(init) == pid


def test_orphans_go_to_init():
    table, init = _table()
    mid_pid = table.fork(init)
    mid = next(p for p in table.procs if p.pid == mid_pid)
    leaf_pid = table.fork(mid)
    leaf = next(p for p in table.procs if p.pid == leaf_pid)
    table.exit(mid)
    assert leaf.parent is init
    assert table.wait(init) == mid_pid


def test_kill_wakes_sleeper_and_wait_fails():
    table, init = _table()
    table.fork(init)
    table.wait(init)
    table.kill(init.pid)
    assert init.killed
    assert init.state is ProcState.RUNNABLE
    with pytest.raises(ChildProcessError):
        table.wait(init)


def test_kill_unknown_pid():
    table, _ = _table()
    with pytest.raises(ProcessLookupError):
        table.kill(99)


def test_procdump_lists_used_slots():
    table, init = _table()
    table.fork(init)
    assert table.procdump() == "1 runble init\n2 runble init\n"


def test_schedule_round_runs_top_queue():
    table, init = _table(2)
    lines = table.schedule_round()
    assert lines == [
        "process [init:1] is running. queue number: [3], idle count: [0], "
        "iterations left: 70 ms \n"
    ]
    assert init.state is ProcState.RUNNABLE


def test_process_demoted_after_using_its_runs():
    table = ProcessTable(1)
    init = table.alloc("init")
    for _ in range(8):
        table.schedule_round()
    assert init.queue_num == 3
    assert init.iterations_left == 0
    table.schedule_round()
    assert init.queue_num == 2


def test_both_runnable_processes_run_each_round():
    table, init = _table(2)
    table.fork(init)
    lines = table.schedule_round()
    assert len(lines) == 2
    assert "[init:1]" in lines[0]
    assert "[init:2]" in lines[1]


def test_sleeping_process_not_scheduled():
    table, init = _table(2)
    table.fork(init)
    table.wait(init)
    lines = table.schedule_round()
    assert len(lines) == 1
    assert "[init:2]" in lines[0]