import pytest

from xv6kit.console import INPUT_BUF, ConsoleInput


def test_line_is_echoed_and_read():
    con = ConsoleInput()
    assert con.interrupt("hi\n") == b"hi\n"
    assert con.read(10) == b"hi\n"


def test_carriage_return_becomes_newline():
    con = ConsoleInput()
    assert con.interrupt("ok\r") == b"ok\n"
    assert con.read(10) == b"ok\n"


def test_backspace_erases_previous_char():
    con = ConsoleInput()
    echo = con.interrupt("ab\x7fc\n")
    assert b"\b \b" in echo
    assert con.read(10) == b"ac\n"


def test_ctrl_h_also_erases():
    con = ConsoleInput()
    con.interrupt("xy\x08\n")
    assert con.read(10) == b"x\n"


def test_kill_line():
    con = ConsoleInput()
    echo = con.interrupt("abc\x15d\n")
    assert echo.count(b"\b \b") == 3
    assert con.read(10) == b"d\n"


def test_backspace_cannot_erase_committed_line():
    con = ConsoleInput()
    assert con.interrupt("a\n\x08") == b"a\n"
    assert con.read(10) == b"a\n"


def test_ctrl_d_signals_end_of_file():
    con = ConsoleInput()
    con.interrupt(b"ab\x04")
    assert con.read(10) == b"ab"
    assert con.read(10) == b""


def test_partial_line_is_not_readable():
    con = ConsoleInput()
    con.interrupt("abc")
    with pytest.raises(BlockingIOError):
        con.read(10)


def test_empty_console_blocks():
    with pytest.raises(BlockingIOError):
        ConsoleInput().read(1)


def test_ctrl_p_requests_dump_without_echo():
    con = ConsoleInput()
    assert con.interrupt("\x10") == b""
    assert con.dump_requested


def test_short_read_leaves_rest_of_line():
    con = ConsoleInput()
    con.interrupt("hello\n")
    assert con.read(2) == b"he"
    assert con.read(10) == b"llo\n"


def test_full_buffer_commits_and_drops_extra():
    con = ConsoleInput()
    echo = con.interrupt("a" * (INPUT_BUF + 5))
    assert len(echo) == INPUT_BUF
    assert con.read(INPUT_BUF * 2) == b"a" * INPUT_BUF


def test_negative_code_stops_input():
    con = ConsoleInput()
    assert con.interrupt([ord("a"), -1, ord("b")]) == b"a"